"""
OpenID Connect discovery: fetch the provider's metadata document and keep the endpoints we use.
"""
import logging
from dataclasses import dataclass

import httpx

from client_desktop.errors import DiscoveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceConfiguration:
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    issuer: str | None = None

    @classmethod
    def from_document(cls, doc: dict) -> "ServiceConfiguration":
        """Raises DiscoveryError if a required endpoint is missing."""
        missing = [k for k in ("authorization_endpoint", "token_endpoint") if not isinstance(doc.get(k), str) or not doc.get(k)]
        if missing:
            raise DiscoveryError(f"Discovery document missing {', '.join(missing)}")
        return cls(
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            userinfo_endpoint=doc.get("userinfo_endpoint") or None,
            issuer=doc.get("issuer") or None,
        )


async def fetch_service_configuration(client: httpx.AsyncClient, discovery_url: str) -> ServiceConfiguration:
    """GET the discovery document. Any failure (network, timeout, non-2xx, bad JSON) raises DiscoveryError."""
    try:
        r = await client.get(discovery_url, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        raise DiscoveryError(f"Discovery request to {discovery_url} failed: {e}") from e
    if r.status_code != 200:
        raise DiscoveryError(f"Discovery request to {discovery_url} returned {r.status_code}")
    try:
        doc = r.json()
    except ValueError as e:
        raise DiscoveryError("Discovery document is not valid JSON") from e
    if not isinstance(doc, dict):
        raise DiscoveryError("Discovery document is not a JSON object")
    config = ServiceConfiguration.from_document(doc)
    logger.info("Fetched service configuration from %s", discovery_url)
    return config
