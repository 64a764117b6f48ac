"""
User profile: fetched with a bearer token from the profile (userinfo) endpoint.
Avatar falls back to Gravatar when the provider sends no picture.
"""
import hashlib
import logging
from dataclasses import dataclass

import httpx

from client_desktop.errors import ProfileFetchError

logger = logging.getLogger(__name__)

AVATAR_SIZE = 96
GRAVATAR_URL = "https://www.gravatar.com/avatar"


@dataclass(frozen=True)
class UserProfile:
    name: str
    email: str
    given_name: str | None = None
    family_name: str | None = None
    profile_picture: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "UserProfile":
        """Map profile JSON; accepts both `profilePicture` and the OIDC `picture` claim."""
        return cls(
            name=claims.get("name") or claims.get("preferred_username") or "",
            email=claims.get("email") or "",
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
            profile_picture=claims.get("profilePicture") or claims.get("picture"),
        )

    @property
    def avatar_url(self) -> str:
        if self.profile_picture:
            return f"{self.profile_picture}?sz={AVATAR_SIZE}"
        return gravatar_url(self.email)


def gravatar_url(email: str) -> str:
    """Deterministic fallback avatar: MD5 of the lower-cased email."""
    digest = hashlib.md5(email.lower().encode("utf-8")).hexdigest()
    return f"{GRAVATAR_URL}/{digest}?sz={AVATAR_SIZE}"


async def fetch_user_profile(client: httpx.AsyncClient, profile_url: str, access_token: str) -> UserProfile:
    """GET profile_url with the bearer token and no HTTP caching. Raises ProfileFetchError on any failure."""
    try:
        r = await client.get(
            profile_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
                "Cache-Control": "no-cache",
            },
        )
    except httpx.HTTPError as e:
        raise ProfileFetchError(f"Profile request failed: {e}") from e
    if not r.is_success:
        raise ProfileFetchError(f"Profile endpoint returned {r.status_code}")
    try:
        claims = r.json()
    except ValueError as e:
        raise ProfileFetchError("Profile response is not valid JSON") from e
    if not isinstance(claims, dict):
        raise ProfileFetchError("Profile response is not a JSON object")
    return UserProfile.from_claims(claims)
