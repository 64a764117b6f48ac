"""Authorization request values: state, nonce, PKCE S256 pair (RFC 7636), authorize URL."""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

# 32 random bytes encode to 43 base64url characters, the RFC 7636 minimum verifier length
RANDOM_BYTES = 32


def _random_urlsafe() -> str:
    return secrets.token_urlsafe(RANDOM_BYTES)


def generate_state() -> str:
    return _random_urlsafe()


def generate_nonce() -> str:
    """Echoed in the id_token; only sent with the openid scope."""
    return _random_urlsafe()


def s256_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce() -> tuple[str, str]:
    """Fresh (code_verifier, code_challenge) pair."""
    verifier = _random_urlsafe()
    return verifier, s256_challenge(verifier)


def build_authorize_url(
    *,
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
    nonce: str | None = None,
    login_hint: str | None = None,
    extra_params: dict[str, str] | None = None,
) -> str:
    """Build the authorization endpoint URL with required and optional params."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if nonce:
        params["nonce"] = nonce
    if login_hint:
        params["login_hint"] = login_hint
    for key, value in (extra_params or {}).items():
        params.setdefault(key, value)
    separator = "&" if "?" in authorization_endpoint else "?"
    return f"{authorization_endpoint}{separator}{urlencode(params)}"
