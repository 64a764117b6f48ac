"""
Desktop client configuration. Every value can be overridden from the environment.
No secrets in this file; the client is public (PKCE, no client secret).
"""
import os

# Authorization Server (issuer); discovery document lives under it
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# OpenID Connect discovery document (authorization_endpoint, token_endpoint, ...)
DISCOVERY_URL = os.environ.get("OAUTH_DISCOVERY_URL", f"{ISSUER}/.well-known/openid-configuration")

# Our client_id (must be registered at AS)
CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "desktop-client")

# Loopback redirect; the callback listener binds to this host/port/path
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# openid (so nonce is sent) + profile/email for the profile card + offline_access for refresh tokens
DEFAULT_SCOPE = os.environ.get("OAUTH_SCOPE", "openid profile email offline_access")

# Extra authorize parameters; empty string disables
PROMPT = os.environ.get("OAUTH_PROMPT", "consent").strip()
ACCESS_TYPE = os.environ.get("OAUTH_ACCESS_TYPE", "offline").strip()

# Profile endpoint. Unset: use userinfo_endpoint from discovery
PROFILE_URL = os.environ.get("OAUTH_PROFILE_URL", "").strip() or None

# Access token counts as expired this many seconds early
TOKEN_EXPIRY_SKEW_SECONDS = int(os.environ.get("OAUTH_TOKEN_EXPIRY_SKEW", "60"))

# Timeout for discovery, token and profile requests (seconds)
HTTP_TIMEOUT_SECONDS = float(os.environ.get("OAUTH_HTTP_TIMEOUT", "10.0"))

LOG_LEVEL = os.environ.get("CLIENT_LOG_LEVEL", "INFO").upper()


def extra_authorize_params() -> dict[str, str]:
    """Provider-specific authorize parameters from PROMPT / ACCESS_TYPE."""
    params = {}
    if PROMPT:
        params["prompt"] = PROMPT
    if ACCESS_TYPE:
        params["access_type"] = ACCESS_TYPE
    return params
