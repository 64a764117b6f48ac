"""
Authorization request/response exchanged with the authorization UI.
The UI presents `AuthorizationRequest.url` to the user and delivers the redirect parameters back.
"""
from dataclasses import dataclass
from typing import Protocol

from client_desktop.discovery import ServiceConfiguration
from client_desktop.pkce import build_authorize_url, generate_nonce, generate_pkce, generate_state


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str
    code_verifier: str
    redirect_uri: str
    nonce: str | None = None
    login_hint: str | None = None


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


class AuthorizationUI(Protocol):
    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        ...


def create_authorization_request(
    config: ServiceConfiguration,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    login_hint: str | None = None,
    extra_params: dict[str, str] | None = None,
) -> AuthorizationRequest:
    """Fresh state, PKCE pair and (for openid scope) nonce; authorize URL built from discovery."""
    state = generate_state()
    nonce = generate_nonce() if "openid" in scope.split() else None
    code_verifier, code_challenge = generate_pkce()
    url = build_authorize_url(
        authorization_endpoint=config.authorization_endpoint,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        nonce=nonce,
        login_hint=login_hint,
        extra_params=extra_params,
    )
    return AuthorizationRequest(
        url=url,
        state=state,
        code_verifier=code_verifier,
        redirect_uri=redirect_uri,
        nonce=nonce,
        login_hint=login_hint,
    )
