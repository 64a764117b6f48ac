"""
Fixtures for client_desktop: a scripted OAuth provider behind httpx.MockTransport,
a scripted authorization UI, and a controllable clock. Nothing touches the network.
"""
import asyncio
import json
from urllib.parse import parse_qs

import httpx
import jwt
import pytest

from client_desktop.authorization import AuthorizationRequest, AuthorizationResponse
from client_desktop.flow import AuthFlow

ISSUER = "https://as.example"
DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"
TOKEN_URL = f"{ISSUER}/token"
USERINFO_URL = f"{ISSUER}/userinfo"
REDIRECT_URI = "http://127.0.0.1:8000/callback"
T0 = 1_700_000_000


class FakeProvider:
    """Discovery, token and userinfo endpoints. Token responses are consumed in order."""

    def __init__(self):
        self.discovery = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": TOKEN_URL,
            "userinfo_endpoint": USERINFO_URL,
        }
        self.discovery_status = 200
        self.token_responses: list = []
        self.token_requests: list[dict] = []
        self.discovery_calls = 0
        self.profile = {"name": "Jane Doe", "email": "jane@x.com"}
        self.profile_status = 200
        self.profile_requests: list[httpx.Request] = []

    def queue_token(self, body: dict | None = None, status: int = 200, exc: Exception | None = None) -> None:
        self.token_responses.append(exc if exc is not None else (status, body or {}))

    def refresh_requests(self) -> list[dict]:
        return [r for r in self.token_requests if r.get("grant_type") == "refresh_token"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == DISCOVERY_URL:
            self.discovery_calls += 1
            return httpx.Response(self.discovery_status, json=self.discovery)
        if url == TOKEN_URL and request.method == "POST":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            if not self.token_responses:
                return httpx.Response(500, json={"error": "server_error"})
            item = self.token_responses.pop(0)
            if isinstance(item, Exception):
                raise item
            status, body = item
            return httpx.Response(status, content=json.dumps(body), headers={"content-type": "application/json"})
        if url.startswith(USERINFO_URL):
            self.profile_requests.append(request)
            return httpx.Response(self.profile_status, json=self.profile)
        return httpx.Response(404)


class FakeAuthorizationUI:
    """
    Records each presented request and answers with a code and the matching state.
    Set `gate` to an asyncio.Event to hold the response until the test releases it.
    """

    def __init__(self, code: str = "code123"):
        self.code = code
        self.requests: list[AuthorizationRequest] = []
        self.response: AuthorizationResponse | None = None
        self.gate: asyncio.Event | None = None
        self.cancelled = 0

    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        self.requests.append(request)
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if self.response is not None:
            return self.response
        return AuthorizationResponse(code=self.code, state=request.state)


class Clock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def ui():
    return FakeAuthorizationUI()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def http_client(provider):
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def flow(ui, http_client, clock):
    return AuthFlow(
        ui,
        discovery_url=DISCOVERY_URL,
        client_id="desktop-client",
        redirect_uri=REDIRECT_URI,
        scope="openid profile email",
        extra_params={},
        http_client=http_client,
        clock=clock,
        skew_seconds=60,
    )


@pytest.fixture
def make_id_token():
    """HS256-signed id_token; the client does not verify signatures, only the nonce."""

    def _make(claims: dict) -> str:
        return jwt.encode(claims, "id-token-test-secret-0123456789abcdef", algorithm="HS256")

    return _make
