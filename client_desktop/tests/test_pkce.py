"""Tests for PKCE, state/nonce generation and authorize URL building."""
import re
from urllib.parse import parse_qs, urlparse

import pytest

from client_desktop.authorization import create_authorization_request
from client_desktop.discovery import ServiceConfiguration
from client_desktop.pkce import build_authorize_url, generate_nonce, generate_pkce, generate_state, s256_challenge

URLSAFE = re.compile(r"^[A-Za-z0-9_-]{43}$")


def test_s256_challenge_matches_rfc7636_appendix_b():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFkWXjk"
    assert s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_generate_pkce_pairs_verifier_with_its_challenge():
    verifier, challenge = generate_pkce()
    assert URLSAFE.match(verifier)
    assert challenge == s256_challenge(verifier)
    assert generate_pkce()[0] != verifier


@pytest.mark.parametrize("generate", [generate_state, generate_nonce])
def test_state_and_nonce_are_fresh_urlsafe_values(generate):
    values = {generate() for _ in range(5)}
    assert len(values) == 5
    assert all(URLSAFE.match(v) for v in values)


def test_build_authorize_url_includes_required_params():
    url = build_authorize_url(
        authorization_endpoint="https://as.example/authorize",
        client_id="client1",
        redirect_uri="http://127.0.0.1:8000/callback",
        scope="openid profile",
        state="mystate",
        code_challenge="challenge123",
        nonce="mynonce",
        login_hint="jane@x.com",
    )
    assert url.startswith("https://as.example/authorize?")
    params = parse_qs(urlparse(url).query)
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["client1"]
    assert params["redirect_uri"] == ["http://127.0.0.1:8000/callback"]
    assert params["scope"] == ["openid profile"]
    assert params["state"] == ["mystate"]
    assert params["code_challenge"] == ["challenge123"]
    assert params["code_challenge_method"] == ["S256"]
    assert params["nonce"] == ["mynonce"]
    assert params["login_hint"] == ["jane@x.com"]


def test_build_authorize_url_optional_params_omitted():
    url = build_authorize_url(
        authorization_endpoint="https://as.example/authorize",
        client_id="c",
        redirect_uri="https://c/cb",
        scope="api.read",
        state="s",
        code_challenge="ch",
    )
    assert "nonce=" not in url
    assert "login_hint=" not in url


def test_build_authorize_url_extra_params_do_not_override_required():
    url = build_authorize_url(
        authorization_endpoint="https://as.example/authorize?tenant=t1",
        client_id="c",
        redirect_uri="https://c/cb",
        scope="openid",
        state="s",
        code_challenge="ch",
        extra_params={"prompt": "consent", "access_type": "offline", "state": "evil"},
    )
    params = parse_qs(urlparse(url).query)
    assert params["tenant"] == ["t1"]
    assert params["prompt"] == ["consent"]
    assert params["access_type"] == ["offline"]
    assert params["state"] == ["s"]


def test_create_authorization_request_nonce_only_for_openid():
    config = ServiceConfiguration(authorization_endpoint="https://as.example/authorize", token_endpoint="https://as.example/token")
    with_openid = create_authorization_request(config, client_id="c", redirect_uri="https://c/cb", scope="openid email")
    without = create_authorization_request(config, client_id="c", redirect_uri="https://c/cb", scope="api.read")
    assert with_openid.nonce
    assert f"nonce={with_openid.nonce}" in with_openid.url
    assert without.nonce is None
    assert f"state={without.state}" in without.url
    assert with_openid.state != without.state
