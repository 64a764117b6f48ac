"""
Sign-in state machine: authorization-code flow with PKCE, token refresh and sign-out.

SIGNED_OUT -> AUTHORIZATION_PENDING -> SIGNED_IN -> SIGNED_OUT. Runs on one asyncio loop;
the token cache only changes after an awaited network call has completed for the current session.
"""
import asyncio
import enum
import logging
import time
from typing import Callable

import httpx
import jwt

from client_desktop import config
from client_desktop.authorization import AuthorizationRequest, AuthorizationUI, create_authorization_request
from client_desktop.discovery import ServiceConfiguration, fetch_service_configuration
from client_desktop.errors import (
    AuthorizationError,
    FlowInProgressError,
    NotConfiguredError,
    NotSignedInError,
    ReauthorizationRequiredError,
)
from client_desktop.events import AuthStateEmitter
from client_desktop.token_store import TokenCache, TokenSet

logger = logging.getLogger(__name__)


class AuthorizationState(enum.Enum):
    SIGNED_OUT = "signed_out"
    AUTHORIZATION_PENDING = "authorization_pending"
    SIGNED_IN = "signed_in"


def _error_fields(r: httpx.Response) -> tuple[str | None, str]:
    """(error, description) from an OAuth error response; falls back to the status code."""
    try:
        err = r.json() if r.headers.get("content-type", "").startswith("application/json") else {}
    except ValueError:
        err = {}
    if not isinstance(err, dict):
        err = {}
    code = err.get("error")
    desc = err.get("error_description") or code or f"HTTP {r.status_code}"
    return code, str(desc)


class AuthFlow:
    """
    One session: owns the TokenCache and the AuthStateEmitter. Listeners receive the TokenSet
    with TOKEN_RESPONSE and nothing with SIGN_OUT.
    """

    def __init__(
        self,
        authorization_ui: AuthorizationUI | None = None,
        *,
        discovery_url: str = config.DISCOVERY_URL,
        client_id: str = config.CLIENT_ID,
        redirect_uri: str = config.REDIRECT_URI,
        scope: str = config.DEFAULT_SCOPE,
        extra_params: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        emitter: AuthStateEmitter | None = None,
        clock: Callable[[], float] = time.time,
        skew_seconds: int = config.TOKEN_EXPIRY_SKEW_SECONDS,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        if authorization_ui is None:
            from client_desktop.callback import LoopbackAuthorizationUI

            authorization_ui = LoopbackAuthorizationUI()
        self.authorization_ui = authorization_ui
        self.discovery_url = discovery_url
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.extra_params = config.extra_authorize_params() if extra_params is None else extra_params
        self._owns_client = http_client is None
        self.timeout = timeout
        self.http = http_client or httpx.AsyncClient(timeout=timeout)
        self.auth_state_emitter = emitter or AuthStateEmitter()
        self.clock = clock
        self.skew_seconds = skew_seconds

        self.token_cache = TokenCache()
        self._state = AuthorizationState.SIGNED_OUT
        self._configuration: ServiceConfiguration | None = None
        # Bumped on every sign-out / new flow; results of older network calls are discarded
        self._session = 0
        self._refresh_task: asyncio.Task | None = None
        # present() of the pending flow; sign_out cancels it so the UI releases what it holds
        self._pending_authorization: asyncio.Future | None = None
        self._abandoned_authorization: asyncio.Future | None = None

    @property
    def state(self) -> AuthorizationState:
        return self._state

    @property
    def service_configuration(self) -> ServiceConfiguration | None:
        return self._configuration

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    # --- discovery ---

    async def fetch_service_configuration(self) -> ServiceConfiguration:
        """Fetch and cache the discovery metadata. Cached after the first success; raises DiscoveryError."""
        if self._configuration is None:
            self._configuration = await fetch_service_configuration(self.http, self.discovery_url)
        return self._configuration

    # --- interactive sign-in ---

    async def make_authorization_request(self, login_hint: str | None = None) -> TokenSet:
        """
        Present an authorization request, then exchange the returned code for tokens.
        Raises NotConfiguredError before discovery, FlowInProgressError while another request
        is pending, AuthorizationError on any failure (state is then SIGNED_OUT).
        """
        if self._configuration is None:
            raise NotConfiguredError("Service configuration not fetched; call fetch_service_configuration() first")
        if self._state is AuthorizationState.AUTHORIZATION_PENDING:
            raise FlowInProgressError("An authorization request is already in progress")
        if self._state is AuthorizationState.SIGNED_IN:
            logger.info("Starting a new authorization; signing out the current session")
            self.sign_out()

        self._session += 1
        session = self._session
        self._state = AuthorizationState.AUTHORIZATION_PENDING
        logger.debug("Authorization pending")
        try:
            request = create_authorization_request(
                self._configuration,
                client_id=self.client_id,
                redirect_uri=self.redirect_uri,
                scope=self.scope,
                login_hint=login_hint,
                extra_params=self.extra_params,
            )
            tokens = await self._authorize(request, session)
            self.token_cache.store(tokens)
            self._state = AuthorizationState.SIGNED_IN
        except AuthorizationError as e:
            logger.warning("Authorization failed: %s", e)
            raise
        finally:
            if self._session == session and self._state is AuthorizationState.AUTHORIZATION_PENDING:
                self._state = AuthorizationState.SIGNED_OUT

        logger.info("Signed in")
        self.auth_state_emitter.emit(AuthStateEmitter.TOKEN_RESPONSE, tokens)
        return tokens

    async def _authorize(self, request: AuthorizationRequest, session: int) -> TokenSet:
        abandoned = self._abandoned_authorization
        if abandoned is not None and not abandoned.done():
            # The UI of a signed-out flow is still shutting down (e.g. releasing the redirect port)
            await asyncio.wait([abandoned])
            self._ensure_current(session)

        presenting = asyncio.ensure_future(self.authorization_ui.present(request))
        self._pending_authorization = presenting
        try:
            response = await presenting
        except asyncio.CancelledError:
            if self._session != session:
                raise AuthorizationError("Authorization cancelled by sign-out") from None
            raise
        except AuthorizationError:
            raise
        except Exception as e:
            raise AuthorizationError(f"Authorization UI failed: {e}") from e
        finally:
            if self._pending_authorization is presenting:
                self._pending_authorization = None
        self._ensure_current(session)

        if response.error:
            raise AuthorizationError(
                f"Authorization denied: {response.error_description or response.error}", error=response.error
            )
        if response.state != request.state:
            raise AuthorizationError("Invalid state in authorization response")
        if not response.code:
            raise AuthorizationError("Authorization response has no code")

        data = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": response.code,
                "redirect_uri": request.redirect_uri,
                "client_id": self.client_id,
                "code_verifier": request.code_verifier,
            },
            AuthorizationError,
        )
        self._ensure_current(session)
        try:
            tokens = TokenSet.from_token_response(data, now=self.clock())
        except ValueError as e:
            raise AuthorizationError(f"Invalid token response: {e}") from e
        if tokens.id_token and request.nonce:
            self._verify_nonce(tokens.id_token, request.nonce)
        return tokens

    def _ensure_current(self, session: int) -> None:
        if self._session != session:
            raise AuthorizationError("Authorization cancelled by sign-out")

    @staticmethod
    def _verify_nonce(id_token: str, nonce: str) -> None:
        """id_token nonce must echo the one we sent. Signature is the AS's concern over TLS."""
        try:
            claims = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise AuthorizationError(f"Invalid id_token: {e}") from e
        if claims.get("nonce") != nonce:
            raise AuthorizationError("id_token nonce does not match the authorization request")

    async def _token_request(self, form: dict[str, str], error_cls: type) -> dict:
        """POST to the token endpoint. Failures raise error_cls (AuthorizationError or ReauthorizationRequiredError)."""
        token_endpoint = self._configuration.token_endpoint
        try:
            r = await self.http.post(
                token_endpoint,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise error_cls(f"Token request ({form['grant_type']}) timed out") from e
        except httpx.HTTPError as e:
            raise error_cls(f"Token request ({form['grant_type']}) failed: {e}") from e
        if r.status_code != 200:
            code, desc = _error_fields(r)
            raise error_cls(f"Token request ({form['grant_type']}) rejected: {desc}", error=code)
        try:
            data = r.json()
        except ValueError as e:
            raise error_cls("Token response is not valid JSON") from e
        if not isinstance(data, dict):
            raise error_cls("Token response is not a JSON object")
        return data

    # --- fresh tokens ---

    async def perform_with_fresh_tokens(self) -> str:
        """
        A usable access token: the cached one while it is not within skew of expiry, else a refreshed one.
        Raises NotSignedInError without a session; ReauthorizationRequiredError (after signing out) when
        refresh fails. Concurrent callers share one in-flight refresh.
        """
        tokens = self.token_cache.current()
        if self._state is not AuthorizationState.SIGNED_IN or tokens is None:
            raise NotSignedInError("Not signed in")
        if not self.token_cache.is_expired(self.clock(), self.skew_seconds):
            return tokens.access_token

        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh(tokens, self._session))
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, tokens: TokenSet, session: int) -> str:
        try:
            if not tokens.refresh_token:
                self._fail_refresh(session)
                raise ReauthorizationRequiredError("Access token expired and no refresh token is held")
            logger.debug("Refreshing access token")
            try:
                data = await self._token_request(
                    {
                        "grant_type": "refresh_token",
                        "refresh_token": tokens.refresh_token,
                        "client_id": self.client_id,
                    },
                    ReauthorizationRequiredError,
                )
                new_tokens = TokenSet.from_token_response(data, now=self.clock(), previous=tokens)
            except ReauthorizationRequiredError as e:
                logger.warning("Token refresh failed: %s", e)
                self._fail_refresh(session)
                raise
            except ValueError as e:
                logger.warning("Token refresh returned an invalid response: %s", e)
                self._fail_refresh(session)
                raise ReauthorizationRequiredError(f"Invalid refresh response: {e}") from e

            if self._session != session or self._state is not AuthorizationState.SIGNED_IN:
                raise NotSignedInError("Signed out while refreshing")
            self.token_cache.store(new_tokens)
            logger.info("Access token refreshed")
            return new_tokens.access_token
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None

    def _fail_refresh(self, session: int) -> None:
        """Refresh failures sign out, unless the session already ended."""
        if self._session == session:
            self.sign_out()

    # --- sign-out / queries ---

    def sign_out(self) -> None:
        """Clear tokens and go to SIGNED_OUT from any state; a pending flow is abandoned. Emits SIGN_OUT."""
        self._session += 1
        self._refresh_task = None
        if self._pending_authorization is not None:
            self._pending_authorization.cancel()
            self._abandoned_authorization = self._pending_authorization
            self._pending_authorization = None
        self.token_cache.clear()
        self._state = AuthorizationState.SIGNED_OUT
        logger.info("Signed out")
        self.auth_state_emitter.emit(AuthStateEmitter.SIGN_OUT)

    def logged_in(self) -> bool:
        return self._state is AuthorizationState.SIGNED_IN and self.token_cache.current() is not None
