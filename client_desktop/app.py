"""
Desktop session controller: wires user actions (sign in, sign out, fetch profile) to the AuthFlow
and keeps the view in step with TOKEN_RESPONSE / SIGN_OUT. No business logic of its own.
Run with `python -m client_desktop.app`.
"""
import asyncio
import logging
import sys
from typing import Callable, Protocol

from client_desktop import config
from client_desktop.errors import (
    AuthorizationError,
    DiscoveryError,
    FlowInProgressError,
    NotConfiguredError,
    NotSignedInError,
    ProfileFetchError,
    ReauthorizationRequiredError,
)
from client_desktop.events import AuthStateEmitter
from client_desktop.flow import AuthFlow
from client_desktop.profile import UserProfile, fetch_user_profile

logger = logging.getLogger(__name__)

WELCOME_TIMEOUT_MS = 4000


class SessionView(Protocol):
    """Presentation layer. The controller only calls these; it never touches widgets."""

    def show_signed_out(self) -> None:
        ...

    def show_signed_in(self, profile: UserProfile | None) -> None:
        ...

    def show_message(self, message: str, timeout_ms: int | None = None) -> None:
        ...


class LoggingSessionView:
    """SessionView that renders to the log (headless runs)."""

    def show_signed_out(self) -> None:
        logger.info("[view] signed out")

    def show_signed_in(self, profile: UserProfile | None) -> None:
        if profile is None:
            logger.info("[view] signed in")
        else:
            logger.info("[view] signed in as %s <%s> avatar=%s", profile.name, profile.email, profile.avatar_url)

    def show_message(self, message: str, timeout_ms: int | None = None) -> None:
        logger.info("[view] %s", message)


def _no_focus() -> None:
    pass


class SessionController:
    def __init__(
        self,
        auth_flow: AuthFlow,
        view: SessionView | None = None,
        request_focus: Callable[[], None] = _no_focus,
        profile_url: str | None = config.PROFILE_URL,
    ):
        self.auth_flow = auth_flow
        self.view = view or LoggingSessionView()
        self.request_focus = request_focus
        self.profile_url = profile_url
        self.user_profile: UserProfile | None = None

        emitter = auth_flow.auth_state_emitter
        self._subscriptions = [
            emitter.on(AuthStateEmitter.TOKEN_RESPONSE, self._on_token_response),
            emitter.on(AuthStateEmitter.SIGN_OUT, self._on_sign_out),
        ]
        self.view.show_signed_out()

    def close(self) -> None:
        """Detach from the AuthFlow's events."""
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    async def sign_in(self, login_hint: str | None = None) -> bool:
        """Discovery then interactive authorization, unless already signed in. Failures go to the view."""
        if not self.auth_flow.logged_in():
            try:
                await self.auth_flow.fetch_service_configuration()
                await self.auth_flow.make_authorization_request(login_hint)
            except (DiscoveryError, NotConfiguredError, AuthorizationError, FlowInProgressError) as e:
                logger.warning("Sign-in failed: %s", e)
                self.view.show_message(f"Sign-in failed: {e}")
        return self.auth_flow.logged_in()

    def sign_out(self) -> None:
        self.auth_flow.sign_out()
        self.user_profile = None
        self.view.show_signed_out()

    async def fetch_profile(self) -> UserProfile | None:
        """
        Fetch the profile with a fresh token. A failed fetch is logged and leaves the previous
        profile and the signed-in view as they were; it is not retried.
        """
        try:
            access_token = await self.auth_flow.perform_with_fresh_tokens()
        except (NotSignedInError, ReauthorizationRequiredError) as e:
            logger.warning("Cannot fetch profile: %s", e)
            self.view.show_message(str(e))
            return None

        url = self._resolve_profile_url()
        if url is None:
            logger.warning("No profile endpoint configured or advertised by discovery")
            return None
        try:
            profile = await fetch_user_profile(self.auth_flow.http, url, access_token)
        except ProfileFetchError as e:
            logger.warning("Profile fetch failed: %s", e)
            return None

        if not self.auth_flow.logged_in():
            logger.debug("Discarding profile fetched for a session that has ended")
            return None
        logger.info("Fetched profile for %s", profile.name)
        self.user_profile = profile
        self.view.show_signed_in(profile)
        self.view.show_message(f"Welcome {profile.name}", timeout_ms=WELCOME_TIMEOUT_MS)
        return profile

    def _resolve_profile_url(self) -> str | None:
        if self.profile_url:
            return self.profile_url
        configuration = self.auth_flow.service_configuration
        return configuration.userinfo_endpoint if configuration else None

    def _on_token_response(self, _tokens) -> None:
        self.user_profile = None
        self.view.show_signed_in(None)
        self.request_focus()

    def _on_sign_out(self, _payload) -> None:
        self.user_profile = None
        self.view.show_signed_out()


async def run(login_hint: str | None = None) -> int:
    """Sign in through the system browser, fetch the profile, exit. Returns a process exit code."""
    auth_flow = AuthFlow()
    controller = SessionController(auth_flow)
    try:
        if not await controller.sign_in(login_hint):
            return 1
        profile = await controller.fetch_profile()
        return 0 if profile is not None else 2
    finally:
        controller.close()
        await auth_flow.aclose()


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    login_hint = sys.argv[1] if len(sys.argv) > 1 else None
    sys.exit(asyncio.run(run(login_hint)))


if __name__ == "__main__":
    main()
