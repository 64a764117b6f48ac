"""
Loopback redirect listener for the system-browser sign-in.
GET /callback receives code/state (or error) from the AS and hands them to the waiting flow.
"""
import asyncio
import html
import logging
import socket
import webbrowser
from typing import Callable
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from client_desktop.authorization import AuthorizationRequest, AuthorizationResponse
from client_desktop.config import REDIRECT_URI
from client_desktop.errors import AuthorizationError

logger = logging.getLogger(__name__)


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
  <h1>{title}</h1>
  <p>{body}</p>
  <p>You can close this window and return to the application.</p>
</body>
</html>""",
        status_code=status_code,
    )


def create_callback_app(
    deliver: Callable[[AuthorizationResponse], bool],
    path: str = "/callback",
) -> FastAPI:
    """
    FastAPI app for the redirect URI. Each callback carrying a code or an error is passed to
    `deliver`, which returns False when the state does not belong to the pending request.
    """
    app = FastAPI(title="Client Desktop callback", version="0.1.0")

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "client_desktop"}

    @app.get(path, response_class=HTMLResponse)
    def callback(request: Request):
        params = request.query_params
        code = params.get("code") or None
        state = params.get("state") or None
        error = params.get("error") or None
        error_description = params.get("error_description") or None

        if error:
            if not deliver(AuthorizationResponse(state=state, error=error, error_description=error_description)):
                return _page("Error", "Invalid or expired state.", status_code=400)
            return _page("Sign-in failed", html.escape(error_description or error), status_code=400)

        if not code:
            return _page("Error", "Missing code parameter.", status_code=400)

        if not deliver(AuthorizationResponse(code=code, state=state)):
            return _page("Error", "Invalid or expired state.", status_code=400)
        return _page("Sign-in complete", "Authorization received.")

    return app


class LoopbackAuthorizationUI:
    """
    Presents the authorization request in the system browser and waits for the redirect
    on a local uvicorn server. No timeout: the wait ends when the provider redirects.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        open_browser: Callable[[str], object] = webbrowser.open,
    ):
        redirect = urlparse(REDIRECT_URI)
        self.host = host or redirect.hostname or "127.0.0.1"
        self.port = port or redirect.port or 80
        self.path = path or redirect.path or "/callback"
        self._open_browser = open_browser

    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()

        def deliver(response: AuthorizationResponse) -> bool:
            if response.state != request.state:
                logger.warning("Ignoring redirect with unknown state")
                return False
            if not result.done():
                result.set_result(response)
            return True

        # Bind here so a busy port surfaces as AuthorizationError instead of uvicorn's sys.exit
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        try:
            sock = socket.create_server((self.host, self.port), family=family)
        except OSError as e:
            raise AuthorizationError(f"Could not listen on {self.host}:{self.port} for the redirect: {e}") from e

        app = create_callback_app(deliver, self.path)
        server = uvicorn.Server(uvicorn.Config(app, log_level="warning"))
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))
        try:
            while not server.started:
                if serve_task.done():
                    raise AuthorizationError("Redirect listener stopped before it started")
                await asyncio.sleep(0.05)
            logger.info("Waiting for authorization redirect on http://%s:%s%s", self.host, self.port, self.path)
            self._open_browser(request.url)
            return await result
        finally:
            server.should_exit = True
            try:
                await asyncio.gather(serve_task, return_exceptions=True)
            finally:
                sock.close()
