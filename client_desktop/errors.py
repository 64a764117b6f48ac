"""
Errors raised by the desktop session client. None of them is fatal; every failure
is recoverable by a new user-initiated sign-in.
"""


class ClientAuthError(Exception):
    """Base class for session client errors."""


class DiscoveryError(ClientAuthError):
    """Discovery document unreachable or malformed."""


class NotConfiguredError(ClientAuthError):
    """Authorization requested before the service configuration was fetched."""


class AuthorizationError(ClientAuthError):
    """Interactive authorization or code exchange failed. State is back to signed out."""

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.error = error


class NotSignedInError(ClientAuthError):
    """A token was requested while no session exists."""


class ReauthorizationRequiredError(ClientAuthError):
    """Refresh failed; the session was signed out and a new authorization flow is needed."""

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.error = error


class FlowInProgressError(ClientAuthError):
    """An authorization request is already pending for this session."""


class ProfileFetchError(ClientAuthError):
    """Profile endpoint unreachable, non-2xx, or returned an unusable body."""
