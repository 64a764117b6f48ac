"""
In-memory token cache for the signed-in session.
Holds access_token, refresh_token, id_token (optional) and absolute expiry (epoch seconds).
Single set per cache; never persisted.
"""
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    expires_at: int
    refresh_token: str | None = None
    id_token: str | None = None

    @classmethod
    def from_token_response(cls, data: dict, now: float, previous: "TokenSet | None" = None) -> "TokenSet":
        """
        Build from a token endpoint JSON body received at `now`.
        On refresh, refresh_token/id_token missing from the response are kept from `previous`.
        Raises ValueError if access_token or expires_in is missing or invalid.
        """
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token missing from token response")
        try:
            expires_in = int(data["expires_in"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("expires_in missing or not an integer")
        refresh_token = data.get("refresh_token") or (previous.refresh_token if previous else None)
        id_token = data.get("id_token") or (previous.id_token if previous else None)
        return cls(
            access_token=access_token,
            expires_at=int(now) + expires_in,
            refresh_token=refresh_token,
            id_token=id_token,
        )


class TokenCache:
    """Current TokenSet of one session. Mutated only by AuthFlow."""

    def __init__(self) -> None:
        self._tokens: TokenSet | None = None

    def store(self, tokens: TokenSet) -> None:
        self._tokens = tokens
        logger.debug("Stored token set (expires_at=%s)", tokens.expires_at)

    def current(self) -> TokenSet | None:
        return self._tokens

    def is_expired(self, now: float, skew_seconds: int) -> bool:
        """
        True if now + skew_seconds >= expires_at. A positive skew avoids handing out a token
        that expires while the next request is in flight. An empty cache counts as expired.
        """
        if self._tokens is None:
            return True
        return now + skew_seconds >= self._tokens.expires_at

    def clear(self) -> None:
        self._tokens = None
