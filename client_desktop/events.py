"""
Session lifecycle notifier. Listeners subscribe per event name and run synchronously,
in registration order, when the event is emitted.
"""
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Subscription:
    """Handle returned by AuthStateEmitter.on(); unsubscribe() removes that registration only."""

    def __init__(self, emitter: "AuthStateEmitter", event: str, listener: Listener):
        self._emitter = emitter
        self.event = event
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._emitter._remove(self)
            self.active = False


class AuthStateEmitter:
    TOKEN_RESPONSE = "token_response"
    SIGN_OUT = "sign_out"

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def on(self, event: str, listener: Listener) -> Subscription:
        sub = Subscription(self, event, listener)
        self._subscriptions.setdefault(event, []).append(sub)
        return sub

    def off(self, event: str, listener: Listener) -> None:
        """Remove every registration of `listener` for `event`."""
        for sub in list(self._subscriptions.get(event, [])):
            if sub.listener == listener:
                sub.unsubscribe()

    def emit(self, event: str, payload: Any = None) -> None:
        """
        Call every listener for `event` with `payload`. A failing listener is logged and
        does not stop the others. Registrations made during dispatch apply to the next emit.
        """
        for sub in list(self._subscriptions.get(event, [])):
            if not sub.active:
                continue
            try:
                sub.listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", event)

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.event, [])
        if sub in subs:
            subs.remove(sub)
