# neyma/core/alerts.py
"""
Transient user feedback ("alerts") raised by the cart and checkout flows.

Components emit events and never wait for an acknowledgement. HTTP
handlers wrap a call in `capture()` to attach the events raised during
that request to the response body.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Iterator, Literal

from neyma.core.errors import StorefrontError

logger = logging.getLogger(__name__)

AlertKind = Literal["success", "error", "warning", "info"]


@dataclass(frozen=True)
class Feedback:
    kind: AlertKind
    message: str


_captured: ContextVar[list[Feedback] | None] = ContextVar(
    "neyma_captured_alerts", default=None
)


class AlertChannel:
    """
    Fire-and-forget feedback channel.

    - `emit()` records the event for the active `capture()` block (if any)
      and forwards it to subscribers.
    - Subscriber errors are logged and never reach the emitter.
    """

    def __init__(self) -> None:
        self._subscribers: list[Callable[[Feedback], None]] = []

    def subscribe(self, callback: Callable[[Feedback], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, kind: AlertKind, message: str) -> Feedback:
        event = Feedback(kind=kind, message=message)
        logger.debug("alert %s: %s", kind, message)

        bucket = _captured.get()
        if bucket is not None:
            bucket.append(event)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Alert subscriber failed")
        return event

    def show_success(self, message: str) -> Feedback:
        return self.emit("success", message)

    def show_error(self, message: str) -> Feedback:
        return self.emit("error", message)

    def show_warning(self, message: str) -> Feedback:
        return self.emit("warning", message)

    def show_info(self, message: str) -> Feedback:
        return self.emit("info", message)

    @contextmanager
    def capture(self) -> Iterator[list[Feedback]]:
        """
        Collect events emitted in the current execution context.

            with alerts.capture() as raised:
                store.add_item(...)
            return {"alerts": raised}
        """
        bucket: list[Feedback] = []
        token = _captured.set(bucket)
        try:
            yield bucket
        except StorefrontError as exc:
            # Exception handlers render these next to the error detail.
            exc.alerts = list(bucket)
            raise
        finally:
            _captured.reset(token)
