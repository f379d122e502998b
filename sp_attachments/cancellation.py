"""Cooperative cancellation for list/delete calls.

A caller that abandons an operation (a closed form, a CLI interrupt, its own
deadline) calls :meth:`CancellationToken.cancel`. The executor checks the
token before every network call and sleeps through :meth:`sleep`, which wakes
up as soon as the token is cancelled.
"""

from __future__ import annotations

import threading
import time

from .errors import OperationCancelled


class CancellationToken:
    """Thread-safe cancellation flag with an interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``; raise :class:`OperationCancelled` if woken by cancel."""
        if self._event.wait(timeout=max(0.0, seconds)):
            raise OperationCancelled("Operation cancelled while waiting to retry.")


def interruptible_sleep(seconds: float, cancel: CancellationToken | None) -> None:
    """Default sleep used by the executor."""
    if cancel is None:
        time.sleep(max(0.0, seconds))
        return
    cancel.sleep(seconds)
