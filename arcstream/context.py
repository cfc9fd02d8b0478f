from __future__ import annotations

import threading
from typing import Optional

from .errors import Cancelled


class CancelToken:
    """Cooperative cancellation flag polled between archive entries.

    Safe to cancel from another thread; the worker observes it at its next
    entry boundary and raises ``Cancelled``.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise Cancelled(self._reason or "operation cancelled")


def check(ctx: Optional[CancelToken]) -> None:
    if ctx is not None:
        ctx.check()
