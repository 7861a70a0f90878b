# src/castengine/core/cancel.py
"""Cooperative cancellation for a composite-template run."""

from __future__ import annotations

import threading

from castengine.contracts.errors import CancelledError


class CancelToken:
    """Cancellation flag checked at every suspension point of a run.

    Cluster requests, run commands, and retry sleeps consult the token;
    a cancelled run fails the current task and rolls back as usual.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("run cancelled")

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``; raises CancelledError if cancelled meanwhile."""
        if seconds > 0:
            self._event.wait(seconds)
        self.raise_if_cancelled()
