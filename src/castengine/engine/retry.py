# src/castengine/engine/retry.py
"""Retry policy for get and list dispatches, built on tenacity.

A retry spec reads ``"<attempts>,<interval>"`` where attempts is the total
number of tries and interval is a duration such as ``0s``, ``500ms`` or
``1m30s``. Only errors the caller classifies as retryable are retried;
the last error is re-raised unchanged once the budget is spent.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from castengine.contracts.errors import TemplateError
from castengine.core.cancel import CancelToken

T = TypeVar("T")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(text: str) -> float:
    """Parse a duration like ``2s`` or ``1m30s`` into seconds.

    Raises:
        TemplateError: If the text is not a valid duration
    """
    s = text.strip()
    if s in ("0", ""):
        return 0.0
    pos = 0
    total = 0.0
    while pos < len(s):
        m = _DURATION_PART.match(s, pos)
        if m is None:
            raise TemplateError(f"invalid duration {text!r}")
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    return total


@dataclass(frozen=True)
class RetryConfig:
    """Total attempts and the fixed delay between them."""

    attempts: int = 1
    interval: float = 0.0

    @classmethod
    def parse(cls, spec: str) -> RetryConfig:
        """Parse ``"<attempts>,<interval>"``.

        Raises:
            TemplateError: If the spec is malformed
        """
        parts = [p.strip() for p in spec.split(",")]
        if len(parts) != 2:
            raise TemplateError(f"invalid retry {spec!r}: expected '<attempts>,<interval>'")
        try:
            attempts = int(parts[0])
        except ValueError:
            raise TemplateError(f"invalid retry attempts in {spec!r}") from None
        if attempts < 1:
            raise TemplateError(f"invalid retry {spec!r}: attempts must be at least 1")
        return cls(attempts=attempts, interval=parse_duration(parts[1]))


class RetryManager:
    """Runs an operation under a RetryConfig.

    Example:
        manager = RetryManager(RetryConfig.parse("3,1s"))
        result = manager.execute_with_retry(fetch, is_retryable=is_verify_error)
    """

    def __init__(self, config: RetryConfig, cancel: CancelToken | None = None) -> None:
        self._config = config
        self._cancel = cancel or CancelToken()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute ``operation``, retrying while ``is_retryable`` holds.

        Raises:
            The last error raised by ``operation``
        """
        logger = structlog.get_logger(__name__)

        def before_sleep(state) -> None:  # type: ignore[no-untyped-def]
            err = state.outcome.exception()
            logger.debug(
                "Retrying operation",
                attempt=state.attempt_number,
                max_attempts=self._config.attempts,
                error=str(err),
            )
            if on_retry is not None:
                on_retry(state.attempt_number, err)

        retrying = Retrying(
            stop=stop_after_attempt(self._config.attempts),
            wait=wait_fixed(self._config.interval),
            retry=retry_if_exception(is_retryable),
            sleep=self._cancel.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
        return retrying(operation)
