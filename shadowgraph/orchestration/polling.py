"""Bounded fixed-interval polling with cooperative cancellation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a waiter."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


@dataclass
class PollOutcome(Generic[T]):
    """Result of a polling loop.

    value is None when the loop timed out or was cancelled; those
    conditions are reported by flag, never raised.
    """

    value: T | None
    attempts: int
    timed_out: bool = False
    cancelled: bool = False

    @property
    def done(self) -> bool:
        return self.value is not None


def poll_until(
    check: Callable[[], T | None],
    interval_seconds: float,
    max_attempts: int,
    cancel: CancellationToken | None = None,
) -> PollOutcome[T]:
    """Call check() until it returns non-None, at most max_attempts times.

    Waits interval_seconds between attempts. Cancellation interrupts the
    wait immediately.

    Args:
        check: Returns the polled value once ready, else None.
        interval_seconds: Fixed delay between attempts.
        max_attempts: Upper bound on calls to check().
        cancel: Optional cancellation token.

    Returns:
        PollOutcome with the value, or timed_out / cancelled set.
    """
    cancel = cancel or CancellationToken()
    for attempt in range(1, max_attempts + 1):
        if cancel.cancelled:
            return PollOutcome(value=None, attempts=attempt - 1, cancelled=True)
        value = check()
        if value is not None:
            return PollOutcome(value=value, attempts=attempt)
        if attempt < max_attempts and cancel.wait(interval_seconds):
            return PollOutcome(value=None, attempts=attempt, cancelled=True)

    logger.warning("poll_timed_out attempts=%d interval=%s", max_attempts, interval_seconds)
    return PollOutcome(value=None, attempts=max_attempts, timed_out=True)
