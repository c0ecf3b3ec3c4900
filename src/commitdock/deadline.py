"""Shared time budget for one pipeline run."""

import time
from typing import Callable, Optional

from .exceptions import DeadlineExceeded


class Deadline:
    """A single wall-clock budget established once at the start of a run.

    Every blocking call derives its own bounded wait from :meth:`remaining`
    and calls :meth:`check` before starting, so an exhausted budget fails
    before any further I/O is attempted.
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = max(float(timeout), 0.0)
        self._clock = clock
        self._expires_at = clock() + self.timeout

    def remaining(self) -> float:
        """Seconds left in the budget, never negative."""
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, stage: str, **context) -> float:
        """Raise DeadlineExceeded if the budget is spent, else return what's left."""
        remaining = self.remaining()
        if remaining <= 0.0:
            raise DeadlineExceeded(stage, self.timeout, **context)
        return remaining

    def exceeded(self, stage: str, **context) -> Optional[DeadlineExceeded]:
        """Return a DeadlineExceeded for ``stage`` if the budget is spent.

        Used when translating a transport error: a timeout caused by the
        budget running out is reported as DeadlineExceeded, anything else as
        the stage's own error.
        """
        if self.expired:
            return DeadlineExceeded(stage, self.timeout, **context)
        return None

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout:g}, remaining={self.remaining():.1f})"
