"""
Deadline — The single run-scoped timeout.

One ``Deadline`` is created per run from ``config.timeout`` and shared by
both stores and every collection worker. Stores call ``check()`` before
each operation and between cursor documents; once it expires every
in-flight operation fails with ``RunTimedOut``.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from ..errors import RunTimedOut


class Deadline:
    """A monotonic point in time after which the run is abandoned."""

    def __init__(
        self,
        seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded. Never negative."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, operation: str = "operation") -> None:
        """Raise RunTimedOut if the deadline has passed."""
        if self.expired():
            raise RunTimedOut(
                f"Run exceeded its {self.seconds:g}s timeout during {operation}"
            )
