"""Per-credential request budget for the management API."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

from complyguard.errors import RateLimited

DEFAULT_LIMIT = 60
DEFAULT_WINDOW_SECONDS = 60.0


class RateBudget:
    """Sliding-window request budget.

    The management API allows roughly 60 requests per minute per token.
    Requests are counted locally so exhaustion is reported as
    ``RateLimited`` before the server starts rejecting calls.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    @property
    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.limit - len(self._calls))

    def retry_after(self) -> float:
        """Seconds until the oldest counted call leaves the window."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) < self.limit:
            return 0.0
        return max(0.0, self._calls[0] + self.window_seconds - now)

    def acquire(self) -> None:
        """Count one request, raising ``RateLimited`` when none are left."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) >= self.limit:
            raise RateLimited(
                f"Request budget of {self.limit}/{self.window_seconds:.0f}s exhausted",
                retry_after=self.retry_after(),
            )
        self._calls.append(now)

    def reconcile(self, server_remaining: int) -> None:
        """Align the local count with the server's remaining-requests header."""
        now = self._clock()
        self._prune(now)
        local_remaining = self.limit - len(self._calls)
        for _ in range(max(0, local_remaining - server_remaining)):
            self._calls.append(now)
