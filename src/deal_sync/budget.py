"""
Timeout and cancellation budget for one sync call.

A SyncBudget is created per call and passed down to every HubSpot request.
Each request checks it before going out and caps its own HTTP timeout at
whatever time the budget has left, so a hanging endpoint can no longer hold
a sync open indefinitely.
"""

import time

from .errors import SyncCancelledError, SyncTimeoutError


class SyncBudget:
    """Deadline plus cancellation flag shared by all I/O in one sync call."""

    def __init__(self, timeout_seconds: float | None = None):
        """
        Args:
            timeout_seconds: Total wall-clock budget. None means no deadline.
        """
        self.timeout_seconds = timeout_seconds
        self._deadline: float | None = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self._cancel_reason: str | None = None

    @classmethod
    def unlimited(cls) -> 'SyncBudget':
        """A budget with no deadline that is only stopped by cancel()."""
        return cls(None)

    def cancel(self, reason: str = 'cancelled by caller') -> None:
        """Stop every request issued against this budget from now on."""
        self._cancel_reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancel_reason is not None

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, operation: str) -> None:
        """
        Raise if the budget is cancelled or spent.

        Args:
            operation: Name of the operation about to start (for error context)

        Raises:
            SyncCancelledError: cancel() was called
            SyncTimeoutError: the deadline passed
        """
        if self._cancel_reason is not None:
            raise SyncCancelledError(
                f'Sync cancelled before {operation}: {self._cancel_reason}',
                context={'operation': operation},
            )
        if self.expired:
            raise SyncTimeoutError(
                f'Sync budget of {self.timeout_seconds}s exhausted before {operation}',
                context={'operation': operation, 'timeout_seconds': self.timeout_seconds},
            )

    def timeout_for(self, operation: str, default: float) -> float:
        """
        Check the budget and return the HTTP timeout to use for one request.

        Args:
            operation: Name of the request (for error context)
            default: Per-request timeout when the budget allows more

        Returns:
            min(default, remaining budget)
        """
        self.check(operation)
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)
