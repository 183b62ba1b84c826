"""Reentrancy lock: single-holder guard around state-mutating operations.

Outbound transfers can hand control to the receiving identity, which may
call straight back into the escrow. The lock is held for the whole of a
mutating call (including its transfers), so any nested entry is rejected
instead of observing half-finished state.

The lock is not a thread primitive: the host serializes calls. It only
has to detect re-entry within a single call stack.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from remit.escrow.errors import ReentrantCall


class ReentrancyLock:
    """Mutual-exclusion marker for escrow operations.

    Usage:
        lock = ReentrancyLock()
        with lock.hold("release"):
            ...  # checks, effects, then transfers
    """

    def __init__(self) -> None:
        self._holder: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        """Name of the operation currently holding the lock, if any."""
        return self._holder

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        """Acquire for the duration of the block; released on every exit path.

        Raises ReentrantCall if the lock is already held.
        """
        if self._holder is not None:
            raise ReentrantCall(
                f"Reentrant call to {operation} while {self._holder} is in progress"
            )
        self._holder = operation
        try:
            yield
        finally:
            self._holder = None
