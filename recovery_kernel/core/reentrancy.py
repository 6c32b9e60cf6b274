"""
ReentrancyGuard: mutual exclusion for operations that perform external sub-calls.

Acquired on entry, released on every exit path including errors. A second
acquisition while held raises ReentrantCall immediately; it is a logic error
and is never retried.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional
import threading

from recovery_kernel.core.errors import ReentrantCall
from recovery_kernel.core.observability import get_logger, log_security_event

logger = get_logger("reentrancy")


class ReentrancyGuard:
    def __init__(self):
        self._held_by: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def held(self) -> bool:
        return self._held_by is not None

    @property
    def holder(self) -> Optional[str]:
        return self._held_by

    def acquire(self, operation: str) -> None:
        with self._lock:
            if self._held_by is not None:
                log_security_event(
                    "reentrant_call",
                    severity="ERROR",
                    operation=operation,
                    held_by=self._held_by,
                )
                raise ReentrantCall(
                    f"{operation} re-entered while {self._held_by} holds the lock",
                    operation=operation,
                    held_by=self._held_by,
                )
            self._held_by = operation

    def release(self) -> None:
        with self._lock:
            self._held_by = None

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        self.acquire(operation)
        try:
            yield
        finally:
            self.release()
            logger.debug(f"Reentrancy lock released by {operation}")
