"""
Notification hub.

OBSERVATION NEVER CONTROLS
- Observers are passive
- Removing observers changes nothing
- Observer failures never affect the operation that emitted
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple
import threading

from recovery_kernel.core.observability import get_logger
from recovery_kernel.core.primitives import Notification

logger = get_logger("notifications")

# Notification names
GUARDIAN_ADDED = "GuardianAdded"
GUARDIAN_REMOVED = "GuardianRemoved"
RECOVERY_INITIATED = "RecoveryInitiated"
RECOVERY_APPROVED = "RecoveryApproved"
RECOVERY_EXECUTED = "RecoveryExecuted"
RECOVERY_CANCELLED = "RecoveryCancelled"
OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
PAUSED = "Paused"
UNPAUSED = "Unpaused"
DEPOSITED = "Deposited"
WITHDRAWN = "Withdrawn"


class Observer(Protocol):
    """Observer protocol - must be passive."""

    def on_notification(self, notification: Notification) -> None:
        """Receive a notification. Must not affect control flow."""
        ...


class NotificationLog:
    """Observer that keeps every notification it sees, in order."""

    def __init__(self):
        self._entries: List[Notification] = []
        self._lock = threading.Lock()

    def on_notification(self, notification: Notification) -> None:
        with self._lock:
            self._entries.append(notification)

    def entries(self) -> List[Notification]:
        with self._lock:
            return list(self._entries)

    def names(self) -> List[str]:
        return [n.name for n in self.entries()]

    def clear(self) -> None:
        with self._lock:
            self._entries = []


class NotificationHub:
    """
    Per-engine notification hub.

    Inside `buffered()` notifications are held back; they are delivered when
    the block exits normally and dropped when it raises. A rolled-back batch
    therefore never reports effects that did not happen.

    `checkpoint()`/`restore()` let a rolled-back sub-call discard what it
    buffered while the enclosing block carries on.
    """

    def __init__(self):
        self._observers: List[Observer] = []
        self._buffers: List[List[Notification]] = []
        self._lock = threading.RLock()

    def register(self, observer: Observer) -> None:
        """Register an observer."""
        with self._lock:
            self._observers.append(observer)

    def clear(self) -> None:
        """Remove all observers."""
        with self._lock:
            self._observers = []

    def emit(self, name: str, fields: Optional[Dict[str, Any]] = None) -> Notification:
        notification = Notification(name=name, fields=dict(fields or {}))
        with self._lock:
            if self._buffers:
                self._buffers[-1].append(notification)
                return notification
        self._deliver([notification])
        return notification

    @contextmanager
    def buffered(self) -> Iterator[None]:
        with self._lock:
            self._buffers.append([])
        try:
            yield
        except BaseException:
            with self._lock:
                dropped = self._buffers.pop()
            if dropped:
                logger.debug(f"Dropped {len(dropped)} notification(s) from rolled-back block")
            raise
        with self._lock:
            pending = self._buffers.pop()
            if self._buffers:
                # Nested block: hand over to the enclosing buffer
                self._buffers[-1].extend(pending)
                return
        self._deliver(pending)

    def checkpoint(self) -> Tuple[int, int]:
        """Position in the innermost buffer: (depth, length)."""
        with self._lock:
            if not self._buffers:
                return (0, 0)
            return (len(self._buffers), len(self._buffers[-1]))

    def restore(self, state: Tuple[int, int]) -> None:
        """Drop notifications buffered after `state` was taken."""
        depth, length = state
        with self._lock:
            if depth and len(self._buffers) >= depth:
                del self._buffers[depth - 1][length:]

    def _deliver(self, notifications: List[Notification]) -> None:
        with self._lock:
            observers = self._observers.copy()
        for notification in notifications:
            logger.info(f"Notification {notification.name}: {notification.fields}")
            for observer in observers:
                try:
                    observer.on_notification(notification)
                except Exception as e:
                    # Observer failures never affect execution
                    logger.warning(f"Observer {type(observer).__name__} failed (non-blocking): {e}")
