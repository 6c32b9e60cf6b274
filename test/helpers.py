"""
Shared test doubles for the recovery kernel suites.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from recovery_kernel.core.primitives import (
    Call,
    CallOutcome,
    Principal,
    create_failure_outcome,
    create_success_outcome,
)


def addr(n: int) -> Principal:
    """Deterministic test address."""
    return Principal(f"0x{n:040x}")


OWNER = addr(1)
G1, G2, G3, G4, G5 = addr(11), addr(12), addr(13), addr(14), addr(15)
NEW_OWNER = addr(99)
STRANGER = addr(500)


class CounterTarget:
    """
    Stateful target: counts successful invocations and the value received.

    Payload b"fail" answers failure, payload b"raise" raises.
    """

    def __init__(self):
        self.count = 0
        self.received = 0
        self.payloads: List[bytes] = []

    def invoke(self, call: Call) -> CallOutcome:
        if call.payload == b"fail":
            return create_failure_outcome(b"boom")
        if call.payload == b"raise":
            raise RuntimeError("target exploded")
        self.count += 1
        self.received += call.value
        self.payloads.append(call.payload)
        return create_success_outcome(self.count.to_bytes(4, "big"))

    def checkpoint(self):
        return (self.count, self.received, list(self.payloads))

    def restore(self, state) -> None:
        self.count, self.received, payloads = state
        self.payloads = list(payloads)


class CallbackTarget:
    """Stateless target that runs `callback` on every invocation."""

    def __init__(self, callback: Callable[[Call], Optional[bytes]]):
        self.callback = callback
        self.calls: List[Call] = []

    def invoke(self, call: Call) -> CallOutcome:
        self.calls.append(call)
        return create_success_outcome(self.callback(call) or b"")
