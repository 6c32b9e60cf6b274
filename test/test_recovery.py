"""
RECOVERY STATE MACHINE TESTS

Idle -> Pending -> Idle (executed | cancelled).
Threshold = floor(2 * guardian_count / 3), evaluated at execution time.
"""

from __future__ import annotations

import pytest

from recovery_kernel.core.config import compute_threshold
from recovery_kernel.core.engine import create_engine
from recovery_kernel.core.errors import (
    AlreadyApproved,
    InsufficientApprovals,
    InsufficientGuardians,
    InvalidPrincipal,
    NoActiveRecovery,
    RecoveryAlreadyActive,
    Unauthorized,
)
from recovery_kernel.core.notifications import NotificationLog
from recovery_kernel.core.primitives import NULL_PRINCIPAL
from recovery_kernel.core.recovery import RecoveryState

from helpers import G1, G2, G3, G4, G5, NEW_OWNER, OWNER, STRANGER, addr


def three_guardian_engine(**kwargs):
    return create_engine(OWNER, guardians=[G1, G2, G3], **kwargs)


class TestThreshold:
    """Two-thirds, floored."""

    @pytest.mark.parametrize("count,expected", [
        (0, 0), (1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (6, 4), (9, 6), (10, 6),
    ])
    def test_compute_threshold(self, count, expected):
        assert compute_threshold(count) == expected

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            compute_threshold(-1)


class TestInitiate:
    """Opening a recovery request."""

    def test_guardian_initiates(self):
        """A guardian opens a request with empty approvals and the current time."""
        engine = three_guardian_engine(clock=lambda: 1700000000.0)
        info = engine.initiate_recovery(G1, NEW_OWNER)

        assert info.active is True
        assert info.new_owner == NEW_OWNER
        assert info.approvals == ()
        assert info.created_at == 1700000000.0
        assert engine.recovery_state() == RecoveryState.PENDING

    def test_non_guardian_refused(self):
        """Owner and strangers cannot initiate."""
        engine = three_guardian_engine()
        with pytest.raises(Unauthorized):
            engine.initiate_recovery(STRANGER, NEW_OWNER)
        with pytest.raises(Unauthorized):
            engine.initiate_recovery(OWNER, NEW_OWNER)
        assert engine.recovery_state() == RecoveryState.IDLE

    def test_null_new_owner_refused(self):
        engine = three_guardian_engine()
        with pytest.raises(InvalidPrincipal):
            engine.initiate_recovery(G1, NULL_PRINCIPAL)
        assert engine.get_recovery_info().active is False

    def test_fewer_than_three_guardians_refused(self):
        """Recovery is structurally disabled below the quorum floor."""
        engine = create_engine(OWNER, guardians=[G1, G2])
        with pytest.raises(InsufficientGuardians):
            engine.initiate_recovery(G1, NEW_OWNER)
        assert engine.recovery_state() == RecoveryState.IDLE

    def test_second_initiation_while_pending_refused(self):
        """Only one request may be active."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        with pytest.raises(RecoveryAlreadyActive):
            engine.initiate_recovery(G2, addr(77))
        assert engine.get_recovery_info().new_owner == NEW_OWNER

    def test_initiation_overwrites_previous_request(self):
        """A new request after cancellation starts from empty approvals."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.cancel_recovery(OWNER)

        info = engine.initiate_recovery(G3, addr(77))

        assert info.new_owner == addr(77)
        assert info.approvals == ()
        assert info.active is True


class TestApprove:
    """Approvals are idempotent per guardian per request."""

    def test_guardian_approves(self):
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        info = engine.approve_recovery(G2)
        assert info.approvals == (G2,)
        assert info.approval_count == 1

    def test_double_approval_refused(self):
        """Second approval by the same guardian fails and does not double count."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G2)

        with pytest.raises(AlreadyApproved):
            engine.approve_recovery(G2)

        assert engine.get_recovery_info().approval_count == 1

    def test_approval_count_grows_by_distinct_guardians_only(self):
        engine = create_engine(OWNER, guardians=[G1, G2, G3, G4])
        engine.initiate_recovery(G1, NEW_OWNER)
        for guardian in (G1, G2, G1, G3, G2, G3, G4):
            try:
                engine.approve_recovery(guardian)
            except AlreadyApproved:
                pass
        assert engine.get_recovery_info().approval_count == 4

    def test_non_guardian_refused(self):
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        with pytest.raises(Unauthorized):
            engine.approve_recovery(STRANGER)
        with pytest.raises(Unauthorized):
            engine.approve_recovery(OWNER)

    def test_no_active_recovery_refused(self):
        engine = three_guardian_engine()
        with pytest.raises(NoActiveRecovery):
            engine.approve_recovery(G1)

    def test_initiator_approval_is_not_implicit(self):
        """Initiating does not count as approving."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        assert engine.get_recovery_info().approval_count == 0
        engine.approve_recovery(G1)
        assert engine.get_recovery_info().approvals == (G1,)


class TestExecute:
    """Execution by anyone once the threshold is met."""

    def test_one_of_three_is_insufficient_two_of_three_succeeds(self):
        """3 guardians -> threshold 2."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)

        with pytest.raises(InsufficientApprovals) as exc_info:
            engine.execute_recovery(STRANGER)
        assert exc_info.value.details["threshold"] == 2
        assert engine.owner() == OWNER

        engine.approve_recovery(G2)
        new_owner = engine.execute_recovery(STRANGER)

        assert new_owner == NEW_OWNER
        assert engine.owner() == NEW_OWNER
        assert engine.recovery_state() == RecoveryState.IDLE

    def test_anyone_may_execute(self):
        """Execution is not restricted to guardians or the owner."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G3)
        assert engine.execute_recovery(addr(4242)) == NEW_OWNER

    def test_no_active_recovery_refused(self):
        engine = three_guardian_engine()
        with pytest.raises(NoActiveRecovery):
            engine.execute_recovery(STRANGER)

    def test_execute_twice_refused(self):
        """Execution clears the pending state."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        with pytest.raises(NoActiveRecovery):
            engine.execute_recovery(STRANGER)

    def test_threshold_uses_guardian_count_at_execution(self):
        """
        Count 3 at initiation, owner removes one (count 2, threshold 1):
        a single approval now suffices.
        """
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.remove_guardian(OWNER, G3)
        engine.approve_recovery(G1)

        assert engine.get_recovery_info().threshold == 1
        assert engine.execute_recovery(STRANGER) == NEW_OWNER
        assert engine.owner() == NEW_OWNER

    def test_adding_guardians_after_initiation_raises_the_bar(self):
        """Count grows 3 -> 5, threshold 2 -> 3."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.add_guardian(OWNER, G4)
        engine.add_guardian(OWNER, G5)

        with pytest.raises(InsufficientApprovals):
            engine.execute_recovery(STRANGER)

        engine.approve_recovery(G4)
        assert engine.execute_recovery(STRANGER) == NEW_OWNER

    def test_removed_guardian_takes_its_approval_along(self):
        """Approvals stay a subset of the current guardians."""
        engine = create_engine(OWNER, guardians=[G1, G2, G3, G4])
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G2)
        engine.remove_guardian(OWNER, G2)

        info = engine.get_recovery_info()
        assert set(info.approvals) <= set(engine.get_guardians())
        assert info.approvals == ()
        assert info.threshold == 2

        engine.approve_recovery(G1)
        with pytest.raises(InsufficientApprovals) as exc_info:
            engine.execute_recovery(STRANGER)
        assert exc_info.value.details["approval_count"] == 1

        engine.approve_recovery(G3)
        assert engine.execute_recovery(STRANGER) == NEW_OWNER

    def test_readded_guardian_must_approve_again(self):
        engine = create_engine(OWNER, guardians=[G1, G2, G3])
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G2)
        engine.remove_guardian(OWNER, G2)
        engine.add_guardian(OWNER, G2)

        assert engine.get_recovery_info().approvals == ()
        engine.approve_recovery(G2)
        assert engine.get_recovery_info().approvals == (G2,)

    def test_promoted_guardian_approval_is_dropped(self):
        """A guardian who becomes owner no longer appears among the approvers."""
        engine = create_engine(OWNER, guardians=[G1, G2, G3, G4])
        engine.initiate_recovery(G1, G4)
        engine.approve_recovery(G1)
        engine.approve_recovery(G4)
        engine.execute_recovery(STRANGER)

        info = engine.get_recovery_info()
        assert info.approvals == (G1,)
        assert set(info.approvals) <= set(engine.get_guardians())

    def test_guardian_promoted_to_owner_leaves_guardian_set(self):
        """The owner is never a guardian, including after recovery."""
        engine = create_engine(OWNER, guardians=[G1, G2, G3, G4])
        engine.initiate_recovery(G1, G4)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        assert engine.owner() == G4
        assert not engine.is_guardian(G4)
        assert engine.guardian_count() == 3

    def test_promoted_guardian_emits_guardian_removed(self):
        engine = create_engine(OWNER, guardians=[G1, G2, G3, G4])
        log = NotificationLog()
        engine.subscribe(log)

        engine.initiate_recovery(G1, G4)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        assert log.names()[3:] == ["GuardianRemoved", "OwnershipTransferred", "RecoveryExecuted"]
        removed = [n for n in log.entries() if n.name == "GuardianRemoved"][0]
        assert removed.fields == {"guardian": str(G4)}

    def test_new_owner_controls_account(self):
        """Authority follows the transferred ownership."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        with pytest.raises(Unauthorized):
            engine.add_guardian(OWNER, G4)
        engine.add_guardian(NEW_OWNER, OWNER)
        assert engine.is_guardian(OWNER)

    def test_execute_emits_executed_and_ownership_transferred(self):
        engine = three_guardian_engine()
        log = NotificationLog()
        engine.subscribe(log)

        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        names = log.names()
        assert names[:3] == ["RecoveryInitiated", "RecoveryApproved", "RecoveryApproved"]
        assert "RecoveryExecuted" in names
        assert "OwnershipTransferred" in names
        transferred = [n for n in log.entries() if n.name == "OwnershipTransferred"][0]
        assert transferred.fields == {"previous_owner": str(OWNER), "new_owner": str(NEW_OWNER)}

    def test_info_retains_last_request_after_execution(self):
        """Only the most recent request is kept; it stays readable once inactive."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.execute_recovery(STRANGER)

        info = engine.get_recovery_info()
        assert info.active is False
        assert info.new_owner == NEW_OWNER
        assert info.approvals == (G1, G2)


class TestCancel:
    """Owner cancellation."""

    def test_owner_cancels(self):
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.cancel_recovery(OWNER)

        assert engine.recovery_state() == RecoveryState.IDLE
        assert engine.owner() == OWNER

    def test_non_owner_refused(self):
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        with pytest.raises(Unauthorized):
            engine.cancel_recovery(G1)
        assert engine.recovery_state() == RecoveryState.PENDING

    def test_cancel_without_request_refused(self):
        engine = three_guardian_engine()
        with pytest.raises(NoActiveRecovery):
            engine.cancel_recovery(OWNER)

    def test_cancel_then_execute_refused(self):
        """cancel followed by execute fails with NoActiveRecovery."""
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.approve_recovery(G1)
        engine.approve_recovery(G2)
        engine.cancel_recovery(OWNER)

        with pytest.raises(NoActiveRecovery):
            engine.execute_recovery(STRANGER)
        assert engine.owner() == OWNER

    def test_cancel_then_approve_refused(self):
        engine = three_guardian_engine()
        engine.initiate_recovery(G1, NEW_OWNER)
        engine.cancel_recovery(OWNER)
        with pytest.raises(NoActiveRecovery):
            engine.approve_recovery(G2)


class TestConcurrentApprovals:
    """Interleaved approvals from many guardians never double count."""

    def test_parallel_approvals_are_idempotent(self):
        import threading

        guardians = [addr(100 + n) for n in range(12)]
        engine = create_engine(OWNER, guardians=guardians)
        engine.initiate_recovery(guardians[0], NEW_OWNER)

        refusals = []
        refusals_lock = threading.Lock()
        start = threading.Event()

        def approve_twice(guardian):
            start.wait()
            for _ in range(2):
                try:
                    engine.approve_recovery(guardian)
                except AlreadyApproved:
                    with refusals_lock:
                        refusals.append(guardian)

        threads = [threading.Thread(target=approve_twice, args=(g,)) for g in guardians]
        for t in threads:
            t.start()
        start.set()
        for t in threads:
            t.join(timeout=10)

        info = engine.get_recovery_info()
        assert info.approval_count == len(guardians)
        assert sorted(refusals) == sorted(guardians)
        assert engine.execute_recovery(STRANGER) == NEW_OWNER
