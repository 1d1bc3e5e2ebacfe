"""Tests for the Approval state machine."""

from datetime import UTC, datetime, timedelta

import pytest

from pyconductor import Approval, ApprovalStatus, InvalidApprovalStateError


def make_approval(**kwargs) -> Approval:
    defaults = {"workflow_id": "wf-1", "workflow_type": "RefundWorkflow", "name": "manager"}
    defaults.update(kwargs)
    return Approval(**defaults)


def test_new_approval_is_pending():
    approval = make_approval()
    assert approval.status is ApprovalStatus.PENDING
    assert approval.is_pending
    assert approval.id
    assert approval.actor is None
    assert approval.reminder_count == 0


def test_ids_are_unique():
    assert make_approval().id != make_approval().id


# ==============================================================================
# Transitions
# ==============================================================================


def test_approve():
    approval = make_approval()
    approval.approve("alice", comment="looks good")

    assert approval.is_approved
    assert approval.approved_by == "alice"
    assert approval.approved_at is not None
    assert approval.comment == "looks good"
    assert approval.actor == "alice"


def test_reject():
    approval = make_approval()
    approval.reject("bob", reason="over budget")

    assert approval.is_rejected
    assert approval.rejected_by == "bob"
    assert approval.reason == "over budget"
    assert approval.actor == "bob"


@pytest.mark.parametrize(
    "first,second",
    [
        ("approve", "approve"),
        ("approve", "reject"),
        ("reject", "approve"),
        ("expire", "approve"),
        ("expire", "expire"),
        ("approve", "remind"),
        ("expire", "remind"),
    ],
)
def test_only_pending_approvals_transition(first, second):
    approval = make_approval()
    actions = {
        "approve": lambda: approval.approve("alice"),
        "reject": lambda: approval.reject("alice"),
        "expire": approval.expire,
        "remind": approval.mark_reminded,
    }
    actions[first]()
    status = approval.status

    with pytest.raises(InvalidApprovalStateError) as exc_info:
        actions[second]()

    assert approval.status is status
    assert exc_info.value.approval_id == approval.id
    assert exc_info.value.action == second


def test_status_terminality():
    assert not ApprovalStatus.PENDING.is_terminal
    assert all(
        status.is_terminal
        for status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.EXPIRED)
    )


# ==============================================================================
# Queries
# ==============================================================================


def test_can_approve():
    open_approval = make_approval()
    restricted = make_approval(approvers=["alice"])

    assert open_approval.can_approve("anyone")
    assert restricted.can_approve("alice")
    assert not restricted.can_approve("mallory")

    restricted.approve("alice")
    assert not restricted.can_approve("alice")


def test_timed_out():
    created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    approval = make_approval(created_at=created, expires_at=created + timedelta(hours=1))

    assert not approval.timed_out(now=created + timedelta(minutes=30))
    assert approval.timed_out(now=created + timedelta(hours=2))
    assert not make_approval().timed_out()

    approval.approve("alice")
    assert not approval.timed_out(now=created + timedelta(hours=2))


def test_time_until_expiry():
    created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    approval = make_approval(created_at=created, expires_at=created + timedelta(hours=1))

    assert approval.time_until_expiry(now=created) == timedelta(hours=1)
    assert approval.time_until_expiry(now=created + timedelta(hours=3)) == timedelta(0)
    assert make_approval().time_until_expiry() is None


def test_should_remind_once_without_interval():
    created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    approval = make_approval(created_at=created)

    assert not approval.should_remind(60, now=created + timedelta(seconds=30))
    assert approval.should_remind(60, now=created + timedelta(seconds=61))

    approval.mark_reminded()
    approval.reminded_at = created + timedelta(seconds=61)
    assert approval.reminder_count == 1
    assert not approval.should_remind(60, now=created + timedelta(hours=5))


def test_should_remind_repeats_with_interval():
    created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    approval = make_approval(created_at=created)
    approval.reminded_at = created + timedelta(minutes=1)

    assert not approval.should_remind(60, 300, now=created + timedelta(minutes=3))
    assert approval.should_remind(60, 300, now=created + timedelta(minutes=6))

    approval.reject("bob")
    assert not approval.should_remind(60, 300, now=created + timedelta(hours=1))


# ==============================================================================
# Serialization
# ==============================================================================


def test_dict_round_trip_preserves_decision():
    approval = make_approval(
        approvers=["alice"],
        expires_at=datetime(2024, 1, 2, tzinfo=UTC),
        metadata={"message": "Refund 40 EUR"},
    )
    approval.approve("alice", comment="ok")

    data = approval.to_dict()
    assert data["status"] == "approved"
    assert data["expires_at"] == "2024-01-02T00:00:00+00:00"
    assert data["rejected_at"] is None

    restored = Approval.from_dict(data)
    assert restored == approval


def test_copy_is_independent():
    approval = make_approval(metadata={"tags": ["a"]})
    clone = approval.copy()
    clone.metadata["tags"].append("b")
    clone.approve("alice")

    assert approval.metadata == {"tags": ["a"]}
    assert approval.is_pending
