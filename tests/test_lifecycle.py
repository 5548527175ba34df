"""Tests for the lifecycle state machine across record types."""

from __future__ import annotations

from datetime import timedelta

import pytest

from reviewflow.errors import (
    InvalidTransition,
    MissingApprovers,
    MissingComment,
    OutOfOrderEntry,
    RecordTerminal,
    UnauthorizedActor,
)
from reviewflow.lifecycle import (
    allowed_transitions,
    assign,
    awaiting_action,
    get_workflow,
    is_submittable,
    reopen,
    transition,
    validate_record,
)
from reviewflow.models import DRAFT, Actor, Record, RecordType


def test_trip_end_to_end(ready_trip, owner, verifier, approver, t0) -> None:
    submitted = transition(ready_trip, "Pending", owner, at=t0)
    assert submitted.record.status == "Pending"
    assert submitted.event.previous_status == DRAFT
    assert submitted.event.action == "submit"

    verified = transition(submitted.record, "Verified", verifier, at=t0 + timedelta(hours=1))
    approved = transition(verified.record, "Approved", approver, at=t0 + timedelta(hours=2))

    record = approved.record
    assert record.status == "Approved"
    assert [e.status for e in record.history] == ["Pending", "Verified", "Approved"]
    assert [e.actor_id for e in record.history] == [owner.id, verifier.id, approver.id]
    assert record.history[1].actor_name == "Vera Verifier"
    assert validate_record(record) == []

    # Inputs are never mutated
    assert ready_trip.history == ()
    assert submitted.record.status == "Pending"


def test_approved_is_terminal(ready_trip, owner, verifier, approver, admin, t0) -> None:
    record = transition(ready_trip, "Pending", owner, at=t0).record
    record = transition(record, "Verified", verifier, at=t0).record
    record = transition(record, "Approved", approver, at=t0).record

    for status in ("Pending", "Rejected", "Cancelled", DRAFT, "Booked", "Awarded", "Submitted"):
        with pytest.raises(RecordTerminal):
            transition(record, status, admin, "again", at=t0)
    with pytest.raises(RecordTerminal):
        transition(record, "Pending", None)
    assert allowed_transitions(record) == []


def test_requesting_approved_routes_to_verification_stage(ready_trip, owner, verifier, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    result = transition(pending, "Approved", verifier, at=t0)
    assert result.record.status == "Verified"
    assert result.event.new_status == "Verified"


def test_submit_requires_bound_approvers(draft_trip, owner, verifier) -> None:
    with pytest.raises(MissingApprovers) as excinfo:
        transition(draft_trip, "Pending", owner)
    assert excinfo.value.missing == ("verifier", "approver")

    partial = assign(draft_trip, "verifier", verifier.id)
    with pytest.raises(MissingApprovers) as excinfo:
        transition(partial, "Pending", owner)
    assert excinfo.value.missing == ("approver",)


def test_missing_approvers_reported_before_authorization(draft_trip, verifier) -> None:
    with pytest.raises(MissingApprovers):
        transition(draft_trip, "Pending", verifier)


def test_only_owner_submits(ready_trip, verifier) -> None:
    with pytest.raises(UnauthorizedActor, match="requires owner"):
        transition(ready_trip, "Pending", verifier)


def test_only_bound_reviewer_signs_off(ready_trip, owner, approver, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    # The approver is bound, but not to the verification stage
    with pytest.raises(UnauthorizedActor):
        transition(pending, "Verified", approver, at=t0)
    impostor = Actor(id="u-other", name="Other", role="verifier")
    with pytest.raises(UnauthorizedActor):
        transition(pending, "Verified", impostor, at=t0)


def test_reject_requires_comment(ready_trip, owner, verifier, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    for comment in (None, "", "   "):
        with pytest.raises(MissingComment):
            transition(pending, "Rejected", verifier, comment, at=t0)

    rejected = transition(pending, "Rejected", verifier, "  over budget  ", at=t0)
    assert rejected.record.status == "Rejected"
    assert rejected.record.history[-1].comment == "over budget"
    assert rejected.event.comment == "over budget"


def test_cancel_requires_comment_and_owner_or_admin(ready_trip, owner, verifier, admin, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(UnauthorizedActor):
        transition(pending, "Cancelled", verifier, "not mine", at=t0)
    with pytest.raises(MissingComment):
        transition(pending, "Cancelled", owner, at=t0)
    cancelled = transition(pending, "Cancelled", admin, "duplicate request", at=t0)
    assert cancelled.record.status == "Cancelled"


def test_actor_is_required(ready_trip) -> None:
    with pytest.raises(InvalidTransition, match="actor is required"):
        transition(ready_trip, "Pending", None)


def test_unknown_status_is_invalid(ready_trip, owner) -> None:
    with pytest.raises(InvalidTransition, match="not a trip status"):
        transition(ready_trip, "Awarded", owner)


def test_skipping_a_stage_is_invalid(ready_trip, owner) -> None:
    with pytest.raises(InvalidTransition, match="from Draft to Verified"):
        transition(ready_trip, "Verified", owner)


def test_failed_transition_leaves_record_untouched(ready_trip, owner, verifier, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(MissingComment):
        transition(pending, "Rejected", verifier, at=t0)
    assert pending.status == "Pending"
    assert len(pending.history) == 1


def test_clock_skew_is_rejected(ready_trip, owner, verifier, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(OutOfOrderEntry) as excinfo:
        transition(pending, "Verified", verifier, at=t0 - timedelta(minutes=1))
    assert excinfo.value.record_id == ready_trip.id


def test_reopen_rejected_trip_starts_new_round(ready_trip, owner, verifier, admin, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    rejected = transition(pending, "Rejected", verifier, "missing receipts", at=t0 + timedelta(hours=1)).record

    result = reopen(rejected, admin, "receipts attached", at=t0 + timedelta(hours=2))
    record = result.record
    assert record.status == DRAFT
    assert record.history[-1].action == "reopen"
    assert len(record.history) == 3
    assert validate_record(record) == []

    again = transition(record, "Pending", owner, at=t0 + timedelta(hours=3))
    assert again.record.status == "Pending"


def test_reopen_refuses_open_record(ready_trip, owner, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(InvalidTransition, match="Only terminal records"):
        reopen(pending, owner)


def test_reopen_refuses_approved(ready_trip, owner, verifier, approver, t0) -> None:
    record = transition(ready_trip, "Pending", owner, at=t0).record
    record = transition(record, "Verified", verifier, at=t0).record
    record = transition(record, "Approved", approver, at=t0).record
    with pytest.raises(RecordTerminal, match="cannot be reopened"):
        reopen(record, owner)


def test_report_workflow(owner, t0) -> None:
    qaqc = Actor(id="u-qaqc", name="Q", role="client")
    rep = Actor(id="u-rep", name="R", role="client")
    record = Record(id="rpt-1", record_type="report", owner_id=owner.id)
    record = assign(assign(record, "qaqc", qaqc.id), "client_rep", rep.id)

    record = transition(record, "Submitted", owner, at=t0).record
    record = transition(record, "Reviewed", qaqc, at=t0).record
    record = transition(record, "Approved", rep, at=t0).record
    assert record.status == "Approved"

    # Cancelled reports cannot be reopened
    other = Record(id="rpt-2", record_type="report", owner_id=owner.id)
    cancelled = transition(other, "Cancelled", owner, "superseded", at=t0).record
    with pytest.raises(RecordTerminal):
        reopen(cancelled, owner)


def test_expenditure_approved_by_finance_role(owner, finance, verifier, t0) -> None:
    record = Record(id="exp-1", record_type=RecordType.EXPENDITURE, owner_id=owner.id, monetary_value=750_000, code="4310")
    pending = transition(record, "Pending", owner, at=t0).record

    with pytest.raises(UnauthorizedActor):
        transition(pending, "Approved", verifier, at=t0)
    approved = transition(pending, "Approved", finance, at=t0)
    assert approved.record.status == "Approved"
    assert approved.event.actor == finance


def test_tender_advances_to_award(owner, admin, t0) -> None:
    record = Record(id="tnd-1", record_type=RecordType.TENDER, owner_id=owner.id, monetary_value=1_000_000_000)
    for status in ("Prequalification", "Aanwijzing", "Bidding", "Evaluation"):
        record = transition(record, status, owner, at=t0).record
    assert allowed_transitions(record) == ["Awarded", "Lost", "Cancelled"]

    awarded = transition(record, "Awarded", admin, at=t0).record
    assert awarded.status == "Awarded"
    assert get_workflow(RecordType.TENDER).is_terminal("Awarded")


def test_tender_lost_requires_reason_and_is_final(owner, t0) -> None:
    record = Record(id="tnd-2", record_type=RecordType.TENDER, owner_id=owner.id)
    for status in ("Prequalification", "Aanwijzing", "Bidding", "Evaluation"):
        record = transition(record, status, owner, at=t0).record
    with pytest.raises(MissingComment):
        transition(record, "Lost", owner, at=t0)
    lost = transition(record, "Lost", owner, "price too high", at=t0).record
    with pytest.raises(RecordTerminal):
        reopen(lost, owner)


def test_allowed_transitions_respects_actor(ready_trip, owner, verifier, t0) -> None:
    assert allowed_transitions(ready_trip, owner) == ["Pending", "Cancelled"]
    assert allowed_transitions(ready_trip, verifier) == []

    pending = transition(ready_trip, "Pending", owner, at=t0).record
    assert allowed_transitions(pending, verifier) == ["Verified", "Rejected"]


def test_allowed_transitions_hides_submit_until_assigned(draft_trip) -> None:
    assert allowed_transitions(draft_trip) == ["Cancelled"]


def test_awaiting_action_lists_next_signoff(ready_trip, owner, verifier, approver, finance, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    expense = Record(id="exp-9", record_type="expenditure", owner_id=owner.id)
    expense = transition(expense, "Pending", owner, at=t0).record

    assert awaiting_action([pending, expense], verifier) == [pending]
    assert awaiting_action([pending, expense], approver) == []
    assert awaiting_action([pending, expense], finance) == [expense]

    verified = transition(pending, "Verified", verifier, at=t0).record
    assert awaiting_action([verified], approver) == [verified]


def test_trip_two_stage_approval_by_requesting_approved(draft_trip, owner, verifier, approver, admin, t0) -> None:
    record = assign(assign(draft_trip, "verifier", verifier.id), "approver", approver.id)
    assert is_submittable(record)

    record = transition(record, "Pending", owner, at=t0).record
    assert len(record.history) == 1
    record = transition(record, "Approved", verifier, at=t0 + timedelta(minutes=1)).record
    assert record.status == "Verified"
    record = transition(record, "Approved", approver, at=t0 + timedelta(minutes=2)).record
    assert record.status == "Approved"
    assert record.status == record.history[-1].status

    with pytest.raises(RecordTerminal):
        transition(record, "Cancelled", admin, "too late", at=t0 + timedelta(minutes=3))


def test_trip_submitted_alias_end_to_end(draft_trip, owner, verifier, approver, t0) -> None:
    record = assign(assign(draft_trip, "verifier", verifier.id), "approver", approver.id)
    assert is_submittable(record)

    submitted = transition(record, "Submitted", owner, at=t0)
    assert submitted.record.status == "Pending"
    assert submitted.event.action == "submit"
    assert len(submitted.record.history) == 1

    record = transition(submitted.record, "Approved", verifier, at=t0).record
    record = transition(record, "Approved", approver, at=t0).record
    assert record.status == "Approved"
    assert validate_record(record) == []
    with pytest.raises(RecordTerminal):
        transition(record, "Submitted", owner, at=t0)


def test_report_accepts_pending_as_submit(owner, t0) -> None:
    record = Record(id="rpt-9", record_type="report", owner_id=owner.id, approvers={"qaqc": "u-q", "client_rep": "u-r"})
    assert transition(record, "Pending", owner, at=t0).record.status == "Submitted"


def test_submit_alias_only_from_draft(ready_trip, owner, t0) -> None:
    pending = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(InvalidTransition, match="from Pending to Submitted"):
        transition(pending, "Submitted", owner, at=t0)
