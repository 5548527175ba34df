"""
Lifecycle state machine.

transition() is the single entry point for status changes. It is a pure
function of its inputs: it either returns a new Record (with one more history
entry) plus the notification descriptor, or raises a typed error and leaves
the input untouched. Delivery of the descriptor is the caller's business.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from ..errors import (
    InvalidTransition,
    MissingApprovers,
    MissingComment,
    OutOfOrderEntry,
    RecordTerminal,
    UnauthorizedActor,
)
from ..models import DRAFT, Actor, HistoryEntry, Record, RecordType
from . import ledger
from .approvers import missing_roles
from .workflows import ADMIN, OWNER, Edge, Workflow, get_workflow


@dataclass(frozen=True)
class TransitionEvent:
    """Notification descriptor emitted by a successful transition."""

    record_id: str
    record_type: RecordType
    previous_status: str
    new_status: str
    action: str
    actor: Actor
    timestamp: datetime
    comment: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "record_id": self.record_id,
            "record_type": self.record_type.value,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "action": self.action,
            "actor": self.actor.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.comment is not None:
            result["comment"] = self.comment
        return result


@dataclass(frozen=True)
class TransitionResult:
    record: Record
    event: TransitionEvent


def is_authorized(workflow: Workflow, edge: Edge, record: Record, actor: Actor) -> bool:
    """
    Check the actor against the edge's authorities.

    Roles the workflow requires to be assigned are matched on the bound actor
    id; other reviewer roles are matched on the actor's role name.
    """
    for authority in edge.authority:
        if authority == OWNER:
            if actor.id == record.owner_id:
                return True
        elif authority == ADMIN:
            if actor.role == ADMIN:
                return True
        elif authority in workflow.required_roles:
            if record.approvers.get(authority) == actor.id:
                return True
        elif actor.role == authority:
            return True
    return False


def transition(
    record: Record,
    requested_status: str,
    actor: Actor | None,
    comment: str | None = None,
    *,
    at: datetime | None = None,
) -> TransitionResult:
    """
    Move `record` to `requested_status` on behalf of `actor`.

    `at` is the server-side time of the transition; it defaults to now (UTC).
    Client-claimed times are never used for the ledger.
    """
    workflow = get_workflow(record.record_type)
    current = record.status

    # A terminal record refuses everything but its reopen edge, whatever was asked.
    terminal = workflow.is_terminal(current)
    if terminal:
        edge = workflow.edge(current, requested_status)
        if edge is None or edge.action != "reopen":
            raise RecordTerminal(
                f"Record is {current} and accepts no further transitions"
                + (" except reopen" if workflow.is_reopenable(current) else ""),
                record_id=record.id,
            )

    if actor is None:
        raise InvalidTransition("An actor is required for every transition", record_id=record.id)

    if not workflow.recognizes(requested_status):
        raise InvalidTransition(
            f"{requested_status!r} is not a {record.record_type.value} status",
            record_id=record.id,
        )

    if not terminal:
        edge = workflow.resolve(current, requested_status)
        if edge is None:
            raise InvalidTransition(
                f"Cannot move a {record.record_type.value} record from {current} to {requested_status}",
                record_id=record.id,
            )

    if edge.action == "submit":
        missing = missing_roles(record)
        if missing:
            raise MissingApprovers(
                f"Assign {', '.join(missing)} before submitting",
                record_id=record.id,
                missing=missing,
            )

    if not is_authorized(workflow, edge, record, actor):
        raise UnauthorizedActor(
            f"{actor.name or actor.id} ({actor.role}) may not {edge.action} this record; "
            f"requires {' or '.join(sorted(edge.authority))}",
            record_id=record.id,
        )

    note = (comment or "").strip() or None
    if edge.requires_comment and note is None:
        raise MissingComment(f"A reason is required to {edge.action} this record", record_id=record.id)

    timestamp = at or datetime.now(timezone.utc)
    entry = HistoryEntry.by(actor, edge.target, edge.action, timestamp, note)
    try:
        history = ledger.append(record.history, entry)
    except OutOfOrderEntry as exc:
        raise OutOfOrderEntry(str(exc), record_id=record.id) from exc

    updated = record.evolve(history=history)
    event = TransitionEvent(
        record_id=record.id,
        record_type=record.record_type,
        previous_status=current,
        new_status=updated.status,
        action=edge.action,
        actor=actor,
        timestamp=timestamp,
        comment=note,
    )
    return TransitionResult(record=updated, event=event)


def reopen(
    record: Record,
    actor: Actor | None,
    comment: str | None = None,
    *,
    at: datetime | None = None,
) -> TransitionResult:
    """Return a rejected/cancelled record to Draft for a fresh approval round."""
    workflow = get_workflow(record.record_type)
    if not workflow.is_reopenable(record.status):
        if workflow.is_terminal(record.status):
            raise RecordTerminal(f"{record.status} {record.record_type.value} records cannot be reopened", record_id=record.id)
        raise InvalidTransition(f"Only terminal records can be reopened; record is {record.status}", record_id=record.id)
    return transition(record, DRAFT, actor, comment, at=at)


def allowed_transitions(record: Record, actor: Actor | None = None) -> list[str]:
    """
    Statuses the record may move to next.

    With an actor, only transitions that actor is authorized for are listed.
    Submit is listed only once every required role is bound.
    """
    workflow = get_workflow(record.record_type)
    targets: list[str] = []
    for edge in workflow.edges_from(record.status):
        if edge.action == "submit" and missing_roles(record):
            continue
        if actor is not None and not is_authorized(workflow, edge, record, actor):
            continue
        targets.append(edge.target)
    return targets


def awaiting_action(records: Iterable[Record], actor: Actor) -> list[Record]:
    """Records whose next sign-off belongs to `actor` (an approvals inbox)."""
    waiting: list[Record] = []
    for record in records:
        workflow = get_workflow(record.record_type)
        for edge in workflow.edges_from(record.status):
            if edge.action == "approve" and is_authorized(workflow, edge, record, actor):
                waiting.append(record)
                break
    return waiting
