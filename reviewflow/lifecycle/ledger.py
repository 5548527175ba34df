"""
Append-only history ledger for a single record.

A history is a tuple of HistoryEntry, oldest first. It is never reordered or
rewritten: append() returns a longer tuple or fails. Current status is the
status of the last entry.

validate_record() replays the history through the record type's workflow and
is the canonical check for imported or stored records.
"""

from __future__ import annotations

from typing import Sequence

from ..errors import LedgerViolation, OutOfOrderEntry
from ..models import DRAFT, HistoryEntry, Record
from .workflows import get_workflow


def append(history: Sequence[HistoryEntry], entry: HistoryEntry) -> tuple[HistoryEntry, ...]:
    """
    Append an entry to a history.

    Equal timestamps are allowed and keep insertion order. An entry older
    than the current tail is refused; the caller must resolve the clock
    disagreement before appending.
    """
    if history and entry.timestamp < history[-1].timestamp:
        raise OutOfOrderEntry(
            f"Entry at {entry.timestamp.isoformat()} precedes ledger tail at {history[-1].timestamp.isoformat()}"
        )
    return tuple(history) + (entry,)


def validate(history: Sequence[HistoryEntry]) -> list[str]:
    """Check ordering of a bare history. Returns violations (empty if ok)."""
    violations: list[str] = []
    for idx in range(1, len(history)):
        prev, cur = history[idx - 1], history[idx]
        if cur.timestamp < prev.timestamp:
            violations.append(
                f"entry {idx} ({cur.timestamp.isoformat()}) is earlier than entry {idx - 1} ({prev.timestamp.isoformat()})"
            )
    return violations


def validate_record(record: Record) -> list[str]:
    """
    Check every lifecycle invariant over a record's full history.

    - ordering: timestamps never decrease
    - non-empty: only a record that never left Draft has no history
    - legality: every entry follows an edge of the workflow, so nothing
      follows a terminal status except a reopen
    - assignment: a record that was ever submitted has every required role bound
    """
    violations = validate(record.history)
    workflow = get_workflow(record.record_type)

    if not record.history:
        return violations

    current = DRAFT
    for idx, entry in enumerate(record.history):
        if entry.status not in workflow.statuses:
            violations.append(f"entry {idx}: unknown status {entry.status!r} for {record.record_type.value}")
            current = entry.status
            continue
        edge = workflow.edge(current, entry.status)
        if edge is None:
            if workflow.is_terminal(current):
                violations.append(f"entry {idx}: {entry.status!r} recorded after terminal status {current!r}")
            else:
                violations.append(f"entry {idx}: {current!r} -> {entry.status!r} is not a legal transition")
        elif edge.action != entry.action:
            violations.append(f"entry {idx}: action {entry.action!r} does not match {edge.action!r} edge")
        elif edge.requires_comment and not (entry.comment or "").strip():
            violations.append(f"entry {idx}: {entry.action} without a comment")
        current = entry.status

    if any(e.action == "submit" for e in record.history):
        unbound = [r for r in workflow.required_roles if not (record.approvers.get(r) or "").strip()]
        if unbound:
            violations.append(f"submitted without required approvers: {', '.join(unbound)}")

    return violations


def ensure_valid(record: Record) -> Record:
    """Raise LedgerViolation unless the record's history is sound."""
    violations = validate_record(record)
    if violations:
        raise LedgerViolation(
            f"Record {record.id} violates {len(violations)} ledger invariant(s): {'; '.join(violations)}",
            record_id=record.id,
            violations=violations,
        )
    return record
