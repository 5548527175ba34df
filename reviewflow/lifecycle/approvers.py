"""Reviewer assignment: binding a record type's required roles to actors."""

from __future__ import annotations

from ..errors import RecordTerminal, UnknownRole, ValidationError
from ..models import DRAFT, Record, RecordType
from .workflows import get_workflow


def required_roles(record_type: RecordType | str) -> tuple[str, ...]:
    return get_workflow(record_type).required_roles


def missing_roles(record: Record) -> tuple[str, ...]:
    """Required roles that are not yet bound to a non-empty actor id."""
    return tuple(
        role for role in required_roles(record.record_type) if not (record.approvers.get(role) or "").strip()
    )


def is_submittable(record: Record) -> bool:
    return not missing_roles(record)


def assign(record: Record, role: str, actor_id: str) -> Record:
    """
    Bind `role` to `actor_id` and return the updated record.

    Only allowed while the record is in Draft, either freshly created or
    reopened (a reopen starts a fresh approval round, so reviewers may change).
    """
    roles = required_roles(record.record_type)
    if role not in roles:
        declared = ", ".join(roles) or "none"
        raise UnknownRole(
            f"Role {role!r} is not declared for {record.record_type.value} records (declared: {declared})",
            record_id=record.id,
        )
    if record.status != DRAFT:
        raise RecordTerminal(
            f"Reviewers can only be assigned in {DRAFT}; record is {record.status}",
            record_id=record.id,
        )
    actor_id = (actor_id or "").strip()
    if not actor_id:
        raise ValidationError(f"Cannot assign {role!r} to an empty actor id", record_id=record.id)

    approvers = dict(record.approvers)
    approvers[role] = actor_id
    return record.evolve(approvers=approvers)
