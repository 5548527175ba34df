"""
Data models for reviewable records.

A Record is the thing moving through a review lifecycle: a trip request, an
inspection report, a tender opportunity or an expenditure claim. Its status is
never stored independently; it is read off the last HistoryEntry.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from .errors import LedgerViolation, ReviewflowError, ValidationError

# Failures raised while decoding stored JSON that mean "malformed", not "bug"
_DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)

# Every record starts here, with an empty history.
DRAFT = "Draft"

Action = Literal["submit", "approve", "reject", "advance", "cancel", "reopen"]

ACTIONS = frozenset({"submit", "approve", "reject", "advance", "cancel", "reopen"})


class RecordType(str, Enum):
    TRIP = "trip"  # Business trip request
    REPORT = "report"  # Inspection report
    TENDER = "tender"  # Tender opportunity
    EXPENDITURE = "expenditure"  # Expenditure claim against a project budget


def parse_record_type(value: RecordType | str) -> RecordType:
    if isinstance(value, RecordType):
        return value
    try:
        return RecordType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown record type: {value!r}") from None


@dataclass(frozen=True)
class Actor:
    """An already-authenticated identity supplied by the caller."""

    id: str
    name: str
    role: str  # "owner" is implied by record.owner_id; e.g. "admin", "finance"

    def __post_init__(self) -> None:
        if not str(self.id).strip():
            raise ValidationError("Actor id must be non-empty")

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "role": self.role}


@dataclass(frozen=True)
class HistoryEntry:
    """
    One immutable fact about a transition.

    Actor name and role are captured at the time of the transition and never
    re-resolved, so the trail survives renames.
    """

    actor_id: str
    actor_name: str
    actor_role: str
    status: str  # Status the record entered
    timestamp: datetime
    action: str  # One of ACTIONS
    comment: str | None = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValidationError("History timestamps must be timezone-aware")
        if self.action not in ACTIONS:
            raise ValidationError(f"Invalid action: {self.action}")

    @classmethod
    def by(
        cls,
        actor: Actor,
        status: str,
        action: str,
        timestamp: datetime,
        comment: str | None = None,
    ) -> HistoryEntry:
        return cls(
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role,
            status=status,
            timestamp=timestamp,
            action=action,
            comment=comment,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_role": self.actor_role,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
        }
        if self.comment is not None:
            result["comment"] = self.comment
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        """Reconstruct from JSON dict; malformed input raises ValidationError."""
        try:
            return cls(
                actor_id=str(data["actor_id"]),
                actor_name=data.get("actor_name", ""),
                actor_role=data.get("actor_role", ""),
                status=data["status"],
                timestamp=datetime.fromisoformat(data["timestamp"]),
                action=data["action"],
                comment=data.get("comment"),
            )
        except ReviewflowError:
            raise
        except _DECODE_ERRORS as exc:
            raise ValidationError(f"Malformed history entry: {exc!r}") from exc


@dataclass(frozen=True)
class Record:
    """
    A record moving through a review lifecycle.

    Records are immutable values: every lifecycle operation returns a new
    Record and leaves its input untouched.
    """

    # Identity
    id: str
    record_type: RecordType
    owner_id: str

    # Review
    approvers: dict[str, str] = field(default_factory=dict)  # role -> actor id
    history: tuple[HistoryEntry, ...] = ()

    # Rollup / classification payload
    monetary_value: float | None = None
    category: str | None = None
    code: str | None = None
    due_date: date | None = None

    # Type-specific fields (branch, region, destination, ...), opaque to the engine
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not str(self.id).strip():
            raise ValidationError("Record id must be non-empty")
        object.__setattr__(self, "record_type", parse_record_type(self.record_type))
        object.__setattr__(self, "history", tuple(self.history))
        object.__setattr__(self, "approvers", dict(self.approvers))

        value = self.monetary_value
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Monetary value must be a number, got {value!r}", record_id=self.id)
            if math.isnan(value) or value < 0:
                raise ValidationError(f"Monetary value must be non-negative, got {value!r}", record_id=self.id)

    @property
    def status(self) -> str:
        """Current lifecycle state, derived from the last history entry."""
        return self.history[-1].status if self.history else DRAFT

    @property
    def last_entry(self) -> HistoryEntry | None:
        return self.history[-1] if self.history else None

    def evolve(self, **changes: Any) -> Record:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "id": self.id,
            "record_type": self.record_type.value,
            "owner_id": self.owner_id,
            "status": self.status,
            "approvers": dict(self.approvers),
            "history": [e.to_dict() for e in self.history],
        }
        if self.monetary_value is not None:
            result["monetary_value"] = self.monetary_value
        if self.category is not None:
            result["category"] = self.category
        if self.code is not None:
            result["code"] = self.code
        if self.due_date is not None:
            result["due_date"] = self.due_date.isoformat()
        if self.attributes:
            result["attributes"] = dict(self.attributes)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """
        Reconstruct from JSON dict.

        A stored status that disagrees with the history is rejected rather
        than trusted. Malformed fields raise ValidationError.
        """
        record_id = str(data.get("id", "")) if isinstance(data, dict) else None
        try:
            due = data.get("due_date")
            record = cls(
                id=str(data.get("id", "")),
                record_type=data.get("record_type", ""),
                owner_id=str(data.get("owner_id", "")),
                approvers={str(k): str(v) for k, v in (data.get("approvers") or {}).items()},
                history=tuple(HistoryEntry.from_dict(e) for e in data.get("history", [])),
                monetary_value=data.get("monetary_value"),
                category=data.get("category"),
                code=data.get("code"),
                due_date=date.fromisoformat(due) if due else None,
                attributes=dict(data.get("attributes") or {}),
            )
        except ReviewflowError as exc:
            if exc.record_id is None and record_id:
                exc.record_id = record_id
            raise
        except _DECODE_ERRORS as exc:
            raise ValidationError(f"Malformed record {record_id}: {exc!r}", record_id=record_id) from exc
        stored_status = data.get("status")
        if stored_status is not None and stored_status != record.status:
            raise LedgerViolation(
                f"Stored status {stored_status!r} does not match history ({record.status!r})",
                record_id=record.id,
                violations=["status does not match last history entry"],
            )
        return record
