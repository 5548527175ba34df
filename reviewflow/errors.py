"""
Typed failures raised by the lifecycle, ledger and assignment operations.

Every error is a local validation failure. Nothing here is process-fatal and
the core never recovers from them: the host surfaces them or retries.

All errors subclass ValueError so callers that only care about "bad input"
can catch the builtin.
"""

from __future__ import annotations


class ReviewflowError(ValueError):
    """Base class for all reviewflow failures."""

    def __init__(self, message: str, *, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


class ValidationError(ReviewflowError):
    """Malformed input rejected at the boundary (negative amount, empty id, ...)."""


class InvalidTransition(ReviewflowError):
    """Requested status is not a legal successor of the current status."""


class MissingApprovers(ReviewflowError):
    """Submit attempted before every required reviewer role is bound."""

    def __init__(self, message: str, *, record_id: str | None = None, missing: tuple[str, ...] = ()):
        super().__init__(message, record_id=record_id)
        self.missing = missing


class RecordTerminal(ReviewflowError):
    """Mutation attempted on a record whose lifecycle has ended (or left Draft)."""


class MissingComment(ReviewflowError):
    """Reject, cancel or loss requested without a reason."""


class UnauthorizedActor(ReviewflowError):
    """The actor does not hold the role required for this transition."""


class OutOfOrderEntry(ReviewflowError):
    """Ledger append with a timestamp earlier than the current tail."""


class UnknownRole(ReviewflowError):
    """Assignment to a role the record type does not declare."""


class LedgerViolation(ReviewflowError):
    """A stored history breaks one or more lifecycle invariants."""

    def __init__(self, message: str, *, record_id: str | None = None, violations: list[str] | None = None):
        super().__init__(message, record_id=record_id)
        self.violations = violations or []


class RecordNotFound(ReviewflowError):
    """The repository has no record with the requested id."""


class ConcurrencyConflict(ReviewflowError):
    """The stored version changed between load and save."""
