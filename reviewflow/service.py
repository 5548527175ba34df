"""
Host-side orchestration: load -> compute -> save, with retry.

The lifecycle functions are pure, so on a version conflict the service simply
re-reads the record and recomputes. Successful transitions are handed to the
injected notifier after the save commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, TypeVar

from .errors import ConcurrencyConflict, ValidationError
from .lifecycle import approvers, machine
from .lifecycle.machine import TransitionEvent, TransitionResult
from .models import Actor, Record
from .repository import RecordRepository

logger = logging.getLogger(__name__)

Notifier = Callable[[TransitionEvent], None]
Clock = Callable[[], datetime]

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService:
    def __init__(
        self,
        repository: RecordRepository,
        *,
        notify: Notifier | None = None,
        max_attempts: int = 3,
        clock: Clock | None = None,
    ):
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.repository = repository
        self.notify = notify
        self.max_attempts = max_attempts
        self.clock = clock or _utc_now

    def _apply(self, record_id: str, compute: Callable[[Record], tuple[Record, T]]) -> T:
        """Run `compute` against the current record and save, retrying on conflict."""
        for attempt in range(1, self.max_attempts + 1):
            record, version = self.repository.load(record_id)
            updated, outcome = compute(record)
            try:
                self.repository.save(updated, version)
            except ConcurrencyConflict:
                if attempt == self.max_attempts:
                    logger.warning("Giving up on %s after %d conflicting attempts", record_id, attempt)
                    raise
                logger.info("Version conflict on %s (attempt %d), retrying", record_id, attempt)
                continue
            return outcome
        raise AssertionError("unreachable")

    def create(self, record: Record) -> Record:
        """Store a new Draft record."""
        if record.history:
            raise ValidationError("New records must start in Draft with an empty history", record_id=record.id)
        self.repository.save(record, None)
        logger.info("Created %s record %s", record.record_type.value, record.id)
        return record

    def get(self, record_id: str) -> Record:
        record, _ = self.repository.load(record_id)
        return record

    def assign(self, record_id: str, role: str, actor_id: str) -> Record:
        def compute(record: Record) -> tuple[Record, Record]:
            updated = approvers.assign(record, role, actor_id)
            return updated, updated

        record = self._apply(record_id, compute)
        logger.info("Assigned %s=%s on %s", role, actor_id, record_id)
        return record

    def transition(
        self,
        record_id: str,
        requested_status: str,
        actor: Actor,
        comment: str | None = None,
    ) -> TransitionResult:
        def compute(record: Record) -> tuple[Record, TransitionResult]:
            result = machine.transition(record, requested_status, actor, comment, at=self.clock())
            return result.record, result

        result = self._apply(record_id, compute)
        self._emit(result.event)
        return result

    def reopen(self, record_id: str, actor: Actor, comment: str | None = None) -> TransitionResult:
        def compute(record: Record) -> tuple[Record, TransitionResult]:
            result = machine.reopen(record, actor, comment, at=self.clock())
            return result.record, result

        result = self._apply(record_id, compute)
        self._emit(result.event)
        return result

    def inbox(self, actor: Actor) -> list[Record]:
        return machine.awaiting_action(self.repository.list_records(), actor)

    def _emit(self, event: TransitionEvent) -> None:
        logger.info(
            "%s %s: %s -> %s by %s",
            event.record_type.value,
            event.record_id,
            event.previous_status,
            event.new_status,
            event.actor.id,
        )
        if self.notify is not None:
            self.notify(event)
