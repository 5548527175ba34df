"""Tests for record stores and the retrying review service."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from reviewflow.errors import (
    ConcurrencyConflict,
    LedgerViolation,
    MissingComment,
    RecordNotFound,
    ValidationError,
)
from reviewflow.lifecycle import transition
from reviewflow.models import Actor, HistoryEntry, Record, RecordType
from reviewflow.repository import InMemoryRecordRepository, JsonlRecordStore
from reviewflow.service import ReviewService


@pytest.fixture(params=["memory", "jsonl"])
def repository(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryRecordRepository()
    return JsonlRecordStore(tmp_path / ".reviewflow")


def test_save_and_load_versions(repository, draft_trip) -> None:
    assert repository.save(draft_trip, None) == 1
    record, version = repository.load(draft_trip.id)
    assert record == draft_trip
    assert version == 1
    assert repository.save(record.evolve(approvers={"verifier": "u-v"}), 1) == 2
    assert repository.load(draft_trip.id)[1] == 2


def test_stale_save_conflicts(repository, draft_trip) -> None:
    repository.save(draft_trip, None)
    repository.save(draft_trip, 1)
    with pytest.raises(ConcurrencyConflict, match="expected 1"):
        repository.save(draft_trip, 1)


def test_duplicate_create_conflicts(repository, draft_trip) -> None:
    repository.save(draft_trip, None)
    with pytest.raises(ConcurrencyConflict, match="already exists"):
        repository.save(draft_trip, None)


def test_missing_record(repository, draft_trip) -> None:
    with pytest.raises(RecordNotFound):
        repository.load("nope")
    with pytest.raises(RecordNotFound):
        repository.save(draft_trip, 3)


def test_list_records(repository, draft_trip) -> None:
    other = Record(id="exp-1", record_type=RecordType.EXPENDITURE, owner_id="u")
    repository.save(draft_trip, None)
    repository.save(other, None)
    assert sorted(r.id for r in repository.list_records()) == ["exp-1", "trip-001"]


def test_jsonl_store_is_append_only(tmp_path: Path, draft_trip) -> None:
    store = JsonlRecordStore(tmp_path)
    store.save(draft_trip, None)
    store.save(draft_trip.evolve(monetary_value=10), 1)

    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert [json.loads(line)["version"] for line in lines] == [1, 2]
    assert [v for v, _ in store.versions(draft_trip.id)] == [1, 2]

    # A fresh instance sees the latest version
    record, version = JsonlRecordStore(tmp_path).load(draft_trip.id)
    assert version == 2
    assert record.monetary_value == 10


def test_jsonl_store_sees_writes_from_other_instances(tmp_path: Path, draft_trip) -> None:
    first = JsonlRecordStore(tmp_path)
    second = JsonlRecordStore(tmp_path)
    first.save(draft_trip, None)
    second.save(draft_trip, 1)
    with pytest.raises(ConcurrencyConflict):
        first.save(draft_trip, 1)


def test_jsonl_store_skips_malformed_lines(tmp_path: Path, draft_trip) -> None:
    store = JsonlRecordStore(tmp_path)
    store.save(draft_trip, None)
    with store.path.open("a", encoding="utf-8") as f:
        f.write("{not json\n")
        f.write("[1, 2]\n")
        f.write('{"version": 9, "record": "trip-001"}\n')
    assert [r.id for r in JsonlRecordStore(tmp_path).list_records()] == [draft_trip.id]


def test_jsonl_store_rejects_corrupt_history(tmp_path: Path, draft_trip, owner, t0) -> None:
    bad = draft_trip.evolve(history=(HistoryEntry.by(owner, "Approved", "approve", t0),))
    store = JsonlRecordStore(tmp_path)
    store.save(bad, None)
    with pytest.raises(LedgerViolation):
        JsonlRecordStore(tmp_path).load(draft_trip.id)


def test_service_runs_trip_through_approval(repository, ready_trip, owner, verifier, approver, t0) -> None:
    ticks = iter(t0 + timedelta(minutes=i) for i in range(10))
    events = []
    service = ReviewService(repository, notify=events.append, clock=lambda: next(ticks))

    service.create(ready_trip)
    service.transition(ready_trip.id, "Pending", owner)
    service.transition(ready_trip.id, "Verified", verifier)
    result = service.transition(ready_trip.id, "Approved", approver)

    assert result.record.status == "Approved"
    assert service.get(ready_trip.id).status == "Approved"
    assert [e.new_status for e in events] == ["Pending", "Verified", "Approved"]
    assert [e.timestamp for e in events] == [t0, t0 + timedelta(minutes=1), t0 + timedelta(minutes=2)]
    assert repository.load(ready_trip.id)[1] == 4


def test_service_assign_and_reopen(repository, draft_trip, owner, verifier, approver, admin) -> None:
    service = ReviewService(repository)
    service.create(draft_trip)
    service.assign(draft_trip.id, "verifier", verifier.id)
    service.assign(draft_trip.id, "approver", approver.id)
    service.transition(draft_trip.id, "Pending", owner)
    service.transition(draft_trip.id, "Rejected", approver, "wrong project")

    reopened = service.reopen(draft_trip.id, admin, "fixed")
    assert reopened.record.status == "Draft"
    assert reopened.event.previous_status == "Rejected"
    assert [r.id for r in service.inbox(verifier)] == []


def test_service_create_refuses_history(repository, ready_trip, owner, t0) -> None:
    submitted = transition(ready_trip, "Pending", owner, at=t0).record
    with pytest.raises(ValidationError, match="start in Draft"):
        ReviewService(repository).create(submitted)


def test_service_errors_leave_store_untouched(repository, ready_trip, owner, verifier) -> None:
    service = ReviewService(repository)
    service.create(ready_trip)
    service.transition(ready_trip.id, "Pending", owner)
    with pytest.raises(MissingComment):
        service.transition(ready_trip.id, "Rejected", verifier)
    record, version = repository.load(ready_trip.id)
    assert record.status == "Pending"
    assert version == 2


class _RacingRepository(InMemoryRecordRepository):
    """Simulates another writer saving between our load and save."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    def save(self, record: Record, expected_version: int | None) -> int:
        if expected_version is not None and self.races > 0:
            self.races -= 1
            current, version = self.load(record.id)
            super().save(current.evolve(attributes={"touched": self.races}), version)
        return super().save(record, expected_version)


def test_service_retries_on_conflict(ready_trip, owner) -> None:
    repository = _RacingRepository(races=2)
    repository.save(ready_trip, None)
    service = ReviewService(repository, max_attempts=3)

    result = service.transition(ready_trip.id, "Pending", owner)
    assert result.record.status == "Pending"
    # Recomputed on the concurrently updated record
    assert result.record.attributes == {"touched": 0}


def test_service_gives_up_after_max_attempts(ready_trip, owner) -> None:
    repository = _RacingRepository(races=5)
    repository.save(ready_trip, None)
    service = ReviewService(repository, max_attempts=2)

    with pytest.raises(ConcurrencyConflict):
        service.transition(ready_trip.id, "Pending", owner)
    assert repository.load(ready_trip.id)[0].status == "Draft"


def test_service_notifier_errors_propagate(repository, ready_trip, owner) -> None:
    def boom(event) -> None:
        raise RuntimeError("mail server down")

    service = ReviewService(repository, notify=boom)
    service.create(ready_trip)
    with pytest.raises(RuntimeError, match="mail server down"):
        service.transition(ready_trip.id, "Pending", owner)
    # The transition itself was committed before notification
    assert repository.load(ready_trip.id)[0].status == "Pending"


def test_service_rejects_bad_max_attempts() -> None:
    with pytest.raises(ValueError):
        ReviewService(InMemoryRecordRepository(), max_attempts=0)


def test_actor_requires_id() -> None:
    with pytest.raises(ValidationError):
        Actor(id=" ", name="x", role="staff")


def test_jsonl_store_rejects_malformed_version(tmp_path: Path, draft_trip) -> None:
    store = JsonlRecordStore(tmp_path)
    store.save(draft_trip, None)
    with store.path.open("a", encoding="utf-8") as f:
        f.write(json.dumps({"version": "two", "record": draft_trip.to_dict()}) + "\n")
    with pytest.raises(ValidationError, match="version"):
        JsonlRecordStore(tmp_path).load(draft_trip.id)


def test_record_from_dict_wraps_decode_errors(draft_trip) -> None:
    data = draft_trip.to_dict()
    data["due_date"] = "31/12/2024"
    with pytest.raises(ValidationError) as excinfo:
        Record.from_dict(data)
    assert excinfo.value.record_id == draft_trip.id

    data = draft_trip.to_dict()
    data["history"] = [{"status": "Pending"}]
    with pytest.raises(ValidationError, match="Malformed history entry"):
        Record.from_dict(data)
