"""
Record persistence collaborators.

The lifecycle engine never touches storage. Hosts load a record with its
version token, compute a transition, and save conditioned on the token being
unchanged (optimistic concurrency). Two reference stores are provided:

- InMemoryRecordRepository: a dict, for tests and embedding
- JsonlRecordStore: an append-only JSON-lines file of record versions

The JSONL store never modifies existing lines; the latest version of a record
wins on load, and every loaded record is checked against the ledger
invariants.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Protocol

from .errors import ConcurrencyConflict, LedgerViolation, RecordNotFound, ValidationError
from .lifecycle.ledger import ensure_valid
from .models import Record

logger = logging.getLogger(__name__)


class RecordRepository(Protocol):
    def load(self, record_id: str) -> tuple[Record, int]:
        ...

    def save(self, record: Record, expected_version: int | None) -> int:
        ...

    def list_records(self) -> list[Record]:
        ...


def _check_version(record_id: str, current: int | None, expected: int | None) -> int:
    """Return the next version or raise on a stale/duplicate write."""
    if current is None and expected is not None:
        raise RecordNotFound(f"Record not found: {record_id}", record_id=record_id)
    if current != expected:
        if expected is None:
            raise ConcurrencyConflict(f"Record already exists: {record_id}", record_id=record_id)
        raise ConcurrencyConflict(
            f"Record {record_id} is at version {current}, expected {expected}",
            record_id=record_id,
        )
    return (current or 0) + 1


def _version(data: dict) -> int:
    try:
        return int(data["version"])
    except (KeyError, TypeError, ValueError) as exc:
        record_id = str(data["record"].get("id", ""))
        raise ValidationError(f"Stored version of {record_id} is malformed: {exc!r}", record_id=record_id) from exc


class InMemoryRecordRepository:
    def __init__(self) -> None:
        self._records: dict[str, tuple[Record, int]] = {}

    def load(self, record_id: str) -> tuple[Record, int]:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFound(f"Record not found: {record_id}", record_id=record_id) from None

    def save(self, record: Record, expected_version: int | None) -> int:
        current = self._records.get(record.id)
        version = _check_version(record.id, current[1] if current else None, expected_version)
        self._records[record.id] = (record, version)
        return version

    def list_records(self) -> list[Record]:
        return [record for record, _ in self._records.values()]


class JsonlRecordStore:
    """
    Append-only store of record versions.

    INVARIANT: existing lines are never modified. save() appends one line
    {"version", "saved_at", "record"}; the highest version per id is current.
    """

    def __init__(self, store_dir: Path):
        self.store_dir = store_dir
        self.path = store_dir / "records.jsonl"

        # Latest line per record id (lazy-loaded)
        self._latest: dict[str, dict] = {}
        self._indexed = False

    def _ensure_dir(self) -> None:
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def iter_lines(self) -> Iterator[dict]:
        """Yield every stored version in append order."""
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed line %d in %s", lineno, self.path)
                    continue
                if not isinstance(data, dict) or not isinstance(data.get("record"), dict):
                    logger.warning("Skipping line %d in %s: not a record version", lineno, self.path)
                    continue
                yield data

    def _ensure_indexed(self) -> None:
        if self._indexed:
            return
        for data in self.iter_lines():
            record_id = str((data.get("record") or {}).get("id", ""))
            if record_id:
                self._latest[record_id] = data
        self._indexed = True

    def _decode(self, data: dict) -> Record:
        try:
            record = Record.from_dict(data["record"])
        except ValidationError:
            logger.error("Stored record %s could not be decoded", data["record"].get("id"))
            raise
        try:
            return ensure_valid(record)
        except LedgerViolation:
            logger.error("Stored record %s failed ledger validation", record.id)
            raise

    def load(self, record_id: str) -> tuple[Record, int]:
        self._ensure_indexed()
        data = self._latest.get(record_id)
        if data is None:
            raise RecordNotFound(f"Record not found: {record_id}", record_id=record_id)
        return self._decode(data), _version(data)

    def save(self, record: Record, expected_version: int | None) -> int:
        # Re-read so writes from another process are seen before the check.
        self._indexed = False
        self._latest.clear()
        self._ensure_indexed()

        current = self._latest.get(record.id)
        version = _check_version(record.id, _version(current) if current else None, expected_version)

        data = {
            "version": version,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "record": record.to_dict(),
        }
        self._ensure_dir()
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(data, separators=(",", ":")) + "\n")
        self._latest[record.id] = data
        logger.debug("Saved %s version %d", record.id, version)
        return version

    def list_records(self) -> list[Record]:
        self._ensure_indexed()
        return [self._decode(data) for data in self._latest.values()]

    def versions(self, record_id: str) -> list[tuple[int, Record]]:
        """Every stored version of a record, oldest first."""
        found = [
            (_version(data), Record.from_dict(data["record"]))
            for data in self.iter_lines()
            if (data.get("record") or {}).get("id") == record_id
        ]
        if not found:
            raise RecordNotFound(f"Record not found: {record_id}", record_id=record_id)
        return found
