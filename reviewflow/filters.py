"""
Caller-side record predicates for rollups and listings.

These select which records a dashboard looks at (branch, region, date range,
...). They read record fields and the opaque attributes payload; the rollup
engine only aggregates what passes them.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable

from .models import Record, RecordType, parse_record_type

RecordFilter = Callable[[Record], bool]


def by_type(*record_types: RecordType | str) -> RecordFilter:
    wanted = {parse_record_type(t) for t in record_types}
    return lambda record: record.record_type in wanted


def by_status(*statuses: str) -> RecordFilter:
    wanted = set(statuses)
    return lambda record: record.status in wanted


def by_attribute(name: str, *values: Any) -> RecordFilter:
    """Match records whose attributes[name] is one of `values`."""
    wanted = tuple(values)
    return lambda record: record.attributes.get(name) in wanted


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def by_date_range(
    start: date | None = None,
    end: date | None = None,
    *,
    field: str = "due_date",
) -> RecordFilter:
    """
    Inclusive date window over `field`.

    `field` is "due_date", "created" (first history entry) or an attributes
    key holding an ISO date. Records without a date never match.
    """

    def _pick(record: Record) -> date | None:
        if field == "due_date":
            return record.due_date
        if field == "created":
            return record.history[0].timestamp.date() if record.history else None
        return _as_date(record.attributes.get(field))

    def _match(record: Record) -> bool:
        value = _pick(record)
        if value is None:
            return False
        if start is not None and value < start:
            return False
        if end is not None and value > end:
            return False
        return True

    return _match
