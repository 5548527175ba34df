"""Record lifecycle CLI commands."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from ..errors import ReviewflowError
from ..lifecycle.approvers import missing_roles
from ..lifecycle.ledger import validate_record
from ..lifecycle.machine import allowed_transitions
from ..lifecycle.workflows import get_workflow
from ..models import Actor, Record, parse_record_type
from ..repository import JsonlRecordStore
from ..service import ReviewService


def _service(store_dir: Path, *, max_attempts: int = 3) -> ReviewService:
    return ReviewService(JsonlRecordStore(store_dir), max_attempts=max_attempts)


def _fail(exc: Exception) -> int:
    err = Console(stderr=True)
    err.print(f"{type(exc).__name__}: {exc}", style="bold red")
    return 1


def run_create(
    store_dir: Path,
    record_type: str,
    record_id: str,
    owner_id: str,
    *,
    monetary_value: float | None = None,
    code: str | None = None,
    category: str | None = None,
    due_date: date | None = None,
    attributes: dict[str, Any] | None = None,
) -> int:
    console = Console()
    try:
        record = Record(
            id=record_id,
            record_type=parse_record_type(record_type),
            owner_id=owner_id,
            monetary_value=monetary_value,
            code=code,
            category=category,
            due_date=due_date,
            attributes=attributes or {},
        )
        _service(store_dir).create(record)
    except ReviewflowError as exc:
        return _fail(exc)

    console.print(f"{record.id}: created {record.record_type.value} in {record.status}")
    missing = missing_roles(record)
    if missing:
        console.print(f"  assign before submitting: {', '.join(missing)}", style="dim")
    return 0


def run_assign(store_dir: Path, record_id: str, role: str, actor_id: str) -> int:
    console = Console()
    try:
        record = _service(store_dir).assign(record_id, role, actor_id)
    except ReviewflowError as exc:
        return _fail(exc)

    console.print(f"{record.id}: {role} -> {actor_id}")
    missing = missing_roles(record)
    if missing:
        console.print(f"  still unassigned: {', '.join(missing)}", style="dim")
    else:
        console.print("  ready to submit", style="green")
    return 0


def run_transition(
    store_dir: Path,
    record_id: str,
    status: str,
    actor: Actor,
    *,
    comment: str | None = None,
    output_json: bool = False,
    max_attempts: int = 3,
) -> int:
    try:
        result = _service(store_dir, max_attempts=max_attempts).transition(record_id, status, actor, comment)
    except ReviewflowError as exc:
        return _fail(exc)

    if output_json:
        print(json.dumps(result.event.to_dict(), indent=2))
        return 0

    console = Console()
    event = result.event
    console.print(f"{event.record_id}: {event.previous_status} -> {event.new_status} ({event.action})")
    next_steps = allowed_transitions(result.record)
    if next_steps:
        console.print(f"  next: {', '.join(next_steps)}", style="dim")
    else:
        console.print("  terminal", style="dim")
    return 0


def run_reopen(
    store_dir: Path,
    record_id: str,
    actor: Actor,
    *,
    comment: str | None = None,
    max_attempts: int = 3,
) -> int:
    try:
        result = _service(store_dir, max_attempts=max_attempts).reopen(record_id, actor, comment)
    except ReviewflowError as exc:
        return _fail(exc)

    Console().print(f"{result.event.record_id}: reopened from {result.event.previous_status} to {result.record.status}")
    return 0


def run_show(store_dir: Path, record_id: str, *, output_json: bool = False) -> int:
    try:
        record, version = JsonlRecordStore(store_dir).load(record_id)
    except ReviewflowError as exc:
        return _fail(exc)

    if output_json:
        data = record.to_dict()
        data["version"] = version
        print(json.dumps(data, indent=2, sort_keys=True))
        return 0

    console = Console()
    console.print(f"[bold]{record.id}[/bold] ({record.record_type.value})  status: {record.status}  version: {version}")
    console.print(f"owner: {record.owner_id}")
    for role in get_workflow(record.record_type).required_roles:
        console.print(f"{role}: {record.approvers.get(role) or '-'}")
    if record.monetary_value is not None:
        console.print(f"value: {record.monetary_value:,.2f}")

    table = Table(title=f"History: {record.id}")
    table.add_column("Timestamp", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("Actor")
    table.add_column("Comment")
    for entry in record.history:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.action,
            entry.status,
            f"{entry.actor_name} ({entry.actor_role})",
            entry.comment or "",
        )
    console.print(table)
    console.print(f"\nEntries: {len(record.history)} total")
    return 0


def run_list(
    store_dir: Path,
    *,
    record_type: str | None = None,
    status: str | None = None,
) -> int:
    try:
        records = JsonlRecordStore(store_dir).list_records()
        wanted_type = parse_record_type(record_type) if record_type else None
    except ReviewflowError as exc:
        return _fail(exc)

    if wanted_type is not None:
        records = [r for r in records if r.record_type == wanted_type]
    if status:
        records = [r for r in records if r.status == status]
    records.sort(key=lambda r: (r.record_type.value, r.id))

    table = Table(title="Records")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("type", style="magenta")
    table.add_column("status")
    table.add_column("owner")
    table.add_column("value", justify="right")
    for r in records:
        table.add_row(
            r.id,
            r.record_type.value,
            r.status,
            r.owner_id,
            f"{r.monetary_value:,.2f}" if r.monetary_value is not None else "",
        )
    Console().print(table)
    return 0


def run_validate(store_dir: Path, *, record_id: str | None = None, output_json: bool = False) -> int:
    """Check every stored record (latest version) against the ledger invariants."""
    store = JsonlRecordStore(store_dir)
    latest: dict[str, dict] = {}
    for data in store.iter_lines():
        rid = str((data.get("record") or {}).get("id", ""))
        if rid and (record_id is None or rid == record_id):
            latest[rid] = data

    if record_id is not None and record_id not in latest:
        return _fail(ReviewflowError(f"Record not found: {record_id}", record_id=record_id))

    report: dict[str, list[str]] = {}
    for rid, data in sorted(latest.items()):
        try:
            report[rid] = validate_record(Record.from_dict(data["record"]))
        except ReviewflowError as exc:
            report[rid] = getattr(exc, "violations", None) or [str(exc)]

    failing = {rid: v for rid, v in report.items() if v}
    if output_json:
        print(json.dumps({"checked": len(report), "violations": failing}, indent=2))
        return 1 if failing else 0

    console = Console()
    for rid, violations in failing.items():
        console.print(f"[red]✗[/red] {rid}")
        for v in violations:
            console.print(f"    {v}", style="dim")
    console.print(f"Checked {len(report)} record(s), {len(failing)} with violations")
    return 1 if failing else 0


def run_inbox(store_dir: Path, actor: Actor) -> int:
    try:
        records = _service(store_dir).inbox(actor)
    except ReviewflowError as exc:
        return _fail(exc)

    table = Table(title=f"Awaiting {actor.name or actor.id}")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("type", style="magenta")
    table.add_column("status")
    table.add_column("submitted by")
    for r in sorted(records, key=lambda r: r.id):
        submitter = r.history[0].actor_name if r.history else ""
        table.add_row(r.id, r.record_type.value, r.status, submitter)
    console = Console()
    console.print(table)
    console.print(f"\nPending: {len(records)}")
    return 0
