"""Dashboard CLI commands: rollups, classification, due-date scans, workflow graphs."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Mapping

from rich.console import Console
from rich.table import Table

from ..classification import DEFAULT_TABLE, UNCLASSIFIED
from ..errors import ReviewflowError
from ..filters import RecordFilter, by_attribute, by_status, by_type
from ..lifecycle.workflows import WORKFLOWS, get_workflow
from ..models import parse_record_type
from ..repository import JsonlRecordStore
from ..rollup import BudgetTier, DueStatus, rollup, scan_due

_TIER_STYLE = {
    BudgetTier.SAFE: "green",
    BudgetTier.WARNING: "yellow",
    BudgetTier.LOW: "dark_orange",
    BudgetTier.OVER_BUDGET: "bold red",
}


def _fail(message: str) -> int:
    Console(stderr=True).print(message, style="bold red")
    return 1


def run_rollup(
    store_dir: Path,
    *,
    group_by: str = "status",
    record_type: str | None = None,
    status: str | None = None,
    attributes: Mapping[str, str] | None = None,
    budgets: Mapping[str, float] | None = None,
    output_json: bool = False,
) -> int:
    filters: list[RecordFilter] = []
    try:
        if record_type:
            filters.append(by_type(parse_record_type(record_type)))
        records = JsonlRecordStore(store_dir).list_records()
    except ReviewflowError as exc:
        return _fail(f"{type(exc).__name__}: {exc}")
    if status:
        filters.append(by_status(status))
    for name, value in (attributes or {}).items():
        filters.append(by_attribute(name, value))

    result = rollup(records, group_by, filters=filters, budgets=budgets)  # type: ignore[arg-type]

    if output_json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    console = Console()
    table = Table(title=f"Rollup by {group_by}")
    table.add_column(group_by, style="cyan")
    table.add_column("count", justify="right")
    table.add_column("total", justify="right")
    for key in sorted(result.groups):
        totals = result.groups[key]
        table.add_row(key, str(totals.count), f"{totals.total:,.2f}")
    console.print(table)

    summary = Table(title="Summary")
    summary.add_column("group", style="magenta")
    summary.add_column("count", justify="right")
    summary.add_column("total", justify="right")
    for name, totals in result.super_groups.items():
        summary.add_row(name, str(totals.count), f"{totals.total:,.2f}")
    console.print(summary)

    if result.budget:
        budget = Table(title="Budget health")
        budget.add_column("category")
        budget.add_column("ceiling", justify="right")
        budget.add_column("spent", justify="right")
        budget.add_column("remaining", justify="right")
        budget.add_column("tier")
        for line in result.budget.values():
            budget.add_row(
                line.category,
                f"{line.ceiling:,.2f}",
                f"{line.spent:,.2f}",
                f"{line.remaining:,.2f}",
                f"[{_TIER_STYLE[line.tier]}]{line.tier.value}[/]",
            )
        console.print(budget)

    console.print(f"\nRecords: {result.record_count} total, value {result.total_value:,.2f}")
    return 0


def run_classify(
    code: str,
    *,
    budgets: Mapping[str, float] | None = None,
    output_json: bool = False,
) -> int:
    """Classify an account code; never fails, Unclassified is a valid answer."""
    if budgets:
        category = DEFAULT_TABLE.classify_with_budget(code, budgets)
    else:
        category = DEFAULT_TABLE.classify(code)
    band = DEFAULT_TABLE.category_to_code(category) if category != UNCLASSIFIED else None

    if output_json:
        print(json.dumps({"code": code, "category": category, "band": band}, indent=2))
        return 0

    Console().print(f"{code} -> {category}" + (f" (band {band})" if band else ""))
    return 0


def run_due(
    store_dir: Path,
    *,
    today: date,
    window_days: int = 30,
    output_json: bool = False,
) -> int:
    try:
        records = JsonlRecordStore(store_dir).list_records()
    except ReviewflowError as exc:
        return _fail(f"{type(exc).__name__}: {exc}")

    scan = scan_due(records, today, window_days)
    if output_json:
        print(json.dumps(scan.to_dict(), indent=2))
        return 0

    console = Console()
    console.print(f"[bold]Due dates as of {today.isoformat()}[/bold] (window {window_days} days)")
    for status, style in ((DueStatus.EXPIRED, "red"), (DueStatus.EXPIRING_SOON, "yellow"), (DueStatus.VALID, "green")):
        ids = scan.record_ids[status]
        console.print(f"[{style}]{status.value}[/]: {len(ids)}" + (f"  ({', '.join(ids)})" if ids else ""))
    if scan.untracked:
        console.print(f"no due date: {scan.untracked}", style="dim")
    return 0


def run_workflows(record_type: str | None = None, *, output_json: bool = False) -> int:
    try:
        workflows = [get_workflow(parse_record_type(record_type))] if record_type else list(WORKFLOWS.values())
    except ReviewflowError as exc:
        return _fail(f"{type(exc).__name__}: {exc}")

    if output_json:
        print(json.dumps([w.to_dict() for w in workflows], indent=2))
        return 0

    console = Console()
    for workflow in workflows:
        table = Table(title=f"{workflow.record_type.value}: {workflow.description}")
        table.add_column("from", style="cyan")
        table.add_column("to")
        table.add_column("action", style="magenta")
        table.add_column("who")
        table.add_column("comment")
        for edge in workflow.edges:
            table.add_row(
                edge.source,
                edge.target,
                edge.action,
                " | ".join(sorted(edge.authority)),
                "required" if edge.requires_comment else "",
            )
        console.print(table)
        if workflow.required_roles:
            console.print(f"assign before submit: {', '.join(workflow.required_roles)}", style="dim")
    return 0
