"""
Dashboard rollups over a collection of records.

Rollups are computed state: derived in one pass over one snapshot of the
input, never stored. Filtering by branch, region or date is the caller's
predicate; only the aggregation lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Literal, Mapping

from .classification import DEFAULT_TABLE, UNCLASSIFIED, CategoryTable
from .filters import RecordFilter
from .lifecycle.workflows import SUPER_GROUPS, get_workflow
from .models import Record

GroupBy = Literal["status", "category"]

# Remaining-budget share at or below which a category is flagged
LOW_THRESHOLD = 0.10
WARNING_THRESHOLD = 0.30

DEFAULT_DUE_WINDOW_DAYS = 30


class BudgetTier(str, Enum):
    SAFE = "safe"
    WARNING = "warning"  # <= 30% remaining
    LOW = "low"  # <= 10% remaining
    OVER_BUDGET = "over_budget"  # nothing remaining


class DueStatus(str, Enum):
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


@dataclass
class GroupTotals:
    count: int = 0
    total: float = 0.0

    def add(self, record: Record) -> None:
        self.count += 1
        if record.monetary_value is not None:
            self.total += record.monetary_value

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "total": self.total}


@dataclass(frozen=True)
class BudgetLine:
    category: str
    ceiling: float
    spent: float
    remaining: float
    tier: BudgetTier

    @property
    def remaining_ratio(self) -> float:
        return self.remaining / self.ceiling

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "ceiling": self.ceiling,
            "spent": self.spent,
            "remaining": self.remaining,
            "remaining_ratio": round(self.remaining_ratio, 6),
            "tier": self.tier.value,
        }


@dataclass
class RollupResult:
    group_by: str
    record_count: int = 0
    total_value: float = 0.0
    groups: dict[str, GroupTotals] = field(default_factory=dict)
    super_groups: dict[str, GroupTotals] = field(default_factory=dict)
    by_type: dict[str, GroupTotals] = field(default_factory=dict)
    budget: dict[str, BudgetLine] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "group_by": self.group_by,
            "record_count": self.record_count,
            "total_value": self.total_value,
            "groups": {k: v.to_dict() for k, v in self.groups.items()},
            "super_groups": {k: v.to_dict() for k, v in self.super_groups.items()},
            "by_type": {k: v.to_dict() for k, v in self.by_type.items()},
            "budget": {k: v.to_dict() for k, v in self.budget.items()},
        }


def budget_tier(ceiling: float, spent: float) -> BudgetTier | None:
    """
    Health tier for a category budget.

    A ceiling of zero (or less) means no budget is set; such categories are
    not tiered.
    """
    if ceiling <= 0:
        return None
    remaining = ceiling - spent
    if remaining <= 0:
        return BudgetTier.OVER_BUDGET
    ratio = remaining / ceiling
    if ratio <= LOW_THRESHOLD:
        return BudgetTier.LOW
    if ratio <= WARNING_THRESHOLD:
        return BudgetTier.WARNING
    return BudgetTier.SAFE


def category_of(record: Record, table: CategoryTable = DEFAULT_TABLE) -> str:
    """Explicit category, else the one derived from the record's code."""
    if record.category:
        return record.category
    if record.code is not None:
        return table.classify(record.code)
    return UNCLASSIFIED


def rollup(
    records: Iterable[Record],
    group_by: GroupBy = "status",
    *,
    filters: Iterable[RecordFilter] = (),
    budgets: Mapping[str, float] | None = None,
    table: CategoryTable = DEFAULT_TABLE,
) -> RollupResult:
    """
    Group records and accumulate counts and monetary sums.

    Status groups are also folded into the super-groups draft, in_progress,
    closed_positive and closed_negative using each record type's workflow.
    With `budgets`, approved spend per category is set against its ceiling.
    Every record lands in exactly one group, so group counts always sum to
    record_count.
    """
    if group_by not in ("status", "category"):
        raise ValueError(f"Unsupported group_by: {group_by!r}")

    predicates = tuple(filters)
    snapshot = tuple(r for r in records if all(p(r) for p in predicates))

    result = RollupResult(group_by=group_by)
    result.super_groups = {name: GroupTotals() for name in SUPER_GROUPS}
    spent: dict[str, float] = {}

    for record in snapshot:
        category = category_of(record, table)
        key = record.status if group_by == "status" else category

        result.groups.setdefault(key, GroupTotals()).add(record)
        result.by_type.setdefault(record.record_type.value, GroupTotals()).add(record)
        workflow = get_workflow(record.record_type)
        result.super_groups[workflow.group_of(record.status)].add(record)

        result.record_count += 1
        if record.monetary_value is not None:
            result.total_value += record.monetary_value
            if record.status == workflow.final_status:
                spent[category] = spent.get(category, 0.0) + record.monetary_value

    for category, ceiling in (budgets or {}).items():
        used = spent.get(category, 0.0)
        tier = budget_tier(ceiling, used)
        if tier is None:
            continue
        result.budget[category] = BudgetLine(
            category=category,
            ceiling=ceiling,
            spent=used,
            remaining=ceiling - used,
            tier=tier,
        )

    return result


# -----------------------------------------------------------------------------
# Due-date scan
# -----------------------------------------------------------------------------


def due_status(due: date, today: date, window_days: int = DEFAULT_DUE_WINDOW_DAYS) -> DueStatus:
    if due < today:
        return DueStatus.EXPIRED
    if (due - today).days <= window_days:
        return DueStatus.EXPIRING_SOON
    return DueStatus.VALID


@dataclass
class DueScan:
    today: date
    window_days: int
    record_ids: dict[DueStatus, list[str]] = field(
        default_factory=lambda: {status: [] for status in DueStatus}
    )
    untracked: int = 0  # Records without a due date

    def count(self, status: DueStatus) -> int:
        return len(self.record_ids[status])

    def to_dict(self) -> dict[str, Any]:
        return {
            "today": self.today.isoformat(),
            "window_days": self.window_days,
            "counts": {s.value: len(ids) for s, ids in self.record_ids.items()},
            "record_ids": {s.value: list(ids) for s, ids in self.record_ids.items()},
            "untracked": self.untracked,
        }


def scan_due(
    records: Iterable[Record],
    today: date,
    window_days: int = DEFAULT_DUE_WINDOW_DAYS,
) -> DueScan:
    """Read-only classification of due dates; re-run on demand, never scheduled."""
    scan = DueScan(today=today, window_days=window_days)
    for record in records:
        if record.due_date is None:
            scan.untracked += 1
            continue
        scan.record_ids[due_status(record.due_date, today, window_days)].append(record.id)
    return scan
