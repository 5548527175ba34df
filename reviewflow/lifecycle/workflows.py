"""
Fixed transition graphs per record type.

Graphs are data, evaluation is code (see machine.py). They are not
configurable at runtime: each RecordType maps to exactly one Workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models import DRAFT, RecordType

# Authorities that are not reviewer roles
OWNER = "owner"
ADMIN = "admin"

CANCELLED = "Cancelled"
REJECTED = "Rejected"
APPROVED = "Approved"

# Rollup super-groups
GROUP_DRAFT = "draft"
GROUP_IN_PROGRESS = "in_progress"
GROUP_CLOSED_POSITIVE = "closed_positive"
GROUP_CLOSED_NEGATIVE = "closed_negative"

SUPER_GROUPS = (GROUP_DRAFT, GROUP_IN_PROGRESS, GROUP_CLOSED_POSITIVE, GROUP_CLOSED_NEGATIVE)

# Generic names a caller may use for "submit" on any record type
SUBMIT_ALIASES = frozenset({"Submitted", "Pending"})


@dataclass(frozen=True)
class Edge:
    """One legal status change."""

    source: str
    target: str
    action: str  # submit | approve | reject | advance | cancel | reopen
    authority: frozenset[str]  # OWNER, ADMIN and/or reviewer role names
    requires_comment: bool = False


@dataclass(frozen=True)
class ReviewStage:
    role: str  # Reviewer role that signs this stage off
    status: str  # Status entered on sign-off


@dataclass(frozen=True)
class Workflow:
    record_type: RecordType
    statuses: tuple[str, ...]
    edges: tuple[Edge, ...]
    final_status: str  # Positive terminal outcome
    required_roles: tuple[str, ...] = ()  # Must be bound in record.approvers before submit
    description: str = ""
    _by_source: dict[str, tuple[Edge, ...]] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_source: dict[str, list[Edge]] = {}
        for edge in self.edges:
            by_source.setdefault(edge.source, []).append(edge)
        object.__setattr__(self, "_by_source", {k: tuple(v) for k, v in by_source.items()})

    def edges_from(self, status: str) -> tuple[Edge, ...]:
        return self._by_source.get(status, ())

    def edge(self, source: str, target: str) -> Edge | None:
        for e in self.edges_from(source):
            if e.target == target:
                return e
        return None

    def resolve(self, source: str, requested: str) -> Edge | None:
        """
        Find the edge a request maps to.

        Requesting the final status while an earlier review stage is open
        routes to that stage's sign-off edge. A generic submit name
        ("Submitted" or "Pending") routes to the type's submit edge.
        """
        direct = self.edge(source, requested)
        if direct is not None:
            return direct
        if requested in SUBMIT_ALIASES:
            submits = [e for e in self.edges_from(source) if e.action == "submit"]
            if len(submits) == 1:
                return submits[0]
        if requested == self.final_status:
            approvals = [e for e in self.edges_from(source) if e.action == "approve"]
            if len(approvals) == 1:
                return approvals[0]
        return None

    def recognizes(self, status: str) -> bool:
        """A status of this type, or a generic submit name."""
        return status in self.statuses or status in SUBMIT_ALIASES

    def is_terminal(self, status: str) -> bool:
        """Terminal statuses have no outgoing edges except reopen."""
        return all(e.action == "reopen" for e in self.edges_from(status))

    @property
    def terminal_statuses(self) -> frozenset[str]:
        return frozenset(s for s in self.statuses if self.is_terminal(s))

    def is_reopenable(self, status: str) -> bool:
        return any(e.action == "reopen" for e in self.edges_from(status))

    @property
    def review_roles(self) -> frozenset[str]:
        roles: set[str] = set()
        for e in self.edges:
            if e.action in {"approve", "reject"}:
                roles |= e.authority - {OWNER, ADMIN}
        return frozenset(roles)

    def group_of(self, status: str) -> str:
        if status == DRAFT:
            return GROUP_DRAFT
        if status == self.final_status:
            return GROUP_CLOSED_POSITIVE
        if self.is_terminal(status):
            return GROUP_CLOSED_NEGATIVE
        return GROUP_IN_PROGRESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_type": self.record_type.value,
            "description": self.description,
            "statuses": list(self.statuses),
            "required_roles": list(self.required_roles),
            "final_status": self.final_status,
            "terminal": sorted(self.terminal_statuses),
            "edges": [
                {
                    "from": e.source,
                    "to": e.target,
                    "action": e.action,
                    "authority": sorted(e.authority),
                    "requires_comment": e.requires_comment,
                }
                for e in self.edges
            ],
        }


def _review_workflow(
    record_type: RecordType,
    *,
    submitted: str,
    stages: tuple[ReviewStage, ...],
    required_roles: tuple[str, ...],
    reopen_from: tuple[str, ...],
    description: str,
) -> Workflow:
    """Draft -> submitted -> sequential sign-off stages, with reject/cancel/reopen."""
    reviewers = frozenset(s.role for s in stages)
    owner_or_admin = frozenset({OWNER, ADMIN})

    edges: list[Edge] = [Edge(DRAFT, submitted, "submit", frozenset({OWNER}))]
    open_statuses = [DRAFT, submitted]

    source = submitted
    for stage in stages:
        edges.append(Edge(source, stage.status, "approve", frozenset({stage.role})))
        edges.append(Edge(source, REJECTED, "reject", reviewers, requires_comment=True))
        if stage.status != APPROVED:
            open_statuses.append(stage.status)
        source = stage.status

    for status in open_statuses:
        edges.append(Edge(status, CANCELLED, "cancel", owner_or_admin, requires_comment=True))
    for status in reopen_from:
        edges.append(Edge(status, DRAFT, "reopen", owner_or_admin))

    statuses = tuple(open_statuses) + (APPROVED, REJECTED, CANCELLED)
    return Workflow(
        record_type=record_type,
        statuses=statuses,
        edges=tuple(edges),
        final_status=APPROVED,
        required_roles=required_roles,
        description=description,
    )


def _tender_workflow() -> Workflow:
    """Tenders advance through bidding phases by their owner; no reviewer sign-off."""
    owner_or_admin = frozenset({OWNER, ADMIN})
    phases = ("Prequalification", "Aanwijzing", "Bidding", "Evaluation")

    edges: list[Edge] = [Edge(DRAFT, phases[0], "submit", frozenset({OWNER}))]
    for current, following in zip(phases, phases[1:]):
        edges.append(Edge(current, following, "advance", owner_or_admin))
    edges.append(Edge("Evaluation", "Awarded", "advance", owner_or_admin))
    edges.append(Edge("Evaluation", "Lost", "reject", owner_or_admin, requires_comment=True))
    for status in (DRAFT,) + phases:
        edges.append(Edge(status, CANCELLED, "cancel", owner_or_admin, requires_comment=True))

    return Workflow(
        record_type=RecordType.TENDER,
        statuses=(DRAFT,) + phases + ("Awarded", "Lost", CANCELLED),
        edges=tuple(edges),
        final_status="Awarded",
        description="Tender opportunity from prequalification to award",
    )


WORKFLOWS: dict[RecordType, Workflow] = {
    RecordType.TRIP: _review_workflow(
        RecordType.TRIP,
        submitted="Pending",
        stages=(ReviewStage("verifier", "Verified"), ReviewStage("approver", APPROVED)),
        required_roles=("verifier", "approver"),
        reopen_from=(REJECTED, CANCELLED),
        description="Business trip request, verified then approved",
    ),
    RecordType.REPORT: _review_workflow(
        RecordType.REPORT,
        submitted="Submitted",
        stages=(ReviewStage("qaqc", "Reviewed"), ReviewStage("client_rep", APPROVED)),
        required_roles=("qaqc", "client_rep"),
        reopen_from=(REJECTED,),
        description="Inspection report, reviewed by client QAQC then approved by the client representative",
    ),
    RecordType.EXPENDITURE: _review_workflow(
        RecordType.EXPENDITURE,
        submitted="Pending",
        stages=(ReviewStage("finance", APPROVED),),
        required_roles=(),
        reopen_from=(REJECTED,),
        description="Expenditure claim, approved by finance",
    ),
    RecordType.TENDER: _tender_workflow(),
}


def get_workflow(record_type: RecordType | str) -> Workflow:
    return WORKFLOWS[RecordType(record_type)]
