"""
Record lifecycle engine.

- workflows: fixed transition graphs per record type
- ledger: append-only history with invariant validation
- approvers: reviewer role assignment
- machine: the transition() entry point

Every operation is pure. Nothing is persisted or delivered from here.
"""

from .approvers import assign, is_submittable, missing_roles, required_roles
from .ledger import append, ensure_valid, validate, validate_record
from .machine import (
    TransitionEvent,
    TransitionResult,
    allowed_transitions,
    awaiting_action,
    reopen,
    transition,
)
from .workflows import WORKFLOWS, Workflow, get_workflow

__all__ = [
    # Workflows
    "WORKFLOWS",
    "Workflow",
    "get_workflow",
    # Ledger
    "append",
    "validate",
    "validate_record",
    "ensure_valid",
    # Assignment
    "assign",
    "is_submittable",
    "missing_roles",
    "required_roles",
    # State machine
    "TransitionEvent",
    "TransitionResult",
    "transition",
    "reopen",
    "allowed_transitions",
    "awaiting_action",
]
