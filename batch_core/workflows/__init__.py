# batch_core/workflows/__init__.py
"""
Authoritative batch status workflow.

This module defines:
- The batch status transition graph
- Role -> reachable target statuses
- Role normalization
- Introspection helpers for UI and API

Pure tables and functions only. Business guards live in
batch_core.workflows.transition_guard; execution lives in
batch_core.services.batch_lifecycle. Do not bypass these rules at model or
view level.
"""

from __future__ import annotations

import re
from typing import Any, Dict, FrozenSet, List, Optional

from django.core.exceptions import ImproperlyConfigured

from batch_core.choices import BatchStatus

S = BatchStatus


# ===============================================================
# BATCH TRANSITIONS
# ===============================================================

BATCH_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PLANNED: frozenset({S.SCHEDULED, S.IN_PRODUCTION, S.ON_HOLD, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.IN_PRODUCTION, S.ON_HOLD, S.CANCELLED}),
    S.IN_PRODUCTION: frozenset({S.PRODUCTION_COMPLETE, S.ON_HOLD, S.DEVIATION_OPEN, S.CANCELLED}),
    S.PRODUCTION_COMPLETE: frozenset({S.QC_PENDING, S.ON_HOLD, S.DEVIATION_OPEN}),
    S.QC_PENDING: frozenset({S.QC_IN_PROGRESS, S.ON_HOLD}),
    S.QC_IN_PROGRESS: frozenset({S.QC_PASSED, S.FAILED_QC, S.ON_HOLD, S.DEVIATION_OPEN}),
    S.QC_PASSED: frozenset({S.QP_REVIEW, S.RELEASED, S.REJECTED, S.ON_HOLD}),
    S.QP_REVIEW: frozenset({S.QC_PASSED, S.REJECTED, S.ON_HOLD}),
    S.RELEASED: frozenset({S.DISPENSING_IN_PROGRESS, S.ON_HOLD}),
    S.DISPENSING_IN_PROGRESS: frozenset({S.DISPENSED, S.ON_HOLD}),
    S.DISPENSED: frozenset({S.PACKED, S.ON_HOLD}),
    S.PACKED: frozenset({S.DISPATCHED, S.ON_HOLD}),
    S.DISPATCHED: frozenset({S.CLOSED}),
    S.CLOSED: frozenset(),
    # A hold can be lifted back to the stage it interrupted; the transition
    # guard still refuses a jump straight into a dispatch-adjacent status.
    S.ON_HOLD: frozenset({
        S.SCHEDULED,
        S.IN_PRODUCTION,
        S.PRODUCTION_COMPLETE,
        S.QC_PENDING,
        S.QC_IN_PROGRESS,
        S.QP_REVIEW,
        S.RELEASED,
        S.DISPENSING_IN_PROGRESS,
        S.DISPENSED,
        S.PACKED,
        S.DISPATCHED,
        S.REJECTED,
        S.CANCELLED,
    }),
    S.DEVIATION_OPEN: frozenset({
        S.IN_PRODUCTION,
        S.PRODUCTION_COMPLETE,
        S.QC_IN_PROGRESS,
        S.ON_HOLD,
        S.REJECTED,
        S.CANCELLED,
    }),
    S.FAILED_QC: frozenset({S.QC_IN_PROGRESS, S.DEVIATION_OPEN, S.REJECTED, S.CANCELLED}),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
}

INITIAL_STATUS = S.PLANNED

# Entering any of these requires a reason on the request.
REASON_REQUIRED_STATUSES: FrozenSet[str] = frozenset({
    S.ON_HOLD,
    S.REJECTED,
    S.FAILED_QC,
    S.CANCELLED,
    S.DEVIATION_OPEN,
})


# ===============================================================
# ROLE PERMISSIONS
# ===============================================================

WILDCARD = "*"

ROLE_ALLOWED_TARGETS: Dict[str, FrozenSet[str]] = {
    "ADMIN": frozenset({WILDCARD}),
    "PRODUCTION_MANAGER": frozenset({
        S.SCHEDULED,
        S.IN_PRODUCTION,
        S.PRODUCTION_COMPLETE,
        S.ON_HOLD,
        S.DEVIATION_OPEN,
        S.CANCELLED,
    }),
    "QC_ANALYST": frozenset({
        S.QC_PENDING,
        S.QC_IN_PROGRESS,
        S.QC_PASSED,
        S.FAILED_QC,
        S.QP_REVIEW,
    }),
    "QC_MANAGER": frozenset({
        S.QC_PENDING,
        S.QC_IN_PROGRESS,
        S.QC_PASSED,
        S.FAILED_QC,
        S.QP_REVIEW,
        S.ON_HOLD,
    }),
    "QUALIFIED_PERSON": frozenset({S.QC_PASSED, S.RELEASED, S.REJECTED, S.ON_HOLD}),
    "DISPENSING": frozenset({S.DISPENSING_IN_PROGRESS, S.DISPENSED, S.PACKED}),
    "LOGISTICS": frozenset({S.DISPATCHED, S.CLOSED}),
    "READONLY": frozenset(),
}

# Normalize user-provided / DB roles into canonical workflow roles.
#
# Examples handled:
# - "Qualified Person" -> QUALIFIED_PERSON
# - "QualifiedPerson"  -> QUALIFIED_PERSON
# - "qp"               -> QUALIFIED_PERSON
# - "QC Analyst"       -> QC_ANALYST
ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": "ADMIN",
    "ADMINISTRATOR": "ADMIN",
    "SYSTEM_ADMIN": "ADMIN",
    "SUPERUSER": "ADMIN",
    "PRODUCTION": "PRODUCTION_MANAGER",
    "PRODUCTIONMANAGER": "PRODUCTION_MANAGER",
    "QC": "QC_ANALYST",
    "QCANALYST": "QC_ANALYST",
    "QCMANAGER": "QC_MANAGER",
    "QP": "QUALIFIED_PERSON",
    "QUALIFIEDPERSON": "QUALIFIED_PERSON",
    "DISPENSER": "DISPENSING",
    "LOGISTIC": "LOGISTICS",
    "VIEWER": "READONLY",
    "READ_ONLY": "READONLY",
}


def _assert_complete() -> None:
    missing = sorted(set(BatchStatus.values) - set(BATCH_TRANSITIONS))
    if missing:
        raise ImproperlyConfigured(f"BATCH_TRANSITIONS has no entry for: {', '.join(missing)}")

    for source, targets in BATCH_TRANSITIONS.items():
        unknown = sorted(set(targets) - set(BatchStatus.values))
        if unknown:
            raise ImproperlyConfigured(f"{source} points to unknown statuses: {', '.join(unknown)}")

    for role, targets in ROLE_ALLOWED_TARGETS.items():
        unknown = sorted(set(targets) - set(BatchStatus.values) - {WILDCARD})
        if unknown:
            raise ImproperlyConfigured(f"Role {role} grants unknown statuses: {', '.join(unknown)}")


_assert_complete()


# ===============================================================
# Normalization
# ===============================================================

def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


def normalize_role(value: str) -> str:
    """
    Canonicalize role strings so that small formatting differences
    do not break permission logic.

    Steps:
    1) Uppercase and strip
    2) Convert whitespace and hyphens to underscores
    3) Collapse repeated underscores
    4) Apply alias mapping (with and without separators)
    """
    r = str(value or "").strip().upper()
    if not r:
        return "READONLY"

    r = re.sub(r"[\s\-]+", "_", r)
    r = re.sub(r"_+", "_", r)

    if r in ROLE_ALIASES:
        return ROLE_ALIASES[r]

    compact = r.replace("_", "")
    if compact in ROLE_ALIASES:
        return ROLE_ALIASES[compact]

    return r


# ===============================================================
# Public workflow API
# ===============================================================

def is_known_status(status: str) -> bool:
    return normalize_state(status) in BATCH_TRANSITIONS


def allowed_next_states(current: str) -> List[str]:
    """
    Canonical next states only, independent of role and guards.
    """
    return sorted(BATCH_TRANSITIONS.get(normalize_state(current), frozenset()))


def is_terminal(status: str) -> bool:
    cur = normalize_state(status)
    return cur in BATCH_TRANSITIONS and not BATCH_TRANSITIONS[cur]


def validate_transition(current: str, target: str) -> None:
    """
    Raises ValueError if current -> target is not an edge of the graph.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in BATCH_TRANSITIONS:
        raise ValueError(f"Unknown batch status: {cur}")
    if tgt not in BATCH_TRANSITIONS:
        raise ValueError(f"Unknown batch status: {tgt}")

    if is_terminal(cur):
        raise ValueError(f"Batch is in terminal status {cur} and cannot be moved")

    if tgt not in BATCH_TRANSITIONS[cur]:
        raise ValueError(f"Invalid batch transition: {cur} -> {tgt}")


def role_allows(role: str, target: str) -> bool:
    """
    Centralized role gating. Keep policy decisions here only.
    """
    allowed = ROLE_ALLOWED_TARGETS.get(normalize_role(role))
    if not allowed:
        return False
    if WILDCARD in allowed:
        return True
    return normalize_state(target) in allowed


def validate_transition_with_role(current: str, target: str, role: str) -> None:
    """
    Graph edge plus role gate. Raises ValueError / PermissionError.
    """
    validate_transition(current, target)
    if not role_allows(role, target):
        raise PermissionError(
            f"Role '{normalize_role(role)}' may not move a batch to {normalize_state(target)}"
        )


def allowed_transitions(current: str, role: Optional[str] = None) -> List[str]:
    """
    Targets reachable from ``current`` by the graph, filtered by role when given.
    """
    nxt = allowed_next_states(current)
    if role is None:
        return nxt
    return [t for t in nxt if role_allows(role, t)]


def required_roles(target: str) -> List[str]:
    """
    Canonical roles that may move a batch into ``target``.
    """
    tgt = normalize_state(target)
    return sorted(
        role
        for role, targets in ROLE_ALLOWED_TARGETS.items()
        if WILDCARD in targets or tgt in targets
    )


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    return {
        "kind": "batch",
        "initial": INITIAL_STATUS.value,
        "states": sorted(BatchStatus.values),
        "transitions": {state: sorted(nxt) for state, nxt in BATCH_TRANSITIONS.items()},
        "terminal_states": sorted(s for s, nxt in BATCH_TRANSITIONS.items() if not nxt),
        "roles": {
            role: sorted(targets) for role, targets in ROLE_ALLOWED_TARGETS.items()
        },
        "reason_required": sorted(REASON_REQUIRED_STATUSES),
    }


__all__ = [
    "BATCH_TRANSITIONS",
    "INITIAL_STATUS",
    "REASON_REQUIRED_STATUSES",
    "ROLE_ALLOWED_TARGETS",
    "WILDCARD",
    "normalize_state",
    "normalize_role",
    "is_known_status",
    "is_terminal",
    "allowed_next_states",
    "validate_transition",
    "validate_transition_with_role",
    "role_allows",
    "allowed_transitions",
    "required_roles",
    "workflow_definition",
]
