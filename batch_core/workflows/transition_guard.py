# batch_core/workflows/transition_guard.py
"""
Batch transition guard.

Checks run in a fixed order and the first failure wins:

1. the edge exists in the transition graph        -> INVALID_TRANSITION
2. business guards (hold/QC/release preconditions) -> BUSINESS_GUARD
3. the actor's role may reach the target          -> ROLE_FORBIDDEN

Business guards run before the role check so a blocked batch reports the
block to every caller, whatever their role.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from batch_core.choices import BatchStatus, QcSessionStatus
from batch_core.exceptions import TransitionRejected
from batch_core.workflows import (
    allowed_next_states,
    is_terminal,
    normalize_role,
    normalize_state,
    role_allows,
    validate_transition,
)

S = BatchStatus

BLOCKED_STATES = frozenset({S.ON_HOLD, S.REJECTED, S.FAILED_QC, S.CANCELLED, S.DEVIATION_OPEN})

DISPATCH_ADJACENT = frozenset({
    S.DISPENSING_IN_PROGRESS,
    S.DISPENSED,
    S.PACKED,
    S.DISPATCHED,
})

GUARD_BLOCKED_STATE = "BLOCKED_STATE"
GUARD_NOT_RELEASED = "NOT_RELEASED"
GUARD_QC_NOT_PASSED = "QC_NOT_PASSED"


def _has_active_release(batch) -> bool:
    return batch.releases.filter(is_active=True).exists()


def _qc_session_status(batch) -> Optional[str]:
    from batch_core.models import QcSession

    return (
        QcSession.objects.filter(batch_id=batch.pk)
        .values_list("status", flat=True)
        .first()
    )


def _business_guard(batch, current: str, target: str) -> None:
    if target in DISPATCH_ADJACENT:
        if current in BLOCKED_STATES:
            raise TransitionRejected(
                TransitionRejected.BUSINESS_GUARD,
                f"Batch {batch.batch_number} is {current}; {target} is blocked",
                user_message=f"Batch is {current} and cannot move to dispensing or dispatch.",
                details={"guard": GUARD_BLOCKED_STATE},
            )
        if not _has_active_release(batch):
            raise TransitionRejected(
                TransitionRejected.BUSINESS_GUARD,
                f"Batch {batch.batch_number} has no active release; {target} is blocked",
                user_message="Batch must be released by a Qualified Person first.",
                details={"guard": GUARD_NOT_RELEASED},
            )

    if target == S.RELEASED and current != S.QC_PASSED and not _has_active_release(batch):
        raise TransitionRejected(
            TransitionRejected.BUSINESS_GUARD,
            f"Batch {batch.batch_number} cannot resume to RELEASED without an active release",
            user_message="Batch was never released; release it from QC_PASSED.",
            details={"guard": GUARD_NOT_RELEASED},
        )

    if target == S.QC_PASSED:
        qc_status = _qc_session_status(batch)
        if qc_status != QcSessionStatus.QC_PASSED:
            raise TransitionRejected(
                TransitionRejected.BUSINESS_GUARD,
                f"Batch {batch.batch_number} QC session is {qc_status or 'missing'}",
                user_message="QC must be approved before the batch can be marked QC passed.",
                details={"guard": GUARD_QC_NOT_PASSED, "qc_status": qc_status},
            )


def check_transition(batch, target: str, role: str) -> None:
    """
    Raise TransitionRejected if ``batch`` may not move to ``target`` as ``role``.
    """
    current = normalize_state(batch.status)
    tgt = normalize_state(target)

    try:
        validate_transition(current, tgt)
    except ValueError as exc:
        allowed = allowed_next_states(current)
        if is_terminal(current):
            user_message = f"Batch is {current}, a terminal status. No further changes allowed."
        else:
            user_message = f"Cannot move batch from {current} to {tgt}."
        raise TransitionRejected(
            TransitionRejected.INVALID_TRANSITION,
            str(exc),
            user_message=user_message,
            details={"allowed_statuses": allowed},
        ) from exc

    _business_guard(batch, current, tgt)

    if not role_allows(role, tgt):
        canonical = normalize_role(role)
        raise TransitionRejected(
            TransitionRejected.ROLE_FORBIDDEN,
            f"Role '{canonical}' may not move a batch to {tgt}",
            user_message=f"Your role ({canonical}) cannot move a batch to {tgt}.",
            details={"role": canonical},
        )


def guard_summary(batch, role: str) -> List[Dict[str, Any]]:
    """
    Every graph target from the current status with whether it is reachable
    right now and, if not, why.
    """
    summary = []
    for target in allowed_next_states(batch.status):
        entry: Dict[str, Any] = {"status": target, "allowed": True, "reason": None}
        try:
            check_transition(batch, target, role)
        except TransitionRejected as exc:
            entry.update(
                allowed=False,
                reason=exc.reason,
                guard=exc.guard,
                detail=exc.user_message,
            )
        summary.append(entry)
    return summary


__all__ = [
    "BLOCKED_STATES",
    "DISPATCH_ADJACENT",
    "GUARD_BLOCKED_STATE",
    "GUARD_NOT_RELEASED",
    "GUARD_QC_NOT_PASSED",
    "check_transition",
    "guard_summary",
]
