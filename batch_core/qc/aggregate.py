# batch_core/qc/aggregate.py
"""
Session-level QC status from the individual result statuses.

Always a full pass over the current result set, never incremental, so any
retried or out-of-order write is corrected by the next recomputation.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from batch_core.choices import QcResultStatus, QcSessionStatus

TERMINAL_SESSION_STATUSES = frozenset({QcSessionStatus.QC_PASSED, QcSessionStatus.QC_FAILED})


def aggregate_status(results: Iterable[Any]) -> str:
    """
    Compute the session status from objects exposing ``is_required`` and ``status``.

    Order of checks matters:
    1. every required result PENDING -> NOT_STARTED (also true for zero entries)
    2. any required FAIL             -> QC_FAILED
    3. every required PASS           -> QC_PASSED
    4. otherwise                     -> IN_PROGRESS
    """
    required = [r for r in results if r.is_required]

    if all(r.status == QcResultStatus.PENDING for r in required):
        return QcSessionStatus.NOT_STARTED

    if any(r.status == QcResultStatus.FAIL for r in required):
        return QcSessionStatus.QC_FAILED

    if all(r.status == QcResultStatus.PASS for r in required):
        return QcSessionStatus.QC_PASSED

    return QcSessionStatus.IN_PROGRESS


def completion_timestamp(old_status: str, new_status: str, completed_at, now):
    """
    Completion time is stamped on the first move into a terminal status and
    never touched again.
    """
    if completed_at is not None:
        return completed_at
    if new_status in TERMINAL_SESSION_STATUSES and old_status != new_status:
        return now
    return None


def summarize(results: Iterable[Any]) -> Dict[str, Optional[int]]:
    rows = list(results)
    total = len(rows)
    completed = sum(1 for r in rows if r.status != QcResultStatus.PENDING)
    passed = sum(1 for r in rows if r.status == QcResultStatus.PASS)
    failed = sum(1 for r in rows if r.status == QcResultStatus.FAIL)
    pending_required = sum(
        1 for r in rows if r.is_required and r.status == QcResultStatus.PENDING
    )

    return {
        "total_tests": total,
        "completed_tests": completed,
        "passed_tests": passed,
        "failed_tests": failed,
        "pending_required": pending_required,
        "progress": round(completed * 100 / total) if total else 0,
    }
