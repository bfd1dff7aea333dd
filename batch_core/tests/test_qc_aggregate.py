# batch_core/tests/test_qc_aggregate.py
from __future__ import annotations

import itertools
from datetime import datetime, timezone
from types import SimpleNamespace

from batch_core.choices import QcSessionStatus
from batch_core.qc import aggregate_status, completion_timestamp, summarize


def r(status, required=True):
    return SimpleNamespace(status=status, is_required=required)


def test_no_results_is_not_started():
    assert aggregate_status([]) == QcSessionStatus.NOT_STARTED


def test_all_required_pending_is_not_started():
    assert aggregate_status([r("PENDING"), r("PENDING"), r("PASS", required=False)]) == QcSessionStatus.NOT_STARTED


def test_any_required_fail_dominates():
    results = [r("PASS"), r("FAIL"), r("PASS")]
    for order in itertools.permutations(results):
        assert aggregate_status(order) == QcSessionStatus.QC_FAILED


def test_fail_with_pending_is_still_failed():
    assert aggregate_status([r("FAIL"), r("PENDING")]) == QcSessionStatus.QC_FAILED


def test_all_required_pass():
    assert aggregate_status([r("PASS"), r("PASS"), r("PENDING", required=False)]) == QcSessionStatus.QC_PASSED


def test_optional_fail_does_not_fail_session():
    assert aggregate_status([r("PASS"), r("FAIL", required=False)]) == QcSessionStatus.QC_PASSED


def test_partial_is_in_progress():
    assert aggregate_status([r("PASS"), r("PENDING")]) == QcSessionStatus.IN_PROGRESS


def test_aggregate_is_repeatable():
    results = [r("PASS"), r("PENDING")]
    assert aggregate_status(results) == aggregate_status(results)


def test_completion_timestamp_set_once():
    t1 = datetime(2025, 1, 1, tzinfo=timezone.utc)
    t2 = datetime(2025, 1, 2, tzinfo=timezone.utc)

    assert completion_timestamp("IN_PROGRESS", "IN_PROGRESS", None, t1) is None
    assert completion_timestamp("IN_PROGRESS", "QC_FAILED", None, t1) == t1
    assert completion_timestamp("QC_FAILED", "QC_PASSED", t1, t2) == t1


def test_summarize():
    summary = summarize([r("PASS"), r("FAIL"), r("PENDING"), r("PENDING", required=False)])
    assert summary == {
        "total_tests": 4,
        "completed_tests": 2,
        "passed_tests": 1,
        "failed_tests": 1,
        "pending_required": 1,
        "progress": 50,
    }
    assert summarize([])["progress"] == 0
