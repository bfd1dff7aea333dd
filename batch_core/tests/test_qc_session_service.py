# batch_core/tests/test_qc_session_service.py
from __future__ import annotations

from decimal import Decimal

import pytest

from batch_core.choices import (
    BatchEventType,
    BatchStatus,
    QcResultStatus,
    QcResultType,
    QcSessionStatus,
    SpecRuleType,
    TemplateStatus,
)
from batch_core.exceptions import (
    ActionForbidden,
    ConcurrencyConflict,
    PreconditionFailed,
    RecordNotFound,
    ValidationError,
)
from batch_core.models import BatchEvent, QcSession
from batch_core.services import qc_session as qc_module
from batch_core.tests.conftest import min_line

pytestmark = pytest.mark.django_db


@pytest.fixture
def three_min_tests(template_factory):
    return template_factory([min_line("ASSAY"), min_line("PURITY"), min_line("YIELD")])


@pytest.fixture
def qc_batch(batch_factory):
    return batch_factory(BatchStatus.QC_IN_PROGRESS)


def _results(session):
    return list(session.results.order_by("display_order"))


# ---------------------------------------------------------------
# Generation
# ---------------------------------------------------------------

def test_generate_session_snapshots_template(qc_service, qc_batch, three_min_tests, user_qc_manager, audit):
    session = qc_service.generate_session(qc_batch.pk, user_qc_manager)

    assert session.status == QcSessionStatus.NOT_STARTED
    assert session.template_id == three_min_tests.pk

    results = _results(session)
    assert [r.test_code for r in results] == ["ASSAY", "PURITY", "YIELD"]
    assert all(r.status == QcResultStatus.PENDING for r in results)
    assert results[0].criteria_display == "≥10%"
    assert results[0].spec_min == Decimal("10")

    event = BatchEvent.objects.get(batch=qc_batch)
    assert event.event_type == BatchEventType.QC_SESSION_GENERATED
    assert event.to_status is None
    assert audit.actions() == ["CREATE"]


def test_criteria_display_per_rule(qc_service, qc_batch, template_factory, user_admin):
    template_factory([
        {"test_code": "PH", "test_name": "pH", "result_type": QcResultType.NUMERIC,
         "rule_type": SpecRuleType.RANGE, "spec_min": Decimal("4.5"), "spec_max": Decimal("7.5")},
        {"test_code": "MAXV", "test_name": "Volume", "result_type": QcResultType.NUMERIC,
         "rule_type": SpecRuleType.MAX, "spec_max": Decimal("5"), "unit": " mL"},
        {"test_code": "HL", "test_name": "Half-life", "result_type": QcResultType.NUMERIC,
         "rule_type": SpecRuleType.EQUAL, "spec_target": Decimal("110")},
        {"test_code": "STER", "test_name": "Sterility", "result_type": QcResultType.PASS_FAIL,
         "rule_type": SpecRuleType.PASS_FAIL_ONLY},
        {"test_code": "APP", "test_name": "Appearance", "result_type": QcResultType.TEXT,
         "rule_type": SpecRuleType.CUSTOM_TEXT, "criteria_text": "Clear, colourless"},
    ])

    session = qc_service.generate_session(qc_batch.pk, user_admin)
    assert [r.criteria_display for r in _results(session)] == [
        "4.5–7.5", "≤5 mL", "=110", "Pass/Fail", "Clear, colourless",
    ]


def test_generate_requires_role(qc_service, qc_batch, three_min_tests, user_qc_analyst):
    with pytest.raises(ActionForbidden):
        qc_service.generate_session(qc_batch.pk, user_qc_analyst)


def test_generate_requires_production_complete(qc_service, batch_factory, three_min_tests, user_admin):
    batch = batch_factory(BatchStatus.IN_PRODUCTION)
    with pytest.raises(PreconditionFailed):
        qc_service.generate_session(batch.pk, user_admin)


def test_generate_requires_active_template(qc_service, qc_batch, template_factory, user_admin):
    template_factory([min_line("ASSAY")], status=TemplateStatus.DRAFT)
    with pytest.raises(PreconditionFailed, match="No active QC template"):
        qc_service.generate_session(qc_batch.pk, user_admin)


def test_generate_only_once(qc_service, qc_batch, three_min_tests, user_admin):
    qc_service.generate_session(qc_batch.pk, user_admin)
    with pytest.raises(PreconditionFailed, match="already"):
        qc_service.generate_session(qc_batch.pk, user_admin)
    assert QcSession.objects.count() == 1


# ---------------------------------------------------------------
# Result entry
# ---------------------------------------------------------------

def test_min_scenario_12_9_15(qc_service, qc_batch, three_min_tests, user_qc_manager, user_qc_analyst):
    session = qc_service.generate_session(qc_batch.pk, user_qc_manager)
    first, second, third = _results(session)

    qc_service.submit_result(first.pk, 12, user_qc_analyst)
    session.refresh_from_db()
    assert session.status == QcSessionStatus.IN_PROGRESS

    failed = qc_service.submit_result(second.pk, "9", user_qc_analyst)
    assert failed.status == QcResultStatus.FAIL
    assert "9" in failed.fail_reason and "10" in failed.fail_reason

    session.refresh_from_db()
    assert session.status == QcSessionStatus.QC_FAILED
    assert session.completed_at is not None

    # the failed session is closed; later entries are refused
    with pytest.raises(PreconditionFailed, match="locked"):
        qc_service.submit_result(third.pk, 15, user_qc_analyst)

    session.refresh_from_db()
    assert session.status == QcSessionStatus.QC_FAILED


def test_all_pass_completes_session(qc_service, qc_batch, three_min_tests, user_admin, audit):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    for result, value in zip(_results(session), [10, "11.5", Decimal("30")]):
        qc_service.submit_result(result.pk, value, user_admin)

    session.refresh_from_db()
    assert session.status == QcSessionStatus.QC_PASSED
    assert session.completed_at is not None
    assert session.revision == 3
    assert audit.actions() == ["CREATE", "UPDATE", "UPDATE", "UPDATE"]
    assert audit.records[-1]["old_value"] == {"status": "PENDING"}
    assert audit.records[-1]["new_value"]["status"] == "PASS"


def test_revision_bumps_even_without_status_change(qc_service, qc_batch, three_min_tests, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    first = _results(session)[0]

    qc_service.submit_result(first.pk, 12, user_admin)
    qc_service.submit_result(first.pk, 13, user_admin)

    session.refresh_from_db()
    assert session.status == QcSessionStatus.IN_PROGRESS
    assert session.revision == 2


def test_entry_requires_batch_in_qc(qc_service, batch_factory, session_factory, user_admin):
    batch = batch_factory(BatchStatus.PRODUCTION_COMPLETE)
    session = session_factory(batch, [{"test_code": "ASSAY"}])

    with pytest.raises(PreconditionFailed):
        qc_service.submit_result(session.results.get().pk, "PASS", user_admin)


def test_entry_requires_role(qc_service, qc_batch, three_min_tests, user_admin, user_qp):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    with pytest.raises(ActionForbidden):
        qc_service.submit_result(_results(session)[0].pk, 12, user_qp)


@pytest.mark.parametrize("value", ["abc", "", None, "NaN", True])
def test_bad_numeric_value(qc_service, qc_batch, three_min_tests, user_admin, value):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    result = _results(session)[0]

    with pytest.raises(ValidationError):
        qc_service.submit_result(result.pk, value, user_admin)

    result.refresh_from_db()
    assert result.numeric_value is None
    assert result.status == QcResultStatus.PENDING


@pytest.mark.parametrize(
    "line, entered, stored",
    [
        (min_line("ASSAY"), "9.9999999", Decimal("10.000000")),
        (min_line("ID", rule_type=SpecRuleType.EQUAL, spec_min=None, spec_target=Decimal("7")),
         "7.0000001", Decimal("7.000000")),
    ],
)
def test_value_graded_as_stored(qc_service, qc_batch, template_factory, user_admin, line, entered, stored):
    template_factory([line])
    session = qc_service.generate_session(qc_batch.pk, user_admin)

    result = qc_service.submit_result(_results(session)[0].pk, entered, user_admin)
    assert result.status == QcResultStatus.PASS

    result.refresh_from_db()
    assert result.numeric_value == stored
    assert result.status == QcResultStatus.PASS
    assert qc_module.derive_status(result).status == result.status


@pytest.mark.parametrize("value", ["1e20", "999999999999.9999999", -10 ** 13])
def test_value_too_large_for_column(qc_service, qc_batch, three_min_tests, user_admin, value):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    result = _results(session)[0]

    with pytest.raises(ValidationError) as excinfo:
        qc_service.submit_result(result.pk, value, user_admin)
    assert excinfo.value.details["max_digits"] == 18

    result.refresh_from_db()
    assert result.numeric_value is None
    assert result.status == QcResultStatus.PENDING
    session.refresh_from_db()
    assert session.revision == 0


def test_pass_fail_entry(qc_service, qc_batch, session_factory, user_admin):
    session = session_factory(qc_batch, [{"test_code": "STER"}])
    result = session.results.get()

    with pytest.raises(ValidationError):
        qc_service.submit_result(result.pk, "maybe", user_admin)

    result = qc_service.submit_result(result.pk, "fail", user_admin)
    assert result.status == QcResultStatus.FAIL
    assert result.fail_reason == "Manual fail selection"


def test_option_must_be_listed(qc_service, qc_batch, session_factory, user_admin):
    session = session_factory(
        qc_batch,
        [{"test_code": "COLOR", "result_type": QcResultType.OPTION_LIST, "options": ["Clear", "Yellow"]}],
    )
    result = session.results.get()

    with pytest.raises(ValidationError):
        qc_service.submit_result(result.pk, "Blue", user_admin)

    result = qc_service.submit_result(result.pk, "Clear", user_admin)
    assert result.selected_option == "Clear"
    assert result.status == QcResultStatus.PENDING


def test_missing_result(qc_service, user_admin):
    with pytest.raises(RecordNotFound):
        qc_service.submit_result(999999, 1, user_admin)


def test_lost_revision_race(qc_service, qc_batch, three_min_tests, user_admin, monkeypatch):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    real_aggregate = qc_module.aggregate_status

    def aggregate_with_competing_writer(results):
        QcSession.objects.filter(pk=session.pk).update(revision=99)
        return real_aggregate(results)

    monkeypatch.setattr(qc_module, "aggregate_status", aggregate_with_competing_writer)

    with pytest.raises(ConcurrencyConflict):
        qc_service.submit_result(_results(session)[0].pk, 12, user_admin)

    assert _results(session)[0].status == QcResultStatus.PENDING


# ---------------------------------------------------------------
# Judgment, submission and review
# ---------------------------------------------------------------

@pytest.fixture
def text_template(template_factory):
    return template_factory([
        min_line("ASSAY"),
        {"test_code": "APP", "test_name": "Appearance", "result_type": QcResultType.TEXT,
         "rule_type": SpecRuleType.CUSTOM_TEXT, "criteria_text": "Clear"},
    ])


def test_text_result_blocks_submission_until_judged(qc_service, qc_batch, text_template, user_admin, user_qc_analyst, user_qp):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    assay, appearance = _results(session)

    qc_service.submit_result(assay.pk, 12, user_qc_analyst)
    appearance = qc_service.submit_result(appearance.pk, "Clear, no particles", user_qc_analyst)
    assert appearance.status == QcResultStatus.PENDING

    with pytest.raises(PreconditionFailed) as exc:
        qc_service.submit_for_review(qc_batch.pk, user_qc_analyst)
    assert exc.value.details["pending"] == ["APP"]

    appearance = qc_service.record_judgment(appearance.pk, "PASS", user_qc_analyst)
    assert appearance.status == QcResultStatus.PASS
    assert appearance.judged_by == user_qc_analyst

    session = qc_service.submit_for_review(qc_batch.pk, user_qc_analyst, notes="All done")
    assert session.status == QcSessionStatus.WAITING_REVIEW
    assert session.analyst == user_qc_analyst
    completed = session.completed_at

    session = qc_service.review(qc_batch.pk, "APPROVE", user_qp)
    assert session.status == QcSessionStatus.QC_PASSED
    assert session.reviewed_by == user_qp
    assert session.reviewed_at is not None
    assert session.completed_at == completed

    checkpoints = list(
        BatchEvent.objects.filter(batch=qc_batch).values_list("event_type", flat=True)
    )
    assert checkpoints == [
        BatchEventType.QC_SESSION_GENERATED,
        BatchEventType.QC_SUBMITTED,
        BatchEventType.QC_REVIEWED,
    ]


def test_judgment_only_for_deferred_lines(qc_service, qc_batch, three_min_tests, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    result = _results(session)[0]
    qc_service.submit_result(result.pk, 12, user_admin)

    with pytest.raises(PreconditionFailed, match="graded automatically"):
        qc_service.record_judgment(result.pk, "PASS", user_admin)


def test_fail_judgment_needs_reason(qc_service, qc_batch, text_template, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    appearance = _results(session)[1]
    qc_service.submit_result(appearance.pk, "Cloudy", user_admin)

    with pytest.raises(ValidationError):
        qc_service.record_judgment(appearance.pk, "FAIL", user_admin)

    appearance = qc_service.record_judgment(appearance.pk, "FAIL", user_admin, reason="Particles visible")
    assert appearance.status == QcResultStatus.FAIL
    assert appearance.fail_reason == "Particles visible"

    session.refresh_from_db()
    assert session.status == QcSessionStatus.QC_FAILED


def test_judgment_needs_a_value(qc_service, qc_batch, text_template, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    with pytest.raises(PreconditionFailed):
        qc_service.record_judgment(_results(session)[1].pk, "PASS", user_admin)


def test_new_value_clears_judgment(qc_service, qc_batch, text_template, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    appearance = _results(session)[1]
    qc_service.submit_result(appearance.pk, "Clear", user_admin)
    qc_service.record_judgment(appearance.pk, "PASS", user_admin)

    appearance = qc_service.submit_result(appearance.pk, "Slightly yellow", user_admin)
    assert appearance.judgment == ""
    assert appearance.status == QcResultStatus.PENDING


def test_failed_session_still_needs_required_entries(qc_service, qc_batch, three_min_tests, user_admin):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    first, second, third = _results(session)
    qc_service.submit_result(first.pk, 12, user_admin)
    qc_service.submit_result(second.pk, 9, user_admin)

    with pytest.raises(PreconditionFailed):
        qc_service.submit_for_review(qc_batch.pk, user_admin)

    session.refresh_from_db()
    assert session.status == QcSessionStatus.QC_FAILED


def test_review_reject_forces_failure(qc_service, qc_batch, three_min_tests, user_admin, user_qc_manager, audit):
    session = qc_service.generate_session(qc_batch.pk, user_admin)
    for result in _results(session):
        qc_service.submit_result(result.pk, 50, user_admin)

    qc_service.submit_for_review(qc_batch.pk, user_admin)
    session = qc_service.review(qc_batch.pk, "reject", user_qc_manager, notes="Chromatogram artefact")

    assert session.status == QcSessionStatus.QC_FAILED
    assert session.notes == "Chromatogram artefact"
    assert audit.records[-1]["new_value"] == {"status": "QC_FAILED", "decision": "REJECT"}


def test_approve_with_failed_result_refused(qc_service, qc_batch, session_factory, user_admin):
    session_factory(
        qc_batch,
        [{"test_code": "A", "status": "PASS"}, {"test_code": "B", "status": "FAIL", "is_required": False}],
        status=QcSessionStatus.WAITING_REVIEW,
    )

    with pytest.raises(PreconditionFailed) as exc:
        qc_service.review(qc_batch.pk, "APPROVE", user_admin)
    assert exc.value.details["failed"] == ["B"]


def test_review_requires_waiting_review(qc_service, qc_batch, three_min_tests, user_admin):
    qc_service.generate_session(qc_batch.pk, user_admin)
    with pytest.raises(PreconditionFailed, match="WAITING_REVIEW"):
        qc_service.review(qc_batch.pk, "APPROVE", user_admin)


def test_review_requires_role(qc_service, qc_batch, session_factory, user_qc_analyst):
    session_factory(qc_batch, [{"status": "PASS"}], status=QcSessionStatus.WAITING_REVIEW)
    with pytest.raises(ActionForbidden):
        qc_service.review(qc_batch.pk, "APPROVE", user_qc_analyst)


def test_review_bad_decision(qc_service, qc_batch, user_admin):
    with pytest.raises(ValidationError):
        qc_service.review(qc_batch.pk, "MAYBE", user_admin)


def test_submit_twice_refused(qc_service, qc_batch, session_factory, user_admin):
    session_factory(qc_batch, [{"status": "PASS"}], status=QcSessionStatus.QC_PASSED)
    qc_service.submit_for_review(qc_batch.pk, user_admin)

    with pytest.raises(PreconditionFailed):
        qc_service.submit_for_review(qc_batch.pk, user_admin)


def test_session_missing(qc_service, qc_batch, user_admin):
    with pytest.raises(RecordNotFound):
        qc_service.submit_for_review(qc_batch.pk, user_admin)
