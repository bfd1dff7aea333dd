# batch_core/services/qc_session.py
"""
QC session lifecycle: generation from a template, result entry, human
judgment, submission for review and review.

QcSession.status is never written from outside this module. Every mutation
re-aggregates the full result set and bumps the session revision under a
compare-and-swap, all inside one transaction with the result write.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from batch_core.choices import (
    BatchEventType,
    BatchStatus,
    QcResultStatus,
    QcResultType,
    QcSessionStatus,
    ReviewDecision,
)
from batch_core.collaborators import get_audit_sink, get_role_provider, get_template_provider
from batch_core.exceptions import (
    ActionForbidden,
    ConcurrencyConflict,
    DownstreamUnavailable,
    PreconditionFailed,
    RecordNotFound,
    ValidationError,
)
from batch_core.models import Batch, BatchEvent, QcResult, QcSession
from batch_core.qc import aggregate_status, completion_timestamp, derive_status, requires_judgment
from batch_core.services.decimals import fit_to_field, parse_decimal

logger = logging.getLogger(__name__)

GENERATE_ROLES = frozenset({"ADMIN", "QC_MANAGER", "PRODUCTION_MANAGER"})
ENTRY_ROLES = frozenset({"ADMIN", "QC_MANAGER", "QC_ANALYST"})
REVIEW_ROLES = frozenset({"ADMIN", "QC_MANAGER", "QUALIFIED_PERSON"})

GENERATE_BATCH_STATUSES = frozenset({
    BatchStatus.PRODUCTION_COMPLETE,
    BatchStatus.QC_PENDING,
    BatchStatus.QC_IN_PROGRESS,
})
ENTRY_BATCH_STATUSES = frozenset({BatchStatus.QC_PENDING, BatchStatus.QC_IN_PROGRESS})

LOCKED_SESSION_STATUSES = frozenset({
    QcSessionStatus.WAITING_REVIEW,
    QcSessionStatus.QC_PASSED,
    QcSessionStatus.QC_FAILED,
})


class QcSessionService:
    def __init__(self, audit=None, roles=None, templates=None):
        self.audit = audit if audit is not None else get_audit_sink()
        self.roles = roles if roles is not None else get_role_provider()
        self.templates = templates if templates is not None else get_template_provider()

    # ---------------------------------------------------------------
    # Generation
    # ---------------------------------------------------------------

    def generate_session(self, batch_id, user) -> QcSession:
        role = self._require_role(user, GENERATE_ROLES, "generate a QC session")

        with transaction.atomic():
            batch = self._load_batch(batch_id)
            if batch.status not in GENERATE_BATCH_STATUSES:
                raise PreconditionFailed(
                    f"Batch {batch.batch_number} is {batch.status}; QC session cannot be generated",
                    user_message="QC can only be started once production is complete.",
                    details={"batch_status": batch.status},
                )
            if QcSession.objects.filter(batch=batch).exists():
                raise PreconditionFailed(
                    f"Batch {batch.batch_number} already has a QC session",
                    user_message="This batch already has a QC session.",
                )

            snapshot = self.templates.active_snapshot(batch.product)
            if snapshot is None or not snapshot.lines:
                raise PreconditionFailed(
                    f"No active QC template for product {batch.product_id}",
                    user_message="No active QC template is configured for this product.",
                )

            try:
                with transaction.atomic():
                    session = QcSession.objects.create(batch=batch, template_id=snapshot.template_id)
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"QC session for batch {batch.batch_number} was created concurrently"
                ) from exc

            QcResult.objects.bulk_create([
                QcResult(
                    session=session,
                    test_code=line.test_code,
                    test_name=line.test_name,
                    display_order=line.display_order,
                    unit=line.unit,
                    criteria_display=line.criteria_display,
                    result_type=line.result_type,
                    spec_rule_type=line.rule_type,
                    spec_min=line.spec_min,
                    spec_max=line.spec_max,
                    spec_target=line.spec_target,
                    options=list(line.options),
                    is_required=line.is_required,
                )
                for line in snapshot.lines
            ])

            self._checkpoint(
                batch,
                BatchEventType.QC_SESSION_GENERATED,
                user,
                role,
                metadata={"template": snapshot.template_id, "version": snapshot.version, "tests": len(snapshot.lines)},
            )
            self._audit(
                user,
                "CREATE",
                "QcSession",
                session.pk,
                None,
                {"batch": batch.batch_number, "template": snapshot.name, "version": snapshot.version},
            )

        logger.info("QC session %s generated for batch %s", session.pk, batch.batch_number)
        return session

    # ---------------------------------------------------------------
    # Result entry
    # ---------------------------------------------------------------

    def submit_result(self, result_id, entered_value, user) -> QcResult:
        self._require_role(user, ENTRY_ROLES, "enter QC results")

        with transaction.atomic():
            result, session = self._load_result_for_entry(result_id)

            old_status = result.status
            changed = self._apply_value(result, entered_value)
            if changed:
                # a new value invalidates any judgment made on the old one
                result.judgment = ""
                result.judgment_reason = ""
                result.judged_by = None
                result.judged_at = None

            evaluation = derive_status(result)
            result.status = evaluation.status
            result.fail_reason = evaluation.fail_reason or ""
            result.entered_by = user
            result.entered_at = timezone.now()
            result.save()

            self._recompute(session)
            self._audit(
                user,
                "UPDATE",
                "QcResult",
                result.pk,
                {"status": old_status},
                {"status": result.status, "value": self._display_value(result), "fail_reason": result.fail_reason},
            )

        return result

    def record_judgment(self, result_id, decision: str, user, reason: str = "") -> QcResult:
        """
        Human PASS/FAIL for lines the evaluator does not grade (TEXT,
        OPTION_LIST, NUMERIC with PASS_FAIL_ONLY / CUSTOM_TEXT).
        """
        self._require_role(user, ENTRY_ROLES, "record a QC judgment")

        decision = str(decision or "").strip().upper()
        if decision not in (QcResultStatus.PASS, QcResultStatus.FAIL):
            raise ValidationError(
                f"Judgment must be PASS or FAIL, got {decision!r}",
                details={"field": "decision"},
            )
        reason = (reason or "").strip()
        if decision == QcResultStatus.FAIL and not reason:
            raise ValidationError(
                "A reason is required for a FAIL judgment",
                user_message="Please explain why this result fails.",
                details={"field": "reason"},
            )

        with transaction.atomic():
            result, session = self._load_result_for_entry(result_id)

            if not requires_judgment(result.result_type, result.spec_rule_type):
                raise PreconditionFailed(
                    f"Result {result.test_code} is graded automatically",
                    user_message="This test is graded automatically from the entered value.",
                )
            if self._display_value(result) in (None, ""):
                raise PreconditionFailed(
                    f"Result {result.test_code} has no value to judge",
                    user_message="Enter a value before recording a judgment.",
                )

            old_status = result.status
            now = timezone.now()
            result.judgment = decision
            result.judgment_reason = reason
            result.judged_by = user
            result.judged_at = now

            evaluation = derive_status(result)
            result.status = evaluation.status
            result.fail_reason = evaluation.fail_reason or ""
            result.save()

            self._recompute(session)
            self._audit(
                user,
                "JUDGMENT",
                "QcResult",
                result.pk,
                {"status": old_status},
                {"status": result.status, "judgment": decision, "reason": reason},
            )

        return result

    # ---------------------------------------------------------------
    # Review
    # ---------------------------------------------------------------

    def submit_for_review(self, batch_id, user, notes: str = "") -> QcSession:
        role = self._require_role(user, ENTRY_ROLES, "submit QC for review")

        with transaction.atomic():
            session = self._load_session(batch_id)
            if session.status == QcSessionStatus.WAITING_REVIEW or session.reviewed_at is not None:
                raise PreconditionFailed(
                    f"QC session {session.pk} is {session.status} and cannot be submitted again",
                    user_message="This QC session has already been submitted.",
                )

            pending = list(
                session.results.filter(is_required=True, status=QcResultStatus.PENDING)
                .values_list("test_code", flat=True)
            )
            if pending:
                raise PreconditionFailed(
                    f"Required results still pending: {', '.join(pending)}",
                    user_message="All required tests must be completed before submitting for review.",
                    details={"pending": pending},
                )

            old_status = session.status
            self._cas(
                session,
                status=QcSessionStatus.WAITING_REVIEW,
                analyst=user,
                notes=notes or session.notes,
            )
            self._checkpoint(session.batch, BatchEventType.QC_SUBMITTED, user, role, note=notes)
            self._audit(
                user, "SUBMIT", "QcSession", session.pk,
                {"status": old_status}, {"status": QcSessionStatus.WAITING_REVIEW},
            )

        session.refresh_from_db()
        return session

    def review(self, batch_id, decision: str, user, notes: str = "") -> QcSession:
        role = self._require_role(user, REVIEW_ROLES, "review QC")

        decision = str(decision or "").strip().upper()
        if decision not in ReviewDecision.values:
            raise ValidationError(
                f"Decision must be APPROVE or REJECT, got {decision!r}",
                details={"field": "decision"},
            )

        with transaction.atomic():
            session = self._load_session(batch_id)
            if session.status != QcSessionStatus.WAITING_REVIEW:
                raise PreconditionFailed(
                    f"QC session {session.pk} is {session.status}, not WAITING_REVIEW",
                    user_message="Only sessions waiting for review can be reviewed.",
                )

            if decision == ReviewDecision.APPROVE:
                failed = list(
                    session.results.filter(status=QcResultStatus.FAIL).values_list("test_code", flat=True)
                )
                if failed:
                    raise PreconditionFailed(
                        f"Cannot approve with failed results: {', '.join(failed)}",
                        user_message="QC cannot be approved while any test has failed.",
                        details={"failed": failed},
                    )
                new_status = QcSessionStatus.QC_PASSED
            else:
                new_status = QcSessionStatus.QC_FAILED

            now = timezone.now()
            self._cas(
                session,
                status=new_status,
                reviewed_by=user,
                reviewed_at=now,
                completed_at=completion_timestamp(session.status, new_status, session.completed_at, now),
                notes=notes or session.notes,
            )
            self._checkpoint(
                session.batch,
                BatchEventType.QC_REVIEWED,
                user,
                role,
                note=notes,
                metadata={"decision": decision},
            )
            self._audit(
                user, "REVIEW", "QcSession", session.pk,
                {"status": session.status}, {"status": new_status, "decision": decision},
            )

        logger.info("QC session %s reviewed: %s", session.pk, decision)
        session.refresh_from_db()
        return session

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    def session_for_batch(self, batch_id) -> QcSession:
        return self._load_session(batch_id)

    # ---------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------

    def _require_role(self, user, allowed, action: str) -> str:
        role = self.roles.role_for(user)
        if role not in allowed:
            raise ActionForbidden(
                f"Role '{role}' may not {action}",
                user_message=f"Your role ({role}) cannot {action}.",
                details={"role": role},
            )
        return role

    @staticmethod
    def _load_batch(batch_id) -> Batch:
        batch = Batch.objects.select_related("product").filter(pk=batch_id).first()
        if batch is None:
            raise RecordNotFound(f"Batch {batch_id} not found")
        return batch

    @staticmethod
    def _load_session(batch_id) -> QcSession:
        session = QcSession.objects.select_related("batch").filter(batch_id=batch_id).first()
        if session is None:
            if not Batch.objects.filter(pk=batch_id).exists():
                raise RecordNotFound(f"Batch {batch_id} not found")
            raise RecordNotFound(
                f"Batch {batch_id} has no QC session",
                user_message="No QC session has been generated for this batch.",
            )
        return session

    @staticmethod
    def _load_result_for_entry(result_id):
        result = QcResult.objects.select_related("session__batch").filter(pk=result_id).first()
        if result is None:
            raise RecordNotFound(f"QC result {result_id} not found")

        session = result.session
        batch = session.batch
        if batch.status not in ENTRY_BATCH_STATUSES:
            raise PreconditionFailed(
                f"Batch {batch.batch_number} is {batch.status}; results cannot be entered",
                user_message="Results can only be entered while the batch is in QC.",
                details={"batch_status": batch.status},
            )
        if session.status in LOCKED_SESSION_STATUSES:
            raise PreconditionFailed(
                f"QC session {session.pk} is {session.status}; results are locked",
                user_message="Results are locked for this QC session.",
                details={"session_status": session.status},
            )
        return result, session

    @staticmethod
    def _apply_value(result: QcResult, value) -> bool:
        """Store ``value`` in the column for the result type. Returns True if it changed."""
        if result.result_type == QcResultType.NUMERIC:
            number = parse_decimal(value, result.test_code)
            # grade exactly what the column will hold
            number = fit_to_field(number, QcResult, "numeric_value", label=result.test_code)
            changed = result.numeric_value is None or result.numeric_value != number
            result.numeric_value = number
            return changed

        text = "" if value is None else str(value).strip()

        if result.result_type == QcResultType.PASS_FAIL:
            text = text.upper()
            if text not in (QcResultStatus.PASS, QcResultStatus.FAIL):
                raise ValidationError(
                    f"{result.test_code} expects PASS or FAIL",
                    details={"field": "value"},
                )
            changed = result.pass_fail_value != text
            result.pass_fail_value = text
            return changed

        if result.result_type == QcResultType.OPTION_LIST:
            if result.options and text not in result.options:
                raise ValidationError(
                    f"{result.test_code}: {text!r} is not one of {result.options}",
                    details={"field": "value", "options": result.options},
                )
            changed = result.selected_option != text
            result.selected_option = text
            return changed

        changed = result.text_value != text
        result.text_value = text
        return changed

    @staticmethod
    def _display_value(result: QcResult):
        if result.result_type == QcResultType.NUMERIC:
            return None if result.numeric_value is None else str(result.numeric_value)
        if result.result_type == QcResultType.PASS_FAIL:
            return result.pass_fail_value
        if result.result_type == QcResultType.OPTION_LIST:
            return result.selected_option
        return result.text_value

    def _recompute(self, session: QcSession) -> str:
        new_status = aggregate_status(session.results.all())
        if new_status == session.status:
            self._cas(session)
            return new_status

        now = timezone.now()
        self._cas(
            session,
            status=new_status,
            completed_at=completion_timestamp(session.status, new_status, session.completed_at, now),
        )
        return new_status

    @staticmethod
    def _cas(session: QcSession, **fields) -> None:
        fields["revision"] = F("revision") + 1
        fields["updated_at"] = timezone.now()
        rows = QcSession.objects.filter(pk=session.pk, revision=session.revision).update(**fields)
        if rows != 1:
            raise ConcurrencyConflict(
                f"QC session {session.pk} changed concurrently (revision {session.revision})",
                details={"expected_revision": session.revision},
            )

    @staticmethod
    def _checkpoint(batch, event_type, user, role, note: str = "", metadata: Optional[Dict[str, Any]] = None):
        BatchEvent.objects.create(
            batch=batch,
            event_type=event_type,
            from_status=batch.status,
            to_status=None,
            actor=user if getattr(user, "pk", None) else None,
            actor_role=role,
            note=note or "",
            metadata=metadata or {},
        )

    def _audit(self, user, action, entity_type, entity_id, old_value, new_value) -> None:
        try:
            self.audit.record(user, action, entity_type, entity_id, old_value, new_value)
        except DownstreamUnavailable as exc:
            logger.error("Audit unavailable for %s %s#%s: %s", action, entity_type, entity_id, exc.message)


def default_qc_session_service() -> QcSessionService:
    return QcSessionService()
