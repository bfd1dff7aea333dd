# batch_core/services/batch_lifecycle.py
"""
Batch status transitions.

BatchLifecycleService.transition is the only code path that changes
Batch.status. One call is one transaction:

    load -> guard -> compare-and-swap -> event (+ release) -> order cascade
    -> audit -> outbox row for the release workflow

The release workflow itself is only enqueued after commit; see
batch_core.tasks.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from batch_core.choices import BatchEventType, BatchStatus, ReleaseType
from batch_core.collaborators import get_audit_sink, get_role_provider
from batch_core.exceptions import (
    ConcurrencyConflict,
    DownstreamUnavailable,
    RecordNotFound,
    ValidationError,
)
from batch_core.models import Batch, BatchEvent, BatchRelease, Order, ReleaseWorkflowRequest
from batch_core.services.decimals import fit_to_field, parse_decimal
from batch_core.workflows import (
    REASON_REQUIRED_STATUSES,
    allowed_transitions as table_transitions,
    is_known_status,
    normalize_state,
)
from batch_core.workflows.cascade import ORDER_STATUS_CASCADE, check_cascade_table, order_status_for
from batch_core.workflows.transition_guard import check_transition, guard_summary

logger = logging.getLogger(__name__)

S = BatchStatus


def _default_dispatcher(request_id: int) -> None:
    from batch_core.tasks import enqueue_release_workflow

    enqueue_release_workflow(request_id)


class BatchLifecycleService:
    def __init__(
        self,
        audit=None,
        workflow_dispatcher: Optional[Callable[[int], None]] = None,
        roles=None,
        cascade: Optional[Mapping[str, str]] = None,
    ):
        self.audit = audit if audit is not None else get_audit_sink()
        self.workflow_dispatcher = workflow_dispatcher or _default_dispatcher
        self.roles = roles if roles is not None else get_role_provider()
        if cascade is not None:
            check_cascade_table(cascade)
        self.cascade = ORDER_STATUS_CASCADE if cascade is None else cascade

    # ---------------------------------------------------------------
    # Mutation
    # ---------------------------------------------------------------

    def transition(
        self,
        batch_id,
        requested_status: str,
        user,
        note: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        signature: Optional[str] = None,
        release_type: str = ReleaseType.FULL,
    ) -> Batch:
        target = normalize_state(requested_status)
        note = (note or "").strip()

        # --------------------------------------------------
        # 0. Request validation, nothing touched yet
        # --------------------------------------------------
        if not is_known_status(target):
            raise ValidationError(
                f"Unknown batch status: {requested_status!r}",
                user_message="Choose a valid batch status.",
            )
        if target in REASON_REQUIRED_STATUSES and not note:
            raise ValidationError(
                f"A reason is required to move a batch to {target}",
                user_message=f"Please give a reason for moving the batch to {target}.",
                details={"field": "note"},
            )
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise ValidationError(
                "metadata must be an object",
                details={"field": "metadata"},
            )
        if release_type not in ReleaseType.values:
            raise ValidationError(
                f"Unknown release type: {release_type!r}",
                details={"field": "release_type"},
            )
        activity = metadata.get("actual_activity")
        if activity not in (None, ""):
            activity = fit_to_field(
                parse_decimal(activity, "actual_activity", field="metadata.actual_activity"),
                Batch,
                "actual_activity",
                field="metadata.actual_activity",
            )
        else:
            activity = None

        role = self.roles.role_for(user)

        with transaction.atomic():
            # --------------------------------------------------
            # 1. Load
            # --------------------------------------------------
            batch = Batch.objects.filter(pk=batch_id).first()
            if batch is None:
                raise RecordNotFound(f"Batch {batch_id} not found")
            current = batch.status

            # --------------------------------------------------
            # 2. Guard
            # --------------------------------------------------
            check_transition(batch, target, role)

            is_release = current == S.QC_PASSED and target == S.RELEASED
            signature = (signature or "").strip()
            if is_release and not signature:
                raise ValidationError(
                    "Release requires an electronic signature",
                    user_message="Sign the release to continue.",
                    details={"field": "signature"},
                )

            # --------------------------------------------------
            # 3. Compare-and-swap
            # --------------------------------------------------
            now = timezone.now()
            updates = self._status_updates(batch, target, activity, now)
            rows = Batch.objects.filter(pk=batch.pk, status=current).update(**updates)
            if rows != 1:
                raise ConcurrencyConflict(
                    f"Batch {batch.batch_number} changed from {current} while transitioning to {target}",
                    details={"expected_status": current},
                )

            # --------------------------------------------------
            # 4. Event (+ release)
            # --------------------------------------------------
            BatchEvent.objects.create(
                batch=batch,
                event_type=BatchEventType.STATUS_CHANGE,
                from_status=current,
                to_status=target,
                actor=user if getattr(user, "pk", None) else None,
                actor_role=role,
                note=note,
                metadata=metadata,
            )

            release = None
            if is_release:
                release = self._create_release(batch, user, release_type, signature, note, now)

            # --------------------------------------------------
            # 5. Order cascade
            # --------------------------------------------------
            cascaded = self._cascade_orders(batch, target, now)

            # --------------------------------------------------
            # 6. Audit
            # --------------------------------------------------
            self._audit(
                user,
                "STATUS_CHANGE",
                "Batch",
                batch.pk,
                {"status": current},
                {"status": target, "note": note, "orders_updated": cascaded},
            )
            if release is not None:
                self._audit(
                    user,
                    "RELEASE",
                    "BatchRelease",
                    release.pk,
                    None,
                    {"batch": batch.batch_number, "release_type": release.release_type},
                )

            # --------------------------------------------------
            # 7. Release workflow, after commit
            # --------------------------------------------------
            if target == S.QC_PASSED:
                self._queue_release_workflow(batch, user, note)

        logger.info(
            "Batch %s: %s -> %s by %s (%s)",
            batch.batch_number,
            current,
            target,
            getattr(user, "username", "-"),
            role,
        )
        batch.refresh_from_db()
        return batch

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    def allowed_transitions(self, batch_id, user) -> Dict[str, Any]:
        batch = Batch.objects.filter(pk=batch_id).first()
        if batch is None:
            raise RecordNotFound(f"Batch {batch_id} not found")

        role = self.roles.role_for(user)
        summary = guard_summary(batch, role)
        return {
            "batch": batch.pk,
            "status": batch.status,
            "role": role,
            "role_targets": table_transitions(batch.status, role),
            "allowed": [entry["status"] for entry in summary if entry["allowed"]],
            "transitions": summary,
        }

    def events(self, batch_id):
        if not Batch.objects.filter(pk=batch_id).exists():
            raise RecordNotFound(f"Batch {batch_id} not found")
        return BatchEvent.objects.filter(batch_id=batch_id).select_related("actor").order_by("created_at", "id")

    # ---------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------

    @staticmethod
    def _status_updates(batch, target, activity: Optional[Decimal], now) -> Dict[str, Any]:
        updates: Dict[str, Any] = {"status": target, "updated_at": now}

        if target == S.IN_PRODUCTION and batch.actual_start is None:
            updates["actual_start"] = now
        if target == S.PRODUCTION_COMPLETE and batch.actual_end is None:
            updates["actual_end"] = now

        if activity is not None:
            updates["actual_activity"] = activity

        return updates

    @staticmethod
    def _create_release(batch, user, release_type, signature, reason, now) -> BatchRelease:
        # A batch re-released after a hold supersedes its earlier release.
        BatchRelease.objects.filter(
            batch=batch, release_type=release_type, is_active=True
        ).update(is_active=False, updated_at=now)

        return BatchRelease.objects.create(
            batch=batch,
            released_by=user,
            release_type=release_type,
            electronic_signature=signature,
            signature_timestamp=now,
            reason=reason,
        )

    def _cascade_orders(self, batch, target, now) -> int:
        order_status = order_status_for(target, self.cascade)
        if order_status is None:
            return 0
        return (
            Order.objects.filter(batch_id=batch.pk)
            .exclude(status=order_status)
            .update(status=order_status, updated_at=now)
        )

    def _audit(self, user, action, entity_type, entity_id, old_value, new_value) -> None:
        try:
            self.audit.record(user, action, entity_type, entity_id, old_value, new_value)
        except DownstreamUnavailable as exc:
            logger.error("Audit unavailable for %s %s#%s: %s", action, entity_type, entity_id, exc.message)

    def _queue_release_workflow(self, batch, user, note) -> None:
        conf = settings.BATCH_RELEASE_WORKFLOW
        try:
            with transaction.atomic():
                request = ReleaseWorkflowRequest.objects.create(
                    batch=batch,
                    trigger_status=S.QC_PASSED,
                    requested_by=user if getattr(user, "pk", None) else None,
                    priority=conf.get("PRIORITY", "HIGH"),
                    notes=note or f"Batch {batch.batch_number} passed QC",
                )
        except DatabaseError:
            logger.exception("Could not record release workflow request for batch %s", batch.pk)
            return

        dispatcher = self.workflow_dispatcher
        request_id = request.pk
        transaction.on_commit(lambda: dispatcher(request_id))


def default_lifecycle_service() -> BatchLifecycleService:
    return BatchLifecycleService()
