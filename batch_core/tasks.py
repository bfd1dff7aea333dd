# batch_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from kombu.exceptions import OperationalError

from batch_core.choices import WorkflowRequestState
from batch_core.collaborators import get_workflow_client
from batch_core.exceptions import DownstreamUnavailable
from batch_core.models import ReleaseWorkflowRequest

logger = logging.getLogger(__name__)


def enqueue_release_workflow(request_id: int) -> None:
    """
    on_commit hook. A broker outage leaves the row PENDING for the retry task.
    """
    try:
        dispatch_release_workflow.delay(request_id)
    except OperationalError:
        logger.exception("Could not enqueue release workflow request %s; will retry", request_id)


@shared_task
def dispatch_release_workflow(request_id: int) -> str:
    """
    Send one outbox row to the release workflow collaborator.

    Returns the resulting row state. Failures are recorded on the row and
    never raised.
    """
    with transaction.atomic():
        req = (
            ReleaseWorkflowRequest.objects.select_for_update()
            .select_related("batch", "requested_by")
            .filter(pk=request_id)
            .first()
        )
        if req is None:
            logger.warning("Release workflow request %s no longer exists", request_id)
            return "MISSING"
        if req.state in (WorkflowRequestState.DISPATCHED, WorkflowRequestState.SKIPPED):
            return req.state

        req.attempts += 1
        client = get_workflow_client()
        try:
            ack = client.request(
                entity_type=req.entity_type,
                entity_id=req.batch_id,
                trigger_status=req.trigger_status,
                requested_by=req.requested_by.username if req.requested_by else None,
                priority=req.priority,
                notes=req.notes,
            )
        except DownstreamUnavailable as exc:
            req.state = WorkflowRequestState.FAILED
            req.last_error = exc.message
            logger.warning(
                "Release workflow for batch %s failed (attempt %s): %s",
                req.batch.batch_number,
                req.attempts,
                exc.message,
            )
        else:
            if ack.accepted:
                req.state = WorkflowRequestState.DISPATCHED
                req.dispatched_at = timezone.now()
                req.external_reference = ack.reference
                req.last_error = ""
                logger.info("Release workflow requested for batch %s", req.batch.batch_number)
            else:
                req.state = WorkflowRequestState.SKIPPED
                req.last_error = ack.detail
                logger.info(
                    "Release workflow skipped for batch %s: %s",
                    req.batch.batch_number,
                    ack.detail or "not accepted",
                )

        req.save(update_fields=[
            "state", "attempts", "last_error", "dispatched_at", "external_reference", "updated_at",
        ])
        return req.state


@shared_task
def retry_release_workflows(limit: int = 100) -> int:
    """
    Periodic sweep: re-dispatch FAILED rows under the attempt limit and PENDING
    rows whose on_commit enqueue never reached the broker.
    """
    max_attempts = settings.BATCH_RELEASE_WORKFLOW.get("MAX_ATTEMPTS", 5)
    ids = list(
        ReleaseWorkflowRequest.objects.filter(
            state__in=[WorkflowRequestState.FAILED, WorkflowRequestState.PENDING],
            attempts__lt=max_attempts,
        )
        .order_by("created_at")
        .values_list("pk", flat=True)[:limit]
    )

    for request_id in ids:
        dispatch_release_workflow(request_id)

    if ids:
        logger.info("Retried %s release workflow request(s)", len(ids))
    return len(ids)
