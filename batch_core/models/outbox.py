# batch_core/models/outbox.py
from django.contrib.auth.models import User
from django.db import models

from batch_core.choices import WorkflowRequestState

from .batch import Batch
from .core import TimeStampedModel


class ReleaseWorkflowRequest(TimeStampedModel):
    """
    Pending call to the external release workflow.

    Written in the same transaction that moves a batch to QC_PASSED and
    dispatched by Celery after commit; FAILED rows are retried by the
    periodic retry task.
    """
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="workflow_requests")
    entity_type = models.CharField(max_length=32, default="BATCH_RELEASE")
    trigger_status = models.CharField(max_length=32)
    requested_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="release_workflow_requests"
    )
    priority = models.CharField(max_length=16, default="HIGH")
    notes = models.TextField(blank=True)

    state = models.CharField(
        max_length=16,
        choices=WorkflowRequestState.choices,
        default=WorkflowRequestState.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    dispatched_at = models.DateTimeField(null=True, blank=True)
    external_reference = models.CharField(max_length=255, blank=True)

    def __str__(self):
        return f"{self.entity_type} for {self.batch_id} [{self.state}]"

    class Meta:
        ordering = ["-created_at"]
