# batch_core/models/batch.py
from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.db.models.functions import Length
from django.utils import timezone

from batch_core.choices import BatchEventType, BatchStatus, ReleaseType
from batch_core.workflows.guards import AppendOnlyMixin, StatusWriteGuardMixin

from .core import Equipment, Product, TimeStampedModel


BATCH_NUMBER_ATTEMPTS = 5


def next_batch_number(day=None) -> str:
    """BYYMMDD-NNN, sequence restarting every day."""
    day = day or timezone.localdate()
    prefix = f"B{day:%y%m%d}-"
    # longest suffix first: -1000 sorts after -999 as text
    last = (
        Batch.objects.filter(batch_number__regex=rf"^{prefix}[0-9]+$")
        .order_by(Length("batch_number").desc(), "-batch_number")
        .values_list("batch_number", flat=True)
        .first()
    )
    seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:03d}"


class Batch(StatusWriteGuardMixin, TimeStampedModel):
    """
    One production run of a product.

    status is owned by BatchLifecycleService; see StatusWriteGuardMixin.
    """
    batch_number = models.CharField(max_length=50, unique=True, db_index=True, blank=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="batches")
    equipment = models.ForeignKey(
        Equipment, on_delete=models.SET_NULL, null=True, blank=True, related_name="batches"
    )
    status = models.CharField(
        max_length=32, choices=BatchStatus.choices, default=BatchStatus.PLANNED, db_index=True
    )

    planned_start = models.DateTimeField(null=True, blank=True, db_index=True)
    planned_end = models.DateTimeField(null=True, blank=True)
    actual_start = models.DateTimeField(null=True, blank=True)
    actual_end = models.DateTimeField(null=True, blank=True)

    target_activity = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    actual_activity = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    activity_unit = models.CharField(max_length=16, default="mCi")

    notes = models.TextField(blank=True)
    is_archived = models.BooleanField(default=False, db_index=True)

    def __str__(self):
        return f"{self.batch_number} ({self.status})"

    def save(self, *args, **kwargs):
        if self.batch_number:
            return super().save(*args, **kwargs)
        if not self._state.adding:
            self.batch_number = next_batch_number()
            return super().save(*args, **kwargs)

        # a concurrent create can take the same number between read and insert
        for attempt in range(1, BATCH_NUMBER_ATTEMPTS + 1):
            self.batch_number = next_batch_number()
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                taken = Batch.objects.filter(batch_number=self.batch_number).exists()
                if not taken or attempt == BATCH_NUMBER_ATTEMPTS:
                    raise

    def delete(self, *args, **kwargs):
        raise PermissionDenied("Batches are never deleted. Archive instead.")

    @property
    def active_release(self):
        return self.releases.filter(is_active=True).order_by("-created_at").first()

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "batches"


class BatchEvent(AppendOnlyMixin, models.Model):
    """
    Immutable timeline entry for a batch.

    STATUS_CHANGE rows carry from/to status. QC checkpoints leave to_status empty.
    """
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="events")
    event_type = models.CharField(max_length=32, choices=BatchEventType.choices, db_index=True)
    from_status = models.CharField(max_length=32, blank=True)
    to_status = models.CharField(max_length=32, null=True, blank=True)

    actor = models.ForeignKey(
        User, on_delete=models.PROTECT, null=True, blank=True, related_name="batch_events"
    )
    actor_role = models.CharField(max_length=64, blank=True)
    note = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["batch", "created_at"], name="batch_event_timeline_idx"),
        ]

    def __str__(self):
        if self.to_status is None:
            return f"{self.batch_id}: {self.event_type}"
        return f"{self.batch_id}: {self.from_status} → {self.to_status}"


class BatchRelease(TimeStampedModel):
    """Electronic release by a Qualified Person."""
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="releases")
    released_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name="batch_releases")
    release_type = models.CharField(
        max_length=16, choices=ReleaseType.choices, default=ReleaseType.FULL
    )
    electronic_signature = models.CharField(max_length=255)
    signature_timestamp = models.DateTimeField(default=timezone.now)
    reason = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    def __str__(self):
        return f"{self.batch_id} {self.release_type} by {self.released_by_id}"

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "release_type"],
                condition=Q(is_active=True),
                name="one_active_release_per_type",
            ),
        ]
