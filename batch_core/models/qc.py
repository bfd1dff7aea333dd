# batch_core/models/qc.py
from django.contrib.auth.models import User
from django.db import models
from django.db.models import Q

from batch_core.choices import (
    QcResultStatus,
    QcResultType,
    QcSessionStatus,
    SpecRuleType,
    TemplateStatus,
)
from batch_core.workflows.guards import StatusWriteGuardMixin

from .batch import Batch
from .core import Product, TimeStampedModel

SPEC_DECIMAL = dict(max_digits=14, decimal_places=4, null=True, blank=True)


# ---------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------
class QcTemplate(TimeStampedModel):
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="qc_templates")
    name = models.CharField(max_length=255)
    version = models.PositiveIntegerField(default=1)
    status = models.CharField(
        max_length=16, choices=TemplateStatus.choices, default=TemplateStatus.DRAFT, db_index=True
    )

    def __str__(self):
        return f"{self.name} v{self.version} ({self.status})"

    class Meta:
        ordering = ["product", "-version"]
        constraints = [
            models.UniqueConstraint(
                fields=["product"],
                condition=Q(status="ACTIVE"),
                name="one_active_qc_template_per_product",
            ),
        ]


class QcTemplateLine(models.Model):
    template = models.ForeignKey(QcTemplate, on_delete=models.CASCADE, related_name="lines")
    test_code = models.CharField(max_length=50)
    test_name = models.CharField(max_length=255)
    display_order = models.PositiveIntegerField(default=0)
    result_type = models.CharField(max_length=16, choices=QcResultType.choices)
    unit = models.CharField(max_length=32, blank=True)
    is_required = models.BooleanField(default=True)

    rule_type = models.CharField(max_length=16, choices=SpecRuleType.choices, null=True, blank=True)
    spec_min = models.DecimalField(**SPEC_DECIMAL)
    spec_max = models.DecimalField(**SPEC_DECIMAL)
    spec_target = models.DecimalField(**SPEC_DECIMAL)
    criteria_text = models.TextField(blank=True)
    options = models.JSONField(default=list, blank=True)

    def __str__(self):
        return f"{self.test_code} - {self.test_name}"

    class Meta:
        ordering = ["template", "display_order"]
        unique_together = [("template", "test_code")]


# ---------------------------------------------------------------------
# Sessions & results
# ---------------------------------------------------------------------
class QcSession(StatusWriteGuardMixin, TimeStampedModel):
    """
    QC run for one batch.

    status is derived from the result set by QcSessionService; revision is the
    optimistic concurrency token bumped on every mutation.
    """
    batch = models.OneToOneField(Batch, on_delete=models.PROTECT, related_name="qc_session")
    template = models.ForeignKey(
        QcTemplate, on_delete=models.PROTECT, null=True, blank=True, related_name="sessions"
    )
    status = models.CharField(
        max_length=16,
        choices=QcSessionStatus.choices,
        default=QcSessionStatus.NOT_STARTED,
        db_index=True,
    )
    analyst = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="qc_sessions_analysed"
    )
    reviewed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="qc_sessions_reviewed"
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    revision = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"QC {self.batch_id} ({self.status})"

    class Meta:
        ordering = ["-created_at"]


class QcResult(TimeStampedModel):
    """One test line of a session with its rule snapshotted at generation time."""
    session = models.ForeignKey(QcSession, on_delete=models.CASCADE, related_name="results")
    test_code = models.CharField(max_length=50)
    test_name = models.CharField(max_length=255)
    display_order = models.PositiveIntegerField(default=0)
    unit = models.CharField(max_length=32, blank=True)
    criteria_display = models.CharField(max_length=255, blank=True)

    result_type = models.CharField(max_length=16, choices=QcResultType.choices)
    spec_rule_type = models.CharField(
        max_length=16, choices=SpecRuleType.choices, null=True, blank=True
    )
    spec_min = models.DecimalField(**SPEC_DECIMAL)
    spec_max = models.DecimalField(**SPEC_DECIMAL)
    spec_target = models.DecimalField(**SPEC_DECIMAL)
    options = models.JSONField(default=list, blank=True)
    is_required = models.BooleanField(default=True)

    # exactly one populated, chosen by result_type
    numeric_value = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True)
    text_value = models.TextField(blank=True)
    pass_fail_value = models.CharField(max_length=8, blank=True)
    selected_option = models.CharField(max_length=255, blank=True)

    status = models.CharField(
        max_length=8, choices=QcResultStatus.choices, default=QcResultStatus.PENDING, db_index=True
    )
    fail_reason = models.TextField(blank=True)
    entered_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="qc_results_entered"
    )
    entered_at = models.DateTimeField(null=True, blank=True)

    judgment = models.CharField(max_length=8, choices=QcResultStatus.choices, blank=True)
    judgment_reason = models.TextField(blank=True)
    judged_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="qc_results_judged"
    )
    judged_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.test_code}: {self.status}"

    class Meta:
        ordering = ["session", "display_order", "id"]
        unique_together = [("session", "test_code")]
