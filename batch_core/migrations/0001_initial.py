import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

from batch_core.choices import (
    BatchEventType,
    BatchStatus,
    OrderStatus,
    QcResultStatus,
    QcResultType,
    QcSessionStatus,
    ReleaseType,
    SpecRuleType,
    TemplateStatus,
    WorkflowRequestState,
)


def timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def spec_decimal():
    return models.DecimalField(max_digits=14, decimal_places=4, null=True, blank=True)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("code", models.CharField(db_index=True, max_length=50, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={"ordering": ["code"]},
        ),
        migrations.CreateModel(
            name="Equipment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("code", models.CharField(db_index=True, max_length=50, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("equipment_type", models.CharField(blank=True, max_length=100)),
            ],
            options={"ordering": ["code"], "verbose_name_plural": "equipment"},
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("batch_number", models.CharField(blank=True, db_index=True, max_length=50, unique=True)),
                ("status", models.CharField(choices=BatchStatus.choices, db_index=True, default="PLANNED", max_length=32)),
                ("planned_start", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("planned_end", models.DateTimeField(blank=True, null=True)),
                ("actual_start", models.DateTimeField(blank=True, null=True)),
                ("actual_end", models.DateTimeField(blank=True, null=True)),
                ("target_activity", models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True)),
                ("actual_activity", models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True)),
                ("activity_unit", models.CharField(default="mCi", max_length=16)),
                ("notes", models.TextField(blank=True)),
                ("is_archived", models.BooleanField(db_index=True, default=False)),
                ("equipment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="batches", to="batch_core.equipment")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="batches", to="batch_core.product")),
            ],
            options={"ordering": ["-created_at"], "verbose_name_plural": "batches"},
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("order_number", models.CharField(db_index=True, max_length=50, unique=True)),
                ("customer_name", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(choices=OrderStatus.choices, db_index=True, default="DRAFT", max_length=32)),
                ("batch", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="orders", to="batch_core.batch")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders", to="batch_core.product")),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("role", models.CharField(help_text="e.g., QC Analyst, Qualified Person, Logistics", max_length=100)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="mes_role", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["user__username"]},
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("entity_type", models.CharField(db_index=True, max_length=64)),
                ("entity_id", models.CharField(db_index=True, max_length=64)),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx")],
            },
        ),
        migrations.CreateModel(
            name="BatchEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_type", models.CharField(choices=BatchEventType.choices, db_index=True, max_length=32)),
                ("from_status", models.CharField(blank=True, max_length=32)),
                ("to_status", models.CharField(blank=True, max_length=32, null=True)),
                ("actor_role", models.CharField(blank=True, max_length=64)),
                ("note", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="batch_events", to=settings.AUTH_USER_MODEL)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="events", to="batch_core.batch")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [models.Index(fields=["batch", "created_at"], name="batch_event_timeline_idx")],
            },
        ),
        migrations.CreateModel(
            name="BatchRelease",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("release_type", models.CharField(choices=ReleaseType.choices, default="FULL", max_length=16)),
                ("electronic_signature", models.CharField(max_length=255)),
                ("signature_timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                ("reason", models.TextField(blank=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="releases", to="batch_core.batch")),
                ("released_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="batch_releases", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_active", True)),
                        fields=("batch", "release_type"),
                        name="one_active_release_per_type",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="QcTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                ("version", models.PositiveIntegerField(default=1)),
                ("status", models.CharField(choices=TemplateStatus.choices, db_index=True, default="DRAFT", max_length=16)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="qc_templates", to="batch_core.product")),
            ],
            options={
                "ordering": ["product", "-version"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "ACTIVE")),
                        fields=("product",),
                        name="one_active_qc_template_per_product",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="QcTemplateLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("test_code", models.CharField(max_length=50)),
                ("test_name", models.CharField(max_length=255)),
                ("display_order", models.PositiveIntegerField(default=0)),
                ("result_type", models.CharField(choices=QcResultType.choices, max_length=16)),
                ("unit", models.CharField(blank=True, max_length=32)),
                ("is_required", models.BooleanField(default=True)),
                ("rule_type", models.CharField(blank=True, choices=SpecRuleType.choices, max_length=16, null=True)),
                ("spec_min", spec_decimal()),
                ("spec_max", spec_decimal()),
                ("spec_target", spec_decimal()),
                ("criteria_text", models.TextField(blank=True)),
                ("options", models.JSONField(blank=True, default=list)),
                ("template", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="batch_core.qctemplate")),
            ],
            options={
                "ordering": ["template", "display_order"],
                "unique_together": {("template", "test_code")},
            },
        ),
        migrations.CreateModel(
            name="QcSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("status", models.CharField(choices=QcSessionStatus.choices, db_index=True, default="NOT_STARTED", max_length=16)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("revision", models.PositiveIntegerField(default=0)),
                ("analyst", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="qc_sessions_analysed", to=settings.AUTH_USER_MODEL)),
                ("batch", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="qc_session", to="batch_core.batch")),
                ("reviewed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="qc_sessions_reviewed", to=settings.AUTH_USER_MODEL)),
                ("template", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="sessions", to="batch_core.qctemplate")),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="QcResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("test_code", models.CharField(max_length=50)),
                ("test_name", models.CharField(max_length=255)),
                ("display_order", models.PositiveIntegerField(default=0)),
                ("unit", models.CharField(blank=True, max_length=32)),
                ("criteria_display", models.CharField(blank=True, max_length=255)),
                ("result_type", models.CharField(choices=QcResultType.choices, max_length=16)),
                ("spec_rule_type", models.CharField(blank=True, choices=SpecRuleType.choices, max_length=16, null=True)),
                ("spec_min", spec_decimal()),
                ("spec_max", spec_decimal()),
                ("spec_target", spec_decimal()),
                ("options", models.JSONField(blank=True, default=list)),
                ("is_required", models.BooleanField(default=True)),
                ("numeric_value", models.DecimalField(blank=True, decimal_places=6, max_digits=18, null=True)),
                ("text_value", models.TextField(blank=True)),
                ("pass_fail_value", models.CharField(blank=True, max_length=8)),
                ("selected_option", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(choices=QcResultStatus.choices, db_index=True, default="PENDING", max_length=8)),
                ("fail_reason", models.TextField(blank=True)),
                ("entered_at", models.DateTimeField(blank=True, null=True)),
                ("judgment", models.CharField(blank=True, choices=QcResultStatus.choices, max_length=8)),
                ("judgment_reason", models.TextField(blank=True)),
                ("judged_at", models.DateTimeField(blank=True, null=True)),
                ("entered_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="qc_results_entered", to=settings.AUTH_USER_MODEL)),
                ("judged_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="qc_results_judged", to=settings.AUTH_USER_MODEL)),
                ("session", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="results", to="batch_core.qcsession")),
            ],
            options={
                "ordering": ["session", "display_order", "id"],
                "unique_together": {("session", "test_code")},
            },
        ),
        migrations.CreateModel(
            name="ReleaseWorkflowRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *timestamps(),
                ("entity_type", models.CharField(default="BATCH_RELEASE", max_length=32)),
                ("trigger_status", models.CharField(max_length=32)),
                ("priority", models.CharField(default="HIGH", max_length=16)),
                ("notes", models.TextField(blank=True)),
                ("state", models.CharField(choices=WorkflowRequestState.choices, db_index=True, default="PENDING", max_length=16)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("dispatched_at", models.DateTimeField(blank=True, null=True)),
                ("external_reference", models.CharField(blank=True, max_length=255)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="workflow_requests", to="batch_core.batch")),
                ("requested_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="release_workflow_requests", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["-created_at"]},
        ),
    ]
