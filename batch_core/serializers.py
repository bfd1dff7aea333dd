from __future__ import annotations

from django.contrib.auth.models import User
from rest_framework import serializers

from .choices import BatchStatus, QcResultStatus, ReleaseType, ReviewDecision
from .models import Batch, BatchEvent, BatchRelease, QcResult, QcSession
from .qc import summarize


# ===============================================================
# Helpers
# ===============================================================

class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "email")
        read_only_fields = fields


# ===============================================================
# Batch
# ===============================================================

class BatchReleaseSerializer(serializers.ModelSerializer):
    released_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = BatchRelease
        fields = (
            "id",
            "release_type",
            "released_by",
            "signature_timestamp",
            "reason",
            "is_active",
        )
        read_only_fields = fields


class BatchSerializer(serializers.ModelSerializer):
    """Read-only: status only moves through the transition endpoint."""
    product_code = serializers.CharField(source="product.code", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    equipment_code = serializers.CharField(source="equipment.code", read_only=True, default=None)
    active_release = BatchReleaseSerializer(read_only=True)

    class Meta:
        model = Batch
        fields = (
            "id",
            "batch_number",
            "product",
            "product_code",
            "product_name",
            "equipment",
            "equipment_code",
            "status",
            "planned_start",
            "planned_end",
            "actual_start",
            "actual_end",
            "target_activity",
            "actual_activity",
            "activity_unit",
            "notes",
            "is_archived",
            "active_release",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class BatchEventSerializer(serializers.ModelSerializer):
    actor = UserSlimSerializer(read_only=True)

    class Meta:
        model = BatchEvent
        fields = (
            "id",
            "event_type",
            "from_status",
            "to_status",
            "actor",
            "actor_role",
            "note",
            "metadata",
            "created_at",
        )
        read_only_fields = fields


class TransitionRequestSerializer(serializers.Serializer):
    to_status = serializers.ChoiceField(choices=BatchStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="")
    metadata = serializers.DictField(required=False, default=dict)
    signature = serializers.CharField(required=False, allow_blank=True, default="")
    release_type = serializers.ChoiceField(
        choices=ReleaseType.choices, required=False, default=ReleaseType.FULL
    )

    def to_internal_value(self, data):
        # accept lower-case status names from older clients
        if isinstance(data, dict) and isinstance(data.get("to_status"), str):
            data = {**data, "to_status": data["to_status"].strip().upper()}
        return super().to_internal_value(data)


# ===============================================================
# QC
# ===============================================================

class QcResultSerializer(serializers.ModelSerializer):
    entered_by = UserSlimSerializer(read_only=True)
    judged_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = QcResult
        fields = (
            "id",
            "test_code",
            "test_name",
            "display_order",
            "unit",
            "criteria_display",
            "result_type",
            "spec_rule_type",
            "spec_min",
            "spec_max",
            "spec_target",
            "options",
            "is_required",
            "numeric_value",
            "text_value",
            "pass_fail_value",
            "selected_option",
            "status",
            "fail_reason",
            "entered_by",
            "entered_at",
            "judgment",
            "judgment_reason",
            "judged_by",
            "judged_at",
        )
        read_only_fields = fields


class QcSessionSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)
    analyst = UserSlimSerializer(read_only=True)
    reviewed_by = UserSlimSerializer(read_only=True)
    results = QcResultSerializer(many=True, read_only=True)
    summary = serializers.SerializerMethodField()

    class Meta:
        model = QcSession
        fields = (
            "id",
            "batch",
            "batch_number",
            "template",
            "status",
            "analyst",
            "reviewed_by",
            "completed_at",
            "reviewed_at",
            "notes",
            "revision",
            "summary",
            "results",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_summary(self, obj):
        return summarize(obj.results.all())


class ResultValueSerializer(serializers.Serializer):
    # type depends on the result; the service coerces and validates it
    value = serializers.JSONField(allow_null=True)


class JudgmentSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=[QcResultStatus.PASS, QcResultStatus.FAIL])
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class SubmitForReviewSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=ReviewDecision.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
