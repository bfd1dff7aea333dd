# batch_core/admin.py

from django.contrib import admin

from .models import (
    AuditLog,
    Batch,
    BatchEvent,
    BatchRelease,
    Equipment,
    Order,
    Product,
    QcResult,
    QcSession,
    QcTemplate,
    QcTemplateLine,
    ReleaseWorkflowRequest,
    UserRole,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Reference data
# =============================================================

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name")


@admin.register(Equipment)
class EquipmentAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "equipment_type")
    search_fields = ("code", "name")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "customer_name", "product", "batch", "status")
    list_filter = ("status",)
    search_fields = ("order_number", "customer_name")
    # status follows the batch cascade
    readonly_fields = ("status",)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role")
    search_fields = ("user__username", "role")


class QcTemplateLineInline(admin.TabularInline):
    model = QcTemplateLine
    extra = 0


@admin.register(QcTemplate)
class QcTemplateAdmin(admin.ModelAdmin):
    list_display = ("name", "product", "version", "status")
    list_filter = ("status",)
    inlines = [QcTemplateLineInline]


# =============================================================
# Batches (status moves only through the lifecycle service)
# =============================================================

@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ("batch_number", "product", "status", "planned_start", "is_archived")
    list_filter = ("status", "is_archived", "product")
    search_fields = ("batch_number",)
    readonly_fields = ("batch_number", "status", "actual_start", "actual_end", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        return False


class QcResultInline(admin.TabularInline):
    model = QcResult
    extra = 0
    can_delete = False
    fields = ("test_code", "criteria_display", "status", "fail_reason", "judgment", "entered_by")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(QcSession)
class QcSessionAdmin(ReadOnlyAdmin):
    list_display = ("batch", "status", "analyst", "reviewed_by", "completed_at")
    list_filter = ("status",)
    inlines = [QcResultInline]


# =============================================================
# Append-only records (READ-ONLY)
# =============================================================

@admin.register(BatchEvent)
class BatchEventAdmin(ReadOnlyAdmin):
    list_display = ("batch", "event_type", "from_status", "to_status", "actor", "actor_role", "created_at")
    list_filter = ("event_type", "to_status")
    search_fields = ("batch__batch_number", "actor__username")
    ordering = ("-created_at",)


@admin.register(BatchRelease)
class BatchReleaseAdmin(ReadOnlyAdmin):
    list_display = ("batch", "release_type", "released_by", "signature_timestamp", "is_active")
    list_filter = ("release_type", "is_active")


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "actor", "action", "entity_type", "entity_id")
    list_filter = ("action", "entity_type")
    search_fields = ("entity_id", "actor__username")


@admin.register(ReleaseWorkflowRequest)
class ReleaseWorkflowRequestAdmin(ReadOnlyAdmin):
    list_display = ("batch", "state", "attempts", "dispatched_at", "last_error")
    list_filter = ("state",)
