# batch_core/models/core.py
from django.contrib.auth.models import User
from django.db import models

from batch_core.choices import OrderStatus


# ---------------------------------------------------------------------
# Base: adds created_at / updated_at to every model
# ---------------------------------------------------------------------
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ---------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------
class Product(TimeStampedModel):
    """A radiopharmaceutical product that batches are made of."""
    code = models.CharField(max_length=50, unique=True, db_index=True)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True, db_index=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    class Meta:
        ordering = ["code"]


class Equipment(TimeStampedModel):
    """Synthesis module, hot cell or cyclotron a batch runs on."""
    code = models.CharField(max_length=50, unique=True, db_index=True)
    name = models.CharField(max_length=255)
    equipment_type = models.CharField(max_length=100, blank=True)

    def __str__(self):
        return self.code

    class Meta:
        ordering = ["code"]
        verbose_name_plural = "equipment"


class Order(TimeStampedModel):
    """Customer order fulfilled from a batch. Status follows the batch through the cascade."""
    order_number = models.CharField(max_length=50, unique=True, db_index=True)
    customer_name = models.CharField(max_length=255, blank=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(
        max_length=32, choices=OrderStatus.choices, default=OrderStatus.DRAFT, db_index=True
    )
    batch = models.ForeignKey(
        "batch_core.Batch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    def __str__(self):
        return f"{self.order_number} ({self.status})"

    class Meta:
        ordering = ["-created_at"]


# ---------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------
class UserRole(TimeStampedModel):
    """Operational role of a user. Free text; normalized by the role provider."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="mes_role")
    role = models.CharField(max_length=100, help_text="e.g., QC Analyst, Qualified Person, Logistics")

    def __str__(self):
        return f"{self.user.username} - {self.role}"

    class Meta:
        ordering = ["user__username"]


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(TimeStampedModel):
    """Compliance trail. Written only through the audit sink."""
    actor = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, db_index=True)
    action = models.CharField(max_length=64, db_index=True)
    entity_type = models.CharField(max_length=64, db_index=True)
    entity_id = models.CharField(max_length=64, db_index=True)
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)

    def __str__(self):
        who = self.actor.username if self.actor else "system"
        return f"{self.created_at} - {who} - {self.action} {self.entity_type}#{self.entity_id}"

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
        ]
