from .core import AuditLog, Equipment, Order, Product, TimeStampedModel, UserRole
from .batch import Batch, BatchEvent, BatchRelease, next_batch_number
from .qc import QcResult, QcSession, QcTemplate, QcTemplateLine
from .outbox import ReleaseWorkflowRequest

__all__ = [
    "AuditLog",
    "Batch",
    "BatchEvent",
    "BatchRelease",
    "Equipment",
    "Order",
    "Product",
    "QcResult",
    "QcSession",
    "QcTemplate",
    "QcTemplateLine",
    "ReleaseWorkflowRequest",
    "TimeStampedModel",
    "UserRole",
    "next_batch_number",
]
