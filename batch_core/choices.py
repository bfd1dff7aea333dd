# batch_core/choices.py
"""
Closed enumerations used by the batch lifecycle and QC engines.

Tables keyed by these enums (transition graph, role map, evaluator dispatch,
order cascade) verify their coverage at import time, so adding a member here
without handling it elsewhere fails on start-up.
"""

from django.db import models


class BatchStatus(models.TextChoices):
    PLANNED = "PLANNED", "Planned"
    SCHEDULED = "SCHEDULED", "Scheduled"
    IN_PRODUCTION = "IN_PRODUCTION", "In production"
    PRODUCTION_COMPLETE = "PRODUCTION_COMPLETE", "Production complete"
    QC_PENDING = "QC_PENDING", "QC pending"
    QC_IN_PROGRESS = "QC_IN_PROGRESS", "QC in progress"
    QC_PASSED = "QC_PASSED", "QC passed"
    QP_REVIEW = "QP_REVIEW", "QP review"
    RELEASED = "RELEASED", "Released"
    DISPENSING_IN_PROGRESS = "DISPENSING_IN_PROGRESS", "Dispensing"
    DISPENSED = "DISPENSED", "Dispensed"
    PACKED = "PACKED", "Packed"
    DISPATCHED = "DISPATCHED", "Dispatched"
    CLOSED = "CLOSED", "Closed"
    ON_HOLD = "ON_HOLD", "On hold"
    REJECTED = "REJECTED", "Rejected"
    FAILED_QC = "FAILED_QC", "QC failed"
    CANCELLED = "CANCELLED", "Cancelled"
    DEVIATION_OPEN = "DEVIATION_OPEN", "Deviation open"


class OrderStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SUBMITTED = "SUBMITTED", "Submitted"
    VALIDATED = "VALIDATED", "Validated"
    SCHEDULED = "SCHEDULED", "Scheduled"
    IN_PRODUCTION = "IN_PRODUCTION", "In production"
    QC_PENDING = "QC_PENDING", "QC pending"
    RELEASED = "RELEASED", "Released"
    DISPATCHED = "DISPATCHED", "Dispatched"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REJECTED = "REJECTED", "Rejected"
    FAILED_QC = "FAILED_QC", "QC failed"
    REWORK = "REWORK", "Rework"


class QcSessionStatus(models.TextChoices):
    NOT_STARTED = "NOT_STARTED", "Not started"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    WAITING_REVIEW = "WAITING_REVIEW", "Waiting review"
    QC_PASSED = "QC_PASSED", "QC passed"
    QC_FAILED = "QC_FAILED", "QC failed"


class QcResultStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PASS = "PASS", "Pass"
    FAIL = "FAIL", "Fail"


class QcResultType(models.TextChoices):
    PASS_FAIL = "PASS_FAIL", "Pass/Fail"
    NUMERIC = "NUMERIC", "Numeric"
    TEXT = "TEXT", "Text"
    OPTION_LIST = "OPTION_LIST", "Option list"


class SpecRuleType(models.TextChoices):
    MIN = "MIN", "Minimum"
    MAX = "MAX", "Maximum"
    RANGE = "RANGE", "Range"
    EQUAL = "EQUAL", "Equal to target"
    PASS_FAIL_ONLY = "PASS_FAIL_ONLY", "Pass/Fail only"
    CUSTOM_TEXT = "CUSTOM_TEXT", "Custom text"


class BatchEventType(models.TextChoices):
    STATUS_CHANGE = "STATUS_CHANGE", "Status change"
    QC_SESSION_GENERATED = "QC_SESSION_GENERATED", "QC session generated"
    QC_SUBMITTED = "QC_SUBMITTED", "QC submitted for review"
    QC_REVIEWED = "QC_REVIEWED", "QC reviewed"


class ReleaseType(models.TextChoices):
    FULL = "FULL", "Full release"
    CONDITIONAL = "CONDITIONAL", "Conditional release"


class ReviewDecision(models.TextChoices):
    APPROVE = "APPROVE", "Approve"
    REJECT = "REJECT", "Reject"


class TemplateStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    ACTIVE = "ACTIVE", "Active"
    RETIRED = "RETIRED", "Retired"


class WorkflowRequestState(models.TextChoices):
    PENDING = "PENDING", "Pending"
    DISPATCHED = "DISPATCHED", "Dispatched"
    FAILED = "FAILED", "Failed"
    SKIPPED = "SKIPPED", "Skipped"
