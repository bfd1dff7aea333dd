# batch_core/collaborators.py
"""
Outbound collaborators of the lifecycle services.

Each concern has a small interface and one default implementation. Services
receive instances through their constructors; the defaults are picked by
dotted path from settings:

    BATCH_LIFECYCLE["AUDIT_SINK"]
    BATCH_LIFECYCLE["ROLE_PROVIDER"]
    BATCH_LIFECYCLE["TEMPLATE_PROVIDER"]
    BATCH_RELEASE_WORKFLOW["CLIENT"]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx
from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils.module_loading import import_string

from batch_core.choices import SpecRuleType, TemplateStatus
from batch_core.exceptions import DownstreamUnavailable
from batch_core.workflows import normalize_role

logger = logging.getLogger(__name__)


# ===============================================================
# Audit
# ===============================================================

class AuditSink(Protocol):
    def record(self, actor, action: str, entity_type: str, entity_id, old_value=None, new_value=None) -> None:
        ...


class DatabaseAuditSink:
    """
    Writes AuditLog rows inside a savepoint.

    A failed write is rolled back to the savepoint and logged; the caller's
    transaction carries on.
    """

    def record(self, actor, action, entity_type, entity_id, old_value=None, new_value=None):
        from batch_core.models import AuditLog

        try:
            with transaction.atomic():
                AuditLog.objects.create(
                    actor=actor if getattr(actor, "pk", None) else None,
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    old_value=old_value,
                    new_value=new_value,
                )
        except DatabaseError as exc:
            err = DownstreamUnavailable(f"Audit write failed for {action} {entity_type}#{entity_id}: {exc}")
            logger.exception(err.message)


# ===============================================================
# Release workflow
# ===============================================================

@dataclass(frozen=True)
class WorkflowAck:
    accepted: bool
    reference: str = ""
    detail: str = ""


class WorkflowClient(Protocol):
    def request(
        self,
        entity_type: str,
        entity_id,
        trigger_status: str,
        requested_by: Optional[str],
        priority: str,
        notes: str = "",
    ) -> WorkflowAck:
        ...


class HttpWorkflowClient:
    """
    POSTs a release workflow request as JSON.

    Transport errors and non-2xx replies raise DownstreamUnavailable. With no
    URL configured the request is reported as not accepted.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        conf = settings.BATCH_RELEASE_WORKFLOW
        self.url = conf.get("URL", "") if url is None else url
        self.token = conf.get("TOKEN", "") if token is None else token
        self.timeout = float(conf.get("TIMEOUT", 10.0) if timeout is None else timeout)
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, entity_type, entity_id, trigger_status, requested_by, priority, notes=""):
        if not self.url:
            return WorkflowAck(accepted=False, detail="not configured")

        payload = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "trigger_status": trigger_status,
            "requested_by": requested_by,
            "priority": priority,
            "notes": notes,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise DownstreamUnavailable(f"Release workflow timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise DownstreamUnavailable(f"Release workflow unreachable: {exc}") from exc

        if not response.is_success:
            raise DownstreamUnavailable(
                f"Release workflow returned HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

        reference = ""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            reference = str(body.get("id") or body.get("reference") or "")

        return WorkflowAck(accepted=True, reference=reference)


# ===============================================================
# Identity
# ===============================================================

class RoleProvider(Protocol):
    def role_for(self, user) -> str:
        ...


class UserRoleProvider:
    """superuser -> ADMIN, else the user's UserRole row, else READONLY."""

    def role_for(self, user) -> str:
        from batch_core.models import UserRole

        if user is None or not getattr(user, "is_authenticated", False):
            return "READONLY"
        if user.is_superuser:
            return "ADMIN"

        raw = UserRole.objects.filter(user_id=user.pk).values_list("role", flat=True).first()
        return normalize_role(raw) if raw else "READONLY"


# ===============================================================
# QC templates
# ===============================================================

def _num(value) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        value = value.normalize()
        return format(value, "f")
    return str(value)


@dataclass(frozen=True)
class TemplateLineSnapshot:
    test_code: str
    test_name: str
    display_order: int
    result_type: str
    unit: str = ""
    is_required: bool = True
    rule_type: Optional[str] = None
    spec_min: Optional[Decimal] = None
    spec_max: Optional[Decimal] = None
    spec_target: Optional[Decimal] = None
    criteria_text: str = ""
    options: Tuple[str, ...] = ()

    @property
    def criteria_display(self) -> str:
        """Human-readable acceptance criterion stored with each result."""
        u = self.unit or ""
        if self.rule_type == SpecRuleType.MIN:
            return f"≥{_num(self.spec_min)}{u}"
        if self.rule_type == SpecRuleType.MAX:
            return f"≤{_num(self.spec_max)}{u}"
        if self.rule_type == SpecRuleType.RANGE:
            return f"{_num(self.spec_min)}–{_num(self.spec_max)}{u}"
        if self.rule_type == SpecRuleType.EQUAL:
            return f"={_num(self.spec_target)}{u}"
        if self.rule_type == SpecRuleType.PASS_FAIL_ONLY:
            return "Pass/Fail"
        if self.rule_type == SpecRuleType.CUSTOM_TEXT:
            return self.criteria_text
        return self.criteria_text or ""


@dataclass(frozen=True)
class TemplateSnapshot:
    template_id: Any
    name: str
    version: int
    lines: Tuple[TemplateLineSnapshot, ...] = field(default_factory=tuple)


class TemplateProvider(Protocol):
    def active_snapshot(self, product) -> Optional[TemplateSnapshot]:
        ...


class DatabaseTemplateProvider:
    def active_snapshot(self, product) -> Optional[TemplateSnapshot]:
        from batch_core.models import QcTemplate

        template = (
            QcTemplate.objects.filter(product=product, status=TemplateStatus.ACTIVE)
            .prefetch_related("lines")
            .first()
        )
        if template is None:
            return None

        lines = tuple(
            TemplateLineSnapshot(
                test_code=line.test_code,
                test_name=line.test_name,
                display_order=line.display_order,
                result_type=line.result_type,
                unit=line.unit,
                is_required=line.is_required,
                rule_type=line.rule_type or None,
                spec_min=line.spec_min,
                spec_max=line.spec_max,
                spec_target=line.spec_target,
                criteria_text=line.criteria_text,
                options=tuple(line.options or ()),
            )
            for line in sorted(template.lines.all(), key=lambda l: (l.display_order, l.pk))
        )
        return TemplateSnapshot(
            template_id=template.pk,
            name=template.name,
            version=template.version,
            lines=lines,
        )


# ===============================================================
# Settings loaders
# ===============================================================

def _load(setting_name: str, key: str):
    path = getattr(settings, setting_name)[key]
    return import_string(path)()


def get_audit_sink() -> AuditSink:
    return _load("BATCH_LIFECYCLE", "AUDIT_SINK")


def get_role_provider() -> RoleProvider:
    return _load("BATCH_LIFECYCLE", "ROLE_PROVIDER")


def get_template_provider() -> TemplateProvider:
    return _load("BATCH_LIFECYCLE", "TEMPLATE_PROVIDER")


def get_workflow_client() -> WorkflowClient:
    return _load("BATCH_RELEASE_WORKFLOW", "CLIENT")
