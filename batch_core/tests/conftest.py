# batch_core/tests/conftest.py

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from batch_core.choices import (
    BatchStatus,
    QcResultType,
    QcSessionStatus,
    SpecRuleType,
    TemplateStatus,
)
from batch_core.models import (
    Batch,
    BatchRelease,
    Order,
    Product,
    QcResult,
    QcSession,
    QcTemplate,
    QcTemplateLine,
    UserRole,
)


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class RecordingAudit:
    """Audit sink that keeps records in memory."""

    def __init__(self):
        self.records = []

    def record(self, actor, action, entity_type, entity_id, old_value=None, new_value=None):
        self.records.append(
            {
                "actor": actor,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "old_value": old_value,
                "new_value": new_value,
            }
        )

    def actions(self):
        return [r["action"] for r in self.records]


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def __call__(self, request_id):
        self.calls.append(request_id)


# ---------------------------------------------------------------
# Users
# ---------------------------------------------------------------

@pytest.fixture
def user_factory(db) -> Callable[..., Any]:
    User = get_user_model()

    def _factory(role: Optional[str] = None, *, username: Optional[str] = None, superuser: bool = False):
        user = User.objects.create_user(
            username=username or _rand("user"),
            password="pass123",
            is_superuser=superuser,
            is_staff=superuser,
        )
        if role:
            UserRole.objects.create(user=user, role=role)
        return user

    return _factory


@pytest.fixture
def user_admin(user_factory):
    return user_factory(username="admin", superuser=True)


@pytest.fixture
def user_qp(user_factory):
    # free-text role as stored by HR import
    return user_factory("QualifiedPerson", username="qp")


@pytest.fixture
def user_qc_analyst(user_factory):
    return user_factory("QC Analyst", username="analyst")


@pytest.fixture
def user_qc_manager(user_factory):
    return user_factory("QC_MANAGER", username="qcm")


@pytest.fixture
def user_production(user_factory):
    return user_factory("Production Manager", username="prod")


@pytest.fixture
def user_dispensing(user_factory):
    return user_factory("DISPENSING", username="disp")


@pytest.fixture
def user_logistics(user_factory):
    return user_factory("Logistics", username="logi")


@pytest.fixture
def user_readonly(user_factory):
    return user_factory(username="viewer")


# ---------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------

@pytest.fixture
def product(db) -> Product:
    return Product.objects.create(code=_rand("FDG"), name="F-18 FDG")


@pytest.fixture
def batch_factory(db, product) -> Callable[..., Batch]:
    """
    Creates batches directly at any status. Creation is not a status write,
    so no bypass is needed.
    """

    def _factory(status: str = BatchStatus.PLANNED, **extra: Any) -> Batch:
        extra.setdefault("product", product)
        return Batch.objects.create(status=status, **extra)

    return _factory


@pytest.fixture
def order_factory(db, product) -> Callable[..., Order]:
    def _factory(batch: Batch, status: str = "SCHEDULED", **extra: Any) -> Order:
        return Order.objects.create(
            order_number=_rand("ORD"),
            product=batch.product,
            batch=batch,
            status=status,
            **extra,
        )

    return _factory


@pytest.fixture
def release_factory(db) -> Callable[..., BatchRelease]:
    def _factory(batch: Batch, user, **extra: Any) -> BatchRelease:
        extra.setdefault("electronic_signature", "signed")
        return BatchRelease.objects.create(batch=batch, released_by=user, **extra)

    return _factory


# ---------------------------------------------------------------
# QC
# ---------------------------------------------------------------

def min_line(code: str, minimum: int = 10, **extra: Any) -> Dict[str, Any]:
    line = {
        "test_code": code,
        "test_name": f"{code} test",
        "result_type": QcResultType.NUMERIC,
        "rule_type": SpecRuleType.MIN,
        "spec_min": Decimal(minimum),
        "unit": "%",
    }
    line.update(extra)
    return line


@pytest.fixture
def template_factory(db, product) -> Callable[..., QcTemplate]:
    def _factory(lines: Iterable[Dict[str, Any]], *, for_product=None, status=TemplateStatus.ACTIVE) -> QcTemplate:
        template = QcTemplate.objects.create(
            product=for_product or product,
            name=_rand("QC"),
            status=status,
        )
        for order, line in enumerate(lines, start=1):
            line = dict(line)
            line.setdefault("display_order", order)
            QcTemplateLine.objects.create(template=template, **line)
        return template

    return _factory


@pytest.fixture
def session_factory(db) -> Callable[..., QcSession]:
    """
    Session with hand-made results, bypassing generation.

    Each result dict may carry ``status``; everything else defaults to a
    required PASS_FAIL line.
    """

    def _factory(batch: Batch, results: Iterable[Dict[str, Any]] = (), status=QcSessionStatus.NOT_STARTED) -> QcSession:
        session = QcSession.objects.create(batch=batch, status=status)
        for order, data in enumerate(results, start=1):
            data = dict(data)
            data.setdefault("test_code", f"T{order}")
            data.setdefault("test_name", f"Test {order}")
            data.setdefault("display_order", order)
            data.setdefault("result_type", QcResultType.PASS_FAIL)
            QcResult.objects.create(session=session, **data)
        return session

    return _factory


@pytest.fixture
def passed_session(session_factory):
    def _factory(batch: Batch) -> QcSession:
        return session_factory(batch, [{"status": "PASS"}], status=QcSessionStatus.QC_PASSED)

    return _factory


# ---------------------------------------------------------------
# Services & clients
# ---------------------------------------------------------------

@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def lifecycle(db, audit, dispatcher):
    from batch_core.services import BatchLifecycleService

    return BatchLifecycleService(audit=audit, workflow_dispatcher=dispatcher)


@pytest.fixture
def qc_service(db, audit):
    from batch_core.services import QcSessionService

    return QcSessionService(audit=audit)


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def client_as(api_client) -> Callable[[Any], APIClient]:
    def _as(user) -> APIClient:
        api_client.force_authenticate(user=user)
        return api_client

    return _as


@pytest.fixture
def celery_eager():
    from batch_core.tasks import dispatch_release_workflow

    app = dispatch_release_workflow.app
    # with namespace="CELERY" the prefixed key is read before task_always_eager
    previous = app.conf.task_always_eager
    app.conf["CELERY_TASK_ALWAYS_EAGER"] = True
    assert app.conf.task_always_eager is True
    yield app
    app.conf["CELERY_TASK_ALWAYS_EAGER"] = previous
