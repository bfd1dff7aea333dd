# batch_core/exceptions.py
"""
Error taxonomy for the batch lifecycle engine.

Every error carries a machine-readable ``code`` and a human-readable
``user_message`` naming the rule that was violated. The DRF exception handler
at the bottom of this module renders them for API callers.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    code = "LIFECYCLE_ERROR"
    http_status = 400
    default_user_message = "This action could not be completed."

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.details = details or {}
        super().__init__(message)

    def as_dict(self) -> Dict[str, Any]:
        payload = {
            "code": self.code,
            "detail": self.user_message,
            "message": self.message,
        }
        payload.update(self.details)
        return payload


class ValidationError(LifecycleError):
    """Malformed request; raised before any state is touched."""

    code = "VALIDATION_ERROR"
    default_user_message = "Please check the request and try again."


class TransitionRejected(LifecycleError):
    """
    A batch transition failed one of the guard checks.

    ``reason`` is one of INVALID_TRANSITION, BUSINESS_GUARD, ROLE_FORBIDDEN.
    """

    INVALID_TRANSITION = "INVALID_TRANSITION"
    BUSINESS_GUARD = "BUSINESS_GUARD"
    ROLE_FORBIDDEN = "ROLE_FORBIDDEN"

    _HTTP_STATUS = {
        INVALID_TRANSITION: 400,
        BUSINESS_GUARD: 409,
        ROLE_FORBIDDEN: 403,
    }

    def __init__(self, reason: str, message: str, **kwargs):
        if reason not in self._HTTP_STATUS:
            raise ValueError(f"Unknown rejection reason: {reason}")
        self.reason = reason
        super().__init__(message, **kwargs)

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.reason

    @property
    def http_status(self) -> int:  # type: ignore[override]
        return self._HTTP_STATUS[self.reason]

    @property
    def allowed_statuses(self):
        return self.details.get("allowed_statuses", [])

    @property
    def guard(self) -> Optional[str]:
        return self.details.get("guard")


class ConcurrencyConflict(LifecycleError):
    """Optimistic check lost a race; reload and retry."""

    code = "CONCURRENCY_CONFLICT"
    http_status = 409
    default_user_message = "This record was changed by someone else. Reload and try again."


class PreconditionFailed(LifecycleError):
    code = "PRECONDITION_FAILED"
    default_user_message = "This action isn't allowed right now."


class ActionForbidden(LifecycleError):
    code = "ROLE_FORBIDDEN"
    http_status = 403
    default_user_message = "You do not have permission to perform this action."


class RecordNotFound(LifecycleError):
    code = "NOT_FOUND"
    http_status = 404
    default_user_message = "The requested item could not be found."


class DownstreamUnavailable(LifecycleError):
    """
    A collaborator (workflow, audit) could not be reached.

    Only ever logged; state-changing operations never surface it.
    """

    code = "DOWNSTREAM_UNAVAILABLE"
    http_status = 503
    default_user_message = "A downstream service is unavailable."


# ===============================================================
# DRF integration
# ===============================================================

def api_exception_handler(exc, context):
    """
    REST_FRAMEWORK["EXCEPTION_HANDLER"].

    Renders LifecycleError subclasses with their code and trace id; defers to
    DRF's handler for everything else.
    """
    if not isinstance(exc, LifecycleError):
        return drf_exception_handler(exc, context)

    trace_id = str(uuid.uuid4())
    view = context.get("view")
    logger.info(
        "[%s] %s in %s: %s",
        trace_id,
        exc.code,
        view.__class__.__name__ if view else "-",
        exc.message,
    )

    payload = exc.as_dict()
    payload["trace_id"] = trace_id
    return Response(payload, status=exc.http_status)
