from .batch_lifecycle import BatchLifecycleService, default_lifecycle_service
from .qc_session import QcSessionService, default_qc_session_service

__all__ = [
    "BatchLifecycleService",
    "QcSessionService",
    "default_lifecycle_service",
    "default_qc_session_service",
]
