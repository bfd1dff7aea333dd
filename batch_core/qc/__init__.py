# batch_core/qc/__init__.py
from __future__ import annotations

from .aggregate import aggregate_status, completion_timestamp, summarize
from .evaluator import Evaluation, derive_status, evaluate, requires_judgment

__all__ = [
    "Evaluation",
    "aggregate_status",
    "completion_timestamp",
    "derive_status",
    "evaluate",
    "requires_judgment",
    "summarize",
]
