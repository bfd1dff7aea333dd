# batch_core/workflows/cascade.py
"""
Batch status -> order status propagation.

Statuses absent from the table leave attached orders untouched.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from django.core.exceptions import ImproperlyConfigured

from batch_core.choices import BatchStatus, OrderStatus

ORDER_STATUS_CASCADE: Dict[str, str] = {
    BatchStatus.IN_PRODUCTION: OrderStatus.IN_PRODUCTION,
    BatchStatus.QC_PENDING: OrderStatus.QC_PENDING,
    BatchStatus.FAILED_QC: OrderStatus.FAILED_QC,
    BatchStatus.RELEASED: OrderStatus.RELEASED,
    BatchStatus.DISPATCHED: OrderStatus.DISPATCHED,
}


def check_cascade_table(table: Mapping[str, str]) -> None:
    bad_keys = sorted(set(table) - set(BatchStatus.values))
    bad_values = sorted(set(table.values()) - set(OrderStatus.values))
    if bad_keys or bad_values:
        raise ImproperlyConfigured(
            f"Order cascade maps unknown statuses: {', '.join(bad_keys + bad_values)}"
        )


check_cascade_table(ORDER_STATUS_CASCADE)


def order_status_for(batch_status: str, table: Optional[Mapping[str, str]] = None) -> Optional[str]:
    table = ORDER_STATUS_CASCADE if table is None else table
    return table.get(batch_status)
