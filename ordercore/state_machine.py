"""
Order state machine — the table, nothing else.

    PENDING    → PAID, CANCELLED
    PAID       → PROCESSING, CANCELLED
    PROCESSING → SHIPPED, CANCELLED
    SHIPPED    → DELIVERED, RETURNED
    DELIVERED  → RETURNED
    RETURNED   → REFUNDED
    CANCELLED, REFUNDED — terminal

Pure decisions only. Callers consult it before committing a status change.
"""

from __future__ import annotations

from types import MappingProxyType

from kungfu import Result, Ok, Error

from ordercore.domain import OrderStatus
from ordercore.errors import CoreError, Errors


TRANSITIONS: MappingProxyType[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
        OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
        OrderStatus.PROCESSING: frozenset(
            {OrderStatus.SHIPPED, OrderStatus.CANCELLED}
        ),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
        OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
        OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
        OrderStatus.CANCELLED: frozenset(),
        OrderStatus.REFUNDED: frozenset(),
    }
)

INITIAL = OrderStatus.PENDING

CANCELLABLE: frozenset[OrderStatus] = frozenset(
    s for s, targets in TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)

# Orders in these states have a captured payment the refund override may reverse.
REFUND_OVERRIDE_SOURCES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    }
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(
    current: OrderStatus, target: OrderStatus
) -> Result[OrderStatus, CoreError]:
    """Ok(target) if the edge exists, otherwise an INVALID_TRANSITION error."""
    if can_transition(current, target):
        return Ok(target)
    return Error(Errors.invalid_transition(current, target))


__all__ = (
    "TRANSITIONS",
    "INITIAL",
    "CANCELLABLE",
    "REFUND_OVERRIDE_SOURCES",
    "can_transition",
    "ensure_transition",
)
