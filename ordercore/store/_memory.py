"""
Memory store — in-process Store for tests and single-instance use.

One asyncio.Lock serialises transactions, which is the strongest isolation
there is. Rollback restores a snapshot taken when the transaction began.

Note: data does not survive a restart and nothing is shared across
processes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace

from ordercore.domain import Order, Payment, Product, TrackingEntry
from ordercore.errors import StoreConflict


# ═══════════════════════════════════════════════════════════════════════════════
# State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _State:
    """Mutable tables. Values are frozen dataclasses, so shallow copies suffice."""

    products: dict[str, Product] = field(default_factory=dict[str, Product])
    orders: dict[str, Order] = field(default_factory=dict[str, Order])
    tracking: list[TrackingEntry] = field(default_factory=list[TrackingEntry])
    payments: dict[str, Payment] = field(default_factory=dict[str, Payment])

    def copy(self) -> _State:
        return _State(
            products=dict(self.products),
            orders=dict(self.orders),
            tracking=list(self.tracking),
            payments=dict(self.payments),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Transaction
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryTransaction:
    def __init__(self, state: _State) -> None:
        self._state = state

    # Catalog

    async def put_product(self, product: Product) -> None:
        self._state.products[product.id] = product

    async def get_products(self, ids: Collection[str]) -> dict[str, Product]:
        return {
            pid: self._state.products[pid]
            for pid in ids
            if pid in self._state.products
        }

    async def lock_product(self, product_id: str) -> Product | None:
        # The store lock is already held; yield so racing callers queue on it.
        await asyncio.sleep(0)
        return self._state.products.get(product_id)

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        product = self._state.products.get(product_id)
        if product is None or product.stock < quantity:
            return False
        self._state.products[product_id] = replace(
            product, stock=product.stock - quantity
        )
        return True

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        product = self._state.products.get(product_id)
        if product is None:
            return
        self._state.products[product_id] = replace(
            product, stock=product.stock + quantity
        )

    # Orders

    async def insert_order(self, order: Order) -> None:
        if any(
            o.order_number == order.order_number for o in self._state.orders.values()
        ):
            raise StoreConflict("order_number", order.order_number)
        self._state.orders[order.id] = order

    async def get_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Order | None:
        return self._state.orders.get(order_id)

    async def save_order(self, order: Order) -> None:
        current = self._state.orders.get(order.id)
        if current is None:
            raise KeyError(f"Order {order.id} does not exist")
        self._state.orders[order.id] = replace(
            current,
            status=order.status,
            cancel_reason=order.cancel_reason,
            updated_at=order.updated_at,
        )

    async def append_tracking(self, entry: TrackingEntry) -> None:
        self._state.tracking.append(entry)

    async def list_tracking(self, order_id: str) -> list[TrackingEntry]:
        return [t for t in self._state.tracking if t.order_id == order_id]

    # Payments

    async def insert_payment(self, payment: Payment) -> None:
        for existing in self._state.payments.values():
            if existing.order_id == payment.order_id:
                raise StoreConflict("order_id", payment.order_id)
            if existing.idempotency_key == payment.idempotency_key:
                raise StoreConflict("idempotency_key", payment.idempotency_key)
        self._state.payments[payment.id] = payment

    async def save_payment(self, payment: Payment) -> None:
        if payment.id not in self._state.payments:
            raise KeyError(f"Payment {payment.id} does not exist")
        self._state.payments[payment.id] = payment

    async def get_payment(
        self, payment_id: str, *, for_update: bool = False
    ) -> Payment | None:
        return self._state.payments.get(payment_id)

    async def get_payment_for_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Payment | None:
        for payment in self._state.payments.values():
            if payment.order_id == order_id:
                return payment
        return None

    async def find_payment_by_provider_ref(
        self, provider_ref: str, *, for_update: bool = False
    ) -> Payment | None:
        for payment in self._state.payments.values():
            if payment.provider_order_id == provider_ref:
                return payment
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore:
    def __init__(self) -> None:
        self._state = _State()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        async with self._lock:
            snapshot = self._state.copy()
            try:
                yield MemoryTransaction(self._state)
            except BaseException:
                self._state = snapshot
                raise


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("MemoryStore", "MemoryTransaction")
