"""
SQLAlchemy store — Store over an AsyncSession.

    session_factory, engine = await create_database(url, isolation_level="SERIALIZABLE")
    store = SQLAlchemyStore(session_factory)

    async with store.transaction() as tx:
        product = await tx.lock_product("p1")     # SELECT ... FOR UPDATE
        ok = await tx.decrement_stock("p1", 2)    # UPDATE ... WHERE stock >= 2

Each transaction is one session inside session.begin(): commit on normal
exit, rollback on exception. Isolation level is an engine setting.
"""

from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from typing import Any, cast

from sqlalchemy import Select, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordercore.domain import Order, Payment, Product, TrackingEntry
from ordercore.errors import StoreConflict
from ordercore.store._tables import (
    OrderItemRow,
    OrderRow,
    OrderTrackingRow,
    PaymentRow,
    ProductRow,
)


def _duplicate_field(exc: IntegrityError, candidates: tuple[str, ...]) -> str:
    """Best-effort name of the violated unique column; the first candidate otherwise."""
    text = str(exc.orig)
    for name in candidates:
        if name in text:
            return name
    return candidates[0]


# ═══════════════════════════════════════════════════════════════════════════════
# Transaction
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyTransaction:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one[R](self, stmt: Select[tuple[R]], for_update: bool) -> R | None:
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    # Catalog

    async def put_product(self, product: Product) -> None:
        await self._session.merge(ProductRow.from_domain(product))
        await self._session.flush()

    async def get_products(self, ids: Collection[str]) -> dict[str, Product]:
        if not ids:
            return {}
        rows = (
            await self._session.execute(
                select(ProductRow)
                .where(ProductRow.id.in_(list(ids)))
                .execution_options(populate_existing=True)
            )
        ).scalars()
        return {row.id: row.to_domain() for row in rows}

    async def lock_product(self, product_id: str) -> Product | None:
        row = await self._one(
            select(ProductRow).where(ProductRow.id == product_id), for_update=True
        )
        return row.to_domain() if row is not None else None

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        result = await self._session.execute(
            update(ProductRow)
            .where(ProductRow.id == product_id, ProductRow.stock >= quantity)
            .values(stock=ProductRow.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return cast(CursorResult[Any], result).rowcount == 1

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        await self._session.execute(
            update(ProductRow)
            .where(ProductRow.id == product_id)
            .values(stock=ProductRow.stock + quantity)
            .execution_options(synchronize_session=False)
        )

    # Orders

    async def insert_order(self, order: Order) -> None:
        self._session.add(OrderRow.from_domain(order))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise StoreConflict("order_number", order.order_number) from exc
        self._session.add_all(
            OrderItemRow.from_domain(item, position)
            for position, item in enumerate(order.items)
        )
        await self._session.flush()

    async def get_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Order | None:
        row = await self._one(
            select(OrderRow).where(OrderRow.id == order_id), for_update
        )
        if row is None:
            return None
        items = (
            await self._session.execute(
                select(OrderItemRow)
                .where(OrderItemRow.order_id == order_id)
                .order_by(OrderItemRow.position)
            )
        ).scalars()
        return row.to_domain(tuple(item.to_domain() for item in items))

    async def save_order(self, order: Order) -> None:
        row = await self._session.get(OrderRow, order.id)
        if row is None:
            raise KeyError(f"Order {order.id} does not exist")
        row.status = order.status.value
        row.cancel_reason = order.cancel_reason
        row.updated_at = order.updated_at
        await self._session.flush()

    async def append_tracking(self, entry: TrackingEntry) -> None:
        self._session.add(
            OrderTrackingRow(
                order_id=entry.order_id,
                status=entry.status.value,
                note=entry.note,
                created_at=entry.created_at,
            )
        )
        await self._session.flush()

    async def list_tracking(self, order_id: str) -> list[TrackingEntry]:
        rows = (
            await self._session.execute(
                select(OrderTrackingRow)
                .where(OrderTrackingRow.order_id == order_id)
                .order_by(OrderTrackingRow.id)
            )
        ).scalars()
        return [row.to_domain() for row in rows]

    # Payments

    async def insert_payment(self, payment: Payment) -> None:
        self._session.add(PaymentRow.from_domain(payment))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            field = _duplicate_field(exc, ("order_id", "idempotency_key"))
            value = payment.order_id if field == "order_id" else payment.idempotency_key
            raise StoreConflict(field, value) from exc

    async def save_payment(self, payment: Payment) -> None:
        row = await self._session.get(PaymentRow, payment.id)
        if row is None:
            raise KeyError(f"Payment {payment.id} does not exist")
        row.apply(payment)
        await self._session.flush()

    async def get_payment(
        self, payment_id: str, *, for_update: bool = False
    ) -> Payment | None:
        row = await self._one(
            select(PaymentRow).where(PaymentRow.id == payment_id), for_update
        )
        return row.to_domain() if row is not None else None

    async def get_payment_for_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Payment | None:
        row = await self._one(
            select(PaymentRow).where(PaymentRow.order_id == order_id), for_update
        )
        return row.to_domain() if row is not None else None

    async def find_payment_by_provider_ref(
        self, provider_ref: str, *, for_update: bool = False
    ) -> Payment | None:
        row = await self._one(
            select(PaymentRow).where(PaymentRow.provider_order_id == provider_ref),
            for_update,
        )
        return row.to_domain() if row is not None else None


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLAlchemyTransaction]:
        async with self._session_factory() as session:
            async with session.begin():
                yield SQLAlchemyTransaction(session)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("SQLAlchemyStore", "SQLAlchemyTransaction")
