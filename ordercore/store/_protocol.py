"""
Store protocol — the persistence collaborator.

The core never locks anything itself. It asks a Store for a transaction and
relies on the store's contract:

    - transaction() commits on normal exit, rolls back on any exception
    - lock_product / for_update reads hold a row lock until the scope ends
    - decrement_stock never takes stock below zero
    - unique keys (order number, payment per order, idempotency key) raise
      StoreConflict instead of silently overwriting

with_transaction() turns a unit of work returning Result into a bounded,
all-or-nothing scope:

    result = await with_transaction(
        store,
        lambda tx: builder.build(tx, ...),
        timeout_seconds=10,
    )
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from combinators import flow, TimeoutError as FlowTimeout
from kungfu import Result, Ok, Error, LazyCoroResult

from ordercore.domain import Order, Payment, Product, TrackingEntry
from ordercore.errors import CoreError, Errors


# ═══════════════════════════════════════════════════════════════════════════════
# Transaction — unit of work handed to operations
# ═══════════════════════════════════════════════════════════════════════════════


class Transaction(Protocol):
    # Catalog
    async def put_product(self, product: Product) -> None: ...

    async def get_products(self, ids: Collection[str]) -> dict[str, Product]: ...

    async def lock_product(self, product_id: str) -> Product | None:
        """Row-locked read of a product."""
        ...

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Take quantity from stock. False, and no change, if stock is short."""
        ...

    async def increment_stock(self, product_id: str, quantity: int) -> None: ...

    # Orders
    async def insert_order(self, order: Order) -> None:
        """Persist order with its items. StoreConflict on duplicate order number."""
        ...

    async def get_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Order | None: ...

    async def save_order(self, order: Order) -> None:
        """Persist status, cancel_reason and updated_at of an existing order."""
        ...

    async def append_tracking(self, entry: TrackingEntry) -> None: ...

    async def list_tracking(self, order_id: str) -> list[TrackingEntry]: ...

    # Payments
    async def insert_payment(self, payment: Payment) -> None:
        """StoreConflict if the order already has a payment or the key is reused."""
        ...

    async def save_payment(self, payment: Payment) -> None: ...

    async def get_payment(
        self, payment_id: str, *, for_update: bool = False
    ) -> Payment | None: ...

    async def get_payment_for_order(
        self, order_id: str, *, for_update: bool = False
    ) -> Payment | None: ...

    async def find_payment_by_provider_ref(
        self, provider_ref: str, *, for_update: bool = False
    ) -> Payment | None: ...


class Store(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[Transaction]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# with_transaction — scoped, bounded, all-or-nothing
# ═══════════════════════════════════════════════════════════════════════════════

type Work[T] = Callable[[Transaction], Awaitable[Result[T, CoreError]]]


class _Rollback(Exception):
    """Carries an Error result out of the transaction scope."""

    def __init__(self, error: CoreError) -> None:
        self.error = error
        super().__init__(error.message)


def _as_core_error(err: CoreError | FlowTimeout) -> CoreError:
    match err:
        case FlowTimeout(seconds=seconds):
            return Errors.timeout(seconds)
        case _:
            return err


def with_transaction[T](
    store: Store,
    work: Work[T],
    *,
    timeout_seconds: float,
) -> LazyCoroResult[T, CoreError]:
    """
    Run work inside one transaction.

    Ok commits. Error, any exception, or hitting the timeout rolls back
    every write made by work. Lazy: nothing happens until awaited, and each
    await opens a fresh transaction (so it composes with retry).
    """

    async def scope() -> Result[T, CoreError]:
        try:
            async with store.transaction() as tx:
                result = await work(tx)
                match result:
                    case Error(err):
                        raise _Rollback(err)
                    case Ok(_):
                        return result
        except _Rollback as rollback:
            return Error(rollback.error)

    return (
        flow(LazyCoroResult(scope))
        .timeout(seconds=timeout_seconds)
        .compile()
        .map_err(_as_core_error)
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Transaction",
    "Store",
    "Work",
    "with_transaction",
)
