"""
Inventory ledger — per-product stock counter.

    match await ledger.reserve(tx, "p1", 2):
        case Ok(reservation):
            reservation.product.price   # price read under the row lock
        case Error(err):
            ...                         # abort the whole operation

reserve fails closed: it never decrements below zero and never reserves
part of a quantity. Locking and isolation belong to the transaction it
runs in. release has no over-release guard; calling it twice for one
reservation is a caller bug.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from kungfu import Result, Ok, Error

from ordercore.domain import OrderItem, Product
from ordercore.errors import CoreError, Errors
from ordercore.store import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Reservation:
    """Product snapshot taken under lock, before the decrement."""

    product: Product
    quantity: int

    @property
    def line_total(self) -> int:
        return self.product.price * self.quantity


class InventoryLedger:
    async def reserve(
        self, tx: Transaction, product_id: str, quantity: int
    ) -> Result[Reservation, CoreError]:
        if quantity < 1:
            return Error(Errors.validation("Quantity must be at least 1"))

        product = await tx.lock_product(product_id)
        if product is None or not product.is_active:
            return Error(Errors.product_unavailable())

        if product.stock < quantity:
            return Error(
                Errors.insufficient_stock(product.title, product.stock, quantity)
            )

        # Guarded decrement still refuses if the store's view moved underneath us.
        if not await tx.decrement_stock(product_id, quantity):
            return Error(
                Errors.insufficient_stock(product.title, product.stock, quantity)
            )

        logger.debug("Reserved %d x %s", quantity, product_id)
        return Ok(Reservation(product=product, quantity=quantity))

    async def release(self, tx: Transaction, product_id: str, quantity: int) -> None:
        await tx.increment_stock(product_id, quantity)
        logger.debug("Released %d x %s", quantity, product_id)

    async def restore(self, tx: Transaction, items: Iterable[OrderItem]) -> None:
        """Release every line of an order. The one compensation for a reservation."""
        for item in items:
            await self.release(tx, item.product_id, item.quantity)


__all__ = ("Reservation", "InventoryLedger")
