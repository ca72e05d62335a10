"""
Orders — aggregate builder and the order operations around it.

    orders = OrderService(store, InventoryLedger(), auditor, settings)

    match await orders.create_order(actor, [LineRequest("p1", 2)], shipping):
        case Ok(order):
            order.status            # PENDING
            order.total_amount      # sum of price * quantity, read under lock
        case Error(err):
            err.kind                # VALIDATION / CONFLICT / TIMEOUT

Every mutation runs in one with_transaction scope: reservations, the order
row, its items and the first tracking entry commit together or not at all.
Audit is written after the commit and never changes the result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime

from combinators import flow
from kungfu import Result, Ok, Error

from ordercore import _ids
from ordercore._types import Lazy
from ordercore.audit import AuditAction, Auditor
from ordercore.config import Settings
from ordercore.domain import (
    Actor,
    LineRequest,
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    TrackingEntry,
)
from ordercore.errors import CoreError, ErrorKind, Errors, StoreConflict
from ordercore.inventory import InventoryLedger, Reservation
from ordercore.state_machine import CANCELLABLE, INITIAL, ensure_transition
from ordercore.store import Store, Transaction, Work, with_transaction

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Shared transitions
# ═══════════════════════════════════════════════════════════════════════════════


async def change_status(
    tx: Transaction,
    order: Order,
    status: OrderStatus,
    note: str | None,
    *,
    cancel_reason: str | None = None,
) -> Order:
    """Persist a status change plus its tracking row. No table check here."""
    now = datetime.now(UTC)
    updated = replace(
        order,
        status=status,
        updated_at=now,
        cancel_reason=cancel_reason if cancel_reason is not None else order.cancel_reason,
    )
    await tx.save_order(updated)
    await tx.append_tracking(
        TrackingEntry(order_id=order.id, status=status, note=note, created_at=now)
    )
    return updated


async def cancel_within(
    tx: Transaction,
    ledger: InventoryLedger,
    order: Order,
    *,
    reason: str | None,
    note: str,
) -> Order:
    """
    Cancel an order and give its stock back.

    The only place a reservation is compensated: user cancellation, the admin
    status path and payment failure all come through here.
    """
    await ledger.restore(tx, order.items)
    return await change_status(
        tx, order, OrderStatus.CANCELLED, note, cancel_reason=reason
    )


async def audit_denied[T](
    auditor: Auditor, result: Result[T, CoreError], order_id: str, actor: Actor
) -> Result[T, CoreError]:
    """Record AUTHORIZATION_FAILED when result is a FORBIDDEN error; pass it through."""
    match result:
        case Error(err) if err.kind is ErrorKind.FORBIDDEN:
            logger.warning("Access to order %s denied for %s", order_id, actor.id)
            await auditor.order(
                AuditAction.AUTHORIZATION_FAILED,
                order_id,
                actor.id,
                {"reason": err.message, "role": actor.role.value},
            )
        case _:
            pass
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════════


def _validate_request(
    items: Sequence[LineRequest], shipping: ShippingAddress
) -> CoreError | None:
    if not items:
        return Errors.validation("Order must contain at least one item")
    for line in items:
        if line.quantity < 1:
            return Errors.validation("Quantity must be at least 1")
    missing = shipping.missing_fields()
    if missing:
        return Errors.validation(
            f"Shipping address is missing: {', '.join(missing)}"
        )
    return None


def _is_number_collision(err: CoreError) -> bool:
    cause = err.original_error
    return isinstance(cause, StoreConflict) and cause.field == "order_number"


def _line_items(order_id: str, reservations: Sequence[Reservation]) -> tuple[OrderItem, ...]:
    return tuple(
        OrderItem(
            id=_ids.new_id("item"),
            order_id=order_id,
            product_id=r.product.id,
            product_title=r.product.title,
            product_image=r.product.image,
            quantity=r.quantity,
            price_per_unit=r.product.price,
            total_price=r.line_total,
        )
        for r in reservations
    )


# ═══════════════════════════════════════════════════════════════════════════════
# OrderService
# ═══════════════════════════════════════════════════════════════════════════════


class OrderService:
    def __init__(
        self,
        store: Store,
        ledger: InventoryLedger,
        auditor: Auditor,
        settings: Settings,
        *,
        number_factory: Callable[[], str] = _ids.order_number,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._auditor = auditor
        self._settings = settings
        self._number_factory = number_factory

    def _transaction[T](self, work: Work[T]) -> Lazy[T]:
        return with_transaction(
            self._store,
            work,
            timeout_seconds=self._settings.transaction_timeout_seconds,
        )

    # ─── create ───────────────────────────────────────────────────────────────

    async def create_order(
        self,
        actor: Actor,
        items: Sequence[LineRequest],
        shipping: ShippingAddress,
        notes: str | None = None,
    ) -> Result[Order, CoreError]:
        invalid = _validate_request(items, shipping)
        if invalid is not None:
            return Error(invalid)

        lines = tuple(items)

        async def build(tx: Transaction) -> Result[Order, CoreError]:
            return await self._build(tx, actor, lines, shipping, notes)

        # Each attempt is a fresh transaction with a fresh order number.
        result = await (
            flow(self._transaction(build))
            .retry(
                times=self._settings.order_number_attempts,
                retry_on=_is_number_collision,
            )
            .compile()
        )

        match result:
            case Ok(order):
                logger.info(
                    "Order %s created for %s (%d items, total %d)",
                    order.order_number,
                    actor.id,
                    len(order.items),
                    order.total_amount,
                )
                await self._auditor.order(
                    AuditAction.ORDER_CREATED,
                    order.id,
                    actor.id,
                    {
                        "orderNumber": order.order_number,
                        "totalAmount": order.total_amount,
                        "itemCount": len(order.items),
                    },
                )
            case Error(err):
                logger.info("Order creation for %s rejected: %s", actor.id, err)
        return result

    async def _build(
        self,
        tx: Transaction,
        actor: Actor,
        lines: tuple[LineRequest, ...],
        shipping: ShippingAddress,
        notes: str | None,
    ) -> Result[Order, CoreError]:
        wanted = {line.product_id for line in lines}
        products = await tx.get_products(wanted)
        if any(pid not in products or not products[pid].is_active for pid in wanted):
            return Error(Errors.product_unavailable())

        reservations: list[Reservation] = []
        for line in lines:
            match await self._ledger.reserve(tx, line.product_id, line.quantity):
                case Ok(reservation):
                    reservations.append(reservation)
                case Error(err):
                    return Error(err)

        now = datetime.now(UTC)
        order_id = _ids.new_id("order")
        order_items = _line_items(order_id, reservations)
        subtotal = sum(item.total_price for item in order_items)
        tax = shipping_charge = discount = 0

        order = Order(
            id=order_id,
            order_number=self._number_factory(),
            user_id=actor.id,
            status=INITIAL,
            subtotal=subtotal,
            tax=tax,
            shipping_charge=shipping_charge,
            discount=discount,
            total_amount=subtotal + tax + shipping_charge - discount,
            shipping=shipping,
            items=order_items,
            created_at=now,
            updated_at=now,
            notes=notes,
        )

        try:
            await tx.insert_order(order)
        except StoreConflict as exc:
            logger.warning("Order number %s already taken", exc.value)
            return Error(Errors.order_number_taken(exc))

        await tx.append_tracking(
            TrackingEntry(
                order_id=order.id, status=INITIAL, note="Order created", created_at=now
            )
        )
        return Ok(order)

    # ─── read ─────────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str, actor: Actor) -> Result[Order, CoreError]:
        async def read(tx: Transaction) -> Result[Order, CoreError]:
            order = await tx.get_order(order_id)
            if order is None:
                return Error(Errors.order_not_found())
            if not actor.can_access(order.user_id):
                return Error(Errors.not_your_order())
            return Ok(order)

        result = await self._transaction(read)
        return await audit_denied(self._auditor, result, order_id, actor)

    async def get_tracking(
        self, order_id: str, actor: Actor
    ) -> Result[list[TrackingEntry], CoreError]:
        async def read(tx: Transaction) -> Result[list[TrackingEntry], CoreError]:
            order = await tx.get_order(order_id)
            if order is None:
                return Error(Errors.order_not_found())
            if not actor.can_access(order.user_id):
                return Error(Errors.not_your_order())
            return Ok(await tx.list_tracking(order_id))

        result = await self._transaction(read)
        return await audit_denied(self._auditor, result, order_id, actor)

    # ─── admin status path ────────────────────────────────────────────────────

    async def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        actor: Actor,
        note: str | None = None,
    ) -> Result[Order, CoreError]:
        """
        Move an order along the transition table. Admin only.

        CANCELLED through this path restores stock like cancel_order does.
        """
        if not actor.is_admin:
            return await audit_denied(
                self._auditor, Error(Errors.admin_only()), order_id, actor
            )

        async def apply(tx: Transaction) -> Result[tuple[OrderStatus, Order], CoreError]:
            order = await tx.get_order(order_id, for_update=True)
            if order is None:
                return Error(Errors.order_not_found())
            match ensure_transition(order.status, new_status):
                case Error(err):
                    return Error(err)
                case Ok(_):
                    pass

            tracking_note = note or f"Order status changed to {new_status.value}"
            if new_status is OrderStatus.CANCELLED:
                updated = await cancel_within(
                    tx, self._ledger, order, reason=note, note=tracking_note
                )
            else:
                updated = await change_status(tx, order, new_status, tracking_note)
            return Ok((order.status, updated))

        match await self._transaction(apply):
            case Ok((old_status, order)):
                logger.info(
                    "Order %s: %s -> %s by %s",
                    order.order_number,
                    old_status.value,
                    order.status.value,
                    actor.id,
                )
                await self._auditor.order(
                    AuditAction.ORDER_STATUS_CHANGED,
                    order.id,
                    order.user_id,
                    {
                        "oldStatus": old_status.value,
                        "newStatus": order.status.value,
                        "changedBy": actor.id,
                        "note": note,
                    },
                )
                return Ok(order)
            case Error(err):
                return Error(err)

    # ─── cancel ───────────────────────────────────────────────────────────────

    async def cancel_order(
        self, order_id: str, actor: Actor, reason: str | None = None
    ) -> Result[Order, CoreError]:
        async def apply(tx: Transaction) -> Result[tuple[OrderStatus, Order], CoreError]:
            order = await tx.get_order(order_id, for_update=True)
            if order is None:
                return Error(Errors.order_not_found())
            if not actor.can_access(order.user_id):
                return Error(Errors.not_your_order_to_cancel())
            if order.status not in CANCELLABLE:
                return Error(Errors.cannot_cancel(order.status))

            cancelled = await cancel_within(
                tx, self._ledger, order, reason=reason, note=reason or "Order cancelled"
            )
            return Ok((order.status, cancelled))

        match await audit_denied(
            self._auditor, await self._transaction(apply), order_id, actor
        ):
            case Ok((old_status, order)):
                logger.info("Order %s cancelled by %s", order.order_number, actor.id)
                await self._auditor.order(
                    AuditAction.ORDER_CANCELLED,
                    order.id,
                    actor.id,
                    {
                        "previousStatus": old_status.value,
                        "reason": reason,
                        "itemCount": len(order.items),
                    },
                )
                return Ok(order)
            case Error(err):
                return Error(err)

    # ─── helpers ──────────────────────────────────────────────────────────────

    async def _denied_audited[T](
        self, result: Result[T, CoreError], order_id: str, actor: Actor
    ) -> Result[T, CoreError]:
        match result:
            case Error(err) if err.kind is ErrorKind.FORBIDDEN:
                logger.warning("Access to order %s denied for %s", order_id, actor.id)
                await self._auditor.order(
                    AuditAction.AUTHORIZATION_FAILED,
                    order_id,
                    actor.id,
                    {"reason": err.message, "role": actor.role.value},
                )
            case _:
                pass
        return result


__all__ = ("OrderService", "change_status", "cancel_within", "audit_denied")
