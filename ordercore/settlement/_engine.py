"""
Settlement engine — payment intents, webhook reconciliation, refunds.

    engine = SettlementEngine(store, ledger, auditor, gateways, settings)

    match await engine.create_payment_intent(order.id, actor, PaymentProvider.STRIPE):
        case Ok(intent):
            intent.client_secret        # hand to the client
        case Error(err):
            ...

    # webhook ingress
    result = await engine.handle_provider_event(PaymentProvider.STRIPE, body, header)

Intent creation is a two-step saga: the provider intent first, the local
row second. If the row cannot be written the intent is cancelled, and if
the provider call fails nothing is written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime

from combinators import lift as L
from kungfu import LazyCoroResult, Result, Ok, Error

from ordercore import _ids
from ordercore._types import Lazy
from ordercore import graph as G
from ordercore import saga as S
from ordercore.audit import AuditAction, Auditor
from ordercore.config import Settings
from ordercore.domain import (
    Actor,
    IntentHandle,
    Order,
    OrderStatus,
    Payment,
    PaymentIntent,
    PaymentProvider,
    PaymentSignal,
    PaymentStatus,
    Settlement,
    SignalKind,
)
from ordercore.errors import CoreError, ErrorKind, Errors, StoreConflict
from ordercore.inventory import InventoryLedger
from ordercore.orders import audit_denied, change_status
from ordercore.providers import PaymentGateway
from ordercore.settlement._graph import (
    FinalResultNode,
    OutcomeSettled,
    SettlementSpec,
)
from ordercore.state_machine import REFUND_OVERRIDE_SOURCES
from ordercore.store import Store, Transaction, Work, with_transaction

logger = logging.getLogger(__name__)


def _is_duplicate_payment(err: CoreError) -> bool:
    cause = err.original_error
    return (
        err.kind is ErrorKind.CONFLICT
        and isinstance(cause, StoreConflict)
        and cause.field == "order_id"
    )


def _intent_for(payment: Payment) -> PaymentIntent:
    ref = payment.provider_order_id or ""
    return PaymentIntent(payment=payment, provider_ref=ref, client_secret=ref)


class SettlementEngine:
    def __init__(
        self,
        store: Store,
        ledger: InventoryLedger,
        auditor: Auditor,
        gateways: Mapping[PaymentProvider, PaymentGateway],
        settings: Settings,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._auditor = auditor
        self._gateways = dict(gateways)
        self._settings = settings
        self._settle = G.graph(FinalResultNode)

    def _transaction[T](self, work: Work[T]) -> Lazy[T]:
        return with_transaction(
            self._store,
            work,
            timeout_seconds=self._settings.transaction_timeout_seconds,
        )

    def _gateway(self, provider: PaymentProvider) -> Result[PaymentGateway, CoreError]:
        gateway = self._gateways.get(provider)
        if gateway is None:
            return Error(
                Errors.validation(f"Payment provider {provider.value} is not configured")
            )
        return Ok(gateway)

    # ═══════════════════════════════════════════════════════════════════════════
    # Payment intent
    # ═══════════════════════════════════════════════════════════════════════════

    async def create_payment_intent(
        self,
        order_id: str,
        actor: Actor,
        provider: PaymentProvider = PaymentProvider.STRIPE,
    ) -> Result[PaymentIntent, CoreError]:
        match self._gateway(provider):
            case Ok(gateway):
                pass
            case Error(err):
                return Error(err)

        async def precheck(tx: Transaction) -> Result[Order | Payment, CoreError]:
            order = await tx.get_order(order_id)
            if order is None or order.user_id != actor.id:
                return Error(Errors.order_not_owned())
            if order.status is not OrderStatus.PENDING:
                return Error(Errors.cannot_pay(order.status))
            existing = await tx.get_payment_for_order(order_id)
            return Ok(existing if existing is not None else order)

        match await self._transaction(precheck):
            case Error(err):
                return Error(err)
            case Ok(Payment() as existing):
                logger.info("Payment %s already exists for order %s", existing.id, order_id)
                return Ok(_intent_for(existing))
            case Ok(Order() as order):
                pass

        key = _ids.idempotency_key(order.id)

        def persist(handle: IntentHandle) -> S.SagaStep[PaymentIntent, CoreError]:
            async def write(tx: Transaction) -> Result[PaymentIntent, CoreError]:
                current = await tx.get_order(order.id, for_update=True)
                if current is None:
                    return Error(Errors.order_not_found())
                if current.status is not OrderStatus.PENDING:
                    return Error(Errors.cannot_pay(current.status))

                now = datetime.now(UTC)
                payment = Payment(
                    id=_ids.new_id("payment"),
                    order_id=order.id,
                    user_id=actor.id,
                    amount=current.total_amount,
                    currency=self._settings.currency,
                    status=PaymentStatus.INITIATED,
                    provider=provider,
                    idempotency_key=key,
                    created_at=now,
                    updated_at=now,
                    provider_order_id=handle.provider_ref,
                )
                try:
                    await tx.insert_payment(payment)
                except StoreConflict as exc:
                    return Error(Errors.conflict("Payment already exists for this order", exc))
                return Ok(PaymentIntent(payment, handle.provider_ref, handle.client_secret))

            async def guarded() -> Result[PaymentIntent, CoreError]:
                caught = await L.catching_async(
                    lambda: self._transaction(write),
                    on_error=lambda exc: Errors.storage("Failed to record payment", exc),
                )
                match caught:
                    case Ok(result):
                        return result
                    case Error(err):
                        return Error(err)

            return S.step(LazyCoroResult(guarded), name="persist_payment")

        intent_step = S.from_async(
            lambda: gateway.create_intent(
                order.total_amount,
                self._settings.currency,
                {"orderId": order.id, "orderNumber": order.order_number},
                key,
            ),
            on_error=lambda exc: Errors.provider(
                f"Failed to create {provider.value} payment intent", exc
            ),
            compensate=lambda handle: gateway.cancel_intent(handle.provider_ref),
            name="provider_intent",
        )

        match await S.run_chain(intent_step.then(persist)):
            case Ok(done):
                intent = done.value
            case Error(failure) if _is_duplicate_payment(failure.error):
                # Lost a race with a concurrent request for the same order.
                return await self._existing_intent(order.id)
            case Error(failure):
                logger.error(
                    "Payment intent for order %s failed at %s: %s (rollback complete: %s)",
                    order.id,
                    failure.step_name,
                    failure.error,
                    failure.rollback_complete,
                )
                return Error(failure.error)

        logger.info(
            "Payment intent created: %s for order %s", intent.payment.id, order.id
        )
        await self._auditor.payment(
            AuditAction.PAYMENT_INTENT_CREATED,
            intent.payment.id,
            actor.id,
            {
                "orderId": order.id,
                "amount": intent.payment.amount,
                "provider": provider.value,
                "providerOrderId": intent.provider_ref,
            },
        )
        return Ok(intent)

    async def _existing_intent(self, order_id: str) -> Result[PaymentIntent, CoreError]:
        async def read(tx: Transaction) -> Result[PaymentIntent, CoreError]:
            payment = await tx.get_payment_for_order(order_id)
            if payment is None:
                return Error(Errors.payment_not_found())
            return Ok(_intent_for(payment))

        return await self._transaction(read)

    # ═══════════════════════════════════════════════════════════════════════════
    # Provider events
    # ═══════════════════════════════════════════════════════════════════════════

    async def handle_provider_event(
        self,
        provider: PaymentProvider,
        payload: bytes,
        signature: str | None,
    ) -> Result[Settlement | None, CoreError]:
        """
        Verify, parse and reconcile one webhook body.

        Ok(None) for event types the provider integration ignores.
        """
        match self._gateway(provider):
            case Ok(gateway):
                pass
            case Error(err):
                return Error(err)

        if not gateway.verify_signature(payload, signature):
            logger.warning("Rejected %s webhook: invalid signature", provider.value)
            return Error(Errors.invalid_signature())

        try:
            signal = gateway.parse_event(payload)
        except ValueError as exc:
            logger.warning("Malformed %s webhook body: %s", provider.value, exc)
            return Error(Errors.malformed_event(exc))

        if signal is None:
            return Ok(None)

        logger.info(
            "Received %s webhook %s for %s", provider.value, signal.event, signal.provider_ref
        )
        return await self.reconcile(signal)

    async def reconcile(self, signal: PaymentSignal) -> Result[Settlement, CoreError]:
        """Run the settlement graph for a trusted signal in one transaction."""

        async def work(tx: Transaction) -> Result[FinalResultNode, CoreError]:
            spec = SettlementSpec(signal=signal, tx=tx, ledger=self._ledger)
            return Ok(await self._settle.run().inject(spec))

        match await self._transaction(work):
            case Error(err):
                logger.error("Reconciliation of %s failed: %s", signal.provider_ref, err)
                return Error(err)
            case Ok(node):
                pass

        await self._audit_reconciliation(signal, node)
        return node.to_result()

    async def _audit_reconciliation(
        self, signal: PaymentSignal, node: FinalResultNode
    ) -> None:
        payment = node.payment
        if payment is None:
            return

        await self._auditor.payment(
            AuditAction.PAYMENT_WEBHOOK_RECEIVED,
            payment.id,
            payment.user_id,
            {
                "event": signal.event,
                "providerOrderId": signal.provider_ref,
                "status": signal.kind.value,
            },
        )

        match node.outcome:
            case OutcomeSettled(settlement=s) if s.applied and s.payment.status is PaymentStatus.SUCCESS:
                await self._auditor.payment(
                    AuditAction.PAYMENT_SUCCESS,
                    s.payment.id,
                    s.payment.user_id,
                    {
                        "orderId": s.payment.order_id,
                        "amount": s.payment.amount,
                        "provider": s.payment.provider.value,
                        "providerPaymentId": s.payment.provider_payment_id,
                        "paymentMethod": s.payment.payment_method,
                    },
                )
            case OutcomeSettled(settlement=s) if s.applied and s.payment.status is PaymentStatus.FAILED:
                await self._auditor.payment(
                    AuditAction.PAYMENT_FAILED,
                    s.payment.id,
                    s.payment.user_id,
                    {
                        "orderId": s.payment.order_id,
                        "amount": s.payment.amount,
                        "provider": s.payment.provider.value,
                        "providerPaymentId": s.payment.provider_payment_id,
                        "failureReason": s.payment.failure_reason,
                    },
                )
            case _:
                pass

    # ═══════════════════════════════════════════════════════════════════════════
    # Development helpers
    # ═══════════════════════════════════════════════════════════════════════════

    async def simulate_success(self, order_id: str) -> Result[Settlement, CoreError]:
        return await self._simulate(
            order_id,
            lambda payment: PaymentSignal(
                kind=SignalKind.SUCCEEDED,
                provider_ref=payment.provider_order_id or "",
                event="payment.success",
                provider_payment_id=f"mock_payment_{_ids.now_millis()}",
                amount=payment.amount,
                payment_method="test_card",
            ),
        )

    async def simulate_failure(
        self, order_id: str, reason: str = "Insufficient funds"
    ) -> Result[Settlement, CoreError]:
        return await self._simulate(
            order_id,
            lambda payment: PaymentSignal(
                kind=SignalKind.FAILED,
                provider_ref=payment.provider_order_id or "",
                event="payment.failed",
                failure_reason=reason,
            ),
        )

    async def _simulate(
        self, order_id: str, make_signal: Callable[[Payment], PaymentSignal]
    ) -> Result[Settlement, CoreError]:
        if self._settings.production:
            return Error(Errors.forbidden("Test endpoints disabled in production"))

        async def read(tx: Transaction) -> Result[Payment, CoreError]:
            payment = await tx.get_payment_for_order(order_id)
            if payment is None or payment.provider_order_id is None:
                return Error(Errors.payment_not_found())
            return Ok(payment)

        match await self._transaction(read):
            case Ok(payment):
                return await self.reconcile(make_signal(payment))
            case Error(err):
                return Error(err)

    # ═══════════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_payment_for_order(
        self, order_id: str, actor: Actor
    ) -> Result[Payment, CoreError]:
        async def read(tx: Transaction) -> Result[Payment, CoreError]:
            order = await tx.get_order(order_id)
            if order is None:
                return Error(Errors.order_not_found())
            if not actor.can_access(order.user_id):
                return Error(Errors.not_your_order())
            payment = await tx.get_payment_for_order(order_id)
            if payment is None:
                return Error(Errors.payment_not_found())
            return Ok(payment)

        result = await self._transaction(read)
        return await audit_denied(self._auditor, result, order_id, actor)

    # ═══════════════════════════════════════════════════════════════════════════
    # Refund
    # ═══════════════════════════════════════════════════════════════════════════

    async def initiate_refund(
        self, payment_id: str, actor: Actor, reason: str | None = None
    ) -> Result[Payment, CoreError]:
        """
        Mark a successful payment and its order REFUNDED. Admin only.

        From RETURNED this is the regular edge. From PAID, PROCESSING,
        SHIPPED or DELIVERED it is an administrative override of the
        transition table and is flagged as such in logs and audit.
        Stock is not restored and no provider refund is issued.
        """
        if not actor.is_admin:
            return Error(Errors.admin_only())

        async def apply(tx: Transaction) -> Result[tuple[Payment, bool], CoreError]:
            payment = await tx.get_payment(payment_id, for_update=True)
            if payment is None:
                return Error(Errors.payment_not_found())
            if payment.status is not PaymentStatus.SUCCESS:
                return Error(Errors.cannot_refund())

            order = await tx.get_order(payment.order_id, for_update=True)
            if order is None:
                return Error(Errors.order_not_found())
            if order.status is OrderStatus.RETURNED:
                override = False
            elif order.status in REFUND_OVERRIDE_SOURCES:
                override = True
            else:
                return Error(Errors.invalid_transition(order.status, OrderStatus.REFUNDED))

            refunded = replace(
                payment,
                status=PaymentStatus.REFUNDED,
                failure_reason=reason,
                updated_at=datetime.now(UTC),
            )
            await tx.save_payment(refunded)
            await change_status(
                tx,
                order,
                OrderStatus.REFUNDED,
                f"Refund initiated: {reason or 'No reason provided'}",
            )
            return Ok((refunded, override))

        match await self._transaction(apply):
            case Error(err):
                return Error(err)
            case Ok((payment, override)):
                pass

        if override:
            logger.warning(
                "Refund of payment %s bypasses RETURNED for order %s (admin %s)",
                payment.id,
                payment.order_id,
                actor.id,
            )
        else:
            logger.info("Payment %s refunded by %s", payment.id, actor.id)

        await self._auditor.payment(
            AuditAction.PAYMENT_REFUNDED,
            payment.id,
            actor.id,
            {
                "orderId": payment.order_id,
                "amount": payment.amount,
                "reason": reason,
                "override": override,
            },
        )
        return Ok(payment)


__all__ = ("SettlementEngine",)
