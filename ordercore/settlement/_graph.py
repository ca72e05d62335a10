"""
Settlement graph — reconciliation of one provider signal as nodnod nodes.

Architecture:
    SettlementSpec (injected)
         │
         ▼
    SpecNode
         │
         ▼
    LocatePaymentNode (payment + order, both row-locked)
         │
         ├── MissingPaymentNode ──────┐
         ├── SettledPaymentNode ──────┤
         ├── AmountMismatchNode ──────┼── SettlementOutcome (@polymorphic)
         └── VerifiedSignalNode ──────┘             │
               (success / failure / unknown)        ▼
                                             FinalResultNode

Cases are tried in order. A case may only refuse (NodeError) before it
writes anything. Every rejection is decided before the first write, so a
rejected signal leaves the transaction untouched.

Note: no 'from __future__ import annotations' here, nodnod resolves
__compose__ hints at runtime.
"""

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error

from ordercore import graph as G
from ordercore.domain import (
    Order,
    OrderStatus,
    Payment,
    PaymentSignal,
    PaymentStatus,
    Settlement,
    SignalKind,
)
from ordercore.errors import CoreError, Errors
from ordercore.inventory import InventoryLedger
from ordercore.orders import cancel_within, change_status
from ordercore.state_machine import can_transition
from ordercore.store import Transaction

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SettlementSpec:
    """One signal plus the open transaction it is reconciled in."""

    signal: PaymentSignal
    tx: Transaction
    ledger: InventoryLedger


@G.node
class SpecNode:
    def __init__(self, spec: SettlementSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: SettlementSpec) -> "SpecNode":
        return cls(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Locate
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class LocatePaymentNode:
    """Payment by provider reference, then its order. Both under lock."""

    def __init__(
        self, payment: Payment | None, order: Order | None, spec: SettlementSpec
    ) -> None:
        self.payment = payment
        self.order = order
        self.spec = spec

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "LocatePaymentNode":
        spec = spec_node.spec
        payment = await spec.tx.find_payment_by_provider_ref(
            spec.signal.provider_ref, for_update=True
        )
        if payment is None:
            return cls(None, None, spec)
        order = await spec.tx.get_order(payment.order_id, for_update=True)
        return cls(payment, order, spec)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — each validates one situation
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class MissingPaymentNode:
    def __init__(self, spec: SettlementSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, located: LocatePaymentNode) -> "MissingPaymentNode":
        if located.payment is not None:
            raise NodeError("Payment exists")
        return cls(located.spec)


@G.node
class SettledPaymentNode:
    """Payment already reached a terminal status: a duplicate delivery."""

    def __init__(
        self, payment: Payment, order: Order | None, spec: SettlementSpec
    ) -> None:
        self.payment = payment
        self.order = order
        self.spec = spec

    @classmethod
    def __compose__(cls, located: LocatePaymentNode) -> "SettledPaymentNode":
        payment = located.payment
        if payment is None:
            raise NodeError("No payment")
        if not payment.is_settled:
            raise NodeError("Not settled")
        return cls(payment, located.order, located.spec)


@G.node
class AmountMismatchNode:
    def __init__(self, payment: Payment, received: int) -> None:
        self.payment = payment
        self.received = received

    @classmethod
    def __compose__(cls, located: LocatePaymentNode) -> "AmountMismatchNode":
        payment = located.payment
        if payment is None or payment.is_settled:
            raise NodeError("Nothing to compare")
        received = located.spec.signal.amount
        if received is None or received == payment.amount:
            raise NodeError("Amount matches")
        return cls(payment, received)


@G.node
class VerifiedSignalNode:
    """Open payment, amount checked. Ready to apply."""

    def __init__(
        self, payment: Payment, order: Order | None, spec: SettlementSpec
    ) -> None:
        self.payment = payment
        self.order = order
        self.spec = spec

    @classmethod
    def __compose__(cls, located: LocatePaymentNode) -> "VerifiedSignalNode":
        payment = located.payment
        if payment is None or payment.is_settled:
            raise NodeError("No open payment")
        received = located.spec.signal.amount
        if received is not None and received != payment.amount:
            raise NodeError("Amount mismatch")
        return cls(payment, located.order, located.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeSettled:
    settlement: Settlement


@dataclass(frozen=True)
class OutcomeRejected:
    error: CoreError
    payment: Payment | None


type Outcome = OutcomeSettled | OutcomeRejected


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class SettlementOutcome:
    @case
    def missing_payment(cls, node: MissingPaymentNode) -> Outcome:
        ref = node.spec.signal.provider_ref
        logger.warning("No payment for provider reference %s", ref)
        return OutcomeRejected(Errors.payment_not_found(ref), None)

    @case
    def already_settled(cls, node: SettledPaymentNode) -> Outcome:
        logger.warning(
            "Payment %s already processed with status %s; ignoring %s",
            node.payment.id,
            node.payment.status.value,
            node.spec.signal.event,
        )
        return OutcomeSettled(Settlement(node.payment, node.order, applied=False))

    @case
    def amount_mismatch(cls, node: AmountMismatchNode) -> Outcome:
        logger.error(
            "Amount mismatch for payment %s: expected %d, received %d",
            node.payment.id,
            node.payment.amount,
            node.received,
        )
        return OutcomeRejected(
            Errors.amount_mismatch(node.payment.amount, node.received), node.payment
        )

    @case
    async def settle_success(cls, node: VerifiedSignalNode) -> Outcome:
        """Payment SUCCESS, order PAID. Stock stays reserved."""
        signal = node.spec.signal
        if signal.kind is not SignalKind.SUCCEEDED:
            raise NodeError("Not a success signal")

        order = node.order
        if order is None:
            return OutcomeRejected(Errors.order_not_found(), node.payment)
        if not can_transition(order.status, OrderStatus.PAID):
            return OutcomeRejected(
                Errors.invalid_transition(order.status, OrderStatus.PAID),
                node.payment,
            )

        tx = node.spec.tx
        payment = replace(
            node.payment,
            status=PaymentStatus.SUCCESS,
            provider_payment_id=signal.provider_payment_id,
            payment_method=signal.payment_method,
            updated_at=datetime.now(UTC),
        )
        await tx.save_payment(payment)
        paid = await change_status(tx, order, OrderStatus.PAID, "Payment successful")

        logger.info(
            "Payment %s successful, order %s marked as PAID", payment.id, order.id
        )
        return OutcomeSettled(Settlement(payment, paid, applied=True))

    @case
    async def settle_failure(cls, node: VerifiedSignalNode) -> Outcome:
        """Payment FAILED; a still-cancellable order is cancelled and restocked."""
        signal = node.spec.signal
        if signal.kind is not SignalKind.FAILED:
            raise NodeError("Not a failure signal")

        tx = node.spec.tx
        payment = replace(
            node.payment,
            status=PaymentStatus.FAILED,
            provider_payment_id=signal.provider_payment_id,
            failure_reason=signal.failure_reason,
            updated_at=datetime.now(UTC),
        )
        await tx.save_payment(payment)

        order = node.order
        if order is None or not can_transition(order.status, OrderStatus.CANCELLED):
            # Already cancelled elsewhere: its stock went back then.
            logger.warning(
                "Payment %s failed but order %s is %s; order left as is",
                payment.id,
                payment.order_id,
                order.status.value if order is not None else "missing",
            )
            return OutcomeSettled(Settlement(payment, order, applied=True))

        cancelled = await cancel_within(
            tx,
            node.spec.ledger,
            order,
            reason=None,
            note=f"Payment failed: {signal.failure_reason or 'Unknown reason'}",
        )
        logger.info(
            "Payment %s failed, order %s cancelled and inventory restored",
            payment.id,
            order.id,
        )
        return OutcomeSettled(Settlement(payment, cancelled, applied=True))

    @case
    def ignore_unknown(cls, node: VerifiedSignalNode) -> Outcome:
        logger.warning(
            "Unknown webhook event %s for payment %s",
            node.spec.signal.event,
            node.payment.id,
        )
        return OutcomeSettled(Settlement(node.payment, node.order, applied=False))


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: SettlementOutcome) -> "FinalResultNode":
        return cls(outcome.value)

    @property
    def payment(self) -> Payment | None:
        match self.outcome:
            case OutcomeSettled(settlement=s):
                return s.payment
            case OutcomeRejected(payment=p):
                return p

    def to_result(self) -> Result[Settlement, CoreError]:
        match self.outcome:
            case OutcomeSettled(settlement=s):
                return Ok(s)
            case OutcomeRejected(error=err):
                return Error(err)


__all__ = (
    "SettlementSpec",
    "Outcome",
    "OutcomeSettled",
    "OutcomeRejected",
    "SpecNode",
    "LocatePaymentNode",
    "MissingPaymentNode",
    "SettledPaymentNode",
    "AmountMismatchNode",
    "VerifiedSignalNode",
    "SettlementOutcome",
    "FinalResultNode",
)
