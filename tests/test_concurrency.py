"""
Racing callers against one store.

MemoryStore only: the shared-connection SQLite fixture cannot interleave
transactions.
"""

import asyncio

import pytest

from kungfu import Ok, Error

from ordercore.domain import LineRequest, OrderStatus, PaymentProvider, Product
from ordercore.errors import ErrorKind
from ordercore.orders import OrderService
from ordercore.settlement import SettlementEngine
from ordercore.store import MemoryStore

from tests.conftest import RecordingGateway


@pytest.fixture
def service(memory_store, ledger, auditor, settings) -> OrderService:
    return OrderService(memory_store, ledger, auditor, settings)


@pytest.fixture
def settlement(memory_store, ledger, auditor, settings, gateway) -> SettlementEngine:
    return SettlementEngine(
        memory_store, ledger, auditor, {PaymentProvider.RAZORPAY: gateway}, settings
    )


class TestOversell:
    @pytest.mark.asyncio
    async def test_last_units_go_to_exactly_one_buyer(self, memory_store: MemoryStore, seed, stock_of, service, customer, shipping):
        await seed(memory_store, Product("p1", "Lamp", price=900, stock=5))

        results = await asyncio.gather(
            *(
                service.create_order(customer, [LineRequest("p1", 1)], shipping)
                for _ in range(12)
            )
        )

        placed = [r for r in results if isinstance(r, Ok)]
        rejected = [r.unwrap_err() for r in results if isinstance(r, Error)]
        assert len(placed) == 5
        assert len(rejected) == 7
        assert all(err.kind is ErrorKind.CONFLICT for err in rejected)
        assert await stock_of(memory_store, "p1") == 0

    @pytest.mark.asyncio
    async def test_cancel_and_buy_race_never_goes_negative(self, memory_store: MemoryStore, seed, stock_of, service, customer, shipping):
        await seed(memory_store, Product("p1", "Lamp", price=900, stock=2))
        first = (await service.create_order(customer, [LineRequest("p1", 2)], shipping)).unwrap()

        cancelled, *buys = await asyncio.gather(
            service.cancel_order(first.id, customer),
            *(service.create_order(customer, [LineRequest("p1", 1)], shipping) for _ in range(4)),
        )

        assert cancelled
        placed = sum(1 for r in buys if r)
        assert placed <= 2
        assert await stock_of(memory_store, "p1") == 2 - placed


class TestDuplicateDelivery:
    @pytest.mark.asyncio
    async def test_concurrent_replays_apply_once(self, memory_store: MemoryStore, seed, service, settlement, customer, shipping):
        await seed(memory_store, Product("p1", "Lamp", price=900, stock=5))
        order = (await service.create_order(customer, [LineRequest("p1", 1)], shipping)).unwrap()
        intent = (
            await settlement.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY)
        ).unwrap()

        results = await asyncio.gather(
            *(settlement.simulate_success(order.id) for _ in range(5))
        )

        applied = [r.unwrap().applied for r in results]
        assert applied.count(True) == 1
        tracking = (await service.get_tracking(order.id, customer)).unwrap()
        assert [t.status for t in tracking].count(OrderStatus.PAID) == 1
        payment = (await settlement.get_payment_for_order(order.id, customer)).unwrap()
        assert payment.id == intent.payment.id

    @pytest.mark.asyncio
    async def test_concurrent_intents_share_one_payment(self, memory_store: MemoryStore, seed, service, ledger, auditor, settings, customer, shipping):
        await seed(memory_store, Product("p1", "Lamp", price=900, stock=5))
        order = (await service.create_order(customer, [LineRequest("p1", 1)], shipping)).unwrap()
        gateway = RecordingGateway()
        engine = SettlementEngine(
            memory_store, ledger, auditor, {PaymentProvider.RAZORPAY: gateway}, settings
        )

        results = await asyncio.gather(
            *(engine.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY) for _ in range(3))
        )

        payment_ids = {r.unwrap().payment.id for r in results}
        assert len(payment_ids) == 1
        # Losers of the race had their provider intents cancelled.
        assert len(gateway.cancelled) == len(gateway.created) - 1
