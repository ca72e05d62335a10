"""
Shared fixtures for the ordercore test suite.

Store-backed fixtures are parametrised over MemoryStore and an in-memory
aiosqlite database, so every such test runs against both.
"""

from collections.abc import Awaitable, Callable, Mapping

import pytest
import pytest_asyncio

from ordercore.audit import Auditor, MemoryAuditSink
from ordercore.config import Settings
from ordercore.domain import (
    Actor,
    IntentHandle,
    PaymentProvider,
    PaymentSignal,
    Product,
    Role,
    ShippingAddress,
)
from ordercore.inventory import InventoryLedger
from ordercore.orders import OrderService
from ordercore.providers import HmacGateway
from ordercore.settlement import SettlementEngine
from ordercore.store import MemoryStore, SQLAlchemyStore, Store, create_database

WEBHOOK_SECRET = "test_secret"


# ============================================================================
# Gateways
# ============================================================================


class RecordingGateway:
    """HmacGateway that records calls and can be told to fail."""

    def __init__(
        self,
        provider: PaymentProvider = PaymentProvider.RAZORPAY,
        *,
        fail_create: bool = False,
    ) -> None:
        self._inner = HmacGateway(provider, WEBHOOK_SECRET)
        self.fail_create = fail_create
        self.created: list[IntentHandle] = []
        self.cancelled: list[str] = []

    @property
    def provider(self) -> PaymentProvider:
        return self._inner.provider

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> IntentHandle:
        if self.fail_create:
            raise ConnectionError("provider unreachable")
        handle = await self._inner.create_intent(amount, currency, metadata, idempotency_key)
        self.created.append(handle)
        return handle

    async def cancel_intent(self, provider_ref: str) -> None:
        self.cancelled.append(provider_ref)

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        return self._inner.verify_signature(payload, signature)

    def parse_event(self, payload: bytes) -> PaymentSignal | None:
        return self._inner.parse_event(payload)


# ============================================================================
# Basic values
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings().with_transaction_timeout(seconds=5)


@pytest.fixture
def customer() -> Actor:
    return Actor("user-1")


@pytest.fixture
def other_customer() -> Actor:
    return Actor("user-2")


@pytest.fixture
def admin() -> Actor:
    return Actor("admin-1", Role.ADMIN)


@pytest.fixture
def shipping() -> ShippingAddress:
    return ShippingAddress(
        name="Asha Rao",
        phone="9876543210",
        line1="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
        country="India",
    )


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def auditor(audit_sink: MemoryAuditSink) -> Auditor:
    return Auditor(audit_sink)


@pytest.fixture
def ledger() -> InventoryLedger:
    return InventoryLedger()


# ============================================================================
# Stores
# ============================================================================


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def store(request: pytest.FixtureRequest):
    if request.param == "memory":
        yield MemoryStore()
        return

    session_factory, engine = await create_database("sqlite+aiosqlite:///:memory:")
    try:
        yield SQLAlchemyStore(session_factory)
    finally:
        await engine.dispose()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def seed() -> Callable[..., Awaitable[None]]:
    async def _seed(store: Store, *products: Product) -> None:
        async with store.transaction() as tx:
            for product in products:
                await tx.put_product(product)

    return _seed


@pytest.fixture
def stock_of() -> Callable[[Store, str], Awaitable[int]]:
    async def _stock_of(store: Store, product_id: str) -> int:
        async with store.transaction() as tx:
            products = await tx.get_products([product_id])
        return products[product_id].stock

    return _stock_of


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def orders(store: Store, ledger: InventoryLedger, auditor: Auditor, settings: Settings) -> OrderService:
    return OrderService(store, ledger, auditor, settings)


@pytest.fixture
def engine(
    store: Store,
    ledger: InventoryLedger,
    auditor: Auditor,
    settings: Settings,
    gateway: RecordingGateway,
) -> SettlementEngine:
    return SettlementEngine(
        store,
        ledger,
        auditor,
        {PaymentProvider.RAZORPAY: gateway},
        settings,
    )
