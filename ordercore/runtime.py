"""
Runtime — the composition root.

    runtime = await bootstrap(Settings.from_env())
    app = create_app(runtime.settlement, runtime.settings)
    ...
    await runtime.aclose()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from ordercore.audit import Auditor, SQLAlchemyAuditSink
from ordercore.config import Settings
from ordercore.domain import PaymentProvider
from ordercore.inventory import InventoryLedger
from ordercore.orders import OrderService
from ordercore.providers import HmacGateway, PaymentGateway, StripeGateway
from ordercore.settlement import SettlementEngine
from ordercore.store import SQLAlchemyStore, create_database

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Runtime:
    settings: Settings
    engine: AsyncEngine
    store: SQLAlchemyStore
    auditor: Auditor
    gateways: dict[PaymentProvider, PaymentGateway]
    orders: OrderService
    settlement: SettlementEngine

    async def aclose(self) -> None:
        await self.engine.dispose()


def build_gateways(settings: Settings) -> dict[PaymentProvider, PaymentGateway]:
    gateways: dict[PaymentProvider, PaymentGateway] = {
        provider: HmacGateway(provider, settings.webhook_secret)
        for provider in (PaymentProvider.RAZORPAY, PaymentProvider.PAYPAL, PaymentProvider.COD)
    }
    if settings.stripe_secret_key:
        gateways[PaymentProvider.STRIPE] = StripeGateway(
            settings.stripe_secret_key,
            settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_tolerance_seconds,
        )
    else:
        logger.warning("STRIPE_SECRET_KEY not configured. Stripe payments will not work.")
    return gateways


async def bootstrap(settings: Settings) -> Runtime:
    session_factory, engine = await create_database(
        settings.database_url, isolation_level=settings.isolation_level
    )
    store = SQLAlchemyStore(session_factory)
    auditor = Auditor(SQLAlchemyAuditSink(session_factory))
    ledger = InventoryLedger()
    gateways = build_gateways(settings)

    logger.info("ordercore ready on %s", engine.url.render_as_string(hide_password=True))
    return Runtime(
        settings=settings,
        engine=engine,
        store=store,
        auditor=auditor,
        gateways=gateways,
        orders=OrderService(store, ledger, auditor, settings),
        settlement=SettlementEngine(store, ledger, auditor, gateways, settings),
    )


__all__ = ("Runtime", "build_gateways", "bootstrap")
