"""
Tests for Settings and the composition root.
"""

import pytest

from ordercore.config import Settings
from ordercore.domain import PaymentProvider
from ordercore.providers import HmacGateway, StripeGateway
from ordercore.runtime import bootstrap, build_gateways


class TestFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings == Settings()
        assert settings.currency == "INR"
        assert not settings.production

    def test_reads_variables(self):
        settings = Settings.from_env(
            {
                "DATABASE_URL": "postgresql+asyncpg://db/orders",
                "DB_ISOLATION_LEVEL": "",
                "PAYMENT_CURRENCY": "USD",
                "TRANSACTION_TIMEOUT_SECONDS": "2.5",
                "ORDER_NUMBER_ATTEMPTS": "5",
                "STRIPE_SECRET_KEY": "sk_live",
                "STRIPE_WEBHOOK_SECRET": "whsec",
                "WEBHOOK_SECRET": "s3cret",
                "APP_ENV": "Production",
                "LOG_LEVEL": "debug",
            }
        )

        assert settings.database_url == "postgresql+asyncpg://db/orders"
        assert settings.isolation_level is None
        assert settings.currency == "USD"
        assert settings.transaction_timeout_seconds == 2.5
        assert settings.order_number_attempts == 5
        assert settings.stripe_secret_key == "sk_live"
        assert settings.stripe_webhook_secret == "whsec"
        assert settings.webhook_secret == "s3cret"
        assert settings.production
        assert settings.log_level == "DEBUG"

    def test_blank_stripe_key_is_unset(self):
        assert Settings.from_env({"STRIPE_SECRET_KEY": ""}).stripe_secret_key is None


class TestBuilders:
    def test_each_builder_returns_new_settings(self):
        base = Settings()
        changed = base.with_currency("usd").with_production()

        assert changed.currency == "USD"
        assert changed.production
        assert base.currency == "INR"
        assert not base.production

    def test_stripe(self):
        settings = Settings().with_stripe(secret_key="sk", webhook_secret="wh")

        assert settings.stripe_secret_key == "sk"
        assert settings.stripe_tolerance_seconds == 300

    @pytest.mark.parametrize("seconds", [0, -1])
    def test_timeout_must_be_positive(self, seconds):
        with pytest.raises(ValueError):
            Settings().with_transaction_timeout(seconds=seconds)

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings().with_order_number_attempts(0)

    def test_database(self):
        settings = Settings().with_database("sqlite+aiosqlite:///orders.db")

        assert settings.database_url == "sqlite+aiosqlite:///orders.db"
        assert settings.isolation_level is None


class TestRuntime:
    def test_gateways_without_stripe(self):
        gateways = build_gateways(Settings())

        assert set(gateways) == {
            PaymentProvider.RAZORPAY,
            PaymentProvider.PAYPAL,
            PaymentProvider.COD,
        }
        assert all(isinstance(g, HmacGateway) for g in gateways.values())

    def test_gateways_with_stripe(self):
        gateways = build_gateways(Settings().with_stripe(secret_key="sk", webhook_secret="wh"))

        assert isinstance(gateways[PaymentProvider.STRIPE], StripeGateway)

    @pytest.mark.asyncio
    async def test_bootstrap(self):
        runtime = await bootstrap(Settings())
        try:
            assert runtime.orders is not None
            assert PaymentProvider.RAZORPAY in runtime.gateways
        finally:
            await runtime.aclose()
