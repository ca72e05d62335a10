"""
Settings — runtime configuration.

Fluent builder pattern, like every policy object in the package:

    settings = (
        Settings.from_env()
        .with_currency("INR")
        .with_transaction_timeout(seconds=10)
        .with_webhook_secret("whsec_...")
    )

Immutable — each method returns new Settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///:memory:"
    isolation_level: str | None = "SERIALIZABLE"
    currency: str = "INR"
    transaction_timeout_seconds: float = 10.0
    order_number_attempts: int = 3
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_tolerance_seconds: int = 300
    webhook_secret: str = "test_secret"
    production: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Read settings from environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            database_url=env.get("DATABASE_URL", defaults.database_url),
            isolation_level=env.get("DB_ISOLATION_LEVEL", defaults.isolation_level)
            or None,
            currency=env.get("PAYMENT_CURRENCY", defaults.currency),
            transaction_timeout_seconds=float(
                env.get(
                    "TRANSACTION_TIMEOUT_SECONDS",
                    defaults.transaction_timeout_seconds,
                )
            ),
            order_number_attempts=int(
                env.get("ORDER_NUMBER_ATTEMPTS", defaults.order_number_attempts)
            ),
            stripe_secret_key=env.get("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET") or None,
            webhook_secret=env.get("WEBHOOK_SECRET", defaults.webhook_secret),
            production=env.get("APP_ENV", "").lower() == "production",
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )

    def with_database(
        self, url: str, *, isolation_level: str | None = None
    ) -> Settings:
        """
        Point at another database.

        Example:
            .with_database("postgresql+asyncpg://...", isolation_level="SERIALIZABLE")
        """
        return replace(self, database_url=url, isolation_level=isolation_level)

    def with_currency(self, currency: str) -> Settings:
        return replace(self, currency=currency.upper())

    def with_transaction_timeout(self, *, seconds: float) -> Settings:
        if seconds <= 0:
            raise ValueError("transaction timeout must be positive")
        return replace(self, transaction_timeout_seconds=seconds)

    def with_order_number_attempts(self, attempts: int) -> Settings:
        if attempts < 1:
            raise ValueError("order_number_attempts must be >= 1")
        return replace(self, order_number_attempts=attempts)

    def with_stripe(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        tolerance_seconds: int | None = None,
    ) -> Settings:
        return replace(
            self,
            stripe_secret_key=secret_key,
            stripe_webhook_secret=webhook_secret,
            stripe_tolerance_seconds=tolerance_seconds or self.stripe_tolerance_seconds,
        )

    def with_webhook_secret(self, secret: str) -> Settings:
        return replace(self, webhook_secret=secret)

    def with_production(self, production: bool = True) -> Settings:
        return replace(self, production=production)


# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════


def configure_logging(settings: Settings) -> None:
    """Install a basic stderr handler for the ordercore loggers."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("ordercore").setLevel(settings.log_level)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("Settings", "configure_logging")
