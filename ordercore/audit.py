"""
Audit — best-effort record of who did what.

    auditor = Auditor(SQLAlchemyAuditSink(session_factory))
    await auditor.order(AuditAction.ORDER_CREATED, order.id, actor.id, {...})

Audit never fails a business operation: sink errors are logged and dropped.
Metadata is redacted before it reaches the sink.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordercore.store import AuditLogRow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Entry
# ═══════════════════════════════════════════════════════════════════════════════


class AuditAction(Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_INTENT_CREATED = "PAYMENT_INTENT_CREATED"
    PAYMENT_WEBHOOK_RECEIVED = "PAYMENT_WEBHOOK_RECEIVED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    action: AuditAction
    resource: str
    actor_id: str | None
    metadata: dict[str, Any] | None
    ip_address: str = "0.0.0.0"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# ═══════════════════════════════════════════════════════════════════════════════
# Redaction
# ═══════════════════════════════════════════════════════════════════════════════

SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "apikey",
    "creditcard",
    "cvv",
    "ssn",
)

REDACTED = "[REDACTED]"


def _is_sensitive(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(s in normalized for s in SENSITIVE_KEYS)


def _redact_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return redact(value)
    if isinstance(value, list | tuple):
        return [_redact_value(v) for v in value]
    return value


def redact(metadata: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Copy of metadata with sensitive keys masked, recursively."""
    if metadata is None:
        return None
    return {
        key: REDACTED if _is_sensitive(key) else _redact_value(value)
        for key, value in metadata.items()
    }


# ═══════════════════════════════════════════════════════════════════════════════
# Sinks
# ═══════════════════════════════════════════════════════════════════════════════


class AuditSink(Protocol):
    async def write(self, entry: AuditEntry) -> None: ...


class MemoryAuditSink:
    """Keeps entries in a list. For tests."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> list[AuditAction]:
        return [e.action for e in self.entries]


class SQLAlchemyAuditSink:
    """Writes to audit_logs in its own session, after the business commit."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def write(self, entry: AuditEntry) -> None:
        async with self._session_factory() as session:
            session.add(
                AuditLogRow(
                    user_id=entry.actor_id,
                    action=entry.action.value,
                    resource=entry.resource,
                    details=entry.metadata,
                    ip_address=entry.ip_address,
                    created_at=entry.created_at,
                )
            )
            await session.commit()


# ═══════════════════════════════════════════════════════════════════════════════
# Auditor
# ═══════════════════════════════════════════════════════════════════════════════


class Auditor:
    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    async def record(
        self,
        action: AuditAction,
        resource: str,
        actor_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> None:
        entry = AuditEntry(
            action=action,
            resource=resource,
            actor_id=actor_id,
            metadata=redact(metadata),
            ip_address=ip_address or "0.0.0.0",
        )
        try:
            await self._sink.write(entry)
        except Exception:
            logger.exception("Failed to write audit log %s on %s", action.value, resource)
            return
        logger.info(
            "Audit: %s on %s by %s", action.value, resource, actor_id or "anonymous"
        )

    async def order(
        self,
        action: AuditAction,
        order_id: str,
        actor_id: str | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        await self.record(action, f"Order:{order_id}", actor_id, metadata)

    async def payment(
        self,
        action: AuditAction,
        payment_id: str,
        actor_id: str | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        await self.record(action, f"Payment:{payment_id}", actor_id, metadata)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "AuditAction",
    "AuditEntry",
    "AuditSink",
    "MemoryAuditSink",
    "SQLAlchemyAuditSink",
    "Auditor",
    "redact",
    "SENSITIVE_KEYS",
    "REDACTED",
)
