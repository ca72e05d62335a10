"""
Store — persistence collaborator for the core.

    from ordercore import store as St

    memory = St.MemoryStore()
    sessions, engine = await St.create_database(url, isolation_level="SERIALIZABLE")
    sql = St.SQLAlchemyStore(sessions)

    result = await St.with_transaction(sql, work, timeout_seconds=10)
"""

from ordercore.store._protocol import (
    Transaction,
    Store,
    Work,
    with_transaction,
)
from ordercore.store._memory import MemoryStore, MemoryTransaction
from ordercore.store._tables import (
    Base,
    ProductRow,
    OrderRow,
    OrderItemRow,
    OrderTrackingRow,
    PaymentRow,
    AuditLogRow,
    create_database,
)
from ordercore.store._sqlalchemy import SQLAlchemyStore, SQLAlchemyTransaction

__all__ = (
    "Transaction",
    "Store",
    "Work",
    "with_transaction",
    "MemoryStore",
    "MemoryTransaction",
    "Base",
    "ProductRow",
    "OrderRow",
    "OrderItemRow",
    "OrderTrackingRow",
    "PaymentRow",
    "AuditLogRow",
    "create_database",
    "SQLAlchemyStore",
    "SQLAlchemyTransaction",
)
