"""
Database layer — SQLAlchemy models for the order/payment core.

Uniqueness the core relies on lives here as constraints:
    orders.order_number, payments.order_id, payments.idempotency_key
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ordercore.domain import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    Product,
    ShippingAddress,
    TrackingEntry,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class ProductRow(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock"),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    thumbnail: Mapped[str | None] = mapped_column(String(500), nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_domain(cls, p: Product) -> "ProductRow":
        return cls(
            id=p.id,
            title=p.title,
            price=p.price,
            stock=p.stock,
            is_active=p.is_active,
            thumbnail=p.thumbnail,
            images=list(p.images),
        )

    def to_domain(self) -> Product:
        return Product(
            id=self.id,
            title=self.title,
            price=self.price,
            stock=self.stock,
            is_active=self.is_active,
            thumbnail=self.thumbnail,
            images=tuple(self.images or ()),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Money, minor units
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    tax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_charge: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # Shipping snapshot
    shipping_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shipping_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    shipping_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    shipping_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shipping_city: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_state: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_pincode: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_country: Mapped[str] = mapped_column(String(100), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, o: Order) -> "OrderRow":
        return cls(
            id=o.id,
            order_number=o.order_number,
            user_id=o.user_id,
            status=o.status.value,
            subtotal=o.subtotal,
            tax=o.tax,
            shipping_charge=o.shipping_charge,
            discount=o.discount,
            total_amount=o.total_amount,
            shipping_name=o.shipping.name,
            shipping_phone=o.shipping.phone,
            shipping_line1=o.shipping.line1,
            shipping_line2=o.shipping.line2,
            shipping_city=o.shipping.city,
            shipping_state=o.shipping.state,
            shipping_pincode=o.shipping.pincode,
            shipping_country=o.shipping.country,
            notes=o.notes,
            cancel_reason=o.cancel_reason,
            created_at=o.created_at,
            updated_at=o.updated_at,
        )

    def to_domain(self, items: tuple[OrderItem, ...]) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=self.user_id,
            status=OrderStatus(self.status),
            subtotal=self.subtotal,
            tax=self.tax,
            shipping_charge=self.shipping_charge,
            discount=self.discount,
            total_amount=self.total_amount,
            shipping=ShippingAddress(
                name=self.shipping_name,
                phone=self.shipping_phone,
                line1=self.shipping_line1,
                line2=self.shipping_line2,
                city=self.shipping_city,
                state=self.shipping_state,
                pincode=self.shipping_pincode,
                country=self.shipping_country,
            ),
            items=items,
            created_at=self.created_at,
            updated_at=self.updated_at,
            notes=self.notes,
            cancel_reason=self.cancel_reason,
        )


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(50), nullable=False)
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    @classmethod
    def from_domain(cls, item: OrderItem, position: int) -> "OrderItemRow":
        return cls(
            id=item.id,
            order_id=item.order_id,
            position=position,
            product_id=item.product_id,
            product_title=item.product_title,
            product_image=item.product_image,
            quantity=item.quantity,
            price_per_unit=item.price_per_unit,
            total_price=item.total_price,
        )

    def to_domain(self) -> OrderItem:
        return OrderItem(
            id=self.id,
            order_id=self.order_id,
            product_id=self.product_id,
            product_title=self.product_title,
            product_image=self.product_image,
            quantity=self.quantity,
            price_per_unit=self.price_per_unit,
            total_price=self.total_price,
        )


class OrderTrackingRow(Base):
    """Append-only. Never updated or deleted."""

    __tablename__ = "order_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> TrackingEntry:
        return TrackingEntry(
            order_id=self.order_id,
            status=OrderStatus(self.status),
            note=self.note,
            created_at=self.created_at,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentRow(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.id"), nullable=False, unique=True
    )
    user_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_order_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    provider_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, p: Payment) -> "PaymentRow":
        row = cls(id=p.id, created_at=p.created_at)
        row.apply(p)
        return row

    def apply(self, p: Payment) -> None:
        self.order_id = p.order_id
        self.user_id = p.user_id
        self.amount = p.amount
        self.currency = p.currency
        self.status = p.status.value
        self.provider = p.provider.value
        self.provider_order_id = p.provider_order_id
        self.provider_payment_id = p.provider_payment_id
        self.payment_method = p.payment_method
        self.idempotency_key = p.idempotency_key
        self.failure_reason = p.failure_reason
        self.updated_at = p.updated_at

    def to_domain(self) -> Payment:
        return Payment(
            id=self.id,
            order_id=self.order_id,
            user_id=self.user_id,
            amount=self.amount,
            currency=self.currency,
            status=PaymentStatus(self.status),
            provider=PaymentProvider(self.provider),
            idempotency_key=self.idempotency_key,
            created_at=self.created_at,
            updated_at=self.updated_at,
            provider_order_id=self.provider_order_id,
            provider_payment_id=self.provider_payment_id,
            payment_method=self.payment_method,
            failure_reason=self.failure_reason,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Audit
# ═══════════════════════════════════════════════════════════════════════════════


class AuditLogRow(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    *,
    isolation_level: str | None = None,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    if isolation_level is None:
        engine = create_async_engine(url, echo=False)
    else:
        engine = create_async_engine(url, echo=False, isolation_level=isolation_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Base",
    "ProductRow",
    "OrderRow",
    "OrderItemRow",
    "OrderTrackingRow",
    "PaymentRow",
    "AuditLogRow",
    "create_database",
)
