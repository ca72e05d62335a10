"""
Domain — orders, payments and the values that flow between them.

All monetary fields are integers in minor currency units (paise for INR).
Every value here is immutable; stores hand out fresh snapshots and services
build new values with dataclasses.replace().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    REFUNDED = "REFUNDED"


class PaymentStatus(Enum):
    INITIATED = "INITIATED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(Enum):
    STRIPE = "STRIPE"
    RAZORPAY = "RAZORPAY"
    PAYPAL = "PAYPAL"
    COD = "COD"


class Role(Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class SignalKind(Enum):
    """What a provider event says about a payment."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


# ═══════════════════════════════════════════════════════════════════════════════
# Actor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is calling. Passed explicitly into every operation."""

    id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or self.id == owner_id


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog (external, referenced)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    title: str
    price: int
    stock: int
    is_active: bool = True
    thumbnail: str | None = None
    images: tuple[str, ...] = ()

    @property
    def image(self) -> str | None:
        if self.thumbnail:
            return self.thumbnail
        return self.images[0] if self.images else None


# ═══════════════════════════════════════════════════════════════════════════════
# Order Aggregate
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    """Snapshot copied onto the order; never linked to a live address."""

    name: str
    phone: str
    line1: str
    city: str
    state: str
    pincode: str
    country: str
    line2: str | None = None

    def missing_fields(self) -> tuple[str, ...]:
        required = {
            "name": self.name,
            "phone": self.phone,
            "line1": self.line1,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
        }
        return tuple(k for k, v in required.items() if not v or not v.strip())


@dataclass(frozen=True, slots=True)
class LineRequest:
    product_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class OrderItem:
    id: str
    order_id: str
    product_id: str
    product_title: str
    product_image: str | None
    quantity: int
    price_per_unit: int
    total_price: int


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    user_id: str
    status: OrderStatus
    subtotal: int
    tax: int
    shipping_charge: int
    discount: int
    total_amount: int
    shipping: ShippingAddress
    items: tuple[OrderItem, ...]
    created_at: datetime
    updated_at: datetime
    notes: str | None = None
    cancel_reason: str | None = None


@dataclass(frozen=True, slots=True)
class TrackingEntry:
    order_id: str
    status: OrderStatus
    note: str | None
    created_at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Payment
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Payment:
    id: str
    order_id: str
    user_id: str
    amount: int
    currency: str
    status: PaymentStatus
    provider: PaymentProvider
    idempotency_key: str
    created_at: datetime
    updated_at: datetime
    provider_order_id: str | None = None
    provider_payment_id: str | None = None
    payment_method: str | None = None
    failure_reason: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.status in (
            PaymentStatus.SUCCESS,
            PaymentStatus.FAILED,
            PaymentStatus.REFUNDED,
        )


@dataclass(frozen=True, slots=True)
class IntentHandle:
    """Provider-side handle returned by intent creation."""

    provider_ref: str
    client_secret: str


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    payment: Payment
    provider_ref: str
    client_secret: str


@dataclass(frozen=True, slots=True)
class PaymentSignal:
    """
    Provider event normalised for reconciliation.

    amount is None when the provider does not report one; otherwise it must
    match the stored payment exactly.
    """

    kind: SignalKind
    provider_ref: str
    event: str
    provider_payment_id: str | None = None
    amount: int | None = None
    payment_method: str | None = None
    failure_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict[str, Any])


@dataclass(frozen=True, slots=True)
class Settlement:
    """Outcome of reconciling one signal. applied is False for replays."""

    payment: Payment
    order: Order | None
    applied: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OrderStatus",
    "PaymentStatus",
    "PaymentProvider",
    "Role",
    "SignalKind",
    "Actor",
    "Product",
    "ShippingAddress",
    "LineRequest",
    "OrderItem",
    "Order",
    "TrackingEntry",
    "Payment",
    "IntentHandle",
    "PaymentIntent",
    "PaymentSignal",
    "Settlement",
)
