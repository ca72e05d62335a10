"""
Errors — one taxonomy for every core operation.

Operations return Result[T, CoreError]; nothing expected is raised.
The kind tells a caller whether retrying makes sense, the message is safe
to show across the trust boundary.

    match await orders.create_order(...):
        case Ok(order):
            ...
        case Error(err) if err.kind is ErrorKind.CONFLICT:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Kinds
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    VALIDATION = auto()  # Bad input shape or range
    CONFLICT = auto()  # Stock, uniqueness, concurrent creation
    NOT_FOUND = auto()
    FORBIDDEN = auto()  # Ownership or role
    INVALID_TRANSITION = auto()  # Order state machine violation
    AMOUNT_MISMATCH = auto()  # Provider amount differs from payment
    SIGNATURE = auto()  # Webhook signature rejected
    PROVIDER = auto()  # External provider call failed
    TIMEOUT = auto()  # Transaction scope exceeded its bound
    STORAGE = auto()  # Store raised instead of returning a result


_RETRYABLE = frozenset({ErrorKind.CONFLICT, ErrorKind.PROVIDER, ErrorKind.TIMEOUT})


@dataclass(frozen=True, slots=True)
class CoreError:
    kind: ErrorKind
    message: str
    original_error: Any | None = None

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE

    def __str__(self) -> str:
        return f"{self.kind.name}: {self.message}"


# ═══════════════════════════════════════════════════════════════════════════════
# Store-level conflict
# ═══════════════════════════════════════════════════════════════════════════════


class StoreConflict(Exception):
    """Raised by stores when a unique constraint rejects a write."""

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field}: {value}")


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════


class Errors:
    @staticmethod
    def validation(msg: str) -> CoreError:
        return CoreError(ErrorKind.VALIDATION, msg)

    @staticmethod
    def product_unavailable() -> CoreError:
        return CoreError(
            ErrorKind.VALIDATION, "One or more products not found or inactive"
        )

    @staticmethod
    def insufficient_stock(title: str, available: int, requested: int) -> CoreError:
        return CoreError(
            ErrorKind.CONFLICT,
            f"Insufficient stock for {title}. "
            f"Available: {available}, Requested: {requested}",
        )

    @staticmethod
    def conflict(msg: str, cause: Exception | None = None) -> CoreError:
        return CoreError(ErrorKind.CONFLICT, msg, cause)

    @staticmethod
    def order_number_taken(cause: StoreConflict) -> CoreError:
        return CoreError(
            ErrorKind.CONFLICT, f"Order number collision: {cause.value}", cause
        )

    @staticmethod
    def order_not_found() -> CoreError:
        return CoreError(ErrorKind.NOT_FOUND, "Order not found")

    @staticmethod
    def order_not_owned() -> CoreError:
        return CoreError(
            ErrorKind.NOT_FOUND, "Order not found or does not belong to you"
        )

    @staticmethod
    def payment_not_found(ref: str | None = None) -> CoreError:
        if ref is None:
            return CoreError(ErrorKind.NOT_FOUND, "Payment not found")
        return CoreError(
            ErrorKind.NOT_FOUND, f"Payment not found for provider reference: {ref}"
        )

    @staticmethod
    def forbidden(msg: str) -> CoreError:
        return CoreError(ErrorKind.FORBIDDEN, msg)

    @staticmethod
    def not_your_order() -> CoreError:
        return CoreError(ErrorKind.FORBIDDEN, "You can only view your own orders")

    @staticmethod
    def not_your_order_to_cancel() -> CoreError:
        return CoreError(ErrorKind.FORBIDDEN, "You can only cancel your own orders")

    @staticmethod
    def admin_only() -> CoreError:
        return CoreError(ErrorKind.FORBIDDEN, "Administrative privilege required")

    @staticmethod
    def invalid_transition(current: Enum, target: Enum) -> CoreError:
        return CoreError(
            ErrorKind.INVALID_TRANSITION,
            f"Invalid status transition from {current.value} to {target.value}",
        )

    @staticmethod
    def cannot_cancel(current: Enum) -> CoreError:
        return CoreError(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot cancel order with status {current.value}",
        )

    @staticmethod
    def cannot_pay(current: Enum) -> CoreError:
        return CoreError(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot create payment for order with status {current.value}",
        )

    @staticmethod
    def cannot_refund() -> CoreError:
        return CoreError(
            ErrorKind.INVALID_TRANSITION, "Can only refund successful payments"
        )

    @staticmethod
    def amount_mismatch(expected: int, got: int) -> CoreError:
        return CoreError(
            ErrorKind.AMOUNT_MISMATCH,
            "Payment amount mismatch",
            {"expected": expected, "received": got},
        )

    @staticmethod
    def invalid_signature() -> CoreError:
        return CoreError(ErrorKind.SIGNATURE, "Invalid webhook signature")

    @staticmethod
    def malformed_event(cause: Exception) -> CoreError:
        return CoreError(ErrorKind.VALIDATION, "Malformed provider event", cause)

    @staticmethod
    def provider(msg: str, cause: Exception | None = None) -> CoreError:
        return CoreError(ErrorKind.PROVIDER, msg, cause)

    @staticmethod
    def storage(msg: str, cause: Exception) -> CoreError:
        return CoreError(ErrorKind.STORAGE, msg, cause)

    @staticmethod
    def timeout(seconds: float) -> CoreError:
        return CoreError(ErrorKind.TIMEOUT, f"Transaction timed out after {seconds}s")


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorKind",
    "CoreError",
    "StoreConflict",
    "Errors",
)
