"""
Shared enums and constants used across the application.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle. The settlement pipeline only moves orders out of PENDING."""
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    """Settlement state of a single payment attempt"""
    INITIALIZED = "initialized"
    PAID = "paid"              # Gateway confirmed capture, stock not yet committed
    COMMITTED = "committed"    # Stock permanently decremented
    FAILED = "failed"
    RELEASED = "released"      # Cancelled or reservation expired before payment

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.COMMITTED, PaymentStatus.FAILED, PaymentStatus.RELEASED)


class ReservationOutcome(str, Enum):
    """Terminal state of a reservation, written together with released_at"""
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"


class WebhookEventStatus(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class SettlementStatus(str, Enum):
    """Result status returned to the webhook / verification callers"""
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    ALREADY_PROCESSED = "already_processed"


class StockOperation(str, Enum):
    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"


class GatewayEventType(str, Enum):
    CHARGE_SUCCESS = "charge.success"
    CHARGE_FAILED = "charge.failed"


# Gateway transaction statuses that end a payment without capture
GATEWAY_FAILURE_STATUSES = {"failed", "abandoned", "reversed"}
