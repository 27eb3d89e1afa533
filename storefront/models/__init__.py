from .stock_variant import StockVariant
from .reservation import Reservation
from .order import Order
from .payment import Payment
from .webhook import WebhookEvent
from .audit_log import AuditLog

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'StockVariant',
    'Reservation',
    'Order',
    'Payment',
    'WebhookEvent',
    'AuditLog',
]
