from .checkout import (
    ReservationItem,
    ReserveRequest,
    ReservationResult,
    CommitResult,
    ReleaseResult,
    ExpiryResult,
)
from .payments import PaymentInitRequest, PaymentInitResult, SettlementResult
from .inventory import StockVariantRead, StockAdjustRequest, InventoryStats
