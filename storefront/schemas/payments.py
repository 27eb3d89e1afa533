# storefront/schemas/payments.py
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from storefront.core.enums import SettlementStatus


class PaymentInitRequest(BaseModel):
    order_id: str
    amount: Decimal = Field(..., gt=0)
    email: str
    metadata: Dict[str, Any] = {}


class PaymentInitResult(BaseModel):
    payment_id: str
    order_id: str
    reference: str
    authorization_url: str
    access_code: Optional[str] = None
    amount: Decimal
    currency: str


class SettlementResult(BaseModel):
    status: SettlementStatus
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    event_id: Optional[str] = None
    reconciliation_required: bool = False
    message: Optional[str] = None
