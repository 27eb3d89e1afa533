# storefront/schemas/checkout.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class ReservationItem(BaseModel):
    variant_id: str
    quantity: int = Field(..., gt=0)


class ReserveRequest(BaseModel):
    items: List[ReservationItem] = Field(..., min_length=1)


class ReservationResult(BaseModel):
    order_id: str
    reserved_until: datetime


class CommitResult(BaseModel):
    order_id: str
    committed_count: int


class ReleaseResult(BaseModel):
    order_id: str
    released_count: int


class ExpiryResult(BaseModel):
    cleaned_count: int
    order_ids: List[str] = []
