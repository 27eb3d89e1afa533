# storefront/schemas/inventory.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.core.enums import StockOperation


class StockVariantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sku: Optional[str] = None
    name: Optional[str] = None
    stock: int
    version: int
    updated_at: Optional[datetime] = None


class StockAdjustRequest(BaseModel):
    quantity: int = Field(..., ge=0)
    operation: StockOperation = StockOperation.SET
    actor_id: Optional[str] = None


class InventoryStats(BaseModel):
    total_variants: int
    total_stock: int
    out_of_stock_count: int
    low_stock_count: int
    active_reservations: int
    reserved_quantity: int
