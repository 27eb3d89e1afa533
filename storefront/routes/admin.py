from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from storefront.dependencies import get_ledger, get_runtime
from storefront.schemas.checkout import ExpiryResult
from storefront.schemas.inventory import InventoryStats, StockAdjustRequest, StockVariantRead
from storefront.services.stock_ledger import StockLedger

router = APIRouter(prefix="/admin", tags=["admin"])


@router.patch("/variants/{variant_id}/stock", response_model=StockVariantRead)
async def adjust_stock(
    variant_id: str,
    request: StockAdjustRequest,
    ledger: StockLedger = Depends(get_ledger),
):
    return await ledger.adjust_stock(variant_id, request.quantity, request.operation, request.actor_id)


@router.get("/inventory/stats")
async def inventory_stats(
    threshold: Optional[int] = Query(None, ge=0),
    ledger: StockLedger = Depends(get_ledger),
):
    """Stock totals plus the low-stock and out-of-stock variant lists"""
    stats: InventoryStats = await ledger.inventory_stats()
    low_stock = await ledger.low_stock_variants(threshold)
    out_of_stock = await ledger.out_of_stock_variants()
    return {
        "stats": stats.model_dump(),
        "low_stock": [StockVariantRead.model_validate(v).model_dump(mode="json") for v in low_stock],
        "out_of_stock": [StockVariantRead.model_validate(v).model_dump(mode="json") for v in out_of_stock],
    }


@router.post("/reservations/expire", response_model=ExpiryResult)
async def expire_reservations(request: Request):
    """Run the expiry sweep now instead of waiting for the scheduler"""
    return await get_runtime(request).scheduler.run_once()
