from fastapi import APIRouter, Depends

from storefront.dependencies import get_reservations
from storefront.schemas.checkout import CommitResult, ReleaseResult, ReservationResult, ReserveRequest
from storefront.services.reservation_manager import ReservationManager

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/{order_id}/reserve", response_model=ReservationResult)
async def reserve(
    order_id: str,
    request: ReserveRequest,
    reservations: ReservationManager = Depends(get_reservations),
):
    """Hold stock for every item of the order"""
    return await reservations.reserve(order_id, request.items)


@router.post("/{order_id}/commit", response_model=CommitResult)
async def commit(order_id: str, reservations: ReservationManager = Depends(get_reservations)):
    return await reservations.commit_reservation(order_id)


@router.post("/{order_id}/release", response_model=ReleaseResult)
async def release(order_id: str, reservations: ReservationManager = Depends(get_reservations)):
    return await reservations.release_reservation(order_id)
