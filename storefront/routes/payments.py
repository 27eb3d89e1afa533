import logging

from fastapi import APIRouter, Depends, Request

from storefront.core.exceptions import ServiceError
from storefront.dependencies import get_settlement
from storefront.schemas.payments import PaymentInitRequest, PaymentInitResult, SettlementResult
from storefront.services.settlement import SettlementCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

SIGNATURE_HEADER = "x-paystack-signature"


@router.post("/initialize", response_model=PaymentInitResult)
async def initialize_payment(
    request: PaymentInitRequest,
    settlement: SettlementCoordinator = Depends(get_settlement),
):
    return await settlement.initialize_payment(
        request.order_id, request.amount, email=request.email, metadata=request.metadata
    )


@router.get("/verify/{reference}", response_model=SettlementResult)
async def verify_payment(reference: str, settlement: SettlementCoordinator = Depends(get_settlement)):
    """Poll the gateway for a payment the customer has returned from"""
    return await settlement.verify_payment(reference)


@router.post("/webhook")
async def paystack_webhook(request: Request, settlement: SettlementCoordinator = Depends(get_settlement)):
    """
    Gateway webhook receiver.

    Always answers 200 so the gateway stops redelivering; rejected and failed
    deliveries are visible in the response body, the logs and the
    webhook_events table.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = await settlement.handle_gateway_event(body, signature)
    except ServiceError as e:
        logger.error(f"Webhook processing failed: {e.message}")
        return {"status": "error", "code": e.kind.value, "message": e.message}
    except Exception as e:
        logger.exception(f"Unexpected webhook error: {str(e)}")
        return {"status": "error", "code": "INTERNAL_ERROR", "message": "Webhook could not be processed"}

    return result.model_dump(mode="json")
