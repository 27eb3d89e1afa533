import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import ServiceError
from storefront.integrations.base import (
    GatewayEvent,
    PaymentGateway,
    TransactionInit,
    TransactionVerification,
)


class MockGateway(PaymentGateway):
    """
    Payment gateway double.

    Signs and parses webhooks the way Paystack does (HMAC-SHA512 over the raw
    body, amounts in kobo) so settlement runs against realistic payloads.
    """

    name = "paystack"

    def __init__(self, secret: str = "sk_test_secret"):
        self.secret = secret
        self.init_calls: List[dict] = []  # Track calls for testing
        self.verify_calls: List[str] = []
        self.verify_results: Dict[str, TransactionVerification] = {}
        self.should_fail = False  # Toggle to simulate an unreachable gateway

    async def initialize_transaction(
        self,
        amount: Decimal,
        reference: str,
        metadata: Dict[str, Any],
        email: Optional[str] = None,
    ) -> TransactionInit:
        if self.should_fail:
            raise ServiceError.external_service("Paystack", "Network error: connection refused")
        self.init_calls.append({"amount": amount, "reference": reference, "metadata": metadata, "email": email})
        return TransactionInit(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            reference=reference,
            access_code=f"ac_{reference[-6:]}",
            raw_response={"reference": reference},
        )

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        if self.should_fail:
            raise ServiceError.external_service("Paystack", "Network error: connection refused")
        self.verify_calls.append(reference)
        return self.verify_results[reference]

    def set_verification(self, reference: str, status: str, amount: Decimal):
        self.verify_results[reference] = TransactionVerification(
            reference=reference, status=status, amount=Decimal(amount)
        )

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode(), raw_body, hashlib.sha512).hexdigest()

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(raw_body), signature)

    def parse_webhook_event(self, payload: Dict[str, Any]) -> GatewayEvent:
        data = payload.get("data") or {}
        event = payload.get("event", "")
        amount = data.get("amount")
        return GatewayEvent(
            event=event,
            event_id=f"{event}_{data.get('reference')}_{data.get('id')}",
            reference=data.get("reference"),
            amount=(Decimal(amount) / 100) if amount is not None else None,
            status=data.get("status"),
            payload=payload,
        )

    def webhook(self, event: str, reference: str, amount: Decimal, transaction_id: int = 1001):
        """Build a signed webhook body: returns (raw_body, signature)."""
        body = json.dumps({
            "event": event,
            "data": {
                "id": transaction_id,
                "reference": reference,
                "amount": int(Decimal(amount) * 100),
                "status": "success" if event == "charge.success" else "failed",
                "gateway_response": "Approved" if event == "charge.success" else "Declined",
            },
        }).encode()
        return body, self.sign(body)
