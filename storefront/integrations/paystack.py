import hashlib
import hmac
import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from storefront.core.exceptions import ServiceError
from storefront.integrations.base import (
    GatewayEvent,
    PaymentGateway,
    TransactionInit,
    TransactionVerification,
)

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Naira -> kobo"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaystackClient(PaymentGateway):
    """
    Asynchronous client for the Paystack transaction API.

    - initialize_transaction: POST /transaction/initialize, returns the hosted checkout URL
    - verify_transaction: GET /transaction/verify/{reference}
    - verify_webhook_signature: HMAC-SHA512 of the raw body, compared to x-paystack-signature

    Amounts are exchanged with Paystack in kobo and converted at this boundary.
    Transport and non-2xx responses raise ServiceError(EXTERNAL_SERVICE).

    Documentation: https://paystack.com/docs/api/
    """

    name = "paystack"
    CHANNELS = ["card", "bank", "ussd", "qr", "mobile_money", "bank_transfer"]

    def __init__(
        self,
        secret_key: str,
        webhook_secret: Optional[str] = None,
        base_url: str = "https://api.paystack.co",
        callback_url: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret or secret_key
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"Paystack {method} {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Paystack timeout: {str(e)}")
            raise ServiceError.external_service("Paystack", f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Paystack network error: {str(e)}")
            raise ServiceError.external_service("Paystack", f"Network error: {str(e)}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code not in (200, 201):
            message = body.get("message") or response.text
            logger.error(f"Paystack API error {response.status_code}: {message}")
            raise ServiceError.external_service("Paystack", message)

        return body.get("data") or {}

    async def initialize_transaction(
        self,
        amount: Decimal,
        reference: str,
        metadata: Dict[str, Any],
        email: Optional[str] = None,
    ) -> TransactionInit:
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "reference": reference,
            "metadata": metadata,
            "channels": self.CHANNELS,
        }
        if self.callback_url:
            payload["callback_url"] = f"{self.callback_url}?reference={reference}"

        data = await self._make_request("POST", "/transaction/initialize", data=payload)
        logger.info(f"Payment initialized with Paystack: reference={reference} amount={amount}")

        return TransactionInit(
            authorization_url=data.get("authorization_url", ""),
            reference=data.get("reference", reference),
            access_code=data.get("access_code"),
            raw_response=data,
        )

    async def verify_transaction(self, reference: str) -> TransactionVerification:
        data = await self._make_request("GET", f"/transaction/verify/{reference}")
        verification = TransactionVerification(
            reference=data.get("reference", reference),
            status=data.get("status", "unknown"),
            amount=from_minor_units(data.get("amount") or 0),
            gateway_response=data.get("gateway_response"),
            paid_at=data.get("paid_at"),
            raw_response=data,
        )
        logger.info(
            f"Payment verified with Paystack: reference={reference} "
            f"status={verification.status} amount={verification.amount}"
        )
        return verification

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), raw_body, hashlib.sha512).hexdigest()

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not signature or not self.webhook_secret:
            return False
        return hmac.compare_digest(self.sign(raw_body), signature)

    def parse_webhook_event(self, payload: Dict[str, Any]) -> GatewayEvent:
        data = payload.get("data") or {}
        event = payload.get("event", "")
        reference = data.get("reference")
        amount = data.get("amount")
        return GatewayEvent(
            event=event,
            event_id=f"{event}_{reference}_{data.get('id')}",
            reference=reference,
            amount=from_minor_units(amount) if amount is not None else None,
            status=data.get("status"),
            gateway_response=data.get("gateway_response"),
            payload=payload,
        )


def load_webhook_payload(raw_body: bytes) -> Dict[str, Any]:
    """Decode a webhook body; raises ValueError when it is not a JSON object."""
    payload = json.loads(raw_body)
    if not isinstance(payload, dict):
        raise ValueError("Webhook body is not a JSON object")
    return payload
