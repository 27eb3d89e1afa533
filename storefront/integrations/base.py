from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel


class TransactionInit(BaseModel):
    authorization_url: str
    reference: str
    access_code: Optional[str] = None
    raw_response: Dict[str, Any] = {}


class TransactionVerification(BaseModel):
    reference: str
    status: str                 # success, failed, abandoned, ongoing, ...
    amount: Decimal             # major currency units
    gateway_response: Optional[str] = None
    paid_at: Optional[str] = None
    raw_response: Dict[str, Any] = {}


class GatewayEvent(BaseModel):
    """Normalized webhook payload"""
    event: str
    event_id: str
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    gateway_response: Optional[str] = None
    payload: Dict[str, Any] = {}


class PaymentGateway(ABC):
    name: str = "gateway"

    @abstractmethod
    async def initialize_transaction(
        self,
        amount: Decimal,
        reference: str,
        metadata: Dict[str, Any],
        email: Optional[str] = None,
    ) -> TransactionInit:
        """Start a transaction and return the customer's authorization URL"""
        pass

    @abstractmethod
    async def verify_transaction(self, reference: str) -> TransactionVerification:
        """Ask the gateway for the final status of a transaction"""
        pass

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check that a webhook body was signed by the gateway"""
        pass

    @abstractmethod
    def parse_webhook_event(self, payload: Dict[str, Any]) -> GatewayEvent:
        """Normalize a verified webhook payload"""
        pass
