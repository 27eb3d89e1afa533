"""
Service errors.

A single exception type tagged with an ErrorKind. Callers branch on
``error.kind`` instead of on exception subclasses, and the HTTP layer maps the
kind to a status code through STATUS_CODES.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION_ERROR"
    PAYMENT = "PAYMENT_ERROR"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.PAYMENT: 402,
    ErrorKind.EXTERNAL_SERVICE: 503,
    ErrorKind.SIGNATURE_INVALID: 401,
}

# Kinds a caller may retry without changing its request
RETRYABLE_KINDS = {ErrorKind.CONFLICT, ErrorKind.EXTERNAL_SERVICE}


class ServiceError(Exception):
    """Raised by the checkout core; ``kind`` says what went wrong."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"<ServiceError {self.kind.value}: {self.message}>"

    # Constructors for the common cases

    @classmethod
    def insufficient_stock(cls, variant_id: str, available: int, requested: int) -> "ServiceError":
        return cls(
            ErrorKind.INSUFFICIENT_STOCK,
            f"Insufficient stock for variant {variant_id}. Available: {available}, Requested: {requested}",
            {"variant_id": variant_id, "available": available, "requested": requested},
        )

    @classmethod
    def conflict(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.CONFLICT, message, details)

    @classmethod
    def not_found(cls, resource: str, resource_id: Optional[str] = None) -> "ServiceError":
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        return cls(ErrorKind.NOT_FOUND, message, {"resource": resource, "id": resource_id})

    @classmethod
    def validation(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.VALIDATION, message, details)

    @classmethod
    def payment(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.PAYMENT, message, details)

    @classmethod
    def external_service(cls, service: str, message: str = "External service unavailable") -> "ServiceError":
        return cls(ErrorKind.EXTERNAL_SERVICE, f"{service}: {message}", {"service": service})

    @classmethod
    def signature_invalid(cls, message: str = "Invalid webhook signature") -> "ServiceError":
        return cls(ErrorKind.SIGNATURE_INVALID, message)
