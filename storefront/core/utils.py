"""
Utility functions for the application.
"""
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def generate_transaction_reference(prefix: str = "TXN") -> str:
    """Unique gateway reference: ``{prefix}_{epoch_ms}_{RANDOM6}``"""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
