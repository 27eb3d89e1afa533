# Paystack client unit tests
import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from storefront.core.exceptions import ErrorKind, ServiceError
from storefront.integrations.paystack import (
    PaystackClient,
    from_minor_units,
    load_webhook_payload,
    to_minor_units,
)

SECRET = "sk_test_abc123"


def _client(handler, **kwargs) -> PaystackClient:
    return PaystackClient(secret_key=SECRET, transport=httpx.MockTransport(handler), **kwargs)


"""
1. Amount conversion
"""

def test_minor_unit_conversion():
    assert to_minor_units(Decimal("5000.00")) == 500000
    assert to_minor_units(Decimal("12.345")) == 1235
    assert from_minor_units(500050) == Decimal("5000.50")


"""
2. Transaction API
"""

async def test_initialize_transaction_sends_kobo_and_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": True,
            "data": {
                "authorization_url": "https://checkout.paystack.com/abc",
                "access_code": "abc",
                "reference": "order-1_1700000000000_ABC123",
            },
        })

    client = _client(handler, callback_url="https://shop.test/payments/callback")
    init = await client.initialize_transaction(
        Decimal("2500.00"), "order-1_1700000000000_ABC123", {"order_id": "order-1"}, email="a@b.test"
    )

    assert seen["url"] == "https://api.paystack.co/transaction/initialize"
    assert seen["auth"] == f"Bearer {SECRET}"
    assert seen["body"]["amount"] == 250000
    assert seen["body"]["metadata"] == {"order_id": "order-1"}
    assert seen["body"]["callback_url"].endswith("?reference=order-1_1700000000000_ABC123")
    assert init.authorization_url == "https://checkout.paystack.com/abc"
    assert init.access_code == "abc"


async def test_verify_transaction_converts_amount():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/transaction/verify/REF-1"
        return httpx.Response(200, json={
            "status": True,
            "data": {"reference": "REF-1", "status": "success", "amount": 500000, "gateway_response": "Approved"},
        })

    verification = await _client(handler).verify_transaction("REF-1")

    assert verification.status == "success"
    assert verification.amount == Decimal("5000.00")
    assert verification.gateway_response == "Approved"


async def test_api_error_maps_to_external_service():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": False, "message": "Invalid key"})

    with pytest.raises(ServiceError) as exc_info:
        await _client(handler).verify_transaction("REF-1")

    assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
    assert "Invalid key" in exc_info.value.message


async def test_network_error_maps_to_external_service():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ServiceError) as exc_info:
        await _client(handler).verify_transaction("REF-1")

    assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
    assert exc_info.value.status_code == 503


async def test_initialize_uses_make_request(mocker):
    mock_make_request = mocker.patch.object(
        PaystackClient, "_make_request",
        return_value={"authorization_url": "https://checkout.paystack.com/x", "reference": "R"},
    )

    client = PaystackClient(secret_key=SECRET)
    await client.initialize_transaction(Decimal("1.00"), "R", {})

    args, kwargs = mock_make_request.call_args
    assert args == ("POST", "/transaction/initialize")
    assert kwargs["data"]["amount"] == 100


"""
3. Webhooks
"""

def test_webhook_signature_is_hmac_sha512_of_raw_body():
    client = PaystackClient(secret_key=SECRET)
    body = b'{"event":"charge.success","data":{"id":1}}'
    expected = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()

    assert client.verify_webhook_signature(body, expected) is True
    assert client.verify_webhook_signature(body + b" ", expected) is False
    assert client.verify_webhook_signature(body, None) is False
    assert client.verify_webhook_signature(body, "") is False


def test_dedicated_webhook_secret_takes_precedence():
    client = PaystackClient(secret_key=SECRET, webhook_secret="whsec_other")
    body = b"{}"

    assert client.verify_webhook_signature(body, hmac.new(b"whsec_other", body, hashlib.sha512).hexdigest())
    assert not client.verify_webhook_signature(body, hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest())


def test_parse_webhook_event_builds_event_id():
    client = PaystackClient(secret_key=SECRET)
    payload = {
        "event": "charge.success",
        "data": {"id": 302961, "reference": "REF-9", "amount": 1234500, "status": "success"},
    }

    event = client.parse_webhook_event(payload)

    assert event.event_id == "charge.success_REF-9_302961"
    assert event.reference == "REF-9"
    assert event.amount == Decimal("12345.00")
    assert event.payload == payload


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
def test_load_webhook_payload_rejects_non_objects(body):
    with pytest.raises(ValueError):
        load_webhook_payload(body)
