"""
Tests for the Razorpay gateway built on the SDK client.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
import razorpay

from conftest import sign
from studyhall.core.errors import PaymentGatewayError
from studyhall.infrastructure.razorpay_client import RazorpayGateway, build_receipt, to_paise
from studyhall.infrastructure.signatures import compute_hmac_sha256


def gateway() -> RazorpayGateway:
    return RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_test_secret", webhook_secret="hook")


def test_receipt_and_paise():
    assert build_receipt(42, now=1700000000) == "rcpt_42_1700000000"
    assert len(build_receipt(10 ** 40, now=1700000000)) == 40
    assert to_paise(Decimal("590.50")) == 59050


def test_checkout_signature():
    rzp = gateway()
    signature = sign("RAZORPAY_KEY_SECRET", b"order_1|pay_1")
    assert rzp.verify_payment_signature("order_1", "pay_1", signature) is True
    assert rzp.verify_payment_signature("order_1", "pay_2", signature) is False
    assert rzp.verify_payment_signature("order_1", "pay_1", "") is False


def test_webhook_signature():
    rzp = gateway()
    body = b'{"event": "payment.captured"}'
    assert rzp.verify_webhook_signature(body, compute_hmac_sha256("hook", body)) is True
    assert rzp.verify_webhook_signature(body, compute_hmac_sha256("other", body)) is False
    assert RazorpayGateway(webhook_secret="").verify_webhook_signature(body, "abc") is False


@pytest.mark.asyncio
async def test_create_order_through_sdk():
    rzp = gateway()
    calls = []

    def create(data, **kwargs):
        calls.append((data, kwargs))
        return {"id": "order_abc", "amount": data["amount"], "currency": "INR", "receipt": data["receipt"]}

    rzp.client = SimpleNamespace(order=SimpleNamespace(create=create))
    payment = await rzp.create_payment(7, Decimal("590.00"), "Study Hall Booking #7")

    data, kwargs = calls[0]
    assert data["amount"] == 59000
    assert data["notes"]["booking_id"] == "7"
    assert kwargs == {"timeout": rzp.timeout}
    assert payment.provider_order_id == "order_abc"
    assert payment.checkout["key_id"] == "rzp_test_key"


@pytest.mark.asyncio
async def test_sdk_errors_become_gateway_errors():
    rzp = gateway()

    def rejected(data, **kwargs):
        raise razorpay.errors.BadRequestError("Authentication failed")

    rzp.client = SimpleNamespace(order=SimpleNamespace(create=rejected))
    with pytest.raises(PaymentGatewayError) as excinfo:
        await rzp.create_payment(7, Decimal("100.00"), "Booking")
    assert excinfo.value.status_code == 400
    assert "Authentication failed" in excinfo.value.message


@pytest.mark.asyncio
async def test_status_reads_captured_payment():
    rzp = gateway()
    rzp.client = SimpleNamespace(
        order=SimpleNamespace(
            fetch=lambda order_id, **kwargs: {"id": order_id, "status": "paid", "amount_paid": 59000},
            payments=lambda order_id, **kwargs: {
                "items": [{"id": "pay_failed", "status": "failed"}, {"id": "pay_ok", "status": "captured"}]
            },
        )
    )
    status = await rzp.check_status("order_abc")
    assert status.state == "success"
    assert status.payment_id == "pay_ok"
    assert status.amount == Decimal("590")


@pytest.mark.asyncio
async def test_unconfigured_gateway():
    with pytest.raises(PaymentGatewayError) as excinfo:
        await RazorpayGateway(key_id="", key_secret="").create_payment(1, Decimal("10"), "x")
    assert excinfo.value.status_code == 503
