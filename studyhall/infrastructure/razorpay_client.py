"""
Razorpay gateway on the official `razorpay` SDK.

Orders are created in paise; the checkout on the client side needs the key id
and order id returned here. The SDK is synchronous, so its network calls run in
the threadpool. Signature checks cover both the checkout callback
(`order_id|payment_id`) and webhooks (raw body).
"""

import time
from decimal import Decimal
from typing import Any, Callable, Optional

import razorpay
import requests
from starlette.concurrency import run_in_threadpool

from studyhall.core.config import get_settings
from studyhall.core.errors import PaymentGatewayError, PaymentNotConfiguredError
from studyhall.core.logging import get_logger
from studyhall.core.metrics import record_gateway_error
from studyhall.services.interfaces.payment_gateway import (
    GatewayPayment,
    GatewayStatus,
    PaymentGateway,
)

logger = get_logger(__name__)

RECEIPT_MAX_LENGTH = 40


def build_receipt(booking_id: int, now: Optional[float] = None) -> str:
    timestamp = int(now if now is not None else time.time())
    return f"rcpt_{booking_id}_{timestamp}"[:RECEIPT_MAX_LENGTH]


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        )
        self.timeout = timeout or settings.PAYMENT_HTTP_TIMEOUT
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def _call(self, operation: str, func: Callable[..., dict], *args: Any) -> dict[str, Any]:
        if not self.is_configured:
            raise PaymentNotConfiguredError(
                "Razorpay is not configured", status_code=503, provider=self.name
            )
        try:
            return await run_in_threadpool(func, *args, timeout=self.timeout)
        except razorpay.errors.BadRequestError as exc:
            record_gateway_error(self.name, operation)
            logger.warning("razorpay_request_failed", operation=operation, error=str(exc))
            raise PaymentGatewayError(
                str(exc), status_code=400, code=getattr(exc, "code", None), provider=self.name
            ) from exc
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError) as exc:
            record_gateway_error(self.name, operation)
            logger.warning("razorpay_request_failed", operation=operation, error=str(exc))
            raise PaymentGatewayError(
                f"Razorpay is unavailable: {exc}", status_code=502, provider=self.name
            ) from exc
        except requests.exceptions.Timeout as exc:
            record_gateway_error(self.name, operation)
            raise PaymentGatewayError(
                f"Razorpay request timed out: {exc}", status_code=504, provider=self.name
            ) from exc
        except requests.exceptions.RequestException as exc:
            record_gateway_error(self.name, operation)
            raise PaymentGatewayError(
                f"Razorpay network error: {exc}", status_code=502, provider=self.name
            ) from exc

    async def create_payment(
        self, booking_id: int, amount: Decimal, description: str
    ) -> GatewayPayment:
        if amount <= 0:
            raise PaymentGatewayError(
                f"Invalid amount: {amount}", status_code=400, provider=self.name
            )
        payload = {
            "amount": to_paise(amount),
            "currency": "INR",
            "receipt": build_receipt(booking_id),
            "notes": {
                "booking_id": str(booking_id),
                "amount_inr": str(amount),
                "description": description,
            },
        }
        order = await self._call("create_order", self.client.order.create, payload)
        logger.info("razorpay_order_created", booking_id=booking_id, order_id=order.get("id"))
        return GatewayPayment(
            provider_order_id=order["id"],
            checkout={
                "key_id": self.key_id,
                "order_id": order["id"],
                "amount": order.get("amount", payload["amount"]),
                "currency": order.get("currency", "INR"),
                "receipt": order.get("receipt", payload["receipt"]),
            },
            raw=order,
        )

    async def check_status(self, reference: str) -> GatewayStatus:
        order = await self._call("fetch_order", self.client.order.fetch, reference)
        if order.get("status") != "paid":
            return GatewayStatus(state="pending", raw=order)

        payments = await self._call("fetch_order_payments", self.client.order.payments, reference)
        captured = next(
            (p for p in payments.get("items", []) if p.get("status") == "captured"), None
        )
        return GatewayStatus(
            state="success",
            payment_id=captured.get("id") if captured else None,
            amount=Decimal(order.get("amount_paid", 0)) / 100,
            raw=order,
        )

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret or not signature:
            return False
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self.webhook_secret or not signature:
            return False
        try:
            self.client.utility.verify_webhook_signature(
                body.decode("utf-8"), signature, self.webhook_secret
            )
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True
