"""
EKQR UPI QR client over httpx.

QRs are created for whole rupee amounts. The provider reports status as
`pending`, `success` or `failed` (upper-cased in webhooks).
"""

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx

from studyhall.core.config import get_settings
from studyhall.core.errors import PaymentGatewayError, PaymentNotConfiguredError
from studyhall.core.logging import get_logger
from studyhall.core.metrics import record_gateway_error
from studyhall.infrastructure.signatures import verify_hmac_sha256
from studyhall.services.interfaces.payment_gateway import (
    GatewayPayment,
    GatewayStatus,
    PaymentGateway,
)

logger = get_logger(__name__)

_STATE_MAP = {
    "success": "success",
    "completed": "success",
    "paid": "success",
    "failed": "failed",
    "failure": "failed",
    "expired": "expired",
    "pending": "pending",
    "created": "pending",
}


def normalize_state(value: Optional[str]) -> str:
    return _STATE_MAP.get((value or "").lower(), "pending")


def build_order_id(booking_id: int, now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return f"BOOKING_{booking_id}_{millis}"


class EkqrGateway(PaymentGateway):
    name = "ekqr"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.EKQR_API_KEY
        self.base_url = (base_url or settings.EKQR_BASE_URL).rstrip("/")
        self.callback_url = callback_url or settings.EKQR_CALLBACK_URL
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.EKQR_WEBHOOK_SECRET
        )
        self.timeout = timeout or settings.PAYMENT_HTTP_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> dict[str, Any]:
        if not self.is_configured:
            raise PaymentNotConfiguredError(
                "EKQR is not configured", status_code=503, provider=self.name
            )
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, headers=headers, timeout=self.timeout
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            record_gateway_error(self.name, operation)
            raise PaymentGatewayError(
                f"EKQR request timed out: {exc}", status_code=504, provider=self.name
            ) from exc
        except httpx.HTTPError as exc:
            record_gateway_error(self.name, operation)
            raise PaymentGatewayError(
                f"EKQR network error: {exc}", status_code=502, provider=self.name
            ) from exc

        if response.status_code >= 400:
            record_gateway_error(self.name, operation)
            if response.status_code == 401:
                message = f"Invalid EKQR API key: {response.text}"
            elif response.status_code == 404:
                message = f"EKQR payment not found: {response.text}"
            elif response.status_code == 400:
                message = f"Invalid EKQR payment request: {response.text}"
            else:
                message = f"EKQR service error ({response.status_code}): {response.text}"
            logger.warning(
                "ekqr_request_failed",
                operation=operation,
                status_code=response.status_code,
            )
            raise PaymentGatewayError(message, status_code=response.status_code, provider=self.name)

        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError(
                f"Invalid EKQR response format: {response.text}",
                status_code=502,
                provider=self.name,
            ) from exc

    async def create_payment(
        self, booking_id: int, amount: Decimal, description: str
    ) -> GatewayPayment:
        rupees = int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if rupees <= 0:
            raise PaymentGatewayError(
                f"Invalid amount: {amount}", status_code=400, provider=self.name
            )
        payload = {
            "amount": rupees,
            "purpose": description,
            "order_id": build_order_id(booking_id),
            "callback_url": self.callback_url,
        }
        data = await self._request("POST", "/qr/create", "create_qr", json=payload)
        logger.info("ekqr_qr_created", booking_id=booking_id, qr_id=data.get("id"))
        return GatewayPayment(
            provider_order_id=data.get("order_id", payload["order_id"]),
            qr_id=str(data["id"]),
            qr_image_url=data.get("qr_url"),
            checkout={"qr_id": str(data["id"]), "qr_image_url": data.get("qr_url"), "amount": rupees},
            raw=data,
        )

    async def check_status(self, reference: str) -> GatewayStatus:
        data = await self._request("GET", f"/qr/status/{reference}", "check_status")
        amount = data.get("amount")
        return GatewayStatus(
            state=normalize_state(data.get("status")),
            payment_id=data.get("reference_id") or data.get("transaction_id"),
            amount=Decimal(str(amount)) if amount is not None else None,
            raw=data,
        )

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Webhooks are only signed when a secret is configured."""
        if not self.webhook_secret:
            return True
        return verify_hmac_sha256(self.webhook_secret, body, signature or "")
