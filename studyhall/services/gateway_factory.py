"""
Payment gateway factory.
Picks the gateway client for a payment method.
"""

from typing import Optional

from fastapi import HTTPException, status

from studyhall.infrastructure.ekqr_client import EkqrGateway
from studyhall.infrastructure.razorpay_client import RazorpayGateway
from studyhall.models.transaction import PaymentMethod
from studyhall.services.interfaces.offline_gateway import OfflineGateway
from studyhall.services.interfaces.payment_gateway import PaymentGateway

# Replacement gateways keyed by method, set by tests
_overrides: dict[str, PaymentGateway] = {}


def build_gateway(method: str) -> PaymentGateway:
    if method == PaymentMethod.RAZORPAY.value:
        return RazorpayGateway()
    if method == PaymentMethod.EKQR.value:
        return EkqrGateway()
    if method == PaymentMethod.OFFLINE.value:
        return OfflineGateway()
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Unsupported payment method: {method}",
    )


def get_gateway(method: str) -> PaymentGateway:
    """Get the gateway for `method`, honoring overrides."""
    override = _overrides.get(method)
    if override is not None:
        return override
    return build_gateway(method)


def override_gateway(method: str, gateway: Optional[PaymentGateway]) -> None:
    if gateway is None:
        _overrides.pop(method, None)
    else:
        _overrides[method] = gateway


def clear_gateway_overrides() -> None:
    _overrides.clear()
