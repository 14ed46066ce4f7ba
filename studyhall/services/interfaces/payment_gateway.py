"""
Payment gateway interface.
Lets the payment service start and check payments without knowing the rail.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class GatewayPayment:
    """What a rail hands back when a payment is started."""

    provider_order_id: Optional[str] = None
    qr_id: Optional[str] = None
    qr_image_url: Optional[str] = None
    # Extra fields the client needs to finish checkout (key id, currency, ...)
    checkout: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayStatus:
    """Normalized provider state: one of pending, success, failed, expired."""

    state: str
    payment_id: Optional[str] = None
    amount: Optional[Decimal] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.state in ("success", "failed", "expired")


class PaymentGateway(ABC):
    """
    Interface for payment rails.

    Implementations:
    - RazorpayGateway: hosted checkout order
    - EkqrGateway: UPI QR code
    - OfflineGateway: cash at the hall, confirmed by staff
    """

    name: str = ""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the rail has the credentials it needs."""

    @abstractmethod
    async def create_payment(
        self, booking_id: int, amount: Decimal, description: str
    ) -> GatewayPayment:
        """Start a payment of `amount` rupees for a booking."""

    @abstractmethod
    async def check_status(self, reference: str) -> GatewayStatus:
        """Ask the provider for the current state of a started payment."""
