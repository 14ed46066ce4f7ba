"""
Service interfaces for dependency inversion.
Allows swapping payment rails without changing business logic.
"""

from .payment_gateway import GatewayPayment, GatewayStatus, PaymentGateway
from .offline_gateway import OfflineGateway

__all__ = ["GatewayPayment", "GatewayStatus", "PaymentGateway", "OfflineGateway"]
