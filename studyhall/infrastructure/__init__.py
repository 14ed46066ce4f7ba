"""
Infrastructure layer - payment provider integrations.
Keeps business logic clean from HTTP and signature details.
"""

from .ekqr_client import EkqrGateway
from .razorpay_client import RazorpayGateway

__all__ = ["EkqrGateway", "RazorpayGateway"]
