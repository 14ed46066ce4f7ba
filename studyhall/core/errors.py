"""
Payment provider errors and their user-facing translation.
"""

from typing import Optional


class PaymentGatewayError(Exception):
    """Raised by payment provider clients when a call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.provider = provider


class PaymentNotConfiguredError(PaymentGatewayError):
    """The provider has no credentials configured."""


_FRIENDLY_MESSAGES = (
    (("authentication", "unauthorized", "invalid api key", "credentials", "401"),
     "Payment service is temporarily unavailable. Please try another payment method."),
    (("amount",),
     "The payment amount is invalid. Please review your booking and try again."),
    (("timeout", "timed out"),
     "The payment provider took too long to respond. Please try again."),
    (("network", "connect", "unreachable"),
     "We could not reach the payment provider. Check your connection and try again."),
    (("declined", "insufficient", "rejected"),
     "Your payment was declined. Please use a different payment method."),
    (("not configured",),
     "This payment method is not available right now."),
)

DEFAULT_PAYMENT_ERROR = "Payment could not be processed. Please try again."


def friendly_payment_error(message: Optional[str]) -> str:
    """Map raw provider error text to a message fit for customers."""
    text = (message or "").lower()
    for needles, friendly in _FRIENDLY_MESSAGES:
        if any(needle in text for needle in needles):
            return friendly
    return DEFAULT_PAYMENT_ERROR
