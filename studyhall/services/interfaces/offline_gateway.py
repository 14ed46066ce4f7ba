"""
Offline rail: the customer pays at the hall and staff confirm receipt.
"""

from decimal import Decimal

from studyhall.services.interfaces.payment_gateway import (
    GatewayPayment,
    GatewayStatus,
    PaymentGateway,
)


class OfflineGateway(PaymentGateway):
    name = "offline"

    @property
    def is_configured(self) -> bool:
        return True

    async def create_payment(
        self, booking_id: int, amount: Decimal, description: str
    ) -> GatewayPayment:
        return GatewayPayment(
            checkout={
                "instructions": (
                    f"Pay Rs. {amount} at the study hall reception. "
                    f"Your seat is held until staff confirm the payment for booking #{booking_id}."
                ),
            }
        )

    async def check_status(self, reference: str) -> GatewayStatus:
        # Nothing to ask; only a staff confirmation completes it
        return GatewayStatus(state="pending")
