"""
Business settings: a single row created with defaults on first read.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.logging import get_logger
from studyhall.models.business_settings import BusinessSettings
from studyhall.models.transaction import PaymentMethod
from studyhall.schemas.business_settings import BusinessSettingsUpdate
from studyhall.services.gateway_factory import get_gateway

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1


async def get_business_settings(db: AsyncSession) -> BusinessSettings:
    result = await db.execute(
        select(BusinessSettings).where(BusinessSettings.id == SETTINGS_ROW_ID)
    )
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = BusinessSettings(
            id=SETTINGS_ROW_ID,
            razorpay_enabled=True,
            ekqr_enabled=True,
            offline_enabled=True,
            rewards_enabled=True,
            rewards_conversion_rate=Decimal("0.10"),
            min_redemption_points=10,
            points_per_booking=10,
            platform_fee_enabled=False,
            platform_fee_type="percent",
            platform_fee_value=Decimal("0"),
            platform_fee_percentage=Decimal("10"),
            minimum_settlement_amount=Decimal("0"),
        )
        db.add(settings)
        await db.flush()
        logger.info("business_settings_initialized")
    return settings


async def update_business_settings(
    db: AsyncSession, data: BusinessSettingsUpdate
) -> BusinessSettings:
    settings = await get_business_settings(db)
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(settings, field, value)
    await db.flush()
    logger.info("business_settings_updated", fields=sorted(changes))
    return settings


def available_payment_methods(settings: BusinessSettings) -> list[str]:
    """Rails that are switched on and have provider credentials."""
    flags = {
        PaymentMethod.RAZORPAY.value: settings.razorpay_enabled,
        PaymentMethod.EKQR.value: settings.ekqr_enabled,
        PaymentMethod.OFFLINE.value: settings.offline_enabled,
    }
    return [
        method
        for method, enabled in flags.items()
        if enabled and get_gateway(method).is_configured
    ]
