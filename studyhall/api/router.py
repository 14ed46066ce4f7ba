"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from studyhall.api.routes import (
    admin,
    auth,
    bookings,
    coupons,
    dashboard,
    exports,
    incharges,
    notifications,
    payments,
    public,
    realtime,
    referrals,
    reviews,
    rewards,
    settlements,
    study_halls,
    webhooks,
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(study_halls.router)
api_router.include_router(bookings.router)
api_router.include_router(public.router)
api_router.include_router(payments.router)
api_router.include_router(webhooks.router)
api_router.include_router(coupons.router)
api_router.include_router(rewards.router)
api_router.include_router(referrals.router)
api_router.include_router(settlements.router)
api_router.include_router(incharges.router)
api_router.include_router(reviews.router)
api_router.include_router(notifications.router)
api_router.include_router(exports.router)
api_router.include_router(dashboard.router)
api_router.include_router(admin.router)
api_router.include_router(realtime.router)
