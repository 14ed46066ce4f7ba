"""
Provider webhooks. Signatures are checked over the raw request body.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.db.session import get_db
from studyhall.services import payment_service

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/razorpay")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    body = await request.body()
    return await payment_service.handle_razorpay_webhook(db, body, x_razorpay_signature)


@router.post("/ekqr")
async def ekqr_webhook(
    request: Request,
    x_ekqr_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    body = await request.body()
    return await payment_service.handle_ekqr_webhook(db, body, x_ekqr_signature)
