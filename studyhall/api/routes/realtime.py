"""
WebSocket endpoint for realtime change events.
"""

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from studyhall.core.logging import get_logger
from studyhall.core.security import get_user_from_token
from studyhall.db.session import SessionLocal
from studyhall.services import realtime
from studyhall.services.realtime import channels_for

logger = get_logger(__name__)
router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query(...)):
    async with SessionLocal() as db:
        try:
            user = await get_user_from_token(db, token)
        except HTTPException as exc:
            logger.info("realtime_auth_rejected", detail=exc.detail)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    channels = channels_for(user)
    await realtime.manager.connect(websocket, channels)
    logger.info("realtime_connected", user_id=user.id, channels=channels)
    try:
        while True:
            # Clients only listen; anything they send is a keepalive
            await websocket.receive_text()
    except WebSocketDisconnect:
        realtime.manager.disconnect(websocket)
        logger.info("realtime_disconnected", user_id=user.id)
