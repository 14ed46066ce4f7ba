"""
In-process realtime channels over WebSockets.

Connections subscribe to channels (`user:<id>`, `merchant:<id>`, `staff`);
services queue small `{table, action, id}` change events on their session and
they are broadcast once the session commits, so dashboards that refetch see the
committed rows. The events carry no row data.
"""

import json
from typing import Iterable, Optional

from fastapi import WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.logging import get_logger
from studyhall.models.user import STAFF_ROLES, UserRole

logger = get_logger(__name__)

STAFF_CHANNEL = "staff"
QUEUED_EVENTS_KEY = "realtime_events"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def merchant_channel(merchant_id: int) -> str:
    return f"merchant:{merchant_id}"


def channels_for(user) -> list[str]:
    """Channels a connected user listens on."""
    channels = [user_channel(user.id)]
    if user.role == UserRole.MERCHANT.value:
        channels.append(merchant_channel(user.id))
    if user.role in STAFF_ROLES:
        channels.append(STAFF_CHANNEL)
    return channels


class ConnectionManager:
    """Tracks WebSocket connections per channel."""

    def __init__(self):
        self.channels: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channels: Iterable[str]) -> None:
        await websocket.accept()
        for channel in channels:
            self.channels.setdefault(channel, []).append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        for channel in list(self.channels):
            remaining = [ws for ws in self.channels[channel] if ws is not websocket]
            if remaining:
                self.channels[channel] = remaining
            else:
                del self.channels[channel]

    def connection_count(self, channel: Optional[str] = None) -> int:
        if channel is not None:
            return len(self.channels.get(channel, []))
        return len({id(ws) for sockets in self.channels.values() for ws in sockets})

    async def broadcast(self, channels: Iterable[str], message: dict) -> int:
        """Send `message` once to every socket subscribed to any of `channels`."""
        payload = json.dumps(message, default=str)
        targets: dict[int, WebSocket] = {}
        for channel in channels:
            for websocket in self.channels.get(channel, []):
                targets[id(websocket)] = websocket

        sent = 0
        for websocket in targets.values():
            try:
                await websocket.send_text(payload)
                sent += 1
            except Exception as e:
                logger.warning("realtime_send_failed", error=str(e))
                self.disconnect(websocket)
        return sent


manager = ConnectionManager()


async def publish_change(
    table: str,
    action: str,
    record_id: int,
    user_id: Optional[int] = None,
    merchant_id: Optional[int] = None,
    staff: bool = True,
) -> int:
    channels = []
    if user_id is not None:
        channels.append(user_channel(user_id))
    if merchant_id is not None:
        channels.append(merchant_channel(merchant_id))
    if staff:
        channels.append(STAFF_CHANNEL)
    return await manager.broadcast(
        channels, {"table": table, "action": action, "id": record_id}
    )


def queue_change(
    db: AsyncSession,
    table: str,
    action: str,
    record_id: int,
    user_id: Optional[int] = None,
    merchant_id: Optional[int] = None,
    staff: bool = True,
) -> None:
    """Hold a change event on the session until its transaction commits."""
    db.info.setdefault(QUEUED_EVENTS_KEY, []).append(
        (table, action, record_id, user_id, merchant_id, staff)
    )


def discard_queued(db: AsyncSession) -> None:
    db.info.pop(QUEUED_EVENTS_KEY, None)


async def publish_queued(db: AsyncSession) -> int:
    events = db.info.pop(QUEUED_EVENTS_KEY, [])
    for table, action, record_id, user_id, merchant_id, staff in events:
        await publish_change(
            table, action, record_id, user_id=user_id, merchant_id=merchant_id, staff=staff
        )
    return len(events)


async def commit_and_publish(db: AsyncSession) -> None:
    """Commit, then tell listeners; events of a rolled back transaction are dropped."""
    try:
        await db.commit()
    except Exception:
        discard_queued(db)
        raise
    await publish_queued(db)
