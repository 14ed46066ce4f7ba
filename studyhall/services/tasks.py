"""Periodic maintenance: booking lifecycle and stuck QR payment recovery."""

import asyncio

from studyhall.core.config import get_settings
from studyhall.core.logging import get_logger
from studyhall.db.session import SessionLocal
from studyhall.services import booking_service, payment_service
from studyhall.services.realtime import commit_and_publish, discard_queued

logger = get_logger(__name__)
settings = get_settings()


async def run_maintenance_once() -> dict:
    """
    One maintenance pass, each step in its own session so a failure in
    payment recovery does not roll back lifecycle changes.
    """
    report = {}
    async with SessionLocal() as db:
        try:
            report["lifecycle"] = await booking_service.run_lifecycle(db)
            await commit_and_publish(db)
        except Exception:
            discard_queued(db)
            await db.rollback()
            logger.exception("lifecycle_task_failed")

    async with SessionLocal() as db:
        try:
            report["recovery"] = await payment_service.run_payment_recovery(db)
            await commit_and_publish(db)
        except Exception:
            discard_queued(db)
            await db.rollback()
            logger.exception("payment_recovery_task_failed")
    return report


async def maintenance_loop(interval: float) -> None:
    logger.info("maintenance_loop_started", interval_seconds=interval)
    while True:
        await run_maintenance_once()
        await asyncio.sleep(interval)


class BackgroundTaskManager:
    """Starts and stops the long-running maintenance tasks."""

    def __init__(self):
        self.tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        self.tasks.append(
            asyncio.create_task(maintenance_loop(settings.LIFECYCLE_INTERVAL_SECONDS))
        )
        logger.info("background_tasks_started", count=len(self.tasks))

    async def stop(self) -> None:
        for task in self.tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.tasks.clear()
        logger.info("background_tasks_stopped")


background_tasks = BackgroundTaskManager()
