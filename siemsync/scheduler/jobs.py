"""SIEMSYNC — Scheduler Jobs.

APScheduler interval job that runs one SIEM sync every
``sync_interval_minutes``. Only one run may touch the cursor at a time.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from siemsync.config import settings
from siemsync.database import get_session
from siemsync.sync.pipeline import run_sync
from siemsync.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()

# Shared with the manual trigger endpoint
sync_lock = asyncio.Lock()


async def siem_sync_job():
    """Run one sync unless another run already holds the cursor."""
    if sync_lock.locked():
        logger.info("Scheduled SIEM sync skipped, a run is already in progress")
        return

    async with sync_lock:
        logger.info("Scheduled SIEM sync starting...")
        session_gen = get_session()
        session = next(session_gen)
        try:
            outcome = await run_sync(session=session)
            logger.info(
                f"Scheduled SIEM sync complete: {outcome.events_written} events, "
                f"stopped on {outcome.stop_reason.value}"
            )
        except Exception as e:
            logger.error(f"Scheduled SIEM sync failed: {e}")
        finally:
            session_gen.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        siem_sync_job,
        "interval",
        minutes=settings.sync_interval_minutes,
        id="siem_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. SIEM sync every {settings.sync_interval_minutes} minutes"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
