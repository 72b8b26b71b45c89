"""
APScheduler jobs for background sync.

The interval sync catches everything the on-demand trigger didn't: a
terminal that was offline simply reconciles on the first run after the
connection comes back. A nightly job drops consumed queue entries.

Sync passes do blocking database I/O, so the jobs hand them to the default
thread pool executor instead of running them on the event loop.
"""
import asyncio
import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from posync.config import get_settings
from posync.models.base import utcnow

logger = logging.getLogger(__name__)


def build_scheduler(orchestrator) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        orchestrator: SyncOrchestrator the jobs drive.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _periodic_sync,
        trigger="interval",
        minutes=settings.sync_interval_minutes,
        id="periodic_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"orchestrator": orchestrator},
    )
    scheduler.add_job(
        _queue_cleanup,
        trigger="cron",
        hour=settings.queue_cleanup_hour,
        minute=0,
        id="queue_cleanup",
        replace_existing=True,
        kwargs={"orchestrator": orchestrator},
    )

    return scheduler


async def _periodic_sync(orchestrator) -> None:
    """
    Interval job: push then pull every tracked table.

    Never raises, so a failing store can't take the scheduler down.
    """
    logger.info("Periodic sync starting at %s", utcnow().isoformat())
    try:
        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(None, orchestrator.sync_now)
        if report.success:
            logger.info(
                "Periodic sync ok: %d records, %d conflicts",
                report.records_synced,
                report.conflicts,
            )
        else:
            logger.warning("Periodic sync finished with errors: %s", "; ".join(report.errors))
    except Exception as exc:
        logger.error("Periodic sync failed: %s", exc)


async def _queue_cleanup(orchestrator) -> None:
    """Nightly job: delete queue entries consumed more than the retention window ago."""
    settings = get_settings()
    if orchestrator.queue is None:
        return
    cutoff = utcnow() - timedelta(days=settings.queue_retention_days)
    try:
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(None, orchestrator.queue.purge_consumed, cutoff)
        logger.info("Purged %d consumed sync queue entries", removed)
    except Exception as exc:
        logger.error("Queue cleanup failed: %s", exc)
