"""Scheduler for background jobs (queue replay, reminder delivery)."""

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bestbefore.core.config import settings
from bestbefore.domain.sync import ReplayResult


logger = logging.getLogger(__name__)

# Global scheduler instance, shared with reminder delivery
scheduler = AsyncIOScheduler()

SYNC_REPLAY_JOB_ID = "sync_queue_replay"


async def run_replay_job(replay: Callable[[], Awaitable[ReplayResult]]) -> ReplayResult | None:
    """Replay the sync queue once, logging the outcome.

    Errors are logged and swallowed so the interval job keeps its schedule.
    """
    logger.info("Running sync queue replay job")
    try:
        result = await replay()
    except Exception as e:
        logger.error(f"Error in sync queue replay job: {e}")
        return None

    if result.skipped_reason:
        logger.info("Sync queue replay skipped: %s", result.skipped_reason)
    elif result.completed:
        logger.info(
            "Completed sync queue replay job: %d processed, %d dead-lettered",
            result.processed,
            result.dead_lettered,
        )
    else:
        logger.warning(
            "Sync queue replay halted on %s: %d entries remain",
            result.halted_on,
            result.remaining,
        )
    return result


def start_scheduler(replay: Callable[[], Awaitable[ReplayResult]] | None = None) -> None:
    """Start the scheduler and register the replay job.

    This should be called during FastAPI app startup.

    Args:
        replay: Coroutine function that replays the queue; no replay job is registered when None
    """
    logger.info("Starting scheduler")

    if replay is not None:
        scheduler.add_job(
            run_replay_job,
            trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
            args=[replay],
            id=SYNC_REPLAY_JOB_ID,
            name="Replay Offline Sync Queue",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Scheduled sync queue replay job: every {settings.sync_interval_minutes} minutes")

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    if not scheduler.running:
        return
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
