"""
scheduler_setup.py
------------------
APScheduler wiring for background maintenance jobs.

SCHEDULE:
  every SWEEP_SCHEDULE["interval_hours"] (default 1 hour)
            → login lock sweep: deletes expired login_locks in bounded batches

STARTUP USAGE:
    from services.scheduler_setup import setup_scheduler
    scheduler = AsyncIOScheduler()
    setup_scheduler(scheduler, store)
    scheduler.start()
"""

import logging

from apscheduler.triggers.interval import IntervalTrigger

from login_guard.config import SWEEP_SCHEDULE
from login_guard.sweeper import LockSweeper

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public entry point: call once at app startup
# ---------------------------------------------------------------------------

def setup_scheduler(scheduler, store) -> None:
    """
    Register all jobs with the provided APScheduler instance.

    Parameters
    ----------
    scheduler : AsyncIOScheduler
        The APScheduler instance created at app startup.
    store     : DocumentStore
        Store handle shared with the request handlers.

    Call this BEFORE scheduler.start().
    """
    interval_hours = SWEEP_SCHEDULE["interval_hours"]

    # coalesce + max_instances=1: a late or slow run never overlaps the next one
    scheduler.add_job(
        make_lock_sweep_job(store),
        IntervalTrigger(hours=interval_hours),
        id="login_lock_sweep",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=600,
    )

    logger.info(f"Scheduler registered: login_lock_sweep every {interval_hours}h")


# ---------------------------------------------------------------------------
# Job factories
# ---------------------------------------------------------------------------

def make_lock_sweep_job(store):
    """Return the coroutine function APScheduler runs for the sweep."""

    async def _job():
        try:
            await LockSweeper(store).sweep()
        except Exception as e:
            logger.error(f"Scheduled login lock sweep failed: {e}")

    return _job
