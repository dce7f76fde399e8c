"""APScheduler integration for FastAPI.

Runs the periodic mark-to-market sweep over all open trades.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from margin_desk.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

MARK_JOB_ID = "mark_to_market"


def add_mark_job(interval_seconds: int | None = None):
    """Add or replace the mark-to-market job."""
    from margin_desk.engine.monitor import run_mark_cycle

    seconds = interval_seconds or settings.mark_interval_seconds
    scheduler.add_job(
        run_mark_cycle,
        trigger=IntervalTrigger(seconds=seconds),
        id=MARK_JOB_ID,
        name="Mark to market",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=seconds,
    )
    logger.info(f"Scheduled mark-to-market every {seconds}s")


def start_scheduler():
    """Start the scheduler with the mark-to-market job."""
    add_mark_job()
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if getattr(j, "next_run_time", None) else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
