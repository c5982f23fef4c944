"""
Background jobs for transition bookkeeping.

Jobs:
  - transition_week_sync:   every TRANSITION_SYNC_INTERVAL (default 6h)
  - transition_week_rollover: 00:05 in CHILD_TIMEZONE, so a new week shows up the morning it starts

Both run sync_transition_weeks. The last summary is kept for /health.
"""

import logging
from typing import Any, Dict, Optional
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from .tasks import sync_transition_weeks
from ..core.database import get_database
from ..core.settings import settings

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None
_last_sync: Optional[Dict[str, Any]] = None


async def _sync_weeks():
    global _last_sync
    if not get_database().is_connected:
        logger.debug("Week sync skipped: no database")
        return
    _last_sync = await sync_transition_weeks()


def _on_job_event(event: JobExecutionEvent):
    if event.code == EVENT_JOB_MISSED:
        logger.warning(f"Job {event.job_id} missed its run at {event.scheduled_run_time}")
    else:
        logger.error(f"Job {event.job_id} raised: {event.exception}")


# Used by: main (lifespan startup)
async def start_scheduler():
    global scheduler

    if scheduler is not None:
        logger.warning("start_scheduler called twice; keeping the running scheduler")
        return

    scheduler = AsyncIOScheduler(timezone=settings.CHILD_TIMEZONE)
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    job_defaults = dict(replace_existing=True, max_instances=1, coalesce=True)
    scheduler.add_job(
        _sync_weeks,
        trigger=IntervalTrigger(seconds=settings.transition_sync_seconds),
        id="transition_week_sync",
        name="Recompute current week of active transitions",
        **job_defaults,
    )
    scheduler.add_job(
        _sync_weeks,
        trigger=CronTrigger(hour=0, minute=5),
        id="transition_week_rollover",
        name="Week rollover just after local midnight",
        **job_defaults,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started ({settings.CHILD_TIMEZONE}): week sync every "
        f"{settings.TRANSITION_SYNC_INTERVAL} and daily at 00:05"
    )


# Used by: main (lifespan shutdown)
async def stop_scheduler():
    global scheduler

    if scheduler is None:
        return

    scheduler.shutdown(wait=False)
    scheduler = None
    logger.info("Scheduler stopped")


# Used by: GET /health
def get_scheduler_status() -> dict:
    if scheduler is None:
        return {"running": False, "jobs": [], "last_sync": _last_sync}

    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
        "last_sync": _last_sync,
    }
