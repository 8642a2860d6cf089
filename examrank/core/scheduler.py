"""APScheduler configuration for scheduled pipeline jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.database import SessionLocal
from examrank.services.scheduled_job import ScheduledJobService, build_trigger

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def get_db_session() -> Session:
    """Get a database session for scheduler jobs."""
    return SessionLocal()


def run_scheduled_job(scheduled_id: int):
    """
    Fire one scheduled job.
    Creates a JobRun and runs it to completion in this worker.
    """
    db = get_db_session()
    try:
        job = ScheduledJobService(db).fire(scheduled_id)
        if job:
            logger.info(f"Scheduled job {scheduled_id} finished as job {job.id} ({job.status.value})")
    except Exception as e:
        logger.exception(f"Error running scheduled job {scheduled_id}: {e}")
        db.rollback()
    finally:
        db.close()


def load_scheduled_jobs(target: AsyncIOScheduler) -> int:
    """Register every enabled ScheduledJob row on the scheduler."""
    db = get_db_session()
    try:
        entries = ScheduledJobService(db).list_scheduled(enabled_only=True)
        for entry in entries:
            target.add_job(
                run_scheduled_job,
                trigger=build_trigger(entry.cron_expression),
                args=[entry.id],
                id=f"scheduled_job_{entry.id}",
                name=entry.name,
                replace_existing=True,
            )
        return len(entries)
    finally:
        db.close()


def init_scheduler() -> AsyncIOScheduler:
    """Initialize and configure the scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.SCHEDULER_TIMEZONE,
        job_defaults={
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,  # Only one instance of each job at a time
            "misfire_grace_time": 3600,
        },
    )

    count = load_scheduled_jobs(scheduler)
    logger.info(f"Scheduler initialized with {count} scheduled job(s) ({settings.SCHEDULER_TIMEZONE})")
    return scheduler


def start_scheduler():
    """Start the scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = init_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
    scheduler = None


def reload_scheduled_jobs():
    """Re-register scheduled jobs after they change."""
    if scheduler is None or not scheduler.running:
        return
    scheduler.remove_all_jobs()
    count = load_scheduled_jobs(scheduler)
    logger.info(f"Reloaded {count} scheduled job(s)")
