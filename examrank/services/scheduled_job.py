"""Scheduled (cron) pipeline job service."""

import logging

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.exceptions import ConflictError, NotFoundError, ValidationError
from examrank.models.base import utcnow
from examrank.models.job import JobRun, ScheduledJob
from examrank.schemas.job import JobCreate, ScheduledJobCreate, ScheduledJobUpdate
from examrank.services.job import JobService

logger = logging.getLogger(__name__)


def build_trigger(cron_expression: str) -> CronTrigger:
    """Parse a 5-field crontab expression in the scheduler timezone."""
    try:
        return CronTrigger.from_crontab(cron_expression, timezone=settings.SCHEDULER_TIMEZONE)
    except ValueError as e:
        raise ValidationError(
            f"Invalid cron expression: {e}",
            details={"cron_expression": cron_expression},
        )


class ScheduledJobService:
    """Service for managing cron-scheduled jobs."""

    def __init__(self, db: Session):
        self.db = db

    def list_scheduled(self, enabled_only: bool = False) -> list[ScheduledJob]:
        query = select(ScheduledJob).order_by(ScheduledJob.name)
        if enabled_only:
            query = query.where(ScheduledJob.is_enabled.is_(True))
        return list(self.db.execute(query).scalars().all())

    def get_scheduled(self, scheduled_id: int) -> ScheduledJob:
        scheduled = self.db.get(ScheduledJob, scheduled_id)
        if not scheduled:
            raise NotFoundError("ScheduledJob", str(scheduled_id))
        return scheduled

    def create_scheduled(self, request: ScheduledJobCreate) -> ScheduledJob:
        trigger = build_trigger(request.cron_expression)
        existing = self.db.execute(
            select(ScheduledJob).where(ScheduledJob.name == request.name)
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"Scheduled job '{request.name}' already exists")

        scheduled = ScheduledJob(
            name=request.name,
            job_type=request.job_type,
            cron_expression=request.cron_expression,
            is_enabled=request.is_enabled,
            config=request.config,
            next_run_at=trigger.get_next_fire_time(None, utcnow()),
        )
        self.db.add(scheduled)
        self.db.flush()
        return scheduled

    def update_scheduled(self, scheduled_id: int, request: ScheduledJobUpdate) -> ScheduledJob:
        scheduled = self.get_scheduled(scheduled_id)
        update_data = request.model_dump(exclude_unset=True)

        if "cron_expression" in update_data and update_data["cron_expression"]:
            trigger = build_trigger(update_data["cron_expression"])
            scheduled.next_run_at = trigger.get_next_fire_time(None, utcnow())
        for field, value in update_data.items():
            setattr(scheduled, field, value)

        self.db.flush()
        return scheduled

    def delete_scheduled(self, scheduled_id: int) -> None:
        scheduled = self.get_scheduled(scheduled_id)
        self.db.delete(scheduled)
        self.db.flush()

    def fire(self, scheduled_id: int) -> JobRun | None:
        """
        Create and run the job for one scheduled entry.

        Returns None when the entry is disabled or an overlapping job is
        already active.
        """
        scheduled = self.get_scheduled(scheduled_id)
        if not scheduled.is_enabled:
            return None

        config = scheduled.config or {}
        request = JobCreate(
            job_type=scheduled.job_type,
            exam_id=config.get("examId"),
            job_name=f"{scheduled.name} (scheduled)",
        )
        now = utcnow()
        scheduled.last_run_at = now
        scheduled.next_run_at = build_trigger(scheduled.cron_expression).get_next_fire_time(None, now)

        try:
            job = JobService(self.db).create_job(request, triggered_by="scheduler")
        except ConflictError as e:
            self.db.commit()
            logger.warning(f"Skipping scheduled job '{scheduled.name}': {e.message}")
            return None

        self.db.commit()
        return JobService(self.db).run_job(job.id)
