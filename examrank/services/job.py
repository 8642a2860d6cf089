"""Job orchestration service."""

import logging
import math
import traceback
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.database import SessionLocal
from examrank.core.exceptions import ConflictError, NotFoundError
from examrank.models.base import utcnow
from examrank.models.exam import Exam
from examrank.models.job import ACTIVE_JOB_STATUSES, JobRun, JobStatus, JobType
from examrank.schemas.common import PaginatedResponse
from examrank.schemas.job import JobCreate, JobResponse
from examrank.services.job_context import JobContext
from examrank.services.pipeline_jobs import JOB_HANDLERS

logger = logging.getLogger(__name__)


def exam_lock_query(exam_id: int | None):
    """SELECT ... FOR UPDATE over one exam, or every exam in id order."""
    query = select(Exam).order_by(Exam.id).with_for_update()
    if exam_id is not None:
        query = query.where(Exam.id == exam_id)
    return query


class JobService:
    """Service for creating, running and inspecting pipeline jobs."""

    def __init__(self, db: Session):
        self.db = db

    # ==================== Creation ====================

    def _lock_targets(self, exam_id: int | None) -> list[Exam]:
        """
        Lock the exam rows a new job would touch, held until commit.

        Concurrent creations for overlapping targets queue on these row
        locks, so the conflict check below sees the winner's pending job.
        """
        return list(self.db.execute(exam_lock_query(exam_id)).scalars().all())

    def _check_conflicts(self, exam_id: int | None) -> None:
        """
        Refuse a job that would overlap an active one.

        Two jobs conflict when either targets all exams or both target the
        same exam.
        """
        active = self.db.execute(
            select(JobRun).where(JobRun.status.in_(ACTIVE_JOB_STATUSES))
        ).scalars().all()
        for job in active:
            if exam_id is None or job.exam_id is None or job.exam_id == exam_id:
                raise ConflictError(
                    f"Job {job.id} ({job.job_type.value}) is already {job.status.value}",
                    details={"job_id": job.id, "exam_id": job.exam_id},
                )

    def create_job(self, request: JobCreate, triggered_by: str = "api") -> JobRun:
        """Create a pending job run."""
        locked = self._lock_targets(request.exam_id)
        if request.exam_id is not None and not locked:
            raise NotFoundError("Exam", str(request.exam_id))
        self._check_conflicts(request.exam_id)

        target = f"exam {request.exam_id}" if request.exam_id is not None else "all exams"
        job = JobRun(
            job_name=request.job_name or f"{request.job_type.value} ({target})",
            job_type=request.job_type,
            status=JobStatus.PENDING,
            triggered_by=triggered_by,
            job_metadata={"examId": request.exam_id},
        )
        self.db.add(job)
        self.db.flush()
        logger.info(f"Created job {job.id}: {job.job_name} (triggered by {triggered_by})")
        return job

    # ==================== Queries ====================

    def get_job(self, job_id: int) -> JobRun:
        job = self.db.get(JobRun, job_id)
        if not job:
            raise NotFoundError("Job", str(job_id))
        return job

    def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: JobType | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginatedResponse[JobResponse]:
        """List job runs, newest first."""
        query = select(JobRun)
        if status:
            query = query.where(JobRun.status == status)
        if job_type:
            query = query.where(JobRun.job_type == job_type)

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        jobs = self.db.execute(
            query.order_by(JobRun.created_at.desc(), JobRun.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return PaginatedResponse(
            items=[JobResponse.model_validate(job) for job in jobs],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    # ==================== Execution ====================

    def run_job(self, job_id: int) -> JobRun:
        """
        Run a pending job to completion.

        Failures are recorded on the job row (message and traceback); work
        committed by earlier batches is kept.
        """
        job = self.get_job(job_id)
        if job.status != JobStatus.PENDING:
            raise ConflictError(
                f"Job {job_id} is {job.status.value}, only pending jobs can run",
                details={"job_id": job_id},
            )

        handler = JOB_HANDLERS.get(job.job_type)
        job.status = JobStatus.RUNNING
        job.started_at = utcnow()
        self.db.commit()
        logger.info(f"Starting job {job.id}: {job.job_name}")

        try:
            if handler is None:
                raise NotImplementedError(f"No handler registered for job type '{job.job_type.value}'")
            context = JobContext(self.db, job)
            message = handler(context)
        except Exception as e:
            self.db.rollback()
            job.status = JobStatus.FAILED
            job.completed_at = utcnow()
            job.error_message = str(e) or e.__class__.__name__
            job.error_stack = traceback.format_exc()
            self.db.commit()
            logger.exception(f"Job {job.id} failed: {e}")
            return job

        job.status = JobStatus.SUCCESS
        job.progress_percent = 100
        job.completed_at = utcnow()
        result = dict((job.job_metadata or {}).get("result") or {})
        result["message"] = message
        job.job_metadata = {**(job.job_metadata or {}), "result": result}
        self.db.commit()
        logger.info(f"Job {job.id} completed: {message}")
        return job

    def fail_stuck_jobs(self, dry_run: bool = False) -> list[JobRun]:
        """Mark running jobs started more than STUCK_JOB_MINUTES ago as failed."""
        threshold = utcnow() - timedelta(minutes=settings.STUCK_JOB_MINUTES)
        stuck = self.db.execute(
            select(JobRun).where(
                JobRun.status == JobStatus.RUNNING,
                JobRun.started_at < threshold,
            )
        ).scalars().all()

        if dry_run:
            return list(stuck)

        for job in stuck:
            job.status = JobStatus.FAILED
            job.completed_at = utcnow()
            job.error_message = (
                f"Marked as failed: running for more than {settings.STUCK_JOB_MINUTES} minutes"
            )
            logger.warning(f"Job {job.id} ({job.job_name}) marked as failed (stuck)")
        self.db.commit()
        return list(stuck)


def execute_job(job_id: int) -> None:
    """Run a job in its own session (background tasks and the scheduler)."""
    db = SessionLocal()
    try:
        JobService(db).run_job(job_id)
    finally:
        db.close()
