"""Job run and scheduled job models."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from examrank.core.database import Base, JSONType
from examrank.models.base import IDMixin, TimestampMixin, utcnow, value_enum


class JobStatus(str, enum.Enum):
    """Job run status enumeration."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)


class JobType(str, enum.Enum):
    """Job type enumeration."""

    NORMALIZATION = "normalization"
    RANK_CALCULATION = "rank_calculation"
    CUTOFF_PREDICTION = "cutoff_prediction"
    BATCH_PROCESSING = "batch_processing"


class JobRun(Base, IDMixin):
    """Execution record of a pipeline job."""

    __tablename__ = "job_runs"

    job_name: Mapped[str] = mapped_column(String(255), nullable=False)
    job_type: Mapped[JobType] = mapped_column(
        value_enum(JobType, "jobtype"),
        nullable=False,
        index=True,
    )
    status: Mapped[JobStatus] = mapped_column(
        value_enum(JobStatus, "jobstatus"),
        default=JobStatus.PENDING,
        nullable=False,
        index=True,
    )
    triggered_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)

    # Timing
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Progress
    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Results
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_stack: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    @property
    def exam_id(self) -> int | None:
        """Target exam, or None when the job covers all active exams."""
        if not self.job_metadata:
            return None
        return self.job_metadata.get("examId")

    def __repr__(self) -> str:
        return f"<JobRun(id={self.id}, type={self.job_type}, status={self.status})>"


class ScheduledJob(Base, IDMixin, TimestampMixin):
    """Cron-scheduled pipeline job."""

    __tablename__ = "scheduled_jobs"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    job_type: Mapped[JobType] = mapped_column(
        value_enum(JobType, "jobtype"),
        nullable=False,
    )
    cron_expression: Mapped[str] = mapped_column(String(100), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ScheduledJob(name={self.name}, cron={self.cron_expression})>"
