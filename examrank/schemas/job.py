"""Job run and scheduled job schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from examrank.models.job import JobStatus, JobType
from examrank.schemas.common import BaseSchema


# ==========================================
# Job Run Schemas
# ==========================================

class JobCreate(BaseSchema):
    """Job creation schema. Omit exam_id to target all active exams."""

    job_type: JobType
    exam_id: int | None = Field(None, gt=0)
    job_name: str | None = Field(None, max_length=255)


class JobResponse(BaseSchema):
    """Job run response schema."""

    id: int
    job_name: str
    job_type: JobType
    status: JobStatus
    triggered_by: str
    exam_id: int | None = None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    total_records: int | None
    records_processed: int
    progress_percent: int
    error_message: str | None
    job_metadata: dict[str, Any] | None = Field(None, serialization_alias="metadata")


class JobDetailResponse(JobResponse):
    """Job run with failure traceback."""

    error_stack: str | None = None


# ==========================================
# Scheduled Job Schemas
# ==========================================

class ScheduledJobCreate(BaseSchema):
    """Scheduled job creation schema."""

    name: str = Field(..., min_length=1, max_length=255)
    job_type: JobType
    cron_expression: str = Field(..., min_length=9, max_length=100)
    is_enabled: bool = True
    config: dict[str, Any] | None = None

    @field_validator("cron_expression")
    @classmethod
    def validate_field_count(cls, v: str) -> str:
        """Require a standard 5-field crontab expression."""
        if len(v.split()) != 5:
            raise ValueError("cron_expression must have 5 fields (minute hour day month weekday)")
        return v


class ScheduledJobUpdate(BaseSchema):
    """Scheduled job update schema."""

    cron_expression: str | None = Field(None, min_length=9, max_length=100)
    is_enabled: bool | None = None
    config: dict[str, Any] | None = None

    @field_validator("cron_expression")
    @classmethod
    def validate_field_count(cls, v: str | None) -> str | None:
        if v is not None and len(v.split()) != 5:
            raise ValueError("cron_expression must have 5 fields (minute hour day month weekday)")
        return v


class ScheduledJobResponse(BaseSchema):
    """Scheduled job response schema."""

    id: int
    name: str
    job_type: JobType
    cron_expression: str
    is_enabled: bool
    config: dict[str, Any] | None
    last_run_at: datetime | None
    next_run_at: datetime | None
    created_at: datetime
    updated_at: datetime
