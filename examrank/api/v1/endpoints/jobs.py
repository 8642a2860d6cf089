"""Pipeline job endpoints."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from examrank.core.database import get_db
from examrank.models.job import JobStatus, JobType
from examrank.schemas.common import PaginatedResponse
from examrank.schemas.job import JobCreate, JobDetailResponse, JobResponse
from examrank.services.job import JobService, execute_job

router = APIRouter()


@router.post("", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
def create_job(
    request: JobCreate,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Queue a pipeline job and run it in the background.
    Rejected with 409 while another job targets the same exam.
    """
    service = JobService(db)
    job = service.create_job(request, triggered_by="api")
    db.commit()
    background_tasks.add_task(execute_job, job.id)
    return job


@router.get("", response_model=PaginatedResponse[JobResponse])
def list_jobs(
    db: Annotated[Session, Depends(get_db)],
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List job runs, newest first."""
    service = JobService(db)
    return service.list_jobs(status=status, job_type=job_type, page=page, page_size=page_size)


@router.get("/{job_id}", response_model=JobDetailResponse)
def get_job(
    job_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Get a job run with progress and failure details."""
    service = JobService(db)
    return service.get_job(job_id)
