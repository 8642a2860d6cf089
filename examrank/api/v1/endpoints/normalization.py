"""Normalization endpoints."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from examrank.core.database import get_db
from examrank.models.job import JobType
from examrank.schemas.job import JobCreate, JobResponse
from examrank.schemas.normalization import (
    ForceNormalizationRequest,
    MethodOption,
    ReNormalizationStatusResponse,
    ThresholdResponse,
    ThresholdUpdate,
)
from examrank.services.incremental import IncrementalService
from examrank.services.job import JobService, execute_job
from examrank.services.normalization_formulas import available_methods

router = APIRouter()


@router.get("/methods", response_model=list[MethodOption])
def list_methods():
    """List supported normalization methods."""
    return available_methods()


@router.get("/status", response_model=list[ReNormalizationStatusResponse])
def get_renormalization_status(
    db: Annotated[Session, Depends(get_db)],
    exam_id: int | None = None,
):
    """
    Growth since the last full normalization and a recommendation.
    Covers every active exam unless exam_id is given.
    """
    service = IncrementalService(db)
    return service.get_status(exam_id)


@router.patch("/threshold", response_model=ThresholdResponse)
def update_threshold(
    request: ThresholdUpdate,
    db: Annotated[Session, Depends(get_db)],
):
    """Set the re-normalization threshold (0-100%) for an exam."""
    service = IncrementalService(db)
    exam = service.update_threshold(request.exam_id, request.threshold)
    return ThresholdResponse(exam_id=exam.id, threshold=exam.re_norm_threshold)


@router.post("/force", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
def force_normalization(
    request: ForceNormalizationRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
):
    """Queue a full normalization run for an exam."""
    service = JobService(db)
    job = service.create_job(
        JobCreate(job_type=JobType.NORMALIZATION, exam_id=request.exam_id),
        triggered_by="force",
    )
    db.commit()
    background_tasks.add_task(execute_job, job.id)
    return job
