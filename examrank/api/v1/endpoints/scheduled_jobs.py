"""Scheduled job endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from examrank.core.database import get_db
from examrank.core.scheduler import reload_scheduled_jobs
from examrank.schemas.common import MessageResponse
from examrank.schemas.job import ScheduledJobCreate, ScheduledJobResponse, ScheduledJobUpdate
from examrank.services.scheduled_job import ScheduledJobService

router = APIRouter()


@router.get("", response_model=list[ScheduledJobResponse])
def list_scheduled_jobs(
    db: Annotated[Session, Depends(get_db)],
    enabled_only: bool = False,
):
    """List cron-scheduled jobs."""
    service = ScheduledJobService(db)
    return service.list_scheduled(enabled_only=enabled_only)


@router.post("", response_model=ScheduledJobResponse, status_code=status.HTTP_201_CREATED)
def create_scheduled_job(
    request: ScheduledJobCreate,
    db: Annotated[Session, Depends(get_db)],
):
    """Create a scheduled job from a 5-field cron expression."""
    service = ScheduledJobService(db)
    scheduled = service.create_scheduled(request)
    db.commit()
    reload_scheduled_jobs()
    return scheduled


@router.patch("/{scheduled_id}", response_model=ScheduledJobResponse)
def update_scheduled_job(
    scheduled_id: int,
    request: ScheduledJobUpdate,
    db: Annotated[Session, Depends(get_db)],
):
    """Change the schedule, enable/disable or update config."""
    service = ScheduledJobService(db)
    scheduled = service.update_scheduled(scheduled_id, request)
    db.commit()
    reload_scheduled_jobs()
    return scheduled


@router.delete("/{scheduled_id}", response_model=MessageResponse)
def delete_scheduled_job(
    scheduled_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Delete a scheduled job."""
    service = ScheduledJobService(db)
    service.delete_scheduled(scheduled_id)
    db.commit()
    reload_scheduled_jobs()
    return MessageResponse(message="Scheduled job deleted successfully")
