"""Exam pipeline endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from examrank.core.database import get_db
from examrank.schemas.exam import CutoffResponse, ReadinessResponse, ShiftStatsResponse
from examrank.services.exam import ExamService

router = APIRouter()


@router.get("/{exam_id}/readiness", response_model=ReadinessResponse)
def get_exam_readiness(
    exam_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Report whether normalization, ranking and cutoffs are complete for an exam."""
    service = ExamService(db)
    return service.get_readiness(exam_id)


@router.get("/{exam_id}/shifts", response_model=list[ShiftStatsResponse])
def list_exam_shifts(
    exam_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """List shifts with cached statistics and difficulty."""
    service = ExamService(db)
    return service.list_shifts(exam_id)


@router.get("/{exam_id}/cutoffs", response_model=list[CutoffResponse])
def list_exam_cutoffs(
    exam_id: int,
    db: Annotated[Session, Depends(get_db)],
    post_code: str | None = None,
):
    """List category cutoffs for an exam."""
    service = ExamService(db)
    return service.list_cutoffs(exam_id, post_code=post_code)
