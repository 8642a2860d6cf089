"""Exam pipeline read-side service."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from examrank.core.exceptions import NotFoundError
from examrank.models.cutoff import Cutoff
from examrank.models.exam import Exam
from examrank.models.shift import Shift
from examrank.models.submission import Submission

# Share of submissions that must be normalized / ranked for a stage to count as done
READINESS_RATIO = 0.9


@dataclass
class PipelineReadiness:
    exam_id: int
    total_submissions: int
    normalized_submissions: int
    ranked_submissions: int
    normalization_done: bool
    ranks_done: bool
    cutoffs_ready: bool
    last_normalized_at: datetime | None = None


class ExamService:
    """Service for exam lookups and pipeline readiness."""

    def __init__(self, db: Session):
        self.db = db

    def get_exam(self, exam_id: int) -> Exam:
        exam = self.db.get(Exam, exam_id)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))
        return exam

    def list_active_exams(self) -> list[Exam]:
        return list(
            self.db.execute(
                select(Exam).where(Exam.is_active.is_(True)).order_by(Exam.id)
            ).scalars().all()
        )

    def get_readiness(self, exam_id: int) -> PipelineReadiness:
        """Check how far the normalization -> ranking -> cutoff pipeline has got."""
        exam = self.get_exam(exam_id)
        total, normalized, ranked = self.db.execute(
            select(
                func.count(Submission.id),
                func.count(Submission.normalized_score),
                func.count(Submission.overall_rank),
            ).where(Submission.exam_id == exam_id)
        ).one()

        normalization_done = total > 0 and normalized / total >= READINESS_RATIO
        ranks_done = total > 0 and ranked / total >= READINESS_RATIO
        return PipelineReadiness(
            exam_id=exam_id,
            total_submissions=total,
            normalized_submissions=normalized,
            ranked_submissions=ranked,
            normalization_done=normalization_done,
            ranks_done=ranks_done,
            cutoffs_ready=normalization_done and ranks_done,
            last_normalized_at=exam.last_normalized_at,
        )

    def list_shifts(self, exam_id: int) -> list[Shift]:
        self.get_exam(exam_id)
        return list(
            self.db.execute(
                select(Shift)
                .where(Shift.exam_id == exam_id)
                .order_by(Shift.date, Shift.shift_number)
            ).scalars().all()
        )

    def list_cutoffs(self, exam_id: int, post_code: str | None = None) -> list[Cutoff]:
        self.get_exam(exam_id)
        query = select(Cutoff).where(Cutoff.exam_id == exam_id)
        if post_code:
            query = query.where(Cutoff.post_code == post_code)
        return list(self.db.execute(query.order_by(Cutoff.category)).scalars().all())
