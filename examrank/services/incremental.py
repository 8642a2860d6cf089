"""
Incremental re-evaluation after new submissions.

A full normalization run is O(all submissions). Between runs, each new
submission is normalized on its own against the cached shift statistics and
the exam watermark, ranks are refreshed, and cutoffs are only recomputed once
the share of submissions added since the last full run reaches the exam's
re-normalization threshold.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.exceptions import NotFoundError, UnknownNormalizationMethodError, ValidationError
from examrank.models.exam import Exam
from examrank.models.job import ACTIVE_JOB_STATUSES, JobRun, JobType
from examrank.models.shift import Shift
from examrank.models.submission import Submission
from examrank.services.cutoff import SOURCE_INCREMENTAL, CutoffPredictor
from examrank.services.normalization_formulas import NormalizationParams, get_formula
from examrank.services.ranking import RankingService

logger = logging.getLogger(__name__)

RECOMMEND_INITIAL = "Initial normalization not yet run"
RECOMMEND_FULL = "Full re-normalization recommended"
RECOMMEND_INCREMENTAL = "Incremental normalization sufficient"

# Job types that rewrite normalized scores
NORMALIZING_JOB_TYPES = (JobType.NORMALIZATION, JobType.BATCH_PROCESSING)


@dataclass
class SignificanceResult:
    is_significant: bool
    new_count: int
    total_count: int
    percent_new: float
    threshold: float


@dataclass
class IncrementalResult:
    submission_id: int
    normalized_score: float | None
    ranks_recalculated: bool
    significance: SignificanceResult
    cutoffs_updated: bool = False


@dataclass
class ReNormalizationStatus:
    exam_id: int
    exam_name: str
    last_normalized_at: datetime | None
    normalization_version: int
    significance: SignificanceResult
    recommendation: str
    warnings: list[str] = field(default_factory=list)


class IncrementalService:
    """Service handling per-submission normalization and drift tracking."""

    def __init__(self, db: Session):
        self.db = db

    def _threshold(self, exam: Exam) -> float:
        if exam.re_norm_threshold is None:
            return settings.DEFAULT_RENORM_THRESHOLD
        return exam.re_norm_threshold

    def active_normalization_job(self, exam_id: int) -> JobRun | None:
        """A pending or running job that normalizes this exam, if any."""
        active = self.db.execute(
            select(JobRun).where(
                JobRun.status.in_(ACTIVE_JOB_STATUSES),
                JobRun.job_type.in_(NORMALIZING_JOB_TYPES),
            )
        ).scalars().all()
        return next((job for job in active if job.exam_id in (None, exam_id)), None)

    def check_significance(self, exam_id: int) -> SignificanceResult:
        """Compare the live submission count with the last normalization watermark."""
        exam = self.db.get(Exam, exam_id)
        if not exam:
            return SignificanceResult(
                is_significant=False,
                new_count=0,
                total_count=0,
                percent_new=0.0,
                threshold=settings.DEFAULT_RENORM_THRESHOLD,
            )

        total = self.db.execute(
            select(func.count(Submission.id)).where(Submission.exam_id == exam_id)
        ).scalar_one()
        at_last = exam.subs_at_last_normalization or 0
        new_count = max(0, total - at_last)

        if at_last > 0:
            percent_new = new_count / at_last * 100
        else:
            percent_new = 100.0 if new_count > 0 else 0.0

        threshold = self._threshold(exam)
        # Decide on the exact share; only the reported figure is rounded
        return SignificanceResult(
            is_significant=percent_new >= threshold,
            new_count=new_count,
            total_count=total,
            percent_new=round(percent_new, 2),
            threshold=threshold,
        )

    def normalize_new_submission(
        self,
        submission_id: int,
        exam_id: int,
        shift_id: int,
        raw_score: float,
    ) -> float | None:
        """
        Normalize a single submission against cached statistics.

        Returns None, leaving the submission un-normalized, when the exam has
        normalization disabled, has never been normalized, or the shift has
        no cached average.
        """
        exam = self.db.get(Exam, exam_id)
        if not exam or not exam.has_normalization or exam.last_normalized_at is None:
            return None

        shift = self.db.get(Shift, shift_id)
        if not shift or shift.avg_raw_score is None:
            return None

        try:
            formula = get_formula(exam.normalization_method)
        except UnknownNormalizationMethodError as e:
            logger.warning(f"Skipping incremental normalization for exam {exam_id}: {e.message}")
            return None

        total_in_shift, higher = self.db.execute(
            select(
                func.count(Submission.id),
                func.count(Submission.id).filter(Submission.raw_score > raw_score),
            ).where(Submission.shift_id == shift_id)
        ).one()

        params = NormalizationParams(
            raw_score=raw_score,
            shift_mean=shift.avg_raw_score,
            shift_std_dev=shift.std_dev or 0.0,
            global_mean=exam.global_mean_raw or 0.0,
            global_std_dev=exam.global_std_dev_raw or 0.0,
            max_marks=exam.total_marks,
            total_in_shift=total_in_shift,
            rank_in_shift=higher + 1,
            config=exam.normalization_config,
            global_distribution=exam.global_distribution,
        )
        normalized = formula.normalize(params)

        self.db.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(normalized_score=normalized)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return normalized

    def handle_post_submission(
        self,
        submission_id: int,
        exam_id: int,
        shift_id: int,
        raw_score: float,
    ) -> IncrementalResult:
        """
        Normalize, re-rank and, when drift is significant, refresh cutoffs.

        Re-ranking is skipped while a normalization job for the exam is
        pending or running.
        """
        normalized = self.normalize_new_submission(submission_id, exam_id, shift_id, raw_score)

        ranks_recalculated = False
        blocking_job = self.active_normalization_job(exam_id)
        if blocking_job is not None:
            logger.info(
                f"Exam {exam_id}: job {blocking_job.id} is {blocking_job.status.value}, "
                "deferring rank recalculation"
            )
        else:
            try:
                RankingService(self.db).recalculate_ranks(exam_id)
                ranks_recalculated = True
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"Rank recalculation failed for exam {exam_id}")

        significance = self.check_significance(exam_id)
        cutoffs_updated = False
        if significance.is_significant:
            logger.info(
                f"Exam {exam_id}: {significance.percent_new}% new submissions "
                f"(threshold {significance.threshold}%), refreshing cutoffs"
            )
            exam = self.db.get(Exam, exam_id)
            prediction = CutoffPredictor(self.db).predict_exam(exam, source=SOURCE_INCREMENTAL)
            cutoffs_updated = not prediction.skipped

        return IncrementalResult(
            submission_id=submission_id,
            normalized_score=normalized,
            ranks_recalculated=ranks_recalculated,
            significance=significance,
            cutoffs_updated=cutoffs_updated,
        )

    def get_status(self, exam_id: int | None = None) -> list[ReNormalizationStatus]:
        """Re-normalization status for one exam, or every active exam."""
        if exam_id is not None:
            exam = self.db.get(Exam, exam_id)
            if not exam:
                raise NotFoundError("Exam", str(exam_id))
            exams = [exam]
        else:
            exams = self.db.execute(
                select(Exam).where(Exam.is_active.is_(True)).order_by(Exam.id)
            ).scalars().all()

        statuses = []
        for exam in exams:
            significance = self.check_significance(exam.id)
            warnings = []
            if exam.last_normalized_at is None:
                recommendation = RECOMMEND_INITIAL
            elif significance.is_significant:
                recommendation = RECOMMEND_FULL
            else:
                recommendation = RECOMMEND_INCREMENTAL
            if not exam.has_normalization:
                warnings.append("Normalization is disabled for this exam")

            statuses.append(
                ReNormalizationStatus(
                    exam_id=exam.id,
                    exam_name=exam.name,
                    last_normalized_at=exam.last_normalized_at,
                    normalization_version=exam.normalization_version,
                    significance=significance,
                    recommendation=recommendation,
                    warnings=warnings,
                )
            )
        return statuses

    def update_threshold(self, exam_id: int, threshold: float) -> Exam:
        """Set the re-normalization threshold (percent) for an exam."""
        if threshold < 0 or threshold > 100:
            raise ValidationError(
                "Threshold must be between 0 and 100",
                details={"threshold": threshold},
            )
        exam = self.db.get(Exam, exam_id)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))

        exam.re_norm_threshold = threshold
        self.db.flush()
        logger.info(f"Re-normalization threshold for exam {exam_id} set to {threshold}%")
        return exam
