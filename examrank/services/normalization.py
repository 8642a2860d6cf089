"""Full normalization pipeline for an exam."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.exceptions import InsufficientDataError, NormalizationDisabledError
from examrank.models.base import utcnow
from examrank.models.exam import Exam, NormalizationMethod
from examrank.models.shift import Shift
from examrank.models.submission import Submission
from examrank.services.normalization_formulas import (
    FORMULAS,
    NormalizationFormula,
    NormalizationParams,
    get_formula,
)
from examrank.services.shift_statistics import ExamScoreProfile, ShiftStatisticsService
from examrank.utils.batching import chunked

logger = logging.getLogger(__name__)

BatchCallback = Callable[[int], None]


def competition_ranks(scores_desc: Sequence[float]) -> list[int]:
    """
    Standard competition ranks for scores sorted in descending order.

    Equal scores share a rank and the next distinct score skips ahead,
    e.g. [90, 80, 80, 70] -> [1, 2, 2, 4].
    """
    ranks: list[int] = []
    for position, score in enumerate(scores_desc):
        if position and score == scores_desc[position - 1]:
            ranks.append(ranks[-1])
        else:
            ranks.append(position + 1)
    return ranks


@dataclass
class NormalizationResult:
    """Outcome of normalizing one exam."""

    exam_id: int
    method: str
    processed: int
    bulk: bool
    version: int


class NormalizationService:
    """Service applying an exam's normalization method to all its submissions."""

    def __init__(self, db: Session, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size or settings.NORMALIZATION_BATCH_SIZE

    def count_submissions(self, exam_id: int) -> int:
        return self.db.execute(
            select(func.count(Submission.id)).where(Submission.exam_id == exam_id)
        ).scalar_one()

    def normalize_exam(
        self,
        exam: Exam,
        on_batch: BatchCallback | None = None,
    ) -> NormalizationResult:
        """
        Recompute shift statistics and normalized scores for an exam.

        Shift statistics are committed before any score is written. Score
        writes are committed per batch, and the exam watermark is stamped
        only after every batch has applied.

        Raises:
            NormalizationDisabledError: Exam has normalization turned off
            UnknownNormalizationMethodError: Exam method has no formula
            InsufficientDataError: Exam has no submissions
        """
        if not exam.has_normalization:
            raise NormalizationDisabledError(exam.id)

        formula = get_formula(exam.normalization_method)
        if self.count_submissions(exam.id) == 0:
            raise InsufficientDataError(f"Exam {exam.id} has no submissions", exam.id)
        logger.info(f"Normalizing exam {exam.id} with method '{formula.method.value}'")

        profile = ShiftStatisticsService(self.db).aggregate_exam(exam)
        self.db.commit()

        distribution = None
        if formula.needs_distribution and profile.scores:
            distribution = profile.distribution(settings.DISTRIBUTION_POINTS)

        if formula.bulk_capable:
            processed = self._apply_bulk(exam, formula, profile)
            if on_batch:
                on_batch(processed)
        else:
            processed = self._apply_per_row(exam, formula, profile, distribution, on_batch)

        version = self.stamp_watermark(exam, profile, distribution)
        logger.info(f"Normalized {processed} submissions of exam {exam.id} (version {version})")
        return NormalizationResult(
            exam_id=exam.id,
            method=formula.method.value,
            processed=processed,
            bulk=formula.bulk_capable,
            version=version,
        )

    def _apply_bulk(
        self,
        exam: Exam,
        formula: NormalizationFormula,
        profile: ExamScoreProfile,
    ) -> int:
        """Set-based update, split by shifts with and without score spread."""
        shift_mean = (
            select(Shift.avg_raw_score).where(Shift.id == Submission.shift_id).scalar_subquery()
        )
        shift_std_dev = (
            select(Shift.std_dev).where(Shift.id == Submission.shift_id).scalar_subquery()
        )
        spread_shift_ids = select(Shift.id).where(Shift.exam_id == exam.id, Shift.std_dev > 0)

        spread = self.db.execute(
            update(Submission)
            .where(Submission.exam_id == exam.id, Submission.shift_id.in_(spread_shift_ids))
            .values(
                normalized_score=formula.sql_expression(
                    Submission.raw_score,
                    shift_mean,
                    shift_std_dev,
                    profile.global_mean,
                    profile.global_std_dev,
                )
            )
            .execution_options(synchronize_session=False)
        )
        flat = self.db.execute(
            update(Submission)
            .where(Submission.exam_id == exam.id, Submission.shift_id.not_in(spread_shift_ids))
            .values(
                normalized_score=FORMULAS[NormalizationMethod.RAW].sql_expression(
                    Submission.raw_score, None, None, profile.global_mean, profile.global_std_dev
                )
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        return spread.rowcount + flat.rowcount

    def _apply_per_row(
        self,
        exam: Exam,
        formula: NormalizationFormula,
        profile: ExamScoreProfile,
        distribution: list[dict[str, float]] | None,
        on_batch: BatchCallback | None,
    ) -> int:
        """Shift-by-shift formula evaluation, written in committed batches."""
        shifts = self.db.execute(
            select(Shift).where(Shift.exam_id == exam.id).order_by(Shift.id)
        ).scalars().all()

        processed = 0
        for shift in shifts:
            rows = self.db.execute(
                select(Submission.id, Submission.raw_score)
                .where(Submission.shift_id == shift.id)
                .order_by(Submission.raw_score.desc(), Submission.id)
            ).all()
            if not rows:
                continue

            ranks = competition_ranks([row.raw_score for row in rows])
            updates = []
            for row, rank in zip(rows, ranks):
                params = NormalizationParams(
                    raw_score=row.raw_score,
                    shift_mean=shift.avg_raw_score or 0.0,
                    shift_std_dev=shift.std_dev or 0.0,
                    global_mean=profile.global_mean,
                    global_std_dev=profile.global_std_dev,
                    max_marks=exam.total_marks,
                    total_in_shift=len(rows),
                    rank_in_shift=rank,
                    config=exam.normalization_config,
                    global_distribution=distribution,
                )
                updates.append({"id": row.id, "normalized_score": formula.normalize(params)})

            for batch in chunked(updates, self.batch_size):
                self.db.execute(update(Submission), list(batch))
                self.db.commit()
                processed += len(batch)
                if on_batch:
                    on_batch(len(batch))

        self.db.expire_all()
        return processed

    def stamp_watermark(
        self,
        exam: Exam,
        profile: ExamScoreProfile,
        distribution: list[dict[str, float]] | None,
    ) -> int:
        """Record a completed run on the exam. Returns the new version."""
        exam.last_normalized_at = utcnow()
        exam.subs_at_last_normalization = self.count_submissions(exam.id)
        exam.normalization_version = (exam.normalization_version or 0) + 1
        exam.global_mean_raw = profile.summary.mean
        exam.global_std_dev_raw = profile.summary.std_dev
        exam.global_distribution = distribution
        self.db.commit()
        return exam.normalization_version
