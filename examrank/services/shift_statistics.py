"""Shift statistics aggregation and difficulty analysis."""

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from examrank.models.base import utcnow
from examrank.models.exam import Exam
from examrank.models.shift import DifficultyLabel, Shift
from examrank.models.submission import Submission
from examrank.utils.statistics import ScoreSummary, sample_distribution, summarize_scores

logger = logging.getLogger(__name__)

# Difficulty index weights
AVERAGE_WEIGHT = 0.4
SPREAD_WEIGHT = 0.3
TOPPER_GAP_WEIGHT = 0.3

HARD_THRESHOLD = 0.55
MODERATE_THRESHOLD = 0.38

# Used for shifts with no candidates or no average
DEFAULT_DIFFICULTY_INDEX = 0.5


def calculate_difficulty_index(
    avg_raw_score: float | None,
    std_dev: float | None,
    max_raw_score: float | None,
    max_marks: float,
    candidate_count: int,
) -> float:
    """
    Composite shift difficulty.

    0.4 * (1 - avg / max_marks)
    + 0.3 * min(1, std_dev / avg)
    + 0.3 * (max_raw - avg) / max_marks
    """
    if not candidate_count or avg_raw_score is None or not max_marks:
        return DEFAULT_DIFFICULTY_INDEX

    std_dev = std_dev or 0.0
    if avg_raw_score > 0:
        spread = min(1.0, std_dev / avg_raw_score)
    else:
        spread = 1.0 if std_dev > 0 else 0.0

    top = max_raw_score if max_raw_score is not None else avg_raw_score
    return (
        AVERAGE_WEIGHT * (1 - avg_raw_score / max_marks)
        + SPREAD_WEIGHT * spread
        + TOPPER_GAP_WEIGHT * (top - avg_raw_score) / max_marks
    )


def difficulty_label(index: float) -> DifficultyLabel:
    if index > HARD_THRESHOLD:
        return DifficultyLabel.HARD
    if index > MODERATE_THRESHOLD:
        return DifficultyLabel.MODERATE
    return DifficultyLabel.EASY


@dataclass
class ExamScoreProfile:
    """Exam-wide raw score statistics gathered while aggregating shifts."""

    exam_id: int
    summary: ScoreSummary
    scores: list[float]

    @property
    def global_mean(self) -> float:
        return self.summary.mean or 0.0

    @property
    def global_std_dev(self) -> float:
        return self.summary.std_dev or 0.0

    def distribution(self, points: int) -> list[dict[str, float]]:
        return sample_distribution(self.scores, points)


class ShiftStatisticsService:
    """Service recomputing the cached statistics of every shift of an exam."""

    def __init__(self, db: Session):
        self.db = db

    def _fetch_scores(self, exam_id: int) -> dict[int, list[float]]:
        rows = self.db.execute(
            select(Submission.shift_id, Submission.raw_score).where(Submission.exam_id == exam_id)
        ).all()
        by_shift: dict[int, list[float]] = defaultdict(list)
        for shift_id, raw_score in rows:
            by_shift[shift_id].append(raw_score)
        return by_shift

    def aggregate_exam(self, exam: Exam) -> ExamScoreProfile:
        """
        Recompute statistics and difficulty for all shifts of an exam.

        Changes are flushed, not committed; the caller owns the transaction.

        Returns:
            The exam-wide score profile (global mean, stddev and scores)
        """
        scores_by_shift = self._fetch_scores(exam.id)
        all_scores = [score for scores in scores_by_shift.values() for score in scores]
        profile = ExamScoreProfile(
            exam_id=exam.id,
            summary=summarize_scores(all_scores),
            scores=all_scores,
        )

        shifts = self.db.execute(
            select(Shift).where(Shift.exam_id == exam.id).order_by(Shift.id)
        ).scalars().all()

        now = utcnow()
        for shift in shifts:
            summary = summarize_scores(scores_by_shift.get(shift.id, []))
            shift.candidate_count = summary.count
            shift.avg_raw_score = summary.mean
            shift.median_raw_score = summary.median
            shift.std_dev = summary.std_dev
            shift.max_raw_score = summary.max
            shift.min_raw_score = summary.min

            index = calculate_difficulty_index(
                summary.mean,
                summary.std_dev,
                summary.max,
                exam.total_marks,
                summary.count,
            )
            shift.difficulty_index = index
            shift.difficulty_label = difficulty_label(index).value

            if shift.std_dev:
                shift.normalization_factor = profile.global_std_dev / shift.std_dev
            else:
                shift.normalization_factor = 1.0
            shift.stats_updated_at = now

        self.db.flush()
        logger.info(
            f"Aggregated stats for {len(shifts)} shifts of exam {exam.id} "
            f"({profile.summary.count} submissions)"
        )
        return profile
