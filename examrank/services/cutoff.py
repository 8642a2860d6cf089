"""Category-wise cutoff prediction."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.core.database import dialect_insert
from examrank.models.base import utcnow
from examrank.models.cutoff import PREDICTION_POST_CODE, ConfidenceLevel, Cutoff
from examrank.models.exam import Exam
from examrank.models.submission import Submission
from examrank.utils.statistics import percentile_cont

logger = logging.getLogger(__name__)

PREDICTION_POST_NAME = "Generated Prediction"
METHODOLOGY = "percentile_distribution"

# Source factor appended to prediction_basis
SOURCE_BATCH = "batch_processing"
SOURCE_INCREMENTAL = "incremental_update"


def selection_ratios_for(exam: Exam) -> dict[str, float]:
    """Default selection ratios with the exam's overrides applied."""
    ratios = dict(settings.SELECTION_RATIOS)
    if exam.selection_ratios:
        ratios.update(exam.selection_ratios)
    return ratios


def confidence_for(data_points: int) -> ConfidenceLevel:
    if data_points > settings.HIGH_CONFIDENCE_MIN_POINTS:
        return ConfidenceLevel.HIGH
    return ConfidenceLevel.MEDIUM


@dataclass
class CutoffPrediction:
    category: str
    expected_cutoff: float
    safe_score: float
    minimum_score: float
    confidence_level: ConfidenceLevel
    data_points: int
    selection_ratio: float


@dataclass
class CutoffPredictionResult:
    """Outcome of predicting cutoffs for one exam."""

    exam_id: int
    total: int = 0
    normalized: int = 0
    skipped_reason: str | None = None
    predictions: list[CutoffPrediction] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def normalized_ratio(self) -> float:
        return self.normalized / self.total if self.total else 0.0


class CutoffPredictor:
    """
    Service predicting category cutoffs from the normalized score distribution.

    For each category the expected cutoff is the (1 - ratio) percentile of
    normalized scores, where ratio is the share of the category expected to
    be selected. Exams that are not sufficiently normalized are skipped.
    """

    def __init__(self, db: Session):
        self.db = db

    def normalization_counts(self, exam_id: int) -> tuple[int, int]:
        """Return (total, normalized) submission counts for an exam."""
        total, normalized = self.db.execute(
            select(func.count(Submission.id), func.count(Submission.normalized_score)).where(
                Submission.exam_id == exam_id
            )
        ).one()
        return total, normalized

    def predict_exam(self, exam: Exam, source: str = SOURCE_BATCH) -> CutoffPredictionResult:
        """Predict and upsert cutoffs for every category present in the exam."""
        total, normalized = self.normalization_counts(exam.id)
        result = CutoffPredictionResult(exam_id=exam.id, total=total, normalized=normalized)

        if total == 0:
            result.skipped_reason = "No submissions"
        elif normalized / total < settings.CUTOFF_NORMALIZED_RATIO:
            result.skipped_reason = (
                f"Normalization incomplete ({normalized / total * 100:.1f}% normalized, "
                f"{settings.CUTOFF_NORMALIZED_RATIO * 100:.0f}% required)"
            )
        if result.skipped:
            logger.warning(f"Skipping cutoff prediction for exam {exam.id}: {result.skipped_reason}")
            return result

        rows = self.db.execute(
            select(Submission.category, Submission.normalized_score).where(
                Submission.exam_id == exam.id,
                Submission.normalized_score.is_not(None),
            )
        ).all()
        scores_by_category: dict[str, list[float]] = defaultdict(list)
        for category, score in rows:
            scores_by_category[category].append(score)

        ratios = selection_ratios_for(exam)
        for category in sorted(scores_by_category):
            scores = scores_by_category[category]
            ratio = ratios.get(category, settings.DEFAULT_SELECTION_RATIO)
            expected = percentile_cont(scores, 1 - ratio)
            if expected is None:
                continue
            result.predictions.append(
                CutoffPrediction(
                    category=category,
                    expected_cutoff=expected,
                    safe_score=expected + settings.CUTOFF_MARGIN,
                    minimum_score=expected - settings.CUTOFF_MARGIN,
                    confidence_level=confidence_for(len(scores)),
                    data_points=len(scores),
                    selection_ratio=ratio,
                )
            )

        self._upsert(exam.id, result.predictions, source)
        logger.info(f"Predicted cutoffs for {len(result.predictions)} categories of exam {exam.id}")
        return result

    def _upsert(self, exam_id: int, predictions: list[CutoffPrediction], source: str) -> None:
        if not predictions:
            return

        values: list[dict[str, Any]] = [
            {
                "exam_id": exam_id,
                "category": prediction.category,
                "post_code": PREDICTION_POST_CODE,
                "post_name": PREDICTION_POST_NAME,
                "expected_cutoff": prediction.expected_cutoff,
                "safe_score": prediction.safe_score,
                "minimum_score": prediction.minimum_score,
                "confidence_level": prediction.confidence_level,
                "prediction_basis": {
                    "dataPoints": prediction.data_points,
                    "methodology": METHODOLOGY,
                    "factors": ["normalized_scores", "category_ratio", source],
                    "selectionRatio": prediction.selection_ratio,
                    "percentile": round(1 - prediction.selection_ratio, 6),
                },
            }
            for prediction in predictions
        ]

        stmt = dialect_insert(self.db, Cutoff).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["exam_id", "category", "post_code"],
            set_={
                "expected_cutoff": stmt.excluded.expected_cutoff,
                "safe_score": stmt.excluded.safe_score,
                "minimum_score": stmt.excluded.minimum_score,
                "confidence_level": stmt.excluded.confidence_level,
                "prediction_basis": stmt.excluded.prediction_basis,
                "updated_at": utcnow(),
            },
        )
        self.db.execute(stmt)
        self.db.commit()
