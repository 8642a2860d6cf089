"""Rank and percentile calculation using SQL window functions."""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from examrank.core.config import settings
from examrank.models.submission import Submission
from examrank.utils.batching import chunked

logger = logging.getLogger(__name__)


class RankingService:
    """
    Service computing overall, category, shift and state ranks for an exam.

    Every partition uses the same total ordering: normalized score desc,
    raw score desc, date of birth desc (younger first). Equal triplets share
    a rank (competition ranking). Percentiles are PERCENT_RANK over normalized
    score ascending, scaled to 0-100.

    Ranks are always recomputed over the whole current submission set, so
    running this twice without new data yields identical values.
    """

    def __init__(self, db: Session, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size or settings.NORMALIZATION_BATCH_SIZE

    def _rank_query(self, exam_id: int):
        rank_order = (
            Submission.normalized_score.desc().nulls_last(),
            Submission.raw_score.desc(),
            Submission.dob.desc().nulls_last(),
        )
        percentile_order = Submission.normalized_score.asc().nulls_first()

        def rank_over(*partition):
            return func.rank().over(partition_by=partition or None, order_by=rank_order)

        def percentile_over(*partition):
            return func.percent_rank().over(partition_by=partition or None, order_by=percentile_order) * 100

        return select(
            Submission.id,
            Submission.state,
            rank_over().label("overall_rank"),
            rank_over(Submission.category).label("category_rank"),
            rank_over(Submission.shift_id).label("shift_rank"),
            rank_over(Submission.state).label("state_rank"),
            percentile_over().label("overall_percentile"),
            percentile_over(Submission.category).label("category_percentile"),
            percentile_over(Submission.shift_id).label("shift_percentile"),
            percentile_over(Submission.state).label("state_percentile"),
        ).where(Submission.exam_id == exam_id)

    def recalculate_ranks(self, exam_id: int) -> int:
        """
        Recompute all rank and percentile columns for an exam.

        Written in batches and committed once, so readers never observe a
        partially ranked exam.

        Returns:
            Number of submissions ranked
        """
        rows = self.db.execute(self._rank_query(exam_id)).all()

        updates = []
        for row in rows:
            has_state = row.state is not None
            updates.append(
                {
                    "id": row.id,
                    "overall_rank": row.overall_rank,
                    "category_rank": row.category_rank,
                    "shift_rank": row.shift_rank,
                    "state_rank": row.state_rank if has_state else None,
                    "overall_percentile": float(row.overall_percentile),
                    "category_percentile": float(row.category_percentile),
                    "shift_percentile": float(row.shift_percentile),
                    "state_percentile": float(row.state_percentile) if has_state else None,
                }
            )

        for batch in chunked(updates, self.batch_size):
            self.db.execute(update(Submission), list(batch))
        self.db.commit()
        self.db.expire_all()

        logger.info(f"Ranked {len(updates)} submissions of exam {exam_id}")
        return len(updates)

    def count_unnormalized(self, exam_id: int) -> tuple[int, int]:
        """Return (total, unnormalized) submission counts for an exam."""
        total, normalized = self.db.execute(
            select(func.count(Submission.id), func.count(Submission.normalized_score)).where(
                Submission.exam_id == exam_id
            )
        ).one()
        return total, total - normalized
