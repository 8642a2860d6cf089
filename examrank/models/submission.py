"""Candidate submission model."""

from typing import Any

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from examrank.core.database import Base, JSONType
from examrank.models.base import IDMixin, TimestampMixin


class Submission(Base, IDMixin, TimestampMixin):
    """
    One candidate's scored response sheet.

    Rank and percentile columns describe the submission's position within the
    exam snapshot at the time ranks were last computed.
    """

    __tablename__ = "submissions"

    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shift_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Candidate identity
    roll_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dob: Mapped[str | None] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD

    # Demographics
    category: Mapped[str] = mapped_column(String(10), nullable=False)
    gender: Mapped[str] = mapped_column(String(1), nullable=False)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Parser output
    section_performance: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Scoring
    raw_score: Mapped[float] = mapped_column(Float, nullable=False)
    normalized_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Ranks
    overall_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shift_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    state_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Percentiles (0-100)
    overall_percentile: Mapped[float | None] = mapped_column(Float, nullable=True)
    category_percentile: Mapped[float | None] = mapped_column(Float, nullable=True)
    shift_percentile: Mapped[float | None] = mapped_column(Float, nullable=True)
    state_percentile: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("roll_number", "exam_id", name="uq_submission_roll_exam"),
        Index("ix_submission_exam_shift", "exam_id", "shift_id"),
        Index("ix_submission_exam_normalized", "exam_id", "normalized_score"),
        Index("ix_submission_exam_category", "exam_id", "category"),
    )

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, roll={self.roll_number}, exam_id={self.exam_id})>"
