"""Shift model with cached statistics."""

import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from examrank.core.database import Base
from examrank.models.base import IDMixin, TimestampMixin


class DifficultyLabel(str, enum.Enum):
    """Shift difficulty label."""

    EASY = "Easy"
    MODERATE = "Moderate"
    HARD = "Hard"


class Shift(Base, IDMixin, TimestampMixin):
    """A single sitting (date + slot) of an exam."""

    __tablename__ = "shifts"

    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identity
    shift_code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    date: Mapped[str] = mapped_column(String(20), nullable=False)
    shift_number: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Stats cache, recomputed wholesale by the statistics aggregator
    candidate_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_raw_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    median_raw_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    std_dev: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_raw_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_raw_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Analysis
    difficulty_index: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    difficulty_label: Mapped[str | None] = mapped_column(String(20), nullable=True)
    normalization_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    stats_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    exam: Mapped["Exam"] = relationship("Exam", back_populates="shifts")

    __table_args__ = (
        UniqueConstraint("exam_id", "date", "shift_number", name="uq_shift_exam_date_number"),
    )

    def __repr__(self) -> str:
        return f"<Shift(id={self.id}, code={self.shift_code}, exam_id={self.exam_id})>"


# Import to avoid circular imports
from examrank.models.exam import Exam
