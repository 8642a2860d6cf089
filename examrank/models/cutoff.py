"""Cutoff prediction model."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from examrank.core.database import Base, JSONType
from examrank.models.base import IDMixin, TimestampMixin, value_enum


class ConfidenceLevel(str, enum.Enum):
    """Confidence of a cutoff prediction."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


PREDICTION_POST_CODE = "PREDICTION"


class Cutoff(Base, IDMixin, TimestampMixin):
    """Category-wise cutoff for an exam (one row per post code)."""

    __tablename__ = "cutoffs"

    exam_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(10), nullable=False)
    post_code: Mapped[str] = mapped_column(String(50), nullable=False)
    post_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Predictions
    expected_cutoff: Mapped[float] = mapped_column(Float, nullable=False)
    safe_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    minimum_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    confidence_level: Mapped[ConfidenceLevel | None] = mapped_column(
        value_enum(ConfidenceLevel, "confidencelevel"),
        nullable=True,
    )
    prediction_basis: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Publishing
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("exam_id", "category", "post_code", name="uq_cutoff_exam_category_post"),
    )

    def __repr__(self) -> str:
        return f"<Cutoff(exam_id={self.exam_id}, category={self.category}, cutoff={self.expected_cutoff})>"
