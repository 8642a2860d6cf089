"""Exam model and normalization watermark."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from examrank.core.database import Base, JSONType
from examrank.models.base import IDMixin, TimestampMixin, value_enum


class NormalizationMethod(str, enum.Enum):
    """Normalization method enumeration."""

    Z_SCORE = "z_score"
    RAW = "raw"
    PERCENTILE = "percentile"
    MODIFIED_Z = "modified_z"
    EQUATING = "equating"
    CUSTOM = "custom"


class Exam(Base, IDMixin, TimestampMixin):
    """Competitive exam held across one or more shifts."""

    __tablename__ = "exams"

    # Identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    agency: Mapped[str | None] = mapped_column(String(50), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Marking scheme
    total_marks: Mapped[float] = mapped_column(Float, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    default_positive: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)
    default_negative: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)

    # Normalization settings
    has_normalization: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    normalization_method: Mapped[NormalizationMethod] = mapped_column(
        value_enum(NormalizationMethod, "normalizationmethod"),
        default=NormalizationMethod.Z_SCORE,
        nullable=False,
    )
    normalization_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    selection_ratios: Mapped[dict[str, float] | None] = mapped_column(JSONType, nullable=True)
    re_norm_threshold: Mapped[float | None] = mapped_column(Float, default=5.0, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Watermark of the last completed full normalization.
    # Stamped together, only after a run has fully applied.
    last_normalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    subs_at_last_normalization: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    normalization_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    global_mean_raw: Mapped[float | None] = mapped_column(Float, nullable=True)
    global_std_dev_raw: Mapped[float | None] = mapped_column(Float, nullable=True)
    global_distribution: Mapped[list[dict[str, float]] | None] = mapped_column(
        JSONType,
        nullable=True,
    )

    # Relationships
    shifts: Mapped[list["Shift"]] = relationship(
        "Shift",
        back_populates="exam",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Shift.id",
    )

    __table_args__ = (
        UniqueConstraint("name", "year", "tier", name="uq_exam_name_year_tier"),
    )

    def __repr__(self) -> str:
        return f"<Exam(id={self.id}, name={self.name}, method={self.normalization_method})>"


# Import to avoid circular imports
from examrank.models.shift import Shift
