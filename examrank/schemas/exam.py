"""Exam pipeline schemas."""

from datetime import datetime
from typing import Any

from examrank.models.cutoff import ConfidenceLevel
from examrank.schemas.common import BaseSchema


class ShiftStatsResponse(BaseSchema):
    """Shift with its cached statistics."""

    id: int
    shift_code: str
    date: str
    shift_number: int
    time_slot: str | None
    candidate_count: int
    avg_raw_score: float | None
    median_raw_score: float | None
    std_dev: float | None
    max_raw_score: float | None
    min_raw_score: float | None
    difficulty_index: float | None
    difficulty_label: str | None
    normalization_factor: float | None
    stats_updated_at: datetime | None


class CutoffResponse(BaseSchema):
    """Category cutoff response schema."""

    id: int
    exam_id: int
    category: str
    post_code: str
    post_name: str | None
    expected_cutoff: float
    safe_score: float | None
    minimum_score: float | None
    confidence_level: ConfidenceLevel | None
    prediction_basis: dict[str, Any] | None
    is_published: bool
    updated_at: datetime


class ReadinessResponse(BaseSchema):
    """Pipeline readiness of an exam."""

    exam_id: int
    total_submissions: int
    normalized_submissions: int
    ranked_submissions: int
    normalization_done: bool
    ranks_done: bool
    cutoffs_ready: bool
    last_normalized_at: datetime | None
