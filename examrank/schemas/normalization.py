"""Normalization and incremental re-evaluation schemas."""

from datetime import datetime

from pydantic import Field

from examrank.schemas.common import BaseSchema


class MethodOption(BaseSchema):
    """Selectable normalization method."""

    value: str
    label: str
    bulk_capable: bool
    needs_distribution: bool


class SignificanceResponse(BaseSchema):
    """Growth in submissions since the last full normalization."""

    is_significant: bool
    new_count: int
    total_count: int
    percent_new: float
    threshold: float


class ReNormalizationStatusResponse(BaseSchema):
    """Re-normalization status of one exam."""

    exam_id: int
    exam_name: str
    last_normalized_at: datetime | None
    normalization_version: int
    significance: SignificanceResponse
    recommendation: str
    warnings: list[str] = []


class ThresholdUpdate(BaseSchema):
    """Re-normalization threshold update."""

    exam_id: int = Field(..., gt=0)
    threshold: float = Field(..., description="Percent of new submissions, 0-100")


class ThresholdResponse(BaseSchema):
    exam_id: int
    threshold: float


class ForceNormalizationRequest(BaseSchema):
    """Queue a full normalization run for an exam."""

    exam_id: int = Field(..., gt=0)


class ReevaluateRequest(BaseSchema):
    """Optional overrides for re-evaluating a stored submission."""

    raw_score: float | None = None


class IncrementalResultResponse(BaseSchema):
    """Outcome of incremental re-evaluation for one submission."""

    submission_id: int
    normalized_score: float | None
    ranks_recalculated: bool
    cutoffs_updated: bool
    significance: SignificanceResponse
