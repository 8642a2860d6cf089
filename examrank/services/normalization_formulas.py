"""
Pluggable normalization formula engine.

Different exam bodies normalize multi-shift scores differently:

- ``z_score``: shift z-score mapped onto the exam-wide mean/stddev
- ``percentile``: rank-in-shift percentile, equipercentile when a global
  distribution is available
- ``modified_z``: z-score mapped onto a fixed target mean/stddev
- ``equating``: equipercentile equating against the exam-wide distribution
- ``raw``: pass-through for single-shift or non-normalized exams
- ``custom``: linear blend of raw and z-scaled scores from exam config

Every formula is a pure function of ``NormalizationParams``; nothing here
touches the database. Methods flagged ``bulk_capable`` can also render their
formula as a SQL expression so the batch job can apply it set-wise.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy.stats import norm

from examrank.core.exceptions import UnknownNormalizationMethodError
from examrank.models.exam import NormalizationMethod

# Clamp for the parametric equating fallback; keeps norm.ppf finite
PARAMETRIC_QUANTILE_BOUNDS = (0.001, 0.999)


@dataclass(frozen=True)
class NormalizationParams:
    """Inputs to a normalization formula for one submission."""

    raw_score: float
    shift_mean: float
    shift_std_dev: float
    global_mean: float
    global_std_dev: float
    max_marks: float
    total_in_shift: int = 1
    rank_in_shift: int = 1
    config: dict[str, Any] | None = None
    global_distribution: Sequence[dict[str, float]] | None = None


def shift_percentile(total_in_shift: int, rank_in_shift: int) -> float:
    """Percentage of the shift the candidate beat (0-100). Requires total > 1."""
    return (total_in_shift - rank_in_shift) / (total_in_shift - 1) * 100.0


def interpolate_distribution(
    target_percentile: float,
    distribution: Sequence[dict[str, float]],
) -> float:
    """
    Score at ``target_percentile`` in a percentile -> score table.

    Linear interpolation between neighbouring points; targets outside the
    table clamp to its first/last score.
    """
    percentiles = np.fromiter((point["percentile"] for point in distribution), dtype=float)
    scores = np.fromiter((point["score"] for point in distribution), dtype=float)
    return float(np.interp(target_percentile, percentiles, scores))


class NormalizationFormula(ABC):
    """Strategy interface: one normalization method."""

    method: NormalizationMethod
    label: str
    bulk_capable: bool = False
    needs_distribution: bool = False

    @abstractmethod
    def normalize(self, params: NormalizationParams) -> float:
        """Normalized score for one submission."""
        pass

    def sql_expression(self, raw_score, shift_mean, shift_std_dev, global_mean: float, global_std_dev: float):
        """SQL expression for shifts with non-zero spread (bulk-capable methods only)."""
        raise NotImplementedError(f"{self.method.value} has no set-based form")


class ZScoreFormula(NormalizationFormula):
    """(raw - shift_mean) / shift_std * global_std + global_mean"""

    method = NormalizationMethod.Z_SCORE
    label = "Z-Score (SSC Standard)"
    bulk_capable = True

    def normalize(self, params: NormalizationParams) -> float:
        if not params.shift_std_dev:
            # No spread in the shift: nothing to scale against
            return params.raw_score
        z = (params.raw_score - params.shift_mean) / params.shift_std_dev
        return z * params.global_std_dev + params.global_mean

    def sql_expression(self, raw_score, shift_mean, shift_std_dev, global_mean: float, global_std_dev: float):
        return (raw_score - shift_mean) / shift_std_dev * global_std_dev + global_mean


class RawFormula(NormalizationFormula):
    method = NormalizationMethod.RAW
    label = "No Normalization"
    bulk_capable = True

    def normalize(self, params: NormalizationParams) -> float:
        return params.raw_score

    def sql_expression(self, raw_score, shift_mean, shift_std_dev, global_mean: float, global_std_dev: float):
        return raw_score


class PercentileFormula(NormalizationFormula):
    """
    Rank-in-shift percentile.

    With a global distribution this is an equipercentile mapping; without one
    the percentile is scaled onto the exam's maximum marks.
    """

    method = NormalizationMethod.PERCENTILE
    label = "Percentile-Based (RRB)"
    needs_distribution = True

    def normalize(self, params: NormalizationParams) -> float:
        if params.total_in_shift <= 1:
            return params.raw_score
        pct = shift_percentile(params.total_in_shift, params.rank_in_shift)
        if params.global_distribution:
            return interpolate_distribution(pct, params.global_distribution)
        return pct / 100.0 * params.max_marks


class ModifiedZFormula(NormalizationFormula):
    """z-score mapped onto a target mean/stddev (config targetMean / targetStdDev)."""

    method = NormalizationMethod.MODIFIED_Z
    label = "Modified Z-Score (IBPS)"

    def normalize(self, params: NormalizationParams) -> float:
        if not params.shift_std_dev:
            return params.raw_score
        config = params.config or {}
        target_mean = config.get("targetMean", 50.0)
        target_std_dev = config.get("targetStdDev", 15.0)
        z = (params.raw_score - params.shift_mean) / params.shift_std_dev
        return z * target_std_dev + target_mean


class EquatingFormula(NormalizationFormula):
    """
    Equipercentile equating.

    A candidate who beat X% of their shift receives the score at the X-th
    percentile of the exam-wide distribution. Without a distribution table the
    percentile is mapped through the normal quantile function instead.
    """

    method = NormalizationMethod.EQUATING
    label = "Equipercentile (NTA)"
    needs_distribution = True

    def normalize(self, params: NormalizationParams) -> float:
        if params.total_in_shift <= 1:
            return params.raw_score
        pct = shift_percentile(params.total_in_shift, params.rank_in_shift)
        if params.global_distribution:
            return interpolate_distribution(pct, params.global_distribution)

        low, high = PARAMETRIC_QUANTILE_BOUNDS
        quantile = min(high, max(low, pct / 100.0))
        return float(norm.ppf(quantile)) * params.global_std_dev + params.global_mean


class CustomFormula(NormalizationFormula):
    """
    rawWeight * raw + zWeight * (z * global_std + global_mean) + offset

    Weights come from ``config.customParams``; the result is clamped to the
    optional ``minNormalizedScore`` / ``maxNormalizedScore`` bounds.
    """

    method = NormalizationMethod.CUSTOM
    label = "Custom Formula"

    def normalize(self, params: NormalizationParams) -> float:
        config = params.config or {}
        custom_params = config.get("customParams")
        if not custom_params:
            return params.raw_score

        raw_weight = custom_params.get("rawWeight", 0.0)
        z_weight = custom_params.get("zWeight", 1.0)
        offset = custom_params.get("offset", 0.0)

        z = 0.0
        if params.shift_std_dev and params.shift_std_dev > 0:
            z = (params.raw_score - params.shift_mean) / params.shift_std_dev

        result = raw_weight * params.raw_score + z_weight * (z * params.global_std_dev + params.global_mean) + offset

        max_score = config.get("maxNormalizedScore")
        min_score = config.get("minNormalizedScore")
        if max_score is not None:
            result = min(max_score, result)
        if min_score is not None:
            result = max(min_score, result)
        return result


FORMULAS: dict[NormalizationMethod, NormalizationFormula] = {
    formula.method: formula
    for formula in (
        ZScoreFormula(),
        RawFormula(),
        PercentileFormula(),
        ModifiedZFormula(),
        EquatingFormula(),
        CustomFormula(),
    )
}


def get_formula(method: NormalizationMethod | str) -> NormalizationFormula:
    """Look up the formula for a method tag."""
    try:
        key = NormalizationMethod(method)
    except ValueError:
        raise UnknownNormalizationMethodError(str(method))
    formula = FORMULAS.get(key)
    if formula is None:
        raise UnknownNormalizationMethodError(key.value)
    return formula


def normalize(method: NormalizationMethod | str, params: NormalizationParams) -> float:
    """Normalized score for one submission. Negative results are legal."""
    return get_formula(method).normalize(params)


def available_methods() -> list[dict[str, Any]]:
    """Methods for selection lists."""
    return [
        {
            "value": formula.method.value,
            "label": formula.label,
            "bulk_capable": formula.bulk_capable,
            "needs_distribution": formula.needs_distribution,
        }
        for formula in FORMULAS.values()
    ]
