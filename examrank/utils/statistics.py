"""Utility functions for calculating score statistics."""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ScoreSummary:
    """Descriptive statistics for a set of raw scores."""

    count: int
    mean: float | None
    std_dev: float | None
    median: float | None
    max: float | None
    min: float | None


def summarize_scores(scores: Sequence[float]) -> ScoreSummary:
    """
    Calculate descriptive statistics for a set of scores.

    Standard deviation is the sample deviation (ddof=1), matching SQL STDDEV.
    A single score has a deviation of 0.0; an empty set has no statistics.
    """
    if len(scores) == 0:
        return ScoreSummary(count=0, mean=None, std_dev=None, median=None, max=None, min=None)

    data = np.asarray(scores, dtype=float)
    std_dev = float(np.std(data, ddof=1)) if data.size > 1 else 0.0
    return ScoreSummary(
        count=int(data.size),
        mean=float(np.mean(data)),
        std_dev=std_dev,
        median=float(np.median(data)),
        max=float(np.max(data)),
        min=float(np.min(data)),
    )


def percentile_cont(scores: Sequence[float], fraction: float) -> float | None:
    """
    Continuous percentile with linear interpolation (SQL PERCENTILE_CONT).

    Args:
        scores: Values to take the percentile of (any order)
        fraction: Percentile as a fraction in [0, 1]

    Returns:
        The interpolated value, or None for an empty input
    """
    if len(scores) == 0:
        return None
    fraction = min(1.0, max(0.0, fraction))
    return float(np.percentile(np.asarray(scores, dtype=float), fraction * 100.0, method="linear"))


def sample_distribution(scores: Sequence[float], points: int) -> list[dict[str, float]]:
    """
    Sample a percentile -> score table from a score set.

    The table has ``points`` evenly spaced percentiles from 0 to 100 inclusive,
    each resolved with linear interpolation over the sorted scores.
    """
    if len(scores) == 0:
        return []
    data = np.sort(np.asarray(scores, dtype=float))
    percentiles = np.linspace(0.0, 100.0, num=points)
    values = np.percentile(data, percentiles, method="linear")
    return [
        {"percentile": round(float(p), 6), "score": float(v)}
        for p, v in zip(percentiles, values)
    ]
