"""
Risk aggregation helpers.

Scores are integers 1-10. The unweighted mean is what the wizard uses; the
weighted variant is available to callers that supply their own weights.
"""

from __future__ import annotations

import math
from typing import Dict, Optional, Sequence

from .models import RiskLevel

MIN_SCORE = 1
MAX_SCORE = 10
DEFAULT_SCORE = 5

# Lower bound of each band, checked top-down
_BANDS = (
    (9, RiskLevel.CRITICAL),
    (7, RiskLevel.HIGH),
    (5, RiskLevel.MEDIUM),
    (3, RiskLevel.LOW),
)

RISK_LEGEND = (
    {"level": RiskLevel.MINIMAL.value, "range": "1-2"},
    {"level": RiskLevel.LOW.value, "range": "3-4"},
    {"level": RiskLevel.MEDIUM.value, "range": "5-6"},
    {"level": RiskLevel.HIGH.value, "range": "7-8"},
    {"level": RiskLevel.CRITICAL.value, "range": "9-10"},
)


def _require_finite(values: Sequence[float], what: str) -> None:
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"{what} must be finite numbers")


def _round1(value: float) -> float:
    # half-up to one decimal, matching Math.round(x * 10) / 10 for positive scores
    return int(value * 10 + 0.5) / 10


# PUBLIC_INTERFACE
def clamp_score(score: float) -> int:
    """
    Round a raw score to an integer and clamp it into 1..10.

    Infinite input clamps to the nearest bound; NaN has no nearest bound and raises ValueError.
    """
    if math.isnan(score):
        raise ValueError("score must be a number")
    if math.isinf(score):
        return MAX_SCORE if score > 0 else MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, int(round(score))))


# PUBLIC_INTERFACE
def average_risk(scores: Sequence[float]) -> float:
    """Arithmetic mean rounded to one decimal; 0 for no scores."""
    if not scores:
        return 0.0
    _require_finite(scores, "scores")
    return _round1(sum(scores) / len(scores))


# PUBLIC_INTERFACE
def weighted_risk(scores: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted mean sum(score*weight)/sum(weight), rounded to one decimal.

    Falls back to the plain mean when the weight list length differs from the
    score list or the weights sum to zero.
    """
    if not scores:
        return 0.0
    _require_finite(scores, "scores")
    _require_finite(weights, "weights")
    total_weight = sum(weights)
    if len(weights) != len(scores) or total_weight == 0:
        return average_risk(scores)
    return _round1(sum(s * w for s, w in zip(scores, weights)) / total_weight)


# PUBLIC_INTERFACE
def calculate_risk(scores: Sequence[float], weights: Optional[Sequence[float]] = None) -> float:
    """Weighted mean when weights are given, plain mean otherwise."""
    if weights is None:
        return average_risk(scores)
    return weighted_risk(scores, weights)


# PUBLIC_INTERFACE
def risk_level(score: float) -> RiskLevel:
    """Map a score (individual or aggregated) to its risk band."""
    for lower, level in _BANDS:
        if score >= lower:
            return level
    return RiskLevel.MINIMAL


# PUBLIC_INTERFACE
def risk_distribution(scores: Sequence[float]) -> Dict[str, int]:
    """Count high (>=7), medium (5-6) and low (<5) scores."""
    return {
        "high": sum(1 for s in scores if s >= 7),
        "medium": sum(1 for s in scores if 5 <= s < 7),
        "low": sum(1 for s in scores if s < 5),
    }
