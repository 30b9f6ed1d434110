"""Tests for risk aggregation and banding."""

import pytest

from riskwizard.models import RiskLevel
from riskwizard.risk import (
    average_risk,
    calculate_risk,
    clamp_score,
    risk_distribution,
    risk_level,
    weighted_risk,
)


class TestAverageRisk:
    def test_empty_is_zero(self):
        assert average_risk([]) == 0

    def test_mean_of_example_scores(self):
        assert average_risk([4, 6, 8]) == 6.0
        assert risk_level(average_risk([4, 6, 8])) == RiskLevel.MEDIUM

    def test_rounds_to_one_decimal(self):
        assert average_risk([1, 2, 2]) == 1.7
        assert average_risk([7, 8]) == 7.5
        assert average_risk([10, 9, 9]) == 9.3

    @pytest.mark.parametrize("scores", [[1], [10], [1, 10], [3, 3, 4], [10, 10, 10, 1], list(range(1, 11))])
    def test_result_stays_within_score_range(self, scores):
        result = average_risk(scores)
        assert 1 <= result <= 10
        assert round(result, 1) == result


class TestWeightedRisk:
    def test_weighted_mean(self):
        # (2*1 + 8*3) / 4 = 6.5
        assert weighted_risk([2, 8], [1, 3]) == 6.5

    def test_length_mismatch_falls_back_to_mean(self):
        assert weighted_risk([2, 8], [1, 3, 5]) == 5.0

    def test_zero_weights_fall_back_to_mean(self):
        assert weighted_risk([2, 8], [0, 0]) == 5.0

    @pytest.mark.parametrize(
        "scores,weights",
        [([float("inf")], None), ([5, float("nan")], None), ([5, 6], [1, float("inf")]), ([5, 6], [float("nan"), 1])],
    )
    def test_non_finite_input_rejected(self, scores, weights):
        with pytest.raises(ValueError, match="finite"):
            calculate_risk(scores, weights)

    def test_calculate_risk_defaults_to_unweighted(self):
        assert calculate_risk([2, 8]) == 5.0
        assert calculate_risk([2, 8], [1, 3]) == 6.5


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (10, RiskLevel.CRITICAL),
            (9, RiskLevel.CRITICAL),
            (8.9, RiskLevel.HIGH),
            (7, RiskLevel.HIGH),
            (6.9, RiskLevel.MEDIUM),
            (5, RiskLevel.MEDIUM),
            (4.9, RiskLevel.LOW),
            (3, RiskLevel.LOW),
            (2, RiskLevel.MINIMAL),
            (1, RiskLevel.MINIMAL),
            (0, RiskLevel.MINIMAL),
        ],
    )
    def test_bands(self, score, level):
        assert risk_level(score) == level

    def test_level_values(self):
        assert risk_level(9).value == "Critical"
        assert risk_level(1).value == "Minimal"


class TestClampAndDistribution:
    @pytest.mark.parametrize("raw,expected", [(0, 1), (-4, 1), (11, 10), (250, 10), (5, 5), (6.6, 7)])
    def test_clamp(self, raw, expected):
        assert clamp_score(raw) == expected

    def test_clamp_infinities_to_bounds(self):
        assert clamp_score(float("inf")) == 10
        assert clamp_score(float("-inf")) == 1

    def test_clamp_nan_raises(self):
        with pytest.raises(ValueError):
            clamp_score(float("nan"))

    def test_distribution(self):
        assert risk_distribution([9, 7, 6, 5, 4, 1]) == {"high": 2, "medium": 2, "low": 2}
