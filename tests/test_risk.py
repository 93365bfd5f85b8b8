"""Tests for risk scoring."""

from __future__ import annotations

import pytest

from secudo.risk import RiskLevel, build_risk_matrix, calculate_risk_score, classify_score


class TestCalculateRiskScore:
    @pytest.mark.parametrize(
        ("asset", "severity", "score", "level"),
        [
            (1, 1, 1, RiskLevel.LOW),
            (5, 5, 25, RiskLevel.MEDIUM),
            (8, 7, 56, RiskLevel.HIGH),
            (10, 10, 100, RiskLevel.CRITICAL),
        ],
    )
    def test_reference_points(self, asset, severity, score, level):
        result = calculate_risk_score(asset, severity)
        assert result.score == score
        assert result.level is level

    def test_score_is_clamped(self):
        assert calculate_risk_score(0, 5).score == 1
        assert calculate_risk_score(20, 20).score == 100


class TestClassifyScore:
    def test_boundaries(self):
        assert classify_score(20) is RiskLevel.LOW
        assert classify_score(21) is RiskLevel.MEDIUM
        assert classify_score(50) is RiskLevel.MEDIUM
        assert classify_score(51) is RiskLevel.HIGH
        assert classify_score(80) is RiskLevel.HIGH
        assert classify_score(81) is RiskLevel.CRITICAL


class TestBuildRiskMatrix:
    def test_counts_by_level_and_severity(self):
        matrix = build_risk_matrix([1, 10], [2, 9])
        # (1,2)=2 Low, (10,2)=20 Low, (1,9)=9 Low, (10,9)=90 Critical
        assert matrix == {"Low": {2: 2, 9: 1}, "Critical": {9: 1}}

    def test_empty_inputs(self):
        assert build_risk_matrix([], [5]) == {}
