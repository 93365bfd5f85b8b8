"""Risk scoring: asset criticality x finding severity."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RiskLevel(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


#: Inclusive lower bounds, checked from the highest level down.
LEVEL_THRESHOLDS: list[tuple[int, RiskLevel]] = [
    (81, RiskLevel.CRITICAL),
    (51, RiskLevel.HIGH),
    (21, RiskLevel.MEDIUM),
]

MIN_SCORE = 1
MAX_SCORE = 100


@dataclass(frozen=True)
class RiskScore:
    score: int
    level: RiskLevel


def classify_score(score: int) -> RiskLevel:
    for lower_bound, level in LEVEL_THRESHOLDS:
        if score >= lower_bound:
            return level
    return RiskLevel.LOW


def calculate_risk_score(asset_value: int, finding_severity: int) -> RiskScore:
    """Score a finding against an asset.

    Both ratings are 1-10; the score is their product clamped to 1-100.
    """
    score = min(MAX_SCORE, max(MIN_SCORE, asset_value * finding_severity))
    return RiskScore(score=score, level=classify_score(score))


def build_risk_matrix(
    asset_values: list[int], finding_severities: list[int]
) -> dict[str, dict[int, int]]:
    """Count every asset/finding pairing by risk level, then by finding severity."""
    matrix: dict[str, dict[int, int]] = {}
    for severity in finding_severities:
        for value in asset_values:
            level = calculate_risk_score(value, severity).level
            row = matrix.setdefault(level.value, {})
            row[severity] = row.get(severity, 0) + 1
    return matrix
