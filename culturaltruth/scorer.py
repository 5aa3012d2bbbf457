"""
Compliance Score Calculator

Turns bias findings into three regulation-bucket scores, an overall
score, and a risk tier. Separated from detector.py for
single-responsibility.

Score = 100 minus confidence-weighted severity deductions, then a fixed
penalty per regulation bucket that any finding touches. Overall is the
worst bucket. Every term is non-negative, so adding a finding can never
raise the overall score.
"""

from __future__ import annotations

from typing import Iterable

from culturaltruth.environment import EnvironmentConfig, Thresholds
from culturaltruth.types import (
    EU_AI_ACT,
    GDPR,
    SECTION_508,
    BiasFinding,
    ComplianceScore,
)


SEVERITY_WEIGHTS: dict[str, dict[str, float]] = {
    "Hackathon": {"low": 2, "medium": 8, "high": 20, "critical": 35},
    "Production": {"low": 3, "medium": 10, "high": 25, "critical": 45},
}

REGULATION_BUCKETS: dict[str, frozenset[str]] = {
    EU_AI_ACT: frozenset({"EU_AI_ACT"}),
    SECTION_508: frozenset({
        "SECTION_508", "ADA", "REHABILITATION_ACT", "EU_ACCESSIBILITY_ACT",
    }),
    GDPR: frozenset({"GDPR", "FAIR_HOUSING_ACT", "CIVIL_RIGHTS_ACT"}),
}

BUCKET_PENALTIES: dict[str, dict[str, float]] = {
    "Hackathon": {EU_AI_ACT: 15, SECTION_508: 12, GDPR: 18},
    "Production": {EU_AI_ACT: 25, SECTION_508: 20, GDPR: 30},
}


def risk_tier_for(score: float, thresholds: Thresholds) -> str:
    """Lower score, higher risk. Low only at or above the medium cutoff."""
    if score < thresholds.critical:
        return "critical"
    if score < thresholds.high:
        return "high"
    if score < thresholds.medium:
        return "medium"
    return "low"


def calculate_compliance_score(
    findings: Iterable[BiasFinding],
    config: EnvironmentConfig,
) -> ComplianceScore:
    """
    Score findings under the active environment.

    Scoring:
      Deduction per finding = severity weight x confidence
        Hackathon:  low=2, medium=8, high=20, critical=35
        Production: low=3, medium=10, high=25, critical=45
      Base = max(0, 100 - total deduction)
      Bucket penalty if any finding's regulations intersect the bucket
        Hackathon:  EU_AI_ACT=15, SECTION_508=12, GDPR=18
        Production: EU_AI_ACT=25, SECTION_508=20, GDPR=30
      Overall = min(bucket scores)
    """
    weights = SEVERITY_WEIGHTS[config.mode]
    penalties = BUCKET_PENALTIES[config.mode]

    total_deduction = 0.0
    triggered: set[str] = set()
    for finding in findings:
        total_deduction += weights[finding.severity] * finding.confidence
        triggered.update(finding.applicable_regulations)

    base = max(0.0, 100.0 - total_deduction)

    buckets: dict[str, float] = {}
    for bucket, members in REGULATION_BUCKETS.items():
        if triggered & members:
            buckets[bucket] = max(0.0, base - penalties[bucket])
        else:
            buckets[bucket] = base

    overall = min(buckets.values())

    return ComplianceScore(
        eu_ai_act=buckets[EU_AI_ACT],
        section_508=buckets[SECTION_508],
        gdpr=buckets[GDPR],
        overall=overall,
        risk_tier=risk_tier_for(overall, config.thresholds),
        triggered_regulations=tuple(sorted(triggered)),
        base_score=base,
        total_deduction=total_deduction,
    )
