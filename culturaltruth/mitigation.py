"""
Mitigation synthesis — human-facing actions from findings.

Pure function of the finding list. One header per severity group, worst
first, then a single overall recommendation keyed on the worst severity.
"""

from __future__ import annotations

from typing import Sequence

from culturaltruth.types import SEVERITY_ORDER, SEVERITY_RANK, BiasFinding

NO_BIAS_ACTION = "No bias detected - content appears compliant"

_RECOMMENDATIONS = {
    "critical": "RECOMMENDATION: Do not publish without addressing critical issues",
    "high": "RECOMMENDATION: Address high-risk issues before publication",
    "medium": "RECOMMENDATION: Content acceptable with minor improvements",
    "low": "RECOMMENDATION: Content meets compliance standards",
}


def _group_header(severity: str, count: int) -> str:
    if severity == "critical":
        return f"IMMEDIATE ACTION REQUIRED: {count} critical bias issue(s) detected"
    if severity == "high":
        return f"HIGH PRIORITY: Review {count} high-risk bias pattern(s)"
    if severity == "medium":
        return f"MODERATE: {count} improvement opportunities identified"
    return f"SUGGESTIONS: {count} minor optimization(s) available"


def _finding_line(finding: BiasFinding) -> str | None:
    if finding.severity == "critical":
        return (
            f"  -> Replace \"{', '.join(finding.matched_terms)}\" - "
            f"Risk: {', '.join(finding.applicable_regulations)}"
        )
    if finding.severity == "high":
        alternatives = " or ".join(finding.suggested_alternatives[:2])
        return f"  -> Consider: \"{alternatives}\" instead of \"{finding.matched_terms[0]}\""
    return None


def synthesize_mitigation(findings: Sequence[BiasFinding]) -> list[str]:
    if not findings:
        return [NO_BIAS_ACTION]

    actions: list[str] = []
    for severity in SEVERITY_ORDER:
        group = [f for f in findings if f.severity == severity]
        if not group:
            continue
        actions.append(_group_header(severity, len(group)))
        for finding in group:
            line = _finding_line(finding)
            if line:
                actions.append(line)

    worst = max(findings, key=lambda f: SEVERITY_RANK[f.severity]).severity
    actions.append(_RECOMMENDATIONS[worst])
    return actions
