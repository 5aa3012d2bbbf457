"""
Audit Log — bounded, hash-chained, in-memory.

Every analysis (completed or failed) and every realtime signal appends
exactly one AuditRecord. Records are immutable. Each one stores the
SHA-256 hash of its predecessor, so editing any retained record breaks
the chain and verify_chain() reports it.

The log is a fixed-capacity deque: once full, the oldest record drops
off. Nothing is persisted; history lives for the process lifetime.

generate_report() is a pure function of a snapshot of the log.
"""

from __future__ import annotations

import hashlib
import json
from collections import Counter, deque
from dataclasses import replace
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from culturaltruth.errors import ValidationError
from culturaltruth.types import SEVERITY_RANK, AuditRecord

GENESIS_HASH = "0" * 64
ANALYSIS_EVENTS = ("analysis", "analysis_error")
TOP_ISSUES_LIMIT = 10
MAX_REPORT_DAYS = 365


def hash_content(content: str) -> str:
    return hashlib.sha256(content.encode()).hexdigest()


def _record_hash(record: AuditRecord, prev_hash: str) -> str:
    data = record.to_dict()
    data.pop("record_hash", None)
    data["prev_hash"] = prev_hash
    chain_input = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(chain_input.encode()).hexdigest()


def _parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class AuditLog:
    """Append-only bounded audit log."""

    def __init__(self, max_records: int = 1000):
        if max_records < 1:
            raise ValueError("max_records must be at least 1")
        self._records: deque[AuditRecord] = deque(maxlen=max_records)
        self._last_hash = GENESIS_HASH
        self._total_appended = 0

    @property
    def max_records(self) -> int:
        return self._records.maxlen or 0

    def append(self, record: AuditRecord) -> AuditRecord:
        """Chain and store a record. Returns the stored (hashed) record."""
        prev_hash = self._last_hash
        chained = replace(
            record,
            prev_hash=prev_hash,
            record_hash=_record_hash(record, prev_hash),
        )
        self._records.append(chained)
        self._last_hash = chained.record_hash
        self._total_appended += 1
        return chained

    def recent(self, limit: int = 100, event_type: Optional[str] = None) -> list[AuditRecord]:
        """Most recent records, oldest first."""
        records = [
            r for r in self._records
            if event_type is None or r.event_type == event_type
        ]
        return records[-limit:] if limit > 0 else []

    def snapshot(self) -> tuple[AuditRecord, ...]:
        return tuple(self._records)

    def verify_chain(self) -> dict:
        """Recompute hashes over the retained window."""
        records = self.snapshot()
        broken = []
        for i, record in enumerate(records):
            computed = _record_hash(record, record.prev_hash)
            if computed != record.record_hash:
                broken.append({
                    "session_id": record.session_id,
                    "issue": "hash_mismatch",
                    "expected": computed,
                    "stored": record.record_hash,
                })
            if i > 0 and record.prev_hash != records[i - 1].record_hash:
                broken.append({
                    "session_id": record.session_id,
                    "issue": "chain_break",
                    "expected_prev": records[i - 1].record_hash,
                    "stored_prev": record.prev_hash,
                })
        return {
            "verified": len(broken) == 0,
            "entries_checked": len(records),
            "broken_links": broken,
        }

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def total_appended(self) -> int:
        return self._total_appended

    def __len__(self) -> int:
        return len(self._records)

    def generate_report(
        self, days_back: int = 7, now: Optional[datetime] = None,
    ) -> dict:
        return generate_report(self.snapshot(), days_back=days_back, now=now)


# ============================================================
# REPORTING
# ============================================================

def generate_report(
    records: tuple[AuditRecord, ...] | list[AuditRecord],
    days_back: int = 7,
    now: Optional[datetime] = None,
) -> dict:
    """
    Compliance report over analyses newer than now - days_back.

    Signals are not analyses and are excluded. days_back must lie in
    1..MAX_REPORT_DAYS.
    """
    if (
        not isinstance(days_back, int) or isinstance(days_back, bool)
        or not 1 <= days_back <= MAX_REPORT_DAYS
    ):
        raise ValidationError(
            f"days_back must be an integer between 1 and {MAX_REPORT_DAYS}."
        )
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days_back)

    window = [
        r for r in records
        if r.event_type in ANALYSIS_EVENTS
        and cutoff < _parse_timestamp(r.timestamp) <= now
    ]

    total = len(window)
    average = (
        sum(r.compliance_score.overall for r in window) / total if total else 0.0
    )

    risk_distribution = dict(Counter(r.compliance_score.risk_tier for r in window))
    top_issues = _top_issues(window)

    return {
        "period": {
            "start": cutoff.isoformat(),
            "end": now.isoformat(),
            "days": days_back,
        },
        "total_analyses": total,
        "average_compliance_score": round(average, 2),
        "risk_distribution": risk_distribution,
        "trends": _daily_trends(window, cutoff, now),
        "top_issues": top_issues,
        "recommendations": _recommendations(window, top_issues, average),
    }


def _average_severity(severities: list[str]) -> str:
    avg = sum(SEVERITY_RANK[s] for s in severities) / len(severities)
    if avg >= 3.5:
        return "critical"
    if avg >= 2.5:
        return "high"
    if avg >= 1.5:
        return "medium"
    return "low"


def _top_issues(window: list[AuditRecord]) -> list[dict]:
    severities: dict[str, list[str]] = {}
    regulations: dict[str, dict[str, None]] = {}
    for record in window:
        for finding in record.findings:
            severities.setdefault(finding.category, []).append(finding.severity)
            regs = regulations.setdefault(finding.category, {})
            for reg in finding.applicable_regulations:
                regs[reg] = None

    issues = [
        {
            "category": category,
            "occurrences": len(sevs),
            "average_severity": _average_severity(sevs),
            "regulations": list(regulations[category]),
        }
        for category, sevs in severities.items()
    ]
    issues.sort(key=lambda i: i["occurrences"], reverse=True)
    return issues[:TOP_ISSUES_LIMIT]


def _daily_trends(
    window: list[AuditRecord], cutoff: datetime, now: datetime,
) -> list[dict]:
    """One row per UTC calendar day the window touches, oldest first, zero-filled."""
    by_day: dict[str, list[AuditRecord]] = {}
    for record in window:
        day = _parse_timestamp(record.timestamp).astimezone(timezone.utc).date().isoformat()
        by_day.setdefault(day, []).append(record)

    start = cutoff.astimezone(timezone.utc)
    first_day = start.date()
    # The window excludes the cutoff instant itself
    if start.time() == time.min:
        first_day += timedelta(days=1)
    today = now.astimezone(timezone.utc).date()

    trends = []
    for offset in range((today - first_day).days + 1):
        day = (first_day + timedelta(days=offset)).isoformat()
        day_records = by_day.get(day, [])
        average = (
            sum(r.compliance_score.overall for r in day_records) / len(day_records)
            if day_records else 0.0
        )
        trends.append({
            "date": day,
            "average_score": round(average, 2),
            "high_risk_count": sum(
                1 for r in day_records
                if r.compliance_score.risk_tier in ("high", "critical")
            ),
        })
    return trends


def _recommendations(
    window: list[AuditRecord], top_issues: list[dict], average: float,
) -> list[str]:
    if not window:
        return ["NO DATA: No analyses recorded in this period."]

    recommendations = []
    if average < 50:
        recommendations.append(
            "CRITICAL: Average compliance score is below 50%. "
            "Immediate review of content processes required."
        )
    elif average < 75:
        recommendations.append(
            "WARNING: Compliance score indicates room for improvement in bias prevention."
        )

    if top_issues:
        top = top_issues[0]
        recommendations.append(
            f"FOCUS AREA: \"{top['category']}\" bias detected in "
            f"{top['occurrences']} instances. Consider additional training."
        )

    critical = sum(1 for r in window if r.compliance_score.risk_tier == "critical")
    if critical:
        recommendations.append(
            f"URGENT: {critical} critical compliance violations require immediate attention."
        )

    regulation_counts = Counter(
        reg for r in window for reg in r.compliance_score.triggered_regulations
    )
    if regulation_counts:
        regulation, count = regulation_counts.most_common(1)[0]
        if count > 5:
            recommendations.append(
                f"COMPLIANCE: Most triggered regulation is {regulation} "
                f"({count} times). Review policies."
            )

    if not recommendations:
        recommendations.append(
            "EXCELLENT: Compliance metrics are within acceptable ranges. "
            "Continue current practices."
        )
    return recommendations
