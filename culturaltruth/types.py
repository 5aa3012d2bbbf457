"""
Core data types shared across the engine.

Records produced per analysis (findings, scores, audit records) are
frozen: once built they are only read.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


SEVERITIES = ("low", "medium", "high", "critical")
SEVERITY_RANK = {"low": 1, "medium": 2, "high": 3, "critical": 4}
# Reporting order: worst first
SEVERITY_ORDER = ("critical", "high", "medium", "low")

RISK_TIERS = ("low", "medium", "high", "critical")
DETECTION_LEVELS = ("strict", "moderate", "lenient")

EU_AI_ACT = "EU_AI_ACT"
SECTION_508 = "SECTION_508"
GDPR = "GDPR"


@dataclass(frozen=True)
class BiasFinding:
    """One bias rule that matched the analyzed text."""
    rule_id: str
    category: str                       # e.g., "age_discriminatory"
    severity: str                       # "low" | "medium" | "high" | "critical"
    matched_terms: tuple[str, ...]      # lower-cased, in match order
    suggested_alternatives: tuple[str, ...]
    applicable_regulations: tuple[str, ...]
    confidence: float                   # 0.0 to 1.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ComplianceScore:
    """Per-regulation and overall compliance for one analysis."""
    eu_ai_act: float
    section_508: float
    gdpr: float
    overall: float
    risk_tier: str
    triggered_regulations: tuple[str, ...] = ()
    base_score: float = 100.0
    total_deduction: float = 0.0

    @property
    def per_regulation(self) -> dict[str, float]:
        return {
            EU_AI_ACT: self.eu_ai_act,
            SECTION_508: self.section_508,
            GDPR: self.gdpr,
        }

    def to_dict(self) -> dict:
        data = asdict(self)
        data["per_regulation"] = self.per_regulation
        return data

    @classmethod
    def degraded(cls, tag: str) -> "ComplianceScore":
        """Zeroed score used when an analysis could not complete."""
        return cls(
            eu_ai_act=0.0,
            section_508=0.0,
            gdpr=0.0,
            overall=0.0,
            risk_tier="critical",
            triggered_regulations=(tag,),
            base_score=0.0,
            total_deduction=0.0,
        )


@dataclass(frozen=True)
class CulturalEntity:
    """A Qloo entity after allow-list sanitization."""
    name: str
    entity_id: str
    type: str
    subtype: Optional[str] = None
    properties: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "CulturalEntity":
        """Independent copy. Callers never share the properties dict."""
        return CulturalEntity(
            name=self.name,
            entity_id=self.entity_id,
            type=self.type,
            subtype=self.subtype,
            properties=dict(self.properties),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DemographicAnalysis:
    demographic: str
    entities: tuple[CulturalEntity, ...]
    confidence: float
    cultural_relevance: float

    def to_dict(self) -> dict:
        return {
            "demographic": self.demographic,
            "entities": [e.to_dict() for e in self.entities],
            "confidence": self.confidence,
            "cultural_relevance": self.cultural_relevance,
        }


@dataclass(frozen=True)
class AuditRecord:
    """Immutable log entry for one analysis (or signal)."""
    timestamp: str                      # ISO-8601, UTC
    session_id: str
    content_digest: str                 # SHA-256 of the full content
    truncated_content: str
    findings: tuple[BiasFinding, ...]
    referenced_entity_ids: tuple[str, ...]
    compliance_score: ComplianceScore
    mitigation_actions: tuple[str, ...]
    elapsed_ms: float
    external_call_count: int
    cache_hit_count: int
    user_id: Optional[str] = None
    event_type: str = "analysis"        # "analysis" | "analysis_error" | "signal"
    signal: Optional[dict] = None       # value, location, metadata of a signal
    prev_hash: str = ""
    record_hash: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["compliance_score"] = self.compliance_score.to_dict()
        return data


@dataclass(frozen=True)
class AnalysisResult:
    session_id: str
    findings: tuple[BiasFinding, ...]
    compliance_score: ComplianceScore
    cultural_entities: tuple[CulturalEntity, ...]
    mitigation_actions: tuple[str, ...]
    audit_record: AuditRecord
    demographics: Optional[tuple[DemographicAnalysis, ...]] = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "findings": [f.to_dict() for f in self.findings],
            "compliance_score": self.compliance_score.to_dict(),
            "cultural_entities": [e.to_dict() for e in self.cultural_entities],
            "mitigation_actions": list(self.mitigation_actions),
            "demographics": (
                [d.to_dict() for d in self.demographics]
                if self.demographics else None
            ),
            "audit_record": self.audit_record.to_dict(),
        }


@dataclass(frozen=True)
class BatchItemResult:
    index: int
    findings: tuple[BiasFinding, ...]
    compliance_score: ComplianceScore
    cultural_entities: tuple[CulturalEntity, ...]
    elapsed_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "findings": [f.to_dict() for f in self.findings],
            "compliance_score": self.compliance_score.to_dict(),
            "cultural_entities": [e.to_dict() for e in self.cultural_entities],
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class BatchResult:
    results: tuple[BatchItemResult, ...]
    total_processed: int
    average_compliance_score: float
    critical_issues_count: int
    elapsed_ms: float
    rounds: int

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "total_processed": self.total_processed,
                "average_compliance_score": self.average_compliance_score,
                "critical_issues_count": self.critical_issues_count,
                "elapsed_ms": self.elapsed_ms,
                "rounds": self.rounds,
            },
        }
