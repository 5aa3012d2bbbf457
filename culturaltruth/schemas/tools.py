"""
API Schemas — Request and Response Models

Pydantic models for the CulturalTruth tool surface.
"""

from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, Field

from culturaltruth.config import settings


# ============================================================
# ANALYZE
# ============================================================

class AnalyzeRequest(BaseModel):
    """POST /analyze request body."""
    content: str = Field(..., max_length=settings.MAX_CONTENT_LENGTH,
                         description="Text to analyze for bias.")
    user_id: Optional[str] = Field(None, max_length=200)
    include_demographics: bool = Field(
        True, description="Run demographic enrichment when the environment allows it.",
    )

    model_config = {"json_schema_extra": {"examples": [
        {"content": "Looking for young digital natives, culture fit required.", "user_id": "hr-42"},
    ]}}


class FindingResponse(BaseModel):
    rule_id: str
    category: str
    severity: str
    matched_terms: list[str]
    suggested_alternatives: list[str]
    applicable_regulations: list[str]
    confidence: float


class ComplianceScoreResponse(BaseModel):
    eu_ai_act: float
    section_508: float
    gdpr: float
    overall: float
    risk_tier: str
    triggered_regulations: list[str]
    base_score: float
    total_deduction: float
    per_regulation: dict[str, float]


class EntityResponse(BaseModel):
    name: str
    entity_id: str
    type: str
    subtype: Optional[str] = None
    properties: dict[str, Any] = {}


class DemographicResponse(BaseModel):
    demographic: str
    entities: list[EntityResponse]
    confidence: float
    cultural_relevance: float


class AuditRecordResponse(BaseModel):
    timestamp: str
    session_id: str
    user_id: Optional[str] = None
    content_digest: str
    truncated_content: str
    findings: list[FindingResponse]
    referenced_entity_ids: list[str]
    compliance_score: ComplianceScoreResponse
    mitigation_actions: list[str]
    elapsed_ms: float
    external_call_count: int
    cache_hit_count: int
    event_type: str
    signal: Optional[dict[str, Any]] = None
    prev_hash: str
    record_hash: str


class AnalyzeResponse(BaseModel):
    """POST /analyze response body."""
    session_id: str
    findings: list[FindingResponse]
    compliance_score: ComplianceScoreResponse
    cultural_entities: list[EntityResponse]
    mitigation_actions: list[str]
    demographics: Optional[list[DemographicResponse]] = None
    audit_record: AuditRecordResponse


# ============================================================
# BATCH
# ============================================================

class BatchItem(BaseModel):
    content: str = Field(..., max_length=settings.MAX_CONTENT_LENGTH)
    user_id: Optional[str] = None
    include_demographics: bool = True


class BatchRequest(BaseModel):
    """POST /analyze/batch request body."""
    items: list[BatchItem] = Field(..., min_length=1, max_length=settings.MAX_BATCH_SIZE)


class BatchItemResponse(BaseModel):
    index: int
    findings: list[FindingResponse]
    compliance_score: ComplianceScoreResponse
    cultural_entities: list[EntityResponse]
    elapsed_ms: float
    error: Optional[str] = None


class BatchSummary(BaseModel):
    total_processed: int
    average_compliance_score: float
    critical_issues_count: int
    elapsed_ms: float
    rounds: int


class BatchResponse(BaseModel):
    """POST /analyze/batch response body."""
    results: list[BatchItemResponse]
    summary: BatchSummary


# ============================================================
# REPORT / AUDIT
# ============================================================

class ReportResponse(BaseModel):
    """GET /report response body."""
    period: dict[str, Any]
    total_analyses: int
    average_compliance_score: float
    risk_distribution: dict[str, int]
    trends: list[dict[str, Any]]
    top_issues: list[dict[str, Any]]
    recommendations: list[str]


class AuditResponse(BaseModel):
    entries: list[AuditRecordResponse]
    total_count: int


class ChainVerification(BaseModel):
    verified: bool
    entries_checked: int
    broken_links: list[dict]


# ============================================================
# QLOO LOOKUPS
# ============================================================

class SearchResponse(BaseModel):
    query: str
    entities: list[EntityResponse]


class InsightsRequest(BaseModel):
    """POST /insights, /insights/demographic and /geospatial body."""
    params: dict[str, Any] = Field(..., min_length=1)


class EntityListResponse(BaseModel):
    entities: list[EntityResponse]


class CompareRequest(BaseModel):
    """POST /audiences/compare and /entities/compare request body."""
    group_a: list[str] = Field(..., min_length=1, max_length=50)
    group_b: list[str] = Field(..., min_length=1, max_length=50)


class AudienceGroup(BaseModel):
    entities: list[EntityResponse]
    average_popularity: float
    common_tags: list[str]


class CompareResponse(BaseModel):
    group_a: AudienceGroup
    group_b: AudienceGroup
    popularity_delta: float
    overlap_percentage: float
    cultural_affinity_score: float
    recommendations: list[str]


# ============================================================
# SIGNALS
# ============================================================

class SignalRequest(BaseModel):
    """POST /signals request body."""
    entity_id: str
    interaction: str = Field(..., pattern="^(view|like|share|purchase|rating)$")
    session_id: str
    user_id: Optional[str] = None
    value: Optional[float] = Field(None, ge=0, le=5)
    location: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class SignalResponse(BaseModel):
    recorded: bool


# ============================================================
# ENVIRONMENT
# ============================================================

class EnvironmentRequest(BaseModel):
    """PUT /environment request body."""
    mode: str = Field(..., pattern="^(Hackathon|Production)$")
    detection_level: Optional[str] = Field(None, pattern="^(strict|moderate|lenient)$")
    enabled_features: Optional[dict[str, bool]] = None
    enable_full_potential: Optional[bool] = None


class EnvironmentResponse(BaseModel):
    mode: str
    detection_level: str
    thresholds: dict[str, float]
    endpoint: str
    features: dict[str, bool]
    enable_full_potential: bool


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    mode: str
    detection_level: str
    circuit_breaker: str
    audit_records: int
