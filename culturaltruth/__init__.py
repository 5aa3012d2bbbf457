"""
CulturalTruth — Bias Detection and Compliance Scoring Engine

Deterministic bias rules scored against EU AI Act, Section 508 and GDPR,
enriched with Qloo cultural intelligence when the API is reachable.

Public API:
  - detect_bias:               Rule-based bias scan (no network)
  - calculate_compliance_score: Per-regulation scores and risk tier
  - synthesize_mitigation:     Severity-grouped remediation actions
  - extract_candidates:        Cultural-entity candidates from text
  - CulturalTruthEngine:       Full analysis orchestrator (Qloo + audit)
  - create_engine:             Engine built from process settings
  - AuditLog:                  Bounded, hash-chained audit log
  - EnvironmentConfig:         Hackathon / Production configuration

Usage:
    from culturaltruth import create_engine
    engine = create_engine()
    result = await engine.analyze_content("We need young, energetic guys.")
"""

__version__ = "2.0.0"

from culturaltruth.detector import detect_bias
from culturaltruth.scorer import calculate_compliance_score
from culturaltruth.mitigation import synthesize_mitigation
from culturaltruth.extractor import extract_candidates
from culturaltruth.engine import CulturalTruthEngine, create_engine
from culturaltruth.audit import AuditLog
from culturaltruth.environment import (
    EnvironmentConfig,
    EnvironmentHolder,
    HACKATHON_CONFIG,
    PRODUCTION_CONFIG,
    build_environment,
)
from culturaltruth.errors import CulturalTruthError
from culturaltruth.types import AnalysisResult, BiasFinding, ComplianceScore
