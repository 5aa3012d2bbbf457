"""
Bias Detector — applies the Pattern Registry to text.

Pure and deterministic: same text + same EnvironmentConfig gives the same
ordered findings. No I/O, no clock, no randomness.

Matching runs on sanitized text (markup and URL schemes stripped, then
every character outside word/space/hyphen/period replaced by a space).
"""

from __future__ import annotations

import re

from culturaltruth.environment import EnvironmentConfig
from culturaltruth.errors import ValidationError
from culturaltruth.patterns import BiasRule, count_context_hits, rules_for_level
from culturaltruth.types import BiasFinding

MAX_SCAN_LENGTH = 10_000

BASE_CONFIDENCE = 0.7
PER_MATCH_BONUS = 0.1
MAX_MATCH_BONUS = 0.2
CONTEXT_BONUS = 0.05

HACKATHON_DISCOUNT = 0.8   # low/medium severity only
PRODUCTION_BOOST = 1.1

_HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]*>")
_UNSAFE_SCHEME = re.compile(r"javascript:|data:", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r"[^\w\s\-.]")


def strip_markup(text: str) -> str:
    """Remove HTML comments, tags and script/data URL schemes."""
    text = _HTML_COMMENT.sub("", text)
    text = _HTML_TAG.sub("", text)
    return _UNSAFE_SCHEME.sub("", text)


def sanitize_text(text: str) -> str:
    """Text as the bias rules see it. Capped at 10,000 characters."""
    return _UNSAFE_CHARS.sub(" ", strip_markup(text))[:MAX_SCAN_LENGTH]


def _calculate_confidence(match_count: int, text: str, category: str) -> float:
    """
    Confidence for one rule hit.

    0.7 base, +0.1 per match (max +0.2), +0.05 per context keyword
    for the rule's category present anywhere in the text. Capped at 1.0.
    """
    confidence = BASE_CONFIDENCE
    confidence += min(match_count * PER_MATCH_BONUS, MAX_MATCH_BONUS)
    confidence += count_context_hits(category, text) * CONTEXT_BONUS
    return min(confidence, 1.0)


def _adjust_for_mode(confidence: float, rule: BiasRule, config: EnvironmentConfig) -> float:
    if config.mode == "Hackathon":
        if rule.severity in ("low", "medium"):
            confidence *= HACKATHON_DISCOUNT
    elif config.mode == "Production":
        confidence *= PRODUCTION_BOOST
    return min(confidence, 1.0)


def detect_bias(text: str, config: EnvironmentConfig) -> list[BiasFinding]:
    """
    Run every rule active at the configured detection level.

    Returns findings sorted by confidence, highest first. Ties keep
    registry order. Rules that do not match produce nothing.
    """
    if not isinstance(text, str):
        raise ValidationError("Content must be a string.")

    sanitized = sanitize_text(text)
    if not sanitized.strip():
        return []

    findings: list[BiasFinding] = []
    for rule in rules_for_level(config.detection_level):
        matches = rule.find(sanitized)
        if not matches:
            continue

        confidence = _calculate_confidence(len(matches), sanitized, rule.category)
        confidence = _adjust_for_mode(confidence, rule, config)

        findings.append(BiasFinding(
            rule_id=rule.id,
            category=rule.category,
            severity=rule.severity,
            matched_terms=tuple(matches),
            suggested_alternatives=rule.suggested_alternatives,
            applicable_regulations=rule.applicable_regulations,
            confidence=round(confidence, 4),
        ))

    findings.sort(key=lambda f: f.confidence, reverse=True)
    return findings
