"""
Pattern Registry — Declarative Bias Rules

The registry is a static table of BiasRule entries. Each rule carries
literal phrases rather than a regex blob; the matcher is compiled once at
import time (case-insensitive, word-bounded, any whitespace between the
words of a phrase).

Each rule declares which detection levels it applies to, so one table
serves strict, moderate and lenient scanning. Rules never look at each
other: adding a rule cannot change the matches or confidence of another.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from culturaltruth.types import DETECTION_LEVELS, SEVERITIES


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class BiasRule:
    """
    A single bias detection rule.

    - Deterministic (compiled from literal terms, no ML)
    - Tagged with severity and regulation exposure
    - Immutable (defined at process start)
    """
    id: str
    category: str
    terms: tuple[str, ...]
    severity: str
    suggested_alternatives: tuple[str, ...]
    applicable_regulations: tuple[str, ...]
    detection_levels: frozenset[str]
    matcher: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.severity not in SEVERITIES:
            raise ValueError(f"Rule {self.id}: unknown severity {self.severity}")
        unknown = self.detection_levels - set(DETECTION_LEVELS)
        if unknown:
            raise ValueError(f"Rule {self.id}: unknown detection levels {unknown}")
        if not self.terms:
            raise ValueError(f"Rule {self.id}: no terms")
        object.__setattr__(self, "matcher", _compile_terms(self.terms))

    def applies_to(self, detection_level: str) -> bool:
        return detection_level in self.detection_levels

    def find(self, text: str) -> list[str]:
        """All non-overlapping matches in text, lower-cased, in order."""
        return [m.group(0).lower() for m in self.matcher.finditer(text)]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "terms": list(self.terms),
            "severity": self.severity,
            "suggested_alternatives": list(self.suggested_alternatives),
            "applicable_regulations": list(self.applicable_regulations),
            "detection_levels": sorted(self.detection_levels),
        }


def _compile_terms(terms: tuple[str, ...]) -> re.Pattern:
    # Longest first so "man-hours" wins over a shorter overlapping term
    ordered = sorted(terms, key=len, reverse=True)
    alternatives = [
        r"\s+".join(re.escape(word) for word in term.split())
        for term in ordered
    ]
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)


_ALL = frozenset({"strict", "moderate", "lenient"})
_STRICT_MODERATE = frozenset({"strict", "moderate"})
_STRICT = frozenset({"strict"})


# ============================================================
# BIAS RULES
# ============================================================

BIAS_RULES: tuple[BiasRule, ...] = (

    # --- Gender-exclusive language ---

    BiasRule(
        id="guys_only",
        category="gender_exclusive",
        terms=(
            "guys", "bros", "brotherhood", "manpower", "man-hours",
            "policeman", "fireman", "chairman", "businessman",
        ),
        severity="medium",
        suggested_alternatives=(
            "team", "colleagues", "workforce", "person-hours",
            "police officer", "firefighter", "chairperson", "businessperson",
        ),
        applicable_regulations=("EU_AI_ACT", "EEOC", "TITLE_VII"),
        detection_levels=_STRICT_MODERATE,
    ),
    BiasRule(
        id="gendered_roles",
        category="gender_exclusive",
        terms=tuple(
            f"{title} {role}"
            for title in ("rockstar", "ninja", "guru", "wizard")
            for role in ("developer", "engineer", "programmer")
        ),
        severity="medium",
        suggested_alternatives=(
            "skilled developer", "expert engineer",
            "experienced programmer", "talented developer",
        ),
        applicable_regulations=("EU_AI_ACT", "EEOC"),
        detection_levels=_STRICT,
    ),

    # --- Age discrimination markers ---

    BiasRule(
        id="age_proxy",
        category="age_discriminatory",
        terms=(
            "young", "recent graduate", "digital native", "energy", "fresh",
            "millennial", "gen-z", "generation z", "under 30", "20-something",
        ),
        severity="high",
        suggested_alternatives=(
            "qualified", "experienced", "skilled", "motivated",
            "enthusiastic", "tech-savvy",
        ),
        applicable_regulations=("ADEA", "EU_AI_ACT", "AGE_DISCRIMINATION_ACT"),
        detection_levels=_ALL,
    ),
    BiasRule(
        id="senior_bias",
        category="age_discriminatory",
        terms=(
            "overqualified", "too experienced", "set in ways", "old school",
            "traditional methods", "not tech-savvy",
        ),
        severity="high",
        suggested_alternatives=(
            "highly qualified", "extensively experienced",
            "proven methods", "established practices",
        ),
        applicable_regulations=("ADEA", "EU_AI_ACT"),
        detection_levels=_STRICT_MODERATE,
    ),

    # --- Racial / geographic proxies ---

    BiasRule(
        id="location_proxy",
        category="racial_proxy",
        terms=(
            "94110", "94102", "10025", "10128", "90210", "90211", "60601",
            "60605", "inner city", "urban", "suburban", "from the hood",
            "ghetto", "barrio",
        ),
        severity="critical",
        suggested_alternatives=(
            "location-flexible", "remote-friendly", "multiple locations",
            "metropolitan area",
        ),
        applicable_regulations=(
            "FAIR_HOUSING_ACT", "GDPR", "EU_AI_ACT", "CIVIL_RIGHTS_ACT",
        ),
        detection_levels=_ALL,
    ),
    BiasRule(
        id="education_proxy",
        category="racial_proxy",
        terms=(
            "ivy league", "tier-1 college", "top university", "elite school",
            "prestigious institution",
        ),
        severity="medium",
        suggested_alternatives=(
            "accredited university", "relevant education",
            "qualified institution", "recognized degree",
        ),
        applicable_regulations=("EU_AI_ACT", "EEOC"),
        detection_levels=_STRICT,
    ),

    # --- Cultural assumptions ---

    BiasRule(
        id="cultural_assumption",
        category="cultural_insensitive",
        terms=(
            "native speaker", "native speakers", "native english speaker",
            "native english speakers", "american values", "western mindset",
            "traditional family", "christian values", "normal family",
            "typical american",
        ),
        severity="high",
        suggested_alternatives=(
            "fluent in", "aligned with company values", "diverse perspectives",
            "inclusive values", "family-friendly",
        ),
        applicable_regulations=("TITLE_VII", "EU_AI_ACT", "RELIGIOUS_FREEDOM_ACT"),
        detection_levels=_STRICT_MODERATE,
    ),
    BiasRule(
        id="name_bias",
        category="cultural_insensitive",
        terms=(
            "easy to pronounce name", "american sounding name", "simple name",
            "anglicized name",
        ),
        severity="critical",
        suggested_alternatives=(
            "clear communication skills", "professional presentation",
            "effective communication",
        ),
        applicable_regulations=(
            "TITLE_VII", "EU_AI_ACT", "NATIONAL_ORIGIN_DISCRIMINATION",
        ),
        detection_levels=_ALL,
    ),

    # --- Accessibility barriers ---

    BiasRule(
        id="ability_exclusive",
        category="accessibility_barrier",
        terms=(
            "must be able to lift", "perfect vision", "hearing required",
            "no accommodations", "physically demanding", "requires standing",
            "manual dexterity required",
        ),
        severity="critical",
        suggested_alternatives=(
            "with or without accommodation",
            "reasonable accommodations provided", "essential job functions",
        ),
        applicable_regulations=(
            "ADA", "SECTION_508", "EU_ACCESSIBILITY_ACT", "REHABILITATION_ACT",
        ),
        detection_levels=_ALL,
    ),
    BiasRule(
        id="cognitive_bias",
        category="accessibility_barrier",
        terms=(
            "fast-paced environment", "high-stress", "multitasking required",
            "quick thinking", "rapid response", "immediate decisions",
        ),
        severity="medium",
        suggested_alternatives=(
            "dynamic environment", "collaborative setting",
            "efficient workflow", "effective decision-making",
        ),
        applicable_regulations=("ADA", "EU_ACCESSIBILITY_ACT"),
        detection_levels=_STRICT,
    ),
)


# Words that raise confidence when they appear anywhere in the text
CONTEXT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "gender_exclusive": ("hiring", "job", "position", "role", "team"),
    "age_discriminatory": ("candidate", "applicant", "hire", "employee"),
    "racial_proxy": ("location", "area", "neighborhood", "zip"),
    "cultural_insensitive": ("background", "culture", "family", "values"),
    "accessibility_barrier": ("requirement", "must", "able", "capacity"),
}

_CONTEXT_MATCHERS: dict[str, tuple[re.Pattern, ...]] = {
    category: tuple(
        re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in words
    )
    for category, words in CONTEXT_KEYWORDS.items()
}

CATEGORIES = tuple(CONTEXT_KEYWORDS)


def count_context_hits(category: str, text: str) -> int:
    """Number of the category's context keywords present in text."""
    return sum(
        1 for matcher in _CONTEXT_MATCHERS.get(category, ()) if matcher.search(text)
    )


def rules_for_level(detection_level: str) -> list[BiasRule]:
    """Rules active at a detection level, in registry order."""
    return [r for r in BIAS_RULES if r.applies_to(detection_level)]


def get_rule(rule_id: str) -> BiasRule:
    for rule in BIAS_RULES:
        if rule.id == rule_id:
            return rule
    raise KeyError(rule_id)


def get_rules(detection_level: str | None = None) -> list[dict]:
    """Expose the detection surface, optionally for one level."""
    rules = BIAS_RULES if detection_level is None else rules_for_level(detection_level)
    return [r.to_dict() for r in rules]
