"""
Entity Extractor — heuristic candidate names for Qloo lookup.

Three passes, merged in first-seen order:
  1. Quoted capitalized phrases ("The Matrix", 'Dune')
  2. Runs of capitalized words (Stranger Things)
  3. Brand-name prefixes (Netflix Originals, Disney Plus)

Candidates are filtered against stopwords and generic business words and
capped at 10 so a single request can never fan out into an unbounded
number of API calls.
"""

from __future__ import annotations

import re

from culturaltruth.detector import strip_markup

MAX_CANDIDATES = 10
MIN_LENGTH = 3
MAX_LENGTH = 50

STOPWORDS = frozenset({
    "THE", "AND", "OR", "BUT", "FOR", "WITH", "THIS", "THAT", "FROM", "HAVE",
    "WILL", "WOULD", "COULD", "SHOULD", "ABOUT", "AFTER", "BEFORE", "DURING",
    "WHILE", "WHERE", "WHEN", "WHAT", "WHO", "HOW", "WHY", "WHICH", "SOME",
    "MANY", "MOST", "ALL", "EACH", "EVERY", "ANY", "NO", "NONE", "BOTH",
    "EITHER", "NEITHER", "OUR", "YOUR", "THEIR", "THEY", "THESE", "THOSE",
})

COMMON_BUSINESS_WORDS = frozenset({
    "COMPANY", "BUSINESS", "SERVICE", "PRODUCT", "SYSTEM", "PROCESS",
    "METHOD", "APPROACH", "SOLUTION", "TECHNOLOGY", "PLATFORM", "APPLICATION",
    "SOFTWARE", "HARDWARE", "DATA",
})

BRANDS = (
    "Marvel", "Disney", "Netflix", "HBO", "Amazon", "Apple", "Google",
    "Microsoft", "Sony", "Warner",
)

_QUOTED = re.compile(r"[\"'“‘]([A-Z][^\"'”’]{2,50})[\"'”’]")
_CAPITALIZED_RUN = re.compile(r"\b[A-Z][a-zA-Z]{2,}(?:[ \t]+[A-Z][a-zA-Z]+)*\b")
_BRAND_PREFIX = re.compile(
    r"\b(?:" + "|".join(BRANDS) + r")[ \t]+[A-Z][a-zA-Z]+(?:[ \t]+[A-Z][a-zA-Z]+)*"
)


def _keep(candidate: str) -> bool:
    if not (MIN_LENGTH <= len(candidate) <= MAX_LENGTH):
        return False
    upper = candidate.upper()
    return upper not in STOPWORDS and upper not in COMMON_BUSINESS_WORDS


def extract_candidates(text: str) -> list[str]:
    """
    Propose entity names from free text.

    Returns at most 10 unique candidates in first-seen order. Never raises;
    non-string input yields an empty list.
    """
    if not isinstance(text, str) or not text:
        return []

    # Markup is stripped but quotes are kept so pass 1 can see them
    cleaned = strip_markup(text)

    seen: dict[str, None] = {}
    passes = (
        (m.group(1) for m in _QUOTED.finditer(cleaned)),
        (m.group(0) for m in _CAPITALIZED_RUN.finditer(cleaned)),
        (m.group(0) for m in _BRAND_PREFIX.finditer(cleaned)),
    )
    for matches in passes:
        for raw in matches:
            candidate = raw.replace('"', "").replace("'", "").strip()
            if candidate and candidate not in seen and _keep(candidate):
                seen[candidate] = None

    return list(seen)[:MAX_CANDIDATES]
