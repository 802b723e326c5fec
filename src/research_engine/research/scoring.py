"""Confidence scoring for research results.

All scores are in [0, 1] and non-decreasing in each argument.
"""

import re
from collections.abc import Mapping, Sequence

SUCCESS_WEIGHT = 0.45
COVERAGE_WEIGHT = 0.35
AGREEMENT_WEIGHT = 0.20

# Retained-source count at which coverage reaches one half
COVERAGE_HALF_POINT = 2

MIN_SHARED_TERMS = 2

_WORD = re.compile(r"[a-z0-9]{4,}")
_STOPWORDS = frozenset(
    {"this", "that", "with", "from", "have", "were", "been", "which", "their", "there", "these", "those", "also", "into", "more", "than", "such", "about"}
)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def coverage(retained_sources: int) -> float:
    if retained_sources <= 0:
        return 0.0
    return retained_sources / (retained_sources + COVERAGE_HALF_POINT)


def research_confidence(attempted: int, succeeded: int, retained: int, agreement: float = 0.0) -> float:
    """Score a research result.

    Args:
        attempted: Sources the pipeline tried to fetch.
        succeeded: Fetches that returned text.
        retained: Distinct sources that contributed to the result.
        agreement: Cross-source agreement in [0, 1], see ``finding_agreement``.

    Returns:
        0.0 when no source was retained, otherwise a weighted blend of fetch
        success ratio, source coverage and agreement.
    """
    if retained <= 0:
        return 0.0

    success_ratio = _clamp(succeeded / attempted) if attempted > 0 else 0.0
    score = SUCCESS_WEIGHT * success_ratio + COVERAGE_WEIGHT * coverage(retained) + AGREEMENT_WEIGHT * _clamp(agreement)
    return round(_clamp(score), 4)


def _terms(texts: Sequence[str]) -> set[str]:
    terms: set[str] = set()
    for text in texts:
        terms.update(w for w in _WORD.findall(text.lower()) if w not in _STOPWORDS)
    return terms


def finding_agreement(findings_by_source: Mapping[str, Sequence[str]]) -> float:
    """Fraction of sources whose findings share vocabulary with another source's findings."""
    vocabularies = {source: _terms(findings) for source, findings in findings_by_source.items() if findings}
    if len(vocabularies) < 2:
        return 0.0

    agreeing = 0
    for source, terms in vocabularies.items():
        if any(len(terms & other) >= MIN_SHARED_TERMS for name, other in vocabularies.items() if name != source):
            agreeing += 1
    return agreeing / len(vocabularies)


def analysis_confidence(finding_count: int, unverified_confidence: float) -> float:
    """Fixed confidence for unverified analysis, 0 when nothing was found."""
    return _clamp(unverified_confidence) if finding_count > 0 else 0.0


def synthesis_confidence(finding_count: int) -> float:
    """Scales with the number of synthesized findings, capped at 0.9."""
    return min(0.9, max(0, finding_count) / 20)
