"""Tests for confidence scoring."""

import itertools

import pytest

from research_engine.research.scoring import (
    analysis_confidence,
    coverage,
    finding_agreement,
    research_confidence,
    synthesis_confidence,
)


class TestResearchConfidence:
    """Weighted blend of fetch success, coverage and agreement."""

    def test_zero_retained_is_zero(self):
        assert research_confidence(attempted=5, succeeded=5, retained=0, agreement=1.0) == 0.0

    def test_perfect_inputs_approach_one(self):
        score = research_confidence(attempted=100, succeeded=100, retained=100, agreement=1.0)
        assert 0.99 < score <= 1.0

    def test_known_value(self):
        assert research_confidence(attempted=3, succeeded=1, retained=1) == pytest.approx(0.45 / 3 + 0.35 / 3, abs=1e-4)

    def test_bounded(self):
        for attempted, succeeded, retained in itertools.product(range(0, 6), repeat=3):
            score = research_confidence(attempted, succeeded, retained, agreement=1.5)
            assert 0.0 <= score <= 1.0

    def test_monotonic_in_each_argument(self):
        base = dict(attempted=5, succeeded=2, retained=2, agreement=0.3)
        for key, bump in (("succeeded", 1), ("retained", 1), ("agreement", 0.2)):
            bumped = {**base, key: base[key] + bump}
            assert research_confidence(**bumped) >= research_confidence(**base)

    def test_coverage(self):
        assert coverage(0) == 0.0
        assert coverage(2) == 0.5
        assert coverage(1) < coverage(2) < coverage(8)


class TestFindingAgreement:
    """Cross-source vocabulary overlap."""

    def test_single_source_has_no_agreement(self):
        assert finding_agreement({"a": ["Perovskite cells reach record efficiency"]}) == 0.0

    def test_agreeing_sources(self):
        findings = {
            "a": ["Perovskite solar cells reached record efficiency"],
            "b": ["Record efficiency reported for perovskite tandem cells"],
        }
        assert finding_agreement(findings) == 1.0

    def test_partial_agreement(self):
        findings = {
            "a": ["Perovskite solar cells reached record efficiency"],
            "b": ["Record efficiency reported for perovskite tandem cells"],
            "c": ["Football season ticket prices climb"],
        }
        assert finding_agreement(findings) == pytest.approx(2 / 3)

    def test_sources_without_findings_are_ignored(self):
        assert finding_agreement({"a": ["Perovskite efficiency record"], "b": []}) == 0.0


class TestOtherConfidences:
    def test_analysis(self):
        assert analysis_confidence(3, 0.6) == 0.6
        assert analysis_confidence(0, 0.6) == 0.0

    def test_synthesis(self):
        assert synthesis_confidence(0) == 0.0
        assert synthesis_confidence(10) == 0.5
        assert synthesis_confidence(18) == 0.9
        assert synthesis_confidence(100) == 0.9
