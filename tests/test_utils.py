"""Tests for report persistence."""

import json

from research_engine.research import ResearchContext
from research_engine.utils import save_research_report


def make_context(query: str = "coral reef decline") -> ResearchContext:
    return ResearchContext(
        query=query,
        findings=("Heat stress drives bleaching",),
        sources=("https://reef.example/",),
        synthesis="Reefs are declining.",
        confidence=0.72,
    )


def test_save_to_explicit_path(tmp_path):
    path = save_research_report(make_context(), path=tmp_path / "nested" / "report.md")

    assert path == tmp_path / "nested" / "report.md"
    text = path.read_text(encoding="utf-8")
    assert "# Research Report: coral reef decline" in text
    assert "- Heat stress drives bleaching" in text
    assert "Confidence: 0.72" in text

    metadata = json.loads(path.with_suffix(".json").read_text(encoding="utf-8"))
    assert metadata["query"] == "coral reef decline"
    assert metadata["sources"] == ["https://reef.example/"]


def test_directory_names_are_unique(tmp_path):
    paths = {save_research_report(make_context("same / query?"), directory=tmp_path) for _ in range(20)}

    assert len(paths) == 20
    for path in paths:
        assert path.parent == tmp_path
        assert "/" not in path.name.removesuffix(".md")
        assert "?" not in path.name
