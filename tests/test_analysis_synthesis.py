"""Tests for the analysis and synthesis pipelines."""

import pytest

from research_engine.config import AppSettings, MemorySettings, ResearchSettings
from research_engine.exceptions import InsufficientInput
from research_engine.research import StepKind, StepStatus, TaskRunner, TaskStatus, TaskType
from research_engine.research.machine import NO_FINDINGS_SYNTHESIS


class TestAnalysis:
    """Direct analysis of supplied content."""

    async def test_analysis_uses_supplied_content(self, runner, fake_llm, search_tool, scraper_tool):
        task = await runner.create_task(
            TaskType.ANALYSIS,
            "Evaluate lithium iron phosphate batteries",
            {"content": ["LFP cells trade energy density for cycle life", "They avoid cobalt"], "sources": ["doc-1", "doc-2", "doc-1"]},
        )

        context = await runner.execute_task(task)

        assert len(context.findings) == 2
        assert context.sources == ("doc-1", "doc-2")
        assert context.confidence == 0.6
        assert context.synthesis == "Synthesized narrative."
        # No retrieval for analysis
        assert search_tool.queries == []
        assert scraper_tool.fetched == []

    async def test_analysis_without_sources(self, runner):
        task = await runner.create_task(TaskType.ANALYSIS, "Evaluate the claim that tides are caused by the moon")
        context = await runner.execute_task(task)

        assert context.sources == ()
        assert context.findings

    async def test_invalid_content_yields_empty_result(self, runner, fake_llm):
        fake_llm.relevant = False
        task = await runner.create_task(TaskType.ANALYSIS, "asdf qwer")

        context = await runner.execute_task(task)

        final = await runner.get_task_status(task.id)
        assert final.status == TaskStatus.COMPLETED
        assert context.findings == ()
        assert context.confidence == 0.0
        assert context.synthesis == NO_FINDINGS_SYNTHESIS
        assert fake_llm.calls["extract"] == 0
        assert fake_llm.calls["synthesize"] == 0
        analyze = [s for s in final.steps if s.kind == StepKind.ANALYZE][0]
        assert analyze.status == StepStatus.SKIPPED

    async def test_configured_unverified_confidence(self, fake_llm):
        settings = AppSettings(research=ResearchSettings(unverified_confidence=0.4), memory=MemorySettings(enabled=False))
        runner = TaskRunner(fake_llm, settings=settings)

        task = await runner.create_task(TaskType.ANALYSIS, "Evaluate heat pumps in cold climates")
        context = await runner.execute_task(task)

        assert context.confidence == 0.4


class TestSynthesis:
    """Synthesis of supplied or recalled findings."""

    async def test_supplied_findings(self, runner, fake_llm):
        findings = ["Solar capacity doubled", "Storage costs fell", "Grid interconnects lag"]
        task = await runner.create_task(TaskType.SYNTHESIS, "State of renewables", {"findings": findings, "sources": ["report-a"]})

        context = await runner.execute_task(task)

        assert context.findings == tuple(findings)
        assert context.sources == ("report-a",)
        assert context.confidence == pytest.approx(3 / 20)
        assert fake_llm.synthesized == [findings]

    async def test_confidence_capped(self, runner):
        task = await runner.create_task(TaskType.SYNTHESIS, "many findings", {"findings": [f"finding {i}" for i in range(40)]})
        context = await runner.execute_task(task)
        assert context.confidence == 0.9

    async def test_no_findings_fails_task(self, runner, fake_llm):
        task = await runner.create_task(TaskType.SYNTHESIS, "nothing to say")

        with pytest.raises(InsufficientInput):
            await runner.execute_task(task)

        final = await runner.get_task_status(task.id)
        assert final.status == TaskStatus.FAILED
        assert final.result is None
        assert final.error
        assert fake_llm.calls["synthesize"] == 0

    async def test_recalls_findings_from_memory(self, fake_llm, memory_store, embeddings):
        query = "ocean acidification coral reefs"
        await memory_store.store(
            "ocean acidification coral reefs bleaching",
            await embeddings.generate_embedding(query),
            {"type": "finding", "source": "https://reef.example/"},
        )
        await memory_store.store(
            "unrelated chunk",
            await embeddings.generate_embedding(query),
            {"type": "chunk", "source": "https://other.example/"},
        )
        await memory_store.store(
            "stock market volatility index",
            await embeddings.generate_embedding("stock market volatility index"),
            {"type": "finding", "source": "https://markets.example/"},
        )

        settings = AppSettings(memory=MemorySettings(enabled=True, recall_threshold=0.5))
        runner = TaskRunner(fake_llm, memory=memory_store, embeddings=embeddings, settings=settings)
        task = await runner.create_task(TaskType.SYNTHESIS, query)

        context = await runner.execute_task(task)

        assert context.findings == ("ocean acidification coral reefs bleaching",)
        assert context.sources == ("https://reef.example/",)
        final = await runner.get_task_status(task.id)
        recall = [s for s in final.steps if s.kind == StepKind.RECALL][0]
        assert recall.data["count"] == 1

    async def test_recall_skipped_without_memory(self, runner):
        task = await runner.create_task(TaskType.SYNTHESIS, "nothing stored")

        with pytest.raises(InsufficientInput):
            await runner.execute_task(task)

        final = await runner.get_task_status(task.id)
        recall = [s for s in final.steps if s.kind == StepKind.RECALL][0]
        assert recall.status == StepStatus.SKIPPED
