"""Research, analysis and synthesis pipelines with a per-task execution trace."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from ..config import AppSettings
from ..exceptions import EmbeddingError, GenerationError, InsufficientInput, TaskCancelled, ToolInvocationError
from ..observability.logging import get_task_logger
from ..tools.base import ScrapedPage, SearchHit, Tool
from ..utils import save_research_report
from .models import ExecutionStep, ResearchContext, StepKind, StepStatus, Task, TaskStatus
from .scoring import analysis_confidence, finding_agreement, research_confidence, synthesis_confidence

if TYPE_CHECKING:
    from ..embeddings import EmbeddingService
    from ..llm import LLMService
    from ..memory import MemoryStore
    from .registry import TaskRegistry

logger = logging.getLogger(__name__)

NO_FINDINGS_SYNTHESIS = "No significant findings were discovered."


class StepRecorder:
    """Appends a task's execution steps and answers cancellation checkpoints."""

    def __init__(self, task_id: str, registry: "TaskRegistry", on_step: Callable[[ExecutionStep], None] | None = None):
        self.task_id = task_id
        self.registry = registry
        self.on_step = on_step
        self._log = get_task_logger()

    async def record(self, kind: StepKind, description: str, status: StepStatus = StepStatus.COMPLETED, **data: Any) -> ExecutionStep | None:
        step = await self.registry.append_step(self.task_id, kind, description, status=status, data=data)
        if step is None:
            return None

        self._log.info("task_step", step=step.index, kind=kind.value, status=status.value, description=description)
        if self.on_step:
            self.on_step(step)
        return step

    async def checkpoint(self) -> None:
        """Stop the pipeline if the task has been cancelled since the last stage."""
        if await self.registry.status_of(self.task_id) == TaskStatus.CANCELLED:
            raise TaskCancelled(self.task_id)


class PipelineMachine(ABC):
    """Common wiring for the per-type pipelines."""

    def __init__(
        self,
        task: Task,
        llm: "LLMService",
        recorder: StepRecorder,
        settings: AppSettings,
        memory: "MemoryStore | None" = None,
        embeddings: "EmbeddingService | None" = None,
    ):
        self.task = task
        self.query = task.query
        self.options = task.options
        self.llm = llm
        self.recorder = recorder
        self.settings = settings
        self.memory = memory
        self.embeddings = embeddings

    @property
    def memory_enabled(self) -> bool:
        return self.memory is not None and self.embeddings is not None and self.settings.memory.enabled

    @abstractmethod
    async def run(self) -> ResearchContext: ...

    def _option_list(self, key: str) -> list[str]:
        """Read an option that may be a single string or a list of strings."""
        value = self.options.get(key)
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(v).strip() for v in value if str(v).strip()]

    async def _synthesize(self, findings: list[str]) -> str:
        """Synthesis stage; failures propagate and fail the task."""
        if not findings:
            await self.recorder.record(StepKind.SYNTHESIZE, "No findings to synthesize", StepStatus.SKIPPED)
            return NO_FINDINGS_SYNTHESIS

        limited = findings[: self.settings.research.max_findings]
        synthesis = await self.llm.synthesize_findings(limited)
        await self.recorder.record(StepKind.SYNTHESIZE, f"Synthesized {len(limited)} findings", findings_count=len(limited))
        return synthesis


@dataclass
class FetchOutcome:
    """Counters and retained pages from the fetch & filter stage."""

    attempted: int = 0
    succeeded: int = 0
    relevant: list[ScrapedPage] = field(default_factory=list)


class ResearchMachine(PipelineMachine):
    """Plan, search, fetch, filter, extract, synthesize and score."""

    def __init__(self, *args, search_tool: Tool, scraper_tool: Tool, **kwargs):
        super().__init__(*args, **kwargs)
        self.search_tool = search_tool
        self.scraper_tool = scraper_tool

    async def run(self) -> ResearchContext:
        limits = self.settings.research

        await self.recorder.checkpoint()
        terms = await self._plan()

        await self.recorder.checkpoint()
        candidates = await self._retrieve(terms)

        await self.recorder.checkpoint()
        outcome = await self._fetch_and_filter(candidates[: limits.max_sources])

        await self.recorder.checkpoint()
        findings_by_source = await self._extract(outcome.relevant)
        findings = [finding for source_findings in findings_by_source.values() for finding in source_findings]

        await self.recorder.checkpoint()
        synthesis = await self._synthesize(findings)

        await self.recorder.checkpoint()
        sources = [page.url for page in outcome.relevant]
        agreement = finding_agreement(findings_by_source)
        confidence = research_confidence(outcome.attempted, outcome.succeeded, len(sources), agreement)
        await self.recorder.record(
            StepKind.SCORE,
            f"Confidence {confidence:.2f}",
            attempted=outcome.attempted,
            succeeded=outcome.succeeded,
            retained=len(sources),
            agreement=round(agreement, 4),
        )

        context = ResearchContext(query=self.query, findings=tuple(findings), sources=tuple(sources), synthesis=synthesis, confidence=confidence)
        self._save_report(context)
        return context

    async def _plan(self) -> list[str]:
        """Ask for search terms; any failure falls back to the raw query."""
        try:
            terms = await self.llm.generate_research_plan(self.query, self.settings.research.max_search_terms)
        except GenerationError as e:
            logger.warning(f"Research planning failed, searching the raw query: {e}")
            await self.recorder.record(StepKind.PLAN, "Planning failed, using the raw query", StepStatus.FAILED, error=str(e), terms=[self.query])
            return [self.query]

        if not terms:
            await self.recorder.record(StepKind.PLAN, "Plan produced no search terms, using the raw query", StepStatus.SKIPPED, terms=[self.query])
            return [self.query]

        await self.recorder.record(StepKind.PLAN, f"Generated {len(terms)} search terms", terms=terms)
        return terms

    async def _retrieve(self, terms: list[str]) -> list[SearchHit]:
        """Search every term and deduplicate hits by URL, first seen wins."""
        candidates: dict[str, SearchHit] = {}
        for i, term in enumerate(terms):
            await self.recorder.checkpoint()
            try:
                hits = await self._invoke(self.search_tool, {"query": term, "max_results": self.settings.research.max_results_per_term})
            except ToolInvocationError as e:
                await self.recorder.record(StepKind.SEARCH, f"Search failed ({i + 1}/{len(terms)}): {term}", StepStatus.FAILED, term=term, error=str(e))
                continue

            new = 0
            for hit in hits:
                if hit.url and hit.url not in candidates:
                    candidates[hit.url] = hit
                    new += 1
            await self.recorder.record(StepKind.SEARCH, f"Searched ({i + 1}/{len(terms)}): {term}", term=term, hits=len(hits), new=new)

        return list(candidates.values())

    async def _fetch_and_filter(self, candidates: list[SearchHit]) -> FetchOutcome:
        """Scrape each candidate and keep the relevant pages. Per-source failures are skipped."""
        outcome = FetchOutcome()
        max_chars = self.settings.research.max_content_chars

        for hit in candidates:
            await self.recorder.checkpoint()
            outcome.attempted += 1
            try:
                page = await self._invoke(self.scraper_tool, {"url": hit.url})
            except ToolInvocationError as e:
                await self.recorder.record(StepKind.FETCH, f"Failed to fetch {hit.url}", StepStatus.FAILED, url=hit.url, error=str(e))
                continue

            outcome.succeeded += 1
            await self.recorder.record(StepKind.FETCH, f"Fetched {page.title}", url=hit.url, length=len(page.content))

            try:
                relevant = await self.llm.is_content_relevant(page.content[:max_chars], self.query)
            except GenerationError as e:
                await self.recorder.record(StepKind.FILTER, f"Relevance check failed for {hit.url}", StepStatus.FAILED, url=hit.url, error=str(e))
                continue

            if relevant:
                outcome.relevant.append(page)
                await self.recorder.record(StepKind.FILTER, f"Relevant: {hit.url}", url=hit.url, relevant=True)
            else:
                await self.recorder.record(StepKind.FILTER, f"Discarded irrelevant source {hit.url}", StepStatus.SKIPPED, url=hit.url, relevant=False)

        return outcome

    async def _extract(self, pages: list[ScrapedPage]) -> dict[str, list[str]]:
        """Extract key points per relevant page, in discovery order."""
        findings_by_source: dict[str, list[str]] = {}
        max_chars = self.settings.research.max_content_chars

        for page in pages:
            await self.recorder.checkpoint()
            points = await self.llm.extract_key_points(page.content[:max_chars])
            findings_by_source[page.url] = points
            await self.recorder.record(StepKind.EXTRACT, f"Extracted {len(points)} key points from {page.url}", url=page.url, count=len(points))

            if self.memory_enabled:
                await self._memorize(page, points)

        return findings_by_source

    async def _memorize(self, page: ScrapedPage, points: list[str]) -> None:
        """Chunk, embed and store a page and its key points. Failures are recorded, never raised."""
        assert self.memory is not None and self.embeddings is not None
        memory_settings = self.settings.memory
        metadata = {"source": page.url, "query": self.query, "task_id": self.task.id}

        try:
            chunks = self.embeddings.chunk_text(page.content, memory_settings.chunk_size, memory_settings.chunk_overlap)
            texts = chunks + points
            vectors = await self.embeddings.generate_batch_embeddings(texts)
            for i, (text, vector) in enumerate(zip(texts, vectors)):
                entry_type = "chunk" if i < len(chunks) else "finding"
                await self.memory.store(text, vector, {**metadata, "type": entry_type})
        except (EmbeddingError, aiosqlite.Error) as e:
            logger.warning(f"Failed to store {page.url} in memory: {e}")
            await self.recorder.record(StepKind.MEMORIZE, f"Failed to store {page.url} in memory", StepStatus.FAILED, url=page.url, error=str(e))
            return

        await self.recorder.record(StepKind.MEMORIZE, f"Stored {len(chunks)} chunks and {len(points)} findings", url=page.url)

    async def _invoke(self, tool: Tool, args: dict[str, Any]) -> Any:
        """Invoke a tool, normalizing any failure into ToolInvocationError."""
        try:
            return await tool.invoke(args)
        except ToolInvocationError:
            raise
        except Exception as e:
            raise ToolInvocationError(tool.name, str(e) or e.__class__.__name__) from e

    def _save_report(self, context: ResearchContext) -> None:
        save_path = self.options.get("save_path")
        if not save_path and not self.settings.research.save_directory:
            return

        try:
            path = save_research_report(
                context,
                path=Path(save_path) if save_path else None,
                directory=self.settings.get_reports_dir() if not save_path else None,
            )
            logger.info(f"Report saved to {path}")
        except OSError as e:
            logger.error(f"Failed to save report: {e}")


class AnalysisMachine(PipelineMachine):
    """Analyze the query (plus supplied content) directly, without retrieval."""

    async def run(self) -> ResearchContext:
        content = "\n\n".join([self.query, *self._option_list("content")])
        max_chars = self.settings.research.max_content_chars

        await self.recorder.checkpoint()
        valid = await self.llm.is_content_relevant(content[:max_chars], self.query)
        await self.recorder.record(
            StepKind.ANALYZE,
            "Content is valid for analysis" if valid else "Content rejected by validity check",
            StepStatus.COMPLETED if valid else StepStatus.SKIPPED,
            length=len(content),
        )

        findings: list[str] = []
        if valid:
            await self.recorder.checkpoint()
            findings = await self.llm.extract_key_points(content[:max_chars])
            await self.recorder.record(StepKind.EXTRACT, f"Extracted {len(findings)} key points", count=len(findings))

        await self.recorder.checkpoint()
        synthesis = await self._synthesize(findings)

        confidence = analysis_confidence(len(findings), self.settings.research.unverified_confidence)
        return ResearchContext(
            query=self.query,
            findings=tuple(findings),
            sources=tuple(self._option_list("sources")),
            synthesis=synthesis,
            confidence=confidence,
        )


class SynthesisMachine(PipelineMachine):
    """Synthesize supplied findings, or findings recalled from memory."""

    async def run(self) -> ResearchContext:
        findings = self._option_list("findings")
        sources = self._option_list("sources")

        if not findings:
            await self.recorder.checkpoint()
            findings, recalled_sources = await self._recall()
            sources = sources or recalled_sources

        if not findings:
            raise InsufficientInput(f"No findings supplied or recalled for synthesis of '{self.query}'")

        await self.recorder.checkpoint()
        synthesis = await self._synthesize(findings)

        return ResearchContext(
            query=self.query,
            findings=tuple(findings),
            sources=tuple(sources),
            synthesis=synthesis,
            confidence=synthesis_confidence(len(findings)),
        )

    async def _recall(self) -> tuple[list[str], list[str]]:
        """Look up stored findings similar to the query."""
        if not self.memory_enabled:
            await self.recorder.record(StepKind.RECALL, "Memory is not configured", StepStatus.SKIPPED)
            return [], []

        assert self.memory is not None and self.embeddings is not None
        memory_settings = self.settings.memory
        vector = await self.embeddings.generate_embedding(self.query)
        matches = await self.memory.query_similar(vector, k=memory_settings.recall_limit, threshold=memory_settings.recall_threshold, type="finding")

        findings = [m.entry.text for m in matches]
        sources = [m.entry.source for m in matches if m.entry.source]
        await self.recorder.record(StepKind.RECALL, f"Recalled {len(findings)} findings from memory", count=len(findings))
        return findings, sources
