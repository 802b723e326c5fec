"""Task runner: creates, executes, tracks and cancels research tasks."""

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, assert_never

import aiosqlite

from ..config import AppSettings
from ..exceptions import EmbeddingError, InvalidInput, TaskCancelled, TaskStateError, UnknownTask, UnknownTool
from ..observability.logging import bind_task_context, clear_task_context, get_task_logger, setup_structured_logging
from ..tools.base import Tool, ToolCapability
from .machine import AnalysisMachine, PipelineMachine, ResearchMachine, StepRecorder, SynthesisMachine
from .models import ExecutionStep, HealthReport, ResearchContext, StepKind, StepStatus, Task, TaskStatus, TaskType
from .registry import TaskRegistry

if TYPE_CHECKING:
    from ..embeddings import EmbeddingService
    from ..llm import LLMService
    from ..memory import MemoryStore
    from ..observability.store import TaskHistory

logger = logging.getLogger(__name__)

SEARCH_TOOL = "web_search"
SCRAPER_TOOL = "web_scraper"

CANCELLABLE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.RUNNING})

# Options the pipelines read as lists of text
TEXT_LIST_OPTIONS = ("content", "findings", "sources")


class TaskRunner:
    """Owns the task registry and dispatches each task to its pipeline.

    Tools, memory and embeddings are shared by every task the runner executes.
    Memory and embeddings are optional; without them research skips the
    memorize stage and synthesis can only use supplied findings.
    """

    def __init__(
        self,
        llm: "LLMService",
        tools: Iterable[Tool] = (),
        memory: "MemoryStore | None" = None,
        embeddings: "EmbeddingService | None" = None,
        history: "TaskHistory | None" = None,
        registry: TaskRegistry | None = None,
        settings: AppSettings | None = None,
        on_step: Callable[[ExecutionStep], None] | None = None,
    ):
        if settings is None:
            from ..config import settings as app_settings

            settings = app_settings

        self.llm = llm
        self.tools: dict[str, Tool] = {tool.name: tool for tool in tools}
        self.memory = memory
        self.embeddings = embeddings
        self.history = history
        self.registry = registry or TaskRegistry()
        self.settings = settings
        self.on_step = on_step
        self._background: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, app_settings: AppSettings | None = None) -> "TaskRunner":
        """Build a runner with the configured LLM, web tools, memory and history.

        Raises:
            LLMProviderError: If the LLM provider is misconfigured.
        """
        from ..embeddings import EmbeddingService
        from ..llm import LLMService
        from ..memory import MemoryStore
        from ..observability.store import TaskHistory
        from ..providers import get_llm_from_settings
        from ..tools import ScraperTool, WebSearchTool

        if app_settings is None:
            from ..config import settings as app_settings

        setup_structured_logging(app_settings.logging.level, json_output=app_settings.logging.structured)

        llm = LLMService(get_llm_from_settings(app_settings.llm))
        tools = [WebSearchTool.from_settings(app_settings.search), ScraperTool.from_settings(app_settings.scraper)]

        memory = embeddings = None
        if app_settings.memory.enabled:
            memory = MemoryStore(app_settings.get_memory_db_path())
            embeddings = EmbeddingService.from_settings(app_settings.embedding)

        history = TaskHistory(app_settings.get_history_db_path()) if app_settings.logging.history_enabled else None

        return cls(llm, tools, memory=memory, embeddings=embeddings, history=history, settings=app_settings)

    # --- Lifecycle ---

    async def create_task(self, type: TaskType | str, query: str, options: dict[str, Any] | None = None) -> Task:
        """Register a new pending task.

        Raises:
            InvalidInput: If the type is unknown, the query is empty or a list option is malformed.
        """
        try:
            task_type = TaskType(type)
        except ValueError:
            raise InvalidInput(f"Unknown task type '{type}'. Expected one of: {', '.join(t.value for t in TaskType)}") from None

        if not isinstance(query, str) or not query.strip():
            raise InvalidInput("Query must be a non-empty string")
        if options is not None and not isinstance(options, dict):
            raise InvalidInput("Options must be a mapping")
        for key in TEXT_LIST_OPTIONS:
            value = (options or {}).get(key)
            if value is not None and not isinstance(value, str | list | tuple):
                raise InvalidInput(f"Option '{key}' must be a string or a list of strings, got {value.__class__.__name__}")

        task = Task(id=uuid.uuid4().hex, type=task_type, query=query.strip(), options=dict(options or {}))
        await self.registry.add(task)
        await self._record_history(task.id)

        logger.info(f"Created {task_type.value} task {task.id}: {task.query[:100]}")
        return task

    async def get_task_status(self, task_id: str) -> Task | None:
        """Snapshot of a task, or None for unknown ids."""
        return await self.registry.get(task_id)

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        return await self.registry.list_tasks(status)

    async def cancel_task(self, task_id: str) -> bool:
        """Mark a pending or running task cancelled.

        A running pipeline stops at its next checkpoint.

        Returns:
            False for unknown ids and tasks that already finished.
        """
        if not await self.registry.transition(task_id, TaskStatus.CANCELLED, expected=CANCELLABLE_STATUSES):
            return False

        logger.info(f"Task {task_id} cancelled")
        await self._record_history(task_id)
        return True

    async def execute_task(self, task: Task | str) -> ResearchContext:
        """Run a pending task to completion.

        Raises:
            UnknownTask: If the id is not registered.
            TaskStateError: If the task is not pending.
            TaskCancelled: If the task was cancelled while running.
            ResearchEngineError: Any unrecoverable pipeline failure, after the task is marked failed.
        """
        task_id = task if isinstance(task, str) else task.id
        snapshot = await self.registry.get(task_id)
        if snapshot is None:
            raise UnknownTask(f"Task {task_id} not found")
        if not await self.registry.transition(task_id, TaskStatus.RUNNING, expected={TaskStatus.PENDING}):
            status = await self.registry.status_of(task_id)
            raise TaskStateError(f"Task {task_id} is {status.value if status else 'gone'}, expected pending")

        bind_task_context(task_id, snapshot.type.value)
        task_logger = get_task_logger()
        recorder = StepRecorder(task_id, self.registry, self.on_step)
        task_logger.info("task_running", query=snapshot.query[:100])

        try:
            await recorder.record(StepKind.TASK_START, f"Starting {snapshot.type.value} task", query=snapshot.query)
            context = await self._build_machine(snapshot, recorder).run()

        except TaskCancelled:
            await recorder.record(StepKind.TASK_CANCELLED, "Task cancelled")
            await self._record_history(task_id)
            task_logger.info("task_cancelled")
            raise

        except asyncio.CancelledError:
            await self.registry.transition(task_id, TaskStatus.CANCELLED, expected={TaskStatus.RUNNING})
            await recorder.record(StepKind.TASK_CANCELLED, "Task interrupted")
            await self._record_history(task_id)
            task_logger.info("task_cancelled")
            raise

        except Exception as e:
            error = str(e) or e.__class__.__name__
            await recorder.record(StepKind.TASK_ERROR, f"Task failed: {error}", StepStatus.FAILED, error=error, error_type=e.__class__.__name__)
            await self._remember_outcome(snapshot, recorder, error=error)
            failed = await self.registry.transition(task_id, TaskStatus.FAILED, expected={TaskStatus.RUNNING}, error=error)
            await self._record_history(task_id)
            if not failed:
                task_logger.info("task_cancelled")
                raise TaskCancelled(task_id) from e
            task_logger.error("task_failed", error=error)
            raise

        else:
            await self._remember_outcome(snapshot, recorder, context=context)
            await recorder.record(StepKind.TASK_COMPLETE, "Task completed", confidence=context.confidence, sources=len(context.sources))
            if not await self.registry.transition(task_id, TaskStatus.COMPLETED, expected={TaskStatus.RUNNING}, result=context):
                await self._record_history(task_id)
                task_logger.info("task_cancelled")
                raise TaskCancelled(task_id)
            await self._record_history(task_id)
            task_logger.info("task_completed", confidence=context.confidence, findings=len(context.findings))
            return context

        finally:
            clear_task_context()

    async def start_task(self, task: Task | str) -> asyncio.Task:
        """Execute a pending task in the background.

        Failures are reflected in the task status rather than raised.

        Raises:
            UnknownTask: If the id is not registered.
            TaskStateError: If the task is not pending.
        """
        task_id = task if isinstance(task, str) else task.id
        status = await self.registry.status_of(task_id)
        if status is None:
            raise UnknownTask(f"Task {task_id} not found")
        if status != TaskStatus.PENDING:
            raise TaskStateError(f"Task {task_id} is {status.value}, expected pending")

        async def run_in_background() -> None:
            try:
                await self.execute_task(task_id)
            except TaskCancelled:
                logger.info(f"Background task {task_id} cancelled")
            except Exception as e:
                logger.error(f"Background task {task_id} failed: {e}")

        background = asyncio.create_task(run_in_background(), name=f"research-task-{task_id}")
        self._background[task_id] = background
        background.add_done_callback(lambda _: self._background.pop(task_id, None))
        return background

    def _build_machine(self, task: Task, recorder: StepRecorder) -> PipelineMachine:
        common = dict(llm=self.llm, recorder=recorder, settings=self.settings, memory=self.memory, embeddings=self.embeddings)
        match task.type:
            case TaskType.RESEARCH:
                return ResearchMachine(task, search_tool=self._require_tool(SEARCH_TOOL), scraper_tool=self._require_tool(SCRAPER_TOOL), **common)
            case TaskType.ANALYSIS:
                return AnalysisMachine(task, **common)
            case TaskType.SYNTHESIS:
                return SynthesisMachine(task, **common)
            case _:
                assert_never(task.type)

    def _require_tool(self, name: str) -> Tool:
        tool = self.tools.get(name)
        if tool is None:
            raise UnknownTool(f"Tool '{name}' is not registered")
        return tool

    async def _remember_outcome(self, task: Task, recorder: StepRecorder, context: ResearchContext | None = None, error: str | None = None) -> None:
        """Store a finished task's result, or its failure, in memory keyed by the query embedding.

        Failures here are recorded as a failed memorize step and never change the task outcome.
        """
        if self.memory is None or self.embeddings is None or not self.settings.memory.enabled:
            return

        metadata = {"task_id": task.id, "task_type": task.type.value}
        try:
            vector = await self.embeddings.generate_embedding(task.query)
            if context is not None:
                await self.memory.store_research_result(context, vector, metadata)
            else:
                await self.memory.store_task_failure(task.query, error or "unknown error", vector, metadata)
        except (EmbeddingError, aiosqlite.Error, OSError) as e:
            logger.warning(f"Failed to store outcome of task {task.id} in memory: {e}")
            await recorder.record(StepKind.MEMORIZE, "Failed to store task outcome in memory", StepStatus.FAILED, error=str(e))
            return

        outcome = "result" if context is not None else "failure"
        await recorder.record(StepKind.MEMORIZE, f"Stored task {outcome} in memory", outcome=outcome)

    async def _record_history(self, task_id: str) -> None:
        if self.history is None:
            return
        snapshot = await self.registry.get(task_id)
        if snapshot is None:
            return
        try:
            await self.history.record(snapshot)
        except (aiosqlite.Error, OSError) as e:
            logger.warning(f"Failed to record history for task {task_id}: {e}")

    # --- Tools & health ---

    def get_available_tools(self) -> set[str]:
        return set(self.tools)

    def get_tool_capabilities(self, name: str) -> ToolCapability:
        """Describe a registered tool.

        Raises:
            UnknownTool: If no tool with that name is registered.
        """
        return self._require_tool(name).capability

    async def health(self) -> HealthReport:
        """Probe the LLM, memory and tools. Never raises."""
        llm_ok = await self._probe("llm", self.llm.health)
        memory_ok = await self._probe("memory", self.memory.health) if self.memory is not None else None
        tools = {name: await self._probe(name, tool.health) for name, tool in self.tools.items()}

        healthy = llm_ok and memory_ok is not False and all(tools.values())
        return HealthReport(status="healthy" if healthy else "degraded", llm=llm_ok, memory=memory_ok, tools=tools)

    @staticmethod
    async def _probe(name: str, check: Callable[[], Any]) -> bool:
        try:
            return bool(await check())
        except Exception as e:
            logger.warning(f"Health probe for {name} failed: {e}")
            return False

    async def aclose(self) -> None:
        """Close tool and embedding HTTP clients."""
        for tool in self.tools.values():
            await tool.aclose()
        if self.embeddings is not None:
            await self.embeddings.aclose()
