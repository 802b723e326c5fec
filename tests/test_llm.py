"""Tests for the language-model collaborator."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from research_engine.exceptions import GenerationError
from research_engine.llm import LLMService


def make_service(*completions: str) -> tuple[LLMService, MagicMock]:
    chat_model = MagicMock()
    chat_model.ainvoke = AsyncMock(side_effect=[SimpleNamespace(completion=c) for c in completions])
    return LLMService(chat_model), chat_model


class TestGenerateText:
    """Raw completions and error mapping."""

    async def test_system_and_user_messages(self):
        service, chat_model = make_service("hello")

        assert await service.generate_text("prompt", system="be brief") == "hello"

        messages = chat_model.ainvoke.call_args.args[0]
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[1].content == "prompt"

    async def test_provider_failure_is_wrapped(self):
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))
        service = LLMService(chat_model)

        with pytest.raises(GenerationError, match="rate limited") as exc_info:
            await service.generate_text("prompt")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_missing_completion(self):
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(return_value=SimpleNamespace(completion=None))

        with pytest.raises(GenerationError):
            await LLMService(chat_model).generate_text("prompt")


class TestResearchPlan:
    """Search-term planning."""

    async def test_json_array(self):
        service, _ = make_service('["coral bleaching causes", "reef restoration methods", "ocean warming data", "extra"]')
        assert await service.generate_research_plan("coral reefs", max_terms=3) == [
            "coral bleaching causes",
            "reef restoration methods",
            "ocean warming data",
        ]

    async def test_code_fenced_json(self):
        service, _ = make_service('```json\n["coral bleaching causes"]\n```')
        assert await service.generate_research_plan("coral reefs") == ["coral bleaching causes"]

    async def test_newline_fallback(self):
        service, _ = make_service("- coral bleaching causes\n- short\n* reef restoration methods")
        assert await service.generate_research_plan("coral reefs") == ["coral bleaching causes", "reef restoration methods"]


class TestClassificationAndExtraction:
    """Relevance, key points, credibility."""

    @pytest.mark.parametrize(("completion", "expected"), [("true", True), ("True.", True), ("false", False), ("no", False)])
    async def test_relevance(self, completion, expected):
        service, _ = make_service(completion)
        assert await service.is_content_relevant("content", "query") is expected

    async def test_numbered_key_points(self):
        service, _ = make_service("Key points:\n1. Heat stress drives bleaching\n2) Recovery takes a decade\n\nThanks")
        assert await service.extract_key_points("text") == ["Heat stress drives bleaching", "Recovery takes a decade"]

    async def test_bulleted_key_points(self):
        service, _ = make_service("- Heat stress drives bleaching\n* Recovery takes a decade")
        assert await service.extract_key_points("text") == ["Heat stress drives bleaching", "Recovery takes a decade"]

    async def test_no_key_points(self):
        service, _ = make_service("Nothing notable here.")
        assert await service.extract_key_points("text") == []

    @pytest.mark.parametrize(
        ("completion", "score"),
        [("Score: 8/10 - reputable journal", 8), ("I rate it 3 out of 10", 3), ("No number given", 5), ("Score: 15", 10), ("0/10", 5)],
    )
    async def test_credibility(self, completion, score):
        service, _ = make_service(completion)
        assessment = await service.evaluate_source_credibility("https://reef.example/", "Reef", "content")
        assert assessment.score == score
        assert assessment.reasoning == completion

    async def test_optimize_search_query(self):
        service, _ = make_service("coral bleaching 2024\n\nreef heat stress study\n")
        assert await service.optimize_search_query("coral") == ["coral bleaching 2024", "reef heat stress study"]

    async def test_synthesize(self):
        service, chat_model = make_service("Narrative.")
        assert await service.synthesize_findings(["a", "b"]) == "Narrative."
        prompt = chat_model.ainvoke.call_args.args[0][-1].content
        assert "a" in prompt and "b" in prompt


class TestHealth:
    async def test_healthy(self):
        service, _ = make_service("OK")
        assert await service.health() is True

    async def test_unhealthy(self):
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(side_effect=ConnectionError("refused"))
        assert await LLMService(chat_model).health() is False
