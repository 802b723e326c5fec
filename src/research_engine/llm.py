"""Language-model collaborator used by the research pipelines."""

import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from browser_use.llm.messages import SystemMessage, UserMessage

from .exceptions import GenerationError
from .research.prompts import (
    CREDIBILITY_SYSTEM_PROMPT,
    KEY_POINTS_SYSTEM_PROMPT,
    PLANNING_SYSTEM_PROMPT,
    RELEVANCE_SYSTEM_PROMPT,
    SEARCH_OPTIMIZER_SYSTEM_PROMPT,
    SYNTHESIS_SYSTEM_PROMPT,
    get_credibility_prompt,
    get_key_points_prompt,
    get_planning_prompt,
    get_relevance_prompt,
    get_search_optimizer_prompt,
    get_synthesis_prompt,
)

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)

_NUMBERED_LINE = re.compile(r"^\s*\d+[.)]\s*")
_BULLET_LINE = re.compile(r"^\s*[-*•]\s+")
_SCORE_PATTERN = re.compile(r"(\d+)\s*/\s*10|(\d+) out of 10|score:?\s*(\d+)", re.IGNORECASE)


@dataclass
class CredibilityAssessment:
    """Credibility score (1-10) with the model's reasoning."""

    score: int
    reasoning: str


def _strip_code_fence(content: str) -> str:
    if "```json" in content:
        return content.split("```json")[1].split("```")[0].strip()
    if "```" in content:
        return content.split("```")[1].split("```")[0].strip()
    return content


class LLMService:
    """Text, classification and synthesis operations over a browser-use chat model."""

    def __init__(self, llm: "BaseChatModel"):
        self.llm = llm

    async def generate_text(self, prompt: str, system: str | None = None) -> str:
        """Run one completion and return its text.

        Raises:
            GenerationError: If the model call fails or returns no text.
        """
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(UserMessage(content=prompt))

        try:
            response = await self.llm.ainvoke(messages)
        except Exception as e:
            raise GenerationError(f"Language model call failed: {e}") from e

        completion = getattr(response, "completion", None)
        if not isinstance(completion, str):
            raise GenerationError("Language model returned no text completion")
        return completion

    async def generate_research_plan(self, query: str, max_terms: int = 3) -> list[str]:
        """Decompose a query into search terms."""
        content = await self.generate_text(get_planning_prompt(query, max_terms), system=PLANNING_SYSTEM_PROMPT)

        try:
            terms = json.loads(_strip_code_fence(content))
            if isinstance(terms, list):
                return [str(t).strip() for t in terms if str(t).strip()][:max_terms]
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse JSON from LLM response: {content[:200]}")

        # Fallback: split by newlines and clean up
        lines = [line.strip().strip("-").strip("*").strip('"').strip() for line in content.split("\n") if line.strip()]
        return [line for line in lines if len(line) > 10][:max_terms]

    async def is_content_relevant(self, content: str, query: str) -> bool:
        response = await self.generate_text(get_relevance_prompt(query, content), system=RELEVANCE_SYSTEM_PROMPT)
        return "true" in response.lower()

    async def extract_key_points(self, content: str) -> list[str]:
        """Extract the key points of a text as a list of sentences."""
        response = await self.generate_text(get_key_points_prompt(content), system=KEY_POINTS_SYSTEM_PROMPT)

        lines = response.split("\n")
        points = [_NUMBERED_LINE.sub("", line).strip() for line in lines if _NUMBERED_LINE.match(line)]
        if not points:
            points = [_BULLET_LINE.sub("", line).strip() for line in lines if _BULLET_LINE.match(line)]
        return [p for p in points if p]

    async def synthesize_findings(self, findings: list[str]) -> str:
        return await self.generate_text(get_synthesis_prompt(findings), system=SYNTHESIS_SYSTEM_PROMPT)

    async def optimize_search_query(self, query: str) -> list[str]:
        response = await self.generate_text(get_search_optimizer_prompt(query), system=SEARCH_OPTIMIZER_SYSTEM_PROMPT)
        return [line.strip() for line in response.split("\n") if line.strip()]

    async def evaluate_source_credibility(self, url: str, title: str, content: str) -> CredibilityAssessment:
        """Ask the model to rate a source; unparseable scores default to 5."""
        response = await self.generate_text(get_credibility_prompt(url, title, content), system=CREDIBILITY_SYSTEM_PROMPT)

        score = 5
        match = _SCORE_PATTERN.search(response)
        if match:
            score = int(next(g for g in match.groups() if g is not None)) or 5
        return CredibilityAssessment(score=min(max(score, 1), 10), reasoning=response)

    async def health(self) -> bool:
        """Probe the model with a minimal prompt."""
        try:
            await self.generate_text("Reply with the single word OK.")
            return True
        except GenerationError as e:
            logger.warning(f"LLM health probe failed: {e}")
            return False
