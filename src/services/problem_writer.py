"""Problem writer service: generate Bloom-aligned problems for a topic.

Exposes the ``ProblemWriter`` protocol — ``generate(topic, goal_weights,
count)`` — and two implementations:

- ``LLMProblemWriter`` prompts a LangChain chat model and extracts a
  ``GeneratedProblemSet`` via ``with_structured_output``.
- ``MockProblemWriter`` builds deterministic problems offline; used for
  ``--dry-run`` and tests.

``create_problem_writer`` picks one from ``Settings``.  The writer only
produces content; timing and trace recording are done by the caller
through ``run_agent``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Literal, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from src.bloom import BLOOM_ORDER, BloomLevel, allocate_bloom_counts
from src.errors import GenerationError, InvalidArgumentError
from src.prompts.problem_writer import (
    WRITER_SYSTEM_PROMPT,
    WRITER_USER_TEMPLATE,
    format_allocation,
)

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel

    from src.config import Settings

logger = logging.getLogger(__name__)

WRITER_AGENT_NAME = "writer"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Problem(BaseModel):
    """A single generated problem.

    Attributes:
        prompt: The problem stem shown to students.
        bloom_level: Bloom level the problem targets.
        answer: Model answer.
        explanation: Optional worked explanation.
    """

    prompt: str = Field(min_length=1, description="Problem stem")
    bloom_level: BloomLevel = Field(description="Targeted Bloom level")
    answer: str = Field(default="", description="Model answer")
    explanation: str | None = Field(default=None, description="Worked explanation")


class GeneratedProblemSet(BaseModel):
    """Structured output schema for the writer LLM call."""

    items: list[Problem] = Field(
        default_factory=list,
        description="Generated problems, one per requested slot",
    )


class GenerationResult(BaseModel):
    """Outcome of one ``generate`` call.

    Attributes:
        topic: Topic the problems were written for.
        count: Number of problems requested.
        goal_weights: Goal weights as given by the caller.
        allocation: Problems requested per Bloom level.
        items: Generated problems.
        source: ``"llm"`` or ``"mock"``.
        duration_ms: Time spent inside the writer.
    """

    topic: str
    count: int = Field(ge=1)
    goal_weights: dict[str, float] = Field(default_factory=dict)
    allocation: dict[BloomLevel, int] = Field(default_factory=dict)
    items: list[Problem] = Field(default_factory=list)
    source: Literal["llm", "mock"] = "llm"
    duration_ms: float = Field(default=0.0, ge=0)

    def count_by_level(self) -> dict[BloomLevel, int]:
        """Number of generated items per Bloom level (all levels present)."""
        counts: dict[BloomLevel, int] = {level: 0 for level in BLOOM_ORDER}
        for item in self.items:
            counts[item.bloom_level] += 1
        return counts


class ProblemWriter(Protocol):
    """Async capability that turns a topic and Bloom goals into problems."""

    async def generate(
        self,
        topic: str,
        goal_weights: Mapping[str, float],
        count: int,
    ) -> GenerationResult:
        """Generate *count* problems about *topic*."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_request(
    topic: str,
    goal_weights: Mapping[str, float] | None,
    count: int,
    max_count: int,
) -> tuple[str, dict[BloomLevel, int]]:
    """Check a generation request and return ``(topic, allocation)``."""
    if not isinstance(topic, str) or not topic.strip():
        raise InvalidArgumentError("topic must be a non-empty string")
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidArgumentError(f"count must be an integer, got {count!r}")
    if not 1 <= count <= max_count:
        raise InvalidArgumentError(f"count must be between 1 and {max_count}, got {count}")
    return topic.strip(), allocate_bloom_counts(goal_weights, count)


# ---------------------------------------------------------------------------
# LLM-backed writer
# ---------------------------------------------------------------------------


class LLMProblemWriter:
    """Problem writer backed by a LangChain chat model.

    Args:
        llm: Chat model supporting ``with_structured_output``.
        max_count: Largest accepted problem count.
    """

    def __init__(self, llm: BaseChatModel, *, max_count: int = 50) -> None:
        self._llm = llm
        self._max_count = max_count

    async def generate(
        self,
        topic: str,
        goal_weights: Mapping[str, float],
        count: int,
    ) -> GenerationResult:
        """Generate problems via the chat model.

        Raises:
            InvalidArgumentError: If the request is invalid.
            GenerationError: If the provider call fails.
        """
        topic, allocation = _validate_request(topic, goal_weights, count, self._max_count)

        messages = [
            SystemMessage(content=WRITER_SYSTEM_PROMPT),
            HumanMessage(
                content=WRITER_USER_TEMPLATE.format(
                    topic=topic,
                    count=count,
                    allocation=format_allocation(allocation),
                )
            ),
        ]

        logger.info("Writer: requesting %d problem(s) for topic=%r", count, topic[:80])

        structured_llm = self._llm.with_structured_output(GeneratedProblemSet)
        t0 = time.perf_counter()
        try:
            generated: GeneratedProblemSet = await structured_llm.ainvoke(messages)
        except Exception as exc:
            raise GenerationError(
                f"Problem generation failed: {exc}",
                agent_name=WRITER_AGENT_NAME,
            ) from exc
        llm_call_ms = (time.perf_counter() - t0) * 1000

        if len(generated.items) != count:
            logger.warning(
                "Writer returned %d item(s) but %d were requested; keeping partial set",
                len(generated.items),
                count,
            )

        return GenerationResult(
            topic=topic,
            count=count,
            goal_weights=dict(goal_weights or {}),
            allocation=allocation,
            items=list(generated.items),
            source="llm",
            duration_ms=llm_call_ms,
        )


# ---------------------------------------------------------------------------
# Offline writer
# ---------------------------------------------------------------------------

_MOCK_TEMPLATES: dict[BloomLevel, tuple[str, str]] = {
    "remember": (
        "Define {topic} and state one fact about it. (#{n})",
        "A short definition of {topic} with one supporting fact.",
    ),
    "understand": (
        "Explain {topic} in your own words. (#{n})",
        "A plain-language account of the main idea behind {topic}.",
    ),
    "apply": (
        "Solve a short problem that relies on {topic}. (#{n})",
        "A worked solution applying {topic} step by step.",
    ),
    "analyze": (
        "Compare two examples of {topic} and infer what they share. (#{n})",
        "The shared structure of both examples of {topic}.",
    ),
    "evaluate": (
        "Justify whether a given solution about {topic} is correct. (#{n})",
        "A verdict on the solution with reasons grounded in {topic}.",
    ),
    "create": (
        "Design a new problem about {topic} and provide its solution. (#{n})",
        "An original problem on {topic} together with a full solution.",
    ),
}


class MockProblemWriter:
    """Deterministic writer that needs no network access."""

    def __init__(self, *, max_count: int = 50) -> None:
        self._max_count = max_count

    async def generate(
        self,
        topic: str,
        goal_weights: Mapping[str, float],
        count: int,
    ) -> GenerationResult:
        topic, allocation = _validate_request(topic, goal_weights, count, self._max_count)

        items: list[Problem] = []
        n = 0
        for level in BLOOM_ORDER:
            stem, answer = _MOCK_TEMPLATES[level]
            for _ in range(allocation[level]):
                n += 1
                items.append(
                    Problem(
                        prompt=stem.format(topic=topic, n=n),
                        bloom_level=level,
                        answer=answer.format(topic=topic),
                    )
                )

        logger.debug("Mock writer produced %d problem(s) for %r", len(items), topic)
        return GenerationResult(
            topic=topic,
            count=count,
            goal_weights=dict(goal_weights or {}),
            allocation=allocation,
            items=items,
            source="mock",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_problem_writer(settings: Settings) -> ProblemWriter:
    """Build the writer selected by ``settings.llm.provider``."""
    max_count = settings.generation.max_count
    if settings.llm.provider == "mock":
        logger.info("Using mock problem writer")
        return MockProblemWriter(max_count=max_count)

    from src.llm.client import create_llm

    return LLMProblemWriter(create_llm(settings.llm), max_count=max_count)
