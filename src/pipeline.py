"""Generation pipeline: the caller that owns a run's ``PipelineTrace``.

``run_generation`` runs the problem writer through ``run_agent`` (one
``"writer"`` step), then records a deterministic ``"bloom_check"`` step
directly with ``log_agent_step``.  The check compares what was generated
against the requested per-level allocation and flags stems whose verbs
point above their declared Bloom level.

A writer failure is recorded in the trace, the trace is closed, and the
original exception propagates to the caller.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from src.bloom import BLOOM_ORDER, bloom_rank, classify_bloom_level
from src.services.problem_writer import (
    WRITER_AGENT_NAME,
    GenerationResult,
    ProblemWriter,
)
from src.tracing.runner import run_agent
from src.tracing.trace import PipelineTrace, create_trace, log_agent_step

logger = logging.getLogger(__name__)

BLOOM_CHECK_AGENT_NAME = "bloom_check"


class BloomViolation(BaseModel):
    """A mismatch between requested and generated Bloom coverage.

    Attributes:
        kind: ``"count_mismatch"`` or ``"level_drift"``.
        bloom_level: Level the finding is about.
        message: Human-readable description.
        expected: Requested count (count mismatches only).
        actual: Generated count (count mismatches only).
        item_index: Position of the problem (level drift only).
        detected_level: Level suggested by the stem's verbs (level drift only).
    """

    kind: str
    bloom_level: str
    message: str
    expected: int | None = None
    actual: int | None = None
    item_index: int | None = None
    detected_level: str | None = None


class GenerationRun(BaseModel):
    """Everything produced by one ``run_generation`` call."""

    result: GenerationResult
    trace: PipelineTrace
    violations: list[BloomViolation] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        """``True`` when the Bloom check found nothing."""
        return not self.violations


def _strip_topic(prompt: str, topic: str) -> str:
    """Remove occurrences of *topic* from *prompt* so its words are not read as verbs."""
    if not topic.strip():
        return prompt
    return re.sub(re.escape(topic.strip()), " ", prompt, flags=re.IGNORECASE)


def check_bloom_coverage(result: GenerationResult) -> list[BloomViolation]:
    """Compare generated items against the requested allocation.

    Returns:
        One ``count_mismatch`` per level whose count differs from the
        allocation, then one ``level_drift`` per item whose stem, with the
        topic text removed, classifies above its declared level.
    """
    violations: list[BloomViolation] = []

    actual_counts = result.count_by_level()
    for level in BLOOM_ORDER:
        expected = result.allocation.get(level, 0)
        actual = actual_counts[level]
        if expected != actual:
            violations.append(
                BloomViolation(
                    kind="count_mismatch",
                    bloom_level=level,
                    expected=expected,
                    actual=actual,
                    message=f"{level}: expected {expected} problem(s), got {actual}",
                )
            )

    for index, item in enumerate(result.items):
        detected = classify_bloom_level(_strip_topic(item.prompt, result.topic))
        if detected is not None and bloom_rank(detected) > bloom_rank(item.bloom_level):
            violations.append(
                BloomViolation(
                    kind="level_drift",
                    bloom_level=item.bloom_level,
                    item_index=index,
                    detected_level=detected,
                    message=(
                        f"item {index} is tagged {item.bloom_level} "
                        f"but reads as {detected}"
                    ),
                )
            )
    return violations


async def run_generation(
    writer: ProblemWriter,
    topic: str,
    goal_weights: Mapping[str, float],
    count: int,
    *,
    trace: PipelineTrace | None = None,
) -> GenerationRun:
    """Generate problems and record the run in a trace.

    Args:
        writer: Problem writer to call.
        topic: Topic to write problems about.
        goal_weights: Bloom level -> weight.
        count: Number of problems to generate.
        trace: Existing trace to append to; a new ``["write"]`` trace is
            created when omitted.

    Returns:
        The ``GenerationRun`` with result, closed trace, and violations.

    Raises:
        Exception: Whatever the writer raised, after it was recorded.
    """
    if trace is None:
        trace = create_trace(["write"])

    request: dict[str, Any] = {
        "topic": topic,
        "goal_weights": dict(goal_weights or {}),
        "count": count,
    }

    async def _write(payload: dict[str, Any]) -> GenerationResult:
        return await writer.generate(
            payload["topic"], payload["goal_weights"], payload["count"]
        )

    try:
        result = await run_agent(trace, WRITER_AGENT_NAME, _write, request)
    except Exception:
        trace.finish()
        raise

    violations = check_bloom_coverage(result)
    log_agent_step(
        trace,
        BLOOM_CHECK_AGENT_NAME,
        {"item_count": len(result.items), "allocation": dict(result.allocation)},
        {"ok": not violations, "violation_count": len(violations)},
        [],
        [v.model_dump() for v in violations],
    )
    trace.finish()

    if violations:
        logger.warning(
            "Bloom check found %d violation(s) for topic=%r",
            len(violations),
            result.topic,
        )

    return GenerationRun(result=result, trace=trace, violations=violations)
