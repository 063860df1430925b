"""Unit tests for src/pipeline.py — run_generation and the Bloom check."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.errors import GenerationError
from src.pipeline import (
    BLOOM_CHECK_AGENT_NAME,
    check_bloom_coverage,
    run_generation,
)
from src.services.problem_writer import GenerationResult, MockProblemWriter, Problem
from src.tracing.trace import create_trace

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result(items: list[Problem], allocation: dict[str, int]) -> GenerationResult:
    return GenerationResult(
        topic="fractions",
        count=max(sum(allocation.values()), 1),
        allocation=allocation,
        items=items,
    )


# ---------------------------------------------------------------------------
# check_bloom_coverage
# ---------------------------------------------------------------------------


class TestCheckBloomCoverage:
    """Tests for check_bloom_coverage."""

    def test_matching_result_has_no_violations(self) -> None:
        items = [
            Problem(prompt="Solve 1/2 + 1/4.", bloom_level="apply"),
            Problem(prompt="Compare 2/3 and 3/4.", bloom_level="analyze"),
        ]
        assert check_bloom_coverage(_result(items, {"apply": 1, "analyze": 1})) == []

    def test_count_mismatch(self) -> None:
        items = [Problem(prompt="Solve 1/2 + 1/4.", bloom_level="apply")]
        violations = check_bloom_coverage(_result(items, {"apply": 1, "analyze": 1}))

        assert len(violations) == 1
        violation = violations[0]
        assert violation.kind == "count_mismatch"
        assert violation.bloom_level == "analyze"
        assert violation.expected == 1
        assert violation.actual == 0

    def test_level_drift(self) -> None:
        items = [Problem(prompt="Design a fraction puzzle.", bloom_level="remember")]
        violations = check_bloom_coverage(_result(items, {"remember": 1}))

        assert [v.kind for v in violations] == ["level_drift"]
        assert violations[0].item_index == 0
        assert violations[0].detected_level == "create"

    def test_topic_words_are_not_read_as_verbs(self) -> None:
        result = GenerationResult(
            topic="Design patterns",
            count=1,
            allocation={"remember": 1},
            items=[Problem(prompt="Define design patterns.", bloom_level="remember")],
        )
        assert check_bloom_coverage(result) == []

    def test_verbs_outside_topic_still_drift(self) -> None:
        result = GenerationResult(
            topic="Design patterns",
            count=1,
            allocation={"remember": 1},
            items=[Problem(prompt="Design a new Design patterns catalogue.", bloom_level="remember")],
        )
        assert [v.detected_level for v in check_bloom_coverage(result)] == ["create"]

    def test_lower_verbs_are_not_drift(self) -> None:
        items = [Problem(prompt="Define a numerator.", bloom_level="create")]
        assert check_bloom_coverage(_result(items, {"create": 1})) == []


# ---------------------------------------------------------------------------
# run_generation
# ---------------------------------------------------------------------------


class TestRunGeneration:
    """Tests for run_generation."""

    @pytest.mark.asyncio
    async def test_records_writer_and_bloom_check_steps(self) -> None:
        run = await run_generation(MockProblemWriter(), "fractions", {"apply": 2}, 2)

        assert run.passed
        assert [s.agent_name for s in run.trace.steps] == ["writer", BLOOM_CHECK_AGENT_NAME]
        writer_step, check_step = run.trace.steps
        assert writer_step.input["topic"] == "fractions"
        assert writer_step.input["_started_at"] == writer_step.started_at
        assert writer_step.output is run.result
        assert check_step.output == {"ok": True, "violation_count": 0}
        assert run.trace.finished_at is not None
        assert run.trace.capabilities == ["write"]

    @pytest.mark.asyncio
    async def test_mock_run_with_verb_in_topic_passes(self) -> None:
        run = await run_generation(MockProblemWriter(), "Design patterns", {}, 6)

        assert run.violations == []
        assert run.trace.steps[1].output == {"ok": True, "violation_count": 0}

    @pytest.mark.asyncio
    async def test_uses_given_trace(self) -> None:
        trace = create_trace(["write", "compare"])
        run = await run_generation(MockProblemWriter(), "fractions", {}, 6)

        other = await run_generation(MockProblemWriter(), "fractions", {}, 6, trace=trace)
        assert other.trace is trace
        assert run.trace is not trace
        assert len(trace.steps) == 2

    @pytest.mark.asyncio
    async def test_violations_are_logged_on_check_step(self) -> None:
        writer = MagicMock()
        writer.generate = AsyncMock(
            return_value=_result(
                [Problem(prompt="Design a puzzle.", bloom_level="apply")],
                {"apply": 1},
            )
        )

        run = await run_generation(writer, "fractions", {"apply": 1}, 1)

        assert not run.passed
        check_step = run.trace.steps[1]
        assert check_step.output == {"ok": False, "violation_count": 1}
        assert check_step.violations[0]["kind"] == "level_drift"
        assert check_step.errors == []

    @pytest.mark.asyncio
    async def test_writer_failure_is_recorded_and_reraised(self) -> None:
        writer = MagicMock()
        writer.generate = AsyncMock(side_effect=GenerationError("quota exceeded"))
        trace = create_trace(["write"])

        with pytest.raises(GenerationError, match="quota exceeded"):
            await run_generation(writer, "fractions", {}, 3, trace=trace)

        assert len(trace.steps) == 1
        assert trace.steps[0].output is None
        assert trace.steps[0].errors == ["quota exceeded"]
        assert trace.finished_at is not None
