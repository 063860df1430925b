"""Unit tests for src/tracing/rich_output.py — TraceConsole.

Verifies that:

- ``_get_step_display`` returns labels for known steps and falls back for
  unknown agent names.
- ``summarize_step`` reports the first error, problem counts, or Bloom
  check results, and handles missing output.
- ``_attr_or_key`` works with Pydantic models and plain dicts.
- ``display_header`` / ``display_problems`` / ``display_violations`` /
  ``display_error`` render the expected text.
- ``display_trace`` lists each step with status and a run summary line;
  verbose mode adds input/output snapshots.
- Rich markup in error messages is printed literally.

No real API calls or external dependencies.
"""

from __future__ import annotations

import io

from rich.console import Console

from src.pipeline import BloomViolation
from src.services.problem_writer import GenerationResult, Problem
from src.tracing.rich_output import (
    TraceConsole,
    _attr_or_key,
    _get_step_display,
    summarize_step,
)
from src.tracing.trace import StepRecord, create_trace, log_agent_step

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_console() -> Console:
    """Create a Rich Console that captures plain output for assertions."""
    return Console(file=io.StringIO(), width=120)


def _get_output(console: Console) -> str:
    """Extract printed text from a Console backed by StringIO."""
    return console.file.getvalue()  # type: ignore[union-attr]


def _result() -> GenerationResult:
    return GenerationResult(
        topic="fractions",
        count=2,
        allocation={"apply": 1, "create": 1},
        items=[
            Problem(prompt="Solve 1/2 + 1/4.", bloom_level="apply", answer="3/4"),
            Problem(prompt="Design a puzzle.", bloom_level="create", answer="Any"),
        ],
        source="mock",
    )


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


class TestGetStepDisplay:
    """Tests for the step display lookup helper."""

    def test_known_steps(self) -> None:
        assert _get_step_display("writer")[0] == "Writer"
        assert _get_step_display("bloom_check")[0] == "Bloom Check"

    def test_unknown_step_falls_back(self) -> None:
        assert _get_step_display("refiner") == ("refiner", "bold")


class TestAttrOrKey:
    """Tests for _attr_or_key."""

    def test_model_attribute(self) -> None:
        assert _attr_or_key(_result(), "topic") == "fractions"

    def test_dict_key(self) -> None:
        assert _attr_or_key({"topic": "x"}, "topic") == "x"

    def test_default(self) -> None:
        assert _attr_or_key({}, "missing", 3) == 3
        assert _attr_or_key(object(), "missing") is None


class TestSummarizeStep:
    """Tests for summarize_step."""

    def test_error_wins(self) -> None:
        step = StepRecord(agent_name="writer", errors=["quota exceeded", "other"])
        assert summarize_step(step) == "quota exceeded"

    def test_long_error_is_truncated(self) -> None:
        step = StepRecord(agent_name="writer", errors=["x" * 200])
        assert len(summarize_step(step)) == 80

    def test_problem_count(self) -> None:
        step = StepRecord(agent_name="writer", output=_result())
        assert summarize_step(step) == "2 problem(s) (mock)"

    def test_problem_count_from_dict(self) -> None:
        step = StepRecord(agent_name="writer", output={"items": [1, 2, 3]})
        assert summarize_step(step) == "3 problem(s)"

    def test_bloom_check(self) -> None:
        ok = StepRecord(agent_name="bloom_check", output={"ok": True, "violation_count": 0})
        bad = StepRecord(agent_name="bloom_check", output={"ok": False, "violation_count": 2})
        assert summarize_step(ok) == "ok"
        assert summarize_step(bad) == "2 violation(s)"

    def test_no_output(self) -> None:
        assert summarize_step(StepRecord(agent_name="writer")) == ""
        assert summarize_step(StepRecord(agent_name="writer", output=42)) == ""


# ---------------------------------------------------------------------------
# TraceConsole
# ---------------------------------------------------------------------------


class TestTraceConsole:
    """Tests for TraceConsole rendering."""

    def test_properties(self) -> None:
        console = _make_console()
        out = TraceConsole(console=console, verbose=True)
        assert out.console is console
        assert out.verbose is True

    def test_display_header(self) -> None:
        console = _make_console()
        TraceConsole(console=console).display_header("fractions", {"apply": 2}, 4)

        text = _get_output(console)
        assert "Bloom Writer" in text
        assert "fractions" in text
        assert "4 problem(s)" in text
        assert "apply=2" in text

    def test_display_header_without_goals(self) -> None:
        console = _make_console()
        TraceConsole(console=console).display_header("fractions", {}, 6)
        assert "even spread" in _get_output(console)

    def test_display_problems(self) -> None:
        console = _make_console()
        TraceConsole(console=console).display_problems(_result())

        text = _get_output(console)
        assert "Problems" in text
        assert "Solve 1/2 + 1/4." in text
        assert "create" in text
        assert "3/4" in text

    def test_display_violations(self) -> None:
        console = _make_console()
        violation = BloomViolation(
            kind="count_mismatch",
            bloom_level="apply",
            message="apply: expected 2 problem(s), got 1",
        )
        TraceConsole(console=console).display_violations([violation])

        text = _get_output(console)
        assert "1 finding(s)" in text
        assert "apply: expected 2 problem(s), got 1" in text

    def test_display_violations_empty_prints_nothing(self) -> None:
        console = _make_console()
        TraceConsole(console=console).display_violations([])
        assert _get_output(console) == ""

    def test_display_error_keeps_markup_literal(self) -> None:
        console = _make_console()
        TraceConsole(console=console).display_error(RuntimeError("bad [red]key[/red]"))

        text = _get_output(console)
        assert "Generation failed" in text
        assert "bad [red]key[/red]" in text

    def test_display_trace(self) -> None:
        trace = create_trace(["write"])
        log_agent_step(trace, "writer", {"topic": "fractions"}, _result(), [],
                       started_at=1_000, finished_at=1_120)
        log_agent_step(trace, "bloom_check", {}, None, ["[bold]boom[/bold]"])
        trace.finish()

        console = _make_console()
        TraceConsole(console=console).display_trace(trace)

        text = _get_output(console)
        assert trace.run_id in text
        assert "Writer" in text
        assert "120ms" in text
        assert "2 problem(s) (mock)" in text
        assert "[bold]boom[/bold]" in text
        assert "2 step(s)" in text
        assert "1 failed" in text
        assert "total" in text

    def test_display_trace_open_run_has_no_total(self) -> None:
        trace = create_trace()
        console = _make_console()
        TraceConsole(console=console).display_trace(trace)

        text = _get_output(console)
        assert "0 step(s)" in text
        assert "total" not in text

    def test_verbose_prints_snapshots(self) -> None:
        trace = create_trace()
        log_agent_step(trace, "writer", {"topic": "fractions"}, {"items": []}, [])

        quiet_console = _make_console()
        TraceConsole(console=quiet_console).display_trace(trace)
        assert '"topic"' not in _get_output(quiet_console)

        console = _make_console()
        TraceConsole(console=console, verbose=True).display_trace(trace)
        text = _get_output(console)
        assert '"topic": "fractions"' in text
        assert "input" in text
        assert "output" in text
