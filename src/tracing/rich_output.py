"""Rich console output for generation runs and their traces.

Provides ``TraceConsole`` — a display layer that uses the ``rich`` library
to render a generation request, the generated problems, and the recorded
``PipelineTrace`` (one line per step with status, timing, and a short
summary; full input/output snapshots in verbose mode).

Usage::

    out = TraceConsole()
    out.display_header("fractions", {"apply": 2}, 4)
    run = await run_generation(writer, "fractions", {"apply": 2}, 4)
    out.display_problems(run.result)
    out.display_trace(run.trace)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.tracing.trace import PipelineTrace, StepRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Step display configuration
# ---------------------------------------------------------------------------

_STEP_DISPLAY: dict[str, tuple[str, str]] = {
    # agent_name -> (display_label, rich_style)
    "writer": ("Writer", "bold green"),
    "bloom_check": ("Bloom Check", "bold yellow"),
}

_LEVEL_STYLE: dict[str, str] = {
    "remember": "cyan",
    "understand": "blue",
    "apply": "green",
    "analyze": "yellow",
    "evaluate": "magenta",
    "create": "red",
}


def _get_step_display(agent_name: str) -> tuple[str, str]:
    """Return ``(display_label, rich_style)`` for a trace step.

    Falls back to the raw *agent_name* with ``"bold"`` style.
    """
    return _STEP_DISPLAY.get(agent_name, (agent_name, "bold"))


def _attr_or_key(obj: Any, name: str, default: Any = None) -> Any:
    """Retrieve a value from *obj* by attribute or mapping key."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def summarize_step(step: StepRecord) -> str:
    """Short, human-readable summary of a step's outcome.

    Args:
        step: A recorded trace step.

    Returns:
        The first error for failed steps, otherwise a summary of key
        output fields, or ``""`` if nothing notable.
    """
    if step.errors:
        return step.errors[0][:80]
    output = step.output
    if output is None:
        return ""

    items = _attr_or_key(output, "items")
    if isinstance(items, list):
        source = _attr_or_key(output, "source", "")
        suffix = f" ({source})" if source else ""
        return f"{len(items)} problem(s){suffix}"

    violation_count = _attr_or_key(output, "violation_count")
    if violation_count is not None:
        return "ok" if not violation_count else f"{violation_count} violation(s)"
    return ""


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


# ---------------------------------------------------------------------------
# TraceConsole
# ---------------------------------------------------------------------------


class TraceConsole:
    """Rich-powered display for generation runs.

    Attributes:
        console: The ``rich.Console`` used for rendering.
        verbose: Whether step snapshots are printed.
    """

    def __init__(
        self,
        *,
        console: Console | None = None,
        verbose: bool = False,
    ) -> None:
        self._console = console or Console()
        self._verbose = verbose

    @property
    def console(self) -> Console:
        """The Rich Console instance."""
        return self._console

    @property
    def verbose(self) -> bool:
        """Whether verbose output is enabled."""
        return self._verbose

    # -- Request -------------------------------------------------------------

    def display_header(
        self,
        topic: str,
        goal_weights: Mapping[str, float],
        count: int,
    ) -> None:
        """Display the generation request panel."""
        goals = ", ".join(f"{level}={weight:g}" for level, weight in goal_weights.items())
        body = Text(topic, style="bold white")
        body.append(f"\n{count} problem(s)", style="dim")
        body.append(f"  goals: {goals or 'even spread'}", style="dim")

        panel = Panel(
            body,
            title="[bold]Bloom Writer[/bold]",
            subtitle="[dim]Problem generation[/dim]",
            border_style="blue",
            padding=(0, 2),
        )
        self._console.print(panel)
        self._console.print()

    # -- Results -------------------------------------------------------------

    def display_problems(self, result: Any) -> None:
        """Render generated problems as a table.

        Args:
            result: A ``GenerationResult`` (or any object with ``items``).
        """
        items = _attr_or_key(result, "items", []) or []

        table = Table(title="Problems", show_lines=True, expand=True)
        table.add_column("#", justify="right", style="dim", width=3)
        table.add_column("Level", width=11)
        table.add_column("Problem", ratio=3)
        table.add_column("Answer", ratio=2, style="dim")

        for index, item in enumerate(items, start=1):
            level = _attr_or_key(item, "bloom_level", "")
            style = _LEVEL_STYLE.get(level, "white")
            table.add_row(
                str(index),
                f"[{style}]{level}[/{style}]",
                Text(_attr_or_key(item, "prompt", "") or ""),
                Text(_attr_or_key(item, "answer", "") or ""),
            )

        self._console.print(table)

    def display_violations(self, violations: list[Any]) -> None:
        """List Bloom check findings, if any."""
        if not violations:
            return
        self._console.print()
        self._console.print(f"  [yellow]Bloom check: {len(violations)} finding(s)[/yellow]")
        for violation in violations:
            message = _attr_or_key(violation, "message", str(violation))
            self._console.print(f"    [yellow]-[/yellow] {escape(str(message))}")

    def display_error(self, error: BaseException) -> None:
        """Display a failed run."""
        self._console.print()
        panel = Panel(
            Text(str(error) or type(error).__name__),
            title="[bold red]Generation failed[/bold red]",
            border_style="red",
            padding=(1, 2),
        )
        self._console.print(panel)

    # -- Trace ---------------------------------------------------------------

    def display_step(self, index: int, step: StepRecord) -> None:
        """Print one trace step line (and snapshots in verbose mode)."""
        label, style = _get_step_display(step.agent_name)
        mark = "[green]v[/green]" if step.succeeded else "[red]x[/red]"
        summary = summarize_step(step)
        summary_style = "dim italic" if step.succeeded else "red"
        summary_str = (
            f"  [{summary_style}]{escape(summary)}[/{summary_style}]" if summary else ""
        )

        self._console.print(
            f"  {mark} [dim]{index:>2}.[/dim] [{style}]{escape(label):<18s}[/{style}]"
            f" [dim]{step.duration_ms:>7d}ms[/dim]{summary_str}",
        )

        if self._verbose:
            for title, value in (("input", step.input), ("output", step.output)):
                body = json.dumps(_to_jsonable(value), indent=2, default=str)
                self._console.print(
                    Panel(Text(body), title=f"[dim]{title}[/dim]", border_style="dim")
                )

    def display_trace(self, trace: PipelineTrace) -> None:
        """Print every step of *trace* followed by a run summary line."""
        self._console.print()
        self._console.print(f"  [bold]Pipeline trace[/bold] [dim]{trace.run_id}[/dim]")
        for index, step in enumerate(trace.steps, start=1):
            self.display_step(index, step)

        failed = len(trace.failed_steps())
        parts: list[str] = [f"{len(trace.steps)} step(s)"]
        if trace.duration_ms is not None:
            parts.insert(0, f"[bold]{trace.duration_ms}ms[/bold] total")
        if failed:
            parts.append(f"[red]{failed} failed[/red]")

        self._console.print()
        self._console.print(f"  {' | '.join(parts)}")
        self._console.print()
        logger.debug("Rendered trace %s (%d steps)", trace.run_id, len(trace.steps))
