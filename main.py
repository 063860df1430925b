"""Bloom Writer — CLI entry point.

Generates Bloom-aligned problems for a topic, renders them with Rich, and
appends the run's pipeline trace to the configured JSONL file.  A
``--dry-run`` mode uses the offline mock writer (no API key needed).

Usage::

    # Full run (requires GEMINI_API_KEY or an OpenAI key, see config)
    python main.py --topic "Adding fractions" --goal apply=3 --goal analyze=1

    # Dry-run with the mock writer, no external services needed
    python main.py -t "Adding fractions" -n 6 --dry-run

    # Custom config file, verbose trace snapshots
    python main.py -t "Photosynthesis" --config path/to/settings.yaml -v
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console

logger = logging.getLogger(__name__)

DEFAULT_TRACE_PATH = Path("data/traces") / "trace.jsonl"


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _parse_goal(value: str) -> tuple[str, float]:
    """Parse a ``LEVEL=WEIGHT`` goal argument."""
    level, sep, weight = value.partition("=")
    if not sep or not level.strip():
        raise argparse.ArgumentTypeError(
            f"Goal must look like LEVEL=WEIGHT (e.g. apply=2), got {value!r}"
        )
    try:
        return level.strip().lower(), float(weight)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Goal weight must be a number, got {weight!r}"
        ) from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to ``sys.argv[1:]``).

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="bloom-writer",
        description="Generate Bloom's-taxonomy aligned problems for a topic",
    )
    parser.add_argument(
        "--topic", "-t",
        type=str,
        required=True,
        help="Topic to write problems about.",
    )
    parser.add_argument(
        "--goal", "-g",
        type=_parse_goal,
        action="append",
        default=[],
        metavar="LEVEL=WEIGHT",
        help="Bloom goal weight, repeatable (e.g. --goal apply=2 --goal analyze=1).",
    )
    parser.add_argument(
        "--count", "-n",
        type=int,
        default=None,
        help="Number of problems (defaults to generation.default_count).",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/settings.yaml",
        help="Path to the configuration YAML file.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the offline mock writer instead of calling the LLM.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging and print step snapshots.",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Async runner
# ---------------------------------------------------------------------------


async def run_cli(
    *,
    topic: str,
    goal_weights: dict[str, float],
    count: int | None,
    config_path: str,
    dry_run: bool,
    verbose: bool,
    console: Console | None = None,
) -> dict[str, Any]:
    """Run one generation and return a summary dict.

    Args:
        topic: Topic to write problems about.
        goal_weights: Bloom level -> weight.
        count: Number of problems, or ``None`` for the configured default.
        config_path: Path to the YAML settings file.
        dry_run: Use the mock writer when ``True``.
        verbose: Print step snapshots.
        console: Optional Rich console (tests pass a recording console).

    Returns:
        ``{"ok", "result", "trace", "violations", "trace_path", "error"}``.
    """
    from src.config import load_settings
    from src.pipeline import run_generation
    from src.services.problem_writer import MockProblemWriter, create_problem_writer
    from src.tracing.rich_output import TraceConsole
    from src.tracing.trace import create_trace

    console = console or Console()
    output = TraceConsole(console=console, verbose=verbose)

    # ── Load configuration ─────────────────────────────────
    settings = None
    try:
        settings = load_settings(config_path)
    except FileNotFoundError:
        if not dry_run:
            console.print(f"[red]Error: Config file not found: {config_path}[/red]")
            sys.exit(1)
        console.print(
            f"[yellow]Config not found ({config_path}) — "
            "proceeding with defaults (dry-run).[/yellow]"
        )
    except ValueError as exc:
        if not dry_run:
            console.print(f"[red]Config error: {exc}[/red]")
            sys.exit(1)
        console.print(
            f"[yellow]Config validation issue — "
            f"proceeding with defaults (dry-run): {exc}[/yellow]"
        )

    # ── Build writer ───────────────────────────────────────
    if settings is None:
        max_count = 50
        count = count if count is not None else 5
        trace_path = DEFAULT_TRACE_PATH
    else:
        max_count = settings.generation.max_count
        count = count if count is not None else settings.generation.default_count
        trace_path = settings.tracing.trace_path

    if dry_run or settings is None:
        writer = MockProblemWriter(max_count=max_count)
    else:
        writer = create_problem_writer(settings)

    # ── Generate ───────────────────────────────────────────
    output.display_header(topic, goal_weights, count)
    trace = create_trace(["write"])
    summary: dict[str, Any] = {
        "ok": False,
        "result": None,
        "trace": trace,
        "violations": [],
        "trace_path": trace_path,
        "error": None,
    }

    try:
        with console.status("[bold blue]Writing problems...[/bold blue]", spinner="dots"):
            run = await run_generation(writer, topic, goal_weights, count, trace=trace)
    except Exception as exc:
        logger.debug("Generation failed", exc_info=True)
        output.display_error(exc)
        summary["error"] = exc
    else:
        output.display_problems(run.result)
        output.display_violations(run.violations)
        summary.update(ok=True, result=run.result, violations=run.violations)

    output.display_trace(trace)

    # ── Trace persistence ──────────────────────────────────
    try:
        trace.flush_to_jsonl(trace_path)
        console.print(f"[dim]Trace saved to {trace_path}[/dim]")
    except OSError as exc:
        logger.warning("Failed to persist trace: %s", exc)
        if verbose:
            console.print(f"[yellow]Trace persistence failed: {exc}[/yellow]")

    return summary


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Run Bloom Writer from the command line.

    Args:
        argv: CLI argument list.
    """
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    summary = asyncio.run(
        run_cli(
            topic=args.topic,
            goal_weights=dict(args.goal),
            count=args.count,
            config_path=args.config,
            dry_run=args.dry_run,
            verbose=args.verbose,
        )
    )

    if not summary["ok"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
