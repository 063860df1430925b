"""Tracing: PipelineTrace + agent runner + JSONL output + Rich rendering."""

from src.tracing.rich_output import TraceConsole
from src.tracing.runner import build_input_snapshot, run_agent
from src.tracing.trace import (
    PipelineTrace,
    StepRecord,
    create_trace,
    log_agent_step,
)

__all__ = [
    "PipelineTrace",
    "StepRecord",
    "TraceConsole",
    "build_input_snapshot",
    "create_trace",
    "log_agent_step",
    "run_agent",
]
