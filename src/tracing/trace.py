"""Pipeline trace: ordered, append-only record of agent invocations.

Provides the ``StepRecord`` and ``PipelineTrace`` Pydantic models, the
``create_trace`` factory, and ``log_agent_step`` — the single append
operation used by the agent runner and by callers that record
deterministic steps (e.g. validation) directly.

A trace lives only as long as the generation run that owns it.  It can be
appended to a JSONL file for offline inspection with
``PipelineTrace.flush_to_jsonl``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from src.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

Capability = Literal["write", "playtest", "compare"]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Step record
# ---------------------------------------------------------------------------


class StepRecord(BaseModel):
    """Record of a single agent invocation.

    Attributes:
        agent_name: Name of the agent (e.g. ``"writer"``).
        input: Snapshot of the agent input, including its start timestamp.
        output: Agent output on success, ``None`` on failure.
        errors: Failure messages; empty on success.
        violations: Structured findings attached by validation steps.
        started_at: Epoch ms when the invocation started.
        finished_at: Epoch ms when the invocation settled.
        duration_ms: ``finished_at - started_at``.
    """

    agent_name: str = Field(min_length=1, description="Agent name")
    input: Any = Field(default=None, description="Input snapshot")
    output: Any = Field(default=None, description="Output value or None")
    errors: list[str] = Field(default_factory=list, description="Error messages")
    violations: list[Any] = Field(
        default_factory=list,
        description="Structured findings from validation steps",
    )
    started_at: int = Field(default_factory=now_ms, description="Start (epoch ms)")
    finished_at: int = Field(default_factory=now_ms, description="End (epoch ms)")
    duration_ms: int = Field(default=0, ge=0, description="Duration in ms")

    @model_validator(mode="after")
    def _check_timing(self) -> "StepRecord":
        if self.finished_at < self.started_at:
            raise ValueError("finished_at must not precede started_at")
        return self

    @property
    def succeeded(self) -> bool:
        """``True`` when the step recorded no errors."""
        return not self.errors


# ---------------------------------------------------------------------------
# Pipeline trace
# ---------------------------------------------------------------------------


class PipelineTrace(BaseModel):
    """All steps recorded during one generation run.

    Steps are only ever appended (see ``log_agent_step``); the sequence is
    ordered by append time.  Appends take an internal lock so that threads
    sharing a trace still produce one atomic append per call.
    """

    run_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique run identifier (UUID4)",
    )
    capabilities: list[Capability] = Field(
        default_factory=list,
        description="Pipeline capabilities enabled for this run",
    )
    steps: list[StepRecord] = Field(
        default_factory=list,
        description="Ordered step records",
    )
    started_at: int = Field(default_factory=now_ms, description="Run start (epoch ms)")
    finished_at: int | None = Field(default=None, description="Run end (epoch ms)")

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def append(self, step: StepRecord) -> None:
        """Append *step* to the trace."""
        with self._lock:
            self.steps.append(step)

    def finish(self) -> None:
        """Stamp ``finished_at`` with the current time."""
        self.finished_at = now_ms()

    @property
    def duration_ms(self) -> int | None:
        """Run duration, or ``None`` while the run is still open."""
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def failed_steps(self) -> list[StepRecord]:
        """Steps that recorded at least one error."""
        return [step for step in self.steps if step.errors]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_jsonl_record(self) -> dict[str, Any]:
        """Serialize the trace to a JSON-compatible dictionary.

        Nested models become plain dicts; values JSON cannot represent
        (arbitrary agent outputs) are stored as their ``str()``.
        """
        return json.loads(json.dumps(self.model_dump(), ensure_ascii=False, default=str))

    def flush_to_jsonl(self, path: str | Path) -> Path:
        """Append this trace as a single JSON line to *path*.

        Parent directories are created when missing.

        Args:
            path: Destination JSONL file path.

        Returns:
            The ``Path`` that was written to.
        """
        resolved = Path(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)

        line = json.dumps(self.to_jsonl_record(), ensure_ascii=False)

        with resolved.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

        logger.debug("Trace %s flushed to %s", self.run_id, resolved)
        return resolved


def create_trace(capabilities: list[Capability] | None = None) -> PipelineTrace:
    """Create an empty ``PipelineTrace`` for a new run."""
    return PipelineTrace(capabilities=list(capabilities or []))


def log_agent_step(
    trace: PipelineTrace,
    agent_name: str,
    input_snapshot: Any,
    output: Any,
    errors: list[str] | None = None,
    violations: list[Any] | None = None,
    *,
    started_at: int | None = None,
    finished_at: int | None = None,
) -> None:
    """Append a ``StepRecord`` built from the given values to *trace*.

    Every call appends exactly one record; existing records are never
    touched.  When no timing is given the step is stamped "now" with zero
    duration.

    Raises:
        InvalidArgumentError: If *trace* is ``None`` or *agent_name* is
            not a non-empty string.
    """
    if trace is None:
        raise InvalidArgumentError("trace is required")
    if not isinstance(agent_name, str) or not agent_name.strip():
        raise InvalidArgumentError("agent_name must be a non-empty string")

    finished = finished_at if finished_at is not None else now_ms()
    started = started_at if started_at is not None else finished
    # Wall clock may step backwards between start and finish.
    finished = max(finished, started)

    step = StepRecord(
        agent_name=agent_name,
        input=input_snapshot,
        output=output,
        errors=list(errors or []),
        violations=list(violations or []),
        started_at=started,
        finished_at=finished,
        duration_ms=finished - started,
    )
    trace.append(step)
