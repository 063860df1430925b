"""Agent runner: time one async agent call and record it in the trace.

``run_agent`` awaits a single-argument coroutine function, then appends
exactly one ``StepRecord`` to the caller's ``PipelineTrace`` whether the
call succeeded or failed.  The wrapper is transparent: the caller gets the
agent's return value, or the agent's original exception re-raised after
it has been recorded.

Usage::

    trace = create_trace(["write"])
    result = await run_agent(trace, "writer", write_problems, {"topic": "fractions"})
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from src.errors import InvalidArgumentError, describe_error
from src.tracing.trace import PipelineTrace, log_agent_step, now_ms

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

STARTED_AT_KEY = "_started_at"
"""Key merged into mapping inputs to carry the start timestamp."""


def build_input_snapshot(input: Any, started_at: int) -> dict[str, Any]:
    """Build the input snapshot stored in the trace.

    Mapping inputs are shallow-copied with ``_started_at`` merged in; the
    caller's mapping is not mutated.  Any other value is wrapped as
    ``{"payload": input, "started_at": started_at}``.

    Args:
        input: The value passed to the agent.
        started_at: Invocation start in epoch milliseconds.

    Returns:
        A new dict suitable for ``StepRecord.input``.
    """
    if isinstance(input, Mapping):
        return {**input, STARTED_AT_KEY: started_at}
    return {"payload": input, "started_at": started_at}


async def run_agent(
    trace: PipelineTrace,
    agent_name: str,
    agent_fn: Callable[[InputT], Awaitable[OutputT]],
    input: InputT,
) -> OutputT:
    """Invoke *agent_fn* once with *input* and record the call in *trace*.

    Args:
        trace: Trace owned by the caller; receives exactly one new step.
        agent_name: Non-empty name identifying the agent.
        agent_fn: Async function taking *input*.
        input: Argument for *agent_fn*.

    Returns:
        Whatever *agent_fn* returned.

    Raises:
        InvalidArgumentError: If *trace* or *agent_fn* is missing or
            *agent_name* is empty.  Nothing is recorded in that case.
        Exception: Any exception raised by *agent_fn*, unchanged, after a
            failure step has been recorded.
    """
    if trace is None:
        raise InvalidArgumentError("trace is required")
    if agent_fn is None or not callable(agent_fn):
        raise InvalidArgumentError("agent_fn must be a callable")
    if not isinstance(agent_name, str) or not agent_name.strip():
        raise InvalidArgumentError("agent_name must be a non-empty string")

    started_at = now_ms()
    logger.debug("Agent %s started (run=%s)", agent_name, trace.run_id)

    try:
        output = await agent_fn(input)
    except Exception as exc:
        message = describe_error(exc)
        finished_at = now_ms()
        log_agent_step(
            trace,
            agent_name,
            build_input_snapshot(input, started_at),
            None,
            [message],
            started_at=started_at,
            finished_at=finished_at,
        )
        logger.warning(
            "Agent %s failed after %d ms: %s",
            agent_name,
            finished_at - started_at,
            message,
        )
        raise

    finished_at = now_ms()
    log_agent_step(
        trace,
        agent_name,
        build_input_snapshot(input, started_at),
        output,
        [],
        started_at=started_at,
        finished_at=finished_at,
    )
    logger.info("Agent %s finished in %d ms", agent_name, finished_at - started_at)
    return output
