"""Exception types shared across the generation pipeline.

``InvalidArgumentError`` is raised before any side effect when a caller
passes a missing or malformed argument.  ``AgentExecutionError`` is the
base for failures that originate inside an agent; it always carries a
human-readable ``message`` so trace entries can be built without probing
arbitrary exception attributes.
"""

from __future__ import annotations


class InvalidArgumentError(ValueError):
    """A required argument is missing or invalid."""


class AgentExecutionError(RuntimeError):
    """An agent failed while doing its work.

    Attributes:
        message: Human-readable failure description.
        agent_name: Name of the agent that failed, when known.
    """

    def __init__(self, message: str, *, agent_name: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.agent_name = agent_name


class GenerationError(AgentExecutionError):
    """The generative-content provider failed to produce problems."""


def describe_error(exc: BaseException) -> str:
    """Return a non-empty message for *exc*.

    Uses ``exc.message`` for ``AgentExecutionError``, ``str(exc)``
    otherwise, and falls back to the exception class name when both are
    empty.
    """
    if isinstance(exc, AgentExecutionError) and exc.message:
        return exc.message
    text = str(exc)
    return text if text else type(exc).__name__
