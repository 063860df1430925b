"""Prompt templates for the problem writer.

The writer receives a topic, an exact number of problems per Bloom level,
and returns a structured ``GeneratedProblemSet`` — one problem per slot,
each tagged with the Bloom level it targets.
"""

from __future__ import annotations

from collections.abc import Mapping

# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

WRITER_SYSTEM_PROMPT = """\
You are an experienced educator who writes assessment problems.  Each \
problem targets exactly one level of Bloom's taxonomy:

| Level | What the student does |
|-------|-----------------------|
| **remember** | Recall facts, terms, definitions. |
| **understand** | Explain or describe an idea in their own words. |
| **apply** | Use a procedure to solve a concrete problem. |
| **analyze** | Break information apart, compare, find relationships. |
| **evaluate** | Judge, justify, or critique a claim or solution. |
| **create** | Design or produce something new. |

## Rules

1. Write **exactly** the number of problems requested for each level.
2. Open each problem stem with a verb that matches its level \
(e.g. "Define", "Explain", "Solve", "Compare", "Justify", "Design").
3. Every problem must be answerable without external materials.
4. Give a concise model answer for every problem.
5. Do not number the problems and do not repeat a problem.\
"""

# ---------------------------------------------------------------------------
# User prompt template
# ---------------------------------------------------------------------------

WRITER_USER_TEMPLATE = """\
Topic: {topic}

Total problems: {count}

Problems per Bloom level:
{allocation}

Write the problems now.\
"""


def format_allocation(allocation: Mapping[str, int]) -> str:
    """Render a per-level allocation as a bullet list, skipping zero levels."""
    lines = [f"- {level}: {n}" for level, n in allocation.items() if n > 0]
    return "\n".join(lines) if lines else "- (none)"
