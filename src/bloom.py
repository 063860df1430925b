"""Bloom's taxonomy helpers shared by the writer and the pipeline.

- ``normalize_goal_weights`` validates a goal-weight mapping and turns it
  into fractions summing to 1.0.
- ``allocate_bloom_counts`` splits an integer problem count across levels
  with the largest-remainder (Hamilton) method.
- ``classify_bloom_level`` guesses the highest Bloom level a problem stem
  asks for, from a verb dictionary.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Literal

from src.errors import InvalidArgumentError

BloomLevel = Literal[
    "remember",
    "understand",
    "apply",
    "analyze",
    "evaluate",
    "create",
]

BLOOM_ORDER: tuple[BloomLevel, ...] = (
    "remember",
    "understand",
    "apply",
    "analyze",
    "evaluate",
    "create",
)
"""Bloom levels from lowest to highest cognitive demand."""

BLOOM_VERBS: dict[BloomLevel, tuple[str, ...]] = {
    "remember": (
        "define", "identify", "recall", "list", "state", "name", "label",
        "match", "select", "what is", "what are", "which", "when", "who",
        "where", "how many", "term", "stands for", "notation",
    ),
    "understand": (
        "explain", "summarize", "describe", "interpret", "why",
        "how does", "what does", "paraphrase", "classify",
        "give an example", "difference between", "means",
    ),
    "apply": (
        "solve", "use", "calculate", "apply", "add", "subtract",
        "multiply", "divide", "find", "compute", "determine", "simplify",
        "convert", "complete", "perform", "carry out", "demonstrate",
    ),
    "analyze": (
        "compare", "contrast", "categorize", "analyze", "analyse",
        "distinguish", "differentiate", "examine", "break down",
        "what relationship", "what pattern", "what effect", "infer",
        "identify the error", "trace the steps",
    ),
    "evaluate": (
        "justify", "critique", "evaluate", "assess", "judge", "defend",
        "argue", "which is best", "recommend", "rank", "do you agree",
    ),
    "create": (
        "design", "create", "construct", "generate", "compose", "produce",
        "write", "formulate", "develop", "plan",
    ),
}

_VERB_PATTERNS: dict[BloomLevel, re.Pattern[str]] = {
    level: re.compile(
        r"\b(?:" + "|".join(re.escape(verb) for verb in verbs) + r")\b",
        re.IGNORECASE,
    )
    for level, verbs in BLOOM_VERBS.items()
}


class BloomAllocationError(ValueError):
    """Largest-remainder allocation did not sum to the requested count."""


def normalize_goal_weights(goal_weights: Mapping[str, float] | None) -> dict[BloomLevel, float]:
    """Validate *goal_weights* and return fractions per Bloom level.

    Weights may be counts or fractions; only their ratios matter.  Level
    names are matched case-insensitively.  An empty mapping spreads evenly
    over all levels.

    Returns:
        A dict covering every level in ``BLOOM_ORDER`` whose values sum to 1.0.

    Raises:
        InvalidArgumentError: On unknown levels, negative or non-finite
            weights, or when every weight is zero.
    """
    if not goal_weights:
        share = 1.0 / len(BLOOM_ORDER)
        return {level: share for level in BLOOM_ORDER}

    cleaned: dict[BloomLevel, float] = {level: 0.0 for level in BLOOM_ORDER}
    for raw_level, raw_weight in goal_weights.items():
        level = str(raw_level).strip().lower()
        if level not in cleaned:
            raise InvalidArgumentError(
                f"Unknown Bloom level {raw_level!r}. "
                f"Expected one of: {', '.join(BLOOM_ORDER)}"
            )
        try:
            weight = float(raw_weight)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(
                f"Weight for {raw_level!r} must be a number, got {raw_weight!r}"
            ) from exc
        if not math.isfinite(weight) or weight < 0:
            raise InvalidArgumentError(
                f"Weight for {raw_level!r} must be a non-negative number, got {raw_weight!r}"
            )
        cleaned[level] += weight  # type: ignore[index]

    total = sum(cleaned.values())
    if total <= 0:
        raise InvalidArgumentError("At least one Bloom goal weight must be positive")
    return {level: weight / total for level, weight in cleaned.items()}


def allocate_bloom_counts(
    goal_weights: Mapping[str, float] | None,
    count: int,
) -> dict[BloomLevel, int]:
    """Distribute *count* problems across Bloom levels.

    Each level gets ``floor(fraction * count)``; the remaining problems go
    one at a time to the levels with the largest fractional parts, ties
    broken by Bloom order.

    Raises:
        InvalidArgumentError: If *count* < 1 or the weights are invalid.
        BloomAllocationError: If the result does not sum to *count*.
    """
    if count < 1:
        raise InvalidArgumentError(f"count must be >= 1, got {count}")

    fractions = normalize_goal_weights(goal_weights)
    raw = {level: fractions[level] * count for level in BLOOM_ORDER}
    result: dict[BloomLevel, int] = {level: math.floor(raw[level]) for level in BLOOM_ORDER}

    remainder = count - sum(result.values())
    by_fraction = sorted(
        BLOOM_ORDER,
        key=lambda level: (-(raw[level] - math.floor(raw[level])), BLOOM_ORDER.index(level)),
    )
    for level in by_fraction[:remainder]:
        result[level] += 1

    total = sum(result.values())
    if total != count:
        raise BloomAllocationError(
            f"Allocation sums to {total}, expected {count} (weights={dict(goal_weights or {})})"
        )
    return result


def classify_bloom_level(text: str, up_to: BloomLevel | None = None) -> BloomLevel | None:
    """Return the highest Bloom level whose verbs appear in *text*.

    Args:
        text: Problem stem.
        up_to: Optional ceiling; higher levels are not tested.

    Returns:
        The matched level, or ``None`` when no verb matches.
    """
    if not text:
        return None
    levels = BLOOM_ORDER
    if up_to is not None:
        levels = BLOOM_ORDER[: BLOOM_ORDER.index(up_to) + 1]
    for level in reversed(levels):
        if _VERB_PATTERNS[level].search(text):
            return level
    return None


def bloom_rank(level: BloomLevel) -> int:
    """Position of *level* in ``BLOOM_ORDER`` (0 = remember)."""
    return BLOOM_ORDER.index(level)
