"""Token estimation and output-token budgeting."""

import math
from collections.abc import Iterable

DEFAULT_DESIRED_MAX = 8096
DEFAULT_RESERVE = 512


def approx_tokens(text: str | None) -> int:
    """Rough estimate: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def budget_output_tokens(
    context_window: int,
    inputs: Iterable[str | None],
    desired_max: int = DEFAULT_DESIRED_MAX,
    reserve: int = DEFAULT_RESERVE,
) -> int:
    """Largest output budget that fits the context window, capped at desired_max."""
    input_tokens = sum(approx_tokens(s) for s in inputs)
    headroom = max(0, context_window - input_tokens - reserve)
    return max(0, min(desired_max, headroom))


def estimate_cost(tokens: int, cost_per_token: float) -> float:
    return round(tokens * cost_per_token, 6)
