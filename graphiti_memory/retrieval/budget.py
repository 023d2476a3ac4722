"""Character budget arithmetic."""

import math
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

LINE_SEPARATOR_CHARS = 1
SHARE_SCALE = 10_000


def share_of(total: int, ratio: float) -> int:
    """``floor(total * ratio)`` in integer arithmetic; ``ratio`` is kept to four decimals."""
    return total * round(ratio * SHARE_SCALE) // SHARE_SCALE


def split_budget(total: int, ratio: float) -> tuple[int, int]:
    """Split ``total`` into ``(floor(total * ratio), remainder)``."""
    total = max(0, total)
    first = min(total, max(0, share_of(total, ratio)))
    return first, total - first


def split_tiers(total: int, decision_share: float, active_share: float) -> tuple[int, int, int]:
    """Decision/active/background split; background absorbs the rounding remainder."""
    total = max(0, total)
    decisions = share_of(total, decision_share)
    active = share_of(total, active_share)
    return decisions, active, total - decisions - active


def select_within_budget(lines: Sequence[str], items: Sequence[T], budget: int) -> list[T]:
    """Greedily keep items whose formatted line still fits.

    Each line costs ``len(line) + 1``. A line that would overflow is skipped
    whole; later, shorter lines may still fit.
    """
    if budget <= 0:
        return []
    selected: list[T] = []
    used = 0
    for line, item in zip(lines, items):
        cost = len(line) + LINE_SEPARATOR_CHARS
        if used + cost > budget:
            continue
        used += cost
        selected.append(item)
    return selected


def truncate(text: str, budget: int) -> str:
    return text[: max(0, budget)]


def calculate_injection_budget(context_limit: int, ratio: float = 0.05, chars_per_token: int = 4) -> int:
    """Character budget for injected memory: a share of the context window, in characters."""
    return math.floor(context_limit * ratio * chars_per_token)
