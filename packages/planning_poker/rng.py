import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

_SHARED = random.Random()


def resolve_rng(rng: random.Random | None = None) -> random.Random:
    """Callers may inject a seeded generator; otherwise share one process-wide."""
    return rng if rng is not None else _SHARED


def weighted_pick(options: Sequence[T], weights: Sequence[float], rng: random.Random) -> T:
    """Pick one option with probability proportional to its weight.

    Zero-weight options are never returned. Raises ValueError when no option
    carries positive weight.
    """
    if len(options) != len(weights):
        raise ValueError("options and weights must have the same length")
    total = float(sum(w for w in weights if w > 0))
    if total <= 0:
        raise ValueError("at least one weight must be positive")
    roll = rng.random() * total
    acc = 0.0
    for option, weight in zip(options, weights, strict=True):
        if weight <= 0:
            continue
        acc += weight
        if roll < acc:
            return option
    # float rounding at the upper edge
    return next(o for o, w in zip(reversed(options), reversed(weights), strict=True) if w > 0)
