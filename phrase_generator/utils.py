"""Random-selection helpers shared by the rhythm and melody generators.

Every helper takes the random source as an argument. Callers pass either a
seeded :class:`random.Random` instance (tests, reproducible CLI runs) or the
:mod:`random` module itself, which exposes the same methods.

Usage Example
-------------
>>> import random
>>> rng = random.Random(3)
>>> weighted_choice([1, 2, 3], [0, 0, 5], rng)
3
>>> clamp(12, 0, 10)
10
"""

from __future__ import annotations

from typing import Any, List, Sequence, TypeVar

__all__ = [
    "clamp",
    "weighted_choice",
    "shuffled",
    "shuffled_with_repeat_penalty",
]

T = TypeVar("T")


def clamp(value, low, high):
    """Return ``value`` limited to the inclusive range ``[low, high]``."""

    return min(high, max(low, value))


def weighted_choice(values: Sequence[T], weights: Sequence[float], rng: Any) -> T:
    """Pick one element of ``values`` with probability proportional to ``weights``.

    Negative or missing weights count as zero. When every weight is zero the
    choice falls back to a uniform pick so callers never receive an error for
    an all-zero slider configuration.

    A cursor is drawn uniformly in ``[0, total)`` and the weights are
    subtracted in order; the first candidate with a positive weight that
    brings the cursor to zero or below is returned. Zero-weight entries are
    therefore never selected while at least one weight is positive.

    @param values (Sequence): Candidate values.
    @param weights (Sequence[float]): Weight per value, matched by index.
    @param rng: Source of randomness providing ``random()`` and ``randrange()``.
    @returns: The selected value.
    """

    if not values:
        raise ValueError("values must not be empty")

    valid = [
        max(0.0, float(weights[i])) if i < len(weights) else 0.0
        for i in range(len(values))
    ]
    total = sum(valid)
    if total <= 0:
        return values[rng.randrange(len(values))]

    cursor = rng.random() * total
    for value, weight in zip(values, valid):
        if weight <= 0:
            continue
        cursor -= weight
        if cursor <= 0:
            return value
    # Floating point drift may leave a tiny positive cursor after the loop.
    return next(v for v, w in zip(reversed(values), reversed(valid)) if w > 0)


def shuffled(values: Sequence[T], rng: Any) -> List[T]:
    """Return a shuffled copy of ``values``."""

    copy = list(values)
    rng.shuffle(copy)
    return copy


def shuffled_with_repeat_penalty(
    candidates: Sequence[T],
    previous_midi: int | None,
    repetition_probability_factor: float,
    rng: Any,
) -> List[T]:
    """Return ``candidates`` in a randomised trial order.

    Each candidate receives a uniform random score and the list is sorted
    ascending. The candidate repeating ``previous_midi`` has its score divided
    by ``repetition_probability_factor``, so a factor close to ``0`` moves the
    repeat towards the end of the order while ``1`` leaves it unbiased. A
    factor of ``0`` (or below) always places the repeat last. Nothing is ever
    removed from the list.

    Candidates are expected to expose a ``midi`` attribute.
    """

    if previous_midi is None:
        return shuffled(candidates, rng)

    scored = []
    for candidate in candidates:
        penalty = repetition_probability_factor if candidate.midi == previous_midi else 1.0
        score = float("inf") if penalty <= 0 else rng.random() / penalty
        scored.append((score, candidate))
    scored.sort(key=lambda pair: pair[0])
    return [candidate for _, candidate in scored]
