"""Transition rules between consecutive melody notes.

The melody solver asks :func:`transition_allowed` whether a candidate may
follow the previous note. The rules combine interval limits, a ban on a
descending semitone turning into an ascending whole tone, a forced downward
resolution after an "up a semitone, down a tone" turn, and a table of allowed
category pairs.

Example
-------
>>> from phrase_generator.tones import Category
>>> rules = VoiceLeadingRules()
>>> category_transition_allowed(Category.B, Category.A, 2, rules)
True
>>> category_transition_allowed(Category.B, Category.E, 1, rules)
False

Design Notes
------------
- Only the pair ``(prev, cur)`` and the previous direction are inspected, so
  every rule is local and the solver can memoize failed states safely.
- The global span limit is enforced by the solver because it depends on the
  whole sequence so far.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from .tones import Category

__all__ = [
    "VoiceLeadingRules",
    "category_transition_allowed",
    "transition_allowed",
    "forces_descending_next",
]

MAX_CONSECUTIVE_LEAP_SEMITONES = 12
MAX_B_TO_A_LEAP_SEMITONES = 2
MAX_E_TO_AB_LEAP_SEMITONES = 1
MAX_SEQUENCE_RANGE_SEMITONES = 14


@dataclass(frozen=True)
class VoiceLeadingRules:
    """Thresholds used by the solver.

    Parameters
    ----------
    max_leap:
        Largest allowed absolute interval between adjacent notes.
    max_b_to_a_leap:
        Largest interval when a secondary tone resolves to a primary tone.
    max_e_to_ab_leap:
        Largest interval when an "other" tone moves to a primary or secondary
        tone.
    max_span:
        Largest distance between the lowest and highest note of the phrase.
    forbidden_leaps:
        Absolute intervals that are never allowed, whatever the direction.
    forbidden_descending_leaps:
        Signed (negative) movements that are never allowed.
    """

    max_leap: int = MAX_CONSECUTIVE_LEAP_SEMITONES
    max_b_to_a_leap: int = MAX_B_TO_A_LEAP_SEMITONES
    max_e_to_ab_leap: int = MAX_E_TO_AB_LEAP_SEMITONES
    max_span: int = MAX_SEQUENCE_RANGE_SEMITONES
    forbidden_leaps: FrozenSet[int] = field(default_factory=frozenset)
    forbidden_descending_leaps: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "forbidden_leaps", frozenset(abs(int(v)) for v in self.forbidden_leaps))
        object.__setattr__(
            self,
            "forbidden_descending_leaps",
            frozenset(-abs(int(v)) for v in self.forbidden_descending_leaps),
        )


def category_transition_allowed(
    prev_category: Category, cur_category: Category, leap: int, rules: VoiceLeadingRules
) -> bool:
    """Return ``True`` if ``prev_category -> cur_category`` is legal for ``leap``.

    * A may move to A, B or E.
    * B may repeat itself exactly or resolve to A within ``max_b_to_a_leap``.
    * E may only move to A or B within ``max_e_to_ab_leap``.
    * Forbidden (C) notes never take part in a transition.
    """

    if prev_category is Category.A:
        return cur_category in (Category.A, Category.B, Category.E)
    if prev_category is Category.B:
        if cur_category is Category.B:
            return leap == 0
        return cur_category is Category.A and leap <= rules.max_b_to_a_leap
    if prev_category is Category.E:
        return cur_category in (Category.A, Category.B) and leap <= rules.max_e_to_ab_leap
    return False


def transition_allowed(
    prev_midi: int,
    prev_category: Category,
    cur_midi: int,
    cur_category: Category,
    *,
    prev_direction: Optional[int],
    forced_descending: bool,
    rules: VoiceLeadingRules,
) -> bool:
    """Return ``True`` when ``cur_midi`` may follow ``prev_midi``.

    ``prev_direction`` is the signed interval into ``prev_midi`` (``None`` for
    the second note of a phrase). ``forced_descending`` is the flag produced
    by :func:`forces_descending_next` for the previous move.
    """

    movement = cur_midi - prev_midi
    leap = abs(movement)
    if leap > rules.max_leap:
        return False
    if leap in rules.forbidden_leaps or movement in rules.forbidden_descending_leaps:
        return False
    # Descending semitone followed by an ascending whole tone.
    if prev_direction == -1 and movement == 2:
        return False
    if forced_descending and cur_midi >= prev_midi:
        return False
    return category_transition_allowed(prev_category, cur_category, leap, rules)


def forces_descending_next(prev_direction: Optional[int], movement: int) -> bool:
    """Return ``True`` when the move after ``movement`` must go down.

    An ascending semitone immediately followed by a descending whole tone is a
    turn that has to keep resolving downward on the next note.
    """

    return prev_direction == 1 and movement == -2
