"""Pitch-class categories and candidate pools.

Every MIDI note is classified by its pitch class (``midi % 12``) against three
disjoint sets supplied by the user:

* ``A`` – primary tones, the notes a phrase is built around.
* ``B`` – secondary tones, passing material with restricted movement.
* ``C`` – forbidden tones, never played.
* ``E`` – everything else (chromatic "other" notes).

Example
-------
>>> groups = ToneGroups(primary={4, 7, 11}, secondary={9}, forbidden={8})
>>> groups.classify(64)
<Category.A: 'A'>
>>> [n.midi for n in enumerate_candidates(groups, 66, 69)]
[66, 67, 69]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, NamedTuple

__all__ = [
    "Category",
    "ToneGroups",
    "PlayableNote",
    "NoPlayableNotesError",
    "enumerate_candidates",
]


class Category(str, Enum):
    """Classification of a MIDI note against a :class:`ToneGroups`."""

    A = "A"  # primary
    B = "B"  # secondary
    C = "C"  # forbidden
    E = "E"  # other


class NoPlayableNotesError(ValueError):
    """Raised when the ambitus holds no note outside the forbidden set."""


class PlayableNote(NamedTuple):
    """A MIDI number paired with its (non-forbidden) category."""

    midi: int
    category: Category


def _pitch_classes(values: Iterable[int]) -> FrozenSet[int]:
    result = frozenset(int(v) for v in values)
    bad = sorted(v for v in result if not 0 <= v <= 11)
    if bad:
        raise ValueError(f"Pitch classes must lie between 0 and 11: {bad}")
    return result


@dataclass(frozen=True)
class ToneGroups:
    """Three pairwise disjoint sets of pitch classes.

    Overlapping groups raise ``ValueError`` at construction so the classifier
    never has to decide which category wins.
    """

    primary: FrozenSet[int] = field(default_factory=frozenset)
    secondary: FrozenSet[int] = field(default_factory=frozenset)
    forbidden: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # ``frozen`` dataclasses need ``object.__setattr__`` to normalise input.
        object.__setattr__(self, "primary", _pitch_classes(self.primary))
        object.__setattr__(self, "secondary", _pitch_classes(self.secondary))
        object.__setattr__(self, "forbidden", _pitch_classes(self.forbidden))

        if self.primary & (self.secondary | self.forbidden):
            raise ValueError(
                "A tone cannot be both primary and secondary/forbidden: "
                f"{sorted(self.primary & (self.secondary | self.forbidden))}"
            )
        if self.secondary & self.forbidden:
            raise ValueError(
                "A tone cannot be both secondary and forbidden: "
                f"{sorted(self.secondary & self.forbidden)}"
            )

    def classify(self, midi: int) -> Category:
        """Return the :class:`Category` of ``midi``."""

        pitch_class = midi % 12
        if pitch_class in self.primary:
            return Category.A
        if pitch_class in self.secondary:
            return Category.B
        if pitch_class in self.forbidden:
            return Category.C
        return Category.E

    def to_dict(self) -> dict:
        return {
            "primary": sorted(self.primary),
            "secondary": sorted(self.secondary),
            "forbidden": sorted(self.forbidden),
        }


def enumerate_candidates(
    tone_groups: ToneGroups, min_midi: int, max_midi: int
) -> List[PlayableNote]:
    """Return every non-forbidden note in ``[min_midi, max_midi]``.

    The list is ordered by ascending MIDI number. It may be empty; callers
    that need at least one note raise :class:`NoPlayableNotesError`.
    """

    pool = []
    for midi in range(min_midi, max_midi + 1):
        category = tone_groups.classify(midi)
        if category is not Category.C:
            pool.append(PlayableNote(midi, category))
    logging.debug(
        "Candidate pool for %d-%d holds %d notes", min_midi, max_midi, len(pool)
    )
    return pool
