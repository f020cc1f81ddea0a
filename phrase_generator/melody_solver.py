"""Backtracking search for a melody that obeys the voice-leading rules.

:class:`MelodySolver` fills ``note_count`` slots with pitches from a candidate
pool. Candidates are tried in a random order that pushes immediate repeats
towards the back, and the first complete assignment is returned. Search
states proven to be dead ends are remembered so identical subtrees are never
explored twice.

Search Pseudocode
-----------------
::

    search(index):
        if index == note_count: return last category is A
        if state(index) in failed: return False
        for note in shuffled_with_repeat_penalty(pool, prev):
            if boundary or transition or span rule rejects note: continue
            push note
            if search(index + 1): return True
            pop note
        failed.add(state(index))
        return False

The memo key holds everything a later decision can observe: the index, the
previous note and its category, the signed interval into it, the running
minimum and maximum, and the forced-descending flag. Trial order never
influences satisfiability, so caching a failure cannot hide a solution.

Example
-------
>>> import random
>>> from phrase_generator.tones import ToneGroups, enumerate_candidates
>>> groups = ToneGroups(primary={4, 7, 11}, secondary={1, 6, 9, 0, 2}, forbidden={8, 3})
>>> pool = enumerate_candidates(groups, 50, 72)
>>> len(generate_melody(pool, 4, 0.25, rng=random.Random(0)))
4
"""

from __future__ import annotations

import logging
import random
from typing import Any, List, Optional, Sequence, Set, Tuple

from .tones import (
    Category,
    NoPlayableNotesError,
    PlayableNote,
    ToneGroups,
    enumerate_candidates,
)
from .utils import shuffled_with_repeat_penalty
from .voice_leading import VoiceLeadingRules, forces_descending_next, transition_allowed

__all__ = [
    "NoValidSequenceError",
    "MelodySolver",
    "generate_melody",
    "build_melody",
]

logger = logging.getLogger(__name__)

_FIRST_CATEGORIES = (Category.A, Category.B)
_LAST_CATEGORIES = (Category.A,)

# (index, prev_midi, prev_category, prev_direction, seq_min, seq_max, forced)
_StateKey = Tuple[int, Optional[int], Optional[Category], Optional[int], Optional[int], Optional[int], bool]


class NoValidSequenceError(RuntimeError):
    """Raised when no melody satisfies the constraints."""


class MelodySolver:
    """Randomised constraint solver for a single melodic phrase."""

    def __init__(
        self,
        candidates: Sequence[PlayableNote],
        note_count: int,
        repetition_probability_factor: float = 0.25,
        *,
        rules: Optional[VoiceLeadingRules] = None,
        rng: Any = None,
        memoize: bool = True,
    ) -> None:
        """Prepare a solver.

        @param candidates (Sequence[PlayableNote]): Admissible notes.
        @param note_count (int): Length of the melody to produce.
        @param repetition_probability_factor (float): ``0``-``1`` bias against
            immediately repeating the previous pitch.
        @param rules (VoiceLeadingRules): Interval thresholds, defaults apply
            when ``None``.
        @param rng: Random source, ``None`` uses the :mod:`random` module.
        @param memoize (bool): Cache failed search states.
        """

        if note_count <= 0:
            raise ValueError("note_count must be a positive integer")
        self.candidates = [
            c for c in candidates if c.category is not Category.C
        ]
        if not self.candidates:
            raise NoPlayableNotesError(
                "no playable notes left after excluding forbidden tones"
            )
        self.note_count = note_count
        self.repetition_probability_factor = repetition_probability_factor
        self.rules = rules or VoiceLeadingRules()
        self.rng = rng if rng is not None else random
        self.memoize = memoize

        self._sequence: List[int] = []
        self._categories: List[Category] = []
        self._min: Optional[int] = None
        self._max: Optional[int] = None
        self._forced_descending = False
        self._failed: Set[_StateKey] = set()
        self.visited_states = 0
        self.memo_hits = 0

    def _prev_direction(self, index: int) -> Optional[int]:
        if index < 2:
            return None
        return self._sequence[index - 1] - self._sequence[index - 2]

    def _state_key(self, index: int) -> _StateKey:
        prev_midi = self._sequence[-1] if self._sequence else None
        prev_category = self._categories[-1] if self._categories else None
        return (
            index,
            prev_midi,
            prev_category,
            self._prev_direction(index),
            self._min,
            self._max,
            self._forced_descending,
        )

    def _admissible(self, index: int, note: PlayableNote, prev_direction: Optional[int]) -> bool:
        if index == 0 and note.category not in _FIRST_CATEGORIES:
            return False
        if index == self.note_count - 1 and note.category not in _LAST_CATEGORIES:
            return False
        if index > 0 and not transition_allowed(
            self._sequence[-1],
            self._categories[-1],
            note.midi,
            note.category,
            prev_direction=prev_direction,
            forced_descending=self._forced_descending,
            rules=self.rules,
        ):
            return False
        low = note.midi if self._min is None else min(self._min, note.midi)
        high = note.midi if self._max is None else max(self._max, note.midi)
        return high - low <= self.rules.max_span

    def _search(self, index: int) -> bool:
        if index == self.note_count:
            return self._categories[-1] in _LAST_CATEGORIES

        key = self._state_key(index)
        if self.memoize and key in self._failed:
            self.memo_hits += 1
            return False
        self.visited_states += 1

        prev_midi = self._sequence[-1] if self._sequence else None
        prev_direction = self._prev_direction(index)
        order = shuffled_with_repeat_penalty(
            self.candidates, prev_midi, self.repetition_probability_factor, self.rng
        )
        for note in order:
            if not self._admissible(index, note, prev_direction):
                continue

            saved = (self._min, self._max, self._forced_descending)
            movement = None if prev_midi is None else note.midi - prev_midi
            self._sequence.append(note.midi)
            self._categories.append(note.category)
            self._min = note.midi if self._min is None else min(self._min, note.midi)
            self._max = note.midi if self._max is None else max(self._max, note.midi)
            self._forced_descending = movement is not None and forces_descending_next(
                prev_direction, movement
            )

            if self._search(index + 1):
                return True

            self._sequence.pop()
            self._categories.pop()
            self._min, self._max, self._forced_descending = saved

        self._failed.add(key)
        return False

    def solve(self) -> List[int]:
        """Return a list of ``note_count`` MIDI numbers.

        Raises
        ------
        NoValidSequenceError
            If every branch of the search fails.
        """

        self._sequence.clear()
        self._categories.clear()
        self._min = self._max = None
        self._forced_descending = False
        self._failed.clear()
        self.visited_states = self.memo_hits = 0

        found = self._search(0)
        logger.debug(
            "Solver visited %d states (%d memo hits) over %d candidates",
            self.visited_states,
            self.memo_hits,
            len(self.candidates),
        )
        if not found:
            raise NoValidSequenceError(
                "no valid sequence for these constraints "
                f"({self.note_count} notes, {len(self.candidates)} candidates)"
            )
        return list(self._sequence)


def generate_melody(
    candidates: Sequence[PlayableNote],
    note_count: int,
    repetition_probability_factor: float = 0.25,
    *,
    rules: Optional[VoiceLeadingRules] = None,
    rng: Any = None,
    memoize: bool = True,
) -> List[int]:
    """Return a melody of ``note_count`` MIDI numbers drawn from ``candidates``.

    Raises :class:`NoPlayableNotesError` for an empty pool and
    :class:`NoValidSequenceError` when the constraints cannot be met.
    """

    return MelodySolver(
        candidates,
        note_count,
        repetition_probability_factor,
        rules=rules,
        rng=rng,
        memoize=memoize,
    ).solve()


def build_melody(
    tone_groups: ToneGroups,
    min_midi: int,
    max_midi: int,
    note_count: int,
    repetition_probability_factor: float = 0.25,
    **kwargs,
) -> List[int]:
    """Enumerate the candidates for an ambitus and solve in one call."""

    candidates = enumerate_candidates(tone_groups, min_midi, max_midi)
    return generate_melody(candidates, note_count, repetition_probability_factor, **kwargs)
