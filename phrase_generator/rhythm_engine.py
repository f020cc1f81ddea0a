"""Rhythm pattern generation over a single 16-step bar.

The bar is split into four beats of four sixteenth-note subdivisions. A
:class:`RhythmGenerator` fills the grid with a weighted random walk, turns some
beats into quarter-note triplets and then emits an ordered list of note events.
The number of events is the number of pitches the melody solver has to find,
so rhythm is always generated before pitch.

Algorithm
---------
::

    position = weighted_choice(JUMP_VALUES, jump_odd_weights)
    while position < 15:
        grid[position] = 1
        weights = odd if position % 4 in (0, 2) else even
        position += weighted_choice(JUMP_VALUES, weights)
    grid[15] = 0
    for beat_start in (4, 8, 12):
        if grid[beat_start] and roll(triplet_chance):
            turn the beat into a triplet
            if beat_start in (4, 8): lock one hit in the following beat

Position 15 is never a hit; it acts as a pickup before the bar repeats.

Example
-------
>>> import random
>>> pattern = RhythmGenerator(rng=random.Random(1)).generate()
>>> pattern.grid[15]
0
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from .utils import clamp, weighted_choice

__all__ = [
    "RHYTHM_GRID_SIZE",
    "RhythmSettings",
    "NoteEvent",
    "RhythmPattern",
    "RhythmGenerator",
    "sanitize_rhythm_settings",
    "generate_rhythm_pattern",
    "format_pattern",
]

RHYTHM_GRID_SIZE = 16
# Last grid slot; the walk stops before it and it is cleared afterwards.
RESERVED_POSITION = 15
JUMP_VALUES = (1, 2, 3, 4, 5)
TRIPLET_BEAT_START_INDICES = (4, 8, 12)
AFTER_TRIPLET_VALUES = (0, 1, 2, 3)
SUBDIVISIONS_PER_BEAT = 4

MIN_BPM = 30
MAX_BPM = 140
MAX_WEIGHT = 10
DEFAULT_BPM = 92
DEFAULT_REPETITION_PROBABILITY_FACTOR = 0.25

HIT = "hit"
TRIPLET = "triplet"


@dataclass(frozen=True)
class RhythmSettings:
    """User-facing knobs controlling one rhythm (and melody) generation.

    Weights are slider values between ``0`` and ``10``. ``triplet_chance``
    holds one value per candidate triplet beat (beats 2, 3 and 4) and is read
    as tenths of a probability. ``after_triplet_weights`` chooses where the
    single hit following a triplet lands within the next beat.
    """

    bpm: int = DEFAULT_BPM
    jump_odd_weights: Tuple[float, ...] = (3, 6, 8, 3, 2)
    jump_even_weights: Tuple[float, ...] = (2, 4, 7, 5, 2)
    triplet_chance: Tuple[float, ...] = (3, 3, 3)
    after_triplet_weights: Tuple[float, ...] = (10, 0, 0, 0)
    repetition_probability_factor: float = DEFAULT_REPETITION_PROBABILITY_FACTOR

    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase mapping used by settings files and the web API."""

        return {
            "bpm": self.bpm,
            "jumpOddWeights": list(self.jump_odd_weights),
            "jumpEvenWeights": list(self.jump_even_weights),
            "tripletChance": list(self.triplet_chance),
            "afterTripletWeights": list(self.after_triplet_weights),
            "repetitionProbabilityFactor": self.repetition_probability_factor,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RhythmSettings":
        return sanitize_rhythm_settings(data)


def _number(value: Any, default: float) -> float:
    """Return ``value`` as a finite float or ``default`` when it is not numeric."""

    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _sanitize_weights(values: Any, length: int) -> Tuple[float, ...]:
    if not isinstance(values, (list, tuple)):
        values = []
    result = []
    for index in range(length):
        raw = values[index] if index < len(values) else 0
        weight = clamp(_number(raw, 0.0), 0, MAX_WEIGHT)
        # Keep integral slider values as ints so JSON output stays tidy.
        result.append(int(weight) if float(weight).is_integer() else weight)
    return tuple(result)


def sanitize_rhythm_settings(
    source: Optional[Mapping[str, Any]] | RhythmSettings = None,
) -> RhythmSettings:
    """Return a :class:`RhythmSettings` with every field clamped to its bounds.

    ``source`` may be a :class:`RhythmSettings`, a camelCase mapping as stored
    in settings files, or ``None`` for the defaults. Weight arrays are padded
    with zeros or truncated to their expected length and non-numeric entries
    count as ``0``. A non-numeric BPM or repetition factor falls back to its
    default. The legacy key ``afterTriplet2Weights`` is accepted when
    ``afterTripletWeights`` is absent.
    """

    if isinstance(source, RhythmSettings):
        source = source.to_dict()
    if source is None:
        source = RhythmSettings().to_dict()

    after = source.get("afterTripletWeights")
    if after is None:
        after = source.get("afterTriplet2Weights")

    bpm = clamp(_number(source.get("bpm", DEFAULT_BPM), DEFAULT_BPM), MIN_BPM, MAX_BPM)
    factor = clamp(
        _number(
            source.get("repetitionProbabilityFactor", DEFAULT_REPETITION_PROBABILITY_FACTOR),
            DEFAULT_REPETITION_PROBABILITY_FACTOR,
        ),
        0.0,
        1.0,
    )
    return RhythmSettings(
        bpm=int(round(bpm)),
        jump_odd_weights=_sanitize_weights(source.get("jumpOddWeights"), len(JUMP_VALUES)),
        jump_even_weights=_sanitize_weights(source.get("jumpEvenWeights"), len(JUMP_VALUES)),
        triplet_chance=_sanitize_weights(
            source.get("tripletChance"), len(TRIPLET_BEAT_START_INDICES)
        ),
        after_triplet_weights=_sanitize_weights(after, len(AFTER_TRIPLET_VALUES)),
        repetition_probability_factor=float(factor),
    )


@dataclass(frozen=True)
class NoteEvent:
    """A note onset measured in sixteenth-note subdivisions from the bar start."""

    subdivision_offset: Fraction
    kind: str = HIT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subdivisionOffset": float(self.subdivision_offset),
            "kind": self.kind,
        }


@dataclass(frozen=True)
class RhythmPattern:
    """Immutable result of one rhythm generation."""

    grid: Tuple[int, ...]
    triplet_starts: FrozenSet[int] = field(default_factory=frozenset)
    note_events: Tuple[NoteEvent, ...] = ()
    bpm: int = DEFAULT_BPM

    @property
    def note_count(self) -> int:
        """Number of pitches a melody needs to fill this pattern."""

        return len(self.note_events)

    def format(self) -> str:
        return format_pattern(self.grid, self.triplet_starts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid": list(self.grid),
            "tripletStarts": sorted(self.triplet_starts),
            "noteEvents": [event.to_dict() for event in self.note_events],
            "bpm": self.bpm,
            "display": self.format(),
        }


def format_pattern(grid: Sequence, triplet_starts) -> str:
    """Render ``grid`` as four space-separated beats.

    A triplet beat prints as ``T``; other beats print one glyph per
    subdivision, ``!`` for a hit and ``'`` for a rest.

    >>> format_pattern([1, 0, 1, 0] + [0] * 12, {8})
    "!'!' '''' T ''''"
    """

    beats = []
    for beat in range(RHYTHM_GRID_SIZE // SUBDIVISIONS_PER_BEAT):
        beat_start = beat * SUBDIVISIONS_PER_BEAT
        if beat_start in triplet_starts:
            beats.append("T")
            continue
        beats.append(
            "".join(
                "!" if grid[idx] == 1 else "'"
                for idx in range(beat_start, beat_start + SUBDIVISIONS_PER_BEAT)
            )
        )
    return " ".join(beats)


class RhythmGenerator:
    """Generate :class:`RhythmPattern` objects from :class:`RhythmSettings`."""

    def __init__(self, rng: Any = None) -> None:
        """Create a generator drawing randomness from ``rng``.

        Parameters
        ----------
        rng:
            Object offering ``random()``, ``randrange()`` and ``shuffle()``,
            typically a seeded :class:`random.Random`. ``None`` uses the
            module-level :mod:`random` functions.
        """

        self.rng = rng if rng is not None else random

    def _walk(self, settings: RhythmSettings) -> List[int]:
        grid = [0] * RHYTHM_GRID_SIZE
        position = weighted_choice(JUMP_VALUES, settings.jump_odd_weights, self.rng)
        while position < RESERVED_POSITION:
            grid[position] = 1
            # Subdivisions 1 and 3 of a beat are the "odd" (on-beat) slots.
            if position % SUBDIVISIONS_PER_BEAT in (0, 2):
                weights = settings.jump_odd_weights
            else:
                weights = settings.jump_even_weights
            position += weighted_choice(JUMP_VALUES, weights, self.rng)
        grid[RESERVED_POSITION] = 0
        return grid

    def _lock_after_triplet(self, grid: List[int], beat_start: int, weights) -> None:
        next_beat = beat_start + SUBDIVISIONS_PER_BEAT
        if next_beat > TRIPLET_BEAT_START_INDICES[-1]:
            return
        for idx in range(next_beat, next_beat + SUBDIVISIONS_PER_BEAT):
            grid[idx] = 0
        # The reserved slot is never a lock target.
        offsets = [
            offset for offset in AFTER_TRIPLET_VALUES
            if next_beat + offset < RESERVED_POSITION
        ]
        grid[next_beat + weighted_choice(offsets, weights[: len(offsets)], self.rng)] = 1

    def _apply_triplets(self, grid: List[int], settings: RhythmSettings) -> FrozenSet[int]:
        starts = set()
        for index, beat_start in enumerate(TRIPLET_BEAT_START_INDICES):
            if grid[beat_start] != 1:
                continue
            chance = settings.triplet_chance[index] / MAX_WEIGHT
            if not self.rng.random() < chance:
                continue
            for idx in range(beat_start, beat_start + SUBDIVISIONS_PER_BEAT):
                grid[idx] = 0
            grid[beat_start] = 1
            starts.add(beat_start)
            self._lock_after_triplet(grid, beat_start, settings.after_triplet_weights)
        return frozenset(starts)

    @staticmethod
    def _emit_events(grid: List[int], triplet_starts: FrozenSet[int]) -> Tuple[NoteEvent, ...]:
        events: List[NoteEvent] = []
        for idx in range(RHYTHM_GRID_SIZE):
            if idx in triplet_starts:
                # Three evenly spaced onsets across one quarter note.
                for step in range(3):
                    events.append(NoteEvent(idx + Fraction(4 * step, 3), TRIPLET))
                continue
            if grid[idx] == 1:
                events.append(NoteEvent(Fraction(idx), HIT))
        return tuple(events)

    def generate(self, settings: Optional[RhythmSettings | Mapping[str, Any]] = None) -> RhythmPattern:
        """Return a new pattern for ``settings`` (sanitized before use)."""

        params = sanitize_rhythm_settings(settings)
        grid = self._walk(params)
        triplet_starts = self._apply_triplets(grid, params)
        events = self._emit_events(grid, triplet_starts)
        pattern = RhythmPattern(
            grid=tuple(grid),
            triplet_starts=triplet_starts,
            note_events=events,
            bpm=params.bpm,
        )
        logging.debug(
            "Rhythm pattern %s with %d events at %d BPM",
            pattern.format(),
            pattern.note_count,
            pattern.bpm,
        )
        return pattern


def generate_rhythm_pattern(
    settings: Optional[RhythmSettings | Mapping[str, Any]] = None, *, rng: Any = None
) -> RhythmPattern:
    """Return a random :class:`RhythmPattern` for ``settings``."""

    return RhythmGenerator(rng).generate(settings)
