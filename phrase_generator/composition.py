"""Pair a rhythm pattern with a melody of matching length."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .melody_solver import generate_melody
from .note_utils import midi_to_label
from .rhythm_engine import RhythmGenerator, RhythmPattern, RhythmSettings, sanitize_rhythm_settings
from .tones import NoPlayableNotesError, ToneGroups, enumerate_candidates
from .voice_leading import VoiceLeadingRules

__all__ = ["Composition", "compose"]


@dataclass(frozen=True)
class Composition:
    """Result of one generation: pitches plus the grid that times them."""

    sequence: Tuple[int, ...]
    pattern: RhythmPattern

    @property
    def labels(self) -> List[str]:
        return [midi_to_label(midi) for midi in self.sequence]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": list(self.sequence),
            "labels": self.labels,
            "pattern": self.pattern.to_dict(),
        }


def compose(
    tone_groups: ToneGroups,
    min_midi: int,
    max_midi: int,
    settings: Optional[RhythmSettings | Mapping[str, Any]] = None,
    *,
    rules: Optional[VoiceLeadingRules] = None,
    rng: Any = None,
) -> Composition:
    """Generate a rhythm pattern, then a melody with one note per event.

    The candidate pool is checked before any randomness is consumed so an
    empty ambitus fails fast with :class:`NoPlayableNotesError`.
    """

    params = sanitize_rhythm_settings(settings)
    rng = rng if rng is not None else random

    candidates = enumerate_candidates(tone_groups, min_midi, max_midi)
    if not candidates:
        logging.error("No playable notes between %d and %d", min_midi, max_midi)
        raise NoPlayableNotesError(
            f"no playable notes between {min_midi} and {max_midi} after excluding forbidden tones"
        )

    pattern = RhythmGenerator(rng).generate(params)
    sequence = generate_melody(
        candidates,
        pattern.note_count,
        params.repetition_probability_factor,
        rules=rules,
        rng=rng,
    )
    logging.info(
        "Generated sequence (%d notes / hits, %d BPM)", pattern.note_count, pattern.bpm
    )
    return Composition(tuple(sequence), pattern)
