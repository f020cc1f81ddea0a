#!/usr/bin/env python3
"""Phrase Generator library.

This package generates a short melodic phrase under music-theoretic
constraints together with the one-bar rhythm that times it. A typical
workflow parses the user's tone groups, calls :func:`compose` and hands the
resulting :class:`Composition` to :func:`create_midi_file` or to a front-end
that schedules audio itself. A command line interface and a Flask JSON API
wrap these calls.

Underlying Algorithm
--------------------
Rhythm comes first. A weighted random walk over sixteen sixteenth-note slots
marks hits, some beats are swapped for quarter-note triplets and the slot
after a triplet is locked to a single deliberate hit. The number of emitted
note events fixes how many pitches are needed.

Pitches are then found by a randomised backtracking search. Every note of the
ambitus is classified as primary (A), secondary (B), forbidden (C) or other
(E) from its pitch class. The phrase must start on A or B, end on A, keep
adjacent leaps within an octave, stay within a fourteen-semitone span and
respect a table of category transitions. Candidates are tried in random
order with immediate repeats pushed back, and dead-end states are memoized.

Pseudocode::

    pattern = RhythmGenerator(rng).generate(settings)
    pool = enumerate_candidates(tone_groups, min_midi, max_midi)
    sequence = MelodySolver(pool, pattern.note_count, factor, rng=rng).solve()
    return Composition(sequence, pattern)

Features include:
- Seedable randomness for reproducible phrases.
- Named rhythm presets with JSON import/export.
- A playable timeline and in-memory MIDI rendering for audio back-ends.
- Both CLI and web (Flask) interfaces.
"""

__version__ = "0.1.0"

from .tones import (  # noqa: F401
    Category,
    NoPlayableNotesError,
    PlayableNote,
    ToneGroups,
    enumerate_candidates,
)
from .utils import weighted_choice, shuffled_with_repeat_penalty  # noqa: F401
from .rhythm_engine import (  # noqa: F401
    NoteEvent,
    RhythmGenerator,
    RhythmPattern,
    RhythmSettings,
    format_pattern,
    generate_rhythm_pattern,
    sanitize_rhythm_settings,
)
from .voice_leading import VoiceLeadingRules  # noqa: F401
from .melody_solver import (  # noqa: F401
    MelodySolver,
    NoValidSequenceError,
    build_melody,
    generate_melody,
)
from .note_utils import (  # noqa: F401
    midi_to_label,
    parse_ambitus,
    parse_tone_classes,
    parse_tone_groups,
)
from .composition import Composition, compose  # noqa: F401
from .settings import load_settings, save_settings  # noqa: F401
from .midi_io import (  # noqa: F401
    create_midi_file,
    create_playable_timeline,
    midi_file_to_bytes,
)


def run_cli(argv=None):
    from .cli import run_cli as _run_cli
    return _run_cli(argv)


def main(argv=None):
    from .cli import main as _main
    _main(argv)


if __name__ == "__main__":
    main()
