"""Conversions between user text, pitch classes and note labels.

The CLI and the web API accept tone groups as free text such as
``"f#, a, c, d"``. The helpers here turn that text into validated
:class:`~phrase_generator.tones.ToneGroups` and render MIDI numbers back as
readable labels.

Example
-------
>>> from phrase_generator.note_utils import parse_tone_classes, midi_to_label
>>> sorted(parse_tone_classes("E; g♯ Bb", "Primary tones"))
[4, 8, 10]
>>> midi_to_label(63)
'Eb4'
"""

from __future__ import annotations

import logging
import re
from typing import FrozenSet, Optional, Tuple

from .tones import ToneGroups
from .utils import clamp

__all__ = [
    "TONE_TO_PITCH_CLASS",
    "NOTE_LABELS",
    "parse_tone_classes",
    "parse_tone_groups",
    "parse_ambitus",
    "midi_to_label",
]

# Lower-case spellings, including enharmonics, mapped to pitch classes.
TONE_TO_PITCH_CLASS = {
    "c": 0,
    "b#": 0,
    "c#": 1,
    "db": 1,
    "d": 2,
    "d#": 3,
    "eb": 3,
    "e": 4,
    "fb": 4,
    "e#": 5,
    "f": 5,
    "f#": 6,
    "gb": 6,
    "g": 7,
    "g#": 8,
    "ab": 8,
    "a": 9,
    "a#": 10,
    "bb": 10,
    "b": 11,
    "cb": 11,
}

NOTE_LABELS = ["C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B"]

MIN_MIDI = 0
MAX_MIDI = 127

_TOKEN_SPLIT = re.compile(r"[\s,;]+")


def parse_tone_classes(raw: Optional[str], label: str) -> FrozenSet[int]:
    """Return the pitch classes named in ``raw``.

    Tokens are separated by whitespace, commas or semicolons and are matched
    case-insensitively. Unicode ``♯`` and ``♭`` are accepted.

    Raises
    ------
    ValueError
        If a token is not a known note name. ``label`` names the offending
        field in the message.
    """

    if raw is not None and not isinstance(raw, str):
        raise ValueError(f"{label} must be text, got {type(raw).__name__}")
    result = set()
    for token in _TOKEN_SPLIT.split((raw or "").strip().lower()):
        if not token:
            continue
        normalized = token.replace("♯", "#").replace("♭", "b")
        pitch_class = TONE_TO_PITCH_CLASS.get(normalized)
        if pitch_class is None:
            logging.error("Invalid note in %s: %s", label, token)
            raise ValueError(f'Invalid note in {label}: "{token}".')
        result.add(pitch_class)
    return frozenset(result)


def parse_tone_groups(primary: Optional[str], secondary: Optional[str], forbidden: Optional[str]) -> ToneGroups:
    """Parse three text fields into a validated :class:`ToneGroups`."""

    return ToneGroups(
        primary=parse_tone_classes(primary, "Primary tones"),
        secondary=parse_tone_classes(secondary, "Secondary tones"),
        forbidden=parse_tone_classes(forbidden, "Forbidden tones"),
    )


def _parse_int(raw) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    match = re.match(r"^\s*([+-]?\d+)", str(raw))
    return int(match.group(1)) if match else None


def parse_ambitus(min_raw, max_raw) -> Tuple[int, int]:
    """Return a sorted ``(min_midi, max_midi)`` pair clamped to ``0``-``127``.

    A missing or unparsable minimum becomes ``0`` and a missing maximum
    ``127``. Leading integers are honoured (``"60abc"`` reads as ``60``).
    An inverted range is swapped rather than rejected.
    """

    low = _parse_int(min_raw)
    high = _parse_int(max_raw)
    low = MIN_MIDI if low is None else clamp(low, MIN_MIDI, MAX_MIDI)
    high = MAX_MIDI if high is None else clamp(high, MIN_MIDI, MAX_MIDI)
    return min(low, high), max(low, high)


def midi_to_label(midi: int) -> str:
    """Return a label such as ``"C4"`` for ``midi`` (middle C is ``60``)."""

    if not MIN_MIDI <= midi <= MAX_MIDI:
        raise ValueError(f"MIDI note {midi} outside 0-127")
    return f"{NOTE_LABELS[midi % 12]}{midi // 12 - 1}"
