"""Turn a composition into timed events and an in-memory MIDI file.

This module is the hand-off point to audio back-ends. ``create_playable_timeline``
converts subdivision offsets to seconds and ``create_midi_file`` builds a
:class:`mido.MidiFile` with a short drum count-in followed by the phrase
repeated a few times. Nothing is written to disk; callers decide whether to
save, stream or play the result.

Timing
------
One subdivision is a sixteenth note, i.e. ``60 / bpm / 4`` seconds or
``TICKS_PER_BEAT / 4`` ticks. Triplet offsets are multiples of ``4/3`` and
therefore land on whole ticks.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import mido
from mido import Message, MetaMessage, MidiFile, MidiTrack

from .composition import Composition
from .rhythm_engine import RHYTHM_GRID_SIZE, RhythmPattern

__all__ = [
    "INSTRUMENTS",
    "TimelineItem",
    "create_playable_timeline",
    "create_midi_file",
    "midi_file_to_bytes",
]

# General MIDI programs offered by the front-ends.
INSTRUMENTS = {
    "Piano": 0,
    "Guitar": 24,
    "Bass": 32,
    "Violin": 40,
    "Trumpet": 56,
    "Saxophone": 65,
    "Flute": 73,
    "Synth Lead": 81,
}

TICKS_PER_BEAT = 480
TICKS_PER_SUBDIVISION = TICKS_PER_BEAT // 4
MIN_LONG_NOTE_SECONDS = 0.06
MELODY_VELOCITY = 102

# Channel 10 (zero-based 9) is reserved for percussion in General MIDI.
DRUM_CHANNEL = 9
KICK_NOTE = 36
HI_HAT_NOTE = 42
KICK_VELOCITY = 108
HI_HAT_VELOCITY = 41


@dataclass(frozen=True)
class TimelineItem:
    """A sounded note with start and duration in seconds from the phrase start."""

    midi: int
    next_midi: Optional[int]
    start: float
    duration: float

    def to_dict(self) -> dict:
        return {
            "midi": self.midi,
            "nextMidi": self.next_midi,
            "start": self.start,
            "duration": self.duration,
        }


def _check_lengths(sequence: Sequence[int], pattern: RhythmPattern) -> None:
    if len(sequence) != pattern.note_count:
        raise ValueError(
            f"sequence has {len(sequence)} notes but the pattern has {pattern.note_count} events"
        )


def create_playable_timeline(
    sequence: Sequence[int], pattern: RhythmPattern, *, long_notes: bool = False
) -> List[TimelineItem]:
    """Return one :class:`TimelineItem` per note of ``sequence``.

    Notes last one sixteenth by default. With ``long_notes`` each note is held
    until the next onset (never shorter than ``MIN_LONG_NOTE_SECONDS``) and
    the final note lasts two sixteenths, cut short at the end of the bar.
    """

    _check_lengths(sequence, pattern)
    subdivision = 60.0 / pattern.bpm / 4
    events = pattern.note_events
    items = []
    for index, midi in enumerate(sequence):
        event = events[index]
        next_event = events[index + 1] if index + 1 < len(events) else None
        duration = subdivision
        if long_notes:
            if next_event is not None:
                gap = float(next_event.subdivision_offset - event.subdivision_offset)
                duration = max(MIN_LONG_NOTE_SECONDS, gap * subdivision)
            else:
                remaining = float(RHYTHM_GRID_SIZE - event.subdivision_offset)
                duration = min(2, remaining) * subdivision
        items.append(
            TimelineItem(
                midi=midi,
                next_midi=sequence[index + 1] if index + 1 < len(sequence) else None,
                start=float(event.subdivision_offset) * subdivision,
                duration=duration,
            )
        )
    return items


def _note_ticks(pattern: RhythmPattern, index: int, long_notes: bool) -> Tuple[int, int]:
    """Return ``(start, length)`` in ticks for event ``index`` within one bar."""

    events = pattern.note_events
    start = int(events[index].subdivision_offset * TICKS_PER_SUBDIVISION)
    length = TICKS_PER_SUBDIVISION
    if long_notes:
        if index + 1 < len(events):
            end = int(events[index + 1].subdivision_offset * TICKS_PER_SUBDIVISION)
            length = max(1, end - start)
        else:
            # The last note never rings into the next repeat of the bar.
            bar_ticks = RHYTHM_GRID_SIZE * TICKS_PER_SUBDIVISION
            length = max(1, min(2 * TICKS_PER_SUBDIVISION, bar_ticks - start))
    return start, length


def _to_track(events: List[Tuple[int, int, Message]]) -> MidiTrack:
    """Convert ``(absolute_tick, order, message)`` triples to a delta-timed track."""

    track = MidiTrack()
    last = 0
    for tick, _order, msg in sorted(events, key=lambda e: (e[0], e[1])):
        track.append(msg.copy(time=tick - last))
        last = tick
    return track


def create_midi_file(
    composition: Composition,
    program: int = 0,
    *,
    repeats: int = 2,
    intro_subdivisions: int = 8,
    long_notes: bool = False,
    drums: bool = True,
) -> MidiFile:
    """Build a :class:`mido.MidiFile` playing ``composition``.

    The first track carries tempo, time signature and the melody repeated
    ``repeats`` times after ``intro_subdivisions`` sixteenths of count-in.
    When ``drums`` is ``True`` a second track plays a hi-hat on every second
    sixteenth of the count-in and a kick on every beat of the melody.

    Raises
    ------
    ValueError
        If ``program`` is outside ``0``-``127``, ``repeats`` is not positive,
        ``intro_subdivisions`` is negative or the sequence length does not
        match the pattern.
    """

    pattern = composition.pattern
    _check_lengths(composition.sequence, pattern)
    if not 0 <= program <= 127:
        raise ValueError("program must be between 0 and 127")
    if repeats <= 0:
        raise ValueError("repeats must be a positive integer")
    if intro_subdivisions < 0:
        raise ValueError("intro_subdivisions must be non-negative")

    mid = MidiFile(ticks_per_beat=TICKS_PER_BEAT)
    intro_ticks = intro_subdivisions * TICKS_PER_SUBDIVISION
    bar_ticks = RHYTHM_GRID_SIZE * TICKS_PER_SUBDIVISION

    # ``order`` sorts note_off before note_on on the same tick so repeated
    # pitches retrigger cleanly.
    melody_events: List[Tuple[int, int, Message]] = [
        (0, 0, MetaMessage("set_tempo", tempo=mido.bpm2tempo(pattern.bpm))),
        (0, 0, MetaMessage("time_signature", numerator=4, denominator=4)),
        (0, 0, Message("program_change", program=program)),
    ]
    for repeat in range(repeats):
        offset = intro_ticks + repeat * bar_ticks
        for index, midi in enumerate(composition.sequence):
            start, length = _note_ticks(pattern, index, long_notes)
            melody_events.append(
                (offset + start, 2, Message("note_on", note=midi, velocity=MELODY_VELOCITY))
            )
            melody_events.append(
                (offset + start + length, 1, Message("note_off", note=midi, velocity=0))
            )
    mid.tracks.append(_to_track(melody_events))

    if drums:
        drum_events: List[Tuple[int, int, Message]] = []
        for tick in range(0, intro_ticks, 2 * TICKS_PER_SUBDIVISION):
            drum_events.append(
                (tick, 2, Message("note_on", note=HI_HAT_NOTE, velocity=HI_HAT_VELOCITY, channel=DRUM_CHANNEL))
            )
            drum_events.append(
                (tick + TICKS_PER_SUBDIVISION // 2, 1, Message("note_off", note=HI_HAT_NOTE, velocity=0, channel=DRUM_CHANNEL))
            )
        for tick in range(intro_ticks, intro_ticks + repeats * bar_ticks, TICKS_PER_BEAT):
            drum_events.append(
                (tick, 2, Message("note_on", note=KICK_NOTE, velocity=KICK_VELOCITY, channel=DRUM_CHANNEL))
            )
            drum_events.append(
                (tick + TICKS_PER_BEAT // 2, 1, Message("note_off", note=KICK_NOTE, velocity=0, channel=DRUM_CHANNEL))
            )
        mid.tracks.append(_to_track(drum_events))

    logging.debug(
        "Built MIDI file with %d tracks, %d repeats at %d BPM",
        len(mid.tracks),
        repeats,
        pattern.bpm,
    )
    return mid


def midi_file_to_bytes(mid: MidiFile) -> bytes:
    """Serialise ``mid`` to Standard MIDI File bytes without touching disk."""

    buffer = io.BytesIO()
    mid.save(file=buffer)
    return buffer.getvalue()
