"""Command line interface for Phrase Generator.

``run_cli`` parses arguments, generates one composition and prints the rhythm
pattern together with the note names. Every rhythm knob can be given on the
command line; values not supplied come from the settings file, optionally
overlaid with a named preset.

Example
-------
Running ``python -m phrase_generator --primary "e g b" --secondary "f# a c d" \
    --forbidden "g# c#" --min 50 --max 72 --seed 7`` prints something like::

    !'!' T !''' !'!'
    E3, F#3, G3, ...
    INFO: Generated sequence (9 notes / hits, 92 BPM)

``--json`` prints the full composition (pattern, events, sequence and
timeline) for other tools to consume. Persisting the generated phrase is left
to the caller.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import List, Optional

from . import settings as settings_store
from .composition import compose
from .melody_solver import NoValidSequenceError
from .midi_io import create_playable_timeline
from .note_utils import parse_ambitus, parse_tone_groups
from .rhythm_engine import sanitize_rhythm_settings
from .tones import NoPlayableNotesError
from .voice_leading import VoiceLeadingRules

__all__ = ["run_cli", "main"]


def _number_list(raw: str) -> List[float]:
    """Parse ``"3,6,8,3,2"`` into numbers for argparse."""

    try:
        return [float(v) for v in raw.split(",") if v.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected comma-separated numbers, got {raw!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phrase-generator",
        description="Generate a short constrained melody over a random one-bar rhythm.",
    )
    parser.add_argument("--primary", type=str, help="Primary tones, e.g. 'e, g, b'.")
    parser.add_argument("--secondary", type=str, help="Secondary tones, e.g. 'f#, a, c, d'.")
    parser.add_argument("--forbidden", type=str, help="Forbidden tones, e.g. 'g#, c#'.")
    parser.add_argument("--min", dest="ambitus_min", type=str, help="Lowest MIDI note (0-127).")
    parser.add_argument("--max", dest="ambitus_max", type=str, help="Highest MIDI note (0-127).")
    parser.add_argument("--bpm", type=int, help="Tempo (30-140).")
    parser.add_argument("--jump-odd", type=_number_list, metavar="W1,..,W5", help="Jump weights from on-beat subdivisions.")
    parser.add_argument("--jump-even", type=_number_list, metavar="W1,..,W5", help="Jump weights from off-beat subdivisions.")
    parser.add_argument("--triplet-chance", type=_number_list, metavar="B2,B3,B4", help="Triplet chance (0-10) for beats 2, 3 and 4.")
    parser.add_argument("--after-triplet", type=_number_list, metavar="S1,..,S4", help="Weights for the hit following a triplet.")
    parser.add_argument("--repetition-factor", type=float, help="0-1 bias against repeating the previous pitch.")
    parser.add_argument("--forbid-leap", type=int, action="append", default=[], metavar="N", help="Interval (semitones) never allowed in either direction. Repeatable.")
    parser.add_argument("--forbid-descending-leap", type=int, action="append", default=[], metavar="N", help="Interval (semitones) never allowed downward. Repeatable.")
    parser.add_argument("--long-notes", action="store_true", help="Hold each note until the next onset in the timeline.")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output.")
    parser.add_argument("--preset", type=str, help="Apply a saved rhythm preset before the explicit options.")
    parser.add_argument("--save-preset", type=str, metavar="NAME", help="Save the effective rhythm settings as a preset.")
    parser.add_argument("--list-presets", action="store_true", help="List saved presets and exit.")
    parser.add_argument("--settings-file", type=str, help="Path to the JSON settings file.")
    parser.add_argument("--presets-file", type=str, help="Path to the JSON presets file.")
    parser.add_argument("--save-settings", action="store_true", help="Remember the options used for this run.")
    parser.add_argument("--json", action="store_true", help="Print the composition as JSON.")
    return parser


def _pick(value, fallback):
    return fallback if value is None else value


def run_cli(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv`` and print one generated composition.

    Returns ``0`` on success. Invalid input and unsatisfiable constraints are
    logged and end the process with ``sys.exit(1)``.
    """

    args = build_parser().parse_args(argv)

    settings_path = Path(args.settings_file).expanduser() if args.settings_file else settings_store.DEFAULT_SETTINGS_FILE
    presets_path = Path(args.presets_file).expanduser() if args.presets_file else settings_store.DEFAULT_PRESETS_FILE

    if args.list_presets:
        print("\n".join(settings_store.list_presets(presets_path)))
        return 0

    stored = settings_store.load_settings(settings_path)
    rhythm = sanitize_rhythm_settings(stored["rhythmSettings"])
    if args.preset:
        try:
            rhythm = settings_store.load_preset(args.preset, rhythm, presets_path)
        except KeyError:
            logging.error("Unknown preset: %s", args.preset)
            sys.exit(1)

    overrides = rhythm.to_dict()
    for key, value in (
        ("bpm", args.bpm),
        ("jumpOddWeights", args.jump_odd),
        ("jumpEvenWeights", args.jump_even),
        ("tripletChance", args.triplet_chance),
        ("afterTripletWeights", args.after_triplet),
        ("repetitionProbabilityFactor", args.repetition_factor),
    ):
        if value is not None:
            overrides[key] = value
    rhythm = sanitize_rhythm_settings(overrides)

    primary = _pick(args.primary, stored["primaryTones"])
    secondary = _pick(args.secondary, stored["secondaryTones"])
    forbidden = _pick(args.forbidden, stored["forbiddenTones"])
    min_midi, max_midi = parse_ambitus(
        _pick(args.ambitus_min, stored["ambitusMin"]),
        _pick(args.ambitus_max, stored["ambitusMax"]),
    )
    try:
        tone_groups = parse_tone_groups(primary, secondary, forbidden)
    except ValueError as exc:
        logging.error(str(exc))
        sys.exit(1)

    rules = VoiceLeadingRules(
        forbidden_leaps=frozenset(args.forbid_leap),
        forbidden_descending_leaps=frozenset(args.forbid_descending_leap),
    )
    rng = random.Random(args.seed)

    try:
        composition = compose(tone_groups, min_midi, max_midi, rhythm, rules=rules, rng=rng)
    except NoPlayableNotesError as exc:
        logging.error(str(exc))
        sys.exit(1)
    except NoValidSequenceError as exc:
        logging.error("Could not generate a melody: %s", exc)
        sys.exit(1)

    if args.save_preset:
        try:
            settings_store.save_preset(args.save_preset, rhythm, presets_path)
        except (ValueError, OSError) as exc:
            logging.error("Could not save preset: %s", exc)
            sys.exit(1)

    if args.save_settings:
        settings_store.save_settings(
            {
                **stored,
                "primaryTones": primary,
                "secondaryTones": secondary,
                "forbiddenTones": forbidden,
                "ambitusMin": str(min_midi),
                "ambitusMax": str(max_midi),
                "longNotes": args.long_notes,
                "rhythmSettings": rhythm.to_dict(),
            },
            settings_path,
        )

    if args.json:
        payload = composition.to_dict()
        payload["timeline"] = [
            item.to_dict()
            for item in create_playable_timeline(
                composition.sequence, composition.pattern, long_notes=args.long_notes
            )
        ]
        print(json.dumps(payload, indent=2))
    else:
        print(composition.pattern.format())
        print(", ".join(composition.labels))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point configuring logging before running the CLI."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(run_cli(argv))
