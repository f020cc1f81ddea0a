"""Unit tests for the rhythm pattern generator."""

import importlib
import random
import sys
from fractions import Fraction
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

rhythm = importlib.import_module("phrase_generator.rhythm_engine")

# A jump of exactly four from slot 4 hits every beat start after the first.
BEAT_WALK = {"jumpOddWeights": [0, 0, 0, 10, 0], "jumpEvenWeights": [0, 0, 0, 10, 0]}


def _settings(**overrides):
    data = rhythm.RhythmSettings().to_dict()
    data.update(BEAT_WALK)
    data.update(overrides)
    return data


def _assert_triplet_events(pattern):
    offsets = {e.subdivision_offset: e.kind for e in pattern.note_events}
    for start in pattern.triplet_starts:
        for step in (0, Fraction(4, 3), Fraction(8, 3)):
            assert offsets[start + step] == rhythm.TRIPLET


def test_generate_terminates_and_reserves_last_slot():
    """Random settings always terminate with slot 15 cleared."""
    meta = random.Random(99)
    for seed in range(300):
        settings = {
            "jumpOddWeights": [meta.randint(0, 10) for _ in range(5)],
            "jumpEvenWeights": [meta.randint(0, 10) for _ in range(5)],
            "tripletChance": [meta.randint(0, 10) for _ in range(3)],
            "afterTripletWeights": [meta.randint(0, 10) for _ in range(4)],
        }
        pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(seed))
        assert len(pattern.grid) == 16
        assert pattern.grid[15] == 0
        assert pattern.note_count >= 1
        _assert_triplet_events(pattern)
        offsets = [e.subdivision_offset for e in pattern.note_events]
        assert offsets == sorted(offsets)
        assert all(0 <= o < 16 for o in offsets)


def test_event_count_matches_grid_and_triplets():
    """Plain hits emit one event and triplet beats emit three."""
    for seed in range(50):
        pattern = rhythm.generate_rhythm_pattern(None, rng=random.Random(seed))
        plain = sum(
            1 for idx, hit in enumerate(pattern.grid)
            if hit and idx not in pattern.triplet_starts
        )
        assert pattern.note_count == plain + 3 * len(pattern.triplet_starts)


def test_zero_weights_fall_back_to_uniform_jumps():
    """All-zero jump weights never raise or loop forever."""
    settings = {"jumpOddWeights": [0, 0, 0, 0, 0], "jumpEvenWeights": [0, 0, 0, 0, 0]}
    for seed in range(100):
        pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(seed))
        assert pattern.grid[15] == 0
        assert pattern.note_count >= 1


def test_max_triplet_chance_turns_every_beat_into_triplet():
    """With certain triplets and a downbeat lock every later beat is a triplet."""
    settings = _settings(tripletChance=[10, 10, 10], afterTripletWeights=[10, 0, 0, 0])
    pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(0))
    assert pattern.triplet_starts == frozenset({4, 8, 12})
    assert pattern.note_count == 9
    assert pattern.format() == "'''' T T T"
    _assert_triplet_events(pattern)


def test_after_triplet_lock_places_single_hit():
    """The beat after a triplet holds exactly one hit at the weighted offset."""
    settings = _settings(tripletChance=[10, 10, 10], afterTripletWeights=[0, 10, 0, 0])
    pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(4))
    assert list(pattern.grid[8:12]) == [0, 1, 0, 0]
    # Beat 3 no longer starts with a hit so only beats 2 and 4 are triplets.
    assert pattern.triplet_starts == frozenset({4, 12})
    assert pattern.format() == "'''' T '!'' T"
    assert [e.subdivision_offset for e in pattern.note_events] == [
        4, Fraction(16, 3), Fraction(20, 3), 9, 12, Fraction(40, 3), Fraction(44, 3),
    ]


def test_lock_into_last_beat_never_uses_reserved_slot():
    """A triplet on beat 3 locks one hit in slots 12-14, never slot 15."""
    settings = _settings(tripletChance=[0, 10, 0], afterTripletWeights=[0, 0, 0, 10])
    for seed in range(30):
        pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(seed))
        assert pattern.triplet_starts == frozenset({8})
        assert sum(pattern.grid[12:16]) == 1
        assert pattern.grid[15] == 0


def test_zero_triplet_chance_never_creates_triplets():
    settings = _settings(tripletChance=[0, 0, 0])
    for seed in range(30):
        pattern = rhythm.generate_rhythm_pattern(settings, rng=random.Random(seed))
        assert not pattern.triplet_starts
        assert all(e.kind == rhythm.HIT for e in pattern.note_events)


def test_same_seed_same_pattern():
    """Injected random sources make generation reproducible."""
    first = rhythm.RhythmGenerator(random.Random(21)).generate()
    second = rhythm.RhythmGenerator(random.Random(21)).generate()
    assert first == second


def test_sanitize_clamps_and_pads():
    """Out-of-range and malformed values are clamped, padded or defaulted."""
    settings = rhythm.sanitize_rhythm_settings(
        {
            "bpm": 500,
            "jumpOddWeights": [20, -3, "x"],
            "jumpEvenWeights": None,
            "tripletChance": [1, 2, 3, 4],
            "afterTriplet2Weights": [1, 2, 3, 4],
            "repetitionProbabilityFactor": "oops",
        }
    )
    assert settings.bpm == 140
    assert settings.jump_odd_weights == (10, 0, 0, 0, 0)
    assert settings.jump_even_weights == (0, 0, 0, 0, 0)
    assert settings.triplet_chance == (1, 2, 3)
    assert settings.after_triplet_weights == (1, 2, 3, 4)
    assert settings.repetition_probability_factor == rhythm.DEFAULT_REPETITION_PROBABILITY_FACTOR

    low = rhythm.sanitize_rhythm_settings({"bpm": 1, "repetitionProbabilityFactor": -2})
    assert low.bpm == 30
    assert low.repetition_probability_factor == 0.0


def test_sanitize_defaults_and_round_trip():
    defaults = rhythm.sanitize_rhythm_settings(None)
    assert defaults == rhythm.RhythmSettings()
    assert rhythm.RhythmSettings.from_dict(defaults.to_dict()) == defaults


def test_format_pattern_glyphs():
    grid = [1, 0, 1, 0, 0, 0, 0, 1, 1, 0, 0, 0, 0, 0, 0, 0]
    assert rhythm.format_pattern(grid, set()) == "!'!' '''! !''' ''''"
    assert rhythm.format_pattern(grid, {8}) == "!'!' '''! T ''''"
