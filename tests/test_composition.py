"""Tests for the end-to-end ``compose`` pipeline."""

import importlib
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

composition = importlib.import_module("phrase_generator.composition")
tones = importlib.import_module("phrase_generator.tones")
solver = importlib.import_module("phrase_generator.melody_solver")

GROUPS = tones.ToneGroups(primary={4, 7, 11}, secondary={6, 9, 0, 2}, forbidden={8, 1})


def test_sequence_length_matches_events():
    for seed in range(25):
        result = composition.compose(GROUPS, 50, 72, rng=random.Random(seed))
        assert len(result.sequence) == result.pattern.note_count
        assert len(result.labels) == len(result.sequence)
        assert all(50 <= m <= 72 for m in result.sequence)
        assert GROUPS.classify(result.sequence[-1]) is tones.Category.A


def test_settings_mapping_is_sanitized():
    result = composition.compose(
        GROUPS, 50, 72, {"bpm": 400, "tripletChance": [0, 0, 0]}, rng=random.Random(2)
    )
    assert result.pattern.bpm == 140
    assert not result.pattern.triplet_starts


def test_empty_pool_fails_before_rhythm(monkeypatch):
    """No rhythm is generated when the ambitus holds only forbidden notes."""

    def _unexpected(*_args, **_kwargs):
        raise AssertionError("rhythm generated")

    monkeypatch.setattr(composition.RhythmGenerator, "generate", _unexpected)
    with pytest.raises(tones.NoPlayableNotesError):
        composition.compose(GROUPS, 56, 56, rng=random.Random(0))


def test_unsatisfiable_raises_no_valid_sequence():
    groups = tones.ToneGroups(secondary={0, 2})
    with pytest.raises(solver.NoValidSequenceError):
        composition.compose(groups, 60, 64, rng=random.Random(0))


def test_to_dict_contains_labels_and_pattern():
    result = composition.compose(GROUPS, 50, 72, rng=random.Random(8))
    data = result.to_dict()
    assert data["sequence"] == list(result.sequence)
    assert data["labels"] == result.labels
    assert data["pattern"]["display"] == result.pattern.format()
    assert len(data["pattern"]["noteEvents"]) == len(result.sequence)
