"""Command line interface tests.

Every invocation points ``--settings-file`` and ``--presets-file`` at a
temporary directory so the user's real files are never touched.
"""

from __future__ import annotations

import importlib
import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

cli = importlib.import_module("phrase_generator.cli")


@pytest.fixture
def run(tmp_path):
    """Return a helper running the CLI with isolated settings files."""

    def _run(*args):
        argv = [
            "--settings-file",
            str(tmp_path / "settings.json"),
            "--presets-file",
            str(tmp_path / "presets.json"),
            *args,
        ]
        return cli.run_cli(argv)

    return _run


def test_prints_pattern_and_labels(run, capsys):
    assert run("--seed", "7") == 0
    pattern_line, labels_line = capsys.readouterr().out.strip().splitlines()
    assert len(pattern_line.split(" ")) == 4
    assert all(label[0] in "ABCDEFG" for label in labels_line.split(", "))


def test_json_output_is_consistent(run, capsys):
    assert run("--seed", "3", "--json", "--long-notes", "--bpm", "200") == 0
    payload = json.loads(capsys.readouterr().out)
    count = len(payload["sequence"])
    assert count == len(payload["labels"]) == len(payload["timeline"])
    assert count == len(payload["pattern"]["noteEvents"])
    assert payload["pattern"]["bpm"] == 140
    assert payload["timeline"][-1]["nextMidi"] is None


def test_seed_makes_output_reproducible(run, capsys):
    run("--seed", "11")
    first = capsys.readouterr().out
    run("--seed", "11")
    assert capsys.readouterr().out == first


def test_rhythm_overrides_apply(run, capsys):
    assert run("--seed", "1", "--json", "--triplet-chance", "0,0,0", "--jump-odd", "0,0,0,10,0", "--jump-even", "0,0,0,10,0") == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["pattern"]["grid"] == [0, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0]
    assert payload["pattern"]["tripletStarts"] == []


def test_only_forbidden_notes_exit_with_error(run, caplog):
    caplog.set_level(logging.ERROR)
    with pytest.raises(SystemExit) as excinfo:
        run("--min", "56", "--max", "56", "--forbidden", "g#")
    assert excinfo.value.code == 1
    assert "no playable notes" in caplog.text


def test_invalid_tone_exits_with_error(run, caplog):
    caplog.set_level(logging.ERROR)
    with pytest.raises(SystemExit) as excinfo:
        run("--primary", "e, h")
    assert excinfo.value.code == 1
    assert 'Invalid note in Primary tones: "h".' in caplog.text


def test_unsatisfiable_exits_with_error(run, caplog):
    caplog.set_level(logging.ERROR)
    with pytest.raises(SystemExit) as excinfo:
        run("--primary", "", "--secondary", "c d", "--forbidden", "", "--min", "60", "--max", "64")
    assert excinfo.value.code == 1
    assert "Could not generate a melody" in caplog.text


def test_presets_are_saved_listed_and_applied(run, capsys):
    assert run("--seed", "2", "--triplet-chance", "10,10,10", "--save-preset", "Triplets") == 0
    capsys.readouterr()
    assert run("--list-presets") == 0
    assert capsys.readouterr().out.strip() == "Triplets"

    assert run("--seed", "2", "--preset", "Triplets", "--json") == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["pattern"]["bpm"] == 92


def test_unknown_preset_exits(run):
    with pytest.raises(SystemExit) as excinfo:
        run("--preset", "nope")
    assert excinfo.value.code == 1


def test_save_settings_remembers_options(run, tmp_path, capsys):
    assert run("--seed", "4", "--primary", "c e g", "--secondary", "d", "--forbidden", "", "--min", "55", "--max", "70", "--save-settings") == 0
    stored = json.loads((tmp_path / "settings.json").read_text())
    assert stored["primaryTones"] == "c e g"
    assert stored["ambitusMin"] == "55"
    assert stored["ambitusMax"] == "70"
    capsys.readouterr()

    # The remembered tones are used when no option is given.
    assert run("--seed", "4", "--json") == 0
    payload = json.loads(capsys.readouterr().out)
    assert all(55 <= m <= 70 for m in payload["sequence"])
