"""Tests for the Flask JSON API.

The app is created per test with ``PRESETS_FILE`` inside ``tmp_path`` and the
rate limiter's request log cleared, so tests are independent of each other
and of the user's home directory.
"""

import base64
import importlib
import sys
from pathlib import Path

import pytest

# Ensure the repository root is on ``sys.path`` so ``phrase_generator`` can be
# imported when tests execute from arbitrary locations.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

pytest.importorskip("flask")

web_api = importlib.import_module("phrase_generator.web_api")


@pytest.fixture
def client(tmp_path):
    web_api.REQUEST_LOG.clear()
    app = web_api.create_app(
        {"TESTING": True, "PRESETS_FILE": str(tmp_path / "presets.json"), "RATE_LIMIT_PER_MINUTE": None}
    )
    return app.test_client()


def test_defaults(client):
    resp = client.get("/api/defaults")
    assert resp.status_code == 200
    data = resp.get_json()
    assert "Piano" in data["instruments"]
    assert data["rhythmSettings"]["bpm"] == 92
    assert data["settings"]["primaryTones"] == "e, g, b"


def test_generate_returns_full_composition(client):
    resp = client.post("/api/generate", json={"seed": 5, "instrument": "Flute", "longNotes": True})
    assert resp.status_code == 200
    data = resp.get_json()
    count = len(data["sequence"])
    assert count == len(data["labels"]) == len(data["timeline"])
    assert count == len(data["pattern"]["noteEvents"])
    assert data["ambitus"] == [50, 72]
    assert base64.b64decode(data["midi"]).startswith(b"MThd")


def test_generate_is_reproducible_with_seed(client):
    first = client.post("/api/generate", json={"seed": 9}).get_json()
    second = client.post("/api/generate", json={"seed": 9}).get_json()
    assert first["sequence"] == second["sequence"]
    assert first["pattern"] == second["pattern"]


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"primaryTones": "e, h"}, "Invalid note in Primary tones"),
        ({"instrument": "Kazoo"}, "Unknown instrument"),
        ({"seed": "abc"}, "seed must be an integer"),
        ({"ambitusMin": "56", "ambitusMax": "56"}, "no playable notes"),
    ],
)
def test_generate_bad_request(client, payload, message):
    resp = client.post("/api/generate", json=payload)
    assert resp.status_code == 400
    assert message in resp.get_json()["error"]


def test_generate_unsatisfiable_is_unprocessable(client):
    resp = client.post(
        "/api/generate",
        json={"primaryTones": "", "secondaryTones": "c d", "forbiddenTones": "", "ambitusMin": 60, "ambitusMax": 64},
    )
    assert resp.status_code == 422
    assert "no valid sequence" in resp.get_json()["error"]


def test_preset_endpoints(client):
    assert client.get("/api/presets").get_json() == {"presets": []}

    resp = client.post(
        "/api/presets",
        json={"name": "Busy", "rhythmSettings": {"bpm": 130, "jumpOddWeights": [10, 0, 0, 0, 0]}},
    )
    assert resp.status_code == 201
    assert resp.get_json()["presets"] == ["Busy"]

    loaded = client.get("/api/presets/Busy").get_json()
    assert loaded["rhythmSettings"]["jumpOddWeights"] == [10, 0, 0, 0, 0]
    assert loaded["rhythmSettings"]["bpm"] == 92

    # The tempo of the current settings travels in the query string.
    kept = client.get("/api/presets/Busy?bpm=120").get_json()
    assert kept["rhythmSettings"]["bpm"] == 120
    assert kept["rhythmSettings"]["jumpOddWeights"] == [10, 0, 0, 0, 0]

    exported = client.get("/api/presets/export?name=Busy").get_json()
    assert exported["version"] == 1
    assert exported["rhythmSettings"]["jumpOddWeights"] == [10, 0, 0, 0, 0]

    imported = client.post(
        "/api/presets/import", json={"payload": exported, "current": {"bpm": 70}}
    ).get_json()
    assert imported["rhythmSettings"]["bpm"] == 70
    assert imported["rhythmSettings"]["jumpOddWeights"] == [10, 0, 0, 0, 0]

    assert client.delete("/api/presets/Busy").get_json() == {"presets": []}
    assert client.get("/api/presets/Busy").status_code == 404
    assert client.get("/api/presets/export?name=Busy").status_code == 404


def test_preset_requires_name(client):
    resp = client.post("/api/presets", json={"name": " "})
    assert resp.status_code == 400


def test_import_rejects_non_object(client):
    resp = client.post("/api/presets/import", json=[1, 2, 3])
    assert resp.status_code == 400


def test_rate_limit_enforces_limit(tmp_path):
    """Requests beyond the configured threshold return HTTP 429."""
    web_api.REQUEST_LOG.clear()
    app = web_api.create_app(
        {"TESTING": True, "PRESETS_FILE": str(tmp_path / "p.json"), "RATE_LIMIT_PER_MINUTE": 1}
    )
    client = app.test_client()
    first = client.get("/api/defaults")
    assert first.status_code == 200
    assert "Retry-After" not in first.headers

    second = client.get("/api/defaults")
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) > 0


def test_rate_limit_purges_expired_entries(tmp_path):
    web_api.REQUEST_LOG.clear()
    app = web_api.create_app(
        {"TESTING": True, "PRESETS_FILE": str(tmp_path / "p.json"), "RATE_LIMIT_PER_MINUTE": 5}
    )
    web_api.REQUEST_LOG["stale"] = (web_api.monotonic() - web_api.RATE_LIMIT_WINDOW * 2, 1)
    assert app.test_client().get("/api/defaults").status_code == 200
    assert "stale" not in web_api.REQUEST_LOG


def test_invalid_rate_limit_disables_throttling(tmp_path, caplog):
    web_api.REQUEST_LOG.clear()
    app = web_api.create_app(
        {"TESTING": True, "PRESETS_FILE": str(tmp_path / "p.json"), "RATE_LIMIT_PER_MINUTE": "lots"}
    )
    client = app.test_client()
    for _ in range(3):
        assert client.get("/api/defaults").status_code == 200
    assert "Invalid RATE_LIMIT_PER_MINUTE" in caplog.text


def test_zero_rate_limit_disables_throttling(tmp_path):
    web_api.REQUEST_LOG.clear()
    app = web_api.create_app(
        {"TESTING": True, "PRESETS_FILE": str(tmp_path / "p.json"), "RATE_LIMIT_PER_MINUTE": 0}
    )
    client = app.test_client()
    for _ in range(3):
        assert client.get("/api/defaults").status_code == 200
    assert not web_api.REQUEST_LOG
