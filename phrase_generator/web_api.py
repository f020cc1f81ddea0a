"""Flask JSON API for Phrase Generator.

The browser front-end talks to these endpoints. It sends the tone groups,
ambitus and rhythm sliders, then receives the rhythm pattern, the pitch
sequence, a playable timeline and a base64 MIDI preview. Audio rendering is
left to the client.

Routes
------
``GET /api/defaults``
    Default settings, instrument names and the sanitized rhythm settings.
``POST /api/generate``
    Generate one composition.
``GET /api/presets`` / ``POST /api/presets``
    List preset names / save the posted ``rhythmSettings`` under ``name``.
``GET /api/presets/<name>`` / ``DELETE /api/presets/<name>``
    Fetch a preset applied to the default settings, keeping the tempo from
    the optional ``?bpm=`` query parameter / delete it.
``GET /api/presets/export`` / ``POST /api/presets/import``
    Portable preset envelopes.

Abuse protection:
``MAX_CONTENT_LENGTH`` bounds request bodies and an in-memory per-IP limiter
driven by ``RATE_LIMIT_PER_MINUTE`` answers ``429`` with ``Retry-After``.
"""

from __future__ import annotations

import base64
import logging
import math
import os
import random
from pathlib import Path
from threading import Lock
from time import monotonic
from typing import Any, Dict, Mapping, Optional, Tuple

from flask import Flask, Response, current_app, jsonify, make_response, request

from . import settings as settings_store
from .composition import compose
from .melody_solver import NoValidSequenceError
from .midi_io import INSTRUMENTS, create_midi_file, create_playable_timeline, midi_file_to_bytes
from .note_utils import parse_ambitus, parse_tone_groups
from .rhythm_engine import RhythmSettings, sanitize_rhythm_settings
from .tones import NoPlayableNotesError

__all__ = ["create_app", "rate_limit"]

logger = logging.getLogger(__name__)

# Client IP -> (window_start, count). Guarded by ``REQUEST_LOCK`` because the
# development server handles requests on several threads.
REQUEST_LOG: Dict[str, Tuple[float, int]] = {}
REQUEST_LOCK = Lock()
RATE_LIMIT_WINDOW = 60.0


def rate_limit() -> Optional[Response]:
    """Enforce ``RATE_LIMIT_PER_MINUTE`` requests per client IP.

    Registered as a ``before_request`` hook. Returns a ``429`` response with a
    ``Retry-After`` header when the limit is exceeded and ``None`` otherwise.
    A missing, invalid or non-positive limit disables throttling.
    """

    limit_raw = current_app.config.get("RATE_LIMIT_PER_MINUTE")
    if limit_raw is None:
        return None
    try:
        limit = int(limit_raw)
    except (TypeError, ValueError):
        logger.warning("Invalid RATE_LIMIT_PER_MINUTE %r; disabling rate limiting", limit_raw)
        return None
    # Zero or negative limits disable throttling.
    if limit <= 0:
        return None

    now = monotonic()
    ip_addr = request.remote_addr or "unknown"
    with REQUEST_LOCK:
        # Purge clients whose window has elapsed.
        expired = [ip for ip, (start, _) in REQUEST_LOG.items() if now - start >= RATE_LIMIT_WINDOW]
        for ip in expired:
            del REQUEST_LOG[ip]

        window_start, count = REQUEST_LOG.get(ip_addr, (now, 0))
        if count >= limit:
            # Round up so a fractional remainder never reads as "retry now".
            remaining = math.ceil(max(0.0, RATE_LIMIT_WINDOW - (now - window_start)))
            response = make_response(jsonify(error="Too many requests"), 429)
            response.headers["Retry-After"] = str(remaining)
            return response
        # Count this request within the current window.
        REQUEST_LOG[ip_addr] = (window_start, count + 1)
    return None


def _error(message: str, status: int = 400) -> Response:
    return make_response(jsonify(error=message), status)


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _presets_path() -> Path:
    return Path(current_app.config["PRESETS_FILE"])


def _current_settings(data: Mapping[str, Any]) -> RhythmSettings:
    raw = data.get("rhythmSettings")
    return sanitize_rhythm_settings(raw if isinstance(raw, Mapping) else None)


def defaults() -> Response:
    return jsonify(
        settings=settings_store.DEFAULT_SETTINGS,
        instruments=sorted(INSTRUMENTS),
        rhythmSettings=RhythmSettings().to_dict(),
    )


def generate() -> Response:
    """Generate a composition from the posted settings."""

    data = _json_body()
    fallback = settings_store.DEFAULT_SETTINGS

    try:
        tone_groups = parse_tone_groups(
            data.get("primaryTones", fallback["primaryTones"]),
            data.get("secondaryTones", fallback["secondaryTones"]),
            data.get("forbiddenTones", fallback["forbiddenTones"]),
        )
    except ValueError as exc:
        return _error(str(exc))

    min_midi, max_midi = parse_ambitus(
        data.get("ambitusMin", fallback["ambitusMin"]),
        data.get("ambitusMax", fallback["ambitusMax"]),
    )
    instrument = data.get("instrument", fallback["instrument"])
    if not isinstance(instrument, str) or instrument not in INSTRUMENTS:
        return _error(f"Unknown instrument: {instrument}")

    seed = data.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        return _error("seed must be an integer")
    long_notes = bool(data.get("longNotes", False))
    rhythm = _current_settings(data)

    try:
        composition = compose(
            tone_groups, min_midi, max_midi, rhythm, rng=random.Random(seed)
        )
    except NoPlayableNotesError as exc:
        return _error(str(exc))
    except NoValidSequenceError as exc:
        logger.info("Unsatisfiable request: %s", exc)
        return _error(str(exc), 422)

    midi = create_midi_file(
        composition, INSTRUMENTS[instrument], long_notes=long_notes
    )
    payload = composition.to_dict()
    payload.update(
        instrument=instrument,
        ambitus=[min_midi, max_midi],
        rhythmSettings=rhythm.to_dict(),
        timeline=[
            item.to_dict()
            for item in create_playable_timeline(
                composition.sequence, composition.pattern, long_notes=long_notes
            )
        ],
        midi=base64.b64encode(midi_file_to_bytes(midi)).decode("ascii"),
    )
    return jsonify(payload)


def presets() -> Response:
    path = _presets_path()
    if request.method == "GET":
        return jsonify(presets=settings_store.list_presets(path))

    data = _json_body()
    try:
        name = settings_store.save_preset(data.get("name", ""), _current_settings(data), path)
    except ValueError as exc:
        return _error(str(exc))
    except OSError as exc:
        logger.error("Could not save preset: %s", exc)
        return _error("Could not save preset", 500)
    return make_response(jsonify(name=name, presets=settings_store.list_presets(path)), 201)


def _query_settings() -> RhythmSettings:
    """Return the current settings carried in the query string.

    A preset replaces every rhythm field except the tempo, so ``bpm`` is the
    only value a client needs to send.
    """

    bpm = request.args.get("bpm")
    return sanitize_rhythm_settings(None if bpm is None else {"bpm": bpm})


def preset(name: str) -> Response:
    path = _presets_path()
    try:
        if request.method == "DELETE":
            settings_store.delete_preset(name, path)
            return jsonify(presets=settings_store.list_presets(path))
        merged = settings_store.load_preset(name, _query_settings(), path)
    except KeyError:
        return _error(f"Unknown preset: {name}", 404)
    return jsonify(name=name, rhythmSettings=merged.to_dict())


def export_presets() -> Response:
    raw = request.args.get("name")
    if raw:
        try:
            values = settings_store.load_preset(raw, None, _presets_path())
        except KeyError:
            return _error(f"Unknown preset: {raw}", 404)
    else:
        values = RhythmSettings()
    return jsonify(settings_store.export_preset_values(values))


def import_presets() -> Response:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _error("Invalid JSON file for preset import.")
    current = data.get("current")
    try:
        merged = settings_store.import_preset_values(
            data.get("payload", data),
            sanitize_rhythm_settings(current if isinstance(current, Mapping) else None),
        )
    except ValueError as exc:
        return _error(str(exc))
    return jsonify(rhythmSettings=merged.to_dict())


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Build and configure the Flask application.

    ``MAX_UPLOAD_KB`` (default ``64``) and ``RATE_LIMIT_PER_MINUTE`` are read
    from the environment; ``config`` entries override everything, which is how
    tests point ``PRESETS_FILE`` at a temporary directory.
    """

    app = Flask(__name__)

    try:
        max_kb = int(os.environ.get("MAX_UPLOAD_KB", "64"))
    except ValueError:
        max_kb = 64
        logger.warning("Invalid MAX_UPLOAD_KB value; defaulting to 64 KB.")
    app.config["MAX_CONTENT_LENGTH"] = max_kb * 1024
    app.config["RATE_LIMIT_PER_MINUTE"] = os.environ.get("RATE_LIMIT_PER_MINUTE")
    app.config["PRESETS_FILE"] = str(settings_store.DEFAULT_PRESETS_FILE)
    if config:
        app.config.update(config)

    app.before_request(rate_limit)
    app.add_url_rule("/api/defaults", "defaults", defaults, methods=["GET"])
    app.add_url_rule("/api/generate", "generate", generate, methods=["POST"])
    app.add_url_rule("/api/presets", "presets", presets, methods=["GET", "POST"])
    app.add_url_rule("/api/presets/export", "export_presets", export_presets, methods=["GET"])
    app.add_url_rule("/api/presets/import", "import_presets", import_presets, methods=["POST"])
    app.add_url_rule("/api/presets/<path:name>", "preset", preset, methods=["GET", "DELETE"])
    return app


if __name__ == "__main__":  # pragma: no cover - manual launch helper
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    create_app().run(debug=os.environ.get("FLASK_DEBUG") == "1")
