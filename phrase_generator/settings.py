"""Persistent user settings and named rhythm presets.

Settings are a flat JSON document holding the last tone groups, ambitus,
instrument and rhythm sliders. Presets are a JSON object mapping a name to a
rhythm configuration without BPM, so loading a preset changes the feel of the
rhythm while keeping the current tempo.

Both files live in the user's home directory by default. The locations can be
overridden with the ``PHRASE_SETTINGS_FILE`` and ``PHRASE_PRESETS_FILE``
environment variables or per call via ``path``.

Example
-------
>>> payload = export_preset_values(RhythmSettings())
>>> payload["version"]
1
>>> import_preset_values(payload, RhythmSettings(bpm=120)).bpm
120
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .rhythm_engine import RhythmSettings, sanitize_rhythm_settings

__all__ = [
    "DEFAULT_SETTINGS",
    "DEFAULT_SETTINGS_FILE",
    "DEFAULT_PRESETS_FILE",
    "load_settings",
    "save_settings",
    "sanitize_rhythm_preset",
    "list_presets",
    "save_preset",
    "load_preset",
    "delete_preset",
    "export_preset_values",
    "import_preset_values",
]

env_path = os.environ.get("PHRASE_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".phrase_generator_settings.json"

env_presets = os.environ.get("PHRASE_PRESETS_FILE")
if env_presets:
    DEFAULT_PRESETS_FILE = Path(env_presets).expanduser()
else:
    DEFAULT_PRESETS_FILE = Path.home() / ".phrase_generator_presets.json"

PRESET_EXPORT_VERSION = 1

DEFAULT_SETTINGS: Dict[str, Any] = {
    "primaryTones": "e, g, b",
    "secondaryTones": "f#, a, c, d",
    "forbiddenTones": "g#, c#",
    "ambitusMin": "50",
    "ambitusMax": "72",
    "instrument": "Piano",
    "longNotes": False,
    "rhythmSettings": RhythmSettings().to_dict(),
}


def _read_json(path: Path) -> Optional[Any]:
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, ValueError) as exc:
        logging.error(f"Could not read {path}: {exc}")
        return None


def _write_json(data: Any, path: Path) -> None:
    path.expanduser().parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved settings from ``path`` merged over :data:`DEFAULT_SETTINGS`.

    @param path (Path): Location of the settings file.
    @returns dict: Settings with a sanitized ``rhythmSettings`` entry. The
        defaults are returned when the file is missing or unreadable.
    """

    data = _read_json(Path(path))
    settings = dict(DEFAULT_SETTINGS)
    if isinstance(data, dict):
        settings.update({k: v for k, v in data.items() if k in DEFAULT_SETTINGS})
    elif data is not None:
        logging.error("Ignoring settings file %s: expected a JSON object", path)
    settings["rhythmSettings"] = sanitize_rhythm_settings(
        settings.get("rhythmSettings")
        if isinstance(settings.get("rhythmSettings"), Mapping)
        else None
    ).to_dict()
    settings["longNotes"] = bool(settings.get("longNotes"))
    return settings


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save ``settings`` to ``path`` as JSON.

    Write failures are logged and ignored so failing to remember preferences
    never prevents generation.
    """

    try:
        _write_json(settings, Path(path))
    except OSError as exc:
        logging.error(f"Could not save settings: {exc}")


def sanitize_rhythm_preset(source: Optional[Mapping[str, Any]] | RhythmSettings) -> Dict[str, Any]:
    """Return the preset fields of ``source`` (rhythm settings minus BPM)."""

    data = sanitize_rhythm_settings(source).to_dict()
    data.pop("bpm")
    return data


def _merge_preset(preset: Mapping[str, Any], current: Optional[RhythmSettings]) -> RhythmSettings:
    merged = sanitize_rhythm_settings(current).to_dict()
    merged.update(sanitize_rhythm_preset(preset))
    return sanitize_rhythm_settings(merged)


def _read_presets(path: Path) -> Dict[str, Dict[str, Any]]:
    data = _read_json(Path(path))
    if not isinstance(data, dict):
        return {}
    return {str(name): value for name, value in data.items() if isinstance(value, Mapping)}


def list_presets(path: Path = DEFAULT_PRESETS_FILE) -> List[str]:
    """Return saved preset names sorted case-insensitively."""

    return sorted(_read_presets(path), key=str.casefold)


def save_preset(name: str, settings: RhythmSettings | Mapping[str, Any], path: Path = DEFAULT_PRESETS_FILE) -> str:
    """Store ``settings`` under ``name`` and return the stripped name.

    Raises
    ------
    ValueError
        If ``name`` is blank.
    OSError
        If the presets file cannot be written.
    """

    name = (name or "").strip()
    if not name:
        raise ValueError("Preset name must not be empty")
    presets = _read_presets(path)
    presets[name] = sanitize_rhythm_preset(settings)
    _write_json(presets, Path(path))
    logging.info('Preset "%s" saved.', name)
    return name


def load_preset(
    name: str, current: Optional[RhythmSettings] = None, path: Path = DEFAULT_PRESETS_FILE
) -> RhythmSettings:
    """Return ``current`` with the fields of preset ``name`` applied.

    Raises ``KeyError`` if no preset has that name.
    """

    presets = _read_presets(path)
    if name not in presets:
        raise KeyError(f"Unknown preset: {name}")
    return _merge_preset(presets[name], current)


def delete_preset(name: str, path: Path = DEFAULT_PRESETS_FILE) -> None:
    """Remove preset ``name``; raises ``KeyError`` if it does not exist."""

    presets = _read_presets(path)
    if name not in presets:
        raise KeyError(f"Unknown preset: {name}")
    del presets[name]
    _write_json(presets, Path(path))
    logging.info('Preset "%s" deleted.', name)


def export_preset_values(settings: RhythmSettings | Mapping[str, Any]) -> Dict[str, Any]:
    """Return a portable JSON envelope holding the preset fields of ``settings``."""

    return {
        "version": PRESET_EXPORT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "rhythmSettings": sanitize_rhythm_preset(settings),
    }


def import_preset_values(payload: Any, current: Optional[RhythmSettings] = None) -> RhythmSettings:
    """Apply an exported envelope (or a bare settings mapping) to ``current``.

    Raises
    ------
    ValueError
        If ``payload`` is not a JSON object.
    """

    if not isinstance(payload, Mapping):
        raise ValueError("Invalid preset payload: expected a JSON object")
    values = payload.get("rhythmSettings", payload)
    if not isinstance(values, Mapping):
        raise ValueError("Invalid preset payload: rhythmSettings must be an object")
    return _merge_preset(values, current)
