from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

VOICE_KEY = "tts-voice-preference"
PITCH_KEY = "tts-pitch-preference"


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: str) -> None: ...


def default_prefs_path() -> Path:
    explicit = os.getenv("READALOUD_PREFS_FILE")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".config" / "readaloud" / "preferences.json"


class MemoryPreferenceStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def clear(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFilePreferenceStore:
    """Key-value preferences kept in a small JSON object on disk."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or default_prefs_path()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def clear(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def snapshot(self) -> Dict[str, Any]:
        return self._load()


class Preferences:
    """Typed view over the two speech preference keys."""

    def __init__(self, store: PreferenceStore) -> None:
        self.store = store

    @property
    def voice_id(self) -> Optional[str]:
        return self.store.get(VOICE_KEY) or None

    def set_voice_id(self, voice_id: Optional[str]) -> None:
        if voice_id:
            self.store.set(VOICE_KEY, voice_id)
        else:
            self.store.clear(VOICE_KEY)

    @property
    def pitch(self) -> Optional[float]:
        raw = self.store.get(PITCH_KEY)
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    def set_pitch(self, pitch: float) -> None:
        self.store.set(PITCH_KEY, f"{float(pitch):g}")

    def clear(self) -> None:
        self.store.clear(VOICE_KEY)
        self.store.clear(PITCH_KEY)
