from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import normalize
from .apple import detect_synthesizer
from .controller import PlaybackController
from .prefs import JsonFilePreferenceStore, MemoryPreferenceStore, Preferences
from .speech import SpeechSynthesizer


class ReadAloud:
    """Programmatic API over normalization and playback for other tools."""

    def __init__(
        self,
        *,
        synthesizer: Optional[SpeechSynthesizer] = None,
        prefs_path: Optional[str] = None,
        persist_preferences: bool = True,
        pronunciation_file: Optional[str] = None,
    ) -> None:
        self._synthesizer = synthesizer
        store = (
            JsonFilePreferenceStore(Path(prefs_path).expanduser() if prefs_path else None)
            if persist_preferences
            else MemoryPreferenceStore()
        )
        self.preferences = Preferences(store)
        self._pronunciation_file = Path(pronunciation_file).expanduser() if pronunciation_file else None
        self._rules: Optional[Sequence[normalize.ReplacementRule]] = None

    @property
    def synthesizer(self) -> Optional[SpeechSynthesizer]:
        return self._synthesizer

    @property
    def rules(self) -> Sequence[normalize.ReplacementRule]:
        if self._rules is None:
            self._rules = normalize.load_pronunciation_rules(self._pronunciation_file)
        return self._rules

    def prepare(self, content: str, override: Optional[str] = None) -> str:
        return normalize.prepare_tts_content(content, override, self.rules)

    def prepare_file(self, input_path: str, *, override_path: Optional[str] = None, slug: Optional[str] = None) -> Dict[str, Any]:
        article = normalize.load_article(Path(input_path).expanduser(), slug=slug)
        override = article.speech_override
        if override_path:
            override = Path(override_path).expanduser().read_text(encoding="utf-8")
        text = self.prepare(article.content, override)
        return {
            "input": str(Path(input_path).expanduser()),
            "title": article.title,
            "override": bool(override),
            "chars": len(text),
            "text": text,
        }

    def controller(self, *, volume: float = 1.0, on_change: Optional[Callable[[], None]] = None) -> PlaybackController:
        synth = self._synthesizer if self._synthesizer is not None else detect_synthesizer()
        self._synthesizer = synth
        return PlaybackController(synth, self.preferences, volume=volume, on_change=on_change)

    def voices(self, lang: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.controller() as ctl:
            selected = ctl.selected_voice
            prefix = (lang or "").lower()
            return [
                {
                    "id": v.voice_id,
                    "name": v.name,
                    "lang": v.lang,
                    "default": v.default,
                    "selected": selected is not None and v.voice_id == selected.voice_id,
                }
                for v in ctl.voices
                if v.lang.lower().startswith(prefix)
            ]
