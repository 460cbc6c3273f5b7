from __future__ import annotations

from typing import Callable, Optional, Tuple

from .speech import SpeechSynthesizer, VoiceDescriptor


class VoiceCatalog:
    """Tracks the platform voice list, which some platforms fill in late.

    attach() loads once and re-runs the same load on every voices-changed
    notification until detach().
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        on_load: Optional[Callable[[Tuple[VoiceDescriptor, ...]], None]] = None,
    ) -> None:
        self._synth = synthesizer
        self._on_load = on_load
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.voices: Tuple[VoiceDescriptor, ...] = ()

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self) -> None:
        self.load()
        if self._unsubscribe is None:
            self._unsubscribe = self._synth.on_voices_changed(self.load)

    def load(self) -> None:
        self.voices = tuple(self._synth.get_voices())
        if self._on_load is not None:
            self._on_load(self.voices)

    def find(self, voice_id: Optional[str]) -> Optional[VoiceDescriptor]:
        if not voice_id:
            return None
        for voice in self.voices:
            if voice.voice_id == voice_id:
                return voice
        return None

    def detach(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
