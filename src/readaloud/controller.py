from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from .prefs import MemoryPreferenceStore, Preferences
from .speech import SpeechSynthesizer, Utterance, VoiceDescriptor
from .voices import VoiceCatalog

SPEED_PRESETS: Tuple[float, ...] = (1.0, 1.25, 1.5, 1.75, 2.0)
PITCH_RANGE: Tuple[float, float] = (0.5, 2.0)
PITCH_STEP = 0.1


class PlaybackState(str, Enum):
    IDLE = "IDLE"
    SPEAKING = "SPEAKING"
    PAUSED = "PAUSED"


def next_speed(current: float, presets: Sequence[float] = SPEED_PRESETS) -> float:
    try:
        idx = list(presets).index(current)
    except ValueError:
        return presets[0]
    return presets[(idx + 1) % len(presets)]


def clamp_pitch(value: float) -> float:
    lo, hi = PITCH_RANGE
    return round(max(lo, min(hi, float(value))), 2)


class PlaybackController:
    """Speaking/paused/idle state machine over a platform speech capability.

    A None synthesizer means speech is unsupported: every operation is then a
    silent no-op. Only lifecycle events from the current utterance move the
    state; events from a superseded utterance are dropped.

    set_speed/set_pitch also rewrite the active utterance; set_voice only
    applies from the next speak(). Backends are free to ignore live changes.
    """

    def __init__(
        self,
        synthesizer: Optional[SpeechSynthesizer],
        preferences: Optional[Preferences] = None,
        *,
        volume: float = 1.0,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._synth = synthesizer
        self._prefs = preferences or Preferences(MemoryPreferenceStore())
        self._on_change = on_change
        self._state = PlaybackState.IDLE
        self._speed = 1.0
        self._pitch = 1.0
        self._volume = volume
        self._voices: Tuple[VoiceDescriptor, ...] = ()
        self._selected_voice: Optional[VoiceDescriptor] = None
        self._current: Optional[Utterance] = None
        self._closed = False
        self._catalog: Optional[VoiceCatalog] = None
        if self._synth is not None:
            self._catalog = VoiceCatalog(self._synth, on_load=self._load_voices)
            self._catalog.attach()

    @property
    def is_supported(self) -> bool:
        return self._synth is not None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_speaking(self) -> bool:
        return self._state is not PlaybackState.IDLE

    @property
    def is_paused(self) -> bool:
        return self._state is PlaybackState.PAUSED

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def pitch(self) -> float:
        return self._pitch

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def voices(self) -> Tuple[VoiceDescriptor, ...]:
        return self._voices

    @property
    def selected_voice(self) -> Optional[VoiceDescriptor]:
        return self._selected_voice

    @property
    def current_utterance(self) -> Optional[Utterance]:
        return self._current

    def _active(self) -> bool:
        return self._synth is not None and not self._closed

    def _live_synth(self) -> Optional[SpeechSynthesizer]:
        return None if self._closed else self._synth

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _set_state(self, state: PlaybackState) -> None:
        self._state = state
        self._notify()

    def _load_voices(self, voices: Tuple[VoiceDescriptor, ...]) -> None:
        self._voices = voices
        saved_pitch = self._prefs.pitch
        if saved_pitch is not None:
            self._pitch = saved_pitch
        saved_voice_id = self._prefs.voice_id
        if saved_voice_id and voices:
            match = next((v for v in voices if v.voice_id == saved_voice_id), None)
            if match is not None:
                self._selected_voice = match
        self._notify()

    def speak(self, text: str) -> None:
        synth = self._live_synth()
        if synth is None:
            return
        if self._current is not None:
            self._current.detach()
            self._current = None
        synth.cancel()

        utterance = Utterance(
            text,
            rate=self._speed,
            pitch=self._pitch,
            volume=self._volume,
            voice=self._selected_voice,
        )
        utterance.started.connect(lambda: self._handle_start(utterance))
        utterance.ended.connect(lambda: self._handle_finish(utterance))
        utterance.failed.connect(lambda _reason="": self._handle_finish(utterance))
        self._current = utterance
        synth.speak(utterance)

    def _handle_start(self, utterance: Utterance) -> None:
        if self._closed or utterance is not self._current:
            return
        self._set_state(PlaybackState.SPEAKING)

    def _handle_finish(self, utterance: Utterance) -> None:
        # Normal end and platform error land in the same place: idle, no retry.
        if self._closed or utterance is not self._current:
            return
        self._current = None
        self._set_state(PlaybackState.IDLE)

    def pause(self) -> None:
        synth = self._live_synth()
        if synth is None or self._state is not PlaybackState.SPEAKING:
            return
        synth.pause()
        self._set_state(PlaybackState.PAUSED)

    def resume(self) -> None:
        synth = self._live_synth()
        if synth is None or self._state is not PlaybackState.PAUSED:
            return
        synth.resume()
        self._set_state(PlaybackState.SPEAKING)

    def stop(self) -> None:
        synth = self._live_synth()
        if synth is None:
            return
        if self._state is PlaybackState.IDLE and self._current is None:
            return
        if self._current is not None:
            self._current.detach()
            self._current = None
        synth.cancel()
        self._set_state(PlaybackState.IDLE)

    def toggle(self) -> None:
        """Pause when speaking, resume when paused."""
        if self._state is PlaybackState.SPEAKING:
            self.pause()
        elif self._state is PlaybackState.PAUSED:
            self.resume()

    def set_speed(self, speed: float) -> None:
        if not self._active():
            return
        self._speed = speed
        if self._current is not None:
            self._current.rate = speed
        self._notify()

    def set_pitch(self, pitch: float) -> None:
        if not self._active():
            return
        self._pitch = pitch
        self._prefs.set_pitch(pitch)
        if self._current is not None:
            self._current.pitch = pitch
        self._notify()

    def set_voice(self, voice: Optional[VoiceDescriptor]) -> None:
        if not self._active():
            return
        self._selected_voice = voice
        self._prefs.set_voice_id(voice.voice_id if voice is not None else None)
        self._notify()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._synth is None:
            return
        self._synth.cancel()
        if self._catalog is not None:
            self._catalog.detach()
        if self._current is not None:
            self._current.detach()
            self._current = None
        self._state = PlaybackState.IDLE

    def __enter__(self) -> "PlaybackController":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
