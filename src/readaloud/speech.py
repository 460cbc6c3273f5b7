"""Boundary types shared by the playback controller and speech backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class VoiceDescriptor:
    voice_id: str
    name: str
    lang: str
    default: bool = False
    local_service: bool = True

    @property
    def label(self) -> str:
        return f"{self.name} ({self.lang})"


class OneShotEvent:
    """Named lifecycle event that delivers to its handlers at most once."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: List[Callable[..., None]] = []
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def connect(self, handler: Callable[..., None]) -> None:
        self._handlers.append(handler)

    def disconnect_all(self) -> None:
        self._handlers.clear()

    def fire(self, *args: Any) -> bool:
        if self._fired:
            return False
        self._fired = True
        for handler in list(self._handlers):
            handler(*args)
        return True


class Utterance:
    """One playback attempt.

    rate, pitch and volume stay writable after submission; whether a backend
    picks up a change mid-playback is up to the backend. Backends report
    progress through notify_start/notify_end/notify_error, and only the first
    terminal notification (end or error) is delivered.
    """

    def __init__(
        self,
        text: str,
        *,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
        voice: Optional[VoiceDescriptor] = None,
    ) -> None:
        self.text = text
        self.rate = rate
        self.pitch = pitch
        self.volume = volume
        self.voice = voice
        self.started = OneShotEvent("start")
        self.ended = OneShotEvent("end")
        self.failed = OneShotEvent("error")

    @property
    def finished(self) -> bool:
        return self.ended.fired or self.failed.fired

    def notify_start(self) -> None:
        if not self.finished:
            self.started.fire()

    def notify_end(self) -> None:
        if not self.finished:
            self.ended.fire()

    def notify_error(self, reason: str = "") -> None:
        if not self.finished:
            self.failed.fire(reason)

    def detach(self) -> None:
        for event in (self.started, self.ended, self.failed):
            event.disconnect_all()

    def __repr__(self) -> str:
        preview = self.text if len(self.text) <= 24 else self.text[:21] + "..."
        return f"Utterance({preview!r}, rate={self.rate}, pitch={self.pitch})"


class SpeechSynthesizer(Protocol):
    """Platform speech capability driven by the playback controller."""

    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def get_voices(self) -> Sequence[VoiceDescriptor]: ...

    def on_voices_changed(self, callback: Callable[[], None]) -> Callable[[], None]: ...
