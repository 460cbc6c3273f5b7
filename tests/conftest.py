from typing import Callable, List

import pytest

from readaloud.controller import PlaybackController
from readaloud.prefs import MemoryPreferenceStore, Preferences
from readaloud.speech import Utterance, VoiceDescriptor

VOICES = [
    VoiceDescriptor("voice1", "Voice 1", "en-US", default=True),
    VoiceDescriptor("voice2", "Voice 2", "en-GB"),
]


class FakeSynthesizer:
    """Records platform calls; tests drive lifecycle events by hand."""

    def __init__(self, voices: List[VoiceDescriptor]) -> None:
        self.voices = list(voices)
        self.calls: List[str] = []
        self.submitted: List[Utterance] = []
        self.listeners: List[Callable[[], None]] = []

    def speak(self, utterance: Utterance) -> None:
        self.calls.append("speak")
        self.submitted.append(utterance)

    def cancel(self) -> None:
        self.calls.append("cancel")

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")

    def get_voices(self) -> List[VoiceDescriptor]:
        return list(self.voices)

    def on_voices_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    def publish_voices(self, voices: List[VoiceDescriptor]) -> None:
        self.voices = list(voices)
        for listener in list(self.listeners):
            listener()

    @property
    def last(self) -> Utterance:
        return self.submitted[-1]

    def count(self, name: str) -> int:
        return self.calls.count(name)


@pytest.fixture
def synth() -> FakeSynthesizer:
    return FakeSynthesizer(VOICES)


@pytest.fixture
def store() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
def controller(synth: FakeSynthesizer, store: MemoryPreferenceStore) -> PlaybackController:
    return PlaybackController(synth, Preferences(store))


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep config, preferences and pronunciation lookups inside tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("READALOUD_CONFIG", str(tmp_path / "config.json"))
    monkeypatch.setenv("READALOUD_PREFS_FILE", str(tmp_path / "prefs.json"))
    monkeypatch.delenv("READALOUD_PRONUN_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
