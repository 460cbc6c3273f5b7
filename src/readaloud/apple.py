"""AVSpeechSynthesizer-backed speech capability (macOS, pyobjc).

Delegate callbacks arrive through the main run loop, so the owning thread has
to call pump() regularly. AVSpeechUtterance parameters are frozen once queued:
rate/pitch changes made to a live Utterance apply from the next speak().
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from .speech import Utterance, VoiceDescriptor

try:
    import AVFoundation  # type: ignore
    import objc  # type: ignore
    from Foundation import NSDate, NSNotificationCenter, NSObject, NSRunLoop  # type: ignore

    APPLE_SPEECH_AVAILABLE = True
except Exception:
    AVFoundation = None
    objc = None
    NSDate = None
    NSNotificationCenter = None
    NSObject = None
    NSRunLoop = None
    APPLE_SPEECH_AVAILABLE = False

VOICES_CHANGED_NOTIFICATION = "AVSpeechSynthesisAvailableVoicesDidChangeNotification"


if APPLE_SPEECH_AVAILABLE:

    class _SynthDelegate(NSObject):  # type: ignore[misc, valid-type]
        def initWithOwner_(self, owner: "AppleSpeechSynthesizer") -> Any:
            self = objc.super(_SynthDelegate, self).init()
            if self is None:
                return None
            self._owner = owner
            return self

        def speechSynthesizer_didStartSpeechUtterance_(self, synth: Any, av_utterance: Any) -> None:
            self._owner._dispatch(av_utterance, "start")

        def speechSynthesizer_didFinishSpeechUtterance_(self, synth: Any, av_utterance: Any) -> None:
            self._owner._dispatch(av_utterance, "end")

        def speechSynthesizer_didCancelSpeechUtterance_(self, synth: Any, av_utterance: Any) -> None:
            self._owner._dispatch(av_utterance, "cancel")


def _av_rate(rate: float) -> float:
    lo = float(AVFoundation.AVSpeechUtteranceMinimumSpeechRate)
    hi = float(AVFoundation.AVSpeechUtteranceMaximumSpeechRate)
    base = float(AVFoundation.AVSpeechUtteranceDefaultSpeechRate)
    return max(lo, min(hi, base * float(rate)))


class AppleSpeechSynthesizer:
    def __init__(self) -> None:
        if not APPLE_SPEECH_AVAILABLE:
            raise RuntimeError(
                "Apple speech requires macOS with pyobjc installed:\n"
                "pip install pyobjc-core pyobjc-framework-Cocoa pyobjc-framework-AVFoundation"
            )
        self._synth = AVFoundation.AVSpeechSynthesizer.alloc().init()
        self._delegate = _SynthDelegate.alloc().initWithOwner_(self)
        self._synth.setDelegate_(self._delegate)
        self._pending: Dict[Any, Utterance] = {}

    def _dispatch(self, av_utterance: Any, kind: str) -> None:
        utterance = self._pending.get(av_utterance)
        if utterance is None:
            return
        if kind == "start":
            utterance.notify_start()
            return
        self._pending.pop(av_utterance, None)
        if kind == "end":
            utterance.notify_end()
        else:
            utterance.notify_error("canceled")

    def speak(self, utterance: Utterance) -> None:
        av_utterance = AVFoundation.AVSpeechUtterance.speechUtteranceWithString_(utterance.text)
        av_utterance.setRate_(_av_rate(utterance.rate))
        av_utterance.setPitchMultiplier_(float(utterance.pitch))
        av_utterance.setVolume_(float(utterance.volume))
        if utterance.voice is not None:
            av_voice = AVFoundation.AVSpeechSynthesisVoice.voiceWithIdentifier_(utterance.voice.voice_id)
            if av_voice is not None:
                av_utterance.setVoice_(av_voice)
        self._pending[av_utterance] = utterance
        self._synth.speakUtterance_(av_utterance)

    def cancel(self) -> None:
        self._synth.stopSpeakingAtBoundary_(AVFoundation.AVSpeechBoundaryImmediate)

    def pause(self) -> None:
        self._synth.pauseSpeakingAtBoundary_(AVFoundation.AVSpeechBoundaryImmediate)

    def resume(self) -> None:
        self._synth.continueSpeaking()

    def get_voices(self) -> List[VoiceDescriptor]:
        default = AVFoundation.AVSpeechSynthesisVoice.voiceWithLanguage_(None)
        default_id = str(default.identifier()) if default is not None else None
        out: List[VoiceDescriptor] = []
        for v in AVFoundation.AVSpeechSynthesisVoice.speechVoices() or []:
            voice_id = str(v.identifier())
            out.append(
                VoiceDescriptor(
                    voice_id=voice_id,
                    name=str(v.name()),
                    lang=str(v.language()),
                    default=voice_id == default_id,
                )
            )
        return out

    def on_voices_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        name = getattr(AVFoundation, "AVSpeechSynthesisAvailableVoicesDidChangeNotification", VOICES_CHANGED_NOTIFICATION)
        center = NSNotificationCenter.defaultCenter()
        token = center.addObserverForName_object_queue_usingBlock_(name, None, None, lambda _note: callback())

        def unsubscribe() -> None:
            center.removeObserver_(token)

        return unsubscribe

    def pump(self, seconds: float = 0.05) -> None:
        NSRunLoop.currentRunLoop().runUntilDate_(NSDate.dateWithTimeIntervalSinceNow_(seconds))


def detect_synthesizer() -> Optional[AppleSpeechSynthesizer]:
    if not APPLE_SPEECH_AVAILABLE:
        return None
    try:
        return AppleSpeechSynthesizer()
    except Exception:
        return None
