from __future__ import annotations

import asyncio
import shutil
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .controller import PITCH_STEP, PlaybackController, clamp_pitch, next_speed

Pump = Callable[[float], None]


def _sleep_pump(seconds: float) -> None:
    time.sleep(seconds)


def speak_to_completion(
    controller: PlaybackController,
    text: str,
    *,
    pump: Optional[Pump] = None,
    poll_seconds: float = 0.05,
) -> None:
    """Speak text and block until the utterance ends, fails or is stopped."""
    if not controller.is_supported:
        return
    step = pump or _sleep_pump
    controller.speak(text)
    try:
        while controller.current_utterance is not None:
            step(poll_seconds)
    except KeyboardInterrupt:
        controller.stop()
        raise


def _preview(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    if limit <= 0 or len(flat) <= limit:
        return flat
    return flat[: max(0, limit - 3)].rstrip() + "..."


def run_reader(
    controller: PlaybackController,
    text: str,
    *,
    title: Optional[str] = None,
    pump: Optional[Pump] = None,
    preview_chars: int = 280,
    autostart: bool = True,
) -> Dict[str, Any]:
    try:
        from prompt_toolkit.application import Application
        from prompt_toolkit.key_binding import KeyBindings
        from prompt_toolkit.layout import Layout
        from prompt_toolkit.layout.containers import HSplit, Window
        from prompt_toolkit.layout.controls import FormattedTextControl
        from prompt_toolkit.styles import Style
    except Exception as e:
        raise RuntimeError(f"Interactive reader requires prompt_toolkit: {e}")

    kb = KeyBindings()

    def play_pause() -> None:
        if controller.is_paused:
            controller.resume()
        elif controller.is_speaking:
            controller.pause()
        else:
            controller.speak(text)

    def cycle_voice() -> None:
        voices = list(controller.voices)
        if not voices:
            return
        current = controller.selected_voice
        idx = voices.index(current) + 1 if current in voices else 0
        controller.set_voice(voices[idx % len(voices)])

    @kb.add(" ")
    def _(event: Any) -> None:
        play_pause()

    @kb.add("s")
    def _(event: Any) -> None:
        controller.stop()

    @kb.add("f")
    def _(event: Any) -> None:
        controller.set_speed(next_speed(controller.speed))

    @kb.add("+")
    @kb.add("=")
    def _(event: Any) -> None:
        controller.set_pitch(clamp_pitch(controller.pitch + PITCH_STEP))

    @kb.add("-")
    @kb.add("_")
    def _(event: Any) -> None:
        controller.set_pitch(clamp_pitch(controller.pitch - PITCH_STEP))

    @kb.add("v")
    def _(event: Any) -> None:
        cycle_voice()

    @kb.add("0")
    def _(event: Any) -> None:
        controller.set_voice(None)

    @kb.add("q")
    @kb.add("Q")
    @kb.add("escape")
    @kb.add("c-c")
    def _(event: Any) -> None:
        event.app.exit()

    def render() -> List[Tuple[str, str]]:
        voice = controller.selected_voice.label if controller.selected_voice else "default"
        info = (
            f"{controller.state.value:<8}  speed={controller.speed:g}x  "
            f"pitch={controller.pitch:.1f}  voice={voice}"
        )
        controls = "space play/pause | s stop | f speed | +/- pitch | v voice | 0 default voice | q quit"
        cols = max(40, shutil.get_terminal_size((100, 30)).columns)
        body: List[Tuple[str, str]] = []
        if title:
            body.append(("class:title", title + "\n"))
        body.append(("class:header", info + "\n\n"))
        body.append(("class:text", _preview(text, min(preview_chars, cols * 4)) + "\n\n"))
        body.append(("class:meta", controls))
        return body

    control = FormattedTextControl(render)
    root = HSplit([Window(control, wrap_lines=True)])
    style = Style.from_dict(
        {
            "title": "bold",
            "header": "bold fg:#3b82f6",
            "text": "",
            "meta": "fg:#888888",
        }
    )
    app: Application[None] = Application(layout=Layout(root), key_bindings=kb, style=style, full_screen=False)

    async def ticker() -> None:
        while True:
            if pump is not None:
                pump(0.0)
            app.invalidate()
            await asyncio.sleep(0.05)

    def pre_run() -> None:
        app.create_background_task(ticker())
        if autostart:
            controller.speak(text)

    try:
        app.run(pre_run=pre_run)
    finally:
        controller.stop()
    return {"speed": controller.speed, "pitch": controller.pitch}
