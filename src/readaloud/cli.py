from __future__ import annotations

import argparse
import copy
from datetime import datetime
import json
import os
from pathlib import Path
import sys
import tomllib
from typing import Any, Callable, Iterator, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .api import ReadAloud
from .controller import PlaybackController
from .prefs import PITCH_KEY, VOICE_KEY
from .session import run_reader, speak_to_completion

load_dotenv()

console = Console()

DEFAULT_CONFIG: dict[str, Any] = {
    "global": {
        "display": "normal",
        "verbose": 2,
        "logging": 0,
        "logging_file": None,
        "logging_clear": False,
    },
    "speech": {
        "speed": 1.0,
        "volume": 1.0,
        "pronunciation_file": None,
        "prefs_file": None,
        "persist_preferences": True,
    },
    "read": {
        "preview_chars": 280,
    },
}

KNOWN_COMMANDS = {"prepare", "say", "read", "voices", "prefs", "config"}

_KEYWORDS: dict[str, Any] = {"true": True, "false": False, "null": None, "none": None}
_MISSING = object()


def _merge_config(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _config_path() -> Path:
    explicit = os.getenv("READALOUD_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".config" / "readaloud" / "config.json"


def _load_blob(path: Path) -> dict[str, Any]:
    try:
        if path.suffix.lower() == ".toml":
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        else:
            data = json.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        return {}
    # Allow a shared config file with our settings nested under "readaloud".
    if isinstance(data.get("readaloud"), dict):
        return data["readaloud"]
    return data


def _load_config() -> dict[str, Any]:
    path = _config_path()
    overlay = _load_blob(path) if path.exists() else {}
    return _merge_config(DEFAULT_CONFIG, overlay)


def _save_config(cfg: dict[str, Any]) -> Path:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
    return path


def _coerce_scalar(text: str) -> Any:
    """Read a `config set` value: JSON literals, plus true/false/none in any case."""
    stripped = text.strip()
    if stripped.lower() in _KEYWORDS:
        return _KEYWORDS[stripped.lower()]
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return text


def _cfg_get(cfg: dict[str, Any], path: str, default: Any = None) -> Any:
    node: Any = cfg
    for part in path.split("."):
        node = node.get(part, _MISSING) if isinstance(node, dict) else _MISSING
        if node is _MISSING:
            return default
    return node


def _cfg_set(cfg: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = cfg
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value


def _cfg_keys(cfg: dict[str, Any], prefix: str = "") -> Iterator[str]:
    for key, value in cfg.items():
        dotted = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from _cfg_keys(value, dotted)
        else:
            yield dotted


def _resolve(cli_value: Any, cfg: dict[str, Any], path: str, fallback: Any) -> Any:
    if cli_value is not None:
        return cli_value
    return _cfg_get(cfg, path, fallback)


class _RunLog:
    """Timestamped run log; level 0 or no path means nothing is written."""

    def __init__(self, level: int, path: Optional[Path]) -> None:
        self.path = path
        self.level = max(0, min(3, int(level))) if path is not None else 0

    def note(self, level: int, message: str) -> None:
        if self.path is None or level > self.level:
            return
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            print(f"[{stamp}] {message}", file=fh)


def _log_path(args: argparse.Namespace, raw: Optional[str]) -> Path:
    source = Path(args.input).expanduser() if getattr(args, "input", None) else None
    name = f"{source.stem if source is not None else 'readaloud'}-{datetime.now():%y%m%d.%H%M}.log"
    if not raw:
        return (source.parent if source is not None else Path.cwd()) / name
    target = Path(raw).expanduser()
    # A folder target (existing dir, trailing slash, or no suffix) gets a generated file name.
    if target.is_dir() or str(raw).endswith("/") or not target.suffix:
        return target / name
    return target


def _open_run_log(args: argparse.Namespace, cfg: dict[str, Any]) -> _RunLog:
    flagged = next((n for n in range(4) if getattr(args, f"l{n}", False)), None)
    if flagged is None:
        flagged = _resolve(getattr(args, "logging", None), cfg, "global.logging", 0)
    level = int(flagged or 0)
    if level <= 0:
        return _RunLog(0, None)
    path = _log_path(args, _resolve(getattr(args, "logging_file", None), cfg, "global.logging_file", None))
    if getattr(args, "logging_clear", False) or _cfg_get(cfg, "global.logging_clear", False):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")
    log = _RunLog(level, path)
    log.note(1, f"log_file={path}")
    return log


def _display_mode(args: argparse.Namespace, cfg: dict[str, Any]) -> str:
    choice = _resolve(getattr(args, "display", None), cfg, "global.display", "normal")
    return "rich" if choice in {"r", "rich"} else "normal"


def _verbosity(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    if getattr(args, "quiet", False):
        return 0
    picked = next((n for n in range(4) if getattr(args, f"v{n}", False)), None)
    if picked is None:
        picked = _resolve(getattr(args, "verbose", None), cfg, "global.verbose", 2)
    return max(0, min(3, int(picked)))


def _terse_lines(obj: Any) -> list[str]:
    lines: list[str] = []
    for item in obj if isinstance(obj, list) else [obj]:
        if not isinstance(item, dict):
            continue
        key = next((k for k in ("output", "text", "id") if item.get(k)), None)
        if key is not None:
            lines.append(str(item[key]))
    return lines


def _emit(obj: Any, *, verbosity: int, display: str) -> None:
    if verbosity <= 0:
        return
    if verbosity == 1:
        for line in _terse_lines(obj):
            print(line)
        return
    text = json.dumps(obj, indent=2)
    if display == "rich":
        console.print_json(text)
    else:
        print(text)


def _make_readaloud(args: argparse.Namespace, cfg: dict[str, Any]) -> ReadAloud:
    persist = bool(_cfg_get(cfg, "speech.persist_preferences", True)) and not getattr(args, "no_prefs", False)
    return ReadAloud(
        prefs_path=_cfg_get(cfg, "speech.prefs_file", None),
        persist_preferences=persist,
        pronunciation_file=_resolve(getattr(args, "pronunciation_file", None), cfg, "speech.pronunciation_file", None),
    )


def _logged_controller(ra: ReadAloud, cfg: dict[str, Any], log: _RunLog, on_change: Optional[Callable[[], None]] = None) -> PlaybackController:
    box: dict[str, Any] = {"last": None}

    def _changed() -> None:
        ctl = box.get("ctl")
        if ctl is None:
            return
        if ctl.state != box["last"]:
            box["last"] = ctl.state
            log.note(3, f"state={ctl.state.value} speed={ctl.speed} pitch={ctl.pitch}")
        if on_change is not None:
            on_change()

    ctl = ra.controller(volume=float(_cfg_get(cfg, "speech.volume", 1.0)), on_change=_changed)
    box["ctl"] = ctl
    box["last"] = ctl.state
    return ctl


def _configure_playback(ctl: PlaybackController, args: argparse.Namespace, cfg: dict[str, Any]) -> None:
    ctl.set_speed(float(_resolve(getattr(args, "speed", None), cfg, "speech.speed", 1.0)))
    if getattr(args, "pitch", None) is not None:
        ctl.set_pitch(float(args.pitch))
    if getattr(args, "voice", None):
        match = next((v for v in ctl.voices if v.voice_id == args.voice or v.name == args.voice), None)
        if match is None:
            raise ValueError(f"Unknown voice: {args.voice} (see 'readaloud voices')")
        ctl.set_voice(match)


def _cmd_prepare(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    log = _open_run_log(args, cfg)
    log.note(1, f"command=prepare input={args.input}")
    ra = _make_readaloud(args, cfg)
    result = ra.prepare_file(args.input, override_path=args.override, slug=args.slug)
    log.note(2, f"prepared chars={result['chars']} override={result['override']}")
    if not args.output:
        print(result["text"])
        return
    out = Path(args.output).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(result.pop("text") + "\n", encoding="utf-8")
    result["output"] = str(out)
    _emit(result, verbosity=verbosity, display=display)


def _cmd_say(args: argparse.Namespace) -> None:
    cfg = _load_config()
    log = _open_run_log(args, cfg)
    log.note(1, f"command=say input={args.input}")
    ra = _make_readaloud(args, cfg)
    prepared = ra.prepare_file(args.input, override_path=args.override, slug=args.slug)
    with _logged_controller(ra, cfg, log) as ctl:
        if not ctl.is_supported:
            print("Speech synthesis is not available on this platform.")
            raise SystemExit(1)
        _configure_playback(ctl, args, cfg)
        speak_to_completion(ctl, prepared["text"], pump=getattr(ra.synthesizer, "pump", None))
    log.note(1, "say finished")


def _cmd_read(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    log = _open_run_log(args, cfg)
    log.note(1, f"command=read input={args.input}")
    ra = _make_readaloud(args, cfg)
    prepared = ra.prepare_file(args.input, override_path=args.override, slug=args.slug)
    with _logged_controller(ra, cfg, log) as ctl:
        if not ctl.is_supported:
            print("Speech synthesis is not available on this platform.")
            raise SystemExit(1)
        _configure_playback(ctl, args, cfg)
        result = run_reader(
            ctl,
            prepared["text"],
            title=prepared.get("title"),
            pump=getattr(ra.synthesizer, "pump", None),
            preview_chars=int(_cfg_get(cfg, "read.preview_chars", 280)),
        )
    log.note(2, f"read finished speed={result['speed']} pitch={result['pitch']}")
    if verbosity >= 3:
        _emit(result, verbosity=2, display=display)


def _cmd_voices(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    log = _open_run_log(args, cfg)
    log.note(1, f"command=voices lang={args.lang}")
    voices = _make_readaloud(args, cfg).voices(args.lang)
    if display == "rich" and verbosity >= 2:
        table = Table(title="Voices")
        table.add_column("")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Lang")
        for v in voices:
            marker = "*" if v["selected"] else ("d" if v["default"] else "")
            table.add_row(marker, v["id"], v["name"], v["lang"])
        console.print(table)
        return
    _emit(voices, verbosity=verbosity, display=display)


def _cmd_prefs(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    log = _open_run_log(args, cfg)
    log.note(1, f"command=prefs action={args.prefs_action}")
    prefs = _make_readaloud(args, cfg).preferences
    if args.prefs_action == "set-voice":
        prefs.set_voice_id(args.voice_id)
    elif args.prefs_action == "set-pitch":
        prefs.set_pitch(float(args.pitch))
    elif args.prefs_action == "clear":
        prefs.clear()
    elif args.prefs_action != "show":
        raise ValueError(f"Unknown prefs action: {args.prefs_action}")
    _emit(
        {VOICE_KEY: prefs.voice_id, PITCH_KEY: prefs.pitch},
        verbosity=verbosity,
        display=display,
    )


def _cmd_config(args: argparse.Namespace) -> None:
    cfg = _load_config()
    log = _open_run_log(args, cfg)
    log.note(1, f"command=config action={args.config_action}")
    if args.config_action == "path":
        print(_config_path())
        return
    if args.config_action == "show":
        print(json.dumps(cfg, indent=2))
        print("\nChange a setting with: readaloud config set <dotted.key> <value>")
        print("Keys:")
        for key in sorted(_cfg_keys(cfg)):
            print(f"  {key}")
        return
    if args.config_action == "get":
        print(json.dumps(_cfg_get(cfg, args.key, None), indent=2))
        return
    if args.config_action == "set":
        _cfg_set(cfg, args.key, _coerce_scalar(args.value))
        path = _save_config(cfg)
        print(f"Saved {args.key} in {path}")
        return
    raise ValueError(f"Unknown config action: {args.config_action}")


def _add_output_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("output")
    group.add_argument("--quiet", action="store_true", help="Print nothing but errors")
    group.add_argument("-d", "--display", choices=["rich", "normal", "r", "n"], default=None, help="Display style")
    group.add_argument("--verbose", type=int, choices=[0, 1, 2, 3], default=None, help="Verbosity level")
    for n, label in enumerate(("silent", "paths and ids only", "JSON summary", "debug")):
        group.add_argument(f"-v{n}", action="store_true", help=f"Verbosity {n} ({label})")


def _add_log_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("run log")
    group.add_argument("--logging", type=int, choices=[0, 1, 2, 3], default=None, help="Run log level")
    for n, label in enumerate(("off", "commands", "details", "playback state changes")):
        group.add_argument(f"-l{n}", action="store_true", help=f"Run log level {n} ({label})")
    group.add_argument("--logging-file", default=None, help="Log file path or folder")
    group.add_argument("--logging-clear", action="store_true", help="Truncate the log file first")


def _add_article_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Article .md/.txt file, or .json article record(s)")
    parser.add_argument("--override", help="Plain-text speech override file (skips the article body)")
    parser.add_argument("--slug", help="Article slug when the .json input holds a list")
    parser.add_argument("--pronunciation-file", help="Extra pronunciation rules JSON (e.g. {\"Iles\": \"eye-ulls\"})")


def _add_playback_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--speed", type=float, default=None, help="Speech rate multiplier (default from config)")
    parser.add_argument("--pitch", type=float, default=None, help="Pitch multiplier; also saved as preference")
    parser.add_argument("--voice", default=None, help="Voice id or name; also saved as preference")
    parser.add_argument("--no-prefs", action="store_true", help="Do not read or write saved voice/pitch preferences")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="readaloud", description="Read articles aloud")
    sub = p.add_subparsers(dest="command", required=True)

    pr = sub.add_parser("prepare", help="Print speech-ready text for an article")
    _add_article_options(pr)
    pr.add_argument("--output", "-o", help="Write text to this file instead of stdout")
    _add_output_options(pr)
    _add_log_options(pr)
    pr.set_defaults(func=_cmd_prepare)

    sy = sub.add_parser("say", help="Speak an article to the end (Ctrl-C stops)")
    _add_article_options(sy)
    _add_playback_options(sy)
    _add_log_options(sy)
    sy.set_defaults(func=_cmd_say)

    rd = sub.add_parser("read", help="Interactive player with pause/resume, speed, pitch and voice keys")
    _add_article_options(rd)
    _add_playback_options(rd)
    _add_output_options(rd)
    _add_log_options(rd)
    rd.set_defaults(func=_cmd_read)

    vo = sub.add_parser("voices", help="List platform voices")
    vo.add_argument("--lang", default=None, help="Language tag prefix filter, e.g. en or en-GB")
    vo.add_argument("--no-prefs", action="store_true", help="Ignore the saved voice when marking the selection")
    _add_output_options(vo)
    _add_log_options(vo)
    vo.set_defaults(func=_cmd_voices)

    pf = sub.add_parser("prefs", help="Show or change saved voice/pitch preferences")
    pf_sub = pf.add_subparsers(dest="prefs_action", required=True)
    pf_sub.add_parser("show", help="Show saved preferences")
    pf_sub.add_parser("clear", help="Remove saved preferences")
    pf_sub.add_parser("set-voice", help="Save a voice id").add_argument("voice_id")
    pf_sub.add_parser("set-pitch", help="Save a pitch value").add_argument("pitch", type=float)
    for leaf in pf_sub.choices.values():
        _add_output_options(leaf)
        _add_log_options(leaf)
    pf.set_defaults(func=_cmd_prefs)

    cfg = sub.add_parser("config", help="Show or update readaloud defaults config")
    cfg_sub = cfg.add_subparsers(dest="config_action", required=True)
    cfg_sub.add_parser("path", help="Show config file path")
    cfg_sub.add_parser("show", help="Show effective config")
    cfg_sub.add_parser("get", help="Get config value by dotted path").add_argument("key")
    cfg_set = cfg_sub.add_parser("set", help="Set config value by dotted path")
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")
    for leaf in cfg_sub.choices.values():
        _add_log_options(leaf)
    cfg.set_defaults(func=_cmd_config)

    return p


def _argv_with_inferred_command(argv: list[str]) -> list[str]:
    first = next((token for token in argv if not token.startswith("-")), None)
    if first is None or first in KNOWN_COMMANDS:
        return argv
    if first.lower().endswith((".md", ".markdown", ".txt", ".json")):
        return ["read", *argv]
    return argv


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    try:
        args = parser.parse_args(_argv_with_inferred_command(list(sys.argv[1:] if argv is None else argv)))
        args.func(args)
    except KeyboardInterrupt:
        print("Cancelled.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
