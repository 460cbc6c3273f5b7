import json

from conftest import FakeSynthesizer, VOICES
from readaloud.api import ReadAloud


def test_prepare_uses_loaded_rules(tmp_path):
    (tmp_path / ".readaloud").mkdir()
    (tmp_path / ".readaloud" / "pronunciation.json").write_text(json.dumps({"Iles": "eye-ulls"}), encoding="utf-8")
    ra = ReadAloud(synthesizer=FakeSynthesizer(VOICES), persist_preferences=False)
    assert ra.prepare("**Iles** writes C#") == "eye-ulls writes C sharp"


def test_prepare_file_with_override(tmp_path):
    article = tmp_path / "post.md"
    article.write_text("# Post\n\nBody about `code` and C#", encoding="utf-8")
    override = tmp_path / "spoken.txt"
    override.write_text("Spoken version about TypeScript", encoding="utf-8")
    ra = ReadAloud(synthesizer=FakeSynthesizer(VOICES), persist_preferences=False)

    plain = ra.prepare_file(str(article))
    assert plain["title"] == "post"
    assert plain["override"] is False
    assert plain["text"] == "Post\n\nBody about  and C sharp"
    assert plain["chars"] == len(plain["text"])

    spoken = ra.prepare_file(str(article), override_path=str(override))
    assert spoken["override"] is True
    assert spoken["text"] == "Spoken version about type script"


def test_prepare_file_reads_json_override(tmp_path):
    record = tmp_path / "article.json"
    record.write_text(json.dumps({"title": "T", "content": "ignored", "ttsContent": "Use homes.com"}), encoding="utf-8")
    ra = ReadAloud(synthesizer=FakeSynthesizer(VOICES), persist_preferences=False)
    result = ra.prepare_file(str(record))
    assert result["title"] == "T"
    assert result["text"] == "Use homes dot com"


def test_voices_marks_saved_selection(tmp_path):
    prefs_path = tmp_path / "p.json"
    ra = ReadAloud(synthesizer=FakeSynthesizer(VOICES), prefs_path=str(prefs_path))
    ra.preferences.set_voice_id("voice2")

    listed = ra.voices()
    assert [v["id"] for v in listed] == ["voice1", "voice2"]
    assert [v["selected"] for v in listed] == [False, True]
    assert listed[0]["default"] is True

    assert [v["id"] for v in ra.voices("en-gb")] == ["voice2"]
    assert json.loads(prefs_path.read_text(encoding="utf-8")) == {"tts-voice-preference": "voice2"}


def test_controller_without_platform_speech(monkeypatch):
    monkeypatch.setattr("readaloud.api.detect_synthesizer", lambda: None)
    ra = ReadAloud(persist_preferences=False)
    ctl = ra.controller()
    assert not ctl.is_supported
    assert ra.voices() == []
