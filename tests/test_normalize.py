import json

import pytest

from readaloud.normalize import (
    DEFAULT_RULES,
    RuleOrderError,
    check_rule_order,
    find_order_violations,
    load_article,
    load_pronunciation_rules,
    merge_rules,
    prepare_tts_content,
    preprocess_for_tts,
    strip_markdown,
)


def test_replaces_homes_dot_com():
    assert preprocess_for_tts("Check out homes.com for more info") == "Check out homes dot com for more info"


def test_replaces_c_sharp():
    assert preprocess_for_tts("I love programming in C#") == "I love programming in C sharp"


def test_compound_phrase_wins_over_its_substring():
    assert preprocess_for_tts("Transitioning to C# .NET was challenging") == "Transitioning to C sharp dot net was challenging"
    assert preprocess_for_tts("Our REST API is stable") == "Our rest A P I is stable"
    assert preprocess_for_tts("NoSQL vs PostgreSQL vs SQL") == "no sequel vs postgres Q L vs sequel"
    assert preprocess_for_tts("GUI and UI") == "gooey and U I"


def test_multiple_terms_and_case_sensitivity():
    out = preprocess_for_tts("We use TypeScript, JavaScript, and C# at homes.com and Homes.com")
    assert "type script" in out
    assert "java script" in out
    assert "C sharp" in out
    assert "homes dot com" in out
    assert "Homes dot com" in out


def test_partial_words_left_alone():
    out = preprocess_for_tts("This is homesick, not homes.com")
    assert "homesick" in out
    assert "homes dot com" in out


def test_replaces_every_occurrence():
    assert preprocess_for_tts("API, API and API") == "A P I, A P I and A P I"


@pytest.mark.parametrize(("pattern", "replacement"), DEFAULT_RULES)
def test_each_rule_rewrites_its_term(pattern, replacement):
    out = preprocess_for_tts(f"about {pattern} today")
    assert replacement in out
    assert pattern not in out


def test_default_rules_keep_compounds_first():
    assert find_order_violations(DEFAULT_RULES) == []
    check_rule_order(DEFAULT_RULES)


def test_misordered_rules_are_reported():
    rules = (("C#", "C sharp"), ("C# .NET", "C sharp dot net"))
    assert find_order_violations(rules) == [("C#", "C# .NET")]
    with pytest.raises(RuleOrderError):
        check_rule_order(rules)
    # What goes wrong when the order is not enforced.
    assert preprocess_for_tts("C# .NET", rules) == "C sharp .NET"


def test_rules_are_ordered_pairs_not_a_mapping():
    assert isinstance(DEFAULT_RULES, tuple)
    assert all(isinstance(rule, tuple) and len(rule) == 2 for rule in DEFAULT_RULES)


def test_strip_removes_code_blocks():
    out = strip_markdown("# Title\n\n```javascript\nconst x = 1;\n```\n\nText")
    assert "const x = 1" not in out
    assert "```" not in out
    assert "Title" in out
    assert "Text" in out


def test_strip_removes_inline_code():
    out = strip_markdown("Use `console.log()` to debug")
    assert "`" not in out
    assert "console.log" not in out
    assert "Use" in out
    assert "to debug" in out


def test_strip_removes_headers():
    out = strip_markdown("## My Header\n\nSome content")
    assert "##" not in out
    assert "My Header" in out


def test_strip_bold_italic_links_images():
    assert strip_markdown("This is **bold** and *italic*") == "This is bold and italic"
    assert strip_markdown("Also __bold__ and _italic_") == "Also bold and italic"
    assert strip_markdown("Check out [my website](https://example.com)") == "Check out my website"
    assert strip_markdown("Here is an image: ![alt text](image.png)") == "Here is an image:"


def test_strip_lists_and_quotes():
    md = "- one\n* two\n+ three\n1. first\n> quoted"
    assert strip_markdown(md) == "one\ntwo\nthree\nfirst\nquoted"


def test_strip_collapses_blank_runs():
    assert strip_markdown("Intro\n\n\n\nEnd\n\n") == "Intro\n\nEnd"


def test_fenced_block_is_not_read_as_inline_code():
    out = strip_markdown("before\n```\nx = `y`\n```\nafter")
    assert "x =" not in out
    assert out.startswith("before")
    assert out.endswith("after")


def test_prepare_substitutes_before_stripping():
    out = prepare_tts_content("## Header\n\nUse C# for `backend` development")
    assert "##" not in out
    assert "`" not in out
    assert "C sharp" in out
    # Stripping first would have turned "C# for" into "Cfor".
    assert strip_markdown(preprocess_for_tts("C# for")) == "C sharp for"


def test_prepare_scenarios():
    assert "console.log" not in prepare_tts_content("Use `console.log()` to debug")
    out = prepare_tts_content("homes.com and C# and TypeScript")
    assert "homes dot com" in out
    assert "C sharp" in out
    assert "type script" in out


def test_prepare_prefers_override():
    content = "**Bold text** about C# at homes.com with `code`"
    override = "Modified content with homes dot com and C sharp"
    assert prepare_tts_content(content, override) == strip_markdown(preprocess_for_tts(override))
    assert prepare_tts_content(content) == strip_markdown(preprocess_for_tts(content))
    assert prepare_tts_content(content, "") == prepare_tts_content(content)


def test_load_pronunciation_rules_puts_custom_rules_first(tmp_path, monkeypatch):
    monkeypatch.delenv("READALOUD_PRONUN_FILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    p = tmp_path / "pron.json"
    p.write_text(json.dumps({"Iles": "eye-ulls", "JSON": "jason", " ": "x"}), encoding="utf-8")

    rules = load_pronunciation_rules(p)
    assert rules[0] == ("Iles", "eye-ulls")
    assert ("JSON", "jason") in rules
    assert ("JSON", "J son") not in rules
    assert preprocess_for_tts("Iles likes JSON", rules) == "eye-ulls likes jason"


def test_overriding_a_default_keeps_its_slot(tmp_path):
    p = tmp_path / "pron.json"
    p.write_text(json.dumps({"API": "ay pee eye", "C#": "see sharp"}), encoding="utf-8")

    rules = load_pronunciation_rules(p)
    assert find_order_violations(rules) == []
    assert len(rules) == len(DEFAULT_RULES)
    assert preprocess_for_tts("REST API and API", rules) == "rest A P I and ay pee eye"
    assert preprocess_for_tts("C# .NET and C#", rules) == "C sharp dot net and see sharp"


def test_new_rule_lands_after_the_compounds_containing_it(tmp_path):
    p = tmp_path / "pron.json"
    p.write_text(json.dumps([["Java", "jah-va"], ["Iles", "eye-ulls"], ["Iles Wade", "eye-ulls wade"]]), encoding="utf-8")

    rules = load_pronunciation_rules(p)
    assert find_order_violations(rules) == []
    patterns = [src for src, _ in rules]
    assert patterns.index("Java") == patterns.index("JavaScript") + 1
    assert patterns[:2] == ["Iles Wade", "Iles"]
    assert preprocess_for_tts("Java, JavaScript and Iles Wade", rules) == "jah-va, java script and eye-ulls wade"


def test_merge_rules_in_front_when_nothing_contains_them():
    merged = merge_rules(DEFAULT_RULES, [("Iles", "eye-ulls"), ("Wade", "wayd")])
    assert merged[:2] == (("Iles", "eye-ulls"), ("Wade", "wayd"))
    assert merged[2:] == DEFAULT_RULES


def test_load_pronunciation_rules_rejects_misordered_base(tmp_path):
    p = tmp_path / "pron.json"
    p.write_text(json.dumps({"Iles": "eye-ulls"}), encoding="utf-8")
    base = (("C#", "C sharp"), ("C# .NET", "C sharp dot net"))
    with pytest.raises(RuleOrderError):
        load_pronunciation_rules(p, base_rules=base)


def test_load_pronunciation_rules_without_files_returns_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("READALOUD_PRONUN_FILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    assert load_pronunciation_rules() == DEFAULT_RULES


def test_load_article_from_markdown_and_json(tmp_path):
    md = tmp_path / "post.md"
    md.write_text("# Hello\n\nBody", encoding="utf-8")
    article = load_article(md)
    assert article.content.startswith("# Hello")
    assert article.speech_override is None

    js = tmp_path / "articles.json"
    js.write_text(
        json.dumps(
            [
                {"slug": "a", "title": "A", "content": "first"},
                {"slug": "b", "title": "B", "content": "second", "ttsContent": "spoken second"},
            ]
        ),
        encoding="utf-8",
    )
    assert load_article(js).content == "first"
    picked = load_article(js, slug="b")
    assert picked.title == "B"
    assert picked.speech_override == "spoken second"
    with pytest.raises(ValueError):
        load_article(js, slug="missing")
    with pytest.raises(FileNotFoundError):
        load_article(tmp_path / "nope.md")
