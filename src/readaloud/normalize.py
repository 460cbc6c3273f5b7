from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

ReplacementRule = Tuple[str, str]

# Compound phrases must come before any rule whose pattern is a substring of them
# ("C# .NET" before "C#", "REST API" before "API"); check_rule_order enforces it.
DEFAULT_RULES: Tuple[ReplacementRule, ...] = (
    ("homes.com", "homes dot com"),
    ("Homes.com", "Homes dot com"),
    ("CoStar Group", "co star group"),
    ("CoStar", "co star"),
    ("Global Payments Inc.", "global payments inc"),
    ("Global Payments", "global payments"),
    ("React.js", "react jay ess"),
    ("React", "react"),
    ("Node.js", "node jay ess"),
    ("Node", "node"),
    ("Angular", "angular"),
    ("Backbone.js", "backbone jay ess"),
    ("Backbone", "backbone"),
    ("Express.js", "express jay ess"),
    ("Express", "express"),
    ("C# .NET", "C sharp dot net"),
    ("C#", "C sharp"),
    ("TypeScript", "type script"),
    ("JavaScript", "java script"),
    ("GitHub", "git hub"),
    ("npm", "N P M"),
    ("REST API", "rest A P I"),
    ("API", "A P I"),
    ("GraphQL", "graph Q L"),
    ("JSON", "J son"),
    ("HTML", "H T M L"),
    ("CSS", "C S S"),
    ("NoSQL", "no sequel"),
    ("PostgreSQL", "postgres Q L"),
    ("MySQL", "my sequel"),
    ("SQL", "sequel"),
    ("MongoDB", "mongo D B"),
    ("AWS", "A W S"),
    ("Azure", "azure"),
    ("Google Cloud", "google cloud"),
    ("Docker", "docker"),
    ("Kubernetes", "koo ber net ease"),
    ("CI/CD", "C I C D"),
    ("DevOps", "dev ops"),
    ("JWT", "J W T"),
    ("OAuth", "oh auth"),
    ("HTTPS", "H T T P S"),
    ("HTTP", "H T T P"),
    ("URL", "U R L"),
    ("URI", "U R I"),
    ("DNS", "D N S"),
    ("SSL", "S S L"),
    ("TLS", "T L S"),
    ("TCP/IP", "T C P I P"),
    ("UDP", "U D P"),
    ("SSH", "S S H"),
    ("FTP", "F T P"),
    ("SMTP", "S M T P"),
    ("IMAP", "I map"),
    ("POP3", "pop three"),
    ("IDE", "I D E"),
    ("CLI", "C L I"),
    ("GUI", "gooey"),
    ("UI", "U I"),
    ("UX", "U X"),
    ("SPA", "single page application"),
    ("SSR", "server side rendering"),
    ("CSR", "client side rendering"),
    ("SEO", "S E O"),
    ("DOM", "dom"),
    ("BOM", "bom"),
    ("AJAX", "ajax"),
    ("XML", "X M L"),
    ("YAML", "yaml"),
    ("TOML", "tom L"),
    ("Regex", "reg ex"),
    ("RegExp", "reg ex"),
    ("RegEx", "reg ex"),
    ("OOP", "O O P"),
    ("FP", "functional programming"),
    ("SOLID", "solid"),
    ("DRY", "D R Y"),
    ("KISS", "kiss"),
    ("YAGNI", "yag knee"),
    ("TDD", "T D D"),
    ("BDD", "B D D"),
    ("E2E", "end to end"),
    ("QA", "Q A"),
)


class RuleOrderError(ValueError):
    def __init__(self, violations: Sequence[Tuple[str, str]]) -> None:
        self.violations = list(violations)
        pairs = ", ".join(f"'{short}' before '{long}'" for short, long in self.violations)
        super().__init__(f"Replacement rules out of order: {pairs}")


@dataclass(frozen=True)
class Article:
    content: str
    speech_override: Optional[str] = None
    title: Optional[str] = None


def strip_markdown(text: str) -> str:
    t = text or ""
    # Fenced blocks go first so their backticks are never read as inline spans.
    t = re.sub(r"```[\s\S]*?```", "", t)
    t = re.sub(r"`[^`]+`", "", t)
    # Images before links: "![alt](src)" also matches the link pattern.
    t = re.sub(r"!\[([^\]]*)\]\([^)]+\)", "", t)
    t = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", t)
    t = re.sub(r"#{1,6}\s+", "", t)
    t = re.sub(r"(\*\*|__)(.*?)\1", r"\2", t)
    t = re.sub(r"(\*|_)(.*?)\1", r"\2", t)
    t = re.sub(r"^\s*[-*+]\s+", "", t, flags=re.MULTILINE)
    t = re.sub(r"^\s*\d+\.\s+", "", t, flags=re.MULTILINE)
    t = re.sub(r"^\s*>\s+", "", t, flags=re.MULTILINE)
    t = re.sub(r"\n{3,}", "\n\n", t)
    return t.strip()


def preprocess_for_tts(text: str, rules: Sequence[ReplacementRule] = DEFAULT_RULES) -> str:
    """Apply phonetic substitutions once, in rule order.

    Matching is literal and case-sensitive. The output is not safe to feed back
    in: a replacement can contain text that an unrelated later rule matches.
    """
    t = text or ""
    for pattern, replacement in rules:
        t = t.replace(pattern, replacement)
    return t


def prepare_tts_content(
    content: str,
    override: Optional[str] = None,
    rules: Sequence[ReplacementRule] = DEFAULT_RULES,
) -> str:
    source = override or content
    # Substitute first: "C#" must be gone before the header pattern ("#" + space) runs.
    return strip_markdown(preprocess_for_tts(source, rules))


def find_order_violations(rules: Sequence[ReplacementRule]) -> List[Tuple[str, str]]:
    out: List[Tuple[str, str]] = []
    patterns = [pattern for pattern, _ in rules]
    for i, earlier in enumerate(patterns):
        for later in patterns[i + 1 :]:
            if earlier != later and earlier in later:
                out.append((earlier, later))
    return out


def check_rule_order(rules: Sequence[ReplacementRule]) -> None:
    violations = find_order_violations(rules)
    if violations:
        raise RuleOrderError(violations)


def _parse_rule_payload(payload: object, source: Path) -> List[ReplacementRule]:
    if isinstance(payload, dict):
        items: Iterable[object] = payload.items()
    elif isinstance(payload, list):
        items = payload
    else:
        raise ValueError(f"Pronunciation file must hold a JSON object or list of pairs: {source}")

    out: List[ReplacementRule] = []
    for item in items:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ValueError(f"Invalid pronunciation entry {item!r} in {source}")
        src = str(item[0]).strip()
        dst = str(item[1]).strip()
        if src and dst:
            out.append((src, dst))
    return out


def merge_rules(
    base_rules: Sequence[ReplacementRule],
    custom: Sequence[ReplacementRule],
) -> Tuple[ReplacementRule, ...]:
    """Fold user rules into an ordered rule list.

    A rule for an existing pattern takes that pattern's slot. A new pattern goes
    as near the front as it can while staying after every rule whose pattern
    contains it and before every rule whose pattern it contains.
    """
    rules = list(base_rules)
    front = 0
    for pattern, replacement in custom:
        slot = next((i for i, (p, _) in enumerate(rules) if p == pattern), None)
        if slot is not None:
            rules[slot] = (pattern, replacement)
            continue
        lo = max((i + 1 for i, (p, _) in enumerate(rules) if pattern in p), default=0)
        hi = min((i for i, (p, _) in enumerate(rules) if p in pattern), default=len(rules))
        at = max(lo, min(front, hi))
        rules.insert(at, (pattern, replacement))
        if at <= front:
            front += 1
    return tuple(rules)


def load_pronunciation_rules(
    pronunciation_file: Optional[Path] = None,
    base_rules: Sequence[ReplacementRule] = DEFAULT_RULES,
) -> Tuple[ReplacementRule, ...]:
    custom: List[ReplacementRule] = []
    candidates: List[Path] = []
    env_file = os.getenv("READALOUD_PRONUN_FILE")
    if env_file:
        candidates.append(Path(env_file).expanduser())
    if pronunciation_file:
        candidates.append(pronunciation_file.expanduser())
    candidates.append(Path.home() / ".config" / "readaloud" / "pronunciation.json")
    candidates.append(Path.cwd() / ".readaloud" / "pronunciation.json")

    seen: set[str] = set()
    for p in candidates:
        k = str(p.resolve()) if p.exists() else str(p)
        if k in seen:
            continue
        seen.add(k)
        if not p.exists():
            continue
        try:
            payload = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in pronunciation file {p}: {e}") from e
        known = {src for src, _ in custom}
        custom.extend(rule for rule in _parse_rule_payload(payload, p) if rule[0] not in known)

    if not custom:
        return tuple(base_rules)
    rules = merge_rules(base_rules, custom)
    check_rule_order(rules)
    return rules


def _read_text(path: Path) -> str:
    data = path.read_bytes()
    for enc in ("utf-8", "utf-8-sig", "cp1252"):
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            pass
    return data.decode("utf-8", errors="replace")


def _article_from_record(record: dict) -> Article:
    content = record.get("content") or ""
    if not isinstance(content, str):
        raise ValueError("Article field 'content' must be a string")
    override = record.get("ttsContent")
    title = record.get("title")
    return Article(
        content=content,
        speech_override=override if isinstance(override, str) and override else None,
        title=title if isinstance(title, str) else None,
    )


def load_article(path: Path, slug: Optional[str] = None) -> Article:
    if not path.exists():
        raise FileNotFoundError(f"Article not found: {path}")
    if path.suffix.lower() != ".json":
        return Article(content=_read_text(path), title=path.stem)

    payload = json.loads(_read_text(path))
    if isinstance(payload, dict):
        return _article_from_record(payload)
    if not isinstance(payload, list) or not payload:
        raise ValueError(f"Article JSON must be an object or a non-empty list: {path}")
    records = [r for r in payload if isinstance(r, dict)]
    if not records:
        raise ValueError(f"No article records in {path}")
    if slug is None:
        return _article_from_record(records[0])
    for record in records:
        if record.get("slug") == slug:
            return _article_from_record(record)
    raise ValueError(f"No article with slug '{slug}' in {path}")
