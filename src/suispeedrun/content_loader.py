"""Load declarative chapter content from bundled resources."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

from .models import RULE_MODES, Anchor, ChapterButtons, ChapterSpec, Check, Rule, TechnicalSkill
from .validation import validate

logger = logging.getLogger(__name__)

CONTENT_PACKAGE = "suispeedrun.content.chapters"
CHAPTER_FILE = "chapter.json"
DESCRIPTION_FILE = "description.html"
STARTER_FILE = "starter.move"
EXPECTED_FILE = "expected.move"


def _read_text(entry: Traversable, name: str) -> str:
    """Read one chapter file, dropping a single trailing newline."""
    target = entry.joinpath(name)
    if not target.is_file():
        raise ValueError(f"Chapter directory '{entry.name}' is missing {name}.")
    return target.read_text(encoding="utf-8-sig").removesuffix("\n")


def _compile(pattern: object, where: str) -> str:
    """Return pattern text after checking it compiles."""
    text = str(pattern)
    try:
        re.compile(text)
    except re.error as exc:
        raise ValueError(f"Invalid pattern in {where}: {exc}") from exc
    return text


def _strings(raw: object) -> tuple[str, ...]:
    """Coerce a JSON string or list of strings to a tuple."""
    if isinstance(raw, str):
        return (raw,)
    if isinstance(raw, list):
        return tuple(str(item) for item in raw)
    return ()


def _check_from_dict(raw: dict[str, Any], where: str) -> Check:
    """Build a rule predicate from raw JSON content."""
    unknown = set(raw) - {"contains", "all", "pattern", "within"}
    if unknown:
        raise ValueError(f"Unknown check keys in {where}: {', '.join(sorted(unknown))}")

    contains = _strings(raw.get("contains", []))
    all_of = tuple(_strings(item) for item in raw.get("all", []))
    pattern = _compile(raw["pattern"], where) if "pattern" in raw else None
    within = None
    if "within" in raw:
        within = _compile(raw["within"], where)
        if re.compile(within).groups < 1:
            raise ValueError(f"Scope pattern in {where} needs a capture group.")

    if not contains and not all_of and pattern is None:
        raise ValueError(f"Check in {where} has nothing to test.")
    return Check(contains=contains, all_of=all_of, pattern=pattern, within=within)


def _anchor_from_dict(raw: dict[str, Any], where: str) -> Anchor:
    """Build a line anchor from raw JSON content."""
    contains = _strings(raw.get("contains", []))
    pattern = _compile(raw["pattern"], where) if "pattern" in raw else None
    if not contains and pattern is None:
        raise ValueError(f"Anchor in {where} has nothing to match.")
    return Anchor(contains=contains, pattern=pattern, offset=int(raw.get("offset", 0)))


def _rule_from_dict(chapter_id: str, raw: dict[str, Any]) -> Rule:
    """Build one rule from raw JSON content."""
    rule_id = str(raw["id"])
    where = f"chapter '{chapter_id}' rule '{rule_id}'"
    mode = str(raw.get("mode", "require"))
    if mode not in RULE_MODES:
        raise ValueError(f"Unknown mode '{mode}' in {where}.")
    anchor_raw = raw.get("anchor")
    return Rule(
        id=rule_id,
        message=str(raw["message"]),
        check=_check_from_dict(raw["check"], where),
        mode=mode,
        requires=_strings(raw.get("requires", [])),
        anchor=_anchor_from_dict(anchor_raw, where) if anchor_raw else None,
        fallback_line=int(raw.get("fallback_line", 1)),
    )


def _chapter_from_entry(entry: Traversable) -> ChapterSpec:
    """Build a chapter from one content directory."""
    raw: dict[str, Any] = json.loads(_read_text(entry, CHAPTER_FILE))
    chapter_id = str(raw["id"])
    rules = tuple(_rule_from_dict(chapter_id, item) for item in raw.get("rules", []))
    _validate_rule_references(chapter_id, rules)

    skills = tuple(
        TechnicalSkill(label=str(item["label"]), description=str(item.get("description", "")))
        for item in raw.get("technical_skills", [])
    )
    buttons_raw: dict[str, Any] = raw.get("buttons") or {}
    unknown = set(buttons_raw) - set(ChapterButtons.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown button keys in chapter '{chapter_id}': {', '.join(sorted(unknown))}")
    buttons = ChapterButtons(**{key: str(value) for key, value in buttons_raw.items()})

    return ChapterSpec(
        id=chapter_id,
        order=int(raw.get("order", 0)),
        title=str(raw["title"]),
        description=_read_text(entry, DESCRIPTION_FILE).strip(),
        starter_code=_read_text(entry, STARTER_FILE),
        expected_code=_read_text(entry, EXPECTED_FILE),
        rules=rules,
        technical_skills=skills,
        strict_match=bool(raw.get("strict_match", True)),
        buttons=buttons,
    )


def _load_entries(entries: Iterable[Traversable]) -> list[ChapterSpec]:
    chapters: list[ChapterSpec] = []
    seen: set[str] = set()
    for entry in sorted(entries, key=lambda item: item.name):
        if not entry.is_dir() or not entry.joinpath(CHAPTER_FILE).is_file():
            continue
        chapter = _chapter_from_entry(entry)
        if chapter.id in seen:
            raise ValueError(f"Duplicate chapter id: {chapter.id}")
        seen.add(chapter.id)
        chapters.append(chapter)
    chapters.sort(key=lambda item: item.order)
    logger.debug("loaded %d chapters", len(chapters))
    return chapters


def load_chapters() -> list[ChapterSpec]:
    """Load bundled chapters in course order."""
    return _load_entries(resources.files(CONTENT_PACKAGE).iterdir())


def load_chapters_from_dir(path: Path) -> list[ChapterSpec]:
    """Load chapters from directory for tests/tools."""
    return _load_entries(path.iterdir())


def _validate_rule_references(chapter_id: str, rules: tuple[Rule, ...]) -> None:
    """Validate rule ids are unique and `requires` only names earlier rules."""
    earlier: set[str] = set()
    for rule in rules:
        if rule.id in earlier:
            raise ValueError(f"Duplicate rule id '{rule.id}' in chapter '{chapter_id}'.")
        for dependency in rule.requires:
            if dependency not in earlier:
                raise ValueError(
                    f"Rule '{rule.id}' in chapter '{chapter_id}' requires unknown or later rule '{dependency}'."
                )
        earlier.add(rule.id)


def check_self_consistency(chapters: Iterable[ChapterSpec]) -> list[str]:
    """Return ids of chapters whose expected text does not pass its own check."""
    return [chapter.id for chapter in chapters if not validate(chapter.expected_code, chapter).is_valid]
