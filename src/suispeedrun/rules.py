"""Shared interpreter for declarative per-chapter rule batteries."""

from __future__ import annotations

import re

from .models import Anchor, ChapterSpec, Check, Diagnostic, Rule


def run_rules(user_text: str, chapter: ChapterSpec) -> list[Diagnostic]:
    """Evaluate chapter rules in declaration order and collect diagnostics.

    Rules see the learner's unmodified text, comments included. A rule runs only
    when every rule named in its ``requires`` ran and emitted nothing.
    """
    lines = user_text.split("\n")
    passed: set[str] = set()
    diagnostics: list[Diagnostic] = []
    for rule in chapter.rules:
        if not all(dependency in passed for dependency in rule.requires):
            continue
        if rule_fires(rule, user_text):
            diagnostics.append(Diagnostic(line=anchor_line(rule, lines), message=rule.message))
        else:
            passed.add(rule.id)
    return diagnostics


def rule_fires(rule: Rule, user_text: str) -> bool:
    """Return whether a rule emits a diagnostic for the given text."""
    holds = check_holds(rule.check, user_text)
    if rule.mode == "forbid":
        return holds
    return not holds


def check_holds(check: Check, user_text: str) -> bool:
    """Evaluate one textual predicate."""
    scope = user_text
    if check.within is not None:
        match = re.search(check.within, user_text)
        scope = match.group(1) if match else ""

    if check.contains and not any(needle in scope for needle in check.contains):
        return False
    for alternatives in check.all_of:
        if not any(needle in scope for needle in alternatives):
            return False
    if check.pattern is not None and re.search(check.pattern, scope) is None:
        return False
    return True


def anchor_line(rule: Rule, lines: list[str]) -> int:
    """Best-effort 1-based line for a rule's diagnostic."""
    if rule.anchor is None:
        return rule.fallback_line
    index = _find_anchor(rule.anchor, lines)
    if index is None:
        return rule.fallback_line
    return index + 1 + rule.anchor.offset


def _find_anchor(anchor: Anchor, lines: list[str]) -> int | None:
    """Return index of the first line matching the anchor."""
    for index, line in enumerate(lines):
        if any(needle in line for needle in anchor.contains):
            return index
        if anchor.pattern is not None and re.search(anchor.pattern, line):
            return index
    return None
