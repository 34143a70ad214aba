"""Core domain models for chapter lessons and submission checks."""

from __future__ import annotations

from dataclasses import dataclass, field

RULE_MODES = ("require", "forbid")


@dataclass(frozen=True)
class TechnicalSkill:
    """Display-only skill tag shown next to a chapter."""

    label: str
    description: str


@dataclass(frozen=True)
class ChapterButtons:
    """Optional button label overrides for one chapter."""

    next: str = "Next"
    prev: str = "Previous"
    check: str = "Check"
    show_answer: str = "Show answer"


@dataclass(frozen=True)
class Anchor:
    """Line locator used to point a diagnostic at the learner's text.

    A line matches when it contains any of ``contains`` or, if ``pattern`` is
    set, when the pattern is found in it. ``offset`` is added to the 1-based
    number of the first matching line.
    """

    contains: tuple[str, ...] = ()
    pattern: str | None = None
    offset: int = 0


@dataclass(frozen=True)
class Check:
    """Textual predicate evaluated against a submission."""

    contains: tuple[str, ...] = ()
    all_of: tuple[tuple[str, ...], ...] = ()
    pattern: str | None = None
    within: str | None = None


@dataclass(frozen=True)
class Rule:
    """One declarative check in a chapter's rule battery."""

    id: str
    message: str
    check: Check
    mode: str = "require"
    requires: tuple[str, ...] = ()
    anchor: Anchor | None = None
    fallback_line: int = 1


@dataclass(frozen=True)
class ChapterSpec:
    """Immutable lesson definition."""

    id: str
    order: int
    title: str
    description: str
    starter_code: str
    expected_code: str
    rules: tuple[Rule, ...]
    technical_skills: tuple[TechnicalSkill, ...] = ()
    strict_match: bool = True
    buttons: ChapterButtons = field(default_factory=ChapterButtons)


@dataclass(frozen=True)
class Diagnostic:
    """Line-annotated message surfaced to the learner."""

    line: int
    message: str


@dataclass(frozen=True)
class ValidationRequest:
    """Submitted text paired with the chapter it is checked against."""

    user_text: str
    chapter: ChapterSpec


@dataclass(frozen=True)
class ValidationResult:
    """Verdict plus diagnostics in rule evaluation order."""

    is_valid: bool
    errors: tuple[Diagnostic, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return the `{isValid, errors}` payload shape used by front-ends."""
        return {
            "isValid": self.is_valid,
            "errors": [{"line": error.line, "message": error.message} for error in self.errors],
        }
