"""Chapter navigation state for one learner session."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from .models import ChapterSpec, ValidationResult
from .validation import validate


class NavigationStep(Enum):
    """Outcome of a forward navigation request."""

    ADVANCED = "advanced"
    LOCKED = "locked"
    COURSE_COMPLETE = "course_complete"


class ChapterSession:
    """Tracks the current chapter, the editable text, and the last verdict.

    Moving to a chapter always restores its starter text and clears the
    previous result. Forward navigation is gated on a passing check.
    """

    def __init__(self, chapters: Sequence[ChapterSpec], index: int = 0) -> None:
        if not chapters:
            raise ValueError("A session needs at least one chapter.")
        self.chapters = chapters
        self.index = 0
        self.code = ""
        self.result: ValidationResult | None = None
        self.course_complete = False
        self.go_to(index)

    @property
    def chapter(self) -> ChapterSpec:
        """Return the current chapter."""
        return self.chapters[self.index]

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return self.index == len(self.chapters) - 1

    @property
    def unlocked(self) -> bool:
        """Return whether the current chapter has a passing check."""
        return self.result is not None and self.result.is_valid

    def go_to(self, index: int) -> None:
        """Jump to a chapter and reset its editable state."""
        if not 0 <= index < len(self.chapters):
            raise IndexError(f"Chapter index {index} is out of range (0..{len(self.chapters) - 1}).")
        self.index = index
        self.reset()

    def reset(self) -> None:
        """Restore starter text and clear the last result."""
        self.code = self.chapter.starter_code
        self.result = None

    def edit(self, text: str) -> None:
        """Replace the editable text; any previous verdict is stale."""
        self.code = text
        self.result = None

    def show_answer(self) -> None:
        """Replace the editable text with the reference solution."""
        self.edit(self.chapter.expected_code)

    def check(self) -> ValidationResult:
        """Validate the editable text against the current chapter."""
        self.result = validate(self.code, self.chapter)
        return self.result

    def next(self) -> NavigationStep:
        """Advance when the current chapter passed."""
        if not self.unlocked:
            return NavigationStep.LOCKED
        if self.is_last:
            self.course_complete = True
            return NavigationStep.COURSE_COMPLETE
        self.go_to(self.index + 1)
        return NavigationStep.ADVANCED

    def prev(self) -> bool:
        """Step back one chapter; return False at the first chapter."""
        if self.is_first:
            return False
        self.go_to(self.index - 1)
        return True
