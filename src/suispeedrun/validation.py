"""Two-tier submission check: targeted rules, then normalized comparison."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .models import ChapterSpec, Diagnostic, ValidationRequest, ValidationResult
from .normalize import normalize
from .rules import run_rules

logger = logging.getLogger(__name__)

GENERIC_MISMATCH_LINE = 1
GENERIC_MISMATCH_MESSAGE = "syntax error: check your code structure"


def validate(user_text: str, chapter: ChapterSpec) -> ValidationResult:
    """Validate submitted text against one chapter."""
    diagnostics = run_rules(user_text, chapter)
    if diagnostics:
        logger.debug("chapter %s: %d rule diagnostic(s)", chapter.id, len(diagnostics))
        return ValidationResult(is_valid=False, errors=tuple(diagnostics))

    if chapter.strict_match and normalize(user_text) != normalize(chapter.expected_code):
        logger.debug("chapter %s: rules passed but normalized text differs", chapter.id)
        mismatch = Diagnostic(line=GENERIC_MISMATCH_LINE, message=GENERIC_MISMATCH_MESSAGE)
        return ValidationResult(is_valid=False, errors=(mismatch,))

    return ValidationResult(is_valid=True)


def validate_request(request: ValidationRequest) -> ValidationResult:
    return validate(request.user_text, request.chapter)


def validate_index(user_text: str, chapter_index: int, chapters: Sequence[ChapterSpec]) -> ValidationResult:
    """Validate against the chapter at a 0-based registry index."""
    if not 0 <= chapter_index < len(chapters):
        raise IndexError(f"Chapter index {chapter_index} is out of range (0..{len(chapters) - 1}).")
    return validate(user_text, chapters[chapter_index])
