"""Canonical text form used for tolerant solution comparison."""

from __future__ import annotations

import re

_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Strip `//` comments, collapse whitespace runs to one space, and trim."""
    without_comments = _LINE_COMMENT.sub("", text)
    return _WHITESPACE.sub(" ", without_comments).strip()
