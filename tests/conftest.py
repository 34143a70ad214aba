from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from suispeedrun.content_loader import load_chapters  # noqa: E402
from suispeedrun.models import ChapterSpec  # noqa: E402


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide a per-test scratch directory under ``.tmp_pytest/`` in the workspace.

    Overrides pytest's builtin ``tmp_path`` so transcript exports and chapter
    fixture directories stay inside the project tree.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


@pytest.fixture(scope="session")
def chapters() -> list[ChapterSpec]:
    """Bundled course chapters, loaded once."""
    return load_chapters()
