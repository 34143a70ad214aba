"""Application service for chapters, submission checks, and learner progress."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from . import __version__
from .content_loader import load_chapters
from .models import ChapterSpec, ValidationResult
from .navigation import ChapterSession
from .progress import (
    STATUS_ACCEPTED,
    SUBMISSION_STATUSES,
    MemoryProgressRecorder,
    ProgressRecorder,
    ProgressRecordError,
    SessionProgress,
    SubmissionRecord,
)
from .validation import validate_index

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1
RECORD_ATTEMPTS = 3


@dataclass(frozen=True)
class ProgressTransferSummary:
    """Summary emitted by progress export/import operations."""

    wallet_address: str
    submission_rows: int
    completed_chapters: tuple[int, ...]


class SpeedrunService:
    """Coordinates chapter content, validation, and progress recording."""

    def __init__(
        self,
        recorder: ProgressRecorder | None = None,
        chapters: Sequence[ChapterSpec] | None = None,
        record_attempts: int = RECORD_ATTEMPTS,
    ) -> None:
        """Initialize service with bundled chapters unless others are given."""
        self.chapters = list(chapters) if chapters is not None else load_chapters()
        self.recorder: ProgressRecorder = recorder or MemoryProgressRecorder(len(self.chapters))
        self.record_attempts = max(1, record_attempts)

    def list_chapters(self) -> list[ChapterSpec]:
        """Return chapters in course order."""
        return list(self.chapters)

    def get_chapter(self, index: int) -> ChapterSpec:
        """Get chapter by 0-based index."""
        if not 0 <= index < len(self.chapters):
            raise IndexError(f"Chapter index {index} is out of range (0..{len(self.chapters) - 1}).")
        return self.chapters[index]

    def find_chapter(self, chapter_id: str) -> ChapterSpec | None:
        """Get chapter by id."""
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def start_session(self, index: int = 0) -> ChapterSession:
        """Open a navigation session positioned at a chapter."""
        return ChapterSession(self.chapters, index)

    def check(self, index: int, user_text: str, wallet_address: str | None = None) -> ValidationResult:
        """Validate a submission and record a pass for the wallet, if any."""
        result = validate_index(user_text, index, self.chapters)
        logger.debug("chapter index %d verdict: %s", index, result.is_valid)
        if result.is_valid and wallet_address:
            self.record_pass(wallet_address, index)
        return result

    def record_pass(self, wallet_address: str, index: int) -> SubmissionRecord:
        """Record an accepted submission for the chapter at a 0-based index."""
        self.get_chapter(index)
        return self._record(wallet_address, index + 1, STATUS_ACCEPTED)

    def _record(self, wallet_address: str, chapter_number: int, status: str) -> SubmissionRecord:
        """Hand one verdict to the recorder, retrying before giving up."""
        last_error: Exception | None = None
        for attempt in range(1, self.record_attempts + 1):
            try:
                return self.recorder.record_submission(wallet_address, chapter_number, status)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "recording chapter %d for %s failed (attempt %d/%d): %s",
                    chapter_number,
                    wallet_address,
                    attempt,
                    self.record_attempts,
                    exc,
                )
        raise ProgressRecordError(
            f"Could not record chapter {chapter_number} for {wallet_address} after {self.record_attempts} attempts."
        ) from last_error

    def status(self, wallet_address: str) -> SessionProgress:
        """Return progress for one wallet."""
        return self.recorder.progress_for(wallet_address)

    def export_progress(self, wallet_address: str, export_path: Path | str) -> ProgressTransferSummary:
        """Export a wallet's progress to a JSON file."""
        progress = self.status(wallet_address)
        rows = [
            {
                "chapter_number": record.chapter_number,
                "status": record.status,
                "submitted_at": record.submitted_at,
                "reviewed_at": record.reviewed_at,
                "reviewer_notes": record.reviewer_notes,
            }
            for record in progress.records()
        ]
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "chapter_count": len(self.chapters),
            },
            "wallet_address": wallet_address,
            "submissions": rows,
        }

        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return ProgressTransferSummary(
            wallet_address=wallet_address,
            submission_rows=len(rows),
            completed_chapters=tuple(progress.completed_chapters),
        )

    def import_progress(self, import_path: Path | str, wallet_address: str | None = None) -> ProgressTransferSummary:
        """Import a progress export, replacing the wallet's current progress."""
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)

        format_version = _coerce_int(raw.get("format_version", 0))
        if format_version is None:
            raise ValueError("Import file has invalid format_version.")
        if format_version > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        target = (wallet_address or "").strip()
        if not target:
            wallet_raw = raw.get("wallet_address")
            if isinstance(wallet_raw, str):
                target = wallet_raw.strip()
        if not target:
            raise ValueError("Could not determine wallet address from import file.")

        now = datetime.now(UTC).isoformat()
        records = _normalize_submission_rows(raw.get("submissions"), now, len(self.chapters))
        progress = SessionProgress.from_records(target, len(self.chapters), records)
        self.recorder.replace(progress)
        return ProgressTransferSummary(
            wallet_address=target,
            submission_rows=len(records),
            completed_chapters=tuple(progress.completed_chapters),
        )


def _normalize_submission_rows(raw: object, now: str, chapter_count: int) -> list[SubmissionRecord]:
    """Normalize raw submission rows from import payload."""
    if not isinstance(raw, list):
        return []
    raw_rows = cast(list[object], raw)
    records: dict[int, SubmissionRecord] = {}
    for item in raw_rows:
        if not isinstance(item, dict):
            continue
        row = cast(dict[str, object], item)
        chapter_number = _coerce_int(row.get("chapter_number"))
        if chapter_number is None or not 1 <= chapter_number <= chapter_count:
            continue
        status = row.get("status")
        if not isinstance(status, str) or status not in SUBMISSION_STATUSES:
            continue
        submitted_at: object = row.get("submitted_at")
        if not isinstance(submitted_at, str) or not submitted_at:
            submitted_at = now
        reviewed_at: object = row.get("reviewed_at")
        if not isinstance(reviewed_at, str) or not reviewed_at:
            reviewed_at = None
        notes: object = row.get("reviewer_notes")
        if notes is not None and not isinstance(notes, str):
            notes = str(notes)
        records[chapter_number] = SubmissionRecord(
            chapter_number=chapter_number,
            status=status,
            submitted_at=cast(str, submitted_at),
            reviewed_at=cast(str | None, reviewed_at),
            reviewer_notes=cast(str | None, notes),
        )
    return [records[number] for number in sorted(records)]


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce value to int for import normalization."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return default
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default
