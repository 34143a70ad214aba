"""In-memory session progress and the recorder seam for external storage."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"
SUBMISSION_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED)


class ProgressRecordError(RuntimeError):
    """Raised when a verdict could not be handed to the progress recorder."""


@dataclass(frozen=True)
class SubmissionRecord:
    """Latest submission state for one chapter."""

    chapter_number: int
    status: str
    submitted_at: str
    reviewed_at: str | None = None
    reviewer_notes: str | None = None


class SessionProgress:
    """Per-wallet chapter progress.

    Chapter numbers are 1-based course positions. An accepted chapter stays
    accepted: later pending or rejected records for it are ignored.
    """

    def __init__(self, wallet_address: str, chapter_count: int) -> None:
        self.wallet_address = wallet_address
        self.chapter_count = chapter_count
        self._submissions: dict[int, SubmissionRecord] = {}

    @classmethod
    def from_records(
        cls, wallet_address: str, chapter_count: int, records: Iterable[SubmissionRecord]
    ) -> SessionProgress:
        """Rebuild progress from stored submission records."""
        progress = cls(wallet_address, chapter_count)
        for record in records:
            progress._check_chapter(record.chapter_number)
            _check_status(record.status)
            progress._submissions[record.chapter_number] = record
        return progress

    def _check_chapter(self, chapter_number: int) -> None:
        if not 1 <= chapter_number <= self.chapter_count:
            raise ValueError(f"Chapter {chapter_number} is outside 1..{self.chapter_count}.")

    def record(self, chapter_number: int, status: str, reviewer_notes: str | None = None) -> SubmissionRecord:
        """Upsert the submission for a chapter."""
        self._check_chapter(chapter_number)
        _check_status(status)
        previous = self._submissions.get(chapter_number)
        if previous is not None and previous.status == STATUS_ACCEPTED:
            return previous

        now = datetime.now(UTC).isoformat()
        reviewed_at = None if status == STATUS_PENDING else now
        record = SubmissionRecord(
            chapter_number=chapter_number,
            status=status,
            submitted_at=now,
            reviewed_at=reviewed_at,
            reviewer_notes=reviewer_notes,
        )
        self._submissions[chapter_number] = record
        return record

    def submission(self, chapter_number: int) -> SubmissionRecord | None:
        return self._submissions.get(chapter_number)

    def records(self) -> list[SubmissionRecord]:
        """Return submission records ordered by chapter."""
        return [self._submissions[number] for number in sorted(self._submissions)]

    def _chapters_with(self, status: str) -> list[int]:
        return [number for number, record in sorted(self._submissions.items()) if record.status == status]

    @property
    def completed_chapters(self) -> list[int]:
        return self._chapters_with(STATUS_ACCEPTED)

    @property
    def pending_chapters(self) -> list[int]:
        return self._chapters_with(STATUS_PENDING)

    @property
    def rejected_chapters(self) -> list[int]:
        return self._chapters_with(STATUS_REJECTED)

    @property
    def next_chapter(self) -> int:
        """Return the chapter after the furthest completed one, capped at the last."""
        completed = self.completed_chapters
        if not completed:
            return 1
        return min(max(completed) + 1, self.chapter_count)

    def to_status(self) -> dict[str, object]:
        """Return the user-status payload for this wallet."""
        return {
            "wallet_address": self.wallet_address,
            "completed_chapters": self.completed_chapters,
            "pending_chapters": self.pending_chapters,
            "rejected_chapters": self.rejected_chapters,
            "next_chapter": self.next_chapter,
            "total_completed": len(self.completed_chapters),
            "total_pending": len(self.pending_chapters),
            "submissions": {
                record.chapter_number: {
                    "status": record.status,
                    "submitted_at": record.submitted_at,
                    "reviewed_at": record.reviewed_at,
                }
                for record in self.records()
            },
        }


class ProgressRecorder(Protocol):
    """Collaborator that stores verdicts outside the validation core."""

    def record_submission(self, wallet_address: str, chapter_number: int, status: str) -> SubmissionRecord: ...

    def progress_for(self, wallet_address: str) -> SessionProgress: ...

    def replace(self, progress: SessionProgress) -> None: ...


class MemoryProgressRecorder:
    """Keeps one SessionProgress per wallet for the lifetime of the process."""

    def __init__(self, chapter_count: int) -> None:
        self.chapter_count = chapter_count
        self._sessions: dict[str, SessionProgress] = {}

    def progress_for(self, wallet_address: str) -> SessionProgress:
        """Return progress for a wallet, creating it on first use."""
        progress = self._sessions.get(wallet_address)
        if progress is None:
            progress = SessionProgress(wallet_address, self.chapter_count)
            self._sessions[wallet_address] = progress
        return progress

    def replace(self, progress: SessionProgress) -> None:
        """Install restored progress for its wallet."""
        self._sessions[progress.wallet_address] = progress

    def record_submission(self, wallet_address: str, chapter_number: int, status: str) -> SubmissionRecord:
        return self.progress_for(wallet_address).record(chapter_number, status)


def _check_status(status: str) -> None:
    if status not in SUBMISSION_STATUSES:
        raise ValueError(f"Unknown submission status '{status}'.")
