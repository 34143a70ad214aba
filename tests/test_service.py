import json
import logging
from pathlib import Path
from typing import Any

from suispeedrun.models import ChapterSpec
from suispeedrun.progress import (
    STATUS_ACCEPTED,
    MemoryProgressRecorder,
    ProgressRecordError,
    SubmissionRecord,
)
from suispeedrun.service import EXPORT_FORMAT_VERSION, SpeedrunService, _coerce_int

WALLET = "0x5ui"


class FlakyRecorder(MemoryProgressRecorder):
    def __init__(self, chapter_count: int, failures: int) -> None:
        super().__init__(chapter_count)
        self.failures = failures
        self.calls = 0

    def record_submission(self, wallet_address: str, chapter_number: int, status: str) -> SubmissionRecord:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("progress backend unavailable")
        return super().record_submission(wallet_address, chapter_number, status)


def test_lists_and_finds_chapters(chapters: list[ChapterSpec]) -> None:
    service = SpeedrunService(chapters=chapters)
    assert len(service.list_chapters()) == 15
    assert service.get_chapter(0).id == "1"
    assert service.find_chapter("15") is chapters[14]
    assert service.find_chapter("99") is None
    try:
        service.get_chapter(15)
        raise AssertionError("Expected IndexError.")
    except IndexError:
        pass


def test_default_service_loads_bundled_chapters() -> None:
    assert len(SpeedrunService().list_chapters()) == 15


def test_check_records_only_passing_submissions(chapters: list[ChapterSpec]) -> None:
    service = SpeedrunService(chapters=chapters)
    failed = service.check(0, chapters[0].starter_code, WALLET)
    assert failed.is_valid is False
    assert service.status(WALLET).completed_chapters == []

    passed = service.check(0, chapters[0].expected_code, WALLET)
    assert passed.is_valid is True
    assert service.status(WALLET).completed_chapters == [1]
    assert service.status(WALLET).next_chapter == 2


def test_check_without_wallet_does_not_record(chapters: list[ChapterSpec]) -> None:
    recorder = MemoryProgressRecorder(len(chapters))
    service = SpeedrunService(recorder=recorder, chapters=chapters)
    assert service.check(1, chapters[1].expected_code).is_valid is True
    assert recorder.progress_for(WALLET).records() == []


def test_recorder_retry_then_success(chapters: list[ChapterSpec], caplog: Any) -> None:
    recorder = FlakyRecorder(len(chapters), failures=2)
    service = SpeedrunService(recorder=recorder, chapters=chapters)
    with caplog.at_level(logging.WARNING, logger="suispeedrun.service"):
        result = service.check(2, chapters[2].expected_code, WALLET)
    assert result.is_valid is True
    assert recorder.calls == 3
    assert service.status(WALLET).completed_chapters == [3]
    assert len([record for record in caplog.records if "attempt" in record.getMessage()]) == 2


def test_recorder_failure_surfaces_after_retries(chapters: list[ChapterSpec]) -> None:
    recorder = FlakyRecorder(len(chapters), failures=10)
    service = SpeedrunService(recorder=recorder, chapters=chapters)
    try:
        service.check(0, chapters[0].expected_code, WALLET)
        raise AssertionError("Expected ProgressRecordError.")
    except ProgressRecordError as exc:
        assert "after 3 attempts" in str(exc)
        assert isinstance(exc.__cause__, ConnectionError)
    assert recorder.calls == 3


def test_start_session(chapters: list[ChapterSpec]) -> None:
    session = SpeedrunService(chapters=chapters).start_session(4)
    assert session.chapter.id == "5"
    assert session.code == chapters[4].starter_code


def test_export_import_round_trip(chapters: list[ChapterSpec], tmp_path: Path) -> None:
    source = SpeedrunService(chapters=chapters)
    source.check(0, chapters[0].expected_code, WALLET)
    source.check(1, chapters[1].expected_code, WALLET)
    export_path = tmp_path / "exports" / "progress.json"

    exported = source.export_progress(WALLET, export_path)
    assert exported.submission_rows == 2
    payload = json.loads(export_path.read_text(encoding="utf-8"))
    assert payload["format_version"] == EXPORT_FORMAT_VERSION
    assert payload["wallet_address"] == WALLET
    assert payload["source"]["chapter_count"] == 15

    target = SpeedrunService(chapters=chapters)
    imported = target.import_progress(export_path)
    assert imported.wallet_address == WALLET
    assert imported.completed_chapters == (1, 2)
    assert target.status(WALLET).next_chapter == 3


def test_import_overrides_wallet_and_drops_bad_rows(chapters: list[ChapterSpec], tmp_path: Path) -> None:
    path = tmp_path / "messy.json"
    payload = {
        "format_version": "1",
        "wallet_address": "0xold",
        "submissions": [
            {"chapter_number": "3", "status": STATUS_ACCEPTED},
            {"chapter_number": 99, "status": STATUS_ACCEPTED},
            {"chapter_number": 4, "status": "unknown"},
            {"chapter_number": 5, "status": "pending", "reviewer_notes": 12},
            "not a row",
        ],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    service = SpeedrunService(chapters=chapters)
    summary = service.import_progress(path, "0xnew")
    assert summary.wallet_address == "0xnew"
    assert summary.submission_rows == 2
    progress = service.status("0xnew")
    assert progress.completed_chapters == [3]
    assert progress.pending_chapters == [5]
    assert progress.submission(5).reviewer_notes == "12"


def test_import_rejects_bad_files(chapters: list[ChapterSpec], tmp_path: Path) -> None:
    service = SpeedrunService(chapters=chapters)
    cases = {
        "list.json": ([], "root must be a JSON object"),
        "future.json": ({"format_version": EXPORT_FORMAT_VERSION + 1, "wallet_address": WALLET}, "newer"),
        "bad-version.json": ({"format_version": "x", "wallet_address": WALLET}, "invalid format_version"),
        "no-wallet.json": ({"format_version": 1}, "wallet address"),
    }
    for name, (payload, fragment) in cases.items():
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        try:
            service.import_progress(path)
            raise AssertionError(f"Expected ValueError for {name}.")
        except ValueError as exc:
            assert fragment in str(exc)


def test_coerce_int() -> None:
    assert _coerce_int(True) == 1
    assert _coerce_int(3) == 3
    assert _coerce_int(3.9) == 3
    assert _coerce_int("7") == 7
    assert _coerce_int("x") is None
    assert _coerce_int(None, 5) == 5
    assert _coerce_int(float("inf")) is None
    assert _coerce_int(float("-inf"), 2) == 2
    assert _coerce_int(float("nan")) is None


def test_import_ignores_non_finite_numbers(chapters: list[ChapterSpec], tmp_path: Path) -> None:
    service = SpeedrunService(chapters=chapters)
    rows = tmp_path / "infinite-row.json"
    rows.write_text(
        '{"format_version": 1, "wallet_address": "0xa", "submissions": ['
        '{"chapter_number": Infinity, "status": "accepted"}, {"chapter_number": 2, "status": "accepted"}]}',
        encoding="utf-8",
    )
    summary = service.import_progress(rows)
    assert summary.submission_rows == 1
    assert summary.completed_chapters == (2,)

    version = tmp_path / "infinite-version.json"
    version.write_text('{"format_version": 1e400, "wallet_address": "0xa"}', encoding="utf-8")
    try:
        service.import_progress(version)
        raise AssertionError("Expected ValueError for non-finite format_version.")
    except ValueError as exc:
        assert "invalid format_version" in str(exc)
