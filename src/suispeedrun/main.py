"""CLI entrypoint for the Sui Move chapter course."""

from __future__ import annotations

import argparse
import html
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import cast

from .models import ChapterSpec, ValidationResult
from .navigation import ChapterSession, NavigationStep
from .progress import ProgressRecordError
from .service import SpeedrunService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
WALLET_ENV = "SUISPEEDRUN_WALLET"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
BACK_COMMANDS = {":back", ":b", "back"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
EDIT_END = ":end"

_BLOCK_END = re.compile(r"</(p|h[1-6]|li|ul|ol)>|<br\s*/?>", re.IGNORECASE)
_LIST_ITEM = re.compile(r"<li[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service() -> SpeedrunService:
    """Create app service over the bundled chapters."""
    return SpeedrunService()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="suispeedrun", description="Chapter-based Sui Move practice")
    parser.add_argument("--log-level", default="WARNING", choices=LOG_LEVELS, help="logging verbosity")
    parser.add_argument(
        "--wallet",
        default=os.environ.get(WALLET_ENV),
        help=f"wallet address for progress recording (default: ${WALLET_ENV})",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("play", help="interactive course (default)")
    subparsers.add_parser("list", help="list chapters")
    check_parser = subparsers.add_parser("check", help="check a source file against a chapter")
    check_parser.add_argument("chapter", type=int, help="1-based chapter number")
    check_parser.add_argument("file", type=Path, help="Move source file")
    return parser


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    if args.command == "list":
        return list_command(print_fn=print)
    if args.command == "check":
        return check_command(args.chapter, args.file, wallet_address=args.wallet, print_fn=print)
    return play_shell(wallet_address=args.wallet)


def list_command(print_fn: PrintFn = print) -> int:
    """Print chapters in course order."""
    for number, chapter in enumerate(_service().list_chapters(), start=1):
        print_fn(f"{number:>2}) {chapter.title}")
    return 0


def check_command(
    chapter_number: int, path: Path, print_fn: PrintFn = print, wallet_address: str | None = None
) -> int:
    """Validate a file against one chapter; exit code 0 when it passes.

    A pass is recorded for the wallet, if one is given.
    """
    service = _service()
    chapter_count = len(service.list_chapters())
    if not 1 <= chapter_number <= chapter_count:
        print_fn(f"Chapter must be between 1 and {chapter_count}.")
        return 2
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        print_fn(f"Could not read {path}: {exc}")
        return 2
    result = service.check(chapter_number - 1, text)
    _print_result(result, print_fn)
    if result.is_valid and wallet_address:
        try:
            service.record_pass(wallet_address, chapter_number - 1)
        except ProgressRecordError as exc:
            print_fn(f"Could not save progress: {exc}")
    return 0 if result.is_valid else 1


def play_shell(wallet_address: str | None = None, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run persistent menu-driven shell."""
    service = _service()
    try:
        while True:
            print_fn("\n=== Sui Speedrun ===")
            print_fn(f"Wallet: {wallet_address}" if wallet_address else "Wallet: none (progress not recorded)")
            print_fn("1) Chapters")
            print_fn("2) Status")
            print_fn("3) Export progress")
            print_fn("4) Import progress")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "1":
                _chapters_flow(service, wallet_address, input_fn, print_fn)
            elif choice == "2":
                _status_flow(service, wallet_address, print_fn)
            elif choice == "3":
                _export_progress_flow(service, wallet_address, input_fn, print_fn)
            elif choice == "4":
                _import_progress_flow(service, wallet_address, input_fn, print_fn)
            elif choice in MENU_QUIT_COMMANDS:
                return 0
            else:
                print_fn("Invalid choice.")
    except QuitApp:
        return 0


def _chapters_flow(service: SpeedrunService, wallet_address: str | None, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Pick a chapter and open it."""
    chapters = service.list_chapters()
    completed: set[int] = set()
    if wallet_address:
        completed = set(service.status(wallet_address).completed_chapters)

    print_fn("\n=== Chapters ===")
    for number, chapter in enumerate(chapters, start=1):
        mark = "x" if number in completed else " "
        print_fn(f"{number:>2}) [{mark}] {chapter.title}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = input_fn("Choose chapter: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    if not choice.isdigit():
        print_fn("Invalid choice.")
        return
    index = int(choice) - 1
    if not (0 <= index < len(chapters)):
        print_fn("Invalid choice.")
        return
    _run_chapter(service, service.start_session(index), wallet_address, input_fn, print_fn)


def _print_chapter(session: ChapterSession, print_fn: PrintFn) -> None:
    chapter = session.chapter
    buttons = chapter.buttons
    print_fn(f"\n=== Chapter {session.index + 1}/{len(session.chapters)} ===")
    print_fn(_html_to_text(chapter.description))
    if chapter.technical_skills:
        print_fn("\nSkills:")
        for skill in chapter.technical_skills:
            print_fn(f"- {skill.label}: {skill.description}" if skill.description else f"- {skill.label}")
    print_fn("\nCommands:")
    print_fn("  :show       show your code")
    print_fn(f"  :edit       replace your code (finish with {EDIT_END})")
    print_fn("  :load PATH  replace your code with a file")
    print_fn("  :reset      restore the starter code")
    print_fn(f"  :check      {buttons.check}")
    print_fn(f"  :answer     {buttons.show_answer}")
    print_fn(f"  :next       {buttons.next}")
    print_fn(f"  :prev       {buttons.prev}")
    print_fn("  :b / :q     leave the chapter")


def _run_chapter(
    service: SpeedrunService,
    session: ChapterSession,
    wallet_address: str | None,
    input_fn: InputFn,
    print_fn: PrintFn,
) -> None:
    """Run the command loop for one chapter session."""
    _print_chapter(session, print_fn)
    while True:
        raw = input_fn(f"[{session.index + 1}] > ").strip()
        command, _, argument = raw.partition(" ")
        command = command.lower()

        if command in BACK_COMMANDS or command in FLOW_EXIT_COMMANDS:
            return
        if command == ":show":
            _print_code(session.code, print_fn)
        elif command == ":edit":
            session.edit(_read_block(input_fn))
            print_fn("Code updated.")
        elif command == ":load":
            _load_file(session, argument.strip(), print_fn)
        elif command == ":reset":
            session.reset()
            print_fn("Starter code restored.")
        elif command == ":answer":
            session.show_answer()
            _print_code(session.code, print_fn)
        elif command == ":check":
            _check_flow(service, session, wallet_address, print_fn)
        elif command == ":next":
            step = session.next()
            if step is NavigationStep.LOCKED:
                print_fn("Pass the check to unlock the next chapter.")
            elif step is NavigationStep.COURSE_COMPLETE:
                print_fn("Course complete. Well done!")
                return
            else:
                _print_chapter(session, print_fn)
        elif command == ":prev":
            if session.prev():
                _print_chapter(session, print_fn)
            else:
                print_fn("Already at the first chapter.")
        else:
            print_fn("Unknown command.")


def _check_flow(
    service: SpeedrunService, session: ChapterSession, wallet_address: str | None, print_fn: PrintFn
) -> None:
    result = session.check()
    _print_result(result, print_fn)
    if not result.is_valid or not wallet_address:
        return
    try:
        service.record_pass(wallet_address, session.index)
    except ProgressRecordError as exc:
        print_fn(f"Could not save progress: {exc}")


def _print_result(result: ValidationResult, print_fn: PrintFn) -> None:
    if result.is_valid:
        print_fn("Correct! Your code passes.")
        return
    for diagnostic in result.errors:
        print_fn(f"line {diagnostic.line}: {diagnostic.message}")


def _print_code(code: str, print_fn: PrintFn) -> None:
    lines = code.split("\n")
    width = len(str(len(lines)))
    for number, line in enumerate(lines, start=1):
        print_fn(f"{number:>{width}} | {line}")


def _read_block(input_fn: InputFn) -> str:
    """Read lines until the end marker."""
    lines: list[str] = []
    while True:
        line = input_fn("")
        if line.strip() == EDIT_END:
            return "\n".join(lines)
        lines.append(line)


def _load_file(session: ChapterSession, path_text: str, print_fn: PrintFn) -> None:
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        text = Path(path_text).read_text(encoding="utf-8")
    except OSError as exc:
        print_fn(f"Could not read {path_text}: {exc}")
        return
    session.edit(text)
    print_fn(f"Loaded {path_text}.")


def _status_flow(service: SpeedrunService, wallet_address: str | None, print_fn: PrintFn) -> None:
    """Print chapter progress for the current wallet."""
    print_fn("\n=== Status ===")
    if not wallet_address:
        print_fn(f"No wallet set. Use --wallet or ${WALLET_ENV} to record progress.")
        return
    status = service.status(wallet_address).to_status()
    chapters = service.list_chapters()
    print_fn(f"Completed: {status['total_completed']}/{len(chapters)}")
    for label, key in (("Pending", "pending_chapters"), ("Rejected", "rejected_chapters")):
        numbers = cast(list[int], status[key])
        if numbers:
            print_fn(f"{label}: {', '.join(str(number) for number in numbers)}")
    next_chapter = cast(int, status["next_chapter"])
    print_fn(f"Next chapter: {next_chapter} - {_chapter_title(chapters, next_chapter)}")


def _chapter_title(chapters: list[ChapterSpec], number: int) -> str:
    if 1 <= number <= len(chapters):
        return chapters[number - 1].title
    return "?"


def _export_progress_flow(
    service: SpeedrunService, wallet_address: str | None, input_fn: InputFn, print_fn: PrintFn
) -> None:
    """Export current wallet progress to a JSON file."""
    print_fn("\n=== Export Progress ===")
    if not wallet_address:
        print_fn("No wallet set; nothing to export.")
        return
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.export_progress(wallet_address, path_text)
    except OSError as exc:
        print_fn(f"Export failed: {exc}")
        return
    print_fn(f"Exported progress for '{summary.wallet_address}' to {path_text}")
    print_fn(f"- submission rows: {summary.submission_rows}")


def _import_progress_flow(
    service: SpeedrunService, wallet_address: str | None, input_fn: InputFn, print_fn: PrintFn
) -> None:
    """Import wallet progress from a JSON file."""
    print_fn("\n=== Import Progress ===")
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.import_progress(path_text, wallet_address)
    except Exception as exc:
        print_fn(f"Import failed: {exc}")
        return
    print_fn(f"Imported progress for '{summary.wallet_address}'.")
    print_fn(f"- submission rows: {summary.submission_rows}")
    print_fn(f"- completed chapters: {len(summary.completed_chapters)}")


def _html_to_text(markup: str) -> str:
    """Render chapter description markup as plain terminal text."""
    text = _LIST_ITEM.sub("- ", markup)
    text = _BLOCK_END.sub("\n", text)
    text = html.unescape(_TAG.sub("", text))
    lines = [" ".join(line.split()) for line in text.splitlines()]
    paragraphs: list[str] = []
    for line in lines:
        if line:
            paragraphs.append(line)
        elif paragraphs and paragraphs[-1]:
            paragraphs.append("")
    return "\n".join(paragraphs).strip()


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
