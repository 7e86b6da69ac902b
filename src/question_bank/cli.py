"""
Module: cli

Purpose:
    Command-line entry point (``question-bank``).

Commands:
    worksheet INPUT     Build worksheet.pdf from a JSON list of questions
    import-csv CSV      Bulk-insert questions from a CSV file
    taxonomy ...        List or edit the subject/level/title lists

Exit codes:
    0 success, 1 failure, 130 cancelled with Ctrl+C
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from question_bank import __version__
from question_bank.core.models import QuestionRecord, validate_unique_ids
from question_bank.importer import CsvImportError, load_questions_csv
from question_bank.logging_utils import configure_logging
from question_bank.store import QuestionStore, StoreConfig, StoreConfigError, StoreError
from question_bank.taxonomy import TaxonomyKind, TaxonomyStore
from question_bank.worksheet import (
    GenerationOutcome,
    Outcome,
    Pass,
    WorksheetConfig,
    WorksheetError,
    generate_worksheet,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class InputError(Exception):
    """Raised when a worksheet input file cannot be used."""
    pass


def load_records(path: Path) -> List[QuestionRecord]:
    """
    Read questions from a JSON file.

    Accepts either a top-level list of question objects or an object with
    a ``questions`` list.

    Raises:
        InputError: If the file is unreadable, a question is malformed or
            two questions share an id
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InputError(f"Cannot read {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise InputError(f"{path} must contain a list of questions")

    records = []
    for position, row in enumerate(data, start=1):
        if not isinstance(row, dict):
            raise InputError(f"Question {position} is not an object")
        try:
            records.append(QuestionRecord.from_dict(row))
        except ValueError as e:
            raise InputError(f"Question {position}: {e}") from e

    try:
        validate_unique_ids(records)
    except ValueError as e:
        raise InputError(f"{path}: {e}") from e
    return records


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────


def cmd_worksheet(args: argparse.Namespace) -> int:
    try:
        records = load_records(args.input)
    except InputError as e:
        logger.error(str(e))
        return EXIT_FAILURE

    try:
        config = WorksheetConfig()
        if args.settle is not None:
            config = replace(config, settle_seconds=args.settle)
        if args.scale is not None:
            config = replace(config, scale=args.scale)
    except ValueError as e:
        logger.error(f"Invalid option: {e}")
        return EXIT_FAILURE

    def on_progress(pass_: Pass, index: int, total: int) -> None:
        noun = "question" if pass_ is Pass.QUESTIONS else "answer"
        print(f"Processing {noun} {index + 1} of {total}", file=sys.stderr)

    try:
        outcome: GenerationOutcome = asyncio.run(
            generate_worksheet(records, args.output_dir, config=config, on_progress=on_progress)
        )
    except KeyboardInterrupt:
        logger.warning("Cancelled")
        return EXIT_CANCELLED
    except WorksheetError as e:
        logger.error(f"Failed to generate worksheet: {e}")
        return EXIT_FAILURE

    if outcome.status is Outcome.SUCCESS:
        print(outcome.output_path)
        return EXIT_OK
    if outcome.status is Outcome.CANCELLED:
        return EXIT_CANCELLED
    # Already reported by the assembler
    logger.debug(f"Worksheet generation ended with {outcome.error!r}")
    return EXIT_FAILURE


def cmd_import_csv(args: argparse.Namespace) -> int:
    try:
        rows = load_questions_csv(args.csv)
    except CsvImportError as e:
        logger.error(str(e))
        return EXIT_FAILURE

    if args.dry_run:
        print(f"{len(rows)} questions ready to import")
        return EXIT_OK

    try:
        with QuestionStore(StoreConfig.from_env()) as store:
            inserted = store.insert_many(rows)
    except (StoreConfigError, StoreError) as e:
        logger.error(f"Import failed: {e}")
        return EXIT_FAILURE

    print(f"Imported {inserted} questions")
    return EXIT_OK


def cmd_taxonomy(args: argparse.Namespace) -> int:
    store = TaxonomyStore()
    try:
        kind = TaxonomyKind.from_name(args.kind)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FAILURE

    if args.action in ("add", "remove") and not (args.value and args.value.strip()):
        logger.error(f"taxonomy {args.action} needs a VALUE")
        return EXIT_FAILURE

    if args.action == "add":
        labels = store.add(kind, args.value)
    elif args.action == "remove":
        labels = store.remove(kind, args.value)
    elif args.action == "reset":
        store.reset(kind)
        labels = store.get(kind)
    else:
        labels = store.get(kind)

    for label in labels:
        print(label)
    return EXIT_OK


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="question-bank",
        description="Question bank tools: worksheets, CSV import and label lists",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    worksheet = subparsers.add_parser("worksheet", help="Generate a worksheet PDF")
    worksheet.add_argument("input", type=Path, help="JSON file with the selected questions")
    worksheet.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory receiving worksheet.pdf (default: current directory)",
    )
    worksheet.add_argument("--settle", type=float, help="Seconds to wait before each capture")
    worksheet.add_argument("--scale", type=float, help="Rasterization scale factor")
    worksheet.set_defaults(func=cmd_worksheet)

    import_csv = subparsers.add_parser("import-csv", help="Import questions from CSV")
    import_csv.add_argument("csv", type=Path, help="CSV file with a header row")
    import_csv.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and count rows without uploading",
    )
    import_csv.set_defaults(func=cmd_import_csv)

    taxonomy = subparsers.add_parser("taxonomy", help="List or edit label lists")
    taxonomy.add_argument("action", choices=["list", "add", "remove", "reset"])
    taxonomy.add_argument("kind", help="subjects, levels or titles")
    taxonomy.add_argument("value", nargs="?", help="Label to add or remove")
    taxonomy.set_defaults(func=cmd_taxonomy)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
