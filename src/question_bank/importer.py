"""
Module: importer

Purpose:
    Bulk import of questions from CSV. Turns a header-row CSV into row
    dicts ready to insert into the remote store.

Key Functions:
    - parse_questions_csv(): CSV text -> list of row dicts
    - load_questions_csv(): Size-checked file read + parse

Dependencies:
    - csv (std)
    - question_bank.core.models: Column names

Used By:
    - question_bank.cli: ``import-csv`` command
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from question_bank.core.models import QuestionRecord, REQUIRED_COLUMNS, SERVER_COLUMNS

logger = logging.getLogger(__name__)

MAX_CSV_BYTES = 25 * 1024 * 1024

IMPORT_COLUMNS = tuple(
    name for name in QuestionRecord.column_names() if name not in SERVER_COLUMNS
)


class CsvImportError(Exception):
    """Raised when a CSV file cannot be imported."""
    pass


def _normalize_header(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def parse_questions_csv(text: str) -> List[Dict[str, Optional[str]]]:
    """
    Parse CSV text into rows keyed by question column.

    Unknown columns are ignored. Required text columns default to ``""``,
    optional columns to ``None`` when blank.

    Args:
        text: Full CSV content including a header row

    Returns:
        One dict per non-empty data row

    Raises:
        CsvImportError: If the header is missing or the CSV is malformed

    Example:
        >>> rows = parse_questions_csv("subject,marks\\nPhysics,3\\n")
        >>> rows[0]["subject"], rows[0]["marks"]
        ('Physics', '3')
    """
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        header = next(reader, None)
        while header is not None and not any(cell.strip() for cell in header):
            header = next(reader, None)
        if header is None:
            raise CsvImportError("CSV file is empty or has no header row")

        positions: Dict[str, int] = {}
        for position, name in enumerate(header):
            key = _normalize_header(name)
            if key in IMPORT_COLUMNS and key not in positions:
                positions[key] = position

        ignored = [name for name in header if _normalize_header(name) not in IMPORT_COLUMNS]
        if ignored:
            logger.debug(f"Ignoring unknown CSV columns: {ignored}")
        if not positions:
            raise CsvImportError("CSV header does not contain any question columns")

        rows: List[Dict[str, Optional[str]]] = []
        for cells in reader:
            if not any(cell.strip() for cell in cells):
                continue
            rows.append(_row_from_cells(cells, positions))
    except csv.Error as e:
        raise CsvImportError(f"Malformed CSV at line {reader.line_num}: {e}") from e

    logger.info(f"Parsed {len(rows)} questions from CSV")
    return rows


def _row_from_cells(cells: List[str], positions: Dict[str, int]) -> Dict[str, Optional[str]]:
    row: Dict[str, Optional[str]] = {}
    for column in IMPORT_COLUMNS:
        position = positions.get(column)
        value = cells[position].strip() if position is not None and position < len(cells) else ""
        if column in REQUIRED_COLUMNS:
            row[column] = value
        else:
            row[column] = value or None
    return row


def load_questions_csv(path: Union[str, Path]) -> List[Dict[str, Optional[str]]]:
    """
    Read and parse a CSV file.

    Raises:
        CsvImportError: If the file is missing, too large or malformed
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise CsvImportError(f"Cannot read {path}: {e}") from e
    if size > MAX_CSV_BYTES:
        raise CsvImportError(
            f"{path.name} is {size / (1024 * 1024):.1f} MB; the limit is "
            f"{MAX_CSV_BYTES // (1024 * 1024)} MB"
        )

    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise CsvImportError(f"Cannot read {path}: {e}") from e
    return parse_questions_csv(text)
