"""
Module: records

Purpose:
    Provides the QuestionRecord dataclass - the row shape stored in the
    remote question table and consumed read-only by the worksheet
    generator. Immutable, with serialization helpers for JSON files and
    REST payloads.

Key Functions:
    - QuestionRecord.has_markscheme: Whether an answer page can be rendered
    - QuestionRecord.metadata_line: "level | subject | N marks" label
    - QuestionRecord.to_dict() / QuestionRecord.from_dict(): Serialization
    - validate_unique_ids(): Guard against duplicate ids in a selection

Dependencies:
    - dataclasses (std)

Used By:
    - question_bank.worksheet: Render jobs and page headers
    - question_bank.store: Rows returned by the remote store
    - question_bank.importer: Column set for CSV import
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable, Optional


# Columns assigned by the store, never supplied by an import or edit form
SERVER_COLUMNS = ("id", "created_at", "updated_at")

# Columns that must carry a non-empty value on create/update
REQUIRED_COLUMNS = ("question_title", "level", "subject", "marks", "question_body")


@dataclass(frozen=True)
class QuestionRecord:
    """
    One exam-style question (immutable).

    Attributes:
        id: Opaque identifier, unique within any list handed to the generator
        level: Level label like "HL"
        subject: Subject label like "Mathematics"
        marks: Marks label (kept as text, e.g. "4")
        question_body: Rich-text markup, always present
        markscheme_body: Optional rich-text markup; no answer page when absent
        question_title: Topic/title label
        paper, question_number, reference_code, timezone, adapted_from,
        question_diagram, markscheme_image, examiner_report, published_date,
        question_html: Optional catalog columns carried through untouched
        created_at, updated_at: Store timestamps (ISO strings)

    Example:
        >>> record = QuestionRecord(
        ...     id="q-1", level="HL", subject="Mathematics", marks="4",
        ...     question_body="<p>Solve x + 1 = 2</p>",
        ... )
        >>> record.has_markscheme
        False
    """

    id: str
    level: str
    subject: str
    marks: str
    question_body: str
    markscheme_body: Optional[str] = None
    question_title: str = ""
    paper: Optional[str] = None
    question_number: Optional[str] = None
    reference_code: Optional[str] = None
    timezone: Optional[str] = None
    adapted_from: Optional[str] = None
    question_diagram: Optional[str] = None
    markscheme_image: Optional[str] = None
    examiner_report: Optional[str] = None
    published_date: Optional[str] = None
    question_html: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def has_markscheme(self) -> bool:
        """True when the record carries a non-blank markscheme body."""
        return bool(self.markscheme_body and self.markscheme_body.strip())

    @property
    def metadata_line(self) -> str:
        """Header metadata shown on rendered pages."""
        return f"{self.level} | {self.subject} | {self.marks} marks"

    @classmethod
    def column_names(cls) -> tuple[str, ...]:
        """All column names in declaration order."""
        return tuple(f.name for f in fields(cls))

    def to_dict(self) -> dict:
        """
        Serialize to dictionary for JSON storage.

        Optional columns that are None are omitted.

        Returns:
            Dict representation
        """
        d = {}
        for name in self.column_names():
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> QuestionRecord:
        """
        Deserialize from dictionary.

        Unknown keys are ignored. ``id`` and ``marks`` are coerced to text
        because the store may hand them back as numbers.

        Args:
            data: Dict representation (JSON file row or REST payload)

        Returns:
            QuestionRecord instance

        Raises:
            ValueError: If id or question_body is missing
        """
        if data.get("id") in (None, ""):
            raise ValueError("Question record is missing an id")
        if data.get("question_body") is None:
            raise ValueError(f"Question {data['id']!r} is missing question_body")

        known = set(cls.column_names())
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["id"] = str(kwargs["id"])
        kwargs["marks"] = "" if kwargs.get("marks") is None else str(kwargs["marks"])
        kwargs.setdefault("level", "")
        kwargs.setdefault("subject", "")
        if kwargs.get("question_title") is None:
            kwargs["question_title"] = ""
        return cls(**kwargs)

    def __repr__(self) -> str:
        """Concise representation for debugging."""
        return (
            f"QuestionRecord({self.id!r}, {self.subject!r}, level={self.level!r}, "
            f"markscheme={self.has_markscheme})"
        )


def validate_unique_ids(records: Iterable[QuestionRecord]) -> None:
    """
    Check that no id appears twice.

    Args:
        records: Records in worksheet order

    Raises:
        ValueError: Naming the first duplicated id
    """
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise ValueError(f"Duplicate question id in selection: {record.id!r}")
        seen.add(record.id)
