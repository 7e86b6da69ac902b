"""
Module: worksheet.models

Purpose:
    Data models for worksheet generation. Immutable dataclasses and enums
    describing render jobs, page images, the two-pass cursor and the
    outcome handed to the caller.

Key Classes:
    - Role / Pass: Question or answer rendering
    - RenderJob: One (record, role, ordinal) unit of work
    - PageImage: One rasterized page
    - Cursor: (pass, index) position of the driver loop
    - GenerationState: Assembler state machine states
    - GenerationOutcome: Result delivered to the completion callback
    - PageEntry: Ledger entry for a page placed in the document

Dependencies:
    - dataclasses (std)
    - enum (std)
    - question_bank.core.models: QuestionRecord

Used By:
    - worksheet.renderer: Consumes RenderJob, produces PageImage
    - worksheet.document: Records PageEntry values
    - worksheet.assembler: Drives Cursor and GenerationState
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from question_bank.core.models import QuestionRecord


class Role(Enum):
    """What part of a record a page shows."""

    QUESTION = "question"
    ANSWER = "answer"

    @property
    def label(self) -> str:
        """Title word shown on rendered pages."""
        return "Question" if self is Role.QUESTION else "Answer"


class Pass(Enum):
    """One sweep over the record list."""

    QUESTIONS = "questions"
    ANSWERS = "answers"

    @property
    def role(self) -> Role:
        return Role.QUESTION if self is Pass.QUESTIONS else Role.ANSWER

    @property
    def heading(self) -> str:
        """Section heading printed on the pass's title page."""
        return "Questions" if self is Pass.QUESTIONS else "Answers"


@dataclass(frozen=True)
class RenderJob:
    """
    Render one record in one role (immutable).

    Attributes:
        record: Record to render
        role: Question or answer
        ordinal: 1-based list position shown in the page title

    Example:
        >>> job = RenderJob(record, Role.ANSWER, ordinal=3)
        >>> job.title
        'Answer 3'
    """

    record: QuestionRecord
    role: Role
    ordinal: int

    def __post_init__(self) -> None:
        if self.ordinal < 1:
            raise ValueError(f"ordinal is 1-based: {self.ordinal}")

    @property
    def title(self) -> str:
        return f"{self.role.label} {self.ordinal}"

    @property
    def label(self) -> str:
        """Short page label used in logs and the page ledger ("Q1", "A3")."""
        return f"{self.role.label[0]}{self.ordinal}"

    @property
    def body(self) -> str:
        """Markup for this role; empty string when the answer is absent."""
        if self.role is Role.QUESTION:
            return self.record.question_body
        return self.record.markscheme_body or ""


@dataclass(frozen=True)
class PageImage:
    """
    Encoded bitmap for one rendered page (immutable).

    Attributes:
        data: Encoded image bytes
        width: Pixel width
        height: Pixel height
        format: Encoding name understood by Pillow
    """

    data: bytes
    width: int
    height: int
    format: str = "JPEG"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"PageImage must have positive size: {self.width}x{self.height}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class Cursor:
    """
    Driver position (immutable).

    ``pass_`` moves QUESTIONS -> ANSWERS exactly once; ``index`` resets
    to 0 on that move.
    """

    pass_: Pass = Pass.QUESTIONS
    index: int = 0

    def advance(self) -> Cursor:
        return Cursor(self.pass_, self.index + 1)

    def next_pass(self) -> Cursor:
        if self.pass_ is Pass.ANSWERS:
            raise ValueError("Answers pass is the last pass")
        return Cursor(Pass.ANSWERS, 0)

    def exhausted(self, total: int) -> bool:
        return self.index >= total


class GenerationState(Enum):
    """States of the assembler state machine."""

    RENDERING_QUESTION_TITLE_PAGE = "rendering_question_title_page"
    RENDERING_QUESTION_PAGES = "rendering_question_pages"
    RENDERING_ANSWER_TITLE_PAGE = "rendering_answer_title_page"
    RENDERING_ANSWER_PAGES = "rendering_answer_pages"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationState.DONE, GenerationState.FAILED, GenerationState.CANCELLED)


class Outcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GenerationOutcome:
    """
    Result handed to the completion callback, exactly once per run.

    Attributes:
        status: Success, failure or cancellation
        output_path: Delivered file (success only)
        error: Exception that ended the run (failure only)
        page_count: Pages in the delivered document (0 unless success)
        pages: Ledger of the delivered pages, in order (empty unless success)
    """

    status: Outcome
    output_path: Optional[Path] = None
    error: Optional[BaseException] = None
    page_count: int = 0
    pages: Tuple[PageEntry, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is Outcome.SUCCESS


class PageKind(Enum):
    TITLE = "title"
    CONTENT = "content"


@dataclass(frozen=True)
class PageEntry:
    """One page placed in the document, in order."""

    kind: PageKind
    label: str
