"""
Module: worksheet.assembler

Purpose:
    Drive a worksheet run from start to finish. An explicit async loop
    steps a state machine over a (pass, index) cursor: questions title
    page, one page per question, answers title page, one page per
    record that has a markscheme, then finalization and delivery.

Key Functions:
    - generate_worksheet(): Open the default render surface and run once

Key Classes:
    - WorksheetAssembler: Single-use run with cancel support

Page order:
    [Questions][Q1]...[Qn][Answers][A_k1]...[A_km]
    Each title page stands alone; content starts on the next page.
    Answer pages keep the record's list position as their number.

Dependencies:
    - worksheet.renderer: Job -> PageImage
    - worksheet.document: PDF under construction
    - worksheet.delivery: Output of the finished file

Used By:
    - question_bank.cli: ``worksheet`` command
    - question_bank.gui: Progress dialog worker
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from question_bank.core.models import QuestionRecord, validate_unique_ids

from .config import WorksheetConfig
from .delivery import Delivery, FileDelivery
from .document import WorksheetDocument
from .errors import FinalizationError, WorksheetError
from .models import (
    Cursor,
    GenerationOutcome,
    GenerationState,
    Outcome,
    Pass,
    RenderJob,
    Role,
)
from .rasterizer import PlaywrightRasterizer, Rasterizer
from .renderer import PageRenderer
from .template import viewport_width_for

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[GenerationOutcome], None]
ProgressCallback = Callable[[Pass, int, int], None]


class WorksheetAssembler:
    """
    One worksheet generation run (single use).

    Exactly one job is in flight at a time; the cursor only advances
    after the previous page has been placed in the document.

    Attributes:
        records: Records in worksheet order
        renderer: Produces one PageImage per job
        deliver: Receives the finished PDF bytes and filename
        config: Worksheet configuration
        on_complete: Called once with the outcome
        on_progress: Called before each job with (pass, index, total)

    Example:
        >>> assembler = WorksheetAssembler(records, renderer, FileDelivery(out))
        >>> outcome = await assembler.run()
        >>> outcome.status
        <Outcome.SUCCESS: 'success'>
    """

    def __init__(
        self,
        records: Iterable[QuestionRecord],
        renderer: PageRenderer,
        deliver: Delivery,
        *,
        config: Optional[WorksheetConfig] = None,
        on_complete: Optional[CompletionCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.records = list(records)
        validate_unique_ids(self.records)
        self.renderer = renderer
        self.deliver = deliver
        self.config = config or renderer.config
        self.on_complete = on_complete
        self.on_progress = on_progress

        self._cursor = Cursor()
        self._state = (
            GenerationState.RENDERING_QUESTION_TITLE_PAGE
            if self.records
            else GenerationState.FINALIZING
        )
        self._document: Optional[WorksheetDocument] = None
        self._task: Optional[asyncio.Task] = None
        self._started = False
        self._cancel_requested = False
        self._outcome: Optional[GenerationOutcome] = None

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def cursor(self) -> Cursor:
        return self._cursor

    @property
    def outcome(self) -> Optional[GenerationOutcome]:
        return self._outcome

    @property
    def total(self) -> int:
        return len(self.records)

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    async def run(self) -> GenerationOutcome:
        """
        Run the state machine to a terminal state.

        Returns:
            The outcome also passed to ``on_complete``

        Raises:
            WorksheetError: If this instance has already been run
            asyncio.CancelledError: If the awaiting task itself was
                cancelled from outside (after discarding and notifying)
        """
        if self._started:
            raise WorksheetError("WorksheetAssembler instances are single-use")
        self._started = True

        start_time = time.perf_counter()
        logger.info(f"Starting worksheet generation for {self.total} questions")

        self._task = asyncio.ensure_future(self._drive())
        external_cancel = False
        try:
            outcome = await self._task
        except asyncio.CancelledError:
            external_cancel = not self._cancel_requested
            self._task.cancel()
            outcome = self._abort(GenerationState.CANCELLED, Outcome.CANCELLED)
            logger.info("Worksheet generation cancelled")
        except Exception as e:
            outcome = self._abort(GenerationState.FAILED, Outcome.FAILED, error=e)
            logger.error(f"Worksheet generation failed: {e}")
        finally:
            self._task = None

        if outcome.succeeded:
            elapsed = time.perf_counter() - start_time
            logger.info(f"Worksheet generation completed in {elapsed:.2f}s")

        self._complete(outcome)
        if external_cancel:
            raise asyncio.CancelledError()
        return outcome

    def fail(self, error: BaseException) -> GenerationOutcome:
        """
        Report a failure that stopped the run before it started.

        Used when the render surface cannot be opened. The outcome reaches
        ``on_complete`` exactly as a failure during ``run()`` would; a
        cancel requested in the meantime still reports ``CANCELLED``.

        Raises:
            WorksheetError: If this instance has already been run
        """
        if self._started:
            raise WorksheetError("WorksheetAssembler instances are single-use")
        self._started = True

        if self._cancel_requested:
            outcome = self._abort(GenerationState.CANCELLED, Outcome.CANCELLED)
            logger.info("Worksheet generation cancelled")
        else:
            outcome = self._abort(GenerationState.FAILED, Outcome.FAILED, error=error)
            logger.error(f"Worksheet generation failed: {error}")
        self._complete(outcome)
        return outcome

    def cancel(self) -> None:
        """
        Abort the run and discard its document.

        Synchronous and idempotent. Must be called from the event loop
        thread (use ``loop.call_soon_threadsafe`` from other threads).
        No effect once the run has reached a terminal state.
        """
        if self._state.is_terminal:
            return
        self._cancel_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    # ─────────────────────────────────────────────────────────────────────────
    # State machine
    # ─────────────────────────────────────────────────────────────────────────

    async def _drive(self) -> GenerationOutcome:
        while True:
            if self._cancel_requested:
                raise asyncio.CancelledError()

            state = self._state
            if state is GenerationState.RENDERING_QUESTION_TITLE_PAGE:
                self._add_title_page(Pass.QUESTIONS)
                self._state = GenerationState.RENDERING_QUESTION_PAGES

            elif state is GenerationState.RENDERING_QUESTION_PAGES:
                if self._cursor.exhausted(self.total):
                    self._cursor = self._cursor.next_pass()
                    self._state = GenerationState.RENDERING_ANSWER_TITLE_PAGE
                    logger.info("Questions pass complete, starting answers")
                else:
                    await self._render_current()

            elif state is GenerationState.RENDERING_ANSWER_TITLE_PAGE:
                self._add_title_page(Pass.ANSWERS)
                self._state = GenerationState.RENDERING_ANSWER_PAGES

            elif state is GenerationState.RENDERING_ANSWER_PAGES:
                if self._cursor.exhausted(self.total):
                    self._state = GenerationState.FINALIZING
                else:
                    await self._render_current()

            elif state is GenerationState.FINALIZING:
                return self._finalize()

            else:
                raise WorksheetError(f"Unexpected state {state}")

    def _document_for_write(self) -> WorksheetDocument:
        if self._document is None:
            self._document = WorksheetDocument(self.config)
        return self._document

    def _add_title_page(self, pass_: Pass) -> None:
        # A title page is always a page of its own, so the answers
        # section never shares a page with the last question.
        self._document_for_write().add_title_page(pass_.heading)
        logger.debug(f"Added {pass_.heading} title page")

    async def _render_current(self) -> None:
        pass_, index = self._cursor.pass_, self._cursor.index
        record = self.records[index]

        if self.on_progress is not None:
            self.on_progress(pass_, index, self.total)

        if pass_.role is Role.ANSWER and not record.has_markscheme:
            logger.debug(f"Skipping answer {index + 1}: record {record.id} has no markscheme")
        else:
            job = RenderJob(record=record, role=pass_.role, ordinal=index + 1)
            page = await self.renderer.render(job)
            self._document_for_write().add_image_page(page, job.label)

        self._cursor = self._cursor.advance()

    def _finalize(self) -> GenerationOutcome:
        document = self._document_for_write()
        pages = document.pages
        try:
            data = document.to_bytes()
            path = self.deliver(data, self.config.filename)
        except Exception as e:
            raise FinalizationError(f"Could not save worksheet: {e}") from e
        finally:
            self._document = None

        self._state = GenerationState.DONE
        logger.info(f"Worksheet finalized with {len(pages)} pages")
        return GenerationOutcome(
            status=Outcome.SUCCESS,
            output_path=path,
            page_count=len(pages),
            pages=pages,
        )

    def _complete(self, outcome: GenerationOutcome) -> None:
        self._outcome = outcome
        if self.on_complete is not None:
            self.on_complete(outcome)

    def _abort(
        self,
        state: GenerationState,
        status: Outcome,
        error: Optional[BaseException] = None,
    ) -> GenerationOutcome:
        if self._document is not None:
            self._document.discard()
            self._document = None
        self._state = state
        return GenerationOutcome(status=status, error=error)


async def generate_worksheet(
    records: Iterable[QuestionRecord],
    output_dir: Union[str, Path],
    *,
    config: Optional[WorksheetConfig] = None,
    rasterizer: Optional[Rasterizer] = None,
    on_complete: Optional[CompletionCallback] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_ready: Optional[Callable[[WorksheetAssembler], None]] = None,
) -> GenerationOutcome:
    """
    Generate one worksheet into ``output_dir``.

    Opens a headless-browser render surface (unless ``rasterizer`` is
    given), runs a fresh assembler and closes the surface. No surface is
    opened for an empty record list.

    Args:
        records: Records in worksheet order
        output_dir: Directory receiving ``config.filename``
        config: Worksheet configuration (defaults apply)
        rasterizer: Render surface to use instead of Playwright
        on_complete: Completion callback, called once
        on_progress: Progress callback, called before each job
        on_ready: Receives the assembler before it starts (for cancel)

    Returns:
        GenerationOutcome of the run; a surface that fails to open gives
        a FAILED outcome (also passed to ``on_complete``)

    Raises:
        ValueError: If two records share an id (no surface is opened)

    Example:
        >>> outcome = asyncio.run(generate_worksheet(records, Path("output")))
        >>> outcome.output_path
        PosixPath('output/worksheet.pdf')
    """
    config = config or WorksheetConfig()
    records = list(records)
    surface = rasterizer or PlaywrightRasterizer(
        viewport_width=viewport_width_for(config),
        scale=config.scale,
    )

    # Built before the surface opens so bad input never launches a browser
    assembler = WorksheetAssembler(
        records,
        PageRenderer(surface, config),
        FileDelivery(output_dir),
        config=config,
        on_complete=on_complete,
        on_progress=on_progress,
    )
    if on_ready is not None:
        on_ready(assembler)

    async with AsyncExitStack() as stack:
        if records:
            try:
                await stack.enter_async_context(surface)
            except Exception as e:
                return assembler.fail(e)
        return await assembler.run()
