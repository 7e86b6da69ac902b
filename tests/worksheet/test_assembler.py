"""
Tests for the worksheet assembler state machine.

Runs against the in-memory rasterizer; the typesetter is real unless a
test needs it to fail.
"""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from pypdf import PdfReader

from question_bank.worksheet import (
    FileDelivery,
    GenerationState,
    Outcome,
    PageKind,
    PageRenderer,
    Pass,
    WorksheetAssembler,
    WorksheetError,
    generate_worksheet,
)
from question_bank.worksheet.errors import FinalizationError, PageRenderError, RasterizationError
from question_bank.worksheet.typesetter import MathTypesetter

from conftest import FakeRasterizer, make_record


def _labels(outcome):
    return [entry.label for entry in outcome.pages]


def _pdf_page_count(path):
    return len(PdfReader(io.BytesIO(path.read_bytes())).pages)


def _assembler(records, surface, config, output_dir, **kwargs):
    return WorksheetAssembler(
        records,
        PageRenderer(surface, config),
        FileDelivery(output_dir),
        config=config,
        **kwargs,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Page order
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_when_all_records_have_answers_then_titles_questions_answers(fast_config, tmp_path):
    records = [make_record(i) for i in range(3)]
    surface = FakeRasterizer()

    outcome = await _assembler(records, surface, fast_config, tmp_path).run()

    assert outcome.status is Outcome.SUCCESS
    assert _labels(outcome) == ["Questions", "Q1", "Q2", "Q3", "Answers", "A1", "A2", "A3"]
    assert outcome.page_count == 8
    assert outcome.output_path == tmp_path / "worksheet.pdf"
    assert _pdf_page_count(outcome.output_path) == 8


@pytest.mark.asyncio
async def test_run_when_middle_record_has_no_answer_then_answer_skipped(fast_config, tmp_path):
    records = [make_record(0), make_record(1, markscheme=None), make_record(2)]
    surface = FakeRasterizer()

    outcome = await _assembler(records, surface, fast_config, tmp_path).run()

    # Answer pages keep the list position of their record
    assert _labels(outcome) == ["Questions", "Q1", "Q2", "Q3", "Answers", "A1", "A3"]
    assert _pdf_page_count(outcome.output_path) == 7
    assert surface.captures == 5


@pytest.mark.asyncio
async def test_run_when_first_record_has_no_answer_then_answers_title_still_first(fast_config, tmp_path):
    records = [make_record(0, markscheme="  "), make_record(1)]

    outcome = await _assembler(records, FakeRasterizer(), fast_config, tmp_path).run()

    assert _labels(outcome) == ["Questions", "Q1", "Q2", "Answers", "A2"]


@pytest.mark.asyncio
async def test_run_when_no_record_has_answer_then_answers_title_page_alone(fast_config, tmp_path):
    records = [make_record(0, markscheme=None), make_record(1, markscheme=None)]

    outcome = await _assembler(records, FakeRasterizer(), fast_config, tmp_path).run()

    assert _labels(outcome) == ["Questions", "Q1", "Q2", "Answers"]
    assert outcome.pages[-1].kind is PageKind.TITLE


@pytest.mark.asyncio
async def test_run_when_two_records_second_without_answer_then_five_pages(fast_config, tmp_path):
    records = [make_record(0), make_record(1, markscheme=None)]

    outcome = await _assembler(records, FakeRasterizer(), fast_config, tmp_path).run()

    assert _labels(outcome) == ["Questions", "Q1", "Q2", "Answers", "A1"]
    assert _pdf_page_count(outcome.output_path) == 5


@pytest.mark.asyncio
async def test_run_when_rendering_then_jobs_are_sequential(fast_config, tmp_path):
    records = [make_record(i) for i in range(2)]
    surface = FakeRasterizer()
    in_flight = []

    original_mount = surface.mount

    async def tracking_mount(html):
        in_flight.append(html)
        assert len(surface.mounted) == surface.captures
        await original_mount(html)

    surface.mount = tracking_mount

    await _assembler(records, surface, fast_config, tmp_path).run()

    assert len(in_flight) == 4
    assert "Question 1" in in_flight[0]
    assert "Question 2" in in_flight[1]
    assert "Answer 1" in in_flight[2]
    assert "Answer 2" in in_flight[3]


@pytest.mark.asyncio
async def test_run_when_progress_callback_then_reports_each_job(fast_config, tmp_path):
    records = [make_record(0), make_record(1, markscheme=None)]
    progress = MagicMock()

    await _assembler(records, FakeRasterizer(), fast_config, tmp_path, on_progress=progress).run()

    assert [c.args for c in progress.call_args_list] == [
        (Pass.QUESTIONS, 0, 2),
        (Pass.QUESTIONS, 1, 2),
        (Pass.ANSWERS, 0, 2),
        (Pass.ANSWERS, 1, 2),
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Edge cases
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_when_no_records_then_delivers_empty_document(fast_config, tmp_path):
    surface = FakeRasterizer()
    completed = MagicMock()

    outcome = await _assembler([], surface, fast_config, tmp_path, on_complete=completed).run()

    assert outcome.status is Outcome.SUCCESS
    assert outcome.page_count == 0
    assert outcome.output_path.exists()
    assert surface.mounted == []
    completed.assert_called_once_with(outcome)


def test_init_when_duplicate_ids_then_raises(fast_config, tmp_path):
    with pytest.raises(ValueError):
        _assembler([make_record(1), make_record(1)], FakeRasterizer(), fast_config, tmp_path)


def test_init_when_records_then_starts_at_questions_title(fast_config, tmp_path):
    assembler = _assembler([make_record(0)], FakeRasterizer(), fast_config, tmp_path)

    assert assembler.state is GenerationState.RENDERING_QUESTION_TITLE_PAGE
    assert assembler.cursor.pass_ is Pass.QUESTIONS
    assert assembler.cursor.index == 0


@pytest.mark.asyncio
async def test_run_when_called_twice_then_raises(fast_config, tmp_path):
    assembler = _assembler([make_record(0)], FakeRasterizer(), fast_config, tmp_path)
    await assembler.run()

    with pytest.raises(WorksheetError, match="single-use"):
        await assembler.run()


@pytest.mark.asyncio
async def test_run_when_math_fails_then_page_still_emitted(fast_config, tmp_path, caplog):
    records = [
        make_record(0, question_body="<p><math><munder><mi>x</mi><mi>y</mi></munder></math></p>"),
    ]
    surface = FakeRasterizer()
    typesetter = MagicMock(spec=MathTypesetter)
    assembler = WorksheetAssembler(
        records,
        PageRenderer(surface, fast_config, typesetter),
        FileDelivery(tmp_path),
        config=fast_config,
    )

    outcome = await assembler.run()

    assert outcome.status is Outcome.SUCCESS
    assert "Q1" in _labels(outcome)
    assert "<munder>" in surface.mounted[0]
    assert "untranslated" in caplog.text


# ─────────────────────────────────────────────────────────────────────────────
# Failure
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_when_third_capture_fails_then_failed_and_nothing_delivered(fast_config, tmp_path):
    records = [make_record(i) for i in range(5)]
    surface = FakeRasterizer(fail_on='data-job="Q3"')
    completed = MagicMock()
    assembler = _assembler(records, surface, fast_config, tmp_path, on_complete=completed)

    outcome = await assembler.run()

    assert outcome.status is Outcome.FAILED
    assert isinstance(outcome.error, PageRenderError)
    assert outcome.output_path is None
    assert assembler.state is GenerationState.FAILED
    assert surface.captures == 2
    assert not (tmp_path / "worksheet.pdf").exists()
    completed.assert_called_once_with(outcome)


@pytest.mark.asyncio
async def test_run_when_delivery_fails_then_finalization_error(fast_config, tmp_path):
    deliver = MagicMock(side_effect=OSError("read-only"))
    assembler = WorksheetAssembler(
        [make_record(0)],
        PageRenderer(FakeRasterizer(), fast_config),
        deliver,
        config=fast_config,
    )

    outcome = await assembler.run()

    assert outcome.status is Outcome.FAILED
    assert isinstance(outcome.error, FinalizationError)
    deliver.assert_called_once()
    assert deliver.call_args[0][1] == "worksheet.pdf"


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_when_mid_run_then_cancelled_and_nothing_delivered(fast_config, tmp_path):
    records = [make_record(i) for i in range(3)]
    surface = FakeRasterizer(block_on='data-job="Q2"')
    completed = MagicMock()
    assembler = _assembler(records, surface, fast_config, tmp_path, on_complete=completed)

    run = asyncio.ensure_future(assembler.run())
    while surface.blocked is None or not surface.blocked.is_set():
        await asyncio.sleep(0)

    assembler.cancel()
    assembler.cancel()
    outcome = await run

    assert outcome.status is Outcome.CANCELLED
    assert assembler.state is GenerationState.CANCELLED
    assert not (tmp_path / "worksheet.pdf").exists()
    assert surface.captures == 1
    completed.assert_called_once_with(outcome)


@pytest.mark.asyncio
async def test_cancel_when_before_run_then_no_jobs_started(fast_config, tmp_path):
    surface = FakeRasterizer()
    assembler = _assembler([make_record(0)], surface, fast_config, tmp_path)

    assembler.cancel()
    outcome = await assembler.run()

    assert outcome.status is Outcome.CANCELLED
    assert surface.mounted == []


@pytest.mark.asyncio
async def test_cancel_when_already_done_then_no_effect(fast_config, tmp_path):
    assembler = _assembler([make_record(0)], FakeRasterizer(), fast_config, tmp_path)
    outcome = await assembler.run()

    assembler.cancel()

    assert assembler.state is GenerationState.DONE
    assert assembler.outcome is outcome


@pytest.mark.asyncio
async def test_run_when_awaiting_task_cancelled_then_notifies_and_propagates(fast_config, tmp_path):
    surface = FakeRasterizer(block_on='data-job="Q1"')
    completed = MagicMock()
    assembler = _assembler([make_record(0)], surface, fast_config, tmp_path, on_complete=completed)

    run = asyncio.ensure_future(assembler.run())
    while surface.blocked is None or not surface.blocked.is_set():
        await asyncio.sleep(0)
    run.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run
    assert completed.call_args[0][0].status is Outcome.CANCELLED
    assert not (tmp_path / "worksheet.pdf").exists()


# ─────────────────────────────────────────────────────────────────────────────
# generate_worksheet
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_generate_worksheet_when_surface_given_then_opens_and_closes_it(fast_config, tmp_path):
    surface = FakeRasterizer()
    ready = MagicMock()

    outcome = await generate_worksheet(
        [make_record(0)], tmp_path / "out", config=fast_config, rasterizer=surface, on_ready=ready,
    )

    assert outcome.succeeded
    assert outcome.output_path == tmp_path / "out" / "worksheet.pdf"
    assert surface.opened and surface.closed
    assert isinstance(ready.call_args[0][0], WorksheetAssembler)


@pytest.mark.asyncio
async def test_generate_worksheet_when_no_records_then_surface_not_opened(fast_config, tmp_path):
    surface = FakeRasterizer()

    outcome = await generate_worksheet([], tmp_path, config=fast_config, rasterizer=surface)

    assert outcome.succeeded
    assert not surface.opened


@pytest.mark.asyncio
async def test_generate_worksheet_when_surface_fails_to_open_then_failed_outcome(fast_config, tmp_path):
    surface = FakeRasterizer()
    surface.open = AsyncMock(side_effect=RasterizationError("Could not start chromium: executable missing"))
    completed = MagicMock()

    outcome = await generate_worksheet(
        [make_record(0)], tmp_path, config=fast_config, rasterizer=surface, on_complete=completed,
    )

    assert outcome.status is Outcome.FAILED
    assert isinstance(outcome.error, RasterizationError)
    completed.assert_called_once_with(outcome)
    assert surface.mounted == []
    assert not (tmp_path / "worksheet.pdf").exists()


@pytest.mark.asyncio
async def test_generate_worksheet_when_duplicate_ids_then_raises_before_opening_surface(fast_config, tmp_path):
    surface = FakeRasterizer()

    with pytest.raises(ValueError, match="Duplicate"):
        await generate_worksheet(
            [make_record(1), make_record(1)], tmp_path, config=fast_config, rasterizer=surface,
        )

    assert not surface.opened


@pytest.mark.asyncio
async def test_fail_when_cancel_requested_then_reports_cancelled(fast_config, tmp_path):
    completed = MagicMock()
    assembler = _assembler([make_record(0)], FakeRasterizer(), fast_config, tmp_path, on_complete=completed)

    assembler.cancel()
    outcome = assembler.fail(RasterizationError("no browser"))

    assert outcome.status is Outcome.CANCELLED
    assert assembler.state is GenerationState.CANCELLED
    completed.assert_called_once_with(outcome)
    with pytest.raises(WorksheetError, match="single-use"):
        await assembler.run()
