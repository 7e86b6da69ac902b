"""
Modal progress dialog for worksheet generation.

Runs one worksheet assembler on a worker thread with its own asyncio
loop and reports progress back to the UI thread through signals.
"""
from __future__ import annotations

import asyncio
import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from PySide6.QtCore import QTimer, Signal
from PySide6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
)

from question_bank.core.models import QuestionRecord
from question_bank.logging_utils import attach_queue_handler, detach_queue_handler
from question_bank.worksheet import (
    GenerationOutcome,
    Outcome,
    Pass,
    Rasterizer,
    WorksheetAssembler,
    WorksheetConfig,
    generate_worksheet,
)

logger = logging.getLogger(__name__)


class WorksheetProgressDialog(QDialog):
    """
    Shows "Processing question i of N" while a worksheet is generated.

    Cancel aborts the run from the UI thread; the worker keeps ownership
    of the assembler and its event loop.
    """

    # Emitted once on the UI thread when the run reaches a terminal state
    finished_with = Signal(object)

    # Worker thread -> UI thread
    _progress_changed = Signal(int, int, int)
    _run_finished = Signal(object)

    def __init__(
        self,
        records: Sequence[QuestionRecord],
        output_dir: Union[str, Path],
        config: Optional[WorksheetConfig] = None,
        rasterizer_factory: Optional[Callable[[], Rasterizer]] = None,
        log_queue: Optional[queue.Queue] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.records = list(records)
        self.output_dir = Path(output_dir)
        self.config = config or WorksheetConfig()
        self.rasterizer_factory = rasterizer_factory
        self.log_queue = log_queue or queue.Queue()

        self.outcome: Optional[GenerationOutcome] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._assembler: Optional[WorksheetAssembler] = None
        self._cancel_pending = False

        self.setWindowTitle("Generating Worksheet")
        self.setModal(True)
        self.setMinimumWidth(420)
        self._build_ui()

        self._progress_changed.connect(self._on_progress)
        self._run_finished.connect(self._on_run_finished)

        self.log_timer = QTimer(self)
        self.log_timer.timeout.connect(self._drain_log_queue)

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)

        total = len(self.records)
        self.status_label = QLabel(f"Processing question 1 of {total}" if total else "Saving worksheet")
        layout.addWidget(self.status_label)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, max(1, 2 * total))
        self.progress_bar.setValue(0)
        layout.addWidget(self.progress_bar)

        self.log_view = QPlainTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumBlockCount(500)
        layout.addWidget(self.log_view)

        buttons = QHBoxLayout()
        buttons.addStretch()
        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.clicked.connect(self.cancel)
        buttons.addWidget(self.cancel_btn)
        layout.addLayout(buttons)

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self.outcome is None

    def start(self) -> None:
        """Start generation on a worker thread (once)."""
        if self._thread is not None:
            raise RuntimeError("Worksheet generation already started")
        self.log_timer.start(100)
        self._thread = threading.Thread(target=self._run_generation, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Request cancellation. Safe to call repeatedly."""
        if self.outcome is not None:
            return
        self.cancel_btn.setEnabled(False)
        self.status_label.setText("Cancelling...")
        with self._lock:
            if self._assembler is None or self._loop is None:
                self._cancel_pending = True
                return
            # The worker clears _loop under this lock before closing it
            try:
                self._loop.call_soon_threadsafe(self._assembler.cancel)
            except RuntimeError as e:
                logger.debug(f"Cancel arrived after the run ended: {e}")

    def reject(self) -> None:
        # Escape / window close while running means cancel; close on completion.
        if self.is_running:
            self.cancel()
            return
        super().reject()

    # ─────────────────────────────────────────────────────────────────────────
    # Worker thread
    # ─────────────────────────────────────────────────────────────────────────

    def _run_generation(self) -> None:
        loop = asyncio.new_event_loop()
        handler = attach_queue_handler(self.log_queue)
        outcome: Optional[GenerationOutcome] = None
        try:
            asyncio.set_event_loop(loop)
            rasterizer = self.rasterizer_factory() if self.rasterizer_factory else None
            outcome = loop.run_until_complete(
                generate_worksheet(
                    self.records,
                    self.output_dir,
                    config=self.config,
                    rasterizer=rasterizer,
                    on_progress=self._report_progress,
                    on_ready=lambda assembler: self._attach_assembler(loop, assembler),
                )
            )
        except Exception as e:
            # Surface setup failures (e.g. browser launch) the same way as run failures
            logger.error(f"Worksheet generation failed: {e}")
            outcome = GenerationOutcome(status=Outcome.FAILED, error=e)
        finally:
            detach_queue_handler(handler)
            with self._lock:
                self._loop = None
                self._assembler = None
            asyncio.set_event_loop(None)
            loop.close()
            self._run_finished.emit(outcome)

    def _attach_assembler(self, loop: asyncio.AbstractEventLoop, assembler: WorksheetAssembler) -> None:
        with self._lock:
            self._loop = loop
            self._assembler = assembler
            cancel_now = self._cancel_pending
        if cancel_now:
            assembler.cancel()

    def _report_progress(self, pass_: Pass, index: int, total: int) -> None:
        offset = 0 if pass_ is Pass.QUESTIONS else total
        self._progress_changed.emit(index, total, offset)

    # ─────────────────────────────────────────────────────────────────────────
    # UI thread
    # ─────────────────────────────────────────────────────────────────────────

    def _on_progress(self, index: int, total: int, offset: int) -> None:
        if self.cancel_btn.isEnabled():
            self.status_label.setText(f"Processing question {index + 1} of {total}")
        self.progress_bar.setValue(offset + index)

    def _on_run_finished(self, outcome: GenerationOutcome) -> None:
        self.log_timer.stop()
        self._drain_log_queue()
        self.outcome = outcome
        self.cancel_btn.setEnabled(False)
        self.finished_with.emit(outcome)

        if outcome.status is Outcome.SUCCESS:
            self.progress_bar.setValue(self.progress_bar.maximum())
            self.status_label.setText(f"Saved {outcome.output_path}")
            self.accept()
        elif outcome.status is Outcome.CANCELLED:
            self.status_label.setText("Cancelled")
            super().reject()
        else:
            msg = str(outcome.error) if outcome.error else "Unknown error during generation."
            self.status_label.setText("Failed")
            QMessageBox.critical(
                self,
                "Generation Failed",
                f"Failed to generate worksheet:\n\n{msg}",
            )
            super().reject()

    def _drain_log_queue(self) -> None:
        while True:
            try:
                msg = self.log_queue.get_nowait()
                if isinstance(msg, tuple) and len(msg) == 2:
                    text, level = msg
                    self.log_view.appendPlainText(f"[{level}] {text}")
                else:
                    self.log_view.appendPlainText(str(msg))
                self.log_queue.task_done()
            except queue.Empty:
                break
