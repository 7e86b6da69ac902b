"""Tests for log capture and console setup."""

import logging
import queue

from question_bank.logging_utils import (
    QueueLogHandler,
    attach_queue_handler,
    configure_logging,
    detach_queue_handler,
)


def test_queue_handler_when_attached_then_receives_package_logs():
    log_queue = queue.Queue()
    handler = attach_queue_handler(log_queue)
    try:
        logging.getLogger("question_bank.worksheet.assembler").info("Worksheet finalized with 3 pages")
    finally:
        detach_queue_handler(handler)

    assert log_queue.get_nowait() == ("Worksheet finalized with 3 pages", "INFO")


def test_queue_handler_when_detached_then_stops_receiving():
    log_queue = queue.Queue()
    handler = attach_queue_handler(log_queue)
    detach_queue_handler(handler)

    logging.getLogger("question_bank").warning("after detach")

    assert log_queue.empty()


def test_queue_handler_maps_debug_to_info():
    log_queue = queue.Queue()
    handler = QueueLogHandler(log_queue, level=logging.DEBUG)
    record = logging.LogRecord("question_bank", logging.DEBUG, __file__, 1, "detail", None, None)

    handler.emit(record)

    assert log_queue.get_nowait() == ("detail", "INFO")


def test_configure_logging_when_verbose_then_package_at_debug():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    package = logging.getLogger("question_bank")
    saved_package_level = package.level
    try:
        configure_logging(verbose=True)

        assert package.level == logging.DEBUG
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
        package.setLevel(saved_package_level)
