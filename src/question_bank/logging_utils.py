"""
Logging utilities: console setup for the CLI and queue capture for the GUI.
"""
from __future__ import annotations

import logging
import sys
from queue import Queue
from typing import Optional

PACKAGE_LOGGER = "question_bank"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class QueueLogHandler(logging.Handler):
    """
    A logging handler that sends (message, level) pairs to a queue.

    Used to capture logs from the worksheet generator and display them in
    the progress dialog.
    """

    def __init__(self, log_queue: Queue, level: int = logging.INFO):
        super().__init__(level)
        self.log_queue = log_queue
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            level = record.levelname
            # Map DEBUG to INFO for GUI display
            if level == "DEBUG":
                level = "INFO"
            self.log_queue.put((message, level))
        except Exception:
            self.handleError(record)


def attach_queue_handler(log_queue: Queue, logger_name: Optional[str] = PACKAGE_LOGGER) -> QueueLogHandler:
    """
    Attach a QueueLogHandler to the specified logger (or root logger if None).

    Args:
        log_queue: Queue to send log messages to.
        logger_name: Name of logger to attach to. None = root logger.

    Returns:
        The attached handler (for later removal).
    """
    logger = logging.getLogger(logger_name)
    handler = QueueLogHandler(log_queue)
    logger.addHandler(handler)
    if logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)
    return handler


def detach_queue_handler(handler: QueueLogHandler, logger_name: Optional[str] = PACKAGE_LOGGER) -> None:
    """
    Remove a QueueLogHandler from the specified logger.

    Args:
        handler: The handler to remove.
        logger_name: Name of logger to detach from. None = root logger.
    """
    logger = logging.getLogger(logger_name)
    logger.removeHandler(handler)


def configure_logging(verbose: bool = False) -> None:
    """
    Send package logs to stderr for command-line use.

    INFO by default, DEBUG with ``verbose``. Third-party loggers stay at
    WARNING so browser and font chatter does not drown the run log.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.WARNING)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
