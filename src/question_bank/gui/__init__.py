"""Desktop (PySide6) widgets for the question bank console."""

from .progress_dialog import WorksheetProgressDialog

__all__ = ["WorksheetProgressDialog"]
