"""
Question Bank Core Package

Shared data models used across the console: the question row as stored
remotely and as rendered into worksheets.
"""

from .models import QuestionRecord, validate_unique_ids

__all__ = [
    "QuestionRecord",
    "validate_unique_ids",
]
