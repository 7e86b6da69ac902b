"""
Core Models Package

Immutable data models shared by the worksheet generator, the CSV
importer and the remote store client.
"""

from .records import (
    QuestionRecord,
    validate_unique_ids,
    REQUIRED_COLUMNS,
    SERVER_COLUMNS,
)

__all__ = [
    "QuestionRecord",
    "validate_unique_ids",
    "REQUIRED_COLUMNS",
    "SERVER_COLUMNS",
]
