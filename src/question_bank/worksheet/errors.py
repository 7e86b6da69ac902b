"""
Module: worksheet.errors

Purpose:
    Exception hierarchy for worksheet generation. Every fatal condition
    in a run is a WorksheetError; per-element math failures use
    MathTranslationError and never leave the normalizer.

Used By:
    - worksheet.rasterizer, worksheet.renderer, worksheet.assembler
    - worksheet.normalizer, worksheet.typesetter
"""

from __future__ import annotations


class WorksheetError(Exception):
    """Error during worksheet generation."""
    pass


class PageRenderError(WorksheetError):
    """A single page could not be rendered; fatal to the run."""
    pass


class MountTargetMissingError(PageRenderError):
    """The off-screen mount target has no content root to capture."""
    pass


class RasterizationError(PageRenderError):
    """The rasterization pass failed."""
    pass


class FinalizationError(WorksheetError):
    """Serializing or delivering the finished document failed."""
    pass


class MathTranslationError(Exception):
    """An embedded math element could not be translated or typeset."""
    pass
