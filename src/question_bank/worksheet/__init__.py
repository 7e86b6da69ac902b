"""
Module: worksheet

Purpose:
    Worksheet generation pipeline: renders each selected question (then
    each answer) to a page image on an off-screen browser surface and
    assembles the images into one PDF with section title pages.

Key Functions:
    - generate_worksheet(): Main entry point for one run
    - normalize_math_markup(): Replace embedded MathML with typeset math

Key Classes:
    - WorksheetConfig: Page format and rendering settings
    - WorksheetAssembler: Single-use run with cancel support
    - PageRenderer: Job -> PageImage
    - Rasterizer / PlaywrightRasterizer: Off-screen render surface

Dependencies:
    - reportlab: PDF generation
    - PIL: Image encoding
    - playwright: Headless browser layout and capture
    - matplotlib: Math typesetting
    - beautifulsoup4: Markup parsing

Used By:
    - question_bank.cli: ``worksheet`` command
    - question_bank.gui: Progress dialog
"""

from .config import WorksheetConfig
from .errors import (
    WorksheetError,
    PageRenderError,
    MountTargetMissingError,
    RasterizationError,
    FinalizationError,
    MathTranslationError,
)
from .models import (
    Role,
    Pass,
    RenderJob,
    PageImage,
    Cursor,
    GenerationState,
    GenerationOutcome,
    Outcome,
    PageKind,
    PageEntry,
)
from .normalizer import normalize_math_markup, mathml_to_tex
from .rasterizer import Rasterizer, PlaywrightRasterizer
from .renderer import PageRenderer
from .document import WorksheetDocument
from .delivery import FileDelivery
from .assembler import WorksheetAssembler, generate_worksheet

__all__ = [
    # Config
    "WorksheetConfig",
    # Errors
    "WorksheetError",
    "PageRenderError",
    "MountTargetMissingError",
    "RasterizationError",
    "FinalizationError",
    "MathTranslationError",
    # Models
    "Role",
    "Pass",
    "RenderJob",
    "PageImage",
    "Cursor",
    "GenerationState",
    "GenerationOutcome",
    "Outcome",
    "PageKind",
    "PageEntry",
    # Pipeline
    "normalize_math_markup",
    "mathml_to_tex",
    "Rasterizer",
    "PlaywrightRasterizer",
    "PageRenderer",
    "WorksheetDocument",
    "FileDelivery",
    "WorksheetAssembler",
    "generate_worksheet",
]
