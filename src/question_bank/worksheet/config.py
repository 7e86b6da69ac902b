"""
Module: worksheet.config

Purpose:
    Configuration dataclass for worksheet generation. Immutable
    configuration with validation on construction.

Key Classes:
    - WorksheetConfig: Page format, rasterization and output settings

Dependencies:
    - reportlab: Page size constants
    - dataclasses (std)

Used By:
    - worksheet.renderer: Content width, settle interval, scale, quality
    - worksheet.document: Page size, margins, heading font
    - worksheet.assembler: Output filename
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from reportlab.lib.pagesizes import A4


DEFAULT_FILENAME = "worksheet.pdf"

# Fixed wait before capture so web fonts and math markup finish layout.
# There is no layout-stable signal; a slow font server can still beat it.
DEFAULT_SETTLE_SECONDS = 1.5


@dataclass(frozen=True)
class WorksheetConfig:
    """
    Configuration for one worksheet run (immutable).

    Attributes:
        page_size: Output page (width, height) in points, portrait A4
        top_margin_pt: Top edge of every content image, from page top
        title_baseline_pt: Baseline of section headings, from page top
        title_font: ReportLab font name for section headings
        title_font_size: Section heading size in points
        title_color: Section heading RGB colour (0-255)
        content_width_px: Logical width of the rendered page fragment
        scale: Rasterization oversampling factor
        settle_seconds: Wait between mounting a fragment and capturing it
        jpeg_quality: Page image encoding quality (1-100)
        filename: Output file name for the finished worksheet

    Example:
        >>> config = WorksheetConfig(settle_seconds=0)
        >>> config.page_width
        595.2755905511812
    """

    page_size: Tuple[float, float] = A4
    top_margin_pt: float = 40
    title_baseline_pt: float = 60
    title_font: str = "Helvetica-Bold"
    title_font_size: int = 24
    title_color: Tuple[int, int, int] = (17, 24, 39)
    content_width_px: int = 800
    scale: float = 3.0
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    jpeg_quality: int = 100
    filename: str = DEFAULT_FILENAME

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        width, height = self.page_size
        if width <= 0 or height <= 0:
            raise ValueError(f"page_size must be positive: {self.page_size}")
        if not 0 <= self.top_margin_pt < height:
            raise ValueError(f"top_margin_pt must lie within the page: {self.top_margin_pt}")
        if self.content_width_px <= 0:
            raise ValueError(f"content_width_px must be positive: {self.content_width_px}")
        if self.scale <= 0:
            raise ValueError(f"scale must be positive: {self.scale}")
        if self.settle_seconds < 0:
            raise ValueError(f"settle_seconds must be non-negative: {self.settle_seconds}")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be 1-100: {self.jpeg_quality}")
        if not self.filename or "/" in self.filename or "\\" in self.filename:
            raise ValueError(f"filename must be a bare file name: {self.filename!r}")

    @property
    def page_width(self) -> float:
        """Page width in points."""
        return self.page_size[0]

    @property
    def page_height(self) -> float:
        """Page height in points."""
        return self.page_size[1]
