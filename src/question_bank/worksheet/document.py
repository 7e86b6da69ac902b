"""
Module: worksheet.document

Purpose:
    The in-progress worksheet PDF owned by one generation run. Wraps a
    ReportLab canvas writing to memory and keeps an ordered ledger of
    the pages placed so far.

Key Classes:
    - WorksheetDocument: Title pages, image pages, finalization

Dependencies:
    - reportlab: PDF generation
    - worksheet.models: PageImage, PageEntry

Used By:
    - worksheet.assembler: Created lazily, finalized once
"""

from __future__ import annotations

import io
import logging
from typing import List

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .config import WorksheetConfig
from .models import PageEntry, PageImage, PageKind

logger = logging.getLogger(__name__)


class WorksheetDocument:
    """
    Multi-page worksheet under construction.

    Every ``add_*`` call produces exactly one page; pages are emitted in
    call order. After ``to_bytes`` or ``discard`` the document is closed.

    Example:
        >>> doc = WorksheetDocument(WorksheetConfig())
        >>> doc.add_title_page("Questions")
        >>> doc.add_image_page(page_image, "Q1")
        >>> pdf_bytes = doc.to_bytes()
    """

    def __init__(self, config: WorksheetConfig) -> None:
        self.config = config
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pagesize=config.page_size)
        self._canvas.setTitle("Worksheet")
        self._pages: List[PageEntry] = []
        self._closed = False

    @property
    def pages(self) -> tuple[PageEntry, ...]:
        """Ledger of placed pages, in order."""
        return tuple(self._pages)

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def closed(self) -> bool:
        return self._closed

    def add_title_page(self, heading: str) -> None:
        """
        Add a page holding only a centered section heading.

        Args:
            heading: "Questions" or "Answers"
        """
        self._check_open()
        c = self._canvas
        r, g, b = self.config.title_color
        c.saveState()
        c.setFont(self.config.title_font, self.config.title_font_size)
        c.setFillColorRGB(r / 255, g / 255, b / 255)
        baseline = self.config.page_height - self.config.title_baseline_pt
        c.drawCentredString(self.config.page_width / 2, baseline, heading)
        c.restoreState()
        c.showPage()
        self._pages.append(PageEntry(PageKind.TITLE, heading))

    def add_image_page(self, image: PageImage, label: str) -> None:
        """
        Add a page holding one rendered image.

        The image is scaled to fit the printable area below the top margin
        (aspect ratio kept), centered horizontally, top edge at the margin.

        Args:
            image: Rendered page image
            label: Ledger label like "Q1"
        """
        self._check_open()
        x, y, width, height = self.image_placement(image)
        reader = ImageReader(io.BytesIO(image.data))
        self._canvas.drawImage(reader, x, y, width=width, height=height)
        self._canvas.showPage()
        self._pages.append(PageEntry(PageKind.CONTENT, label))

    def image_placement(self, image: PageImage) -> tuple[float, float, float, float]:
        """
        Compute (x, y, width, height) in points for an image page.

        ``y`` is ReportLab's bottom-up coordinate of the image's lower edge.
        """
        page_w, page_h = self.config.page_width, self.config.page_height
        printable_h = page_h - self.config.top_margin_pt
        ratio = min(page_w / image.width, printable_h / image.height)
        width = image.width * ratio
        height = image.height * ratio
        x = (page_w - width) / 2
        y = page_h - self.config.top_margin_pt - height
        return x, y, width, height

    def to_bytes(self) -> bytes:
        """
        Finalize and serialize the document. Callable once.

        A document without pages is written with one blank page so the
        output is still a readable PDF; ``page_count`` stays 0.

        Returns:
            PDF bytes

        Raises:
            RuntimeError: If the document was already finalized or discarded
        """
        self._check_open()
        if not self._pages:
            logger.warning("Empty worksheet, writing a single blank page")
            self._canvas.showPage()
        self._canvas.save()
        self._closed = True
        data = self._buffer.getvalue()
        logger.debug(f"Serialized worksheet: {self.page_count} pages, {len(data)} bytes")
        return data

    def discard(self) -> None:
        """Drop everything placed so far. Safe to call more than once."""
        self._closed = True
        self._pages.clear()
        self._buffer = io.BytesIO()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Worksheet document is already finalized or discarded")
