"""
Module: worksheet.renderer

Purpose:
    Produce exactly one PageImage for a RenderJob: normalize the body's
    math, template the page, mount it on the render surface, wait for
    layout to settle, capture and JPEG-encode the result.

Key Classes:
    - PageRenderer: Async job -> PageImage

Dependencies:
    - PIL: Flattening onto white and JPEG encoding
    - worksheet.normalizer: Math markup replacement
    - worksheet.template: Page document
    - worksheet.rasterizer: Mount/capture surface

Used By:
    - worksheet.assembler: One call per content page
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional

from PIL import Image

from .config import WorksheetConfig
from .errors import PageRenderError
from .models import PageImage, RenderJob
from .normalizer import normalize_math_markup
from .rasterizer import Rasterizer
from .template import CONTENT_ROOT_SELECTOR, build_page_html
from .typesetter import MathTypesetter

logger = logging.getLogger(__name__)


def encode_page_image(image: Image.Image, quality: int) -> PageImage:
    """
    Flatten a capture onto white and encode it as JPEG.

    Args:
        image: Captured bitmap (any mode)
        quality: JPEG quality 1-100

    Returns:
        PageImage with the encoded bytes and pixel size
    """
    if image.mode in ("RGBA", "LA", "P"):
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, (255, 255, 255))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
    else:
        flattened = image.convert("RGB")

    buf = io.BytesIO()
    flattened.save(buf, format="JPEG", quality=quality)
    return PageImage(data=buf.getvalue(), width=flattened.width, height=flattened.height)


class PageRenderer:
    """
    Render jobs one at a time on a shared surface.

    The renderer does not lock the surface; callers must await each
    ``render`` before starting the next.

    Attributes:
        rasterizer: Open render surface
        config: Worksheet configuration
        typesetter: Math renderer passed to the normalizer

    Example:
        >>> renderer = PageRenderer(surface, WorksheetConfig())
        >>> page = await renderer.render(RenderJob(record, Role.QUESTION, 1))
    """

    def __init__(
        self,
        rasterizer: Rasterizer,
        config: WorksheetConfig,
        typesetter: Optional[MathTypesetter] = None,
    ) -> None:
        self.rasterizer = rasterizer
        self.config = config
        self.typesetter = typesetter or MathTypesetter()

    async def render(self, job: RenderJob) -> PageImage:
        """
        Render one job.

        Args:
            job: Record, role and ordinal to render

        Returns:
            Encoded page image

        Raises:
            PageRenderError: For any failure (mount target missing,
                rasterization error, encoding error)
            asyncio.CancelledError: If the run is cancelled mid-job
        """
        logger.debug(f"Rendering {job.label} for record {job.record.id}")
        try:
            body = normalize_math_markup(job.body, self.typesetter)
            document = build_page_html(job, body, self.config)

            await self.rasterizer.mount(document)
            await asyncio.sleep(self.config.settle_seconds)
            captured = await self.rasterizer.capture(CONTENT_ROOT_SELECTOR)

            page = encode_page_image(captured, self.config.jpeg_quality)
        except PageRenderError:
            raise
        except Exception as e:
            raise PageRenderError(f"Failed to render {job.label}: {e}") from e

        logger.debug(f"Rendered {job.label}: {page.width}x{page.height}px")
        return page
