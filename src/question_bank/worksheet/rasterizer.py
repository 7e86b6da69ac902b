"""
Module: worksheet.rasterizer

Purpose:
    Abstract interface for the off-screen render surface: mount an HTML
    document, then rasterize its content root to a bitmap. The Playwright
    implementation drives one headless Chromium page that is reused for
    every job, its content fully replaced on each mount.

Key Classes:
    - Rasterizer: Abstract mount/capture surface
    - PlaywrightRasterizer: Headless Chromium implementation

Dependencies:
    - playwright: Headless browser layout and element screenshots
    - PIL: Decoding captured bitmaps

Used By:
    - worksheet.renderer: One mount + capture per job
    - worksheet.assembler.generate_worksheet(): Opens the default surface
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .errors import MountTargetMissingError, RasterizationError

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT_HEIGHT = 1200


class Rasterizer(ABC):
    """
    Single render surface shared by consecutive jobs.

    Only one job may use the surface at a time: ``mount`` replaces the
    previous content and ``capture`` reads whatever is mounted.
    Usable as an async context manager.
    """

    async def open(self) -> None:
        """Acquire the surface. Default: nothing to acquire."""

    @abstractmethod
    async def mount(self, html: str) -> None:
        """
        Replace the surface content with a full HTML document.

        Raises:
            RasterizationError: If the surface cannot load the document
        """

    @abstractmethod
    async def capture(self, selector: str) -> Image.Image:
        """
        Rasterize the mounted element matching ``selector``.

        Returns:
            Captured bitmap on a white background

        Raises:
            MountTargetMissingError: If no element matches
            RasterizationError: If the capture itself fails
        """

    async def close(self) -> None:
        """Release the surface. Default: nothing to release."""

    async def __aenter__(self) -> Rasterizer:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class PlaywrightRasterizer(Rasterizer):
    """
    Headless Chromium render surface.

    The browser context is created with ``device_scale_factor=scale`` so
    element screenshots are oversampled for print. Stylesheets are part
    of the mounted document, so captures use the live computed styles.

    Attributes:
        viewport_width: CSS pixel width of the page viewport
        scale: Oversampling factor applied to captures
        browser_name: Playwright browser type ("chromium" by default)

    Example:
        >>> async with PlaywrightRasterizer(viewport_width=920, scale=3) as surface:
        ...     await surface.mount(html)
        ...     image = await surface.capture(".content-wrapper")
    """

    def __init__(
        self,
        *,
        viewport_width: int = 920,
        scale: float = 3.0,
        browser_name: str = "chromium",
        launch_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.viewport_width = viewport_width
        self.scale = scale
        self.browser_name = browser_name
        self.launch_options = dict(launch_options or {})
        self._playwright = None
        self._browser = None
        self._page = None

    async def open(self) -> None:
        if self._page is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            browser_type = getattr(self._playwright, self.browser_name)
            self._browser = await browser_type.launch(**self.launch_options)
            context = await self._browser.new_context(
                viewport={"width": self.viewport_width, "height": DEFAULT_VIEWPORT_HEIGHT},
                device_scale_factor=self.scale,
            )
            self._page = await context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise RasterizationError(f"Could not start {self.browser_name}: {e}") from e
        logger.debug(f"Opened {self.browser_name} surface at scale {self.scale}")

    async def mount(self, html: str) -> None:
        if self._page is None:
            raise RasterizationError("Render surface is not open")
        try:
            await self._page.set_content(html, wait_until="load")
        except PlaywrightError as e:
            raise RasterizationError(f"Failed to mount page content: {e}") from e

    async def capture(self, selector: str) -> Image.Image:
        if self._page is None:
            raise RasterizationError("Render surface is not open")
        try:
            element = await self._page.query_selector(selector)
        except PlaywrightError as e:
            raise RasterizationError(f"Invalid capture target {selector!r}: {e}") from e
        if element is None:
            raise MountTargetMissingError(f"No element matches {selector!r}")
        try:
            png = await element.screenshot(type="png", omit_background=False, animations="disabled")
        except PlaywrightError as e:
            raise RasterizationError(f"Element screenshot failed: {e}") from e
        image = Image.open(io.BytesIO(png))
        image.load()
        return image

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._page = self._browser = self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"Ignoring browser close failure: {e}")
        if playwright is not None:
            await playwright.stop()
