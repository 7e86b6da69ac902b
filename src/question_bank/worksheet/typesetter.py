"""
Module: worksheet.typesetter

Purpose:
    Render a TeX-style math expression to inline SVG markup using
    matplotlib's built-in mathtext engine, so typeset math can sit
    directly inside an HTML page fragment.

Key Classes:
    - MathTypesetter: Expression -> SVG markup

Dependencies:
    - matplotlib: mathtext parser and SVG backend

Used By:
    - worksheet.normalizer: Replaces translated math elements
"""

from __future__ import annotations

import io
import logging
import re

from matplotlib import mathtext
from matplotlib.font_manager import FontProperties

from .errors import MathTranslationError

logger = logging.getLogger(__name__)

# Display mode renders a little larger than the 16px body text
DISPLAY_FONT_SIZE = 14
INLINE_FONT_SIZE = 12

_SVG_START_RE = re.compile(r"<svg\b", re.IGNORECASE)


class MathTypesetter:
    """
    Typeset expressions with matplotlib mathtext.

    Attributes:
        fontset: mathtext font set ("cm" gives Computer Modern glyphs)

    Example:
        >>> svg = MathTypesetter().render("x^{2}+1")
        >>> svg.startswith("<svg")
        True
    """

    def __init__(self, fontset: str = "cm") -> None:
        self.fontset = fontset

    def render(self, expression: str, *, display: bool = True) -> str:
        """
        Render one expression to an ``<svg>`` element.

        Args:
            expression: Expression WITHOUT ``$`` delimiters
            display: Display mode (larger type, own line)

        Returns:
            SVG markup with the XML prolog removed

        Raises:
            MathTranslationError: If the expression is empty or mathtext
                cannot parse or draw it
        """
        if not expression.strip():
            raise MathTranslationError("Empty math expression")

        size = DISPLAY_FONT_SIZE if display else INLINE_FONT_SIZE
        prop = FontProperties(size=size, math_fontfamily=self.fontset)
        buf = io.BytesIO()
        try:
            mathtext.math_to_image(f"${expression}$", buf, prop=prop, format="svg")
        except Exception as e:
            raise MathTranslationError(f"mathtext could not render {expression!r}: {e}") from e

        svg = buf.getvalue().decode("utf-8")
        match = _SVG_START_RE.search(svg)
        if match is None:
            raise MathTranslationError(f"No SVG produced for {expression!r}")
        return svg[match.start():].strip()
