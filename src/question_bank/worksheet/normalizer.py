"""
Module: worksheet.normalizer

Purpose:
    Replace embedded MathML elements in question/answer markup with
    typeset math. Each ``<math>`` element is translated independently;
    a failure leaves that element in place and is only logged.

Key Functions:
    - mathml_to_tex(): Tag-substitution translation of one element
    - translate_math_element(): Translate + typeset, returning a result
    - normalize_math_markup(): Fold all element results into the markup

Algorithm:
    1. Parse the fragment with BeautifulSoup (html.parser)
    2. For each top-level <math> element produce a MathTranslation:
       Translated(rendered markup) or Untranslated(reason)
    3. Replace Translated elements with <span class="math-rendered">;
       leave Untranslated elements untouched

    Tag mapping:
        math             -> children concatenated
        mrow             -> {children}
        msup(a, b)       -> {a}^{b}
        msub(a, b)       -> {a}_{b}
        msubsup(a, b, c) -> {a}_{b}^{c}
        mfrac(a, b)      -> \\frac{a}{b}
        msqrt            -> \\sqrt{children}
        mi, mn, mo       -> bare text
        mtext            -> \\mathrm{text}
        mspace           -> dropped

    Nested <math> elements are not translated: the outer element and
    everything inside it pass through unchanged.

Dependencies:
    - beautifulsoup4: Fragment parsing
    - worksheet.typesetter: Expression -> SVG

Used By:
    - worksheet.renderer: Body markup before templating
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag

from .errors import MathTranslationError
from .typesetter import MathTypesetter

logger = logging.getLogger(__name__)

MATH_MARKER_CLASS = "math-rendered"

_HAS_MATH_RE = re.compile(r"<math[\s>]", re.IGNORECASE)

# TeX needs these escaped when they come from leaf text
_TEX_ESCAPES = {
    "\\": r"\backslash ",
    "{": r"\{",
    "}": r"\}",
    "%": r"\%",
    "#": r"\#",
    "$": r"\$",
    "_": r"\_",
    "&": r"\&",
}

_LEAF_TAGS = {"mi", "mn", "mo"}
_SCRIPT_ARITY = {"msup": 2, "msub": 2, "msubsup": 3, "mfrac": 2}


@dataclass(frozen=True)
class Translated:
    """Element translated and typeset; ``rendered`` replaces it."""

    original: str
    tex: str
    rendered: str


@dataclass(frozen=True)
class Untranslated:
    """Element left as-is; ``reason`` says why."""

    original: str
    reason: str


MathTranslation = Union[Translated, Untranslated]


def _escape_leaf(text: str) -> str:
    return "".join(_TEX_ESCAPES.get(ch, ch) for ch in text.strip())


def _element_children(node: Tag) -> List[Tag]:
    """Child tags, rejecting stray text between structural children."""
    children = []
    for child in node.children:
        if isinstance(child, Tag):
            children.append(child)
        elif isinstance(child, NavigableString) and child.strip():
            raise MathTranslationError(
                f"Unexpected text {child.strip()!r} inside <{node.name}>"
            )
    return children


def _translate_node(node: Tag) -> str:
    name = (node.name or "").lower()

    if name in _LEAF_TAGS:
        return _escape_leaf(node.get_text())
    if name == "mtext":
        return r"\mathrm{" + _escape_leaf(node.get_text()) + "}"
    if name == "mspace":
        return ""
    if name == "math":
        raise MathTranslationError("Nested <math> element")

    if name in _SCRIPT_ARITY:
        parts = [_translate_node(child) for child in _element_children(node)]
        if len(parts) != _SCRIPT_ARITY[name]:
            raise MathTranslationError(
                f"<{name}> expects {_SCRIPT_ARITY[name]} children, got {len(parts)}"
            )
        if name == "msup":
            return "{%s}^{%s}" % tuple(parts)
        if name == "msub":
            return "{%s}_{%s}" % tuple(parts)
        if name == "msubsup":
            return "{%s}_{%s}^{%s}" % tuple(parts)
        return r"\frac{%s}{%s}" % tuple(parts)

    inner = "".join(_translate_node(child) for child in _element_children(node))
    if name == "mrow":
        return "{" + inner + "}"
    if name == "msqrt":
        return r"\sqrt{" + inner + "}"
    raise MathTranslationError(f"Unsupported math tag <{name}>")


def mathml_to_tex(element: Union[Tag, str]) -> str:
    """
    Translate one ``<math>`` element to a TeX-style expression.

    Args:
        element: Parsed ``<math>`` tag or its markup

    Returns:
        Expression without ``$`` delimiters

    Raises:
        MathTranslationError: On unsupported tags, wrong script arity,
            nested math or an empty result

    Example:
        >>> mathml_to_tex("<math><msup><mi>x</mi><mn>2</mn></msup></math>")
        '{x}^{2}'
    """
    if isinstance(element, str):
        parsed = BeautifulSoup(element, "html.parser").find("math")
        if parsed is None:
            raise MathTranslationError("No <math> element in markup")
        element = parsed

    if element.find("math") is not None:
        raise MathTranslationError("Nested <math> element")

    tex = "".join(_translate_node(child) for child in _element_children(element))
    if not tex.strip():
        raise MathTranslationError("Math element has no content")
    return tex


def translate_math_element(
    element: Tag,
    typesetter: MathTypesetter,
) -> MathTranslation:
    """
    Translate and typeset one element without raising.

    Args:
        element: ``<math>`` tag from the parsed fragment
        typesetter: Renders the expression

    Returns:
        Translated with the marker-wrapped rendering, or Untranslated
    """
    original = str(element)
    try:
        tex = mathml_to_tex(element)
        svg = typesetter.render(tex, display=True)
    except MathTranslationError as e:
        return Untranslated(original=original, reason=str(e))
    except Exception as e:
        # Third-party parser/renderer failures stay local to this element
        return Untranslated(original=original, reason=f"{type(e).__name__}: {e}")

    rendered = f'<span class="{MATH_MARKER_CLASS}">{svg}</span>'
    return Translated(original=original, tex=tex, rendered=rendered)


def normalize_math_markup(
    html: str,
    typesetter: Optional[MathTypesetter] = None,
) -> str:
    """
    Replace every embedded math element with typeset markup.

    Markup without ``<math>`` is returned unchanged. Elements that fail
    to translate stay in the output exactly as parsed.

    Args:
        html: Question or markscheme body markup
        typesetter: Renderer for expressions (default MathTypesetter)

    Returns:
        Normalized markup

    Example:
        >>> out = normalize_math_markup("<p>Find <math><mi>x</mi></math></p>")
        >>> 'class="math-rendered"' in out
        True
    """
    if not html or not _HAS_MATH_RE.search(html):
        return html

    typesetter = typesetter or MathTypesetter()
    soup = BeautifulSoup(html, "html.parser")

    # Outermost elements only; inner ones belong to a nested outer element
    elements = [el for el in soup.find_all("math") if el.find_parent("math") is None]

    results = [(el, translate_math_element(el, typesetter)) for el in elements]

    failures = 0
    for element, result in results:
        if isinstance(result, Translated):
            replacement = BeautifulSoup(result.rendered, "html.parser").find("span")
            element.replace_with(replacement)
        else:
            failures += 1
            logger.warning(f"Leaving math element untranslated: {result.reason}")

    if failures:
        logger.debug(f"{failures}/{len(results)} math elements left untranslated")

    return str(soup)
