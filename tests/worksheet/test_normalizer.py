"""
Unit tests for math markup normalization.

The typesetter is mocked except where noted so these tests only cover
tag translation and folding results back into the markup.
"""

import logging
from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup

from question_bank.worksheet.errors import MathTranslationError
from question_bank.worksheet.normalizer import (
    MATH_MARKER_CLASS,
    Translated,
    Untranslated,
    mathml_to_tex,
    normalize_math_markup,
    translate_math_element,
)
from question_bank.worksheet.typesetter import MathTypesetter


@pytest.fixture
def typesetter():
    mock = MagicMock(spec=MathTypesetter)
    mock.render.side_effect = lambda tex, display=True: f"<svg data-tex=\"{tex}\"></svg>"
    return mock


# ─────────────────────────────────────────────────────────────────────────────
# mathml_to_tex
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "markup, expected",
    [
        ("<math><mi>x</mi></math>", "x"),
        ("<math><msup><mi>x</mi><mn>2</mn></msup></math>", "{x}^{2}"),
        ("<math><msub><mi>a</mi><mi>n</mi></msub></math>", "{a}_{n}"),
        ("<math><msubsup><mi>x</mi><mn>1</mn><mn>2</mn></msubsup></math>", "{x}_{1}^{2}"),
        ("<math><mfrac><mn>1</mn><mn>2</mn></mfrac></math>", r"\frac{1}{2}"),
        ("<math><msqrt><mi>x</mi><mo>+</mo><mn>1</mn></msqrt></math>", r"\sqrt{x+1}"),
        ("<math><mrow><mi>a</mi><mo>+</mo><mi>b</mi></mrow></math>", "{a+b}"),
        ("<math><mtext>area</mtext></math>", r"\mathrm{area}"),
        ("<math><mi>x</mi><mspace></mspace><mi>y</mi></math>", "xy"),
    ],
)
def test_mathml_to_tex_when_supported_tags_then_translates(markup, expected):
    assert mathml_to_tex(markup) == expected


def test_mathml_to_tex_when_nested_scripts_then_groups_each_level():
    markup = (
        "<math><mfrac><msup><mi>x</mi><mn>2</mn></msup>"
        "<mrow><mn>2</mn><mi>a</mi></mrow></mfrac></math>"
    )
    assert mathml_to_tex(markup) == r"\frac{{x}^{2}}{{2a}}"


def test_mathml_to_tex_when_leaf_has_tex_specials_then_escapes_them():
    assert mathml_to_tex("<math><mi>%</mi><mo>{</mo></math>") == r"\%\{"


@pytest.mark.parametrize(
    "markup",
    [
        "<math><munder><mi>x</mi><mi>y</mi></munder></math>",
        "<math><msup><mi>x</mi></msup></math>",
        "<math></math>",
        "<math><mrow>loose text</mrow></math>",
        "<p>no math here</p>",
    ],
)
def test_mathml_to_tex_when_unsupported_then_raises(markup):
    with pytest.raises(MathTranslationError):
        mathml_to_tex(markup)


def test_mathml_to_tex_when_math_nested_then_raises():
    with pytest.raises(MathTranslationError, match="Nested"):
        mathml_to_tex("<math><mrow><math><mi>x</mi></math></mrow></math>")


# ─────────────────────────────────────────────────────────────────────────────
# translate_math_element
# ─────────────────────────────────────────────────────────────────────────────


def test_translate_math_element_when_ok_then_wraps_rendering_in_marker(typesetter):
    element = BeautifulSoup("<math><mi>x</mi></math>", "html.parser").find("math")

    result = translate_math_element(element, typesetter)

    assert isinstance(result, Translated)
    assert result.tex == "x"
    assert result.rendered.startswith(f'<span class="{MATH_MARKER_CLASS}"><svg')
    typesetter.render.assert_called_once_with("x", display=True)


def test_translate_math_element_when_typesetter_fails_then_untranslated(typesetter):
    typesetter.render.side_effect = MathTranslationError("bad expression")
    element = BeautifulSoup("<math><mi>x</mi></math>", "html.parser").find("math")

    result = translate_math_element(element, typesetter)

    assert isinstance(result, Untranslated)
    assert "bad expression" in result.reason
    assert result.original == str(element)


def test_translate_math_element_when_unexpected_error_then_untranslated(typesetter):
    typesetter.render.side_effect = RuntimeError("boom")
    element = BeautifulSoup("<math><mi>x</mi></math>", "html.parser").find("math")

    result = translate_math_element(element, typesetter)

    assert isinstance(result, Untranslated)
    assert "RuntimeError" in result.reason


# ─────────────────────────────────────────────────────────────────────────────
# normalize_math_markup
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("markup", ["", "<p>Plain <b>text</b> &amp; more</p>", "<mathematics/>"])
def test_normalize_when_no_math_then_returns_input_unchanged(markup, typesetter):
    assert normalize_math_markup(markup, typesetter) is markup
    typesetter.render.assert_not_called()


def test_normalize_when_math_present_then_replaces_with_rendering(typesetter):
    html = "<p>Solve <math><msup><mi>x</mi><mn>2</mn></msup></math> = 4</p>"

    result = normalize_math_markup(html, typesetter)

    soup = BeautifulSoup(result, "html.parser")
    assert soup.find("math") is None
    marker = soup.find("span", class_=MATH_MARKER_CLASS)
    assert marker is not None
    assert marker.find("svg")["data-tex"] == "{x}^{2}"
    assert "Solve" in result and "= 4" in result


def test_normalize_when_one_element_fails_then_others_still_translate(typesetter, caplog):
    html = (
        "<p><math><mi>a</mi></math></p>"
        "<p><math><munder><mi>b</mi><mi>c</mi></munder></math></p>"
        "<p><math><mi>d</mi></math></p>"
    )

    with caplog.at_level(logging.WARNING, logger="question_bank.worksheet.normalizer"):
        result = normalize_math_markup(html, typesetter)

    soup = BeautifulSoup(result, "html.parser")
    assert len(soup.find_all("span", class_=MATH_MARKER_CLASS)) == 2
    untouched = soup.find_all("math")
    assert len(untouched) == 1
    assert untouched[0].find("munder") is not None
    assert "untranslated" in caplog.text


def test_normalize_when_math_nested_then_outer_element_passes_through(typesetter):
    html = "<div><math><mrow><math><mi>x</mi></math></mrow></math></div>"

    result = normalize_math_markup(html, typesetter)

    soup = BeautifulSoup(result, "html.parser")
    assert len(soup.find_all("math")) == 2
    assert soup.find("span", class_=MATH_MARKER_CLASS) is None
    typesetter.render.assert_not_called()


def test_normalize_when_real_typesetter_then_embeds_svg():
    """Uses matplotlib mathtext end to end."""
    result = normalize_math_markup(
        "<p><math><mfrac><mn>1</mn><mn>2</mn></mfrac></math></p>",
        MathTypesetter(),
    )

    soup = BeautifulSoup(result, "html.parser")
    assert soup.find("span", class_=MATH_MARKER_CLASS).find("svg") is not None
