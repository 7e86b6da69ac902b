"""
Module: worksheet.template

Purpose:
    Build the HTML document mounted for one render job: a fixed-width
    wrapper with a header block (title, metadata line) and the
    normalized body markup.

Key Functions:
    - build_page_html(): Full HTML document for one RenderJob

Dependencies:
    - html (std): Escaping header text
    - worksheet.models: RenderJob

Used By:
    - worksheet.renderer: Mounted before capture
"""

from __future__ import annotations

import html

from .config import WorksheetConfig
from .models import RenderJob

# Element captured by the rasterizer
CONTENT_ROOT_SELECTOR = ".content-wrapper"
CONTENT_PADDING_PX = 60

PAGE_STYLES = """
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap');

* { font-family: 'Inter', sans-serif; }

html, body { margin: 0; padding: 0; background: #ffffff; }

.content-wrapper {
  padding: {padding}px;
  background: white;
  width: {width}px;
  margin: 0 auto;
  box-sizing: content-box;
}

.header {
  margin-bottom: 36px;
  border-bottom: 2px solid #f3f4f6;
  padding-bottom: 24px;
}

.title { font-size: 20px; font-weight: 600; color: #111827; margin-bottom: 12px; }

.metadata { font-size: 15px; color: #6b7280; }

.body { font-size: 16px; line-height: 2.2; color: #1f2937; letter-spacing: 0.01em; }
.body p { margin: 2em 0; }
.body > *:first-child { margin-top: 0; }
.body > *:last-child { margin-bottom: 0; }
.body > p + p { margin-top: 2.5em; }
.body > * > * { margin-top: 1.5em; margin-bottom: 1.5em; }

.math-rendered { margin: 3em 0; display: block; padding: 1em 0; }
.math-rendered svg { max-width: 100%; height: auto; }
li .math-rendered { margin: 2em 0; }
td .math-rendered, th .math-rendered { margin: 1.5em 0; }

img { max-width: 100%; height: auto; margin: 2.5em 0; }

ul, ol { margin: 2.5em 0; padding-left: 32px; }
li { margin: 1.5em 0; line-height: 2.2; }
li + li { margin-top: 2em; }

table { width: 100%; border-collapse: collapse; margin: 2.5em 0; }
th, td { border: 1px solid #e5e7eb; padding: 16px; text-align: left; line-height: 2; }
th { background-color: #f9fafb; }

blockquote {
  margin: 2.5em 0;
  padding: 1.5em;
  background: #f9fafb;
  border-left: 4px solid #e5e7eb;
  line-height: 2.2;
}

h1, h2, h3, h4, h5, h6 { margin-top: 3em; margin-bottom: 1.5em; line-height: 1.6; }
"""


def build_page_html(job: RenderJob, body_html: str, config: WorksheetConfig) -> str:
    """
    Build the document mounted for one job.

    Args:
        job: Render job (title and metadata come from here)
        body_html: Normalized body markup, inserted as-is
        config: Supplies the fixed content width

    Returns:
        Complete HTML document string

    Example:
        >>> doc = build_page_html(job, "<p>Body</p>", WorksheetConfig())
        >>> "Question 1" in doc
        True
    """
    styles = (
        PAGE_STYLES.replace("{width}", str(config.content_width_px))
        .replace("{padding}", str(CONTENT_PADDING_PX))
    )
    title = html.escape(job.title)
    metadata = html.escape(job.record.metadata_line)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<style>{styles}</style>\n"
        "</head>\n<body>\n"
        f'<div class="content-wrapper" data-job="{html.escape(job.label)}">\n'
        '  <div class="header">\n'
        f'    <div class="title">{title}</div>\n'
        f'    <div class="metadata">{metadata}</div>\n'
        "  </div>\n"
        f'  <div class="body">{body_html}</div>\n'
        "</div>\n"
        "</body>\n</html>\n"
    )


def viewport_width_for(config: WorksheetConfig) -> int:
    """CSS pixel width that fits the wrapper and its padding exactly."""
    return config.content_width_px + 2 * CONTENT_PADDING_PX
