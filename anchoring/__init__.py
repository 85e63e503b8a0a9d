"""
Text-offset anchoring for filing annotations.

Annotations are stored as [start, end) character ranges into the text of a
filing (what a browser reports as the document's textContent). This package
computes those offsets, splits filings into pages and re-inserts highlight
spans into the HTML at the stored offsets.
"""

from .text import AnchorError, Selection, extract_text, normalize_selection, selection_from_quote
from .chunking import DEFAULT_CHUNK_SIZE, PageSpan, build_page_map, page_for_offset, split_content
from .highlighter import highlight_html, locate_offset, render_page, resolve_anchor

__all__ = [
    "AnchorError",
    "DEFAULT_CHUNK_SIZE",
    "PageSpan",
    "Selection",
    "build_page_map",
    "extract_text",
    "highlight_html",
    "locate_offset",
    "normalize_selection",
    "page_for_offset",
    "render_page",
    "resolve_anchor",
    "selection_from_quote",
    "split_content",
]
