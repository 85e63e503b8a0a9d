"""
Splitting filing content into pages and mapping offsets between pages.

Filings are stored as chunks of about DEFAULT_CHUNK_SIZE characters, one
chunk per page. Cut points come from a tokenizer pass with the same
html.parser the pages are rendered with: a page may start at any token, or
anywhere inside a run of plain text, but never inside a tag, comment,
character reference or raw-text element such as <script>. Each page then
parses on its own and the page texts concatenate to the text of the whole
filing.
"""

import re
from bisect import bisect_right
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import List, Optional, Sequence, Tuple

from .text import AnchorError, extract_text

DEFAULT_CHUNK_SIZE = 1 * 1024 * 1024  # 1MB in characters

# Content the parser reads as raw text, up to the matching end tag
RAW_TEXT_ELEMENTS = frozenset({
    "script", "style", "textarea", "title", "xmp", "iframe", "noembed", "noframes",
})

# Token kinds
_SEALED = 0  # no page may start at or inside it
_EDGE = 1    # a page may start at it
_TEXT = 2    # a page may start at it or anywhere inside it


@dataclass(frozen=True)
class PageSpan:
    """Text offset range covered by one page."""
    page_number: int
    text_start: int
    text_length: int

    @property
    def text_end(self) -> int:
        return self.text_start + self.text_length


class _Boundaries(HTMLParser):
    """Start offset and kind of every token in a document."""

    def __init__(self, content: str):
        super().__init__(convert_charrefs=False)
        self.line_starts = [0] + [m.end() for m in re.finditer("\n", content)]
        self.starts: List[int] = []
        self.kinds: List[int] = []
        self._raw: Optional[str] = None
        self.feed(content)
        self.close()

    def _token(self, kind: int) -> None:
        line, col = self.getpos()
        self.starts.append(self.line_starts[line - 1] + col)
        self.kinds.append(kind if self._raw is None else _SEALED)

    def handle_starttag(self, tag, attrs):
        self._token(_EDGE)
        if self._raw is None and tag in RAW_TEXT_ELEMENTS:
            self._raw = tag

    def handle_startendtag(self, tag, attrs):
        self._token(_EDGE)

    def handle_endtag(self, tag):
        if self._raw == tag:
            self._token(_SEALED)
            self._raw = None
        else:
            self._token(_EDGE)

    def handle_data(self, data):
        self._token(_TEXT)

    def handle_comment(self, data):
        self._token(_EDGE)

    def handle_decl(self, decl):
        self._token(_EDGE)

    def handle_pi(self, data):
        self._token(_EDGE)

    def unknown_decl(self, data):
        self._token(_EDGE)

    def handle_charref(self, name):
        self._token(_EDGE)

    def handle_entityref(self, name):
        self._token(_EDGE)


def _safe_cut(content: str, bounds: _Boundaries, pos: int, floor: int) -> int:
    """Move a cut at pos back to the nearest point where a page may start."""
    starts, kinds = bounds.starts, bounds.kinds
    i = bisect_right(starts, pos) - 1

    if i >= 0 and kinds[i] == _TEXT and starts[i] < pos:
        cut = pos
        # CRLF reads as one line break only while both halves share a page
        if content[cut - 1] == "\r" and content[cut] == "\n":
            cut = cut - 1 if cut - 1 > floor else cut + 1
        return cut

    while i >= 0 and starts[i] > floor:
        if kinds[i] != _SEALED:
            return starts[i]
        i -= 1

    # A single construct longer than a chunk: the page runs on past it
    for j in range(bisect_right(starts, pos), len(starts)):
        if kinds[j] != _SEALED:
            return starts[j]
    return len(content)


def split_content(content: Optional[str], chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[str]:
    """
    Split content into chunks of at most chunk_size characters.

    The chunks always join back to exactly the original content. A tag,
    reference or raw-text element longer than chunk_size is kept whole in a
    longer chunk.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not content:
        return []

    bounds = _Boundaries(content)
    chunks = []
    start = 0
    n = len(content)
    while start < n:
        end = start + chunk_size
        if end < n:
            end = _safe_cut(content, bounds, end, start)
        else:
            end = n
        chunks.append(content[start:end])
        start = end
    return chunks


def build_page_map(chunks: Sequence[str]) -> List[PageSpan]:
    """Compute the text offset range of every page, each rendered on its own."""
    pages = []
    offset = 0
    for i, chunk in enumerate(chunks, 1):
        length = len(extract_text(chunk))
        pages.append(PageSpan(page_number=i, text_start=offset, text_length=length))
        offset += length
    return pages


def page_for_offset(page_map: Sequence[PageSpan], offset: int) -> Optional[PageSpan]:
    """
    Return the page holding a global text offset.

    Offsets at or past the end of the text belong to the last page.
    """
    if not page_map:
        return None
    if offset < 0:
        raise AnchorError(f"Negative text offset: {offset}")
    starts = [p.text_start for p in page_map]
    idx = bisect_right(starts, offset) - 1
    return page_map[max(idx, 0)]


def to_page_offset(page_map: Sequence[PageSpan], offset: int) -> Tuple[int, int]:
    """Global text offset -> (page number, offset within that page)."""
    page = page_for_offset(page_map, offset)
    if page is None:
        return 1, offset
    return page.page_number, offset - page.text_start


def to_global_offset(page_map: Sequence[PageSpan], page_number: int, local_offset: int) -> int:
    """(page number, offset within the page) -> global text offset."""
    for page in page_map:
        if page.page_number == page_number:
            if not 0 <= local_offset <= page.text_length:
                raise AnchorError(
                    f"Offset {local_offset} outside page {page_number} "
                    f"of length {page.text_length}"
                )
            return page.text_start + local_offset
    raise AnchorError(f"No page {page_number}")
