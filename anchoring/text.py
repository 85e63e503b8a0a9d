"""
Text model of a filing's HTML.

The text of a document is the concatenation of its text nodes in document
order, the same string a browser exposes as ``element.textContent``:
comments, doctypes, CDATA sections and processing instructions contribute
nothing, script and style text does, and CR and CRLF line breaks read as LF.
Elements carrying the note-marker attribute are skipped, so markers
inserted by the highlighter never move the offsets of the text that follows
them.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

PARSER = "html.parser"
MARKER_ATTR = "data-annotation-marker"

_NEWLINES = re.compile(r"\r\n?")


class AnchorError(ValueError):
    """Raised when a text range cannot be anchored to a document."""
    pass


@dataclass
class TextNode:
    """A non-empty text node and its position in the document text."""
    node: NavigableString
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class Selection:
    """A normalized text selection: offsets plus the text they cover."""
    start: int
    end: int
    text: str


def normalize_newlines(html: str) -> str:
    return _NEWLINES.sub("\n", html)


def parse_html(html: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(normalize_newlines(html or ""), PARSER)


def _root(doc: Union[str, Tag, None]) -> Tag:
    if isinstance(doc, Tag):
        return doc
    return parse_html(doc)


def iter_text_strings(root: Tag) -> Iterator[NavigableString]:
    """Yield every text node under root in document order, empty ones included."""
    stack = list(reversed(root.contents))
    while stack:
        el = stack.pop()
        if isinstance(el, Tag):
            if el.has_attr(MARKER_ATTR):
                continue
            stack.extend(reversed(el.contents))
        elif isinstance(el, NavigableString) and not isinstance(el, PreformattedString):
            yield el


def index_text_nodes(root: Tag) -> List[TextNode]:
    """Collect the non-empty text nodes under root with their global offsets."""
    nodes = []
    offset = 0
    for s in iter_text_strings(root):
        length = len(s)
        if length:
            nodes.append(TextNode(node=s, start=offset, length=length))
            offset += length
    return nodes


def extract_text(doc: Union[str, Tag, None]) -> str:
    """Return the text of an HTML string or parsed tree."""
    return "".join(str(s) for s in iter_text_strings(_root(doc)))


def text_offset(root: Tag, node: NavigableString, offset: int) -> int:
    """
    Convert a position inside a text node into a global text offset.

    Mirrors a DOM tree walk: if the node is not found under root, the total
    text length is returned.
    """
    if offset < 0 or offset > len(node):
        raise AnchorError(f"Offset {offset} outside text node of length {len(node)}")

    total = 0
    for s in iter_text_strings(root):
        if s is node:
            return total + offset
        total += len(s)
    return total


def normalize_selection(text: str, start: int, end: int) -> Selection:
    """
    Trim surrounding whitespace from a raw selection.

    Both offsets move so that the returned range covers exactly the trimmed
    text.
    """
    if not 0 <= start <= end <= len(text):
        raise AnchorError(f"Selection [{start}, {end}) outside text of length {len(text)}")

    raw = text[start:end]
    stripped = raw.strip()
    if not stripped:
        raise AnchorError("Selection is empty")

    new_start = start + (len(raw) - len(raw.lstrip()))
    return Selection(start=new_start, end=new_start + len(stripped), text=stripped)


def same_text(a: str, b: str) -> bool:
    """Compare two strings ignoring differences in whitespace."""
    return a.split() == b.split()


def _quote_pattern(quote: str) -> Optional[re.Pattern]:
    words = quote.split()
    if not words:
        return None
    return re.compile(r"\s+".join(re.escape(w) for w in words))


def find_nearest(text: str, quote: str, hint: int = 0) -> Optional[Selection]:
    """
    Find the occurrence of quote closest to hint.

    Runs of whitespace in the quote match any run of whitespace in the text,
    since a browser selection does not always reproduce the source spacing.
    """
    pattern = _quote_pattern(quote)
    if pattern is None:
        return None

    best = None
    for m in pattern.finditer(text):
        if best is None or abs(m.start() - hint) < abs(best.start() - hint):
            best = m
        elif m.start() > hint:
            break
    if best is None:
        return None
    return Selection(start=best.start(), end=best.end(), text=best.group(0))


def selection_from_quote(text: str, quote: str, hint: int = 0) -> Selection:
    """Anchor a selected string to its occurrence nearest hint."""
    found = find_nearest(text, quote, hint)
    if found is None:
        raise AnchorError(f"Text not found in document: {quote[:50]!r}")
    return found
