"""
Re-inserting annotations into filing HTML.

Annotations are applied in a single pass over the text nodes, sorted by
start offset and, for equal starts, longest first. Each text node is split
at every annotation boundary that falls inside it, and each piece covered
by annotations is wrapped in one <span> per annotation, outermost first.
Spans are therefore always properly nested, whatever the overlap between
annotations or the markup a range crosses.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from bs4.element import NavigableString, Tag

from models import Annotation, AnnotationType, HighlightColor
from .chunking import PageSpan, page_for_offset
from .text import MARKER_ATTR, TextNode, find_nearest, index_text_nodes, parse_html, same_text

logger = logging.getLogger(__name__)

COLOR_CLASSES = {
    HighlightColor.ORANGE: "highlight-bg-dark-pink",
    HighlightColor.GREEN: "highlight-bg-green",
    HighlightColor.PINK: "highlight-bg-pink",
    HighlightColor.BLUE: "highlight-bg-blue",
}
DEFAULT_COLOR_CLASS = "highlight-bg-yellow"

NOTE_MARKER = "\U0001F4DD"

# Text that is never displayed as document content
RAW_TEXT_ELEMENTS = {"script", "style"}


@dataclass
class _Range:
    start: int
    end: int
    annotation: Annotation
    closes: bool  # the annotation's real end lies inside this rendering


@dataclass(frozen=True)
class AnchorResolution:
    start: int
    end: int
    status: str  # "exact", "moved" or "orphaned"


@dataclass(frozen=True)
class NavigationTarget:
    page_number: int
    page_offset: int
    fraction: float
    selector: str


def color_class(color) -> str:
    try:
        return COLOR_CLASSES[HighlightColor(color)]
    except ValueError:
        return DEFAULT_COLOR_CLASS


def _make_span(soup, ann: Annotation) -> Tag:
    span = soup.new_tag("span")
    span["data-annotation-id"] = str(ann.id)
    span["data-annotation-start"] = str(ann.start_offset)
    classes = ["annotation-span"]
    if ann.type in (AnnotationType.HIGHLIGHT, AnnotationType.NOTE):
        classes += ["annotation-highlight", color_class(ann.color)]
    span["class"] = classes
    if ann.note:
        span["title"] = ann.note
    return span


def _make_marker(soup, ann: Annotation) -> Tag:
    sup = soup.new_tag("sup")
    sup["class"] = "annotation-note-marker"
    sup[MARKER_ATTR] = str(ann.id)
    sup.string = NOTE_MARKER
    return sup


def _wrap_node(soup, tn: TextNode, active: List[_Range]) -> None:
    cuts = {0, tn.length}
    for r in active:
        cuts.add(min(max(r.start - tn.start, 0), tn.length))
        cuts.add(min(max(r.end - tn.start, 0), tn.length))
    cuts = sorted(cuts)

    text = str(tn.node)
    pieces = []
    for a, b in zip(cuts, cuts[1:]):
        seg_start, seg_end = tn.start + a, tn.start + b
        covering = [r for r in active if r.start < seg_end and r.end > seg_start]
        if not covering:
            pieces.append(NavigableString(text[a:b]))
            continue

        inner = NavigableString(text[a:b])
        for r in reversed(covering):
            span = _make_span(soup, r.annotation)
            span.append(inner)
            inner = span
        pieces.append(inner)

        for r in covering:
            if r.closes and r.end == seg_end and r.annotation.note:
                pieces.append(_make_marker(soup, r.annotation))

    tn.node.replace_with(*pieces)


def apply_highlights(soup, annotations: Sequence[Annotation], base_offset: int = 0) -> int:
    """
    Wrap annotated text of a parsed tree in place.

    Offsets of the annotations are global; base_offset is the global offset
    of the first character of this tree (non-zero when rendering one page).
    Returns the number of annotations that touched the tree.
    """
    nodes = index_text_nodes(soup)
    total = nodes[-1].end if nodes else 0

    ranges = []
    for ann in sorted(annotations, key=lambda a: (a.start_offset, -a.end_offset, a.id)):
        local_end = ann.end_offset - base_offset
        start = max(ann.start_offset - base_offset, 0)
        end = min(local_end, total)
        if start >= end:
            continue
        ranges.append(_Range(start=start, end=end, annotation=ann, closes=local_end <= total))

    i = 0
    active: List[_Range] = []
    for tn in nodes:
        if i >= len(ranges) and not active:
            break
        while i < len(ranges) and ranges[i].start < tn.end:
            active.append(ranges[i])
            i += 1
        active = [r for r in active if r.end > tn.start]
        if not active:
            continue
        parent = tn.node.parent
        if parent is not None and parent.name in RAW_TEXT_ELEMENTS:
            continue
        _wrap_node(soup, tn, active)

    return len(ranges)


def highlight_html(html: Optional[str], annotations: Sequence[Annotation], base_offset: int = 0) -> str:
    """Return html with the annotations re-inserted as spans."""
    if not html:
        return ""
    soup = parse_html(html)
    applied = apply_highlights(soup, annotations, base_offset)
    logger.debug(f"Applied {applied}/{len(annotations)} annotations at base offset {base_offset}")
    return str(soup)


def annotations_for_page(annotations: Sequence[Annotation], page: PageSpan) -> List[Annotation]:
    """Annotations whose range overlaps the text of a page."""
    return [
        a for a in annotations
        if a.start_offset < page.text_end and a.end_offset > page.text_start
    ]


def render_page(chunk_html: str, annotations: Sequence[Annotation], page: PageSpan) -> str:
    """Render one page with page-relative placement of global annotation offsets."""
    return highlight_html(chunk_html, annotations_for_page(annotations, page), base_offset=page.text_start)


def resolve_anchor(text: str, ann: Annotation) -> AnchorResolution:
    """
    Check that an annotation's stored range still covers its selected text.

    If it does not (the filing content was replaced, say), the occurrence of
    the selected text nearest the stored start is used instead. When the text
    cannot be found at all the stored range is kept, clipped to the text, and
    reported as orphaned.
    """
    if same_text(text[ann.start_offset:ann.end_offset], ann.selected_text):
        return AnchorResolution(ann.start_offset, ann.end_offset, "exact")

    found = find_nearest(text, ann.selected_text, ann.start_offset)
    if found is not None:
        return AnchorResolution(found.start, found.end, "moved")

    start = min(ann.start_offset, len(text))
    return AnchorResolution(start, min(max(ann.end_offset, start), len(text)), "orphaned")


def resolve_annotations(text: str, annotations: Sequence[Annotation]) -> List[Annotation]:
    """Return copies of the annotations with drifted ranges re-anchored."""
    resolved = []
    for ann in annotations:
        res = resolve_anchor(text, ann)
        if res.status == "moved":
            logger.info(
                f"Annotation {ann.id} re-anchored "
                f"[{ann.start_offset}, {ann.end_offset}) -> [{res.start}, {res.end})"
            )
            ann = ann.model_copy(update={"start_offset": res.start, "end_offset": res.end})
        elif res.status == "orphaned":
            logger.warning(f"Annotation {ann.id} no longer matches the document text")
        resolved.append(ann)
    return resolved


def locate_offset(page_map: Sequence[PageSpan], text_length: int, offset: int) -> NavigationTarget:
    """
    Navigation target for scrolling to a global text offset.

    The selector finds the annotation span in rendered output; the fraction
    is the fallback scroll position when no such span exists.
    """
    page = page_for_offset(page_map, offset)
    page_number = page.page_number if page else 1
    page_offset = offset - page.text_start if page else offset
    fraction = min(max(offset / text_length, 0.0), 1.0) if text_length else 0.0
    return NavigationTarget(
        page_number=page_number,
        page_offset=page_offset,
        fraction=fraction,
        selector=f'[data-annotation-start="{offset}"]',
    )
