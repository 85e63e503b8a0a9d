"""
Document view layer between the API routes and the database.

Turns stored chunks and annotations into rendered pages, navigation
targets and annotation ranges anchored to the document text.
"""

import logging
from typing import Dict, List, Optional

from anchoring.chunking import PageSpan, to_global_offset, to_page_offset
from anchoring.highlighter import (
    annotations_for_page,
    highlight_html,
    locate_offset,
    render_page,
    resolve_annotations,
)
from anchoring.text import (
    AnchorError,
    extract_text,
    normalize_selection,
    same_text,
    selection_from_quote,
)
from database import DatabaseManager
from models import Annotation, AnnotationCreate

logger = logging.getLogger(__name__)


class ReaderDataProvider:
    """
    Rendering and anchoring on top of a DatabaseManager.

    Every method takes a document id and returns None when the document
    (or page) does not exist.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get_annotations(self, document_id: int) -> List[Annotation]:
        return [Annotation(**row) for row in self.db.get_document_annotations(document_id)]

    def document_text(self, document_id: int) -> str:
        return extract_text(self.db.get_document_full_content(document_id) or "")

    # ----------------------------------------------------------------
    # Content
    # ----------------------------------------------------------------

    def update_content(self, document_id: int, content: str) -> Optional[int]:
        """Replace a filing's content, then re-anchor its annotations. Returns the page count."""
        total_pages = self.db.update_document_content(document_id, content)
        if total_pages is not None:
            self.reanchor(document_id)
        return total_pages

    def reanchor(self, document_id: int, text: Optional[str] = None) -> int:
        """
        Store re-anchored ranges and pages of annotations whose text moved.

        Returns the number of annotations updated.
        """
        annotations = self.get_annotations(document_id)
        if not annotations:
            return 0
        if text is None:
            text = self.document_text(document_id)
        page_map = self.db.get_page_map(document_id)

        updated = 0
        for ann, resolved in zip(annotations, resolve_annotations(text, annotations)):
            page_number, _ = to_page_offset(page_map, resolved.start_offset)
            changes = {}
            if (resolved.start_offset, resolved.end_offset) != (ann.start_offset, ann.end_offset):
                changes.update(start_offset=resolved.start_offset, end_offset=resolved.end_offset)
            if page_number != ann.page_number:
                changes["page_number"] = page_number
            if changes:
                self.db.update_annotation(ann.id, changes)
                updated += 1
        return updated

    # ----------------------------------------------------------------
    # Rendering
    # ----------------------------------------------------------------

    def render(self, document_id: int, page_number: Optional[int] = None) -> Optional[Dict]:
        """
        Render the whole filing, or one page of it, with annotations.

        Whole-filing renders re-anchor and store annotations whose stored
        range no longer matches their selected text.
        """
        document = self.db.get_document(document_id)
        if document is None:
            return None

        if page_number is None:
            content = self.db.get_document_full_content(document_id) or ""
            if content:
                self.reanchor(document_id, extract_text(content))
            annotations = self.get_annotations(document_id)
            return {
                "document_id": document_id,
                "page_number": None,
                "total_pages": document["total_pages"],
                "text_start": 0,
                "annotation_count": len(annotations),
                "html": highlight_html(content, annotations),
            }

        chunk = self.db.get_document_chunk(document_id, page_number)
        if chunk is None:
            return None
        page = PageSpan(chunk["page_number"], chunk["text_start"], chunk["text_length"])
        on_page = annotations_for_page(self.get_annotations(document_id), page)
        return {
            "document_id": document_id,
            "page_number": page_number,
            "total_pages": document["total_pages"],
            "text_start": page.text_start,
            "annotation_count": len(on_page),
            "html": render_page(chunk["content"], on_page, page),
        }

    def locate(self, document_id: int, offset: int) -> Optional[Dict]:
        document = self.db.get_document(document_id)
        if document is None:
            return None
        if offset < 0 or offset > document["text_length"]:
            raise AnchorError(
                f"Offset {offset} outside document text of length {document['text_length']}"
            )
        target = locate_offset(self.db.get_page_map(document_id), document["text_length"], offset)
        return {
            "document_id": document_id,
            "offset": offset,
            "page_number": target.page_number,
            "page_offset": target.page_offset,
            "fraction": target.fraction,
            "selector": target.selector,
        }

    # ----------------------------------------------------------------
    # Annotation ranges
    # ----------------------------------------------------------------

    def check_range(self, document: Dict, annotation: AnnotationCreate,
                    text_from_range: bool = False) -> AnnotationCreate:
        """
        Anchor an annotation's range to the document text.

        The range is trimmed of surrounding whitespace. If it does not hold
        selected_text, the occurrence of selected_text nearest start_offset
        is used instead; with text_from_range, selected_text is read from
        the range. page_number is set to the page holding the start.

        Raises:
            AnchorError: the range ends past the text, is blank, or
                selected_text is nowhere in the document
        """
        text = self.document_text(document["id"])
        if annotation.end_offset > len(text):
            raise AnchorError(
                f"Annotation range [{annotation.start_offset}, {annotation.end_offset}) "
                f"outside document text of length {len(text)}"
            )

        try:
            selection = normalize_selection(text, annotation.start_offset, annotation.end_offset)
        except AnchorError:
            if text_from_range:
                raise
            selection = None

        matches = selection is not None and same_text(selection.text, annotation.selected_text)
        if not text_from_range and not matches:
            selection = selection_from_quote(text, annotation.selected_text, annotation.start_offset)
            logger.info(
                f"Range [{annotation.start_offset}, {annotation.end_offset}) does not hold the "
                f"selected text; anchored to [{selection.start}, {selection.end})"
            )

        page_number, _ = to_page_offset(self.db.get_page_map(document["id"]), selection.start)
        return annotation.model_copy(update={
            "start_offset": selection.start,
            "end_offset": selection.end,
            "selected_text": selection.text,
            "page_number": page_number,
        })

    def create_annotation(self, annotation: AnnotationCreate,
                          page_number: Optional[int] = None) -> Optional[Dict]:
        """
        Store an annotation. With page_number the offsets are relative to
        that page rather than to the whole filing.
        """
        document = self.db.get_document(annotation.document_id)
        if document is None:
            return None

        if page_number is not None:
            page_map = self.db.get_page_map(document["id"])
            start = to_global_offset(page_map, page_number, annotation.start_offset)
            annotation = annotation.model_copy(update={
                "start_offset": start,
                "end_offset": start + annotation.end_offset - annotation.start_offset,
            })

        annotation = self.check_range(document, annotation)
        created = self.db.create_annotation(annotation)
        logger.info(
            f"Annotation {created['id']} ({created['type']}) on document {document['id']} "
            f"[{created['start_offset']}, {created['end_offset']}) page {created['page_number']}"
        )
        return created

    def update_annotation(self, annotation_id: int, updates: Dict) -> Optional[Dict]:
        """
        Apply a partial update. A changed range is anchored again; without a
        new selected_text the text is read from the new range.
        """
        existing = self.db.get_annotation(annotation_id)
        if existing is None:
            return None

        if "start_offset" in updates or "end_offset" in updates:
            merged = AnnotationCreate(**{**existing, **updates})
            document = self.db.get_document(existing["document_id"])
            merged = self.check_range(document, merged, text_from_range="selected_text" not in updates)
            updates = {
                **updates,
                "start_offset": merged.start_offset,
                "end_offset": merged.end_offset,
                "selected_text": merged.selected_text,
                "page_number": merged.page_number,
            }

        updates.pop("document_id", None)
        return self.db.update_annotation(annotation_id, updates)
