"""Draw accumulated highlights onto a PDF.

Each highlight becomes a translucent yellow box, with its reason printed at
the page's left margin level with the top of the box. Highlights are drawn in
the order they were accepted, so later boxes sit on top of earlier ones.
"""

from dataclasses import dataclass

import fitz  # PyMuPDF

from .coords import DEFAULT_CANVAS, CanvasSize, map_region, to_top_left
from .errors import OutOfRangePageError
from .highlights import HighlightRecord
from .pdf_utils import open_pdf

# Colors (R, G, B) in 0-1 range for PyMuPDF
HIGHLIGHT_COLOR = (1.0, 0.92, 0.0)
HIGHLIGHT_OPACITY = 0.35
TEXT_COLOR = (0.75, 0.1, 0.1)

TEXT_MARGIN = 10.0
FONT_NAME = "helv"
FONT_SIZE = 8.0
TEXT_MAX_WIDTH = 200.0


@dataclass
class AnnotatedDocument:
    pdf_bytes: bytes
    highlights: list[HighlightRecord]


def fit_text(
    text: str,
    max_width: float = TEXT_MAX_WIDTH,
    fontname: str = FONT_NAME,
    fontsize: float = FONT_SIZE,
) -> str:
    """Collapse text to one line and cut it at the last glyph that fits."""
    line = " ".join(text.split())
    if fitz.get_text_length(line, fontname=fontname, fontsize=fontsize) <= max_width:
        return line

    lo, hi = 0, len(line)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if fitz.get_text_length(line[:mid], fontname=fontname, fontsize=fontsize) <= max_width:
            lo = mid
        else:
            hi = mid - 1
    return line[:lo].rstrip()


def draw_highlight(
    page: fitz.Page,
    record: HighlightRecord,
    canvas: CanvasSize = DEFAULT_CANVAS,
) -> fitz.Rect:
    """Draw one highlight (and its reason) on a page, return the box drawn.

    The box is computed on the page as displayed (page.rect honours /Rotate)
    and derotated into unrotated page space before drawing.
    """
    page_size = CanvasSize(page.rect.width, page.rect.height)
    mapped = map_region(record.region, canvas, page_size)
    rect = fitz.Rect(*to_top_left(mapped, page_size.height))
    derotate = page.derotation_matrix

    page.draw_rect(
        rect * derotate,
        color=None,
        fill=HIGHLIGHT_COLOR,
        fill_opacity=HIGHLIGHT_OPACITY,
        width=0,
        overlay=True,
    )

    if record.reason:
        text = fit_text(record.reason)
        if text:
            # baseline sits on the box's top edge
            page.insert_text(
                fitz.Point(TEXT_MARGIN, rect.y0) * derotate,
                text,
                fontname=FONT_NAME,
                fontsize=FONT_SIZE,
                color=TEXT_COLOR,
                rotate=page.rotation,
                overlay=True,
            )
    return rect


def render_highlights(
    pdf_bytes: bytes,
    highlights: list[HighlightRecord],
    canvas: CanvasSize = DEFAULT_CANVAS,
) -> AnnotatedDocument:
    """Render highlights onto a fresh copy of the document.

    The whole render is aborted if any highlight points past the last page;
    no partially annotated document is produced.

    Raises:
        OutOfRangePageError: if a highlight's page does not exist
        InvalidRegionError: if a highlight maps to a negative size
    """
    doc = open_pdf(pdf_bytes)
    try:
        page_count = len(doc)
        for record in highlights:
            if not 1 <= record.page_number <= page_count:
                raise OutOfRangePageError(record.page_number, page_count)

        for record in highlights:
            draw_highlight(doc[record.page_number - 1], record, canvas)

        result = doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()

    return AnnotatedDocument(pdf_bytes=result, highlights=list(highlights))
