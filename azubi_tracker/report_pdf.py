"""Fill a blank Berichtsheft PDF form with generated report text.

The form is an arbitrary user-supplied PDF. Nothing is read from its content:
three text boxes on the first page are described by a static coordinate table
measured from the bottom-left corner. Each box is filled by a greedy word wrap
at a fixed font size; text that would run below a box's floor is dropped.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from pypdf import PdfReader, PdfWriter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from azubi_tracker.models import ReportContent

LOGGER = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
FONT_SIZE = 10
HOURS_FONT_SIZE = 12
LINE_HEIGHT = 14
PADDING = 12

_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("•", "-"),
    ("–", "-"),
    ("—", "-"),
    ("“", '"'),
    ("”", '"'),
    ("‘", "'"),
    ("’", "'"),
    ("…", "..."),
)
_UNSUPPORTED_CHARS = re.compile(r"[^\x20-\x7E\xA0-\xFF\n\r]")
_PARAGRAPH_SPLIT = re.compile(r"\r?\n")

Measure = Callable[[str], float]


class TemplateUnreadableError(ValueError):
    """The uploaded template is missing or not a readable PDF."""


class RenderingError(RuntimeError):
    """Drawing or serializing the filled PDF failed."""


@dataclass(frozen=True)
class TextRegion:
    x: float
    top: float
    width: float
    min_y: float


@dataclass(frozen=True)
class PlacedLine:
    text: str
    x: float
    y: float


@dataclass(frozen=True)
class FormLayout:
    workplace: TextRegion
    instruction: TextRegion
    school: TextRegion
    hours_x: float = 520
    hours_y: float = 55


def form_layout(page_height: float) -> FormLayout:
    """Box geometry of the Berichtsheft form for a page of the given height."""

    return FormLayout(
        workplace=TextRegion(x=60, top=page_height - 170, width=430, min_y=page_height - 350),
        instruction=TextRegion(x=60, top=page_height - 375, width=430, min_y=page_height - 570),
        school=TextRegion(x=60, top=page_height - 595, width=430, min_y=130),
    )


def sanitize_text(text: str | None) -> str:
    """Reduce text to what the embedded standard font can encode (Latin-1 plus newlines)."""

    if not text:
        return ""
    cleaned = str(text)
    for source, target in _REPLACEMENTS:
        cleaned = cleaned.replace(source, target)
    return _UNSUPPORTED_CHARS.sub("", cleaned)


def helvetica_width(text: str) -> float:
    return stringWidth(text, FONT_NAME, FONT_SIZE)


def layout_text(
    text: str | None,
    region: TextRegion,
    *,
    measure: Measure = helvetica_width,
    line_height: float = LINE_HEIGHT,
    padding: float = PADDING,
) -> list[PlacedLine]:
    """Greedy word wrap of ``text`` into ``region``.

    Paragraphs come from explicit newlines. Words are added to a line while
    the measured width fits ``region.width - padding``; a blank paragraph
    only advances the cursor by half a line. Once the cursor falls below
    ``region.min_y`` the remaining text is silently dropped.
    """

    placed: list[PlacedLine] = []
    current_y = region.top - padding
    start_x = region.x + padding / 2
    max_width = region.width - padding

    for paragraph in _PARAGRAPH_SPLIT.split(sanitize_text(text)):
        if current_y < region.min_y:
            break

        line = ""
        for word in paragraph.split(" "):
            candidate = f"{line} {word}" if line else word
            if measure(candidate) > max_width and line:
                placed.append(PlacedLine(text=line, x=start_x, y=current_y))
                current_y -= line_height
                line = word
                if current_y < region.min_y:
                    return placed
            else:
                line = candidate

        if line and current_y >= region.min_y:
            placed.append(PlacedLine(text=line, x=start_x, y=current_y))
            current_y -= line_height

        if paragraph.strip() == "":
            current_y -= line_height / 2

    return placed


def _load_template(template_bytes: bytes | None) -> PdfReader:
    if not template_bytes:
        raise TemplateUnreadableError("Bitte zuerst eine PDF-Vorlage hochladen.")
    try:
        reader = PdfReader(io.BytesIO(template_bytes))
        if len(reader.pages) == 0:
            raise TemplateUnreadableError("Die PDF-Vorlage enthält keine Seiten.")
    except TemplateUnreadableError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise TemplateUnreadableError(f"Die PDF-Vorlage konnte nicht gelesen werden: {exc}") from exc
    return reader


def _draw_lines(pdf_canvas: canvas.Canvas, lines: Sequence[PlacedLine]) -> None:
    for line in lines:
        pdf_canvas.drawString(line.x, line.y, line.text)


def _build_overlay(content: ReportContent, width: float, height: float) -> bytes:
    layout = form_layout(height)
    buffer = io.BytesIO()
    pdf_canvas = canvas.Canvas(buffer, pagesize=(width, height))
    pdf_canvas.setFillColorRGB(0, 0, 0)
    pdf_canvas.setFont(FONT_NAME, FONT_SIZE)

    # Header fields (report number, week, dates) stay blank for handwritten entry.
    _draw_lines(pdf_canvas, layout_text(content.workplace_activities, layout.workplace))
    _draw_lines(pdf_canvas, layout_text(content.instruction, layout.instruction))
    _draw_lines(pdf_canvas, layout_text(content.school_topics, layout.school))

    pdf_canvas.setFont(FONT_NAME, HOURS_FONT_SIZE)
    pdf_canvas.drawString(layout.hours_x, layout.hours_y, sanitize_text(content.total_hours))
    pdf_canvas.showPage()
    pdf_canvas.save()
    return buffer.getvalue()


def render_report_pdf(template_bytes: bytes | None, content: ReportContent) -> bytes:
    """Return the template with the report text drawn onto its first page."""

    reader = _load_template(template_bytes)
    try:
        first_page = reader.pages[0]
        width = float(first_page.mediabox.width)
        height = float(first_page.mediabox.height)
        overlay_page = PdfReader(io.BytesIO(_build_overlay(content, width, height))).pages[0]

        writer = PdfWriter(clone_from=reader)
        writer.pages[0].merge_page(overlay_page)
        output = io.BytesIO()
        writer.write(output)
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("PDF generation failed: %s", exc)
        raise RenderingError(str(exc)) from exc
    return output.getvalue()


def report_filename(week_number: int) -> str:
    return f"Berichtsheft_KW{week_number}.pdf"


__all__ = [
    "FONT_SIZE",
    "FormLayout",
    "LINE_HEIGHT",
    "PADDING",
    "PlacedLine",
    "RenderingError",
    "TemplateUnreadableError",
    "TextRegion",
    "form_layout",
    "helvetica_width",
    "layout_text",
    "render_report_pdf",
    "report_filename",
    "sanitize_text",
]
