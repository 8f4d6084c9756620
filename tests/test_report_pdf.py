from __future__ import annotations

import io

import pytest
from pypdf import PdfReader
from reportlab.pdfgen import canvas

from azubi_tracker.models import ReportContent
from azubi_tracker.report_pdf import (
    TemplateUnreadableError,
    TextRegion,
    form_layout,
    layout_text,
    render_report_pdf,
    report_filename,
    sanitize_text,
)

SMALL_REGION = TextRegion(x=0, top=100, width=22, min_y=50)


def _template(pages: int = 1) -> bytes:
    buffer = io.BytesIO()
    pdf_canvas = canvas.Canvas(buffer, pagesize=(595, 842))
    for number in range(pages):
        pdf_canvas.drawString(40, 800, f"Ausbildungsnachweis Seite {number + 1}")
        pdf_canvas.showPage()
    pdf_canvas.save()
    return buffer.getvalue()


def test_sanitize_replaces_typographic_characters() -> None:
    assert sanitize_text("• Regale – “gut” … 😀") == '- Regale - "gut" ... '


def test_sanitize_keeps_umlauts_and_newlines() -> None:
    assert sanitize_text("Käse prüfen\nÖl") == "Käse prüfen\nÖl"
    assert sanitize_text(None) == ""


def test_sanitize_is_idempotent() -> None:
    text = "“Kasse” — Abschluss… • 50 € ✓"
    once = sanitize_text(text)

    assert sanitize_text(once) == once


def test_layout_wraps_greedily_inside_padding() -> None:
    lines = layout_text("aaaa bbbb cccc dddd", SMALL_REGION, measure=len)

    assert [line.text for line in lines] == ["aaaa bbbb", "cccc dddd"]
    assert [line.y for line in lines] == [88, 74]
    assert all(line.x == 6 for line in lines)


def test_layout_never_places_lines_below_floor() -> None:
    lines = layout_text("aaaa bbbb cccc dddd eeee ffff gggg hhhh", SMALL_REGION, measure=len)

    assert len(lines) == 3
    assert all(line.y >= SMALL_REGION.min_y for line in lines)


def test_blank_paragraph_advances_half_a_line() -> None:
    lines = layout_text("a\n\nb", SMALL_REGION, measure=len)

    assert [(line.text, line.y) for line in lines] == [("a", 88), ("b", 67)]


def test_rewrapping_wrapped_lines_is_stable() -> None:
    region = TextRegion(x=60, top=800, width=430, min_y=0)
    text = "Regale im Getränkemarkt eingeräumt und die Mindesthaltbarkeit in der Molkerei geprüft. " * 4

    first = [line.text for line in layout_text(text, region)]
    second = [line.text for line in layout_text("\n".join(first), region)]

    assert second == first


def test_long_text_is_cut_at_region_floor() -> None:
    region = TextRegion(x=60, top=800, width=430, min_y=600)
    text = "A very long sentence repeated forty times. " * 40

    lines = layout_text(text, region)

    assert len(lines) == 14
    assert all(line.y >= region.min_y for line in lines)
    assert sum(len(line.text.split()) for line in lines) < len(text.split())


def test_form_layout_for_a4() -> None:
    layout = form_layout(842)

    assert layout.workplace.top == 672
    assert layout.instruction.min_y == 272
    assert layout.school.min_y == 130


@pytest.mark.parametrize("template", [None, b"", b"not a pdf at all"])
def test_unreadable_template(template: bytes | None) -> None:
    with pytest.raises(TemplateUnreadableError):
        render_report_pdf(template, ReportContent(workplace_activities="Kasse"))


def test_render_overlays_first_page_and_keeps_the_rest() -> None:
    content = ReportContent(
        workplace_activities="• Regale eingeräumt\n• Kasse abgerechnet",
        instruction="Warenannahme: Lieferschein geprüft.",
        school_topics="Mathe: Dreisatz",
        total_hours="40",
    )

    result = render_report_pdf(_template(pages=2), content)

    assert result.startswith(b"%PDF")
    reader = PdfReader(io.BytesIO(result))
    assert len(reader.pages) == 2
    first_page_text = reader.pages[0].extract_text()
    assert "Regale" in first_page_text
    assert "Dreisatz" in first_page_text
    assert "Dreisatz" not in reader.pages[1].extract_text()


def test_report_filename() -> None:
    assert report_filename(11) == "Berichtsheft_KW11.pdf"
