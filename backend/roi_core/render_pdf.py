"""Region report PDF (ReportLab Platypus, flows across pages)."""

from __future__ import annotations

import re
from datetime import date
from io import BytesIO
from typing import Any, Dict, List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import HRFlowable, KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .render_md import _clean, _fmt_money, _fmt_pct
from .sections import NOT_AVAILABLE, SECTION_FIELDS, strip_heading_marks

PAGE_W, PAGE_H = A4
MARGIN = 2 * cm
CONTENT_W = PAGE_W - 2 * MARGIN

ROI_GREEN = colors.HexColor("#0F9D74")
PAPER = colors.HexColor("#FBFBF8")
RULE = colors.HexColor("#D9DEE3")
MUTED = colors.HexColor("#5F6B76")
INK = colors.HexColor("#1B2430")


def _clean_text(s: Any) -> str:
    return re.sub(r"[ \t]+", " ", _clean(s)).strip()


def _inline_md(text: str) -> str:
    """Escape for Platypus and keep **bold** markers as <b>."""
    t = escape(_clean_text(text))
    return re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", t)


def _styles() -> Dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    body = ParagraphStyle("Body", parent=base["Normal"], fontName="Helvetica", fontSize=9.5, leading=13, textColor=INK)
    return {
        "Title": ParagraphStyle("Title", parent=base["Title"], fontSize=20, leading=24, alignment=0, textColor=INK, spaceAfter=2),
        "Sub": ParagraphStyle("Sub", parent=body, fontSize=10, textColor=MUTED),
        "H2": ParagraphStyle("H2", parent=base["Heading2"], fontSize=12, leading=15, textColor=INK, spaceBefore=10, spaceAfter=2),
        "H3": ParagraphStyle("H3", parent=base["Heading4"], fontSize=10, leading=12.5, textColor=ROI_GREEN, spaceBefore=5, spaceAfter=1),
        "Body": body,
        "Label": ParagraphStyle("Label", parent=body, fontSize=8, leading=10, textColor=MUTED),
        "Figure": ParagraphStyle("Figure", parent=body, fontName="Helvetica-Bold", fontSize=11, leading=14),
        "Headline": ParagraphStyle("Headline", parent=body, fontName="Helvetica-Bold", fontSize=22, leading=26, textColor=ROI_GREEN),
    }


def _heading(text: str, styles) -> List[Any]:
    return [
        Paragraph(_inline_md(text), styles["H2"]),
        HRFlowable(width="100%", thickness=0.7, color=RULE, spaceBefore=0, spaceAfter=4),
    ]


def _figures(region: Dict[str, Any], styles) -> Table:
    """ROI as the headline cell, the other figures stacked label over value."""
    figures = [
        ("Projected revenue", _clean_text(region.get("projectedRevenue")) or "—"),
        ("Projected cost", _fmt_money(region.get("projectedCost"))),
        ("Net profit", _fmt_money(region.get("netProfit"))),
        ("Timeline", _clean_text(region.get("timeline")) or "—"),
    ]
    roi_cell = [Paragraph("ROI", styles["Label"]), Paragraph(escape(_fmt_pct(region.get("roiPercentage"))), styles["Headline"])]
    cells = [[Paragraph(escape(label), styles["Label"]), Paragraph(escape(value), styles["Figure"])] for label, value in figures]

    roi_w = CONTENT_W * 0.28
    cell_w = (CONTENT_W - roi_w) / len(cells)
    tbl = Table([[roi_cell, *cells]], colWidths=[roi_w] + [cell_w] * len(cells), hAlign="LEFT")
    tbl.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (0, 0), colors.white),
                ("LINEAFTER", (0, 0), (-2, 0), 0.5, RULE),
                ("BOX", (0, 0), (-1, -1), 0.7, RULE),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("TOPPADDING", (0, 0), (-1, -1), 7),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 7),
                ("LEFTPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    return tbl


def _markdown_flowables(md: str, styles) -> List[Any]:
    """Headings, '---' separators, bullets and paragraphs; anything else is plain text."""
    out: List[Any] = []
    para: List[str] = []

    def flush():
        if para:
            out.append(Paragraph(_inline_md(" ".join(para)), styles["Body"]))
            out.append(Spacer(1, 3))
            para.clear()

    for ln in (md or "").splitlines():
        s = ln.strip()
        if not s or s == "---":
            flush()
            if s:
                out.append(Spacer(1, 6))
        elif s.startswith("#"):
            flush()
            level = len(s) - len(s.lstrip("#"))
            out.append(Paragraph(_inline_md(strip_heading_marks(s)), styles["H2" if level <= 2 else "H3"]))
        elif s[:2] in ("- ", "* "):
            flush()
            out.append(Paragraph(_inline_md(s[2:]), styles["Body"], bulletText="•"))
        else:
            para.append(s)
    flush()
    return out


def _decorate_page(canvas, doc, city: str, region_name: str):
    canvas.saveState()
    canvas.setFillColor(PAPER)
    canvas.rect(0, 0, PAGE_W, PAGE_H, stroke=0, fill=1)

    # green band with the city name
    canvas.setFillColor(ROI_GREEN)
    canvas.rect(0, PAGE_H - 0.9 * cm, PAGE_W, 0.9 * cm, stroke=0, fill=1)
    canvas.setFillColor(colors.white)
    canvas.setFont("Helvetica-Bold", 9)
    canvas.drawString(MARGIN, PAGE_H - 0.6 * cm, f"{city.upper()}  ROI REPORT")

    canvas.setStrokeColor(RULE)
    canvas.setLineWidth(0.5)
    canvas.line(MARGIN, 1.2 * cm, PAGE_W - MARGIN, 1.2 * cm)
    canvas.setFillColor(MUTED)
    canvas.setFont("Helvetica", 8)
    canvas.drawString(MARGIN, 0.8 * cm, f"{region_name} · generated {date.today().isoformat()}")
    canvas.drawRightString(PAGE_W - MARGIN, 0.8 * cm, str(doc.page))
    canvas.restoreState()


def render_region_pdf(region: Dict[str, Any], city: str) -> bytes:
    styles = _styles()
    name = _clean_text(region.get("name") or region.get("id")) or "Region"
    city_clean = _clean_text(city) or "—"

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=1.7 * cm,
        bottomMargin=1.6 * cm,
        title=f"ROI Report: {name}, {city_clean}",
        author="City ROI Report",
    )

    story: List[Any] = [
        Paragraph(_inline_md(name), styles["Title"]),
        Paragraph(_inline_md(city_clean), styles["Sub"]),
        Spacer(1, 10),
        _figures(region, styles),
    ]

    summary = _clean_text(region.get("executiveSummary"))
    if summary:
        story += _heading("Executive summary", styles)
        story.append(Paragraph(_inline_md(summary), styles["Body"]))

    story += _heading("Analysis", styles)
    for field, label in SECTION_FIELDS:
        text = str(region.get(field) or NOT_AVAILABLE)
        story.append(KeepTogether([Paragraph(_inline_md(label), styles["H3"]), *_markdown_flowables(text, styles)]))

    full = str(region.get("detailed_report") or "")
    if full.strip():
        story += _heading("Full report", styles)
        story.extend(_markdown_flowables(full, styles))

    def decorate(canvas, doc_):
        _decorate_page(canvas, doc_, city_clean, name)

    doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
    return buf.getvalue()
