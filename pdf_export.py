# pdf_export.py
"""
Export a case report to PDF using reportlab.

A4 portrait, 15 mm margin. The report is built as independent sections
(header, customer, executive summary, charts, one per test, recommendations,
footer); each section is a list of flowables measured at the frame width,
then report_layout.paginate() decides which page it goes on and the
sections are drawn onto a canvas. Sections are never split across pages.

Images (company logo, test photos) are resolved to bytes up front. A
reference that cannot be fetched falls back to the stored reference, and
then to a blank placeholder box; it never aborts the export.
"""

from datetime import date, datetime
from pathlib import Path
import io
import logging
import re
import sqlite3
from typing import TYPE_CHECKING, Iterable

import requests
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas as pdf_canvas
from reportlab.platypus import Image, Paragraph, Spacer, Table, TableStyle

from domain.models import CaseDetail, CaseTest, CompanySettings
from report_charts import STATUS_COLORS, render_parameter_chart_png, render_status_chart_png
from report_layout import (
    CaseSummary,
    ReportSection,
    build_case_summary,
    page_outline,
    paginate,
)
from services import settings_service, storage_service
from services.session import SessionContext
from status_service import STATUSES

if TYPE_CHECKING:
    from database import CaseRepository

logger = logging.getLogger(__name__)

PAGE_SIZE = A4
MARGIN = 15 * mm
FRAME_WIDTH = PAGE_SIZE[0] - 2 * MARGIN
_MEASURE_HEIGHT = 100000.0

BLACK = colors.HexColor("#000000")
WHITE = colors.HexColor("#ffffff")
GREY = colors.HexColor("#6b7280")
LIGHT_GREY = colors.HexColor("#e5e7eb")
HEADER_BG = colors.HexColor("#1f2937")
BADGE_COLORS = {s: colors.HexColor(c) for s, c in STATUS_COLORS.items()}


class ReportExportError(RuntimeError):
    """The report could not be produced (missing case, unwritable file, render failure)."""


def _safe_filename(s: str) -> str:
    """Return a string safe for use in filenames."""
    s = re.sub(r'[<>:"/\\|?*]', "_", s or "")
    return s.strip() or "unknown"


def report_filename(customer_name: str, export_date: date | None = None) -> str:
    """oil-analysis-{customer_name}-{YYYY-MM-DD}.pdf"""
    d = export_date or date.today()
    return f"oil-analysis-{_safe_filename(customer_name)}-{d.isoformat()}.pdf"


def _esc(text) -> str:
    """Escape text for a reportlab Paragraph; newlines become line breaks."""
    s = str(text if text is not None else "")
    s = s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return s.replace("\n", "<br/>")


def long_date(value: date | str | None) -> str:
    """'October 18, 2026' from a date or ISO string; '' if unparseable."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value:%B} {value.day}, {value.year}"


def _num(v: float | None) -> str:
    if v is None:
        return "-"
    return f"{v:g}"


# --- Image resolution ---

def resolve_images(references: Iterable[str | None], timeout: float | None = None) -> dict[str, bytes | None]:
    """
    Fetch bytes for each distinct image reference. Failures are logged and
    recorded as None; the references themselves are left untouched.
    """
    resolved: dict[str, bytes | None] = {}
    for ref in references:
        if not ref or ref in resolved:
            continue
        try:
            resolved[ref] = storage_service.fetch_image_bytes(ref, timeout=timeout)
        except (requests.RequestException, OSError) as e:
            logger.warning("Could not fetch image %s for report: %s", ref, e)
            resolved[ref] = None
    return resolved


def _fit_image(img: Image, max_w: float, max_h: float) -> Image:
    # Preserve aspect ratio while fitting within max_w/max_h.
    ow = float(getattr(img, "imageWidth", img.drawWidth) or img.drawWidth)
    oh = float(getattr(img, "imageHeight", img.drawHeight) or img.drawHeight)
    if ow > 0 and oh > 0:
        scale = min(max_w / ow, max_h / oh, 1.0)
        img.drawWidth = ow * scale
        img.drawHeight = oh * scale
    return img


def _placeholder(max_w: float, max_h: float) -> Table:
    box = Table([[""]], colWidths=[max_w], rowHeights=[max_h])
    box.setStyle(
        TableStyle(
            [
                ("BOX", (0, 0), (-1, -1), 0.5, LIGHT_GREY),
                ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f9fafb")),
            ]
        )
    )
    return box


def _image_flowable(reference: str | None, resolved: dict[str, bytes | None], max_w: float, max_h: float):
    """
    Image for a reference: resolved bytes first, then the stored reference
    if it is a readable local file, then a blank placeholder.
    """
    if not reference:
        return None
    data = resolved.get(reference)
    if data:
        try:
            return _fit_image(Image(io.BytesIO(data)), max_w, max_h)
        except Exception as e:
            # PIL/reportlab raise several unrelated types for undecodable data
            logger.warning("Unreadable image data for %s: %s", reference, e)
    path = storage_service.local_path(reference)
    if path is not None and path.is_file():
        try:
            return _fit_image(Image(str(path)), max_w, max_h)
        except Exception as e:
            logger.warning("Unreadable image file %s: %s", path, e)
    return _placeholder(max_w, max_h)


def _png_flowable(png: bytes, width: float):
    if not png:
        return None
    img = Image(io.BytesIO(png))
    ow = float(getattr(img, "imageWidth", img.drawWidth) or img.drawWidth)
    oh = float(getattr(img, "imageHeight", img.drawHeight) or img.drawHeight)
    if ow > 0 and oh > 0:
        img.drawWidth = width
        img.drawHeight = width * oh / ow
    return img


# --- Styles ---

def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()["Normal"]
    return {
        "title": ParagraphStyle(
            name="ReportTitle", parent=base, fontName="Helvetica-Bold",
            fontSize=16, leading=20, textColor=BLACK,
        ),
        "heading": ParagraphStyle(
            name="SectionHeading", parent=base, fontName="Helvetica-Bold",
            fontSize=12, leading=16, textColor=BLACK, spaceAfter=4,
        ),
        "body": ParagraphStyle(
            name="Body", parent=base, fontName="Helvetica", fontSize=9, leading=12, textColor=BLACK,
        ),
        "small": ParagraphStyle(
            name="Small", parent=base, fontName="Helvetica", fontSize=8, leading=10, textColor=GREY,
        ),
        "right": ParagraphStyle(
            name="Right", parent=base, fontName="Helvetica", fontSize=9, leading=12,
            textColor=BLACK, alignment=2,
        ),
        "cell": ParagraphStyle(
            name="TableCell", parent=base, fontName="Helvetica", fontSize=8, leading=10,
            textColor=BLACK, alignment=1,
        ),
        "cell_header": ParagraphStyle(
            name="TableHeader", parent=base, fontName="Helvetica-Bold", fontSize=8, leading=10,
            textColor=WHITE, alignment=1,
        ),
        "center_small": ParagraphStyle(
            name="CenterSmall", parent=base, fontName="Helvetica", fontSize=8, leading=10,
            textColor=GREY, alignment=1,
        ),
    }


def _badge(status: str, style: ParagraphStyle) -> Table:
    t = Table([[Paragraph(f"<b>{_esc(status)}</b>", style)]], colWidths=[22 * mm])
    t.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, -1), BADGE_COLORS.get(status, GREY)),
                ("TOPPADDING", (0, 0), (-1, -1), 2),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
            ]
        )
    )
    return t


# --- Sections ---

def _header_section(settings: CompanySettings, resolved, export_date: date, st) -> list:
    logo = _image_flowable(settings.logo_url, resolved, 40 * mm, 20 * mm)
    lines = [f"<b>{_esc(settings.company_name)}</b>"]
    for value in (settings.address, settings.contact_number, settings.email):
        if value:
            lines.append(_esc(value))
    company = Paragraph("<br/>".join(lines), st["body"])
    dated = Paragraph(f"<b>Report Date</b><br/>{long_date(export_date)}", st["right"])
    left = [logo, company] if logo is not None else [company]
    left_w = FRAME_WIDTH * 0.65
    top = Table([[left, dated]], colWidths=[left_w, FRAME_WIDTH - left_w])
    top.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 0),
                ("LINEBELOW", (0, 0), (-1, -1), 1, BLACK),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    return [
        top,
        Spacer(1, 4 * mm),
        Paragraph("Oil Analysis Report", st["title"]),
        Spacer(1, 4 * mm),
    ]


def _customer_section(detail: CaseDetail, st) -> list:
    case = detail.case
    rows = [["Customer", case.customer_name]]
    if case.customer_email:
        rows.append(["Email", case.customer_email])
    if case.customer_mobile:
        rows.append(["Mobile", case.customer_mobile])
    if case.customer_address:
        rows.append(["Address", case.customer_address])
    data = [[Paragraph(f"<b>{_esc(k)}</b>", st["body"]), Paragraph(_esc(v), st["body"])] for k, v in rows]
    t = Table(data, colWidths=[35 * mm, FRAME_WIDTH - 35 * mm])
    t.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LINEBELOW", (0, 0), (-1, -1), 0.25, LIGHT_GREY),
            ]
        )
    )
    return [Paragraph("Customer Information", st["heading"]), t, Spacer(1, 5 * mm)]


def _summary_section(summary: CaseSummary, st) -> list:
    conditions = Table(
        [
            [Paragraph("<b>Machine Condition</b>", st["body"]), _badge(summary.machine_condition, st["cell_header"]),
             Paragraph("<b>Lubricant Condition</b>", st["body"]), _badge(summary.lubricant_condition, st["cell_header"])],
        ],
        colWidths=[40 * mm, 30 * mm, 40 * mm, 30 * mm],
        hAlign="LEFT",
    )
    conditions.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "MIDDLE")]))

    overall = Table(
        [[_badge(summary.overall_severity, st["cell_header"]), Paragraph(_esc(summary.overall_message), st["body"])]],
        colWidths=[30 * mm, FRAME_WIDTH - 30 * mm],
    )
    overall.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "MIDDLE"), ("LEFTPADDING", (0, 0), (0, 0), 0)]))

    header = [Paragraph("Tests", st["cell_header"]), Paragraph("Parameters", st["cell_header"])]
    values = [Paragraph(str(summary.test_count), st["cell"]), Paragraph(str(summary.total_results), st["cell"])]
    for s in STATUSES:
        header.append(Paragraph(s, st["cell_header"]))
        values.append(Paragraph(str(summary.status_counts.get(s, 0)), st["cell"]))
    counts = Table([header, values], colWidths=[FRAME_WIDTH / len(header)] * len(header))
    counts.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
                ("GRID", (0, 0), (-1, -1), 0.5, BLACK),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    return [
        Paragraph("Executive Summary", st["heading"]),
        conditions,
        Spacer(1, 3 * mm),
        overall,
        Spacer(1, 3 * mm),
        counts,
        Spacer(1, 5 * mm),
    ]


def _charts_section(summary: CaseSummary, st) -> list:
    chart = _png_flowable(render_status_chart_png(summary.status_counts), FRAME_WIDTH * 0.8)
    return [Paragraph("Results Overview", st["heading"]), chart, Spacer(1, 5 * mm)]


def _results_table(test: CaseTest, st) -> Table:
    headings = ["Parameter", "Lower Limit", "Upper Limit", "Actual Value", "Unit", "Particle Size", "Status"]
    data = [[Paragraph(h, st["cell_header"]) for h in headings]]
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("GRID", (0, 0), (-1, -1), 0.5, BLACK),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]
    for i, r in enumerate(test.results, start=1):
        data.append(
            [
                Paragraph(_esc(r.parameter_name), st["cell"]),
                Paragraph(_num(r.lower_limit), st["cell"]),
                Paragraph(_num(r.upper_limit), st["cell"]),
                Paragraph(_num(r.actual_value), st["cell"]),
                Paragraph(_esc(r.unit or "-"), st["cell"]),
                Paragraph(_esc(r.particle_size or "-"), st["cell"]),
                Paragraph(f"<b>{_esc(r.status)}</b>", st["cell_header"]),
            ]
        )
        style_cmds.append(("BACKGROUND", (6, i), (6, i), BADGE_COLORS.get(r.status, GREY)))
    widths = [0.22, 0.12, 0.12, 0.13, 0.11, 0.15, 0.15]
    t = Table(data, colWidths=[FRAME_WIDTH * w for w in widths], repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


def _test_section(test: CaseTest, resolved, st) -> list:
    flowables = [Paragraph(_esc(test.test_name), st["heading"])]
    performed = long_date(test.created_at)
    if performed:
        flowables.append(Paragraph(f"Performed on {performed}", st["small"]))
    flowables.append(Spacer(1, 2 * mm))
    image = _image_flowable(test.image_url, resolved, FRAME_WIDTH * 0.6, 70 * mm)
    if image is not None:
        flowables.append(image)
        if test.image_comment:
            flowables.append(Paragraph(_esc(test.image_comment), st["center_small"]))
        flowables.append(Spacer(1, 3 * mm))
    if test.results:
        flowables.append(_results_table(test, st))
        flowables.append(Spacer(1, 3 * mm))
        chart = _png_flowable(render_parameter_chart_png(test.results), FRAME_WIDTH * 0.8)
        if chart is not None:
            flowables.append(chart)
    else:
        flowables.append(Paragraph("No results recorded.", st["small"]))
    flowables.append(Spacer(1, 6 * mm))
    return flowables


def _recommendations_section(text: str, st) -> list:
    return [Paragraph("Recommendations", st["heading"]), Paragraph(_esc(text), st["body"]), Spacer(1, 5 * mm)]


def _footer_section(settings: CompanySettings, export_date: date, st) -> list:
    contact = " | ".join(_esc(v) for v in (settings.contact_number, settings.email) if v)
    lines = [f"<b>{_esc(settings.company_name)}</b>"]
    if contact:
        lines.append(contact)
    lines.append(f"Report generated on {long_date(export_date)}")
    return [Spacer(1, 3 * mm), Paragraph("<br/>".join(lines), st["center_small"])]


def measure_flowables(flowables: list, width: float = FRAME_WIDTH) -> float:
    """Total height in points of flowables stacked at the given width."""
    total = 0.0
    for f in flowables:
        _, h = f.wrap(width, _MEASURE_HEIGHT)
        total += f.getSpaceBefore() + h + f.getSpaceAfter()
    return total


def build_report_sections(
    detail: CaseDetail,
    settings: CompanySettings,
    resolved: dict[str, bytes | None],
    export_date: date,
) -> list[ReportSection]:
    """Sized report sections in their fixed order."""
    st = _styles()
    summary = build_case_summary(detail)
    parts: list[tuple[str, list]] = [
        ("header", _header_section(settings, resolved, export_date, st)),
        ("customer", _customer_section(detail, st)),
        ("summary", _summary_section(summary, st)),
        ("charts", _charts_section(summary, st)),
    ]
    for i, test in enumerate(detail.tests, start=1):
        parts.append((f"test-{i}", _test_section(test, resolved, st)))
    if (detail.case.recommendations or "").strip():
        parts.append(("recommendations", _recommendations_section(detail.case.recommendations, st)))
    parts.append(("footer", _footer_section(settings, export_date, st)))
    return [ReportSection(name, measure_flowables(fl), fl) for name, fl in parts]


# --- Drawing ---

def _draw_section(c, section: ReportSection, top: float, page_height: float) -> None:
    """Draw a section's flowables from `top` (distance from page top) downward."""
    printable = page_height - 2 * MARGIN
    scale = 1.0
    if section.height > printable:
        scale = printable / section.height
        logger.info("Section %s is taller than a page; scaled to %.2f", section.name, scale)
    c.saveState()
    # Work in a coordinate system whose origin is the section's top-left corner
    c.translate(MARGIN, page_height - top)
    c.scale(scale, scale)
    y = 0.0
    for f in section.payload:
        y += f.getSpaceBefore()
        _, h = f.wrap(FRAME_WIDTH, _MEASURE_HEIGHT)
        f.drawOn(c, 0, -(y + h))
        y += h + f.getSpaceAfter()
    c.restoreState()


def _draw_page_number(c, page_no: int, page_count: int) -> None:
    c.saveState()
    c.setFont("Helvetica", 7)
    c.setFillColor(GREY)
    c.drawRightString(PAGE_SIZE[0] - MARGIN, MARGIN / 2, f"Page {page_no} of {page_count}")
    c.restoreState()


def render_case_report(
    detail: CaseDetail,
    settings: CompanySettings,
    output_path: str | Path,
    export_date: date | None = None,
    image_timeout: float | None = None,
) -> list[list[str]]:
    """
    Write the report for a loaded case to output_path. Returns the page
    outline (section names per page).
    """
    export_date = export_date or date.today()
    refs = [settings.logo_url] + [t.image_url for t in detail.tests]
    resolved = resolve_images(refs, timeout=image_timeout)
    sections = build_report_sections(detail, settings, resolved, export_date)
    page_h = PAGE_SIZE[1]
    pages = paginate(sections, page_h, MARGIN)

    c = pdf_canvas.Canvas(str(output_path), pagesize=PAGE_SIZE)
    c.setTitle(f"Oil Analysis Report - {detail.case.customer_name}")
    c.setAuthor(settings.company_name)
    for page_no, page in enumerate(pages, start=1):
        for placement in page:
            _draw_section(c, placement.section, placement.y, page_h)
        _draw_page_number(c, page_no, len(pages))
        c.showPage()
    c.save()
    outline = page_outline(pages)
    logger.info("Wrote %s (%d page(s))", output_path, len(pages))
    return outline


def export_case_to_pdf(
    repo: "CaseRepository",
    session: SessionContext,
    case_id: str,
    output_dir: str | Path,
    export_date: date | None = None,
) -> Path:
    """
    Export one case to {output_dir}/oil-analysis-{customer}-{date}.pdf.
    Returns the written path. Raises ReportExportError on failure.
    """
    owner = session.require_owner()
    try:
        detail = repo.get_case_detail(case_id, owner)
        settings = settings_service.get_company_settings(repo, session) if detail is not None else None
    except sqlite3.Error as e:
        logger.error("Could not read case %s for export: %s", case_id, e)
        raise ReportExportError(f"Could not read case {case_id}: {e}") from e
    if detail is None:
        raise ReportExportError(f"Case {case_id} not found.")
    export_date = export_date or date.today()
    out_dir = Path(output_dir)
    out_path = out_dir / report_filename(detail.case.customer_name, export_date)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        render_case_report(detail, settings, out_path, export_date)
    except OSError as e:
        logger.error("Could not write report %s: %s", out_path, e)
        raise ReportExportError(f"Could not write {out_path}: {e}") from e
    except Exception as e:
        logger.exception("Report export failed for case %s", case_id)
        raise ReportExportError(f"Could not export report: {e}") from e
    return out_path
