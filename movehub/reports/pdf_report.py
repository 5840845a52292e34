"""
Job inventory reports (completion, insurance, delivery, picking) as PDF.

Layout works in millimetres with a top-down cursor on an A4 page; the cursor
is converted to ReportLab's bottom-up points only when drawing. Footers need
the final page count, so pages are buffered by the canvas and stamped in a
second pass when the document is saved.
"""
import base64
import binascii
import io
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

import structlog
from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from ..config import settings
from ..errors import GenerationError, InvalidReportData
from ..schemas.reports import ItemData, JobData, ReportData
from ..services.aggregation import summarize_items
from .formatting import (
    capitalize,
    format_currency,
    format_date,
    format_time,
    format_timestamp,
    truncate_text,
)


logger = structlog.get_logger(__name__)

PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
MARGIN_MM = 20.0
ITEM_BREAK_MM = 40.0  # new page before an item row once the cursor is this close to the bottom
SIGNATURE_BREAK_MM = 60.0
FOOTER_OFFSET_MM = 15.0

TABLE_HEADERS = ("Item Name", "Category", "Qty", "Condition", "Value", "Notes")
COLUMN_WIDTHS_MM = (50, 35, 15, 25, 25, 20)
SINGLE_ROW_MM = 8.0
DOUBLE_ROW_MM = 12.0
ROW_GAP_MM = 2.0
NAME_BUDGET = 45
CATEGORY_BUDGET = 30
HANDLING_BUDGET = 100
DETAIL_LINE_BUDGET = 120

AI_CONFIDENCE_THRESHOLD = 0.8

PRIMARY = colors.Color(128 / 255.0, 14 / 255.0, 19 / 255.0)
HEADER_BOX = colors.Color(245 / 255.0, 245 / 255.0, 245 / 255.0)
STRIPE = colors.Color(250 / 255.0, 250 / 255.0, 250 / 255.0)
SUMMARY_BOX = colors.Color(248 / 255.0, 249 / 255.0, 250 / 255.0)
MUTED = colors.Color(100 / 255.0, 100 / 255.0, 100 / 255.0)
RULE = colors.Color(200 / 255.0, 200 / 255.0, 200 / 255.0)

REPORT_TITLES = {
    "completion": "Job Completion Report",
    "insurance": "Insurance Claim Report",
    "delivery": "Delivery Receipt",
    "picking": "Picking List",
}
DEFAULT_TITLE = "Inventory Report"

FILENAME_LABELS = {
    "completion": "Completion_Report",
    "insurance": "Insurance_Report",
    "delivery": "Delivery_Receipt",
    "picking": "Picking_List",
}
DEFAULT_FILENAME_LABEL = "Report"

DEJAVU_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"


@dataclass(frozen=True)
class FontSet:
    regular: str
    bold: str
    italic: str


@lru_cache(maxsize=1)
def _register_fonts() -> FontSet:
    """Use a Unicode TTF when one is available (₹, ✓), otherwise the built-in Helvetica."""
    for path in (settings.report_font_path, DEJAVU_PATH):
        if not path or not os.path.exists(path):
            continue
        try:
            pdfmetrics.registerFont(TTFont("ReportSans", path))
            bold, italic = "ReportSans", "ReportSans"
            base, ext = os.path.splitext(path)
            if os.path.exists(f"{base}-Bold{ext}"):
                pdfmetrics.registerFont(TTFont("ReportSans-Bold", f"{base}-Bold{ext}"))
                bold = "ReportSans-Bold"
            if os.path.exists(f"{base}-Oblique{ext}"):
                pdfmetrics.registerFont(TTFont("ReportSans-Oblique", f"{base}-Oblique{ext}"))
                italic = "ReportSans-Oblique"
            return FontSet("ReportSans", bold, italic)
        except Exception as e:
            logger.warning("report_font_register_failed", path=path, error=str(e))
    return FontSet("Helvetica", "Helvetica-Bold", "Helvetica-Oblique")


def report_title(report_type: Optional[str]) -> str:
    return REPORT_TITLES.get(report_type or "", DEFAULT_TITLE)


def report_filename(report_type: Optional[str], job_number: str, generated_at: datetime) -> str:
    if generated_at.tzinfo is not None:
        generated_at = generated_at.astimezone(timezone.utc)
    label = FILENAME_LABELS.get(report_type or "", DEFAULT_FILENAME_LABEL)
    name = f"{label}_{job_number}_{generated_at.strftime('%Y-%m-%d')}.pdf"
    return name.replace(" ", "_")


def item_notes(item: ItemData) -> str:
    notes = []
    if item.ai_confidence_score is not None and item.ai_confidence_score >= AI_CONFIDENCE_THRESHOLD:
        notes.append("AI✓")
    if item.manual_verification:
        notes.append("Review")
    if item.fragile:
        notes.append("Fragile")
    return ", ".join(notes)


def item_detail_line(item: ItemData) -> str:
    """Second table line; empty when the item has nothing extra to show."""
    parts = []
    if item.dimensions:
        parts.append(f"Size: {item.dimensions}")
    if item.fragile:
        parts.append("FRAGILE")
    if item.handling_instructions:
        parts.append(f"Special: {truncate_text(item.handling_instructions, HANDLING_BUDGET)}")
    return truncate_text(" • ".join(parts), DETAIL_LINE_BUDGET)


def item_row_cells(item: ItemData) -> Tuple[str, ...]:
    return (
        truncate_text(item.item_name, NAME_BUDGET),
        truncate_text(item.category, CATEGORY_BUDGET),
        str(item.quantity),
        capitalize(item.condition),
        format_currency(item.item_value),
        item_notes(item),
    )


def decode_signature(data_url: str) -> bytes:
    """Raw image bytes from a `data:image/...;base64,` URL (or bare base64)."""
    payload = data_url.split(",", 1)[1] if data_url.startswith("data:") else data_url
    return base64.b64decode(payload, validate=True)


@dataclass(frozen=True)
class RowPlacement:
    index: int
    page: int
    top_mm: float
    bottom_mm: float


@dataclass
class RenderedReport:
    content: bytes
    filename: str
    page_count: int
    rows: List[RowPlacement] = field(default_factory=list)
    footers: List[str] = field(default_factory=list)


class _FooterCanvas(canvas.Canvas):
    """Holds every page until save() so the footer can say `Page N of M`."""

    def __init__(self, *args, footer: Optional[Callable] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []
        self._footer = footer

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            if self._footer:
                self._footer(self, self._pageNumber, total)
            super().showPage()
        super().save()


class _Layout:
    """Cursor-based layout for one report; not reused between reports."""

    def __init__(self, c: canvas.Canvas, fonts: FontSet):
        self.c = c
        self.fonts = fonts
        self.y = MARGIN_MM
        self.page = 1
        self.rows: List[RowPlacement] = []

    # -- primitives (x/y in mm, y measured from the top edge) --
    def text(self, x: float, y: float, value: str, align: str = "left") -> None:
        px, py = x * mm, (PAGE_HEIGHT_MM - y) * mm
        if align == "center":
            self.c.drawCentredString(px, py, value)
        elif align == "right":
            self.c.drawRightString(px, py, value)
        else:
            self.c.drawString(px, py, value)

    def rect(self, x: float, y: float, w: float, h: float, fill: bool = False) -> None:
        self.c.rect(x * mm, (PAGE_HEIGHT_MM - y - h) * mm, w * mm, h * mm, stroke=0 if fill else 1, fill=1 if fill else 0)

    def line(self, x1: float, y1: float, x2: float, y2: float) -> None:
        self.c.line(x1 * mm, (PAGE_HEIGHT_MM - y1) * mm, x2 * mm, (PAGE_HEIGHT_MM - y2) * mm)

    def font(self, name: str, size: float, color=colors.black) -> None:
        self.c.setFont(name, size)
        self.c.setFillColor(color)

    def new_page(self) -> None:
        self.c.showPage()
        self.page += 1
        self.y = MARGIN_MM

    @property
    def content_width(self) -> float:
        return PAGE_WIDTH_MM - 2 * MARGIN_MM

    # -- sections --
    def header(self, job: JobData, report_type: str) -> None:
        self.c.setFillColor(PRIMARY)
        self.rect(MARGIN_MM, self.y, 40, 15, fill=True)
        self.font(self.fonts.bold, 12, colors.white)
        company_words = settings.company_name.split()
        self.text(MARGIN_MM + 2, self.y + 10, company_words[0] if company_words else "")
        if len(company_words) > 1:
            self.text(MARGIN_MM + 2, self.y + 13, " ".join(company_words[1:]))

        self.font(self.fonts.regular, 10)
        detail_y = self.y + 5
        for detail in (
            settings.company_tagline,
            f"Phone: {settings.company_phone}",
            f"Email: {settings.company_email}",
        ):
            self.text(MARGIN_MM + 45, detail_y, detail)
            detail_y += 3.5
        self.y += 20

        self.font(self.fonts.bold, 16, PRIMARY)
        self.text(PAGE_WIDTH_MM / 2, self.y, report_title(report_type), align="center")
        self.y += 10

        self.c.setFillColor(HEADER_BOX)
        self.rect(MARGIN_MM, self.y, self.content_width, 25, fill=True)
        self.font(self.fonts.bold, 12)
        self.text(MARGIN_MM + 5, self.y + 7, "Job Details")

        self.font(self.fonts.regular, 10)
        left = [
            f"Job Number: {job.job_number}",
            f"Client: {job.client_name}",
            f"Status: {(job.status or '').upper()}",
        ]
        right = [
            f"Date: {format_date(job.created_at)}" if job.created_at else "",
            f"Pickup: {job.pickup_location}" if job.pickup_location else "",
            f"Delivery: {job.delivery_location}" if job.delivery_location else "",
        ]
        self._two_columns(left, [r for r in right if r], self.y + 12)
        self.y += 30

    def _two_columns(self, left: Sequence[str], right: Sequence[str], start_y: float) -> None:
        y = start_y
        for value in left:
            self.text(MARGIN_MM + 5, y, value)
            y += 4
        y = start_y
        for value in right:
            self.text(PAGE_WIDTH_MM / 2 + 10, y, value)
            y += 4

    def items_table(self, items: Sequence[ItemData]) -> None:
        self.c.setFillColor(PRIMARY)
        self.rect(MARGIN_MM, self.y, self.content_width, 8, fill=True)
        self.font(self.fonts.bold, 9, colors.white)
        x = MARGIN_MM + 2
        for header, width in zip(TABLE_HEADERS, COLUMN_WIDTHS_MM):
            self.text(x, self.y + 5.5, header)
            x += width
        self.y += 8

        for index, item in enumerate(items):
            detail = item_detail_line(item)
            row_height = DOUBLE_ROW_MM if detail else SINGLE_ROW_MM
            # Break early enough that the row and its rule fit above the bottom margin
            if (
                self.y > PAGE_HEIGHT_MM - ITEM_BREAK_MM
                or self.y + row_height + ROW_GAP_MM > PAGE_HEIGHT_MM - MARGIN_MM
            ):
                self.new_page()
            top = self.y

            if index % 2 == 0:
                self.c.setFillColor(STRIPE)
                self.rect(MARGIN_MM, top, self.content_width, row_height, fill=True)

            self.font(self.fonts.regular, 8)
            x = MARGIN_MM + 2
            for cell, width in zip(item_row_cells(item), COLUMN_WIDTHS_MM):
                self.text(x, top + 4, cell)
                x += width

            if detail:
                self.font(self.fonts.italic, 7, MUTED)
                self.text(MARGIN_MM + 2, top + 8, detail)
            self.y += row_height

            self.c.setStrokeColor(RULE)
            self.line(MARGIN_MM, self.y, PAGE_WIDTH_MM - MARGIN_MM, self.y)
            self.c.setStrokeColor(colors.black)
            self.y += ROW_GAP_MM
            self.rows.append(RowPlacement(index=index, page=self.page, top_mm=top, bottom_mm=top + row_height))

        self.y += 5

    def summary(self, items: Sequence[ItemData], generated_at: datetime) -> None:
        if self.y + 30 > PAGE_HEIGHT_MM - MARGIN_MM:
            self.new_page()
        totals = summarize_items(items)

        self.c.setFillColor(SUMMARY_BOX)
        self.rect(MARGIN_MM, self.y, self.content_width, 25, fill=True)
        self.font(self.fonts.bold, 12, PRIMARY)
        self.text(MARGIN_MM + 5, self.y + 7, "Summary")

        self.font(self.fonts.regular, 10)
        left = [
            f"Total Items: {totals.total_quantity}",
            f"Categories: {totals.category_count}",
            f"Damaged Items: {totals.damaged_count}",
        ]
        right = [
            f"Total Estimated Value: {format_currency(totals.total_value)}",
            f"Fragile Items: {totals.fragile_count}",
            f"Generated: {format_timestamp(generated_at)}",
        ]
        self._two_columns(left, right, self.y + 12)
        self.y += 30

    def signatures(self, customer: Optional[bytes], staff: Optional[bytes]) -> None:
        if self.y > PAGE_HEIGHT_MM - SIGNATURE_BREAK_MM:
            self.new_page()

        self.font(self.fonts.bold, 12, PRIMARY)
        self.text(MARGIN_MM, self.y, "Signatures")
        self.y += 10

        self.font(self.fonts.regular, 10)
        box_width = (PAGE_WIDTH_MM - 3 * MARGIN_MM) / 2
        boxes = (
            (MARGIN_MM, "Customer Signature", customer),
            (PAGE_WIDTH_MM / 2 + 10, "Staff Signature", staff),
        )
        for x, label, image in boxes:
            self.c.setStrokeColor(colors.black)
            self.rect(x, self.y, box_width, 25)
            if image:
                self.c.drawImage(
                    ImageReader(io.BytesIO(image)),
                    (x + 2) * mm,
                    (PAGE_HEIGHT_MM - self.y - 16) * mm,
                    width=(box_width - 4) * mm,
                    height=14 * mm,
                    preserveAspectRatio=True,
                    mask="auto",
                )
            self.text(x + 5, self.y + 20, label)
            self.text(x + 5, self.y + 23, "Date: _______________")
        self.y += 30


class ReportGenerator:
    """Renders a ReportData snapshot; one instance can render many reports."""

    def __init__(self, fonts: Optional[FontSet] = None):
        self.fonts = fonts

    def generate(self, report_data: ReportData) -> bytes:
        return self.render(report_data).content

    def render(self, report_data: ReportData) -> RenderedReport:
        job, items, signatures = self._validate(report_data)
        generated_at = report_data.generated_at or datetime.now(timezone.utc)
        filename = report_filename(report_data.report_type, job.job_number, generated_at)
        try:
            rendered = self._render(report_data, job, items, signatures, generated_at, filename)
        except Exception as e:
            logger.error("report_generation_failed", job_number=job.job_number, error=str(e), exc_info=True)
            raise GenerationError("Failed to generate PDF report") from e
        logger.info(
            "report_generated",
            job_number=job.job_number,
            report_type=report_data.report_type,
            items=len(items),
            pages=rendered.page_count,
            size_bytes=len(rendered.content),
        )
        return rendered

    def _validate(self, report_data: Optional[ReportData]):
        if report_data is None or report_data.job is None or report_data.items is None:
            raise InvalidReportData("Invalid report data provided")
        job = report_data.job
        if not job.id or not job.job_number or not job.client_name:
            raise InvalidReportData("Missing required job information")

        decoded = {}
        sigs = report_data.signatures
        for role in ("customer", "staff"):
            raw = getattr(sigs, role) if sigs else None
            if not raw:
                decoded[role] = None
                continue
            try:
                data = decode_signature(raw)
                with PILImage.open(io.BytesIO(data)) as im:
                    im.verify()
            except (binascii.Error, ValueError, OSError):
                raise InvalidReportData(f"Invalid {role} signature image")
            decoded[role] = data
        return job, list(report_data.items), decoded

    def _render(self, report_data, job, items, signatures, generated_at, filename) -> RenderedReport:
        fonts = self.fonts or _register_fonts()
        buf = io.BytesIO()
        disclaimer = (
            f"This is a computer-generated report from {settings.company_name.title()} Management System"
        )
        generated_line = f"Generated on {format_date(generated_at)} at {format_time(generated_at)}"
        footers: List[str] = []

        def draw_footer(c: canvas.Canvas, page_number: int, total: int) -> None:
            footer_y = FOOTER_OFFSET_MM * mm
            c.setFont(fonts.italic, 8)
            c.setFillColor(MUTED)
            c.drawCentredString(PAGE_WIDTH_MM / 2 * mm, footer_y, disclaimer)
            c.drawCentredString(PAGE_WIDTH_MM / 2 * mm, footer_y - 5 * mm, generated_line)
            label = f"Page {page_number} of {total}"
            c.drawRightString((PAGE_WIDTH_MM - MARGIN_MM) * mm, footer_y, label)
            footers.append(label)

        c = _FooterCanvas(buf, pagesize=A4, invariant=1, footer=draw_footer)
        c.setTitle(report_title(report_data.report_type))
        c.setAuthor(report_data.generated_by or settings.company_name)
        c.setSubject(filename)

        layout = _Layout(c, fonts)
        layout.header(job, report_data.report_type)
        layout.items_table(items)
        layout.summary(items, generated_at)
        layout.signatures(signatures.get("customer"), signatures.get("staff"))
        c.showPage()
        c.save()

        return RenderedReport(
            content=buf.getvalue(),
            filename=filename,
            page_count=layout.page,
            rows=layout.rows,
            footers=footers,
        )


def generate_report(report_data: ReportData) -> bytes:
    return ReportGenerator().generate(report_data)
