"""
Module: builder.output.renderer

Purpose:
    Render LayoutResult to PDF using ReportLab.
    Each PagePlan becomes one PDF page with its blocks drawn at the
    positions the paginator chose. All layout geometry is in millimetres
    and converted to points here.

Key Functions:
    - render_to_pdf(): Main rendering function

Dependencies:
    - reportlab: PDF generation, QR codes
    - PIL: Image handling
    - builder.layout.models: LayoutResult, PagePlan

Used By:
    - builder.controller: Pipeline orchestration
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from worksheet_toolkit.builder.layout.composer import DATE_FIELD, FORM_FIELD_WIDTH, IMAGE_GAP
from worksheet_toolkit.builder.layout.config import LayoutConfig
from worksheet_toolkit.builder.layout.models import BlockKind, LayoutResult, PagePlan, Placement
from worksheet_toolkit.core.models.levels import LEVEL_COLORS

logger = logging.getLogger(__name__)

# Colours (RGB 0-1)
TEXT_GREY = (0.4, 0.4, 0.4)
RULE_GREY = (0.6, 0.6, 0.6)
ZONE_GREY = (0.78, 0.78, 0.78)
BANNER_FILL = (0.95, 0.96, 0.97)
WARM_UP_FILL = (240 / 255, 253 / 255, 244 / 255)
HEADER_GAP = 3.0  # mm left blank under the level header band


def render_to_pdf(
    layout: LayoutResult,
    output_path: Path,
    config: LayoutConfig,
    *,
    title: Optional[str] = None,
) -> None:
    """
    Render layout result to PDF file.

    Args:
        layout: Layout result from paginator
        output_path: Path to write PDF
        config: Layout configuration used for pagination
        title: Optional PDF document title

    Raises:
        OSError: If PDF cannot be written

    Example:
        >>> render_to_pdf(layout, Path("output/Class_Set.pdf"), config)
    """
    if layout.page_count == 0:
        logger.warning("Empty layout, creating empty PDF")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    page_size = (config.page_width * mm, config.page_height * mm)
    c = canvas.Canvas(str(output_path), pagesize=page_size)
    if title:
        c.setTitle(title)

    for page in layout.pages:
        _render_page(c, page, config)
        c.showPage()

    c.save()

    logger.info(f"Rendered {layout.page_count} pages to {output_path}")


def _render_page(c: canvas.Canvas, page: PagePlan, config: LayoutConfig) -> None:
    for placement in page.placements:
        _draw_block(c, placement, config)

    _draw_footer(c, page, config)


def _draw_block(c: canvas.Canvas, placement: Placement, config: LayoutConfig) -> None:
    block = placement.block
    left = config.margin_left
    right = config.page_width - config.margin_right
    top = placement.top

    c.saveState()

    if block.kind is BlockKind.LEVEL_HEADER:
        band = max(block.height - HEADER_GAP, 0.0)
        _fill_rect(c, config, left, top, config.content_width, band, _level_rgb(block.level))
        c.setFillColorRGB(0, 0, 0)
        c.setFont(config.bold_font, config.header_font_size)
        c.drawCentredString(config.page_width / 2 * mm, _to_pdf_y(config, top + band * 0.42), block.text)
        if block.subtitle:
            c.setFont(config.body_font, config.subtitle_font_size)
            c.drawCentredString(config.page_width / 2 * mm, _to_pdf_y(config, top + band * 0.75), block.subtitle)

    elif block.kind is BlockKind.STUDENT_INFO:
        baseline = _to_pdf_y(config, top + block.height * 0.5)
        text_right = right
        if block.qr_payload:
            size = min(block.height - 1.0, config.qr_size)
            _draw_qr(c, block.qr_payload, (right - size) * mm, _to_pdf_y(config, top, size), size * mm)
            text_right = right - size - 2.0
        c.setFont(config.body_font, config.body_font_size)
        c.drawString(left * mm, baseline, block.text)
        if block.subtitle:
            c.setFont(config.bold_font, config.body_font_size)
            c.drawRightString(text_right * mm, baseline, block.subtitle)
            text_right -= FORM_FIELD_WIDTH
        c.setFont(config.body_font, config.body_font_size)
        c.drawRightString(text_right * mm, baseline, DATE_FIELD)
        c.setLineWidth(0.5)
        c.line(left * mm, _to_pdf_y(config, top + block.height - 1.0), right * mm, _to_pdf_y(config, top + block.height - 1.0))

    elif block.kind is BlockKind.BANNER:
        _fill_rect(c, config, left, top + 1.0, config.content_width, block.height - 3.0, BANNER_FILL)
        c.setFillColorRGB(0, 0, 0)
        c.setFont(config.body_font, config.hint_font_size + 1)
        c.drawString((left + 3.0) * mm, _to_pdf_y(config, top + block.height * 0.5), block.text)

    elif block.kind is BlockKind.SECTION_TITLE:
        if block.level is not None:
            _fill_rect(c, config, left, top + 1.0, config.content_width, block.height - 2.0, WARM_UP_FILL)
        c.setFillColorRGB(22 / 255, 101 / 255, 52 / 255)
        c.setFont(config.bold_font, config.body_font_size)
        c.drawString((left + 3.0) * mm, _to_pdf_y(config, top + block.height * 0.6), block.text)

    elif block.kind in (BlockKind.QUESTION_LINE, BlockKind.KEY_LINE):
        baseline = _to_pdf_y(config, top + block.height - 1.2)
        if block.number is not None:
            c.setFont(config.bold_font, config.body_font_size)
            c.drawString(left * mm, baseline, f"{block.number}.")
        c.setFont(config.body_font, config.body_font_size)
        c.drawString((left + block.indent) * mm, baseline, block.text)

    elif block.kind is BlockKind.HINT_LINE:
        c.setFillColorRGB(*TEXT_GREY)
        c.setFont("Helvetica-Oblique", config.hint_font_size)
        c.drawString((left + block.indent) * mm, _to_pdf_y(config, top + block.height - 1.0), block.text)

    elif block.kind is BlockKind.IMAGE and block.image is not None:
        height = max(block.height - IMAGE_GAP, 0.0)
        c.drawImage(
            _pil_to_reader(block.image),
            (left + block.indent) * mm,
            _to_pdf_y(config, top, height),
            width=block.image_width * mm,
            height=height * mm,
            preserveAspectRatio=True,
        )

    elif block.kind is BlockKind.WORK_ZONE:
        height = max(block.height - config.work_zone_gap, 0.0)
        c.setStrokeColorRGB(*ZONE_GREY)
        c.setLineWidth(0.4)
        c.rect(
            (left + block.indent) * mm,
            _to_pdf_y(config, top, height),
            (config.content_width - block.indent) * mm,
            height * mm,
            stroke=1,
            fill=0,
        )
        c.setFillColorRGB(*TEXT_GREY)
        c.setFont(config.body_font, config.footer_font_size)
        c.drawString((left + block.indent + 1.5) * mm, _to_pdf_y(config, top + 4.0), block.text)

    elif block.kind is BlockKind.RUNNING_HEADER:
        c.setFillColorRGB(*TEXT_GREY)
        c.setFont(config.body_font, config.running_header_font_size)
        c.drawString(left * mm, _to_pdf_y(config, top + block.height * 0.45), block.text)
        c.setStrokeColorRGB(*RULE_GREY)
        c.setLineWidth(0.3)
        rule_y = _to_pdf_y(config, top + block.height - 1.5)
        c.line(left * mm, rule_y, right * mm, rule_y)

    elif block.kind is BlockKind.KEY_HEADING:
        if block.level is not None:
            _fill_rect(c, config, left, top + 1.0, config.content_width, block.height - 2.0, _level_rgb(block.level))
        c.setFillColorRGB(0, 0, 0)
        size = config.header_font_size if block.level is None else config.body_font_size + 1
        c.setFont(config.bold_font, size)
        c.drawString((left + 2.0) * mm, _to_pdf_y(config, top + block.height * 0.55), block.text)

    c.restoreState()


def _draw_footer(c: canvas.Canvas, page: PagePlan, config: LayoutConfig) -> None:
    """
    Draw centered footer text and the optional identification code.

    Both sit in the footer band between the content area and the page
    edge margin, so they never collide with placed blocks.
    """
    if not page.footer_text and not page.footer_qr_payload:
        return

    c.saveState()
    bottom_pt = config.margin * mm

    if page.footer_text:
        c.setFont(config.body_font, config.footer_font_size)
        c.setFillColorRGB(*TEXT_GREY)
        c.drawCentredString(config.page_width / 2 * mm, bottom_pt + 1.0 * mm, page.footer_text)

    if page.footer_qr_payload and config.footer_band > 0:
        size = min(config.qr_size, config.footer_band)
        _draw_qr(c, page.footer_qr_payload, (config.page_width - config.margin_right - size) * mm, bottom_pt, size * mm)

    c.restoreState()


def _draw_qr(c: canvas.Canvas, payload: str, x_pt: float, y_pt: float, size_pt: float) -> None:
    """Draw a square QR code with its bottom-left corner at (x, y)."""
    widget = QrCodeWidget(payload)
    x0, y0, x1, y1 = widget.getBounds()
    width, height = x1 - x0, y1 - y0
    drawing = Drawing(size_pt, size_pt, transform=[size_pt / width, 0, 0, size_pt / height, 0, 0])
    drawing.add(widget)
    renderPDF.draw(drawing, c, x_pt, y_pt)


def _fill_rect(
    c: canvas.Canvas,
    config: LayoutConfig,
    left: float,
    top: float,
    width: float,
    height: float,
    rgb: tuple,
) -> None:
    if width <= 0 or height <= 0:
        return
    c.setFillColorRGB(*rgb)
    c.rect(left * mm, _to_pdf_y(config, top, height), width * mm, height * mm, stroke=0, fill=1)


def _level_rgb(level) -> tuple:
    if level is None:
        return (0.9, 0.9, 0.9)
    r, g, b = LEVEL_COLORS[level]
    return (r / 255, g / 255, b / 255)


def _pil_to_reader(img: Image.Image) -> ImageReader:
    """
    Convert PIL image to ReportLab ImageReader.

    Args:
        img: PIL Image object

    Returns:
        ImageReader for use with ReportLab
    """
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    buf.seek(0)
    return ImageReader(buf)


def _to_pdf_y(config: LayoutConfig, y_mm_top: float, height_mm: float = 0.0) -> float:
    """
    Convert top-down mm Y coordinate to bottom-up PDF Y.

    Args:
        config: Layout configuration (page height)
        y_mm_top: Y position from top in mm
        height_mm: Height of element in mm

    Returns:
        Y position of the element's bottom edge from the page bottom, in points
    """
    return (config.page_height - y_mm_top - height_mm) * mm
