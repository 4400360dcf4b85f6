"""
Module: builder.output.docx_writer

Purpose:
    Render LayoutResult to an editable Word document using python-docx.
    Each DocumentSection becomes a Word section (new page, own footer);
    page plans inside it are separated by explicit page breaks so the
    document opens with the same page grouping as the PDF.

Key Functions:
    - render_to_docx(): Main rendering function

Dependencies:
    - python-docx: DOCX generation
    - reportlab: QR encoding
    - PIL: Image handling, QR rasterising

Used By:
    - builder.controller: Pipeline orchestration
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from docx import Document
from docx.enum.section import WD_SECTION
from docx.enum.table import WD_ROW_HEIGHT_RULE
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_BREAK
from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls
from docx.shared import Mm, Pt, RGBColor
from PIL import Image, ImageDraw
from reportlab.graphics.barcode.qr import QrCodeWidget

from worksheet_toolkit.builder.layout.composer import DATE_FIELD, IMAGE_GAP
from worksheet_toolkit.builder.layout.config import LayoutConfig
from worksheet_toolkit.builder.layout.models import BlockKind, LayoutBlock, LayoutResult, PagePlan
from worksheet_toolkit.core.models.levels import LEVEL_COLORS

logger = logging.getLogger(__name__)

GREY = RGBColor(102, 102, 102)
SECTION_GREEN = RGBColor(22, 101, 52)
QR_MODULE_PX = 8  # pixels per QR module in the embedded PNG


def render_to_docx(
    layout: LayoutResult,
    output_path: Path,
    config: LayoutConfig,
    *,
    title: Optional[str] = None,
) -> None:
    """
    Render layout result to a DOCX file.

    Args:
        layout: Layout result from paginator
        output_path: Path to write the document
        config: Layout configuration used for pagination
        title: Optional document title (core properties)

    Raises:
        OSError: If the document cannot be written
    """
    if layout.page_count == 0:
        logger.warning("Empty layout, creating empty DOCX")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = Document()
    if title:
        doc.core_properties.title = title
    _setup_section(doc.sections[0], config)

    previous: Optional[PagePlan] = None
    for page in layout.pages:
        if previous is None:
            _set_footer(doc.sections[-1], page, config)
        elif page.section_key != previous.section_key:
            section = doc.add_section(WD_SECTION.NEW_PAGE)
            _setup_section(section, config)
            _set_footer(section, page, config)
        else:
            doc.add_paragraph().add_run().add_break(WD_BREAK.PAGE)

        for placement in page.placements:
            _write_block(doc, placement.block, config)
        previous = page

    doc.save(str(output_path))
    logger.info(f"Wrote {layout.page_count} pages to {output_path}")


def _setup_section(section, config: LayoutConfig) -> None:
    """Page size and margins from the active preset."""
    section.page_width = Mm(config.page_width)
    section.page_height = Mm(config.page_height)
    section.top_margin = Mm(config.margin_top)
    section.bottom_margin = Mm(config.margin_bottom)
    section.left_margin = Mm(config.margin_left)
    section.right_margin = Mm(config.margin_right)
    section.footer_distance = Mm(config.margin)


def _set_footer(section, page: PagePlan, config: LayoutConfig) -> None:
    section.footer.is_linked_to_previous = False
    para = section.footer.paragraphs[0]
    para.text = ""
    para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    if page.footer_text:
        run = para.add_run(page.footer_text)
        run.font.size = Pt(config.footer_font_size)
        run.font.color.rgb = GREY
    if page.footer_qr_payload and config.footer_band > 0:
        size = min(config.qr_size, config.footer_band)
        para.add_run("  ").add_picture(_qr_png(page.footer_qr_payload), width=Mm(size))


def _qr_png(payload: str) -> io.BytesIO:
    """
    Identification code as a PNG stream.

    The ReportLab encoder lays out the modules; each dark module becomes a
    filled square, with the standard quiet zone around the symbol.
    """
    widget = QrCodeWidget(payload)
    qr = widget.qr
    qr.make()
    border = int(widget.barBorder)
    side = (qr.getModuleCount() + 2 * border) * QR_MODULE_PX

    image = Image.new("L", (side, side), 255)
    draw = ImageDraw.Draw(image)
    for row, modules in enumerate(qr.modules):
        for col, dark in enumerate(modules):
            if dark:
                x = (col + border) * QR_MODULE_PX
                y = (row + border) * QR_MODULE_PX
                draw.rectangle([x, y, x + QR_MODULE_PX - 1, y + QR_MODULE_PX - 1], fill=0)

    buf = io.BytesIO()
    image.save(buf, format="PNG")
    buf.seek(0)
    return buf


def _write_block(doc, block: LayoutBlock, config: LayoutConfig) -> None:
    if block.kind is BlockKind.LEVEL_HEADER:
        cell = _single_cell(doc, block.height - 3.0, LEVEL_COLORS.get(block.level))
        _cell_text(cell.paragraphs[0], block.text, config.header_font_size, bold=True, center=True)
        if block.subtitle:
            _cell_text(cell.add_paragraph(), block.subtitle, config.subtitle_font_size, center=True)
        _spacer(doc, 3.0)

    elif block.kind is BlockKind.STUDENT_INFO:
        para = _paragraph(doc, block.height)
        run = para.add_run(block.text)
        run.font.size = Pt(config.body_font_size)
        para.add_run(f"\t{DATE_FIELD}").font.size = Pt(config.body_font_size)
        if block.subtitle:
            run = para.add_run(f"\t{block.subtitle}")
            run.bold = True
            run.font.size = Pt(config.body_font_size)
        if block.qr_payload:
            size = min(block.height - 1.0, config.qr_size)
            para.add_run("\t").add_picture(_qr_png(block.qr_payload), width=Mm(size))

    elif block.kind is BlockKind.BANNER:
        cell = _single_cell(doc, block.height - 3.0, (242, 245, 247))
        _cell_text(cell.paragraphs[0], block.text, config.hint_font_size + 1)
        _spacer(doc, 3.0)

    elif block.kind is BlockKind.SECTION_TITLE:
        para = _paragraph(doc, block.height)
        run = para.add_run(block.text)
        run.bold = True
        run.font.size = Pt(config.body_font_size)
        run.font.color.rgb = SECTION_GREEN

    elif block.kind in (BlockKind.QUESTION_LINE, BlockKind.KEY_LINE):
        para = _paragraph(doc, block.height)
        para.paragraph_format.left_indent = Mm(block.indent)
        para.paragraph_format.first_line_indent = Mm(-block.indent)
        if block.number is not None:
            number = para.add_run(f"{block.number}.\t")
            number.bold = True
            number.font.size = Pt(config.body_font_size)
        else:
            para.add_run("\t")
        para.add_run(block.text).font.size = Pt(config.body_font_size)

    elif block.kind is BlockKind.HINT_LINE:
        para = _paragraph(doc, block.height)
        para.paragraph_format.left_indent = Mm(block.indent)
        run = para.add_run(block.text)
        run.italic = True
        run.font.size = Pt(config.hint_font_size)
        run.font.color.rgb = GREY

    elif block.kind is BlockKind.IMAGE and block.image is not None:
        para = _paragraph(doc, block.height)
        para.paragraph_format.left_indent = Mm(block.indent)
        buf = io.BytesIO()
        block.image.save(buf, format="PNG")
        buf.seek(0)
        para.add_run().add_picture(buf, width=Mm(block.image_width))
        _spacer(doc, IMAGE_GAP)

    elif block.kind is BlockKind.WORK_ZONE:
        cell = _single_cell(doc, block.height - config.work_zone_gap, None, border=True)
        run = cell.paragraphs[0].add_run(block.text)
        run.font.size = Pt(config.footer_font_size)
        run.font.color.rgb = GREY
        _spacer(doc, config.work_zone_gap)

    elif block.kind is BlockKind.RUNNING_HEADER:
        para = _paragraph(doc, block.height)
        run = para.add_run(block.text)
        run.font.size = Pt(config.running_header_font_size)
        run.font.color.rgb = GREY

    elif block.kind is BlockKind.KEY_HEADING:
        para = _paragraph(doc, block.height)
        run = para.add_run(block.text)
        run.bold = True
        run.font.size = Pt(config.header_font_size if block.level is None else config.body_font_size + 1)


def _paragraph(doc, height: float):
    """Paragraph with exact line height matching the block height."""
    para = doc.add_paragraph()
    fmt = para.paragraph_format
    fmt.space_before = Pt(0)
    fmt.space_after = Pt(0)
    fmt.line_spacing = Mm(max(height, 1.0))
    return para


def _spacer(doc, height: float) -> None:
    if height > 0:
        _paragraph(doc, height)


def _single_cell(doc, height: float, fill: Optional[tuple], border: bool = False):
    """One-cell table of fixed height, optionally shaded or boxed."""
    table = doc.add_table(rows=1, cols=1)
    row = table.rows[0]
    row.height = Mm(max(height, 1.0))
    row.height_rule = WD_ROW_HEIGHT_RULE.EXACTLY
    cell = row.cells[0]
    tc_pr = cell._tc.get_or_add_tcPr()
    if fill is not None:
        r, g, b = fill
        tc_pr.append(parse_xml(f'<w:shd {nsdecls("w")} w:val="clear" w:fill="{r:02x}{g:02x}{b:02x}"/>'))
    if border:
        tc_pr.append(parse_xml(
            f'<w:tcBorders {nsdecls("w")}>'
            '<w:top w:val="single" w:sz="4" w:color="C8C8C8"/>'
            '<w:left w:val="single" w:sz="4" w:color="C8C8C8"/>'
            '<w:bottom w:val="single" w:sz="4" w:color="C8C8C8"/>'
            '<w:right w:val="single" w:sz="4" w:color="C8C8C8"/>'
            '</w:tcBorders>'
        ))
    return cell


def _cell_text(para, text: str, size: float, bold: bool = False, center: bool = False) -> None:
    if center:
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = para.add_run(text)
    run.bold = bold
    run.font.size = Pt(size)
