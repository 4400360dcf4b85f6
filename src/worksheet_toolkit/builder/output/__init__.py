"""
Module: builder.output

Purpose:
    Document rendering for the worksheet builder.
    Converts LayoutResult to PDF (ReportLab) or DOCX (python-docx).

Key Functions:
    - render_to_pdf(): Render layout to PDF
    - render_to_docx(): Render layout to DOCX
    - document_filename(): Deterministic class-set file name

Dependencies:
    - reportlab: PDF generation
    - python-docx: DOCX generation
    - PIL: Image handling

Used By:
    - builder.controller: Pipeline orchestration
"""

from .renderer import render_to_pdf
from .docx_writer import render_to_docx
from .naming import document_filename, OUTPUT_FORMATS

__all__ = [
    "render_to_pdf",
    "render_to_docx",
    "document_filename",
    "OUTPUT_FORMATS",
]
