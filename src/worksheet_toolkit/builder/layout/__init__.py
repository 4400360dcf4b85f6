"""
Module: builder.layout

Purpose:
    Page layout and composition for worksheet building.
    Converts assignments and cached question sets into positioned pages.

Key Functions:
    - compose_document(): Main entry point for composition
    - paginate(): Arrange blocks onto pages

Key Classes:
    - LayoutConfig: Configuration for page layout
    - LayoutBlock: Atomic fixed-height unit
    - PagePlan: Single page layout plan

Dependencies:
    - PIL: Image type
    - reportlab: Font metrics for wrapping

Used By:
    - builder.controller: Main build controller
"""

from .config import LayoutConfig, MarginSize
from .models import (
    BlockKind,
    LayoutBlock,
    DocumentSection,
    Placement,
    PagePlan,
    LayoutResult,
)
from .composer import (
    WorksheetOptions,
    wrap_text,
    compose_worksheet,
    compose_answer_key,
    compose_document,
)
from .paginator import paginate

__all__ = [
    # Config
    "LayoutConfig",
    "MarginSize",
    # Models
    "BlockKind",
    "LayoutBlock",
    "DocumentSection",
    "Placement",
    "PagePlan",
    "LayoutResult",
    # Functions
    "WorksheetOptions",
    "wrap_text",
    "compose_worksheet",
    "compose_answer_key",
    "compose_document",
    "paginate",
]
