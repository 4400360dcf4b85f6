"""
Module: builder.layout.models

Purpose:
    Data models for page layout.
    Immutable dataclasses representing blocks, placements, and pages.

Key Classes:
    - BlockKind: What a block draws
    - LayoutBlock: One atomic, fixed-height unit of content
    - DocumentSection: A worksheet (or the answer key) as a block list
    - Placement: Block positioned on a page
    - PagePlan: Complete page layout
    - LayoutResult: Final layout output

Dependencies:
    - PIL: Image type
    - dataclasses (std)

Used By:
    - builder.layout.composer: Creates LayoutBlocks / DocumentSections
    - builder.layout.paginator: Creates PagePlans
    - builder.output: Renders PagePlans
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from PIL import Image

from worksheet_toolkit.core.models.levels import AdvancementLevel


class BlockKind(str, Enum):
    LEVEL_HEADER = "level_header"
    STUDENT_INFO = "student_info"
    BANNER = "banner"
    SECTION_TITLE = "section_title"
    QUESTION_LINE = "question_line"
    HINT_LINE = "hint_line"
    IMAGE = "image"
    WORK_ZONE = "work_zone"
    RUNNING_HEADER = "running_header"
    KEY_HEADING = "key_heading"
    KEY_LINE = "key_line"


@dataclass(frozen=True, eq=False)
class LayoutBlock:
    """
    Atomic layout unit (immutable). A block is never split across pages.

    Attributes:
        kind: What the block draws
        height: Vertical space consumed (mm)
        text: Text content (line text, header title, zone label)
        subtitle: Secondary text (level header subtitle, form label)
        number: Question number drawn beside the first line
        indent: Left indent from the content edge (mm)
        image: Decoded image (IMAGE blocks only)
        image_width: Drawn image width (mm)
        level: Level the block belongs to (colours headers)
        form: Form letter shown in headers
        qr_payload: Identification code drawn in the block
        keep_with_next: Keep this block on the same page as the next one
    """

    kind: BlockKind
    height: float
    text: str = ""
    subtitle: str = ""
    number: Optional[int] = None
    indent: float = 0.0
    image: Optional[Image.Image] = None
    image_width: float = 0.0
    level: Optional[AdvancementLevel] = None
    form: Optional[str] = None
    qr_payload: Optional[str] = None
    keep_with_next: bool = False

    def __post_init__(self) -> None:
        if self.height < 0:
            raise ValueError(f"Block height must be non-negative: {self.height}")


@dataclass(frozen=True)
class DocumentSection:
    """
    One independently paginated part of the document.

    Every section starts on a fresh page. Pages after its first carry a
    running header built from `running_header`.

    Attributes:
        key: Unique section identifier (student id or "answer-key")
        blocks: Content in draw order
        running_header: Running header text (page number is appended)
        footer_text: Footer line for every page of the section
        footer_qr_payload: Identification code drawn in the footer
        level: Worksheet level (None for the answer key)
        form: Worksheet form letter (None for the answer key)
    """

    key: str
    blocks: Tuple[LayoutBlock, ...]
    running_header: str = ""
    footer_text: str = ""
    footer_qr_payload: Optional[str] = None
    level: Optional[AdvancementLevel] = None
    form: Optional[str] = None


@dataclass(frozen=True)
class Placement:
    """
    A block positioned on a page.

    Attributes:
        block: The LayoutBlock to place
        top: Y offset from page top (mm)

    Example:
        >>> placement = Placement(block, top=40.0)
        >>> placement.bottom
        45.0  # top + block.height
    """

    block: LayoutBlock
    top: float

    @property
    def bottom(self) -> float:
        """Bottom Y coordinate (top + height)."""
        return self.top + self.block.height


@dataclass(frozen=True)
class PagePlan:
    """
    Complete layout plan for a single page.

    Attributes:
        index: Page number in the document (0-indexed)
        section_key: Section this page belongs to
        section_page: Page number within the section (1-indexed)
        placements: Tuple of Placements on this page
        height_used: Total vertical space used
        footer_text: Footer line
        footer_qr_payload: Footer identification code
    """

    index: int
    section_key: str
    section_page: int
    placements: Tuple[Placement, ...]
    height_used: float
    footer_text: str = ""
    footer_qr_payload: Optional[str] = None

    @property
    def placement_count(self) -> int:
        return len(self.placements)

    @property
    def is_empty(self) -> bool:
        return len(self.placements) == 0


@dataclass(frozen=True)
class LayoutResult:
    """
    Final layout output with diagnostics.

    Attributes:
        pages: Tuple of PagePlans
        warnings: List of warning messages
        section_page_map: Mapping of section key to page indices

    Example:
        >>> result = LayoutResult(pages=(page1, page2), warnings=[])
        >>> result.page_count
        2
    """

    pages: Tuple[PagePlan, ...]
    warnings: List[str] = field(default_factory=list)
    section_page_map: Dict[str, List[int]] = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        """Number of pages in layout."""
        return len(self.pages)

    @property
    def section_order(self) -> List[str]:
        """Section keys in the order they appear."""
        return list(self.section_page_map)

    @property
    def total_placements(self) -> int:
        return sum(p.placement_count for p in self.pages)
