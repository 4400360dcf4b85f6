"""
Module: builder.layout.paginator

Purpose:
    Arrange document blocks onto pages with a single vertical cursor.
    Only rule: a block is placed when it fits above the bottom margin,
    otherwise a page break comes first.

Key Functions:
    - paginate(): Main pagination function

Algorithm:
    For each section:
    1. Start a fresh page, cursor at the top margin
    2. Take the next atomic group (a chain of keep_with_next blocks)
    3. If the group doesn't fit and the page already has content, break
       the page and re-emit the running header
    4. Place the group; a group taller than a whole page is placed block
       by block, and a single block taller than a page overflows on its
       own fresh page (warning recorded)

Dependencies:
    - builder.layout.models: LayoutBlock, PagePlan
    - builder.layout.config: LayoutConfig

Used By:
    - builder.controller: Main build controller
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .config import LayoutConfig
from .models import (
    BlockKind,
    DocumentSection,
    LayoutBlock,
    LayoutResult,
    PagePlan,
    Placement,
)

logger = logging.getLogger(__name__)

# Float tolerance for accumulated block heights
_EPSILON = 1e-6


def paginate(
    sections: Sequence[DocumentSection],
    config: LayoutConfig,
) -> LayoutResult:
    """
    Arrange sections onto pages.

    Every section starts on a new page. Layout is deterministic: the same
    sections and config always produce the same pages.

    Args:
        sections: Sections in document order
        config: Layout configuration

    Returns:
        LayoutResult with page plans
    """
    if not sections:
        return LayoutResult(pages=(), warnings=[])

    pages: List[PagePlan] = []
    warnings: List[str] = []
    section_page_map: dict[str, list[int]] = {}

    for section in sections:
        if not section.blocks:
            logger.debug(f"Section {section.key} has no content, skipping")
            continue
        cursor = _PageCursor(section, config, first_index=len(pages))
        _paginate_section(cursor, section.blocks, warnings)
        pages.extend(cursor.pages)
        section_page_map[section.key] = [page.index for page in cursor.pages]

    for message in warnings:
        logger.warning(message)
    logger.info(f"Paginated {len(section_page_map)} sections onto {len(pages)} pages")

    return LayoutResult(
        pages=tuple(pages),
        warnings=warnings,
        section_page_map=section_page_map,
    )


class _PageCursor:
    """Vertical cursor and page accumulator for one section."""

    def __init__(self, section: DocumentSection, config: LayoutConfig, first_index: int):
        self.section = section
        self.config = config
        self.first_index = first_index
        self.pages: List[PagePlan] = []
        self.placements: List[Placement] = []
        self.y = config.margin_top
        self.section_page = 1
        self.has_content = False

    @property
    def space_left(self) -> float:
        return self.config.page_bottom - self.y

    def fits(self, height: float) -> bool:
        return self.y + height <= self.config.page_bottom + _EPSILON

    def place(self, block: LayoutBlock) -> None:
        self.placements.append(Placement(block=block, top=self.y))
        self.y += block.height
        self.has_content = True

    def break_page(self) -> None:
        self.close_page()
        self.section_page += 1
        self.placements = []
        self.y = self.config.margin_top
        self.has_content = False

        if self.section.running_header:
            header = LayoutBlock(
                kind=BlockKind.RUNNING_HEADER,
                height=self.config.running_header_height,
                text=f"{self.section.running_header} | Page {self.section_page}",
                level=self.section.level,
                form=self.section.form,
            )
            self.placements.append(Placement(block=header, top=self.y))
            self.y += header.height

    def close_page(self) -> None:
        self.pages.append(PagePlan(
            index=self.first_index + len(self.pages),
            section_key=self.section.key,
            section_page=self.section_page,
            placements=tuple(self.placements),
            height_used=self.y - self.config.margin_top,
            footer_text=self.section.footer_text,
            footer_qr_payload=self.section.footer_qr_payload,
        ))


def _paginate_section(
    cursor: _PageCursor,
    blocks: Sequence[LayoutBlock],
    warnings: List[str],
) -> None:
    i = 0
    while i < len(blocks):
        group = _get_atomic_group(i, blocks)
        group_height = sum(block.height for block in group)

        if not cursor.fits(group_height) and cursor.has_content:
            cursor.break_page()

        if cursor.fits(group_height):
            for block in group:
                cursor.place(block)
        else:
            # Group taller than a fresh page: keep-with-next is dropped
            for block in group:
                _place_single(cursor, block, warnings)

        i += len(group)

    cursor.close_page()


def _place_single(cursor: _PageCursor, block: LayoutBlock, warnings: List[str]) -> None:
    if not cursor.fits(block.height) and cursor.has_content:
        cursor.break_page()

    if not cursor.fits(block.height):
        warnings.append(
            f"{block.kind.value} block overflows page {cursor.section_page} of "
            f"{cursor.section.key}: {block.height:.1f}mm needed, "
            f"{cursor.space_left:.1f}mm available"
        )
    cursor.place(block)


def _get_atomic_group(start_idx: int, blocks: Sequence[LayoutBlock]) -> List[LayoutBlock]:
    """
    Get the next atomic group of blocks starting at start_idx.

    A group is a chain of keep_with_next blocks plus the block that ends
    the chain. E.g. [SectionTitle, FirstLine] -> both returned as one group.
    """
    group = [blocks[start_idx]]
    current_idx = start_idx

    while blocks[current_idx].keep_with_next and current_idx + 1 < len(blocks):
        current_idx += 1
        group.append(blocks[current_idx])

    return group
