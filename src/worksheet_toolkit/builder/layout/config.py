"""
Module: builder.layout.config

Purpose:
    Configuration for the worksheet layout engine.
    Defines page dimensions, margin presets and block spacing. All
    lengths are millimetres.

Key Classes:
    - MarginSize: small / medium / large margin preset
    - LayoutConfig: Immutable layout configuration

Dependencies:
    - dataclasses (std)
    - common.thresholds: Default spacing constants

Used By:
    - builder.layout.composer: Block heights and wrap width
    - builder.layout.paginator: Page arrangement
    - builder.output: Renderers
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from worksheet_toolkit.common.thresholds import LAYOUT


# US Letter in millimetres
LETTER_WIDTH_MM = 215.9
LETTER_HEIGHT_MM = 279.4


class MarginSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def millimetres(self) -> float:
        return {
            MarginSize.SMALL: LAYOUT.margin_small_mm,
            MarginSize.MEDIUM: LAYOUT.margin_medium_mm,
            MarginSize.LARGE: LAYOUT.margin_large_mm,
        }[self]


@dataclass(frozen=True)
class LayoutConfig:
    """
    Configuration for page layout (immutable).

    Page geometry is always derived from the active margin preset:
    content width and safe text width change with `margin_size`.

    Attributes:
        page_width: Page width (mm)
        page_height: Page height (mm)
        margin_size: Margin preset
        footer_band: Space reserved above the bottom margin for the
            footer line and QR code (mm)
        safe_text_ratio: Fraction of content width text may occupy
        text_line_height: Height of one wrapped text line
        hint_line_height: Height of one wrapped hint line
        number_gap: Extra space above a question's first line
        warm_up_work_zone: Warm-up work/answer zone height
        main_work_zone: Main work/answer zone height
        work_zone_gap: Gap below each work zone
        diagram_max: Largest diagram box edge

    Example:
        >>> config = LayoutConfig(margin_size=MarginSize.LARGE)
        >>> round(config.content_width, 1)
        173.9
    """

    # Page dimensions
    page_width: float = LETTER_WIDTH_MM
    page_height: float = LETTER_HEIGHT_MM

    # Margins
    margin_size: MarginSize = MarginSize.MEDIUM
    footer_band: float = 8.0
    safe_text_ratio: float = LAYOUT.safe_text_ratio

    # Fixed block heights
    level_header_height: float = LAYOUT.level_header_mm
    student_info_height: float = LAYOUT.student_info_mm
    banner_height: float = LAYOUT.banner_mm
    section_title_height: float = LAYOUT.section_title_mm
    running_header_height: float = LAYOUT.running_header_mm
    text_line_height: float = LAYOUT.text_line_mm
    hint_line_height: float = LAYOUT.hint_line_mm
    number_gap: float = LAYOUT.number_gap_mm
    warm_up_work_zone: float = LAYOUT.warm_up_work_zone_mm
    main_work_zone: float = LAYOUT.main_work_zone_mm
    work_zone_gap: float = LAYOUT.work_zone_gap_mm
    diagram_max: float = LAYOUT.diagram_max_mm
    answer_key_line_height: float = LAYOUT.answer_key_line_mm
    answer_key_heading_height: float = LAYOUT.answer_key_heading_mm

    # Fonts (points)
    body_font: str = "Helvetica"
    bold_font: str = "Helvetica-Bold"
    body_font_size: float = LAYOUT.body_font_size
    hint_font_size: float = LAYOUT.hint_font_size
    header_font_size: float = LAYOUT.header_font_size
    footer_font_size: float = LAYOUT.footer_font_size
    qr_size: float = LAYOUT.qr_size_mm

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        if self.page_width <= 0:
            raise ValueError(f"page_width must be positive: {self.page_width}")
        if self.page_height <= 0:
            raise ValueError(f"page_height must be positive: {self.page_height}")
        if not 0 < self.safe_text_ratio <= 1:
            raise ValueError(f"safe_text_ratio must be in (0, 1]: {self.safe_text_ratio}")
        if self.footer_band < 0:
            raise ValueError(f"footer_band must be non-negative: {self.footer_band}")
        if self.content_width <= 0:
            raise ValueError("Margins exceed page width")
        if self.available_height <= 0:
            raise ValueError("Margins exceed page height")

    @property
    def margin(self) -> float:
        """Margin from the active preset (all four sides)."""
        return self.margin_size.millimetres

    @property
    def margin_top(self) -> float:
        return self.margin

    @property
    def margin_bottom(self) -> float:
        """Bottom margin including the reserved footer band."""
        return self.margin + self.footer_band

    @property
    def margin_left(self) -> float:
        return self.margin

    @property
    def margin_right(self) -> float:
        return self.margin

    @property
    def content_width(self) -> float:
        """Width available for content (excluding margins)."""
        return self.page_width - self.margin_left - self.margin_right

    @property
    def safe_text_width(self) -> float:
        """Width text is wrapped to; leaves slack for measurement error."""
        return self.content_width * self.safe_text_ratio

    @property
    def page_bottom(self) -> float:
        """Lowest y a block may reach."""
        return self.page_height - self.margin_bottom

    @property
    def available_height(self) -> float:
        """Height available for content (excluding margins)."""
        return self.page_bottom - self.margin_top

    @property
    def subtitle_font_size(self) -> float:
        """Level header subtitle size (pt)."""
        return self.body_font_size + 1

    @property
    def running_header_font_size(self) -> float:
        return self.footer_font_size + 1
