"""Centralized threshold and magic number configuration.

This module contains the hardcoded thresholds, bands and limits used by
placement, generation and layout. Tests pin these exact values, so they
live in one place instead of being scattered through the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from worksheet_toolkit.core.models.levels import AdvancementLevel


@dataclass(frozen=True)
class PlacementThresholds:
    """Thresholds for level recommendation."""

    pass_fraction: float = 0.70  # correct/total at or above this passes a level
    default_level: AdvancementLevel = AdvancementLevel.C  # No attempted levels


@dataclass(frozen=True)
class GenerationThresholds:
    """Limits for calls to the generation collaborators."""

    request_timeout_s: float = 60.0  # Question generation can be slow
    image_fetch_timeout_s: float = 8.0  # Per diagram fetch/conversion
    image_batch_size: int = 4  # Diagram requests awaited together
    svg_render_dpi: int = 150  # Raster resolution for SVG diagrams
    form_seed_multiplier: int = 1000  # seed = ord(form) * 1000 + ord(level)
    max_seed: int = 2**31 - 1  # Upper bound for regeneration seeds

    # Difficulty labels requested for each level's main section
    difficulty_bands: Dict[AdvancementLevel, Tuple[str, ...]] = field(
        default_factory=lambda: {
            AdvancementLevel.A: ("hard", "challenging"),
            AdvancementLevel.B: ("hard", "challenging"),
            AdvancementLevel.C: ("medium", "hard"),
            AdvancementLevel.D: ("medium", "hard"),
            AdvancementLevel.E: ("easy", "super-easy", "medium"),
            AdvancementLevel.F: ("easy", "super-easy", "medium"),
        }
    )


@dataclass(frozen=True)
class LayoutThresholds:
    """Spacing constants for worksheet layout (millimetres)."""

    # Margin presets
    margin_small_mm: float = 10.5
    margin_medium_mm: float = 14.0
    margin_large_mm: float = 21.0
    safe_text_ratio: float = 0.92  # Fraction of content width text may use

    # Fixed block heights
    level_header_mm: float = 25.0
    student_info_mm: float = 12.0
    banner_mm: float = 12.0
    section_title_mm: float = 10.0
    running_header_mm: float = 9.0
    text_line_mm: float = 5.0
    number_gap_mm: float = 1.5  # Extra space above a question's first line
    hint_line_mm: float = 4.5
    warm_up_work_zone_mm: float = 22.0
    main_work_zone_mm: float = 40.0
    work_zone_gap_mm: float = 4.0  # Below each work zone
    diagram_max_mm: float = 55.0  # Diagram box is at most this square
    answer_key_line_mm: float = 5.0
    answer_key_heading_mm: float = 9.0

    # Footer band (drawn inside the bottom margin)
    footer_text_offset_mm: float = 5.0
    qr_size_mm: float = 12.0

    # Fonts (points)
    body_font_size: float = 11.0
    hint_font_size: float = 9.0
    header_font_size: float = 16.0
    footer_font_size: float = 8.0


PLACEMENT = PlacementThresholds()
GENERATION = GenerationThresholds()
LAYOUT = LayoutThresholds()
