"""
Module: builder.config

Purpose:
    Configuration dataclass for the worksheet building pipeline.
    Immutable configuration with validation on construction.

Key Classes:
    - WorksheetConfig: Main configuration for building a class set

Dependencies:
    - dataclasses (std)
    - pathlib (std)

Used By:
    - builder.controller: Main build controller
    - presets.store: Applying saved presets
    - cli: Loading config files
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from worksheet_toolkit.common.thresholds import LAYOUT
from worksheet_toolkit.core.models.levels import MAX_FORMS, MIN_FORMS
from worksheet_toolkit.core.models.students import PlacedStudent
from worksheet_toolkit.generation.cache import GenerationOptions

from .layout.composer import WorksheetOptions
from .layout.config import LayoutConfig, MarginSize
from .output.naming import OUTPUT_FORMATS

# Footer band height when no identification code is printed (mm)
PLAIN_FOOTER_BAND = 8.0


@dataclass(frozen=True)
class WorksheetConfig:
    """
    Configuration for building a class set (immutable).

    Students arrive with their level already resolved. Topic existence and
    roster membership are the caller's responsibility.

    Attributes:
        topics: Selected topic names
        students: Students with their placement level, in roster order
        question_count: Main-section questions per worksheet
        warm_up_count: Warm-up questions per worksheet (0 = no warm-up)
        warm_up_difficulty: Difficulty label for warm-up questions
        form_count: Number of parallel forms (1..10)
        include_hints: Request and print hints
        include_geometry: Allow diagram questions
        use_ai_images: Prefer AI-generated diagram images
        margin_size: small / medium / large margin preset
        output_format: "pdf" or "docx"
        include_answer_key: Append the answer-key section
        include_qr_codes: Print identification codes
        worksheet_id: Identifier embedded in identification codes
        output_dir: Output directory for generated files

    Example:
        >>> config = WorksheetConfig(
        ...     topics=["Fractions"],
        ...     students=[PlacedStudent(student, AdvancementLevel.C)],
        ...     form_count=2,
        ... )
    """

    # Required
    topics: List[str]
    students: List[PlacedStudent]

    # Generation
    question_count: int = 5
    warm_up_count: int = 0
    warm_up_difficulty: str = "very-easy"
    form_count: int = 1
    include_hints: bool = True
    include_geometry: bool = False
    use_ai_images: bool = False

    # Document
    margin_size: MarginSize = MarginSize.MEDIUM
    output_format: str = "pdf"
    include_answer_key: bool = True
    include_qr_codes: bool = False
    worksheet_id: Optional[str] = None
    output_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        if self.question_count < 0:
            raise ValueError(f"question_count must be non-negative: {self.question_count}")
        if self.warm_up_count < 0:
            raise ValueError(f"warm_up_count must be non-negative: {self.warm_up_count}")
        if not MIN_FORMS <= self.form_count <= MAX_FORMS:
            raise ValueError(f"form_count must be in [{MIN_FORMS}, {MAX_FORMS}]: {self.form_count}")
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {OUTPUT_FORMATS}: {self.output_format!r}")
        if not isinstance(self.margin_size, MarginSize):
            object.__setattr__(self, "margin_size", MarginSize(self.margin_size))

    @property
    def topic_label(self) -> str:
        return ", ".join(self.topics) if self.topics else "Math Practice"

    def generation_options(self) -> GenerationOptions:
        return GenerationOptions(
            topics=tuple(self.topics),
            question_count=self.question_count,
            warm_up_count=self.warm_up_count,
            warm_up_difficulty=self.warm_up_difficulty,
            include_hints=self.include_hints,
            include_geometry=self.include_geometry,
            use_ai_images=self.use_ai_images,
        )

    def worksheet_options(self) -> WorksheetOptions:
        return WorksheetOptions(
            topic_label=self.topic_label,
            include_hints=self.include_hints,
            include_qr_codes=self.include_qr_codes,
            worksheet_id=self.worksheet_id,
            show_form=self.form_count > 1,
        )

    def layout_config(self) -> LayoutConfig:
        """Layout for the chosen margin preset; QR codes widen the footer band."""
        footer_band = LAYOUT.qr_size_mm + 2.0 if self.include_qr_codes else PLAIN_FOOTER_BAND
        return LayoutConfig(margin_size=self.margin_size, footer_band=footer_band)
