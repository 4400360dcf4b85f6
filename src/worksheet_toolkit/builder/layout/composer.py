"""
Module: builder.layout.composer

Purpose:
    Turn each student's assignment and cached question set into an
    ordered list of fixed-height blocks, and build the trailing answer
    key. Text is wrapped here, at the safe text width of the active
    margin preset, so the paginator only deals with heights.

Key Functions:
    - wrap_text(): Split text into lines that fit a width in mm
    - fit_text(): Shorten one line with an ellipsis to fit a width in mm
    - compose_worksheet(): Blocks for one student's worksheet
    - compose_answer_key(): Answer-key section grouped by form, then level
    - compose_document(): All worksheets plus the optional answer key

Block Order (per worksheet):
    level header → student line → instructions banner → warm-up section
    → main section. The footer is attached to every page of the section.

Dependencies:
    - reportlab: Font metrics for wrapping
    - generation.diagrams: ImageCache (read only)

Used By:
    - builder.controller: Phase 2 of the build pipeline
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

from PIL import Image
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.questions import GeneratedQuestion, QuestionSet
from worksheet_toolkit.core.models.students import Student
from worksheet_toolkit.generation.diagrams import ImageCache
from worksheet_toolkit.placement.forms import FormAssignment

from .config import LayoutConfig
from .models import BlockKind, DocumentSection, LayoutBlock

logger = logging.getLogger(__name__)

INSTRUCTIONS = "Read each question carefully. Show all of your work in the box below each question."
WARM_UP_TITLE = "Warm-Up: Let's Get Started!"
MAIN_TITLE = "Practice Questions"
ANSWER_KEY_KEY = "answer-key"
QUESTION_INDENT = 6.0  # mm, room for the question number
IMAGE_GAP = 2.0  # mm below a diagram
ELLIPSIS = "..."
DATE_FIELD = "Date: _______________"
FORM_FIELD_WIDTH = 25.0  # mm reserved for the form label on the student line
NAME_GAP = 3.0  # mm between the name and the date field
PAGE_SUFFIX_ROOM = " | Page 999"
SUBTITLE_SUFFIX = " - Diagnostic Worksheet"


@dataclass(frozen=True)
class WorksheetOptions:
    """
    Per-document presentation settings.

    Attributes:
        topic_label: Topic line shown under the level header
        include_hints: Print question hints
        include_qr_codes: Print identification codes
        worksheet_id: Worksheet identifier embedded in QR codes
        show_form: Show form letters (off when only one form is used)
    """

    topic_label: str = "Math Practice"
    include_hints: bool = True
    include_qr_codes: bool = False
    worksheet_id: Optional[str] = None
    show_form: bool = True


def wrap_text(text: str, width: float, font_name: str, font_size: float) -> List[str]:
    """
    Wrap text to a width in millimetres using the font's real metrics.

    A single word wider than the line is left on its own line.

    Example:
        >>> wrap_text("What is 3 + 4?", 100, "Helvetica", 11)
        ['What is 3 + 4?']
    """
    text = text.strip()
    if not text:
        return []
    return simpleSplit(text, font_name, font_size, width * mm)


def fit_text(text: str, width: float, font_name: str, font_size: float) -> str:
    """
    Shorten a single line so it fits a width in millimetres.

    Text that already fits is returned unchanged; otherwise it is cut
    and ends with an ellipsis.

    Example:
        >>> fit_text("Fractions", 100, "Helvetica", 11)
        'Fractions'
    """
    limit = width * mm
    if stringWidth(text, font_name, font_size) <= limit:
        return text

    cut = text
    while cut and stringWidth(cut.rstrip(" ,|-") + ELLIPSIS, font_name, font_size) > limit:
        cut = cut[:-1]
    if not cut:
        return ""
    return cut.rstrip(" ,|-") + ELLIPSIS


def student_name_width(config: LayoutConfig, *, has_form: bool, has_qr: bool) -> float:
    """Width (mm) left for the name once the date, form and QR are placed."""
    reserved = stringWidth(DATE_FIELD, config.body_font, config.body_font_size) / mm + NAME_GAP
    if has_form:
        reserved += FORM_FIELD_WIDTH
    if has_qr:
        reserved += min(config.student_info_height - 1.0, config.qr_size) + 2.0
    return max(min(config.safe_text_width, config.content_width - reserved), 0.0)


def qr_payload(student: Student, worksheet_id: Optional[str]) -> str:
    """Identification code content: {"v":1,"s":student,"q":worksheet}."""
    payload = {"v": 1, "s": student.id}
    if worksheet_id:
        payload["q"] = worksheet_id
    return json.dumps(payload, separators=(",", ":"))


def level_title(level: AdvancementLevel, form: str, show_form: bool) -> str:
    title = f"Level {level.value} - {level.description}"
    return f"{title} | Form {form}" if show_form else title


# ─────────────────────────────────────────────────────────────────────────────
# Worksheets
# ─────────────────────────────────────────────────────────────────────────────

def compose_worksheet(
    assignment: FormAssignment,
    question_set: Optional[QuestionSet],
    config: LayoutConfig,
    options: WorksheetOptions,
    images: Optional[ImageCache] = None,
) -> DocumentSection:
    """
    Compose one student's worksheet.

    A missing or empty question set still yields the header blocks; the
    empty sections are simply left out.

    Args:
        assignment: Student, level and form
        question_set: Cached questions for (form, level)
        config: Layout configuration (wrap width, block heights)
        options: Presentation settings
        images: Resolved diagrams; failed diagrams are omitted

    Returns:
        DocumentSection for the student
    """
    student = assignment.student
    level = assignment.level
    form = assignment.form
    code = qr_payload(student, options.worksheet_id) if options.include_qr_codes else None

    # Single-line fields are cut to the safe width rather than wrapped
    width = config.safe_text_width
    topic_room = width - stringWidth(SUBTITLE_SUFFIX, config.body_font, config.subtitle_font_size) / mm
    subtitle = fit_text(options.topic_label, topic_room, config.body_font, config.subtitle_font_size)
    name_room = student_name_width(config, has_form=options.show_form, has_qr=code is not None)
    header_room = width - stringWidth(PAGE_SUFFIX_ROOM, config.body_font, config.running_header_font_size) / mm

    blocks: List[LayoutBlock] = [
        LayoutBlock(
            kind=BlockKind.LEVEL_HEADER,
            height=config.level_header_height,
            text=fit_text(level_title(level, form, options.show_form), width, config.bold_font, config.header_font_size),
            subtitle=subtitle + SUBTITLE_SUFFIX,
            level=level,
            form=form,
            keep_with_next=True,
        ),
        LayoutBlock(
            kind=BlockKind.STUDENT_INFO,
            height=config.student_info_height,
            text=fit_text(f"Name: {student.full_name}", name_room, config.body_font, config.body_font_size),
            subtitle=f"Form {form}" if options.show_form else "",
            form=form,
            qr_payload=code,
            keep_with_next=True,
        ),
        LayoutBlock(
            kind=BlockKind.BANNER,
            height=config.banner_height,
            text=INSTRUCTIONS,
            level=level,
        ),
    ]

    if question_set is None:
        logger.warning(f"No question set for {assignment.key}, worksheet for {student.full_name} has no questions")
    else:
        blocks.extend(_section_blocks(
            WARM_UP_TITLE, question_set.warm_up, config.warm_up_work_zone, config, options, images, level
        ))
        blocks.extend(_section_blocks(
            MAIN_TITLE, question_set.main, config.main_work_zone, config, options, images, level
        ))

    footer = f"Diagnostic Worksheet - Level {level.value}"
    if options.show_form:
        footer += f" | Form {form}"

    return DocumentSection(
        key=f"student:{student.id}",
        blocks=tuple(blocks),
        running_header=fit_text(
            f"{student.full_name} | Level {level.value} | Form {form}",
            header_room,
            config.body_font,
            config.running_header_font_size,
        ),
        footer_text=footer,
        footer_qr_payload=code,
        level=level,
        form=form,
    )


def _section_blocks(
    title: str,
    questions: Sequence[GeneratedQuestion],
    work_zone: float,
    config: LayoutConfig,
    options: WorksheetOptions,
    images: Optional[ImageCache],
    level: AdvancementLevel,
) -> List[LayoutBlock]:
    if not questions:
        return []

    blocks = [LayoutBlock(
        kind=BlockKind.SECTION_TITLE,
        height=config.section_title_height,
        text=title,
        level=level,
        keep_with_next=True,
    )]
    for question in questions:
        blocks.extend(_question_blocks(question, work_zone, config, options, images))
    return blocks


def _question_blocks(
    question: GeneratedQuestion,
    work_zone: float,
    config: LayoutConfig,
    options: WorksheetOptions,
    images: Optional[ImageCache],
) -> List[LayoutBlock]:
    text_width = config.safe_text_width - QUESTION_INDENT
    lines = wrap_text(question.text, text_width, config.body_font, config.body_font_size)

    blocks: List[LayoutBlock] = []
    for i, line in enumerate(lines):
        first = i == 0
        blocks.append(LayoutBlock(
            kind=BlockKind.QUESTION_LINE,
            height=config.text_line_height + (config.number_gap if first else 0.0),
            text=line,
            number=question.question_number if first else None,
            indent=QUESTION_INDENT,
        ))

    image = images.get(question.diagram) if images is not None else None
    if image is not None:
        width, height = _fit_image(image, config.diagram_max, text_width)
        blocks.append(LayoutBlock(
            kind=BlockKind.IMAGE,
            height=height + IMAGE_GAP,
            image=image,
            image_width=width,
            indent=QUESTION_INDENT,
        ))

    if options.include_hints and question.hint:
        hint_lines = wrap_text(f"Hint: {question.hint}", text_width, config.body_font, config.hint_font_size)
        blocks.extend(
            LayoutBlock(
                kind=BlockKind.HINT_LINE,
                height=config.hint_line_height,
                text=line,
                indent=QUESTION_INDENT,
            )
            for line in hint_lines
        )

    blocks.append(LayoutBlock(
        kind=BlockKind.WORK_ZONE,
        height=work_zone + config.work_zone_gap,
        text="Work:",
        indent=QUESTION_INDENT,
    ))
    return blocks


def _fit_image(image: Image.Image, max_edge: float, max_width: float) -> tuple[float, float]:
    """Drawn (width, height) in mm, preserving aspect ratio."""
    px_width, px_height = image.size
    if px_width <= 0 or px_height <= 0:
        return 0.0, 0.0
    scale = min(max_edge / px_width, max_edge / px_height, max_width / px_width)
    return px_width * scale, px_height * scale


# ─────────────────────────────────────────────────────────────────────────────
# Answer key
# ─────────────────────────────────────────────────────────────────────────────

def compose_answer_key(
    question_sets: Iterable[QuestionSet],
    config: LayoutConfig,
    topic_label: str = "",
) -> DocumentSection:
    """
    Answer key listing question text, grouped by form, then level.

    No answers are computed; the key is the teacher's reference copy of
    every question each (form, level) received.
    """
    ordered = sorted(question_sets, key=lambda qs: (qs.form, qs.level.rank))
    width = config.safe_text_width - QUESTION_INDENT

    blocks: List[LayoutBlock] = [LayoutBlock(
        kind=BlockKind.KEY_HEADING,
        height=config.answer_key_heading_height,
        text="Answer Key",
        subtitle=topic_label,
        keep_with_next=True,
    )]

    for question_set in ordered:
        if question_set.is_empty:
            continue
        blocks.append(LayoutBlock(
            kind=BlockKind.KEY_HEADING,
            height=config.answer_key_heading_height,
            text=f"Form {question_set.form} - Level {question_set.level.value}",
            level=question_set.level,
            form=question_set.form,
            keep_with_next=True,
        ))
        for title, questions in (("Warm-Up", question_set.warm_up), ("Practice", question_set.main)):
            if not questions:
                continue
            blocks.append(LayoutBlock(
                kind=BlockKind.SECTION_TITLE,
                height=config.answer_key_line_height,
                text=title,
                keep_with_next=True,
            ))
            for question in questions:
                lines = wrap_text(question.text, width, config.body_font, config.body_font_size)
                for i, line in enumerate(lines):
                    blocks.append(LayoutBlock(
                        kind=BlockKind.KEY_LINE,
                        height=config.answer_key_line_height,
                        text=line,
                        number=question.question_number if i == 0 else None,
                        indent=QUESTION_INDENT,
                    ))

    return DocumentSection(
        key=ANSWER_KEY_KEY,
        blocks=tuple(blocks),
        running_header="Answer Key",
        footer_text="Answer Key - Teacher Reference",
    )


def compose_document(
    assignments: Sequence[FormAssignment],
    question_sets: Mapping[str, QuestionSet],
    config: LayoutConfig,
    options: WorksheetOptions,
    images: Optional[ImageCache] = None,
    include_answer_key: bool = True,
) -> List[DocumentSection]:
    """
    Compose every worksheet (in assignment order) and the answer key.

    Args:
        assignments: Flattened assignments in worksheet order
        question_sets: Read-only cache entries keyed "{form}-{level}"
        config: Layout configuration
        options: Presentation settings
        images: Resolved diagrams
        include_answer_key: Append the answer-key section

    Returns:
        DocumentSections ready for pagination
    """
    sections = [
        compose_worksheet(a, question_sets.get(a.key), config, options, images)
        for a in assignments
    ]

    if include_answer_key:
        used = [question_sets[key] for key in dict.fromkeys(a.key for a in assignments) if key in question_sets]
        key_section = compose_answer_key(used, config, options.topic_label)
        if len(key_section.blocks) > 1:
            sections.append(key_section)

    logger.info(f"Composed {len(sections)} sections ({sum(len(s.blocks) for s in sections)} blocks)")
    return sections
