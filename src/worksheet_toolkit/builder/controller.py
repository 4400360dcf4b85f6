"""
Module: builder.controller

Purpose:
    Orchestrate the complete worksheet building pipeline.
    Validate → Assign forms → Generate (phase 1) → Compose → Paginate → Render (phase 2)

    Phase 1 awaits every external call and fully populates the question
    set and image caches. Phase 2 is synchronous and only reads those
    caches, so no worksheet is laid out against a partially resolved cache.

Key Functions:
    - build_worksheets(): Main entry point for building a class set
    - prepare_question_sets(): Phase 1 only (assignments + caches)
    - render_class_set(): Phase 2 only (layout + document)

Key Classes:
    - BuildResult: Complete build result
    - BuildError: Exception for build failures
    - InputError: Invalid request, raised before any external call

Dependencies:
    - placement: Form assignment
    - generation: Question set and image caches
    - builder.layout: Composition and pagination
    - builder.output: PDF / DOCX rendering

Used By:
    - cli: `worksheet-toolkit build`
"""

from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from worksheet_toolkit.core.models.levels import forms_for
from worksheet_toolkit.core.models.questions import QuestionSet
from worksheet_toolkit.generation.cache import ProgressCallback, QuestionSetCache
from worksheet_toolkit.generation.cancellation import CancellationToken
from worksheet_toolkit.generation.client import DiagramGenerator, QuestionGenerator
from worksheet_toolkit.generation.diagrams import ImageCache, ImageFetcher, resolve_diagrams
from worksheet_toolkit.placement.forms import (
    FormAssignment,
    assign_forms,
    distinct_pairs,
    flatten,
    group_by_level,
)

from .config import WorksheetConfig
from .layout import LayoutResult, compose_document, paginate
from .output import document_filename, render_to_docx, render_to_pdf

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path("output")


class BuildError(Exception):
    """Error during build pipeline."""
    pass


class InputError(BuildError):
    """The build request is unusable (no students or no topics)."""
    pass


@dataclass(frozen=True)
class BuildResult:
    """
    Complete build result (immutable).

    Attributes:
        document_path: Path to the generated PDF / DOCX
        page_count: Number of pages generated
        assignments: Every student's (level, form) in worksheet order
        cache_keys: Question set keys generated for this run
        warnings: Degraded-output warnings (empty sections, skipped images,
            overflowing blocks)
        metadata: Build metadata dictionary
        layout: Page plans the document was rendered from

    Example:
        >>> result = await build_worksheets(config, generator)
        >>> print(f"Generated {result.page_count} pages")
    """
    document_path: Path
    page_count: int
    assignments: Tuple[FormAssignment, ...]
    cache_keys: Tuple[str, ...]
    warnings: Tuple[str, ...]
    metadata: dict
    layout: LayoutResult


async def build_worksheets(
    config: WorksheetConfig,
    generator: QuestionGenerator,
    *,
    diagram_generator: Optional[DiagramGenerator] = None,
    fetcher: Optional[ImageFetcher] = None,
    output_dir: Optional[Path] = None,
    token: Optional[CancellationToken] = None,
    today: Optional[date] = None,
    progress: Optional[ProgressCallback] = None,
    cache: Optional[QuestionSetCache] = None,
    rng: Optional[random.Random] = None,
) -> BuildResult:
    """
    Build a differentiated class set from start to finish.

    Pipeline:
    1. Validate input (no external call happens on failure)
    2. Group students by level, assign forms round-robin
    3. Generate each distinct (form, level) question set once
    4. Resolve diagrams in bounded batches
    5. Compose, paginate and render the document
    6. Write build metadata next to the document

    Args:
        config: Build configuration
        generator: Question generation collaborator
        diagram_generator: Diagram collaborator for prompt-only diagrams
        fetcher: Image fetcher (default: ImageFetcher())
        output_dir: Output directory (default: config.output_dir or ./output)
        token: Cancellation token for the generation phase
        today: Date used in the file name (default: today)
        progress: Optional callback(done, total, key) during generation
        cache: Existing cache to reuse (e.g. after selective regeneration)
        rng: Random source for regeneration seeds

    Returns:
        BuildResult with path and metadata

    Raises:
        InputError: No students or no topics selected
        GenerationCancelled: The token fired during generation; nothing
            is rendered
        BuildError: The document or metadata could not be written
    """
    start_time = time.perf_counter()

    assignments, cache, images = await prepare_question_sets(
        config,
        generator,
        diagram_generator=diagram_generator,
        fetcher=fetcher,
        token=token,
        progress=progress,
        cache=cache,
        rng=rng,
    )

    result = render_class_set(
        config,
        assignments,
        cache.entries,
        images,
        output_dir=output_dir,
        today=today,
        extra_warnings=_generation_warnings(cache, images),
        generation_stats={
            "calls": cache.stats.calls,
            "failures": list(cache.stats.failures),
            "empty_sections": list(cache.stats.empty_sections),
            "seeds": {key: entry.seed for key, entry in cache.entries.items()},
        },
    )

    elapsed = time.perf_counter() - start_time
    logger.info(f"Class set generation completed in {elapsed:.2f}s")
    return result


async def prepare_question_sets(
    config: WorksheetConfig,
    generator: QuestionGenerator,
    *,
    diagram_generator: Optional[DiagramGenerator] = None,
    fetcher: Optional[ImageFetcher] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressCallback] = None,
    cache: Optional[QuestionSetCache] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[List[FormAssignment], QuestionSetCache, ImageCache]:
    """
    Phase 1: validate, assign forms, and resolve every external input.

    Returns:
        (assignments in worksheet order, populated cache, resolved images)

    Raises:
        InputError: No students or no topics selected
        GenerationCancelled: The token fired
    """
    _validate(config)
    token = token or CancellationToken()

    groups = group_by_level(config.students)
    by_level = assign_forms(groups, config.form_count)
    assignments = flatten(by_level)
    pairs = distinct_pairs(by_level)

    logger.info(
        f"Assigned {len(assignments)} students across {len(groups)} levels and "
        f"{config.form_count} forms: {len(pairs)} question sets needed"
    )

    if cache is None:
        cache = QuestionSetCache(generator, config.generation_options(), token=token, rng=rng)
    await cache.populate(pairs, progress)

    images = await resolve_diagrams(
        cache.entries.values(),
        fetcher=fetcher,
        diagram_generator=diagram_generator,
        use_ai_images=config.use_ai_images,
        token=token,
    )
    return assignments, cache, images


def render_class_set(
    config: WorksheetConfig,
    assignments: Sequence[FormAssignment],
    question_sets: Mapping[str, QuestionSet],
    images: Optional[ImageCache] = None,
    *,
    output_dir: Optional[Path] = None,
    today: Optional[date] = None,
    extra_warnings: Sequence[str] = (),
    generation_stats: Optional[dict] = None,
) -> BuildResult:
    """
    Phase 2: compose, paginate and render from resolved caches.

    Purely synchronous; reads `question_sets` and `images` only.

    Raises:
        BuildError: The document or metadata could not be written
    """
    warnings: List[str] = list(extra_warnings)

    layout_config = config.layout_config()
    sections = compose_document(
        assignments,
        question_sets,
        layout_config,
        config.worksheet_options(),
        images,
        include_answer_key=config.include_answer_key,
    )
    layout = paginate(sections, layout_config)
    warnings.extend(layout.warnings)

    output_dir = Path(output_dir or config.output_dir or DEFAULT_OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = document_filename(
        config.topics,
        forms_for(config.form_count),
        config.output_format,
        today or date.today(),
    )
    document_path = output_dir / filename
    title = f"{config.topic_label} - Differentiated Class Set"

    try:
        if config.output_format == "docx":
            render_to_docx(layout, document_path, layout_config, title=title)
        else:
            render_to_pdf(layout, document_path, layout_config, title=title)
    except OSError as e:
        raise BuildError(f"Failed to write {document_path}: {e}") from e
    logger.info(f"Rendered {config.output_format.upper()}: {document_path}")

    cache_keys = tuple(dict.fromkeys(a.key for a in assignments))
    metadata = _build_metadata(config, assignments, cache_keys, layout, warnings, generation_stats)
    _write_metadata(document_path, metadata)

    return BuildResult(
        document_path=document_path,
        page_count=layout.page_count,
        assignments=tuple(assignments),
        cache_keys=cache_keys,
        warnings=tuple(warnings),
        metadata=metadata,
        layout=layout,
    )


def _validate(config: WorksheetConfig) -> None:
    if not config.students:
        raise InputError("No students selected")
    if not [t for t in config.topics if t.strip()]:
        raise InputError("No topics selected")


def _generation_warnings(cache: QuestionSetCache, images: ImageCache) -> List[str]:
    warnings = [f"Question generation failed for {label}" for label in cache.stats.failures]
    warnings.extend(f"No questions generated for {label}" for label in cache.stats.empty_sections)
    if images.failed_keys:
        warnings.append(f"{len(images.failed_keys)} diagram(s) could not be loaded and were omitted")
    return warnings


def _build_metadata(
    config: WorksheetConfig,
    assignments: Sequence[FormAssignment],
    cache_keys: Sequence[str],
    layout: LayoutResult,
    warnings: Sequence[str],
    generation_stats: Optional[dict],
) -> dict:
    """
    Build metadata dictionary for a generated class set.

    Contains:
    - Build configuration
    - Student assignments
    - Generation statistics
    - Page map
    - Timestamp

    Returns:
        Metadata dictionary ready for JSON serialization
    """
    from worksheet_toolkit import __version__

    students_per_level: Dict[str, int] = {}
    for assignment in assignments:
        level = assignment.level.value
        students_per_level[level] = students_per_level.get(level, 0) + 1

    return {
        "generated_at": datetime.now().isoformat(),
        "topics": list(config.topics),
        "question_count": config.question_count,
        "warm_up_count": config.warm_up_count,
        "warm_up_difficulty": config.warm_up_difficulty,
        "form_count": config.form_count,
        "forms": list(forms_for(config.form_count)),
        "margin_size": config.margin_size.value,
        "output_format": config.output_format,
        "include_answer_key": config.include_answer_key,
        "include_qr_codes": config.include_qr_codes,
        "worksheet_id": config.worksheet_id,
        "student_count": len(assignments),
        "page_count": layout.page_count,
        "cache_keys": list(cache_keys),
        "builder_version": __version__,
        "stats": {
            "students_per_level": students_per_level,
            "generation": generation_stats or {},
        },
        "assignments": [
            {
                "student_id": a.student.id,
                "student_name": a.student.full_name,
                "level": a.level.value,
                "form": a.form,
                "pages": [i + 1 for i in layout.section_page_map.get(f"student:{a.student.id}", [])],
            }
            for a in assignments
        ],
        "warnings": list(warnings),
    }


def _write_metadata(document_path: Path, metadata: dict) -> None:
    """
    Write metadata JSON next to the document.

    Raises:
        BuildError: If writing fails

    Example:
        >>> _write_metadata(Path("output/Class_Set_Fractions_Forms_AB_2025-03-01.pdf"), metadata)
        # Creates output/Class_Set_Fractions_Forms_AB_2025-03-01.metadata.json
    """
    metadata_path = document_path.with_suffix(".metadata.json")

    try:
        with open(metadata_path, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)
        logger.debug(f"Wrote metadata to {metadata_path}")
    except OSError as e:
        raise BuildError(f"Failed to write metadata: {e}") from e
