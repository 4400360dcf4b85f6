"""
Module: generation.cache

Purpose:
    Keyed store of generated question sets. Every student sharing a
    (form, level) pair reads the identical QuestionSet, so each key is
    generated exactly once per run. This bounds generation cost and keeps
    grading consistent across students on the same form.

Key Functions:
    - form_seed(): Deterministic seed for a (form, level) pair

Key Classes:
    - GenerationOptions: Settings shared by every request in a run
    - QuestionSetCache: get_or_generate / populate / selective regeneration

Failure Semantics:
    A collaborator error or empty response stores an empty section for
    that key; the run continues and the section is simply omitted from
    affected worksheets. There are no retries.

    Cancellation is checked before each external call. An entry whose
    generation was interrupted is never stored.

Dependencies:
    - asyncio (std): Shared in-flight generation per key
    - generation.client: QuestionRequest, QuestionGenerator

Used By:
    - builder.controller: Phase 1 of the build pipeline
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from worksheet_toolkit.common.thresholds import GENERATION
from worksheet_toolkit.core.models.levels import AdvancementLevel, validate_form
from worksheet_toolkit.core.models.questions import (
    GeneratedQuestion,
    QuestionSet,
    Section,
    cache_key,
)

from .cancellation import CancellationToken, GenerationCancelled
from .client import QuestionGenerator, QuestionRequest, difficulty_for

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def form_seed(form: str, level: AdvancementLevel) -> int:
    """
    Deterministic seed for a (form, level) pair.

    Example:
        >>> form_seed("B", AdvancementLevel.C)
        66067
    """
    level = AdvancementLevel.parse(level)
    return ord(validate_form(form)) * GENERATION.form_seed_multiplier + ord(level.value)


@dataclass(frozen=True)
class GenerationOptions:
    """
    Settings shared by every generation request in a run.

    Attributes:
        topics: Topic names
        question_count: Main-section questions per set
        warm_up_count: Warm-up questions per set (0 disables the section)
        warm_up_difficulty: Difficulty label for warm-up questions
        include_hints: Request hints
        include_geometry: Allow diagram questions
        use_ai_images: Prefer AI images for diagrams
    """

    topics: Tuple[str, ...]
    question_count: int
    warm_up_count: int = 0
    warm_up_difficulty: str = "very-easy"
    include_hints: bool = False
    include_geometry: bool = False
    use_ai_images: bool = False

    def __post_init__(self) -> None:
        if self.question_count < 0:
            raise ValueError(f"question_count must be non-negative: {self.question_count}")
        if self.warm_up_count < 0:
            raise ValueError(f"warm_up_count must be non-negative: {self.warm_up_count}")


@dataclass
class CacheStats:
    """Counters for one run (diagnostics only)."""

    calls: int = 0
    failures: List[str] = field(default_factory=list)
    empty_sections: List[str] = field(default_factory=list)


class QuestionSetCache:
    """
    (form, level) → QuestionSet store, populated once per key per run.

    Concurrent awaits of the same key share a single in-flight generation.
    After the generation phase the cache is only read (see `entries`).

    Example:
        >>> cache = QuestionSetCache(generator, options)
        >>> first = await cache.get_or_generate("B", AdvancementLevel.C)
        >>> second = await cache.get_or_generate("B", AdvancementLevel.C)
        >>> first is second
        True
    """

    def __init__(
        self,
        generator: QuestionGenerator,
        options: GenerationOptions,
        *,
        token: Optional[CancellationToken] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.generator = generator
        self.options = options
        self.token = token or CancellationToken()
        self.stats = CacheStats()
        self._rng = rng or random.Random()
        self._entries: Dict[str, QuestionSet] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Read access
    # ─────────────────────────────────────────────────────────────────────────

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, form: str, level: AdvancementLevel) -> Optional[QuestionSet]:
        return self._entries.get(cache_key(form, level))

    def keys(self) -> List[str]:
        return list(self._entries)

    @property
    def entries(self) -> Mapping[str, QuestionSet]:
        """Read-only view used by the layout phase."""
        return MappingProxyType(self._entries)

    # ─────────────────────────────────────────────────────────────────────────
    # Population
    # ─────────────────────────────────────────────────────────────────────────

    async def get_or_generate(self, form: str, level: AdvancementLevel) -> QuestionSet:
        """
        Return the cached set for (form, level), generating it on first use.

        Raises:
            GenerationCancelled: If the run was cancelled before this key
                was fully generated
        """
        level = AdvancementLevel.parse(level)
        key = cache_key(form, level)

        existing = self._entries.get(key)
        if existing is not None:
            return existing

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._generate_entry(form, level, form_seed(form, level))
            )
            self._pending[key] = pending

        try:
            return await asyncio.shield(pending)
        finally:
            if pending.done():
                self._pending.pop(key, None)

    async def populate(
        self,
        pairs: Iterable[Tuple[str, AdvancementLevel]],
        progress: Optional[ProgressCallback] = None,
    ) -> Mapping[str, QuestionSet]:
        """
        Generate every (form, level) pair, one after another.

        Args:
            pairs: (form, level) keys to populate, in order
            progress: Optional callback(done, total, key)

        Returns:
            Read-only view of all entries

        Raises:
            GenerationCancelled: If the token fires; entries completed
                before cancellation remain valid
        """
        pairs = list(pairs)
        total = len(pairs)
        for done, (form, level) in enumerate(pairs, start=1):
            self.token.raise_if_cancelled()
            entry = await self.get_or_generate(form, level)
            if progress is not None:
                progress(done, total, entry.key)

        logger.info(
            f"Populated {len(self._entries)} question sets with "
            f"{self.stats.calls} generation calls ({len(self.stats.failures)} failed)"
        )
        return self.entries

    # ─────────────────────────────────────────────────────────────────────────
    # Selective regeneration
    # ─────────────────────────────────────────────────────────────────────────

    async def regenerate_entry(self, form: str, level: AdvancementLevel) -> QuestionSet:
        """
        Regenerate one (form, level) entry with a fresh random seed.

        Other entries are untouched. A section whose regeneration comes
        back empty keeps its previous questions.
        """
        level = AdvancementLevel.parse(level)
        key = cache_key(form, level)
        previous = self._entries.get(key)
        seed = self._new_seed()

        warm_up, main = await self._generate_sections(form, level, seed)
        if previous is not None:
            if not warm_up and previous.warm_up:
                logger.warning(f"Warm-up regeneration for {key} returned nothing, keeping previous set")
                warm_up = previous.warm_up
            if not main and previous.main:
                logger.warning(f"Main regeneration for {key} returned nothing, keeping previous set")
                main = previous.main

        self.token.raise_if_cancelled()
        entry = QuestionSet(form=form, level=level, warm_up=warm_up, main=main, seed=seed)
        self._entries[key] = entry
        logger.info(f"Regenerated question set {key} (seed {seed})")
        return entry

    async def regenerate_question(
        self,
        form: str,
        level: AdvancementLevel,
        section: Section,
        index: int,
    ) -> GeneratedQuestion:
        """
        Replace a single question within an entry, keeping its slot number.

        Args:
            form: Form letter
            level: Level
            section: Which section the question is in
            index: 0-based position within the section

        Returns:
            The new question (or the old one if regeneration returned nothing)

        Raises:
            KeyError: If the entry has not been generated
            IndexError: If index is outside the section
        """
        level = AdvancementLevel.parse(level)
        key = cache_key(form, level)
        entry = self._entries.get(key)
        if entry is None:
            raise KeyError(f"No question set generated for {key}")

        questions = list(entry.questions(section))
        if not 0 <= index < len(questions):
            raise IndexError(f"{section.value} question {index} out of range for {key}")

        old = questions[index]
        fresh = await self._generate_section(form, level, self._new_seed(), section, count=1)
        if not fresh:
            logger.warning(f"Regenerating {key} {section.value} #{old.question_number} returned nothing")
            return old

        self.token.raise_if_cancelled()
        replacement = fresh[0].renumbered(old.question_number)
        questions[index] = replacement
        # Re-read the entry: it may have been replaced while awaiting
        current = self._entries.get(key, entry)
        self._entries[key] = current.with_section(section, tuple(questions))
        logger.info(f"Regenerated {key} {section.value} question {old.question_number}")
        return replacement

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _new_seed(self) -> int:
        return self._rng.randint(1, GENERATION.max_seed)

    async def _generate_entry(self, form: str, level: AdvancementLevel, seed: int) -> QuestionSet:
        warm_up, main = await self._generate_sections(form, level, seed)

        # Results that arrive after cancellation are discarded
        self.token.raise_if_cancelled()

        entry = QuestionSet(form=form, level=level, warm_up=warm_up, main=main, seed=seed)
        self._entries[entry.key] = entry
        logger.info(
            f"Generated question set {entry.key}: "
            f"{len(warm_up)} warm-up, {len(main)} main (seed {seed})"
        )
        return entry

    async def _generate_sections(
        self, form: str, level: AdvancementLevel, seed: int
    ) -> Tuple[Tuple[GeneratedQuestion, ...], Tuple[GeneratedQuestion, ...]]:
        warm_up: Tuple[GeneratedQuestion, ...] = ()
        if self.options.warm_up_count > 0:
            warm_up = await self._generate_section(form, level, seed, Section.WARM_UP)
        main: Tuple[GeneratedQuestion, ...] = ()
        if self.options.question_count > 0:
            main = await self._generate_section(form, level, seed, Section.MAIN)
        return warm_up, main

    def _build_request(
        self,
        form: str,
        level: AdvancementLevel,
        seed: int,
        section: Section,
        count: Optional[int] = None,
    ) -> QuestionRequest:
        options = self.options
        if section is Section.WARM_UP:
            default_count = options.warm_up_count
            difficulty: Tuple[str, ...] = (options.warm_up_difficulty,)
        else:
            default_count = options.question_count
            difficulty = difficulty_for(level)

        return QuestionRequest(
            topics=options.topics,
            count=count if count is not None else default_count,
            difficulty_levels=difficulty,
            form=form,
            level=level,
            seed=seed,
            section=section,
            include_hints=options.include_hints,
            include_geometry=options.include_geometry,
            use_ai_images=options.use_ai_images,
        )

    async def _generate_section(
        self,
        form: str,
        level: AdvancementLevel,
        seed: int,
        section: Section,
        count: Optional[int] = None,
    ) -> Tuple[GeneratedQuestion, ...]:
        self.token.raise_if_cancelled()

        request = self._build_request(form, level, seed, section, count)
        label = f"{cache_key(form, level)} {section.value}"
        self.stats.calls += 1

        try:
            questions = await self.generator.generate(request)
        except GenerationCancelled:
            raise
        except Exception as e:
            # Collaborator failure: this section is left empty, the run continues
            logger.error(f"Question generation failed for {label}: {e}")
            self.stats.failures.append(label)
            return ()

        if not questions:
            logger.warning(f"No questions returned for {label}")
            self.stats.empty_sections.append(label)
            return ()

        return tuple(
            question.renumbered(number)
            for number, question in enumerate(questions[: request.count], start=1)
        )
