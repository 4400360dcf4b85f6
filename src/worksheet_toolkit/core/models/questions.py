"""
Module: questions

Purpose:
    Models for generated question payloads. Questions are produced by
    the external generator and treated as opaque apart from the fields
    below. A QuestionSet is the cached {warm-up, main} pair for one
    (form, level) key.

Key Classes:
    - Diagram: Optional SVG / image reference / image prompt
    - GeneratedQuestion: One question as returned by the generator
    - QuestionSet: Warm-up and main question lists for a (form, level)
    - Section: Which half of a QuestionSet a question belongs to

Dependencies:
    - dataclasses (std)
    - .levels: AdvancementLevel

Used By:
    - generation.cache, generation.diagrams
    - builder.layout.composer
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from .levels import AdvancementLevel


class Section(str, Enum):
    WARM_UP = "warm_up"
    MAIN = "main"


@dataclass(frozen=True)
class Diagram:
    """
    Diagram attached to a question.

    At most one of the sources is normally set. `image_url` may be a
    remote URL or a `data:` URI; `prompt` asks the diagram collaborator
    to produce one.
    """

    svg: Optional[str] = None
    image_url: Optional[str] = None
    prompt: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.svg or self.image_url or self.prompt)


@dataclass(frozen=True)
class GeneratedQuestion:
    """
    Question payload from the generation collaborator.

    Attributes:
        question_number: 1-based, local to its section
        topic: Topic name
        standard: Curriculum standard code
        text: Question prompt
        difficulty: Difficulty label (e.g. "medium")
        level: Level the question was generated for
        hint: Optional hint text
        diagram: Optional diagram
    """

    question_number: int
    topic: str
    standard: str
    text: str
    difficulty: str
    level: AdvancementLevel
    hint: Optional[str] = None
    diagram: Optional[Diagram] = None

    def renumbered(self, number: int) -> GeneratedQuestion:
        return replace(self, question_number=number)


@dataclass(frozen=True)
class QuestionSet:
    """
    Questions shared by every student holding the same (form, level).

    Example:
        >>> qs = QuestionSet(form="B", level=AdvancementLevel.C)
        >>> qs.key
        'B-C'
    """

    form: str
    level: AdvancementLevel
    warm_up: Tuple[GeneratedQuestion, ...] = ()
    main: Tuple[GeneratedQuestion, ...] = ()
    seed: int = 0

    @property
    def key(self) -> str:
        return cache_key(self.form, self.level)

    @property
    def is_empty(self) -> bool:
        return not self.warm_up and not self.main

    def questions(self, section: Section) -> Tuple[GeneratedQuestion, ...]:
        return self.warm_up if section is Section.WARM_UP else self.main

    def all_questions(self) -> Tuple[GeneratedQuestion, ...]:
        return self.warm_up + self.main

    def with_section(
        self, section: Section, questions: Tuple[GeneratedQuestion, ...]
    ) -> QuestionSet:
        if section is Section.WARM_UP:
            return replace(self, warm_up=tuple(questions))
        return replace(self, main=tuple(questions))


def cache_key(form: str, level: AdvancementLevel) -> str:
    """Cache key for a (form, level) pair: "{form}-{level}"."""
    return f"{form}-{AdvancementLevel.parse(level).value}"
