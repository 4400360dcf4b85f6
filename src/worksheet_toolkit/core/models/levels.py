"""
Module: levels

Purpose:
    Provides the AdvancementLevel enum and the form-letter vocabulary.
    Levels are a closed, totally ordered set: A is the hardest placement,
    F the foundational one. Forms label parallel question variants.

Key Functions:
    - AdvancementLevel.parse(value): Coerce "a"/"A"/AdvancementLevel to a level
    - AdvancementLevel.easier(): One step towards F (clamped at F)
    - AdvancementLevel.is_worse_than(other): Strict A→F ordering check
    - forms_for(count): First `count` form letters

Dependencies:
    - enum (std)

Used By:
    - placement.recommender, placement.forms
    - generation.cache
    - diagnostics.aggregator
    - builder.layout.composer
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple


class AdvancementLevel(str, Enum):
    """
    Placement tier, ordered A (most advanced) → F (foundational).

    Example:
        >>> AdvancementLevel.D.easier()
        <AdvancementLevel.E: 'E'>
        >>> AdvancementLevel.F.easier()
        <AdvancementLevel.F: 'F'>
    """

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"

    @classmethod
    def parse(cls, value: "str | AdvancementLevel") -> AdvancementLevel:
        if isinstance(value, AdvancementLevel):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Invalid advancement level: {value!r}") from None

    @property
    def rank(self) -> int:
        """Position in A→F order (A == 0)."""
        return LEVEL_ORDER.index(self)

    @property
    def description(self) -> str:
        return LEVEL_DESCRIPTIONS[self]

    def easier(self) -> AdvancementLevel:
        """Next easier level, or F if already at the floor."""
        return LEVEL_ORDER[min(self.rank + 1, len(LEVEL_ORDER) - 1)]

    def is_worse_than(self, other: AdvancementLevel) -> bool:
        """True if this level comes strictly later than `other` in A→F order."""
        return self.rank > other.rank

    def __str__(self) -> str:
        return self.value


LEVEL_ORDER: Tuple[AdvancementLevel, ...] = tuple(AdvancementLevel)

LEVEL_DESCRIPTIONS = {
    AdvancementLevel.A: "Advanced",
    AdvancementLevel.B: "Proficient",
    AdvancementLevel.C: "Developing",
    AdvancementLevel.D: "Beginning",
    AdvancementLevel.E: "Emerging",
    AdvancementLevel.F: "Foundational",
}

# Header fill colours (RGB 0-255) for the level banner
LEVEL_COLORS = {
    AdvancementLevel.A: (34, 197, 94),
    AdvancementLevel.B: (16, 185, 129),
    AdvancementLevel.C: (250, 204, 21),
    AdvancementLevel.D: (251, 146, 68),
    AdvancementLevel.E: (254, 202, 202),
    AdvancementLevel.F: (243, 244, 246),
}

FORM_LETTERS: Tuple[str, ...] = ("A", "B", "C", "D", "E", "F", "G", "H", "I", "J")
MIN_FORMS = 1
MAX_FORMS = len(FORM_LETTERS)


def forms_for(count: int) -> Tuple[str, ...]:
    """
    Get the first `count` form letters.

    Args:
        count: Number of parallel forms (1..10)

    Returns:
        Tuple of form letters, e.g. ("A", "B") for 2

    Raises:
        ValueError: If count is outside [1, 10]
    """
    if not MIN_FORMS <= count <= MAX_FORMS:
        raise ValueError(f"Form count must be between {MIN_FORMS} and {MAX_FORMS}: {count}")
    return FORM_LETTERS[:count]


def validate_form(form: str) -> str:
    if form not in FORM_LETTERS:
        raise ValueError(f"Invalid form letter: {form!r}")
    return form
