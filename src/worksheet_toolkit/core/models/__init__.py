"""
Core Models Package

Immutable, validated data models shared by every pipeline stage.

All models are frozen dataclasses: the generation phase creates new
instances instead of mutating, so the layout phase can read them
without copying.
"""

from .levels import (
    AdvancementLevel,
    LEVEL_ORDER,
    LEVEL_DESCRIPTIONS,
    LEVEL_COLORS,
    FORM_LETTERS,
    forms_for,
)
from .students import Student, LevelScore, DiagnosticResult, PlacedStudent, full_grid
from .questions import Diagram, GeneratedQuestion, QuestionSet, Section, cache_key

__all__ = [
    "AdvancementLevel",
    "LEVEL_ORDER",
    "LEVEL_DESCRIPTIONS",
    "LEVEL_COLORS",
    "FORM_LETTERS",
    "forms_for",
    "Student",
    "LevelScore",
    "DiagnosticResult",
    "PlacedStudent",
    "full_grid",
    "Diagram",
    "GeneratedQuestion",
    "QuestionSet",
    "Section",
    "cache_key",
]
