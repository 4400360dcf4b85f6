"""
Worksheet Toolkit Core Package

Shared data models and serialization helpers used by placement,
generation, layout and diagnostics.
"""

from .models import (
    AdvancementLevel,
    Student,
    LevelScore,
    DiagnosticResult,
    PlacedStudent,
    GeneratedQuestion,
    QuestionSet,
)

__all__ = [
    "AdvancementLevel",
    "Student",
    "LevelScore",
    "DiagnosticResult",
    "PlacedStudent",
    "GeneratedQuestion",
    "QuestionSet",
]
