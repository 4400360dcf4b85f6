"""
Module: placement

Purpose:
    Level recommendation, student selection and form assignment.
    Everything here is pure and deterministic.

Key Functions:
    - recommend_level(): Score grid → AdvancementLevel
    - resolve_student_level(): Adaptive / diagnostic / default level
    - select_students(): Apply the selection filter contract
    - assign_forms(): Round-robin forms within each level
"""

from .recommender import (
    recommend_level,
    recommend_level_or_default,
    has_attempts,
    resolve_student_level,
)
from .forms import FormAssignment, group_by_level, assign_forms, distinct_pairs, flatten
from .selection import SelectionFilter, RosterEntry, build_roster, select_students

__all__ = [
    "recommend_level",
    "recommend_level_or_default",
    "has_attempts",
    "resolve_student_level",
    "FormAssignment",
    "group_by_level",
    "assign_forms",
    "distinct_pairs",
    "flatten",
    "SelectionFilter",
    "RosterEntry",
    "build_roster",
    "select_students",
]
