"""
Module: placement.selection

Purpose:
    Decide which roster students receive a worksheet and at what level.

    A single selection contract is used for every entry point:
    - WITH_DIAGNOSTIC (default): only students with a diagnostic record
    - WITHOUT_DIAGNOSTIC: only students with no record yet
    - ALL: everyone; students without data are placed at the default level

Key Classes:
    - SelectionFilter: Which students are selected
    - RosterEntry: Student plus their latest diagnostic / adaptive level

Key Functions:
    - build_roster(): Join students with their latest diagnostic rows
    - select_students(): Apply a SelectionFilter and resolve levels

Used By:
    - builder.controller, cli
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence

from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.students import DiagnosticResult, PlacedStudent, Student

from .recommender import resolve_student_level

logger = logging.getLogger(__name__)


class SelectionFilter(str, Enum):
    ALL = "all"
    WITH_DIAGNOSTIC = "with_diagnostic"
    WITHOUT_DIAGNOSTIC = "without_diagnostic"


@dataclass(frozen=True)
class RosterEntry:
    """
    A roster student with the data placement needs.

    Attributes:
        student: The student
        diagnostic: Most recent diagnostic result (topic-filtered by caller)
        adaptive_level: Level derived from graded work, if available
    """

    student: Student
    diagnostic: Optional[DiagnosticResult] = None
    adaptive_level: Optional[AdvancementLevel] = None

    @property
    def has_diagnostic(self) -> bool:
        return self.diagnostic is not None


def build_roster(
    students: Sequence[Student],
    latest: Mapping[str, DiagnosticResult],
    adaptive_levels: Optional[Mapping[str, AdvancementLevel]] = None,
) -> List[RosterEntry]:
    """
    Join roster students with their latest diagnostic results.

    Args:
        students: Students in roster order
        latest: student_id → most recent DiagnosticResult
        adaptive_levels: student_id → adaptive level, if available

    Returns:
        RosterEntry list in roster order
    """
    adaptive_levels = adaptive_levels or {}
    return [
        RosterEntry(
            student=student,
            diagnostic=latest.get(student.id),
            adaptive_level=adaptive_levels.get(student.id),
        )
        for student in students
    ]


def select_students(
    roster: Iterable[RosterEntry],
    selection: SelectionFilter = SelectionFilter.WITH_DIAGNOSTIC,
    *,
    use_adaptive: bool = False,
) -> List[PlacedStudent]:
    """
    Select students and resolve each one's worksheet level.

    Args:
        roster: Roster entries in roster order
        selection: Which students to include
        use_adaptive: Let adaptive levels replace diagnostic levels

    Returns:
        PlacedStudent list in roster order
    """
    placed: List[PlacedStudent] = []
    skipped = 0

    for entry in roster:
        if selection is SelectionFilter.WITH_DIAGNOSTIC and not entry.has_diagnostic:
            skipped += 1
            continue
        if selection is SelectionFilter.WITHOUT_DIAGNOSTIC and entry.has_diagnostic:
            skipped += 1
            continue

        level = resolve_student_level(
            entry.diagnostic,
            entry.adaptive_level,
            use_adaptive=use_adaptive,
        )
        placed.append(PlacedStudent(student=entry.student, level=level))

    logger.info(f"Selected {len(placed)} students ({selection.value}), skipped {skipped}")
    return placed
