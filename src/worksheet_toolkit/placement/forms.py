"""
Module: placement.forms

Purpose:
    Distribute students across parallel question forms. Within each
    level group students receive forms round-robin by their position, so
    neighbours in roster order get different variants without any
    randomness.

Key Functions:
    - group_by_level(): Partition placed students by level (roster order kept)
    - assign_forms(): Round-robin form assignment per level
    - distinct_pairs(): (form, level) keys actually used by an assignment

Key Classes:
    - FormAssignment: One student with their level and form

Dependencies:
    - core.models.levels: FORM_LETTERS, forms_for

Used By:
    - builder.controller: Pipeline orchestration
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from worksheet_toolkit.core.models.levels import AdvancementLevel, LEVEL_ORDER, forms_for
from worksheet_toolkit.core.models.questions import cache_key
from worksheet_toolkit.core.models.students import PlacedStudent, Student

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormAssignment:
    """
    A student's slot in the generation run.

    Attributes:
        student: The student
        level: Level the worksheet targets
        form: Form letter (A-J)
        index: 0-based position within the level group
    """

    student: Student
    level: AdvancementLevel
    form: str
    index: int

    @property
    def key(self) -> str:
        """QuestionSetCache key this student reads from."""
        return cache_key(self.form, self.level)


StudentsByLevel = Mapping[AdvancementLevel, Sequence[Student]]
Assignments = Dict[AdvancementLevel, List[FormAssignment]]


def group_by_level(placed: Iterable[PlacedStudent]) -> Dict[AdvancementLevel, List[Student]]:
    """
    Partition students by level.

    Levels are returned in A→F order; only levels with students appear.
    Students keep their incoming (roster) order inside each group.
    """
    groups: Dict[AdvancementLevel, List[Student]] = {}
    for entry in placed:
        groups.setdefault(entry.level, []).append(entry.student)
    return {level: groups[level] for level in LEVEL_ORDER if level in groups}


def assign_forms(students_by_level: StudentsByLevel, num_forms: int) -> Assignments:
    """
    Assign each student a form by position within their level group.

    The student at position i receives FORMS[i % num_forms]. Balance is
    per level only: a level with 3 students and 4 forms uses A-C.

    Args:
        students_by_level: Level → students in roster order
        num_forms: Number of forms in use (1..10)

    Returns:
        Level → list of FormAssignment, levels in A→F order

    Raises:
        ValueError: If num_forms is outside [1, 10]

    Example:
        >>> result = assign_forms({AdvancementLevel.C: [s1, s2, s3]}, 2)
        >>> [a.form for a in result[AdvancementLevel.C]]
        ['A', 'B', 'A']
    """
    forms = forms_for(num_forms)
    result: Assignments = {}

    for level in LEVEL_ORDER:
        students = students_by_level.get(level)
        if not students:
            continue
        result[level] = [
            FormAssignment(
                student=student,
                level=level,
                form=forms[index % num_forms],
                index=index,
            )
            for index, student in enumerate(students)
        ]
        logger.debug(
            f"Level {level}: {len(students)} students across "
            f"{min(len(students), num_forms)} forms"
        )

    return result


def flatten(assignments: Assignments) -> List[FormAssignment]:
    """All assignments in worksheet order (level A→F, then roster order)."""
    return [a for level in LEVEL_ORDER for a in assignments.get(level, [])]


def distinct_pairs(assignments: Assignments) -> List[Tuple[str, AdvancementLevel]]:
    """
    Unique (form, level) pairs in use, ordered by form then level.

    This is the exact set of QuestionSetCache keys a run must populate.
    """
    pairs = {(a.form, a.level) for a in flatten(assignments)}
    return sorted(pairs, key=lambda pair: (pair[0], pair[1].rank))
