"""
Module: diagnostics.aggregator

Purpose:
    Convert raw per-student diagnostic scores into persisted result rows
    and level-change events. Pure: no I/O, no clock reads beyond the
    optional default timestamp.

Key Functions:
    - aggregate(): Raw scores + prior levels → results and events
    - detect_level_change(): Compare one student's prior and new level

Key Classes:
    - RawStudentScores: Teacher-entered (correct, total) per level
    - LevelChangeKind: level_a_achieved / level_drop
    - LevelChangeEvent: Advisory notification payload
    - AggregationResult: Rows to insert plus events to dispatch

Event Rules:
    - No prior level (first assessment) → no event
    - Unchanged level → no event
    - Newly reaching A from any lower level → level_a_achieved
    - Strictly worse than the prior level → level_drop
    - Improving without reaching A → no event

Dependencies:
    - placement.recommender: recommend_level_or_default

Used By:
    - diagnostics.recorder
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple

from worksheet_toolkit.core.models.levels import AdvancementLevel, LEVEL_ORDER
from worksheet_toolkit.core.models.students import DiagnosticResult, LevelScore, Student
from worksheet_toolkit.placement.recommender import recommend_level_or_default

logger = logging.getLogger(__name__)


class LevelChangeKind(str, Enum):
    LEVEL_A_ACHIEVED = "level_a_achieved"
    LEVEL_DROP = "level_drop"


@dataclass(frozen=True)
class RawStudentScores:
    """
    Scores as entered, before validation.

    `correct` values may be out of range (typos, over-counting); they are
    clamped into [0, total] during aggregation.

    Attributes:
        student: The student
        scores: Level → (correct, total); missing levels count as 0/0
    """

    student: Student
    scores: Mapping[AdvancementLevel, Tuple[int, int]]

    def clamped_scores(self) -> Tuple[LevelScore, ...]:
        return tuple(
            LevelScore.clamped(*self.scores.get(level, (0, 0)))
            for level in LEVEL_ORDER
        )


@dataclass(frozen=True)
class LevelChangeEvent:
    """Advisory level-change notification for one student."""

    student: Student
    kind: LevelChangeKind
    previous_level: AdvancementLevel
    current_level: AdvancementLevel
    topic_name: str


@dataclass(frozen=True)
class AggregationResult:
    """Rows to persist (one per student) and events to dispatch."""

    results: Tuple[DiagnosticResult, ...]
    events: Tuple[LevelChangeEvent, ...]


def detect_level_change(
    previous: Optional[AdvancementLevel],
    current: AdvancementLevel,
) -> Optional[LevelChangeKind]:
    """
    Classify a level change.

    Example:
        >>> detect_level_change(AdvancementLevel.B, AdvancementLevel.A)
        <LevelChangeKind.LEVEL_A_ACHIEVED: 'level_a_achieved'>
        >>> detect_level_change(None, AdvancementLevel.A) is None
        True
    """
    if previous is None or previous == current:
        return None
    if current is AdvancementLevel.A:
        return LevelChangeKind.LEVEL_A_ACHIEVED
    if current.is_worse_than(previous):
        return LevelChangeKind.LEVEL_DROP
    return None


def aggregate(
    raw_scores: Iterable[RawStudentScores],
    prior_levels: Mapping[str, AdvancementLevel],
    *,
    topic: str,
    worksheet_id: Optional[str] = None,
    standard: Optional[str] = None,
    teacher_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> AggregationResult:
    """
    Aggregate raw diagnostic scores.

    Args:
        raw_scores: One entry per student
        prior_levels: student_id → most recent prior level for this topic
        topic: Topic the diagnostic covered
        worksheet_id: Source worksheet, if known
        standard: Curriculum standard, if known
        teacher_id: Recording teacher, if known
        created_at: Timestamp for every row (default: now, UTC)

    Returns:
        AggregationResult with one DiagnosticResult per student and the
        level-change events to dispatch
    """
    timestamp = created_at or datetime.now(timezone.utc)
    results: List[DiagnosticResult] = []
    events: List[LevelChangeEvent] = []

    for raw in raw_scores:
        scores = raw.clamped_scores()
        level = recommend_level_or_default(dict(zip(LEVEL_ORDER, scores)))

        results.append(DiagnosticResult(
            student_id=raw.student.id,
            topic_name=topic,
            scores=scores,
            recommended_level=level,
            created_at=timestamp,
            worksheet_id=worksheet_id,
            standard=standard,
            teacher_id=teacher_id,
        ))

        previous = prior_levels.get(raw.student.id)
        kind = detect_level_change(previous, level)
        if kind is not None:
            events.append(LevelChangeEvent(
                student=raw.student,
                kind=kind,
                previous_level=previous,
                current_level=level,
                topic_name=topic,
            ))
            logger.info(f"{raw.student.full_name}: {kind.value} ({previous} → {level}) on {topic}")

    logger.info(f"Aggregated {len(results)} diagnostic results for {topic} ({len(events)} level changes)")
    return AggregationResult(results=tuple(results), events=tuple(events))
