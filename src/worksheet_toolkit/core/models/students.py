"""
Module: students

Purpose:
    Student identity and diagnostic score models. Students are owned by
    an external roster; DiagnosticResults are immutable snapshots of one
    student's per-level scores on one topic at one point in time.

Key Classes:
    - Student: Roster identity (read-only here)
    - LevelScore: A single (correct, total) pair
    - DiagnosticResult: Six LevelScores plus the derived recommended level
    - PlacedStudent: Student paired with the level used for generation

Dependencies:
    - dataclasses (std)
    - datetime (std)
    - .levels: AdvancementLevel

Used By:
    - placement, diagnostics, builder
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple

from .levels import AdvancementLevel, LEVEL_ORDER


@dataclass(frozen=True)
class Student:
    """
    Roster identity.

    Attributes:
        id: Stable student identifier
        first_name: Given name
        last_name: Family name
    """

    id: str
    first_name: str
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class LevelScore:
    """
    Correct/total counts for one advancement level.

    Invariants:
        - total >= 0
        - 0 <= correct <= total (use `clamped()` to coerce raw input)
    """

    correct: int
    total: int

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ValueError(f"total cannot be negative: {self.total}")
        if not 0 <= self.correct <= self.total:
            raise ValueError(
                f"correct must be within [0, {self.total}]: {self.correct}"
            )

    @classmethod
    def clamped(cls, correct: int, total: int) -> LevelScore:
        """Build a score, clamping `correct` into [0, total]."""
        total = max(0, int(total))
        return cls(correct=max(0, min(int(correct), total)), total=total)

    @classmethod
    def empty(cls) -> LevelScore:
        return cls(correct=0, total=0)

    @property
    def attempted(self) -> bool:
        return self.total > 0

    @property
    def fraction(self) -> float:
        """correct/total, or 0.0 for unassessed levels."""
        return self.correct / self.total if self.total else 0.0


ScoreGrid = Mapping[AdvancementLevel, LevelScore]


def full_grid(scores: ScoreGrid) -> Tuple[LevelScore, ...]:
    """Expand a partial grid to six entries in A→F order (missing → 0/0)."""
    return tuple(scores.get(level, LevelScore.empty()) for level in LEVEL_ORDER)


@dataclass(frozen=True)
class DiagnosticResult:
    """
    Persisted snapshot of one student's per-level scores on a topic.

    Attributes:
        student_id: Owning student
        topic_name: Topic the diagnostic covered
        scores: Six LevelScores in A→F order
        recommended_level: Level derived from `scores`
        created_at: Creation timestamp (ordering key for "most recent")
        worksheet_id: Source worksheet, if known
        standard: Curriculum standard code, if known
        teacher_id: Recording teacher, if known
    """

    student_id: str
    topic_name: str
    scores: Tuple[LevelScore, ...]
    recommended_level: AdvancementLevel
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    worksheet_id: Optional[str] = None
    standard: Optional[str] = None
    teacher_id: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.scores) != len(LEVEL_ORDER):
            raise ValueError(
                f"Expected {len(LEVEL_ORDER)} level scores, got {len(self.scores)}"
            )

    def score_for(self, level: AdvancementLevel) -> LevelScore:
        return self.scores[level.rank]

    @property
    def score_grid(self) -> dict[AdvancementLevel, LevelScore]:
        return dict(zip(LEVEL_ORDER, self.scores))


@dataclass(frozen=True)
class PlacedStudent:
    """Student paired with the level their worksheet is generated at."""

    student: Student
    level: AdvancementLevel
