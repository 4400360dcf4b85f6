"""
Module: placement.recommender

Purpose:
    Turn a student's per-level score grid into one recommended
    advancement level, and pick the level a worksheet is generated at.

Key Functions:
    - recommend_level(): Score grid → level (first failed level steps down)
    - has_attempts(): Whether any level was assessed
    - recommend_level_or_default(): recommend_level with neutral fallback
    - resolve_student_level(): Adaptive override / diagnostic / default

Algorithm:
    Scan levels A→F. The first level with total > 0 and
    correct/total < pass_fraction returns the next easier level (F stays
    F). Levels with total == 0 are skipped. If nothing fails, A.

Dependencies:
    - common.thresholds: pass fraction, default level

Used By:
    - diagnostics.aggregator
    - builder.controller (via placement.selection)
"""

from __future__ import annotations

from fractions import Fraction
from typing import Optional

from worksheet_toolkit.common.thresholds import PLACEMENT
from worksheet_toolkit.core.models.levels import AdvancementLevel, LEVEL_ORDER
from worksheet_toolkit.core.models.students import DiagnosticResult, LevelScore, ScoreGrid


def recommend_level(
    scores: ScoreGrid,
    *,
    pass_fraction: float = PLACEMENT.pass_fraction,
) -> AdvancementLevel:
    """
    Recommend an advancement level from a per-level score grid.

    Args:
        scores: Mapping of level → LevelScore (missing levels count as 0/0)
        pass_fraction: Fraction needed to pass a level (exactly equal passes)

    Returns:
        The level after the first failed level, F at the floor, or A
        when every attempted level passes.

    Example:
        >>> recommend_level({
        ...     AdvancementLevel.C: LevelScore(4, 5),
        ...     AdvancementLevel.D: LevelScore(2, 5),
        ... })
        <AdvancementLevel.E: 'E'>
    """
    # Parsed from its decimal form so 0.7 means exactly 7/10
    threshold = Fraction(str(pass_fraction))
    for level in LEVEL_ORDER:
        score = scores.get(level, LevelScore.empty())
        if not score.attempted:
            continue
        if Fraction(score.correct, score.total) < threshold:
            return level.easier()
    return AdvancementLevel.A


def has_attempts(scores: ScoreGrid) -> bool:
    """True if at least one level has questions assessed."""
    return any(score.attempted for score in scores.values())


def recommend_level_or_default(
    scores: ScoreGrid,
    default: AdvancementLevel = PLACEMENT.default_level,
) -> AdvancementLevel:
    """
    Recommend a level, falling back to a neutral placement.

    When no level has any attempted questions the recommender is not
    consulted at all and `default` (C) is returned.
    """
    if not has_attempts(scores):
        return default
    return recommend_level(scores)


def resolve_student_level(
    diagnostic: Optional[DiagnosticResult],
    adaptive_level: Optional[AdvancementLevel] = None,
    *,
    use_adaptive: bool = False,
    default: AdvancementLevel = PLACEMENT.default_level,
) -> AdvancementLevel:
    """
    Pick the level a student's worksheet is generated at.

    The adaptive level (derived from recently graded work) replaces the
    diagnostic level outright when present and enabled; the two sources
    are never blended.

    Args:
        diagnostic: Most recent diagnostic result, if any
        adaptive_level: Level from graded-work performance, if any
        use_adaptive: Whether the adaptive source is enabled
        default: Level for students with no usable data

    Returns:
        AdvancementLevel to generate at
    """
    if use_adaptive and adaptive_level is not None:
        return AdvancementLevel.parse(adaptive_level)
    if diagnostic is not None:
        return diagnostic.recommended_level
    return default
