"""Unit tests for diagnostic score aggregation and level-change events."""

from datetime import datetime, timezone

import pytest

from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.students import LevelScore, Student
from worksheet_toolkit.diagnostics import (
    LevelChangeKind,
    RawStudentScores,
    aggregate,
    detect_level_change,
)

A, B, C, D, E, F = (AdvancementLevel(v) for v in "ABCDEF")
WHEN = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)

ALL_PASSING = {A: (2, 2), B: (2, 2), C: (3, 3), D: (2, 2), E: (2, 2), F: (2, 2)}


def _raw(student_id, scores):
    return RawStudentScores(
        student=Student(id=student_id, first_name=f"Student{student_id}", last_name="Test"),
        scores=scores,
    )


class TestDetectLevelChange:
    """Tests for detect_level_change()."""

    @pytest.mark.parametrize(
        "previous, current, expected",
        [
            (None, A, None),
            (None, F, None),
            (C, C, None),
            (B, A, LevelChangeKind.LEVEL_A_ACHIEVED),
            (F, A, LevelChangeKind.LEVEL_A_ACHIEVED),
            (B, D, LevelChangeKind.LEVEL_DROP),
            (A, B, LevelChangeKind.LEVEL_DROP),
            (D, B, None),
        ],
    )
    def test_classification(self, previous, current, expected):
        assert detect_level_change(previous, current) is expected


class TestAggregate:
    """Tests for aggregate()."""

    def test_b_to_a_raises_one_achievement_and_no_drop(self):
        # Arrange
        raw = [_raw("s1", ALL_PASSING)]

        # Act
        result = aggregate(raw, {"s1": B}, topic="Fractions", created_at=WHEN)

        # Assert
        assert len(result.results) == 1
        assert result.results[0].recommended_level is A
        assert [e.kind for e in result.events] == [LevelChangeKind.LEVEL_A_ACHIEVED]
        event = result.events[0]
        assert (event.previous_level, event.current_level, event.topic_name) == (B, A, "Fractions")

    def test_drop_event(self):
        raw = [_raw("s1", {C: (1, 3), D: (3, 3)})]

        result = aggregate(raw, {"s1": B}, topic="Fractions", created_at=WHEN)

        assert result.results[0].recommended_level is D
        assert [e.kind for e in result.events] == [LevelChangeKind.LEVEL_DROP]

    def test_first_assessment_has_no_event(self):
        result = aggregate([_raw("s1", ALL_PASSING)], {}, topic="Fractions", created_at=WHEN)

        assert result.events == ()

    def test_scores_are_clamped(self):
        raw = [_raw("s1", {A: (5, 3), B: (-2, 4)})]

        row = aggregate(raw, {}, topic="Fractions", created_at=WHEN).results[0]

        assert row.score_for(A) == LevelScore(3, 3)
        assert row.score_for(B) == LevelScore(0, 4)
        assert row.score_for(F) == LevelScore(0, 0)
        # A passes, B fails → one level easier than B
        assert row.recommended_level is C

    def test_no_attempts_records_level_c(self):
        row = aggregate([_raw("s1", {})], {}, topic="Fractions", created_at=WHEN).results[0]

        assert row.recommended_level is C
        assert all(score.total == 0 for score in row.scores)

    def test_row_fields(self):
        result = aggregate(
            [_raw("s1", ALL_PASSING), _raw("s2", {E: (0, 2)})],
            {},
            topic="Decimals",
            worksheet_id="ws-1",
            standard="6.NS.3",
            teacher_id="t-1",
            created_at=WHEN,
        )

        assert [r.student_id for r in result.results] == ["s1", "s2"]
        for row in result.results:
            assert row.topic_name == "Decimals"
            assert (row.worksheet_id, row.standard, row.teacher_id) == ("ws-1", "6.NS.3", "t-1")
            assert row.created_at == WHEN
        assert result.results[1].recommended_level is F

    def test_default_timestamp_is_utc(self):
        row = aggregate([_raw("s1", {})], {}, topic="Fractions").results[0]

        assert row.created_at.tzinfo is not None
