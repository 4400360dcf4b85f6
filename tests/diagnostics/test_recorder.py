"""
Tests for the record workflow.

In-memory store and notifier doubles; the HTTP notifier is exercised
through httpx.MockTransport.
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.students import DiagnosticResult, LevelScore, Student
from worksheet_toolkit.diagnostics import (
    HttpLevelNotifier,
    LevelChangeEvent,
    LevelChangeKind,
    PersistenceError,
    RawStudentScores,
    latest_by_student,
    questions_per_level,
    record_results,
    starting_scores,
)
from worksheet_toolkit.generation.client import EdgeFunctionClient, GenerationError

A, B, C = AdvancementLevel.A, AdvancementLevel.B, AdvancementLevel.C
WHEN = datetime(2025, 3, 1, tzinfo=timezone.utc)
ALL_PASSING = {level: (2, 2) for level in AdvancementLevel}


class MemoryStore:
    def __init__(self, rows=(), fail_insert=False):
        self.rows = list(rows)
        self.fail_insert = fail_insert
        self.insert_calls = 0

    def latest_results(self, student_ids, topic=None):
        latest = latest_by_student(self.rows, topic)
        return {sid: r for sid, r in latest.items() if sid in student_ids}

    def insert_results(self, results):
        self.insert_calls += 1
        if self.fail_insert:
            raise PersistenceError("database unavailable")
        self.rows.extend(results)


class RecordingNotifier:
    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.events = []

    async def notify(self, event):
        if event.student.id in self.fail_ids:
            raise GenerationError("notification service down")
        self.events.append(event)


def _student(sid):
    return Student(id=sid, first_name=f"Student{sid}", last_name="Test")


def _prior(sid, level):
    return DiagnosticResult(
        student_id=sid,
        topic_name="Fractions",
        scores=(LevelScore.empty(),) * 6,
        recommended_level=level,
        created_at=datetime(2025, 2, 1, tzinfo=timezone.utc),
    )


class TestRecordResults:
    """Tests for record_results()."""

    def test_saves_rows_and_notifies(self):
        store = MemoryStore([_prior("s1", B)])
        notifier = RecordingNotifier()
        raw = [RawStudentScores(_student("s1"), ALL_PASSING), RawStudentScores(_student("s2"), {})]

        outcome = asyncio.run(record_results(store, raw, topic="Fractions", notifier=notifier, created_at=WHEN))

        assert len(outcome.results) == 2
        assert store.rows[-2:] == list(outcome.results)
        assert outcome.notified == 1
        assert [(e.student.id, e.kind) for e in notifier.events] == [("s1", LevelChangeKind.LEVEL_A_ACHIEVED)]

    def test_notification_failure_keeps_saved_scores(self):
        store = MemoryStore([_prior("s1", B)])
        notifier = RecordingNotifier(fail_ids={"s1"})
        raw = [RawStudentScores(_student("s1"), ALL_PASSING)]

        outcome = asyncio.run(record_results(store, raw, topic="Fractions", notifier=notifier))

        assert len(store.rows) == 2
        assert outcome.notified == 0
        assert outcome.notification_failures == ("s1",)

    def test_persistence_failure_sends_nothing(self):
        store = MemoryStore([_prior("s1", B)], fail_insert=True)
        notifier = RecordingNotifier()
        raw = [RawStudentScores(_student("s1"), ALL_PASSING)]

        with pytest.raises(PersistenceError):
            asyncio.run(record_results(store, raw, topic="Fractions", notifier=notifier))

        assert store.insert_calls == 1
        assert notifier.events == []

    def test_prior_level_for_other_topic_ignored(self):
        other = DiagnosticResult(
            student_id="s1",
            topic_name="Decimals",
            scores=(LevelScore.empty(),) * 6,
            recommended_level=B,
        )
        notifier = RecordingNotifier()

        outcome = asyncio.run(record_results(
            MemoryStore([other]),
            [RawStudentScores(_student("s1"), ALL_PASSING)],
            topic="Fractions",
            notifier=notifier,
        ))

        assert outcome.events == ()

    def test_no_scores_writes_nothing(self):
        store = MemoryStore()

        outcome = asyncio.run(record_results(store, [], topic="Fractions"))

        assert outcome.results == ()
        assert store.insert_calls == 0


class TestHttpLevelNotifier:
    """Tests for HttpLevelNotifier."""

    def test_posts_notification_payload(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"success": True})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = HttpLevelNotifier(
            EdgeFunctionClient("https://functions.example/v1", client=http),
            teacher_email="t@school.org",
            teacher_name="Ms Test",
        )
        event = LevelChangeEvent(
            student=_student("s1"),
            kind=LevelChangeKind.LEVEL_DROP,
            previous_level=B,
            current_level=C,
            topic_name="Fractions",
        )

        asyncio.run(notifier.notify(event))

        path, body = seen[0]
        assert path == "/v1/send-level-notification"
        assert body == {
            "studentId": "s1",
            "studentName": "Students1 Test",
            "previousLevel": "B",
            "currentLevel": "C",
            "topicName": "Fractions",
            "teacherEmail": "t@school.org",
            "teacherName": "Ms Test",
            "notificationType": "level_drop",
        }


class TestScoreEntryHelpers:
    def test_questions_per_level(self, make_question):
        questions = [make_question(level="A"), make_question(level="A"), make_question(level="D")]

        counts = questions_per_level(questions)

        assert counts[A] == 2
        assert counts[AdvancementLevel.D] == 1
        assert counts[AdvancementLevel.F] == 0
        assert len(counts) == 6

    def test_starting_scores(self):
        scores = starting_scores({A: 2, C: 3})

        assert scores[A] == (0, 2)
        assert scores[C] == (0, 3)
        assert scores[AdvancementLevel.F] == (0, 0)
