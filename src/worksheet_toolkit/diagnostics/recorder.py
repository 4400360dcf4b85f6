"""
Module: diagnostics.recorder

Purpose:
    The "save diagnostic scores" workflow: look up prior levels, aggregate,
    persist every row in one write, then dispatch level-change
    notifications.

    Persistence is the atomicity boundary. A failed insert raises
    PersistenceError and nothing is retried. Notifications are advisory:
    they run only after a successful insert, and a failed notification is
    logged and never undoes the saved scores.

Key Functions:
    - record_results(): Full record workflow
    - questions_per_level(): Totals per level from a worksheet's questions
    - starting_scores(): Blank (0 / total) score entry for a student

Key Classes:
    - LevelChangeNotifier: Notification collaborator protocol
    - HttpLevelNotifier: httpx-backed notifier
    - RecordOutcome: What was saved and sent

Dependencies:
    - httpx (via generation.client.EdgeFunctionClient)

Used By:
    - cli: `worksheet-toolkit record`
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from worksheet_toolkit.core.models.levels import AdvancementLevel, LEVEL_ORDER
from worksheet_toolkit.core.models.questions import GeneratedQuestion
from worksheet_toolkit.core.models.students import DiagnosticResult
from worksheet_toolkit.generation.client import EdgeFunctionClient

from .aggregator import LevelChangeEvent, RawStudentScores, aggregate
from .store import DiagnosticStore

logger = logging.getLogger(__name__)

NOTIFICATION_FUNCTION = "send-level-notification"


class LevelChangeNotifier(Protocol):
    """Delivers one level-change notification. May raise."""

    async def notify(self, event: LevelChangeEvent) -> None:
        ...


class HttpLevelNotifier:
    """
    Sends level-change notifications through the notification function.

    Example:
        >>> notifier = HttpLevelNotifier(client, teacher_email="t@school.org")
        >>> await notifier.notify(event)
    """

    def __init__(
        self,
        client: EdgeFunctionClient,
        *,
        teacher_email: Optional[str] = None,
        teacher_name: Optional[str] = None,
        function: str = NOTIFICATION_FUNCTION,
    ) -> None:
        self.client = client
        self.teacher_email = teacher_email
        self.teacher_name = teacher_name
        self.function = function

    def payload(self, event: LevelChangeEvent) -> dict:
        return {
            "studentId": event.student.id,
            "studentName": event.student.full_name,
            "previousLevel": event.previous_level.value,
            "currentLevel": event.current_level.value,
            "topicName": event.topic_name,
            "teacherEmail": self.teacher_email,
            "teacherName": self.teacher_name,
            "notificationType": event.kind.value,
        }

    async def notify(self, event: LevelChangeEvent) -> None:
        await self.client.invoke(self.function, self.payload(event))


@dataclass(frozen=True)
class RecordOutcome:
    """
    Result of a record workflow.

    Attributes:
        results: Rows that were saved
        events: Level changes detected
        notified: Notifications delivered
        notification_failures: Student ids whose notification failed
    """

    results: Tuple[DiagnosticResult, ...]
    events: Tuple[LevelChangeEvent, ...]
    notified: int = 0
    notification_failures: Tuple[str, ...] = ()


async def record_results(
    store: DiagnosticStore,
    raw_scores: Iterable[RawStudentScores],
    *,
    topic: str,
    notifier: Optional[LevelChangeNotifier] = None,
    worksheet_id: Optional[str] = None,
    standard: Optional[str] = None,
    teacher_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> RecordOutcome:
    """
    Save diagnostic scores and dispatch level-change notifications.

    Args:
        store: Diagnostic data store
        raw_scores: Entered scores, one per student
        topic: Topic the diagnostic covered
        notifier: Notification collaborator (None = don't notify)
        worksheet_id: Source worksheet, if known
        standard: Curriculum standard, if known
        teacher_id: Recording teacher, if known
        created_at: Row timestamp (default: now)

    Returns:
        RecordOutcome

    Raises:
        PersistenceError: Prior levels could not be read or the rows could
            not be saved; no notification is sent in that case
    """
    raw_scores = list(raw_scores)
    if not raw_scores:
        logger.warning(f"No scores to record for {topic}")
        return RecordOutcome(results=(), events=())

    prior = store.latest_results([raw.student.id for raw in raw_scores], topic)
    prior_levels = {sid: result.recommended_level for sid, result in prior.items()}

    aggregation = aggregate(
        raw_scores,
        prior_levels,
        topic=topic,
        worksheet_id=worksheet_id,
        standard=standard,
        teacher_id=teacher_id,
        created_at=created_at,
    )

    store.insert_results(aggregation.results)

    notified = 0
    failures: List[str] = []
    if notifier is not None:
        for event in aggregation.events:
            try:
                await notifier.notify(event)
                notified += 1
            except Exception as e:
                # Notifications are advisory; the scores are already saved
                logger.warning(f"Level notification for {event.student.full_name} failed: {e}")
                failures.append(event.student.id)

    logger.info(
        f"Recorded {len(aggregation.results)} results for {topic}: "
        f"{notified} notifications sent, {len(failures)} failed"
    )
    return RecordOutcome(
        results=aggregation.results,
        events=aggregation.events,
        notified=notified,
        notification_failures=tuple(failures),
    )


def questions_per_level(questions: Iterable[GeneratedQuestion]) -> Dict[AdvancementLevel, int]:
    """
    Count a diagnostic worksheet's questions per level.

    Example:
        >>> questions_per_level(worksheet_questions)
        {<AdvancementLevel.A: 'A'>: 2, ..., <AdvancementLevel.F: 'F'>: 0}
    """
    counts = {level: 0 for level in LEVEL_ORDER}
    for question in questions:
        counts[question.level] += 1
    return counts


def starting_scores(totals: Dict[AdvancementLevel, int]) -> Dict[AdvancementLevel, Tuple[int, int]]:
    """Blank score entry: 0 correct out of each level's total."""
    return {level: (0, totals.get(level, 0)) for level in LEVEL_ORDER}
