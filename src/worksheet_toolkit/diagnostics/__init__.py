"""
Module: diagnostics

Purpose:
    Diagnostic score recording: clamp and aggregate entered scores,
    persist result rows, and raise level-change notifications.

Key Functions:
    - aggregate(): Raw scores → result rows + level-change events
    - record_results(): Aggregate, persist, notify

Key Classes:
    - JsonDiagnosticStore: Local JSONL result store
    - HttpLevelNotifier: Notification collaborator

Dependencies:
    - portalocker: Store file locking
    - httpx: Notification calls
"""

from .aggregator import (
    AggregationResult,
    LevelChangeEvent,
    LevelChangeKind,
    RawStudentScores,
    aggregate,
    detect_level_change,
)
from .store import DiagnosticStore, JsonDiagnosticStore, PersistenceError, latest_by_student
from .recorder import (
    HttpLevelNotifier,
    LevelChangeNotifier,
    RecordOutcome,
    questions_per_level,
    record_results,
    starting_scores,
)

__all__ = [
    "AggregationResult",
    "LevelChangeEvent",
    "LevelChangeKind",
    "RawStudentScores",
    "aggregate",
    "detect_level_change",
    "DiagnosticStore",
    "JsonDiagnosticStore",
    "PersistenceError",
    "latest_by_student",
    "HttpLevelNotifier",
    "LevelChangeNotifier",
    "RecordOutcome",
    "questions_per_level",
    "record_results",
    "starting_scores",
]
