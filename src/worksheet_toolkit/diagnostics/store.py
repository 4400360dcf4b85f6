"""
Module: diagnostics.store

Purpose:
    Persistence boundary for diagnostic results. The recorder talks to a
    DiagnosticStore; JsonDiagnosticStore is the local implementation,
    appending rows to a JSONL file under a portalocker lock.

Key Functions:
    - latest_by_student(): Newest result per student (optionally per topic)

Key Classes:
    - DiagnosticStore: Store protocol
    - JsonDiagnosticStore: JSONL file store
    - PersistenceError: A write (or read) could not be completed

Dependencies:
    - portalocker (via common.file_locking): Locked append / read

Used By:
    - diagnostics.recorder
    - placement.selection (latest results for a roster)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from worksheet_toolkit.common.file_locking import locked_append_jsonl, locked_read_jsonl
from worksheet_toolkit.core.models.students import DiagnosticResult
from worksheet_toolkit.core.utils.serialization import result_from_row, result_to_row

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Diagnostic results could not be saved or loaded."""
    pass


class DiagnosticStore(Protocol):
    """Data store collaborator for diagnostic results."""

    def latest_results(
        self,
        student_ids: Sequence[str],
        topic: Optional[str] = None,
    ) -> Dict[str, DiagnosticResult]:
        """Most recent result per student, optionally for one topic."""
        ...

    def insert_results(self, results: Sequence[DiagnosticResult]) -> None:
        """Insert all rows in one write, or none of them."""
        ...


def latest_by_student(
    results: Iterable[DiagnosticResult],
    topic: Optional[str] = None,
) -> Dict[str, DiagnosticResult]:
    """
    Newest result per student by `created_at`.

    On equal timestamps the later row in iteration order wins.

    Args:
        results: Results in any order
        topic: Only consider this topic (None = any topic)
    """
    latest: Dict[str, DiagnosticResult] = {}
    for result in results:
        if topic is not None and result.topic_name != topic:
            continue
        current = latest.get(result.student_id)
        if current is None or result.created_at >= current.created_at:
            latest[result.student_id] = result
    return latest


class JsonDiagnosticStore:
    """
    Diagnostic results in a local JSONL file, one row per line.

    Rows use the stored column format (`level_a_score`, `level_a_total`,
    ..., `recommended_level`).

    Example:
        >>> store = JsonDiagnosticStore(Path("data/diagnostics.jsonl"))
        >>> store.insert_results(aggregation.results)
        >>> store.latest_results(["s1"], topic="Fractions")["s1"].recommended_level
        <AdvancementLevel.B: 'B'>
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def all_results(self) -> List[DiagnosticResult]:
        try:
            rows = locked_read_jsonl(self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        results: List[DiagnosticResult] = []
        for row in rows:
            try:
                results.append(result_from_row(row))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid diagnostic row in {self.path.name}: {e}")
        return results

    def latest_results(
        self,
        student_ids: Sequence[str],
        topic: Optional[str] = None,
    ) -> Dict[str, DiagnosticResult]:
        wanted = set(student_ids)
        latest = latest_by_student(self.all_results(), topic)
        return {sid: result for sid, result in latest.items() if sid in wanted}

    def insert_results(self, results: Sequence[DiagnosticResult]) -> None:
        rows = [result_to_row(result) for result in results]
        try:
            written = locked_append_jsonl(self.path, rows)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save {len(rows)} diagnostic results: {e}") from e
        logger.info(f"Saved {written} diagnostic results to {self.path}")
