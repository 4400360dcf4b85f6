"""
Serialization Utilities

Provides to/from dict utilities for the core models.

Two wire formats are handled here:
- Generator payloads (camelCase JSON from the question-generation
  collaborator) → GeneratedQuestion
- Diagnostic result rows (flat `level_x_score` / `level_x_total`
  columns as stored by the data store) ↔ DiagnosticResult

The recommended level is stored with each row but always recomputed by
the aggregator before a row is written; it is never trusted on the way in
beyond being a valid level letter.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..models.levels import AdvancementLevel, LEVEL_ORDER
from ..models.questions import Diagram, GeneratedQuestion
from ..models.students import DiagnosticResult, LevelScore


# ─────────────────────────────────────────────────────────────────────────────
# Generated Questions
# ─────────────────────────────────────────────────────────────────────────────

def question_from_payload(
    data: Mapping[str, Any],
    *,
    level: AdvancementLevel,
    fallback_number: int,
    fallback_topic: str = "",
) -> GeneratedQuestion:
    """
    Build a GeneratedQuestion from one entry of a generator response.

    Args:
        data: Question dict from the `questions` array
        level: Level the request was made for (used when the payload omits it)
        fallback_number: Position-based number when `questionNumber` is missing
        fallback_topic: Topic when the payload omits it

    Returns:
        GeneratedQuestion instance

    Raises:
        ValueError: If the payload has no question text
    """
    text = str(data.get("question") or data.get("text") or "").strip()
    if not text:
        raise ValueError("Question payload has no text")

    raw_level = data.get("advancementLevel")
    try:
        question_level = AdvancementLevel.parse(raw_level) if raw_level else level
    except ValueError:
        question_level = level

    diagram = Diagram(
        svg=data.get("svg") or None,
        image_url=data.get("imageUrl") or None,
        prompt=data.get("imagePrompt") or None,
    )

    try:
        number = int(data.get("questionNumber") or fallback_number)
    except (TypeError, ValueError):
        number = fallback_number

    return GeneratedQuestion(
        question_number=number,
        topic=str(data.get("topic") or fallback_topic),
        standard=str(data.get("standard") or ""),
        text=text,
        difficulty=str(data.get("difficulty") or ""),
        level=question_level,
        hint=(str(data["hint"]).strip() or None) if data.get("hint") else None,
        diagram=None if diagram.is_empty else diagram,
    )


def question_to_dict(question: GeneratedQuestion) -> dict[str, Any]:
    """Serialize a question back to the generator's camelCase shape."""
    payload: dict[str, Any] = {
        "questionNumber": question.question_number,
        "topic": question.topic,
        "standard": question.standard,
        "question": question.text,
        "difficulty": question.difficulty,
        "advancementLevel": question.level.value,
    }
    if question.hint:
        payload["hint"] = question.hint
    if question.diagram:
        if question.diagram.svg:
            payload["svg"] = question.diagram.svg
        if question.diagram.image_url:
            payload["imageUrl"] = question.diagram.image_url
        if question.diagram.prompt:
            payload["imagePrompt"] = question.diagram.prompt
    return payload


# ─────────────────────────────────────────────────────────────────────────────
# Diagnostic Result Rows
# ─────────────────────────────────────────────────────────────────────────────

def _column(level: AdvancementLevel, kind: str) -> str:
    return f"level_{level.value.lower()}_{kind}"


def result_to_row(result: DiagnosticResult) -> dict[str, Any]:
    """
    Flatten a DiagnosticResult into the stored row format.

    Example:
        >>> row = result_to_row(result)
        >>> row["level_c_score"], row["level_c_total"]
        (4, 5)
    """
    row: dict[str, Any] = {
        "student_id": result.student_id,
        "topic_name": result.topic_name,
        "worksheet_id": result.worksheet_id,
        "teacher_id": result.teacher_id,
        "standard": result.standard,
        "recommended_level": result.recommended_level.value,
        "created_at": result.created_at.isoformat(),
    }
    for level, score in zip(LEVEL_ORDER, result.scores):
        row[_column(level, "score")] = score.correct
        row[_column(level, "total")] = score.total
    return row


def result_from_row(row: Mapping[str, Any]) -> DiagnosticResult:
    """
    Parse a stored row into a DiagnosticResult.

    Raises:
        ValueError: If required columns are missing or malformed
    """
    try:
        student_id = str(row["student_id"])
        topic = str(row["topic_name"])
    except KeyError as e:
        raise ValueError(f"Diagnostic row missing column: {e}") from e

    scores = tuple(
        LevelScore.clamped(
            int(row.get(_column(level, "score")) or 0),
            int(row.get(_column(level, "total")) or 0),
        )
        for level in LEVEL_ORDER
    )

    return DiagnosticResult(
        student_id=student_id,
        topic_name=topic,
        scores=scores,
        recommended_level=AdvancementLevel.parse(row.get("recommended_level") or "C"),
        created_at=_parse_timestamp(row.get("created_at")),
        worksheet_id=row.get("worksheet_id"),
        standard=row.get("standard"),
        teacher_id=row.get("teacher_id"),
    )


def _parse_timestamp(value: Optional[Any]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif value:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    else:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    # Naive timestamps are treated as UTC so rows stay comparable
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
