"""
Command-line entry point.

    worksheet-toolkit build class_set.json [--output-dir out] [--store diagnostics.jsonl]
    worksheet-toolkit record scores.json [--store diagnostics.jsonl] [--no-notify]

Collaborator endpoints come from the environment:
    WORKSHEET_FUNCTIONS_URL  Base URL of the hosted generation functions
    WORKSHEET_API_KEY        Bearer key for those functions (optional)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from worksheet_toolkit.builder import BuildError, InputError, WorksheetConfig, build_worksheets
from worksheet_toolkit.builder.layout.config import MarginSize
from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.students import PlacedStudent, Student
from worksheet_toolkit.diagnostics import (
    HttpLevelNotifier,
    JsonDiagnosticStore,
    PersistenceError,
    RawStudentScores,
    record_results,
)
from worksheet_toolkit.generation import (
    CancellationToken,
    EdgeFunctionClient,
    GenerationCancelled,
    HttpDiagramGenerator,
    HttpQuestionGenerator,
)
from worksheet_toolkit.placement.selection import SelectionFilter, build_roster, select_students
from worksheet_toolkit.presets import PresetStore

logger = logging.getLogger("worksheet_toolkit")

ENV_FUNCTIONS_URL = "WORKSHEET_FUNCTIONS_URL"
ENV_API_KEY = "WORKSHEET_API_KEY"
DEFAULT_STORE = Path("diagnostics.jsonl")
DEFAULT_PRESETS = Path("presets.json")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INPUT = 2
EXIT_CANCELLED = 130

_CONFIG_FIELDS = (
    "question_count",
    "warm_up_count",
    "warm_up_difficulty",
    "form_count",
    "include_hints",
    "include_geometry",
    "use_ai_images",
    "output_format",
    "include_answer_key",
    "include_qr_codes",
    "worksheet_id",
)


# ─────────────────────────────────────────────────────────────────────────────
# Input parsing
# ─────────────────────────────────────────────────────────────────────────────

def _read_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InputError(f"Could not read {path}: {e}") from e
    if not isinstance(data, dict):
        raise InputError(f"{path} must contain a JSON object")
    return data


def _student(raw: Mapping[str, Any]) -> Student:
    return Student(
        id=str(raw["id"]),
        first_name=str(raw.get("first_name", "")),
        last_name=str(raw.get("last_name", "")),
    )


def load_students(
    entries: Sequence[Mapping[str, Any]],
    *,
    topics: Sequence[str],
    store: Optional[JsonDiagnosticStore],
    selection: SelectionFilter,
    use_adaptive: bool,
) -> List[PlacedStudent]:
    """
    Students with their worksheet level.

    Entries that all carry a `level` are used as given. Otherwise levels
    are resolved from the diagnostic store (latest result for the topic
    when exactly one topic is selected) and the selection filter applies.
    """
    try:
        if all("level" in entry for entry in entries):
            return [
                PlacedStudent(student=_student(entry), level=AdvancementLevel.parse(entry["level"]))
                for entry in entries
            ]

        students = [_student(entry) for entry in entries]
        adaptive = {
            str(entry["id"]): AdvancementLevel.parse(entry["adaptive_level"])
            for entry in entries
            if entry.get("adaptive_level")
        }
    except (KeyError, ValueError) as e:
        raise InputError(f"Invalid student entry: {e}") from e

    topic = topics[0] if len(topics) == 1 else None
    latest = store.latest_results([s.id for s in students], topic) if store is not None else {}
    roster = build_roster(students, latest, adaptive)
    return select_students(roster, selection, use_adaptive=use_adaptive)


def load_worksheet_config(
    data: Mapping[str, Any],
    *,
    store: Optional[JsonDiagnosticStore] = None,
    presets: Optional[PresetStore] = None,
    preset_id: Optional[str] = None,
) -> WorksheetConfig:
    """Build a WorksheetConfig from a parsed config file."""
    topics = [str(t) for t in data.get("topics", [])]
    try:
        selection = SelectionFilter(data.get("selection", SelectionFilter.WITH_DIAGNOSTIC.value))
        margin = MarginSize(data.get("margin_size", MarginSize.MEDIUM.value))
    except ValueError as e:
        raise InputError(str(e)) from e

    students = load_students(
        data.get("students", []),
        topics=topics,
        store=store,
        selection=selection,
        use_adaptive=bool(data.get("use_adaptive", False)),
    )

    settings = {name: data[name] for name in _CONFIG_FIELDS if name in data}
    try:
        config = WorksheetConfig(topics=topics, students=students, margin_size=margin, **settings)
    except (TypeError, ValueError) as e:
        raise InputError(f"Invalid configuration: {e}") from e

    if preset_id:
        preset = presets.get(preset_id) if presets is not None else None
        if preset is None:
            raise InputError(f"Unknown preset: {preset_id}")
        config = PresetStore.apply(preset, config)
    return config


def load_raw_scores(entries: Sequence[Mapping[str, Any]]) -> List[RawStudentScores]:
    """Parse `{"id", "first_name", "scores": {"A": [correct, total], ...}}` entries."""
    raw_scores: List[RawStudentScores] = []
    try:
        for entry in entries:
            scores = {
                AdvancementLevel.parse(level): (int(pair[0]), int(pair[1]))
                for level, pair in entry.get("scores", {}).items()
            }
            raw_scores.append(RawStudentScores(student=_student(entry), scores=scores))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise InputError(f"Invalid score entry: {e}") from e
    return raw_scores


def _functions_client() -> Optional[EdgeFunctionClient]:
    base_url = os.environ.get(ENV_FUNCTIONS_URL)
    if not base_url:
        return None
    return EdgeFunctionClient(base_url, api_key=os.environ.get(ENV_API_KEY))


def _install_cancel_handler(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted")
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform (e.g. Windows event loops)
        pass


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────

async def _run_build(args: argparse.Namespace) -> int:
    client = _functions_client()
    if client is None:
        logger.error(f"{ENV_FUNCTIONS_URL} is not set")
        return EXIT_INPUT

    store = JsonDiagnosticStore(args.store) if args.store else None
    presets = PresetStore(args.presets) if args.preset else None
    config = load_worksheet_config(
        _read_json(args.config),
        store=store,
        presets=presets,
        preset_id=args.preset,
    )

    token = CancellationToken()
    _install_cancel_handler(token)

    def progress(done: int, total: int, key: str) -> None:
        logger.info(f"[{done}/{total}] Question set {key} ready")

    result = await build_worksheets(
        config,
        HttpQuestionGenerator(client),
        diagram_generator=HttpDiagramGenerator(client),
        output_dir=args.output_dir,
        token=token,
        progress=progress,
    )

    for warning in result.warnings:
        logger.warning(warning)
    logger.info(
        f"Created {len(result.assignments)} worksheets on {result.page_count} pages: "
        f"{result.document_path}"
    )
    return EXIT_OK


async def _run_record(args: argparse.Namespace) -> int:
    data = _read_json(args.scores)
    topic = str(data.get("topic") or "").strip()
    if not topic:
        raise InputError("Scores file has no topic")
    raw_scores = load_raw_scores(data.get("students", []))

    notifier = None
    client = _functions_client()
    if client is not None and not args.no_notify:
        notifier = HttpLevelNotifier(
            client,
            teacher_email=args.teacher_email,
            teacher_name=args.teacher_name,
        )

    outcome = await record_results(
        JsonDiagnosticStore(args.store),
        raw_scores,
        topic=topic,
        notifier=notifier,
        worksheet_id=data.get("worksheet_id"),
        standard=data.get("standard"),
        teacher_id=data.get("teacher_id"),
    )

    for result in outcome.results:
        logger.info(f"{result.student_id}: Level {result.recommended_level}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="worksheet-toolkit",
        description="Differentiated worksheet builder and diagnostic recorder",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Generate a differentiated class set")
    build.add_argument("config", type=Path, help="Class set configuration (JSON)")
    build.add_argument("--output-dir", type=Path, default=None, help="Output directory (default: ./output)")
    build.add_argument("--store", type=Path, default=None, help="Diagnostic results (JSONL) for level lookup")
    build.add_argument("--presets", type=Path, default=DEFAULT_PRESETS, help="Presets file")
    build.add_argument("--preset", default=None, help="Preset id to apply")

    record = sub.add_parser("record", help="Save diagnostic scores")
    record.add_argument("scores", type=Path, help="Scores file (JSON)")
    record.add_argument("--store", type=Path, default=DEFAULT_STORE, help="Diagnostic results (JSONL)")
    record.add_argument("--no-notify", action="store_true", help="Skip level-change notifications")
    record.add_argument("--teacher-email", default=None)
    record.add_argument("--teacher-name", default=None)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    runner = _run_build if args.command == "build" else _run_record
    try:
        return asyncio.run(runner(args))
    except InputError as e:
        logger.error(str(e))
        return EXIT_INPUT
    except GenerationCancelled as e:
        logger.warning(f"Generation cancelled ({e}); no document was written")
        return EXIT_CANCELLED
    except (BuildError, PersistenceError) as e:
        logger.error(str(e))
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
