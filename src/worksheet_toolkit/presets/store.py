"""
Worksheet preset persistence.

Presets are named bundles of generation settings kept in a local JSON
file. The store loads once at start and saves on every change. Any
malformed data falls back to "no presets" (or skips the bad entry); a
broken presets file never stops the toolkit from starting.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from worksheet_toolkit.builder.config import WorksheetConfig
from worksheet_toolkit.common.file_locking import locked_read_json, locked_write_json
from worksheet_toolkit.core.models.levels import MAX_FORMS, MIN_FORMS

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class PresetError(Exception):
    """A preset could not be saved."""
    pass


@dataclass(frozen=True)
class WorksheetPreset:
    """
    Saved generation settings.

    Attributes:
        id: Stable identifier
        name: Display name
        question_count: Main-section questions
        warm_up_count: Warm-up questions
        warm_up_difficulty: Warm-up difficulty label
        form_count: Number of forms (1..10)
        include_hints: Print hints
    """

    id: str
    name: str
    question_count: int = 5
    warm_up_count: int = 0
    warm_up_difficulty: str = "very-easy"
    form_count: int = 1
    include_hints: bool = True

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Preset name cannot be empty")
        if self.question_count < 0 or self.warm_up_count < 0:
            raise ValueError("Question counts must be non-negative")
        if not MIN_FORMS <= self.form_count <= MAX_FORMS:
            raise ValueError(f"form_count must be in [{MIN_FORMS}, {MAX_FORMS}]: {self.form_count}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorksheetPreset:
        """Accepts snake_case or the camelCase names used by older exports."""
        def pick(snake: str, camel: str, default: Any) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            question_count=int(pick("question_count", "questionCount", 5)),
            warm_up_count=int(pick("warm_up_count", "warmUpCount", 0)),
            warm_up_difficulty=str(pick("warm_up_difficulty", "warmUpDifficulty", "very-easy")),
            form_count=int(pick("form_count", "formCount", 1)),
            include_hints=bool(pick("include_hints", "includeHints", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PresetStore:
    """
    JSON-backed store for worksheet presets.

    Example:
        >>> store = PresetStore(Path("~/.worksheet_toolkit/presets.json").expanduser())
        >>> preset = store.save("Quick check", question_count=3, form_count=2)
        >>> config = store.apply(preset, config)
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._presets: Dict[str, WorksheetPreset] = {}
        self.load_error: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = locked_read_json(self.path)
        except json.JSONDecodeError as e:
            self.load_error = f"Presets file is corrupted: {e}"
            logger.warning(self.load_error)
            return
        except OSError as e:
            self.load_error = f"Failed to read presets: {e}"
            logger.warning(self.load_error)
            return

        if data is None:
            return
        entries = data.get("presets") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            logger.warning(f"Ignoring presets file with unexpected shape: {self.path}")
            return

        for raw in entries:
            try:
                preset = WorksheetPreset.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed preset {raw!r}: {e}")
                continue
            self._presets[preset.id] = preset
        logger.debug(f"Loaded {len(self._presets)} presets from {self.path}")

    def _save(self) -> None:
        payload = {
            "version": STORE_VERSION,
            "presets": [preset.to_dict() for preset in self._presets.values()],
        }
        try:
            locked_write_json(self.path, payload)
        except (OSError, TypeError) as e:
            raise PresetError(f"Failed to save presets: {e}") from e

    def all(self) -> List[WorksheetPreset]:
        return list(self._presets.values())

    def get(self, preset_id: str) -> Optional[WorksheetPreset]:
        return self._presets.get(preset_id)

    def save(self, name: str, *, preset_id: Optional[str] = None, **settings: Any) -> WorksheetPreset:
        """
        Create a preset, or replace the one with `preset_id`.

        Raises:
            PresetError: Invalid settings or the file could not be written
        """
        try:
            preset = WorksheetPreset(id=preset_id or uuid.uuid4().hex, name=name, **settings)
        except (TypeError, ValueError) as e:
            raise PresetError(f"Invalid preset {name!r}: {e}") from e

        self._presets[preset.id] = preset
        self._save()
        logger.info(f"Saved preset {preset.name!r}")
        return preset

    def delete(self, preset_id: str) -> bool:
        """Remove a preset. Returns False if it did not exist."""
        if self._presets.pop(preset_id, None) is None:
            return False
        self._save()
        return True

    @staticmethod
    def apply(preset: WorksheetPreset, config: WorksheetConfig) -> WorksheetConfig:
        """Copy of `config` with the preset's settings applied."""
        return replace(
            config,
            question_count=preset.question_count,
            warm_up_count=preset.warm_up_count,
            warm_up_difficulty=preset.warm_up_difficulty,
            form_count=preset.form_count,
            include_hints=preset.include_hints,
        )
