"""Saved worksheet presets."""

from .store import PresetError, PresetStore, WorksheetPreset

__all__ = ["PresetError", "PresetStore", "WorksheetPreset"]
