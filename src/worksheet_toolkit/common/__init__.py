"""Shared constants and file helpers."""

from .thresholds import PLACEMENT, GENERATION, LAYOUT

__all__ = [
    "PLACEMENT",
    "GENERATION",
    "LAYOUT",
]
