"""Deterministic output file naming."""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Sequence

DEFAULT_TOPIC = "Math"
OUTPUT_FORMATS = ("pdf", "docx")

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")


def document_filename(
    topics: Sequence[str],
    forms: Iterable[str],
    fmt: str,
    today: date,
) -> str:
    """
    File name for a class set.

    Example:
        >>> document_filename(["Fractions"], "AB", "pdf", date(2025, 3, 1))
        'Class_Set_Fractions_Forms_AB_2025-03-01.pdf'
    """
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {fmt}")
    topic = _safe("_".join(t.strip() for t in topics if t.strip())) or DEFAULT_TOPIC
    letters = "".join(forms)
    return f"Class_Set_{topic}_Forms_{letters}_{today.isoformat()}.{fmt}"


def _safe(text: str) -> str:
    return _UNSAFE.sub("_", text).strip("_")
