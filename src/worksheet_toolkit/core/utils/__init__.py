"""
Core Utilities

Serialization helpers for generator payloads and stored diagnostic rows.
"""

from .serialization import (
    question_from_payload,
    question_to_dict,
    result_to_row,
    result_from_row,
)

__all__ = [
    "question_from_payload",
    "question_to_dict",
    "result_to_row",
    "result_from_row",
]
