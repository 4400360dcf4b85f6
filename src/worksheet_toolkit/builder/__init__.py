"""
Module: builder

Purpose:
    Building pipeline for differentiated class sets. Assigns forms,
    resolves question sets through the generation collaborators, lays
    out one worksheet per student plus an answer key, and renders the
    result to PDF or DOCX.

Key Functions:
    - build_worksheets(): Main entry point for class set generation

Key Classes:
    - WorksheetConfig: Configuration for building
    - BuildResult: Paths, assignments and metadata of a build

Dependencies:
    - reportlab / python-docx: Document output
    - PIL: Diagram images

Used By:
    - cli: `worksheet-toolkit build`
"""

from .config import WorksheetConfig
from .controller import (
    build_worksheets,
    prepare_question_sets,
    render_class_set,
    BuildResult,
    BuildError,
    InputError,
)

__all__ = [
    # Config
    "WorksheetConfig",
    # Controller
    "build_worksheets",
    "prepare_question_sets",
    "render_class_set",
    "BuildResult",
    "BuildError",
    "InputError",
]
