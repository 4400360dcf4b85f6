"""
Module: generation

Purpose:
    Phase 1 of the build pipeline: call the external generators and
    resolve every question set and diagram before layout begins.

Key Classes:
    - QuestionSetCache: (form, level) → QuestionSet, generated once per key
    - ImageCache: Decoded diagram images
    - CancellationToken: Stops further external calls

Dependencies:
    - httpx: Collaborator HTTP calls
    - PIL: Diagram decoding
"""

from .cancellation import CancellationToken, GenerationCancelled
from .client import (
    GenerationError,
    QuestionRequest,
    DiagramRequest,
    QuestionGenerator,
    DiagramGenerator,
    EdgeFunctionClient,
    HttpQuestionGenerator,
    HttpDiagramGenerator,
    difficulty_for,
)
from .cache import GenerationOptions, QuestionSetCache, form_seed
from .diagrams import ImageCache, ImageFetcher, ImageFetchError, diagram_key, resolve_diagrams

__all__ = [
    "CancellationToken",
    "GenerationCancelled",
    "GenerationError",
    "QuestionRequest",
    "DiagramRequest",
    "QuestionGenerator",
    "DiagramGenerator",
    "EdgeFunctionClient",
    "HttpQuestionGenerator",
    "HttpDiagramGenerator",
    "difficulty_for",
    "GenerationOptions",
    "QuestionSetCache",
    "form_seed",
    "ImageCache",
    "ImageFetcher",
    "ImageFetchError",
    "diagram_key",
    "resolve_diagrams",
]
