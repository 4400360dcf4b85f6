"""
Module: generation.client

Purpose:
    Request models and HTTP clients for the externally hosted generation
    functions (question text, diagram images). The functions are opaque:
    this module only builds request bodies and parses the documented
    response fields.

Key Classes:
    - QuestionRequest: One (form, level, section) generation request
    - DiagramRequest: One diagram image request
    - QuestionGenerator / DiagramGenerator: Collaborator protocols
    - EdgeFunctionClient: JSON POST to a named function with a timeout
    - HttpQuestionGenerator / HttpDiagramGenerator: httpx-backed collaborators

Key Functions:
    - difficulty_for(): Level → requested difficulty labels

Dependencies:
    - httpx: Async HTTP with explicit timeouts

Used By:
    - generation.cache: Question set population
    - generation.diagrams: Diagram resolution
    - diagnostics.recorder: Level-change notifications
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from worksheet_toolkit.common.thresholds import GENERATION
from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.questions import GeneratedQuestion, Section
from worksheet_toolkit.core.utils.serialization import question_from_payload

logger = logging.getLogger(__name__)

QUESTIONS_FUNCTION = "generate-worksheet-questions"
DIAGRAMS_FUNCTION = "generate-diagram-images"


class GenerationError(Exception):
    """A generation collaborator call failed."""
    pass


def difficulty_for(level: AdvancementLevel) -> Tuple[str, ...]:
    """Difficulty labels requested for a level's main section."""
    return GENERATION.difficulty_bands[AdvancementLevel.parse(level)]


@dataclass(frozen=True)
class QuestionRequest:
    """
    Request for one section of one (form, level) question set.

    Attributes:
        topics: Topic names to draw questions from
        count: Number of questions wanted
        difficulty_levels: Difficulty labels to request
        form: Form letter
        level: Target level
        seed: Deterministic seed for the (form, level) pair
        section: Warm-up or main
        include_hints: Ask for a hint per question
        include_geometry: Allow diagram-based questions
        use_ai_images: Prefer AI images over deterministic SVG
    """

    topics: Tuple[str, ...]
    count: int
    difficulty_levels: Tuple[str, ...]
    form: str
    level: AdvancementLevel
    seed: int
    section: Section = Section.MAIN
    include_hints: bool = False
    include_geometry: bool = False
    use_ai_images: bool = False

    @property
    def worksheet_mode(self) -> str:
        return "warmup" if self.section is Section.WARM_UP else "diagnostic"

    def to_payload(self) -> Dict[str, Any]:
        """Request body in the function's camelCase format."""
        category = "Warm-Up" if self.section is Section.WARM_UP else "Differentiated Practice"
        return {
            "topics": [
                {
                    "topicName": topic,
                    "standard": "",
                    "subject": "Mathematics",
                    "category": category,
                }
                for topic in self.topics
            ],
            "questionCount": self.count,
            "difficultyLevels": list(self.difficulty_levels),
            "worksheetMode": self.worksheet_mode,
            "formVariation": self.form,
            "formSeed": self.seed,
            "advancementLevel": self.level.value,
            "includeHints": self.include_hints,
            "includeGeometry": self.include_geometry,
            "useAIImages": self.use_ai_images,
        }


@dataclass(frozen=True)
class DiagramRequest:
    """Request for one diagram image."""

    prompt: str
    use_ai_images: bool = True
    prefer_svg: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "useAIImages": self.use_ai_images,
            "preferSvg": self.prefer_svg,
        }


class QuestionGenerator(Protocol):
    """Produces questions for a request. May raise; may return []."""

    async def generate(self, request: QuestionRequest) -> List[GeneratedQuestion]:
        ...


class DiagramGenerator(Protocol):
    """Produces an image reference (data URI or URL) for a prompt, or None."""

    async def generate(self, request: DiagramRequest) -> Optional[str]:
        ...


class EdgeFunctionClient:
    """
    Invokes named functions under a base URL with JSON bodies.

    A shared `httpx.AsyncClient` may be injected (tests use
    `httpx.MockTransport`); otherwise a short-lived client is opened per
    call with the given timeout.

    Example:
        >>> client = EdgeFunctionClient("https://x.functions.example/v1", api_key="...")
        >>> data = await client.invoke("generate-worksheet-questions", {...})
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = GENERATION.request_timeout_s,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def invoke(
        self,
        function: str,
        body: Dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        POST `body` to `{base_url}/{function}` and return the JSON response.

        Raises:
            GenerationError: On transport errors, timeouts, non-2xx status
                or a non-object JSON body
        """
        url = f"{self.base_url}/{function}"
        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=body, headers=self._headers(), timeout=effective_timeout
                )
            else:
                async with httpx.AsyncClient(timeout=effective_timeout) as client:
                    response = await client.post(url, json=body, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise GenerationError(f"{function} call failed: {e}") from e
        except ValueError as e:
            raise GenerationError(f"{function} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise GenerationError(f"{function} returned {type(data).__name__}, expected object")
        return data


class HttpQuestionGenerator:
    """QuestionGenerator backed by the question-generation function."""

    def __init__(self, client: EdgeFunctionClient, function: str = QUESTIONS_FUNCTION) -> None:
        self.client = client
        self.function = function

    async def generate(self, request: QuestionRequest) -> List[GeneratedQuestion]:
        data = await self.client.invoke(self.function, request.to_payload())

        # Absent or empty `questions` means "nothing for this slot"
        raw_questions = data.get("questions") or []
        topic = request.topics[0] if request.topics else ""
        questions: List[GeneratedQuestion] = []
        for position, raw in enumerate(raw_questions, start=1):
            if not isinstance(raw, dict):
                logger.warning(f"Ignoring non-object question entry at position {position}")
                continue
            try:
                questions.append(
                    question_from_payload(
                        raw,
                        level=request.level,
                        fallback_number=position,
                        fallback_topic=topic,
                    )
                )
            except ValueError as e:
                logger.warning(f"Ignoring malformed question {position} for {request.form}-{request.level}: {e}")
        return questions


class HttpDiagramGenerator:
    """DiagramGenerator backed by the diagram-image function."""

    def __init__(self, client: EdgeFunctionClient, function: str = DIAGRAMS_FUNCTION) -> None:
        self.client = client
        self.function = function

    async def generate(self, request: DiagramRequest) -> Optional[str]:
        data = await self.client.invoke(self.function, request.to_payload())
        image_url = data.get("imageUrl")
        return str(image_url) if image_url else None
