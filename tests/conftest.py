import base64
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add src to sys.path so we can import worksheet_toolkit
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if SRC_PATH.as_posix() not in sys.path:
    sys.path.insert(0, SRC_PATH.as_posix())

from worksheet_toolkit.core.models.levels import AdvancementLevel  # noqa: E402
from worksheet_toolkit.core.models.questions import GeneratedQuestion, Section  # noqa: E402
from worksheet_toolkit.core.models.students import PlacedStudent, Student  # noqa: E402


def _question(number=1, text="What is 3 + 4?", level=AdvancementLevel.C, hint=None, diagram=None):
    return GeneratedQuestion(
        question_number=number,
        topic="Fractions",
        standard="6.NS.1",
        text=text,
        difficulty="medium",
        level=AdvancementLevel.parse(level),
        hint=hint,
        diagram=diagram,
    )


class StubQuestionGenerator:
    """Call-counting question generator."""

    def __init__(self, fail_keys=(), empty_keys=(), text="Solve for x: 2x + 3 = 11"):
        self.fail_keys = set(fail_keys)
        self.empty_keys = set(empty_keys)
        self.text = text
        self.requests = []

    @property
    def call_count(self):
        return len(self.requests)

    def keys(self):
        return [f"{r.form}-{r.level.value}" for r in self.requests]

    async def generate(self, request):
        self.requests.append(request)
        key = f"{request.form}-{request.level.value}"
        if key in self.fail_keys:
            raise RuntimeError(f"generator unavailable for {key}")
        if key in self.empty_keys:
            return []
        prefix = "Warm-up" if request.section is Section.WARM_UP else "Main"
        return [
            _question(
                number=i,
                text=f"{prefix} {key} #{i} (seed {request.seed}): {self.text}",
                level=request.level,
                hint="Subtract first",
            )
            for i in range(1, request.count + 1)
        ]


# Common test fixtures
@pytest.fixture
def make_question():
    """Factory for GeneratedQuestion."""
    return _question


@pytest.fixture
def make_placed():
    """Factory for PlacedStudent lists from (id, level) pairs."""
    def _create(*entries):
        return [
            PlacedStudent(
                student=Student(id=sid, first_name=f"Student{sid}", last_name="Test"),
                level=AdvancementLevel.parse(level),
            )
            for sid, level in entries
        ]
    return _create


@pytest.fixture
def stub_generator():
    return StubQuestionGenerator()


@pytest.fixture
def stub_generator_factory():
    return StubQuestionGenerator


@pytest.fixture
def png_bytes() -> bytes:
    """Small PNG image."""
    img = Image.new("RGB", (200, 100), color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_data_uri(png_bytes: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def sample_image():
    """Decoded test image."""
    return Image.new("RGB", (200, 100), color="white")
