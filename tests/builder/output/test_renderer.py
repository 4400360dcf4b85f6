"""
PDF rendering tests.

Uses pypdf to inspect generated PDFs: page count, US Letter page size
and the text drawn for headers, footers and running headers.
"""

from pathlib import Path

import pytest
from pypdf import PdfReader

from worksheet_toolkit.builder.layout import (
    LayoutConfig,
    WorksheetOptions,
    compose_document,
    paginate,
)
from worksheet_toolkit.builder.output import render_to_pdf
from worksheet_toolkit.builder.layout.models import LayoutResult
from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.questions import Diagram, QuestionSet
from worksheet_toolkit.generation.diagrams import ImageCache, diagram_key
from worksheet_toolkit.placement.forms import assign_forms, flatten, group_by_level

LETTER_WIDTH_PT = 612.0
LETTER_HEIGHT_PT = 792.0
TOLERANCE_PT = 1.0


@pytest.fixture
def layout_inputs(make_placed, make_question, sample_image):
    placed = make_placed(("1", "A"), ("2", "C"))
    assignments = flatten(assign_forms(group_by_level(placed), 1))
    diagram = Diagram(prompt="number line")
    sets = {
        "A-A": QuestionSet(
            form="A",
            level=AdvancementLevel.A,
            warm_up=(make_question(number=1, text="Warm up with 5 x 6"),),
            main=tuple(make_question(number=i, text=f"Hard question {i}", hint="Think") for i in range(1, 9)),
        ),
        "A-C": QuestionSet(
            form="A",
            level=AdvancementLevel.C,
            main=(make_question(number=1, text="Label the number line", diagram=diagram),),
        ),
    }
    images = ImageCache()
    images.put(diagram_key(diagram), sample_image)
    return assignments, sets, images


def _render(tmp_path: Path, layout_inputs, options=None, config=None):
    assignments, sets, images = layout_inputs
    config = config or LayoutConfig()
    sections = compose_document(assignments, sets, config, options or WorksheetOptions(topic_label="Fractions"), images)
    layout = paginate(sections, config)
    path = tmp_path / "out" / "class_set.pdf"
    render_to_pdf(layout, path, config, title="Fractions - Differentiated Class Set")
    return layout, PdfReader(str(path))


class TestRenderToPdf:
    """Tests for render_to_pdf()."""

    def test_page_count_matches_layout(self, tmp_path, layout_inputs):
        layout, reader = _render(tmp_path, layout_inputs)

        assert len(reader.pages) == layout.page_count
        # 8 main questions at level A overflow a single page
        assert len(layout.section_page_map["student:1"]) >= 2

    def test_pages_are_us_letter(self, tmp_path, layout_inputs):
        _, reader = _render(tmp_path, layout_inputs)

        for page in reader.pages:
            assert abs(float(page.mediabox.width) - LETTER_WIDTH_PT) < TOLERANCE_PT
            assert abs(float(page.mediabox.height) - LETTER_HEIGHT_PT) < TOLERANCE_PT

    def test_header_footer_and_running_header_text(self, tmp_path, layout_inputs):
        layout, reader = _render(tmp_path, layout_inputs)

        first = reader.pages[0].extract_text()
        assert "Level A - Advanced" in first
        assert "Fractions - Diagnostic Worksheet" in first
        assert "Diagnostic Worksheet - Level A" in first
        assert "Warm-Up" in first

        second = reader.pages[1].extract_text()
        assert "Page 2" in second

    def test_answer_key_is_last(self, tmp_path, layout_inputs):
        layout, reader = _render(tmp_path, layout_inputs)

        assert layout.section_order[-1] == "answer-key"
        assert "Answer Key" in reader.pages[-1].extract_text()

    def test_title_metadata(self, tmp_path, layout_inputs):
        _, reader = _render(tmp_path, layout_inputs)

        assert reader.metadata.title == "Fractions - Differentiated Class Set"

    def test_qr_codes_render(self, tmp_path, layout_inputs):
        options = WorksheetOptions(topic_label="Fractions", include_qr_codes=True, worksheet_id="ws-9")
        config = LayoutConfig(footer_band=14.0)

        layout, reader = _render(tmp_path, layout_inputs, options=options, config=config)

        assert len(reader.pages) == layout.page_count

    def test_empty_layout_writes_file(self, tmp_path):
        path = tmp_path / "empty.pdf"

        render_to_pdf(LayoutResult(pages=()), path, LayoutConfig())

        assert path.exists()
