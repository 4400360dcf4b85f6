"""
End-to-end tests for the build controller.

Uses a call-counting stub generator so the whole pipeline (forms →
cache → diagrams → layout → PDF/DOCX → metadata) runs offline.
"""

import asyncio
import json
from datetime import date

import pytest
from pypdf import PdfReader

from worksheet_toolkit.builder import (
    BuildError,
    InputError,
    WorksheetConfig,
    build_worksheets,
    prepare_question_sets,
    render_class_set,
)
from worksheet_toolkit.builder.controller import _build_metadata
from worksheet_toolkit.builder.layout import LayoutResult
from worksheet_toolkit.generation.cancellation import CancellationToken, GenerationCancelled

TODAY = date(2025, 3, 1)


@pytest.fixture
def six_students(make_placed):
    """2 students at Level A and 4 at Level C, interleaved in roster order."""
    return make_placed(("a1", "A"), ("c1", "C"), ("c2", "C"), ("a2", "A"), ("c3", "C"), ("c4", "C"))


class TestBuildWorksheets:
    """Tests for build_worksheets()."""

    def test_two_forms_generate_four_sets_not_six(self, tmp_path, six_students, stub_generator):
        # Arrange
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2, question_count=2)

        # Act
        result = asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path, today=TODAY))

        # Assert
        assert sorted(result.cache_keys) == ["A-A", "A-C", "B-A", "B-C"]
        assert sorted(stub_generator.keys()) == ["A-A", "A-C", "B-A", "B-C"]
        assert stub_generator.call_count == 4
        by_student = {a.student.id: (a.level.value, a.form, a.index) for a in result.assignments}
        assert by_student == {
            "a1": ("A", "A", 0),
            "a2": ("A", "B", 1),
            "c1": ("C", "A", 0),
            "c2": ("C", "B", 1),
            "c3": ("C", "A", 2),
            "c4": ("C", "B", 3),
        }

    def test_students_on_same_form_share_questions(self, tmp_path, six_students, stub_generator):
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2, question_count=1)

        result = asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path, today=TODAY))

        def question_text(student_id):
            page_index = result.layout.section_page_map[f"student:{student_id}"][0]
            return [
                p.block.text for p in result.layout.pages[page_index].placements
                if p.block.kind.value == "question_line"
            ]

        assert question_text("c1") == question_text("c3")
        assert question_text("c1") != question_text("c2")

    def test_writes_pdf_and_metadata(self, tmp_path, six_students, stub_generator):
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2, question_count=2)

        result = asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path, today=TODAY))

        assert result.document_path == tmp_path / "Class_Set_Fractions_Forms_AB_2025-03-01.pdf"
        assert len(PdfReader(str(result.document_path)).pages) == result.page_count
        metadata_path = tmp_path / "Class_Set_Fractions_Forms_AB_2025-03-01.metadata.json"
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        assert metadata["student_count"] == 6
        assert metadata["forms"] == ["A", "B"]
        assert metadata["stats"]["students_per_level"] == {"A": 2, "C": 4}
        assert metadata["stats"]["generation"]["calls"] == 4
        assert metadata["page_count"] == result.page_count
        assert all(entry["pages"] for entry in metadata["assignments"])

    def test_docx_output(self, tmp_path, make_placed, stub_generator):
        config = WorksheetConfig(
            topics=["Fractions"], students=make_placed(("1", "D")), output_format="docx",
        )

        result = asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path, today=TODAY))

        assert result.document_path.suffix == ".docx"
        assert result.document_path.exists()

    def test_failed_generation_still_produces_document(self, tmp_path, six_students, stub_generator_factory):
        generator = stub_generator_factory(fail_keys={"B-C"})
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2, question_count=1)

        result = asyncio.run(build_worksheets(config, generator, output_dir=tmp_path, today=TODAY))

        assert result.document_path.exists()
        assert "Question generation failed for B-C main" in result.warnings
        # Students on B-C keep their header but get no question lines
        page = result.layout.pages[result.layout.section_page_map["student:c2"][0]]
        assert not [p for p in page.placements if p.block.kind.value == "question_line"]

    def test_no_students_is_input_error_before_any_call(self, tmp_path, stub_generator):
        config = WorksheetConfig(topics=["Fractions"], students=[])

        with pytest.raises(InputError, match="No students selected"):
            asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path))

        assert stub_generator.call_count == 0
        assert list(tmp_path.iterdir()) == []

    def test_no_topics_is_input_error(self, tmp_path, make_placed, stub_generator):
        config = WorksheetConfig(topics=["  "], students=make_placed(("1", "C")))

        with pytest.raises(InputError, match="No topics selected"):
            asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path))

        assert stub_generator.call_count == 0

    def test_cancelled_run_writes_nothing(self, tmp_path, six_students, stub_generator):
        token = CancellationToken()
        token.cancel("closed")
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2)

        with pytest.raises(GenerationCancelled):
            asyncio.run(build_worksheets(config, stub_generator, output_dir=tmp_path, token=token))

        assert list(tmp_path.iterdir()) == []

    def test_layout_is_repeatable_for_same_cache(self, tmp_path, six_students, stub_generator):
        config = WorksheetConfig(topics=["Fractions"], students=six_students, form_count=2, question_count=3)
        assignments, cache, images = asyncio.run(prepare_question_sets(config, stub_generator))

        first = render_class_set(config, assignments, cache.entries, images, output_dir=tmp_path / "1", today=TODAY)
        second = render_class_set(config, assignments, cache.entries, images, output_dir=tmp_path / "2", today=TODAY)

        assert first.page_count == second.page_count
        assert first.layout.section_order == second.layout.section_order

    def test_unwritable_output_raises_build_error(self, tmp_path, make_placed, stub_generator):
        config = WorksheetConfig(topics=["Fractions"], students=make_placed(("1", "C")))
        assignments, cache, images = asyncio.run(prepare_question_sets(config, stub_generator))
        blocker = tmp_path / "Class_Set_Fractions_Forms_A_2025-03-01.pdf"
        blocker.mkdir()

        with pytest.raises(BuildError, match="Failed to write"):
            render_class_set(config, assignments, cache.entries, images, output_dir=tmp_path, today=TODAY)


class TestWorksheetConfig:
    """Tests for WorksheetConfig validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [{"form_count": 0}, {"form_count": 11}, {"question_count": -1}, {"output_format": "odt"}],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            WorksheetConfig(topics=["Fractions"], students=[], **kwargs)

    def test_margin_size_string_coerced(self):
        config = WorksheetConfig(topics=["Fractions"], students=[], margin_size="large")

        assert config.layout_config().margin == 21.0

    def test_qr_codes_widen_footer_band(self):
        plain = WorksheetConfig(topics=["Fractions"], students=[])
        with_qr = WorksheetConfig(topics=["Fractions"], students=[], include_qr_codes=True)

        assert with_qr.layout_config().footer_band > plain.layout_config().footer_band

    def test_single_form_hides_form_labels(self):
        config = WorksheetConfig(topics=["Fractions", "Decimals"], students=[])

        options = config.worksheet_options()

        assert not options.show_form
        assert options.topic_label == "Fractions, Decimals"


class TestBuildMetadata:
    """Tests for _build_metadata() helper."""

    def test_build_metadata_contains_required_fields(self):
        config = WorksheetConfig(topics=["Fractions"], students=[])

        metadata = _build_metadata(config, [], [], LayoutResult(pages=()), [], None)

        for field in ("generated_at", "topics", "form_count", "page_count", "builder_version", "warnings"):
            assert field in metadata
