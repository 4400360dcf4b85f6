"""
Unit tests for the paginator layout engine.

The core guarantee: no block is placed past the bottom margin unless it
is taller than an entire fresh page, in which case it still starts on
its own page and a warning is recorded.
"""

import random

import pytest

from worksheet_toolkit.builder.layout import (
    BlockKind,
    DocumentSection,
    LayoutBlock,
    LayoutConfig,
    MarginSize,
    paginate,
)

EPS = 1e-6


@pytest.fixture
def config():
    # page_bottom = 279.4 - (14 + 8) = 257.4, available = 243.4
    return LayoutConfig(margin_size=MarginSize.MEDIUM, footer_band=8.0)


def _block(height, keep=False, kind=BlockKind.QUESTION_LINE, text="line"):
    return LayoutBlock(kind=kind, height=height, text=text, keep_with_next=keep)


def _section(blocks, key="student:1", header="Ada | Level C | Form A"):
    return DocumentSection(
        key=key,
        blocks=tuple(blocks),
        running_header=header,
        footer_text="Diagnostic Worksheet - Level C",
    )


def _content(page):
    return [p for p in page.placements if p.block.kind is not BlockKind.RUNNING_HEADER]


class TestPaginateBasics:
    """Tests for simple placement."""

    def test_when_blocks_fit_then_single_page_with_stacked_tops(self, config):
        # Arrange
        blocks = [_block(20), _block(30), _block(40)]

        # Act
        result = paginate([_section(blocks)], config)

        # Assert
        assert result.page_count == 1
        tops = [p.top for p in result.pages[0].placements]
        assert tops == pytest.approx([14.0, 34.0, 64.0])
        assert result.pages[0].height_used == pytest.approx(90.0)
        assert result.pages[0].footer_text == "Diagnostic Worksheet - Level C"

    def test_when_block_fills_exactly_then_fits(self, config):
        result = paginate([_section([_block(config.available_height)])], config)

        assert result.page_count == 1
        assert result.warnings == []

    def test_when_block_does_not_fit_then_breaks_page(self, config):
        # 200 + 50 > 243.4
        result = paginate([_section([_block(200), _block(50)])], config)

        assert result.page_count == 2
        second = _content(result.pages[1])
        assert len(second) == 1
        assert second[0].block.height == 50

    def test_empty_input(self, config):
        result = paginate([], config)

        assert result.page_count == 0
        assert result.warnings == []

    def test_empty_sections_are_skipped(self, config):
        result = paginate([_section([], key="student:empty"), _section([_block(10)])], config)

        assert result.page_count == 1
        assert result.section_order == ["student:1"]


class TestRunningHeader:
    """Continuation pages re-emit the running header."""

    def test_first_page_has_no_running_header(self, config):
        result = paginate([_section([_block(200), _block(200)])], config)

        first, second = result.pages
        assert all(p.block.kind is not BlockKind.RUNNING_HEADER for p in first.placements)
        header = second.placements[0]
        assert header.block.kind is BlockKind.RUNNING_HEADER
        assert header.block.text == "Ada | Level C | Form A | Page 2"
        assert header.top == pytest.approx(config.margin_top)
        assert second.placements[1].top == pytest.approx(config.margin_top + config.running_header_height)

    def test_section_page_numbers(self, config):
        result = paginate([_section([_block(200)] * 3)], config)

        assert [p.section_page for p in result.pages] == [1, 2, 3]
        assert result.pages[2].placements[0].block.text.endswith("| Page 3")

    def test_no_header_text_means_no_header_block(self, config):
        result = paginate([_section([_block(200), _block(200)], header="")], config)

        assert result.pages[1].placements[0].block.kind is BlockKind.QUESTION_LINE


class TestKeepWithNext:
    """Tests for keep_with_next groups."""

    def test_title_moves_with_first_line(self, config):
        # 220 used; title (10) + line (20) = 30 > 23.4 left
        blocks = [
            _block(220),
            _block(10, keep=True, kind=BlockKind.SECTION_TITLE),
            _block(20),
        ]

        result = paginate([_section(blocks)], config)

        assert result.page_count == 2
        kinds = [p.block.kind for p in _content(result.pages[1])]
        assert kinds == [BlockKind.SECTION_TITLE, BlockKind.QUESTION_LINE]

    def test_group_taller_than_page_degrades_to_single_blocks(self, config):
        blocks = [_block(150, keep=True), _block(150)]

        result = paginate([_section(blocks)], config)

        assert result.page_count == 2
        assert result.warnings == []


class TestOversizedBlocks:
    """A block taller than a page starts on a new page and overflows."""

    def test_tall_block_starts_new_page_and_warns(self, config):
        # Arrange
        blocks = [_block(30), _block(400, kind=BlockKind.IMAGE), _block(10)]

        # Act
        result = paginate([_section(blocks)], config)

        # Assert
        assert result.page_count == 3
        tall = _content(result.pages[1])
        assert len(tall) == 1
        assert tall[0].block.height == 400
        assert len(result.warnings) == 1
        assert "image block overflows page 2 of student:1" in result.warnings[0]

    def test_tall_first_block_does_not_leave_blank_page(self, config):
        result = paginate([_section([_block(400)])], config)

        assert result.page_count == 1
        assert len(result.warnings) == 1


class TestSections:
    """Tests for multi-section documents."""

    def test_each_section_starts_on_new_page(self, config):
        sections = [
            _section([_block(10)], key="student:1"),
            _section([_block(10)], key="student:2"),
            _section([_block(200), _block(200)], key="answer-key", header="Answer Key"),
        ]

        result = paginate(sections, config)

        assert result.page_count == 4
        assert result.section_page_map == {
            "student:1": [0],
            "student:2": [1],
            "answer-key": [2, 3],
        }
        assert [p.index for p in result.pages] == [0, 1, 2, 3]
        assert result.pages[3].placements[0].block.text == "Answer Key | Page 2"


class TestPaginationProperties:
    """Randomised checks of the page-space invariant."""

    @pytest.mark.parametrize("seed", range(25))
    def test_no_block_crosses_bottom_margin_unless_taller_than_page(self, config, seed):
        # Arrange
        rng = random.Random(seed)
        blocks = []
        for _ in range(rng.randint(1, 60)):
            height = rng.choice([rng.uniform(0.5, 60), rng.uniform(60, 150), rng.uniform(250, 400)])
            blocks.append(_block(height, keep=rng.random() < 0.2))

        # Act
        result = paginate([_section(blocks)], config)

        # Assert
        placed = [p.block for page in result.pages for p in _content(page)]
        assert placed == blocks
        for page in result.pages:
            content = _content(page)
            for position, placement in enumerate(content):
                if placement.bottom > config.page_bottom + EPS:
                    # Only an oversized block, alone at the top of its page
                    assert placement.block.height > config.available_height - config.running_header_height
                    assert position == 0

    def test_layout_is_idempotent(self, config):
        rng = random.Random(99)
        sections = [
            _section([_block(rng.uniform(5, 80), keep=rng.random() < 0.3) for _ in range(30)], key=f"student:{i}")
            for i in range(4)
        ]

        first = paginate(sections, config)
        second = paginate(sections, config)

        assert first.page_count == second.page_count
        assert first.section_order == second.section_order
        assert [
            [(p.block.text, p.top) for p in page.placements] for page in first.pages
        ] == [
            [(p.block.text, p.top) for p in page.placements] for page in second.pages
        ]
