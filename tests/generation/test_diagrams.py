"""
Tests for diagram resolution.

Every failure mode (bad data, timeout, unrenderable SVG, transport error)
must leave None in the image cache so layout omits the slot and carries
on. Valid SVG, inline or as a data URI, is rasterised.
"""

import asyncio
import base64
import io
from urllib.parse import quote

import httpx
import pytest
from PIL import Image

from worksheet_toolkit.core.models.levels import AdvancementLevel
from worksheet_toolkit.core.models.questions import Diagram, QuestionSet
from worksheet_toolkit.generation.cancellation import CancellationToken, GenerationCancelled
from worksheet_toolkit.generation.diagrams import (
    ImageCache,
    ImageFetchError,
    ImageFetcher,
    diagram_key,
    resolve_diagrams,
)


SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="120" height="60" viewBox="0 0 120 60">'
    '<rect x="10" y="10" width="100" height="40" fill="black"/></svg>'
)


def _svg_data_uri(markup=SVG):
    return "data:image/svg+xml;base64," + base64.b64encode(markup.encode("utf-8")).decode("ascii")


def _assert_rendered(image):
    assert image.mode == "RGB"
    width, height = image.size
    assert width == pytest.approx(2 * height, rel=0.05)
    assert image.getpixel((width // 2, height // 2)) == (0, 0, 0)
    assert image.getpixel((1, 1)) == (255, 255, 255)


def _set_with(make_question, *diagrams):
    questions = tuple(
        make_question(number=i, diagram=diagram) for i, diagram in enumerate(diagrams, start=1)
    )
    return QuestionSet(form="A", level=AdvancementLevel.C, main=questions)


class StubDiagramGenerator:
    def __init__(self, ref=None, delay=0.0):
        self.ref = ref
        self.delay = delay
        self.prompts = []
        self.active = 0
        self.max_active = 0

    async def generate(self, request):
        self.prompts.append(request.prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return self.ref


class TestDiagramKey:
    def test_keys_by_source(self):
        assert diagram_key(Diagram(image_url="https://x/y.png")) == "url:https://x/y.png"
        assert diagram_key(Diagram(prompt="triangle")) == "prompt:triangle"
        assert diagram_key(Diagram(svg="<svg/>")).startswith("svg:")


class TestImageFetcher:
    """Tests for ImageFetcher."""

    def test_decodes_data_uri(self, png_data_uri):
        image = asyncio.run(ImageFetcher().fetch(png_data_uri))

        assert image.size == (200, 100)
        assert image.mode == "RGB"

    def test_flattens_transparency(self):
        img = Image.new("RGBA", (10, 10), (255, 0, 0, 0))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        ref = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

        image = asyncio.run(ImageFetcher().fetch(ref))

        assert image.mode == "RGB"
        assert image.getpixel((0, 0)) == (255, 255, 255)

    def test_downloads_url(self, png_bytes):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=png_bytes)
        ))

        image = asyncio.run(ImageFetcher(client=client).fetch("https://cdn.example/d.png"))

        assert image.size == (200, 100)

    @pytest.mark.parametrize(
        "ref",
        [
            "data:image/png,rawbytes",
            "data:image/png;base64,!!!notbase64",
            "data:image/png;base64," + base64.b64encode(b"not an image").decode("ascii"),
            "ftp://example.org/d.png",
        ],
    )
    def test_bad_references_raise(self, ref):
        with pytest.raises(ImageFetchError):
            asyncio.run(ImageFetcher().fetch(ref))

    def test_rasterises_svg_data_uri(self):
        _assert_rendered(asyncio.run(ImageFetcher().fetch(_svg_data_uri())))

    def test_rasterises_url_encoded_svg_data_uri(self):
        ref = "data:image/svg+xml;utf8," + quote(SVG)

        _assert_rendered(asyncio.run(ImageFetcher().fetch(ref)))

    def test_rasterises_downloaded_svg(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=SVG.encode("utf-8"))
        ))

        _assert_rendered(asyncio.run(ImageFetcher(client=client).fetch("https://cdn.example/d.svg")))

    def test_rasterises_inline_markup(self):
        _assert_rendered(asyncio.run(ImageFetcher().rasterise(SVG)))

    def test_svg_resolution_follows_dpi(self):
        low = asyncio.run(ImageFetcher(svg_dpi=72).rasterise(SVG))
        high = asyncio.run(ImageFetcher(svg_dpi=144).rasterise(SVG))

        assert high.width == pytest.approx(2 * low.width, abs=2)

    def test_inline_markup_that_is_not_svg_raises(self):
        with pytest.raises(ImageFetchError):
            asyncio.run(ImageFetcher().rasterise("a right triangle with legs 3 and 4"))

    def test_http_error_raises(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        with pytest.raises(ImageFetchError, match="Failed to download"):
            asyncio.run(ImageFetcher(client=client).fetch("https://cdn.example/missing.png"))


class TestResolveDiagrams:
    """Tests for resolve_diagrams()."""

    def test_resolves_each_source(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri)
        question_set = _set_with(
            make_question,
            Diagram(image_url=png_data_uri),
            Diagram(prompt="number line"),
            Diagram(svg=SVG),
            Diagram(svg="not markup"),
        )

        cache = asyncio.run(resolve_diagrams([question_set], diagram_generator=generator))

        assert len(cache) == 4
        assert cache.get(Diagram(image_url=png_data_uri)) is not None
        assert cache.get(Diagram(prompt="number line")) is not None
        _assert_rendered(cache.get(Diagram(svg=SVG)))
        assert cache.failed_keys == [diagram_key(Diagram(svg="not markup"))]
        assert generator.prompts == ["number line"]

    def test_default_mode_renders_svg_from_generator(self, make_question):
        # Without AI images the generator is asked for SVG, which must render
        generator = StubDiagramGenerator(ref=_svg_data_uri())
        question_set = _set_with(make_question, Diagram(svg=SVG), Diagram(prompt="right triangle"))

        cache = asyncio.run(resolve_diagrams([question_set], diagram_generator=generator, use_ai_images=False))

        assert cache.failed_keys == []
        _assert_rendered(cache.get(Diagram(svg=SVG)))
        _assert_rendered(cache.get(Diagram(prompt="right triangle")))

    def test_duplicate_diagrams_resolved_once(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri)
        first = _set_with(make_question, Diagram(prompt="pie"))
        second = QuestionSet(form="B", level=AdvancementLevel.C, main=first.main)

        asyncio.run(resolve_diagrams([first, second], diagram_generator=generator))

        assert generator.prompts == ["pie"]

    def test_generator_timeout_omits_image(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri, delay=1.0)
        question_set = _set_with(make_question, Diagram(prompt="slow"))

        cache = asyncio.run(resolve_diagrams(
            [question_set],
            fetcher=ImageFetcher(timeout=0.05),
            diagram_generator=generator,
        ))

        assert cache.get(Diagram(prompt="slow")) is None

    def test_prompt_without_generator_is_skipped(self, make_question):
        question_set = _set_with(make_question, Diagram(prompt="no generator"))

        cache = asyncio.run(resolve_diagrams([question_set]))

        assert cache.get(Diagram(prompt="no generator")) is None

    def test_batches_bound_concurrency(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri, delay=0.01)
        question_set = _set_with(make_question, *[Diagram(prompt=f"p{i}") for i in range(5)])

        asyncio.run(resolve_diagrams([question_set], diagram_generator=generator, batch_size=2))

        assert generator.max_active == 2
        assert len(generator.prompts) == 5

    def test_existing_entries_are_not_refetched(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri)
        existing = ImageCache()
        existing.put(diagram_key(Diagram(prompt="cached")), None)
        question_set = _set_with(make_question, Diagram(prompt="cached"))

        asyncio.run(resolve_diagrams([question_set], diagram_generator=generator, cache=existing))

        assert generator.prompts == []

    def test_cancelled_token_stops_before_first_batch(self, make_question, png_data_uri):
        generator = StubDiagramGenerator(ref=png_data_uri)
        token = CancellationToken()
        token.cancel()
        question_set = _set_with(make_question, Diagram(prompt="p"))

        with pytest.raises(GenerationCancelled):
            asyncio.run(resolve_diagrams([question_set], diagram_generator=generator, token=token))

        assert generator.prompts == []

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            asyncio.run(resolve_diagrams([], batch_size=0))
