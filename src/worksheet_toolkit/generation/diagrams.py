"""
Module: generation.diagrams

Purpose:
    Resolve question diagrams into decoded images before layout starts.
    Diagrams arrive as a remote URL, a data URI, an image prompt (sent to
    the diagram collaborator) or raw SVG markup.

Key Classes:
    - ImageFetcher: Fetch + decode one image reference with a hard timeout
    - ImageCache: diagram key → decoded image (or None when it failed)

Key Functions:
    - diagram_key(): Stable identity for a Diagram
    - resolve_diagrams(): Batch-resolve every diagram in the question sets

Failure Semantics:
    Any fetch, generation, decode or rasterisation failure (including a
    timeout) stores None for that diagram. Layout then omits the image
    slot and carries on. SVG markup, inline or as a data URI or download,
    is rasterised with PyMuPDF.

Dependencies:
    - httpx: Remote fetches with timeouts
    - fitz (pymupdf): SVG rasterisation
    - PIL: Decoding and flattening images

Used By:
    - builder.controller: Phase 1 (after question generation)
    - builder.layout.composer: Reads decoded images
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import io
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import unquote

import fitz
import httpx
from PIL import Image, UnidentifiedImageError

from worksheet_toolkit.common.thresholds import GENERATION
from worksheet_toolkit.core.models.questions import Diagram, QuestionSet

from .cancellation import CancellationToken
from .client import DiagramGenerator, DiagramRequest

logger = logging.getLogger(__name__)


class ImageFetchError(Exception):
    """An image reference could not be fetched or decoded."""
    pass


def diagram_key(diagram: Diagram) -> str:
    """
    Stable cache key for a diagram.

    Example:
        >>> diagram_key(Diagram(prompt="right triangle"))
        'prompt:right triangle'
    """
    if diagram.image_url:
        return f"url:{diagram.image_url}"
    if diagram.prompt:
        return f"prompt:{diagram.prompt}"
    digest = hashlib.sha1((diagram.svg or "").encode("utf-8")).hexdigest()
    return f"svg:{digest}"


class ImageFetcher:
    """
    Fetches and decodes image references.

    Supports `data:` URIs (base64, or URL-encoded SVG), http(s) URLs and
    raw SVG markup. SVG is rasterised at `svg_dpi`. The whole fetch and
    decode is bounded by `timeout` seconds.
    """

    def __init__(
        self,
        *,
        timeout: float = GENERATION.image_fetch_timeout_s,
        svg_dpi: int = GENERATION.svg_render_dpi,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.svg_dpi = svg_dpi
        self._client = client

    async def fetch(self, ref: str) -> Image.Image:
        """
        Fetch and decode an image.

        Raises:
            ImageFetchError: On timeout, transport error, unsupported
                reference or undecodable data
        """
        return await self._bounded(self._fetch(ref), ref)

    async def rasterise(self, markup: str) -> Image.Image:
        """
        Rasterise inline SVG markup.

        Raises:
            ImageFetchError: On timeout or markup MuPDF cannot render
        """
        return await self._bounded(self._to_image(markup.encode("utf-8"), "inline SVG"), "inline SVG")

    async def _bounded(self, work, ref: str) -> Image.Image:
        try:
            return await asyncio.wait_for(work, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ImageFetchError(f"Timed out after {self.timeout}s fetching {_describe(ref)}") from e

    async def _fetch(self, ref: str) -> Image.Image:
        if ref.startswith("data:"):
            data = _decode_data_uri(ref)
        elif ref.startswith(("http://", "https://")):
            data = await self._download(ref)
        elif ref.lstrip().startswith("<"):
            data = ref.encode("utf-8")
        else:
            raise ImageFetchError(f"Unsupported image reference: {_describe(ref)}")
        return await self._to_image(data, ref)

    async def _to_image(self, data: bytes, ref: str) -> Image.Image:
        if _is_svg(data):
            # MuPDF rendering is blocking; keep it off the event loop
            return await asyncio.to_thread(_rasterise_svg, data, self.svg_dpi, ref)
        return _decode_image(data, ref)

    async def _download(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageFetchError(f"Failed to download {_describe(url)}: {e}") from e
        return response.content


class ImageCache:
    """
    Resolved diagram images, keyed by `diagram_key`.

    Written only during the generation phase; layout reads it through
    `get()` and treats None as "omit this slot".
    """

    def __init__(self) -> None:
        self._images: Dict[str, Optional[Image.Image]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._images

    def __len__(self) -> int:
        return len(self._images)

    def put(self, key: str, image: Optional[Image.Image]) -> None:
        self._images[key] = image

    def get(self, diagram: Optional[Diagram]) -> Optional[Image.Image]:
        if diagram is None or diagram.is_empty:
            return None
        return self._images.get(diagram_key(diagram))

    @property
    def failed_keys(self) -> List[str]:
        return [key for key, image in self._images.items() if image is None]

    @property
    def entries(self) -> Mapping[str, Optional[Image.Image]]:
        return MappingProxyType(self._images)


def collect_diagrams(question_sets: Iterable[QuestionSet]) -> List[Diagram]:
    """Unique diagrams across all sets, in first-seen order."""
    seen: Dict[str, Diagram] = {}
    for question_set in question_sets:
        for question in question_set.all_questions():
            if question.diagram is None or question.diagram.is_empty:
                continue
            seen.setdefault(diagram_key(question.diagram), question.diagram)
    return list(seen.values())


async def resolve_diagrams(
    question_sets: Iterable[QuestionSet],
    *,
    fetcher: Optional[ImageFetcher] = None,
    diagram_generator: Optional[DiagramGenerator] = None,
    use_ai_images: bool = False,
    batch_size: int = GENERATION.image_batch_size,
    token: Optional[CancellationToken] = None,
    cache: Optional[ImageCache] = None,
) -> ImageCache:
    """
    Resolve every diagram in the given question sets.

    Requests go out in fixed-size batches awaited together, so at most
    `batch_size` fetches or generations are outstanding at once.

    Args:
        question_sets: Populated question sets
        fetcher: Image fetcher (default: ImageFetcher())
        diagram_generator: Collaborator for prompt-only diagrams
        use_ai_images: Prefer AI images over deterministic SVG
        batch_size: Maximum concurrent diagram requests
        token: Cancellation token, checked before each batch
        cache: Existing cache to fill (default: new ImageCache)

    Returns:
        ImageCache with an entry (image or None) for every diagram

    Raises:
        GenerationCancelled: If the token fires between batches
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive: {batch_size}")

    fetcher = fetcher or ImageFetcher()
    cache = cache if cache is not None else ImageCache()
    token = token or CancellationToken()

    pending = [d for d in collect_diagrams(question_sets) if diagram_key(d) not in cache]
    if not pending:
        return cache

    logger.info(f"Resolving {len(pending)} diagrams in batches of {batch_size}")

    for start in range(0, len(pending), batch_size):
        token.raise_if_cancelled()
        batch = pending[start:start + batch_size]
        results = await asyncio.gather(
            *(
                _resolve_one(diagram, fetcher, diagram_generator, use_ai_images)
                for diagram in batch
            ),
            return_exceptions=True,
        )
        for diagram, result in zip(batch, results):
            key = diagram_key(diagram)
            if isinstance(result, Exception):
                logger.warning(f"Diagram {_describe(key)} skipped: {result}")
                cache.put(key, None)
            else:
                cache.put(key, result)

    logger.info(f"Resolved diagrams: {len(cache) - len(cache.failed_keys)} ok, {len(cache.failed_keys)} skipped")
    return cache


async def _resolve_one(
    diagram: Diagram,
    fetcher: ImageFetcher,
    diagram_generator: Optional[DiagramGenerator],
    use_ai_images: bool,
) -> Optional[Image.Image]:
    if diagram.image_url:
        return await fetcher.fetch(diagram.image_url)

    if diagram.prompt:
        if diagram_generator is None:
            logger.debug(f"No diagram generator configured, skipping prompt {_describe(diagram.prompt)}")
            return None
        request = DiagramRequest(
            prompt=diagram.prompt,
            use_ai_images=use_ai_images,
            prefer_svg=not use_ai_images,
        )
        ref = await asyncio.wait_for(diagram_generator.generate(request), timeout=fetcher.timeout)
        if not ref:
            logger.warning(f"Diagram generator returned no image for {_describe(diagram.prompt)}")
            return None
        return await fetcher.fetch(ref)

    return await fetcher.rasterise(diagram.svg or "")


def _decode_data_uri(ref: str) -> bytes:
    header, _, payload = ref.partition(",")
    if ";base64" in header:
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageFetchError(f"Invalid base64 image data: {e}") from e
    if "svg" in header:
        return unquote(payload).encode("utf-8")
    raise ImageFetchError("Only base64 data URIs are supported for raster images")


def _is_svg(data: bytes) -> bool:
    head = data[:2048].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if head.startswith(b"<svg"):
        return True
    return head.startswith((b"<?xml", b"<!doctype", b"<!--")) and b"<svg" in head


def _rasterise_svg(data: bytes, dpi: int, ref: str) -> Image.Image:
    zoom = dpi / 72.0
    try:
        with fitz.open(stream=data, filetype="svg") as doc:
            pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
    except Exception as e:
        # MuPDF reports malformed markup with its own error types
        raise ImageFetchError(f"Could not rasterise SVG {_describe(ref)}: {e}") from e

    if image.width == 0 or image.height == 0:
        raise ImageFetchError(f"SVG {_describe(ref)} has no drawable area")
    return image


def _decode_image(data: bytes, ref: str) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageFetchError(f"Could not decode image {_describe(ref)}: {e}") from e

    # Flatten transparency onto white so diagrams print cleanly
    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, "white")
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _describe(ref: str, limit: int = 60) -> str:
    return ref if len(ref) <= limit else ref[:limit] + "..."
