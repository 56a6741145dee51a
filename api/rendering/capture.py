"""Capture stage - rasterize a rendered certificate node.

The node is a shared, live element: previews may have scaled, hidden or
repositioned it through its inline style. Capture temporarily forces a
neutral full-size presentation, waits for the layout to settle and every
image to resolve, rasterizes, and always puts the style back.

Callers that can race on the same node must hold ``node.lock`` for the
duration (services.certificates_service.export_certificate does).
"""

import asyncio
import enum
import mimetypes
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from io import BytesIO
from pathlib import Path
from urllib.parse import urlparse

import httpx
from PIL import Image

from core.config import Settings, get_settings
from core.logger import get_logger
from rendering.certificates import (
    CERTIFICATE_MIN_HEIGHT,
    CERTIFICATE_WIDTH,
    bytes_to_data_uri,
    svg_to_png,
)
from rendering.node import CertificateNode, image_href

logger = get_logger(__name__)

BACKGROUND_COLOR = "#ffffff"

# Positioning properties the capture overrides
SNAPSHOT_PROPERTIES = ("position", "top", "left", "z-index", "transform", "scale")

# Presentation properties forced for the capture; normally unset beforehand
FORCED_PROPERTIES = (
    "width",
    "height",
    "background-color",
    "visibility",
    "opacity",
    "display",
    "overflow",
)

MUTATED_PROPERTIES = SNAPSHOT_PROPERTIES + FORCED_PROPERTIES

Rasterizer = Callable[..., bytes]


class CaptureOutcome(enum.StrEnum):
    OK = "ok"
    DEGRADED = "degraded"


class BlankCaptureError(Exception):
    """Raised when a blank raster is configured to be a hard failure."""


@dataclass(frozen=True)
class CaptureResult:
    image: Image.Image
    outcome: CaptureOutcome

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def capture_height(node: CertificateNode) -> int:
    return max(CERTIFICATE_MIN_HEIGHT, node.scroll_height)


def restore_style(node: CertificateNode, snapshot: dict[str, str]) -> None:
    """Write every snapshotted property back; unset ones are removed again."""
    node.style.restore(snapshot)


@asynccontextmanager
async def override_style(node: CertificateNode) -> AsyncIterator[CertificateNode]:
    """Scoped capture presentation for ``node``.

    Snapshots the properties it will touch, forces a fixed, untransformed,
    opaque full-size box, and restores the snapshot on every exit path.
    """
    snapshot = node.style.snapshot(MUTATED_PROPERTIES)
    try:
        style = node.style
        style.set_property("position", "fixed")
        style.set_property("top", "0")
        style.set_property("left", "0")
        style.set_property("z-index", "9999")
        style.set_property("transform", "none")
        style.set_property("scale", "1")
        style.set_property("width", f"{CERTIFICATE_WIDTH}px")
        style.set_property("height", f"{capture_height(node)}px")
        style.set_property("background-color", BACKGROUND_COLOR)
        style.set_property("visibility", "visible")
        style.set_property("opacity", "1")
        style.set_property("display", "block")
        style.set_property("overflow", "visible")
        yield node
    finally:
        restore_style(node, snapshot)


class ImageTooLargeError(Exception):
    """Raised when a remote image body exceeds the configured byte limit."""


async def _fetch_remote_image(
    client: httpx.AsyncClient, href: str, *, max_bytes: int
) -> tuple[bytes, str | None]:
    """Stream ``href`` into memory, giving up once ``max_bytes`` is exceeded."""
    async with client.stream("GET", href) as response:
        response.raise_for_status()
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise ImageTooLargeError(f"{declared} bytes exceeds {max_bytes}")

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                raise ImageTooLargeError(f"body exceeds {max_bytes} bytes")

        media_type = response.headers.get("content-type", "").split(";")[0]
        return bytes(content), media_type or None


async def _resolve_image(
    client: httpx.AsyncClient,
    href: str,
    *,
    max_bytes: int,
    allow_local: bool,
) -> str | None:
    """Load one image and return an inlinable href.

    Returns None for an image that failed to load; a failed image counts as
    resolved and is simply left out of the raster. Local paths are only read
    when ``allow_local`` is set.
    """
    if not href:
        return None
    if href.startswith("data:"):
        return href

    parsed = urlparse(href)
    try:
        if parsed.scheme in ("http", "https"):
            content, media_type = await _fetch_remote_image(
                client, href, max_bytes=max_bytes
            )
            media_type = media_type or mimetypes.guess_type(parsed.path)[0]
            return bytes_to_data_uri(content, media_type or "application/octet-stream")
        if parsed.scheme in ("", "file") and allow_local:
            path = Path(parsed.path if parsed.scheme == "file" else href)
            content = await asyncio.to_thread(path.read_bytes)
            media_type = mimetypes.guess_type(path.name)[0]
            return bytes_to_data_uri(content, media_type or "application/octet-stream")
    except (httpx.HTTPError, OSError, ImageTooLargeError) as e:
        logger.warning(
            "certificate.capture.image_failed",
            href=href[:200],
            error=str(e),
        )
        return None

    logger.warning("certificate.capture.image_unsupported", scheme=parsed.scheme)
    return None


async def _resolve_image_within(
    client: httpx.AsyncClient, href: str, *, timeout: float, **options
) -> str | None:
    try:
        async with asyncio.timeout(timeout):
            return await _resolve_image(client, href, **options)
    except TimeoutError:
        logger.warning(
            "certificate.capture.image_timeout", href=href[:200], timeout=timeout
        )
        return None


async def resolve_images(
    node: CertificateNode,
    *,
    timeout: float,
    max_bytes: int = 5 * 1024 * 1024,
    allow_local: bool = False,
    http_client: httpx.AsyncClient | None = None,
) -> list[str | None]:
    """Resolve every ``<image>`` in ``node`` concurrently, in document order.

    ``timeout`` bounds each image's whole fetch, including a slow body, so a
    stalled server cannot hold the capture past it.
    """
    hrefs = [image_href(element) for element in node.images()]
    if not hrefs:
        return []

    async def resolve_all(client: httpx.AsyncClient) -> list[str | None]:
        results = await asyncio.gather(
            *(
                _resolve_image_within(
                    client,
                    href,
                    timeout=timeout,
                    max_bytes=max_bytes,
                    allow_local=allow_local,
                )
                for href in hrefs
            )
        )
        return list(results)

    if http_client is not None:
        return await resolve_all(http_client)

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        return await resolve_all(client)


def has_visible_content(image: Image.Image) -> bool:
    """True when any color channel of any pixel is neither 0 nor 255.

    Pure white and fully transparent pixels both count as background.
    """
    histogram = image.convert("RGB").histogram()
    return any(
        histogram[channel * 256 + value]
        for channel in range(3)
        for value in range(1, 255)
    )


async def capture_certificate(
    node: CertificateNode,
    *,
    settings: Settings | None = None,
    rasterize: Rasterizer = svg_to_png,
    http_client: httpx.AsyncClient | None = None,
) -> CaptureResult:
    """Rasterize ``node`` into a bitmap.

    Args:
        node: Rendered certificate node
        settings: Capture knobs; defaults to the application settings
        rasterize: SVG-to-PNG function, CairoSVG by default
        http_client: Client used for remote images; one is created if None

    Returns:
        CaptureResult with the bitmap and an OK/DEGRADED outcome

    Raises:
        BlankCaptureError: If the raster is blank and CAPTURE_FAIL_ON_BLANK is set
    """
    settings = settings or get_settings()
    log = logger.bind(element_id=node.element_id)

    async with override_style(node):
        log.info("certificate.capture.started", height=capture_height(node))

        _, image_hrefs = await asyncio.gather(
            asyncio.sleep(settings.capture_settle_delay_seconds),
            resolve_images(
                node,
                timeout=settings.capture_image_timeout_seconds,
                max_bytes=settings.capture_max_image_bytes,
                allow_local=settings.capture_allow_local_images,
                http_client=http_client,
            ),
        )

        # Serializing commits every style write into the markup we rasterize
        markup = node.to_svg(image_hrefs=image_hrefs)

        loop = asyncio.get_running_loop()
        png = await loop.run_in_executor(
            None,
            partial(
                rasterize,
                markup,
                scale=settings.capture_scale,
                background_color=BACKGROUND_COLOR,
            ),
        )

    image = Image.open(BytesIO(png))
    image.load()

    outcome = CaptureOutcome.OK
    if not has_visible_content(image):
        outcome = CaptureOutcome.DEGRADED
        log.warning(
            "certificate.capture.blank",
            width=image.width,
            height=image.height,
        )
        if settings.capture_fail_on_blank:
            raise BlankCaptureError(
                f"Captured certificate '{node.element_id}' is blank "
                f"({image.width}x{image.height})"
            )

    log.info(
        "certificate.capture.completed",
        width=image.width,
        height=image.height,
        outcome=outcome.value,
    )
    return CaptureResult(image=image, outcome=outcome)
