"""Certificate export business logic.

This module orchestrates the export pipeline:
- Locating the rendered certificate node
- Capture (rendering.capture) and PDF packaging (rendering.packaging)
- Error wrapping and style rollback on failure
- Handing the finished document to a saver
- Preview generation for the API

Routes and the CLI should call into this module instead of the rendering
module directly.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from core.config import Settings, get_settings
from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from rendering.capture import (
    MUTATED_PROPERTIES,
    CaptureOutcome,
    Rasterizer,
    capture_certificate,
    restore_style,
)
from rendering.certificates import (
    CertificateRenderData,
    generate_certificate_svg,
    svg_to_png,
)
from rendering.node import DEFAULT_ELEMENT_ID, CertificateNode, RenderDocument
from rendering.packaging import (
    PageGeometry,
    build_certificate_filename,
    build_certificate_pdf,
    compute_page_geometry,
)

logger = get_logger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


class CertificateGenerationError(Exception):
    """Raised when a certificate could not be exported."""

    PREFIX = "Failed to generate certificate"

    def __init__(self, message: str) -> None:
        self.reason = message
        super().__init__(f"{self.PREFIX}: {message}")


class CertificateNodeNotFoundError(CertificateGenerationError):
    """Raised before any mutation when the target node does not exist."""

    def __init__(self, element_id: str) -> None:
        self.element_id = element_id
        super().__init__(f"Certificate element '{element_id}' not found")


@dataclass(frozen=True)
class ExportedCertificate:
    """A finished certificate document, ready to be saved."""

    filename: str
    content: bytes
    geometry: PageGeometry
    capture_outcome: CaptureOutcome
    media_type: str = PDF_MEDIA_TYPE


Saver = Callable[[ExportedCertificate], None]


def save_to_directory(directory: Path) -> Saver:
    """Saver that writes the document into ``directory`` under its filename."""

    def _save(document: ExportedCertificate) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / document.filename).write_bytes(document.content)

    return _save


def _error_message(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__


def _resolve_node(
    node: CertificateNode | None,
    document: RenderDocument | None,
    element_id: str,
) -> CertificateNode:
    if node is not None:
        return node
    found = document.get_element_by_id(element_id) if document else None
    if found is None:
        raise CertificateNodeNotFoundError(element_id)
    return found


async def export_certificate(
    data: CertificateRenderData,
    node: CertificateNode | None = None,
    *,
    document: RenderDocument | None = None,
    element_id: str = DEFAULT_ELEMENT_ID,
    settings: Settings | None = None,
    saver: Saver | None = None,
    rasterize: Rasterizer = svg_to_png,
    http_client: httpx.AsyncClient | None = None,
    timestamp_ms: int | None = None,
) -> ExportedCertificate:
    """Capture a rendered certificate and package it as a one-page PDF.

    Pass the node returned by ``render_certificate`` directly, or a
    ``document`` to look it up by ``element_id``. Exports of the same node
    are serialized on the node's lock.

    Args:
        data: The data the node was rendered from (used for the filename)
        node: Rendered certificate node
        document: Registry to look the node up in when ``node`` is None
        element_id: Id to look up in ``document``
        settings: Capture/packaging knobs; defaults to the application settings
        saver: Receives the finished document; not called on failure
        rasterize: SVG-to-PNG function, CairoSVG by default
        http_client: Client for remote images; one is created per export if None
        timestamp_ms: Filename uniqueness token; current epoch millis if None

    Returns:
        The exported document

    Raises:
        CertificateNodeNotFoundError: If no node was given and none is registered
        CertificateGenerationError: If capture, packaging or saving fails
    """
    settings = settings or get_settings()
    target = _resolve_node(node, document, element_id)
    log = logger.bind(element_id=target.element_id)

    async with target.lock:
        baseline = target.style.snapshot(MUTATED_PROPERTIES)
        try:
            capture = await capture_certificate(
                target,
                settings=settings,
                rasterize=rasterize,
                http_client=http_client,
            )

            geometry = compute_page_geometry(
                capture.width, capture.height, settings.pdf_page_width_mm
            )
            filename = build_certificate_filename(
                data.recipient_name, data.course_name, timestamp_ms
            )
            loop = asyncio.get_running_loop()
            content = await loop.run_in_executor(
                None,
                lambda: build_certificate_pdf(
                    capture.image,
                    geometry,
                    quality=settings.pdf_jpeg_quality,
                    title=f"{data.course_name} - {data.recipient_name}",
                    author=settings.organization_name,
                ),
            )
            exported = ExportedCertificate(
                filename=filename,
                content=content,
                geometry=geometry,
                capture_outcome=capture.outcome,
            )
            if saver is not None:
                saver(exported)
        except Exception as e:
            log.exception("certificate.export.failed", error=_error_message(e))
            restore_style(target, baseline)
            raise CertificateGenerationError(_error_message(e)) from e

    set_wide_event_fields(
        certificate_filename=exported.filename,
        capture_outcome=exported.capture_outcome.value,
        page_width_mm=geometry.width_mm,
        page_height_mm=geometry.height_mm,
    )
    log.info(
        "certificate.export.completed",
        filename=exported.filename,
        bytes=len(exported.content),
        page_height_mm=geometry.height_mm,
        orientation=geometry.orientation.value,
        capture_outcome=exported.capture_outcome.value,
    )
    return exported


async def generate_preview_svg(
    data: CertificateRenderData, settings: Settings | None = None
) -> str:
    """SVG markup of the certificate template."""
    return generate_certificate_svg(data, settings=settings)


async def generate_preview_png(
    data: CertificateRenderData,
    *,
    scale: float = 1.0,
    settings: Settings | None = None,
    rasterize: Rasterizer = svg_to_png,
) -> bytes:
    """PNG preview of the template, without the capture stage.

    Runs in a thread pool since CairoSVG rendering is CPU-bound. Remote
    signature images are left for CairoSVG to resolve on its own.
    """
    svg_content = generate_certificate_svg(data, settings=settings)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, lambda: rasterize(svg_content, scale=scale, background_color="#ffffff")
    )
