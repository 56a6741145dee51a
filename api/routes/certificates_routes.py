"""Certificate preview and export endpoints.

Exports are handed to the browser as attachment downloads; the generated
filename travels in Content-Disposition.
"""

from fastapi import APIRouter, HTTPException, Query, Request, Response

from core.config import get_settings
from core.ratelimit import EXPORT_LIMIT, PREVIEW_LIMIT, limiter
from core.wide_event import set_wide_event_nested
from rendering.certificates import render_certificate
from schemas import CertificateRenderRequest
from services.certificates_service import (
    CertificateGenerationError,
    export_certificate,
    generate_preview_png,
    generate_preview_svg,
)

router = APIRouter(prefix="/api/certificates", tags=["certificates"])


def _get_cache_control() -> str:
    """Previews are per-request renders; only cache them outside development."""
    settings = get_settings()
    if settings.environment.lower() == "development":
        return "no-store"
    return "private, max-age=300"


@router.post(
    "/preview.svg",
    responses={200: {"content": {"image/svg+xml": {}}, "description": "SVG preview"}},
)
@limiter.limit(PREVIEW_LIMIT)
async def preview_certificate_svg(
    request: Request, body: CertificateRenderRequest
) -> Response:
    """Render the certificate template as SVG."""
    set_wide_event_nested("certificate", type=body.certificate_type or "generic")
    svg_content = await generate_preview_svg(body.to_render_data())
    return Response(
        content=svg_content,
        media_type="image/svg+xml",
        headers={"Cache-Control": _get_cache_control()},
    )


@router.post(
    "/preview.png",
    responses={
        200: {"content": {"image/png": {}}, "description": "PNG preview"},
        501: {"description": "PNG generation not available"},
    },
)
@limiter.limit(PREVIEW_LIMIT)
async def preview_certificate_png(
    request: Request,
    body: CertificateRenderRequest,
    scale: float = Query(1.0, ge=0.25, le=4.0),
) -> Response:
    """Render the certificate template as a PNG image."""
    set_wide_event_nested("certificate", type=body.certificate_type or "generic")
    try:
        png_content = await generate_preview_png(body.to_render_data(), scale=scale)
    except RuntimeError as e:
        raise HTTPException(status_code=501, detail=str(e)) from e

    return Response(
        content=png_content,
        media_type="image/png",
        headers={"Cache-Control": _get_cache_control()},
    )


@router.post(
    "/export",
    responses={
        200: {"content": {"application/pdf": {}}, "description": "PDF certificate"},
        500: {"description": "Certificate generation failed"},
    },
)
@limiter.limit(EXPORT_LIMIT)
async def export_certificate_pdf(
    request: Request, body: CertificateRenderRequest
) -> Response:
    """Render, capture and package a certificate as a single-page PDF."""
    data = body.to_render_data()
    set_wide_event_nested("certificate", type=data.certificate_type or "generic")

    node = render_certificate(data)
    try:
        exported = await export_certificate(data, node)
    except CertificateGenerationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{exported.filename}"',
            "Cache-Control": "no-store",
            "X-Capture-Outcome": exported.capture_outcome.value,
        },
    )
