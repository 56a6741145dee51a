"""Rendering module for certificate presentation.

This module handles all presentation/rendering logic:
- Certificate SVG template and layout
- Capture (rasterization) of a rendered node
- PDF packaging

Export orchestration and error wrapping live in services.
"""

from rendering.capture import (
    BlankCaptureError,
    CaptureOutcome,
    CaptureResult,
    capture_certificate,
    override_style,
)
from rendering.certificates import (
    CertificateRenderData,
    generate_certificate_svg,
    get_certificate_title,
    render_certificate,
    svg_to_base64_data_uri,
    svg_to_png,
)
from rendering.node import CertificateNode, RenderDocument
from rendering.packaging import (
    Orientation,
    PageGeometry,
    build_certificate_filename,
    build_certificate_pdf,
    compute_page_geometry,
)

__all__ = [
    "BlankCaptureError",
    "CaptureOutcome",
    "CaptureResult",
    "CertificateNode",
    "CertificateRenderData",
    "Orientation",
    "PageGeometry",
    "RenderDocument",
    "build_certificate_filename",
    "build_certificate_pdf",
    "capture_certificate",
    "compute_page_geometry",
    "generate_certificate_svg",
    "get_certificate_title",
    "override_style",
    "render_certificate",
    "svg_to_base64_data_uri",
    "svg_to_png",
]
