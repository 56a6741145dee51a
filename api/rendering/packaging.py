"""Packaging stage - wrap a captured bitmap into a single-page PDF.

The page is always 210 mm wide and as tall as the bitmap's aspect ratio
demands, so the image fills it edge to edge without letterboxing or crop.
"""

import enum
import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from io import BytesIO

from PIL import Image
from reportlab.lib.pagesizes import landscape, portrait
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

DEFAULT_PAGE_WIDTH_MM = 210
DEFAULT_JPEG_QUALITY = 0.95
DOCUMENT_EXTENSION = "pdf"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9]")


class Orientation(enum.StrEnum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


@dataclass(frozen=True)
class PageGeometry:
    """Page size in millimetres."""

    width_mm: float
    height_mm: int
    orientation: Orientation

    @property
    def aspect_ratio(self) -> float:
        return self.width_mm / self.height_mm


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_page_geometry(
    width_px: int, height_px: int, page_width_mm: float = DEFAULT_PAGE_WIDTH_MM
) -> PageGeometry:
    """Page geometry that preserves the bitmap's aspect ratio.

    ``height = round(page_width / (width_px / height_px))``, rounding halves
    up; landscape when the page is wider than it is tall.

    Raises:
        ValueError: If either bitmap dimension is not positive.
    """
    if width_px <= 0 or height_px <= 0:
        raise ValueError(
            f"Cannot package a {width_px}x{height_px} bitmap: "
            "dimensions must be positive"
        )
    aspect_ratio = width_px / height_px
    page_height_mm = max(1, _round_half_up(page_width_mm / aspect_ratio))
    orientation = (
        Orientation.LANDSCAPE
        if page_width_mm > page_height_mm
        else Orientation.PORTRAIT
    )
    return PageGeometry(
        width_mm=page_width_mm, height_mm=page_height_mm, orientation=orientation
    )


def encode_jpeg(image: Image.Image, quality: float = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode ``image`` as JPEG, flattening any alpha onto white.

    ``quality`` is a fraction in (0, 1].
    """
    if image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, (255, 255, 255))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
    else:
        flattened = image.convert("RGB")

    buffer = BytesIO()
    flattened.save(
        buffer, format="JPEG", quality=max(1, min(100, round(quality * 100)))
    )
    return buffer.getvalue()


def build_certificate_pdf(
    image: Image.Image,
    geometry: PageGeometry,
    *,
    quality: float = DEFAULT_JPEG_QUALITY,
    title: str | None = None,
    author: str | None = None,
) -> bytes:
    """Build a compressed single-page PDF with ``image`` filling the page."""
    page_size = (geometry.width_mm * mm, geometry.height_mm * mm)
    if geometry.orientation is Orientation.LANDSCAPE:
        page_size = landscape(page_size)
    else:
        page_size = portrait(page_size)
    page_width, page_height = page_size

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=page_size, pageCompression=1)
    if title:
        pdf.setTitle(title)
    if author:
        pdf.setAuthor(author)

    jpeg = encode_jpeg(image, quality)
    pdf.drawImage(
        ImageReader(BytesIO(jpeg)), 0, 0, width=page_width, height=page_height
    )
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def sanitize_filename_part(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9]`` with ``_``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", value)


def build_certificate_filename(
    recipient_name: str, course_name: str, timestamp_ms: int | None = None
) -> str:
    """``{Recipient}_{Course}_Certificate_{epochMillis}.pdf``."""
    if timestamp_ms is None:
        timestamp_ms = int(datetime.now(UTC).timestamp() * 1000)
    return (
        f"{sanitize_filename_part(recipient_name)}_"
        f"{sanitize_filename_part(course_name)}_"
        f"Certificate_{timestamp_ms}.{DOCUMENT_EXTENSION}"
    )
