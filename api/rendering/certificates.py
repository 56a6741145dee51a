"""Certificate rendering - SVG template and raster conversion.

This module handles the visual/presentation aspects of certificates:
- Title, date and signature selection for the template
- Vertical layout with a content-driven page height
- SVG template rendering into an addressable ``CertificateNode``
- PNG rasterization

Capture and PDF packaging live in rendering.capture and rendering.packaging;
export orchestration lives in services/certificates_service.py.
"""

import base64
import html
import re
import textwrap
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path

from core.config import Settings, get_settings
from rendering.node import (
    DEFAULT_ELEMENT_ID,
    SVG_NS,
    XLINK_NS,
    CertificateNode,
    RenderDocument,
)

CERTIFICATE_WIDTH = 1000
CERTIFICATE_MIN_HEIGHT = 700

GENERIC_TITLE = "CERTIFICATE"

CERTIFICATE_TITLES: dict[str, str] = {
    "completion": "CERTIFICATE OF COMPLETION",
    "participation": "CERTIFICATE OF PARTICIPATION",
    "achievement": "CERTIFICATE OF ACHIEVEMENT",
}

RECIPIENT_PLACEHOLDER = "[Recipient Name]"
COURSE_PLACEHOLDER = "[Course/Event Name]"

GOLD = "#D4AF37"
GOLD_DARK = "#BFA14A"
INK = "#111827"
INK_MUTED = "#374151"

# Font stacks: Times and Courier are present on every Cairo/fontconfig install.
SERIF_FONT = "Times, 'Times New Roman', Georgia, serif"
SCRIPT_FONT = "'Great Vibes', 'Brush Script MT', 'URW Chancery L', cursive"
MONO_FONT = "Courier, 'Courier New', monospace"

# Horizontal room for the course line between the garlands
_COURSE_LINE_WIDTH = 680
_COURSE_FONT_SIZE = 30
_DESCRIPTION_FONT_SIZE = 20
_COURSE_LINE_HEIGHT = 40
# Average glyph advance of a serif face, as a fraction of the font size
_SERIF_ADVANCE = 0.5

_SIGNATURE_ROW_HEIGHT = 110
_BOTTOM_MARGIN = 50

_LOGO_ID_PREFIX = "certLogo-"
_LOGO_ATTRIBUTE_NAMESPACES = ("", XLINK_NS, "http://www.w3.org/XML/1998/namespace")

# Characters XML 1.0 does not allow anywhere in a document
XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


@dataclass(frozen=True)
class CertificateRenderData:
    """Everything the template needs to draw one certificate."""

    recipient_name: str
    course_name: str
    description: str | None = None
    completion_date: str | None = None  # ISO date, e.g. "2025-01-05"
    certificate_type: str | None = None
    founder_signature: str | None = None  # URL or data URI
    cofounder_signature: str | None = None


def get_certificate_title(certificate_type: str | None) -> str:
    """Title for a certificate type; unknown or missing types get the generic one."""
    if certificate_type is None:
        return GENERIC_TITLE
    return CERTIFICATE_TITLES.get(certificate_type, GENERIC_TITLE)


def get_completion_verb(certificate_type: str | None) -> str:
    if certificate_type == "participation":
        return "has participated in"
    return "has successfully completed"


def format_completion_date(value: str | None) -> str:
    """Format an ISO date string as a long date ("January 5, 2025").

    Returns an empty string when no date is given.

    Raises:
        ValueError: If the value is not an ISO 8601 date or datetime.
    """
    if not value:
        return ""
    parsed: date = datetime.fromisoformat(value.strip()).date()
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def svg_to_base64_data_uri(svg_content: str) -> str:
    """Convert SVG string to base64 data URI for embedding."""
    return bytes_to_data_uri(svg_content.encode("utf-8"), "image/svg+xml")


def bytes_to_data_uri(content: bytes, media_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def _escape(text: str, quote: bool = True) -> str:
    """Escape text for the template, dropping characters XML cannot carry."""
    return html.escape(XML_ILLEGAL_CHARS.sub("", text), quote=quote)


def _split_name(name: str) -> tuple[str, str]:
    """Split an ElementTree ``{namespace}local`` name."""
    if name.startswith("{"):
        namespace, _, local = name[1:].partition("}")
        return namespace, local
    return "", name


def _clean_logo_element(element: ET.Element) -> None:
    """Keep only SVG elements and plain, xlink or xml attributes.

    Editor namespaces (inkscape, sodipodi, sketch, rdf) are dropped along
    with scripts and event handler attributes.
    """
    for child in list(element):
        namespace, local = _split_name(child.tag)
        if namespace not in ("", SVG_NS) or local == "script":
            element.remove(child)
            continue
        child.tag = f"{{{SVG_NS}}}{local}"
        _clean_logo_element(child)

    for name in list(element.attrib):
        namespace, local = _split_name(name)
        is_handler = local.lower().startswith("on")
        if namespace not in _LOGO_ATTRIBUTE_NAMESPACES or is_handler:
            del element.attrib[name]


def _prefix_logo_refs(value: str, ids: set[str]) -> str:
    if value.startswith("#") and value[1:] in ids:
        return f"#{_LOGO_ID_PREFIX}{value[1:]}"

    def replace(match: re.Match) -> str:
        ref = match.group(1)
        return f"url(#{_LOGO_ID_PREFIX}{ref})" if ref in ids else match.group(0)

    return re.sub(r"url\(#([^)]+)\)", replace, value)


@lru_cache(maxsize=4)
def _get_logo_inline_svg(logo_path: str) -> str | None:
    """Return the logo as a self-contained nested ``<svg>`` block.

    The logo is parsed and re-serialized so only well-formed SVG reaches the
    template. Scripts and foreign-namespace markup are dropped and ids are
    prefixed so the logo's own defs cannot collide with the template's.
    Returns None when the file is missing, malformed, or not an SVG document.
    """
    if not logo_path:
        return None

    try:
        logo = ET.fromstring(Path(logo_path).read_bytes())
    except (OSError, ET.ParseError):
        return None

    if _split_name(logo.tag)[1] != "svg":
        return None

    view_box = logo.get("viewBox", "0 0 160 160")
    _clean_logo_element(logo)

    ids = {el.get("id") for el in logo.iter() if el.get("id")}
    for element in logo.iter():
        for name, value in list(element.attrib.items()):
            if name == "id":
                element.set(name, f"{_LOGO_ID_PREFIX}{value}")
            else:
                element.set(name, _prefix_logo_refs(value, ids))

    wrapper = ET.Element(
        f"{{{SVG_NS}}}svg",
        {
            "id": "certificate-logo",
            "x": "455",
            "y": "{y}",
            "width": "90",
            "height": "90",
            "viewBox": view_box,
            "preserveAspectRatio": "xMidYMid meet",
        },
    )
    wrapper.extend(logo)
    return ET.tostring(wrapper, encoding="unicode")


def _estimate_width(text: str, font_size: float) -> float:
    return len(text) * font_size * _SERIF_ADVANCE


def _wrap_course_line(
    course_name: str, description: str | None
) -> list[list[tuple[str, bool]]]:
    """Greedy line fill of the course name followed by the description.

    Returns lines of ``(text, is_description)`` runs so the description keeps
    its smaller inline style on whichever line it lands.
    """
    words: list[tuple[str, bool]] = [(w, False) for w in course_name.split()]
    if description:
        words.extend((w, True) for w in description.split())

    lines: list[list[tuple[str, bool]]] = []
    current: list[tuple[str, bool]] = []
    used = 0.0
    for word, is_description in words:
        size = _DESCRIPTION_FONT_SIZE if is_description else _COURSE_FONT_SIZE
        advance = _estimate_width(word, size)
        space = _estimate_width(" ", size) if current else 0.0
        if current and used + space + advance > _COURSE_LINE_WIDTH:
            lines.append(current)
            current, used, space = [], 0.0, 0.0
        if advance > _COURSE_LINE_WIDTH:
            # Split words too long for a line on their own
            max_chars = max(1, int(_COURSE_LINE_WIDTH / (size * _SERIF_ADVANCE)))
            chunks = textwrap.wrap(word, max_chars, break_long_words=True)
            for chunk in chunks[:-1]:
                lines.append([*current, (chunk, is_description)])
                current = []
            word = chunks[-1]
            advance = _estimate_width(word, size)
            used = 0.0
        current.append((word, is_description))
        used += space + advance
    if current:
        lines.append(current)
    return lines or [[("", False)]]


def _merge_runs(line: list[tuple[str, bool]]) -> list[tuple[str, bool]]:
    runs: list[tuple[str, bool]] = []
    for word, is_description in line:
        if runs and runs[-1][1] == is_description:
            runs[-1] = (f"{runs[-1][0]} {word}", is_description)
        elif runs:
            runs.append((f" {word}", is_description))
        else:
            runs.append((word, is_description))
    return runs


class _Layout:
    """Top-down cursor that stacks content blocks and records their markup."""

    def __init__(self, top: float) -> None:
        self.y = top
        self.parts: list[str] = []

    def gap(self, height: float) -> None:
        self.y += height

    def text(
        self,
        content: str,
        *,
        size: float,
        height: float,
        element_id: str | None = None,
        family: str = SERIF_FONT,
        fill: str = INK,
        extra: str = "",
    ) -> None:
        baseline = self.y + size * 0.8 + (height - size) / 2
        id_attr = f' id="{element_id}"' if element_id else ""
        self.parts.append(
            f'<text{id_attr} x="500" y="{baseline:.1f}" font-family="{family}" '
            f'font-size="{size}" fill="{fill}" text-anchor="middle"{extra}>'
            f"{_escape(content, quote=True)}</text>"
        )
        self.y += height

    def raw(self, markup: str, height: float) -> None:
        self.parts.append(markup)
        self.y += height


def _signature_block(
    *, x: float, top: float, signature: str | None, label: str, key: str, organization: str
) -> str:
    """Signature box (image or script stand-in), rule, role and organization."""
    if signature:
        mark = (
            f'<image id="{key}-signature-image" x="{x - 80}" y="{top + 4}" '
            f'width="160" height="48" preserveAspectRatio="xMidYMax meet" '
            f'href="{_escape(signature, quote=True)}"/>'
        )
    else:
        mark = (
            f'<text class="signature-fallback" x="{x}" y="{top + 48}" '
            f'font-family="{SCRIPT_FONT}" font-size="30" font-style="italic" '
            f'fill="#1f2937" text-anchor="middle">{label}</text>'
        )
    return f"""
  <g id="{key}-signature">
    {mark}
    <rect x="{x - 96}" y="{top + 62}" width="192" height="1" fill="{GOLD}"/>
    <text x="{x}" y="{top + 86}" font-family="{SERIF_FONT}" font-size="18" font-weight="600" fill="{INK}" text-anchor="middle">{label}</text>
    <text x="{x}" y="{top + 106}" font-family="{SERIF_FONT}" font-size="15" fill="{INK_MUTED}" text-anchor="middle">{_escape(organization)}</text>
  </g>"""


def _garland(side: str, height: float) -> str:
    """Leafy vine running down one side; the right one is mirrored."""
    mid = height / 2
    leaves = []
    for i in range(9):
        y = 90 + i * (height - 180) / 8
        leaves.append(
            f'<path d="M52 {y:.1f} q22 -14 40 -4 q-18 14 -40 4z" fill="{GOLD}" opacity="0.55"/>'
            f'<path d="M52 {y + 18:.1f} q-22 -14 -34 -2 q14 14 34 2z" fill="{GOLD_DARK}" opacity="0.45"/>'
        )
    transform = (
        f' transform="translate({CERTIFICATE_WIDTH} 0) scale(-1 1)"'
        if side == "right"
        else ""
    )
    return (
        f'<g id="garland-{side}"{transform}>'
        f'<path d="M52 70 C 30 {mid * 0.6:.1f}, 74 {mid * 1.4:.1f}, 52 {height - 70:.1f}" '
        f'stroke="{GOLD_DARK}" stroke-width="2" fill="none"/>'
        f'{"".join(leaves)}</g>'
    )


def generate_certificate_svg(
    data: CertificateRenderData,
    *,
    element_id: str = DEFAULT_ELEMENT_ID,
    settings: Settings | None = None,
) -> str:
    """Generate the SVG certificate.

    The canvas is CERTIFICATE_WIDTH wide and as tall as the larger of
    CERTIFICATE_MIN_HEIGHT and the laid-out content.

    Args:
        data: Recipient, course and presentation options
        element_id: id of the root element, used to address the node
        settings: Branding source; defaults to the application settings

    Returns:
        SVG content as a string

    Raises:
        ValueError: If ``completion_date`` is not an ISO date
    """
    settings = settings or get_settings()
    organization = settings.organization_name

    title = get_certificate_title(data.certificate_type)
    formatted_date = format_completion_date(data.completion_date)

    layout = _Layout(top=60)

    logo = _get_logo_inline_svg(settings.logo_path)
    if logo:
        layout.raw(logo.replace("{y}", f"{layout.y:g}"), 90)
    else:
        layout.raw(
            f'<g id="certificate-logo-fallback">'
            f'<rect x="455" y="{layout.y}" width="90" height="90" rx="8" '
            f'fill="#DBEAFE" stroke="#93C5FD" stroke-width="2"/>'
            f'<text x="500" y="{layout.y + 50}" font-family="{SERIF_FONT}" '
            f'font-size="12" font-weight="bold" fill="#2563EB" text-anchor="middle">'
            f"{_escape(organization.upper())}</text></g>",
            90,
        )
    layout.gap(8)
    layout.raw(f'<rect x="440" y="{layout.y}" width="120" height="1" fill="{GOLD}"/>', 0)
    layout.text(
        settings.organization_tagline,
        size=12,
        height=16,
        fill=INK_MUTED,
        extra=' letter-spacing="4"',
    )
    layout.gap(22)

    layout.text(
        title,
        size=40,
        height=44,
        element_id="certificate-title",
        extra=' font-weight="bold" letter-spacing="3"',
    )
    layout.gap(8)
    layout.text("Presented to", size=17, height=20, fill=INK_MUTED)
    layout.gap(6)
    ornament_y = layout.y + 6
    layout.raw(
        f'<g id="ornament">'
        f'<rect x="420" y="{ornament_y}" width="64" height="1" fill="{GOLD}"/>'
        f'<circle cx="500" cy="{ornament_y}" r="6" fill="{GOLD}" stroke="{GOLD_DARK}" stroke-width="2"/>'
        f'<rect x="516" y="{ornament_y}" width="64" height="1" fill="{GOLD}"/></g>',
        12,
    )
    layout.gap(18)

    layout.text("This is to certify that", size=20, height=22)
    layout.gap(10)
    layout.text(
        data.recipient_name or RECIPIENT_PLACEHOLDER,
        size=46,
        height=52,
        element_id="certificate-recipient",
        extra=' font-weight="bold" font-style="italic"',
    )
    layout.gap(4)
    flourish_y = layout.y
    layout.raw(
        f'<g id="flourish" transform="translate(375 {flourish_y})">'
        f'<path d="M15 7 Q 125 3, 235 7" stroke="{GOLD}" stroke-width="3" fill="none"/>'
        f'<path d="M20 10 Q 125 6, 230 10" stroke="{GOLD}" stroke-width="1" fill="none" opacity="0.6"/>'
        f"</g>",
        15,
    )
    layout.gap(14)
    layout.text(get_completion_verb(data.certificate_type), size=20, height=22)
    layout.gap(10)

    course_lines = _wrap_course_line(
        data.course_name or COURSE_PLACEHOLDER, data.description
    )
    line_markup = []
    for index, line in enumerate(course_lines):
        baseline = layout.y + index * _COURSE_LINE_HEIGHT + _COURSE_FONT_SIZE * 0.9
        spans = []
        for text, is_description in _merge_runs(line):
            if is_description:
                spans.append(
                    f'<tspan class="course-description" font-size="{_DESCRIPTION_FONT_SIZE}" '
                    f'font-weight="normal">{_escape(text)}</tspan>'
                )
            else:
                spans.append(f"<tspan>{_escape(text)}</tspan>")
        line_markup.append(
            f'<text x="500" y="{baseline:.1f}" font-family="{SERIF_FONT}" '
            f'font-size="{_COURSE_FONT_SIZE}" font-weight="600" fill="#1f2937" '
            f'text-anchor="middle" xml:space="preserve">{"".join(spans)}</text>'
        )
    layout.raw(
        f'<g id="certificate-course">{"".join(line_markup)}</g>',
        len(course_lines) * _COURSE_LINE_HEIGHT,
    )

    if formatted_date:
        layout.gap(14)
        layout.text(
            f"Given this {formatted_date}",
            size=19,
            height=22,
            element_id="certificate-date",
        )

    layout.gap(30)
    content_height = layout.y + _SIGNATURE_ROW_HEIGHT + _BOTTOM_MARGIN
    height = max(CERTIFICATE_MIN_HEIGHT, int(round(content_height)))

    # Signature row sits at the bottom regardless of content height
    row_top = height - _BOTTOM_MARGIN - _SIGNATURE_ROW_HEIGHT
    founder = _signature_block(
        x=230,
        top=row_top,
        signature=data.founder_signature,
        label="Founder",
        key="founder",
        organization=organization,
    )
    cofounder = _signature_block(
        x=770,
        top=row_top,
        signature=data.cofounder_signature,
        label="Co-founder",
        key="cofounder",
        organization=organization,
    )
    badge = f"""
  <g id="certificate-badge">
    <rect x="455" y="{row_top}" width="90" height="80" rx="8" fill="#F3F4F6" stroke="#D1D5DB" stroke-width="2"/>
    <text x="500" y="{row_top + 45}" font-family="{SERIF_FONT}" font-size="14" font-weight="600" fill="#6B7280" text-anchor="middle">{_escape(settings.badge_label)}</text>
    <text x="500" y="{row_top + 100}" font-family="{MONO_FONT}" font-size="12" fill="{INK_MUTED}" text-anchor="middle">{_escape(settings.badge_registration)}</text>
  </g>"""

    body = "\n  ".join(layout.parts)

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" id="{_escape(element_id, quote=True)}" viewBox="0 0 {CERTIFICATE_WIDTH} {height}" width="{CERTIFICATE_WIDTH}" height="{height}">
  <defs>
    <linearGradient id="paperGradient" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0" stop-color="#FFF8E1"/>
      <stop offset="1" stop-color="#FFFFFF"/>
    </linearGradient>
  </defs>

  <rect width="{CERTIFICATE_WIDTH}" height="{height}" fill="url(#paperGradient)"/>

  <!-- Double gold border -->
  <rect x="16" y="16" width="{CERTIFICATE_WIDTH - 32}" height="{height - 32}" rx="12" fill="none" stroke="{GOLD}" stroke-width="4"/>
  <rect x="32" y="32" width="{CERTIFICATE_WIDTH - 64}" height="{height - 64}" rx="8" fill="none" stroke="{GOLD_DARK}" stroke-width="2"/>

  {_garland("left", height)}
  {_garland("right", height)}

  {body}
{founder}
{badge}
{cofounder}
</svg>"""


def render_certificate(
    data: CertificateRenderData,
    *,
    document: RenderDocument | None = None,
    element_id: str = DEFAULT_ELEMENT_ID,
    settings: Settings | None = None,
) -> CertificateNode:
    """Render the template into an addressable node.

    When ``document`` is given the node is registered under ``element_id``,
    replacing any node already registered there.

    Raises:
        ValueError: If the rendered markup is not well-formed XML
    """
    svg = generate_certificate_svg(data, element_id=element_id, settings=settings)
    try:
        root = ET.fromstring(svg.encode("utf-8"))
    except ET.ParseError as e:
        raise ValueError(f"Certificate markup is not well-formed: {e}") from e
    node = CertificateNode(
        element_id=element_id,
        root=root,
        width=int(root.get("width", CERTIFICATE_WIDTH)),
        scroll_height=int(root.get("height", CERTIFICATE_MIN_HEIGHT)),
    )
    if document is not None:
        document.register(node)
    return node


def svg_to_png(
    svg_content: str, *, scale: float = 2.0, background_color: str | None = None
) -> bytes:
    """Convert SVG string to PNG bytes using CairoSVG.

    Args:
        svg_content: SVG string to convert
        scale: Device-scale multiplier (2.0 renders 2000px for a 1000-unit canvas)
        background_color: Opaque fill behind the drawing; transparent if None

    Returns:
        PNG content as bytes

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise RuntimeError(
                "Certificate rasterization requires the Cairo library. "
                "On macOS: brew install cairo. "
                "On Ubuntu/Debian: apt-get install libcairo2-dev. "
                "On Alpine: apk add cairo-dev."
            ) from e
        raise

    return cairosvg.svg2png(
        bytestring=svg_content.encode("utf-8"),
        scale=scale,
        background_color=background_color,
    )
