"""Pytest configuration and shared fixtures.

This module provides:
- Settings with no settle delay so capture tests run instantly
- A fake rasterizer standing in for CairoSVG (no system Cairo needed)
- A fake ``cairosvg`` module for tests that go through the default rasterizer
- Sample render data
"""

# Set environment variables BEFORE any imports that read Settings
import os

os.environ.setdefault("CAPTURE_SETTLE_DELAY_SECONDS", "0")
os.environ.setdefault("ENVIRONMENT", "development")

import re
import types
from collections.abc import Callable, Generator
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image, ImageDraw

from core.config import Settings, clear_settings_cache
from rendering.certificates import CertificateRenderData

_ROOT_SIZE_RE = re.compile(
    r'<svg\b[^>]*?\bwidth="(?P<w>[\d.]+)"[^>]*?\bheight="(?P<h>[\d.]+)"'
)


def _svg_size(svg_content: str) -> tuple[float, float]:
    match = _ROOT_SIZE_RE.search(svg_content)
    assert match, "rasterizer received markup without a sized root <svg>"
    return float(match.group("w")), float(match.group("h"))


def fake_png(width: int, height: int, *, blank: bool = False) -> bytes:
    """White PNG with a dark block in the middle unless ``blank``."""
    image = Image.new("RGB", (width, height), "white")
    if not blank:
        draw = ImageDraw.Draw(image)
        draw.rectangle(
            (width // 4, height // 4, width * 3 // 4, height * 3 // 4),
            fill=(40, 40, 40),
        )
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeRasterizer:
    """Records calls and returns a PNG sized like CairoSVG would."""

    def __init__(self, *, blank: bool = False) -> None:
        self.blank = blank
        self.calls: list[dict] = []

    def __call__(
        self,
        svg_content: str,
        *,
        scale: float = 2.0,
        background_color: str | None = None,
    ) -> bytes:
        self.calls.append(
            {"svg": svg_content, "scale": scale, "background_color": background_color}
        )
        width, height = _svg_size(svg_content)
        return fake_png(round(width * scale), round(height * scale), blank=self.blank)


@pytest.fixture(autouse=True)
def _clear_settings() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        capture_settle_delay_seconds=0,
        capture_image_timeout_seconds=2,
    )


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def blank_rasterizer() -> FakeRasterizer:
    return FakeRasterizer(blank=True)


@pytest.fixture
def fake_cairosvg() -> Generator[types.SimpleNamespace, None, None]:
    """Replace the ``cairosvg`` import with a fake backed by FakeRasterizer."""
    rasterizer = FakeRasterizer()

    def svg2png(*, bytestring: bytes, scale: float = 1.0, background_color=None):
        return rasterizer(
            bytestring.decode("utf-8"), scale=scale, background_color=background_color
        )

    module = types.SimpleNamespace(svg2png=svg2png, rasterizer=rasterizer)
    with patch.dict("sys.modules", {"cairosvg": module}):
        yield module


@pytest.fixture
def render_data() -> CertificateRenderData:
    return CertificateRenderData(
        recipient_name="Jane Doe",
        course_name="Intro to AI",
        completion_date="2025-01-05",
        certificate_type="completion",
    )


@pytest.fixture
def make_render_data() -> Callable[..., CertificateRenderData]:
    def _make(**overrides) -> CertificateRenderData:
        values = {
            "recipient_name": "Jane Doe",
            "course_name": "Intro to AI",
        }
        values.update(overrides)
        return CertificateRenderData(**values)

    return _make
