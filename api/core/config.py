"""Application configuration using pydantic-settings."""

from functools import cached_property, lru_cache
from pathlib import Path
from typing import Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    environment: str = "development"

    # Capture stage
    # Seconds to let fonts and async layout settle before rasterizing
    capture_settle_delay_seconds: float = 2.0
    # Whole-fetch deadline per signature/logo image, covering slow bodies
    capture_image_timeout_seconds: float = 15.0
    # Remote image bodies larger than this are dropped from the raster
    capture_max_image_bytes: int = 5 * 1024 * 1024
    # Read local image paths from disk; only the CLI turns this on
    capture_allow_local_images: bool = False
    # Device-scale multiplier for the raster (2.0 = 2000px wide for 1000 units)
    capture_scale: float = 2.0
    # Escalate a blank raster to a hard failure instead of a logged warning
    capture_fail_on_blank: bool = False

    # Packaging stage
    pdf_page_width_mm: float = 210.0
    pdf_jpeg_quality: float = 0.95

    # Template branding
    organization_name: str = "AJ Academy"
    organization_tagline: str = "ACADEMIC EXCELLENCE"
    # Path to an SVG logo inlined into the template; empty renders a fallback box
    logo_path: str = ""
    badge_label: str = "MSME"
    badge_registration: str = "UDYAM-TN-02-0405466"

    # Directory the CLI writes exported certificates into
    output_dir: str = "certificates"

    # Use "redis://host:port" in production for distributed rate limiting
    ratelimit_storage_uri: str = "memory://"

    # Comma-separated list of allowed CORS origins (in addition to localhost defaults)
    cors_allowed_origins: str = ""

    debug: bool = False  # Enables docs, CORS localhost, relaxes validation
    enable_docs: bool = False  # Swagger UI at /docs

    @model_validator(mode="after")
    def validate_config(self) -> Self:
        if self.capture_settle_delay_seconds < 0:
            raise ValueError("CAPTURE_SETTLE_DELAY_SECONDS must not be negative.")
        if self.capture_image_timeout_seconds <= 0:
            raise ValueError("CAPTURE_IMAGE_TIMEOUT_SECONDS must be positive.")
        if self.capture_max_image_bytes <= 0:
            raise ValueError("CAPTURE_MAX_IMAGE_BYTES must be positive.")
        if self.capture_scale <= 0:
            raise ValueError("CAPTURE_SCALE must be positive.")
        if self.pdf_page_width_mm <= 0:
            raise ValueError("PDF_PAGE_WIDTH_MM must be positive.")
        if not 0 < self.pdf_jpeg_quality <= 1:
            raise ValueError("PDF_JPEG_QUALITY must be in the range (0, 1].")

        # In production (debug=False), a configured logo must exist
        if not self.debug and self.logo_path and not self.logo_file.is_file():
            raise ValueError(
                f"LOGO_PATH points to a missing file: {self.logo_path}. "
                "Set DEBUG=true to skip this check in development."
            )
        return self

    @property
    def logo_file(self) -> Path:
        return Path(self.logo_path)

    @cached_property
    def output_dir_path(self) -> Path:
        return Path(self.output_dir)

    @cached_property
    def allowed_origins(self) -> list[str]:
        """Combines localhost (dev only) and cors_allowed_origins."""
        origins: list[str] = []

        # Only include localhost origins in debug mode
        if self.debug:
            origins.extend(
                [
                    "http://localhost:3000",
                    "http://localhost:4280",
                ]
            )

        if self.cors_allowed_origins:
            for origin in self.cors_allowed_origins.split(","):
                origin = origin.strip()
                if origin and origin not in origins:
                    origins.append(origin)

        return origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this in tests to reset settings between test cases.
    After clearing, the next get_settings() call will create
    a fresh Settings instance with current environment variables.

    Example:
        def test_something(monkeypatch):
            monkeypatch.setenv("CAPTURE_SCALE", "3")
            clear_settings_cache()
            settings = get_settings()  # Fresh instance
    """
    get_settings.cache_clear()
