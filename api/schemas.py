"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from rendering.certificates import XML_ILLEGAL_CHARS, CertificateRenderData

# Validation context key that lets trusted callers (the CLI) pass local paths
ALLOW_LOCAL_IMAGES = "allow_local_images"


class _CamelModel(BaseModel):
    """Accepts both snake_case and the frontend's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    @field_validator("*")
    @classmethod
    def reject_control_characters(cls, value):
        if isinstance(value, str) and XML_ILLEGAL_CHARS.search(value):
            raise ValueError("Control characters are not allowed")
        return value


def _validate_iso_date(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    try:
        datetime.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Not an ISO 8601 date: {value!r}") from e
    return value


def _validate_image_source(value: str | None, info: ValidationInfo) -> str | None:
    """Signatures are data URIs or http(s) URLs; local paths need opt-in."""
    if not value:
        return None
    if value.startswith("data:"):
        return value

    parsed = urlparse(value)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return value
    if info.context and info.context.get(ALLOW_LOCAL_IMAGES):
        return value
    raise ValueError("Must be a data: URI or an http(s) URL")


class CertificateRenderRequest(_CamelModel):
    """Data drawn onto a certificate.

    ``certificate_type`` is deliberately free text: unknown values render
    the generic "CERTIFICATE" title rather than failing validation.
    """

    recipient_name: str = Field(max_length=200)
    course_name: str = Field(max_length=300)
    description: str | None = Field(default=None, max_length=500)
    completion_date: str | None = None
    certificate_type: str | None = Field(default=None, max_length=50)
    founder_signature: str | None = None
    cofounder_signature: str | None = None

    @field_validator("completion_date")
    @classmethod
    def validate_completion_date(cls, value: str | None) -> str | None:
        return _validate_iso_date(value)

    @field_validator("founder_signature", "cofounder_signature")
    @classmethod
    def validate_signature(cls, value: str | None, info: ValidationInfo) -> str | None:
        return _validate_image_source(value, info)

    def to_render_data(self) -> CertificateRenderData:
        return CertificateRenderData(
            recipient_name=self.recipient_name,
            course_name=self.course_name,
            description=self.description or None,
            completion_date=self.completion_date,
            certificate_type=self.certificate_type,
            founder_signature=self.founder_signature or None,
            cofounder_signature=self.cofounder_signature or None,
        )


class CertificateRecord(_CamelModel):
    """An issued certificate as the certificate lookup returns it."""

    id: str | None = Field(default=None, alias="_id")
    full_name: str
    course_name: str
    completed_date: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("completed_date")
    @classmethod
    def validate_completed_date(cls, value: str | None) -> str | None:
        return _validate_iso_date(value)

    def to_render_data(self) -> CertificateRenderData:
        """Lookup records always render as completion certificates."""
        return CertificateRenderData(
            recipient_name=self.full_name,
            course_name=self.course_name,
            completion_date=self.completed_date,
            certificate_type="completion",
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
