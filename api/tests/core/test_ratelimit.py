"""Unit tests for core.ratelimit module.

Tests rate limiting utilities:
- rate_limit_exceeded_handler returns proper 429 JSON response
- Export and preview limits are registered on the routes
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi import Request
from slowapi.errors import RateLimitExceeded

from core.ratelimit import (
    EXPORT_LIMIT,
    PREVIEW_LIMIT,
    rate_limit_exceeded_handler,
)


def _make_rate_limit_exc(
    detail: str = "10 per 1 minute", retry_after: int = 30
) -> RateLimitExceeded:
    """Create a RateLimitExceeded with a mock Limit object."""
    mock_limit = MagicMock()
    mock_limit.error_message = None
    mock_limit.limit = detail
    exc = RateLimitExceeded(mock_limit)
    object.__setattr__(exc, "retry_after", retry_after)
    return exc


def _make_request() -> Request:
    request = MagicMock(spec=Request)
    request.client.host = "203.0.113.7"
    request.headers = {}
    return request


@pytest.mark.unit
class TestRateLimitExceededHandler:
    """Test rate_limit_exceeded_handler response."""

    def test_returns_429_with_retry_after(self):
        exc = _make_rate_limit_exc(retry_after=30)

        response = rate_limit_exceeded_handler(_make_request(), exc)

        assert response.status_code == 429
        assert response.headers.get("Retry-After") == "30"

    def test_response_body_contains_detail(self):
        exc = _make_rate_limit_exc(detail="10 per 1 minute", retry_after=60)

        response = rate_limit_exceeded_handler(_make_request(), exc)
        body = json.loads(response.body)

        assert body["detail"] == "Rate limit exceeded. Please slow down."
        assert "10 per 1 minute" in body["retry_after"]

    def test_defaults_retry_after_to_a_minute(self):
        mock_limit = MagicMock()
        mock_limit.error_message = None
        mock_limit.limit = "10 per 1 minute"

        response = rate_limit_exceeded_handler(
            _make_request(), RateLimitExceeded(mock_limit)
        )

        assert response.headers.get("Retry-After") == "60"


@pytest.mark.unit
class TestLimits:
    def test_exports_are_limited_tighter_than_previews(self):
        assert EXPORT_LIMIT == "10/minute"
        assert PREVIEW_LIMIT == "30/minute"
