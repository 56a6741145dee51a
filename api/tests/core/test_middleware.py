"""Unit tests for core.middleware module.

Tests ASGI middleware:
- SecurityHeadersMiddleware adds security headers to HTTP responses
- SecurityHeadersMiddleware skips non-HTTP scopes
- RequestTimingMiddleware adds timing headers and emits the wide event
"""

from unittest.mock import patch

import pytest

from core.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from core.wide_event import get_wide_event, set_wide_event_fields


async def _noop_receive():
    return {"type": "http.request", "body": b""}


async def _make_app_that_sends_response(scope, receive, send):
    """Simulate an ASGI app that sends a response."""
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"OK"})


def _app_with_status(status: int, **wide_event_fields):
    async def app(scope, receive, send):
        if wide_event_fields:
            set_wide_event_fields(**wide_event_fields)
        await send({"type": "http.response.start", "status": status, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    return app


async def _call(middleware, scope=None):
    sent_messages = []

    async def mock_send(message):
        sent_messages.append(message)

    await middleware(
        scope or {"type": "http", "method": "POST", "path": "/api/certificates/export"},
        _noop_receive,
        mock_send,
    )
    return sent_messages


@pytest.mark.unit
class TestSecurityHeadersMiddleware:
    """Test SecurityHeadersMiddleware adds expected headers."""

    async def test_adds_security_headers(self):
        sent_messages = await _call(
            SecurityHeadersMiddleware(_make_app_that_sends_response)
        )

        header_names = {h[0] for h in sent_messages[0]["headers"]}
        assert b"x-content-type-options" in header_names
        assert b"x-frame-options" in header_names
        assert b"referrer-policy" in header_names
        assert b"content-security-policy" in header_names
        assert b"permissions-policy" in header_names

    async def test_skips_non_http_scopes(self):
        called = False

        async def inner_app(scope, receive, send):
            nonlocal called
            called = True

        middleware = SecurityHeadersMiddleware(inner_app)

        await middleware({"type": "websocket"}, _noop_receive, lambda msg: None)
        assert called

    async def test_preserves_existing_headers(self):
        async def app_with_headers(scope, receive, send):
            await send(
                {
                    "type": "http.response.start",
                    "status": 200,
                    "headers": [(b"content-disposition", b"attachment")],
                }
            )

        sent_messages = await _call(SecurityHeadersMiddleware(app_with_headers))

        header_names = {h[0] for h in sent_messages[0]["headers"]}
        assert b"content-disposition" in header_names


@pytest.mark.unit
class TestRequestTimingMiddleware:
    async def test_adds_timing_and_request_id_headers(self):
        sent_messages = await _call(RequestTimingMiddleware(_app_with_status(200)))

        headers = dict(sent_messages[0]["headers"])
        assert float(headers[b"x-request-duration-ms"]) >= 0
        assert len(headers[b"x-request-id"]) == 36

    async def test_plain_success_is_not_emitted(self):
        with patch("core.middleware.logger") as mock_logger:
            await _call(RequestTimingMiddleware(_app_with_status(200)))

        mock_logger.info.assert_not_called()

    async def test_enriched_success_is_emitted(self):
        app = _app_with_status(200, capture_outcome="ok")
        with patch("core.middleware.logger") as mock_logger:
            await _call(RequestTimingMiddleware(app))

        event_name, = mock_logger.info.call_args.args
        fields = mock_logger.info.call_args.kwargs
        assert event_name == "request.completed"
        assert fields["capture_outcome"] == "ok"
        assert fields["http_status_code"] == 200
        assert fields["outcome"] == "success"
        assert fields["http_method"] == "POST"

    async def test_error_is_emitted(self):
        with patch("core.middleware.logger") as mock_logger:
            await _call(RequestTimingMiddleware(_app_with_status(500)))

        fields = mock_logger.info.call_args.kwargs
        assert fields["outcome"] == "error"
        assert fields["http_status_code"] == 500

    async def test_exception_is_emitted_and_reraised(self):
        async def exploding(scope, receive, send):
            raise RuntimeError("kaboom")

        with patch("core.middleware.logger") as mock_logger:
            with pytest.raises(RuntimeError, match="kaboom"):
                await _call(RequestTimingMiddleware(exploding))

        fields = mock_logger.info.call_args.kwargs
        assert fields["outcome"] == "exception"
        assert fields["exception_type"] == "RuntimeError"

    async def test_wide_event_cleared_after_request(self):
        await _call(RequestTimingMiddleware(_app_with_status(200, a=1)))

        assert get_wide_event() == {}
