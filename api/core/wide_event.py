"""Wide Event context for canonical log lines.

A request-scoped dict accumulates context while a certificate request is
handled; RequestTimingMiddleware initializes it at request start and emits
it as one ``request.completed`` log line at the end.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(capture_outcome="ok", page_height_mm=147)
    set_wide_event_nested("certificate", type="completion")
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    """Start a fresh wide event for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Get the current wide event dict. Returns empty dict if not initialized."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_field(key: str, value: Any) -> None:
    """Set a single field on the current wide event.

    No-op outside a request (CLI exports, tests).
    """
    event = get_wide_event()
    if event:
        event[key] = value


def set_wide_event_fields(**kwargs: Any) -> None:
    """Set several fields at once. No-op outside a request."""
    event = get_wide_event()
    if event:
        event.update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Set fields under a nested category.

    Example:
        set_wide_event_nested("certificate", type="completion")
        # Results in: {"certificate": {"type": "completion"}}
    """
    event = get_wide_event()
    if not event:
        return
    event.setdefault(category, {}).update(kwargs)


def clear_wide_event() -> None:
    """Reset the wide event once it has been emitted."""
    _wide_event.set({})
