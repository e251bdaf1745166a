"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    audience_id: str | None = None,
    conversation_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (ids only, never emails or names)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if audience_id:
        context["audience_id"] = audience_id
    if conversation_id:
        context["conversation_id"] = conversation_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
