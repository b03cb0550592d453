"""Singleton httpx client factory for outbound transport calls."""

from __future__ import annotations

import httpx

from study_pulse.config import settings

_client: httpx.Client | None = None


def get_http_client() -> httpx.Client:
    global _client  # noqa: PLW0603
    if _client is None:
        _client = httpx.Client(timeout=settings.email_timeout_seconds)
    return _client


def close_http_client() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        _client.close()
        _client = None
