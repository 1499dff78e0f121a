"""HTTP client factory: builds AbstractHttpClient from settings (no provider logic in composition)."""
from __future__ import annotations

import httpx

from updater.app.config.settings import Settings
from updater.app.ports.http_client import AbstractHttpClient
from updater.app.infrastructure.http.httpx_client import HttpxHttpClient


def create_http_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AbstractHttpClient:
    """Build an HTTP client from settings. Timeouts are applied per-request by the adapter."""
    headers: dict[str, str] = {}
    if settings.fetch_user_agent:
        headers["User-Agent"] = settings.fetch_user_agent
    async_client = httpx.AsyncClient(headers=headers, transport=transport)
    return HttpxHttpClient(async_client)
