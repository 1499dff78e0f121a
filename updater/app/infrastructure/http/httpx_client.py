"""httpx implementation of the AbstractHttpClient port."""
from __future__ import annotations

import hashlib
from contextlib import contextmanager
from typing import Any, Iterator

import httpx

from updater.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)


def _httpx_timeout(timeout: RequestTimeout) -> httpx.Timeout:
    return httpx.Timeout(
        connect=timeout.connect_seconds,
        read=timeout.read_seconds,
        write=timeout.read_seconds,
        pool=timeout.connect_seconds,
    )


@contextmanager
def _translate_errors(url: str) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        raise HttpClientTimeoutError(f"timeout while fetching {url}") from exc
    except httpx.HTTPStatusError as exc:
        raise HttpClientError(
            f"http status {exc.response.status_code} for {exc.request.url}"
        ) from exc
    except httpx.HTTPError as exc:
        raise HttpClientError(f"http fetch failed for {url}: {exc}") from exc


class _HttpxResponseAdapter:
    """Read-only HttpResponse view over a fully read httpx.Response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def url(self) -> str:
        return str(self._response.url)

    def json(self) -> Any:
        try:
            return self._response.json()
        except ValueError as exc:
            raise HttpClientError(f"invalid json from {self._response.url}") from exc

    def raise_for_status(self) -> None:
        with _translate_errors(self.url):
            self._response.raise_for_status()


class HttpxHttpClient(AbstractHttpClient):
    """AbstractHttpClient over one shared httpx.AsyncClient (connection pool)."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        follow_redirects: bool = True,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> HttpResponse:
        with _translate_errors(url):
            response = await self._client.get(
                url,
                timeout=_httpx_timeout(timeout),
                follow_redirects=follow_redirects,
                headers=headers or {},
                params=params,
            )
        return _HttpxResponseAdapter(response)

    async def download_digest(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        algorithm: str = "sha256",
        headers: dict[str, str] | None = None,
    ) -> str:
        digest = hashlib.new(algorithm)
        with _translate_errors(url):
            async with self._client.stream(
                "GET",
                url,
                timeout=_httpx_timeout(timeout),
                follow_redirects=True,
                headers=headers or {},
            ) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    digest.update(chunk)
        return digest.hexdigest()

    async def close(self) -> None:
        await self._client.aclose()
