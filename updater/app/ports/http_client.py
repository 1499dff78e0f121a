"""HTTP port used by the source fetchers.

SourceFetcher talks to GitHub, crates.io, Arch and the AUR only through this
contract; the httpx adapter in infrastructure implements it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


class HttpClientError(Exception):
    """Non-2xx status, transport failure or undecodable body."""


class HttpClientTimeoutError(HttpClientError):
    """Connect or read deadline exceeded."""


@dataclass(frozen=True)
class RequestTimeout:
    """Per-request deadlines, seconds."""

    connect_seconds: float
    read_seconds: float


@runtime_checkable
class HttpResponse(Protocol):
    """Fully read response body plus the bits the fetchers log."""

    @property
    def text(self) -> str: ...

    @property
    def status_code(self) -> int: ...

    @property
    def url(self) -> str: ...

    def json(self) -> Any: ...

    def raise_for_status(self) -> None: ...


@runtime_checkable
class AbstractHttpClient(Protocol):
    """Shared client for one update run; closed by the composition root."""

    async def get(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        follow_redirects: bool = True,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> HttpResponse:
        """GET url; failures surface as HttpClientError (HttpClientTimeoutError on deadline)."""
        ...

    async def download_digest(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        algorithm: str = "sha256",
        headers: dict[str, str] | None = None,
    ) -> str:
        """Stream the body at url through a hashlib digest; return its lowercase hex."""
        ...

    async def close(self) -> None: ...
