"""Source fetchers: latest versions and artifact digests from upstream services.

Uses the HTTP port (AbstractHttpClient); the client is built in the
composition root. Each lookup is stateless: given its parameters it returns a
string or raises SourceError. Transport failures are mapped to domain
exceptions the same way for every source.
"""
from __future__ import annotations

import tomllib
from contextlib import contextmanager
from typing import Any, Iterator

from loguru import logger

from updater.app.domain.errors import MetadataUpdateError
from updater.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)


class SourceError(MetadataUpdateError):
    """Base error for upstream lookup failures."""


class SourceTimeoutError(SourceError):
    """Raised when an upstream request times out."""


ARCH_STABLE_REPOS = ("core", "extra", "multilib")


@contextmanager
def _source_errors() -> Iterator[None]:
    try:
        yield
    except HttpClientTimeoutError as exc:
        raise SourceTimeoutError(str(exc)) from exc
    except HttpClientError as exc:
        raise SourceError(str(exc)) from exc


class SourceFetcher:
    """Queries GitHub, crates.io, Arch Linux and the AUR through an AbstractHttpClient."""

    def __init__(
        self,
        client: AbstractHttpClient,
        connect_timeout_seconds: float,
        read_timeout_seconds: float,
        *,
        github_token: str = "",
        github_api_url: str = "https://api.github.com",
        github_download_url: str = "https://github.com",
        raw_content_url: str = "https://raw.githubusercontent.com",
        crates_api_url: str = "https://crates.io/api/v1",
        arch_api_url: str = "https://archlinux.org/packages/search/json/",
        aur_api_url: str = "https://aur.archlinux.org/rpc/v5",
    ) -> None:
        self._client = client
        self._timeout = RequestTimeout(
            connect_seconds=connect_timeout_seconds,
            read_seconds=read_timeout_seconds,
        )
        self._github_headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if github_token:
            self._github_headers["Authorization"] = f"Bearer {github_token}"
        self._github_api_url = github_api_url.rstrip("/")
        self._github_download_url = github_download_url.rstrip("/")
        self._raw_content_url = raw_content_url.rstrip("/")
        self._crates_api_url = crates_api_url.rstrip("/")
        self._arch_api_url = arch_api_url
        self._aur_api_url = aur_api_url.rstrip("/")

    async def _get(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> HttpResponse:
        with _source_errors():
            response = await self._client.get(
                url,
                timeout=self._timeout,
                follow_redirects=True,
                headers=headers,
                params=params,
            )
            response.raise_for_status()
        logger.debug("GET {} -> {}", response.url, response.status_code)
        return response

    async def _get_json(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        response = await self._get(url, headers=headers, params=params)
        with _source_errors():
            return response.json()

    # -- GitHub ---------------------------------------------------------

    async def github_latest_release(self, repo: str) -> str:
        """Tag name of the latest non-prerelease release of ``owner/name``."""
        data = await self._get_json(
            f"{self._github_api_url}/repos/{github_slug(repo)}/releases/latest",
            headers=self._github_headers,
        )
        return _require_str(data, "tag_name", f"latest release of {repo}")

    async def github_latest_commit(self, repo: str, branch: str) -> str:
        data = await self._get_json(
            f"{self._github_api_url}/repos/{github_slug(repo)}/commits/{branch}",
            headers=self._github_headers,
        )
        return _require_str(data, "sha", f"head of {repo}@{branch}")

    def github_asset_url(self, repo: str, tag: str, asset: str) -> str:
        return f"{self._github_download_url}/{github_slug(repo)}/releases/download/{tag}/{asset}"

    async def cargo_manifest_version(
        self,
        repo: str,
        branch: str,
        path: str = "Cargo.toml",
    ) -> str:
        """Version declared by a Cargo manifest on a branch of ``repo``."""
        response = await self._get(f"{self._raw_content_url}/{github_slug(repo)}/{branch}/{path}")
        try:
            manifest = tomllib.loads(response.text)
        except tomllib.TOMLDecodeError as exc:
            raise SourceError(f"invalid Cargo manifest {repo}@{branch}:{path}: {exc}") from exc
        version = manifest.get("package", {}).get("version")
        if isinstance(version, dict) and version.get("workspace"):
            version = None
        if version is None:
            version = manifest.get("workspace", {}).get("package", {}).get("version")
        if not isinstance(version, str) or not version:
            raise SourceError(f"no version in Cargo manifest {repo}@{branch}:{path}")
        return version

    # -- crates.io ------------------------------------------------------

    async def crates_latest_version(self, crate: str) -> str:
        data = await self._get_json(f"{self._crates_api_url}/crates/{crate}")
        info = data.get("crate") if isinstance(data, dict) else None
        if not isinstance(info, dict):
            raise SourceError(f"unexpected crates.io response for {crate}")
        version = info.get("max_stable_version") or info.get("newest_version")
        if not isinstance(version, str) or not version:
            raise SourceError(f"no published version for crate {crate}")
        return version

    # -- Arch Linux -----------------------------------------------------

    async def arch_package_version(self, name: str) -> str:
        """``pkgver`` of an official Arch package (without ``pkgrel``).

        Searched across every repo; testing and staging repos are ignored.
        """
        data = await self._get_json(self._arch_api_url, params={"name": name})
        results = data.get("results") if isinstance(data, dict) else None
        for result in results or []:
            if result.get("pkgname") == name and result.get("repo") in ARCH_STABLE_REPOS:
                return _require_str(result, "pkgver", f"arch package {name}")
        raise SourceError(f"arch package {name} not found")

    async def aur_package_version(self, name: str) -> str:
        data = await self._get_json(
            f"{self._aur_api_url}/info",
            params={"arg[]": name},
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise SourceError(f"aur package {name} not found")
        version = _require_str(results[0], "Version", f"aur package {name}")
        # strip pkgrel
        return version.rsplit("-", 1)[0]

    # -- artifacts ------------------------------------------------------

    async def sha256(self, url: str) -> str:
        """Lowercase hex SHA-256 of the body served at ``url``, streamed."""
        with _source_errors():
            digest = await self._client.download_digest(url, timeout=self._timeout)
        logger.debug("sha256 {} = {}", url, digest)
        return digest


def _require_str(data: Any, field: str, what: str) -> str:
    value = data.get(field) if isinstance(data, dict) else None
    if not isinstance(value, str) or not value:
        raise SourceError(f"missing {field!r} in {what}")
    return value


def github_slug(repo: str) -> str:
    """``owner/name`` from either a slug or a ``https://github.com/owner/name`` URL."""
    slug = repo.strip().rstrip("/")
    for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
        if slug.startswith(prefix):
            slug = slug[len(prefix) :]
            break
    if slug.endswith(".git"):
        slug = slug[: -len(".git")]
    return slug
