"""Updater composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from updater.app.application.update_service import UpdateService
from updater.app.config.settings import Settings
from updater.app.core import SERVICE_NAME
from updater.app.domain.metadata_store import MetadataStore
from updater.app.domain.sources import SourceFetcher
from updater.app.infrastructure.http.factory import create_http_client
from updater.app.ports.http_client import AbstractHttpClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class UpdaterDependencies:
    """Holds wired updater dependencies and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._http_client: AbstractHttpClient | None = None
        self._store: MetadataStore | None = None
        self._update_service: UpdateService | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> MetadataStore:
        if self._store is None:
            raise RuntimeError("store is not initialized")
        return self._store

    @property
    def update_service(self) -> UpdateService:
        if self._update_service is None:
            raise RuntimeError("update_service is not initialized")
        return self._update_service

    async def connect(self) -> None:
        self._store = MetadataStore(self._settings.metadata_path)
        self._store.load()

        self._http_client = create_http_client(self._settings, transport=self._transport)
        sources = SourceFetcher(
            self._http_client,
            connect_timeout_seconds=self._settings.fetch_connect_timeout_seconds,
            read_timeout_seconds=self._settings.fetch_read_timeout_seconds,
            github_token=self._settings.github_token,
            github_api_url=self._settings.github_api_url,
            github_download_url=self._settings.github_download_url,
            raw_content_url=self._settings.raw_content_url,
            crates_api_url=self._settings.crates_api_url,
            arch_api_url=self._settings.arch_api_url,
            aur_api_url=self._settings.aur_api_url,
        )
        self._update_service = UpdateService(self._store, sources)
        _log("dependencies_ready", metadata_path=self._settings.metadata_path)

    async def close(self) -> None:
        if self._http_client is not None:
            try:
                await self._http_client.close()
            except Exception as exc:
                logger.warning("http client close failed: {}", exc)
            self._http_client = None

        self._store = None
        self._update_service = None


def create_updater_dependencies(settings: Settings | None = None) -> UpdaterDependencies:
    return UpdaterDependencies(settings=settings or Settings())
