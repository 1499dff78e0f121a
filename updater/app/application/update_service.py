from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Mapping, Sequence

from loguru import logger

from updater.app.constants import RUN_STATUS
from updater.app.core import SERVICE_NAME
from updater.app.domain.errors import AggregateFetchError, FetchError, NotFoundError
from updater.app.domain.metadata_store import MetadataStore
from updater.app.domain.models import MetaKeyValues, PackageOutcome, RunResult, UpdatePayload
from updater.app.domain.sources import SourceFetcher
from updater.app.application import recipes
from updater.app.application.recipes import FetchRecipe

RecipeResolver = Callable[[str], FetchRecipe | None]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class UpdateService:
    """
    Refreshes package metadata: fetch every target package, then rewrite the store.

    All packages are fetched concurrently. A failure in any package (or in any
    sub-fetch of a package) fails the whole run before the store is touched,
    so a run either applies every fetched value or none. The file is written
    only when at least one value actually changed.
    """

    def __init__(
        self,
        store: MetadataStore,
        sources: SourceFetcher,
        *,
        resolve: RecipeResolver = recipes.resolve,
    ) -> None:
        self._store = store
        self._sources = sources
        self._resolve = resolve

    async def run(self, package: str | None = None) -> RunResult:
        targets = self._select_targets(package)
        _log("update_started", packages=len(targets))

        outcomes = await asyncio.gather(*(self._fetch_package(name) for name in targets))
        payloads = self._aggregate(outcomes)

        changed: list[str] = []
        for payload in payloads:
            if self._store.update(payload.package, payload.values):
                changed.append(payload.package)

        if not changed:
            _log("update_finished", status=RUN_STATUS.UP_TO_DATE)
            return RunResult(status=RUN_STATUS.UP_TO_DATE, packages=tuple(targets))

        self._store.save()
        _log("update_finished", status=RUN_STATUS.UPDATED, changed=changed)
        return RunResult(
            status=RUN_STATUS.UPDATED,
            packages=tuple(targets),
            changed=tuple(changed),
        )

    def _select_targets(self, package: str | None) -> list[str]:
        names = self._store.package_names()
        if package is None:
            return names
        if package not in names:
            raise NotFoundError(f"package {package!r} not found in metadata")
        return [package]

    def _aggregate(self, outcomes: Sequence[PackageOutcome]) -> list[UpdatePayload]:
        failures = {outcome.package: outcome.error for outcome in outcomes if outcome.error is not None}
        if failures:
            _log("update_aborted", failed=sorted(failures))
            raise AggregateFetchError(failures)
        return [outcome.to_payload() for outcome in outcomes]

    async def _fetch_package(self, package: str) -> PackageOutcome:
        recipe = self._resolve(package)
        if recipe is None:
            logger.warning("no fetch recipe for package {}, skipping", package)
            return PackageOutcome(package=package)

        try:
            result = recipe(self._store.package(package), self._sources)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            error = _as_fetch_error(package, exc)
            logger.warning("fetch failed for {}: {}", package, error.reason)
            return PackageOutcome(package=package, error=error)

        if result is None:
            result = {}
        if isinstance(result, Mapping):
            _log("package_fetched", package=package, keys=len(result))
            return PackageOutcome(package=package, values=dict(result))
        return await self._fetch_sub_fetches(package, result)

    async def _fetch_sub_fetches(
        self,
        package: str,
        sub_fetches: Sequence[Awaitable[MetaKeyValues]],
    ) -> PackageOutcome:
        merged: MetaKeyValues = {}
        errors: list[FetchError] = []

        async def collect(index: int, sub_fetch: Awaitable[MetaKeyValues]) -> None:
            try:
                values = await sub_fetch
            except Exception as exc:
                error = _as_fetch_error(package, exc, sub_fetch=index)
                logger.warning("sub-fetch {} failed for {}: {}", index, package, error.reason)
                errors.append(error)
                return
            # merged in completion order; later results win
            for key, value in values.items():
                if key in merged and merged[key] != value:
                    logger.warning(
                        "{}.{} fetched twice with different values: {} / {}",
                        package,
                        key,
                        merged[key],
                        value,
                    )
                merged[key] = value

        await asyncio.gather(*(collect(index, sub) for index, sub in enumerate(sub_fetches)))

        if errors:
            return PackageOutcome(package=package, values=merged, error=errors[0])
        _log("package_fetched", package=package, keys=len(merged))
        return PackageOutcome(package=package, values=merged)


def _as_fetch_error(package: str, exc: Exception, *, sub_fetch: int | None = None) -> FetchError:
    if isinstance(exc, FetchError):
        return exc
    return FetchError(package, str(exc) or type(exc).__name__, sub_fetch=sub_fetch)
