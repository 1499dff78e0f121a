"""Unit tests for UpdateService fan-out, failure aggregation and persistence decisions."""
from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from updater.app.application.update_service import UpdateService
from updater.app.constants import RUN_STATUS
from updater.app.domain.errors import AggregateFetchError, FetchError, NotFoundError
from updater.app.domain.metadata_store import MetadataStore
from tests.fakes import FakeSources
from tests.test_data import SAMPLE_METADATA


class CountingStore(MetadataStore):
    """MetadataStore that records save() calls."""

    def __init__(self, path: Path | None = None) -> None:
        super().__init__(path)
        self.saves = 0

    def save(self, path=None) -> None:  # noqa: ANN001
        self.saves += 1
        super().save(path)


def _store(tmp_path: Path, text: str = SAMPLE_METADATA) -> CountingStore:
    path = tmp_path / "metadata.toml"
    path.write_text(text, encoding="utf-8")
    s = CountingStore(path)
    s.load()
    return s


def _single(key: str, lookup: str):
    """Recipe returning one mapping from a single async lookup."""

    async def recipe(meta, sources):  # noqa: ANN001
        return {key: await sources.lookup(lookup)}

    return recipe


def _subfetches(*pairs: tuple[str, str]):
    """Recipe returning one independent sub-fetch per (key, lookup) pair."""

    def recipe(meta, sources):  # noqa: ANN001
        async def one(key: str, lookup: str) -> dict[str, str]:
            return {key: await sources.lookup(lookup)}

        return [one(key, lookup) for key, lookup in pairs]

    return recipe


def test_scenario_updates_changed_values_and_saves_once(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"cmake": "3.31.2", "binstall": "1.10.0", "bash": "5.2.037", "uutils": "0.0.28"})
    table = {
        "cmake": _single("VERSION", "cmake"),
        "cargo_binstall": _single("VERSION", "binstall"),
        "coreutils": _subfetches(("bash.VERSION", "bash"), ("uutils.VERSION", "uutils")),
    }
    svc = UpdateService(s, sources, resolve=table.get)  # type: ignore[arg-type]

    result = asyncio.run(svc.run())

    assert result.status == RUN_STATUS.UPDATED
    assert result.changed == ("cmake", "coreutils")
    assert s.saves == 1
    text = (tmp_path / "metadata.toml").read_text(encoding="utf-8")
    assert 'VERSION = "3.31.2"' in text
    assert 'bash.VERSION = "5.2.037"' in text
    assert 'uutils.VERSION = "0.0.28"' in text
    assert 'VERSION = "1.10.0"' in text


def test_second_run_with_same_upstream_is_up_to_date_and_writes_nothing(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"cmake": "3.31.2"})
    svc = UpdateService(s, sources, resolve={"cmake": _single("VERSION", "cmake")}.get)  # type: ignore[arg-type]

    first = asyncio.run(svc.run())
    content_after_first = (tmp_path / "metadata.toml").read_text(encoding="utf-8")
    second = asyncio.run(svc.run())

    assert first.status == RUN_STATUS.UPDATED
    assert second.status == RUN_STATUS.UP_TO_DATE
    assert second.changed == ()
    assert s.saves == 1
    assert (tmp_path / "metadata.toml").read_text(encoding="utf-8") == content_after_first


def test_explicit_package_only_fetches_that_package(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"cmake": "3.30.0", "binstall": "2.0.0"})
    table = {
        "cmake": _single("VERSION", "cmake"),
        "cargo_binstall": _single("VERSION", "binstall"),
    }
    svc = UpdateService(s, sources, resolve=table.get)  # type: ignore[arg-type]

    result = asyncio.run(svc.run("cargo_binstall"))

    assert result.packages == ("cargo_binstall",)
    assert sources.calls == ["binstall"]
    assert s.get("cargo_binstall", "VERSION") == "2.0.0"


def test_scenario_unknown_explicit_package_fails_before_fetch(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"cmake": "9"})
    svc = UpdateService(s, sources, resolve={"cmake": _single("VERSION", "cmake")}.get)  # type: ignore[arg-type]

    with pytest.raises(NotFoundError, match="package 'nope'"):
        asyncio.run(svc.run("nope"))

    assert sources.calls == []
    assert s.saves == 0


def test_partial_failure_applies_nothing(tmp_path: Path):
    """cmake succeeds, cargo_binstall fails: no package is updated, nothing is written."""
    s = _store(tmp_path)
    sources = FakeSources({"cmake": "3.31.2", "binstall": RuntimeError("crates.io down")})
    table = {
        "cmake": _single("VERSION", "cmake"),
        "cargo_binstall": _single("VERSION", "binstall"),
    }
    svc = UpdateService(s, sources, resolve=table.get)  # type: ignore[arg-type]

    with pytest.raises(AggregateFetchError) as excinfo:
        asyncio.run(svc.run())

    assert list(excinfo.value.failures) == ["cargo_binstall"]
    assert excinfo.value.failures["cargo_binstall"].reason == "crates.io down"
    assert s.get("cmake", "VERSION") == "3.30.0"
    assert s.saves == 0
    assert (tmp_path / "metadata.toml").read_text(encoding="utf-8") == SAMPLE_METADATA


def test_scenario_failed_sub_fetch_fails_package_and_run(tmp_path: Path):
    """One of two sub-fetches fails: the other still runs, but the run fails."""
    s = _store(tmp_path)
    sources = FakeSources({"bash": "5.2.037", "uutils": FetchError("coreutils", "404")})
    table = {"coreutils": _subfetches(("bash.VERSION", "bash"), ("uutils.VERSION", "uutils"))}
    svc = UpdateService(s, sources, resolve=table.get)  # type: ignore[arg-type]

    with pytest.raises(AggregateFetchError) as excinfo:
        asyncio.run(svc.run("coreutils"))

    assert sorted(sources.calls) == ["bash", "uutils"]
    assert str(excinfo.value.failures["coreutils"]) == "coreutils: 404"
    assert s.get("coreutils", "bash.VERSION") == "5.2.026"
    assert s.saves == 0


def test_sub_fetch_error_carries_index(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"bash": ValueError("bad json"), "uutils": "0.0.28"})
    table = {"coreutils": _subfetches(("bash.VERSION", "bash"), ("uutils.VERSION", "uutils"))}
    svc = UpdateService(s, sources, resolve=table.get)  # type: ignore[arg-type]

    with pytest.raises(AggregateFetchError) as excinfo:
        asyncio.run(svc.run("coreutils"))

    error = excinfo.value.failures["coreutils"]
    assert error.sub_fetch == 0
    assert str(error) == "coreutils (sub-fetch 0): bad json"


def test_unknown_recipe_contributes_nothing(tmp_path: Path, log_messages):
    s = _store(tmp_path)
    svc = UpdateService(s, FakeSources(), resolve=lambda name: None)  # type: ignore[arg-type]

    result = asyncio.run(svc.run())

    assert result.status == RUN_STATUS.UP_TO_DATE
    assert s.saves == 0
    assert "no fetch recipe for package cmake, skipping" in log_messages


def test_fetched_key_missing_from_section_fails_without_writing(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"tag": "v1"})
    svc = UpdateService(s, sources, resolve={"cmake": _single("TAG", "tag")}.get)  # type: ignore[arg-type]

    with pytest.raises(NotFoundError, match="key 'TAG'"):
        asyncio.run(svc.run("cmake"))

    assert s.saves == 0


def test_all_packages_fetch_concurrently(tmp_path: Path):
    """cmake waits for cargo_binstall to start; a sequential fan-out would time out."""
    s = _store(tmp_path)
    started = asyncio.Event()

    async def waits(meta, sources):  # noqa: ANN001
        await asyncio.wait_for(started.wait(), timeout=1.0)
        return {"VERSION": "3.31.2"}

    async def signals(meta, sources):  # noqa: ANN001
        started.set()
        return {"VERSION": "1.10.0"}

    table = {"cmake": waits, "cargo_binstall": signals}
    svc = UpdateService(s, FakeSources(), resolve=table.get)  # type: ignore[arg-type]

    result = asyncio.run(svc.run())

    assert result.changed == ("cmake",)


def test_sub_fetch_results_merge_in_completion_order(tmp_path: Path, log_messages):
    s = _store(tmp_path)

    def recipe(meta, sources):  # noqa: ANN001
        async def slow() -> dict[str, str]:
            await asyncio.sleep(0.01)
            return {"uutils.VERSION": "slow"}

        async def fast() -> dict[str, str]:
            return {"uutils.VERSION": "fast"}

        return [slow(), fast()]

    svc = UpdateService(s, FakeSources(), resolve={"coreutils": recipe}.get)  # type: ignore[arg-type]

    asyncio.run(svc.run("coreutils"))

    assert s.get("coreutils", "uutils.VERSION") == "slow"
    assert "coreutils.uutils.VERSION fetched twice with different values: fast / slow" in log_messages


def test_async_recipe_may_return_sub_fetches(tmp_path: Path):
    s = _store(tmp_path)
    sources = FakeSources({"head": "abc", "bash": "5.3"})

    async def recipe(meta, sources):  # noqa: ANN001
        head = await sources.lookup("head")

        async def bash() -> dict[str, str]:
            return {"bash.VERSION": await sources.lookup("bash")}

        async def uutils() -> dict[str, str]:
            return {"uutils.VERSION": head}

        return [bash(), uutils()]

    svc = UpdateService(s, sources, resolve={"coreutils": recipe}.get)  # type: ignore[arg-type]

    result = asyncio.run(svc.run("coreutils"))

    assert result.status == RUN_STATUS.UPDATED
    assert s.get("coreutils", "bash.VERSION") == "5.3"
    assert s.get("coreutils", "uutils.VERSION") == "abc"
