from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from updater.app.domain.metadata_store import MetadataStore
from tests.test_data import SAMPLE_METADATA


@pytest.fixture()
def metadata_file(tmp_path: Path) -> Path:
    path = tmp_path / "metadata.toml"
    path.write_text(SAMPLE_METADATA, encoding="utf-8")
    return path


@pytest.fixture()
def store(metadata_file: Path) -> MetadataStore:
    s = MetadataStore(metadata_file)
    s.load()
    return s


@pytest.fixture()
def log_messages() -> Any:
    """Collects loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
