"""Domain errors raised while reading, fetching and rewriting registry metadata."""
from __future__ import annotations

from typing import Mapping


class MetadataUpdateError(Exception):
    """Base for all metadata updater failures."""


class NotFoundError(MetadataUpdateError):
    """Raised for a missing metadata file, package section, key, or requested package."""


class EncodingError(MetadataUpdateError):
    """Raised when a value has no representable TOML string literal form."""


class FetchError(MetadataUpdateError):
    """Raised when an external source lookup fails for a package."""

    def __init__(self, package: str, reason: str, *, sub_fetch: int | None = None) -> None:
        self.package = package
        self.reason = reason
        self.sub_fetch = sub_fetch
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.sub_fetch is None:
            return f"{self.package}: {self.reason}"
        return f"{self.package} (sub-fetch {self.sub_fetch}): {self.reason}"


class AggregateFetchError(MetadataUpdateError):
    """Raised when one or more packages failed to fetch; nothing is written."""

    def __init__(self, failures: Mapping[str, FetchError]) -> None:
        self.failures = dict(failures)
        names = ", ".join(self.failures)
        super().__init__(f"failed to fetch {len(self.failures)} package(s): {names}")
