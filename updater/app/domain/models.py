"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field

from updater.app.domain.errors import FetchError

MetaKeyValues = dict[str, str]


@dataclass(frozen=True)
class UpdatePayload:
    """New values for one package section, produced by a successful fetch."""

    package: str
    values: MetaKeyValues


@dataclass(frozen=True)
class PackageOutcome:
    """Result of fetching one package: merged values, or the first error."""

    package: str
    values: MetaKeyValues = field(default_factory=dict)
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> UpdatePayload:
        return UpdatePayload(package=self.package, values=dict(self.values))


@dataclass(frozen=True)
class RunResult:
    """Summary of a completed update run."""

    status: str
    packages: tuple[str, ...]
    changed: tuple[str, ...] = ()
