"""Section-based metadata file: load, look up, rewrite changed keys, save.

The file is a flat subset of TOML::

    [package]
    REPO = "owner/name"
    # comments and blank lines are kept verbatim
    VERSION = '1.2.3'

Every line between two headers belongs to the preceding section and is
written back exactly as read, unless ``update`` rewrote it in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from loguru import logger

from updater.app.constants import REPO_KEY
from updater.app.core import SERVICE_NAME
from updater.app.domain import toml_string
from updater.app.domain.errors import NotFoundError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass
class MetadataSection:
    """One ``[name]`` block and the raw lines that follow it."""

    name: str
    storage: list[str] = field(default_factory=list)

    def find(self, key: str) -> tuple[int, str] | None:
        """Return ``(line index, raw value)`` of the line declaring ``key``."""
        for index, line in enumerate(self.storage):
            entry = split_entry(line)
            if entry is not None and entry[0] == key:
                return index, entry[1]
        return None


def split_entry(line: str) -> tuple[str, str] | None:
    """Split ``key = value`` at the first ``=`` outside a quoted key segment.

    Returns the trimmed key and raw value, or None for blank lines, comments
    and lines without an assignment.
    """
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    quote: str | None = None
    for index, ch in enumerate(text):
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "=":
            key = text[:index].strip()
            if not key:
                return None
            return key, text[index + 1 :].strip()
    return None


def _parse_header(line: str) -> str | None:
    text = line.strip()
    if len(text) >= 2 and text.startswith("[") and text.endswith("]"):
        return text[1:-1]
    return None


def parse_sections(text: str) -> tuple[MetadataSection, ...]:
    """Fold document text into sections in document order."""
    sections: list[MetadataSection] = []
    current: MetadataSection | None = None
    dropped = 0
    for line in text.split("\n"):
        line = line.rstrip()
        name = _parse_header(line)
        if name is not None:
            current = MetadataSection(name)
            sections.append(current)
        elif current is not None:
            current.storage.append(line)
        elif line:
            dropped += 1
    if dropped:
        logger.warning("discarding {} line(s) before the first section header", dropped)
    return tuple(sections)


class PackageMetadata:
    """Read-only view of one package section, handed to fetch recipes."""

    def __init__(self, store: "MetadataStore", name: str) -> None:
        self._store = store
        self.name = name

    def get(self, key: str) -> str:
        return self._store.get(self.name, key)

    def repo(self) -> str:
        return self.get(REPO_KEY)

    def __repr__(self) -> str:
        return f"PackageMetadata({self.name!r})"


class MetadataStore:
    """In-memory copy of the metadata file.

    ``load`` replaces the whole section tuple at once; afterwards the only
    mutation is ``update`` rewriting single lines in place.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._sections: tuple[MetadataSection, ...] = ()

    @property
    def path(self) -> Path | None:
        return self._path

    @classmethod
    def from_text(cls, text: str, path: Path | str | None = None) -> "MetadataStore":
        store = cls(path)
        store._sections = parse_sections(text)
        return store

    def load(self, path: Path | str | None = None) -> None:
        if path is not None:
            self._path = Path(path)
        if self._path is None:
            raise NotFoundError("no metadata path configured")
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(f"metadata file not found: {self._path}") from exc
        self._sections = parse_sections(text)
        _log("metadata_loaded", path=str(self._path), packages=len(self._sections))

    def package_names(self) -> list[str]:
        return [section.name for section in self._sections]

    def package(self, name: str) -> PackageMetadata:
        self._section(name)
        return PackageMetadata(self, name)

    def get(self, package: str, key: str) -> str:
        section = self._section(package)
        found = section.find(key)
        if found is None:
            raise NotFoundError(f"key {key!r} not found in package {package!r}")
        return toml_string.decode(found[1])

    def update(self, package: str, changes: Mapping[str, str]) -> bool:
        """Rewrite the lines of ``changes`` whose value differs.

        Every key must already exist in the section; all of them are checked
        and encoded before the first line is touched. Returns True if at
        least one value changed.
        """
        section = self._section(package)
        rewrites: list[tuple[int, str, str, str]] = []
        for key, value in changes.items():
            found = section.find(key)
            if found is None:
                raise NotFoundError(f"key {key!r} not found in package {package!r}")
            index, old_raw = found
            if toml_string.decode(old_raw) == value:
                continue
            rewrites.append((index, key, old_raw, toml_string.encode(value)))

        for index, key, old_raw, new_raw in rewrites:
            section.storage[index] = f"{key} = {new_raw}"
            logger.info("{}.{}: {} -> {}", package, key, old_raw, new_raw)
        return bool(rewrites)

    def to_text(self) -> str:
        lines: list[str] = []
        for section in self._sections:
            lines.append(f"[{section.name}]")
            lines.extend(section.storage)
        return "\n".join(lines)

    def save(self, path: Path | str | None = None) -> None:
        target = Path(path) if path is not None else self._path
        if target is None:
            raise NotFoundError("no metadata path configured")
        target.write_text(self.to_text(), encoding="utf-8")
        _log("metadata_saved", path=str(target))

    def _section(self, name: str) -> MetadataSection:
        for section in self._sections:
            if section.name == name:
                return section
        raise NotFoundError(f"package {name!r} not found in metadata")
