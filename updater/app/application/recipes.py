"""Fetch recipes: which upstream lookups produce which keys for each package.

A recipe is called with the package's metadata view and the source fetcher.
It returns either one mapping of new values, or a list of awaitables that
each resolve to a mapping (independent sub-fetches run concurrently). Async
recipes are awaited first, so an async recipe may also return such a list.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, Union

from updater.app.domain.metadata_store import PackageMetadata
from updater.app.domain.models import MetaKeyValues
from updater.app.domain.sources import SourceFetcher

RecipeResult = Union[MetaKeyValues, Sequence[Awaitable[MetaKeyValues]]]
FetchRecipe = Callable[
    [PackageMetadata, SourceFetcher],
    Union[RecipeResult, Awaitable[RecipeResult]],
]


class RecipeRegistry:
    """Explicit package name -> fetch recipe table."""

    def __init__(self) -> None:
        self._recipes: dict[str, FetchRecipe] = {}

    def add(self, name: str, recipe: FetchRecipe) -> None:
        if name in self._recipes:
            raise ValueError(f"recipe already registered for {name!r}")
        self._recipes[name] = recipe

    def register(self, name: str) -> Callable[[FetchRecipe], FetchRecipe]:
        def decorator(recipe: FetchRecipe) -> FetchRecipe:
            self.add(name, recipe)
            return recipe

        return decorator

    def resolve(self, name: str) -> FetchRecipe | None:
        return self._recipes.get(name)


RECIPES = RecipeRegistry()


def resolve(name: str) -> FetchRecipe | None:
    """Recipe for ``name`` in the default registry, or None if unknown."""
    return RECIPES.resolve(name)


@dataclass(frozen=True)
class ReleaseAsset:
    """A GitHub release whose tag gives the version and whose asset gets hashed.

    ``asset`` may reference ``{version}`` and ``{tag}``.
    """

    asset: str
    tag_prefix: str = "v"
    version_key: str = "VERSION"
    sha_key: str = "SHA"

    def version_of(self, tag: str) -> str:
        if self.tag_prefix and tag.startswith(self.tag_prefix):
            return tag[len(self.tag_prefix) :]
        return tag


async def fetch_release(
    meta: PackageMetadata,
    sources: SourceFetcher,
    release: ReleaseAsset,
) -> MetaKeyValues:
    repo = meta.repo()
    tag = await sources.github_latest_release(repo)
    version = release.version_of(tag)
    url = sources.github_asset_url(repo, tag, release.asset.format(version=version, tag=tag))
    return {
        release.version_key: version,
        release.sha_key: await sources.sha256(url),
    }


async def fetch_crate(sources: SourceFetcher, crate: str, key: str = "VERSION") -> MetaKeyValues:
    return {key: await sources.crates_latest_version(crate)}


async def fetch_arch(sources: SourceFetcher, name: str, key: str = "VERSION") -> MetaKeyValues:
    return {key: await sources.arch_package_version(name)}


_RELEASES: dict[str, ReleaseAsset] = {
    "cmake": ReleaseAsset("cmake-{version}-windows-x86_64.zip"),
    "ninja": ReleaseAsset("ninja-win.zip"),
    "volta": ReleaseAsset("volta-{version}-windows.zip"),
    "tree_sitter": ReleaseAsset("tree-sitter-windows-x64.gz"),
    "nvim": ReleaseAsset("nvim-win64.zip"),
    "fzf": ReleaseAsset("fzf-{version}-windows_amd64.zip"),
    "jq": ReleaseAsset("jq-windows-amd64.exe", tag_prefix="jq-"),
    "task": ReleaseAsset("task_windows_amd64.zip"),
    "clang": ReleaseAsset(
        "clang+llvm-{version}-x86_64-pc-windows-msvc.tar.xz",
        tag_prefix="llvmorg-",
        version_key="LLVM_VERSION",
    ),
    "llvm_mingw": ReleaseAsset(
        "llvm-mingw-{tag}-ucrt-x86_64.zip",
        tag_prefix="",
        version_key="TAG",
    ),
}

_CRATES: dict[str, str] = {
    "cargo_binstall": "cargo-binstall",
    "bat": "bat",
    "dust": "du-dust",
    "fd": "fd-find",
    "rg": "ripgrep",
    "websocat": "websocat",
    "zoxide": "zoxide",
}

_ARCH: dict[str, str] = {
    "_7z": "7zip",
    "git": "git",
    "hyprland": "hyprland",
}


def _release_recipe(release: ReleaseAsset) -> FetchRecipe:
    def recipe(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
        return [fetch_release(meta, sources, release)]

    return recipe


def _crate_recipe(crate: str) -> FetchRecipe:
    def recipe(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
        return [fetch_crate(sources, crate)]

    return recipe


def _arch_recipe(name: str) -> FetchRecipe:
    def recipe(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
        return [fetch_arch(sources, name)]

    return recipe


for _name, _release in _RELEASES.items():
    RECIPES.add(_name, _release_recipe(_release))
for _name, _crate in _CRATES.items():
    RECIPES.add(_name, _crate_recipe(_crate))
for _name, _pkg in _ARCH.items():
    RECIPES.add(_name, _arch_recipe(_pkg))


@RECIPES.register("hack_font")
def _hack_font(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
    return [
        fetch_release(meta, sources, ReleaseAsset("Hack.zip")),
        fetch_arch(sources, "ttf-hack-nerd", key="VERSION_PACMAN"),
    ]


_COREUTILS_ARCH = ("bash", "zip", "unzip", "tar", "which")


async def _aur_version(sources: SourceFetcher, name: str, key: str) -> MetaKeyValues:
    return {key: await sources.aur_package_version(name)}


@RECIPES.register("coreutils")
def _coreutils(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
    return [
        *(fetch_arch(sources, name, key=f"{name}.VERSION") for name in _COREUTILS_ARCH),
        _aur_version(sources, "yay-bin", "yay.VERSION"),
        fetch_crate(sources, "coreutils", key="uutils.VERSION"),
    ]


_SHELLUTILS_CRATES = ("viopen", "n")


@RECIPES.register("shellutils")
async def _shellutils(meta: PackageMetadata, sources: SourceFetcher) -> RecipeResult:
    repo = meta.repo()
    commit = await sources.github_latest_commit(repo, "main")

    async def commit_values() -> MetaKeyValues:
        return {"COMMIT": commit}

    async def crate_version(crate: str) -> MetaKeyValues:
        version = await sources.cargo_manifest_version(repo, commit, f"{crate}/Cargo.toml")
        return {f"{crate}.VERSION": version}

    return [commit_values(), *(crate_version(crate) for crate in _SHELLUTILS_CRATES)]
