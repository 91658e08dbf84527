"""Per-directory configuration values.

A :class:`DirConfig` is computed for every directory by deriving it from the
parent directory's value and applying local directives. Both it and the
language section :class:`GoConfig` are frozen; every container field holds an
immutable type, so a derived child never aliases state with its parent.
"""

from __future__ import annotations

import dataclasses
import enum
import fnmatch
import posixpath
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

DEFAULT_BUILD_FILE_NAMES: tuple[str, ...] = ("BUILD.yml",)
DEFAULT_GO_PROTO_COMPILERS: tuple[str, ...] = ("@io_bazel_rules_go//proto:go_proto",)
DEFAULT_GO_GRPC_COMPILERS: tuple[str, ...] = ("@io_bazel_rules_go//proto:go_grpc",)
ALWAYS_ON_TAGS: frozenset[str] = frozenset({"gc"})
MODULE_FILE_NAME = "go.mod"
VENDOR_DIR_NAME = "vendor"


class DependencyMode(enum.Enum):
    """How imports outside the current prefix are resolved."""

    EXTERNAL = "external"
    VENDORED = "vendored"

    @classmethod
    def parse(cls, value: str) -> DependencyMode:
        for mode in cls:
            if mode.value == value:
                return mode
        msg = f"unrecognized dependency mode: {value!r}"
        raise ValueError(msg)


class NamingConvention(enum.Enum):
    """How generated targets are named.

    ``go_default_library`` uses fixed names; ``import`` derives names from the
    last import path component; ``import_alias`` does the same and adds an
    ``alias`` carrying the legacy library name.
    """

    GO_DEFAULT_LIBRARY = "go_default_library"
    IMPORT = "import"
    IMPORT_ALIAS = "import_alias"

    @classmethod
    def parse(cls, value: str) -> NamingConvention:
        for nc in cls:
            if nc.value == value:
                return nc
        msg = f"unknown naming convention {value!r}"
        raise ValueError(msg)


@dataclass(frozen=True)
class Repository:
    """An external dependency declared for the repository."""

    name: str
    importpath: str
    build_naming_convention: str = ""


@dataclass(frozen=True)
class ModuleRepo:
    """A sibling module whose path is nested under the current prefix."""

    repo_name: str
    module_path: str


def _empty_mapping() -> Mapping[str, NamingConvention]:
    return MappingProxyType({})


@dataclass(frozen=True)
class GoConfig:
    """Go generation settings for one directory."""

    prefix: str = ""
    prefix_rel: str = ""
    prefix_set: bool = False
    import_map_prefix: str = ""
    import_map_prefix_rel: str = ""
    build_tags: frozenset[str] = ALWAYS_ON_TAGS
    dep_mode: DependencyMode = DependencyMode.EXTERNAL
    naming_convention: NamingConvention = NamingConvention.GO_DEFAULT_LIBRARY
    generate_proto: bool = True
    proto_compilers: tuple[str, ...] = DEFAULT_GO_PROTO_COMPILERS
    proto_compilers_set: bool = False
    grpc_compilers: tuple[str, ...] = DEFAULT_GO_GRPC_COMPILERS
    grpc_compilers_set: bool = False
    repository_mode: bool = False
    module_mode: bool = False
    visibility: tuple[str, ...] = ()
    submodules: tuple[ModuleRepo, ...] = ()
    repo_naming_convention: Mapping[str, NamingConvention] = field(
        default_factory=_empty_mapping
    )

    def derive(self, **changes: Any) -> GoConfig:
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class DirConfig:
    """Effective configuration of one directory."""

    repo_root: Path
    rel: str = ""
    build_file_names: tuple[str, ...] = DEFAULT_BUILD_FILE_NAMES
    excludes: tuple[str, ...] = ()
    repositories: tuple[Repository, ...] = ()
    go: GoConfig = field(default_factory=GoConfig)

    def derive(self, **changes: Any) -> DirConfig:
        """Return a child value with *changes* applied; ``self`` is untouched."""
        return dataclasses.replace(self, **changes)

    @property
    def path(self) -> Path:
        return self.repo_root / self.rel if self.rel else self.repo_root

    def is_excluded(self, rel: str) -> bool:
        """True when repo-relative *rel* matches an ``exclude`` pattern."""
        return any(fnmatch.fnmatchcase(rel, pattern) for pattern in self.excludes)


def join_rel(base: str, name: str) -> str:
    """Join slash-separated relative paths, treating ``""`` as the root."""
    if not base:
        return name
    if not name:
        return base
    return posixpath.join(base, name)


def _trim_rel(rel: str, base: str) -> str:
    if not base:
        return rel
    if rel == base:
        return ""
    if rel.startswith(base + "/"):
        return rel[len(base) + 1 :]
    return rel


def infer_import_path(go: GoConfig, rel: str) -> str:
    """Import path of the package in *rel*, derived from the live prefix."""
    if rel == go.prefix_rel:
        return go.prefix
    return join_rel(go.prefix, _trim_rel(rel, go.prefix_rel))


def infer_import_map(go: GoConfig, rel: str) -> str:
    """Import map of the package in *rel*; empty without an importmap prefix."""
    if not go.import_map_prefix:
        return ""
    return join_rel(go.import_map_prefix, _trim_rel(rel, go.import_map_prefix_rel))
