"""Root settings: repository discovery, ``.buildweave.yml`` and command-line defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from buildweave.config.directives import DirectiveError, check_prefix, parse_build_tags
from buildweave.config.node import (
    ALWAYS_ON_TAGS,
    DEFAULT_BUILD_FILE_NAMES,
    DependencyMode,
    DirConfig,
    GoConfig,
    ModuleRepo,
    NamingConvention,
    Repository,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".buildweave.yml"
REPO_ROOT_MARKERS: tuple[str, ...] = (
    "WORKSPACE",
    "WORKSPACE.bazel",
    "MODULE.bazel",
    CONFIG_FILE_NAME,
)


class ConfigError(Exception):
    """Raised for configuration problems that abort the whole run."""


@dataclass(frozen=True)
class Settings:
    """Root defaults, before any directive is applied."""

    repo_root: Path
    go_prefix: str | None = None
    external: str = DependencyMode.EXTERNAL.value
    build_tags: str = ""
    go_repository_mode: bool = False
    go_repository_module_mode: bool = False
    go_naming_convention: str | None = None
    go_proto_compilers: tuple[str, ...] = ()
    go_grpc_compilers: tuple[str, ...] = ()
    build_file_names: tuple[str, ...] = DEFAULT_BUILD_FILE_NAMES
    excludes: tuple[str, ...] = ()
    repositories: tuple[Repository, ...] = ()


# ---------------------------------------------------------------------------
# Repository root
# ---------------------------------------------------------------------------


def find_repo_root(start: Path) -> Path:
    """Walk upward from *start* to the first directory holding a root marker."""
    start = start.resolve()
    for candidate in (start, *start.parents):
        if any((candidate / marker).is_file() for marker in REPO_ROOT_MARKERS):
            return candidate
    markers = ", ".join(REPO_ROOT_MARKERS)
    msg = f"cannot find repository root above {start} (looked for {markers})"
    raise ConfigError(msg)


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


def _as_str_tuple(value: object, key: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    msg = f"{CONFIG_FILE_NAME}: '{key}' must be a string or a list of strings"
    raise ConfigError(msg)


def _parse_repositories(value: object) -> tuple[Repository, ...]:
    if not isinstance(value, list):
        msg = f"{CONFIG_FILE_NAME}: 'repositories' must be a list"
        raise ConfigError(msg)
    repos: list[Repository] = []
    for i, item in enumerate(value):
        if not isinstance(item, dict) or not item.get("name") or not item.get("importpath"):
            msg = f"{CONFIG_FILE_NAME}: repositories[{i}] needs 'name' and 'importpath'"
            raise ConfigError(msg)
        repos.append(
            Repository(
                name=str(item["name"]),
                importpath=str(item["importpath"]),
                build_naming_convention=str(item.get("build_naming_convention") or ""),
            )
        )
    return tuple(repos)


def read_config_file(repo_root: Path) -> dict[str, Any]:
    """Read ``.buildweave.yml`` into ``Settings`` keyword arguments.

    A missing file yields an empty dict; an unreadable or malformed one is
    a :class:`ConfigError`.
    """
    path = repo_root / CONFIG_FILE_NAME
    if not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path}: top level must be a mapping"
        raise ConfigError(msg)

    known = {f.name for f in fields(Settings)} - {"repo_root"}
    unknown = set(data) - known - {"exclude"}
    if unknown:
        logger.warning("%s: ignoring unknown keys %s", path, sorted(unknown))

    kwargs: dict[str, Any] = {}
    for key in ("go_prefix", "external", "go_naming_convention"):
        if data.get(key) is not None:
            kwargs[key] = str(data[key])
    for key in ("go_repository_mode", "go_repository_module_mode"):
        if key in data:
            kwargs[key] = bool(data[key])
    if data.get("build_tags") is not None:
        kwargs["build_tags"] = ",".join(_as_str_tuple(data["build_tags"], "build_tags"))
    for key in ("go_proto_compilers", "go_grpc_compilers", "build_file_names"):
        if data.get(key) is not None:
            kwargs[key] = _as_str_tuple(data[key], key)
    excludes = data.get("excludes", data.get("exclude"))
    if excludes is not None:
        kwargs["excludes"] = _as_str_tuple(excludes, "excludes")
    if data.get("repositories") is not None:
        kwargs["repositories"] = _parse_repositories(data["repositories"])
    return kwargs


def load_settings(
    repo_root: Path | None = None,
    *,
    cwd: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build :class:`Settings` from ``.buildweave.yml`` plus *overrides*.

    Parameters
    ----------
    repo_root:
        Explicit repository root. When *None* it is discovered upward from
        *cwd* (default: the current directory).
    overrides:
        Command-line values; ``None`` and empty tuples mean "not given".

    Raises
    ------
    ConfigError
        When no repository root can be found or the config file is invalid.
    """
    root = repo_root.resolve() if repo_root is not None else find_repo_root(cwd or Path.cwd())
    if not root.is_dir():
        msg = f"repository root {root} is not a directory"
        raise ConfigError(msg)

    kwargs = read_config_file(root)
    for key, value in overrides.items():
        if value is None or value == ():
            continue
        kwargs[key] = value
    try:
        return Settings(repo_root=root, **kwargs)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Root configuration
# ---------------------------------------------------------------------------


def discover_submodules(prefix: str, repositories: Iterable[Repository]) -> tuple[ModuleRepo, ...]:
    """Declared repositories whose module path lies strictly under *prefix*."""
    return tuple(
        ModuleRepo(repo_name=r.name, module_path=r.importpath)
        for r in repositories
        if r.importpath.startswith(prefix + "/")
    )


def repo_naming_conventions(
    repositories: Iterable[Repository],
) -> Mapping[str, NamingConvention]:
    """Naming convention per declared repository; invalid ones are skipped."""
    result: dict[str, NamingConvention] = {}
    for repo in repositories:
        if not repo.build_naming_convention:
            result[repo.name] = NamingConvention.GO_DEFAULT_LIBRARY
            continue
        try:
            result[repo.name] = NamingConvention.parse(repo.build_naming_convention)
        except ValueError as exc:
            logger.warning("in repository named %r: %s", repo.name, exc)
    return MappingProxyType(result)


def root_config(settings: Settings) -> DirConfig:
    """Turn *settings* into the configuration the walk starts from.

    Raises
    ------
    ConfigError
        When a command-line value is invalid.
    """
    try:
        tags = parse_build_tags(settings.build_tags) | ALWAYS_ON_TAGS
        dep_mode = DependencyMode.parse(settings.external)
        naming = (
            NamingConvention.parse(settings.go_naming_convention)
            if settings.go_naming_convention
            else NamingConvention.GO_DEFAULT_LIBRARY
        )
        prefix = check_prefix(settings.go_prefix) if settings.go_prefix is not None else ""
    except (DirectiveError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc

    go = GoConfig(
        prefix=prefix,
        prefix_set=settings.go_prefix is not None,
        build_tags=tags,
        dep_mode=dep_mode,
        naming_convention=naming,
        repository_mode=settings.go_repository_mode,
        module_mode=settings.go_repository_module_mode,
    )
    if settings.go_proto_compilers:
        go = go.derive(proto_compilers=settings.go_proto_compilers, proto_compilers_set=True)
    if settings.go_grpc_compilers:
        go = go.derive(grpc_compilers=settings.go_grpc_compilers, grpc_compilers_set=True)

    return DirConfig(
        repo_root=settings.repo_root,
        build_file_names=settings.build_file_names,
        excludes=settings.excludes,
        repositories=settings.repositories,
        go=go,
    )
