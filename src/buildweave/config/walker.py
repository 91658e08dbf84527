"""Config tree walker: one :class:`DirConfig` per directory, parents first."""

from __future__ import annotations

import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from typing import TYPE_CHECKING

from buildweave.config.directives import DirectiveError, apply_directives, check_prefix
from buildweave.config.node import (
    MODULE_FILE_NAME,
    VENDOR_DIR_NAME,
    DirConfig,
    infer_import_path,
    join_rel,
)
from buildweave.config.settings import (
    ConfigError,
    discover_submodules,
    repo_naming_conventions,
)
from buildweave.rule.buildfile import BuildFileError, find_build_file, load_build_file

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from buildweave.rule.model import RuleFile

logger = logging.getLogger(__name__)

# Rules that declared the prefix before directives existed.
_LEGACY_PREFIX_KINDS = frozenset({"go_prefix", "gazelle"})


@dataclass(frozen=True)
class DirInfo:
    """A visited directory and everything known about it."""

    rel: str
    path: Path
    config: DirConfig
    build_file: RuleFile | None
    build_file_error: str | None
    subdirs: tuple[str, ...]
    regular_files: tuple[str, ...]


def _has_module_file(directory: Path) -> bool:
    """True when *directory* holds a module boundary file.

    Raises
    ------
    ConfigError
        When the file exists but cannot be inspected.
    """
    try:
        st = os.stat(directory / MODULE_FILE_NAME)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as exc:
        msg = f"cannot read {directory / MODULE_FILE_NAME}: {exc}"
        raise ConfigError(msg) from exc
    return not stat.S_ISDIR(st.st_mode)


def _apply_legacy_prefix(config: DirConfig, rule_file: RuleFile) -> DirConfig:
    for rule in rule_file.rules:
        if rule.kind not in _LEGACY_PREFIX_KINDS:
            continue
        prefix = rule.attr_string("prefix")
        if not prefix:
            continue
        try:
            check_prefix(prefix)
        except DirectiveError as exc:
            logger.warning("%s: %s(%s): %s", config.rel or ".", rule.kind, rule.name, exc)
            continue
        go = config.go.derive(prefix=prefix, prefix_set=True, prefix_rel=config.rel)
        return config.derive(go=go)
    return config


def configure(parent: DirConfig, rel: str, rule_file: RuleFile | None) -> DirConfig:
    """Derive the configuration of directory *rel* from its parent's.

    *parent* is never modified. For the root directory *parent* holds the
    root defaults.
    """
    config = parent.derive(rel=rel)
    go = config.go

    # Module boundary: never re-derived once the subtree is module-scoped.
    if not go.module_mode and _has_module_file(config.path):
        go = go.derive(module_mode=True)

    if posixpath.basename(rel) == VENDOR_DIR_NAME:
        go = go.derive(
            import_map_prefix=infer_import_path(go, rel),
            import_map_prefix_rel=rel,
            prefix="",
            prefix_rel=rel,
        )
    config = config.derive(go=go)

    if rule_file is not None:
        config = apply_directives(config, rule_file.directives)
        if not config.go.prefix_set:
            config = _apply_legacy_prefix(config, rule_file)

    if rel == "":
        go = config.go.derive(
            submodules=discover_submodules(config.go.prefix, config.repositories),
            repo_naming_convention=repo_naming_conventions(config.repositories),
        )
        config = config.derive(go=go)
    return config


def _list_dir(path: Path) -> tuple[list[str], list[str]]:
    subdirs: list[str] = []
    files: list[str] = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.name.startswith("."):
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(entry.name)
            elif entry.is_file():
                files.append(entry.name)
    return sorted(subdirs), sorted(files)


def _read_build_file(
    path: Path, rel: str, names: tuple[str, ...]
) -> tuple[RuleFile | None, str | None]:
    found = find_build_file(path, names)
    if found is None:
        return None, None
    try:
        return load_build_file(found, rel), None
    except BuildFileError as exc:
        logger.warning("%s", exc)
        return None, str(exc)


def _walk_dir(parent: DirConfig, rel: str) -> Iterator[DirInfo]:
    path = parent.repo_root / rel if rel else parent.repo_root
    # The rule file is located with the parent's accepted names.
    build_file, error = _read_build_file(path, rel, parent.build_file_names)
    config = configure(parent, rel, build_file)

    try:
        subdirs, files = _list_dir(path)
    except OSError as exc:
        logger.warning("%s: cannot list directory: %s", rel or ".", exc)
        subdirs, files = [], []

    yield DirInfo(
        rel=rel,
        path=path,
        config=config,
        build_file=build_file,
        build_file_error=error,
        subdirs=tuple(s for s in subdirs if not config.is_excluded(join_rel(rel, s))),
        regular_files=tuple(
            f
            for f in files
            if f not in config.build_file_names and not config.is_excluded(join_rel(rel, f))
        ),
    )

    for name in subdirs:
        child_rel = join_rel(rel, name)
        if config.is_excluded(child_rel):
            logger.debug("%s: excluded", child_rel)
            continue
        yield from _walk_dir(config, child_rel)


def walk(root: DirConfig) -> Iterator[DirInfo]:
    """Visit every directory under ``root.repo_root``, parents before children.

    Parameters
    ----------
    root:
        Root defaults (see :func:`buildweave.config.settings.root_config`).

    Yields
    ------
    DirInfo
        One entry per non-excluded directory, in depth-first pre-order with
        subdirectories sorted by name.

    Raises
    ------
    ConfigError
        On fatal problems, e.g. an unreadable module boundary file.
    """
    if not root.repo_root.is_dir():
        msg = f"repository root {root.repo_root} is not a directory"
        raise ConfigError(msg)
    yield from _walk_dir(root, "")
