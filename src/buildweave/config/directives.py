"""Directive catalog: recognized ``buildweave:<key> <value>`` overrides.

Each directive is a (parse, apply) pair registered under its key. Parsing
validates the free-text value; applying derives a new :class:`DirConfig`
from the current one. Adding a directive means registering one more
:class:`DirectiveSpec`; :func:`apply_directives` never changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from buildweave.config.node import (
    ALWAYS_ON_TAGS,
    DEFAULT_GO_GRPC_COMPILERS,
    DEFAULT_GO_PROTO_COMPILERS,
    DirConfig,
    NamingConvention,
    join_rel,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from buildweave.rule.model import Directive

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class DirectiveError(ValueError):
    """Raised when a directive value cannot be parsed."""


@dataclass(frozen=True)
class DirectiveSpec(Generic[T]):
    """A recognized directive key with its parser and applier."""

    key: str
    description: str
    parse: Callable[[str], T]
    apply: Callable[[DirConfig, T], DirConfig]


CATALOG: dict[str, DirectiveSpec[Any]] = {}


def register(spec: DirectiveSpec[Any]) -> DirectiveSpec[Any]:
    if spec.key in CATALOG:
        msg = f"directive {spec.key!r} is already registered"
        raise ValueError(msg)
    CATALOG[spec.key] = spec
    return spec


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------


def split_value(value: str) -> tuple[str, ...]:
    """Split a comma-separated value, trimming whitespace around each part."""
    return tuple(part.strip() for part in value.split(","))


def parse_bool(value: str) -> bool:
    v = value.strip()
    if v in _TRUE_VALUES:
        return True
    if v in _FALSE_VALUES:
        return False
    msg = f"invalid boolean {value!r}"
    raise DirectiveError(msg)


def parse_build_tags(value: str) -> frozenset[str]:
    """Parse a comma-separated tag list; negated tags are rejected."""
    tags: set[str] = set()
    if not value.strip():
        return frozenset()
    for tag in split_value(value):
        if not tag:
            continue
        if tag.startswith("!"):
            msg = f"build tags can't be negated: {tag}"
            raise DirectiveError(msg)
        tags.add(tag)
    return frozenset(tags)


def parse_naming_convention(value: str) -> NamingConvention:
    try:
        return NamingConvention.parse(value.strip())
    except ValueError as exc:
        raise DirectiveError(str(exc)) from exc


def check_prefix(prefix: str) -> str:
    """Reject absolute prefixes and relative imports; the empty prefix is allowed."""
    local = prefix in (".", "..") or prefix.startswith(("./", "../"))
    if prefix.startswith("/") or local:
        msg = f"invalid prefix: {prefix!r}"
        raise DirectiveError(msg)
    return prefix


def _parse_compilers(value: str) -> tuple[str, ...] | None:
    # Empty value resets to the defaults.
    if not value.strip():
        return None
    return split_value(value)


def _parse_nonempty_list(value: str) -> tuple[str, ...]:
    parts = tuple(p for p in split_value(value) if p)
    if not parts:
        msg = "expected a comma-separated list"
        raise DirectiveError(msg)
    return parts


def _parse_pattern(value: str) -> str:
    pattern = value.strip()
    if not pattern:
        msg = "expected a path pattern"
        raise DirectiveError(msg)
    return pattern


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_prefix(config: DirConfig, prefix: str) -> DirConfig:
    go = config.go.derive(prefix=prefix, prefix_set=True, prefix_rel=config.rel)
    return config.derive(go=go)


def _apply_build_tags(config: DirConfig, tags: frozenset[str]) -> DirConfig:
    build_tags = config.go.build_tags | tags | ALWAYS_ON_TAGS
    return config.derive(go=config.go.derive(build_tags=build_tags))


def _apply_naming_convention(config: DirConfig, nc: NamingConvention) -> DirConfig:
    return config.derive(go=config.go.derive(naming_convention=nc))


def _apply_proto_compilers(config: DirConfig, compilers: tuple[str, ...] | None) -> DirConfig:
    if compilers is None:
        go = config.go.derive(
            proto_compilers=DEFAULT_GO_PROTO_COMPILERS, proto_compilers_set=False
        )
    else:
        go = config.go.derive(proto_compilers=compilers, proto_compilers_set=True)
    return config.derive(go=go)


def _apply_grpc_compilers(config: DirConfig, compilers: tuple[str, ...] | None) -> DirConfig:
    if compilers is None:
        go = config.go.derive(grpc_compilers=DEFAULT_GO_GRPC_COMPILERS, grpc_compilers_set=False)
    else:
        go = config.go.derive(grpc_compilers=compilers, grpc_compilers_set=True)
    return config.derive(go=go)


def _apply_generate_proto(config: DirConfig, enabled: bool) -> DirConfig:
    return config.derive(go=config.go.derive(generate_proto=enabled))


def _apply_visibility(config: DirConfig, label: str) -> DirConfig:
    return config.derive(go=config.go.derive(visibility=(*config.go.visibility, label)))


def _apply_import_map_prefix(config: DirConfig, prefix: str) -> DirConfig:
    go = config.go.derive(import_map_prefix=prefix, import_map_prefix_rel=config.rel)
    return config.derive(go=go)


def _apply_exclude(config: DirConfig, pattern: str) -> DirConfig:
    return config.derive(excludes=(*config.excludes, join_rel(config.rel, pattern)))


def _apply_build_file_name(config: DirConfig, names: tuple[str, ...]) -> DirConfig:
    return config.derive(build_file_names=names)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

register(DirectiveSpec("exclude", "skip a file or subtree (glob)", _parse_pattern, _apply_exclude))
register(
    DirectiveSpec(
        "build_file_name",
        "comma-separated rule file names",
        _parse_nonempty_list,
        _apply_build_file_name,
    )
)
register(DirectiveSpec("prefix", "import path prefix", check_prefix, _apply_prefix))
register(
    DirectiveSpec(
        "build_tags", "comma-separated build tags", parse_build_tags, _apply_build_tags
    )
)
register(
    DirectiveSpec(
        "go_naming_convention",
        "go_default_library | import | import_alias",
        parse_naming_convention,
        _apply_naming_convention,
    )
)
register(
    DirectiveSpec(
        "go_proto_compilers",
        "proto compilers (empty resets to default)",
        _parse_compilers,
        _apply_proto_compilers,
    )
)
register(
    DirectiveSpec(
        "go_grpc_compilers",
        "gRPC compilers (empty resets to default)",
        _parse_compilers,
        _apply_grpc_compilers,
    )
)
register(
    DirectiveSpec(
        "go_generate_proto", "generate go_proto_library rules", parse_bool, _apply_generate_proto
    )
)
register(
    DirectiveSpec(
        "go_visibility",
        "extra visibility for internal packages",
        str.strip,
        _apply_visibility,
    )
)
register(
    DirectiveSpec(
        "importmap_prefix", "prefix for importmap attributes", str, _apply_import_map_prefix
    )
)


def apply_directives(config: DirConfig, directives: Iterable[Directive]) -> DirConfig:
    """Apply *directives* to *config* in declaration order.

    A directive that fails to parse is logged and skipped, so the field keeps
    its inherited value. Unknown keys are ignored.
    """
    where = config.rel or "."
    for directive in directives:
        spec = CATALOG.get(directive.key)
        if spec is None:
            logger.debug("%s: ignoring unknown directive %r", where, directive.key)
            continue
        try:
            value = spec.parse(directive.value)
        except DirectiveError as exc:
            logger.warning("%s: %s directive skipped: %s", where, directive.key, exc)
            continue
        config = spec.apply(config, value)
    return config
