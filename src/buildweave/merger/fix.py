"""Fix pass: rewrite obsolete rule shapes into current ones before merging.

Each fix is independent of the others: it recognizes one deprecated shape,
rewrites it in place and leaves every unrelated attribute and comment alone.
Rules a fix does not recognize are left as they are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from buildweave.config.node import NamingConvention, infer_import_path
from buildweave.language.golang import target_names
from buildweave.merger.match import find_rule, rule_label
from buildweave.rule.model import Attr

if TYPE_CHECKING:
    from buildweave.config.node import DirConfig
    from buildweave.rule.kinds import KindRegistry
    from buildweave.rule.model import Rule, RuleFile

logger = logging.getLogger(__name__)

_EMBEDDING_KINDS = frozenset({"go_library", "go_binary", "go_test"})
_CGO_LIST_ATTRS = ("srcs", "cdeps", "copts", "clinkopts", "deps")
_LABEL_LIST_ATTRS = ("embed", "deps")
_LEGACY_LIBRARY = "go_default_library"
_LEGACY_TEST = "go_default_test"


@dataclass(frozen=True)
class FixContext:
    config: DirConfig
    registry: KindRegistry


@dataclass(frozen=True)
class Fix:
    """One independent rewrite of a deprecated shape."""

    name: str
    description: str
    apply: Callable[[RuleFile, FixContext], bool]


@dataclass
class FixResult:
    file: RuleFile
    applied: list[str] = field(default_factory=list)


def _name_taken(rule_file: RuleFile, rule: Rule, kind: str) -> bool:
    return any(
        r is not rule and r.kind == kind and r.name == rule.name for r in rule_file.rules
    )


def _append_unique(values: list[str], extra: list[str]) -> list[str]:
    return values + [v for v in extra if v not in values]


# ---------------------------------------------------------------------------
# Fixes
# ---------------------------------------------------------------------------


def migrate_library_embed(rule_file: RuleFile, ctx: FixContext) -> bool:
    """``library = ":x"`` becomes ``embed = [":x"]``."""
    changed = False
    for rule in rule_file.rules:
        if ctx.registry.canonical(rule.kind) not in _EMBEDDING_KINDS:
            continue
        library = rule.attrs.get("library")
        if library is None or not isinstance(library.value, str):
            continue
        embed = _append_unique(rule.attr_list("embed"), [library.value])
        rule.del_attr("library")
        rule.set_attr("embed", embed)
        rule.attrs["embed"].comments.extend(
            c for c in library.comments if c not in rule.attrs["embed"].comments
        )
        changed = True
    return changed


def migrate_grpc_compilers(rule_file: RuleFile, ctx: FixContext) -> bool:
    """``go_grpc_library`` becomes ``go_proto_library`` with the gRPC compilers."""
    changed = False
    for rule in rule_file.rules:
        if rule.kind != "go_grpc_library":
            continue
        if _name_taken(rule_file, rule, "go_proto_library"):
            where = rule_file.rel or "."
            logger.warning("%s: cannot migrate %s: name taken", where, rule_label(rule))
            continue
        rule.kind = "go_proto_library"
        if rule.attr("compilers") is None:
            rule.set_attr("compilers", list(ctx.config.go.grpc_compilers))
        changed = True
    return changed


def _embedding_library(rule_file: RuleFile, ref: str) -> Rule | None:
    for rule in rule_file.rules:
        if rule.kind != "go_library":
            continue
        if ref in rule.attr_list("embed") or rule.attr_string("library") == ref:
            return rule
    return None


def squash_cgo_library(rule_file: RuleFile, ctx: FixContext) -> bool:
    """Fold ``cgo_library`` into the ``go_library`` that embeds it."""
    changed = False
    for cgo in [r for r in rule_file.rules if r.kind == "cgo_library"]:
        ref = f":{cgo.name}"
        target = _embedding_library(rule_file, ref)
        if target is None:
            if _name_taken(rule_file, cgo, "go_library"):
                continue
            cgo.kind = "go_library"
            cgo.set_attr("cgo", True)
            changed = True
            continue
        if target.should_keep or cgo.should_keep:
            logger.warning(
                "%s: not squashing %s into %s: keep marker",
                rule_file.rel or ".",
                rule_label(cgo),
                rule_label(target),
            )
            continue

        for key in _CGO_LIST_ATTRS:
            values = cgo.attr_list(key)
            if values:
                target.set_attr(key, _append_unique(target.attr_list(key), values))
        for key, attr in cgo.attrs.items():
            if key in _CGO_LIST_ATTRS or key == "visibility" or key in target.attrs:
                continue
            target.attrs[key] = Attr(attr.value, list(attr.comments))
        target.set_attr("cgo", True)

        embed = [e for e in target.attr_list("embed") if e != ref]
        if embed:
            target.set_attr("embed", embed)
        else:
            target.del_attr("embed")
        if target.attr_string("library") == ref:
            target.del_attr("library")
        rule_file.rules.remove(cgo)
        changed = True
    return changed


def migrate_naming_convention(rule_file: RuleFile, ctx: FixContext) -> bool:
    """Rename legacy ``go_default_*`` targets under the import conventions."""
    go = ctx.config.go
    if go.naming_convention is NamingConvention.GO_DEFAULT_LIBRARY:
        return False

    library = find_rule(rule_file.rules, "go_library", _LEGACY_LIBRARY, ctx.registry)
    test = find_rule(rule_file.rules, "go_test", _LEGACY_TEST, ctx.registry)
    if library is None and test is None:
        return False

    importpath = ""
    if library is not None:
        importpath = library.attr_string("importpath")
    importpath = importpath or infer_import_path(go, rule_file.rel)
    is_main = any(
        r.kind == "go_binary" and f":{_LEGACY_LIBRARY}" in r.attr_list("embed")
        for r in rule_file.rules
    )
    names = target_names(go.naming_convention, importpath, rule_file.rel, is_main=is_main)

    renames: dict[str, str] = {}
    pending = ((library, "go_library", names.library), (test, "go_test", names.test))
    for rule, kind, new_name in pending:
        if rule is None or rule.should_keep or new_name == rule.name:
            continue
        if find_rule(rule_file.rules, kind, new_name, ctx.registry) is not None:
            continue
        renames[f":{rule.name}"] = f":{new_name}"
        rule.name = new_name
    if not renames:
        return False

    for rule in rule_file.rules:
        for key in _LABEL_LIST_ATTRS:
            values = rule.attr_list(key)
            if any(v in renames for v in values):
                rule.set_attr(key, [renames.get(v, v) for v in values])
        if rule.kind == "alias" and rule.attr_string("actual") in renames:
            rule.set_attr("actual", renames[rule.attr_string("actual")])
    return True


FIXES: tuple[Fix, ...] = (
    Fix("migrate_library_embed", "library attribute replaced by embed", migrate_library_embed),
    Fix(
        "migrate_grpc_compilers",
        "go_grpc_library replaced by go_proto_library",
        migrate_grpc_compilers,
    ),
    Fix("squash_cgo_library", "cgo_library folded into go_library", squash_cgo_library),
    Fix("migrate_naming_convention", "go_default_* targets renamed", migrate_naming_convention),
)


def fix_file(
    rule_file: RuleFile,
    config: DirConfig,
    registry: KindRegistry,
    fixes: tuple[Fix, ...] = FIXES,
) -> FixResult:
    """Apply *fixes* to a copy of *rule_file*; the input is not modified."""
    result = FixResult(file=rule_file.clone())
    ctx = FixContext(config=config, registry=registry)
    for fix in fixes:
        if fix.apply(result.file, ctx):
            logger.info("%s: applied fix %s", rule_file.rel or ".", fix.name)
            result.applied.append(fix.name)
    return result
