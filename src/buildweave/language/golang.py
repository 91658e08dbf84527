"""Go rule generator.

Works from file names plus the ``package`` clause and ``//go:build`` line of
each ``.go`` file; imports are not resolved, so ``deps`` is never generated
and is left to the user.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from buildweave.config.node import NamingConvention, infer_import_map, infer_import_path
from buildweave.language.base import GenerateArgs, GenerateResult
from buildweave.rule.kinds import KindInfo, KindRegistry
from buildweave.rule.model import Rule

if TYPE_CHECKING:
    from pathlib import Path

    from buildweave.config.node import GoConfig

logger = logging.getLogger(__name__)

PUBLIC = "//visibility:public"
PRIVATE = "//visibility:private"
LEGACY_LIBRARY_NAME = "go_default_library"
LEGACY_TEST_NAME = "go_default_test"

GO_KINDS = KindRegistry(
    infos={
        "go_proto_library": KindInfo(
            match_any=True,
            non_empty_attrs=frozenset({"deps", "embed", "proto"}),
            mergeable_attrs=frozenset({"compilers", "importmap", "importpath", "proto"}),
        ),
        "go_library": KindInfo(
            match_attrs=("importpath",),
            non_empty_attrs=frozenset({"deps", "embed", "srcs"}),
            mergeable_attrs=frozenset(
                {"cgo", "clinkopts", "copts", "embed", "importmap", "importpath", "srcs"}
            ),
        ),
        "alias": KindInfo(
            non_empty_attrs=frozenset({"actual"}),
            mergeable_attrs=frozenset({"actual"}),
        ),
        "go_binary": KindInfo(
            match_any=True,
            non_empty_attrs=frozenset({"deps", "embed", "srcs"}),
            mergeable_attrs=frozenset({"cgo", "clinkopts", "copts", "embed", "srcs"}),
        ),
        "go_test": KindInfo(
            match_any=True,
            non_empty_attrs=frozenset({"deps", "embed", "srcs"}),
            mergeable_attrs=frozenset({"cgo", "clinkopts", "copts", "embed", "srcs"}),
        ),
    },
    aliases={
        "cgo_library": "go_library",
        "go_grpc_library": "go_proto_library",
    },
)

# Platform and toolchain tags are satisfied here; per-platform selection is
# the build tool's business.
PLATFORM_TAGS: frozenset[str] = frozenset(
    {
        "aix", "android", "darwin", "dragonfly", "freebsd", "illumos", "ios", "js",
        "linux", "netbsd", "openbsd", "plan9", "solaris", "wasip1", "windows", "unix",
        "386", "amd64", "arm", "arm64", "loong64", "mips", "mips64", "mips64le",
        "mipsle", "ppc64", "ppc64le", "riscv64", "s390x", "wasm", "cgo",
    }
)

_MAJOR_VERSION_RE = re.compile(r"^v\d+$")
_BUILD_LINE_RE = re.compile(r"^//go:build\s+(.+)$")
_PACKAGE_RE = re.compile(r"^package\s+(\w+)")
_SERVICE_RE = re.compile(r"^\s*service\s+\w+", re.MULTILINE)
_TOKEN_RE = re.compile(r"\s*(&&|\|\||!|\(|\)|[A-Za-z0-9_.]+)")


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TargetNames:
    """Rule names for one package under a naming convention."""

    base: str
    library: str
    binary: str
    test: str
    proto: str


def _base_name(importpath: str, rel: str) -> str:
    parts = [p for p in (importpath or rel).split("/") if p]
    if not parts:
        return "root"
    # example.com/foo/v2 is named after foo.
    if _MAJOR_VERSION_RE.match(parts[-1]) and len(parts) > 1:
        return parts[-2]
    return parts[-1]


def target_names(
    convention: NamingConvention, importpath: str, rel: str, *, is_main: bool = False
) -> TargetNames:
    base = _base_name(importpath, rel)
    if convention is NamingConvention.GO_DEFAULT_LIBRARY:
        return TargetNames(
            base=base,
            library=LEGACY_LIBRARY_NAME,
            binary=base,
            test=LEGACY_TEST_NAME,
            proto=f"{base}_go_proto",
        )
    return TargetNames(
        base=base,
        library=f"{base}_lib" if is_main else base,
        binary=base,
        test=f"{base}_test",
        proto=f"{base}_go_proto",
    )


def library_visibility(go: GoConfig, rel: str) -> list[str]:
    """Visibility of a library in *rel*; ``internal`` packages are restricted."""
    parts = rel.split("/") if rel else []
    if "internal" not in parts:
        return [PUBLIC]
    parent = "/".join(parts[: parts.index("internal")])
    visibility = [f"//{parent}:__subpackages__"]
    visibility.extend(v for v in go.visibility if v not in visibility)
    visibility.extend(f"@{m.repo_name}//:__subpackages__" for m in go.submodules)
    return visibility


# ---------------------------------------------------------------------------
# Build constraints
# ---------------------------------------------------------------------------


class ConstraintError(ValueError):
    """Raised for a malformed ``//go:build`` expression."""


class _ConstraintParser:
    """Recursive-descent evaluator for ``//go:build`` expressions."""

    def __init__(self, expr: str, is_set: Callable[[str], bool]) -> None:
        self.tokens = _tokenize(expr)
        self.pos = 0
        self.is_set = is_set

    def evaluate(self) -> bool:
        value = self._or()
        if self.pos != len(self.tokens):
            msg = f"unexpected {self.tokens[self.pos]!r}"
            raise ConstraintError(msg)
        return value

    def _peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> str:
        tok = self._peek()
        if tok is None:
            msg = "unexpected end of expression"
            raise ConstraintError(msg)
        self.pos += 1
        return tok

    def _or(self) -> bool:
        value = self._and()
        while self._peek() == "||":
            self.pos += 1
            rhs = self._and()
            value = value or rhs
        return value

    def _and(self) -> bool:
        value = self._unary()
        while self._peek() == "&&":
            self.pos += 1
            rhs = self._unary()
            value = value and rhs
        return value

    def _unary(self) -> bool:
        tok = self._next()
        if tok == "!":
            return not self._unary()
        if tok == "(":
            value = self._or()
            if self._next() != ")":
                msg = "missing ')'"
                raise ConstraintError(msg)
            return value
        if tok in ("&&", "||", ")"):
            msg = f"unexpected {tok!r}"
            raise ConstraintError(msg)
        return self.is_set(tok)


def _tokenize(expr: str) -> list[str]:
    expr = expr.strip()
    tokens: list[str] = []
    pos = 0
    while pos < len(expr):
        m = _TOKEN_RE.match(expr, pos)
        if m is None:
            msg = f"unexpected {expr[pos:]!r}"
            raise ConstraintError(msg)
        tokens.append(m.group(1))
        pos = m.end()
    return tokens


def constraint_satisfied(expr: str, tags: frozenset[str]) -> bool:
    """Evaluate a ``//go:build`` expression against enabled *tags*."""

    def is_set(tag: str) -> bool:
        return tag in tags or tag in PLATFORM_TAGS or tag.startswith("go1.")

    return _ConstraintParser(expr, is_set).evaluate()


@dataclass(frozen=True)
class GoFileInfo:
    name: str
    package: str
    constraint: str | None


def read_go_file(path: Path) -> GoFileInfo | None:
    """Read the build constraint and package clause of a Go file."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("cannot read %s: %s", path, exc)
        return None
    constraint: str | None = None
    package = ""
    for line in text.splitlines():
        stripped = line.strip()
        m = _BUILD_LINE_RE.match(stripped)
        if m and constraint is None:
            constraint = m.group(1)
            continue
        m = _PACKAGE_RE.match(stripped)
        if m:
            package = m.group(1)
            break
    return GoFileInfo(name=path.name, package=package, constraint=constraint)


def _included(info: GoFileInfo, tags: frozenset[str]) -> bool:
    if info.constraint is None:
        return True
    try:
        return constraint_satisfied(info.constraint, tags)
    except ConstraintError as exc:
        logger.debug("%s: ignoring build constraint: %s", info.name, exc)
        return True


def _has_services(directory: Path, proto_files: list[str]) -> bool:
    for name in proto_files:
        try:
            text = (directory / name).read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        if _SERVICE_RE.search(text):
            return True
    return False


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class GoLanguage:
    """Generates go_library, go_binary, go_test, go_proto_library and alias rules."""

    name = "go"

    def kinds(self) -> KindRegistry:
        return GO_KINDS

    def generate(self, args: GenerateArgs) -> GenerateResult:
        go = args.config.go
        rel = args.rel
        result = GenerateResult()

        lib_srcs: list[str] = []
        test_srcs: list[str] = []
        is_main = False
        for name in sorted(f for f in args.regular_files if f.endswith(".go")):
            info = read_go_file(args.path / name)
            if info is None or not _included(info, go.build_tags):
                continue
            if name.endswith("_test.go"):
                test_srcs.append(name)
            else:
                lib_srcs.append(name)
                is_main = is_main or info.package == "main"
        proto_files = sorted(f for f in args.regular_files if f.endswith(".proto"))

        importpath = infer_import_path(go, rel)
        importmap = infer_import_map(go, rel)
        if (lib_srcs or test_srcs) and not importpath:
            logger.warning("%s: no import prefix set; add a prefix directive", rel or ".")
        names = target_names(go.naming_convention, importpath, rel, is_main=is_main)
        visibility = [PRIVATE] if is_main else library_visibility(go, rel)

        proto_rule: Rule | None = None
        if proto_files and go.generate_proto:
            compilers: list[str] | None = None
            if _has_services(args.path, proto_files):
                compilers = list(go.grpc_compilers)
            elif go.proto_compilers_set:
                compilers = list(go.proto_compilers)
            proto_rule = Rule.new(
                "go_proto_library",
                names.proto,
                compilers=compilers,
                importpath=importpath or None,
                importmap=importmap or None,
                proto=f":{names.base}_proto",
                visibility=library_visibility(go, rel),
            )
            result.gen.append(proto_rule)
        else:
            result.empty.append(Rule.new("go_proto_library", names.proto))

        has_library = bool(lib_srcs) or proto_rule is not None
        if has_library:
            result.gen.append(
                Rule.new(
                    "go_library",
                    names.library,
                    srcs=lib_srcs or None,
                    embed=[f":{proto_rule.name}"] if proto_rule is not None else None,
                    importpath=importpath or None,
                    importmap=importmap or None,
                    visibility=visibility,
                )
            )
        else:
            result.empty.append(Rule.new("go_library", names.library))

        alias_wanted = (
            go.naming_convention is NamingConvention.IMPORT_ALIAS
            and has_library
            and names.library != LEGACY_LIBRARY_NAME
        )
        if alias_wanted:
            result.gen.append(
                Rule.new(
                    "alias",
                    LEGACY_LIBRARY_NAME,
                    actual=f":{names.library}",
                    visibility=visibility,
                )
            )
        else:
            result.empty.append(Rule.new("alias", LEGACY_LIBRARY_NAME))

        if is_main:
            result.gen.append(
                Rule.new(
                    "go_binary",
                    names.binary,
                    embed=[f":{names.library}"],
                    visibility=[PUBLIC],
                )
            )
        else:
            result.empty.append(Rule.new("go_binary", names.binary))

        if test_srcs:
            result.gen.append(
                Rule.new(
                    "go_test",
                    names.test,
                    srcs=test_srcs,
                    embed=[f":{names.library}"] if lib_srcs else None,
                )
            )
        else:
            result.empty.append(Rule.new("go_test", names.test))

        return result
