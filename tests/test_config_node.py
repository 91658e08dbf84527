"""Tests for buildweave.config.node — configuration values and import path inference."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

import pytest

from buildweave.config.node import (
    DependencyMode,
    DirConfig,
    GoConfig,
    NamingConvention,
    infer_import_map,
    infer_import_path,
    join_rel,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestEnums:
    def test_naming_convention_parse(self) -> None:
        assert NamingConvention.parse("import") is NamingConvention.IMPORT
        with pytest.raises(ValueError, match="unknown naming convention"):
            NamingConvention.parse("imports")

    def test_dependency_mode_parse(self) -> None:
        assert DependencyMode.parse("vendored") is DependencyMode.VENDORED
        with pytest.raises(ValueError, match="unrecognized dependency mode"):
            DependencyMode.parse("static")


class TestDerive:
    def test_frozen(self, tmp_path: Path) -> None:
        config = DirConfig(repo_root=tmp_path)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.rel = "a"  # type: ignore[misc]

    def test_derive_leaves_parent(self, tmp_path: Path) -> None:
        parent = DirConfig(repo_root=tmp_path, go=GoConfig(prefix="x"))
        child = parent.derive(rel="a", go=parent.go.derive(prefix="y"))
        assert (parent.rel, parent.go.prefix) == ("", "x")
        assert (child.rel, child.go.prefix) == ("a", "y")

    def test_defaults(self) -> None:
        go = GoConfig()
        assert go.build_tags == frozenset({"gc"})
        assert go.naming_convention is NamingConvention.GO_DEFAULT_LIBRARY
        assert go.dep_mode is DependencyMode.EXTERNAL
        assert go.generate_proto
        assert dict(go.repo_naming_convention) == {}

    def test_path(self, tmp_path: Path) -> None:
        assert DirConfig(repo_root=tmp_path).path == tmp_path
        assert DirConfig(repo_root=tmp_path, rel="a/b").path == tmp_path / "a" / "b"

    def test_is_excluded_glob(self, tmp_path: Path) -> None:
        config = DirConfig(repo_root=tmp_path, excludes=("gen", "a/*.pb.go"))
        assert config.is_excluded("gen")
        assert config.is_excluded("a/x.pb.go")
        assert not config.is_excluded("a/x.go")


class TestImportPath:
    def test_join_rel(self) -> None:
        assert join_rel("", "a") == "a"
        assert join_rel("a", "") == "a"
        assert join_rel("a", "b/c") == "a/b/c"

    def test_at_prefix_directory(self) -> None:
        go = GoConfig(prefix="example.com/repo", prefix_rel="sub")
        assert infer_import_path(go, "sub") == "example.com/repo"

    def test_below_prefix_directory(self) -> None:
        go = GoConfig(prefix="example.com/repo", prefix_rel="sub")
        assert infer_import_path(go, "sub/pkg/x") == "example.com/repo/pkg/x"

    def test_root_prefix(self) -> None:
        go = GoConfig(prefix="example.com/repo")
        assert infer_import_path(go, "") == "example.com/repo"
        assert infer_import_path(go, "a/b") == "example.com/repo/a/b"

    def test_no_prefix(self) -> None:
        assert infer_import_path(GoConfig(), "a/b") == "a/b"

    def test_import_map(self) -> None:
        assert infer_import_map(GoConfig(), "a") == ""
        go = GoConfig(import_map_prefix="example.com/repo/vendor", import_map_prefix_rel="vendor")
        assert infer_import_map(go, "vendor/golang.org/x/net") == (
            "example.com/repo/vendor/golang.org/x/net"
        )
