"""Tests for buildweave.update — end-to-end walk, fix, generate, merge and write."""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

import pytest

from buildweave.config import walker
from buildweave.config.settings import ConfigError, Settings
from buildweave.rule.buildfile import load_build_file
from buildweave.update import format_json, format_porcelain, format_rich, update

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from buildweave.rule.model import RuleFile


def _settings(repo: Path) -> Settings:
    return Settings(repo_root=repo, go_prefix="example.com/repo")


def _load(repo: Path, rel: str) -> RuleFile:
    return load_build_file(repo / rel / "BUILD.yml", rel)


def _actions(result: Any) -> dict[str, str]:
    return {c.rel: c.action for c in result.changes}


class TestUpdate:
    def test_creates_rule_files(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/foo/a.go", "foo")
        write_go("pkg/foo/a_test.go", "foo")
        result = update(_settings(repo))

        assert _actions(result) == {"pkg/foo": "create"}
        assert not (repo / "BUILD.yml").exists()
        rf = _load(repo, "pkg/foo")
        assert [(r.kind, r.name) for r in rf.rules] == [
            ("go_library", "go_default_library"),
            ("go_test", "go_default_test"),
        ]
        assert rf.rules[0].attr("importpath") == "example.com/repo/pkg/foo"
        assert result.directories == 3

    def test_second_run_changes_nothing(
        self, repo: Path, write_go: Callable[..., Path]
    ) -> None:
        write_go("pkg/a.go", "pkg")
        write_go("cmd/tool/main.go", "main")
        update(_settings(repo))
        first = {p: p.read_text() for p in repo.rglob("BUILD.yml")}

        result = update(_settings(repo))
        assert result.modified == []
        assert set(_actions(result).values()) == {"unchanged"}
        assert {p: p.read_text() for p in repo.rglob("BUILD.yml")} == first

    def test_user_attributes_and_rules_survive(
        self, repo: Path, write_go: Callable[..., Path], write_build: Callable[..., Path]
    ) -> None:
        write_go("pkg/a.go", "pkg")
        write_build(
            "pkg",
            comments=["buildweave:build_tags custom"],
            rules=[
                {"kind": "filegroup", "name": "data", "attrs": {"srcs": ["d.txt"]}},
                {
                    "kind": "go_library",
                    "name": "go_default_library",
                    "attrs": {
                        "srcs": ["old.go"],
                        "deps": ["//third_party:x"],
                        "importpath": "example.com/repo/pkg",
                        "visibility": ["//custom:__pkg__"],
                    },
                    "attr_comments": {"deps": ["added by hand"]},
                },
            ],
        )
        result = update(_settings(repo))
        assert _actions(result)["pkg"] == "update"

        rf = _load(repo, "pkg")
        assert rf.comments == ["buildweave:build_tags custom"]
        fg, lib = rf.rules
        assert (fg.kind, fg.attr_list("srcs")) == ("filegroup", ["d.txt"])
        assert lib.attr_list("srcs") == ["a.go"]
        assert lib.attr_list("deps") == ["//third_party:x"]
        assert lib.attrs["deps"].comments == ["added by hand"]
        assert lib.attr_list("visibility") == ["//custom:__pkg__"]

    def test_kept_rule_survives(
        self, repo: Path, write_go: Callable[..., Path], write_build: Callable[..., Path]
    ) -> None:
        write_go("pkg/a.go", "pkg")
        write_build(
            "pkg",
            rules=[
                {
                    "kind": "go_test",
                    "name": "go_default_test",
                    "comments": ["keep"],
                    "attrs": {"srcs": ["gone_test.go"]},
                },
                {"kind": "go_binary", "name": "stale", "attrs": {"srcs": ["gone.go"]}},
            ],
        )
        result = update(_settings(repo))
        names = [r.name for r in _load(repo, "pkg").rules]
        assert names == ["go_default_library", "go_default_test"]
        merge = result.changes[-1].merge
        assert merge is not None
        assert merge.kept == ["go_test(go_default_test)"]
        assert merge.deleted == ["go_binary(stale)"]

    def test_empty_file_deleted(self, repo: Path, write_build: Callable[..., Path]) -> None:
        path = write_build(
            "old",
            rules=[
                {"kind": "go_library", "name": "go_default_library", "attrs": {"srcs": ["x.go"]}}
            ],
        )
        result = update(_settings(repo))
        assert _actions(result)["old"] == "delete"
        assert not path.exists()

    def test_file_with_directives_not_deleted(
        self, repo: Path, write_build: Callable[..., Path]
    ) -> None:
        path = write_build(
            "old",
            comments=["buildweave:prefix example.com/old"],
            rules=[
                {"kind": "go_library", "name": "go_default_library", "attrs": {"srcs": ["x.go"]}}
            ],
        )
        update(_settings(repo))
        rf = load_build_file(path, "old")
        assert rf.rules == []
        assert rf.comments == ["buildweave:prefix example.com/old"]

    def test_dry_run_writes_nothing(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/a.go", "pkg")
        result = update(_settings(repo), dry_run=True)
        assert result.dry_run
        assert _actions(result) == {"pkg": "create"}
        assert not (repo / "pkg" / "BUILD.yml").exists()

    def test_invalid_rule_file_skipped(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/a.go", "pkg")
        write_go("other/b.go", "other")
        bad = repo / "pkg" / "BUILD.yml"
        bad.write_text("rules: [\n")
        result = update(_settings(repo))
        assert _actions(result) == {"other": "create", "pkg": "skipped"}
        assert bad.read_text() == "rules: [\n"

    def test_fatal_error_writes_nothing(
        self, repo: Path, write_go: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_go("a/a.go", "a")
        (repo / "z").mkdir()
        blocked = repo / "z" / "go.mod"
        blocked.write_text("module example.com/z\n")
        real_stat = os.stat

        def fake_stat(path: Any, *args: Any, **kwargs: Any) -> os.stat_result:
            if str(path) == str(blocked):
                raise PermissionError(13, "Permission denied", str(path))
            return real_stat(path, *args, **kwargs)

        monkeypatch.setattr(walker.os, "stat", fake_stat)
        with pytest.raises(ConfigError):
            update(_settings(repo))
        assert not (repo / "a" / "BUILD.yml").exists()


class TestFix:
    def _setup(self, repo: Path, write_go: Any, write_build: Any) -> None:
        write_build("", comments=["buildweave:go_naming_convention import"])
        write_go("pkg/foo/foo.go", "foo")
        write_build(
            "pkg/foo",
            rules=[
                {
                    "kind": "go_library",
                    "name": "go_default_library",
                    "attrs": {"srcs": ["foo.go"], "importpath": "example.com/repo/pkg/foo"},
                }
            ],
        )

    def test_without_fix_only_warns(
        self,
        repo: Path,
        write_go: Callable[..., Path],
        write_build: Callable[..., Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        self._setup(repo, write_go, write_build)
        with caplog.at_level(logging.WARNING):
            update(_settings(repo))
        assert [r.name for r in _load(repo, "pkg/foo").rules] == ["go_default_library"]
        assert "deprecated rule shapes found" in caplog.text

    def test_with_fix_migrates(
        self, repo: Path, write_go: Callable[..., Path], write_build: Callable[..., Path]
    ) -> None:
        self._setup(repo, write_go, write_build)
        result = update(_settings(repo), fix=True)
        change = next(c for c in result.changes if c.rel == "pkg/foo")
        assert change.fixes == ["migrate_naming_convention"]
        assert [r.name for r in _load(repo, "pkg/foo").rules] == ["foo"]


class TestFormatters:
    def test_outputs(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/a.go", "pkg")
        result = update(_settings(repo), dry_run=True)

        assert format_porcelain(result) == f"create:{repo / 'pkg' / 'BUILD.yml'}"

        data = json.loads(format_json(result))
        assert data["summary"]["files_changed"] == 1
        assert data["summary"]["dry_run"] is True
        (change,) = data["changes"]
        assert change["action"] == "create"
        assert change["created"] == ["go_library(go_default_library)"]

        text = format_rich(result)
        assert "+ " in text
        assert "1 files would change" in text

    def test_up_to_date(self, repo: Path) -> None:
        result = update(_settings(repo))
        assert "Up to date" in format_rich(result)
        assert format_porcelain(result) == ""
