"""Tests for buildweave CLI commands: update, fix and config."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest
import yaml
from click.testing import CliRunner

from buildweave import __version__
from buildweave.cli import main

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class TestMain:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("update", "fix", "config"):
            assert command in result.output


class TestUpdateCommand:
    def test_creates_files(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/a.go", "pkg")
        result = CliRunner().invoke(
            main, ["update", "--repo-root", str(repo), "--go-prefix", "example.com/repo"]
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip() == f"create:{(repo / 'pkg' / 'BUILD.yml').resolve()}"
        assert (repo / "pkg" / "BUILD.yml").is_file()

    def test_dry_run_json(self, repo: Path, write_go: Callable[..., Path]) -> None:
        write_go("pkg/a.go", "pkg")
        result = CliRunner().invoke(
            main,
            [
                "update",
                "--repo-root",
                str(repo),
                "--go-prefix",
                "example.com/repo",
                "--dry-run",
                "--format",
                "json",
            ],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["summary"]["files_changed"] == 1
        assert data["summary"]["dry_run"] is True
        assert not (repo / "pkg" / "BUILD.yml").exists()

    def test_rich_format(self, repo: Path) -> None:
        result = CliRunner().invoke(main, ["update", "--repo-root", str(repo), "--format", "rich"])
        assert result.exit_code == 0
        assert "Up to date" in result.output

    def test_discovers_root_from_cwd(
        self, repo: Path, write_go: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_go("pkg/a.go", "pkg")
        (repo / ".buildweave.yml").write_text("go_prefix: example.com/repo\n")
        monkeypatch.chdir(repo / "pkg")
        result = CliRunner().invoke(main, ["update"])
        assert result.exit_code == 0, result.output
        assert "create:" in result.output

    def test_no_repository_root(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(main, ["update"])
        assert result.exit_code == 2
        assert "Error: cannot find repository root" in result.output

    def test_invalid_flag_value(self, repo: Path) -> None:
        result = CliRunner().invoke(
            main, ["update", "--repo-root", str(repo), "--go-naming-convention", "bogus"]
        )
        assert result.exit_code == 2
        assert "Error:" in result.output

    def test_invalid_config_file(self, repo: Path) -> None:
        (repo / ".buildweave.yml").write_text("- not a mapping\n")
        result = CliRunner().invoke(main, ["update", "--repo-root", str(repo)])
        assert result.exit_code == 2
        assert "top level must be a mapping" in result.output


class TestFixCommand:
    def test_migrates_deprecated_shapes(
        self, repo: Path, write_go: Callable[..., Path], write_build: Callable[..., Path]
    ) -> None:
        write_go("cmd/tool/main.go", "main")
        write_build(
            "cmd/tool",
            rules=[
                {
                    "kind": "go_binary",
                    "name": "tool",
                    "attrs": {"library": ":go_default_library"},
                }
            ],
        )
        args = ["fix", "--repo-root", str(repo), "--go-prefix", "example.com/repo"]
        result = CliRunner().invoke(main, [*args, "--format", "json"])
        assert result.exit_code == 0, result.output
        (change,) = json.loads(result.output)["changes"]
        assert change["fixes"] == ["migrate_library_embed"]

        binary = next(
            r
            for r in _rules(repo / "cmd" / "tool" / "BUILD.yml")
            if r["kind"] == "go_binary"
        )
        assert binary["attrs"]["embed"] == [":go_default_library"]
        assert "library" not in binary["attrs"]


class TestConfigCommand:
    def test_table(self, repo: Path, write_build: Callable[..., Path]) -> None:
        write_build("pkg", comments=["buildweave:build_tags custom"])
        result = CliRunner().invoke(
            main, ["config", "--repo-root", str(repo), "--dir", "pkg"], env={"COLUMNS": "200"}
        )
        assert result.exit_code == 0, result.output
        assert "Effective configuration" in result.output
        assert "custom" in result.output


def _rules(path: Path) -> list[dict[str, Any]]:
    data = yaml.safe_load(path.read_text())
    return list(data["rules"])
