"""Shared test fixtures for buildweave."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import pytest
import yaml

if TYPE_CHECKING:
    from pathlib import Path

WriteBuild = Callable[..., "Path"]
WriteGo = Callable[..., "Path"]


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    """An empty repository: a directory holding a WORKSPACE marker."""
    root = tmp_path / "repo"
    root.mkdir()
    (root / "WORKSPACE").write_text("")
    return root


@pytest.fixture()
def write_build(repo: Path) -> WriteBuild:
    """Write ``BUILD.yml`` into a repo directory from comments and rule dicts."""

    def _write(
        rel: str = "",
        *,
        comments: list[str] | None = None,
        rules: list[dict[str, Any]] | None = None,
        name: str = "BUILD.yml",
    ) -> Path:
        directory = repo / rel if rel else repo
        directory.mkdir(parents=True, exist_ok=True)
        data: dict[str, Any] = {}
        if comments:
            data["comments"] = comments
        data["rules"] = rules or []
        path = directory / name
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture()
def write_go(repo: Path) -> WriteGo:
    """Write a minimal Go source file into a repo directory."""

    def _write(rel_file: str, package: str = "lib", *, build: str | None = None) -> Path:
        path = repo / rel_file
        path.parent.mkdir(parents=True, exist_ok=True)
        header = f"//go:build {build}\n\n" if build else ""
        path.write_text(f"{header}package {package}\n")
        return path

    return _write
