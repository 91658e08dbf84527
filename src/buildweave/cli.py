"""buildweave CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from buildweave import __version__

if TYPE_CHECKING:
    from collections.abc import Callable

    from buildweave.config.settings import Settings

_LOG_FORMAT = "%(levelname)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="buildweave")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """buildweave - keep per-directory build rule files in sync with the code."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format=_LOG_FORMAT, force=True)


def _root_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options that set the root configuration, shared by every command."""
    options = [
        click.option(
            "--repo-root",
            type=click.Path(exists=True, file_okay=False, path_type=Path),
            default=None,
            help="Repository root (default: discovered from the current directory).",
        ),
        click.option("--go-prefix", default=None, help="Import path prefix of the repository."),
        click.option(
            "--external",
            type=click.Choice(["external", "vendored"]),
            default=None,
            help="Resolve external packages as external repositories or from vendor/.",
        ),
        click.option("--build-tags", default=None, help="Comma-separated build tags."),
        click.option(
            "--go-repository-mode",
            is_flag=True,
            default=None,
            help="Set when run on behalf of an external repository rule.",
        ),
        click.option(
            "--go-repository-module-mode",
            is_flag=True,
            default=None,
            help="Set when run on behalf of an external repository in module mode.",
        ),
        click.option(
            "--go-naming-convention",
            default=None,
            help="go_default_library, import or import_alias.",
        ),
        click.option(
            "--go-proto-compiler",
            "go_proto_compilers",
            multiple=True,
            help="go_proto_library compiler (may be repeated).",
        ),
        click.option(
            "--go-grpc-compiler",
            "go_grpc_compilers",
            multiple=True,
            help="go_proto_library compiler for gRPC (may be repeated).",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load(repo_root: Path | None, overrides: dict[str, Any]) -> Settings:
    from buildweave.config.settings import ConfigError, load_settings

    try:
        return load_settings(repo_root, **overrides)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


def _run_update(
    *,
    repo_root: Path | None,
    fix: bool,
    dry_run: bool,
    fmt: str | None,
    overrides: dict[str, Any],
) -> None:
    from buildweave.config.settings import ConfigError
    from buildweave.update import format_json, format_porcelain, format_rich, update

    settings = _load(repo_root, overrides)

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = update(settings, fix=fix, dry_run=dry_run)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)


_FORMAT_OPTION = click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich on a TTY, porcelain otherwise).",
)
_DRY_RUN_OPTION = click.option(
    "--dry-run", is_flag=True, default=False, help="Report changes without writing files."
)


@main.command("update")
@_root_options
@click.option("--fix", is_flag=True, default=False, help="Also migrate deprecated rule shapes.")
@_DRY_RUN_OPTION
@_FORMAT_OPTION
def update_cmd(
    *, repo_root: Path | None, fix: bool, dry_run: bool, fmt: str | None, **overrides: Any
) -> None:
    """Generate rules and merge them into existing rule files.

    Exit codes: 0 = success, 2 = configuration error.
    """
    _run_update(repo_root=repo_root, fix=fix, dry_run=dry_run, fmt=fmt, overrides=overrides)


@main.command("fix")
@_root_options
@_DRY_RUN_OPTION
@_FORMAT_OPTION
def fix_cmd(*, repo_root: Path | None, dry_run: bool, fmt: str | None, **overrides: Any) -> None:
    """Like update, but first migrate deprecated rule shapes."""
    _run_update(repo_root=repo_root, fix=True, dry_run=dry_run, fmt=fmt, overrides=overrides)


@main.command("config")
@_root_options
@click.option("--dir", "only_dir", default=None, help="Show a single directory (repo-relative).")
def config_cmd(*, repo_root: Path | None, only_dir: str | None, **overrides: Any) -> None:
    """Show the effective configuration of every directory."""
    from rich.console import Console
    from rich.table import Table

    from buildweave.config.settings import ConfigError, root_config
    from buildweave.config.walker import walk

    settings = _load(repo_root, overrides)
    table = Table(title="Effective configuration")
    for column in ("dir", "prefix", "importmap", "tags", "naming", "deps", "module", "proto"):
        table.add_column(column)

    try:
        for info in walk(root_config(settings)):
            if only_dir is not None and info.rel != only_dir.strip("/"):
                continue
            go = info.config.go
            proto = ", ".join(go.proto_compilers) if go.generate_proto else "off"
            table.add_row(
                info.rel or ".",
                go.prefix,
                go.import_map_prefix,
                ",".join(sorted(go.build_tags)),
                go.naming_convention.value,
                go.dep_mode.value,
                "yes" if go.module_mode else "no",
                proto,
            )
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    Console().print(table)
