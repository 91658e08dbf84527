"""Update orchestrator: walk, fix, generate, merge, then write rule files."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildweave.config.settings import root_config
from buildweave.config.walker import walk
from buildweave.language.base import GenerateArgs
from buildweave.language.golang import GoLanguage
from buildweave.merger.fix import fix_file
from buildweave.merger.merge import MergeResult, merge_file
from buildweave.rule.buildfile import write_build_file

if TYPE_CHECKING:
    from pathlib import Path

    from buildweave.config.node import DirConfig
    from buildweave.config.settings import Settings
    from buildweave.language.base import Language

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update", "delete", "unchanged", "skipped")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class DirChange:
    """Planned outcome for one directory's rule file."""

    rel: str
    path: Path
    action: str  # one of ACTIONS
    merge: MergeResult | None = None
    fixes: list[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class UpdateResult:
    """Result of an update run."""

    changes: list[DirChange] = field(default_factory=list)
    directories: int = 0
    elapsed_ms: float = 0.0
    dry_run: bool = False

    @property
    def modified(self) -> list[DirChange]:
        return [c for c in self.changes if c.action in ("create", "update", "delete")]

    @property
    def conflicts(self) -> list[str]:
        return [
            f"{c.rel or '.'}: {label}"
            for c in self.changes
            if c.merge is not None
            for label in c.merge.conflicts
        ]


# ---------------------------------------------------------------------------
# Planning and writing
# ---------------------------------------------------------------------------


def plan_update(
    root: DirConfig,
    language: Language,
    *,
    fix: bool = False,
) -> tuple[list[DirChange], int]:
    """Compute the new content of every rule file without touching disk.

    Returns the planned changes and the number of directories visited.

    Raises
    ------
    ConfigError
        On fatal configuration problems; nothing has been written then.
    """
    registry = language.kinds()
    changes: list[DirChange] = []
    visited = 0

    for info in walk(root):
        visited += 1
        where = info.rel or "."
        if info.build_file_error is not None:
            changes.append(
                DirChange(
                    rel=info.rel,
                    path=info.path,
                    action="skipped",
                    reason=info.build_file_error,
                )
            )
            continue

        existing = info.build_file
        applied: list[str] = []
        if existing is not None:
            fixed = fix_file(existing, info.config, registry)
            if fix:
                existing = fixed.file
                applied = fixed.applied
            elif fixed.applied:
                logger.warning(
                    "%s: deprecated rule shapes found (%s); run `buildweave fix`",
                    where,
                    ", ".join(fixed.applied),
                )

        generated = language.generate(
            GenerateArgs(
                config=info.config,
                rel=info.rel,
                path=info.path,
                regular_files=info.regular_files,
                subdirs=info.subdirs,
                existing=existing,
            )
        )
        merged = merge_file(
            existing, generated.gen, registry, empty=generated.empty, rel=info.rel
        )

        if info.build_file is None:
            if not merged.file.rules:
                continue
            path = info.path / info.config.build_file_names[0]
            merged.file.path = path
            changes.append(
                DirChange(
                    rel=info.rel,
                    path=path,
                    action="create",
                    merge=merged,
                )
            )
            continue

        path = info.build_file.path or info.path / info.config.build_file_names[0]
        if not merged.file.rules and not merged.file.comments:
            action = "delete"
        elif merged.file != info.build_file:
            action = "update"
        else:
            action = "unchanged"
        changes.append(
            DirChange(
                rel=info.rel,
                path=path,
                action=action,
                merge=merged,
                fixes=applied,
            )
        )

    return changes, visited


def apply_changes(changes: list[DirChange]) -> None:
    """Write planned changes to disk, one file at a time."""
    for change in changes:
        if change.action in ("create", "update") and change.merge is not None:
            write_build_file(change.merge.file, change.path)
        elif change.action == "delete":
            change.path.unlink(missing_ok=True)


def update(
    settings: Settings,
    *,
    language: Language | None = None,
    fix: bool = False,
    dry_run: bool = False,
) -> UpdateResult:
    """Bring every rule file under ``settings.repo_root`` up to date.

    Parameters
    ----------
    settings:
        Root defaults (see :func:`buildweave.config.settings.load_settings`).
    language:
        Rule generator; defaults to :class:`GoLanguage`.
    fix:
        When *True*, deprecated rule shapes are migrated before merging.
    dry_run:
        When *True*, nothing is written.

    Returns
    -------
    UpdateResult
        Per-directory changes, counts and timing.

    Raises
    ------
    ConfigError
        On fatal configuration problems, before anything is written.
    """
    start = time.monotonic()
    changes, visited = plan_update(root_config(settings), language or GoLanguage(), fix=fix)
    if not dry_run:
        apply_changes(changes)
    return UpdateResult(
        changes=changes,
        directories=visited,
        elapsed_ms=(time.monotonic() - start) * 1000,
        dry_run=dry_run,
    )


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def format_rich(result: UpdateResult) -> str:
    """Format an UpdateResult as human-readable text.

    Example output::

        + cmd/tool/BUILD.yml (go_library(tool_lib), go_binary(tool))
        ~ pkg/BUILD.yml (updated: go_library(pkg); deleted: go_test(old_test))
        - legacy/BUILD.yml

        3 files changed (12 directories, 0.1s)
    """
    lines: list[str] = []
    symbols = {"create": "+", "update": "~", "delete": "-", "skipped": "!"}
    for change in result.changes:
        symbol = symbols.get(change.action)
        if symbol is None:
            continue
        line = f"{symbol} {change.path}"
        details: list[str] = []
        if change.action == "skipped":
            details.append(change.reason)
        elif change.merge is not None and change.action != "delete":
            m = change.merge
            if change.action == "create":
                details.append(", ".join(m.created))
            else:
                for label, items in (
                    ("fixed", change.fixes),
                    ("created", m.created),
                    ("updated", m.updated),
                    ("deleted", m.deleted),
                ):
                    if items:
                        details.append(f"{label}: {', '.join(items)}")
        if details:
            line += f" ({'; '.join(details)})"
        lines.append(line)

    for conflict in result.conflicts:
        lines.append(f"✗ conflict {conflict}")

    elapsed = f"{result.elapsed_ms / 1000:.1f}s"
    count = len(result.modified)
    verb = "would change" if result.dry_run else "changed"
    if lines:
        lines.append("")
    if count:
        lines.append(f"{count} files {verb} ({result.directories} directories, {elapsed})")
    else:
        lines.append(f"✓ Up to date ({result.directories} directories, {elapsed})")
    return "\n".join(lines)


def format_json(result: UpdateResult) -> str:
    """Format an UpdateResult as structured JSON."""
    changes: list[dict[str, object]] = []
    for c in result.changes:
        if c.action == "unchanged":
            continue
        entry: dict[str, object] = {"dir": c.rel, "path": str(c.path), "action": c.action}
        if c.merge is not None:
            entry.update(
                created=c.merge.created,
                updated=c.merge.updated,
                deleted=c.merge.deleted,
                kept=c.merge.kept,
                conflicts=c.merge.conflicts,
            )
        if c.fixes:
            entry["fixes"] = c.fixes
        if c.reason:
            entry["reason"] = c.reason
        changes.append(entry)

    output: dict[str, object] = {
        "changes": changes,
        "summary": {
            "directories": result.directories,
            "files_changed": len(result.modified),
            "conflicts": len(result.conflicts),
            "dry_run": result.dry_run,
            "elapsed_ms": result.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(result: UpdateResult) -> str:
    """One ``action:path`` line per changed or skipped file."""
    return "\n".join(
        f"{c.action}:{c.path}" for c in result.changes if c.action != "unchanged"
    )
