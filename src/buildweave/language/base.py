"""Rule generation interface implemented by language plugins."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from buildweave.config.node import DirConfig
    from buildweave.rule.kinds import KindRegistry
    from buildweave.rule.model import Rule, RuleFile


@dataclass(frozen=True)
class GenerateArgs:
    """Everything a generator may look at for one directory."""

    config: DirConfig
    rel: str
    path: Path
    regular_files: tuple[str, ...]
    subdirs: tuple[str, ...] = ()
    existing: RuleFile | None = None


@dataclass
class GenerateResult:
    """Generated rules plus empty rules naming what is no longer generated."""

    gen: list[Rule] = field(default_factory=list)
    empty: list[Rule] = field(default_factory=list)


class Language(Protocol):
    """A rule generator for one language."""

    name: str

    def kinds(self) -> KindRegistry: ...

    def generate(self, args: GenerateArgs) -> GenerateResult: ...
