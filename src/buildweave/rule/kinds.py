"""Kind metadata: per-kind merge policy and the deprecated-kind alias relation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


@dataclass(frozen=True)
class KindInfo:
    """How rules of one kind are matched, merged and considered empty.

    ``mergeable_attrs`` is the managed attribute set: the generator is
    authoritative over these and nothing else.
    """

    match_any: bool = False
    match_attrs: tuple[str, ...] = ()
    non_empty_attrs: frozenset[str] = frozenset()
    mergeable_attrs: frozenset[str] = frozenset()


@dataclass(frozen=True)
class KindRegistry:
    """Ordered table of managed kinds plus declared kind aliases.

    Declaration order of *infos* doubles as the logical order used when new
    rules are inserted into a file. *aliases* maps a deprecated kind to the
    kind that replaced it; the two are equivalent for matching.
    """

    infos: Mapping[str, KindInfo]
    aliases: Mapping[str, str] = field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:
        return iter(self.infos)

    def __contains__(self, kind: object) -> bool:
        return kind in self.infos

    def canonical(self, kind: str) -> str:
        seen: set[str] = set()
        while kind in self.aliases and kind not in seen:
            seen.add(kind)
            kind = self.aliases[kind]
        return kind

    def equivalent(self, a: str, b: str) -> bool:
        return self.canonical(a) == self.canonical(b)

    def is_deprecated(self, kind: str) -> bool:
        return kind in self.aliases

    def is_managed(self, kind: str) -> bool:
        return self.canonical(kind) in self.infos

    def info(self, kind: str) -> KindInfo:
        return self.infos.get(self.canonical(kind), KindInfo())

    def order(self, kind: str) -> int:
        """Position of *kind* in the table; unmanaged kinds sort last."""
        canonical = self.canonical(kind)
        for i, name in enumerate(self.infos):
            if name == canonical:
                return i
        return len(self.infos)
