"""Rule file model: rules, attributes, comments, keep markers and directives."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

# Attribute values: string, label (a string), string list, boolean, int,
# or a nested list of rule-like mappings.
AttrValue = Union[str, bool, int, list[str], list[dict[str, object]]]

DIRECTIVE_MARKER = "buildweave:"

_DIRECTIVE_RE = re.compile(r"^#?\s*buildweave:(\w+)\s*(.*?)\s*$")


def is_keep_comment(text: str) -> bool:
    """Return True for ``keep`` and ``keep: <reason>`` comments."""
    body = text.strip().lstrip("#").strip()
    return body == "keep" or body.startswith("keep:")


@dataclass(frozen=True)
class Directive:
    """A ``buildweave:<key> <value>`` comment found in a rule file."""

    key: str
    value: str


def extract_directives(comments: Iterable[str]) -> tuple[Directive, ...]:
    """Return directives found in *comments*, in file order."""
    found: list[Directive] = []
    for line in comments:
        m = _DIRECTIVE_RE.match(line.strip())
        if m:
            found.append(Directive(key=m.group(1), value=m.group(2)))
    return tuple(found)


@dataclass
class Attr:
    """An attribute value plus the comments attached to it."""

    value: AttrValue
    comments: list[str] = field(default_factory=list)

    @property
    def keep(self) -> bool:
        return any(is_keep_comment(c) for c in self.comments)


@dataclass
class Rule:
    """A named, kinded build target with ordered attributes."""

    kind: str
    name: str
    attrs: dict[str, Attr] = field(default_factory=dict)
    comments: list[str] = field(default_factory=list)

    @classmethod
    def new(cls, kind: str, name: str, **attrs: AttrValue | None) -> Rule:
        """Build a rule from keyword attributes, skipping ``None`` values."""
        return cls(
            kind=kind,
            name=name,
            attrs={k: Attr(v) for k, v in attrs.items() if v is not None},
        )

    @property
    def should_keep(self) -> bool:
        """True when the rule carries a rule-level keep marker."""
        return any(is_keep_comment(c) for c in self.comments)

    def attr(self, key: str) -> AttrValue | None:
        a = self.attrs.get(key)
        return a.value if a is not None else None

    def attr_string(self, key: str) -> str:
        value = self.attr(key)
        return value if isinstance(value, str) else ""

    def attr_list(self, key: str) -> list[str]:
        value = self.attr(key)
        if isinstance(value, list):
            return [v for v in value if isinstance(v, str)]
        return []

    def set_attr(self, key: str, value: AttrValue) -> None:
        """Set *key*, keeping comments already attached to it."""
        existing = self.attrs.get(key)
        if existing is None:
            self.attrs[key] = Attr(copy.deepcopy(value))
        else:
            existing.value = copy.deepcopy(value)

    def del_attr(self, key: str) -> None:
        self.attrs.pop(key, None)

    def is_empty(self, non_empty_attrs: frozenset[str]) -> bool:
        """True when none of *non_empty_attrs* carries a non-empty value."""
        if not non_empty_attrs:
            return False
        for key in non_empty_attrs:
            value = self.attr(key)
            if value not in (None, "", []):
                return False
        return True


@dataclass
class RuleFile:
    """One directory's rule file: file-level comments and ordered rules."""

    rel: str
    path: Path | None = None
    comments: list[str] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)

    @property
    def directives(self) -> tuple[Directive, ...]:
        return extract_directives(self.comments)

    def clone(self) -> RuleFile:
        return copy.deepcopy(self)

    def rules_named(self, name: str) -> list[Rule]:
        return [r for r in self.rules if r.name == name]
