"""YAML rule file reader/writer.

A rule file looks like::

    comments:
      - "buildweave:prefix example.com/repo"
    rules:
      - kind: go_library
        name: repo
        comments: ["keep"]
        attrs:
          srcs: [a.go, b.go]
          importpath: example.com/repo
        attr_comments:
          importpath: ["keep"]

File-level ``comments`` carry directives; ``comments`` on a rule or in
``attr_comments`` carry keep markers and free text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from buildweave.rule.model import Attr, Rule, RuleFile

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

_RULE_KEYS = frozenset({"kind", "name", "comments", "attrs", "attr_comments"})


class BuildFileError(Exception):
    """Raised when a rule file cannot be read or has an invalid shape."""


def find_build_file(directory: Path, names: Sequence[str]) -> Path | None:
    """Return the first existing rule file in *directory* among *names*."""
    for name in names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def _string_list(value: object, context: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    msg = f"{context}: expected a string or a list of strings"
    raise BuildFileError(msg)


def _check_value(value: object, context: str) -> None:
    if isinstance(value, (str, bool, int)):
        return
    if isinstance(value, list) and all(isinstance(v, (str, dict)) for v in value):
        return
    msg = f"{context}: unsupported attribute value {value!r}"
    raise BuildFileError(msg)


def _parse_rule(data: object, context: str) -> Rule:
    if not isinstance(data, dict):
        msg = f"{context}: rule must be a mapping"
        raise BuildFileError(msg)
    unknown = set(data) - _RULE_KEYS
    if unknown:
        msg = f"{context}: unknown rule keys {sorted(unknown)}"
        raise BuildFileError(msg)
    kind = data.get("kind")
    name = data.get("name")
    if not isinstance(kind, str) or not kind:
        msg = f"{context}: rule needs a 'kind'"
        raise BuildFileError(msg)
    if not isinstance(name, str) or not name:
        msg = f"{context}: {kind} rule needs a 'name'"
        raise BuildFileError(msg)

    raw_attrs = data.get("attrs") or {}
    raw_attr_comments = data.get("attr_comments") or {}
    if not isinstance(raw_attrs, dict) or not isinstance(raw_attr_comments, dict):
        msg = f"{context}: 'attrs' and 'attr_comments' must be mappings"
        raise BuildFileError(msg)

    attrs: dict[str, Attr] = {}
    for key, value in raw_attrs.items():
        where = f"{context}: {kind}({name}).{key}"
        _check_value(value, where)
        attrs[str(key)] = Attr(value, _string_list(raw_attr_comments.get(key), where))

    return Rule(
        kind=kind,
        name=name,
        attrs=attrs,
        comments=_string_list(data.get("comments"), f"{context}: {kind}({name})"),
    )


def parse_build_file(text: str, rel: str, path: Path | None = None) -> RuleFile:
    """Parse rule file *text* belonging to directory *rel*."""
    where = str(path) if path is not None else (rel or ".")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"{where}: invalid YAML: {exc}"
        raise BuildFileError(msg) from exc

    if data is None:
        return RuleFile(rel=rel, path=path)
    if not isinstance(data, dict):
        msg = f"{where}: top level must be a mapping"
        raise BuildFileError(msg)

    raw_rules = data.get("rules") or []
    if not isinstance(raw_rules, list):
        msg = f"{where}: 'rules' must be a list"
        raise BuildFileError(msg)

    return RuleFile(
        rel=rel,
        path=path,
        comments=_string_list(data.get("comments"), where),
        rules=[_parse_rule(r, f"{where}: rules[{i}]") for i, r in enumerate(raw_rules)],
    )


def load_build_file(path: Path, rel: str) -> RuleFile:
    """Read and parse the rule file at *path*."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"{path}: cannot read rule file: {exc}"
        raise BuildFileError(msg) from exc
    return parse_build_file(text, rel, path)


def _rule_to_dict(rule: Rule) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": rule.kind, "name": rule.name}
    if rule.comments:
        out["comments"] = list(rule.comments)
    if rule.attrs:
        out["attrs"] = {key: attr.value for key, attr in rule.attrs.items()}
    attr_comments = {key: list(a.comments) for key, a in rule.attrs.items() if a.comments}
    if attr_comments:
        out["attr_comments"] = attr_comments
    return out


def dump_build_file(rule_file: RuleFile) -> str:
    """Serialize *rule_file* to YAML text."""
    data: dict[str, Any] = {}
    if rule_file.comments:
        data["comments"] = list(rule_file.comments)
    data["rules"] = [_rule_to_dict(r) for r in rule_file.rules]
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def write_build_file(rule_file: RuleFile, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_build_file(rule_file), encoding="utf-8")
