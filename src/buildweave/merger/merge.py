"""Merge engine: reconcile freshly generated rules with an existing rule file.

Policy, per managed kind:

- a candidate matching an existing rule updates that rule's managed
  (mergeable) attributes; managed attributes the candidate omits are removed;
  every other attribute is left exactly as it was, present or absent;
- a candidate without a match is inserted whole, unless it is empty;
- a second candidate with the (kind, name) of an earlier new rule is a
  conflict;
- an existing managed rule that no candidate matches is deleted, unless it
  carries a keep marker;
- a merged rule left without managed values and without any other
  attribute is deleted;
- rules of unmanaged kinds are never touched and keep their position.

New rules are placed right after the last managed rule that sorts before
them by (kind order, name), or before the first managed rule when none
does; a file without managed rules gets them appended. Since a rule that
already exists is always matched rather than inserted, merging the same
candidates into the output again changes nothing.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildweave.merger.match import MergeConflictError, find_rule, match_rule, rule_label
from buildweave.rule.model import Attr, Rule, RuleFile

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from buildweave.rule.kinds import KindInfo, KindRegistry

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged rule file plus what happened to each rule."""

    file: RuleFile
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deleted)


def merge_rule(src: Rule, dst: Rule, info: KindInfo) -> bool:
    """Merge candidate *src* into existing *dst* in place.

    Returns True when *dst* changed. A *dst* carrying a keep marker is left
    alone, as is any attribute carrying its own keep marker.
    """
    if dst.should_keep:
        return False
    changed = False

    if dst.kind != src.kind:
        dst.kind = src.kind
        changed = True

    for key in list(dst.attrs):
        if key in info.mergeable_attrs and key not in src.attrs and not dst.attrs[key].keep:
            dst.del_attr(key)
            changed = True

    for key, attr in src.attrs.items():
        if key not in info.mergeable_attrs:
            continue
        current = dst.attrs.get(key)
        if current is None:
            dst.attrs[key] = Attr(copy.deepcopy(attr.value), list(attr.comments))
            changed = True
        elif not current.keep and current.value != attr.value:
            current.value = copy.deepcopy(attr.value)
            changed = True
    return changed


def _is_empty(rule: Rule, info: KindInfo) -> bool:
    return not rule.attrs or rule.is_empty(info.non_empty_attrs)


def _is_abandoned(rule: Rule, info: KindInfo) -> bool:
    manual = [key for key in rule.attrs if key not in info.mergeable_attrs]
    return _is_empty(rule, info) and not manual


def _sort_key(rule: Rule, registry: KindRegistry) -> tuple[int, str]:
    return registry.order(rule.kind), rule.name


def _insert(rules: list[Rule], new: Rule, registry: KindRegistry) -> None:
    key = _sort_key(new, registry)
    managed = [i for i, r in enumerate(rules) if registry.is_managed(r.kind)]
    if not managed:
        rules.append(new)
        return
    before = [i for i in managed if _sort_key(rules[i], registry) <= key]
    if before:
        rules.insert(before[-1] + 1, new)
    else:
        rules.insert(managed[0], new)


def merge_file(
    existing: RuleFile | None,
    candidates: Sequence[Rule],
    registry: KindRegistry,
    *,
    empty: Iterable[Rule] = (),
    rel: str = "",
) -> MergeResult:
    """Merge generated rules into a directory's rule file.

    Parameters
    ----------
    existing:
        The rule file currently on disk, or *None*. It is not modified.
    candidates:
        Rules the generator produced for the directory, in order.
    registry:
        Managed kinds with their merge policy and kind aliases.
    empty:
        Rules the generator could have produced but did not; matching
        existing rules are emptied and then deleted.
    rel:
        Directory of a new file when *existing* is *None*.

    Returns
    -------
    MergeResult
        The merged file and per-rule outcome lists (rule labels).
    """
    merged = existing.clone() if existing is not None else RuleFile(rel=rel)
    result = MergeResult(file=merged)
    where = merged.rel or "."

    matched: set[int] = set()
    protected: set[int] = set()

    for rule in empty:
        try:
            target = match_rule(merged.rules, rule, registry)
        except MergeConflictError:
            continue
        if target is None or target.should_keep or id(target) in matched:
            continue
        merge_rule(rule, target, registry.info(rule.kind))

    new_rules: list[Rule] = []
    for candidate in candidates:
        info = registry.info(candidate.kind)
        try:
            target = match_rule(merged.rules, candidate, registry)
            if target is not None and id(target) in matched:
                msg = (
                    f"could not merge {rule_label(candidate)}: "
                    f"{rule_label(target)} already merged"
                )
                raise MergeConflictError(msg, [target])
            duplicate = find_rule(new_rules, candidate.kind, candidate.name, registry)
            if target is None and duplicate is not None:
                msg = f"could not merge {rule_label(candidate)}: generated more than once"
                raise MergeConflictError(msg)
        except MergeConflictError as exc:
            logger.warning("%s: %s", where, exc)
            result.conflicts.append(rule_label(candidate))
            protected.update(id(r) for r in exc.rules)
            continue

        if target is None:
            if not _is_empty(candidate, info):
                new_rules.append(copy.deepcopy(candidate))
            continue

        matched.add(id(target))
        if target.should_keep:
            continue
        if merge_rule(candidate, target, info):
            result.updated.append(rule_label(target))

    for rule in sorted(new_rules, key=lambda r: _sort_key(r, registry)):
        _insert(merged.rules, rule, registry)
        matched.add(id(rule))
        result.created.append(rule_label(rule))

    survivors: list[Rule] = []
    for rule in merged.rules:
        if not registry.is_managed(rule.kind) or id(rule) in protected:
            survivors.append(rule)
        elif rule.should_keep:
            result.kept.append(rule_label(rule))
            survivors.append(rule)
        elif id(rule) not in matched or _is_abandoned(rule, registry.info(rule.kind)):
            result.deleted.append(rule_label(rule))
        else:
            survivors.append(rule)
    merged.rules = survivors

    if result.deleted:
        result.updated = [u for u in result.updated if u not in result.deleted]
    return result
