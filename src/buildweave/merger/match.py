"""Rule matching shared by the merge engine and the fix pass."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from buildweave.rule.kinds import KindRegistry
    from buildweave.rule.model import Rule


class MergeConflictError(ValueError):
    """A candidate cannot be matched unambiguously against existing rules."""

    def __init__(self, message: str, rules: Sequence[Rule] = ()) -> None:
        super().__init__(message)
        self.rules: tuple[Rule, ...] = tuple(rules)


def rule_label(rule: Rule) -> str:
    return f"{rule.kind}({rule.name})"


def find_rule(
    rules: Sequence[Rule], kind: str, name: str, registry: KindRegistry
) -> Rule | None:
    """First rule named *name* whose kind is equivalent to *kind*."""
    for rule in rules:
        if rule.name == name and registry.equivalent(rule.kind, kind):
            return rule
    return None


def match_rule(rules: Sequence[Rule], candidate: Rule, registry: KindRegistry) -> Rule | None:
    """Find the existing rule *candidate* should be merged into.

    Matching tries, in order: the same name (the kinds must be equivalent),
    the kind's match attributes the candidate sets, then any lone rule of
    the kind without a keep marker when the kind allows it.

    Returns
    -------
    Rule | None
        The match, or *None* when *candidate* is new.

    Raises
    ------
    MergeConflictError
        When the match is ambiguous or the same-name rule has an
        incompatible kind.
    """
    label = rule_label(candidate)
    info = registry.info(candidate.kind)
    name_matches = [r for r in rules if r.name == candidate.name]
    kind_matches = [r for r in rules if registry.equivalent(r.kind, candidate.kind)]

    if len(name_matches) == 1:
        existing = name_matches[0]
        if not registry.equivalent(existing.kind, candidate.kind):
            msg = f"could not merge {label}: a rule of the same name has kind {existing.kind}"
            raise MergeConflictError(msg, name_matches)
        return existing
    if len(name_matches) > 1:
        msg = f"could not merge {label}: multiple rules have the same name"
        raise MergeConflictError(msg, name_matches)

    for key in info.match_attrs:
        value = candidate.attr(key)
        if value is None:
            continue
        attr_matches = [r for r in kind_matches if r.attr(key) == value]
        if len(attr_matches) == 1:
            return attr_matches[0]
        if len(attr_matches) > 1:
            msg = f"could not merge {label}: multiple rules have {key} = {value!r}"
            raise MergeConflictError(msg, attr_matches)

    if info.match_any:
        open_matches = [r for r in kind_matches if not r.should_keep]
        if len(open_matches) == 1:
            return open_matches[0]
        if len(open_matches) > 1:
            msg = f"could not merge {label}: multiple {candidate.kind} rules with other names"
            raise MergeConflictError(msg, open_matches)

    return None
