"""Merger domain — rule matching, merge engine and fix pass."""

from buildweave.merger.fix import FIXES, Fix, FixContext, FixResult, fix_file
from buildweave.merger.match import MergeConflictError, find_rule, match_rule, rule_label
from buildweave.merger.merge import MergeResult, merge_file, merge_rule

__all__ = [
    "FIXES",
    "Fix",
    "FixContext",
    "FixResult",
    "MergeConflictError",
    "MergeResult",
    "find_rule",
    "fix_file",
    "match_rule",
    "merge_file",
    "merge_rule",
    "rule_label",
]
