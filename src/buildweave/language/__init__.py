"""Language domain — the rule generation interface and the Go generator."""

from buildweave.language.base import GenerateArgs, GenerateResult, Language
from buildweave.language.golang import GO_KINDS, GoLanguage, TargetNames, target_names

__all__ = [
    "GO_KINDS",
    "GenerateArgs",
    "GenerateResult",
    "GoLanguage",
    "Language",
    "TargetNames",
    "target_names",
]
