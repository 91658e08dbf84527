"""Rule domain — rule file model, kind metadata, and the YAML rule file reader/writer."""

from buildweave.rule.buildfile import (
    BuildFileError,
    dump_build_file,
    find_build_file,
    load_build_file,
    parse_build_file,
    write_build_file,
)
from buildweave.rule.kinds import KindInfo, KindRegistry
from buildweave.rule.model import (
    DIRECTIVE_MARKER,
    Attr,
    AttrValue,
    Directive,
    Rule,
    RuleFile,
    extract_directives,
    is_keep_comment,
)

__all__ = [
    "DIRECTIVE_MARKER",
    "Attr",
    "AttrValue",
    "BuildFileError",
    "Directive",
    "KindInfo",
    "KindRegistry",
    "Rule",
    "RuleFile",
    "dump_build_file",
    "extract_directives",
    "find_build_file",
    "is_keep_comment",
    "load_build_file",
    "parse_build_file",
    "write_build_file",
]
