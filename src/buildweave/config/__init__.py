"""Config domain — per-directory configuration, directive catalog, settings and tree walk."""

from buildweave.config.directives import (
    CATALOG,
    DirectiveError,
    DirectiveSpec,
    apply_directives,
    check_prefix,
    parse_bool,
    parse_build_tags,
    split_value,
)
from buildweave.config.node import (
    DEFAULT_GO_GRPC_COMPILERS,
    DEFAULT_GO_PROTO_COMPILERS,
    DependencyMode,
    DirConfig,
    GoConfig,
    ModuleRepo,
    NamingConvention,
    Repository,
    infer_import_map,
    infer_import_path,
)
from buildweave.config.settings import (
    ConfigError,
    Settings,
    find_repo_root,
    load_settings,
    root_config,
)
from buildweave.config.walker import DirInfo, configure, walk

__all__ = [
    "CATALOG",
    "DEFAULT_GO_GRPC_COMPILERS",
    "DEFAULT_GO_PROTO_COMPILERS",
    "ConfigError",
    "DependencyMode",
    "DirConfig",
    "DirInfo",
    "DirectiveError",
    "DirectiveSpec",
    "GoConfig",
    "ModuleRepo",
    "NamingConvention",
    "Repository",
    "Settings",
    "apply_directives",
    "check_prefix",
    "configure",
    "find_repo_root",
    "infer_import_map",
    "infer_import_path",
    "load_settings",
    "parse_bool",
    "parse_build_tags",
    "root_config",
    "split_value",
    "walk",
]
