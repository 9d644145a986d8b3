"""Path safety and exclusion primitives."""

from .paths import (
    WorkspaceError,
    is_root_dir,
    is_within_root,
    normalize_dir_path,
    normalize_path,
    parent_dir,
    parent_of_dir,
    path_depth,
    path_equals,
    resolve_workspace_root,
)
from .policy import (
    has_ignored_segment,
    is_gpu_binary_artifact,
    is_junk_file,
    should_exclude,
)

__all__ = [
    "WorkspaceError",
    "has_ignored_segment",
    "is_gpu_binary_artifact",
    "is_junk_file",
    "is_root_dir",
    "is_within_root",
    "normalize_dir_path",
    "normalize_path",
    "parent_dir",
    "parent_of_dir",
    "path_depth",
    "path_equals",
    "resolve_workspace_root",
    "should_exclude",
]
