"""Path normalization and workspace-scoped path helpers."""

from __future__ import annotations

import os
import posixpath
from pathlib import Path


class WorkspaceError(Exception):
    """Raised when the workspace root cannot be scanned."""

    def __init__(self, reason: str, hint: str) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hint = hint


def normalize_path(path: str) -> str:
    """Normalize separators to forward slashes and collapse redundant segments."""
    if not path:
        return ""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return normalized


def normalize_dir_path(path: str) -> str:
    """Normalize a directory path so it always ends with '/'."""
    if not path:
        return ""
    normalized = normalize_path(path)
    return normalized if normalized.endswith("/") else f"{normalized}/"


def parent_dir(path: str) -> str:
    """Return the normalized parent directory key of a file path."""
    if not path:
        return ""
    return normalize_dir_path(posixpath.dirname(normalize_path(path)) or ".")


def is_root_dir(path: str) -> bool:
    """Return True for the workspace root in any of its spellings."""
    return normalize_path(path) in ("", ".")


def parent_of_dir(dir_path: str) -> str:
    """Return the parent directory key of a directory key ('' for the root)."""
    if not dir_path or is_root_dir(dir_path):
        return ""
    clean = normalize_path(dir_path).rstrip("/")
    if not clean or clean == ".":
        return ""
    return normalize_dir_path(posixpath.dirname(clean) or ".")


def path_depth(path: str) -> int:
    """Count the directory levels of a path."""
    if not path or is_root_dir(path):
        return 0
    return len([part for part in normalize_path(path).split("/") if part not in ("", ".")])


def path_equals(left: str, right: str) -> bool:
    """Compare paths ignoring separator style and trailing slashes."""
    return normalize_path(left).rstrip("/") == normalize_path(right).rstrip("/")


def is_within_root(root: Path, candidate: Path) -> bool:
    """Return True when a resolved candidate lies inside the resolved root."""
    return candidate == root or candidate.is_relative_to(root)


def resolve_workspace_root(workspace_root: Path | str) -> Path:
    """Validate and resolve the workspace root before any traversal."""
    if not str(workspace_root).strip():
        raise WorkspaceError(
            reason="Workspace path is empty.",
            hint="Provide the directory to index.",
        )
    root = Path(workspace_root)
    try:
        stat_ok = root.is_dir()
        exists = root.exists()
    except PermissionError as error:
        raise WorkspaceError(
            reason=f"Permission denied to access workspace: {root}",
            hint="Check directory permissions.",
        ) from error
    if not exists:
        raise WorkspaceError(
            reason=f"Workspace path does not exist: {root}",
            hint="Provide an existing directory.",
        )
    if not stat_ok:
        raise WorkspaceError(
            reason=f"Path is not a directory: {root}",
            hint="Provide a directory, not a file.",
        )
    if not os.access(root, os.R_OK | os.X_OK):
        raise WorkspaceError(
            reason=f"No read permission for workspace: {root}",
            hint="Check directory permissions.",
        )
    return root.resolve()
