"""Name-based exclusion policy for scanned files and directories."""

from __future__ import annotations

import fnmatch
from pathlib import PurePosixPath

OS_METADATA_FILES = frozenset({".ds_store", "thumbs.db", "desktop.ini"})
GENERATED_NAME_MARKERS = (".min.", ".bundle.", ".chunk.")
GPU_BINARY_MARKERS = (
    ".cubin.",
    "_cubin.",
    ".ptx.",
    "_ptx.",
    ".fatbin.",
    "_fatbin.",
    "cubin.cpp",
    "ptx.cpp",
)


def is_gpu_binary_artifact(relative_path: str) -> bool:
    """Return True for generated CUDA binary intermediates."""
    basename = PurePosixPath(relative_path).name.lower()
    return any(marker in basename for marker in GPU_BINARY_MARKERS)


def is_junk_file(relative_path: str) -> bool:
    """Return True for OS metadata, minified, bundled, or GPU-binary files."""
    basename = PurePosixPath(relative_path).name.lower()
    if basename in OS_METADATA_FILES:
        return True
    if any(marker in basename for marker in GENERATED_NAME_MARKERS):
        return True
    return is_gpu_binary_artifact(relative_path)


def should_exclude(relative_path: str, ignore_globs: tuple[str, ...]) -> bool:
    """Return True when a path matches configured ignore globs."""
    anchored = f"/{relative_path}"
    return any(
        fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(anchored, pattern)
        for pattern in ignore_globs
    )


def has_ignored_segment(relative_path: str, ignored_directories: frozenset[str]) -> bool:
    """Return True when any directory segment of the path is ignored by name."""
    segments = relative_path.split("/")[:-1]
    return any(segment in ignored_directories for segment in segments)
