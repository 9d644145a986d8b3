"""Bottom-up directory hash tree and tree-to-tree change detection."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from repo_chunker.index.models import (
    ChangeKind,
    FileChange,
    FileRecord,
    MerkleDirectoryNode,
    MerkleFileNode,
    MerkleIndex,
    MerkleMetadata,
    MerkleRoot,
    MerkleTree,
)
from repo_chunker.security import is_root_dir, parent_dir, parent_of_dir, path_depth

logger = logging.getLogger(__name__)

MERKLE_VERSION = "2.0"
SMALL_FILE_BYTES = 10 * 1024
MEDIUM_FILE_BYTES = 100 * 1024
NO_EXTENSION = "no_extension"


def compute_root_hash(file_hashes: Iterable[str]) -> str:
    """Hash file hashes concatenated in the given order."""
    digest = hashlib.sha256()
    for value in file_hashes:
        digest.update(value.encode("ascii"))
    return digest.hexdigest()


def combine_child_hashes(child_hashes: Iterable[str]) -> str:
    """Hash a directory's child hashes in sorted order."""
    return hashlib.sha256("".join(sorted(child_hashes)).encode("ascii")).hexdigest()


def size_bucket(size: int) -> str:
    if size < SMALL_FILE_BYTES:
        return "small"
    if size < MEDIUM_FILE_BYTES:
        return "medium"
    return "large"


def build_merkle_tree(
    records: Iterable[FileRecord],
    workspace: str,
    now: int | None = None,
) -> MerkleTree:
    """Build a directory hash tree from file records.

    The result depends only on the set of (path, hash) pairs, never on the
    order records are supplied in. The workspace root itself is summarized by
    ``root`` and does not appear in ``directories``.
    """
    timestamp = now if now is not None else int(time.time() * 1000)
    ordered = sorted(records, key=lambda item: item.path)

    files: dict[str, MerkleFileNode] = {}
    direct_files: dict[str, list[str]] = defaultdict(list)
    subdirs: dict[str, set[str]] = defaultdict(set)
    index = MerkleIndex()
    total_size = 0
    for record in ordered:
        parent = parent_dir(record.path)
        files[record.path] = MerkleFileNode(
            hash=record.content_hash,
            size=record.size,
            last_modified=record.mtime_ns,
            path=record.path,
            parent_path=parent,
            is_binary=record.is_binary,
            encoding=record.encoding,
        )
        direct_files[parent].append(record.path)
        child = parent
        while not is_root_dir(child):
            above = parent_of_dir(child)
            subdirs[above].add(child)
            child = above
        suffix = PurePosixPath(record.path).suffix.lower() or NO_EXTENSION
        index.by_extension.setdefault(suffix, []).append(record.path)
        index.by_size[size_bucket(record.size)].append(record.path)
        total_size += record.size

    all_directories = {key for key in (*direct_files, *subdirs) if not is_root_dir(key)}
    directories: dict[str, MerkleDirectoryNode] = {}
    for key in sorted(all_directories, key=lambda item: (-path_depth(item), item)):
        child_hashes: list[str] = []
        file_count = len(direct_files.get(key, ()))
        for path in direct_files.get(key, ()):
            child_hashes.append(files[path].hash)
        for subdir in sorted(subdirs.get(key, ())):
            node = directories.get(subdir)
            if node is None:
                logger.warning("Missing hash for directory %s; using its key", subdir)
                child_hashes.append(subdir)
                continue
            child_hashes.append(node.hash)
            file_count += node.file_count
        directories[key] = MerkleDirectoryNode(
            hash=combine_child_hashes(child_hashes),
            file_count=file_count,
            children=tuple(sorted((*direct_files.get(key, ()), *subdirs.get(key, ())))),
            files=tuple(direct_files.get(key, ())),
            subdirs=tuple(sorted(subdirs.get(key, ()))),
        )

    ordered_directories = dict(sorted(directories.items()))
    return MerkleTree(
        root=MerkleRoot(
            hash=compute_root_hash(files[path].hash for path in files),
            timestamp=timestamp,
            file_count=len(files),
        ),
        files=files,
        directories=ordered_directories,
        index=index,
        metadata=MerkleMetadata(
            version=MERKLE_VERSION,
            created_at=timestamp,
            workspace=workspace,
            total_size=total_size,
            tree_depth=max((path_depth(key) for key in ordered_directories), default=0),
        ),
    )


def diff_trees(old: MerkleTree | None, new: MerkleTree) -> list[FileChange]:
    """Return added/modified entries sorted by path, then deleted entries."""
    old_files = old.files if old is not None else {}
    changes: list[FileChange] = []
    for path in sorted(new.files):
        current = new.files[path]
        previous = old_files.get(path)
        if previous is None:
            changes.append(FileChange(path=path, kind=ChangeKind.ADDED, new_hash=current.hash))
        elif previous.hash != current.hash:
            changes.append(
                FileChange(
                    path=path,
                    kind=ChangeKind.MODIFIED,
                    old_hash=previous.hash,
                    new_hash=current.hash,
                )
            )
    for path in sorted(old_files):
        if path not in new.files:
            changes.append(
                FileChange(path=path, kind=ChangeKind.DELETED, old_hash=old_files[path].hash)
            )
    return changes


def load_tree_file(path: Path) -> MerkleTree:
    """Read a tree previously written as JSON."""
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Merkle tree file {path} must contain a JSON object.")
    return MerkleTree.from_dict(payload)
