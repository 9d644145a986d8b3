"""Scanning, hashing, Merkle tree and chunking primitives."""

from .chunking import build_chunk_id, enforce_size_ceiling, make_chunk, split_generic
from .classifier import Classification, classify
from .discovery import TreeWalker, scan_workspace
from .merkle import build_merkle_tree, compute_root_hash, diff_trees, load_tree_file
from .models import (
    ChangeKind,
    Chunk,
    ChunkType,
    FileChange,
    FileRecord,
    MerkleTree,
    ScanError,
    ScanErrorKind,
    ScannedFile,
    ScanResult,
    ScanStats,
)
from .value_filter import is_valuable, value_analysis, value_score

__all__ = [
    "ChangeKind",
    "Chunk",
    "ChunkType",
    "Classification",
    "FileChange",
    "FileRecord",
    "MerkleTree",
    "ScanError",
    "ScanErrorKind",
    "ScanResult",
    "ScanStats",
    "ScannedFile",
    "TreeWalker",
    "build_chunk_id",
    "build_merkle_tree",
    "classify",
    "compute_root_hash",
    "diff_trees",
    "enforce_size_ceiling",
    "is_valuable",
    "load_tree_file",
    "make_chunk",
    "scan_workspace",
    "split_generic",
    "value_analysis",
    "value_score",
]
