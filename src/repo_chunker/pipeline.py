"""Scan, hash, diff and chunk a workspace, with persistent incremental state."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from repo_chunker.config import ChunkerConfig
from repo_chunker.dispatch import ChunkTask, Dispatcher, DispatchStats
from repo_chunker.index.discovery import scan_workspace
from repo_chunker.index.merkle import build_merkle_tree, diff_trees, load_tree_file
from repo_chunker.index.value_filter import value_analysis
from repo_chunker.index.models import (
    ChangeKind,
    Chunk,
    FileChange,
    MerkleTree,
    ScanResult,
)

logger = logging.getLogger(__name__)

INDEX_SCHEMA_VERSION = 1


@dataclass(slots=True, frozen=True)
class IndexResult:
    """Everything one indexing run produced."""

    scan: ScanResult
    tree: MerkleTree
    chunks: tuple[Chunk, ...]
    changes: tuple[FileChange, ...]
    dispatch: DispatchStats

    @property
    def root_hash(self) -> str:
        return self.tree.root_hash

    def change_counts(self) -> dict[str, int]:
        return count_changes(self.changes)


def count_changes(changes: Iterable[FileChange]) -> dict[str, int]:
    """Count changes by kind."""
    counts = {str(kind): 0 for kind in ChangeKind}
    for change in changes:
        counts[str(change.kind)] += 1
    return counts


def build_tasks(scan: ScanResult, paths: Iterable[str] | None = None) -> list[ChunkTask]:
    """Build chunk tasks for scanned files, optionally limited to ``paths``."""
    selected = set(paths) if paths is not None else None
    tasks: list[ChunkTask] = []
    for item in scan.files:
        if selected is not None and item.record.path not in selected:
            continue
        tasks.append(
            ChunkTask(
                path=item.record.path,
                workspace_root=scan.workspace_root,
                content=item.content,
                is_binary=item.record.is_binary,
            )
        )
    return tasks


def index_workspace(
    config: ChunkerConfig,
    previous_tree: MerkleTree | None = None,
    *,
    dispatcher: Dispatcher | None = None,
) -> IndexResult:
    """Run one full pass: scan, build the tree, then chunk every file.

    ``previous_tree`` enables hash reuse for unchanged files and is the
    baseline for the reported changes.
    """
    scan = scan_workspace(config, previous_tree.files if previous_tree is not None else None)
    tree = build_merkle_tree(scan.records, workspace=scan.workspace_root)
    changes = tuple(diff_trees(previous_tree, tree))
    runner = dispatcher or Dispatcher(config)
    chunks = runner.process(build_tasks(scan))
    return IndexResult(
        scan=scan,
        tree=tree,
        chunks=tuple(chunks),
        changes=changes,
        dispatch=runner.stats,
    )


@dataclass(slots=True, frozen=True)
class IndexStatus:
    """Current index status snapshot."""

    index_status: str
    last_refresh_timestamp: str | None
    indexed_file_count: int
    indexed_chunk_count: int
    root_hash: str | None = None


class IndexSchemaUnsupportedError(Exception):
    """Raised when the stored index schema does not match the supported version."""

    def __init__(self, found: int, expected: int) -> None:
        super().__init__(f"Index schema {found} is not supported (expected {expected}).")
        self.found = found
        self.expected = expected


class IndexManager:
    """Persists the Merkle tree and chunk list and refreshes them incrementally."""

    def __init__(self, config: ChunkerConfig, dispatcher: Dispatcher | None = None) -> None:
        self._config = config
        self._index_dir = config.data_dir / "index"
        self._manifest_path = self._index_dir / "manifest.json"
        self._tree_path = self._index_dir / "merkle.json"
        self._chunks_path = self._index_dir / "chunks.jsonl"
        self._dispatcher = dispatcher or Dispatcher(config)

    def status(self) -> IndexStatus:
        """Return status derived from manifest, if present."""
        manifest = self._read_manifest()
        if manifest is None:
            return IndexStatus(
                index_status="not_indexed",
                last_refresh_timestamp=None,
                indexed_file_count=0,
                indexed_chunk_count=0,
            )
        schema = manifest.get("schema_version")
        if not isinstance(schema, int) or schema != INDEX_SCHEMA_VERSION:
            return IndexStatus(
                index_status="schema_mismatch",
                last_refresh_timestamp=None,
                indexed_file_count=0,
                indexed_chunk_count=0,
            )
        return IndexStatus(
            index_status="ready",
            last_refresh_timestamp=_as_optional_str(manifest.get("last_refresh_timestamp")),
            indexed_file_count=_as_optional_int(manifest.get("indexed_file_count")) or 0,
            indexed_chunk_count=_as_optional_int(manifest.get("indexed_chunk_count")) or 0,
            root_hash=_as_optional_str(manifest.get("root_hash")),
        )

    def load_tree(self) -> MerkleTree | None:
        """Return the persisted tree, or None before the first refresh."""
        if not self._tree_path.exists():
            return None
        return load_tree_file(self._tree_path)

    def load_chunks(self) -> list[Chunk]:
        """Return persisted chunks ordered by path and line."""
        self._require_supported_schema()
        if not self._chunks_path.exists():
            return []
        chunks: list[Chunk] = []
        for obj in self._read_jsonl(self._chunks_path):
            try:
                chunks.append(Chunk.from_dict(obj))
            except (KeyError, TypeError, ValueError):
                continue
        chunks.sort(key=_chunk_sort_key)
        return chunks

    def refresh(self, force: bool = False) -> dict[str, object]:
        """Refresh the index, re-chunking only added and modified files.

        With ``force`` every file is re-read and re-chunked; the previous tree
        is still used as the baseline for the reported change counts.
        """
        start = time.perf_counter()
        previous_tree = self._previous_tree(force)
        previous_chunks = [] if force or previous_tree is None else self.load_chunks()

        scan_started = time.perf_counter()
        reuse_files = None if force or previous_tree is None else previous_tree.files
        scan = scan_workspace(self._config, reuse_files)
        scan_seconds = time.perf_counter() - scan_started

        tree_started = time.perf_counter()
        tree = build_merkle_tree(scan.records, workspace=scan.workspace_root)
        changes = diff_trees(previous_tree, tree)
        tree_seconds = time.perf_counter() - tree_started

        stale_paths = {change.path for change in changes}
        if force:
            rechunk_paths = set(tree.files)
        else:
            rechunk_paths = {
                change.path for change in changes if change.kind is not ChangeKind.DELETED
            }
        kept = [
            chunk
            for chunk in previous_chunks
            if chunk.file_path not in stale_paths and chunk.file_path in tree.files
        ]

        chunk_started = time.perf_counter()
        fresh = self._dispatcher.process(build_tasks(scan, rechunk_paths))
        chunk_seconds = time.perf_counter() - chunk_started
        chunks = sorted([*kept, *fresh], key=_chunk_sort_key)

        timestamp = _utc_now_iso()
        manifest = {
            "schema_version": INDEX_SCHEMA_VERSION,
            "last_refresh_timestamp": timestamp,
            "indexed_file_count": len(tree.files),
            "indexed_chunk_count": len(chunks),
            "root_hash": tree.root_hash,
        }
        write_started = time.perf_counter()
        self._write_all(manifest, tree, chunks)
        write_seconds = time.perf_counter() - write_started

        counts = count_changes(changes)
        logger.info(
            "Refreshed index: %d added, %d modified, %d deleted, %d chunks",
            counts["added"],
            counts["modified"],
            counts["deleted"],
            len(chunks),
        )
        return {
            **counts,
            "root_hash": tree.root_hash,
            "file_count": len(tree.files),
            "chunk_count": len(chunks),
            "rechunked_files": len(rechunk_paths),
            "value": value_analysis(tree.files),
            "scan": scan.stats.to_dict(),
            "errors": [
                {"path": error.path, "kind": str(error.kind), "message": error.message}
                for error in scan.errors
            ],
            "dispatch": self._dispatcher.stats.to_dict(),
            "duration_ms": int((time.perf_counter() - start) * 1000),
            "timestamp": timestamp,
            "refresh_profile": {
                "scan_seconds": scan_seconds,
                "tree_seconds": tree_seconds,
                "chunk_seconds": chunk_seconds,
                "write_seconds": write_seconds,
            },
        }

    def _previous_tree(self, force: bool) -> MerkleTree | None:
        if self._read_manifest() is None:
            return None
        if not force:
            self._require_supported_schema()
            return self.load_tree()
        try:
            return self.load_tree()
        except (KeyError, TypeError, ValueError) as error:
            logger.warning("Ignoring unreadable previous tree: %s", error)
            return None

    def _require_supported_schema(self) -> None:
        manifest = self._read_manifest()
        if manifest is None:
            return
        schema = manifest.get("schema_version")
        if not isinstance(schema, int):
            raise IndexSchemaUnsupportedError(found=-1, expected=INDEX_SCHEMA_VERSION)
        if schema != INDEX_SCHEMA_VERSION:
            raise IndexSchemaUnsupportedError(found=schema, expected=INDEX_SCHEMA_VERSION)

    def _write_all(
        self,
        manifest: dict[str, object],
        tree: MerkleTree,
        chunks: list[Chunk],
    ) -> None:
        self._index_dir.mkdir(parents=True, exist_ok=True)
        self._atomic_write_json(self._tree_path, tree.to_dict())
        self._atomic_write_jsonl(self._chunks_path, [chunk.to_dict() for chunk in chunks])
        self._atomic_write_json(self._manifest_path, manifest)

    def _read_manifest(self) -> dict[str, object] | None:
        if not self._manifest_path.exists():
            return None
        with self._manifest_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def _read_jsonl(path: Path) -> list[dict[str, object]]:
        output: list[dict[str, object]] = []
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                stripped = raw_line.strip()
                if not stripped:
                    continue
                try:
                    obj = json.loads(stripped)
                except json.JSONDecodeError:
                    continue
                if isinstance(obj, dict):
                    output.append(obj)
        return output

    @staticmethod
    def _atomic_write_json(path: Path, payload: dict[str, object]) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, sort_keys=True)
            handle.write("\n")
        tmp.replace(path)

    @staticmethod
    def _atomic_write_jsonl(path: Path, rows: list[dict[str, object]]) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            for row in rows:
                handle.write(json.dumps(row, sort_keys=True))
                handle.write("\n")
        tmp.replace(path)


def _chunk_sort_key(chunk: Chunk) -> tuple[str, int, int]:
    return (chunk.file_path, chunk.start_line, chunk.end_line)


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_optional_int(value: object) -> int | None:
    if isinstance(value, int):
        return value
    return None


def _as_optional_str(value: object) -> str | None:
    if isinstance(value, str):
        return value
    return None
