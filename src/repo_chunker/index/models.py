"""Typed models for scanning, hashing, and chunking state."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum


@dataclass(slots=True, frozen=True)
class FileRecord:
    """Represents one scanned file."""

    path: str
    content_hash: str
    size: int
    mtime_ns: int
    is_binary: bool = False
    encoding: str | None = None


@dataclass(slots=True, frozen=True)
class ScannedFile:
    """A file record paired with its content.

    ``content`` is decoded text, a binary placeholder, or ``None`` when the
    hash was reused from a previous tree without reading the file.
    """

    record: FileRecord
    content: str | None


class ScanErrorKind(StrEnum):
    """Closed set of recoverable per-file failures."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    IS_DIRECTORY = "is_directory"
    TOO_MANY_OPEN_FILES = "too_many_open_files"
    INVALID_ENCODING = "invalid_encoding"
    TOO_LARGE = "too_large"
    OS_ERROR = "os_error"


@dataclass(slots=True, frozen=True)
class ScanError:
    """A file that could not be scanned."""

    path: str
    kind: ScanErrorKind
    message: str


@dataclass(slots=True)
class ScanStats:
    """Counters for one scan run."""

    total_files_scanned: int = 0
    processed_files: int = 0
    skipped_files: int = 0
    failed_files: int = 0
    skipped_directories: int = 0
    skipped_symlinks: int = 0

    def to_dict(self) -> dict[str, int]:
        """Return counters as a plain dict."""
        return asdict(self)


@dataclass(slots=True, frozen=True)
class ScanResult:
    """Files, errors, and counters produced by one traversal."""

    workspace_root: str
    files: tuple[ScannedFile, ...]
    errors: tuple[ScanError, ...]
    stats: ScanStats

    @property
    def records(self) -> tuple[FileRecord, ...]:
        """Return the file records in discovery order."""
        return tuple(item.record for item in self.files)

    @property
    def file_list(self) -> tuple[str, ...]:
        """Return the relative paths in discovery order."""
        return tuple(item.record.path for item in self.files)

    @property
    def file_hashes(self) -> dict[str, str]:
        """Map relative path to content hash."""
        return {item.record.path: item.record.content_hash for item in self.files}

    @property
    def file_contents(self) -> tuple[str | None, ...]:
        """Return contents aligned with ``file_list``."""
        return tuple(item.content for item in self.files)

    @property
    def file_infos(self) -> dict[str, FileRecord]:
        """Map relative path to its record."""
        return {item.record.path: item.record for item in self.files}


class ChunkType(StrEnum):
    """Semantic category of a chunk."""

    IMPORT = "import"
    CLASS = "class"
    FUNCTION = "function"
    VARIABLE = "variable"
    OTHER = "other"
    DEFAULT = "default"
    FILE = "file"


@dataclass(slots=True, frozen=True)
class Chunk:
    """One bounded-size, line-addressed unit of file content."""

    id: str
    file_path: str
    language: str
    start_line: int
    end_line: int
    content: str
    type: ChunkType
    parser: str
    name: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable mapping."""
        payload: dict[str, object] = {
            "id": self.id,
            "file_path": self.file_path,
            "language": self.language,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "content": self.content,
            "type": str(self.type),
            "parser": self.parser,
        }
        if self.name:
            payload["name"] = self.name
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> Chunk:
        """Rebuild a chunk from ``to_dict`` output."""
        name = payload.get("name")
        return cls(
            id=str(payload["id"]),
            file_path=str(payload["file_path"]),
            language=str(payload["language"]),
            start_line=int(payload["start_line"]),  # type: ignore[arg-type]
            end_line=int(payload["end_line"]),  # type: ignore[arg-type]
            content=str(payload["content"]),
            type=ChunkType(str(payload["type"])),
            parser=str(payload["parser"]),
            name=str(name) if isinstance(name, str) else None,
        )


class ChangeKind(StrEnum):
    """File-level change classification between two trees."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(slots=True, frozen=True)
class FileChange:
    """One changed file between two Merkle trees."""

    path: str
    kind: ChangeKind
    old_hash: str | None = None
    new_hash: str | None = None


@dataclass(slots=True, frozen=True)
class MerkleFileNode:
    """Leaf node wrapping one file hash."""

    hash: str
    size: int
    last_modified: int
    path: str
    parent_path: str
    is_binary: bool = False
    encoding: str | None = None


@dataclass(slots=True, frozen=True)
class MerkleDirectoryNode:
    """Directory node whose hash derives from its children's hashes."""

    hash: str
    file_count: int
    children: tuple[str, ...]
    files: tuple[str, ...]
    subdirs: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class MerkleRoot:
    """Root summary of a tree."""

    hash: str
    timestamp: int
    file_count: int


@dataclass(slots=True)
class MerkleIndex:
    """Derived lookup indexes; recomputable from files."""

    by_extension: dict[str, list[str]] = field(default_factory=dict)
    by_size: dict[str, list[str]] = field(
        default_factory=lambda: {"small": [], "medium": [], "large": []}
    )


@dataclass(slots=True)
class MerkleMetadata:
    """Tree-level metadata."""

    version: str
    created_at: int
    workspace: str
    total_size: int = 0
    tree_depth: int = 0


@dataclass(slots=True)
class MerkleTree:
    """Directory hash tree built from file hashes."""

    root: MerkleRoot
    files: dict[str, MerkleFileNode]
    directories: dict[str, MerkleDirectoryNode]
    index: MerkleIndex
    metadata: MerkleMetadata

    @property
    def root_hash(self) -> str:
        return self.root.hash

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable mapping."""
        return {
            "root": asdict(self.root),
            "files": {path: asdict(node) for path, node in self.files.items()},
            "directories": {
                path: {
                    "hash": node.hash,
                    "file_count": node.file_count,
                    "children": list(node.children),
                    "files": list(node.files),
                    "subdirs": list(node.subdirs),
                }
                for path, node in self.directories.items()
            },
            "index": asdict(self.index),
            "metadata": asdict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> MerkleTree:
        """Rebuild a tree from ``to_dict`` output."""
        root = _as_dict(payload.get("root"), "root")
        files = _as_dict(payload.get("files"), "files")
        directories = _as_dict(payload.get("directories"), "directories")
        index = _as_dict(payload.get("index", {}), "index")
        metadata = _as_dict(payload.get("metadata"), "metadata")
        return cls(
            root=MerkleRoot(
                hash=str(root["hash"]),
                timestamp=int(root["timestamp"]),
                file_count=int(root["file_count"]),
            ),
            files={
                str(path): MerkleFileNode(
                    hash=str(node["hash"]),
                    size=int(node["size"]),
                    last_modified=int(node["last_modified"]),
                    path=str(node["path"]),
                    parent_path=str(node["parent_path"]),
                    is_binary=bool(node.get("is_binary", False)),
                    encoding=None if node.get("encoding") is None else str(node["encoding"]),
                )
                for path, node in files.items()
            },
            directories={
                str(path): MerkleDirectoryNode(
                    hash=str(node["hash"]),
                    file_count=int(node["file_count"]),
                    children=tuple(node["children"]),
                    files=tuple(node["files"]),
                    subdirs=tuple(node["subdirs"]),
                )
                for path, node in directories.items()
            },
            index=MerkleIndex(
                by_extension={str(k): list(v) for k, v in index.get("by_extension", {}).items()},
                by_size={
                    str(k): list(v)
                    for k, v in index.get(
                        "by_size", {"small": [], "medium": [], "large": []}
                    ).items()
                },
            ),
            metadata=MerkleMetadata(
                version=str(metadata["version"]),
                created_at=int(metadata["created_at"]),
                workspace=str(metadata["workspace"]),
                total_size=int(metadata.get("total_size", 0)),
                tree_depth=int(metadata.get("tree_depth", 0)),
            ),
        )


def _as_dict(value: object, name: str) -> dict:
    if not isinstance(value, dict):
        raise ValueError(f"Merkle tree field '{name}' must be an object.")
    return value
