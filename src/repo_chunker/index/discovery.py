"""Deterministic workspace traversal, file classification and hashing."""

from __future__ import annotations

import errno
import logging
import os
import stat as stat_module
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from repo_chunker.config import ChunkerConfig, require_include_extensions
from repo_chunker.index.classifier import binary_payload, binary_placeholder, classify
from repo_chunker.index.models import (
    FileRecord,
    MerkleFileNode,
    ScanError,
    ScanErrorKind,
    ScannedFile,
    ScanResult,
    ScanStats,
)
from repo_chunker.index.value_filter import is_valuable
from repo_chunker.security import (
    has_ignored_segment,
    is_junk_file,
    is_within_root,
    resolve_workspace_root,
    should_exclude,
)

logger = logging.getLogger(__name__)

_READ_BLOCK_BYTES = 1024 * 128


class FileTooLargeError(OSError):
    """Raised when a file grows past the size limit while being read."""


@dataclass(slots=True, frozen=True)
class _Frame:
    """One pending directory on the traversal stack."""

    directory: Path
    prefix: str
    depth: int
    symlink_depth: int
    real_path: Path
    chain: frozenset[Path]


@dataclass(slots=True, frozen=True)
class _PendingLink:
    """A symlink deferred until every real path has been visited."""

    path: Path
    relative: str
    parent: _Frame


class TreeWalker:
    """Walks one workspace and produces a ``ScanResult``.

    Symlinks are resolved after the regular tree so that a file reachable both
    directly and through a link is recorded under its real location.
    """

    def __init__(
        self,
        config: ChunkerConfig,
        previous_files: Mapping[str, MerkleFileNode] | None = None,
    ) -> None:
        self.config = config
        self.previous_files = previous_files or {}
        self._extensions = require_include_extensions(config.scan)
        self._root = resolve_workspace_root(config.workspace_root)
        self._ignored_directories = frozenset(config.scan.ignored_directories)
        self._stack: list[_Frame] = []
        self._pending_links: list[_PendingLink] = []
        self._seen_files: set[Path] = set()
        self._files: list[ScannedFile] = []
        self._errors: list[ScanError] = []
        self._stats = ScanStats()

    def walk(self) -> ScanResult:
        """Traverse the workspace once and return files, errors and counters."""
        self._stack.append(
            _Frame(
                directory=self._root,
                prefix="",
                depth=0,
                symlink_depth=0,
                real_path=self._root,
                chain=frozenset({self._root}),
            )
        )
        while self._stack or self._pending_links:
            if self._stack:
                self._scan_directory(self._stack.pop())
                continue
            pending = self._pending_links.pop(0)
            self._visit_symlink(pending.path, pending.relative, pending.parent)

        files = tuple(sorted(self._files, key=lambda item: item.record.path))
        logger.info(
            "Scanned %s: %d files processed, %d skipped, %d failed",
            self._root,
            self._stats.processed_files,
            self._stats.skipped_files,
            self._stats.failed_files,
        )
        return ScanResult(
            workspace_root=self._root.as_posix(),
            files=files,
            errors=tuple(self._errors),
            stats=self._stats,
        )

    def _scan_directory(self, frame: _Frame) -> None:
        try:
            with os.scandir(frame.directory) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as error:
            logger.warning("Cannot read directory %s: %s", frame.directory, error)
            self._stats.skipped_directories += 1
            return

        subframes: list[_Frame] = []
        for entry in entries:
            relative = f"{frame.prefix}{entry.name}"
            path = Path(entry.path)
            try:
                if entry.is_symlink():
                    if not self.config.scan.follow_symlinks:
                        logger.debug("Skipping symlink %s", relative)
                        self._stats.skipped_symlinks += 1
                        continue
                    self._pending_links.append(_PendingLink(path, relative, frame))
                    continue
                if entry.is_dir(follow_symlinks=False):
                    real_path = path.resolve()
                    child = self._child_frame(frame, path, relative, real_path, is_link=False)
                    if child is not None:
                        subframes.append(child)
                    continue
                if entry.is_file(follow_symlinks=False):
                    self._visit_file(path, relative, path.resolve())
                    continue
            except OSError as error:
                self._record_error(relative, error)
                continue
            logger.debug("Skipping special file %s", relative)
            self._stats.skipped_files += 1
        self._stack.extend(reversed(subframes))

    def _child_frame(
        self,
        parent: _Frame,
        path: Path,
        relative: str,
        real_path: Path,
        *,
        is_link: bool,
    ) -> _Frame | None:
        if not self._accept_directory(path.name, relative, real_path):
            self._stats.skipped_directories += 1
            return None
        depth = parent.depth + 1
        if depth > self.config.scan.max_depth:
            logger.warning(
                "Skipping %s: depth %d exceeds limit %d",
                relative,
                depth,
                self.config.scan.max_depth,
            )
            self._stats.skipped_directories += 1
            return None
        return _Frame(
            directory=path,
            prefix=f"{relative}/",
            depth=depth,
            symlink_depth=parent.symlink_depth + (1 if is_link else 0),
            real_path=real_path,
            chain=parent.chain | {real_path},
        )

    def _accept_directory(self, name: str, relative: str, real_path: Path) -> bool:
        if name in self._ignored_directories:
            logger.debug("Skipping ignored directory %s", relative)
            return False
        if real_path == self.config.data_dir:
            return False
        globs = self.config.scan.ignore_globs
        if should_exclude(f"{relative}/", globs) or should_exclude(relative, globs):
            logger.debug("Skipping directory %s by ignore glob", relative)
            return False
        return True

    def _visit_symlink(self, path: Path, relative: str, parent: _Frame) -> None:
        limit = self.config.scan.max_symlink_depth
        if parent.symlink_depth + 1 > limit:
            self._reject_symlink(relative, f"symlink depth exceeds limit {limit}")
            return
        try:
            target = path.resolve(strict=True)
            target_stat = target.stat()
        except (OSError, RuntimeError):
            self._reject_symlink(relative, "broken link")
            return
        if target == path.absolute():
            self._reject_symlink(relative, "link points to itself")
            return
        if not is_within_root(self._root, target):
            self._reject_symlink(relative, f"target {target} is outside the workspace")
            return
        if stat_module.S_ISDIR(target_stat.st_mode):
            if target in parent.chain or is_within_root(target, parent.real_path):
                self._reject_symlink(relative, f"cycle through {target}")
                return
            child = self._child_frame(parent, path, relative, target, is_link=True)
            if child is not None:
                self._stack.append(child)
            return
        if stat_module.S_ISREG(target_stat.st_mode):
            self._visit_file(path, relative, target)
            return
        self._reject_symlink(relative, "target is not a regular file or directory")

    def _reject_symlink(self, relative: str, reason: str) -> None:
        logger.warning("Skipping symlink %s: %s", relative, reason)
        self._stats.skipped_symlinks += 1

    def _accept_file(self, relative: str) -> bool:
        scan = self.config.scan
        if has_ignored_segment(relative, self._ignored_directories):
            return False
        if PurePosixPath(relative).suffix.lower() not in self._extensions:
            return False
        if is_junk_file(relative):
            return False
        if should_exclude(relative, scan.ignore_globs):
            return False
        if scan.value_filter_enabled and not is_valuable(relative):
            return False
        return True

    def _visit_file(self, path: Path, relative: str, real_path: Path) -> None:
        self._stats.total_files_scanned += 1
        if not self._accept_file(relative):
            logger.debug("Skipping %s by file rules", relative)
            self._stats.skipped_files += 1
            return
        if real_path in self._seen_files:
            logger.debug("Skipping %s: already recorded through another path", relative)
            self._stats.skipped_files += 1
            return
        self._seen_files.add(real_path)

        max_bytes = self.config.scan.max_file_bytes
        try:
            file_stat = path.stat()
        except OSError as error:
            self._record_error(relative, error)
            return
        if file_stat.st_size > max_bytes:
            logger.warning(
                "Skipping %s: %d bytes exceeds limit %d", relative, file_stat.st_size, max_bytes
            )
            self._stats.skipped_files += 1
            return

        previous = self.previous_files.get(relative)
        if (
            previous is not None
            and previous.size == file_stat.st_size
            and previous.last_modified == file_stat.st_mtime_ns
        ):
            if previous.is_binary and not self.config.scan.process_binary_files:
                logger.debug("Skipping binary file %s", relative)
                self._stats.skipped_files += 1
                return
            record = FileRecord(
                path=relative,
                content_hash=previous.hash,
                size=file_stat.st_size,
                mtime_ns=file_stat.st_mtime_ns,
                is_binary=previous.is_binary,
                encoding=previous.encoding,
            )
            self._files.append(ScannedFile(record=record, content=None))
            self._stats.processed_files += 1
            return

        try:
            data = read_bounded(path, max_bytes)
            classification = classify(data, relative)
        except UnicodeDecodeError as error:
            self._record_error(relative, error)
            return
        except OSError as error:
            self._record_error(relative, error)
            return

        if classification.is_binary:
            if not self.config.scan.process_binary_files:
                logger.debug("Skipping binary file %s", relative)
                self._stats.skipped_files += 1
                return
            if self.config.scan.binary_placeholder:
                content = binary_placeholder(relative, classification.size)
            else:
                content = binary_payload(data)
        else:
            content = classification.content

        record = FileRecord(
            path=relative,
            content_hash=classification.hash,
            size=classification.size,
            mtime_ns=file_stat.st_mtime_ns,
            is_binary=classification.is_binary,
            encoding=classification.encoding,
        )
        self._files.append(ScannedFile(record=record, content=content))
        self._stats.processed_files += 1

    def _record_error(self, relative: str, error: Exception) -> None:
        kind = error_kind(error)
        logger.warning("Failed to scan %s (%s): %s", relative, kind, error)
        self._errors.append(ScanError(path=relative, kind=kind, message=str(error)))
        self._stats.failed_files += 1


def scan_workspace(
    config: ChunkerConfig,
    previous_files: Mapping[str, MerkleFileNode] | None = None,
) -> ScanResult:
    """Enumerate, classify and hash every eligible file under the workspace.

    Raises ``ConfigurationError`` when the extension allow-list is empty and
    ``WorkspaceError`` when the root cannot be scanned. Per-file failures are
    returned in ``ScanResult.errors``.
    """
    return TreeWalker(config, previous_files).walk()


def read_bounded(path: Path, max_bytes: int) -> bytes:
    """Read a file in blocks, aborting once it exceeds ``max_bytes``."""
    blocks: list[bytes] = []
    total = 0
    with path.open("rb") as handle:
        while True:
            block = handle.read(_READ_BLOCK_BYTES)
            if not block:
                break
            total += len(block)
            if total > max_bytes:
                raise FileTooLargeError(f"File grew past {max_bytes} bytes while reading")
            blocks.append(block)
    return b"".join(blocks)


def error_kind(error: Exception) -> ScanErrorKind:
    """Map a read failure onto the closed set of scan error kinds."""
    if isinstance(error, FileTooLargeError):
        return ScanErrorKind.TOO_LARGE
    if isinstance(error, UnicodeDecodeError):
        return ScanErrorKind.INVALID_ENCODING
    if isinstance(error, FileNotFoundError):
        return ScanErrorKind.NOT_FOUND
    if isinstance(error, PermissionError):
        return ScanErrorKind.PERMISSION_DENIED
    if isinstance(error, IsADirectoryError):
        return ScanErrorKind.IS_DIRECTORY
    if isinstance(error, OSError) and error.errno in (errno.EMFILE, errno.ENFILE):
        return ScanErrorKind.TOO_MANY_OPEN_FILES
    return ScanErrorKind.OS_ERROR
