"""Picklable chunking task executed in worker processes or inline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from repo_chunker.adapters.engine import ChunkingEngine
from repo_chunker.config import ChunkerConfig
from repo_chunker.index.classifier import binary_payload, binary_placeholder, classify
from repo_chunker.index.discovery import read_bounded
from repo_chunker.index.models import Chunk

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    """Outcome of one chunking task."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class ChunkTask:
    """One file to chunk.

    When ``content`` is None the worker reads and classifies the file itself.
    """

    path: str
    workspace_root: str
    content: str | None = None
    is_binary: bool = False
    language: str | None = None


@dataclass(slots=True, frozen=True)
class TaskOutcome:
    """Chunks produced for one task, or the reason there are none."""

    path: str
    status: TaskStatus
    chunks: tuple[Chunk, ...] = ()
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"path": self.path, "status": str(self.status), "error": self.error}


def load_task_content(task: ChunkTask, config: ChunkerConfig) -> tuple[str | None, bool]:
    """Return the task's content and binary flag, reading the file when needed."""
    if task.content is not None:
        return task.content, task.is_binary
    data = read_bounded(Path(task.workspace_root) / task.path, config.scan.max_file_bytes)
    classification = classify(data, task.path)
    if not classification.is_binary:
        return classification.content, False
    if not config.scan.process_binary_files:
        return None, True
    if config.scan.binary_placeholder:
        return binary_placeholder(task.path, classification.size), True
    return binary_payload(data), True


def run_chunk_task(
    task: ChunkTask,
    config: ChunkerConfig,
    engine: ChunkingEngine | None = None,
) -> TaskOutcome:
    """Chunk one file; read and decode failures become a failed outcome."""
    try:
        content, is_binary = load_task_content(task, config)
    except (OSError, UnicodeDecodeError) as error:
        logger.warning("Cannot read %s for chunking: %s", task.path, error)
        return TaskOutcome(path=task.path, status=TaskStatus.FAILED, error=str(error))
    chunker = engine or ChunkingEngine(config.chunking)
    chunks = chunker.chunk(task.path, content, task.language, is_binary=is_binary)
    return TaskOutcome(path=task.path, status=TaskStatus.SUCCEEDED, chunks=tuple(chunks))
