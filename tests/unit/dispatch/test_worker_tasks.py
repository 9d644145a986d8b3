from __future__ import annotations

from pathlib import Path

from repo_chunker.config import CliOverrides, load_effective_config
from repo_chunker.dispatch import ChunkTask, Dispatcher, TaskStatus, run_chunk_task
from repo_chunker.index.models import ChunkType


def _config(tmp_path: Path):
    return load_effective_config(tmp_path, CliOverrides(include_extensions=(".txt", ".png")))


def test_worker_reads_file_when_content_is_absent(tmp_path: Path) -> None:
    (tmp_path / "notes.txt").write_text("first\nsecond\n", encoding="utf-8")
    task = ChunkTask(path="notes.txt", workspace_root=str(tmp_path))

    outcome = run_chunk_task(task, _config(tmp_path))

    assert outcome.status is TaskStatus.SUCCEEDED
    assert [chunk.content for chunk in outcome.chunks] == ["first\nsecond"]


def test_worker_turns_binary_files_into_placeholders(tmp_path: Path) -> None:
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    task = ChunkTask(path="logo.png", workspace_root=str(tmp_path))

    outcome = run_chunk_task(task, _config(tmp_path))

    (chunk,) = outcome.chunks
    assert chunk.type is ChunkType.FILE
    assert chunk.content == "[BINARY FILE: 8 bytes, type: image]"


def test_missing_file_is_a_failed_outcome(tmp_path: Path) -> None:
    task = ChunkTask(path="gone.txt", workspace_root=str(tmp_path))

    outcome = run_chunk_task(task, _config(tmp_path))

    assert outcome.status is TaskStatus.FAILED
    assert outcome.chunks == ()
    assert outcome.error
    assert outcome.to_dict()["status"] == "failed"


def test_dispatcher_counts_failed_reads(tmp_path: Path) -> None:
    (tmp_path / "ok.txt").write_text("ok\n", encoding="utf-8")
    tasks = [
        ChunkTask(path="ok.txt", workspace_root=str(tmp_path)),
        ChunkTask(path="gone.txt", workspace_root=str(tmp_path)),
    ]
    dispatcher = Dispatcher(_config(tmp_path))

    chunks = dispatcher.process(tasks)

    assert [chunk.file_path for chunk in chunks] == ["ok.txt"]
    assert dispatcher.stats.processed_files == 1
    assert dispatcher.stats.failed_files == 1
