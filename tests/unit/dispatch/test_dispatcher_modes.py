from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import replace
from pathlib import Path

from repo_chunker.config import ChunkerConfig, CliOverrides, load_effective_config
from repo_chunker.dispatch import ChunkTask, DispatchMode, Dispatcher, TaskStatus


class InlineExecutor(Executor):
    """Runs submitted work immediately; paths in ``failing`` raise instead."""

    def __init__(self, failing: frozenset[str] = frozenset()) -> None:
        self.failing = failing
        self.submitted: list[str] = []
        self.shutdowns = 0

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[no-untyped-def]
        task = args[0]
        self.submitted.append(task.path)
        future: Future = Future()
        if task.path in self.failing:
            future.set_exception(RuntimeError(f"worker died on {task.path}"))
        else:
            future.set_result(fn(*args, **kwargs))
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self.shutdowns += 1


class StalledExecutor(Executor):
    """Accepts work but never completes it."""

    def __init__(self) -> None:
        self.shutdowns = 0

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[no-untyped-def]
        return Future()

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self.shutdowns += 1


def _config(tmp_path: Path, **dispatch_changes: object) -> ChunkerConfig:
    config = load_effective_config(tmp_path, CliOverrides(include_extensions=(".txt",)))
    return replace(config, dispatch=replace(config.dispatch, **dispatch_changes))


def _tasks(tmp_path: Path, count: int) -> list[ChunkTask]:
    return [
        ChunkTask(path=f"f{n}.txt", workspace_root=str(tmp_path), content=f"line {n}\n")
        for n in range(count)
    ]


def _paths(chunks: list) -> list[str]:
    return [chunk.file_path for chunk in chunks]


def test_sequential_mode_chunks_every_task_in_order(tmp_path: Path) -> None:
    dispatcher = Dispatcher(_config(tmp_path))

    chunks = dispatcher.process(_tasks(tmp_path, 3))

    assert _paths(chunks) == ["f0.txt", "f1.txt", "f2.txt"]
    assert [chunk.content for chunk in chunks] == ["line 0", "line 1", "line 2"]
    assert dispatcher.stats.mode is DispatchMode.SEQUENTIAL
    assert dispatcher.stats.processed_files == 3
    assert dispatcher.stats.batches == 1


def test_concurrent_mode_preserves_task_order(tmp_path: Path) -> None:
    executor = InlineExecutor()
    config = _config(tmp_path, concurrent=True, max_workers=2)
    dispatcher = Dispatcher(
        config, executor_factory=lambda workers: executor, memory_probe=lambda: 0.0
    )

    chunks = dispatcher.process(_tasks(tmp_path, 5))

    assert _paths(chunks) == [f"f{n}.txt" for n in range(5)]
    assert executor.submitted == [f"f{n}.txt" for n in range(5)]
    assert dispatcher.stats.mode is DispatchMode.CONCURRENT
    assert dispatcher.stats.processed_files == 5
    assert dispatcher.stats.worker_failures == 0
    assert executor.shutdowns == 1


def test_failed_worker_task_is_retried_inline(tmp_path: Path) -> None:
    executor = InlineExecutor(failing=frozenset({"f1.txt"}))
    config = _config(tmp_path, concurrent=True, max_workers=2)
    dispatcher = Dispatcher(
        config, executor_factory=lambda workers: executor, memory_probe=lambda: 0.0
    )

    chunks = dispatcher.process(_tasks(tmp_path, 3))

    assert _paths(chunks) == ["f0.txt", "f1.txt", "f2.txt"]
    assert dispatcher.stats.worker_failures == 1
    assert dispatcher.stats.sync_fallbacks == 1
    assert dispatcher.stats.mode is DispatchMode.CONCURRENT
    (failure,) = dispatcher.stats.failures
    assert failure.path == "f1.txt"
    assert failure.status is TaskStatus.FAILED
    assert "worker died" in (failure.error or "")


def test_repeated_worker_failures_downgrade_to_sequential(tmp_path: Path) -> None:
    executor = InlineExecutor(failing=frozenset({"f0.txt", "f1.txt", "f2.txt"}))
    config = _config(tmp_path, concurrent=True, max_workers=1, max_worker_failures=1)
    dispatcher = Dispatcher(
        config, executor_factory=lambda workers: executor, memory_probe=lambda: 0.0
    )

    chunks = dispatcher.process(_tasks(tmp_path, 4))

    assert _paths(chunks) == ["f0.txt", "f1.txt", "f2.txt", "f3.txt"]
    assert dispatcher.stats.mode is DispatchMode.SEQUENTIAL
    assert dispatcher.stats.worker_failures == 2
    assert dispatcher.stats.sync_fallbacks == 4
    assert executor.submitted == ["f0.txt", "f1.txt"]
    assert "worker failures" in (dispatcher.stats.downgrade_reason or "")


def test_pool_creation_failure_runs_the_batch_inline(tmp_path: Path) -> None:
    def broken_factory(workers: int) -> Executor:
        raise OSError("cannot fork")

    config = _config(tmp_path, concurrent=True, max_workers=2)
    dispatcher = Dispatcher(config, executor_factory=broken_factory, memory_probe=lambda: 0.0)

    chunks = dispatcher.process(_tasks(tmp_path, 3))

    assert _paths(chunks) == ["f0.txt", "f1.txt", "f2.txt"]
    assert dispatcher.stats.mode is DispatchMode.SEQUENTIAL
    assert dispatcher.stats.sync_fallbacks == 3
    assert "worker pool creation failed" in (dispatcher.stats.downgrade_reason or "")


def test_stalled_tasks_time_out_and_are_retried_inline(tmp_path: Path) -> None:
    executors: list[StalledExecutor] = []

    def factory(workers: int) -> Executor:
        executors.append(StalledExecutor())
        return executors[-1]

    config = _config(tmp_path, concurrent=True, max_workers=2, task_timeout_seconds=0.01)
    dispatcher = Dispatcher(config, executor_factory=factory, memory_probe=lambda: 0.0)

    chunks = dispatcher.process(_tasks(tmp_path, 2))

    assert _paths(chunks) == ["f0.txt", "f1.txt"]
    assert dispatcher.stats.timeouts == 2
    assert dispatcher.stats.sync_fallbacks == 2
    assert [failure.status for failure in dispatcher.stats.failures] == [
        TaskStatus.TIMED_OUT,
        TaskStatus.TIMED_OUT,
    ]
    assert executors[0].shutdowns >= 1


def test_memory_pressure_downgrades_and_collects_garbage(tmp_path: Path) -> None:
    collected: list[bool] = []

    def factory(workers: int) -> Executor:
        raise AssertionError("pool must not start under memory pressure")

    config = _config(tmp_path, concurrent=True, memory_threshold=0.7)
    dispatcher = Dispatcher(
        config,
        executor_factory=factory,
        memory_probe=lambda: 0.95,
        gc_hook=lambda: collected.append(True),
    )

    chunks = dispatcher.process(_tasks(tmp_path, 2))

    assert _paths(chunks) == ["f0.txt", "f1.txt"]
    assert dispatcher.stats.mode is DispatchMode.SEQUENTIAL
    assert "memory usage 95%" in (dispatcher.stats.downgrade_reason or "")
    assert collected == [True]
    assert dispatcher.stats.processed_files == 2


def test_batches_pause_between_each_other(tmp_path: Path) -> None:
    pauses: list[float] = []
    config = _config(tmp_path, batch_size=2, batch_pause_seconds=0.5)
    dispatcher = Dispatcher(config, sleep=pauses.append)

    chunks = dispatcher.process(_tasks(tmp_path, 5))

    assert len(chunks) == 5
    assert dispatcher.stats.batches == 3
    assert pauses == [0.5, 0.5]


def test_stats_reset_between_runs(tmp_path: Path) -> None:
    dispatcher = Dispatcher(_config(tmp_path))

    dispatcher.process(_tasks(tmp_path, 3))
    dispatcher.process(_tasks(tmp_path, 1))

    assert dispatcher.stats.processed_files == 1
    assert dispatcher.stats.to_dict()["mode"] == "sequential"


def test_no_tasks_produce_no_batches(tmp_path: Path) -> None:
    dispatcher = Dispatcher(_config(tmp_path))

    assert dispatcher.process([]) == []
    assert dispatcher.stats.batches == 0
