"""Batch dispatcher that chunks files inline or in a bounded process pool.

Concurrent mode degrades to sequential mode when workers keep failing or when
process memory crosses the configured threshold. Every failed worker task is
retried once inline, so a file is never lost to a pool problem.
"""

from __future__ import annotations

import gc
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import BrokenExecutor, Executor, Future, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from enum import StrEnum

from repo_chunker.adapters.engine import ChunkingEngine
from repo_chunker.config import ChunkerConfig
from repo_chunker.dispatch.memory import process_memory_ratio
from repo_chunker.dispatch.worker import ChunkTask, TaskOutcome, TaskStatus, run_chunk_task
from repo_chunker.index.models import Chunk

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[int], Executor]


class DispatchMode(StrEnum):
    """Execution mode of a dispatch run."""

    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclass(slots=True)
class DispatchStats:
    """Counters for one dispatch run."""

    mode: DispatchMode
    processed_files: int = 0
    failed_files: int = 0
    worker_failures: int = 0
    timeouts: int = 0
    sync_fallbacks: int = 0
    batches: int = 0
    downgrade_reason: str | None = None
    failures: list[TaskOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "mode": str(self.mode),
            "processed_files": self.processed_files,
            "failed_files": self.failed_files,
            "worker_failures": self.worker_failures,
            "timeouts": self.timeouts,
            "sync_fallbacks": self.sync_fallbacks,
            "batches": self.batches,
            "downgrade_reason": self.downgrade_reason,
            "failures": [outcome.to_dict() for outcome in self.failures],
        }


def _process_pool(max_workers: int) -> Executor:
    return ProcessPoolExecutor(max_workers=max_workers)


def _terminate_executor(executor: Executor) -> None:
    """Stop an executor without waiting, killing live worker processes."""
    processes = getattr(executor, "_processes", None) or {}
    for process in list(processes.values()):
        if process.is_alive():
            process.terminate()
    executor.shutdown(wait=False, cancel_futures=True)


class Dispatcher:
    """Runs the chunking engine over many files."""

    def __init__(
        self,
        config: ChunkerConfig,
        *,
        executor_factory: ExecutorFactory | None = None,
        memory_probe: Callable[[], float] = process_memory_ratio,
        gc_hook: Callable[[], object] = gc.collect,
        sleep: Callable[[float], None] = time.sleep,
        engine: ChunkingEngine | None = None,
    ) -> None:
        self.config = config
        self._settings = config.dispatch
        self._executor_factory = executor_factory or _process_pool
        self._memory_probe = memory_probe
        self._gc_hook = gc_hook
        self._sleep = sleep
        self._engine = engine or ChunkingEngine(config.chunking)
        self.stats = DispatchStats(mode=self._initial_mode())

    def _initial_mode(self) -> DispatchMode:
        if self._settings.concurrent:
            return DispatchMode.CONCURRENT
        return DispatchMode.SEQUENTIAL

    def process(self, tasks: Iterable[ChunkTask]) -> list[Chunk]:
        """Chunk every task and return chunks in task order."""
        ordered = list(tasks)
        self.stats = DispatchStats(mode=self._initial_mode())
        batch_size = self._settings.batch_size
        outcomes: list[TaskOutcome] = []
        for start in range(0, len(ordered), batch_size):
            if start and self._settings.batch_pause_seconds > 0:
                self._sleep(self._settings.batch_pause_seconds)
            batch = ordered[start : start + batch_size]
            self.stats.batches += 1
            if self.stats.mode is DispatchMode.CONCURRENT:
                self._check_memory("before batch")
            if self.stats.mode is DispatchMode.CONCURRENT:
                outcomes.extend(self._run_concurrent_batch(batch))
                self._check_memory("after batch")
            else:
                outcomes.extend(self._run_inline(task) for task in batch)
        logger.info(
            "Dispatched %d files (%s): %d failed, %d worker failures",
            len(ordered),
            self.stats.mode,
            self.stats.failed_files,
            self.stats.worker_failures,
        )
        return [chunk for outcome in outcomes for chunk in outcome.chunks]

    def _run_inline(self, task: ChunkTask) -> TaskOutcome:
        outcome = run_chunk_task(task, self.config, engine=self._engine)
        if outcome.status is TaskStatus.SUCCEEDED:
            self.stats.processed_files += 1
        else:
            self.stats.failed_files += 1
        return outcome

    def _fallback(self, task: ChunkTask) -> TaskOutcome:
        self.stats.sync_fallbacks += 1
        return self._run_inline(task)

    def _run_concurrent_batch(self, batch: Sequence[ChunkTask]) -> list[TaskOutcome]:
        results: list[TaskOutcome | None] = [None] * len(batch)
        executor = self._create_executor()
        wave_size = self._settings.max_workers
        try:
            for wave_start in range(0, len(batch), wave_size):
                indexes = range(wave_start, min(wave_start + wave_size, len(batch)))
                if executor is None or self.stats.mode is DispatchMode.SEQUENTIAL:
                    for index in indexes:
                        results[index] = self._fallback(batch[index])
                    continue
                healthy = self._run_wave(executor, batch, indexes, results)
                if not healthy:
                    _terminate_executor(executor)
                    executor = None
                    if self.stats.mode is DispatchMode.CONCURRENT:
                        executor = self._create_executor()
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
        return [outcome for outcome in results if outcome is not None]

    def _create_executor(self) -> Executor | None:
        try:
            return self._executor_factory(self._settings.max_workers)
        except Exception as error:
            logger.warning("Cannot start worker pool: %s", error)
            self._downgrade(f"worker pool creation failed: {error}")
            return None

    def _run_wave(
        self,
        executor: Executor,
        batch: Sequence[ChunkTask],
        indexes: range,
        results: list[TaskOutcome | None],
    ) -> bool:
        """Run one wave of tasks; return False when the pool must be replaced."""
        healthy = True
        futures: dict[Future[TaskOutcome], int] = {}
        for index in indexes:
            task = batch[index]
            try:
                futures[executor.submit(run_chunk_task, task, self.config)] = index
            except Exception as error:
                self._record_failure(task, TaskStatus.FAILED, f"submit failed: {error}")
                results[index] = self._fallback(task)
                healthy = healthy and not isinstance(error, (BrokenExecutor, RuntimeError))

        done, not_done = wait(futures, timeout=self._settings.task_timeout_seconds)
        for future in done:
            index = futures[future]
            task = batch[index]
            try:
                outcome = future.result()
            except Exception as error:
                if isinstance(error, BrokenExecutor):
                    healthy = False
                self._record_failure(task, TaskStatus.FAILED, f"worker error: {error}")
                results[index] = self._fallback(task)
                continue
            if outcome.status is not TaskStatus.SUCCEEDED:
                self._record_failure(task, outcome.status, outcome.error or "worker failed")
                results[index] = self._fallback(task)
                continue
            self.stats.processed_files += 1
            results[index] = outcome

        if not not_done:
            return healthy
        _terminate_executor(executor)
        for future in sorted(not_done, key=lambda item: futures[item]):
            index = futures[future]
            self.stats.timeouts += 1
            self._record_failure(
                batch[index],
                TaskStatus.TIMED_OUT,
                f"no result within {self._settings.task_timeout_seconds}s",
            )
            results[index] = self._fallback(batch[index])
        return False

    def _record_failure(self, task: ChunkTask, status: TaskStatus, error: str) -> None:
        self.stats.worker_failures += 1
        self.stats.failures.append(TaskOutcome(path=task.path, status=status, error=error))
        logger.warning("Worker %s for %s: %s; retrying inline", status, task.path, error)
        if self.stats.worker_failures > self._settings.max_worker_failures:
            self._downgrade(
                f"{self.stats.worker_failures} worker failures exceeded limit "
                f"{self._settings.max_worker_failures}"
            )

    def _check_memory(self, when: str) -> None:
        ratio = self._memory_probe()
        if ratio <= self._settings.memory_threshold:
            return
        self._downgrade(
            f"memory usage {ratio:.0%} {when} exceeded threshold "
            f"{self._settings.memory_threshold:.0%}"
        )
        self._gc_hook()

    def _downgrade(self, reason: str) -> None:
        if self.stats.mode is DispatchMode.SEQUENTIAL:
            return
        self.stats.mode = DispatchMode.SEQUENTIAL
        self.stats.downgrade_reason = reason
        logger.warning("Switching to sequential chunking: %s", reason)
