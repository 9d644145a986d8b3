"""Sequential and process-pool chunk dispatch."""

from .dispatcher import DispatchMode, Dispatcher, DispatchStats
from .memory import process_memory_ratio
from .worker import ChunkTask, TaskOutcome, TaskStatus, run_chunk_task

__all__ = [
    "ChunkTask",
    "DispatchMode",
    "DispatchStats",
    "Dispatcher",
    "TaskOutcome",
    "TaskStatus",
    "process_memory_ratio",
    "run_chunk_task",
]
