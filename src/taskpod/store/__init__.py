"""Task persistence."""

from taskpod.store.backend import InMemoryTaskStore, TaskStore
from taskpod.store.file_backend import JsonFileTaskStore

__all__ = [
    "InMemoryTaskStore",
    "JsonFileTaskStore",
    "TaskStore",
]
