"""Storage backends."""

from typed_rows.backends.base import BackendError, Row, StorageBackend
from typed_rows.backends.memory import MemoryBackend

__all__ = [
    "BackendError",
    "MemoryBackend",
    "Row",
    "StorageBackend",
]
