from .base import InvalidStateError, NotFoundError, StorageError, Storer
from .memory import MemoryStore
from .stdout import StdoutStore

__all__ = [
    "InvalidStateError",
    "MemoryStore",
    "NotFoundError",
    "StdoutStore",
    "StorageError",
    "Storer",
]
