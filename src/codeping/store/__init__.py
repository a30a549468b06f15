"""Store implementations."""

from .base import KeyValueStore, PersistenceError
from .sqlite_store import SQLiteStore

__all__ = ["KeyValueStore", "PersistenceError", "SQLiteStore"]
