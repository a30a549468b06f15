from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PersistenceError(RuntimeError):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(ABC):
    @abstractmethod
    def init_db(self) -> None:
        """Create any required schema."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default when absent."""

    @abstractmethod
    def update(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
