from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from codeping.models import PullRequestRecord


class FetchError(RuntimeError):
    """Raised when review requests could not be fetched."""


class AuthError(FetchError):
    """Raised when the credential is missing, invalid or expired."""


@dataclass(frozen=True, slots=True)
class AuthContext:
    kind: str
    token: str
    base_url: str | None = None
    username: str | None = None


class Fetcher(ABC):
    @abstractmethod
    def is_authenticated(self) -> bool:
        """Return True when a credential is available."""

    @abstractmethod
    def set_auth(self, auth: AuthContext) -> None:
        """Switch to a new identity."""

    @abstractmethod
    def clear_auth(self) -> None:
        """Forget the current identity."""

    @abstractmethod
    async def fetch_review_requests(self) -> list[PullRequestRecord]:
        """Return open pull requests awaiting the current identity's review."""
