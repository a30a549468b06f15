from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class PullRequestRecord:
    id: int
    number: int
    title: str
    url: str
    repository: str
    author: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    reviewers: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()


@dataclass(slots=True)
class WatchState:
    # Last successful fetch, in fetch order; open_prs and ignored_prs partition it.
    fetched_prs: list[PullRequestRecord] = field(default_factory=list)
    open_prs: list[PullRequestRecord] = field(default_factory=list)
    ignored_prs: list[PullRequestRecord] = field(default_factory=list)
    seen_ids: set[int] = field(default_factory=set)
    ever_fetched_successfully: bool = False

    def reset(self) -> None:
        self.fetched_prs = []
        self.open_prs = []
        self.ignored_prs = []
        self.seen_ids = set()
        self.ever_fetched_successfully = False
