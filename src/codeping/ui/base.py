from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from codeping.models import PullRequestRecord

ACTION_SIGN_IN = "codeping.showSignIn"
ACTION_OPEN_VIEW = "codeping.openPullRequestView"
ACTION_REFRESH = "codeping.refreshPullRequests"


class StatusKind(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    NORMAL = "normal"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusView:
    kind: StatusKind
    label: str
    tooltip: str
    primary_action_id: str
    count: int = 0


def unauthenticated_status() -> StatusView:
    return StatusView(
        kind=StatusKind.UNAUTHENTICATED,
        label="$(bell-slash) Sign in",
        tooltip="Sign in to GitHub or GitHub Enterprise to see review requests.",
        primary_action_id=ACTION_SIGN_IN,
    )


def normal_status(count: int) -> StatusView:
    tooltip = f"You have {count} open review request(s)." if count else "No open review requests."
    return StatusView(
        kind=StatusKind.NORMAL,
        label=f"$(bell) Reviews: {count}",
        tooltip=tooltip,
        primary_action_id=ACTION_OPEN_VIEW,
        count=count,
    )


def error_status(message: str | None = None) -> StatusView:
    return StatusView(
        kind=StatusKind.ERROR,
        label="$(bell-slash) Error",
        tooltip=message or "Failed to refresh pull requests.",
        primary_action_id=ACTION_REFRESH,
    )


class UiSink(ABC):
    @abstractmethod
    def set_pull_requests(
        self,
        open_prs: Sequence[PullRequestRecord],
        ignored_prs: Sequence[PullRequestRecord],
    ) -> None:
        """Replace the displayed lists. Either list may be empty."""

    @abstractmethod
    def set_status(self, status: StatusView) -> None:
        """Publish the status indicator."""

    @abstractmethod
    def show_error(self, message: str) -> None:
        """Surface an error from an explicit user action."""

    def reveal(self) -> None:
        """Bring the pull request view to the front."""
