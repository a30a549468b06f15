from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import TextIO

from codeping.models import PullRequestRecord
from codeping.utils.datetime_utils import format_datetime

from .base import StatusView, UiSink

logger = logging.getLogger(__name__)

OPEN_SECTION = "Open Review Requests"
IGNORED_SECTION = "Ignored Pull Requests"


class ConsoleView(UiSink):
    """Prints the grouped pull request view to a text stream.

    The view is reprinted only when the set of displayed pull requests changes
    or when it is explicitly revealed, so background refreshes stay quiet.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        err_stream: TextIO | None = None,
        *,
        auto_print: bool = True,
    ) -> None:
        self.stream = stream or sys.stdout
        self.err_stream = err_stream or sys.stderr
        self.auto_print = auto_print
        self.open_prs: list[PullRequestRecord] = []
        self.ignored_prs: list[PullRequestRecord] = []
        self.status: StatusView | None = None

    def set_pull_requests(
        self,
        open_prs: Sequence[PullRequestRecord],
        ignored_prs: Sequence[PullRequestRecord],
    ) -> None:
        previous = (_ids(self.open_prs), _ids(self.ignored_prs))
        self.open_prs = list(open_prs)
        self.ignored_prs = list(ignored_prs)
        if self.auto_print and previous != (_ids(self.open_prs), _ids(self.ignored_prs)):
            self._print_view()

    def set_status(self, status: StatusView) -> None:
        if self.status is None or self.status.label != status.label:
            logger.info("Status: %s (%s)", status.label, status.tooltip)
        self.status = status

    def show_error(self, message: str) -> None:
        print(f"Error: {message}", file=self.err_stream)

    def reveal(self) -> None:
        self._print_view()

    def _print_view(self) -> None:
        print(render_pull_requests(self.open_prs, self.ignored_prs), file=self.stream)


def render_pull_requests(
    open_prs: Sequence[PullRequestRecord],
    ignored_prs: Sequence[PullRequestRecord],
) -> str:
    lines = [OPEN_SECTION]
    lines.extend(_render_section(open_prs))
    if ignored_prs:
        lines.append(IGNORED_SECTION)
        lines.extend(_render_section(ignored_prs))
    return "\n".join(lines)


def group_by_repository(prs: Sequence[PullRequestRecord]) -> dict[str, list[PullRequestRecord]]:
    grouped: dict[str, list[PullRequestRecord]] = {}
    for pr in prs:
        grouped.setdefault(pr.repository or "unknown", []).append(pr)
    return {repo: grouped[repo] for repo in sorted(grouped)}


def _render_section(prs: Sequence[PullRequestRecord]) -> list[str]:
    if not prs:
        return ["  (none)"]

    lines: list[str] = []
    for repo, repo_prs in group_by_repository(prs).items():
        lines.append(f"  {repo}")
        for pr in repo_prs:
            lines.append(f"    #{pr.number} {pr.title} [id {pr.id}]")
            if pr.url:
                lines.append(f"      {pr.url}")
            lines.append(f"      Author: {pr.author}")
            lines.append(f"      Created: {format_datetime(pr.created_at, default='Unknown')}")
            lines.append(f"      Updated: {format_datetime(pr.updated_at, default='Unknown')}")
            lines.append(f"      Reviewers: {_list_or_none(pr.reviewers)}")
            lines.append(f"      Assignees: {_list_or_none(pr.assignees)}")
            lines.append(f"      Labels: {_list_or_none(pr.labels)}")
    return lines


def _list_or_none(values: Sequence[str]) -> str:
    return ", ".join(values) if values else "None"


def _ids(prs: Sequence[PullRequestRecord]) -> list[int]:
    return [pr.id for pr in prs]
