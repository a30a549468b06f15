"""New-arrival detection against the process-lifetime seen set."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from codeping.models import PullRequestRecord


@dataclass(slots=True)
class DeltaResult:
    new_items: list[PullRequestRecord] = field(default_factory=list)
    updated_seen: set[int] = field(default_factory=set)
    ever_fetched_successfully: bool = True

    @property
    def new_ids(self) -> set[int]:
        return {pr.id for pr in self.new_items}


def compute_new_arrivals(
    current: Sequence[PullRequestRecord],
    seen: set[int],
    ever_fetched_successfully: bool,
) -> DeltaResult:
    """Return the pull requests in ``current`` that were not in ``seen``.

    The first successful fetch never reports anything as new, so pull requests
    that existed before the watcher started do not trigger an alert storm.

    The returned seen set replaces ``seen`` rather than extending it: an id that
    drops out of one fetch and comes back later is reported as new again.
    """
    current_ids = {pr.id for pr in current}

    if not ever_fetched_successfully:
        return DeltaResult(new_items=[], updated_seen=current_ids, ever_fetched_successfully=True)

    new_items: list[PullRequestRecord] = []
    emitted: set[int] = set()
    for pr in current:
        if pr.id in seen or pr.id in emitted:
            continue
        emitted.add(pr.id)
        new_items.append(pr)

    return DeltaResult(new_items=new_items, updated_seen=current_ids, ever_fetched_successfully=True)
