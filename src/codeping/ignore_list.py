from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from codeping.models import PullRequestRecord
from codeping.store import KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

IGNORED_PULL_REQUESTS_KEY = "codeping.ignoredPullRequests"


@dataclass(slots=True)
class PartitionResult:
    open_prs: list[PullRequestRecord] = field(default_factory=list)
    ignored_prs: list[PullRequestRecord] = field(default_factory=list)
    cleaned_ignored: set[int] = field(default_factory=set)


def split_ignored(prs: Sequence[PullRequestRecord], ignored: Iterable[int]) -> PartitionResult:
    """Split ``prs`` into open and ignored lists, keeping input order.

    Ignore entries whose id is absent from ``prs`` are dropped from
    ``cleaned_ignored`` so the list does not accumulate merged or closed pull
    requests.
    """
    ignored_ids = set(ignored)
    result = PartitionResult()
    present: set[int] = set()

    for pr in prs:
        present.add(pr.id)
        if pr.id in ignored_ids:
            result.ignored_prs.append(pr)
        else:
            result.open_prs.append(pr)

    result.cleaned_ignored = ignored_ids & present
    return result


class IgnoreListStore:
    """Persists the ignore list as one key in a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore, key: str = IGNORED_PULL_REQUESTS_KEY) -> None:
        self.store = store
        self.key = key

    def load(self, *, strict: bool = False) -> set[int]:
        """Read the ignore list.

        Read failures yield an empty set unless ``strict`` is set, in which
        case the :class:`PersistenceError` propagates so a caller holding a
        copy can keep it.
        """
        try:
            raw = self.store.get(self.key, [])
        except PersistenceError as exc:
            if strict:
                raise
            logger.warning("Could not read ignore list, treating it as empty: %s", exc)
            return set()

        if not isinstance(raw, list):
            logger.warning("Ignore list has unexpected shape %s; treating it as empty", type(raw).__name__)
            return set()

        ids: set[int] = set()
        for value in raw:
            if isinstance(value, bool):
                continue
            try:
                ids.add(int(value))
            except (TypeError, ValueError):
                logger.warning("Dropping malformed ignore list entry: %r", value)
        return ids

    def save(self, ids: Iterable[int]) -> None:
        try:
            self.store.update(self.key, sorted(set(ids)))
        except PersistenceError as exc:
            logger.warning("Could not persist ignore list: %s", exc)
