from __future__ import annotations

import logging

from codeping.store import KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

MUTED_KEY = "codeping.muted"


class PreferenceStore:
    """User toggles that outlive both the process and config reloads.

    A stored value overrides the ``alerts.muted`` setting from the config file.
    """

    def __init__(self, store: KeyValueStore, key: str = MUTED_KEY) -> None:
        self.store = store
        self.key = key

    def load_muted(self) -> bool | None:
        """Return the stored mute flag, or None when nothing usable is stored."""
        try:
            raw = self.store.get(self.key)
        except PersistenceError as exc:
            logger.warning("Could not read mute preference: %s", exc)
            return None

        if raw is None:
            return None
        if not isinstance(raw, bool):
            logger.warning("Ignoring malformed mute preference: %r", raw)
            return None
        return raw

    def save_muted(self, muted: bool) -> None:
        try:
            self.store.update(self.key, muted)
        except PersistenceError as exc:
            logger.warning("Could not persist mute preference: %s", exc)
