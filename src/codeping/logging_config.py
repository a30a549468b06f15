from __future__ import annotations

import logging

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    resolved = logging.getLevelName((level or "INFO").upper().strip())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=DEFAULT_FORMAT, force=True)
    # Keep HTTP connection chatter out of DEBUG runs.
    logging.getLogger("urllib3").setLevel(max(resolved, logging.INFO))
