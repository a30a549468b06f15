from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0

# Checked in order; the first one found on PATH is used.
_PLAYERS: dict[str, tuple[str, ...]] = {
    "paplay": (),
    "afplay": (),
    "aplay": ("-q",),
    "cvlc": ("--play-and-exit", "--quiet"),
    "mpg123": ("-q",),
    "mpg321": ("-q",),
    "mplayer": ("-really-quiet",),
    "play": ("-q",),
}


class PlaybackError(RuntimeError):
    """Raised when a sound could not be played."""


class SoundPlayer:
    def __init__(
        self,
        *,
        players: list[str] | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.players = players if players is not None else list(_PLAYERS)
        self.timeout_seconds = timeout_seconds

    def find_player(self) -> str | None:
        for name in self.players:
            if shutil.which(name):
                return name
        return None

    async def play(self, sound_path: str) -> None:
        if not Path(sound_path).is_file():
            raise PlaybackError(f"sound file not found: {sound_path}")

        player = self.find_player()
        if player is None:
            raise PlaybackError("no system audio player is available")

        try:
            process = await asyncio.create_subprocess_exec(
                player,
                *_PLAYERS.get(player, ()),
                sound_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PlaybackError(f"{player} could not be started: {exc}") from exc

        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise PlaybackError(f"{player} timed out after {self.timeout_seconds:.0f}s") from exc

        if returncode != 0:
            raise PlaybackError(f"{player} exited with status {returncode}")
        logger.debug("Played %s with %s", sound_path, player)


def resolve_sound(
    custom_path: str | None,
    default_path: str | None,
    *,
    allow_default: bool,
) -> str | None:
    if custom_path:
        candidate = Path(custom_path).expanduser()
        if candidate.is_file():
            return str(candidate)
        if allow_default:
            logger.warning("Sound file not found at %s. Falling back to default chime.", custom_path)
        else:
            logger.warning("Sound file not found at %s.", custom_path)

    if not allow_default or not default_path:
        return None

    candidate = Path(default_path).expanduser()
    if candidate.is_file():
        return str(candidate)

    logger.warning("Default chime is missing at %s; audio alerts are disabled.", default_path)
    return None
