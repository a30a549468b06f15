from __future__ import annotations

import logging
import sys
from typing import TextIO

from .base import (
    AlertOptions,
    AlertSink,
    ReminderChoice,
    new_pull_requests_message,
    reminder_message,
)
from .sound import PlaybackError, SoundPlayer, resolve_sound

logger = logging.getLogger(__name__)


class DesktopAlertSink(AlertSink):
    """Terminal notifications with an optional audio chime.

    Sound is best effort: when playback fails the visual notification still
    goes out and one warning is logged for that failure.
    """

    def __init__(
        self,
        *,
        player: SoundPlayer | None = None,
        default_sound_path: str | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.player = player or SoundPlayer()
        self.default_sound_path = default_sound_path
        self.stream = stream or sys.stdout

    async def notify_new_pull_requests(self, count: int, options: AlertOptions) -> None:
        self._show(new_pull_requests_message(count))

        if options.enable_sound and not options.muted:
            target = resolve_sound(options.sound_path, self.default_sound_path, allow_default=True)
            if target:
                await self._play(target)

    async def play_reminder_sound(self, sound_path: str) -> None:
        target = resolve_sound(sound_path, None, allow_default=False)
        if target:
            await self._play(target)

    async def prompt_reminder(self, count: int) -> ReminderChoice | None:
        self._show(f"{reminder_message(count)} Run `codeping check` to open the view.")
        return None

    async def _play(self, sound_path: str) -> None:
        try:
            await self.player.play(sound_path)
        except PlaybackError as exc:
            logger.warning(
                "Could not play the alert sound (%s): %s. Check that a system audio player is available.",
                sound_path,
                exc,
            )

    def _show(self, message: str) -> None:
        print(f"[codeping] {message}", file=self.stream, flush=True)
