from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


class ReminderChoice(enum.Enum):
    OPEN_VIEW = "Open View"
    DISMISS = "Dismiss"


@dataclass(frozen=True, slots=True)
class AlertOptions:
    enable_sound: bool = True
    muted: bool = False
    sound_path: str | None = None


class AlertSink(ABC):
    @abstractmethod
    async def notify_new_pull_requests(self, count: int, options: AlertOptions) -> None:
        """Tell the user that count pull requests newly await review."""

    @abstractmethod
    async def play_reminder_sound(self, sound_path: str) -> None:
        """Best-effort reminder sound. Never falls back to a default chime."""

    @abstractmethod
    async def prompt_reminder(self, count: int) -> ReminderChoice | None:
        """Remind the user of outstanding reviews; None when nothing was chosen."""


def new_pull_requests_message(count: int) -> str:
    return f"You have {count} pull request(s) waiting for review."


def reminder_message(count: int) -> str:
    return f"You have {count} pull request{'' if count == 1 else 's'} waiting for review."
