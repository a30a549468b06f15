"""Alert sink implementations."""

from .base import AlertOptions, AlertSink, ReminderChoice, reminder_message
from .desktop import DesktopAlertSink
from .slack_webhook import SlackWebhookAlertSink, build_slack_payload
from .sound import PlaybackError, SoundPlayer

__all__ = [
    "AlertOptions",
    "AlertSink",
    "DesktopAlertSink",
    "PlaybackError",
    "ReminderChoice",
    "SlackWebhookAlertSink",
    "SoundPlayer",
    "build_slack_payload",
    "reminder_message",
]
