from __future__ import annotations

import asyncio
import logging

import requests

from .base import AlertOptions, AlertSink, ReminderChoice, new_pull_requests_message, reminder_message

logger = logging.getLogger(__name__)


class SlackWebhookAlertSink(AlertSink):
    """Forwards alerts and reminders to a Slack incoming webhook.

    Slack has no audio channel, so sounds are skipped.
    """

    def __init__(self, webhook_url: str, timeout_seconds: int = 15) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds

    async def notify_new_pull_requests(self, count: int, options: AlertOptions) -> None:
        await asyncio.to_thread(self.post, build_slack_payload(new_pull_requests_message(count)))

    async def play_reminder_sound(self, sound_path: str) -> None:
        logger.debug("Slack alerts have no audio; skipping reminder sound %s", sound_path)

    async def prompt_reminder(self, count: int) -> ReminderChoice | None:
        await asyncio.to_thread(self.post, build_slack_payload(reminder_message(count)))
        return None

    def post(self, payload: dict) -> None:
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=self.timeout_seconds,
        )
        if response.status_code >= 400:
            raise RuntimeError(
                f"Slack webhook returned {response.status_code}: {response.text}"
            )


def build_slack_payload(message: str) -> dict:
    return {
        "text": message,
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f":bell: {message}",
                },
            },
        ],
    }
