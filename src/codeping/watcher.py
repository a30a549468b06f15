from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from codeping.config import (
    MIN_REFRESH_INTERVAL_SECONDS,
    MIN_REMINDER_INTERVAL_MINUTES,
    AppConfig,
)
from codeping.delta import compute_new_arrivals
from codeping.fetchers import AuthContext, AuthError, Fetcher
from codeping.ignore_list import IgnoreListStore, split_ignored
from codeping.models import PullRequestRecord, WatchState
from codeping.notifiers import AlertOptions, AlertSink, ReminderChoice
from codeping.preferences import PreferenceStore
from codeping.scheduler import Scheduler, TickCallback, run_guarded
from codeping.store import PersistenceError
from codeping.ui import (
    StatusKind,
    StatusView,
    UiSink,
    error_status,
    normal_status,
    unauthenticated_status,
)

logger = logging.getLogger(__name__)

REFRESH_TASK = "refresh"
REMINDER_TASK = "reminder"


@dataclass(slots=True)
class RefreshResult:
    status: StatusKind
    open_count: int = 0
    ignored_count: int = 0
    new_count: int = 0
    error: str | None = None
    discarded: bool = False

    @property
    def ok(self) -> bool:
        return self.status is StatusKind.NORMAL and not self.discarded


class ReviewWatcher:
    """Polls for review requests, tracks new arrivals and the ignore list.

    All mutable state lives on the instance and is only touched from the event
    loop. Handlers mutate state in short synchronous steps between their await
    points; there is no locking.

    Sign-in changes bump a generation counter. A refresh whose fetch started
    under an older generation discards its result instead of publishing it.

    The ignore list and the mute flag may be edited by other processes (the
    ``ignore``/``unignore``/``mute``/``unmute`` commands), so both are re-read
    from the store before they are used.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        fetcher: Fetcher,
        ignore_store: IgnoreListStore,
        ui: UiSink,
        alerts: AlertSink,
        preferences: PreferenceStore | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.ignore_store = ignore_store
        self.ui = ui
        self.alerts = alerts
        self.preferences = preferences
        self.scheduler = scheduler or Scheduler()
        self.state = WatchState()
        self.ignored: set[int] = set()
        self.status: StatusView | None = None
        self._stored_muted: bool | None = None
        self._generation = 0
        self._started = False
        self._background: set[asyncio.Task[Any]] = set()

    async def start(self, *, initial_refresh: bool = True) -> None:
        await self.load_ignored()
        await self.sync_mute()
        self._started = True
        self._schedule_refresh()
        if initial_refresh:
            await run_guarded(REFRESH_TASK, self._refresh_tick)
        self._schedule_reminder()

    async def stop(self) -> None:
        self._started = False
        await self.scheduler.shutdown()
        background = list(self._background)
        for task in background:
            task.cancel()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        self._background.clear()

    async def load_ignored(self) -> set[int]:
        self.ignored = await asyncio.to_thread(self.ignore_store.load)
        return set(self.ignored)

    async def sync_mute(self) -> bool:
        """Adopt the stored mute flag, if any, and return the effective value."""
        if self.preferences is not None:
            stored = await asyncio.to_thread(self.preferences.load_muted)
            if stored is not None:
                self._stored_muted = stored
        if self._stored_muted is not None:
            self.config.alerts.muted = self._stored_muted
        return self.config.alerts.muted

    @property
    def open_count(self) -> int:
        return len(self.state.open_prs)

    async def refresh(self, *, user_triggered: bool = False) -> RefreshResult:
        if not self.fetcher.is_authenticated():
            self.state.fetched_prs = []
            self._publish([], [])
            self._set_status(unauthenticated_status())
            return RefreshResult(status=StatusKind.UNAUTHENTICATED)

        generation = self._generation
        try:
            prs = await self.fetcher.fetch_review_requests()
        except AuthError as exc:
            return self._fetch_failed(exc, generation, user_triggered, unauthenticated_status())
        except Exception as exc:  # noqa: BLE001
            return self._fetch_failed(exc, generation, user_triggered, error_status(str(exc)))

        await self._reload_ignored()

        if generation != self._generation:
            logger.info("Discarding review requests fetched before the sign-in changed")
            return RefreshResult(status=self._status_kind(), discarded=True)

        partition = split_ignored(prs, self.ignored)
        # Ignored pull requests never count as new arrivals.
        delta = compute_new_arrivals(
            partition.open_prs,
            self.state.seen_ids,
            self.state.ever_fetched_successfully,
        )
        self.state.seen_ids = delta.updated_seen
        self.state.ever_fetched_successfully = delta.ever_fetched_successfully
        self.state.fetched_prs = list(prs)

        ignored_changed = partition.cleaned_ignored != self.ignored
        if ignored_changed:
            logger.info(
                "Pruned %d ignore list entries no longer awaiting review",
                len(self.ignored - partition.cleaned_ignored),
            )
            self.ignored = set(partition.cleaned_ignored)

        self._publish(partition.open_prs, partition.ignored_prs)
        self._set_status(normal_status(len(partition.open_prs)))
        logger.debug(
            "Refreshed: open=%d ignored=%d new=%d",
            len(partition.open_prs),
            len(partition.ignored_prs),
            len(delta.new_items),
        )

        if ignored_changed:
            await self._save_ignored(set(partition.cleaned_ignored))

        if delta.new_items:
            await self._alert_new_arrivals(len(delta.new_items))

        return RefreshResult(
            status=StatusKind.NORMAL,
            open_count=len(partition.open_prs),
            ignored_count=len(partition.ignored_prs),
            new_count=len(delta.new_items),
        )

    async def remind(self) -> bool:
        """Nudge the user about outstanding reviews. Returns True if a reminder went out."""
        if not self.fetcher.is_authenticated():
            return False
        if not self.config.reminders.enabled:
            return False

        count = self.open_count
        if not count:
            return False

        sound_path = (self.config.reminders.sound_path or "").strip()
        if sound_path:
            try:
                await self.alerts.play_reminder_sound(sound_path)
            except Exception:  # noqa: BLE001
                logger.exception("Reminder sound failed")

        self.spawn("reminder prompt", lambda: self._prompt_reminder(count))
        return True

    async def open_view(self) -> RefreshResult:
        self.ui.reveal()
        return await self.refresh()

    async def ignore_pull_request(self, pr_id: int) -> bool:
        await self._reload_ignored()
        if pr_id in self.ignored:
            return False
        self.ignored.add(pr_id)
        self._repartition()
        await self._save_ignored(set(self.ignored))
        return True

    async def unignore_pull_request(self, pr_id: int) -> bool:
        await self._reload_ignored()
        if pr_id not in self.ignored:
            return False
        self.ignored.discard(pr_id)
        # Already surfaced while ignored; do not alert on it next tick.
        if any(pr.id == pr_id for pr in self.state.fetched_prs):
            self.state.seen_ids.add(pr_id)
        self._repartition()
        await self._save_ignored(set(self.ignored))
        return True

    async def login(self, auth: AuthContext, *, user_triggered: bool = False) -> RefreshResult:
        self.fetcher.set_auth(auth)
        self._generation += 1
        self.state.reset()
        logger.info("Signed in to %s%s", auth.kind, f" as {auth.username}" if auth.username else "")
        return await self.refresh(user_triggered=user_triggered)

    def logout(self) -> None:
        self.fetcher.clear_auth()
        self._generation += 1
        self.state.reset()
        self.ui.set_pull_requests([], [])
        self._set_status(unauthenticated_status())
        logger.info("Signed out")

    async def toggle_mute(self) -> bool:
        return await self.set_muted(not await self.sync_mute())

    async def set_muted(self, muted: bool) -> bool:
        self._stored_muted = muted
        self.config.alerts.muted = muted
        if self.preferences is not None:
            await asyncio.to_thread(self.preferences.save_muted, muted)
        logger.info("Alerts %s", "muted" if muted else "unmuted")
        return muted

    def apply_config(self, config: AppConfig) -> None:
        previous = self.config
        # A stored mute toggle outlives the config file's value.
        if self._stored_muted is not None:
            config.alerts.muted = self._stored_muted
        self.config = config
        if not self._started:
            return

        if previous.refresh_interval_seconds != config.refresh_interval_seconds:
            self._schedule_refresh()

        old_reminders, new_reminders = previous.reminders, config.reminders
        if (
            old_reminders.enabled != new_reminders.enabled
            or old_reminders.interval_minutes != new_reminders.interval_minutes
            or old_reminders.sound_path != new_reminders.sound_path
        ):
            self._schedule_reminder()

        old_github, new_github = previous.github, config.github
        if (
            old_github.per_page != new_github.per_page
            or old_github.timeout_seconds != new_github.timeout_seconds
            or previous.storage != config.storage
        ):
            logger.warning("GitHub request and storage settings take effect after a restart")

    def _schedule_refresh(self) -> None:
        seconds = max(MIN_REFRESH_INTERVAL_SECONDS, self.config.refresh_interval_seconds)
        self.scheduler.reschedule(REFRESH_TASK, seconds, self._refresh_tick)

    def _schedule_reminder(self) -> None:
        if not self.config.reminders.enabled:
            self.scheduler.cancel(REMINDER_TASK)
            return
        minutes = max(MIN_REMINDER_INTERVAL_MINUTES, self.config.reminders.interval_minutes)
        self.scheduler.reschedule(REMINDER_TASK, minutes * 60, self._reminder_tick)

    async def _refresh_tick(self) -> None:
        await self.refresh(user_triggered=False)

    async def _reminder_tick(self) -> None:
        await self.remind()

    async def _prompt_reminder(self, count: int) -> None:
        choice = await self.alerts.prompt_reminder(count)
        if choice is ReminderChoice.OPEN_VIEW:
            await self.open_view()

    def _fetch_failed(
        self,
        exc: Exception,
        generation: int,
        user_triggered: bool,
        status: StatusView,
    ) -> RefreshResult:
        logger.warning("Refreshing review requests failed: %s", exc)
        if generation != self._generation:
            return RefreshResult(status=self._status_kind(), error=str(exc), discarded=True)

        if status.kind is StatusKind.UNAUTHENTICATED:
            self.state.fetched_prs = []
            self._publish([], [])
        self._set_status(status)
        if user_triggered:
            self.ui.show_error(str(exc) or "Failed to refresh pull requests.")
        return RefreshResult(status=status.kind, error=str(exc))

    async def _alert_new_arrivals(self, count: int) -> None:
        await self.sync_mute()
        options = AlertOptions(
            enable_sound=self.config.alerts.enable_sound,
            muted=self.config.alerts.muted,
            sound_path=self.config.alerts.sound_path,
        )
        try:
            await self.alerts.notify_new_pull_requests(count, options)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to deliver new review request alert")

    async def _reload_ignored(self) -> None:
        previous = self.ignored
        try:
            current = await asyncio.to_thread(self.ignore_store.load, strict=True)
        except PersistenceError as exc:
            logger.warning("Could not re-read ignore list, keeping %d known entries: %s", len(previous), exc)
            return

        # Unignored elsewhere after being surfaced while ignored; do not alert on it.
        fetched_ids = {pr.id for pr in self.state.fetched_prs}
        self.state.seen_ids.update((previous - current) & fetched_ids)
        self.ignored = current

    async def _save_ignored(self, ids: set[int]) -> None:
        await asyncio.to_thread(self.ignore_store.save, ids)

    def _repartition(self) -> None:
        partition = split_ignored(self.state.fetched_prs, self.ignored)
        self._publish(partition.open_prs, partition.ignored_prs)
        if self._status_kind() is StatusKind.NORMAL:
            self._set_status(normal_status(len(partition.open_prs)))

    def _publish(
        self,
        open_prs: list[PullRequestRecord],
        ignored_prs: list[PullRequestRecord],
    ) -> None:
        self.state.open_prs = list(open_prs)
        self.state.ignored_prs = list(ignored_prs)
        self.ui.set_pull_requests(self.state.open_prs, self.state.ignored_prs)

    def _set_status(self, status: StatusView) -> None:
        self.status = status
        self.ui.set_status(status)

    def _status_kind(self) -> StatusKind:
        return self.status.kind if self.status else StatusKind.UNAUTHENTICATED

    def spawn(self, name: str, callback: TickCallback) -> None:
        """Run callback as a guarded background task that stop() cancels."""
        task = asyncio.get_running_loop().create_task(run_guarded(name, callback))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
