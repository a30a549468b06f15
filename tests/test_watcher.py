from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from codeping.config import AlertSettings, AppConfig, ReminderSettings
from codeping.fetchers import AuthContext, AuthError, Fetcher, FetchError
from codeping.ignore_list import IgnoreListStore
from codeping.models import PullRequestRecord
from codeping.notifiers import AlertOptions, AlertSink, ReminderChoice
from codeping.preferences import PreferenceStore
from codeping.store import KeyValueStore, PersistenceError
from codeping.ui import StatusKind, StatusView, UiSink
from codeping.watcher import REFRESH_TASK, REMINDER_TASK, ReviewWatcher


def _pr(pr_id: int, repository: str = "org/repo") -> PullRequestRecord:
    return PullRequestRecord(
        id=pr_id,
        number=100 + pr_id,
        title=f"Change {pr_id}",
        url=f"https://github.com/{repository}/pull/{100 + pr_id}",
        repository=repository,
        author="alice",
    )


class ScriptedFetcher(Fetcher):
    """Returns queued responses in order; the last one repeats."""

    def __init__(self, *responses: Any, authenticated: bool = True) -> None:
        self.responses = list(responses) or [[]]
        self.authenticated = authenticated
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.auth: AuthContext | None = None

    def is_authenticated(self) -> bool:
        return self.authenticated

    def set_auth(self, auth: AuthContext) -> None:
        self.auth = auth
        self.authenticated = True

    def clear_auth(self) -> None:
        self.auth = None
        self.authenticated = False

    async def fetch_review_requests(self) -> list[PullRequestRecord]:
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(response, Exception):
            raise response
        return list(response)


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.writes = 0

    def init_db(self) -> None:
        return None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def update(self, key: str, value: Any) -> None:
        self.writes += 1
        self.values[key] = value


class RecordingUi(UiSink):
    def __init__(self) -> None:
        self.published: list[tuple[list[int], list[int]]] = []
        self.statuses: list[StatusView] = []
        self.errors: list[str] = []
        self.reveals = 0

    def set_pull_requests(
        self,
        open_prs: Sequence[PullRequestRecord],
        ignored_prs: Sequence[PullRequestRecord],
    ) -> None:
        self.published.append(([pr.id for pr in open_prs], [pr.id for pr in ignored_prs]))

    def set_status(self, status: StatusView) -> None:
        self.statuses.append(status)

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def reveal(self) -> None:
        self.reveals += 1


class RecordingAlerts(AlertSink):
    def __init__(self, choice: ReminderChoice | None = None) -> None:
        self.notifications: list[tuple[int, AlertOptions]] = []
        self.reminder_sounds: list[str] = []
        self.prompts: list[int] = []
        self.choice = choice
        self.fail = False

    async def notify_new_pull_requests(self, count: int, options: AlertOptions) -> None:
        if self.fail:
            raise RuntimeError("toast backend gone")
        self.notifications.append((count, options))

    async def play_reminder_sound(self, sound_path: str) -> None:
        self.reminder_sounds.append(sound_path)

    async def prompt_reminder(self, count: int) -> ReminderChoice | None:
        self.prompts.append(count)
        return self.choice

    @property
    def touched(self) -> bool:
        return bool(self.notifications or self.reminder_sounds or self.prompts)


def _build(
    fetcher: ScriptedFetcher,
    *,
    ignored: set[int] | None = None,
    config: AppConfig | None = None,
    alerts: RecordingAlerts | None = None,
    store: MemoryStore | None = None,
) -> tuple[ReviewWatcher, RecordingUi, RecordingAlerts, MemoryStore]:
    store = store or MemoryStore()
    ignore_store = IgnoreListStore(store)
    if ignored is not None:
        ignore_store.save(ignored)
        store.writes = 0
    ui = RecordingUi()
    alerts = alerts or RecordingAlerts()
    watcher = ReviewWatcher(
        config=config or AppConfig(),
        fetcher=fetcher,
        ignore_store=ignore_store,
        ui=ui,
        alerts=alerts,
        preferences=PreferenceStore(store),
    )
    return watcher, ui, alerts, store


async def _drain(watcher: ReviewWatcher) -> None:
    pending = list(watcher._background)
    if pending:
        await asyncio.gather(*pending)


@pytest.mark.asyncio
async def test_unauthenticated_refresh_publishes_empty_lists_without_fetching() -> None:
    fetcher = ScriptedFetcher([_pr(1)], authenticated=False)
    watcher, ui, alerts, _ = _build(fetcher)

    result = await watcher.refresh()

    assert result.status is StatusKind.UNAUTHENTICATED
    assert fetcher.calls == 0
    assert ui.published[-1] == ([], [])
    assert ui.statuses[-1].label == "$(bell-slash) Sign in"
    assert ui.statuses[-1].primary_action_id == "codeping.showSignIn"
    assert not alerts.touched


@pytest.mark.asyncio
async def test_first_successful_fetch_never_alerts() -> None:
    watcher, ui, alerts, _ = _build(ScriptedFetcher([_pr(1), _pr(2), _pr(3)]))

    result = await watcher.refresh()

    assert result.ok
    assert result.new_count == 0
    assert alerts.notifications == []
    assert ui.published[-1] == ([1, 2, 3], [])
    assert ui.statuses[-1].label == "$(bell) Reviews: 3"


@pytest.mark.asyncio
async def test_new_arrival_after_first_fetch_alerts_with_count() -> None:
    config = AppConfig(alerts=AlertSettings(enable_sound=True, muted=False, sound_path="/tmp/ping.wav"))
    watcher, _, alerts, _ = _build(
        ScriptedFetcher([_pr(1)], [_pr(1), _pr(2), _pr(3)]),
        config=config,
    )

    await watcher.refresh()
    result = await watcher.refresh()

    assert result.new_count == 2
    assert len(alerts.notifications) == 1
    count, options = alerts.notifications[0]
    assert count == 2
    assert options == AlertOptions(enable_sound=True, muted=False, sound_path="/tmp/ping.wav")


@pytest.mark.asyncio
async def test_unchanged_fetch_does_not_alert_again() -> None:
    watcher, _, alerts, _ = _build(ScriptedFetcher([_pr(1)], [_pr(1), _pr(2)], [_pr(1), _pr(2)]))

    await watcher.refresh()
    await watcher.refresh()
    await watcher.refresh()

    assert [count for count, _ in alerts.notifications] == [1]


@pytest.mark.asyncio
async def test_ignored_pull_requests_never_alert_even_when_new() -> None:
    watcher, ui, alerts, _ = _build(
        ScriptedFetcher([_pr(1)], [_pr(1), _pr(2)]),
        ignored={1},
    )

    await watcher.refresh()
    # Not in the current fetch yet, so it is kept until the next refresh.
    await watcher.ignore_pull_request(2)
    result = await watcher.refresh()

    assert result.new_count == 0
    assert alerts.notifications == []
    assert ui.published[-1] == ([], [1, 2])
    assert ui.statuses[-1].label == "$(bell) Reviews: 0"
    assert ui.statuses[-1].tooltip == "No open review requests."


@pytest.mark.asyncio
async def test_stale_ignore_entries_are_pruned_and_persisted() -> None:
    watcher, ui, _, store = _build(ScriptedFetcher([_pr(1), _pr(2)]), ignored={2, 3})

    await watcher.refresh()

    assert ui.published[-1] == ([1], [2])
    assert watcher.ignored == {2}
    assert store.writes == 1
    assert IgnoreListStore(store).load() == {2}


@pytest.mark.asyncio
async def test_unchanged_ignore_list_is_not_rewritten() -> None:
    watcher, _, _, store = _build(ScriptedFetcher([_pr(1), _pr(2)]), ignored={2})

    await watcher.refresh()
    await watcher.refresh()

    assert store.writes == 0


@pytest.mark.asyncio
async def test_background_fetch_error_sets_error_status_silently() -> None:
    watcher, ui, alerts, _ = _build(ScriptedFetcher(FetchError("rate limited")))

    result = await watcher.refresh()

    assert result.status is StatusKind.ERROR
    assert result.error == "rate limited"
    assert ui.statuses[-1].label == "$(bell-slash) Error"
    assert ui.errors == []
    assert not alerts.touched


@pytest.mark.asyncio
async def test_user_triggered_fetch_error_is_surfaced() -> None:
    watcher, ui, _, _ = _build(ScriptedFetcher(FetchError("rate limited")))

    await watcher.refresh(user_triggered=True)

    assert ui.errors == ["rate limited"]


@pytest.mark.asyncio
async def test_unexpected_fetch_failure_is_treated_as_fetch_error() -> None:
    watcher, ui, _, _ = _build(ScriptedFetcher(ValueError("bad payload")))

    result = await watcher.refresh()

    assert result.status is StatusKind.ERROR
    assert ui.statuses[-1].kind is StatusKind.ERROR


@pytest.mark.asyncio
async def test_auth_error_marks_unauthenticated_and_clears_lists() -> None:
    watcher, ui, alerts, _ = _build(ScriptedFetcher([_pr(1)], AuthError("token expired")))

    await watcher.refresh()
    result = await watcher.refresh()

    assert result.status is StatusKind.UNAUTHENTICATED
    assert ui.statuses[-1].kind is StatusKind.UNAUTHENTICATED
    assert ui.published[-1] == ([], [])
    assert watcher.open_count == 0
    assert not alerts.touched


@pytest.mark.asyncio
async def test_fetch_error_keeps_previous_partition() -> None:
    watcher, _, _, _ = _build(ScriptedFetcher([_pr(1), _pr(2)], FetchError("offline")), ignored={2})

    await watcher.refresh()
    await watcher.refresh()

    assert [pr.id for pr in watcher.state.open_prs] == [1]
    assert [pr.id for pr in watcher.state.ignored_prs] == [2]


@pytest.mark.asyncio
async def test_alert_failure_does_not_break_refresh() -> None:
    alerts = RecordingAlerts()
    alerts.fail = True
    watcher, ui, _, _ = _build(ScriptedFetcher([], [_pr(1)]), alerts=alerts)

    await watcher.refresh()
    result = await watcher.refresh()

    assert result.ok
    assert ui.published[-1] == ([1], [])


@pytest.mark.asyncio
async def test_ignore_removes_pull_request_without_refetching() -> None:
    fetcher = ScriptedFetcher([_pr(1), _pr(2), _pr(3)])
    watcher, ui, _, store = _build(fetcher)
    await watcher.refresh()

    changed = await watcher.ignore_pull_request(2)

    assert changed is True
    assert fetcher.calls == 1
    assert ui.published[-1] == ([1, 3], [2])
    assert ui.statuses[-1].label == "$(bell) Reviews: 2"
    assert IgnoreListStore(store).load() == {2}
    assert await watcher.ignore_pull_request(2) is False


@pytest.mark.asyncio
async def test_unignore_restores_pull_request_without_alerting() -> None:
    watcher, ui, alerts, store = _build(ScriptedFetcher([_pr(1), _pr(2)]), ignored={2})
    await watcher.refresh()
    assert ui.published[-1] == ([1], [2])

    changed = await watcher.unignore_pull_request(2)
    await watcher.refresh()

    assert changed is True
    assert ui.published[-1] == ([1, 2], [])
    assert IgnoreListStore(store).load() == set()
    assert alerts.notifications == []


@pytest.mark.asyncio
async def test_reminder_with_zero_open_pull_requests_never_touches_alert_sink() -> None:
    config = AppConfig(reminders=ReminderSettings(enabled=True, sound_path="/tmp/remind.wav"))
    watcher, _, alerts, _ = _build(ScriptedFetcher([_pr(1)]), ignored={1}, config=config)
    await watcher.refresh()

    reminded = await watcher.remind()
    await _drain(watcher)

    assert reminded is False
    assert not alerts.touched


@pytest.mark.asyncio
async def test_reminder_skipped_when_disabled_or_signed_out() -> None:
    config = AppConfig(reminders=ReminderSettings(enabled=False))
    watcher, _, alerts, _ = _build(ScriptedFetcher([_pr(1)]), config=config)
    await watcher.refresh()

    assert await watcher.remind() is False

    watcher.config.reminders.enabled = True
    watcher.logout()
    assert await watcher.remind() is False
    await _drain(watcher)
    assert not alerts.touched


@pytest.mark.asyncio
async def test_reminder_plays_sound_then_prompts_without_fetching() -> None:
    config = AppConfig(reminders=ReminderSettings(enabled=True, sound_path=" /tmp/remind.wav "))
    fetcher = ScriptedFetcher([_pr(1), _pr(2)])
    watcher, _, alerts, _ = _build(fetcher, config=config)
    await watcher.refresh()

    reminded = await watcher.remind()
    await _drain(watcher)

    assert reminded is True
    assert fetcher.calls == 1
    assert alerts.reminder_sounds == ["/tmp/remind.wav"]
    assert alerts.prompts == [2]
    assert alerts.notifications == []


@pytest.mark.asyncio
async def test_reminder_without_sound_path_only_prompts() -> None:
    watcher, _, alerts, _ = _build(ScriptedFetcher([_pr(1)]))
    await watcher.refresh()

    await watcher.remind()
    await _drain(watcher)

    assert alerts.reminder_sounds == []
    assert alerts.prompts == [1]


@pytest.mark.asyncio
async def test_reminder_open_view_choice_reveals_and_refreshes() -> None:
    fetcher = ScriptedFetcher([_pr(1)])
    watcher, ui, _, _ = _build(fetcher, alerts=RecordingAlerts(choice=ReminderChoice.OPEN_VIEW))
    await watcher.refresh()

    await watcher.remind()
    await _drain(watcher)

    assert ui.reveals == 1
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_logout_during_in_flight_refresh_discards_the_result() -> None:
    fetcher = ScriptedFetcher([_pr(1), _pr(2)])
    fetcher.gate = asyncio.Event()
    watcher, ui, alerts, _ = _build(fetcher)

    in_flight = asyncio.create_task(watcher.refresh())
    await asyncio.sleep(0)
    watcher.logout()
    fetcher.gate.set()
    result = await in_flight

    assert result.discarded is True
    assert watcher.state.open_prs == []
    assert watcher.state.ever_fetched_successfully is False
    assert ui.published[-1] == ([], [])
    assert ui.statuses[-1].kind is StatusKind.UNAUTHENTICATED
    assert not alerts.touched


@pytest.mark.asyncio
async def test_login_resets_state_so_first_fetch_does_not_alert() -> None:
    fetcher = ScriptedFetcher([_pr(1)], [_pr(1), _pr(2), _pr(3)], authenticated=False)
    watcher, _, alerts, _ = _build(fetcher)

    await watcher.login(AuthContext(kind="github", token="t0ken", username="octocat"))
    watcher.logout()
    result = await watcher.login(AuthContext(kind="enterprise", token="t0ken", base_url="https://ghe.example/api/v3"))

    assert fetcher.auth is not None and fetcher.auth.kind == "enterprise"
    assert result.open_count == 3
    assert alerts.notifications == []


@pytest.mark.asyncio
async def test_toggle_mute_is_reflected_in_alert_options() -> None:
    watcher, _, alerts, _ = _build(ScriptedFetcher([], [_pr(1)]))

    assert await watcher.toggle_mute() is True
    await watcher.refresh()
    await watcher.refresh()

    assert alerts.notifications[0][1].muted is True


@pytest.mark.asyncio
async def test_start_schedules_both_timers_with_configured_intervals() -> None:
    watcher, ui, _, _ = _build(ScriptedFetcher([_pr(1)]))

    await watcher.start()
    try:
        assert watcher.scheduler.active_tasks() == [REFRESH_TASK, REMINDER_TASK]
        assert watcher.scheduler.interval(REFRESH_TASK) == 15
        assert watcher.scheduler.interval(REMINDER_TASK) == 600
        assert ui.published[-1] == ([1], [])
    finally:
        await watcher.stop()

    assert watcher.scheduler.active_tasks() == []


@pytest.mark.asyncio
async def test_apply_config_reschedules_only_changed_timers() -> None:
    watcher, _, _, _ = _build(ScriptedFetcher([]))
    await watcher.start(initial_refresh=False)
    try:
        refresh_timer = watcher.scheduler._timers[REFRESH_TASK]

        watcher.apply_config(AppConfig(reminders=ReminderSettings(interval_minutes=30)))
        assert watcher.scheduler._timers[REFRESH_TASK] is refresh_timer
        assert watcher.scheduler.interval(REMINDER_TASK) == 1800

        watcher.apply_config(
            AppConfig(refresh_interval_seconds=60, reminders=ReminderSettings(enabled=False))
        )
        assert watcher.scheduler.interval(REFRESH_TASK) == 60
        assert watcher.scheduler.active_tasks() == [REFRESH_TASK]
    finally:
        await watcher.stop()


@pytest.mark.asyncio
async def test_disabled_reminders_are_not_scheduled_at_start() -> None:
    config = AppConfig(reminders=ReminderSettings(enabled=False))
    watcher, _, _, _ = _build(ScriptedFetcher([]), config=config)

    await watcher.start(initial_refresh=False)
    try:
        assert watcher.scheduler.active_tasks() == [REFRESH_TASK]
    finally:
        await watcher.stop()


class FlakyStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False

    def get(self, key: str, default: Any = None) -> Any:
        if self.fail_reads:
            raise PersistenceError("database is locked")
        return super().get(key, default)


@pytest.mark.asyncio
async def test_ignore_list_edited_by_another_process_applies_on_next_refresh() -> None:
    watcher, ui, _, store = _build(ScriptedFetcher([_pr(1), _pr(2)]))
    await watcher.start(initial_refresh=False)
    try:
        await watcher.refresh()
        assert ui.published[-1] == ([1, 2], [])

        IgnoreListStore(store).save({2})
        await watcher.refresh()

        assert ui.published[-1] == ([1], [2])
        assert watcher.open_count == 1
        assert ui.statuses[-1].label == "$(bell) Reviews: 1"
    finally:
        await watcher.stop()


@pytest.mark.asyncio
async def test_pruning_keeps_entries_added_by_another_process() -> None:
    watcher, _, _, store = _build(
        ScriptedFetcher([_pr(2), _pr(5)], [_pr(2)]),
        ignored={5},
    )
    await watcher.refresh()
    assert watcher.ignored == {5}

    IgnoreListStore(store).save({2, 5})
    await watcher.refresh()

    assert IgnoreListStore(store).load() == {2}
    assert watcher.ignored == {2}


@pytest.mark.asyncio
async def test_unignore_by_another_process_does_not_alert() -> None:
    watcher, ui, alerts, store = _build(ScriptedFetcher([_pr(1), _pr(2)]), ignored={2})
    await watcher.refresh()

    IgnoreListStore(store).save(set())
    await watcher.refresh()

    assert ui.published[-1] == ([1, 2], [])
    assert alerts.notifications == []


@pytest.mark.asyncio
async def test_unreadable_ignore_list_keeps_the_known_entries() -> None:
    store = FlakyStore()
    watcher, ui, _, _ = _build(ScriptedFetcher([_pr(1), _pr(2)]), ignored={2}, store=store)
    await watcher.refresh()

    store.fail_reads = True
    writes_before = store.writes
    await watcher.refresh()

    assert ui.published[-1] == ([1], [2])
    assert store.writes == writes_before


@pytest.mark.asyncio
async def test_stored_mute_survives_config_reload() -> None:
    watcher, _, alerts, store = _build(ScriptedFetcher([], [_pr(1)]))
    await watcher.start(initial_refresh=False)
    try:
        await watcher.toggle_mute()
        assert PreferenceStore(store).load_muted() is True

        watcher.apply_config(AppConfig(alerts=AlertSettings(muted=False)))
        await watcher.refresh()
        await watcher.refresh()

        assert watcher.config.alerts.muted is True
        assert alerts.notifications[0][1].muted is True
    finally:
        await watcher.stop()


@pytest.mark.asyncio
async def test_mute_set_by_another_process_applies_to_next_alert() -> None:
    watcher, _, alerts, store = _build(ScriptedFetcher([], [_pr(1)], [_pr(1), _pr(2)]))
    await watcher.refresh()

    PreferenceStore(store).save_muted(True)
    await watcher.refresh()
    PreferenceStore(store).save_muted(False)
    await watcher.refresh()

    assert [options.muted for _, options in alerts.notifications] == [True, False]


@pytest.mark.asyncio
async def test_reminder_prompt_is_not_created_when_stopped_first() -> None:
    config = AppConfig(reminders=ReminderSettings(enabled=True))
    watcher, _, alerts, _ = _build(ScriptedFetcher([_pr(1)]), config=config)
    await watcher.refresh()
    created = 0
    original = watcher._prompt_reminder

    def counting_prompt(count: int) -> Any:
        nonlocal created
        created += 1
        return original(count)

    watcher._prompt_reminder = counting_prompt  # type: ignore[method-assign]

    assert await watcher.remind() is True
    await watcher.stop()

    assert created == 0
    assert alerts.prompts == []
