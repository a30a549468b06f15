from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from codeping.config import AppConfig, ConfigError, GitHubSettings, load_config
from codeping.fetchers import GitHubFetcher, auth_from_settings
from codeping.ignore_list import IgnoreListStore
from codeping.logging_config import setup_logging
from codeping.notifiers import AlertSink, DesktopAlertSink, SlackWebhookAlertSink
from codeping.preferences import PreferenceStore
from codeping.scheduler import run_guarded
from codeping.store import PersistenceError, SQLiteStore
from codeping.ui import ConsoleView, StatusKind
from codeping.watcher import ReviewWatcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codeping",
        description="Watch GitHub for pull requests awaiting your review.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("watch", help="Poll for review requests until interrupted")
    subparsers.add_parser("check", help="Fetch review requests once and print them")
    subparsers.add_parser("init-db", help="Initialize SQLite schema")
    subparsers.add_parser("list-ignored", help="Print ignored pull request ids")

    ignore = subparsers.add_parser("ignore", help="Stop alerting on a pull request")
    ignore.add_argument("pr_id", type=int, help="Pull request id (shown as [id N])")

    unignore = subparsers.add_parser("unignore", help="Resume alerting on a pull request")
    unignore.add_argument("pr_id", type=int, help="Pull request id (shown as [id N])")

    subparsers.add_parser("mute", help="Silence alert sounds, including in a running watcher")
    subparsers.add_parser("unmute", help="Re-enable alert sounds")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    log_level = args.log_level or app_config.log_level
    setup_logging(log_level)

    try:
        store = _build_store(app_config)
        store.init_db()
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2
    except PersistenceError as exc:
        logger.error("Cannot open state store: %s", exc)
        return 1

    if args.command == "init-db":
        logger.info("Initialized SQLite database at %s", app_config.storage.path)
        return 0

    ignore_store = IgnoreListStore(store)
    preferences = PreferenceStore(store)

    if args.command == "list-ignored":
        return _list_ignored(ignore_store)
    if args.command in {"ignore", "unignore"}:
        return _edit_ignore_list(ignore_store, args.pr_id, ignore=args.command == "ignore")
    if args.command in {"mute", "unmute"}:
        return _set_muted(preferences, args.command == "mute")

    try:
        alerts = _build_alerts(app_config)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2

    view = ConsoleView(auto_print=args.command == "watch")
    watcher = ReviewWatcher(
        config=app_config,
        fetcher=GitHubFetcher(
            per_page=app_config.github.per_page,
            timeout_seconds=app_config.github.timeout_seconds,
        ),
        ignore_store=ignore_store,
        ui=view,
        alerts=alerts,
        preferences=preferences,
    )

    if args.command == "check":
        return asyncio.run(_check(watcher, app_config))
    return asyncio.run(_watch(watcher, app_config, args.config, log_level_override=args.log_level))


def _build_store(app_config: AppConfig) -> SQLiteStore:
    if app_config.storage.type != "sqlite":
        raise ConfigError(f"Unsupported storage type: {app_config.storage.type}")
    return SQLiteStore(app_config.storage.path)


def _build_alerts(app_config: AppConfig) -> AlertSink:
    env_var = app_config.alerts.slack_webhook_env_var
    if env_var:
        webhook_url = os.getenv(env_var, "").strip()
        if not webhook_url:
            raise ConfigError(f"Missing Slack webhook URL in environment variable {env_var}")
        return SlackWebhookAlertSink(webhook_url=webhook_url)
    return DesktopAlertSink(default_sound_path=app_config.alerts.default_sound_path)


def _identity_changed(old: GitHubSettings, new: GitHubSettings) -> bool:
    return (old.kind, old.base_url, old.token_env_var, old.username) != (
        new.kind,
        new.base_url,
        new.token_env_var,
        new.username,
    )


async def _switch_identity(watcher: ReviewWatcher, settings: GitHubSettings) -> None:
    auth = auth_from_settings(settings)
    if auth is None:
        logger.warning("No token found in environment variable %s; signing out", settings.token_env_var)
        watcher.logout()
        return
    await watcher.login(auth)


async def _check(watcher: ReviewWatcher, app_config: AppConfig) -> int:
    auth = auth_from_settings(app_config.github)
    if auth is None:
        await watcher.refresh(user_triggered=True)
        print(
            f"Not signed in. Export a token in {app_config.github.token_env_var}.",
            file=sys.stderr,
        )
        return 2

    result = await watcher.login(auth, user_triggered=True)
    if result.status is StatusKind.UNAUTHENTICATED:
        return 2
    if not result.ok:
        return 1

    watcher.ui.reveal()
    logger.info(
        "Check complete | open=%d ignored=%d",
        result.open_count,
        result.ignored_count,
    )
    return 0


async def _watch(
    watcher: ReviewWatcher,
    app_config: AppConfig,
    config_path: str,
    *,
    log_level_override: str | None = None,
) -> int:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def reload_config() -> None:
        try:
            new_config = load_config(config_path)
        except ConfigError as exc:
            logger.error("Ignoring config reload: %s", exc)
            return
        setup_logging(log_level_override or new_config.log_level)
        identity_changed = _identity_changed(watcher.config.github, new_config.github)
        watcher.apply_config(new_config)
        logger.info("Reloaded configuration from %s", config_path)
        if identity_changed:
            watcher.spawn("sign-in", lambda: _switch_identity(watcher, new_config.github))

    # Signal handlers are unavailable on some platforms; Ctrl+C still raises there.
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
        loop.add_signal_handler(signal.SIGTERM, stop_event.set)
        if hasattr(signal, "SIGHUP"):
            loop.add_signal_handler(signal.SIGHUP, reload_config)

    auth = auth_from_settings(app_config.github)
    if auth is None:
        logger.warning(
            "No token found in environment variable %s; sign in by exporting it",
            app_config.github.token_env_var,
        )
    await watcher.start(initial_refresh=auth is None)
    if auth is not None:
        await run_guarded("sign-in", lambda: watcher.login(auth))
    logger.info(
        "Watching for review requests every %ds",
        watcher.config.refresh_interval_seconds,
    )

    try:
        await stop_event.wait()
    finally:
        await watcher.stop()
    return 0


def _list_ignored(ignore_store: IgnoreListStore) -> int:
    for value in sorted(ignore_store.load()):
        print(value)
    return 0


def _edit_ignore_list(ignore_store: IgnoreListStore, pr_id: int, *, ignore: bool) -> int:
    ignored = ignore_store.load()
    if ignore:
        ignored.add(pr_id)
    else:
        ignored.discard(pr_id)
    ignore_store.save(ignored)
    logger.info("%s pull request %d", "Ignored" if ignore else "Unignored", pr_id)
    return 0


def _set_muted(preferences: PreferenceStore, muted: bool) -> int:
    preferences.save_muted(muted)
    logger.info("Alerts %s", "muted" if muted else "unmuted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
