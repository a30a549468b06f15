from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 15
MIN_REFRESH_INTERVAL_SECONDS = 1
DEFAULT_REMINDER_INTERVAL_MINUTES = 10
MIN_REMINDER_INTERVAL_MINUTES = 1

AUTH_KINDS = {"github", "enterprise"}


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(slots=True)
class GitHubSettings:
    kind: str = "github"
    api_url: str = "https://api.github.com"
    enterprise_base_url: str | None = None
    token_env_var: str = "GITHUB_TOKEN"
    username: str | None = None
    per_page: int = 50
    timeout_seconds: int = 30

    @property
    def base_url(self) -> str:
        if self.kind == "enterprise" and self.enterprise_base_url:
            return self.enterprise_base_url
        return self.api_url


@dataclass(slots=True)
class AlertSettings:
    enable_sound: bool = True
    muted: bool = False
    sound_path: str | None = None
    default_sound_path: str | None = None
    slack_webhook_env_var: str | None = None


@dataclass(slots=True)
class ReminderSettings:
    enabled: bool = True
    interval_minutes: int = DEFAULT_REMINDER_INTERVAL_MINUTES
    sound_path: str | None = None


@dataclass(slots=True)
class StorageSettings:
    type: str = "sqlite"
    path: str = "data/state.sqlite"


@dataclass(slots=True)
class AppConfig:
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    github: GitHubSettings = field(default_factory=GitHubSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    reminders: ReminderSettings = field(default_factory=ReminderSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    log_level: str = "INFO"


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def _as_int(value: Any, *, field_name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _as_floored_int(value: Any, *, field_name: str, floor: int) -> int:
    parsed = _as_int(value, field_name=field_name)
    if parsed < floor:
        logger.warning("%s=%d is below the minimum; using %d", field_name, parsed, floor)
        return floor
    return parsed


def _as_optional_string(value: Any) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def _as_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    value = value or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a mapping")
    return value


def _resolve_relative_path(config_path: Path, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            parsed = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")

    return parse_config(parsed, config_path=config_path)


def parse_config(parsed: dict[str, Any], *, config_path: Path | None = None) -> AppConfig:
    raw_github = _as_mapping(parsed.get("github"), field_name="github")
    kind = str(raw_github.get("kind", "github")).strip().lower() or "github"
    if kind not in AUTH_KINDS:
        raise ConfigError(f"github.kind must be one of: {', '.join(sorted(AUTH_KINDS))}")

    enterprise_base_url = _as_optional_string(raw_github.get("enterprise_base_url"))
    if kind == "enterprise" and not enterprise_base_url:
        raise ConfigError("github.enterprise_base_url is required when github.kind is enterprise")

    github_settings = GitHubSettings(
        kind=kind,
        api_url=_as_optional_string(raw_github.get("api_url")) or "https://api.github.com",
        enterprise_base_url=enterprise_base_url,
        token_env_var=_as_optional_string(raw_github.get("token_env_var")) or "GITHUB_TOKEN",
        username=_as_optional_string(raw_github.get("username")),
        per_page=_as_int(raw_github.get("per_page", 50), field_name="github.per_page", minimum=1),
        timeout_seconds=_as_int(
            raw_github.get("timeout_seconds", 30),
            field_name="github.timeout_seconds",
            minimum=1,
        ),
    )

    raw_alerts = _as_mapping(parsed.get("alerts"), field_name="alerts")
    alert_settings = AlertSettings(
        enable_sound=_as_bool(raw_alerts.get("enable_sound", True), field_name="alerts.enable_sound"),
        muted=_as_bool(raw_alerts.get("muted", False), field_name="alerts.muted"),
        sound_path=_as_optional_string(raw_alerts.get("sound_path")),
        default_sound_path=_as_optional_string(raw_alerts.get("default_sound_path")),
        slack_webhook_env_var=_as_optional_string(raw_alerts.get("slack_webhook_env_var")),
    )

    raw_reminders = _as_mapping(parsed.get("reminders"), field_name="reminders")
    reminder_settings = ReminderSettings(
        enabled=_as_bool(raw_reminders.get("enabled", True), field_name="reminders.enabled"),
        interval_minutes=_as_floored_int(
            raw_reminders.get("interval_minutes", DEFAULT_REMINDER_INTERVAL_MINUTES),
            field_name="reminders.interval_minutes",
            floor=MIN_REMINDER_INTERVAL_MINUTES,
        ),
        sound_path=_as_optional_string(raw_reminders.get("sound_path")),
    )

    raw_storage = _as_mapping(parsed.get("storage"), field_name="storage")
    storage_path = str(raw_storage.get("path", "data/state.sqlite")).strip() or "data/state.sqlite"
    if config_path is not None:
        storage_path = _resolve_relative_path(config_path, storage_path)
    storage_settings = StorageSettings(
        type=str(raw_storage.get("type", "sqlite")).strip() or "sqlite",
        path=storage_path,
    )

    return AppConfig(
        refresh_interval_seconds=_as_floored_int(
            parsed.get("refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS),
            field_name="refresh_interval_seconds",
            floor=MIN_REFRESH_INTERVAL_SECONDS,
        ),
        github=github_settings,
        alerts=alert_settings,
        reminders=reminder_settings,
        storage=storage_settings,
        log_level=str(parsed.get("log_level", "INFO")).upper(),
    )
