"""Configuration loading for Zaffa."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class SheetConfig:
    """Remote spreadsheet web app endpoint."""

    endpoint_url: str = ""
    timeout_seconds: float = 30.0

    @property
    def is_apps_script(self) -> bool:
        return self.endpoint_url.startswith("https://script.google.com")


@dataclass
class SyncConfig:
    """Polling and reconciliation tuning."""

    interval_seconds: float = 11.0
    grace_period_seconds: float = 5.0
    resume_delay_seconds: float = 1.0
    min_sync_gap_seconds: float = 1.0
    timezone_offset_hours: int = 4
    refresh_after_edit: bool = False
    push_archive: bool = False


@dataclass
class BookingConfig:
    send_only_changed_fields: bool = True
    notes_as_text: bool = True  # prefix notes with ' so the sheet keeps them as text


@dataclass
class CacheConfig:
    db_path: str = "~/.zaffa/cache.db"


@dataclass
class AuthConfig:
    admin_username: str | None = None
    admin_password: str | None = None
    max_login_attempts: int = 3
    min_password_length: int = 6

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_username and self.admin_password)


DEFAULT_WELCOME_TEMPLATE = (
    "Hello, here are the details of our event:\n"
    "Date: {date}\n"
    "Location: {location}\n"
    "Bride zaffa: {brideZaffa}\n"
    "Groom zaffa: {groomZaffa}"
)


@dataclass
class WelcomeConfig:
    """First-booking celebration message."""

    enabled: bool = True
    whatsapp_number: str = ""
    message_template: str = DEFAULT_WELCOME_TEMPLATE
    duration_minutes: int = 30
    show_for_admin: bool = False
    update_link_on_edit: bool = True
    remove_on_last_delete: bool = True


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    sheet: SheetConfig = field(default_factory=SheetConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    welcome: WelcomeConfig = field(default_factory=WelcomeConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with ZAFFA_ prefix."""
    return os.environ.get(f"ZAFFA_{key}", default)


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Sheet overrides
    if url := _get_env("SHEET_URL"):
        config.sheet.endpoint_url = url
    if timeout := _get_env("SHEET_TIMEOUT"):
        config.sheet.timeout_seconds = float(timeout)

    # Sync overrides
    if interval := _get_env("SYNC_INTERVAL"):
        config.sync.interval_seconds = float(interval)
    if grace := _get_env("GRACE_PERIOD"):
        config.sync.grace_period_seconds = float(grace)

    # Cache overrides
    if db_path := _get_env("CACHE_DB_PATH"):
        config.cache.db_path = db_path

    # Auth overrides
    if admin_username := _get_env("ADMIN_USERNAME"):
        config.auth.admin_username = admin_username
    if admin_password := _get_env("ADMIN_PASSWORD"):
        config.auth.admin_password = admin_password

    # Booking overrides
    if only_changed := _get_env("SEND_ONLY_CHANGED"):
        config.booking.send_only_changed_fields = _as_bool(only_changed)

    # Welcome overrides
    if number := _get_env("WHATSAPP_NUMBER"):
        config.welcome.whatsapp_number = number

    return config


def _section(data: dict, name: str, cls: type, current: Any) -> Any:
    """Build a config section from YAML, falling back to current values.

    Keys left empty in YAML (``null``) keep their current value.
    """
    section_data = data.get(name) or {}
    values = {}
    for key in current.__dataclass_fields__:
        value = section_data.get(key)
        values[key] = getattr(current, key) if value is None else value
    return cls(**values)


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            config.sheet = _section(data, "sheet", SheetConfig, config.sheet)
            config.sync = _section(data, "sync", SyncConfig, config.sync)
            config.booking = _section(data, "booking", BookingConfig, config.booking)
            config.cache = _section(data, "cache", CacheConfig, config.cache)
            config.auth = _section(data, "auth", AuthConfig, config.auth)
            config.welcome = _section(data, "welcome", WelcomeConfig, config.welcome)
            config.dashboard = _section(
                data, "dashboard", DashboardConfig, config.dashboard
            )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
