"""Configuration management."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import yaml

from deal_monitor.core import AlertSubscription, ItemState, SourceProfile
from deal_monitor.core.errors import ConfigError

SOURCE_TYPES = ("reddit", "redflagdeals", "epic", "steam", "gog", "prime_gaming", "rfd_freebies", "rss")
TRANSPORTS = ("discord", "slack")

# Defaults that follow from how each site behaves.
DEFAULT_LINK_TEMPLATES = {
    "reddit": "https://redd.it/{native_id}",
    "redflagdeals": "https://forums.redflagdeals.com/{native_id}",
}
DEFAULT_UPDATE_QUOTAS = {
    "reddit": 3,
    "redflagdeals": 5,
}
DEFAULT_ZERO_SCORE_STATES = {
    "redflagdeals": [ItemState.EXPIRED.value, ItemState.MOVED.value],
}
SILENT_REMOVAL_TYPES = frozenset({"rfd_freebies"})


@dataclass
class PathsConfig:
    """Path settings."""
    store_dir: Path = Path("data")
    log_dir: Path = Path("logs")


@dataclass
class RuntimeConfig:
    """Timeouts and pacing."""
    request_timeout: float = 5.0
    cycle_timeout: float = 40.0
    inter_call_delay: float = 0.3
    log_level: str = "INFO"


@dataclass
class NotificationsConfig:
    """Chat platform settings."""
    transport: str = "discord"
    server_id: Optional[str] = None
    alert_channel_id: Optional[str] = None


@dataclass
class SourceConfig:
    """One configured source.

    ``None`` fields fall back to the defaults of the source type.
    """
    id: str
    type: str
    channel_id: str = ""
    url: Optional[str] = None
    display_name: Optional[str] = None
    hot_channel_id: Optional[str] = None
    hot_score: Optional[int] = None
    hot_window_hours: float = 2.0
    update_quota: Optional[int] = None
    link_template: Optional[str] = None
    zero_score_states: Optional[list[str]] = None
    silent_removal: Optional[bool] = None
    raw_title: bool = False
    options: dict = field(default_factory=dict)

    def to_profile(self) -> SourceProfile:
        """Build the registry profile of this source."""
        if self.zero_score_states is None:
            zero_score_states = DEFAULT_ZERO_SCORE_STATES.get(self.type, [])
        else:
            zero_score_states = self.zero_score_states

        if self.silent_removal is None:
            silent_removal = self.type in SILENT_REMOVAL_TYPES
        else:
            silent_removal = self.silent_removal

        return SourceProfile(
            source_id=self.id,
            channel_id=str(self.channel_id),
            hot_channel_id=str(self.hot_channel_id) if self.hot_channel_id else None,
            hot_score=self.hot_score,
            hot_window=timedelta(hours=self.hot_window_hours),
            update_quota=self.update_quota if self.update_quota is not None else DEFAULT_UPDATE_QUOTAS.get(self.type),
            link_template=self.link_template or DEFAULT_LINK_TEMPLATES.get(self.type),
            zero_score_states=frozenset(zero_score_states),
            silent_removal=silent_removal,
            raw_title=self.raw_title,
            display_name=self.display_name,
        )


@dataclass
class PipelineConfig:
    """One scheduled pipeline."""
    enabled: bool = False
    interval_minutes: float = 1.0
    sources: list[SourceConfig] = field(default_factory=list)


@dataclass
class PipelinesConfig:
    """The three pipelines, each with its own baseline."""
    deals: PipelineConfig = field(default_factory=lambda: PipelineConfig(interval_minutes=1.0))
    free_deals: PipelineConfig = field(default_factory=lambda: PipelineConfig(interval_minutes=30.0))
    rss: PipelineConfig = field(default_factory=lambda: PipelineConfig(interval_minutes=5.0))

    def items(self) -> list[tuple[str, PipelineConfig]]:
        return [("deals", self.deals), ("free_deals", self.free_deals), ("rss", self.rss)]


@dataclass
class Settings:
    """Application settings."""

    # Secrets (from environment only)
    discord_bot_token: Optional[str] = None
    slack_bot_token: Optional[str] = None
    reddit_auth_header: Optional[str] = None
    reddit_user_agent: Optional[str] = None

    # Config sections
    paths: PathsConfig = field(default_factory=PathsConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    pipelines: PipelinesConfig = field(default_factory=PipelinesConfig)
    alerts: list[AlertSubscription] = field(default_factory=list)

    @property
    def store_dir(self) -> Path:
        return self.paths.store_dir

    @property
    def log_dir(self) -> Path:
        return self.paths.log_dir

    @property
    def transport_token(self) -> Optional[str]:
        if self.notifications.transport == "slack":
            return self.slack_bot_token
        return self.discord_bot_token


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"{config_path} must contain a mapping")
    return config


def _apply_section(section: Any, values: dict, name: str, paths: bool = False) -> None:
    for key, value in values.items():
        if not hasattr(section, key):
            raise ConfigError(f"Unknown setting {name}.{key}")
        setattr(section, key, Path(value) if paths else value)


def _build_pipeline(name: str, values: dict, default: PipelineConfig) -> PipelineConfig:
    try:
        sources = [SourceConfig(**source) for source in values.get("sources", [])]
    except TypeError as e:
        raise ConfigError(f"Invalid source in pipelines.{name}: {e}") from e

    return PipelineConfig(
        enabled=bool(values.get("enabled", True)),
        interval_minutes=float(values.get("interval_minutes", default.interval_minutes)),
        sources=sources,
    )


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    # Load YAML config
    config = load_config(config_path)

    # Secrets from environment
    settings = Settings(
        discord_bot_token=os.getenv("DISCORD_BOT_TOKEN"),
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN"),
        reddit_auth_header=os.getenv("REDDIT_AUTH_HEADER"),
        reddit_user_agent=os.getenv("REDDIT_USER_AGENT"),
    )

    # Apply YAML config
    if "paths" in config:
        _apply_section(settings.paths, config["paths"], "paths", paths=True)

    if "runtime" in config:
        _apply_section(settings.runtime, config["runtime"], "runtime")

    if "notifications" in config:
        _apply_section(settings.notifications, config["notifications"], "notifications")

    for name, values in (config.get("pipelines") or {}).items():
        if not hasattr(settings.pipelines, name):
            raise ConfigError(f"Unknown pipeline {name}")
        default = getattr(settings.pipelines, name)
        setattr(settings.pipelines, name, _build_pipeline(name, values or {}, default))

    try:
        settings.alerts = [AlertSubscription(**alert) for alert in config.get("alerts", [])]
    except TypeError as e:
        raise ConfigError(f"Invalid alert subscription: {e}") from e

    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    """Reject configurations that cannot run."""
    if settings.notifications.transport not in TRANSPORTS:
        raise ConfigError(f"Unknown transport {settings.notifications.transport}")

    seen_ids: set[str] = set()
    for pipeline_name, pipeline in settings.pipelines.items():
        for source in pipeline.sources:
            if source.type not in SOURCE_TYPES:
                raise ConfigError(f"Unknown source type {source.type} for {source.id}")
            if source.id in seen_ids:
                raise ConfigError(f"Duplicate source id {source.id}")
            if not source.channel_id:
                raise ConfigError(f"Source {source.id} has no channel_id")
            if source.type == "rss" and not source.url:
                raise ConfigError(f"RSS source {source.id} has no url")
            seen_ids.add(source.id)

    for alert in settings.alerts:
        if alert.source not in seen_ids:
            raise ConfigError(f"Alert for unknown source {alert.source}")
