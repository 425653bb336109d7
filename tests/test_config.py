"""Tests for configuration loading."""

from datetime import timedelta
from pathlib import Path

import pytest

from deal_monitor.config import SourceConfig, get_settings
from deal_monitor.core.errors import ConfigError

CONFIG = """
paths:
  store_dir: /tmp/deal-monitor
runtime:
  cycle_timeout: 30
notifications:
  transport: slack
pipelines:
  deals:
    sources:
      - id: bapcsalescanada
        type: reddit
        channel_id: "1"
        hot_channel_id: "2"
        hot_score: 20
  rss:
    enabled: false
    sources:
      - id: ozbargain
        type: rss
        url: https://www.ozbargain.com.au/deals/feed
        channel_id: "3"
        options:
          parser: ozbargain
alerts:
  - source: bapcsalescanada
    keyword: "4090"
    mention: "9"
"""


def write_config(tmp_path: Path, text: str) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(text, encoding="utf-8")
    return config_path


def test_defaults_without_file(tmp_path: Path, monkeypatch) -> None:
    """Test a missing config file yields defaults."""
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "secret")

    settings = get_settings(tmp_path / "missing.yaml")

    assert settings.notifications.transport == "discord"
    assert settings.transport_token == "secret"
    assert settings.store_dir == Path("data")
    assert not settings.pipelines.deals.enabled
    assert settings.pipelines.free_deals.interval_minutes == 30


def test_yaml_overlay(tmp_path: Path, monkeypatch) -> None:
    """Test YAML values override the defaults."""
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb")

    settings = get_settings(write_config(tmp_path, CONFIG))

    assert settings.store_dir == Path("/tmp/deal-monitor")
    assert settings.runtime.cycle_timeout == 30
    assert settings.runtime.request_timeout == 5.0
    assert settings.transport_token == "xoxb"
    assert settings.pipelines.deals.enabled
    assert settings.pipelines.deals.interval_minutes == 1.0
    assert not settings.pipelines.rss.enabled
    assert settings.pipelines.rss.sources[0].options == {"parser": "ozbargain"}
    assert settings.alerts[0].keyword == "4090"


@pytest.mark.parametrize(
    "text, message",
    [
        ("runtime:\n  retries: 3\n", "Unknown setting runtime.retries"),
        ("pipelines:\n  weekly: {}\n", "Unknown pipeline weekly"),
        ("notifications:\n  transport: irc\n", "Unknown transport"),
        ("pipelines:\n  deals:\n    sources:\n      - {id: a, type: ebay, channel_id: '1'}\n", "Unknown source type"),
        ("pipelines:\n  deals:\n    sources:\n      - {id: a, type: reddit}\n", "has no channel_id"),
        ("pipelines:\n  rss:\n    sources:\n      - {id: a, type: rss, channel_id: '1'}\n", "has no url"),
        ("pipelines:\n  deals:\n    sources:\n      - {id: a, type: reddit, channel_id: '1', colour: red}\n",
         "Invalid source"),
        (
            "pipelines:\n  deals:\n    sources:\n"
            "      - {id: a, type: reddit, channel_id: '1'}\n"
            "  free_deals:\n    sources:\n"
            "      - {id: a, type: epic, channel_id: '2'}\n",
            "Duplicate source id a",
        ),
        ("alerts:\n  - {source: nowhere, keyword: x, mention: '1'}\n", "Alert for unknown source"),
        ("paths: [1, 2\n", "Invalid YAML"),
        ("- just a list\n", "must contain a mapping"),
    ],
)
def test_invalid_config(tmp_path: Path, text: str, message: str) -> None:
    """Test configurations that cannot run are rejected."""
    with pytest.raises(ConfigError, match=message):
        get_settings(write_config(tmp_path, text))


def test_profile_defaults_by_type() -> None:
    """Test source types bring their site defaults."""
    rfd = SourceConfig(id="redflagdeals", type="redflagdeals", channel_id="1").to_profile()
    reddit = SourceConfig(id="bapcsalescanada", type="reddit", channel_id=123, hot_window_hours=3).to_profile()
    freebies = SourceConfig(id="rfd_freebies", type="rfd_freebies", channel_id="2").to_profile()

    assert rfd.update_quota == 5
    assert rfd.zero_score_states == frozenset({"Expired", "Moved"})
    assert rfd.link_template == "https://forums.redflagdeals.com/{native_id}"
    assert reddit.update_quota == 3
    assert reddit.channel_id == "123"
    assert reddit.hot_window == timedelta(hours=3)
    assert freebies.silent_removal
    assert freebies.update_quota is None


def test_profile_overrides() -> None:
    """Test explicit values win over the type defaults."""
    profile = SourceConfig(
        id="redflagdeals",
        type="redflagdeals",
        channel_id="1",
        update_quota=0,
        zero_score_states=[],
        silent_removal=True,
    ).to_profile()

    assert profile.update_quota == 0
    assert profile.zero_score_states == frozenset()
    assert profile.silent_removal
