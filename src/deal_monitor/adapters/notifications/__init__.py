"""Notification transport adapters."""

from deal_monitor.adapters.notifications.discord_transport import DiscordTransport
from deal_monitor.adapters.notifications.slack_transport import SlackTransport

__all__ = ["DiscordTransport", "SlackTransport"]
