"""Keyword alerts for newly posted items."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from deal_monitor.core.entities import Item
from deal_monitor.core.errors import UnknownSourceError
from deal_monitor.core.interfaces import NotificationTransport
from deal_monitor.core.messages import Message, trim
from deal_monitor.core.rate_limit import RateLimiter
from deal_monitor.core.registry import SourceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertSubscription:
    """Ping ``mention`` when a new ``source`` item matches ``keyword``."""

    source: str
    keyword: str
    mention: str


class AlertMatcher:
    """Matches new item titles against subscriptions and pings the targets."""

    def __init__(
        self,
        transport: NotificationTransport,
        registry: SourceRegistry,
        alert_channel_id: Optional[str],
        limiter: RateLimiter,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.alert_channel_id = alert_channel_id
        self.limiter = limiter

    async def match_and_alert(self, new_items: Sequence[Item], subscriptions: Iterable[AlertSubscription]) -> int:
        """Send one alert per matching item.

        Only items whose primary message went out are considered, since the
        alert links back to it.

        Returns:
            Number of alerts sent.
        """
        if not self.alert_channel_id:
            return 0

        patterns = compile_subscriptions(subscriptions)
        if not patterns:
            return 0

        pending = []
        for item in reversed(new_items):
            if item.refs.primary is None:
                continue
            mentions = self._match(item, patterns)
            if mentions:
                pending.append((item, mentions))

        if not pending:
            return 0

        results = await asyncio.gather(*(self._alert(item, mentions) for item, mentions in pending))
        sent = sum(1 for ok in results if ok)
        logger.info("Sent %d keyword alerts", sent)
        return sent

    def _match(self, item: Item, patterns: list[tuple[AlertSubscription, re.Pattern[str]]]) -> list[str]:
        mentions: list[str] = []
        for subscription, pattern in patterns:
            if subscription.source != item.source or not pattern.search(item.title):
                continue
            mention = self.transport.mention(subscription.mention)
            if mention not in mentions:
                mentions.append(mention)
        return mentions

    async def _alert(self, item: Item, mentions: list[str]) -> bool:
        try:
            profile = self.registry.get(item.source)
            link = profile.build_link(item)
            message_link = self.transport.message_link(profile.channel_id, item.refs.primary)
            message = Message(
                title=trim(item.title),
                url=link,
                content=f"{' '.join(mentions)} {item.title}",
                description=f"{link}\n\n{message_link}",
            )
            async with self.limiter:
                await self.transport.send(self.alert_channel_id, message)
            return True
        except UnknownSourceError as e:
            logger.error("%s", e)
        except Exception as e:
            logger.error("Sending alert for %s failed: %s", item.id, e)
        return False


def compile_subscriptions(
    subscriptions: Iterable[AlertSubscription],
) -> list[tuple[AlertSubscription, re.Pattern[str]]]:
    """Compile keywords case-insensitively, skipping invalid patterns."""
    compiled = []
    for subscription in subscriptions:
        try:
            pattern = re.compile(subscription.keyword, re.IGNORECASE)
        except re.error as e:
            logger.error("Invalid alert keyword %r for %s: %s", subscription.keyword, subscription.source, e)
            continue
        compiled.append((subscription, pattern))
    return compiled
