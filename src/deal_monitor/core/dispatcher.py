"""Turns reconciliation results into chat messages."""

import asyncio
import logging
from typing import Sequence

from deal_monitor.core.baseline import Baseline
from deal_monitor.core.detector import ReconcileResult
from deal_monitor.core.entities import Item
from deal_monitor.core.errors import UnknownSourceError
from deal_monitor.core.interfaces import NotificationTransport
from deal_monitor.core.messages import build_message
from deal_monitor.core.rate_limit import RateLimiter
from deal_monitor.core.registry import SourceRegistry

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends new items, announces hot ones and edits changed ones.

    Message refs returned by the transport are written back to the
    baseline right away, so a crash mid-dispatch never loses a message
    identity. Every item is isolated: one failure is logged and the rest
    still go out.
    """

    def __init__(
        self,
        transport: NotificationTransport,
        registry: SourceRegistry,
        baseline: Baseline,
        limiter: RateLimiter,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.baseline = baseline
        self.limiter = limiter

    async def dispatch(self, result: ReconcileResult) -> None:
        if not result.has_notifications:
            logger.debug("Nothing to dispatch")
            return

        try:
            logged_in = await self.transport.login()
        except Exception as e:
            logger.error("Login failed: %s", e)
            return
        if not logged_in:
            logger.error("Login failed, skipping dispatch")
            return

        # Oldest first, so channels read chronologically.
        await self._send_all(list(reversed(result.resend_items)))
        await self._send_all(list(reversed(result.new_items)))

        for item in reversed(result.newly_hot_items):
            await self._send_hot(item)

        # A hot message sent this cycle is already current.
        fresh_hot = {item.id for item in result.newly_hot_items}
        edits = [*result.updated_items, *result.gone_items]
        if edits:
            await asyncio.gather(*(self._edit(item, item.id not in fresh_hot) for item in edits))

        logger.info(
            "Dispatched %d new, %d resent, %d hot, %d edited",
            len(result.new_items), len(result.resend_items),
            len(result.newly_hot_items), len(edits),
        )

    async def _send_all(self, items: Sequence[Item]) -> None:
        for item in items:
            await self._send(item)

    async def _send(self, item: Item) -> None:
        try:
            profile = self.registry.get(item.source)
            message = build_message(item, profile)

            if item.refs.primary is None:
                async with self.limiter:
                    item.refs.primary = await self.transport.send(profile.channel_id, message)
                await self.baseline.save_refs(item)

            if item.is_hot and profile.hot_channel_id and item.refs.hot is None:
                async with self.limiter:
                    item.refs.hot = await self.transport.send(profile.hot_channel_id, message)
                await self.baseline.save_refs(item)
        except UnknownSourceError as e:
            logger.error("%s", e)
        except Exception as e:
            logger.error("Sending %s failed: %s", item.id, e)

    async def _send_hot(self, item: Item) -> None:
        try:
            profile = self.registry.get(item.source)
            if not profile.hot_channel_id or item.refs.hot is not None:
                return
            message = build_message(item, profile)
            async with self.limiter:
                item.refs.hot = await self.transport.send(profile.hot_channel_id, message)
            await self.baseline.save_refs(item)
        except UnknownSourceError as e:
            logger.error("%s", e)
        except Exception as e:
            logger.error("Sending hot item %s failed: %s", item.id, e)

    async def _edit(self, item: Item, edit_hot: bool = True) -> None:
        try:
            profile = self.registry.get(item.source)
            message = build_message(item, profile)

            if item.refs.primary is None:
                logger.warning("No message to edit for %s", item.id)
            else:
                async with self.limiter:
                    edited = await self.transport.edit(profile.channel_id, item.refs.primary, message)
                if edited is None:
                    logger.warning("Message %s of %s not found", item.refs.primary, item.id)

            if edit_hot and item.refs.hot is not None and profile.hot_channel_id:
                async with self.limiter:
                    edited = await self.transport.edit(profile.hot_channel_id, item.refs.hot, message)
                if edited is None:
                    logger.warning("Hot message %s of %s not found", item.refs.hot, item.id)
        except UnknownSourceError as e:
            logger.error("%s", e)
        except Exception as e:
            logger.error("Editing %s failed: %s", item.id, e)
