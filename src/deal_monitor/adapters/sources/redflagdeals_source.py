"""RedFlagDeals Hot Deals forum topics."""

import logging
import time
from typing import Any

import httpx

from deal_monitor.core import Deal, ItemSource, ItemState
from deal_monitor.core.entities import parse_timestamp
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://forums.redflagdeals.com/api/topics"

# Closed topics end up in the expired forum, anything else was moved.
CLOSED_STATUS = 2
EXPIRED_FORUM_ID = 68


class RedFlagDealsSource(ItemSource):
    """Fetch the newest topics of the Hot Deals forum."""

    name = "RedFlagDeals"

    def __init__(
        self,
        source_id: str = "redflagdeals",
        url: str = DEFAULT_URL,
        timeout: float = 5.0,
        forum_id: int = 9,
        per_page: int = 30,
    ) -> None:
        super().__init__(source_id)
        self.url = url
        self.timeout = timeout
        self.forum_id = forum_id
        self.per_page = per_page

    async def fetch_items(self) -> list[Deal]:
        logger.info("Parsing RedFlagDeals")

        params = {
            "forum_id": self.forum_id,
            "per_page": self.per_page,
            "order_by": "date",
            "order_dir": "desc",
            # Cache buster
            "time": int(time.time() * 1000),
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(self.url, params=params, headers={"Content-Type": "application/json"})
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing RedFlagDeals failed: {e}") from e

        deals = []
        for topic in payload.get("topics", []):
            try:
                deals.append(self._parse_topic(topic))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed topic: %s", e)
        return deals

    def _parse_topic(self, topic: dict[str, Any]) -> Deal:
        created_at = parse_timestamp(topic["post_time"])
        if created_at is None:
            raise ValueError(f"Topic {topic.get('topic_id')} has no post time")

        title = topic["title"]
        dealer_name = (topic.get("offer") or {}).get("dealer_name")
        if dealer_name:
            # The retailer is not part of the title.
            title = f"[{dealer_name}] {title}"

        votes = topic.get("votes")
        score = int(votes["total_up"]) - int(votes["total_down"]) if votes else 0

        tag = None
        if topic.get("status") == CLOSED_STATUS:
            if topic.get("forum_id") == EXPIRED_FORUM_ID:
                tag = ItemState.EXPIRED.value
            else:
                tag = ItemState.MOVED.value

        return Deal(
            id=f"{self.source_id}-{topic['topic_id']}",
            source=self.source_id,
            title=title,
            created_at=created_at,
            tag=tag,
            score=score,
            secondary_metric=int(topic.get("total_replies") or 0),
            dealer_name=dealer_name,
        )
