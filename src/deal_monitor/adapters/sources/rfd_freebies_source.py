"""RedFlagDeals Freebies forum topics posted in the last day."""

import logging
from datetime import timedelta

import httpx

from deal_monitor.core import FreeDeal, ItemSource
from deal_monitor.core.entities import parse_timestamp, utcnow
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://forums.redflagdeals.com/api/topics?forum_id=12&per_page=30&order_by=date&order_dir=desc"
MAX_AGE = timedelta(days=1)


class RFDFreebiesSource(ItemSource):
    """Fetch today's freebies topics."""

    name = "RFD Freebies"
    reports_empty = True

    def __init__(self, source_id: str = "rfd_freebies", url: str = DEFAULT_URL, timeout: float = 5.0) -> None:
        super().__init__(source_id)
        self.url = url
        self.timeout = timeout

    async def fetch_items(self) -> list[FreeDeal]:
        logger.info("Parsing RFD Freebies")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(self.url, headers={"Content-Type": "application/json"})
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing RFD Freebies failed: {e}") from e

        now = utcnow()
        free_deals = []
        for topic in payload.get("topics", []):
            try:
                post_time = parse_timestamp(topic["post_time"])
                if post_time is None or post_time <= now - MAX_AGE:
                    continue

                topic_id = str(topic["topic_id"])
                title = topic["title"]
                dealer_name = (topic.get("offer") or {}).get("dealer_name")
                if dealer_name:
                    title = f"[{dealer_name}] {title}"

                free_deals.append(FreeDeal(
                    id=f"{self.source_id}-{topic_id}",
                    source=self.source_id,
                    title=title,
                    created_at=now,
                    link=f"https://forums.redflagdeals.com/viewtopic.php?t={topic_id}",
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed freebies topic: %s", e)
        return free_deals
