"""RSS deal feed source."""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from xml.etree import ElementTree as ET

import httpx

from deal_monitor.adapters.sources.rss_parsers import child_text, get_parser
from deal_monitor.core import Article, ItemSource
from deal_monitor.core.entities import utcnow
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)


def parse_pub_date(value: str) -> Optional[datetime]:
    """Parse an RFC 822 ``pubDate``."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RSSSource(ItemSource):
    """Fetch articles from one RSS 2.0 feed.

    ``parser`` names the site-specific extractor applied to each entry
    (``default``, ``slickdeals``, ``ozbargain`` or ``hotukdeals``).
    """

    name = "RSS"

    def __init__(
        self,
        source_id: str,
        url: str,
        parser: Optional[str] = None,
        timeout: float = 5.0,
        use_fetch_time: bool = False,
    ) -> None:
        super().__init__(source_id)
        self.url = url
        self.parser_name = parser or "default"
        self.parser = get_parser(parser)
        self.timeout = timeout
        # Some feeds re-date entries; the fetch time keeps them from resurfacing.
        self.use_fetch_time = use_fetch_time or self.parser_name == "slickdeals"

    async def fetch_items(self) -> list[Article]:
        logger.info("Parsing feed %s", self.source_id)

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            try:
                response = await client.get(self.url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise SourceError(self.source_id, f"Parsing feed failed: {e}") from e

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise SourceError(self.source_id, f"Invalid feed XML: {e}") from e

        articles = []
        for element in root.iter("item"):
            try:
                articles.append(self._parse_entry(element))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed entry in %s: %s", self.source_id, e)
        return articles

    def _parse_entry(self, element: ET.Element) -> Article:
        guid = child_text(element, "guid") or child_text(element, "link")
        if not guid:
            raise ValueError("Entry has neither guid nor link")

        now = utcnow()
        posted_at = None if self.use_fetch_time else parse_pub_date(child_text(element, "pubDate"))

        article = Article(
            id=f"{self.source_id}-{guid}",
            source=self.source_id,
            native_id=guid,
            title=child_text(element, "title"),
            link=child_text(element, "link"),
            created_at=posted_at or now,
        )
        self.parser(article, element)
        return article
