"""GOG homepage giveaway."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from deal_monitor.core import FreeDeal, Item, ItemSource
from deal_monitor.core.entities import utcnow
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://www.gog.com/en"
GAME_URL_PREFIX = "https://www.gog.com/en/game/"

_END_DATE = re.compile(r"(\d{2})/(\d{2})/(\d{4}) (\d{1,2}):(\d{2})")

# The countdown on the product page is shown in UTC+3.
PAGE_OFFSET = timedelta(hours=3)


def parse_end_date(text: str) -> Optional[datetime]:
    """Parse "06/24/2024 15:59" from the product actions countdown."""
    matches = _END_DATE.findall(text)
    if len(matches) != 1:
        return None

    month, day, year, hour, minute = (int(part) for part in matches[0])
    try:
        end_date = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    except ValueError:
        return None
    return end_date - PAGE_OFFSET


class GOGSource(ItemSource):
    """Fetch the giveaway banner from the GOG homepage.

    The banner only carries a link; title and end date come from the
    product page.
    """

    name = "GOG"
    reports_empty = True

    def __init__(self, source_id: str = "gog", url: str = DEFAULT_URL, timeout: float = 5.0) -> None:
        super().__init__(source_id)
        self.url = url
        self.timeout = timeout

    async def fetch_items(self) -> list[FreeDeal]:
        logger.info("Parsing GOG")

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            try:
                response = await client.get(self.url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise SourceError(self.source_id, f"Parsing GOG failed: {e}") from e

        soup = BeautifulSoup(response.text, "html.parser")
        giveaways = soup.select(".giveaway__overlay-link")
        if len(giveaways) != 1 or not giveaways[0].get("href"):
            return []

        link = giveaways[0]["href"]
        slug = link.replace(GAME_URL_PREFIX, "").strip("/")
        return [FreeDeal(
            id=f"{self.source_id}-{slug}",
            source=self.source_id,
            # Replaced by the product page title
            title=slug.replace("_", " "),
            created_at=utcnow(),
            link=link,
        )]

    async def get_additional_info(self, item: Item) -> Item:
        """Fill title and end date from the product page."""
        if not isinstance(item, FreeDeal) or not item.link:
            return item

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            try:
                response = await client.get(item.link)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Getting title and expiry date failed for %s: %s", item.id, e)
                return item

        soup = BeautifulSoup(response.text, "html.parser")

        titles = soup.select(".productcard-basics__title")
        if len(titles) == 1:
            item.title = titles[0].get_text(strip=True)
        else:
            logger.error("Getting title failed for %s", item.id)

        end_date_element = soup.select_one(".product-actions__time")
        if end_date_element is not None:
            item.expiry_at = parse_end_date(end_date_element.get_text(strip=True))
        else:
            logger.error("Getting expiry date failed for %s", item.id)

        return item
