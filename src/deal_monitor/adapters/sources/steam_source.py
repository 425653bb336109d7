"""Steam store free-to-keep promotions."""

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

DEFAULT_URL = "https://store.steampowered.com/search/results/?maxprice=free&specials=1&json=1"

# Store pages hide the countdown behind the age gate without these.
AGE_GATE_COOKIES = {"wants_mature_content": "1", "birthtime": "0", "lastagecheckage": "1-0-1900"}

# Store pages are rendered in Pacific time.
STORE_TIMEZONE = timezone(timedelta(hours=-7))

_LOGO_PATTERN = re.compile(r"/(apps|subs|bundles)/(\d+)/")
_DAY_MONTH = re.compile(r"\d{1,2}\s[A-Za-z]{3}")
_MONTH_DAY = re.compile(r"[A-Za-z]{3}\s\d{1,2}")
_TIME = re.compile(r"\d{1,2}:\d{2}")
_AM_PM = re.compile(r"[ap]m", re.IGNORECASE)


def parse_discount_expiry(text: str, year: int) -> Optional[datetime]:
    """Parse the "Free to keep when you get it before ..." countdown text.

    Depending on locale the date reads either "24 Jun" or "Jun 24".
    """
    time_match = _TIME.search(text)
    am_pm_match = _AM_PM.search(text)
    if not time_match or not am_pm_match:
        return None

    suffix = f"{year} {time_match.group(0)}{am_pm_match.group(0).upper()}"
    for pattern, date_format in ((_DAY_MONTH, "%d %b"), (_MONTH_DAY, "%b %d")):
        for match in pattern.finditer(text):
            try:
                parsed = datetime.strptime(f"{match.group(0)} {suffix}", f"{date_format} %Y %I:%M%p")
            except ValueError:
                continue
            return parsed.replace(tzinfo=STORE_TIMEZONE).astimezone(timezone.utc)
    return None


class SteamSource(ItemSource):
    """Fetch Steam products currently free to keep."""

    name = "Steam"
    reports_empty = True

    def __init__(self, source_id: str = "steam", url: str = DEFAULT_URL, timeout: float = 5.0) -> None:
        super().__init__(source_id)
        self.url = url
        self.timeout = timeout

    async def fetch_items(self) -> list[FreeDeal]:
        logger.info("Parsing Steam")

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            try:
                response = await client.get(self.url)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing Steam failed: {e}") from e

        free_deals = []
        now = utcnow()
        for game in payload.get("items", []):
            match = _LOGO_PATTERN.search(game.get("logo", ""))
            if not match or not game.get("name"):
                logger.warning("Skipping Steam item without id: %s", game.get("name"))
                continue

            # The logo path is plural ("apps"), store links are singular.
            product_type = match.group(1)[:-1]
            product_id = match.group(2)
            free_deals.append(FreeDeal(
                id=f"{self.source_id}-{product_id}",
                source=self.source_id,
                title=game["name"],
                created_at=now,
                link=f"https://store.steampowered.com/{product_type}/{product_id}/",
                offer_type=product_type,
            ))
        return free_deals

    async def get_additional_info(self, item: Item) -> Item:
        """Read the discount countdown from the store page."""
        if not isinstance(item, FreeDeal) or not item.link:
            return item

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, cookies=AGE_GATE_COOKIES) as client:
            try:
                response = await client.get(item.link)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Getting expiry date failed for %s: %s", item.id, e)
                return item

        soup = BeautifulSoup(response.text, "html.parser")
        element = soup.select_one(".game_purchase_discount_quantity")
        text = element.get_text(" ", strip=True) if element else ""

        expiry_at = parse_discount_expiry(text, utcnow().year)
        if expiry_at is None:
            logger.error("Getting expiry date failed for %s. Text: %s", item.id, text)
        else:
            item.expiry_at = expiry_at
        return item
