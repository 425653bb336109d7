"""Prime Gaming free games with prime."""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from deal_monitor.core import FreeDeal, ItemSource
from deal_monitor.core.entities import parse_timestamp, utcnow
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://gaming.amazon.com/home"
DEFAULT_SEARCH_URL = "https://gaming.amazon.com/graphql"
DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"


class PrimeGamingSource(ItemSource):
    """Fetch games free with Prime from the Prime Gaming search API.

    The API only answers with the csrf token embedded in the home page and
    the session cookies set alongside it, so both requests share a client.
    """

    name = "Prime Gaming"
    reports_empty = True

    def __init__(
        self,
        source_id: str = "prime_gaming",
        search_body: Optional[dict[str, Any]] = None,
        url: str = DEFAULT_URL,
        search_url: str = DEFAULT_SEARCH_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(source_id)
        self.search_body = search_body or {}
        self.url = url
        self.search_url = search_url
        self.user_agent = user_agent
        self.timeout = timeout

    async def fetch_items(self) -> list[FreeDeal]:
        logger.info("Parsing Prime Gaming")

        headers = {"User-Agent": self.user_agent}
        async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
            try:
                page = await client.get(self.url)
                page.raise_for_status()
                csrf_token = self._csrf_token(page.text)

                response = await client.post(
                    self.search_url,
                    json=self.search_body,
                    headers={"csrf-token": csrf_token},
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing Prime Gaming failed: {e}") from e

        try:
            games = payload["data"]["items"]["items"]
        except (KeyError, TypeError) as e:
            raise SourceError(self.source_id, f"Unexpected payload: {e}") from e

        free_deals = []
        now = utcnow()
        for game in games:
            # Only "free game with prime" entries, not in-game loot.
            if not game.get("isFGWP"):
                continue
            try:
                assets = game["assets"]
                free_deals.append(FreeDeal(
                    id=f"{self.source_id}-{game['id']}",
                    source=self.source_id,
                    title=assets["title"],
                    created_at=now,
                    link=assets.get("externalClaimLink") or DEFAULT_URL,
                    expiry_at=self._end_time(game),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed Prime Gaming item: %s", e)
        return free_deals

    def _csrf_token(self, html: str) -> str:
        field = BeautifulSoup(html, "html.parser").find("input", attrs={"name": "csrf-key"})
        if field is None or not field.get("value"):
            raise ValueError("no csrf-key on the home page")
        return field["value"]

    def _end_time(self, game: dict[str, Any]) -> Optional[datetime]:
        try:
            return parse_timestamp(game["offers"][0]["endTime"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Parsing Prime Gaming expiry date failed: %s", e)
            return None
