"""Epic Games Store free game promotions."""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from deal_monitor.core import FreeDeal, ItemSource
from deal_monitor.core.entities import parse_timestamp, utcnow
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_URL = (
    "https://store-site-backend-static.ak.epicgames.com/freeGamesPromotions"
    "?locale=en-US&country=CA&allowCountries=CA"
)


class EpicSource(ItemSource):
    """Fetch games currently discounted to zero on the Epic store."""

    name = "Epic"
    reports_empty = True

    def __init__(self, source_id: str = "epic", url: str = DEFAULT_URL, timeout: float = 5.0) -> None:
        super().__init__(source_id)
        self.url = url
        self.timeout = timeout

    async def fetch_items(self) -> list[FreeDeal]:
        logger.info("Parsing Epic")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(self.url)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing Epic failed: {e}") from e

        try:
            elements = payload["data"]["Catalog"]["searchStore"]["elements"]
        except (KeyError, TypeError) as e:
            raise SourceError(self.source_id, f"Unexpected payload: {e}") from e

        free_deals = []
        now = utcnow()
        for game in elements:
            try:
                if not self._is_free_now(game):
                    continue
                slug = self._page_slug(game)
                free_deals.append(FreeDeal(
                    id=f"{self.source_id}-{slug}",
                    source=self.source_id,
                    title=game["title"],
                    created_at=now,
                    link=f"https://store.epicgames.com/en-US/p/{slug}",
                    offer_type=game.get("offerType"),
                    expiry_at=self._end_date(game),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed Epic element: %s", e)
        return free_deals

    def _is_free_now(self, game: dict[str, Any]) -> bool:
        promotions = game.get("promotions") or {}
        return (
            game["price"]["totalPrice"]["discountPrice"] == 0
            and bool(promotions.get("promotionalOffers"))
        )

    def _page_slug(self, game: dict[str, Any]) -> str:
        for mappings in (game.get("offerMappings"), (game.get("catalogNs") or {}).get("mappings")):
            if mappings:
                return mappings[0]["pageSlug"]
        return game["productSlug"]

    def _end_date(self, game: dict[str, Any]) -> Optional[datetime]:
        try:
            end_date = game["promotions"]["promotionalOffers"][0]["promotionalOffers"][0]["endDate"]
            return parse_timestamp(end_date)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Parsing Epic expiry date failed: %s", e)
            return None
