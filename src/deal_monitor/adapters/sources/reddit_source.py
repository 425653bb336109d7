"""Subreddit deal posts from the Reddit JSON listing."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from deal_monitor.core import Deal, ItemSource
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)

# Posts that are not deals.
EXCLUDED_FLAIR_TEXTS = frozenset({"Question"})
EXCLUDED_FLAIR_CLASSES = frozenset({"WeeklyDiscussion", "Review"})


class RedditSource(ItemSource):
    """Fetch the newest posts of a subreddit.

    With ``auth_header`` and ``token_url`` set, a client-credentials access
    token is acquired for the request and revoked afterwards.
    """

    name = "Reddit"

    def __init__(
        self,
        source_id: str,
        url: Optional[str] = None,
        subreddit: Optional[str] = None,
        timeout: float = 5.0,
        user_agent: Optional[str] = None,
        auth_header: Optional[str] = None,
        token_url: Optional[str] = None,
        revoke_url: Optional[str] = None,
    ) -> None:
        super().__init__(source_id)
        self.subreddit = subreddit or source_id
        self.url = url or f"https://www.reddit.com/r/{self.subreddit}/new.json"
        self.timeout = timeout
        self.user_agent = user_agent or "deal-monitor"
        self.auth_header = auth_header
        self.token_url = token_url
        self.revoke_url = revoke_url

    async def fetch_items(self) -> list[Deal]:
        logger.info("Parsing %s", self.subreddit)

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            headers = {"User-Agent": self.user_agent}
            url = self.url

            access_token = await self._get_access_token(client)
            if access_token:
                headers["Authorization"] = f"Bearer {access_token}"
                url = f"https://oauth.reddit.com/r/{self.subreddit}/new"

            try:
                response = await client.get(url, headers=headers, params={"raw_json": 1})
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise SourceError(self.source_id, f"Parsing subreddit failed: {e}") from e
            finally:
                if access_token:
                    await self._revoke_access_token(client, access_token)

        return self._parse_listing(payload)

    def _parse_listing(self, payload: dict[str, Any]) -> list[Deal]:
        deals = []
        for child in payload.get("data", {}).get("children", []):
            post = child.get("data", {})
            flair_class = post.get("link_flair_css_class")
            flair_text = post.get("link_flair_text")

            if flair_text in EXCLUDED_FLAIR_TEXTS or flair_class in EXCLUDED_FLAIR_CLASSES:
                continue

            try:
                deals.append(Deal(
                    id=f"{self.source_id}-{post['id']}",
                    source=self.source_id,
                    title=post["title"],
                    created_at=datetime.fromtimestamp(float(post["created_utc"]), tz=timezone.utc),
                    tag=flair_text or flair_class or None,
                    score=int(post.get("score", 0)),
                    secondary_metric=int(post.get("num_comments", 0)),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed post in %s: %s", self.subreddit, e)

        return deals

    async def _get_access_token(self, client: httpx.AsyncClient) -> Optional[str]:
        """Retrieve an access token for the Reddit API, if configured."""
        if not self.auth_header or not self.token_url:
            return None

        try:
            response = await client.post(
                self.token_url,
                headers={"User-Agent": self.user_agent, "Authorization": self.auth_header},
                data={"grant_type": "client_credentials"},
            )
            response.raise_for_status()
            return response.json().get("access_token")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Retrieving access token for Reddit API failed: %s", e)
            return None

    async def _revoke_access_token(self, client: httpx.AsyncClient, access_token: str) -> None:
        if not self.revoke_url:
            return

        try:
            response = await client.post(
                self.revoke_url,
                headers={"User-Agent": self.user_agent, "Authorization": self.auth_header},
                data={"token": access_token, "token_type_hint": "access_token"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Revoking access token for Reddit API failed: %s", e)
