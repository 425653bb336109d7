"""Discord notification adapter (REST API, bot token)."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from deal_monitor.core.errors import TransportError
from deal_monitor.core.interfaces import NotificationTransport
from deal_monitor.core.messages import Message

logger = logging.getLogger(__name__)

EMBED_COLOR = 2829617


class DiscordTransport(NotificationTransport):
    """Post and edit embeds in Discord channels."""

    base_url = "https://discord.com/api/v10"

    def __init__(
        self,
        token: Optional[str],
        server_id: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
    ) -> None:
        self.token = token
        self.server_id = server_id
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self._logged_in = False

    async def login(self) -> bool:
        if self._logged_in:
            return True
        if not self.token:
            logger.error("DISCORD_BOT_TOKEN is not set")
            return False

        response = await self._request("GET", "/users/@me")
        if response is None:
            return False

        user = response.json()
        logger.info("Logged in as %s", user.get("username", "unknown"))
        self._logged_in = True
        return True

    async def send(self, channel_id: str, message: Message) -> str:
        response = await self._request("POST", f"/channels/{channel_id}/messages", self._render(message))
        if response is None:
            raise TransportError(f"Channel {channel_id} not found", 404)
        return str(response.json()["id"])

    async def fetch(self, channel_id: str, ref: str) -> Optional[dict[str, Any]]:
        response = await self._request("GET", f"/channels/{channel_id}/messages/{ref}")
        return response.json() if response is not None else None

    async def edit(self, channel_id: str, ref: str, message: Message) -> Optional[str]:
        if await self.fetch(channel_id, ref) is None:
            return None
        response = await self._request("PATCH", f"/channels/{channel_id}/messages/{ref}", self._render(message))
        if response is None:
            return None
        return str(response.json()["id"])

    def message_link(self, channel_id: str, ref: str) -> str:
        return f"https://discord.com/channels/{self.server_id}/{channel_id}/{ref}"

    def mention(self, target: str) -> str:
        return f"<@&{target}>"

    def _render(self, message: Message) -> dict[str, Any]:
        """Build the message payload with a single embed."""
        embed: dict[str, Any] = {
            "title": message.display_title("~~"),
            "color": EMBED_COLOR,
        }
        if message.url:
            embed["url"] = message.url

        description = []
        if message.description:
            description.append(message.description)
        if message.expires_at is not None:
            timestamp = int(message.expires_at.timestamp())
            if message.expired:
                description.append(f"Expired <t:{timestamp}:R>")
            else:
                description.append(f"Free until <t:{timestamp}:f>")
        if description:
            embed["description"] = "\n".join(description)

        if message.footer:
            embed["footer"] = {"text": message.footer}
        if message.thumbnail:
            embed["thumbnail"] = {"url": message.thumbnail}

        payload: dict[str, Any] = {"embeds": [embed]}
        if message.content:
            payload["content"] = message.content
        return payload

    async def _request(
        self, method: str, path: str, payload: Optional[dict[str, Any]] = None
    ) -> Optional[httpx.Response]:
        """Call the API with retry logic; ``None`` on 404."""
        headers = {"Authorization": f"Bot {self.token}"}

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, f"{self.base_url}{path}", headers=headers, json=payload)
            except httpx.RequestError as e:
                if attempt < self.max_retries - 1:
                    retry_delay = self.initial_retry_delay * (2 ** attempt)
                    logger.warning("Network error, retrying after %.1fs: %s", retry_delay, e)
                    await asyncio.sleep(retry_delay)
                    continue
                raise TransportError(f"Network error on {method} {path}: {e}") from e

            if response.status_code in (200, 201, 204):
                return response

            if response.status_code == 404:
                return None

            # Rate limit - retry after the advertised delay
            if response.status_code == 429:
                retry_after = self._get_retry_delay(response, attempt)
                logger.warning(
                    "Rate limit hit, retrying after %.1fs (attempt %d/%d)",
                    retry_after, attempt + 1, self.max_retries,
                )
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                retry_delay = self.initial_retry_delay * (2 ** attempt)
                logger.warning("Server error %d, retrying after %.1fs", response.status_code, retry_delay)
                await asyncio.sleep(retry_delay)
                continue

            raise TransportError(
                f"{method} {path} failed with {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        raise TransportError(f"{method} {path} failed after {self.max_retries} attempts")

    def _get_retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Retry delay from the response, or exponential backoff."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        try:
            return float(response.json()["retry_after"])
        except (ValueError, KeyError, TypeError):
            pass

        return self.initial_retry_delay * (2 ** attempt)
