"""Slack notification adapter."""

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from deal_monitor.core.errors import TransportError
from deal_monitor.core.interfaces import NotificationTransport
from deal_monitor.core.messages import Message

logger = logging.getLogger(__name__)

# Slack errors meaning the message is gone rather than the call failed.
_NOT_FOUND_ERRORS = frozenset({"message_not_found", "cant_update_message"})


class SlackTransport(NotificationTransport):
    """Post and edit messages via the Slack Web API with a bot token."""

    base_url = "https://slack.com/api"

    def __init__(self, token: Optional[str], timeout: float = 30.0, max_retries: int = 3) -> None:
        """Initialize Slack transport.

        Args:
            token: Slack bot token. If None, login fails and nothing is sent.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts per call when rate limited.
        """
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._logged_in = False

    def _convert_markdown_to_mrkdwn(self, text: str) -> str:
        """Convert markdown to Slack mrkdwn format.

        Args:
            text: Markdown text

        Returns:
            Text in Slack mrkdwn format
        """
        # Convert markdown links [text](url) to Slack format <url|text>
        text = re.sub(r'\[([^\]]+)\]\(([^)]+)\)', r'<\2|\1>', text)

        # Convert markdown bold **text** to Slack bold *text*
        text = re.sub(r'\*\*([^*]+)\*\*', r'*\1*', text)

        return text

    def _render(self, message: Message) -> str:
        """Render a message as mrkdwn text."""
        title = message.display_title("~")
        # Brackets would break the link syntax.
        title = title.replace("[", "(").replace("]", ")")
        heading = f"**[{title}]({message.url})**" if message.url else f"**{title}**"

        lines = []
        if message.content:
            lines.append(message.content)
        lines.append(self._convert_markdown_to_mrkdwn(heading))
        if message.description:
            lines.append(message.description)
        if message.expires_at is not None:
            timestamp = int(message.expires_at.timestamp())
            fallback = message.expires_at.strftime("%Y-%m-%d %H:%M UTC")
            label = "Expired" if message.expired else "Free until"
            lines.append(f"{label} <!date^{timestamp}^{{date_short_pretty}} {{time}}|{fallback}>")
        if message.footer:
            lines.append(f"_{message.footer}_")
        return "\n".join(lines)

    async def login(self) -> bool:
        if self._logged_in:
            return True
        if not self.token:
            logger.error("SLACK_BOT_TOKEN is not set")
            return False

        data = await self._call("auth.test")
        if data is None:
            return False

        logger.info("Logged in to Slack team %s", data.get("team", "unknown"))
        self._logged_in = True
        return True

    async def send(self, channel_id: str, message: Message) -> str:
        data = await self._call(
            "chat.postMessage",
            json={"channel": channel_id, "text": self._render(message), "mrkdwn": True},
        )
        if data is None:
            raise TransportError(f"Could not post to channel {channel_id}")
        return data["ts"]

    async def fetch(self, channel_id: str, ref: str) -> Optional[dict[str, Any]]:
        data = await self._call(
            "conversations.history",
            params={"channel": channel_id, "latest": ref, "inclusive": "true", "limit": 1},
        )
        if data is None:
            return None
        for message in data.get("messages", []):
            if message.get("ts") == ref:
                return message
        return None

    async def edit(self, channel_id: str, ref: str, message: Message) -> Optional[str]:
        if await self.fetch(channel_id, ref) is None:
            return None
        data = await self._call(
            "chat.update",
            json={"channel": channel_id, "ts": ref, "text": self._render(message)},
        )
        return data["ts"] if data is not None else None

    def message_link(self, channel_id: str, ref: str) -> str:
        return f"https://slack.com/archives/{channel_id}/p{ref.replace('.', '')}"

    def mention(self, target: str) -> str:
        return f"<!subteam^{target}>"

    async def _call(
        self,
        api_method: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """Call a Web API method; ``None`` when the target message is gone."""
        headers = {"Authorization": f"Bearer {self.token}"}
        url = f"{self.base_url}/{api_method}"

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    if json is not None:
                        response = await client.post(url, headers=headers, json=json)
                    else:
                        response = await client.get(url, headers=headers, params=params)
            except httpx.RequestError as e:
                raise TransportError(f"Network error on {api_method}: {e}") from e

            if response.status_code == 429:
                retry_after = float(response.headers.get("retry-after", 1))
                logger.warning("Slack rate limit hit, retrying after %.1fs", retry_after)
                await asyncio.sleep(retry_after)
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise TransportError(f"{api_method} failed: {e}", response.status_code) from e

            data = response.json()
            if data.get("ok"):
                return data

            error = data.get("error", "unknown_error")
            if error in _NOT_FOUND_ERRORS:
                return None
            raise TransportError(f"{api_method} failed: {error}")

        raise TransportError(f"{api_method} failed after {self.max_retries} attempts")
