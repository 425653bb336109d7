"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from deal_monitor.core.entities import Item
from deal_monitor.core.messages import Message


class ItemSource(ABC):
    """Interface for fetching items from one external source."""

    name: str = "source"
    # An empty but successful fetch means the source really has no items.
    reports_empty: bool = False

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id

    @abstractmethod
    async def fetch_items(self) -> list[Item]:
        """Fetch and normalize the current items.

        Raises:
            SourceError: the source could not be fetched at all.
        """
        pass

    async def get_additional_info(self, item: Item) -> Item:
        """Fill fields that need a second request (e.g. expiry)."""
        return item


class DocumentStore(ABC):
    """Interface for a keyed document collection."""

    @abstractmethod
    async def fetch_all(self) -> list[dict[str, Any]]:
        """Return every document of the collection."""
        pass

    @abstractmethod
    async def upsert(self, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document, or merge ``data`` into it."""
        pass

    @abstractmethod
    async def delete(self, doc_id: str) -> None:
        """Delete a document; deleting a missing document is not an error."""
        pass


class NotificationTransport(ABC):
    """Interface for the chat platform."""

    @abstractmethod
    async def login(self) -> bool:
        """Connect if needed; safe to call when already connected."""
        pass

    @abstractmethod
    async def send(self, channel_id: str, message: Message) -> str:
        """Post a message and return its reference."""
        pass

    @abstractmethod
    async def edit(self, channel_id: str, ref: str, message: Message) -> Optional[str]:
        """Edit a message; ``None`` when it no longer exists."""
        pass

    @abstractmethod
    async def fetch(self, channel_id: str, ref: str) -> Optional[dict[str, Any]]:
        """Fetch a message; ``None`` when it no longer exists."""
        pass

    @abstractmethod
    def message_link(self, channel_id: str, ref: str) -> str:
        """Deep link to a message."""
        pass

    @abstractmethod
    def mention(self, target: str) -> str:
        """Text that pings a role or group."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
