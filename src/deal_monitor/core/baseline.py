"""In-memory snapshot of the last-known items, backed by a document store."""

import logging
from typing import Iterator, Optional

from deal_monitor.core.entities import Deal, Item, item_from_document
from deal_monitor.core.interfaces import DocumentStore

logger = logging.getLogger(__name__)


class Baseline:
    """Long-lived cache of one pipeline's items.

    The store is read once, on the first ``load()``; afterwards the cache is
    the working copy and every mutation is written through. Out-of-band
    edits to the store are not picked up until the process restarts.
    """

    def __init__(self, store: DocumentStore, default_kind: str = Deal.kind) -> None:
        self.store = store
        self.default_kind = default_kind
        self._items: dict[str, Item] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """Populate the cache from the store on first use."""
        if self._loaded:
            return

        documents = await self.store.fetch_all()
        for document in documents:
            try:
                item = item_from_document(document, self.default_kind)
            except (TypeError, ValueError) as e:
                logger.error("Skipping unreadable document %s: %s", document.get("id"), e)
                continue
            self._items[item.id] = item

        self._loaded = True
        logger.info("Loaded %d items into baseline", len(self._items))

    def get(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def add(self, item: Item) -> None:
        self._items[item.id] = item

    def discard(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    async def save(self, item: Item) -> None:
        """Write the full item to the store."""
        await self.store.upsert(item.id, item.to_document(), merge=False)

    async def save_refs(self, item: Item) -> None:
        """Merge only the notification refs into the stored document."""
        await self.store.upsert(
            item.id,
            {"refs": {"primary": item.refs.primary, "hot": item.refs.hot}},
            merge=True,
        )

    async def remove(self, item: Item) -> None:
        """Delete from the store, then from the cache."""
        await self.store.delete(item.id)
        self.discard(item.id)
