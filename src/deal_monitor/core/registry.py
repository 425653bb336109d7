"""Per-source capability records."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional

from deal_monitor.core.entities import Item
from deal_monitor.core.errors import UnknownSourceError


@dataclass(frozen=True)
class SourceProfile:
    """Everything the core needs to know about one source.

    Attributes:
        source_id: Id used in ``Item.source``.
        channel_id: Channel receiving every item of the source.
        hot_channel_id: Channel receiving hot items, ``None`` disables it.
        hot_score: Minimum score for an item to be hot, ``None`` disables hotness.
        hot_window: Items older than this are never hot.
        update_quota: Max updates pushed per cycle, ``None`` for unlimited.
        link_template: ``str.format`` template with ``{native_id}`` and
            ``{source}``; used when the item carries no link of its own.
        zero_score_states: States in which the source reports a false 0 score.
        silent_removal: Remove expired items without a final notification.
        raw_title: Use the item title as-is in messages.
        display_name: Human readable name used in message titles.
    """

    source_id: str
    channel_id: str
    hot_channel_id: Optional[str] = None
    hot_score: Optional[int] = None
    hot_window: timedelta = timedelta(hours=2)
    update_quota: Optional[int] = None
    link_template: Optional[str] = None
    zero_score_states: frozenset[str] = frozenset()
    silent_removal: bool = False
    raw_title: bool = False
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.source_id

    def is_hot(self, item: Item, now: datetime) -> bool:
        """Recent enough and popular enough to be trending."""
        if self.hot_score is None or item.score is None:
            return False
        return item.created_at > now - self.hot_window and item.score >= self.hot_score

    def suppresses_score(self, tag: Optional[str]) -> bool:
        return tag is not None and tag in self.zero_score_states

    def build_link(self, item: Item) -> str:
        """External link for the item."""
        link = getattr(item, "link", "")
        if link:
            return link
        if self.link_template:
            return self.link_template.format(native_id=item.native_id, source=item.source)
        raise ValueError(f"No link available for {item.id}")


class SourceRegistry:
    """Lookup table from source id to ``SourceProfile``."""

    def __init__(self, profiles: Iterable[SourceProfile] = ()) -> None:
        self._profiles: dict[str, SourceProfile] = {}
        for profile in profiles:
            self.register(profile)

    def register(self, profile: SourceProfile) -> None:
        if profile.source_id in self._profiles:
            raise ValueError(f"Source {profile.source_id} is already registered")
        self._profiles[profile.source_id] = profile

    def get(self, source: str) -> SourceProfile:
        try:
            return self._profiles[source]
        except KeyError:
            raise UnknownSourceError(source) from None

    def find(self, source: str) -> Optional[SourceProfile]:
        return self._profiles.get(source)

    def __contains__(self, source: object) -> bool:
        return source in self._profiles

    def __iter__(self) -> Iterator[SourceProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
