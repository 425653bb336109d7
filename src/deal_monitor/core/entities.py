"""Core domain entities."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional


class ItemState(str, Enum):
    """Lifecycle markers stored in an item's tag."""

    EXPIRED = "Expired"
    SOLD_OUT = "Sold Out"
    DELETED = "Deleted"
    UNTRACKED = "Untracked"
    MOVED = "Moved"


TERMINAL_STATES = frozenset(state.value for state in ItemState)

# Shown struck through; Untracked items may still be live at the source.
STRUCK_STATES = frozenset({
    ItemState.EXPIRED.value,
    ItemState.SOLD_OUT.value,
    ItemState.DELETED.value,
    ItemState.MOVED.value,
})


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def is_terminal(tag: Optional[str]) -> bool:
    """Whether the tag is a terminal lifecycle state."""
    return tag in TERMINAL_STATES


@dataclass
class NotificationRefs:
    """Message identities returned by the notification transport."""

    primary: Optional[str] = None
    hot: Optional[str] = None


@dataclass
class Item:
    """Base entity for tracked items.

    Subclasses declare ``kind`` and the fields whose change always warrants
    an update (``structural_fields``) or gets copied onto the baseline
    (``mutable_fields``).
    """

    kind: ClassVar[str] = "item"
    structural_fields: ClassVar[tuple[str, ...]] = ("title", "tag")
    mutable_fields: ClassVar[tuple[str, ...]] = ("title", "tag", "secondary_metric")

    id: str
    source: str
    title: str
    created_at: datetime
    native_id: str = ""
    tag: Optional[str] = None
    score: Optional[int] = None
    secondary_metric: Optional[int] = None
    last_touched_at: Optional[datetime] = None
    is_hot: bool = False
    refs: NotificationRefs = field(default_factory=NotificationRefs)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Id cannot be empty")
        if not self.source:
            raise ValueError("Source cannot be empty")
        if not self.native_id:
            prefix = f"{self.source}-"
            self.native_id = self.id[len(prefix):] if self.id.startswith(prefix) else self.id

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.tag)

    def copy_from(self, other: "Item", include_score: bool = True) -> None:
        """Copy the mutable fields of a fresher scrape of the same item."""
        for name in self.mutable_fields:
            setattr(self, name, getattr(other, name))
        if include_score:
            self.score = other.score

    def to_document(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for the document store."""
        document = asdict(self)
        document["kind"] = self.kind
        for key, value in document.items():
            if isinstance(value, datetime):
                document[key] = value.isoformat()
        return document


@dataclass
class Deal(Item):
    """A forum or subreddit deal post."""

    kind: ClassVar[str] = "deal"

    dealer_name: Optional[str] = None

    def copy_from(self, other: "Item", include_score: bool = True) -> None:
        super().copy_from(other, include_score)
        if isinstance(other, Deal) and other.dealer_name:
            self.dealer_name = other.dealer_name


@dataclass
class FreeDeal(Item):
    """A storefront giveaway (free game, 100% off)."""

    kind: ClassVar[str] = "free_deal"
    structural_fields: ClassVar[tuple[str, ...]] = ("title",)
    mutable_fields: ClassVar[tuple[str, ...]] = ("title",)

    link: str = ""
    offer_type: Optional[str] = None
    expiry_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_at is not None and now > self.expiry_at


@dataclass
class Article(Item):
    """An RSS feed entry."""

    kind: ClassVar[str] = "article"
    structural_fields: ClassVar[tuple[str, ...]] = ("title", "link", "thumbnail", "external_source")
    mutable_fields: ClassVar[tuple[str, ...]] = ("title", "link", "thumbnail", "external_source")

    link: str = ""
    thumbnail: Optional[str] = None
    external_source: Optional[str] = None


ITEM_TYPES: dict[str, type[Item]] = {
    Deal.kind: Deal,
    FreeDeal.kind: FreeDeal,
    Article.kind: Article,
}

_DATETIME_FIELDS = ("created_at", "last_touched_at", "expiry_at")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Convert a stored timestamp back to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def item_from_document(document: dict[str, Any], default_kind: str = Deal.kind) -> Item:
    """Rebuild an item from a stored document.

    Unknown keys are ignored so that older documents keep loading after a
    field is dropped.
    """
    kind = document.get("kind", default_kind)
    item_type = ITEM_TYPES.get(kind)
    if item_type is None:
        raise ValueError(f"Unknown item kind: {kind}")

    known = {f.name for f in fields(item_type)}
    data = {key: value for key, value in document.items() if key in known}

    for key in _DATETIME_FIELDS:
        if key in data:
            data[key] = parse_timestamp(data[key])

    refs = data.get("refs") or {}
    data["refs"] = NotificationRefs(primary=refs.get("primary"), hot=refs.get("hot"))

    return item_type(**data)
