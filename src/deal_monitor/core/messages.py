"""Platform-neutral notification messages."""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from deal_monitor.core.entities import STRUCK_STATES, Article, Deal, FreeDeal, Item, ItemState

if TYPE_CHECKING:
    from deal_monitor.core.registry import SourceProfile

TITLE_LIMIT = 250


@dataclass
class Message:
    """What a transport renders for one notification."""

    title: str = ""
    url: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    footer: Optional[str] = None
    thumbnail: Optional[str] = None
    hot: bool = False
    struck: bool = False
    expires_at: Optional[datetime] = None
    expired: bool = False

    def display_title(self, strike: str = "~~") -> str:
        title = self.title
        if self.hot:
            title = "🔥 " + title
        if self.struck:
            title = f"{strike}{title}{strike}"
        return title


def trim(text: str, length: int = TITLE_LIMIT) -> str:
    """Trim text to ``length`` characters, ending with an ellipsis."""
    return text[: length - 3] + "..." if len(text) > length else text


def format_score(score: int) -> str:
    return f"+{score}" if score >= 0 else str(score)


def build_message(item: Item, profile: "SourceProfile") -> Message:
    """Render an item for its source."""
    if isinstance(item, Deal):
        return _deal_message(item, profile)
    if isinstance(item, FreeDeal):
        return _free_deal_message(item, profile)
    if isinstance(item, Article):
        return _article_message(item, profile)
    return Message(title=trim(item.title), url=profile.build_link(item))


def _deal_message(deal: Deal, profile: "SourceProfile") -> Message:
    comments = deal.secondary_metric or 0
    comments_text = "1 comment" if comments == 1 else f"{comments} comments"
    tag_text = f"  ·  {deal.tag}" if deal.tag else ""

    return Message(
        title=trim(deal.title),
        url=profile.build_link(deal),
        footer=f"{format_score(deal.score or 0)} score  ·  {comments_text}{tag_text}",
        hot=deal.is_hot,
        struck=deal.tag in STRUCK_STATES,
    )


def _free_deal_message(free_deal: FreeDeal, profile: "SourceProfile") -> Message:
    if profile.raw_title:
        title = free_deal.title
    else:
        title = f"[{profile.label}] {free_deal.title} (Free / 100% Off)"

    expired = free_deal.tag == ItemState.EXPIRED.value
    return Message(
        title=trim(title),
        url=profile.build_link(free_deal),
        struck=expired,
        expires_at=free_deal.expiry_at,
        expired=expired,
    )


def _article_message(article: Article, profile: "SourceProfile") -> Message:
    parts = []
    if article.score is not None:
        parts.append(f"{format_score(article.score)} score")
    if article.external_source:
        parts.append(article.external_source)

    return Message(
        title=trim(article.title),
        url=profile.build_link(article),
        description=" · ".join(parts) or None,
        thumbnail=article.thumbnail,
    )
