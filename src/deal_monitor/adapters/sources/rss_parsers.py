"""Per-site field extractors for RSS deal feeds.

Every parser receives an ``Article`` built from the standard RSS fields and
the raw ``<item>`` element, and refines id, score, thumbnail and
external source from the site's extensions.
"""

import logging
import re
from typing import Callable, Optional
from urllib.parse import urlparse
from xml.etree.ElementTree import Element

from bs4 import BeautifulSoup

from deal_monitor.core import Article

logger = logging.getLogger(__name__)

Parser = Callable[[Article, Element], None]


def local_name(tag: str) -> str:
    """Tag without its ``{namespace}`` part."""
    return tag.rsplit("}", 1)[-1]


def find_child(element: Element, name: str) -> Optional[Element]:
    """First direct child whose local tag name is ``name``, any namespace."""
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def child_text(element: Element, name: str) -> str:
    child = find_child(element, name)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _rekey(article: Article, pattern: str) -> None:
    """Replace the guid-based id with the site's numeric id."""
    match = re.search(pattern, article.native_id)
    if match is None:
        raise ValueError(f"No id in {article.native_id!r}")
    article.native_id = match.group(0)
    article.id = f"{article.source}-{article.native_id}"


def parse_default(article: Article, element: Element) -> None:
    return None


def parse_slickdeals(article: Article, element: Element) -> None:
    _rekey(article, r"\d{8,}")

    content = BeautifulSoup(child_text(element, "encoded"), "html.parser")

    image = content.find("img")
    if image is not None and image.get("src"):
        article.thumbnail = image["src"]

    for div in content.find_all("div"):
        text = div.get_text()
        if "Thumb Score" not in text:
            continue
        score_match = re.search(r"[+-]\d+", text)
        if score_match:
            article.score = int(score_match.group(0))
            break

    for anchor in content.find_all("a"):
        if anchor.get("data-store-id") and anchor.get("data-product-exitwebsite"):
            article.external_source = anchor["data-product-exitwebsite"]
            break
    else:
        # Frontpage entries only carry the store name as anchor text.
        for anchor in content.find_all("a", attrs={"data-product-exitwebsite": True}):
            text = anchor.get_text(strip=True)
            if text:
                article.external_source = text
                break


def parse_ozbargain(article: Article, element: Element) -> None:
    _rekey(article, r"\d{6,}")

    thumbnail = find_child(element, "thumbnail")
    if thumbnail is not None and thumbnail.get("url"):
        article.thumbnail = thumbnail.get("url")

    meta = find_child(element, "meta")
    if meta is None:
        return

    upvotes = meta.get("votes-pos")
    downvotes = meta.get("votes-neg")
    if upvotes and downvotes:
        article.score = int(upvotes) - int(downvotes)

    url = meta.get("url")
    if url:
        hostname = urlparse(url).hostname or ""
        article.external_source = hostname.replace("www.", "") or None


def parse_hotukdeals(article: Article, element: Element) -> None:
    _rekey(article, r"\d{7,}$")

    media = find_child(element, "content")
    if media is not None and media.get("url"):
        article.thumbnail = media.get("url")

    # Titles start with the deal temperature, e.g. "352° - ".
    temperature = re.match(r"^(-?\d+)°\s-\s", article.title)
    if temperature:
        article.title = article.title[temperature.end():]
        article.score = int(temperature.group(1))

    merchant = find_child(element, "merchant")
    if merchant is not None:
        article.external_source = merchant.get("name")
        price = merchant.get("price")
        if price:
            article.title = f"{article.title} - {price}"


PARSERS: dict[str, Parser] = {
    "default": parse_default,
    "slickdeals": parse_slickdeals,
    "ozbargain": parse_ozbargain,
    "hotukdeals": parse_hotukdeals,
}


def get_parser(name: Optional[str]) -> Parser:
    if not name:
        return parse_default
    try:
        return PARSERS[name]
    except KeyError:
        raise ValueError(f"Unknown RSS parser: {name}") from None
