"""Shared fixtures: in-memory store, recording transport and item factories."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from deal_monitor.core import (
    Baseline,
    Deal,
    DocumentStore,
    Message,
    NotificationTransport,
    RateLimiter,
    SourceProfile,
    SourceRegistry,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryStore(DocumentStore):
    """Document store kept in a dict."""

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None) -> None:
        self.documents = {key: dict(value) for key, value in (documents or {}).items()}
        self.fetch_count = 0
        self.fail_on: set[str] = set()

    async def fetch_all(self) -> list[dict[str, Any]]:
        self.fetch_count += 1
        return [dict(document) for document in self.documents.values()]

    async def upsert(self, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        if doc_id in self.fail_on:
            raise OSError(f"write failed for {doc_id}")
        if merge and doc_id in self.documents:
            self.documents[doc_id].update(data)
        else:
            self.documents[doc_id] = dict(data)

    async def delete(self, doc_id: str) -> None:
        self.documents.pop(doc_id, None)


class RecordingTransport(NotificationTransport):
    """Transport that records every call and hands out sequential refs."""

    def __init__(self, login_ok: bool = True) -> None:
        self.login_ok = login_ok
        self.login_calls = 0
        self.sent: list[tuple[str, Message]] = []
        self.edited: list[tuple[str, str, Message]] = []
        self.missing: set[str] = set()
        self.failing_channels: set[str] = set()
        self._next_ref = 0

    async def login(self) -> bool:
        self.login_calls += 1
        return self.login_ok

    async def send(self, channel_id: str, message: Message) -> str:
        if channel_id in self.failing_channels:
            raise RuntimeError(f"channel {channel_id} is down")
        self._next_ref += 1
        self.sent.append((channel_id, message))
        return f"msg-{self._next_ref}"

    async def fetch(self, channel_id: str, ref: str) -> Optional[dict[str, Any]]:
        return None if ref in self.missing else {"id": ref}

    async def edit(self, channel_id: str, ref: str, message: Message) -> Optional[str]:
        if ref in self.missing:
            return None
        self.edited.append((channel_id, ref, message))
        return ref

    def message_link(self, channel_id: str, ref: str) -> str:
        return f"https://chat.example/{channel_id}/{ref}"

    def mention(self, target: str) -> str:
        return f"<@&{target}>"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def baseline(store: InMemoryStore) -> Baseline:
    return Baseline(store)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(0)


@pytest.fixture
def registry() -> SourceRegistry:
    return SourceRegistry([
        SourceProfile(
            source_id="bapcsalescanada",
            channel_id="deals",
            hot_channel_id="hot",
            hot_score=20,
            update_quota=3,
            link_template="https://redd.it/{native_id}",
        ),
        SourceProfile(
            source_id="redflagdeals",
            channel_id="rfd",
            hot_channel_id="hot",
            hot_score=20,
            update_quota=5,
            link_template="https://forums.redflagdeals.com/{native_id}",
            zero_score_states=frozenset({"Expired", "Moved"}),
        ),
        SourceProfile(source_id="epic", channel_id="free", display_name="Epic"),
        SourceProfile(source_id="rfd_freebies", channel_id="freebies", silent_removal=True, raw_title=True),
        SourceProfile(source_id="ozbargain", channel_id="rss"),
    ])


@pytest.fixture
def make_deal():
    """Factory for deals created ``age`` before NOW."""

    def _make_deal(
        native_id: str = "abc",
        source: str = "bapcsalescanada",
        title: str = "[GPU] Some card $499",
        score: int = 5,
        comments: int = 0,
        age: timedelta = timedelta(minutes=30),
        tag: Optional[str] = None,
        **kwargs: Any,
    ) -> Deal:
        return Deal(
            id=f"{source}-{native_id}",
            source=source,
            title=title,
            created_at=NOW - age,
            score=score,
            secondary_metric=comments,
            tag=tag,
            **kwargs,
        )

    return _make_deal
