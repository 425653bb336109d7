"""Tests for the change detector."""

from datetime import timedelta

import pytest
from conftest import NOW, InMemoryStore

from deal_monitor.core import (
    DEALS_RULES,
    FREE_DEALS_RULES,
    RSS_RULES,
    Article,
    Baseline,
    ChangeDetector,
    FreeDeal,
    ItemState,
    NotificationRefs,
)
from deal_monitor.core.detector import dedupe


async def seed(baseline: Baseline, *items) -> None:
    """Load the baseline, then put items in it as previously sent."""
    await baseline.load()
    for item in items:
        if item.refs.primary is None:
            item.refs = NotificationRefs(primary=f"ref-{item.id}")
        await baseline.save(item)
        baseline.add(item)


@pytest.fixture
def detector(registry, clock) -> ChangeDetector:
    return ChangeDetector(registry, DEALS_RULES, clock=clock)


@pytest.mark.asyncio
async def test_new_item_is_added_and_persisted(detector, baseline, store, make_deal) -> None:
    """Test a fresh item lands in new_items and in the store."""
    await baseline.load()
    deal = make_deal("n1")

    result = await detector.reconcile(baseline, [deal])

    assert result.new_items == [deal]
    assert deal.last_touched_at == NOW
    assert "bapcsalescanada-n1" in baseline
    assert store.documents["bapcsalescanada-n1"]["title"] == deal.title


@pytest.mark.asyncio
async def test_score_change_updates_item(detector, baseline, store, make_deal) -> None:
    """Test score 18 -> 30 clears threshold(30) = 10 and is persisted."""
    await seed(baseline, make_deal("a", score=18, age=timedelta(hours=5)))

    result = await detector.reconcile(baseline, [make_deal("a", score=30, age=timedelta(hours=5))])

    assert [item.id for item in result.updated_items] == ["bapcsalescanada-a"]
    assert baseline.get("bapcsalescanada-a").score == 30
    assert store.documents["bapcsalescanada-a"]["score"] == 30
    assert result.new_items == []


@pytest.mark.asyncio
async def test_old_item_is_updated_but_not_hot(detector, baseline, make_deal) -> None:
    """Test a 3h old item crossing the hot score only gets an update."""
    await seed(baseline, make_deal("b", score=15, age=timedelta(hours=3)))

    result = await detector.reconcile(baseline, [make_deal("b", score=25, age=timedelta(hours=3))])

    assert [item.id for item in result.updated_items] == ["bapcsalescanada-b"]
    assert result.newly_hot_items == []
    assert baseline.get("bapcsalescanada-b").is_hot is False


@pytest.mark.asyncio
async def test_stale_new_item_is_dropped(detector, baseline, store, make_deal) -> None:
    """Test an unseen item created 3 days ago is silently discarded."""
    await baseline.load()

    result = await detector.reconcile(baseline, [make_deal("c", age=timedelta(days=3))])

    assert result.new_items == []
    assert "bapcsalescanada-c" not in baseline
    assert store.documents == {}


@pytest.mark.asyncio
async def test_item_becomes_hot_once(detector, baseline, make_deal) -> None:
    """Test the false -> true hot transition is reported exactly once and updates the item."""
    await seed(baseline, make_deal("h", score=10))

    first = await detector.reconcile(baseline, [make_deal("h", score=25)])
    assert [item.id for item in first.newly_hot_items] == ["bapcsalescanada-h"]
    assert [item.id for item in first.updated_items] == ["bapcsalescanada-h"]
    assert baseline.get("bapcsalescanada-h").is_hot is True
    assert baseline.get("bapcsalescanada-h").score == 25

    # Dropping below the hot score never reverts the flag.
    second = await detector.reconcile(baseline, [make_deal("h", score=12)])
    assert second.newly_hot_items == []
    assert baseline.get("bapcsalescanada-h").is_hot is True


@pytest.mark.asyncio
async def test_hot_transition_ignores_quota(registry, clock, baseline, make_deal) -> None:
    """Test hot items still go out once the update quota is used up."""
    detector = ChangeDetector(registry, DEALS_RULES, clock=clock)
    cold = [make_deal(f"q{i}", score=0, comments=0, age=timedelta(hours=5)) for i in range(4)]
    await seed(baseline, *cold, make_deal("hot", score=10))

    scraped = [make_deal(f"q{i}", score=0, comments=50, age=timedelta(hours=5)) for i in range(4)]
    scraped.append(make_deal("hot", score=40))

    result = await detector.reconcile(baseline, scraped)

    assert len(result.updated_items) == 4
    assert result.updated_items[-1].id == "bapcsalescanada-hot"
    assert [item.id for item in result.newly_hot_items] == ["bapcsalescanada-hot"]


@pytest.mark.asyncio
async def test_update_quota_per_source(detector, baseline, make_deal) -> None:
    """Test at most update_quota items per source are updated per cycle."""
    old = timedelta(hours=5)
    await seed(baseline, *[make_deal(f"u{i}", title=f"Deal {i}", age=old) for i in range(5)])

    scraped = [make_deal(f"u{i}", title=f"Deal {i} (price drop)", age=old) for i in range(5)]
    result = await detector.reconcile(baseline, scraped)

    assert len(result.updated_items) == 3
    # Skipped items keep their previous state and can qualify next cycle.
    assert baseline.get("bapcsalescanada-u4").title == "Deal 4"

    next_result = await detector.reconcile(baseline, scraped)
    assert {item.id for item in next_result.updated_items} == {"bapcsalescanada-u3", "bapcsalescanada-u4"}


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(detector, baseline, make_deal) -> None:
    """Test reconciling the same scrape twice yields nothing the second time."""
    await seed(baseline, make_deal("i1", score=3), make_deal("i2", score=7))
    scraped = [make_deal("i1", score=30), make_deal("i2", score=40), make_deal("i3")]

    first = await detector.reconcile(baseline, scraped)
    assert first.has_notifications

    again = [make_deal("i1", score=30), make_deal("i2", score=40), make_deal("i3")]
    second = await detector.reconcile(baseline, again)

    assert second.new_items == []
    assert second.updated_items == []
    assert second.newly_hot_items == []
    assert second.gone_items == []


@pytest.mark.asyncio
async def test_absence_needs_represented_source(detector, baseline, make_deal) -> None:
    """Test a source with no scraped items never flags its baseline items."""
    await seed(baseline, make_deal("g1", age=timedelta(hours=5)))

    result = await detector.reconcile(baseline, [])

    assert result.gone_items == []
    assert baseline.get("bapcsalescanada-g1").tag is None


@pytest.mark.asyncio
async def test_absent_items_are_flagged(detector, baseline, make_deal) -> None:
    """Test absent items become Deleted when very recent, else Untracked."""
    await seed(
        baseline,
        make_deal("recent", age=timedelta(minutes=20)),
        make_deal("older", age=timedelta(hours=5)),
    )

    result = await detector.reconcile(baseline, [make_deal("present")])

    tags = {item.id: item.tag for item in result.gone_items}
    assert tags == {
        "bapcsalescanada-recent": ItemState.DELETED.value,
        "bapcsalescanada-older": ItemState.UNTRACKED.value,
    }

    # Already terminal, so no second notification.
    again = await detector.reconcile(baseline, [make_deal("present")])
    assert again.gone_items == []


@pytest.mark.asyncio
async def test_retention_deletes_absent_items(detector, baseline, store, make_deal) -> None:
    """Test absent items past 2 days are removed, with one final notice."""
    await seed(
        baseline,
        make_deal("expired-live", age=timedelta(days=3)),
        make_deal("expired-closed", age=timedelta(days=3), tag=ItemState.DELETED.value),
    )

    result = await detector.reconcile(baseline, [make_deal("present")])

    assert [(item.id, item.tag) for item in result.gone_items] == [
        ("bapcsalescanada-expired-live", ItemState.UNTRACKED.value),
    ]
    assert "bapcsalescanada-expired-live" not in baseline
    assert "bapcsalescanada-expired-closed" not in baseline
    assert "bapcsalescanada-expired-live" not in store.documents


@pytest.mark.asyncio
async def test_explicit_represented_sources(detector, baseline, make_deal) -> None:
    """Test an empty scrape counts when the source is declared represented."""
    await seed(baseline, make_deal("e1", age=timedelta(hours=5)))

    result = await detector.reconcile(baseline, [], represented_sources={"bapcsalescanada"})

    assert [item.tag for item in result.gone_items] == [ItemState.UNTRACKED.value]


@pytest.mark.asyncio
async def test_zero_score_state_keeps_score(detector, baseline, make_deal) -> None:
    """Test an expired thread reporting score 0 keeps its last real score."""
    rfd = dict(source="redflagdeals", age=timedelta(hours=5))
    await seed(baseline, make_deal("900", title="[Costco] TV", score=45, dealer_name="Costco", **rfd))

    closed = make_deal("900", title="TV", score=0, tag=ItemState.EXPIRED.value, **rfd)
    result = await detector.reconcile(baseline, [closed])

    stored = baseline.get("redflagdeals-900")
    assert [item.id for item in result.updated_items] == ["redflagdeals-900"]
    assert stored.tag == ItemState.EXPIRED.value
    assert stored.score == 45
    assert stored.title == "[Costco] TV"


@pytest.mark.asyncio
async def test_unsent_item_is_resent(detector, baseline, make_deal) -> None:
    """Test a known item without a primary ref is scheduled for resend."""
    await baseline.load()
    unsent = make_deal("r1")
    await baseline.save(unsent)
    baseline.add(unsent)

    result = await detector.reconcile(baseline, [make_deal("r1")])

    assert [item.id for item in result.resend_items] == ["bapcsalescanada-r1"]
    assert result.new_items == []


@pytest.mark.asyncio
async def test_persistence_failure_is_isolated(detector, baseline, store, make_deal) -> None:
    """Test a failing write skips one item and keeps the rest."""
    await baseline.load()
    store.fail_on.add("bapcsalescanada-bad")

    result = await detector.reconcile(baseline, [make_deal("bad"), make_deal("good")])

    assert [item.id for item in result.new_items] == ["bapcsalescanada-good"]
    assert "bapcsalescanada-bad" not in baseline


def test_dedupe_prefers_open_copy(make_deal) -> None:
    """Test duplicate ids keep the non-terminal copy."""
    closed = make_deal("d", tag=ItemState.MOVED.value)
    open_copy = make_deal("d")
    other = make_deal("x")

    assert dedupe([closed, other, open_copy]) == [other, open_copy]


def test_dedupe_keeps_first_when_both_open(make_deal) -> None:
    """Test duplicate ids that are both open keep the first copy."""
    first = make_deal("d", title="first")
    second = make_deal("d", title="second")

    assert dedupe([first, second]) == [first]


def _free_deal(native_id: str, expiry_hours=None, source: str = "epic") -> FreeDeal:
    return FreeDeal(
        id=f"{source}-{native_id}",
        source=source,
        title=native_id.title(),
        created_at=NOW - timedelta(hours=1),
        link=f"https://store.example/{native_id}",
        expiry_at=NOW + timedelta(hours=expiry_hours) if expiry_hours is not None else None,
    )


@pytest.mark.asyncio
async def test_free_deal_expires_when_gone(registry, clock) -> None:
    """Test free deals are removed once gone and past expiry."""
    baseline = Baseline(InMemoryStore(), FreeDeal.kind)
    detector = ChangeDetector(registry, FREE_DEALS_RULES, clock=clock)
    await seed(
        baseline,
        _free_deal("no-expiry"),
        _free_deal("still-valid", expiry_hours=5),
        _free_deal("past", expiry_hours=-1),
    )

    result = await detector.reconcile(baseline, [], represented_sources={"epic"})

    assert sorted(item.id for item in result.gone_items) == ["epic-no-expiry", "epic-past"]
    assert all(item.tag == ItemState.EXPIRED.value for item in result.gone_items)
    assert "epic-still-valid" in baseline
    assert "epic-past" not in baseline


@pytest.mark.asyncio
async def test_listed_free_deal_is_kept_past_expiry(registry, clock) -> None:
    """Test a free deal still being scraped stays tracked after its expiry passes."""
    baseline = Baseline(InMemoryStore(), FreeDeal.kind)
    detector = ChangeDetector(registry, FREE_DEALS_RULES, clock=clock)
    await seed(baseline, _free_deal("listed", expiry_hours=-1))

    for _ in range(2):
        result = await detector.reconcile(baseline, [_free_deal("listed")], represented_sources={"epic"})

        assert result.gone_items == []
        assert result.new_items == []
        assert "epic-listed" in baseline


@pytest.mark.asyncio
async def test_free_deal_silent_removal(registry, clock) -> None:
    """Test sources with silent removal drop items without a notice."""
    baseline = Baseline(InMemoryStore(), FreeDeal.kind)
    detector = ChangeDetector(registry, FREE_DEALS_RULES, clock=clock)
    await seed(baseline, _free_deal("topic", source="rfd_freebies"))

    result = await detector.reconcile(baseline, [], represented_sources={"rfd_freebies"})

    assert result.gone_items == []
    assert "rfd_freebies-topic" not in baseline


@pytest.mark.asyncio
async def test_free_deal_enricher_fills_expiry(registry, clock) -> None:
    """Test new free deals go through the source's enricher."""
    baseline = Baseline(InMemoryStore(), FreeDeal.kind)

    async def enrich(item):
        item.expiry_at = NOW + timedelta(days=2)
        return item

    detector = ChangeDetector(registry, FREE_DEALS_RULES, clock=clock, enrichers={"epic": enrich})
    await baseline.load()

    result = await detector.reconcile(baseline, [_free_deal("game")])

    assert result.new_items[0].expiry_at == NOW + timedelta(days=2)


@pytest.mark.asyncio
async def test_rss_updates_are_capped(registry, clock) -> None:
    """Test RSS pipelines push at most 10 updates per cycle."""
    baseline = Baseline(InMemoryStore(), Article.kind)
    detector = ChangeDetector(registry, RSS_RULES, clock=clock)

    def article(i: int, title: str) -> Article:
        return Article(
            id=f"ozbargain-{i}",
            source="ozbargain",
            title=title,
            created_at=NOW - timedelta(days=5),
            link=f"https://www.ozbargain.com.au/node/{i}",
        )

    await seed(baseline, *[article(i, "old") for i in range(12)])

    result = await detector.reconcile(baseline, [article(i, "new") for i in range(12)])

    assert len(result.updated_items) == 10
    # Old articles were still seen, so nothing is purged.
    assert len(baseline) == 12


@pytest.mark.asyncio
async def test_rss_absent_articles_purged_silently(registry, clock) -> None:
    """Test absent articles past retention leave without a notification."""
    baseline = Baseline(InMemoryStore(), Article.kind)
    detector = ChangeDetector(registry, RSS_RULES, clock=clock)
    old = Article(
        id="ozbargain-1", source="ozbargain", title="Old", created_at=NOW - timedelta(days=3), link="https://x/1"
    )
    fresh = Article(
        id="ozbargain-2", source="ozbargain", title="Fresh", created_at=NOW - timedelta(hours=1), link="https://x/2"
    )
    await seed(baseline, old)

    result = await detector.reconcile(baseline, [fresh])

    assert result.gone_items == []
    assert "ozbargain-1" not in baseline
    assert [item.id for item in result.new_items] == ["ozbargain-2"]
