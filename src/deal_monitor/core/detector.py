"""Change detection: reconcile a fresh scrape against the baseline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from deal_monitor.core.baseline import Baseline
from deal_monitor.core.entities import FreeDeal, Item, ItemState, utcnow
from deal_monitor.core.policy import UpdatePolicy, UpdateQuota, restore_dealer_prefix
from deal_monitor.core.registry import SourceProfile, SourceRegistry

logger = logging.getLogger(__name__)

RETENTION_WINDOW = timedelta(days=2)
DELETED_WINDOW = timedelta(hours=1)

Enricher = Callable[[Item], Awaitable[Item]]


class AbsenceMode(str, Enum):
    """What happens to baseline items missing from a scrape."""

    # Flag as Deleted/Untracked, purge after the retention window.
    FLAG = "flag"
    # Purge silently after the retention window.
    PURGE = "purge"
    # Purge once gone and past expiry, with a final "expired" notification.
    EXPIRE = "expire"


@dataclass(frozen=True)
class PipelineRules:
    """Reconciliation behaviour of one pipeline."""

    absence_mode: AbsenceMode = AbsenceMode.FLAG
    retention: timedelta = RETENTION_WINDOW
    deleted_window: timedelta = DELETED_WINDOW
    track_updates: bool = True
    track_hotness: bool = True
    reject_stale_new: bool = True
    max_updates_per_cycle: Optional[int] = None
    resend_unsent: bool = True


DEALS_RULES = PipelineRules()
FREE_DEALS_RULES = PipelineRules(
    absence_mode=AbsenceMode.EXPIRE,
    track_updates=False,
    track_hotness=False,
    reject_stale_new=False,
)
RSS_RULES = PipelineRules(
    absence_mode=AbsenceMode.PURGE,
    track_hotness=False,
    reject_stale_new=False,
    max_updates_per_cycle=10,
)


@dataclass
class ReconcileResult:
    """Classified output of one reconciliation."""

    new_items: list[Item] = field(default_factory=list)
    updated_items: list[Item] = field(default_factory=list)
    newly_hot_items: list[Item] = field(default_factory=list)
    gone_items: list[Item] = field(default_factory=list)
    # Known items whose primary notification never went out.
    resend_items: list[Item] = field(default_factory=list)

    @property
    def has_notifications(self) -> bool:
        return bool(
            self.new_items or self.updated_items or self.newly_hot_items
            or self.gone_items or self.resend_items
        )

    def summary(self) -> str:
        return (
            f"{len(self.new_items)} new, {len(self.newly_hot_items)} newly hot, "
            f"{len(self.updated_items)} updated, {len(self.gone_items)} gone, "
            f"{len(self.resend_items)} to resend"
        )


def dedupe(items: Sequence[Item]) -> list[Item]:
    """Collapse duplicate ids within one scrape.

    Forum thread merges can list the same id twice, once closed. The open
    copy wins; otherwise the first copy is kept.
    """
    groups: dict[str, list[Item]] = {}
    for item in items:
        groups.setdefault(item.id, []).append(item)

    kept: list[Item] = []
    for item in items:
        group = groups[item.id]
        if len(group) == 1:
            kept.append(item)
            continue
        keep = next((candidate for candidate in group if not candidate.is_terminal), group[0])
        if item is keep:
            kept.append(item)
        else:
            logger.info("Removing duplicate item %s", item.id)
    return kept


class ChangeDetector:
    """Classifies scraped items as new, updated, newly hot or gone.

    Mutates the baseline in place and writes every change through to its
    store. Per-item failures are logged and never abort the pass.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        rules: PipelineRules = DEALS_RULES,
        policy: Optional[UpdatePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        enrichers: Optional[Mapping[str, Enricher]] = None,
    ) -> None:
        self.registry = registry
        self.rules = rules
        self.policy = policy or UpdatePolicy()
        self.clock = clock
        self.enrichers = dict(enrichers or {})

    async def reconcile(
        self,
        baseline: Baseline,
        scraped: Sequence[Item],
        represented_sources: Optional[Iterable[str]] = None,
    ) -> ReconcileResult:
        """Reconcile ``scraped`` against ``baseline``.

        Args:
            baseline: Loaded baseline, mutated in place.
            scraped: Items from this cycle's scrape, newest first.
            represented_sources: Sources whose absence can be trusted this
                cycle. Defaults to the sources with at least one scraped item.
        """
        now = self.clock()
        result = ReconcileResult()
        quota = UpdateQuota(self.rules.max_updates_per_cycle)

        items = dedupe(scraped)
        seen_ids = {item.id for item in items}

        for item in items:
            try:
                await self._reconcile_scraped(baseline, item, now, quota, result)
            except Exception as e:
                logger.error("Saving item %s failed: %s", item.id, e)

        if represented_sources is None:
            represented = {item.source for item in items}
        else:
            represented = set(represented_sources)

        for existing in baseline:
            if existing.source not in represented:
                continue
            try:
                await self._reconcile_absent(baseline, existing, now, seen_ids, result)
            except Exception as e:
                logger.error("Removing item %s failed: %s", existing.id, e)

        logger.info("Reconciled %d scraped items: %s", len(items), result.summary())
        return result

    async def _reconcile_scraped(
        self,
        baseline: Baseline,
        item: Item,
        now: datetime,
        quota: UpdateQuota,
        result: ReconcileResult,
    ) -> None:
        profile = self.registry.find(item.source)
        item.is_hot = bool(self.rules.track_hotness and profile and profile.is_hot(item, now))

        existing = baseline.get(item.id)
        if existing is None:
            await self._add_new(baseline, item, now, result)
            return

        unsent = (
            self.rules.resend_unsent
            and existing.refs.primary is None
            and not existing.is_terminal
        )
        restore_dealer_prefix(existing, item)

        changed = False
        if self.rules.track_hotness and not existing.is_hot and item.is_hot:
            # Turning hot always goes out, regardless of the quota.
            existing.is_hot = True
            self._apply(existing, item, profile, now)
            await baseline.save(existing)
            logger.info("Previous item is now hot: %s", existing.id)
            if not unsent:
                result.newly_hot_items.append(existing)
                result.updated_items.append(existing)
            changed = True
        elif self.rules.track_updates and self.policy.should_update(existing, item, profile):
            limit = profile.update_quota if profile else None
            if quota.allow(item.source, limit):
                self._apply(existing, item, profile, now)
                await baseline.save(existing)
                logger.info("Previous item updated: %s", existing.id)
                if not unsent:
                    result.updated_items.append(existing)
                changed = True
            else:
                logger.debug("Update quota reached for %s, skipping %s", item.source, item.id)

        if unsent:
            logger.info("Item %s has no message yet, resending%s", existing.id, " (updated)" if changed else "")
            result.resend_items.append(existing)

    async def _add_new(self, baseline: Baseline, item: Item, now: datetime, result: ReconcileResult) -> None:
        # Older items resurface when newer ones are deleted at the source.
        if self.rules.reject_stale_new and item.created_at < now - self.rules.retention:
            logger.debug("Ignoring stale item %s", item.id)
            return

        enricher = self.enrichers.get(item.source)
        if enricher is not None:
            try:
                item = await enricher(item)
            except Exception as e:
                logger.error("Getting additional info failed for %s: %s", item.id, e)

        if isinstance(item, FreeDeal) and item.is_expired(now):
            logger.info("Ignoring already expired item %s", item.id)
            return

        item.last_touched_at = now
        await baseline.save(item)
        baseline.add(item)
        result.new_items.append(item)
        logger.info("New item: %s", item.id)

    def _apply(self, existing: Item, scraped: Item, profile: Optional[SourceProfile], now: datetime) -> None:
        include_score = not (profile and profile.suppresses_score(scraped.tag))
        existing.copy_from(scraped, include_score=include_score)
        existing.last_touched_at = now

    async def _reconcile_absent(
        self,
        baseline: Baseline,
        existing: Item,
        now: datetime,
        seen_ids: set[str],
        result: ReconcileResult,
    ) -> None:
        present = existing.id in seen_ids
        mode = self.rules.absence_mode

        if mode is AbsenceMode.EXPIRE:
            await self._expire(baseline, existing, now, present, result)
            return

        if present:
            return

        past_retention = existing.created_at < now - self.rules.retention

        if mode is AbsenceMode.PURGE:
            if past_retention:
                await baseline.remove(existing)
                logger.info("Item %s removed from store", existing.id)
            return

        if past_retention:
            await baseline.remove(existing)
            logger.info("Item %s successfully deleted", existing.id)
            if not existing.is_terminal:
                # Final notification that it is no longer tracked.
                existing.tag = ItemState.UNTRACKED.value
                existing.last_touched_at = now
                result.gone_items.append(existing)
            return

        if existing.is_terminal:
            return

        # Very recent and gone: most likely removed by a moderator.
        # Otherwise it was probably pushed to another page.
        if existing.created_at > now - self.rules.deleted_window:
            existing.tag = ItemState.DELETED.value
        else:
            existing.tag = ItemState.UNTRACKED.value
        existing.last_touched_at = now
        await baseline.save(existing)
        result.gone_items.append(existing)
        logger.info("Recent item %s was removed or is in another page, marked %s", existing.id, existing.tag)

    async def _expire(
        self,
        baseline: Baseline,
        existing: Item,
        now: datetime,
        present: bool,
        result: ReconcileResult,
    ) -> None:
        # Only absent items expire.
        if present:
            return
        if isinstance(existing, FreeDeal) and existing.expiry_at is not None and not existing.is_expired(now):
            return

        await baseline.remove(existing)

        profile = self.registry.find(existing.source)
        if profile is not None and profile.silent_removal:
            logger.info("Item %s removed from store", existing.id)
            return

        existing.tag = ItemState.EXPIRED.value
        existing.last_touched_at = now
        result.gone_items.append(existing)
        logger.info("Item %s has expired", existing.id)
