"""Update-worthiness rules: how much must change before a message is edited."""

import logging
from collections import Counter
from typing import Optional

from deal_monitor.core.entities import Deal, Item, ItemState
from deal_monitor.core.registry import SourceProfile

logger = logging.getLogger(__name__)

# (minimum magnitude, required delta), largest first.
THRESHOLD_STEPS: tuple[tuple[int, int], ...] = (
    (500, 100),
    (200, 50),
    (100, 20),
    (20, 10),
    (10, 5),
    (3, 3),
)
MIN_THRESHOLD = 2

_DEALER_PREFIX_STATES = frozenset({ItemState.EXPIRED.value, ItemState.MOVED.value})


def threshold(value: int) -> int:
    """Delta needed for a metric currently at ``value`` to count as changed.

    Monotone step function of ``abs(value)``: larger metrics need larger
    absolute deltas.
    """
    magnitude = abs(value)
    for minimum, required in THRESHOLD_STEPS:
        if magnitude >= minimum:
            return required
    return MIN_THRESHOLD


def is_significant(delta: int, value: int) -> bool:
    return abs(delta) >= threshold(value)


def _metric_changed(old: Optional[int], new: Optional[int]) -> bool:
    if old is None or new is None or old == new:
        return False
    return is_significant(new - old, new)


class UpdatePolicy:
    """Decides whether a re-scraped item differs enough from its baseline."""

    def should_update(self, baseline: Item, scraped: Item, profile: Optional[SourceProfile] = None) -> bool:
        restore_dealer_prefix(baseline, scraped)

        for name in scraped.structural_fields:
            if getattr(scraped, name) != getattr(baseline, name):
                logger.debug("%s changed %s", baseline.id, name)
                return True

        score_suppressed = profile is not None and profile.suppresses_score(scraped.tag)
        if not score_suppressed and _metric_changed(baseline.score, scraped.score):
            logger.debug("%s score changed %s -> %s", baseline.id, baseline.score, scraped.score)
            return True

        if _metric_changed(baseline.secondary_metric, scraped.secondary_metric):
            logger.debug(
                "%s comments changed %s -> %s",
                baseline.id, baseline.secondary_metric, scraped.secondary_metric,
            )
            return True

        return False


def restore_dealer_prefix(baseline: Item, scraped: Item) -> None:
    """Re-apply the retailer prefix a closed forum thread no longer reports."""
    if not isinstance(baseline, Deal) or not isinstance(scraped, Deal):
        return
    if scraped.tag not in _DEALER_PREFIX_STATES or scraped.dealer_name or not baseline.dealer_name:
        return
    prefix = f"[{baseline.dealer_name}] "
    if not scraped.title.startswith(prefix):
        scraped.title = prefix + scraped.title
        scraped.dealer_name = baseline.dealer_name


class UpdateQuota:
    """Per-cycle update budget, per source and pipeline-wide."""

    def __init__(self, total_limit: Optional[int] = None) -> None:
        self.total_limit = total_limit
        self._counts: Counter[str] = Counter()
        self._granted = 0

    def allow(self, source: str, limit: Optional[int]) -> bool:
        """Count a qualifying update and report whether it fits the budget."""
        if self.total_limit is not None and self._granted >= self.total_limit:
            return False

        self._counts[source] += 1
        if limit is not None and self._counts[source] > limit:
            return False

        self._granted += 1
        return True

    @property
    def granted(self) -> int:
        return self._granted
