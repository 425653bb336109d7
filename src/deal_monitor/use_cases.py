"""Business logic use cases."""

import asyncio
import logging
from typing import Optional, Sequence

from deal_monitor.core import (
    AlertMatcher,
    AlertSubscription,
    Baseline,
    ChangeDetector,
    Item,
    ItemSource,
    NotificationDispatcher,
    ReconcileResult,
)
from deal_monitor.core.errors import SourceError

logger = logging.getLogger(__name__)


class PipelineService:
    """One full cycle of a pipeline: scrape, reconcile, notify, alert."""

    def __init__(
        self,
        name: str,
        sources: Sequence[ItemSource],
        baseline: Baseline,
        detector: ChangeDetector,
        dispatcher: NotificationDispatcher,
        alert_matcher: Optional[AlertMatcher] = None,
        subscriptions: Sequence[AlertSubscription] = (),
    ) -> None:
        self.name = name
        self.sources = list(sources)
        self.baseline = baseline
        self.detector = detector
        self.dispatcher = dispatcher
        self.alert_matcher = alert_matcher
        self.subscriptions = list(subscriptions)

    async def collect(self) -> tuple[list[Item], set[str]]:
        """Scrape every source in turn.

        Returns:
            Tuple of (scraped items, sources whose absence can be trusted)
        """
        items: list[Item] = []
        represented: set[str] = set()

        for source in self.sources:
            try:
                fetched = await source.fetch_items()
            except SourceError as e:
                logger.error("Source %s failed: %s", source.source_id, e)
                continue
            except Exception:
                logger.exception("Unexpected error scraping %s", source.source_id)
                continue

            logger.info("%s: %d items", source.source_id, len(fetched))
            items.extend(fetched)
            if fetched or source.reports_empty:
                represented.add(source.source_id)

        return items, represented

    async def run_cycle(self) -> ReconcileResult:
        """Run one cycle and return what was detected."""
        logger.info("Pipeline %s: cycle start", self.name)

        try:
            await self.baseline.load()
        except Exception as e:
            # Reconciling against an empty baseline would announce everything again.
            logger.error("Pipeline %s: loading baseline failed, skipping cycle: %s", self.name, e)
            return ReconcileResult()

        items, represented = await self.collect()
        result = await self.detector.reconcile(self.baseline, items, represented)
        await self.dispatcher.dispatch(result)

        if self.alert_matcher is not None and self.subscriptions and result.new_items:
            await self.alert_matcher.match_and_alert(result.new_items, self.subscriptions)

        logger.info("Pipeline %s: cycle completed", self.name)
        return result


class Scheduler:
    """Runs each pipeline on its own interval, cycles of one pipeline never overlap."""

    def __init__(self, pipelines: Sequence[tuple[PipelineService, float]], cycle_timeout: float = 40.0) -> None:
        """Initialize scheduler.

        Args:
            pipelines: (service, interval in seconds) pairs.
            cycle_timeout: Wall-clock limit of a single cycle in seconds.
        """
        self.pipelines = list(pipelines)
        self.cycle_timeout = cycle_timeout

    async def run_cycle(self, service: PipelineService) -> Optional[ReconcileResult]:
        try:
            return await asyncio.wait_for(service.run_cycle(), timeout=self.cycle_timeout)
        except asyncio.TimeoutError:
            # Unsent items are resent next cycle.
            logger.error("Pipeline %s: cycle timed out after %.0fs", service.name, self.cycle_timeout)
            return None

    async def run_once(self) -> None:
        for service, _ in self.pipelines:
            await self.run_cycle(service)

    async def run_forever(self) -> None:
        await asyncio.gather(*(self._loop(service, interval) for service, interval in self.pipelines))

    async def _loop(self, service: PipelineService, interval: float) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.run_cycle(service)
            await asyncio.sleep(max(0.0, interval - (loop.time() - started)))
