"""CLI entry point for deal monitor."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from deal_monitor.adapters.notifications import DiscordTransport, SlackTransport
from deal_monitor.adapters.sources import (
    EpicSource,
    GOGSource,
    PrimeGamingSource,
    RedditSource,
    RedFlagDealsSource,
    RFDFreebiesSource,
    RSSSource,
    SteamSource,
)
from deal_monitor.adapters.storage import YamlDocumentStore
from deal_monitor.config import Settings, SourceConfig, get_settings
from deal_monitor.core import (
    DEALS_RULES,
    FREE_DEALS_RULES,
    RSS_RULES,
    AlertMatcher,
    Article,
    Baseline,
    ChangeDetector,
    Deal,
    FreeDeal,
    ItemSource,
    NotificationDispatcher,
    NotificationTransport,
    PipelineRules,
    RateLimiter,
    SourceRegistry,
)
from deal_monitor.core.errors import ConfigError
from deal_monitor.logging_config import setup_logging
from deal_monitor.use_cases import PipelineService, Scheduler

logger = logging.getLogger(__name__)

PIPELINE_RULES: dict[str, PipelineRules] = {
    "deals": DEALS_RULES,
    "free_deals": FREE_DEALS_RULES,
    "rss": RSS_RULES,
}
PIPELINE_KINDS = {
    "deals": Deal.kind,
    "free_deals": FreeDeal.kind,
    "rss": Article.kind,
}


def build_source(config: SourceConfig, settings: Settings) -> ItemSource:
    """Instantiate the adapter of a configured source."""
    timeout = settings.runtime.request_timeout
    options = config.options
    # Only pass the url when configured, adapters know their default endpoint.
    url = {"url": config.url} if config.url else {}

    if config.type == "reddit":
        return RedditSource(
            config.id,
            subreddit=options.get("subreddit"),
            timeout=timeout,
            user_agent=settings.reddit_user_agent,
            auth_header=settings.reddit_auth_header,
            token_url=options.get("token_url"),
            revoke_url=options.get("revoke_url"),
            **url,
        )
    if config.type == "redflagdeals":
        return RedFlagDealsSource(config.id, timeout=timeout, forum_id=options.get("forum_id", 9), **url)
    if config.type == "epic":
        return EpicSource(config.id, timeout=timeout, **url)
    if config.type == "steam":
        return SteamSource(config.id, timeout=timeout, **url)
    if config.type == "gog":
        return GOGSource(config.id, timeout=timeout, **url)
    if config.type == "prime_gaming":
        if not options.get("search_body"):
            raise ConfigError(f"Source {config.id} has no search_body option")
        extra = {key: options[key] for key in ("search_url", "user_agent") if key in options}
        return PrimeGamingSource(config.id, options["search_body"], timeout=timeout, **url, **extra)
    if config.type == "rfd_freebies":
        return RFDFreebiesSource(config.id, timeout=timeout, **url)
    if config.type == "rss":
        return RSSSource(
            config.id,
            config.url,
            parser=options.get("parser"),
            timeout=timeout,
            use_fetch_time=bool(options.get("use_fetch_time", False)),
        )
    raise ConfigError(f"Unknown source type {config.type}")


def build_transport(settings: Settings) -> NotificationTransport:
    token = settings.transport_token
    if settings.notifications.transport == "slack":
        return SlackTransport(token)
    return DiscordTransport(token, server_id=settings.notifications.server_id)


def build_pipelines(
    settings: Settings,
    transport: NotificationTransport,
    selected: Optional[list[str]] = None,
) -> list[tuple[PipelineService, float]]:
    """Wire every enabled (or selected) pipeline with its own baseline."""
    names = [name for name, _ in settings.pipelines.items()]
    for name in selected or []:
        if name not in names:
            raise ConfigError(f"Unknown pipeline {name}")

    registry = SourceRegistry(
        source.to_profile()
        for _, pipeline in settings.pipelines.items()
        for source in pipeline.sources
    )

    pipelines = []
    for name, pipeline in settings.pipelines.items():
        if selected and name not in selected:
            continue
        if not selected and not pipeline.enabled:
            continue
        if not pipeline.sources:
            logger.warning("Pipeline %s has no sources", name)
            continue

        sources = [build_source(source, settings) for source in pipeline.sources]
        baseline = Baseline(YamlDocumentStore(settings.store_dir, name), PIPELINE_KINDS[name])
        limiter = RateLimiter(settings.runtime.inter_call_delay)

        service = PipelineService(
            name=name,
            sources=sources,
            baseline=baseline,
            detector=ChangeDetector(
                registry,
                PIPELINE_RULES[name],
                enrichers={source.source_id: source.get_additional_info for source in sources},
            ),
            dispatcher=NotificationDispatcher(transport, registry, baseline, limiter),
            alert_matcher=AlertMatcher(transport, registry, settings.notifications.alert_channel_id, limiter),
            subscriptions=settings.alerts,
        )
        pipelines.append((service, pipeline.interval_minutes * 60))

    return pipelines


async def async_run(settings: Settings, selected: Optional[list[str]], once: bool) -> None:
    """Async implementation of run command."""
    transport = build_transport(settings)
    pipelines = build_pipelines(settings, transport, selected)
    if not pipelines:
        logger.error("No pipeline to run, enable one in the config")
        return

    logger.info("Running pipelines: %s", ", ".join(service.name for service, _ in pipelines))
    scheduler = Scheduler(pipelines, cycle_timeout=settings.runtime.cycle_timeout)
    try:
        if once:
            await scheduler.run_once()
        else:
            await scheduler.run_forever()
    finally:
        await transport.close()


def main(
    config: Path = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to the YAML config"),
    pipeline: Optional[list[str]] = typer.Option(None, "--pipeline", "-p", help="Pipeline to run (repeatable)"),
    once: bool = typer.Option(False, "--once", help="Run a single cycle of each pipeline and exit"),
) -> None:
    """Monitor deal sources and post new and changed deals to chat."""
    try:
        settings = get_settings(config)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1)

    setup_logging(settings.log_dir, settings.runtime.log_level)

    try:
        asyncio.run(async_run(settings, pipeline, once))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Stopped")


def app() -> None:
    """CLI entry point."""
    typer.run(main)


if __name__ == "__main__":
    app()
