"""Source adapters for fetching items."""

from deal_monitor.adapters.sources.epic_source import EpicSource
from deal_monitor.adapters.sources.gog_source import GOGSource
from deal_monitor.adapters.sources.prime_gaming_source import PrimeGamingSource
from deal_monitor.adapters.sources.reddit_source import RedditSource
from deal_monitor.adapters.sources.redflagdeals_source import RedFlagDealsSource
from deal_monitor.adapters.sources.rfd_freebies_source import RFDFreebiesSource
from deal_monitor.adapters.sources.rss_source import RSSSource
from deal_monitor.adapters.sources.steam_source import SteamSource

__all__ = [
    "EpicSource",
    "GOGSource",
    "PrimeGamingSource",
    "RedditSource",
    "RedFlagDealsSource",
    "RFDFreebiesSource",
    "RSSSource",
    "SteamSource",
]
