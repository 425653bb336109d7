"""Deal monitor: scrape deal sources and keep chat messages in sync."""

__version__ = "0.1.0"
