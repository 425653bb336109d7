"""Logging setup."""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_dir: Path = Path("logs"), level: str = "INFO") -> logging.Logger:
    """Log to the console and to a file rotated daily, keeping the last 7 days."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = TimedRotatingFileHandler(
        log_dir / "deal_monitor.log",
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=[file_handler, logging.StreamHandler()],
        force=True,
    )
    # Request lines from httpx are noise at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("deal_monitor")
