"""Domain exceptions."""


class DealMonitorError(Exception):
    """Base class for all deal-monitor errors."""


class ConfigError(DealMonitorError):
    """Invalid or incomplete configuration."""


class SourceError(DealMonitorError):
    """A source could not be fetched (network error, bad status, timeout)."""

    def __init__(self, source_id: str, message: str) -> None:
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id


class StoreError(DealMonitorError):
    """Reading or writing the document store failed."""


class TransportError(DealMonitorError):
    """The notification transport rejected a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnknownSourceError(KeyError, DealMonitorError):
    """No registry profile exists for a source id."""

    def __init__(self, source: str) -> None:
        super().__init__(source)
        self.source = source

    def __str__(self) -> str:
        return f'Source of "{self.source}" is unhandled'
