"""Error taxonomy for the ingestion pipeline."""


class ScoreSyncError(RuntimeError):
    pass


class ValidationError(ScoreSyncError):
    """Incoming event is missing a field the store requires."""


class FetchError(ScoreSyncError):
    """Upstream request failed for a date (transport, HTTP, or body)."""

    def __init__(self, message: str, *, status: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status = status
        self.url = url


class StoreError(ScoreSyncError):
    """A document write could not be committed."""


class ConfigError(ScoreSyncError):
    """Required connection settings are missing or invalid."""
