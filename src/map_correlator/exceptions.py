from __future__ import annotations


class CorrelationError(Exception):
    """Base exception for correlation failures."""


class ConfigurationError(CorrelationError, ValueError):
    """Raised when a correlation run is given missing or malformed inputs."""


class DuplicateFeatureError(CorrelationError):
    """Raised when a feature store receives two features with the same identity."""


class CorrelationCancelled(CorrelationError):
    """Raised when a run is cancelled between items."""

    def __init__(self, processed: int) -> None:
        super().__init__(f"Correlation cancelled after {processed} item(s)")
        self.processed = processed
