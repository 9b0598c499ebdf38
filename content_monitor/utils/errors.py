"""Exception hierarchy for monitor execution and event handling."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all content monitor errors."""


class FetchError(MonitorError):
    """A transient failure while fetching teasers from a source."""


class FetchTimeoutError(FetchError):
    """The fetch did not complete within the configured timeout."""


class AccessDeniedError(FetchError):
    """The source refused access (HTTP 401/403 or equivalent)."""


class SourceNotConfiguredError(MonitorError):
    """No page or channel is configured for the monitor's name.

    Not retryable: the monitor goes straight to ERROR.
    """


class SourceUnreachableError(MonitorError):
    """The source no longer exists at its configured location."""


class SourceSuspendedError(MonitorError):
    """The source (typically a video channel) has been suspended."""


class SnapshotFormatError(ValueError):
    """A serialized snapshot document could not be parsed."""


class InvalidTransitionError(MonitorError):
    """A lifecycle operation was attempted from a state that does not allow it."""


class MonitorBusyError(InvalidTransitionError):
    """An execution was requested while the monitor is already executing."""


class MonitorNotFoundError(MonitorError):
    """No monitor exists with the requested id or GUID."""


class EventNotFoundError(MonitorError):
    """No event exists with the requested id."""


class CrawlAnomalyError(MonitorError):
    """The latest listing shrank abnormally compared to the stored snapshot."""

    def __init__(self, decrease: float) -> None:
        super().__init__(f"Item count decreased by {decrease:.1f}%")
        self.decrease = decrease


class DuplicateMonitorError(MonitorError):
    """A monitor with the same GUID already exists."""
