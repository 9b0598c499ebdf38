"""Service protocols defining interfaces for dependency injection."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import structlog

from content_monitor.models.content_type import ContentType

if TYPE_CHECKING:
    from content_monitor.models.events import EventNotice
    from content_monitor.models.monitor import ContentMonitor
    from content_monitor.models.teaser import StoredContent, TeaserItem

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    """What a fetcher needs to know about the source it is asked to read."""

    code: str
    content_type: ContentType
    name: str
    url: str = ""
    channel_id: str = ""
    sites: tuple[str, ...] = ()
    max_results: int | None = None
    keywords: tuple[str, ...] = ()

    @classmethod
    def for_monitor(
        cls, monitor: ContentMonitor, default_max_results: int | None = None
    ) -> FetchRequest:
        return cls(
            code=monitor.code,
            content_type=monitor.content_type,
            name=monitor.name,
            url=monitor.url,
            channel_id=monitor.channel_id,
            sites=tuple(monitor.sites),
            max_results=monitor.max_results or default_max_results,
            keywords=tuple(monitor.keywords),
        )


@dataclass(frozen=True)
class FetchResult:
    """Normalized teaser listing returned by a fetcher."""

    teasers: list[TeaserItem] = field(default_factory=list)
    title: str = ""
    url: str = ""
    # Videos the channel owner subscribed us to, which may be unlisted
    subscribed: list[TeaserItem] = field(default_factory=list)


class TeaserFetcherProtocol(Protocol):
    """Protocol for services that read a teaser listing from a source.

    Implementations should check ``cancel`` between blocking steps and stop
    early once it is set; the caller has already given up on the result.
    Raises SourceNotConfiguredError, SourceUnreachableError,
    SourceSuspendedError or a FetchError subclass.
    """

    def fetch(self, request: FetchRequest, cancel: threading.Event) -> FetchResult: ...


class ContentLookupProtocol(Protocol):
    """Protocol for finding previously stored content of one owner and type."""

    def by_title(self, title: str) -> StoredContent | None: ...

    def by_identifier(self, identifier: str) -> StoredContent | None: ...


class NotifierProtocol(Protocol):
    """Protocol for delivering new-event notices to people."""

    def notify(self, notice: EventNotice) -> None: ...


class LoggingNotifier:
    """Notifier that records each notice in the structured log."""

    def notify(self, notice: EventNotice) -> None:
        logger.info(
            "event_notice",
            subject=notice.subject,
            event_type=notice.event_type.value,
            event_id=notice.event_id,
            organisation=notice.organisation,
            guid=notice.guid,
            status=notice.status,
            reason=notice.reason,
            timestamp=notice.timestamp.isoformat(),
        )
