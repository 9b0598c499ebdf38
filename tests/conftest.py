"""Shared test fixtures for the content monitoring system."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from content_monitor.domains.monitoring.repositories.event_repository import EventRepository
from content_monitor.domains.monitoring.repositories.monitor_repository import (
    MonitorRepository,
)
from content_monitor.domains.monitoring.repositories.stored_content_repository import (
    StoredContentRepository,
)
from content_monitor.models.config import Config
from content_monitor.models.content_type import ContentType
from content_monitor.models.monitor import ContentMonitor
from content_monitor.models.teaser import TeaserItem
from content_monitor.services.database import Database
from content_monitor.services.protocols import FetchResult

if TYPE_CHECKING:
    from pathlib import Path

    from content_monitor.models.events import EventNotice
    from content_monitor.services.protocols import FetchRequest


def make_teasers(
    count: int,
    start: int = 0,
    date: str | None = "2026-01-01 09:00:00",
    content_type: ContentType = ContentType.ROUNDUP,
) -> list[TeaserItem]:
    """Build ``count`` distinct teasers numbered from ``start``."""
    items = []
    for n in range(start, start + count):
        if content_type is ContentType.VIDEO:
            items.append(TeaserItem(title=f"Video {n}", date=date, video_id=f"vid{n}"))
        else:
            items.append(
                TeaserItem(title=f"Article {n}", date=date, url=f"https://example.com/a/{n}")
            )
    return items


class FakeFetcher:
    """Fetcher returning scripted results.

    Each script entry is a FetchResult, a list of teasers, an exception to
    raise, or the string ``"hang"`` to block until cancelled.
    """

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.requests: list[FetchRequest] = []
        self.cancelled = threading.Event()

    def push(self, *entries: Any) -> None:
        self.script.extend(entries)

    def fetch(self, request: FetchRequest, cancel: threading.Event) -> FetchResult:
        self.requests.append(request)
        entry = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if entry == "hang":
            cancel.wait(timeout=5)
            self.cancelled.set()
            raise TimeoutError("cancelled")
        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, FetchResult):
            return entry
        return FetchResult(teasers=list(entry), title="Listing")


class RecordingNotifier:
    """Notifier that keeps every notice it is given."""

    def __init__(self) -> None:
        self.notices: list[EventNotice] = []

    def notify(self, notice: EventNotice) -> None:
        self.notices.append(notice)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Provide a temporary database file path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def db(tmp_db_path: str) -> Database:
    """Provide an initialized temporary database."""
    database = Database(db_path=tmp_db_path)
    database.init_db()
    return database


@pytest.fixture
def config(tmp_db_path: str) -> Config:
    """Configuration with short timeouts and a small retry limit."""
    return Config(
        database_path=tmp_db_path,
        max_retries=2,
        fetch_timeout=2.0,
        fetch_attempts=1,
        max_workers=4,
        inactivity_days=30,
        review_change_threshold=3,
        review_window_days=7,
    )


@pytest.fixture
def monitor_repo(db: Database) -> MonitorRepository:
    return MonitorRepository(db)


@pytest.fixture
def event_repo(db: Database) -> EventRepository:
    return EventRepository(db)


@pytest.fixture
def stored_repo(db: Database) -> StoredContentRepository:
    return StoredContentRepository(db)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def waiting_monitor() -> ContentMonitor:
    """A configured roundup monitor in WAITING with an empty snapshot."""
    monitor = ContentMonitor.create(
        "ACME",
        ContentType.ROUNDUP,
        "blog",
        organisation="Acme Corp",
        url="https://acme.example/blog.json",
    )
    monitor.configure(interval=30)
    return monitor


@pytest.fixture
def saved_monitor(
    monitor_repo: MonitorRepository, waiting_monitor: ContentMonitor
) -> ContentMonitor:
    """The waiting monitor, persisted."""
    monitor_repo.save(waiting_monitor)
    return waiting_monitor


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
