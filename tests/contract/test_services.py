"""Contract tests for event resolution, monitor administration and the HTTP fetcher.

Real Database for persistence; the HTTP session is a MagicMock.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
import requests

from content_monitor.domains.monitoring.services.event_resolver import EventResolver
from content_monitor.domains.monitoring.services.monitor_admin import MonitorAdmin
from content_monitor.domains.monitoring.services.monitor_executor import MonitorLocks
from content_monitor.models.content_type import ContentType
from content_monitor.models.events import (
    AlertReason,
    AlertStatus,
    ChangeStatus,
    ContentChange,
    ContentFailure,
    EventType,
    FailureReason,
    ReviewReason,
)
from content_monitor.models.monitor import MonitorStatus
from content_monitor.models.snapshot import Snapshot
from content_monitor.models.teaser import TeaserItem
from content_monitor.services.protocols import FetchRequest
from content_monitor.services.teaser_fetcher import (
    JsonTeaserFetcher,
    filter_teasers,
    parse_teaser,
)
from content_monitor.utils.errors import (
    AccessDeniedError,
    DuplicateMonitorError,
    EventNotFoundError,
    FetchError,
    FetchTimeoutError,
    InvalidTransitionError,
    MonitorNotFoundError,
    SourceNotConfiguredError,
    SourceSuspendedError,
    SourceUnreachableError,
)

if TYPE_CHECKING:
    from conftest import RecordingNotifier

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.models.monitor import ContentMonitor

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_change(
    monitor_repo: MonitorRepository, event_repo: EventRepository, monitor: ContentMonitor
) -> ContentChange:
    """Put the monitor in CHANGED with a two-item change, as a check would."""
    latest = Snapshot(
        content_type=ContentType.ROUNDUP,
        items=(TeaserItem(title="a", url="u1"), TeaserItem(title="b", url="u2")),
    )
    monitor.start_execution()
    change = ContentChange.for_monitor(monitor, latest, latest, 100)
    monitor.set_change(change)
    event_repo.save(change)
    monitor_repo.save(monitor)
    return change


@pytest.fixture
def resolver(
    monitor_repo: MonitorRepository, event_repo: EventRepository, notifier: RecordingNotifier
) -> EventResolver:
    return EventResolver(monitor_repo, event_repo, notifier=notifier)


# ---------------------------------------------------------------------------
# EventResolver
# ---------------------------------------------------------------------------


class TestEventResolver:
    def test_resolving_open_change_releases_monitor(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        change = _open_change(monitor_repo, event_repo, saved_monitor)

        resolved = resolver.resolve(EventType.CHANGE, change.id, "resolved", "jane", notes="ok")

        assert resolved.status_value == ChangeStatus.RESOLVED
        stored = event_repo.get(EventType.CHANGE, change.id)
        assert stored.updated_by == "jane"
        assert stored.notes == "ok"
        monitor = monitor_repo.get(saved_monitor.id)
        assert monitor.status == MonitorStatus.RESUMING
        assert monitor.event_id == ""
        assert monitor.current_snapshot().count == 2

    def test_pending_status_keeps_monitor_held(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        change = _open_change(monitor_repo, event_repo, saved_monitor)
        resolver.resolve(EventType.CHANGE, change.id, ChangeStatus.PENDING, "jane")
        assert monitor_repo.get(saved_monitor.id).status == MonitorStatus.CHANGED

    def test_stale_event_leaves_monitor_alone(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        change = _open_change(monitor_repo, event_repo, saved_monitor)
        alert = resolver.raise_alert(saved_monitor.id, "ops", notes="site redesign")
        assert alert is not None
        assert alert.change

        resolver.resolve(EventType.CHANGE, change.id, "SKIPPED", "jane")

        monitor = monitor_repo.get(saved_monitor.id)
        assert monitor.status == MonitorStatus.ALERT
        assert monitor.event_id == alert.id
        assert event_repo.get(EventType.CHANGE, change.id).is_closed

    def test_resolving_failure_resets_retry(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        saved_monitor.start_execution()
        saved_monitor.record_retry("HTTP 500", max_retries=0)
        failure = ContentFailure.for_monitor(saved_monitor, FailureReason.INTERMITTENT)
        saved_monitor.set_failure(failure)
        event_repo.save(failure)
        monitor_repo.save(saved_monitor)

        resolver.resolve("FAILURE", failure.id, "RESOLVED", "jane")

        monitor = monitor_repo.get(saved_monitor.id)
        assert monitor.status == MonitorStatus.RESUMING
        assert monitor.retry == 0
        assert event_repo.get(EventType.FAILURE, failure.id).review_date is not None

    def test_unknown_event(self, resolver: EventResolver) -> None:
        with pytest.raises(EventNotFoundError):
            resolver.resolve(EventType.ALERT, "nope", "RESOLVED", "jane")

    def test_invalid_status(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        change = _open_change(monitor_repo, event_repo, saved_monitor)
        with pytest.raises(ValueError):
            resolver.resolve(EventType.CHANGE, change.id, "DONE", "jane")

    def test_raise_alert_is_idempotent(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        notifier: RecordingNotifier,
        saved_monitor: ContentMonitor,
    ) -> None:
        first = resolver.raise_alert(saved_monitor.id, "ops")
        assert first is not None
        assert first.reason == AlertReason.MANUAL
        assert first.updated_by == "ops"
        assert resolver.raise_alert(saved_monitor.id, "ops") is None
        assert monitor_repo.get(saved_monitor.id).event_id == first.id
        assert len(notifier.notices) == 1

    def test_raise_review(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        review = resolver.raise_review(
            saved_monitor.id, "ops", reason=ReviewReason.BLOCKED, notes="captcha"
        )
        assert review is not None
        assert review.notes == "captcha"
        monitor = monitor_repo.get(saved_monitor.id)
        assert monitor.status == MonitorStatus.REVIEW
        assert resolver.open_event(saved_monitor.id) == review

    def test_alert_then_resolve_round_trip(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        alert = resolver.raise_alert(saved_monitor.id, "ops")
        assert alert is not None
        resolver.resolve(EventType.ALERT, alert.id, AlertStatus.RESOLVED, "jane")
        assert monitor_repo.get(saved_monitor.id).status == MonitorStatus.RESUMING
        assert resolver.open_event(saved_monitor.id) is None

    def test_raise_alert_on_disabled_monitor(
        self,
        resolver: EventResolver,
        monitor_repo: MonitorRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        saved_monitor.disable()
        monitor_repo.save(saved_monitor)
        with pytest.raises(InvalidTransitionError, match="disabled"):
            resolver.raise_alert(saved_monitor.id, "ops")


# ---------------------------------------------------------------------------
# MonitorAdmin
# ---------------------------------------------------------------------------


class TestMonitorAdmin:
    def test_add_monitor(self, monitor_repo: MonitorRepository) -> None:
        admin = MonitorAdmin(monitor_repo)
        monitor = admin.add_monitor(
            "ACME",
            ContentType.EBOOK,
            "library",
            organisation="Acme Corp",
            url="https://acme.example/ebooks.json",
            interval=120,
            keywords="cloud",
        )
        loaded = monitor_repo.get_by_guid("EBK-ACME-library")
        assert loaded.id == monitor.id
        assert loaded.status == MonitorStatus.WAITING
        assert loaded.interval == 120
        assert loaded.keywords == ["cloud"]

    def test_duplicate_monitor(
        self, monitor_repo: MonitorRepository, saved_monitor: ContentMonitor
    ) -> None:
        admin = MonitorAdmin(monitor_repo)
        with pytest.raises(DuplicateMonitorError):
            admin.add_monitor("ACME", ContentType.ROUNDUP, "blog")

    def test_restart_drops_open_event(
        self,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        saved_monitor: ContentMonitor,
    ) -> None:
        _open_change(monitor_repo, event_repo, saved_monitor)
        monitor = MonitorAdmin(monitor_repo).restart(saved_monitor.id)
        assert monitor.status == MonitorStatus.RESUMING
        assert monitor_repo.get(saved_monitor.id).event_type is None

    def test_disable_and_enable(
        self, monitor_repo: MonitorRepository, saved_monitor: ContentMonitor
    ) -> None:
        admin = MonitorAdmin(monitor_repo)
        admin.disable(saved_monitor.id)
        assert monitor_repo.get(saved_monitor.id).status == MonitorStatus.DISABLED
        admin.enable(saved_monitor.id)
        assert monitor_repo.get(saved_monitor.id).status == MonitorStatus.WAITING

    def test_missing_monitor(self, monitor_repo: MonitorRepository) -> None:
        with pytest.raises(MonitorNotFoundError):
            MonitorAdmin(monitor_repo).disable("nope")

    def test_action_waits_for_running_check(
        self, monitor_repo: MonitorRepository, saved_monitor: ContentMonitor
    ) -> None:
        locks = MonitorLocks()
        admin = MonitorAdmin(monitor_repo, locks=locks)
        done = threading.Event()

        def disable() -> None:
            admin.disable(saved_monitor.id)
            done.set()

        with locks.hold(saved_monitor.id):
            worker = threading.Thread(target=disable)
            worker.start()
            assert not done.wait(timeout=0.2)
        worker.join(timeout=2)
        assert done.is_set()
        assert monitor_repo.get(saved_monitor.id).status == MonitorStatus.DISABLED


# ---------------------------------------------------------------------------
# JsonTeaserFetcher
# ---------------------------------------------------------------------------


def _request(**overrides: Any) -> FetchRequest:
    fields: dict[str, Any] = {
        "code": "ACME",
        "content_type": ContentType.ROUNDUP,
        "name": "blog",
        "url": "https://acme.example/blog.json",
    }
    fields.update(overrides)
    return FetchRequest(**fields)


def _session(status_code: int = 200, payload: Any = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else []
    session = MagicMock()
    session.get.return_value = response
    return session


class TestJsonTeaserFetcher:
    def test_parses_listing_object(self) -> None:
        session = _session(
            payload={
                "title": "Acme Blog",
                "items": [
                    {"title": "First", "url": "https://a/1", "published_date": "2026-01-02"},
                    {"title": "Second", "url": "https://a/2", "date": "2026-01-01 10:00:00"},
                    {"url": "https://a/untitled"},
                ],
            }
        )
        result = JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())

        assert result.title == "Acme Blog"
        assert [item.title for item in result.teasers] == ["First", "Second"]
        assert result.teasers[0].date == "2026-01-02"
        session.get.assert_called_once_with("https://acme.example/blog.json", timeout=30)

    def test_parses_bare_array(self) -> None:
        session = _session(payload=[{"title": "Clip", "video_id": "v1"}])
        result = JsonTeaserFetcher(session=session).fetch(
            _request(content_type=ContentType.VIDEO), threading.Event()
        )
        assert result.teasers[0].video_id == "v1"
        assert result.title == ""

    def test_applies_keywords_and_cap(self) -> None:
        payload = [{"title": f"Cloud news {n}", "url": f"u{n}"} for n in range(5)]
        payload.append({"title": "Other", "url": "x"})
        session = _session(payload=payload)
        result = JsonTeaserFetcher(session=session).fetch(
            _request(keywords=("CLOUD",), max_results=3), threading.Event()
        )
        assert [item.url for item in result.teasers] == ["u0", "u1", "u2"]

    def test_missing_url(self) -> None:
        session = _session()
        with pytest.raises(SourceNotConfiguredError):
            JsonTeaserFetcher(session=session).fetch(_request(url=""), threading.Event())
        session.get.assert_not_called()

    def test_cancelled_before_request(self) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(FetchTimeoutError):
            JsonTeaserFetcher(session=_session()).fetch(_request(), cancel)

    @pytest.mark.parametrize(
        ("status_code", "error"),
        [
            (401, AccessDeniedError),
            (403, AccessDeniedError),
            (404, SourceUnreachableError),
            (410, SourceUnreachableError),
            (500, FetchError),
        ],
    )
    def test_http_errors(self, status_code: int, error: type[Exception]) -> None:
        with pytest.raises(error):
            JsonTeaserFetcher(session=_session(status_code)).fetch(_request(), threading.Event())

    def test_suspended_source(self) -> None:
        session = _session(payload={"suspended": True})
        with pytest.raises(SourceSuspendedError):
            JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())

    def test_request_timeout(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(FetchTimeoutError):
            JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())

    def test_connection_error(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FetchError):
            JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())

    def test_invalid_json(self) -> None:
        session = _session()
        session.get.return_value.json.side_effect = ValueError("no json")
        with pytest.raises(FetchError, match="not valid JSON"):
            JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())

    def test_object_without_items(self) -> None:
        session = _session(payload={"title": "Blog", "items": "none"})
        with pytest.raises(FetchError, match="no item array"):
            JsonTeaserFetcher(session=session).fetch(_request(), threading.Event())


class TestTeaserHelpers:
    def test_parse_teaser_prefers_first_date_key(self) -> None:
        item = parse_teaser({"title": "Summit", "start_date": "2026-06-01", "url": "u"})
        assert item.date == "2026-06-01"
        assert item.video_id is None

    def test_filter_without_rules(self) -> None:
        teasers = [TeaserItem(title="a"), TeaserItem(title="b")]
        assert filter_teasers(teasers) == teasers
