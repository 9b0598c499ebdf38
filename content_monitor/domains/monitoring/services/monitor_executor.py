"""Monitor execution: one fetch-compare-transition cycle per monitor."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from content_monitor.domains.monitoring.core.alert_rules import (
    classify_failure,
    detect_inactivity,
)
from content_monitor.domains.monitoring.core.comparison import (
    Anomaly,
    Changed,
    compare_snapshots,
)
from content_monitor.domains.monitoring.core.difference import difference_percent
from content_monitor.domains.monitoring.core.ordering import (
    merge_subscribed_videos,
    sort_publication_teasers,
)
from content_monitor.models.config import Config
from content_monitor.models.content_type import ContentType
from content_monitor.models.events import (
    AlertReason,
    ContentAlert,
    ContentChange,
    ContentFailure,
    ContentReview,
    EventType,
    ReviewReason,
)
from content_monitor.models.monitor import MonitorStatus
from content_monitor.models.snapshot import Snapshot
from content_monitor.services.protocols import FetchRequest, LoggingNotifier
from content_monitor.utils.errors import (
    CrawlAnomalyError,
    FetchError,
    FetchTimeoutError,
    InvalidTransitionError,
    MonitorBusyError,
    SnapshotFormatError,
    SourceNotConfiguredError,
    SourceSuspendedError,
    SourceUnreachableError,
)
from content_monitor.utils.progress import ProgressTracker
from content_monitor.utils.retry import retry_with_logging

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Iterable

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.models.events import ContentEvent
    from content_monitor.models.monitor import ContentMonitor
    from content_monitor.services.protocols import (
        ContentLookupProtocol,
        FetchResult,
        NotifierProtocol,
        TeaserFetcherProtocol,
    )

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CheckOutcome(StrEnum):
    """What a single check did to the monitor."""

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    ALERTED = "alerted"
    REVIEW = "review"
    RETRYING = "retrying"
    FAILED = "failed"
    SKIPPED = "skipped"


class MonitorLocks:
    """Registry of per-monitor locks.

    A check holds its monitor's lock for the whole cycle; event resolution
    and manual lifecycle operations take the same lock so that they never
    interleave with a check of the same monitor.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, monitor_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(monitor_id, threading.Lock())

    @contextmanager
    def hold(self, monitor_id: str, blocking: bool = False) -> Generator[None, None, None]:
        """Hold the monitor's lock.

        Raises MonitorBusyError when ``blocking`` is False and the lock is taken.
        """
        lock = self.lock_for(monitor_id)
        if not lock.acquire(blocking=blocking):
            raise MonitorBusyError(f"Monitor {monitor_id} is already being checked")
        try:
            yield
        finally:
            lock.release()


class MonitorExecutor:
    """Runs monitor checks and turns their results into events.

    Each check persists a new event before the monitor that references it,
    so a crash between the two writes leaves an orphan event rather than a
    monitor pointing at nothing.
    """

    def __init__(
        self,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        fetcher: TeaserFetcherProtocol,
        lookup_factory: Callable[[ContentMonitor], ContentLookupProtocol | None] | None = None,
        notifier: NotifierProtocol | None = None,
        config: Config | None = None,
        locks: MonitorLocks | None = None,
        clock: Callable[[], datetime] = _utc_now,
        retry_wait: float = 2,
    ) -> None:
        self.monitor_repo = monitor_repo
        self.event_repo = event_repo
        self.fetcher = fetcher
        self.lookup_factory = lookup_factory
        self.notifier = notifier or LoggingNotifier()
        self.config = config or Config()
        self.locks = locks or MonitorLocks()
        self.clock = clock
        self.retry_wait = retry_wait

    # -- batch -------------------------------------------------------------------------

    def check_monitors(
        self,
        monitor_ids: Iterable[str] | None = None,
        max_workers: int | None = None,
    ) -> dict[str, Any]:
        """Check several monitors concurrently, one worker per monitor.

        Defaults to every schedulable monitor. Returns summary stats.
        """
        if monitor_ids is None:
            ids = [monitor.id for monitor in self.monitor_repo.list_schedulable()]
        else:
            ids = list(dict.fromkeys(monitor_ids))
        tracker = ProgressTracker(total=len(ids))
        if not ids:
            return tracker.summary()

        workers = max_workers or self.config.max_workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="monitor") as pool:
            futures = {
                pool.submit(self.check_monitor, monitor_id): monitor_id for monitor_id in ids
            }
            for future in as_completed(futures):
                monitor_id = futures[future]
                try:
                    tracker.record_outcome(future.result().value)
                except Exception as exc:
                    logger.error("monitor_check_failed", monitor_id=monitor_id, error=str(exc))
                    tracker.record_failure(f"Monitor {monitor_id}: {exc}")
                tracker.log_progress(every_n=10)

        return tracker.summary()

    # -- single check ------------------------------------------------------------------

    def check_monitor(self, monitor_id: str) -> CheckOutcome:
        """Run one check cycle. A monitor already being checked is skipped."""
        try:
            with self.locks.hold(monitor_id):
                return self._check(monitor_id)
        except MonitorBusyError:
            logger.info("monitor_check_skipped", monitor_id=monitor_id, reason="busy")
            return CheckOutcome.SKIPPED

    def _check(self, monitor_id: str) -> CheckOutcome:
        monitor = self.monitor_repo.get(monitor_id)
        monitor.resume()
        started = self.clock()
        try:
            monitor.start_execution(started)
        except InvalidTransitionError as exc:
            logger.info(
                "monitor_check_skipped",
                guid=monitor.guid,
                status=monitor.status.value,
                reason=str(exc),
            )
            return CheckOutcome.SKIPPED
        self.monitor_repo.save(monitor)
        logger.info("monitor_check_started", guid=monitor.guid, retry=monitor.retry)
        try:
            return self._execute(monitor, started)
        except Exception as exc:
            self._abandon(monitor.id, exc)
            raise

    def _abandon(self, monitor_id: str, exc: Exception) -> None:
        """Release a monitor left EXECUTING by an error outside the fetch."""
        logger.exception("monitor_check_aborted", monitor_id=monitor_id, error=str(exc))
        monitor = self.monitor_repo.get(monitor_id)
        if monitor.status == MonitorStatus.EXECUTING:
            monitor.abandon_execution(str(exc) or type(exc).__name__)
            self.monitor_repo.save(monitor)

    def _execute(self, monitor: ContentMonitor, started: datetime) -> CheckOutcome:
        last_success = monitor.success_at
        try:
            result = self._fetch(monitor)
            latest = self.build_snapshot(monitor.content_type, result)
            current = monitor.current_snapshot()
            comparison = compare_snapshots(
                current,
                latest,
                lookup=self._lookup(monitor),
                check_decrease=monitor.content_type.checks_decrease,
                code=monitor.code,
            )
            if isinstance(comparison, Anomaly):
                raise CrawlAnomalyError(comparison.decrease)
        except SourceNotConfiguredError as exc:
            monitor.error_message = str(exc)
            return self._fail(monitor, exc)
        except SourceUnreachableError as exc:
            return self._source_alert(monitor, AlertReason.UNREACHABLE, exc)
        except SourceSuspendedError as exc:
            return self._source_alert(monitor, AlertReason.SUSPENDED, exc)
        except (FetchError, TimeoutError, SnapshotFormatError, CrawlAnomalyError) as exc:
            return self._retry(monitor, exc)
        except Exception as exc:
            logger.exception("monitor_check_error", guid=monitor.guid, error=str(exc))
            return self._retry(monitor, exc)

        finished = self.clock()
        monitor.finish_execution(started, finished, result.title)

        if isinstance(comparison, Changed):
            return self._changed(monitor, current, latest, comparison.diff, finished)

        if comparison.reconciled:
            logger.info(
                "items_reconciled", guid=monitor.guid, items=len(comparison.reconciled)
            )
        monitor.complete_unchanged(latest)

        if monitor.alerts:
            reason = detect_inactivity(
                latest, finished, self.config.inactivity_days, last_success
            )
            if reason is not None:
                alert = ContentAlert.for_monitor(monitor, reason)
                monitor.set_alert(alert)
                self._raise_event(monitor, alert)
                return CheckOutcome.ALERTED

        self.monitor_repo.save(monitor)
        logger.info("monitor_unchanged", guid=monitor.guid, items=len(latest.items))
        return CheckOutcome.UNCHANGED

    def _changed(
        self,
        monitor: ContentMonitor,
        current: Snapshot,
        latest: Snapshot,
        diff: Snapshot,
        finished: datetime,
    ) -> CheckOutcome:
        difference = difference_percent(current.format(), latest.format())
        if difference < monitor.min_difference:
            monitor.complete_unchanged(latest)
            self.monitor_repo.save(monitor)
            logger.info(
                "change_absorbed",
                guid=monitor.guid,
                difference=difference,
                min_difference=monitor.min_difference,
            )
            return CheckOutcome.UNCHANGED

        since = finished - timedelta(days=self.config.review_window_days)
        recent = self.event_repo.count_changes_since(monitor.id, since)
        if recent >= self.config.review_change_threshold:
            notes = (
                f"{recent} changes in {self.config.review_window_days} days; "
                f"latest adds {len(diff.items)} items"
            )
            monitor.complete_unchanged(latest)
            review = ContentReview.for_monitor(monitor, ReviewReason.UNRELIABLE, notes=notes)
            monitor.set_review(review)
            self._raise_event(monitor, review)
            return CheckOutcome.REVIEW

        change = ContentChange.for_monitor(monitor, latest, diff, difference)
        monitor.set_change(change)
        self._raise_event(monitor, change)
        logger.info(
            "monitor_changed",
            guid=monitor.guid,
            new_items=len(diff.items),
            difference=difference,
        )
        return CheckOutcome.CHANGED

    def _source_alert(
        self, monitor: ContentMonitor, reason: AlertReason, exc: Exception
    ) -> CheckOutcome:
        monitor.error_message = str(exc)
        alert = ContentAlert.for_monitor(monitor, reason)
        monitor.set_alert(alert)
        self._raise_event(monitor, alert)
        logger.warning("monitor_source_alert", guid=monitor.guid, reason=reason.value)
        return CheckOutcome.ALERTED

    def _retry(self, monitor: ContentMonitor, exc: BaseException) -> CheckOutcome:
        message = str(exc) or type(exc).__name__
        if not monitor.record_retry(message, self.config.max_retries):
            self.monitor_repo.save(monitor)
            logger.warning(
                "monitor_check_retrying",
                guid=monitor.guid,
                retry=monitor.retry,
                max_retries=self.config.max_retries,
                error=message,
            )
            return CheckOutcome.RETRYING
        return self._fail(monitor, exc)

    def _fail(self, monitor: ContentMonitor, exc: BaseException) -> CheckOutcome:
        failure = ContentFailure.for_monitor(monitor, classify_failure(exc))
        monitor.set_failure(failure)
        self._raise_event(monitor, failure)
        logger.error(
            "monitor_failed",
            guid=monitor.guid,
            reason=failure.reason.value,
            retry=monitor.retry,
            error=monitor.error_message,
        )
        return CheckOutcome.FAILED

    def _raise_event(self, monitor: ContentMonitor, event: ContentEvent) -> None:
        self.event_repo.save(event)
        self.monitor_repo.save(monitor)
        notify(self.notifier, event, monitor)

    # -- open changes ------------------------------------------------------------------

    def refresh_change(self, monitor_id: str) -> bool:
        """Re-fetch a CHANGED monitor and update its open change if the listing moved.

        Returns True when the change was updated.
        """
        with self.locks.hold(monitor_id):
            monitor = self.monitor_repo.get(monitor_id)
            if monitor.status != MonitorStatus.CHANGED or monitor.event_type != EventType.CHANGE:
                return False
            change = self.event_repo.get(EventType.CHANGE, monitor.event_id)
            if not isinstance(change, ContentChange) or change.is_closed:
                return False

            result = self._fetch(monitor)
            latest = self.build_snapshot(monitor.content_type, result)
            current = monitor.current_snapshot()
            comparison = compare_snapshots(
                current,
                latest,
                lookup=self._lookup(monitor),
                check_decrease=monitor.content_type.checks_decrease,
                code=monitor.code,
            )
            if not isinstance(comparison, Changed):
                return False
            if latest.to_json() == change.snapshot_after:
                return False

            change.refresh(
                latest, comparison.diff, difference_percent(current.format(), latest.format())
            )
            self.event_repo.save(change)
            logger.info(
                "change_refreshed",
                guid=monitor.guid,
                event_id=change.id,
                new_items=len(comparison.diff.items),
            )
            return True

    # -- fetching ----------------------------------------------------------------------

    @staticmethod
    def build_snapshot(content_type: ContentType, result: FetchResult) -> Snapshot:
        """Apply the content type's listing rules and build a snapshot."""
        teasers = list(result.teasers)
        if content_type is ContentType.PUBLICATION:
            teasers = sort_publication_teasers(teasers)
        if content_type is ContentType.VIDEO and result.subscribed:
            teasers = merge_subscribed_videos(teasers, result.subscribed)
        return Snapshot.from_teasers(content_type, teasers)

    def _lookup(self, monitor: ContentMonitor) -> ContentLookupProtocol | None:
        return self.lookup_factory(monitor) if self.lookup_factory else None

    def _fetch(self, monitor: ContentMonitor) -> FetchResult:
        request = FetchRequest.for_monitor(monitor, self.config.max_results)
        fetch = retry_with_logging(
            max_attempts=self.config.fetch_attempts,
            min_wait=self.retry_wait,
            max_wait=self.retry_wait * 5,
        )(self._fetch_with_timeout)
        return fetch(request)

    def _fetch_with_timeout(self, request: FetchRequest) -> FetchResult:
        """Run the fetcher in its own thread, abandoning it after the timeout.

        A fetcher that ignores the cancel signal keeps its thread until it
        returns, but its result is discarded.
        """
        cancel = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fetch-{request.code}")
        try:
            future = pool.submit(self.fetcher.fetch, request, cancel)
            try:
                return future.result(timeout=self.config.fetch_timeout)
            except TimeoutError as exc:
                if future.done():
                    raise
                cancel.set()
                future.cancel()
                msg = f"Fetch for {request.name} timed out after {self.config.fetch_timeout}s"
                raise FetchTimeoutError(msg) from exc
        finally:
            pool.shutdown(wait=False)


def notify(notifier: NotifierProtocol, event: ContentEvent, monitor: ContentMonitor) -> None:
    """Deliver an event notice; delivery problems never undo the persisted event."""
    try:
        notifier.notify(event.summary(monitor))
    except Exception as exc:
        logger.error(
            "event_notification_failed",
            event_type=event.event_type.value,
            event_id=event.id,
            error=str(exc),
        )
