"""Human actions on monitor events: resolving them and raising them by hand."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from content_monitor.domains.monitoring.services.monitor_executor import MonitorLocks, notify
from content_monitor.models.events import (
    AlertReason,
    ContentAlert,
    ContentReview,
    ReviewReason,
    parse_status,
)
from content_monitor.services.protocols import LoggingNotifier

if TYPE_CHECKING:
    from enum import StrEnum

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.models.events import ContentEvent, EventType
    from content_monitor.services.protocols import NotifierProtocol

logger = structlog.get_logger(__name__)


class EventResolver:
    """Applies status updates to events and releases the monitors they hold."""

    def __init__(
        self,
        monitor_repo: MonitorRepository,
        event_repo: EventRepository,
        locks: MonitorLocks | None = None,
        notifier: NotifierProtocol | None = None,
    ) -> None:
        self.monitor_repo = monitor_repo
        self.event_repo = event_repo
        self.locks = locks or MonitorLocks()
        self.notifier = notifier or LoggingNotifier()

    def resolve(
        self,
        event_type: EventType | str,
        event_id: str,
        status: StrEnum | str,
        username: str,
        notes: str | None = None,
    ) -> ContentEvent:
        """Set an event's status; a closing status releases its monitor.

        The monitor only moves to RESUMING when it still references this
        event. Resolving a stale event updates the event alone.
        """
        event = self.event_repo.get(event_type, event_id)
        value = parse_status(event.event_type, status) if isinstance(status, str) else status

        with self.locks.hold(event.monitor_id, blocking=True):
            event.set_status(value, username, notes)
            self.event_repo.save(event)
            if not event.is_closed:
                logger.info(
                    "event_updated",
                    event_type=event.event_type.value,
                    event_id=event.id,
                    status=event.status_value.value,
                )
                return event

            monitor = self.monitor_repo.get(event.monitor_id)
            if monitor.clear_event(event):
                self.monitor_repo.save(monitor)
                logger.info(
                    "monitor_event_cleared",
                    guid=monitor.guid,
                    event_type=event.event_type.value,
                    event_id=event.id,
                    status=monitor.status.value,
                )
            else:
                logger.info(
                    "stale_event_resolved",
                    guid=monitor.guid,
                    event_type=event.event_type.value,
                    event_id=event.id,
                    monitor_event_id=monitor.event_id,
                )
        return event

    def raise_alert(
        self,
        monitor_id: str,
        username: str,
        reason: AlertReason = AlertReason.MANUAL,
        notes: str = "",
    ) -> ContentAlert | None:
        """Raise an alert by hand. Returns None if the monitor is already alerting."""
        with self.locks.hold(monitor_id, blocking=True):
            monitor = self.monitor_repo.get(monitor_id)
            alert = ContentAlert.for_monitor(monitor, reason)
            alert.notes = notes
            alert.updated_by = username
            if not monitor.set_alert(alert):
                return None
            self.event_repo.save(alert)
            self.monitor_repo.save(monitor)
            notify(self.notifier, alert, monitor)
            logger.info("alert_raised", guid=monitor.guid, reason=reason.value, by=username)
            return alert

    def raise_review(
        self,
        monitor_id: str,
        username: str,
        reason: ReviewReason = ReviewReason.UNDEFINED,
        notes: str = "",
    ) -> ContentReview | None:
        """Flag a monitor for review by hand. Returns None if it is already in review."""
        with self.locks.hold(monitor_id, blocking=True):
            monitor = self.monitor_repo.get(monitor_id)
            review = ContentReview.for_monitor(monitor, reason, notes=notes)
            review.updated_by = username
            if not monitor.set_review(review):
                return None
            self.event_repo.save(review)
            self.monitor_repo.save(monitor)
            notify(self.notifier, review, monitor)
            logger.info("review_raised", guid=monitor.guid, reason=reason.value, by=username)
            return review

    def open_event(self, monitor_id: str) -> ContentEvent | None:
        """The event the monitor currently references, if any."""
        monitor = self.monitor_repo.get(monitor_id)
        if monitor.event_type is None or not monitor.event_id:
            return None
        return self.event_repo.find(monitor.event_type, monitor.event_id)

