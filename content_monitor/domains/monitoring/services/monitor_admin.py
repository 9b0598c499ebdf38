"""Operator actions on monitors outside the check cycle."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

import structlog

from content_monitor.domains.monitoring.services.monitor_executor import MonitorLocks
from content_monitor.models.monitor import ContentMonitor
from content_monitor.utils.errors import DuplicateMonitorError

if TYPE_CHECKING:
    from collections.abc import Callable

    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.models.content_type import ContentType


logger = structlog.get_logger(__name__)


class MonitorAdmin:
    """Creates monitors and applies restart, disable and enable.

    Each action waits for the monitor's lock, so an action issued during a
    check takes effect once that check has finished.
    """

    def __init__(self, monitor_repo: MonitorRepository, locks: MonitorLocks | None = None) -> None:
        self.monitor_repo = monitor_repo
        self.locks = locks or MonitorLocks()

    def add_monitor(
        self,
        code: str,
        content_type: ContentType,
        name: str,
        organisation: str = "",
        url: str = "",
        channel_id: str = "",
        **config: Any,
    ) -> ContentMonitor:
        """Create a monitor and attach its configuration, leaving it WAITING."""
        monitor = ContentMonitor.create(
            code, content_type, name, organisation, url=url, channel_id=channel_id
        )
        monitor.configure(**config)
        try:
            self.monitor_repo.save(monitor)
        except sqlite3.IntegrityError as exc:
            raise DuplicateMonitorError(f"Monitor already exists: {monitor.guid}") from exc
        logger.info("monitor_added", guid=monitor.guid, status=monitor.status.value)
        return monitor

    def restart(self, monitor_id: str) -> ContentMonitor:
        """Force RESUMING, dropping the open event reference and the retry count."""
        return self._apply(monitor_id, "monitor_restarted", ContentMonitor.restart)

    def disable(self, monitor_id: str) -> ContentMonitor:
        return self._apply(monitor_id, "monitor_disabled", ContentMonitor.disable)

    def enable(self, monitor_id: str) -> ContentMonitor:
        return self._apply(monitor_id, "monitor_enabled", ContentMonitor.enable)

    def _apply(
        self,
        monitor_id: str,
        log_event: str,
        action: Callable[[ContentMonitor], None],
    ) -> ContentMonitor:
        with self.locks.hold(monitor_id, blocking=True):
            monitor = self.monitor_repo.get(monitor_id)
            previous = monitor.status
            action(monitor)
            self.monitor_repo.save(monitor)
        logger.info(
            log_event,
            guid=monitor.guid,
            previous=previous.value,
            status=monitor.status.value,
        )
        return monitor
