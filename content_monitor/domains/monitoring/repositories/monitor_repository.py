"""Monitor repository for database CRUD operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from content_monitor.models.monitor import ContentMonitor
from content_monitor.utils.errors import MonitorNotFoundError

if TYPE_CHECKING:
    from content_monitor.models.monitor import MonitorStatus
    from content_monitor.services.database import Database

logger = structlog.get_logger(__name__)


class MonitorRepository:
    """Repository for content monitor data access."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def save(self, monitor: ContentMonitor) -> None:
        """Insert or update a monitor by id."""
        record = monitor.to_record()
        record["guid"] = monitor.guid
        self.db.upsert("monitors", record)
        logger.debug("monitor_saved", guid=monitor.guid, status=monitor.status.value)

    def find(self, monitor_id: str) -> ContentMonitor | None:
        row = self.db.fetchone("SELECT * FROM monitors WHERE id = ?", (monitor_id,))
        return ContentMonitor.from_record(dict(row)) if row else None

    def get(self, monitor_id: str) -> ContentMonitor:
        """Get a monitor by id. Raises MonitorNotFoundError if missing."""
        monitor = self.find(monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(f"Monitor not found: {monitor_id}")
        return monitor

    def get_by_guid(self, guid: str) -> ContentMonitor:
        """Get a monitor by GUID. Raises MonitorNotFoundError if missing."""
        row = self.db.fetchone("SELECT * FROM monitors WHERE guid = ?", (guid,))
        if row is None:
            raise MonitorNotFoundError(f"Monitor not found: {guid}")
        return ContentMonitor.from_record(dict(row))

    def resolve(self, key: str) -> ContentMonitor:
        """Get a monitor by id or, failing that, by GUID."""
        monitor = self.find(key)
        return monitor if monitor is not None else self.get_by_guid(key)

    def list_monitors(
        self,
        status: MonitorStatus | None = None,
        code: str | None = None,
        site: str | None = None,
    ) -> list[ContentMonitor]:
        """List monitors, optionally filtered by status, organisation code and site."""
        sql = "SELECT * FROM monitors WHERE 1 = 1"
        params: list[str] = []
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        if code:
            sql += " AND code = ?"
            params.append(code)
        sql += " ORDER BY guid"
        rows = self.db.fetchall(sql, tuple(params))
        monitors = [ContentMonitor.from_record(dict(row)) for row in rows]
        if site:
            monitors = [monitor for monitor in monitors if monitor.has_site(site)]
        return monitors

    def list_schedulable(self) -> list[ContentMonitor]:
        """Monitors a scheduler may pick up now, least recently executed first."""
        monitors = [monitor for monitor in self.list_monitors() if monitor.is_schedulable]
        return sorted(monitors, key=lambda m: (m.executed_at is not None, m.executed_at or 0))
