"""Event repository for change, alert, review and failure records."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from content_monitor.models.events import ContentEvent, EventType, event_from_record
from content_monitor.services.database import EVENT_TABLES
from content_monitor.utils.errors import EventNotFoundError

if TYPE_CHECKING:
    from content_monitor.services.database import Database

logger = structlog.get_logger(__name__)

_CLOSED = ("RESOLVED", "SKIPPED")


def _table(event_type: EventType | str) -> str:
    return EVENT_TABLES[EventType(event_type).value]


class EventRepository:
    """Repository for monitor event data access."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def save(self, event: ContentEvent) -> None:
        """Insert or update an event in the table for its kind."""
        self.db.upsert(_table(event.event_type), event.to_record())
        logger.debug(
            "event_saved",
            event_type=event.event_type.value,
            event_id=event.id,
            status=event.status_value.value,
        )

    def find(self, event_type: EventType | str, event_id: str) -> ContentEvent | None:
        row = self.db.fetchone(f"SELECT * FROM {_table(event_type)} WHERE id = ?", (event_id,))
        return event_from_record(event_type, dict(row)) if row else None

    def get(self, event_type: EventType | str, event_id: str) -> ContentEvent:
        """Get an event. Raises EventNotFoundError if missing."""
        event = self.find(event_type, event_id)
        if event is None:
            raise EventNotFoundError(f"{EventType(event_type).value} event not found: {event_id}")
        return event

    def find_any(self, event_id: str) -> ContentEvent:
        """Get an event of any kind by id. Raises EventNotFoundError if missing."""
        for event_type in EventType:
            event = self.find(event_type, event_id)
            if event is not None:
                return event
        raise EventNotFoundError(f"Event not found: {event_id}")

    def list_for_monitor(
        self, monitor_id: str, event_type: EventType | None = None
    ) -> list[ContentEvent]:
        """Events raised for a monitor, newest first."""
        types = [event_type] if event_type else list(EventType)
        events: list[ContentEvent] = []
        for kind in types:
            rows = self.db.fetchall(
                f"SELECT * FROM {_table(kind)} WHERE monitor_id = ?", (monitor_id,)
            )
            events.extend(event_from_record(kind, dict(row)) for row in rows)
        return sorted(events, key=lambda event: event.created_at, reverse=True)

    def list_all(self, event_type: EventType | None = None) -> list[ContentEvent]:
        """All events, newest first."""
        types = [event_type] if event_type else list(EventType)
        events: list[ContentEvent] = []
        for kind in types:
            rows = self.db.fetchall(f"SELECT * FROM {_table(kind)}")
            events.extend(event_from_record(kind, dict(row)) for row in rows)
        return sorted(events, key=lambda event: event.created_at, reverse=True)

    def list_open(self, event_type: EventType | None = None) -> list[ContentEvent]:
        """Events still awaiting action, oldest first."""
        types = [event_type] if event_type else list(EventType)
        events: list[ContentEvent] = []
        for kind in types:
            rows = self.db.fetchall(
                f"SELECT * FROM {_table(kind)} WHERE status NOT IN (?, ?)", _CLOSED
            )
            events.extend(event_from_record(kind, dict(row)) for row in rows)
        return sorted(events, key=lambda event: event.created_at)

    def count_changes_since(self, monitor_id: str, since: datetime) -> int:
        """Number of change events raised for a monitor at or after ``since``."""
        rows = self.db.fetchall(
            f"SELECT created_at FROM {_table(EventType.CHANGE)} WHERE monitor_id = ?",
            (monitor_id,),
        )
        return sum(1 for row in rows if datetime.fromisoformat(row["created_at"]) >= since)
