"""Monitor events: the durable records that ask a human to act on a monitor."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from content_monitor.models.monitor import ContentMonitor
    from content_monitor.models.snapshot import Snapshot


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class EventType(StrEnum):
    """Kind of event a monitor can reference as its open event."""

    CHANGE = "CHANGE"
    ALERT = "ALERT"
    REVIEW = "REVIEW"
    FAILURE = "FAILURE"


class _EventStatus(StrEnum):
    @property
    def closed(self) -> bool:
        """Whether this status ends the event and releases the monitor."""
        return self.value in ("RESOLVED", "SKIPPED")


class ChangeStatus(_EventStatus):
    NEW = "NEW"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    SKIPPED = "SKIPPED"


class AlertStatus(_EventStatus):
    NEW = "NEW"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    SKIPPED = "SKIPPED"


class ReviewStatus(_EventStatus):
    NEW = "NEW"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    SKIPPED = "SKIPPED"


class FailureStatus(_EventStatus):
    NEW = "NEW"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    SKIPPED = "SKIPPED"


class AlertReason(StrEnum):
    INACTIVITY = "INACTIVITY"  # no new items for a long period
    SUSPENDED = "SUSPENDED"  # channel or account suspended
    UNREACHABLE = "UNREACHABLE"  # page or channel no longer exists
    MANUAL = "MANUAL"  # raised by an operator


class ReviewReason(StrEnum):
    UNRELIABLE = "UNRELIABLE"
    BROKEN = "BROKEN"
    BLOCKED = "BLOCKED"
    VERIFICATION = "VERIFICATION"
    UNDEFINED = "UNDEFINED"


class FailureReason(StrEnum):
    UNDEFINED = "UNDEFINED"
    INTERMITTENT = "INTERMITTENT"
    ACCESS_DENIED = "ACCESS_DENIED"
    VERIFICATION = "VERIFICATION"
    DEFECTIVE = "DEFECTIVE"
    HANGING = "HANGING"


class EventNotice(BaseModel):
    """Fields an external notifier needs to summarise a new event."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    event_id: str
    organisation: str
    guid: str
    status: str
    reason: str
    timestamp: datetime

    @property
    def subject(self) -> str:
        return f"Monitor {self.reason}: {self.guid}"


class ContentEvent(BaseModel):
    """Fields shared by all event kinds.

    An event is immutable once created apart from its status, notes and the
    stamp of who last updated it; ``set_status`` is the update path.
    """

    model_config = ConfigDict(validate_assignment=True)

    event_type: ClassVar[EventType]
    MUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"status", "notes", "updated_at", "updated_by"}
    )

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime | None = None
    updated_by: str = ""
    code: str
    organisation: str = ""
    monitor_id: str
    notes: str = ""

    def __setattr__(self, name: str, value: Any) -> None:
        if name not in self.MUTABLE_FIELDS:
            msg = f"{type(self).__name__}.{name} cannot be changed after creation"
            raise AttributeError(msg)
        super().__setattr__(name, value)

    @field_validator("code", "monitor_id")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        """Owner code and monitor id must be non-empty."""
        if not value.strip():
            msg = "code and monitor_id must not be empty"
            raise ValueError(msg)
        return value

    @property
    def status_value(self) -> _EventStatus:
        return self.status  # type: ignore[attr-defined, no-any-return]

    @property
    def is_closed(self) -> bool:
        return self.status_value.closed

    @property
    def reason_value(self) -> str:
        reason = getattr(self, "reason", None)
        return str(reason) if reason is not None else self.event_type.value

    def set_status(self, status: Any, username: str, notes: str | None = None) -> None:
        """Move the event to a new status, stamping who made the change."""
        self.status = status
        self.updated_at = _utc_now()
        self.updated_by = username
        if notes is not None:
            self.notes = notes

    def summary(self, monitor: ContentMonitor) -> EventNotice:
        return EventNotice(
            event_type=self.event_type,
            event_id=self.id,
            organisation=monitor.organisation or self.organisation,
            guid=monitor.guid,
            status=monitor.status.value,
            reason=self.reason_value,
            timestamp=self.updated_at or self.created_at,
        )

    def to_record(self) -> dict[str, Any]:
        """Flat record with enums as strings and ISO-8601 datetimes."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ContentEvent:
        fields = {name: value for name, value in record.items() if name in cls.model_fields}
        return cls.model_validate(fields)


class ContentChange(ContentEvent):
    """A material difference between the stored and the latest listing."""

    event_type: ClassVar[EventType] = EventType.CHANGE
    MUTABLE_FIELDS: ClassVar[frozenset[str]] = ContentEvent.MUTABLE_FIELDS | {
        "snapshot_after",
        "snapshot_diff",
        "difference",
    }

    status: ChangeStatus = ChangeStatus.NEW
    snapshot_before: str = ""
    snapshot_after: str = ""
    snapshot_diff: str = ""
    difference: int = 0
    execution_time: int = -1

    @classmethod
    def for_monitor(
        cls,
        monitor: ContentMonitor,
        after: Snapshot,
        diff: Snapshot,
        difference: int,
    ) -> ContentChange:
        return cls(
            code=monitor.code,
            organisation=monitor.organisation,
            monitor_id=monitor.id,
            snapshot_before=monitor.snapshot,
            snapshot_after=after.to_json(),
            snapshot_diff=diff.to_json(),
            difference=difference,
            execution_time=monitor.execution_time,
        )

    def refresh(self, after: Snapshot, diff: Snapshot, difference: int) -> None:
        """Replace the after/diff snapshots while the change is still open."""
        self.snapshot_after = after.to_json()
        self.snapshot_diff = diff.to_json()
        self.difference = difference
        self.updated_at = _utc_now()


class ContentAlert(ContentEvent):
    """A source has gone quiet, been suspended or become unreachable."""

    event_type: ClassVar[EventType] = EventType.ALERT

    status: AlertStatus = AlertStatus.NEW
    reason: AlertReason
    effective_date: datetime | None = None
    change: bool = False

    @classmethod
    def for_monitor(cls, monitor: ContentMonitor, reason: AlertReason) -> ContentAlert:
        return cls(
            code=monitor.code,
            organisation=monitor.organisation,
            monitor_id=monitor.id,
            reason=reason,
            effective_date=monitor.updated_at,
            change=monitor.event_type == EventType.CHANGE,
        )


class ContentReview(ContentEvent):
    """A source flagged for manual review."""

    event_type: ClassVar[EventType] = EventType.REVIEW
    MUTABLE_FIELDS: ClassVar[frozenset[str]] = ContentEvent.MUTABLE_FIELDS | {"review_date"}

    status: ReviewStatus = ReviewStatus.NEW
    reason: ReviewReason = ReviewReason.UNDEFINED
    review_date: datetime | None = None

    @classmethod
    def for_monitor(
        cls, monitor: ContentMonitor, reason: ReviewReason, notes: str = ""
    ) -> ContentReview:
        return cls(
            code=monitor.code,
            organisation=monitor.organisation,
            monitor_id=monitor.id,
            reason=reason,
            notes=notes,
        )

    def set_status(self, status: Any, username: str, notes: str | None = None) -> None:
        super().set_status(status, username, notes)
        if self.is_closed:
            self.review_date = self.updated_at


class ContentFailure(ContentEvent):
    """A monitor that exhausted its retries or cannot run at all."""

    event_type: ClassVar[EventType] = EventType.FAILURE
    MUTABLE_FIELDS: ClassVar[frozenset[str]] = ContentEvent.MUTABLE_FIELDS | {"review_date"}

    status: FailureStatus = FailureStatus.NEW
    reason: FailureReason = FailureReason.UNDEFINED
    review_date: datetime | None = None
    session_id: int = 0

    @classmethod
    def for_monitor(
        cls,
        monitor: ContentMonitor,
        reason: FailureReason = FailureReason.UNDEFINED,
        session_id: int = 0,
    ) -> ContentFailure:
        return cls(
            code=monitor.code,
            organisation=monitor.organisation,
            monitor_id=monitor.id,
            reason=reason,
            notes=monitor.error_message,
            session_id=session_id,
        )

    def set_status(self, status: Any, username: str, notes: str | None = None) -> None:
        super().set_status(status, username, notes)
        if self.is_closed:
            self.review_date = self.updated_at


EVENT_CLASSES: dict[EventType, type[ContentEvent]] = {
    EventType.CHANGE: ContentChange,
    EventType.ALERT: ContentAlert,
    EventType.REVIEW: ContentReview,
    EventType.FAILURE: ContentFailure,
}

STATUS_CLASSES: dict[EventType, type[StrEnum]] = {
    EventType.CHANGE: ChangeStatus,
    EventType.ALERT: AlertStatus,
    EventType.REVIEW: ReviewStatus,
    EventType.FAILURE: FailureStatus,
}


def event_from_record(event_type: EventType | str, record: dict[str, Any]) -> ContentEvent:
    """Rebuild an event of the given kind from a flat record."""
    return EVENT_CLASSES[EventType(event_type)].from_record(record)


def parse_status(event_type: EventType | str, value: str) -> StrEnum:
    """Parse a status string for the given event kind."""
    return STATUS_CLASSES[EventType(event_type)](value.upper())
