"""Content monitor model and its lifecycle state machine."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from content_monitor.models.content_type import ContentType
from content_monitor.models.events import EventType
from content_monitor.models.snapshot import Snapshot
from content_monitor.utils.errors import InvalidTransitionError, MonitorBusyError

if TYPE_CHECKING:
    from content_monitor.models.events import (
        ContentAlert,
        ContentChange,
        ContentEvent,
        ContentFailure,
        ContentReview,
    )

DEFAULT_INTERVAL = 60


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class MonitorStatus(StrEnum):
    """Lifecycle state of a content monitor."""

    NEW = "NEW"
    WAITING = "WAITING"
    EXECUTING = "EXECUTING"
    CHANGED = "CHANGED"
    REVIEW = "REVIEW"
    ALERT = "ALERT"
    RETRYING = "RETRYING"
    ERROR = "ERROR"
    RESUMING = "RESUMING"
    DISABLED = "DISABLED"


# State a monitor is held in while the given kind of event is open
EVENT_STATES: dict[EventType, MonitorStatus] = {
    EventType.CHANGE: MonitorStatus.CHANGED,
    EventType.ALERT: MonitorStatus.ALERT,
    EventType.REVIEW: MonitorStatus.REVIEW,
    EventType.FAILURE: MonitorStatus.ERROR,
}

RUNNABLE_STATES = frozenset({MonitorStatus.WAITING, MonitorStatus.RETRYING})
SCHEDULABLE_STATES = RUNNABLE_STATES | {MonitorStatus.RESUMING}


class ContentMonitor(BaseModel):
    """Tracks one organisation's one content source.

    Holds the source identity and polling configuration, the last stored
    snapshot (as JSON) and the lifecycle state. At most one event is open
    at a time, referenced by ``event_type`` and ``event_id``; clearing an
    event only takes effect when the ids match.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    code: str
    organisation: str = ""
    content_type: ContentType
    name: str

    interval: int = DEFAULT_INTERVAL
    sites: list[str] = Field(default_factory=list)
    max_results: int | None = None
    keywords: list[str] = Field(default_factory=list)
    min_difference: int = 0
    alerts: bool = True
    url: str = ""
    channel_id: str = ""

    status: MonitorStatus = MonitorStatus.NEW
    snapshot: str = ""
    event_type: EventType | None = None
    event_id: str = ""
    executed_at: datetime | None = None
    success_at: datetime | None = None
    execution_time: int = -1
    error_message: str = ""
    retry: int = 0
    title: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime | None = None

    @field_validator("code", "name")
    @classmethod
    def validate_identity(cls, value: str) -> str:
        """Organisation code and monitor name must be non-empty."""
        if not value.strip():
            msg = "code and name must not be empty"
            raise ValueError(msg)
        return value.strip()

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Polling interval must be at least one minute."""
        if value < 1:
            msg = "interval must be at least 1 minute"
            raise ValueError(msg)
        return value

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, value: int | None) -> int | None:
        """Result cap must be positive when set."""
        if value is not None and value < 1:
            msg = "max_results must be greater than 0"
            raise ValueError(msg)
        return value

    @field_validator("min_difference")
    @classmethod
    def validate_min_difference(cls, value: int) -> int:
        """Minimum difference is a percentage."""
        if value < 0 or value > 100:
            msg = "min_difference must be between 0 and 100"
            raise ValueError(msg)
        return value

    @field_validator("sites", "keywords", mode="before")
    @classmethod
    def split_list(cls, value: Any) -> Any:
        """Accept comma-separated strings as well as lists."""
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @classmethod
    def create(
        cls,
        code: str,
        content_type: ContentType,
        name: str,
        organisation: str = "",
        **config: Any,
    ) -> ContentMonitor:
        """Create a NEW monitor holding an empty snapshot."""
        return cls(
            code=code,
            organisation=organisation,
            content_type=content_type,
            name=name,
            snapshot=Snapshot.empty(content_type).to_json(),
            **config,
        )

    # -- identity and configuration -------------------------------------------------

    @property
    def guid(self) -> str:
        return f"{self.content_type.code}-{self.code}-{self.name}"

    @property
    def is_schedulable(self) -> bool:
        """Whether a scheduler may pick this monitor up for a check."""
        return self.status in SCHEDULABLE_STATES

    def has_site(self, site_id: str) -> bool:
        """An empty site list means the monitor applies to every site."""
        return not self.sites or site_id in self.sites

    def current_snapshot(self) -> Snapshot:
        if not self.snapshot:
            return Snapshot.empty(self.content_type)
        return Snapshot.from_json(self.snapshot)

    def configure(
        self,
        interval: int | None = None,
        sites: list[str] | str | None = None,
        max_results: int | None = None,
        keywords: list[str] | str | None = None,
        min_difference: int | None = None,
        alerts: bool | None = None,
    ) -> None:
        """Attach polling configuration; a NEW monitor starts WAITING."""
        if interval is not None:
            self.interval = interval
        if sites is not None:
            self.sites = sites  # type: ignore[assignment]
        if max_results is not None:
            self.max_results = max_results
        if keywords is not None:
            self.keywords = keywords  # type: ignore[assignment]
        if min_difference is not None:
            self.min_difference = min_difference
        if alerts is not None:
            self.alerts = alerts
        if self.status == MonitorStatus.NEW:
            self.status = MonitorStatus.WAITING
        self._touch()

    # -- execution ---------------------------------------------------------------------

    def resume(self) -> None:
        """RESUMING -> WAITING."""
        if self.status == MonitorStatus.RESUMING:
            self.status = MonitorStatus.WAITING
            self._touch()

    def start_execution(self, now: datetime | None = None) -> None:
        """Mark the monitor as executing a fetch.

        Raises MonitorBusyError if a fetch is already in flight.
        """
        if self.status == MonitorStatus.EXECUTING:
            msg = f"Monitor {self.guid} is already executing"
            raise MonitorBusyError(msg)
        if self.status not in RUNNABLE_STATES:
            msg = f"Monitor {self.guid} cannot execute from state {self.status}"
            raise InvalidTransitionError(msg)
        self.status = MonitorStatus.EXECUTING
        self.executed_at = now or _utc_now()
        self._touch()

    def finish_execution(
        self,
        started_at: datetime,
        finished_at: datetime,
        title: str | None = None,
    ) -> None:
        """Record a successful fetch+compare; the state is set by the caller."""
        self._require_executing()
        self.executed_at = finished_at
        self.success_at = finished_at
        self.execution_time = int((finished_at - started_at).total_seconds() * 1000)
        self.retry = 0
        self.error_message = ""
        if title:
            self.title = title

    def complete_unchanged(self, snapshot: Snapshot) -> None:
        """EXECUTING -> WAITING, adopting the latest snapshot silently."""
        self._require_executing()
        self.snapshot = snapshot.to_json()
        self.status = MonitorStatus.WAITING
        self._touch()

    def record_retry(self, message: str, max_retries: int) -> bool:
        """Record a transient failure.

        Returns True when the retry ceiling has been exceeded; the caller must
        then raise a failure event. Otherwise the monitor is left RETRYING.
        """
        self._require_executing()
        self.retry += 1
        self.error_message = message
        self._touch()
        if self.retry > max_retries:
            return True
        self.status = MonitorStatus.RETRYING
        return False

    def abandon_execution(self, message: str) -> None:
        """Back out of EXECUTING without recording progress."""
        self._require_executing()
        self.error_message = message
        self.status = MonitorStatus.RETRYING if self.retry > 0 else MonitorStatus.WAITING
        self._touch()

    # -- events ------------------------------------------------------------------------

    def set_change(self, change: ContentChange) -> bool:
        return self._set_event(change, MonitorStatus.CHANGED)

    def set_review(self, review: ContentReview) -> bool:
        return self._set_event(review, MonitorStatus.REVIEW)

    def set_alert(self, alert: ContentAlert) -> bool:
        return self._set_event(alert, MonitorStatus.ALERT)

    def set_failure(self, failure: ContentFailure) -> bool:
        return self._set_event(failure, MonitorStatus.ERROR)

    def clear_change(self, change: ContentChange) -> bool:
        """Resolve the open change, adopting its after-snapshot as current."""
        if not self._clear_event(change, MonitorStatus.CHANGED):
            return False
        self.snapshot = change.snapshot_after
        return True

    def clear_review(self, review: ContentReview) -> bool:
        return self._clear_event(review, MonitorStatus.REVIEW)

    def clear_alert(self, alert: ContentAlert) -> bool:
        return self._clear_event(alert, MonitorStatus.ALERT)

    def clear_failure(self, failure: ContentFailure) -> bool:
        if not self._clear_event(failure, MonitorStatus.ERROR):
            return False
        self.retry = 0
        self.error_message = ""
        return True

    def clear_event(self, event: ContentEvent) -> bool:
        """Clear the given event if it is the one this monitor references.

        A stale or foreign event is ignored and False is returned.
        """
        handlers = {
            EventType.CHANGE: self.clear_change,
            EventType.ALERT: self.clear_alert,
            EventType.REVIEW: self.clear_review,
            EventType.FAILURE: self.clear_failure,
        }
        return handlers[event.event_type](event)  # type: ignore[operator]

    def restart(self) -> None:
        """Force the monitor back to RESUMING after manual intervention."""
        self.status = MonitorStatus.RESUMING
        self.executed_at = None
        self.event_type = None
        self.event_id = ""
        self.error_message = ""
        self.retry = 0
        self._touch()

    def disable(self) -> None:
        """Suspend scheduling regardless of the current state."""
        self.status = MonitorStatus.DISABLED
        self._touch()

    def enable(self) -> None:
        """Leave DISABLED, returning to the state implied by any open event."""
        if self.status != MonitorStatus.DISABLED:
            return
        if self.event_type is not None and self.event_id:
            self.status = EVENT_STATES[self.event_type]
        else:
            self.status = MonitorStatus.WAITING
        self._touch()

    # -- persistence -------------------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Flat record: enums as strings, lists as JSON text, ISO-8601 datetimes."""
        record = self.model_dump(mode="json")
        record["sites"] = json.dumps(self.sites)
        record["keywords"] = json.dumps(self.keywords)
        record["alerts"] = 1 if self.alerts else 0
        record["event_type"] = self.event_type.value if self.event_type else None
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ContentMonitor:
        data = {name: value for name, value in record.items() if name in cls.model_fields}
        for name in ("sites", "keywords"):
            value = data.get(name)
            if isinstance(value, str) and value.startswith("["):
                data[name] = json.loads(value)
        if not data.get("event_type"):
            data["event_type"] = None
        return cls.model_validate(data)

    # -- internals ---------------------------------------------------------------------

    def _set_event(self, event: ContentEvent, target: MonitorStatus) -> bool:
        if self.status == target:
            return False
        if self.status == MonitorStatus.DISABLED:
            msg = f"Monitor {self.guid} is disabled"
            raise InvalidTransitionError(msg)
        self.status = target
        self.event_type = event.event_type
        self.event_id = event.id
        self._touch()
        return True

    def _clear_event(self, event: ContentEvent, expected: MonitorStatus) -> bool:
        if not self.event_id or self.event_id != event.id:
            return False
        if self.status != expected:
            return False
        self.status = MonitorStatus.RESUMING
        self.event_type = None
        self.event_id = ""
        self._touch()
        return True

    def _require_executing(self) -> None:
        if self.status != MonitorStatus.EXECUTING:
            msg = f"Monitor {self.guid} is not executing (state {self.status})"
            raise InvalidTransitionError(msg)

    def _touch(self) -> None:
        self.updated_at = _utc_now()
