"""Pydantic data models for the content monitoring system."""

from content_monitor.models.config import Config
from content_monitor.models.content_type import ContentType
from content_monitor.models.events import (
    AlertReason,
    AlertStatus,
    ChangeStatus,
    ContentAlert,
    ContentChange,
    ContentEvent,
    ContentFailure,
    ContentReview,
    EventNotice,
    EventType,
    FailureReason,
    FailureStatus,
    ReviewReason,
    ReviewStatus,
)
from content_monitor.models.monitor import ContentMonitor, MonitorStatus
from content_monitor.models.snapshot import Snapshot
from content_monitor.models.teaser import StoredContent, TeaserItem

__all__ = [
    "AlertReason",
    "AlertStatus",
    "ChangeStatus",
    "Config",
    "ContentAlert",
    "ContentChange",
    "ContentEvent",
    "ContentFailure",
    "ContentMonitor",
    "ContentReview",
    "ContentType",
    "EventNotice",
    "EventType",
    "FailureReason",
    "FailureStatus",
    "MonitorStatus",
    "ReviewReason",
    "ReviewStatus",
    "Snapshot",
    "StoredContent",
    "TeaserItem",
]
