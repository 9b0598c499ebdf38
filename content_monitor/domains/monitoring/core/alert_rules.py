"""Rules that turn fetch outcomes into alert and failure reasons."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from content_monitor.models.events import AlertReason, FailureReason
from content_monitor.utils.errors import (
    AccessDeniedError,
    CrawlAnomalyError,
    FetchTimeoutError,
    SnapshotFormatError,
    SourceNotConfiguredError,
)

if TYPE_CHECKING:
    from content_monitor.models.snapshot import Snapshot


def parse_item_date(value: str) -> datetime | None:
    """Parse the date part of an item date as a UTC midnight, or None if malformed."""
    try:
        parsed = datetime.strptime(value.split(" ", 1)[0], "%Y-%m-%d")
    except ValueError:
        return None
    return parsed.replace(tzinfo=UTC)


def newest_item_date(snapshot: Snapshot) -> datetime | None:
    """Return the latest parseable item date; malformed dates are ignored."""
    dates = [parse_item_date(item.date) for item in snapshot.items if item.date]
    parsed = [date for date in dates if date is not None]
    return max(parsed) if parsed else None


def detect_inactivity(
    snapshot: Snapshot,
    now: datetime,
    inactivity_days: int,
    last_success: datetime | None = None,
) -> AlertReason | None:
    """Return INACTIVITY when the source went quiet since the last successful check.

    The newest item must be older than ``inactivity_days`` now, and must not
    already have been that old at ``last_success``, so the alert fires once
    per quiet spell rather than on every check.
    """
    newest_at = newest_item_date(snapshot)
    if newest_at is None:
        return None

    quiet_from = newest_at + timedelta(days=inactivity_days)
    if quiet_from > now:
        return None
    if last_success is not None and quiet_from <= last_success:
        return None
    return AlertReason.INACTIVITY


def classify_failure(exc: BaseException) -> FailureReason:
    """Map the error that exhausted a monitor's retries to a failure reason."""
    if isinstance(exc, FetchTimeoutError | TimeoutError):
        return FailureReason.HANGING
    if isinstance(exc, AccessDeniedError):
        return FailureReason.ACCESS_DENIED
    if isinstance(exc, CrawlAnomalyError | SnapshotFormatError | SourceNotConfiguredError):
        return FailureReason.DEFECTIVE
    return FailureReason.INTERMITTENT
