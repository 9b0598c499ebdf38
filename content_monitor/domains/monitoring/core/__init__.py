"""Monitoring domain core -- pure functions for snapshot comparison and event rules."""

from __future__ import annotations

from content_monitor.domains.monitoring.core.alert_rules import (
    classify_failure,
    detect_inactivity,
    newest_item_date,
    parse_item_date,
)
from content_monitor.domains.monitoring.core.comparison import (
    ANOMALY_THRESHOLD,
    Anomaly,
    Changed,
    ComparisonResult,
    Unchanged,
    compare_snapshots,
    count_decrease,
)
from content_monitor.domains.monitoring.core.difference import (
    difference_percent,
)
from content_monitor.domains.monitoring.core.ordering import (
    UNLISTED_SUFFIX,
    merge_subscribed_videos,
    sort_publication_teasers,
)

__all__ = [
    # alert_rules
    "classify_failure",
    "detect_inactivity",
    "newest_item_date",
    "parse_item_date",
    # comparison
    "ANOMALY_THRESHOLD",
    "Anomaly",
    "Changed",
    "ComparisonResult",
    "Unchanged",
    "compare_snapshots",
    "count_decrease",
    # difference
    "difference_percent",
    # ordering
    "UNLISTED_SUFFIX",
    "merge_subscribed_videos",
    "sort_publication_teasers",
]
