"""Snapshot comparison with reconciliation against previously stored content."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from content_monitor.models.content_type import VIDEO_ID, ContentType
from content_monitor.models.snapshot import Snapshot
from content_monitor.models.teaser import (
    LAST_PUBLISHED_DATE,
    LAST_TITLE,
    LAST_URL,
    LAST_VIDEO_ID,
    StoredContent,
    TeaserItem,
)

if TYPE_CHECKING:
    from content_monitor.services.protocols import ContentLookupProtocol

logger = structlog.get_logger(__name__)

# Percentage drop in item count above which a listing is treated as a bad crawl
ANOMALY_THRESHOLD = 50.0


@dataclass(frozen=True)
class Unchanged:
    """Every latest item is already known."""

    reconciled: tuple[TeaserItem, ...] = ()


@dataclass(frozen=True)
class Changed:
    """Some latest items are new; ``diff`` holds them in listing order."""

    diff: Snapshot
    reconciled: tuple[TeaserItem, ...] = ()


@dataclass(frozen=True)
class Anomaly:
    """The listing shrank by more than ANOMALY_THRESHOLD percent."""

    decrease: float


ComparisonResult = Unchanged | Changed | Anomaly


@dataclass
class _Pending:
    """Latest items still unresolved, keyed by position in the listing."""

    by_title: dict[str, int] = field(default_factory=dict)
    by_identifier: dict[str, int] = field(default_factory=dict)
    notes: dict[int, dict[str, str]] = field(default_factory=lambda: defaultdict(dict))


def count_decrease(current_count: int, latest_count: int) -> float:
    """Percentage by which the item count dropped, 0.0 if it did not or is unknown."""
    if current_count < 0 or latest_count < 0 or latest_count >= current_count:
        return 0.0
    return (current_count - latest_count) / current_count * 100.0


def compare_snapshots(
    current: Snapshot,
    latest: Snapshot,
    lookup: ContentLookupProtocol | None = None,
    check_decrease: bool = True,
    code: str = "",
) -> ComparisonResult:
    """Compare the stored snapshot with a freshly fetched one.

    An item in ``latest`` is new when neither its title nor its identifier
    appears in ``current``. With a content lookup, unresolved items are also
    checked against stored content; items found there are resolved unless
    their publication date has moved, and drifted values are recorded as
    ``last_*`` annotations on the item.
    """
    decrease = count_decrease(current.count, latest.count)
    if check_decrease and decrease > ANOMALY_THRESHOLD:
        logger.warning(
            "abnormal_item_decrease",
            code=code,
            current_count=current.count,
            latest_count=latest.count,
            decrease=round(decrease, 2),
        )
        return Anomaly(decrease=decrease)

    content_type = latest.content_type
    pending = _Pending()
    for index, item in enumerate(latest.items):
        pending.by_title[item.title] = index
        identifier = item.identifier(content_type)
        if identifier:
            pending.by_identifier[identifier] = index

    for item in current.items:
        pending.by_title.pop(item.title, None)
        pending.by_identifier.pop(item.identifier(current.content_type), None)

    if lookup is not None:
        logger.info(
            "compared_with_current",
            code=code,
            titles=len(pending.by_title),
            ids=len(pending.by_identifier),
        )
        if pending.by_title or pending.by_identifier:
            _reconcile(latest, lookup, pending, code)
            logger.info(
                "compared_with_stored",
                code=code,
                titles=len(pending.by_title),
                ids=len(pending.by_identifier),
            )

    unresolved = sorted(set(pending.by_title.values()) | set(pending.by_identifier.values()))
    reconciled = tuple(
        latest.items[index].annotate(**notes)
        for index, notes in sorted(pending.notes.items())
        if notes and index not in unresolved
    )
    if not unresolved:
        return Unchanged(reconciled=reconciled)

    diff_items: list[TeaserItem] = []
    for index in unresolved:
        item = latest.items[index]
        logger.info(
            "unresolved_item",
            code=code,
            title=item.title,
            id=item.identifier(content_type),
            date=item.date or "",
        )
        notes = pending.notes.get(index)
        diff_items.append(item.annotate(**notes) if notes else item)
    diff = Snapshot(content_type=content_type, items=tuple(diff_items))
    return Changed(diff=diff, reconciled=reconciled)


def _reconcile(
    latest: Snapshot,
    lookup: ContentLookupProtocol,
    pending: _Pending,
    code: str,
) -> None:
    content_type = latest.content_type

    for title, index in list(pending.by_title.items()):
        item = latest.items[index]
        identifier = item.identifier(content_type)
        stored = lookup.by_title(title)
        if stored is None and identifier:
            stored = lookup.by_identifier(identifier)
        if stored is None:
            continue
        if _check_stored(item, stored, content_type, pending.notes[index]):
            del pending.by_title[title]
            logger.info("found_stored_title", code=code, title=title, titles=len(pending.by_title))

    for identifier, index in list(pending.by_identifier.items()):
        item = latest.items[index]
        stored = lookup.by_identifier(identifier)
        if stored is None:
            stored = lookup.by_title(item.title)
        if stored is None:
            continue
        if _check_stored(item, stored, content_type, pending.notes[index]):
            del pending.by_identifier[identifier]
            logger.info(
                "found_stored_id", code=code, id=identifier, ids=len(pending.by_identifier)
            )


def _check_stored(
    item: TeaserItem,
    stored: StoredContent,
    content_type: ContentType,
    notes: dict[str, str],
) -> bool:
    """Record drift between an item and its stored content.

    Returns True when the item counts as already known.
    """
    identifier = item.identifier(content_type)
    if stored.identifier and stored.identifier != identifier:
        key = LAST_VIDEO_ID if content_type.identifier_field == VIDEO_ID else LAST_URL
        notes[key] = stored.identifier
    if stored.title and stored.title != item.title:
        notes[LAST_TITLE] = stored.title

    date = item.date_part()
    if date and stored.published_date and not stored.published_date.startswith(date):
        notes[LAST_PUBLISHED_DATE] = stored.published_date
        return False
    return True
