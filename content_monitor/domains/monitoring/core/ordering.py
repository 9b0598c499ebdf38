"""Ordering rules applied to raw teaser listings before a snapshot is built."""

from __future__ import annotations

from collections.abc import Iterable

from content_monitor.models.teaser import TeaserItem

UNLISTED_SUFFIX = " **UNLISTED**"


def sort_publication_teasers(teasers: Iterable[TeaserItem]) -> list[TeaserItem]:
    """Sort publications newest first.

    Undated items go to the top; items sharing a date are ordered by title.
    """
    items = sorted(teasers, key=_title)
    undated = [item for item in items if not item.date]
    dated = [item for item in items if item.date]
    # Stable sort keeps the title order within a date
    dated.sort(key=lambda item: item.date or "", reverse=True)
    return undated + dated


def merge_subscribed_videos(
    teasers: Iterable[TeaserItem], subscribed: Iterable[TeaserItem]
) -> list[TeaserItem]:
    """Prepend subscribed videos missing from a channel listing.

    Such videos are usually unlisted on the channel page, so their titles are
    marked with UNLISTED_SUFFIX.
    """
    listed = list(teasers)
    listed_ids = {item.video_id for item in listed if item.video_id}
    missing: list[TeaserItem] = []
    for item in subscribed:
        if not item.video_id or item.video_id in listed_ids:
            continue
        listed_ids.add(item.video_id)
        title = item.title if item.title.endswith(UNLISTED_SUFFIX) else item.title + UNLISTED_SUFFIX
        missing.append(item.model_copy(update={"title": title}))
    return missing + listed


def _title(item: TeaserItem) -> str:
    return item.title
