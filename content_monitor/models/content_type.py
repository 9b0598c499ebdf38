"""Content types that can be monitored and their snapshot field conventions."""

from __future__ import annotations

from enum import StrEnum

URL = "url"
VIDEO_ID = "video_id"
PUBLISHED_DATE = "published_date"
START_DATE = "start_date"

_TAGS: dict[str, str] = {
    "ROUNDUP": "roundups",
    "VIDEO": "videos",
    "EVENT": "events",
    "PUBLICATION": "publications",
    "WHITE_PAPER": "white-papers",
    "EBOOK": "ebooks",
}

_CODES: dict[str, str] = {
    "ROUNDUP": "RND",
    "VIDEO": "VID",
    "EVENT": "EVT",
    "PUBLICATION": "PUB",
    "WHITE_PAPER": "WPR",
    "EBOOK": "EBK",
}


class ContentType(StrEnum):
    """Type of content listed by a monitored source."""

    ROUNDUP = "ROUNDUP"
    VIDEO = "VIDEO"
    EVENT = "EVENT"
    PUBLICATION = "PUBLICATION"
    WHITE_PAPER = "WHITE_PAPER"
    EBOOK = "EBOOK"

    @property
    def tag(self) -> str:
        """Key of the item array in a serialized snapshot."""
        return _TAGS[self.value]

    @property
    def code(self) -> str:
        """Short code used as the first segment of a monitor GUID."""
        return _CODES[self.value]

    @property
    def identifier_field(self) -> str:
        """Field that identifies an item: the video id for videos, else the URL."""
        return VIDEO_ID if self is ContentType.VIDEO else URL

    @property
    def date_field(self) -> str:
        return START_DATE if self is ContentType.EVENT else PUBLISHED_DATE

    @property
    def checks_decrease(self) -> bool:
        """Whether a large drop in item count is treated as a crawl anomaly.

        Channel listings legitimately fluctuate, so videos are exempt.
        """
        return self is not ContentType.VIDEO

    @property
    def normalizes_titles(self) -> bool:
        return self in (ContentType.ROUNDUP, ContentType.VIDEO)

    @classmethod
    def from_tag(cls, tag: str) -> ContentType | None:
        """Return the content type with the given snapshot tag, or None."""
        for member in cls:
            if member.tag == tag:
                return member
        return None
