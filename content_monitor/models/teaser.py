"""Teaser records: the minimal per-item summary held in a snapshot."""

from __future__ import annotations

import unicodedata
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from content_monitor.models.content_type import URL, VIDEO_ID, ContentType

LAST_TITLE = "last_title"
LAST_URL = "last_url"
LAST_VIDEO_ID = "last_video_id"
LAST_PUBLISHED_DATE = "last_published_date"

ANNOTATION_FIELDS: tuple[str, ...] = (LAST_TITLE, LAST_URL, LAST_VIDEO_ID, LAST_PUBLISHED_DATE)

# Characters NFKD cannot fold that still commonly appear in crawled titles
_ASCII_REPLACEMENTS = {
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2013": "-",
    "\u2014": "-",
}


def to_ascii(text: str) -> str:
    """Fold a title to plain ASCII, dropping characters with no equivalent."""
    for char, replacement in _ASCII_REPLACEMENTS.items():
        text = text.replace(char, replacement)
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii")


class TeaserItem(BaseModel):
    """A content item as it appears in a source listing.

    ``date`` is a published date (or a start date for events) formatted as
    ``YYYY-MM-DD HH:MM:SS`` or ``YYYY-MM-DD``. The ``last_*`` fields are only
    set by snapshot reconciliation and record the value held by previously
    stored content when it differs from the listing.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    date: str | None = None
    url: str | None = None
    video_id: str | None = None
    last_title: str | None = None
    last_url: str | None = None
    last_video_id: str | None = None
    last_published_date: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        """Title is stored trimmed."""
        return value.strip()

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str | None) -> str | None:
        """Blank dates are treated as missing."""
        if value is not None and not value.strip():
            return None
        return value

    def identifier(self, content_type: ContentType) -> str:
        """Return the matching key for this item: video id for videos, else URL."""
        if content_type.identifier_field == VIDEO_ID:
            return self.video_id or ""
        return self.url or ""

    def date_part(self) -> str:
        """Return the date without any time component, or '' if undated."""
        if not self.date:
            return ""
        return self.date.split(" ", 1)[0]

    @property
    def is_annotated(self) -> bool:
        return any(getattr(self, name) is not None for name in ANNOTATION_FIELDS)

    def annotations(self) -> dict[str, str]:
        """Return the reconciliation annotations that are set."""
        return {
            name: getattr(self, name)
            for name in ANNOTATION_FIELDS
            if getattr(self, name) is not None
        }

    def annotate(self, **fields: str) -> TeaserItem:
        """Return a copy carrying the given ``last_*`` annotations."""
        unknown = set(fields) - set(ANNOTATION_FIELDS)
        if unknown:
            msg = f"Not annotation fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        return self.model_copy(update=fields)

    def to_document(self, content_type: ContentType) -> dict[str, str]:
        """Serialize using the field names of the given content type."""
        doc: dict[str, str] = {"title": self.title}
        if self.date:
            doc[content_type.date_field] = self.date
        doc[content_type.identifier_field] = self.identifier(content_type)
        doc.update(self.annotations())
        return doc

    @classmethod
    def from_document(cls, content_type: ContentType, obj: dict[str, Any]) -> TeaserItem:
        """Parse an item object from a serialized snapshot."""
        identifier = obj.get(content_type.identifier_field)
        fields: dict[str, Any] = {
            "title": str(obj.get("title", "")),
            "date": obj.get(content_type.date_field),
            URL: identifier if content_type.identifier_field == URL else obj.get(URL),
            VIDEO_ID: identifier if content_type.identifier_field == VIDEO_ID else None,
        }
        for name in ANNOTATION_FIELDS:
            if obj.get(name) is not None:
                fields[name] = str(obj[name])
        return cls(**fields)


class StoredContent(BaseModel):
    """Previously published content returned by a content lookup."""

    model_config = ConfigDict(frozen=True)

    title: str
    identifier: str
    published_date: str = ""
