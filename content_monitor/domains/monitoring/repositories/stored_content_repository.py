"""Stored content repository and the content lookup built on it."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from content_monitor.models.content_type import ContentType
from content_monitor.models.teaser import StoredContent

if TYPE_CHECKING:
    import sqlite3

    from content_monitor.models.monitor import ContentMonitor
    from content_monitor.services.database import Database

logger = structlog.get_logger(__name__)


def _to_content(row: sqlite3.Row) -> StoredContent:
    return StoredContent(
        title=row["title"],
        identifier=row["identifier"],
        published_date=row["published_date"] or "",
    )


class StoredContentRepository:
    """Repository for previously published content items."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def store(self, code: str, content_type: ContentType, content: StoredContent) -> None:
        """Record a published item; an existing identifier is updated in place."""
        self.db.upsert(
            "stored_content",
            {
                "code": code,
                "content_type": content_type.value,
                "title": content.title,
                "identifier": content.identifier,
                "published_date": content.published_date,
                "created_at": datetime.now(UTC).isoformat(),
            },
            keys=("code", "content_type", "identifier"),
        )
        logger.debug(
            "content_stored",
            code=code,
            content_type=content_type.value,
            identifier=content.identifier,
        )

    def list_content(self, code: str, content_type: ContentType) -> list[StoredContent]:
        rows = self.db.fetchall(
            """SELECT * FROM stored_content
               WHERE code = ? AND content_type = ?
               ORDER BY published_date DESC, title""",
            (code, content_type.value),
        )
        return [_to_content(row) for row in rows]

    def lookup(self, code: str, content_type: ContentType) -> StoredContentLookup:
        return StoredContentLookup(self.db, code, content_type)

    def lookup_for(self, monitor: ContentMonitor) -> StoredContentLookup:
        """Lookup scoped to the monitor's organisation and content type."""
        return self.lookup(monitor.code, monitor.content_type)


class StoredContentLookup:
    """Content lookup over the stored_content table for one owner and type."""

    def __init__(self, db: Database, code: str, content_type: ContentType) -> None:
        self.db = db
        self.code = code
        self.content_type = content_type

    def by_title(self, title: str) -> StoredContent | None:
        return self._find("title", title)

    def by_identifier(self, identifier: str) -> StoredContent | None:
        return self._find("identifier", identifier)

    def _find(self, column: str, value: str) -> StoredContent | None:
        if not value:
            return None
        row = self.db.fetchone(
            f"""SELECT * FROM stored_content
                WHERE code = ? AND content_type = ? AND {column} = ?
                ORDER BY id DESC LIMIT 1""",
            (self.code, self.content_type.value, value),
        )
        return _to_content(row) if row else None
