"""Snapshot model: an immutable capture of a source's teaser listing."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from content_monitor.models.content_type import ContentType
from content_monitor.models.teaser import TeaserItem, to_ascii
from content_monitor.utils.errors import SnapshotFormatError

COUNT = "count"


class Snapshot(BaseModel):
    """Ordered teaser items for one monitor at one point in time.

    Serialized as ``{"<tag>": [...items], "count": N}`` where the tag comes
    from the content type. ``count`` is -1 for legacy documents that carry
    no count, which disables the abnormal-decrease check.
    """

    model_config = ConfigDict(frozen=True)

    content_type: ContentType
    items: tuple[TeaserItem, ...] = ()
    count: int = -1

    @model_validator(mode="before")
    @classmethod
    def default_count(cls, data: Any) -> Any:
        """Count defaults to the number of items."""
        if isinstance(data, dict) and "count" not in data:
            data = {**data, "count": len(data.get("items", ()))}
        return data

    @classmethod
    def empty(cls, content_type: ContentType) -> Snapshot:
        return cls(content_type=content_type)

    @classmethod
    def from_teasers(
        cls, content_type: ContentType, teasers: Iterable[TeaserItem]
    ) -> Snapshot:
        """Build a snapshot from freshly fetched teasers.

        Titles of roundups and videos are folded to ASCII so that typographic
        quote changes on the source do not register as new items.
        """
        items = tuple(teasers)
        if content_type.normalizes_titles:
            items = tuple(
                item.model_copy(update={"title": to_ascii(item.title)}) for item in items
            )
        return cls(content_type=content_type, items=items)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Snapshot:
        """Parse a snapshot document, locating the content type by its tag."""
        content_type: ContentType | None = None
        raw_items: Any = None
        for key, value in doc.items():
            if isinstance(value, list):
                content_type = ContentType.from_tag(key)
                raw_items = value
                if content_type is not None:
                    break
        if content_type is None:
            msg = f"Snapshot document has no recognised content tag: {sorted(doc)}"
            raise SnapshotFormatError(msg)

        try:
            items = tuple(
                TeaserItem.from_document(content_type, obj)
                for obj in raw_items
                if isinstance(obj, dict)
            )
        except ValidationError as exc:
            msg = f"Invalid item in {content_type.tag} snapshot: {exc}"
            raise SnapshotFormatError(msg) from exc

        count = doc.get(COUNT, -1)
        if not isinstance(count, int):
            msg = f"Snapshot count must be an integer, got {count!r}"
            raise SnapshotFormatError(msg)
        return cls(content_type=content_type, items=items, count=count)

    @classmethod
    def from_json(cls, text: str) -> Snapshot:
        """Parse a serialized snapshot."""
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as exc:
            msg = f"Snapshot is not valid JSON: {exc}"
            raise SnapshotFormatError(msg) from exc
        if not isinstance(doc, dict):
            msg = "Snapshot document must be a JSON object"
            raise SnapshotFormatError(msg)
        return cls.from_document(doc)

    @property
    def tag(self) -> str:
        return self.content_type.tag

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            self.tag: [item.to_document(self.content_type) for item in self.items]
        }
        doc[COUNT] = self.count
        return doc

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_document(), indent=indent)

    def format(self) -> str:
        """Render the items as ``key=value`` lines, one block per item.

        An empty date line is written for undated items so that item blocks
        stay aligned when two snapshots are diffed line by line.
        """
        blocks: list[str] = []
        date_field = self.content_type.date_field
        for item in self.items:
            doc = {"title": item.title, date_field: item.date or ""}
            doc.update(item.to_document(self.content_type))
            blocks.append("".join(f"{key}={value}\n" for key, value in doc.items()))
        return "\n".join(blocks)
