"""Reference teaser fetcher reading JSON listings over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import requests
import structlog

from content_monitor.models.content_type import PUBLISHED_DATE, START_DATE, URL, VIDEO_ID
from content_monitor.models.teaser import TeaserItem
from content_monitor.services.protocols import FetchResult
from content_monitor.utils.errors import (
    AccessDeniedError,
    FetchError,
    FetchTimeoutError,
    SourceNotConfiguredError,
    SourceSuspendedError,
    SourceUnreachableError,
)

if TYPE_CHECKING:
    import threading

    from content_monitor.services.protocols import FetchRequest

logger = structlog.get_logger(__name__)

_DATE_KEYS = ("date", PUBLISHED_DATE, START_DATE)


class JsonTeaserFetcher:
    """Fetch a teaser listing published as JSON.

    The source URL must return either an array of teaser objects or an object
    of the form ``{"title": ..., "items": [...]}``. An object carrying
    ``"suspended": true`` marks a suspended channel.
    """

    def __init__(self, timeout: float = 30, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def fetch(self, request: FetchRequest, cancel: threading.Event) -> FetchResult:
        """Fetch and normalize the listing for one monitor.

        Raises:
            SourceNotConfiguredError: The monitor has no URL.
            AccessDeniedError: HTTP 401 or 403.
            SourceUnreachableError: HTTP 404 or 410.
            SourceSuspendedError: The listing reports a suspended source.
            FetchTimeoutError: The request timed out or was cancelled.
            FetchError: Any other network or format problem.
        """
        if not request.url:
            msg = f"No page configured for {request.content_type.value} {request.name}"
            raise SourceNotConfiguredError(msg)
        if cancel.is_set():
            raise FetchTimeoutError(f"Fetch cancelled for {request.url}")

        try:
            response = self.session.get(request.url, timeout=self.timeout)
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Timed out fetching {request.url}") from exc
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch {request.url}: {exc}") from exc

        if cancel.is_set():
            raise FetchTimeoutError(f"Fetch cancelled for {request.url}")
        if response.status_code in (401, 403):
            raise AccessDeniedError(f"Access denied to {request.url} ({response.status_code})")
        if response.status_code in (404, 410):
            raise SourceUnreachableError(f"Page not found: {request.url}")
        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code} from {request.url}")

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(f"Listing at {request.url} is not valid JSON") from exc

        title = ""
        if isinstance(data, dict):
            if data.get("suspended"):
                raise SourceSuspendedError(f"Source suspended: {request.url}")
            title = str(data.get("title") or "")
            data = data.get("items", [])
        if not isinstance(data, list):
            raise FetchError(f"Listing at {request.url} has no item array")

        teasers = [parse_teaser(obj) for obj in data if isinstance(obj, dict) and obj.get("title")]
        teasers = filter_teasers(teasers, request.keywords, request.max_results)

        logger.info(
            "teasers_fetched",
            code=request.code,
            name=request.name,
            url=request.url,
            items=len(teasers),
        )
        return FetchResult(teasers=teasers, title=title, url=request.url)


def parse_teaser(obj: dict[str, Any]) -> TeaserItem:
    """Build a teaser from a listing object, accepting any of the date keys."""
    date = next((str(obj[key]) for key in _DATE_KEYS if obj.get(key)), None)
    return TeaserItem(
        title=str(obj["title"]),
        date=date,
        url=str(obj[URL]) if obj.get(URL) else None,
        video_id=str(obj[VIDEO_ID]) if obj.get(VIDEO_ID) else None,
    )


def filter_teasers(
    teasers: list[TeaserItem],
    keywords: tuple[str, ...] = (),
    max_results: int | None = None,
) -> list[TeaserItem]:
    """Keep teasers whose title mentions a keyword, capped at ``max_results``."""
    if keywords:
        lowered = [keyword.lower() for keyword in keywords]
        teasers = [item for item in teasers if any(k in item.title.lower() for k in lowered)]
    if max_results is not None:
        teasers = teasers[:max_results]
    return teasers
