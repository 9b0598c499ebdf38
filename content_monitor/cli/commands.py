"""CLI command implementations for the content monitoring system."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click

from content_monitor.models.config import Config
from content_monitor.models.content_type import ContentType
from content_monitor.models.events import AlertReason, EventType, ReviewReason
from content_monitor.models.monitor import MonitorStatus
from content_monitor.services.database import Database
from content_monitor.utils.errors import MonitorError
from content_monitor.utils.logger import configure_logging

if TYPE_CHECKING:
    from content_monitor.models.events import ContentEvent
    from content_monitor.models.monitor import ContentMonitor

_TYPE_CHOICE = click.Choice([member.value for member in ContentType], case_sensitive=False)
_EVENT_CHOICE = click.Choice([member.value for member in EventType], case_sensitive=False)


def _get_config() -> Config:
    """Load configuration from .env file."""
    return Config()


def _get_db(config: Config) -> Database:
    """Initialize database with schema."""
    db = Database(db_path=config.database_path)
    db.init_db()
    return db


def _print_summary(title: str, stats: dict[str, Any]) -> None:
    """Print a formatted summary of batch operation results."""
    click.echo(f"\n[SUCCESS] {title}")
    for key, value in stats.items():
        if key == "errors" and isinstance(value, list):
            if value:
                click.echo(f"  Errors ({len(value)}):")
                for error in value[:10]:
                    click.echo(f"    - {error}")
                if len(value) > 10:
                    click.echo(f"    ... and {len(value) - 10} more")
        else:
            click.echo(f"  {key}: {value}")


def _monitor_line(monitor: ContentMonitor) -> str:
    executed = monitor.executed_at.isoformat()[:19] if monitor.executed_at else "never"
    line = f"  {monitor.guid} | {monitor.status.value} | last run: {executed}"
    if monitor.event_id:
        line += f" | {monitor.event_type} {monitor.event_id}"
    return line


def _event_line(event: ContentEvent) -> str:
    return (
        f"  {event.event_type.value} {event.id} | {event.status_value.value} | "
        f"{event.reason_value} | {event.code} | {event.created_at.isoformat()[:19]}"
    )


# --- Setup ---


@click.command()
def init_db() -> None:
    """Create the database schema."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)
    click.echo(f"[SUCCESS] Database ready at {config.database_path}")
    db.close()


@click.command()
@click.option("--code", required=True, help="Organisation code")
@click.option("--type", "content_type", required=True, type=_TYPE_CHOICE, help="Content type")
@click.option("--name", required=True, help="Page or channel name")
@click.option("--organisation", default="", help="Organisation display name")
@click.option("--url", default="", help="Listing URL")
@click.option("--channel-id", default="", help="Video channel id")
@click.option("--interval", default=60, type=int, help="Polling interval in minutes")
@click.option("--sites", default="", help="Comma-separated site ids (empty = all)")
@click.option("--max-results", default=None, type=int, help="Maximum items per listing")
@click.option("--keywords", default="", help="Comma-separated title keywords")
@click.option("--min-difference", default=0, type=int, help="Minimum change percentage 0-100")
@click.option("--no-alerts", is_flag=True, help="Disable inactivity alerts")
def add_monitor(
    code: str,
    content_type: str,
    name: str,
    organisation: str,
    url: str,
    channel_id: str,
    interval: int,
    sites: str,
    max_results: int | None,
    keywords: str,
    min_difference: int,
    no_alerts: bool,
) -> None:
    """Create a monitor for one content source."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.services.monitor_admin import MonitorAdmin

    admin = MonitorAdmin(MonitorRepository(db))
    try:
        monitor = admin.add_monitor(
            code,
            ContentType(content_type.upper()),
            name,
            organisation=organisation,
            url=url,
            channel_id=channel_id,
            interval=interval,
            sites=sites,
            max_results=max_results,
            keywords=keywords,
            min_difference=min_difference,
            alerts=not no_alerts,
        )
    except (MonitorError, ValueError) as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    click.echo(f"[SUCCESS] Added monitor {monitor.guid} ({monitor.id})")
    db.close()


# --- Monitors ---


@click.command()
@click.option(
    "--status",
    default=None,
    type=click.Choice([member.value for member in MonitorStatus], case_sensitive=False),
    help="Only monitors in this state",
)
@click.option("--code", default=None, help="Only monitors of this organisation")
@click.option("--site", default=None, help="Only monitors that apply to this site")
@click.option(
    "--output-format",
    default="summary",
    type=click.Choice(["summary", "json"]),
    help="Output format",
)
def list_monitors(
    status: str | None, code: str | None, site: str | None, output_format: str
) -> None:
    """List monitors and their states."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )

    monitors = MonitorRepository(db).list_monitors(
        status=MonitorStatus(status.upper()) if status else None, code=code, site=site
    )

    if output_format == "json":
        records = [
            {key: value for key, value in monitor.to_record().items() if key != "snapshot"}
            for monitor in monitors
        ]
        click.echo(json.dumps(records, indent=2))
    elif not monitors:
        click.echo("[INFO] No monitors found.")
    else:
        click.echo(f"[INFO] {len(monitors)} monitors:\n")
        for monitor in monitors:
            click.echo(_monitor_line(monitor))
    db.close()


@click.command()
@click.argument("monitor_key")
@click.option("--snapshot", "show_snapshot", is_flag=True, help="Print the stored snapshot")
def show_monitor(monitor_key: str, show_snapshot: bool) -> None:
    """Display a monitor by id or GUID."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )

    try:
        monitor = MonitorRepository(db).resolve(monitor_key)
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    snapshot = monitor.current_snapshot()
    click.echo(f"\n[INFO] Monitor: {monitor.guid}")
    click.echo(f"  Id: {monitor.id}")
    click.echo(f"  Status: {monitor.status.value}")
    click.echo(f"  Interval: {monitor.interval} minutes")
    click.echo(f"  URL: {monitor.url or '-'}")
    click.echo(f"  Items: {len(snapshot.items)}")
    click.echo(f"  Retries: {monitor.retry}")
    if monitor.error_message:
        click.echo(f"  Last error: {monitor.error_message}")

    events = EventRepository(db).list_for_monitor(monitor.id)
    if events:
        click.echo("  Events:")
        for event in events[:10]:
            marker = "*" if event.id == monitor.event_id else " "
            click.echo(f"  {marker}{_event_line(event)}")
    if show_snapshot:
        click.echo(snapshot.to_json(indent=2))
    db.close()


@click.command()
@click.argument("monitor_keys", nargs=-1)
@click.option("--max-workers", default=None, type=int, help="Concurrent checks")
@click.option(
    "--output-format",
    default="summary",
    type=click.Choice(["summary", "json"]),
    help="Output format",
)
def check(monitor_keys: tuple[str, ...], max_workers: int | None, output_format: str) -> None:
    """Check the given monitors, or every schedulable monitor."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.repositories.stored_content_repository import (
        StoredContentRepository,
    )
    from content_monitor.domains.monitoring.services.monitor_executor import MonitorExecutor
    from content_monitor.services.teaser_fetcher import JsonTeaserFetcher

    monitor_repo = MonitorRepository(db)
    executor = MonitorExecutor(
        monitor_repo,
        EventRepository(db),
        JsonTeaserFetcher(timeout=config.fetch_timeout),
        lookup_factory=StoredContentRepository(db).lookup_for,
        config=config,
    )

    ids: list[str] | None = None
    if monitor_keys:
        try:
            ids = [monitor_repo.resolve(key).id for key in monitor_keys]
        except MonitorError as exc:
            click.echo(f"[ERROR] {exc}")
            db.close()
            return

    click.echo("[INFO] Checking monitors...")
    result = executor.check_monitors(ids, max_workers=max_workers)

    if output_format == "json":
        click.echo(json.dumps(result, indent=2))
    else:
        _print_summary("Monitor check complete", result)
    db.close()


@click.command()
@click.argument("monitor_key")
def refresh_change(monitor_key: str) -> None:
    """Re-fetch a changed monitor and update its open change."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.repositories.stored_content_repository import (
        StoredContentRepository,
    )
    from content_monitor.domains.monitoring.services.monitor_executor import MonitorExecutor
    from content_monitor.services.teaser_fetcher import JsonTeaserFetcher

    monitor_repo = MonitorRepository(db)
    executor = MonitorExecutor(
        monitor_repo,
        EventRepository(db),
        JsonTeaserFetcher(timeout=config.fetch_timeout),
        lookup_factory=StoredContentRepository(db).lookup_for,
        config=config,
    )
    try:
        monitor = monitor_repo.resolve(monitor_key)
        updated = executor.refresh_change(monitor.id)
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    if updated:
        click.echo(f"[SUCCESS] Updated open change for {monitor.guid}")
    else:
        click.echo(f"[INFO] Nothing to update for {monitor.guid}")
    db.close()


def _lifecycle_command(action: str, monitor_key: str) -> None:
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.services.monitor_admin import MonitorAdmin

    monitor_repo = MonitorRepository(db)
    admin = MonitorAdmin(monitor_repo)
    try:
        monitor = monitor_repo.resolve(monitor_key)
        monitor = getattr(admin, action)(monitor.id)
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    click.echo(f"[SUCCESS] {monitor.guid} is now {monitor.status.value}")
    db.close()


@click.command()
@click.argument("monitor_key")
def restart_monitor(monitor_key: str) -> None:
    """Force a monitor back to RESUMING, dropping its open event."""
    _lifecycle_command("restart", monitor_key)


@click.command()
@click.argument("monitor_key")
def disable_monitor(monitor_key: str) -> None:
    """Stop a monitor from being checked."""
    _lifecycle_command("disable", monitor_key)


@click.command()
@click.argument("monitor_key")
def enable_monitor(monitor_key: str) -> None:
    """Re-enable a disabled monitor."""
    _lifecycle_command("enable", monitor_key)


# --- Events ---


@click.command()
@click.option("--monitor", "monitor_key", default=None, help="Monitor id or GUID")
@click.option("--type", "event_type", default=None, type=_EVENT_CHOICE, help="Event type")
@click.option("--open", "open_only", is_flag=True, help="Only events awaiting action")
def list_events(monitor_key: str | None, event_type: str | None, open_only: bool) -> None:
    """List monitor events."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )

    event_repo = EventRepository(db)
    kind = EventType(event_type.upper()) if event_type else None
    try:
        if monitor_key:
            monitor = MonitorRepository(db).resolve(monitor_key)
            events = event_repo.list_for_monitor(monitor.id, kind)
            if open_only:
                events = [event for event in events if not event.is_closed]
        else:
            events = event_repo.list_open(kind) if open_only else event_repo.list_all(kind)
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    if not events:
        click.echo("[INFO] No events found.")
    else:
        click.echo(f"[INFO] {len(events)} events:\n")
        for event in events:
            click.echo(_event_line(event))
    db.close()


@click.command()
@click.argument("event_id")
@click.option("--status", required=True, help="New status: PENDING, RESOLVED or SKIPPED")
@click.option("--user", "username", required=True, help="Who is resolving the event")
@click.option("--type", "event_type", default=None, type=_EVENT_CHOICE, help="Event type")
@click.option("--notes", default=None, help="Resolution notes")
def resolve_event(
    event_id: str,
    status: str,
    username: str,
    event_type: str | None,
    notes: str | None,
) -> None:
    """Update an event's status; resolving it releases the monitor."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.services.event_resolver import EventResolver

    event_repo = EventRepository(db)
    monitor_repo = MonitorRepository(db)
    resolver = EventResolver(monitor_repo, event_repo)
    try:
        if event_type:
            kind = EventType(event_type.upper())
        else:
            kind = event_repo.find_any(event_id).event_type
        event = resolver.resolve(kind, event_id, status, username, notes)
        monitor = monitor_repo.get(event.monitor_id)
    except (MonitorError, ValueError) as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    click.echo(
        f"[SUCCESS] {event.event_type.value} {event.id} is {event.status_value.value}; "
        f"{monitor.guid} is {monitor.status.value}"
    )
    db.close()


@click.command()
@click.argument("monitor_key")
@click.option("--user", "username", required=True, help="Who is raising the alert")
@click.option(
    "--reason",
    default=AlertReason.MANUAL.value,
    type=click.Choice([member.value for member in AlertReason], case_sensitive=False),
    help="Alert reason",
)
@click.option("--notes", default="", help="Alert notes")
def raise_alert(monitor_key: str, username: str, reason: str, notes: str) -> None:
    """Raise an alert against a monitor by hand."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.services.event_resolver import EventResolver

    monitor_repo = MonitorRepository(db)
    resolver = EventResolver(monitor_repo, EventRepository(db))
    try:
        monitor = monitor_repo.resolve(monitor_key)
        alert = resolver.raise_alert(
            monitor.id, username, AlertReason(reason.upper()), notes=notes
        )
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    if alert is None:
        click.echo(f"[INFO] {monitor.guid} is already alerting")
    else:
        click.echo(f"[SUCCESS] Raised alert {alert.id} for {monitor.guid}")
    db.close()


@click.command()
@click.argument("monitor_key")
@click.option("--user", "username", required=True, help="Who is requesting the review")
@click.option(
    "--reason",
    default=ReviewReason.UNDEFINED.value,
    type=click.Choice([member.value for member in ReviewReason], case_sensitive=False),
    help="Review reason",
)
@click.option("--notes", default="", help="Review notes")
def raise_review(monitor_key: str, username: str, reason: str, notes: str) -> None:
    """Flag a monitor for manual review."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.event_repository import (
        EventRepository,
    )
    from content_monitor.domains.monitoring.repositories.monitor_repository import (
        MonitorRepository,
    )
    from content_monitor.domains.monitoring.services.event_resolver import EventResolver

    monitor_repo = MonitorRepository(db)
    resolver = EventResolver(monitor_repo, EventRepository(db))
    try:
        monitor = monitor_repo.resolve(monitor_key)
        review = resolver.raise_review(
            monitor.id, username, ReviewReason(reason.upper()), notes=notes
        )
    except MonitorError as exc:
        click.echo(f"[ERROR] {exc}")
        db.close()
        return

    if review is None:
        click.echo(f"[INFO] {monitor.guid} is already in review")
    else:
        click.echo(f"[SUCCESS] Raised review {review.id} for {monitor.guid}")
    db.close()


# --- Stored content ---


@click.command()
@click.option("--code", required=True, help="Organisation code")
@click.option("--type", "content_type", required=True, type=_TYPE_CHOICE, help="Content type")
@click.option("--title", required=True, help="Published title")
@click.option("--identifier", required=True, help="URL, or video id for videos")
@click.option("--published-date", default="", help="Published date YYYY-MM-DD[ HH:MM:SS]")
def store_content(
    code: str, content_type: str, title: str, identifier: str, published_date: str
) -> None:
    """Record published content used to reconcile renamed or moved items."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.stored_content_repository import (
        StoredContentRepository,
    )
    from content_monitor.models.teaser import StoredContent

    StoredContentRepository(db).store(
        code,
        ContentType(content_type.upper()),
        StoredContent(title=title, identifier=identifier, published_date=published_date),
    )
    click.echo(f"[SUCCESS] Stored {content_type.upper()} content '{title}' for {code}")
    db.close()


@click.command()
@click.option("--code", required=True, help="Organisation code")
@click.option("--type", "content_type", required=True, type=_TYPE_CHOICE, help="Content type")
@click.option(
    "--output-format",
    default="summary",
    type=click.Choice(["summary", "json"]),
    help="Output format",
)
def list_content(code: str, content_type: str, output_format: str) -> None:
    """List stored content for an organisation, newest first."""
    config = _get_config()
    configure_logging(config.log_level)
    db = _get_db(config)

    from content_monitor.domains.monitoring.repositories.stored_content_repository import (
        StoredContentRepository,
    )

    items = StoredContentRepository(db).list_content(code, ContentType(content_type.upper()))

    if output_format == "json":
        click.echo(json.dumps([item.model_dump() for item in items], indent=2))
    elif not items:
        click.echo("[INFO] No stored content found.")
    else:
        click.echo(f"[INFO] {len(items)} stored items:\n")
        for item in items:
            click.echo(f"  {item.published_date or '-':<20} {item.title}  ({item.identifier})")
    db.close()
