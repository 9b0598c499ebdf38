"""CLI entry point for the content monitoring system."""

from __future__ import annotations

import click

from content_monitor.cli.commands import (
    add_monitor,
    check,
    disable_monitor,
    enable_monitor,
    init_db,
    list_events,
    list_content,
    list_monitors,
    raise_alert,
    raise_review,
    refresh_change,
    resolve_event,
    restart_monitor,
    show_monitor,
    store_content,
)


@click.group()
def cli() -> None:
    """Content source monitoring."""


cli.add_command(init_db)
cli.add_command(add_monitor)
cli.add_command(list_monitors)
cli.add_command(show_monitor)
cli.add_command(check)
cli.add_command(refresh_change)
cli.add_command(restart_monitor)
cli.add_command(disable_monitor)
cli.add_command(enable_monitor)
cli.add_command(list_events)
cli.add_command(resolve_event)
cli.add_command(raise_alert)
cli.add_command(raise_review)
cli.add_command(store_content)
cli.add_command(list_content)
