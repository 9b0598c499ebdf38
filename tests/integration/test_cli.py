"""Integration tests for the command line interface.

Each test gets its own database file through the DATABASE_PATH environment
variable; the HTTP fetcher is replaced by the scripted fake from conftest.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner
from conftest import FakeFetcher, make_teasers

from content_monitor.cli import cli
from content_monitor.domains.monitoring.repositories.event_repository import EventRepository
from content_monitor.domains.monitoring.repositories.monitor_repository import (
    MonitorRepository,
)
from content_monitor.domains.monitoring.repositories.stored_content_repository import (
    StoredContentRepository,
)
from content_monitor.models.content_type import ContentType
from content_monitor.models.events import EventType
from content_monitor.models.monitor import MonitorStatus
from content_monitor.services import teaser_fetcher
from content_monitor.services.database import Database

if TYPE_CHECKING:
    from pathlib import Path

GUID = "RND-ACME-blog"


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the CLI at a fresh database and keep it away from any local .env."""
    path = str(tmp_path / "cli.db")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_PATH", path)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def added(runner: CliRunner, db_path: str) -> str:
    """A roundup monitor created through the CLI; returns its id."""
    result = runner.invoke(
        cli,
        [
            "add-monitor",
            "--code", "ACME",
            "--type", "roundup",
            "--name", "blog",
            "--organisation", "Acme Corp",
            "--url", "https://acme.example/blog.json",
            "--interval", "30",
            "--keywords", "cloud,ai",
        ],
    )
    assert result.exit_code == 0, result.output
    assert f"[SUCCESS] Added monitor {GUID}" in result.output
    db = Database(db_path)
    monitor = MonitorRepository(db).get_by_guid(GUID)
    db.close()
    return monitor.id


def _repos(db_path: str) -> tuple[Database, MonitorRepository, EventRepository]:
    db = Database(db_path)
    return db, MonitorRepository(db), EventRepository(db)


class TestSetup:
    def test_init_db(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(cli, ["init-db"])
        assert result.exit_code == 0
        assert f"[SUCCESS] Database ready at {db_path}" in result.output

    def test_add_monitor_stores_configuration(self, added: str, db_path: str) -> None:
        db, monitor_repo, _ = _repos(db_path)
        monitor = monitor_repo.get(added)
        db.close()
        assert monitor.status == MonitorStatus.WAITING
        assert monitor.interval == 30
        assert monitor.keywords == ["cloud", "ai"]
        assert monitor.organisation == "Acme Corp"

    def test_duplicate_monitor(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(
            cli, ["add-monitor", "--code", "ACME", "--type", "ROUNDUP", "--name", "blog"]
        )
        assert result.exit_code == 0
        assert "[ERROR] Monitor already exists" in result.output

    def test_invalid_interval(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(
            cli,
            ["add-monitor", "--code", "ACME", "--type", "VIDEO", "--name", "c", "--interval", "0"],
        )
        assert "[ERROR]" in result.output

    def test_unknown_type_rejected(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(
            cli, ["add-monitor", "--code", "ACME", "--type", "PODCAST", "--name", "c"]
        )
        assert result.exit_code != 0


class TestMonitorCommands:
    def test_list_monitors(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(cli, ["list-monitors"])
        assert result.exit_code == 0
        assert GUID in result.output
        assert "WAITING" in result.output

    def test_list_monitors_json(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(cli, ["list-monitors", "--output-format", "json"])
        records = json.loads(result.stdout)
        assert [record["id"] for record in records] == [added]
        assert "snapshot" not in records[0]

    def test_list_monitors_filtered(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(cli, ["list-monitors", "--status", "disabled"])
        assert "[INFO] No monitors found." in result.output

    def test_list_monitors_by_site(self, runner: CliRunner, db_path: str) -> None:
        runner.invoke(
            cli,
            ["add-monitor", "--code", "ACME", "--type", "EVENT", "--name", "uk", "--sites", "uk"],
        )
        result = runner.invoke(cli, ["list-monitors", "--site", "us"])
        assert "[INFO] No monitors found." in result.output
        result = runner.invoke(cli, ["list-monitors", "--site", "uk"])
        assert "EVT-ACME-uk" in result.output

    def test_show_monitor(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(cli, ["show-monitor", GUID, "--snapshot"])
        assert result.exit_code == 0
        assert f"Id: {added}" in result.output
        assert "Status: WAITING" in result.output
        assert "Interval: 30 minutes" in result.output
        assert '"roundups": []' in result.output

    def test_show_unknown_monitor(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(cli, ["show-monitor", "RND-NOPE-x"])
        assert "[ERROR] Monitor not found" in result.output

    def test_lifecycle(self, runner: CliRunner, added: str) -> None:
        result = runner.invoke(cli, ["disable-monitor", GUID])
        assert f"[SUCCESS] {GUID} is now DISABLED" in result.output
        result = runner.invoke(cli, ["enable-monitor", added])
        assert f"[SUCCESS] {GUID} is now WAITING" in result.output
        result = runner.invoke(cli, ["restart-monitor", GUID])
        assert f"[SUCCESS] {GUID} is now RESUMING" in result.output


class TestCheckAndEvents:
    @pytest.fixture
    def fetcher(self, monkeypatch: pytest.MonkeyPatch) -> FakeFetcher:
        fake = FakeFetcher(make_teasers(2, date="2026-02-25 09:00:00"))
        monkeypatch.setattr(teaser_fetcher, "JsonTeaserFetcher", lambda timeout: fake)
        return fake

    def test_check_then_resolve_change(
        self, runner: CliRunner, added: str, db_path: str, fetcher: FakeFetcher
    ) -> None:
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 0, result.output
        assert "[SUCCESS] Monitor check complete" in result.output
        assert "changed: 1" in result.output
        assert fetcher.requests[0].keywords == ("cloud", "ai")

        db, monitor_repo, event_repo = _repos(db_path)
        change = event_repo.list_all(EventType.CHANGE)[0]
        db.close()

        result = runner.invoke(cli, ["list-events", "--open", "--monitor", GUID])
        assert change.id in result.output

        result = runner.invoke(
            cli, ["resolve-event", change.id, "--status", "resolved", "--user", "jane"]
        )
        assert f"[SUCCESS] CHANGE {change.id} is RESOLVED; {GUID} is RESUMING" in result.output

        db, monitor_repo, _ = _repos(db_path)
        assert monitor_repo.get(added).current_snapshot().count == 2
        db.close()

    def test_check_json_output(
        self, runner: CliRunner, added: str, fetcher: FakeFetcher
    ) -> None:
        result = runner.invoke(cli, ["check", GUID, "--output-format", "json"])
        summary = json.loads(result.stdout.split("\n", 1)[1])
        assert summary["processed"] == 1
        assert summary["changed"] == 1

    def test_check_unknown_monitor(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(cli, ["check", "RND-NOPE-x"])
        assert "[ERROR] Monitor not found" in result.output

    def test_refresh_without_open_change(
        self, runner: CliRunner, added: str, fetcher: FakeFetcher
    ) -> None:
        result = runner.invoke(cli, ["refresh-change", GUID])
        assert f"[INFO] Nothing to update for {GUID}" in result.output

    def test_raise_alert_and_review(self, runner: CliRunner, added: str, db_path: str) -> None:
        result = runner.invoke(
            cli, ["raise-alert", GUID, "--user", "ops", "--reason", "suspended"]
        )
        assert "[SUCCESS] Raised alert" in result.output
        result = runner.invoke(cli, ["raise-alert", GUID, "--user", "ops"])
        assert f"[INFO] {GUID} is already alerting" in result.output

        result = runner.invoke(
            cli, ["raise-review", GUID, "--user", "ops", "--notes", "login wall"]
        )
        assert "[SUCCESS] Raised review" in result.output

        result = runner.invoke(cli, ["list-events", "--type", "alert"])
        assert "SUSPENDED" in result.output

        db, monitor_repo, _ = _repos(db_path)
        assert monitor_repo.get(added).status == MonitorStatus.REVIEW
        db.close()

    def test_resolve_unknown_event(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(
            cli, ["resolve-event", "nope", "--status", "RESOLVED", "--user", "j"]
        )
        assert "[ERROR] Event not found: nope" in result.output

    def test_resolve_with_bad_status(self, runner: CliRunner, added: str, db_path: str) -> None:
        runner.invoke(cli, ["raise-alert", GUID, "--user", "ops"])
        db, _, event_repo = _repos(db_path)
        alert = event_repo.list_all(EventType.ALERT)[0]
        db.close()
        result = runner.invoke(
            cli, ["resolve-event", alert.id, "--type", "ALERT", "--status", "DONE", "--user", "j"]
        )
        assert "[ERROR]" in result.output

    def test_no_events(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(cli, ["list-events"])
        assert "[INFO] No events found." in result.output


class TestStoredContent:
    def test_store_content(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(
            cli,
            [
                "store-content",
                "--code", "ACME",
                "--type", "VIDEO",
                "--title", "Launch keynote",
                "--identifier", "v123",
                "--published-date", "2026-01-15",
            ],
        )
        assert result.exit_code == 0
        assert "[SUCCESS] Stored VIDEO content 'Launch keynote' for ACME" in result.output

        db = Database(db_path)
        stored = StoredContentRepository(db).lookup("ACME", ContentType.VIDEO).by_identifier("v123")
        db.close()
        assert stored is not None
        assert stored.title == "Launch keynote"

    def test_list_content(self, runner: CliRunner, db_path: str) -> None:
        for title, identifier, date in (
            ("Older post", "https://acme.example/1", "2026-01-01"),
            ("Newer post", "https://acme.example/2", "2026-02-01"),
        ):
            runner.invoke(
                cli,
                [
                    "store-content",
                    "--code", "ACME",
                    "--type", "ROUNDUP",
                    "--title", title,
                    "--identifier", identifier,
                    "--published-date", date,
                ],
            )

        result = runner.invoke(
            cli, ["list-content", "--code", "ACME", "--type", "roundup", "--output-format", "json"]
        )
        assert result.exit_code == 0, result.output
        assert [item["title"] for item in json.loads(result.stdout)] == [
            "Newer post",
            "Older post",
        ]

    def test_list_content_empty(self, runner: CliRunner, db_path: str) -> None:
        result = runner.invoke(cli, ["list-content", "--code", "ACME", "--type", "EBOOK"])
        assert "[INFO] No stored content found." in result.output
