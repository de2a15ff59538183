"""Tests for CLI commands - configure, enqueue, pending, sync, cache."""

import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner
from fastapi.testclient import TestClient

from ledgersync.client.api import LedgerClient
from ledgersync.client.cli import cli
from ledgersync.client.store import LocalQueueStore
from ledgersync.core.entities import EntityType
from ledgersync.server.app import create_app
from ledgersync.server.database import Database


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temporary config directory."""
    config = tmp_path / ".ledgersync"
    monkeypatch.setenv("LEDGERSYNC_CONFIG_DIR", str(config))
    return config


@pytest.fixture
def server_db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "server.db")
    yield database
    database.close()


@pytest.fixture
def connected(
    runner: CliRunner, config_dir: Path, server_db: Database, monkeypatch: pytest.MonkeyPatch
) -> Database:
    """Configure the CLI and route its HTTP client to an in-process server."""
    result = runner.invoke(cli, ["configure", "--server-url", "http://testserver"])
    assert result.exit_code == 0

    app = create_app(server_db)
    # The package re-exports the sync command under the module's name
    monkeypatch.setattr(
        sys.modules["ledgersync.client.cli.sync"],
        "LedgerClient",
        lambda config: LedgerClient(config, http_client=TestClient(app)),
    )
    return server_db


class TestConfigureCommand:
    """Tests for 'ledgersync configure'."""

    def test_writes_config(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(
            cli, ["configure", "--server-url", "https://ledger.example.com/", "--timeout", "10"]
        )
        assert result.exit_code == 0
        config = json.loads((config_dir / "config.json").read_text())
        assert config == {"server_url": "https://ledger.example.com", "timeout": 10.0}

    def test_sync_requires_configuration(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "No server configured" in result.output


class TestQueueCommands:
    """Tests for 'ledgersync enqueue' and 'ledgersync pending'."""

    def test_enqueue_and_pending(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(
            cli, ["enqueue", "supplier", "create", '{"name": "Acme", "code": "AC"}']
        )
        assert result.exit_code == 0
        assert "Queued #1: create supplier" in result.output

        result = runner.invoke(cli, ["pending"])
        assert result.exit_code == 0
        assert "1 pending change(s)" in result.output
        assert "create supplier" in result.output

    def test_pending_empty(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["pending"])
        assert result.exit_code == 0
        assert "No pending changes." in result.output

    def test_enqueue_warns_on_invalid_payload(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["enqueue", "collection", "create", '{"quantity": 5}'])
        assert result.exit_code == 0
        assert "Missing supplier_id" in result.output

    def test_enqueue_rejects_bad_json(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["enqueue", "supplier", "create", "{not json"])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_enqueue_rejects_unknown_entity(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["enqueue", "invoice", "create", "{}"])
        assert result.exit_code == 2


class TestSyncCommand:
    """Tests for 'ledgersync sync'."""

    def test_sync_pushes_queue(
        self, runner: CliRunner, connected: Database, config_dir: Path
    ) -> None:
        runner.invoke(cli, ["enqueue", "supplier", "create", '{"name": "Acme", "code": "AC"}'])

        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Synced 1 items. 0 failed." in result.output
        assert [s.code for s in connected.list_entities(EntityType.SUPPLIER)] == ["AC"]

        result = runner.invoke(cli, ["pending"])
        assert "No pending changes." in result.output

    def test_sync_reports_conflict(
        self, runner: CliRunner, connected: Database, config_dir: Path
    ) -> None:
        supplier = connected.create_entity(EntityType.SUPPLIER, {"name": "Acme", "code": "AC"})
        connected.update_entity(EntityType.SUPPLIER, supplier.id, {"phone": "server"})
        payload = json.dumps({"id": supplier.id, "name": "Acme", "code": "AC", "phone": "local", "version": 1})
        runner.invoke(cli, ["enqueue", "supplier", "update", payload])

        result = runner.invoke(cli, ["sync", "--no-full"])

        assert result.exit_code == 0, result.output
        assert f"Conflict on supplier {supplier.id}: server version 2 kept" in result.output
        assert "Your changes discarded: phone, version" in result.output

    def test_sync_update_snapshot(
        self, runner: CliRunner, connected: Database, config_dir: Path
    ) -> None:
        """A full update snapshot queues without warnings and syncs cleanly."""
        supplier = connected.create_entity(EntityType.SUPPLIER, {"name": "Acme", "code": "AC"})
        payload = json.dumps(
            {"id": supplier.id, "version": 1, "name": "Acme", "code": "AC", "phone": "555-0100"}
        )

        result = runner.invoke(cli, ["enqueue", "supplier", "update", payload])
        assert result.exit_code == 0
        assert "Warning" not in result.output

        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Synced 1 items. 0 failed." in result.output
        stored = connected.get_entity(EntityType.SUPPLIER, supplier.id)
        assert stored.phone == "555-0100"
        assert stored.version == 2

    def test_sync_exit_code_on_failure(
        self, runner: CliRunner, connected: Database, config_dir: Path
    ) -> None:
        runner.invoke(cli, ["enqueue", "payment", "create", '{"supplier_id": 1, "amount": 0}'])
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "Synced 0 items. 1 failed." in result.output


class TestCacheCommand:
    """Tests for 'ledgersync cache'."""

    def test_cache_after_full_sync(
        self, runner: CliRunner, connected: Database, config_dir: Path
    ) -> None:
        connected.create_entity(EntityType.PRODUCT, {"name": "Milk", "base_unit": "L"})
        runner.invoke(cli, ["sync"])

        result = runner.invoke(cli, ["cache", "product"])

        assert result.exit_code == 0
        assert '"name": "Milk"' in result.output

    def test_cache_empty(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["cache", "supplier"])
        assert "No cached suppliers." in result.output

    def test_cache_reads_store(self, runner: CliRunner, config_dir: Path) -> None:
        store = LocalQueueStore(config_dir / "queue.db")
        store.cache_write(EntityType.SUPPLIER, [{"id": 1, "name": "Acme", "is_active": False}])
        store.close()

        assert "Acme" not in runner.invoke(cli, ["cache", "supplier"]).output
        assert "Acme" in runner.invoke(cli, ["cache", "supplier", "--all"]).output
