"""Tests for server-wins conflict resolution."""

import json
import logging

import pytest

from ledgersync.client.sync.conflict import (
    STRATEGY_DESCRIPTION,
    ConflictRecord,
    ResolutionAction,
    build_report,
    has_conflict,
    log_conflict,
    resolve_conflict,
)
from ledgersync.core.entities import EntityType


def make_record(local_version: int, server_version: int) -> ConflictRecord:
    return ConflictRecord(
        entity_type=EntityType.SUPPLIER,
        entity_id=7,
        local_version=local_version,
        server_version=server_version,
        local_data={"id": 7, "name": "Local name", "phone": "111", "version": local_version},
        server_data={"id": 7, "name": "Server name", "phone": "111", "version": server_version},
    )


class TestResolveConflict:
    """Tests for resolve_conflict."""

    def test_equal_versions_use_server(self) -> None:
        """Ties favor the server even when the data differs."""
        record = make_record(local_version=2, server_version=2)
        resolution = resolve_conflict(record)
        assert resolution.action is ResolutionAction.USE_SERVER
        assert resolution.action == "use_server"
        assert resolution.resolved_data == record.server_data

    def test_server_newer_uses_server(self) -> None:
        record = make_record(local_version=1, server_version=2)
        resolution = resolve_conflict(record)
        assert resolution.action is ResolutionAction.USE_SERVER
        assert resolution.resolved_data == record.server_data
        assert "newer" in resolution.reason

    def test_local_newer_retries(self) -> None:
        """A local version ahead of the server is never accepted."""
        resolution = resolve_conflict(make_record(local_version=3, server_version=2))
        assert resolution.action is ResolutionAction.RETRY
        assert resolution.action == "retry"
        assert resolution.resolved_data is None

    @pytest.mark.parametrize(("local", "server"), [(1, 2), (2, 2), (3, 2)])
    def test_idempotent(self, local: int, server: int) -> None:
        """Resolving the same conflict twice gives the same answer."""
        record = make_record(local, server)
        assert resolve_conflict(record) == resolve_conflict(record)

    def test_never_merges_local_fields(self) -> None:
        resolution = resolve_conflict(make_record(local_version=1, server_version=4))
        assert resolution.resolved_data["name"] == "Server name"


class TestHasConflict:
    """Tests for has_conflict."""

    def test_has_conflict(self) -> None:
        assert has_conflict(1, 2) is True
        assert has_conflict(3, 2) is True
        assert has_conflict(2, 2) is False


class TestLogConflict:
    """Tests for the audit log line."""

    def test_logs_json(self, caplog: pytest.LogCaptureFixture) -> None:
        record = make_record(local_version=1, server_version=2)
        with caplog.at_level(logging.WARNING, logger="ledgersync.client.sync.conflict"):
            log_conflict(record, resolve_conflict(record))

        message = caplog.records[-1].getMessage()
        assert message.startswith("[Conflict Resolution] ")
        entry = json.loads(message.removeprefix("[Conflict Resolution] "))
        assert entry["entity"] == "supplier"
        assert entry["entity_id"] == 7
        assert entry["local_version"] == 1
        assert entry["server_version"] == 2
        assert entry["resolution"] == "use_server"

    def test_retry_logged_as_error(self, caplog: pytest.LogCaptureFixture) -> None:
        record = make_record(local_version=5, server_version=2)
        with caplog.at_level(logging.WARNING, logger="ledgersync.client.sync.conflict"):
            log_conflict(record, resolve_conflict(record))
        assert caplog.records[-1].levelno == logging.ERROR


class TestConflictReport:
    """Tests for the user-facing report."""

    def test_report_lists_overwritten_fields(self) -> None:
        record = make_record(local_version=1, server_version=2)
        report = build_report(record, resolve_conflict(record))
        assert report.your_changes == record.local_data
        assert report.server_changes == record.server_data
        assert report.changed_fields == ["name", "version"]

    def test_strategy_description(self) -> None:
        assert STRATEGY_DESCRIPTION.startswith("Conflict Resolution Strategy:")
        assert "Server is ALWAYS the authoritative source of truth" in STRATEGY_DESCRIPTION
