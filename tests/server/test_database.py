"""Tests for server database operations."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from ledgersync.core.entities import EntityType
from ledgersync.server import database as database_module
from ledgersync.server.database import Database, EntityNotFoundError
from ledgersync.server.guard import VersionConflictError


@pytest.fixture
def db(tmp_path) -> Database:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def supplier_id(db: Database) -> int:
    supplier = db.create_entity(EntityType.SUPPLIER, {"name": "Acme", "code": "AC"})
    return supplier.id


class TestDatabaseCreation:
    """Tests for database initialization."""

    def test_creates_db_file(self, tmp_path) -> None:
        """Database should create SQLite file."""
        db_path = tmp_path / "test.db"
        db = Database(db_path)
        assert db_path.exists()
        db.close()

    def test_uses_wal_mode(self, tmp_path) -> None:
        """Database should use WAL mode for concurrency."""
        db = Database(tmp_path / "test.db")
        with db._engine.connect() as conn:
            result = conn.exec_driver_sql("PRAGMA journal_mode").fetchone()
        assert result is not None
        assert result[0].lower() == "wal"
        db.close()

    def test_foreign_keys_enforced(self, db: Database) -> None:
        """Collections must reference existing suppliers and products."""
        with pytest.raises(IntegrityError):
            db.create_entity(
                EntityType.COLLECTION,
                {"supplier_id": 999, "product_id": 999, "quantity": 5.0},
            )


class TestCreate:
    """Tests for entity creation."""

    def test_create_starts_at_version_one(self, db: Database) -> None:
        supplier = db.create_entity(EntityType.SUPPLIER, {"name": "Acme", "code": "AC"})
        assert supplier.id is not None
        assert supplier.version == 1
        assert supplier.is_active is True
        assert supplier.deleted_at is None

    def test_create_ignores_supplied_version(self, db: Database) -> None:
        """Creation always starts the counter at 1."""
        product = db.create_entity(
            EntityType.PRODUCT, {"name": "Milk", "base_unit": "L", "version": 5}
        )
        assert product.version == 1

    def test_duplicate_code_rejected(self, db: Database, supplier_id: int) -> None:
        with pytest.raises(IntegrityError):
            db.create_entity(EntityType.SUPPLIER, {"name": "Other", "code": "AC"})

    def test_column_defaults(self, db: Database, supplier_id: int) -> None:
        payment = db.create_entity(
            EntityType.PAYMENT,
            {"supplier_id": supplier_id, "amount": 100.0, "type": "advance"},
        )
        assert payment.payment_date is not None
        assert payment.version == 1


class TestRead:
    """Tests for get and list."""

    def test_get_missing_returns_none(self, db: Database) -> None:
        assert db.get_entity(EntityType.SUPPLIER, 42) is None

    def test_list_ordered_by_id(self, db: Database) -> None:
        for code in ("B", "A", "C"):
            db.create_entity(EntityType.SUPPLIER, {"name": code, "code": code})
        names = [s.name for s in db.list_entities(EntityType.SUPPLIER)]
        assert names == ["B", "A", "C"]

    def test_list_active_only(self, db: Database) -> None:
        db.create_entity(EntityType.PRODUCT, {"name": "Milk", "base_unit": "L"})
        db.create_entity(
            EntityType.PRODUCT, {"name": "Tea", "base_unit": "kg", "is_active": False}
        )
        assert len(db.list_entities(EntityType.PRODUCT)) == 2
        active = db.list_entities(EntityType.PRODUCT, active_only=True)
        assert [p.name for p in active] == ["Milk"]

    def test_list_active_only_without_flag(self, db: Database, supplier_id: int) -> None:
        """Types without is_active ignore the filter."""
        db.create_entity(
            EntityType.PAYMENT,
            {"supplier_id": supplier_id, "amount": 1.0, "type": "full"},
        )
        assert len(db.list_entities(EntityType.PAYMENT, active_only=True)) == 1


class TestUpdate:
    """Tests for version-checked updates."""

    def test_matching_version_applies(self, db: Database, supplier_id: int) -> None:
        updated = db.update_entity(
            EntityType.SUPPLIER, supplier_id, {"phone": "555"}, client_version=1
        )
        assert updated.phone == "555"
        assert updated.version == 2

    def test_unchecked_update_without_version(self, db: Database, supplier_id: int) -> None:
        """Legacy callers that send no version are not checked."""
        db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "1"})
        updated = db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "2"})
        assert updated.version == 3

    def test_stale_version_rejected(self, db: Database, supplier_id: int) -> None:
        """A stale version raises with the stored state and writes nothing."""
        db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "1"}, client_version=1)

        with pytest.raises(VersionConflictError) as exc_info:
            db.update_entity(
                EntityType.SUPPLIER, supplier_id, {"phone": "stale"}, client_version=1
            )

        error = exc_info.value
        assert error.client_version == 1
        assert error.server_version == 2
        assert error.current_data["phone"] == "1"
        assert error.current_data["version"] == 2
        assert db.get_entity(EntityType.SUPPLIER, supplier_id).phone == "1"

    def test_newer_client_version_rejected(self, db: Database, supplier_id: int) -> None:
        with pytest.raises(VersionConflictError) as exc_info:
            db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "x"}, client_version=3)
        assert exc_info.value.server_version == 1

    def test_noop_update_keeps_version(self, db: Database, supplier_id: int) -> None:
        updated = db.update_entity(
            EntityType.SUPPLIER, supplier_id, {"name": "Acme"}, client_version=1
        )
        assert updated.version == 1

    def test_version_monotonicity(self, db: Database, supplier_id: int) -> None:
        """After N accepted updates the version is 1 + N."""
        n = 6
        for i in range(n):
            db.update_entity(
                EntityType.SUPPLIER, supplier_id, {"phone": str(i)}, client_version=1 + i
            )
        assert db.get_entity(EntityType.SUPPLIER, supplier_id).version == 1 + n

    def test_update_missing(self, db: Database) -> None:
        with pytest.raises(EntityNotFoundError):
            db.update_entity(EntityType.SUPPLIER, 42, {"phone": "1"})

    def test_update_dates(self, db: Database) -> None:
        product = db.create_entity(EntityType.PRODUCT, {"name": "Milk", "base_unit": "L"})
        rate = db.create_entity(
            EntityType.RATE,
            {
                "product_id": product.id,
                "rate": 2.5,
                "unit": "L",
                "effective_from": date(2026, 1, 1),
            },
        )
        updated = db.update_entity(
            EntityType.RATE,
            rate.id,
            {"effective_to": date(2026, 6, 30)},
            client_version=1,
        )
        assert updated.effective_to == date(2026, 6, 30)
        assert updated.version == 2


class TestConcurrentUpdates:
    """At most one of two updates from the same version may win."""

    def test_sequential_same_version(self, db: Database, supplier_id: int) -> None:
        db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "A"}, client_version=1)
        with pytest.raises(VersionConflictError) as exc_info:
            db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "B"}, client_version=1)
        assert exc_info.value.server_version == 2

    def test_race_after_version_check(
        self, db: Database, supplier_id: int, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A writer committing between check and write turns the loser into a conflict."""
        original_check = database_module.check_version
        raced: list[bool] = []

        def racing_check(client_version, entity):
            original_check(client_version, entity)
            if not raced:
                raced.append(True)
                db.update_entity(
                    EntityType.SUPPLIER, supplier_id, {"phone": "winner"}, client_version=1
                )

        monkeypatch.setattr(database_module, "check_version", racing_check)

        with pytest.raises(VersionConflictError) as exc_info:
            db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "loser"}, client_version=1)

        assert exc_info.value.client_version == 1
        assert exc_info.value.server_version == 2
        assert exc_info.value.current_data["phone"] == "winner"
        stored = db.get_entity(EntityType.SUPPLIER, supplier_id)
        assert stored.phone == "winner"
        assert stored.version == 2

    def test_delete_racing_update(
        self, db: Database, supplier_id: int, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An update committing mid-delete is superseded by the delete."""
        original_apply = database_module.apply_changes
        raced: list[bool] = []

        def racing_apply(entity, changes):
            if "deleted_at" in changes and not raced:
                raced.append(True)
                db.update_entity(
                    EntityType.SUPPLIER, supplier_id, {"phone": "winner"}, client_version=1
                )
            return original_apply(entity, changes)

        monkeypatch.setattr(database_module, "apply_changes", racing_apply)

        deleted = db.delete_entity(EntityType.SUPPLIER, supplier_id)

        assert raced == [True]
        assert deleted.version == 3
        assert deleted.phone == "winner"
        assert deleted.deleted_at is not None
        assert db.get_entity(EntityType.SUPPLIER, supplier_id) is None

    def test_delete_racing_delete(
        self, db: Database, supplier_id: int, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The second of two concurrent deletes finds nothing to delete."""
        original_apply = database_module.apply_changes
        raced: list[bool] = []

        def racing_apply(entity, changes):
            if not raced:
                raced.append(True)
                db.delete_entity(EntityType.SUPPLIER, supplier_id)
            return original_apply(entity, changes)

        monkeypatch.setattr(database_module, "apply_changes", racing_apply)

        with pytest.raises(EntityNotFoundError):
            db.delete_entity(EntityType.SUPPLIER, supplier_id)
        assert db.get_entity(EntityType.SUPPLIER, supplier_id) is None

    def test_threaded_updates_one_winner(self, db: Database, supplier_id: int) -> None:
        """Simultaneous updates from version 1 produce exactly one success."""
        import threading

        workers = 4
        barrier = threading.Barrier(workers)
        successes: list[int] = []
        conflicts: list[int] = []
        errors: list[Exception] = []

        def worker(n: int) -> None:
            barrier.wait()
            try:
                db.update_entity(
                    EntityType.SUPPLIER, supplier_id, {"phone": f"t{n}"}, client_version=1
                )
                successes.append(n)
            except VersionConflictError as e:
                conflicts.append(e.server_version)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert len(successes) == 1
        assert conflicts == [2] * (workers - 1)
        assert db.get_entity(EntityType.SUPPLIER, supplier_id).version == 2


class TestDelete:
    """Tests for soft deletion."""

    def test_soft_delete(self, db: Database, supplier_id: int) -> None:
        deleted = db.delete_entity(EntityType.SUPPLIER, supplier_id)
        assert deleted.deleted_at is not None
        assert deleted.version == 2
        assert db.get_entity(EntityType.SUPPLIER, supplier_id) is None
        assert db.list_entities(EntityType.SUPPLIER) == []

    def test_delete_twice(self, db: Database, supplier_id: int) -> None:
        db.delete_entity(EntityType.SUPPLIER, supplier_id)
        with pytest.raises(EntityNotFoundError):
            db.delete_entity(EntityType.SUPPLIER, supplier_id)

    def test_update_deleted(self, db: Database, supplier_id: int) -> None:
        db.delete_entity(EntityType.SUPPLIER, supplier_id)
        with pytest.raises(EntityNotFoundError):
            db.update_entity(EntityType.SUPPLIER, supplier_id, {"phone": "1"})
