import os
import sqlite3
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import migrate
from db import Database


def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


class TestSchemaMigration:
    def test_fresh_database_reaches_latest_version(self, tmp_path):
        db = Database(str(tmp_path / "test.db"))
        assert db.schema_version() == migrate.LATEST_VERSION
        db.close()

        conn = sqlite3.connect(str(tmp_path / "test.db"))
        tables = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        for table in (
            "exercises",
            "templates",
            "template_slots",
            "template_slot_options",
            "template_prescribed_sets",
            "sessions",
            "session_slots",
            "session_slot_choices",
            "sets",
            "drop_set_segments",
            "personal_records",
            "body_weight",
            "app_settings",
        ):
            assert table in tables
        assert {"completed", "rest_seconds", "is_warmup"} <= set(_columns(conn, "sets"))
        conn.close()

    def test_reopening_applies_nothing(self, tmp_path):
        path = str(tmp_path / "test.db")
        Database(path).close()
        Database(path).close()
        conn = sqlite3.connect(path)
        rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
        assert [r[0] for r in rows] == list(range(1, migrate.LATEST_VERSION + 1))
        conn.close()

    def test_upgrades_partial_schema(self, tmp_path):
        path = str(tmp_path / "old.db")
        conn = sqlite3.connect(path, isolation_level=None)
        migrate.current_version(conn)
        for statement in migrate.MIGRATIONS[0]:
            conn.execute(statement)
        conn.execute("INSERT INTO schema_migrations (version) VALUES (1)")
        conn.execute(
            "INSERT INTO exercises (name, name_norm, created_at) VALUES ('Squat', 'squat', 'x')"
        )
        conn.close()

        db = Database(path)
        assert db.schema_version() == migrate.LATEST_VERSION
        row = db._conn.execute("SELECT name, primary_muscle FROM exercises").fetchone()
        assert row["name"] == "Squat"
        assert row["primary_muscle"] is None
        db.close()

    def test_failed_migration_rolls_back(self, tmp_path, monkeypatch):
        path = str(tmp_path / "test.db")
        Database(path).close()
        broken = migrate.MIGRATIONS + [
            ["CREATE TABLE half_done (id INTEGER);", "THIS IS NOT SQL;"]
        ]
        monkeypatch.setattr(migrate, "MIGRATIONS", broken)
        monkeypatch.setattr(migrate, "LATEST_VERSION", len(broken))

        conn = sqlite3.connect(path, isolation_level=None)
        with pytest.raises(sqlite3.OperationalError):
            migrate.apply_migrations(conn)
        assert migrate.current_version(conn) == len(broken) - 1
        assert (
            conn.execute(
                "SELECT name FROM sqlite_master WHERE name = 'half_done'"
            ).fetchone()
            is None
        )
        conn.close()

    def test_orphans_removed_on_open(self, tmp_path):
        path = str(tmp_path / "test.db")
        Database(path).close()
        conn = sqlite3.connect(path)
        conn.execute("PRAGMA foreign_keys = OFF")
        conn.execute(
            "INSERT INTO session_slots (session_id, slot_index, created_at) VALUES (42, 1, 'x')"
        )
        conn.commit()
        conn.close()

        db = Database(path)
        count = db._conn.execute("SELECT COUNT(*) FROM session_slots").fetchone()[0]
        assert count == 0
        db.close()

    def test_reset_rebuilds_empty_schema(self, tmp_path):
        db = Database(str(tmp_path / "test.db"))
        db._conn.execute(
            "INSERT INTO templates (name, name_norm, created_at) VALUES ('A', 'a', 'x')"
        )
        db.reset()
        assert db.schema_version() == migrate.LATEST_VERSION
        assert db._conn.execute("SELECT COUNT(*) FROM templates").fetchone()[0] == 0
        db.close()
