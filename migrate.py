import logging
import sqlite3
import sys

LOGGER = logging.getLogger(__name__)

# Each entry is one schema version. Versions apply in order, exactly once.
MIGRATIONS: list[list[str]] = [
    # 1: catalog, templates, sessions and the set ledger
    [
        """CREATE TABLE IF NOT EXISTS exercises (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                name_norm TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            );""",
        """CREATE TABLE IF NOT EXISTS exercise_options (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                exercise_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                name_norm TEXT NOT NULL,
                order_index INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE(exercise_id, name_norm),
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
            );""",
        """CREATE TABLE IF NOT EXISTS templates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                name_norm TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            );""",
        """CREATE TABLE IF NOT EXISTS template_slots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                template_id INTEGER NOT NULL,
                slot_index INTEGER NOT NULL,
                name TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(template_id, slot_index),
                FOREIGN KEY(template_id) REFERENCES templates(id) ON DELETE CASCADE
            );""",
        """CREATE TABLE IF NOT EXISTS template_slot_options (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                template_slot_id INTEGER NOT NULL,
                exercise_id INTEGER NOT NULL,
                exercise_option_id INTEGER,
                order_index INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE(template_slot_id, exercise_id, exercise_option_id),
                FOREIGN KEY(template_slot_id) REFERENCES template_slots(id) ON DELETE CASCADE,
                FOREIGN KEY(exercise_id) REFERENCES exercises(id),
                FOREIGN KEY(exercise_option_id) REFERENCES exercise_options(id)
            );""",
        """CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                performed_at TEXT NOT NULL,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'final')),
                template_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY(template_id) REFERENCES templates(id) ON DELETE SET NULL
            );""",
        """CREATE TABLE IF NOT EXISTS session_slots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                template_slot_id INTEGER,
                slot_index INTEGER NOT NULL,
                name TEXT,
                selected_session_slot_choice_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE,
                FOREIGN KEY(template_slot_id) REFERENCES template_slots(id) ON DELETE SET NULL
            );""",
        """CREATE TABLE IF NOT EXISTS session_slot_choices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_slot_id INTEGER NOT NULL,
                template_slot_option_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(session_slot_id, template_slot_option_id),
                FOREIGN KEY(session_slot_id) REFERENCES session_slots(id) ON DELETE CASCADE,
                FOREIGN KEY(template_slot_option_id) REFERENCES template_slot_options(id) ON DELETE CASCADE
            );""",
        """CREATE TABLE IF NOT EXISTS sets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_slot_choice_id INTEGER NOT NULL,
                set_index INTEGER NOT NULL,
                weight REAL NOT NULL DEFAULT 0,
                reps INTEGER NOT NULL DEFAULT 0,
                rpe REAL,
                notes TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(session_slot_choice_id, set_index),
                FOREIGN KEY(session_slot_choice_id) REFERENCES session_slot_choices(id) ON DELETE CASCADE
            );""",
        """CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );""",
        "CREATE INDEX IF NOT EXISTS idx_sessions_status_date ON sessions(status, performed_at);",
        "CREATE INDEX IF NOT EXISTS idx_session_slots_session ON session_slots(session_id);",
        "CREATE INDEX IF NOT EXISTS idx_sets_choice ON sets(session_slot_choice_id);",
        # UNIQUE above treats NULL variants as distinct
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_slot_options_no_variant "
        "ON template_slot_options(template_slot_id, exercise_id, COALESCE(exercise_option_id, 0));",
    ],
    # 2: planned structure per template slot
    [
        """CREATE TABLE IF NOT EXISTS template_prescribed_sets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                template_slot_id INTEGER NOT NULL,
                set_index INTEGER NOT NULL,
                weight REAL,
                reps INTEGER,
                rpe REAL,
                notes TEXT,
                rest_seconds INTEGER,
                created_at TEXT NOT NULL,
                UNIQUE(template_slot_id, set_index),
                FOREIGN KEY(template_slot_id) REFERENCES template_slots(id) ON DELETE CASCADE
            );""",
    ],
    # 3: completion, rest and warm-up tracking on sets
    [
        "ALTER TABLE sets ADD COLUMN completed INTEGER NOT NULL DEFAULT 0;",
        "ALTER TABLE sets ADD COLUMN rest_seconds INTEGER;",
        "ALTER TABLE sets ADD COLUMN is_warmup INTEGER NOT NULL DEFAULT 0;",
    ],
    # 4: drop sets
    [
        """CREATE TABLE IF NOT EXISTS drop_set_segments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                set_id INTEGER NOT NULL,
                segment_index INTEGER NOT NULL,
                weight REAL NOT NULL DEFAULT 0,
                reps INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE(set_id, segment_index),
                FOREIGN KEY(set_id) REFERENCES sets(id) ON DELETE CASCADE
            );""",
    ],
    # 5: muscle metadata, personal records and body weight
    [
        "ALTER TABLE exercises ADD COLUMN primary_muscle TEXT;",
        "ALTER TABLE exercises ADD COLUMN secondary_muscle TEXT;",
        "ALTER TABLE exercises ADD COLUMN aliases TEXT;",
        "ALTER TABLE exercises ADD COLUMN equipment TEXT;",
        "ALTER TABLE exercises ADD COLUMN movement_pattern TEXT;",
        """CREATE TABLE IF NOT EXISTS personal_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                exercise_id INTEGER NOT NULL,
                session_id INTEGER NOT NULL,
                pr_type TEXT NOT NULL CHECK (pr_type IN ('e1rm', 'weight')),
                value REAL NOT NULL,
                previous_value REAL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE,
                FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
            );""",
        "CREATE INDEX IF NOT EXISTS idx_personal_records_session ON personal_records(session_id);",
        """CREATE TABLE IF NOT EXISTS body_weight (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                weight REAL NOT NULL,
                unit TEXT NOT NULL DEFAULT 'kg',
                measured_at TEXT NOT NULL
            );""",
    ],
    # 6: exercise guides
    [
        "ALTER TABLE exercises ADD COLUMN video_url TEXT;",
        "ALTER TABLE exercises ADD COLUMN instructions TEXT;",
        "ALTER TABLE exercises ADD COLUMN tips TEXT;",
    ],
]

LATEST_VERSION = len(MIGRATIONS)


def current_version(conn: sqlite3.Connection) -> int:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY);"
    )
    row = conn.execute("SELECT MAX(version) FROM schema_migrations;").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def apply_migrations(conn: sqlite3.Connection) -> int:
    """Apply every pending migration and return the resulting version.

    ``conn`` must be in autocommit mode (``isolation_level=None``); each
    version runs inside its own ``BEGIN``/``COMMIT`` block and is rolled
    back as a whole if any statement fails.
    """
    version = current_version(conn)
    for index in range(version, LATEST_VERSION):
        conn.execute("BEGIN;")
        try:
            for statement in MIGRATIONS[index]:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_migrations (version) VALUES (?);", (index + 1,)
            )
        except sqlite3.Error:
            conn.execute("ROLLBACK;")
            LOGGER.error("migration %s failed", index + 1)
            raise
        conn.execute("COMMIT;")
        LOGGER.info("applied schema migration %s", index + 1)
    return max(version, LATEST_VERSION)


def migrate(db_path: str = "workout.db") -> int:
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        return apply_migrations(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    path = sys.argv[1] if len(sys.argv) > 1 else "workout.db"
    print(f"schema version {migrate(path)}")
