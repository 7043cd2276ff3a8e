import datetime
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import migrate
from algorithms import MathTools, WeightConverter
from config import DEFAULT_DB_PATH, DEFAULT_YAML_PATH, YamlConfig
from models import (
    BodyWeightEntry,
    DraftSlot,
    DropSegment,
    Exercise,
    ExerciseGuide,
    ExerciseOption,
    HistoryItem,
    LastTime,
    PersonalRecord,
    PrescribedSet,
    Session,
    SessionDetailSlot,
    SessionSlot,
    SessionSlotChoice,
    SetInput,
    SetRecord,
    SlotOption,
    Template,
    TemplateDetail,
    TemplateSlot,
    TemplateSlotOption,
)
from settings_schema import SettingsSchema, validate_settings

LOGGER = logging.getLogger(__name__)


def format_timestamp(moment: datetime.datetime) -> str:
    """Render an aware datetime as ISO-8601 UTC with milliseconds and ``Z``."""
    moment = moment.astimezone(datetime.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now() -> str:
    return format_timestamp(datetime.datetime.now(datetime.timezone.utc))


def normalize_name(name: str) -> str:
    """Trim, collapse inner whitespace and lowercase ``name``."""
    return " ".join(name.split()).lower()


class DuplicateError(ValueError):
    """Raised when a write violates a uniqueness constraint."""


class Database:
    """Owns the SQLite connection, schema migrations and transaction scoping."""

    # parent tables first so a removed slot also clears its choices and sets
    _ORPHAN_CLEANUP: List[Tuple[str, str]] = [
        (
            "session_slots",
            "DELETE FROM session_slots WHERE session_id NOT IN (SELECT id FROM sessions);",
        ),
        (
            "session_slot_choices",
            "DELETE FROM session_slot_choices "
            "WHERE session_slot_id NOT IN (SELECT id FROM session_slots) "
            "OR template_slot_option_id NOT IN (SELECT id FROM template_slot_options);",
        ),
        (
            "session_slots",
            "UPDATE session_slots SET selected_session_slot_choice_id = NULL "
            "WHERE selected_session_slot_choice_id IS NOT NULL "
            "AND selected_session_slot_choice_id NOT IN (SELECT id FROM session_slot_choices);",
        ),
        (
            "sets",
            "DELETE FROM sets WHERE session_slot_choice_id NOT IN (SELECT id FROM session_slot_choices);",
        ),
        (
            "drop_set_segments",
            "DELETE FROM drop_set_segments WHERE set_id NOT IN (SELECT id FROM sets);",
        ),
        (
            "template_slot_options",
            "DELETE FROM template_slot_options WHERE template_slot_id NOT IN (SELECT id FROM template_slots);",
        ),
        (
            "template_prescribed_sets",
            "DELETE FROM template_prescribed_sets WHERE template_slot_id NOT IN (SELECT id FROM template_slots);",
        ),
    ]

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(
            db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL;")
        self._ensure_schema()
        self.cleanup_orphans()

    @property
    def path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        The outermost block issues ``BEGIN``/``COMMIT``; nested blocks use
        savepoints so an inner failure can be caught without losing the
        outer work. Any exception rolls back the block and propagates.
        """
        with self._lock:
            depth = self._depth
            if depth == 0:
                self._conn.execute("BEGIN;")
            else:
                self._conn.execute(f"SAVEPOINT sp_{depth};")
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("ROLLBACK;")
                else:
                    self._conn.execute(f"ROLLBACK TO sp_{depth};")
                    self._conn.execute(f"RELEASE sp_{depth};")
                raise
            self._depth -= 1
            if depth == 0:
                self._conn.execute("COMMIT;")
            else:
                self._conn.execute(f"RELEASE sp_{depth};")

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            version = migrate.apply_migrations(conn)
        LOGGER.debug("database %s at schema version %s", self._db_path, version)

    def schema_version(self) -> int:
        with self._connection() as conn:
            return migrate.current_version(conn)

    def cleanup_orphans(self) -> None:
        """Remove child rows whose parent row no longer exists."""
        with self._connection() as conn:
            for table, sql in self._ORPHAN_CLEANUP:
                try:
                    cur = conn.execute(sql)
                except sqlite3.OperationalError as e:
                    LOGGER.debug("skipping orphan cleanup for %s: %s", table, e)
                    continue
                if cur.rowcount:
                    LOGGER.info("removed %s orphaned rows from %s", cur.rowcount, table)

    def reset(self) -> None:
        """Drop every table and rebuild the schema from scratch."""
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys = OFF;")
            try:
                tables = [
                    r[0]
                    for r in conn.execute(
                        "SELECT name FROM sqlite_master "
                        "WHERE type='table' AND name NOT LIKE 'sqlite_%';"
                    ).fetchall()
                ]
                for table in tables:
                    conn.execute(f"DROP TABLE IF EXISTS {table};")
            finally:
                conn.execute("PRAGMA foreign_keys = ON;")
        LOGGER.info("dropped %s tables", len(tables))
        self._ensure_schema()

    def checkpoint(self) -> None:
        """Fold the write-ahead log back into the main database file."""
        if self._db_path == ":memory:":
            return
        with self._connection() as conn:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class BaseRepository:
    """Base repository providing helper methods."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self.db._connection() as conn:
            try:
                cursor = conn.execute(query, params)
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise DuplicateError(str(e)) from e
                if "FOREIGN KEY" in str(e):
                    raise ValueError("referenced row not found") from e
                raise
            return cursor.lastrowid

    def execute_rowcount(self, query: str, params: Tuple = ()) -> int:
        with self.db._connection() as conn:
            return conn.execute(query, params).rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[sqlite3.Row]:
        with self.db._connection() as conn:
            return conn.execute(query, params).fetchall()

    def fetch_one(self, query: str, params: Tuple = ()) -> Optional[sqlite3.Row]:
        with self.db._connection() as conn:
            return conn.execute(query, params).fetchone()

    def transaction(self):
        return self.db.transaction()


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalog."""

    _METADATA = (
        "primary_muscle",
        "secondary_muscle",
        "aliases",
        "equipment",
        "movement_pattern",
    )

    def create(
        self,
        name: str,
        primary_muscle: Optional[str] = None,
        secondary_muscle: Optional[str] = None,
        aliases: Optional[str] = None,
        equipment: Optional[str] = None,
        movement_pattern: Optional[str] = None,
    ) -> int:
        name = " ".join(name.split())
        if not name:
            raise ValueError("exercise name required")
        try:
            return self.execute(
                "INSERT INTO exercises (name, name_norm, primary_muscle, secondary_muscle, "
                "aliases, equipment, movement_pattern, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    name,
                    normalize_name(name),
                    primary_muscle,
                    secondary_muscle,
                    aliases,
                    equipment,
                    movement_pattern,
                    utc_now(),
                ),
            )
        except DuplicateError:
            raise DuplicateError(f"exercise already exists: {name}")

    def fetch_all(self) -> List[Exercise]:  # type: ignore[override]
        rows = super().fetch_all("SELECT * FROM exercises ORDER BY name COLLATE NOCASE;")
        return [Exercise.from_row(r) for r in rows]

    def fetch_detail(self, exercise_id: int) -> Exercise:
        row = self.fetch_one("SELECT * FROM exercises WHERE id = ?;", (exercise_id,))
        if row is None:
            raise ValueError("exercise not found")
        return Exercise.from_row(row)

    def find_by_name(self, name: str) -> Optional[Exercise]:
        row = self.fetch_one(
            "SELECT * FROM exercises WHERE name_norm = ?;", (normalize_name(name),)
        )
        return Exercise.from_row(row) if row else None

    def search(self, query: str) -> List[Exercise]:
        """Match the query against names and ``|``-separated aliases."""
        pattern = f"%{normalize_name(query)}%"
        rows = super().fetch_all(
            "SELECT * FROM exercises WHERE name_norm LIKE ? OR LOWER(COALESCE(aliases, '')) LIKE ? "
            "ORDER BY name COLLATE NOCASE;",
            (pattern, pattern),
        )
        return [Exercise.from_row(r) for r in rows]

    def rename(self, exercise_id: int, name: str) -> None:
        self.fetch_detail(exercise_id)
        name = " ".join(name.split())
        if not name:
            raise ValueError("exercise name required")
        self.execute(
            "UPDATE exercises SET name = ?, name_norm = ? WHERE id = ?;",
            (name, normalize_name(name), exercise_id),
        )

    def update_metadata(self, exercise_id: int, **fields: Optional[str]) -> None:
        unknown = set(fields) - set(self._METADATA)
        if unknown:
            raise ValueError(f"unknown exercise fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        self.fetch_detail(exercise_id)
        assignments = ", ".join(f"{k} = ?" for k in fields)
        self.execute(
            f"UPDATE exercises SET {assignments} WHERE id = ?;",
            tuple(fields.values()) + (exercise_id,),
        )

    def is_in_use(self, exercise_id: int) -> bool:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM template_slot_options WHERE exercise_id = ?;",
            (exercise_id,),
        )
        return bool(row[0])

    def delete(self, exercise_id: int) -> bool:
        """Delete an exercise and its variants.

        Returns ``False`` without deleting anything when a template slot
        still offers the exercise.
        """
        self.fetch_detail(exercise_id)
        if self.is_in_use(exercise_id):
            return False
        with self.transaction():
            self.execute("DELETE FROM exercise_options WHERE exercise_id = ?;", (exercise_id,))
            self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))
        LOGGER.info("deleted exercise %s", exercise_id)
        return True

    def guide(self, exercise_id: int) -> ExerciseGuide:
        row = self.fetch_one(
            "SELECT name, video_url, instructions, tips FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if row is None:
            raise ValueError("exercise not found")
        return ExerciseGuide.from_row(row)

    def set_guide(
        self,
        exercise_id: int,
        video_url: Optional[str],
        instructions: Optional[str],
        tips: Optional[str],
    ) -> None:
        self.fetch_detail(exercise_id)
        self.execute(
            "UPDATE exercises SET video_url = ?, instructions = ?, tips = ? WHERE id = ?;",
            (video_url, instructions, tips, exercise_id),
        )


class ExerciseOptionRepository(BaseRepository):
    """Repository for named exercise variants."""

    def create(self, exercise_id: int, name: str, order_index: Optional[int] = None) -> int:
        name = " ".join(name.split())
        if not name:
            raise ValueError("option name required")
        if self.fetch_one("SELECT id FROM exercises WHERE id = ?;", (exercise_id,)) is None:
            raise ValueError("exercise not found")
        if order_index is None:
            row = self.fetch_one(
                "SELECT COALESCE(MAX(order_index), -1) + 1 FROM exercise_options WHERE exercise_id = ?;",
                (exercise_id,),
            )
            order_index = int(row[0])
        try:
            return self.execute(
                "INSERT INTO exercise_options (exercise_id, name, name_norm, order_index, created_at) "
                "VALUES (?, ?, ?, ?, ?);",
                (exercise_id, name, normalize_name(name), order_index, utc_now()),
            )
        except DuplicateError:
            raise DuplicateError(f"option already exists: {name}")

    def fetch_for_exercise(self, exercise_id: int) -> List[ExerciseOption]:
        rows = self.fetch_all(
            "SELECT * FROM exercise_options WHERE exercise_id = ? ORDER BY order_index, id;",
            (exercise_id,),
        )
        return [ExerciseOption.from_row(r) for r in rows]

    def fetch_detail(self, option_id: int) -> ExerciseOption:
        row = self.fetch_one("SELECT * FROM exercise_options WHERE id = ?;", (option_id,))
        if row is None:
            raise ValueError("exercise option not found")
        return ExerciseOption.from_row(row)

    def delete(self, option_id: int) -> bool:
        """Delete a variant unless a template slot still offers it."""
        row = self.fetch_one(
            "SELECT COUNT(*) FROM template_slot_options WHERE exercise_option_id = ?;",
            (option_id,),
        )
        if row[0]:
            return False
        self.execute("DELETE FROM exercise_options WHERE id = ?;", (option_id,))
        return True


class TemplateSlotRepository(BaseRepository):
    """Repository for ordered template slots."""

    def add(self, template_id: int, slot_index: Optional[int] = None, name: Optional[str] = None) -> int:
        if self.fetch_one("SELECT id FROM templates WHERE id = ?;", (template_id,)) is None:
            raise ValueError("template not found")
        if slot_index is None:
            row = self.fetch_one(
                "SELECT COALESCE(MAX(slot_index), 0) + 1 FROM template_slots WHERE template_id = ?;",
                (template_id,),
            )
            slot_index = int(row[0])
        if slot_index < 1:
            raise ValueError("slot_index must be positive")
        return self.execute(
            "INSERT INTO template_slots (template_id, slot_index, name, created_at) VALUES (?, ?, ?, ?);",
            (template_id, slot_index, name, utc_now()),
        )

    def fetch_for_template(self, template_id: int) -> List[TemplateSlot]:
        rows = self.fetch_all(
            "SELECT * FROM template_slots WHERE template_id = ? ORDER BY slot_index;",
            (template_id,),
        )
        return [TemplateSlot.from_row(r) for r in rows]

    def fetch_detail(self, slot_id: int) -> TemplateSlot:
        row = self.fetch_one("SELECT * FROM template_slots WHERE id = ?;", (slot_id,))
        if row is None:
            raise ValueError("slot not found")
        return TemplateSlot.from_row(row)

    def rename(self, slot_id: int, name: Optional[str]) -> None:
        self.fetch_detail(slot_id)
        self.execute("UPDATE template_slots SET name = ? WHERE id = ?;", (name, slot_id))

    def delete(self, slot_id: int) -> None:
        with self.transaction():
            self.execute("DELETE FROM template_prescribed_sets WHERE template_slot_id = ?;", (slot_id,))
            self.execute("DELETE FROM template_slot_options WHERE template_slot_id = ?;", (slot_id,))
            self.execute("DELETE FROM template_slots WHERE id = ?;", (slot_id,))


class TemplateSlotOptionRepository(BaseRepository):
    """Repository for the exercises selectable in a template slot."""

    _SELECT = (
        "SELECT o.*, e.name AS exercise_name, eo.name AS option_name "
        "FROM template_slot_options o "
        "JOIN exercises e ON e.id = o.exercise_id "
        "LEFT JOIN exercise_options eo ON eo.id = o.exercise_option_id "
    )

    def add(
        self,
        slot_id: int,
        exercise_id: int,
        exercise_option_id: Optional[int] = None,
        order_index: Optional[int] = None,
    ) -> int:
        if self.fetch_one("SELECT id FROM template_slots WHERE id = ?;", (slot_id,)) is None:
            raise ValueError("slot not found")
        if self.fetch_one("SELECT id FROM exercises WHERE id = ?;", (exercise_id,)) is None:
            raise ValueError("exercise not found")
        if exercise_option_id is not None:
            row = self.fetch_one(
                "SELECT exercise_id FROM exercise_options WHERE id = ?;",
                (exercise_option_id,),
            )
            if row is None or row[0] != exercise_id:
                raise ValueError("exercise option does not belong to exercise")
        # NULL variants are distinct to a UNIQUE constraint, so check explicitly
        existing = self.fetch_one(
            "SELECT id FROM template_slot_options "
            "WHERE template_slot_id = ? AND exercise_id = ? AND exercise_option_id IS ?;",
            (slot_id, exercise_id, exercise_option_id),
        )
        if existing is not None:
            raise DuplicateError("exercise already offered in this slot")
        if order_index is None:
            row = self.fetch_one(
                "SELECT COALESCE(MAX(order_index), -1) + 1 FROM template_slot_options WHERE template_slot_id = ?;",
                (slot_id,),
            )
            order_index = int(row[0])
        return self.execute(
            "INSERT INTO template_slot_options (template_slot_id, exercise_id, exercise_option_id, order_index, created_at) "
            "VALUES (?, ?, ?, ?, ?);",
            (slot_id, exercise_id, exercise_option_id, order_index, utc_now()),
        )

    def fetch_for_slot(self, slot_id: int) -> List[TemplateSlotOption]:
        rows = self.fetch_all(
            self._SELECT + "WHERE o.template_slot_id = ? ORDER BY o.order_index, o.id;",
            (slot_id,),
        )
        return [TemplateSlotOption.from_row(r) for r in rows]

    def fetch_for_template(self, template_id: int) -> List[TemplateSlotOption]:
        rows = self.fetch_all(
            self._SELECT
            + "JOIN template_slots ts ON ts.id = o.template_slot_id "
            "WHERE ts.template_id = ? ORDER BY ts.slot_index, o.order_index, o.id;",
            (template_id,),
        )
        return [TemplateSlotOption.from_row(r) for r in rows]

    def fetch_detail(self, option_id: int) -> TemplateSlotOption:
        row = self.fetch_one(self._SELECT + "WHERE o.id = ?;", (option_id,))
        if row is None:
            raise ValueError("slot option not found")
        return TemplateSlotOption.from_row(row)

    def delete(self, option_id: int) -> None:
        self.execute("DELETE FROM template_slot_options WHERE id = ?;", (option_id,))


class PrescribedSetRepository(BaseRepository):
    """Repository for the planned sets of a template slot."""

    def upsert(
        self,
        slot_id: int,
        set_index: int,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        rpe: Optional[float] = None,
        notes: Optional[str] = None,
        rest_seconds: Optional[int] = None,
    ) -> int:
        if set_index < 1:
            raise ValueError("set_index must be positive")
        if not MathTools.valid_rpe(rpe):
            raise ValueError("rpe must be between 1 and 10 in steps of 0.5")
        if reps is not None and not 0 <= reps <= MathTools.MAX_REPS:
            raise ValueError(f"reps must be between 0 and {MathTools.MAX_REPS}")
        if weight is not None and weight < 0:
            raise ValueError("weight must be non-negative")
        self.execute(
            "INSERT INTO template_prescribed_sets (template_slot_id, set_index, weight, reps, rpe, notes, rest_seconds, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(template_slot_id, set_index) DO UPDATE SET "
            "weight=excluded.weight, reps=excluded.reps, rpe=excluded.rpe, "
            "notes=excluded.notes, rest_seconds=excluded.rest_seconds;",
            (slot_id, set_index, weight, reps, rpe, notes, rest_seconds, utc_now()),
        )
        row = self.fetch_one(
            "SELECT id FROM template_prescribed_sets WHERE template_slot_id = ? AND set_index = ?;",
            (slot_id, set_index),
        )
        return int(row[0])

    def fetch_for_slot(self, slot_id: int) -> List[PrescribedSet]:
        rows = self.fetch_all(
            "SELECT * FROM template_prescribed_sets WHERE template_slot_id = ? ORDER BY set_index;",
            (slot_id,),
        )
        return [PrescribedSet.from_row(r) for r in rows]

    def fetch_for_template(self, template_id: int) -> List[PrescribedSet]:
        rows = self.fetch_all(
            "SELECT p.* FROM template_prescribed_sets p "
            "JOIN template_slots ts ON ts.id = p.template_slot_id "
            "WHERE ts.template_id = ? ORDER BY ts.slot_index, p.set_index;",
            (template_id,),
        )
        return [PrescribedSet.from_row(r) for r in rows]

    def delete(self, slot_id: int, set_index: int) -> None:
        self.execute(
            "DELETE FROM template_prescribed_sets WHERE template_slot_id = ? AND set_index = ?;",
            (slot_id, set_index),
        )

    def replace(self, slot_id: int, rows: Iterable[SetInput]) -> None:
        with self.transaction():
            self.execute("DELETE FROM template_prescribed_sets WHERE template_slot_id = ?;", (slot_id,))
            for row in rows:
                self.upsert(
                    slot_id,
                    row.set_index,
                    row.weight,
                    row.reps,
                    row.rpe,
                    row.notes,
                    row.rest_seconds,
                )


class TemplateRepository(BaseRepository):
    """Repository for workout templates."""

    def __init__(
        self,
        db: Database,
        slots: Optional[TemplateSlotRepository] = None,
        options: Optional[TemplateSlotOptionRepository] = None,
        prescribed: Optional[PrescribedSetRepository] = None,
    ) -> None:
        super().__init__(db)
        self.slots = slots or TemplateSlotRepository(db)
        self.options = options or TemplateSlotOptionRepository(db)
        self.prescribed = prescribed or PrescribedSetRepository(db)

    def create(self, name: str) -> int:
        name = " ".join(name.split())
        if not name:
            raise ValueError("template name required")
        try:
            return self.execute(
                "INSERT INTO templates (name, name_norm, created_at) VALUES (?, ?, ?);",
                (name, normalize_name(name), utc_now()),
            )
        except DuplicateError:
            raise DuplicateError(f"template already exists: {name}")

    def fetch_all(self) -> List[Template]:  # type: ignore[override]
        rows = super().fetch_all("SELECT * FROM templates ORDER BY name COLLATE NOCASE;")
        return [Template.from_row(r) for r in rows]

    def fetch(self, template_id: int) -> Template:
        row = self.fetch_one("SELECT * FROM templates WHERE id = ?;", (template_id,))
        if row is None:
            raise ValueError("template not found")
        return Template.from_row(row)

    def fetch_detail(self, template_id: int) -> TemplateDetail:
        return TemplateDetail(
            template=self.fetch(template_id),
            slots=self.slots.fetch_for_template(template_id),
            options=self.options.fetch_for_template(template_id),
            prescribed=self.prescribed.fetch_for_template(template_id),
        )

    def rename(self, template_id: int, name: str) -> None:
        self.fetch(template_id)
        name = " ".join(name.split())
        if not name:
            raise ValueError("template name required")
        try:
            self.execute(
                "UPDATE templates SET name = ?, name_norm = ? WHERE id = ?;",
                (name, normalize_name(name), template_id),
            )
        except DuplicateError:
            raise DuplicateError(f"template already exists: {name}")

    def delete(self, template_id: int) -> None:
        self.fetch(template_id)
        with self.transaction():
            self.execute(
                "DELETE FROM template_prescribed_sets WHERE template_slot_id IN "
                "(SELECT id FROM template_slots WHERE template_id = ?);",
                (template_id,),
            )
            self.execute(
                "DELETE FROM template_slot_options WHERE template_slot_id IN "
                "(SELECT id FROM template_slots WHERE template_id = ?);",
                (template_id,),
            )
            self.execute("DELETE FROM template_slots WHERE template_id = ?;", (template_id,))
            self.execute("DELETE FROM templates WHERE id = ?;", (template_id,))
        LOGGER.info("deleted template %s", template_id)

    def clone(self, template_id: int, name: str) -> int:
        """Copy a template with its slots, options and prescribed sets."""
        detail = self.fetch_detail(template_id)
        with self.transaction():
            new_id = self.create(name)
            for slot in detail.slots:
                new_slot = self.slots.add(new_id, slot.slot_index, slot.name)
                for opt in detail.options:
                    if opt.template_slot_id == slot.id:
                        self.options.add(
                            new_slot, opt.exercise_id, opt.exercise_option_id, opt.order_index
                        )
                for p in detail.prescribed:
                    if p.template_slot_id == slot.id:
                        self.prescribed.upsert(
                            new_slot, p.set_index, p.weight, p.reps, p.rpe, p.notes, p.rest_seconds
                        )
        return new_id


class SessionRepository(BaseRepository):
    """Repository for session rows and history summaries."""

    def create_draft(self, template_id: Optional[int], notes: Optional[str] = None) -> int:
        now = utc_now()
        return self.execute(
            "INSERT INTO sessions (performed_at, notes, status, template_id, created_at) "
            "VALUES (?, ?, 'draft', ?, ?);",
            (now, notes, template_id, now),
        )

    def fetch(self, session_id: int) -> Session:
        row = self.fetch_one("SELECT * FROM sessions WHERE id = ?;", (session_id,))
        if row is None:
            raise ValueError("session not found")
        return Session.from_row(row)

    def active_draft(self) -> Optional[Session]:
        row = self.fetch_one(
            "SELECT * FROM sessions WHERE status = 'draft' ORDER BY id DESC LIMIT 1;"
        )
        return Session.from_row(row) if row else None

    def finalize(self, session_id: int, performed_at: str) -> None:
        self.execute(
            "UPDATE sessions SET status = 'final', performed_at = ? WHERE id = ?;",
            (performed_at, session_id),
        )

    def update_notes(self, session_id: int, notes: Optional[str]) -> None:
        self.fetch(session_id)
        self.execute("UPDATE sessions SET notes = ? WHERE id = ?;", (notes, session_id))

    def last_selected_option(self, template_id: int, slot_index: int) -> Optional[int]:
        """Option chosen for ``slot_index`` in the latest final session of a template."""
        row = self.fetch_one(
            "SELECT c.template_slot_option_id FROM sessions s "
            "JOIN session_slots ss ON ss.session_id = s.id "
            "JOIN session_slot_choices c ON c.id = ss.selected_session_slot_choice_id "
            "WHERE s.status = 'final' AND s.template_id = ? AND ss.slot_index = ? "
            "ORDER BY s.performed_at DESC, s.id DESC LIMIT 1;",
            (template_id, slot_index),
        )
        return int(row[0]) if row else None

    def list_history(self, limit: Optional[int] = None) -> List[HistoryItem]:
        query = (
            "SELECT s.id, s.performed_at, s.created_at, s.notes, s.template_id, "
            "t.name AS template_name, "
            "(SELECT COUNT(*) FROM session_slots ss WHERE ss.session_id = s.id) AS slots_count, "
            "(SELECT COUNT(*) FROM sets se "
            " JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
            " JOIN session_slots ss ON ss.id = c.session_slot_id "
            " WHERE ss.session_id = s.id) AS sets_count, "
            "(SELECT COUNT(*) FROM sets se "
            " JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
            " JOIN session_slots ss ON ss.id = c.session_slot_id "
            " WHERE ss.session_id = s.id AND se.completed = 1 AND se.is_warmup = 0) AS completed_sets_count, "
            "(SELECT COALESCE(SUM(se.weight * se.reps), 0) FROM sets se "
            " JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
            " JOIN session_slots ss ON ss.id = c.session_slot_id "
            " WHERE ss.session_id = s.id AND se.completed = 1 AND se.is_warmup = 0) AS total_volume, "
            "(SELECT REPLACE(GROUP_CONCAT(DISTINCT e.name), ',', ', ') FROM session_slots ss "
            " JOIN session_slot_choices c ON c.id = ss.selected_session_slot_choice_id "
            " JOIN template_slot_options o ON o.id = c.template_slot_option_id "
            " JOIN exercises e ON e.id = o.exercise_id "
            " WHERE ss.session_id = s.id) AS exercises "
            "FROM sessions s LEFT JOIN templates t ON t.id = s.template_id "
            "WHERE s.status = 'final' "
            "ORDER BY s.performed_at DESC, s.id DESC"
        )
        params: Tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        rows = self.fetch_all(query + ";", params)
        return [HistoryItem.from_row(r) for r in rows]

    def template_name(self, session_id: int) -> Optional[str]:
        row = self.fetch_one(
            "SELECT t.name FROM sessions s LEFT JOIN templates t ON t.id = s.template_id WHERE s.id = ?;",
            (session_id,),
        )
        return row[0] if row else None


class SessionSlotRepository(BaseRepository):
    """Repository for the slots copied into a session."""

    def add(
        self,
        session_id: int,
        template_slot_id: Optional[int],
        slot_index: int,
        name: Optional[str],
    ) -> int:
        return self.execute(
            "INSERT INTO session_slots (session_id, template_slot_id, slot_index, name, created_at) "
            "VALUES (?, ?, ?, ?, ?);",
            (session_id, template_slot_id, slot_index, name, utc_now()),
        )

    def fetch(self, session_slot_id: int) -> SessionSlot:
        row = self.fetch_one("SELECT * FROM session_slots WHERE id = ?;", (session_slot_id,))
        if row is None:
            raise ValueError("session slot not found")
        return SessionSlot.from_row(row)

    def select(self, session_slot_id: int, choice_id: int) -> None:
        self.execute(
            "UPDATE session_slots SET selected_session_slot_choice_id = ? WHERE id = ?;",
            (choice_id, session_slot_id),
        )

    def delete(self, session_slot_id: int) -> None:
        self.execute("DELETE FROM session_slots WHERE id = ?;", (session_slot_id,))

    def list_for_session(self, session_id: int) -> List[DraftSlot]:
        rows = self.fetch_all(
            "SELECT ss.id AS session_slot_id, ss.slot_index, ss.name, ss.template_slot_id, "
            "ss.selected_session_slot_choice_id, c.template_slot_option_id, "
            "o.exercise_id, e.name AS exercise_name, eo.name AS option_name "
            "FROM session_slots ss "
            "LEFT JOIN session_slot_choices c ON c.id = ss.selected_session_slot_choice_id "
            "LEFT JOIN template_slot_options o ON o.id = c.template_slot_option_id "
            "LEFT JOIN exercises e ON e.id = o.exercise_id "
            "LEFT JOIN exercise_options eo ON eo.id = o.exercise_option_id "
            "WHERE ss.session_id = ? ORDER BY ss.slot_index, ss.id;",
            (session_id,),
        )
        return [DraftSlot.from_row(r) for r in rows]

    def list_options(self, session_slot_id: int) -> List[SlotOption]:
        rows = self.fetch_all(
            "SELECT o.id AS template_slot_option_id, o.exercise_id, e.name AS exercise_name, "
            "o.exercise_option_id, eo.name AS option_name, o.order_index, "
            "c.id AS session_slot_choice_id, "
            "(c.id IS NOT NULL AND c.id = ss.selected_session_slot_choice_id) AS is_selected "
            "FROM session_slots ss "
            "JOIN template_slot_options o ON o.template_slot_id = ss.template_slot_id "
            "JOIN exercises e ON e.id = o.exercise_id "
            "LEFT JOIN exercise_options eo ON eo.id = o.exercise_option_id "
            "LEFT JOIN session_slot_choices c ON c.session_slot_id = ss.id "
            "AND c.template_slot_option_id = o.id "
            "WHERE ss.id = ? ORDER BY o.order_index, o.id;",
            (session_slot_id,),
        )
        return [SlotOption.from_row(r) for r in rows]

    def detail_for_session(self, session_id: int) -> List[SessionDetailSlot]:
        rows = self.fetch_all(
            "SELECT ss.id AS session_slot_id, ss.slot_index, ss.name, "
            "c.id AS session_slot_choice_id, o.exercise_id, "
            "e.name AS exercise_name, eo.name AS option_name "
            "FROM session_slots ss "
            "LEFT JOIN session_slot_choices c ON c.id = ss.selected_session_slot_choice_id "
            "LEFT JOIN template_slot_options o ON o.id = c.template_slot_option_id "
            "LEFT JOIN exercises e ON e.id = o.exercise_id "
            "LEFT JOIN exercise_options eo ON eo.id = o.exercise_option_id "
            "WHERE ss.session_id = ? ORDER BY ss.slot_index, ss.id;",
            (session_id,),
        )
        return [SessionDetailSlot.from_row(r) for r in rows]


class SessionSlotChoiceRepository(BaseRepository):
    """Repository for the exercise choices made within session slots."""

    def find(self, session_slot_id: int, template_slot_option_id: int) -> Optional[int]:
        row = self.fetch_one(
            "SELECT id FROM session_slot_choices WHERE session_slot_id = ? AND template_slot_option_id = ?;",
            (session_slot_id, template_slot_option_id),
        )
        return int(row[0]) if row else None

    def add(self, session_slot_id: int, template_slot_option_id: int) -> int:
        return self.execute(
            "INSERT INTO session_slot_choices (session_slot_id, template_slot_option_id, created_at) "
            "VALUES (?, ?, ?);",
            (session_slot_id, template_slot_option_id, utc_now()),
        )

    def fetch(self, choice_id: int) -> SessionSlotChoice:
        row = self.fetch_one("SELECT * FROM session_slot_choices WHERE id = ?;", (choice_id,))
        if row is None:
            raise ValueError("choice not found")
        return SessionSlotChoice.from_row(row)


class SetRepository(BaseRepository):
    """Repository for sets table operations."""

    def __init__(self, db: Database, settings: Optional["SettingsRepository"] = None) -> None:
        super().__init__(db)
        self.settings = settings

    def max_rpe(self) -> int:
        if self.settings is not None:
            return self.settings.get_int("rpe_scale", 10)
        return 10

    def _validate(self, weight: float, reps: int, rpe: Optional[float]) -> None:
        if weight < 0:
            raise ValueError("weight must be non-negative")
        if not isinstance(reps, int) or not 0 <= reps <= MathTools.MAX_REPS:
            raise ValueError(f"reps must be an integer between 0 and {MathTools.MAX_REPS}")
        if not MathTools.valid_rpe(rpe) or (rpe is not None and rpe > self.max_rpe()):
            raise ValueError("rpe must be between 1 and 10 in steps of 0.5")

    def _require_choice(self, choice_id: int) -> None:
        if self.fetch_one("SELECT 1 FROM session_slot_choices WHERE id = ?;", (choice_id,)) is None:
            raise ValueError("choice not found")

    def insert(
        self,
        choice_id: int,
        row: SetInput,
        completed: bool = False,
        is_warmup: bool = False,
    ) -> int:
        self._validate(row.weight, row.reps, row.rpe)
        self._require_choice(choice_id)
        try:
            return self.execute(
                "INSERT INTO sets (session_slot_choice_id, set_index, weight, reps, rpe, notes, "
                "rest_seconds, completed, is_warmup, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    choice_id,
                    row.set_index,
                    row.weight,
                    row.reps,
                    row.rpe,
                    row.notes,
                    row.rest_seconds,
                    int(completed),
                    int(is_warmup),
                    utc_now(),
                ),
            )
        except DuplicateError:
            raise DuplicateError(f"set {row.set_index} already exists for choice {choice_id}")

    def upsert(
        self,
        choice_id: int,
        set_index: int,
        weight: float,
        reps: int,
        rpe: Optional[float] = None,
        notes: Optional[str] = None,
        rest_seconds: Optional[int] = None,
    ) -> int:
        """Insert or update the set at ``set_index``; completion is kept."""
        if set_index < 1:
            raise ValueError("set_index must be positive")
        self._validate(weight, reps, rpe)
        self._require_choice(choice_id)
        self.execute(
            "INSERT INTO sets (session_slot_choice_id, set_index, weight, reps, rpe, notes, rest_seconds, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(session_slot_choice_id, set_index) DO UPDATE SET "
            "weight=excluded.weight, reps=excluded.reps, rpe=excluded.rpe, "
            "notes=excluded.notes, rest_seconds=excluded.rest_seconds;",
            (choice_id, set_index, weight, reps, rpe, notes, rest_seconds, utc_now()),
        )
        row = self.fetch_one(
            "SELECT id FROM sets WHERE session_slot_choice_id = ? AND set_index = ?;",
            (choice_id, set_index),
        )
        return int(row[0])

    def delete(self, choice_id: int, set_index: int) -> None:
        self.execute(
            "DELETE FROM sets WHERE session_slot_choice_id = ? AND set_index = ?;",
            (choice_id, set_index),
        )

    def toggle_completed(self, set_id: int, completed: bool) -> None:
        self.fetch(set_id)
        self.execute("UPDATE sets SET completed = ? WHERE id = ?;", (int(completed), set_id))

    def fetch(self, set_id: int) -> SetRecord:
        row = self.fetch_one("SELECT * FROM sets WHERE id = ?;", (set_id,))
        if row is None:
            raise ValueError("set not found")
        return SetRecord.from_row(row)

    def list_for_choice(self, choice_id: int) -> List[SetRecord]:
        rows = self.fetch_all(
            "SELECT * FROM sets WHERE session_slot_choice_id = ? ORDER BY set_index;",
            (choice_id,),
        )
        return [SetRecord.from_row(r) for r in rows]

    def list_for_session(self, session_id: int) -> List[SetRecord]:
        rows = self.fetch_all(
            "SELECT se.* FROM sets se "
            "JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
            "JOIN session_slots ss ON ss.id = c.session_slot_id "
            "WHERE ss.session_id = ? ORDER BY se.session_slot_choice_id, se.set_index;",
            (session_id,),
        )
        return [SetRecord.from_row(r) for r in rows]

    @staticmethod
    def is_valid_entry(weight: float, reps: int, rpe: Optional[float]) -> bool:
        """Strict rule for rows saved in bulk: real load and real reps."""
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
            return False
        if not isinstance(reps, int) or not 1 <= reps <= MathTools.MAX_REPS:
            return False
        if rpe is not None and not isinstance(rpe, (int, float)):
            return False
        return MathTools.valid_rpe(rpe)

    def replace_for_choice(self, choice_id: int, rows: Iterable[SetInput]) -> int:
        """Replace every set of a choice, skipping invalid rows.

        Returns the number of rows written.
        """
        self._require_choice(choice_id)
        written = 0
        with self.transaction():
            try:
                self.execute(
                    "DELETE FROM drop_set_segments WHERE set_id IN "
                    "(SELECT id FROM sets WHERE session_slot_choice_id = ?);",
                    (choice_id,),
                )
            except sqlite3.OperationalError as e:
                LOGGER.debug("skipping drop segment cleanup for choice %s: %s", choice_id, e)
            self.execute("DELETE FROM sets WHERE session_slot_choice_id = ?;", (choice_id,))
            for row in rows:
                if not isinstance(row.set_index, int) or not self.is_valid_entry(
                    row.weight, row.reps, row.rpe
                ):
                    LOGGER.debug("skipping invalid set row %s for choice %s", row, choice_id)
                    continue
                self.upsert(
                    choice_id,
                    row.set_index,
                    row.weight,
                    row.reps,
                    row.rpe,
                    row.notes,
                    row.rest_seconds,
                )
                written += 1
        return written

    def _last_final_choice(self, template_slot_option_id: int) -> Optional[sqlite3.Row]:
        return self.fetch_one(
            "SELECT c.id AS choice_id, s.performed_at FROM session_slot_choices c "
            "JOIN session_slots ss ON ss.id = c.session_slot_id "
            "AND ss.selected_session_slot_choice_id = c.id "
            "JOIN sessions s ON s.id = ss.session_id "
            "WHERE c.template_slot_option_id = ? AND s.status = 'final' "
            "ORDER BY s.performed_at DESC, s.id DESC LIMIT 1;",
            (template_slot_option_id,),
        )

    def fetch_carry_forward(self, template_slot_option_id: int) -> List[SetRecord]:
        """Working sets from the latest final session that selected this option."""
        row = self._last_final_choice(template_slot_option_id)
        if row is None:
            return []
        rows = self.fetch_all(
            "SELECT * FROM sets WHERE session_slot_choice_id = ? AND is_warmup = 0 "
            "ORDER BY set_index;",
            (row["choice_id"],),
        )
        return [SetRecord.from_row(r) for r in rows]

    def last_time_for_option(self, template_slot_option_id: int) -> Optional[LastTime]:
        row = self._last_final_choice(template_slot_option_id)
        if row is None:
            return None
        return LastTime(
            performed_at=row["performed_at"],
            sets=self.list_for_choice(row["choice_id"]),
        )

    def generate_warmups(
        self, choice_id: int, working_weight: float, unit: Optional[str] = None
    ) -> List[int]:
        """Insert a warm-up ramp ahead of the working sets of a choice.

        ``working_weight`` is in kg. Warm-up weights are rounded down to the
        plate increment of ``unit`` (falling back to the ``weight_unit``
        setting). Earlier warm-ups of the choice are replaced and working
        sets are renumbered to follow the new warm-ups.
        """
        if working_weight <= 0:
            raise ValueError("working weight must be positive")
        if unit is None:
            unit = self.settings.get_text("weight_unit", "kg") if self.settings else "kg"
        percentages: Sequence[float] = []
        if self.settings is not None:
            percentages = self.settings.get_float_list("warmup_percentages")
        if not percentages:
            percentages = MathTools.warmup_percentages(working_weight)
        display_weight = WeightConverter.from_kg(working_weight, unit)
        plan = MathTools.warmup_plan(
            display_weight, percentages, WeightConverter.PLATE_INCREMENT[unit]
        )
        with self.transaction():
            self.execute(
                "DELETE FROM sets WHERE session_slot_choice_id = ? AND is_warmup = 1;",
                (choice_id,),
            )
            working = self.list_for_choice(choice_id)
            # park working sets on negative indices so renumbering never collides
            for pos, record in enumerate(working, start=1):
                self.execute("UPDATE sets SET set_index = ? WHERE id = ?;", (-pos, record.id))
            ids = []
            for pos, (reps, weight) in enumerate(plan, start=1):
                ids.append(
                    self.insert(
                        choice_id,
                        SetInput(pos, WeightConverter.to_kg(weight, unit), reps),
                        is_warmup=True,
                    )
                )
            for pos, record in enumerate(working, start=len(plan) + 1):
                self.execute("UPDATE sets SET set_index = ? WHERE id = ?;", (pos, record.id))
        LOGGER.info("generated %s warm-up sets for choice %s", len(ids), choice_id)
        return ids


class DropSegmentRepository(BaseRepository):
    """Repository for drop-set continuations attached to a set."""

    def add(self, set_id: int, weight: float, reps: int, segment_index: Optional[int] = None) -> int:
        if weight < 0 or reps < 0:
            raise ValueError("weight and reps must be non-negative")
        if self.fetch_one("SELECT id FROM sets WHERE id = ?;", (set_id,)) is None:
            raise ValueError("set not found")
        if segment_index is None:
            row = self.fetch_one(
                "SELECT COALESCE(MAX(segment_index), 0) + 1 FROM drop_set_segments WHERE set_id = ?;",
                (set_id,),
            )
            segment_index = int(row[0])
        try:
            return self.execute(
                "INSERT INTO drop_set_segments (set_id, segment_index, weight, reps, created_at) "
                "VALUES (?, ?, ?, ?, ?);",
                (set_id, segment_index, weight, reps, utc_now()),
            )
        except DuplicateError:
            raise DuplicateError(f"segment {segment_index} already exists for set {set_id}")

    def update(self, segment_id: int, weight: float, reps: int) -> None:
        if weight < 0 or reps < 0:
            raise ValueError("weight and reps must be non-negative")
        if self.execute_rowcount(
            "UPDATE drop_set_segments SET weight = ?, reps = ? WHERE id = ?;",
            (weight, reps, segment_id),
        ) == 0:
            raise ValueError("drop segment not found")

    def delete(self, segment_id: int) -> None:
        self.execute("DELETE FROM drop_set_segments WHERE id = ?;", (segment_id,))

    def list_for_set(self, set_id: int) -> List[DropSegment]:
        rows = self.fetch_all(
            "SELECT * FROM drop_set_segments WHERE set_id = ? ORDER BY segment_index;",
            (set_id,),
        )
        return [DropSegment.from_row(r) for r in rows]

    def list_for_sets(self, set_ids: Sequence[int]) -> dict[int, List[DropSegment]]:
        result: dict[int, List[DropSegment]] = {sid: [] for sid in set_ids}
        if not set_ids:
            return result
        marks = ", ".join("?" for _ in set_ids)
        rows = self.fetch_all(
            f"SELECT * FROM drop_set_segments WHERE set_id IN ({marks}) ORDER BY set_id, segment_index;",
            tuple(set_ids),
        )
        for r in rows:
            result[r["set_id"]].append(DropSegment.from_row(r))
        return result


class PersonalRecordRepository(BaseRepository):
    """Repository for the personal record log."""

    def add(
        self,
        exercise_id: int,
        session_id: int,
        pr_type: str,
        value: float,
        previous_value: Optional[float],
    ) -> int:
        return self.execute(
            "INSERT INTO personal_records (exercise_id, session_id, pr_type, value, previous_value, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (exercise_id, session_id, pr_type, value, previous_value, utc_now()),
        )

    def delete_for_session(self, session_id: int) -> int:
        return self.execute_rowcount(
            "DELETE FROM personal_records WHERE session_id = ?;", (session_id,)
        )

    def fetch_for_session(self, session_id: int) -> List[PersonalRecord]:
        rows = self.fetch_all(
            "SELECT pr.*, e.name AS exercise_name FROM personal_records pr "
            "JOIN exercises e ON e.id = pr.exercise_id "
            "WHERE pr.session_id = ? ORDER BY pr.pr_type, e.name;",
            (session_id,),
        )
        return [PersonalRecord.from_row(r) for r in rows]

    def fetch_for_exercise(self, exercise_id: int) -> List[PersonalRecord]:
        rows = self.fetch_all(
            "SELECT pr.*, e.name AS exercise_name FROM personal_records pr "
            "JOIN exercises e ON e.id = pr.exercise_id "
            "WHERE pr.exercise_id = ? ORDER BY pr.created_at, pr.id;",
            (exercise_id,),
        )
        return [PersonalRecord.from_row(r) for r in rows]

    def counts_by_session(self) -> dict[int, int]:
        rows = self.fetch_all(
            "SELECT session_id, COUNT(*) AS c FROM personal_records GROUP BY session_id;"
        )
        return {int(r["session_id"]): int(r["c"]) for r in rows}

    def has_any(self, session_id: int) -> bool:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM personal_records WHERE session_id = ?;", (session_id,)
        )
        return bool(row[0])


class BodyWeightRepository(BaseRepository):
    """Repository for body weight logs."""

    def log(self, weight: float, unit: str = "kg", measured_at: Optional[str] = None) -> int:
        if weight <= 0:
            raise ValueError("weight must be positive")
        if unit not in WeightConverter.PLATES:
            raise ValueError(f"unknown unit: {unit}")
        return self.execute(
            "INSERT INTO body_weight (weight, unit, measured_at) VALUES (?, ?, ?);",
            (weight, unit, measured_at or utc_now()),
        )

    def fetch_history(self, limit: Optional[int] = None) -> List[BodyWeightEntry]:
        query = "SELECT * FROM body_weight ORDER BY measured_at DESC, id DESC"
        params: Tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [BodyWeightEntry.from_row(r) for r in self.fetch_all(query + ";", params)]

    def trend(self) -> List[BodyWeightEntry]:
        rows = self.fetch_all("SELECT * FROM body_weight ORDER BY measured_at, id;")
        return [BodyWeightEntry.from_row(r) for r in rows]

    def latest(self) -> Optional[BodyWeightEntry]:
        row = self.fetch_one(
            "SELECT * FROM body_weight ORDER BY measured_at DESC, id DESC LIMIT 1;"
        )
        return BodyWeightEntry.from_row(row) if row else None

    def delete(self, entry_id: int) -> None:
        if self.execute_rowcount("DELETE FROM body_weight WHERE id = ?;", (entry_id,)) == 0:
            raise ValueError("log not found")


class SettingsRepository(BaseRepository):
    """Repository for application settings synchronized with YAML."""

    # bookkeeping keys that stay out of the user's YAML file
    INTERNAL_KEYS = {"exercise_library_version"}
    INT_KEYS = {"default_rest_seconds", "rpe_scale"}
    LIST_KEYS = {"warmup_percentages"}

    def __init__(self, db: Database, yaml_path: str = DEFAULT_YAML_PATH) -> None:
        super().__init__(db)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM app_settings ORDER BY key;")
        result: dict = {}
        for k, v in rows:
            if k in self.INTERNAL_KEYS:
                continue
            if k in self.LIST_KEYS:
                result[k] = [float(x) for x in v.split(",") if x]
            elif k in self.INT_KEYS:
                result[k] = int(float(v))
            else:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        known = set(SettingsSchema.model_fields)
        for key in sorted(set(data) - known):
            LOGGER.warning("ignoring unknown setting %s", key)
            data.pop(key)
        validate_settings(data)
        with self.transaction():
            for key, value in data.items():
                if key in self.LIST_KEYS:
                    val = ",".join(str(float(v)) for v in value)
                else:
                    val = str(value)
                self.execute(
                    "INSERT INTO app_settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def _store(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO app_settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        if key not in self.INTERNAL_KEYS:
            self._sync_to_yaml()

    def get_text(self, key: str, default: str) -> str:
        row = self.fetch_one("SELECT value FROM app_settings WHERE key = ?;", (key,))
        return row[0] if row else default

    def set_text(self, key: str, value: str) -> None:
        if key not in self.INTERNAL_KEYS:
            validate_settings({**self._raw_all_settings(), key: value})
        self._store(key, value)

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {"1", "true", "True", "1.0"}

    def get_float_list(self, key: str) -> List[float]:
        val = self.get_text(key, "")
        return [float(v) for v in val.split(",") if v]

    def set_float_list(self, key: str, values: Sequence[float]) -> None:
        validate_settings({**self._raw_all_settings(), key: list(values)})
        self._store(key, ",".join(str(float(v)) for v in values))

    def all_settings(self) -> dict:
        data = SettingsSchema().model_dump()
        data.update(self._raw_all_settings())
        return data

    def update(self, values: dict) -> None:
        """Validate and store several settings at once."""
        unknown = set(values) - set(SettingsSchema.model_fields)
        if unknown:
            raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
        merged = {**self._raw_all_settings(), **values}
        validate_settings(merged)
        with self.transaction():
            for key, value in values.items():
                if key in self.LIST_KEYS:
                    val = ",".join(str(float(v)) for v in value)
                else:
                    val = str(value)
                self.execute(
                    "INSERT INTO app_settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )
        self._sync_to_yaml()
