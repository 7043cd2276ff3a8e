import logging
from typing import List, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException

from config import DEFAULT_DB_PATH, DEFAULT_YAML_PATH
from db import (
    BodyWeightRepository,
    Database,
    DropSegmentRepository,
    DuplicateError,
    ExerciseOptionRepository,
    ExerciseRepository,
    PersonalRecordRepository,
    SetRepository,
    SettingsRepository,
    TemplateRepository,
)
from models import SetInput
from seed_sample_data import ensure_exercise_library
from session_service import SessionService
from stats_service import StatisticsService

LOGGER = logging.getLogger(__name__)


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, DuplicateError):
        return HTTPException(status_code=409, detail=str(e))
    if "not found" in str(e):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


class GymAPI:
    """FastAPI application exposing templates, sessions, sets and analytics."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        yaml_path: str = DEFAULT_YAML_PATH,
        seed_library: bool = False,
    ) -> None:
        self.db = Database(db_path)
        self.settings = SettingsRepository(self.db, yaml_path)
        self.exercises = ExerciseRepository(self.db)
        self.exercise_options = ExerciseOptionRepository(self.db)
        self.templates = TemplateRepository(self.db)
        self.sets = SetRepository(self.db, self.settings)
        self.drop_segments = DropSegmentRepository(self.db)
        self.records = PersonalRecordRepository(self.db)
        self.body_weights = BodyWeightRepository(self.db)
        self.statistics = StatisticsService(self.db, self.records)
        self.sessions = SessionService(
            self.db,
            set_repo=self.sets,
            template_repo=self.templates,
            settings_repo=self.settings,
            statistics=self.statistics,
        )
        if seed_library:
            ensure_exercise_library(self.db, self.settings)
        self.app = FastAPI(
            title="Liftlog API",
            description="REST API for workout templates, sessions and analytics",
        )
        self._setup_routes()

    def close(self) -> None:
        self.db.close()

    def _setup_routes(self) -> None:
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        templates_router = APIRouter(prefix="/templates", tags=["Templates"])
        sessions_router = APIRouter(prefix="/sessions", tags=["Sessions"])
        sets_router = APIRouter(prefix="/sets", tags=["Sets"])
        stats_router = APIRouter(prefix="/stats", tags=["Statistics"])
        body_weight_router = APIRouter(prefix="/body_weight", tags=["Body Weight"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            self.db.schema_version()
            return {"status": "ok"}

        @exercises_router.get("")
        def list_exercises(query: Optional[str] = None):
            if query:
                return self.exercises.search(query)
            return self.exercises.fetch_all()

        @exercises_router.post("")
        def create_exercise(
            name: str,
            primary_muscle: Optional[str] = None,
            secondary_muscle: Optional[str] = None,
            equipment: Optional[str] = None,
        ):
            try:
                eid = self.exercises.create(
                    name,
                    primary_muscle=primary_muscle,
                    secondary_muscle=secondary_muscle,
                    equipment=equipment,
                )
            except ValueError as e:
                raise _http_error(e)
            return {"id": eid}

        @exercises_router.get("/{exercise_id}")
        def get_exercise(exercise_id: int):
            try:
                return self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise _http_error(e)

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: int):
            try:
                deleted = self.exercises.delete(exercise_id)
            except ValueError as e:
                raise _http_error(e)
            if not deleted:
                raise HTTPException(status_code=409, detail="exercise is used by a template")
            return {"status": "deleted"}

        @exercises_router.get("/{exercise_id}/guide")
        def exercise_guide(exercise_id: int):
            try:
                return self.exercises.guide(exercise_id)
            except ValueError as e:
                raise _http_error(e)

        @exercises_router.get("/{exercise_id}/stats")
        def exercise_stats(exercise_id: int):
            return self.statistics.exercise_stats(exercise_id)

        @exercises_router.get("/{exercise_id}/e1rm")
        def exercise_e1rm(exercise_id: int):
            return self.statistics.e1rm_history(exercise_id)

        @exercises_router.get("/{exercise_id}/options")
        def list_exercise_options(exercise_id: int):
            return self.exercise_options.fetch_for_exercise(exercise_id)

        @exercises_router.post("/{exercise_id}/options")
        def create_exercise_option(exercise_id: int, name: str):
            try:
                oid = self.exercise_options.create(exercise_id, name)
            except ValueError as e:
                raise _http_error(e)
            return {"id": oid}

        @templates_router.get("")
        def list_templates():
            return self.templates.fetch_all()

        @templates_router.post("")
        def create_template(name: str):
            try:
                tid = self.templates.create(name)
            except ValueError as e:
                raise _http_error(e)
            return {"id": tid}

        @templates_router.get("/{template_id}")
        def get_template(template_id: int):
            try:
                return self.templates.fetch_detail(template_id)
            except ValueError as e:
                raise _http_error(e)

        @templates_router.put("/{template_id}")
        def rename_template(template_id: int, name: str):
            try:
                self.templates.rename(template_id, name)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        @templates_router.delete("/{template_id}")
        def delete_template(template_id: int):
            try:
                self.templates.delete(template_id)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "deleted"}

        @templates_router.post("/{template_id}/clone")
        def clone_template(template_id: int, name: str):
            try:
                tid = self.templates.clone(template_id, name)
            except ValueError as e:
                raise _http_error(e)
            return {"id": tid}

        @templates_router.post("/{template_id}/slots")
        def add_slot(template_id: int, name: Optional[str] = None, slot_index: Optional[int] = None):
            try:
                sid = self.templates.slots.add(template_id, slot_index, name)
            except ValueError as e:
                raise _http_error(e)
            return {"id": sid}

        @templates_router.put("/slots/{slot_id}")
        def rename_slot(slot_id: int, name: Optional[str] = None):
            try:
                self.templates.slots.rename(slot_id, name)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        @templates_router.delete("/slots/{slot_id}")
        def delete_slot(slot_id: int):
            self.templates.slots.delete(slot_id)
            return {"status": "deleted"}

        @templates_router.post("/slots/{slot_id}/options")
        def add_slot_option(
            slot_id: int,
            exercise_id: int,
            exercise_option_id: Optional[int] = None,
        ):
            try:
                oid = self.templates.options.add(slot_id, exercise_id, exercise_option_id)
            except ValueError as e:
                raise _http_error(e)
            return {"id": oid}

        @templates_router.delete("/options/{option_id}")
        def delete_slot_option(option_id: int):
            self.templates.options.delete(option_id)
            return {"status": "deleted"}

        @templates_router.get("/slots/{slot_id}/prescribed")
        def list_prescribed(slot_id: int):
            return self.templates.prescribed.fetch_for_slot(slot_id)

        @templates_router.put("/slots/{slot_id}/prescribed/{set_index}")
        def upsert_prescribed(
            slot_id: int,
            set_index: int,
            weight: Optional[float] = None,
            reps: Optional[int] = None,
            rpe: Optional[float] = None,
            notes: Optional[str] = None,
            rest_seconds: Optional[int] = None,
        ):
            try:
                pid = self.templates.prescribed.upsert(
                    slot_id, set_index, weight, reps, rpe, notes, rest_seconds
                )
            except ValueError as e:
                raise _http_error(e)
            return {"id": pid}

        @templates_router.delete("/slots/{slot_id}/prescribed/{set_index}")
        def delete_prescribed(slot_id: int, set_index: int):
            self.templates.prescribed.delete(slot_id, set_index)
            return {"status": "deleted"}

        @sessions_router.get("/active")
        def active_draft():
            return self.sessions.get_active_draft()

        @sessions_router.get("/history")
        def history(limit: Optional[int] = None):
            return self.sessions.list_history(limit)

        @sessions_router.post("")
        def start_session(template_id: int):
            if self.sessions.get_active_draft() is not None:
                raise HTTPException(status_code=409, detail="a draft session is already active")
            try:
                sid = self.sessions.create_draft(template_id)
            except ValueError as e:
                raise _http_error(e)
            return {"id": sid}

        @sessions_router.get("/slots/{session_slot_id}/options")
        def slot_options(session_slot_id: int):
            try:
                return self.sessions.list_slot_options(session_slot_id)
            except ValueError as e:
                raise _http_error(e)

        @sessions_router.put("/slots/{session_slot_id}/choice")
        def select_choice(session_slot_id: int, template_slot_option_id: int):
            try:
                cid = self.sessions.select_choice(session_slot_id, template_slot_option_id)
            except ValueError as e:
                raise _http_error(e)
            return {"id": cid}

        @sessions_router.get("/{session_id}")
        def session_detail(session_id: int):
            try:
                return self.sessions.get_session_detail(session_id)
            except ValueError as e:
                raise _http_error(e)

        @sessions_router.get("/{session_id}/slots")
        def draft_slots(session_id: int):
            return self.sessions.list_draft_slots(session_id)

        @sessions_router.put("/{session_id}/notes")
        def update_notes(session_id: int, notes: Optional[str] = Body(None)):
            try:
                self.sessions.update_notes(session_id, notes)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        @sessions_router.delete("/{session_id}")
        def discard_draft(session_id: int):
            try:
                self.sessions.discard_draft(session_id)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "deleted"}

        @sessions_router.post("/{session_id}/finalize")
        def finalize(session_id: int):
            try:
                prs = self.sessions.finish_session(session_id)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "final", "personal_records": prs}

        @sessions_router.get("/{session_id}/prs")
        def session_prs(session_id: int):
            return self.statistics.session_prs(session_id)

        @sets_router.get("/choice/{choice_id}")
        def list_sets(choice_id: int):
            return self.sets.list_for_choice(choice_id)

        @sets_router.put("/choice/{choice_id}")
        def replace_sets(choice_id: int, rows: List[dict] = Body(...)):
            try:
                entries = [SetInput(**row) for row in rows]
            except TypeError as e:
                raise HTTPException(status_code=400, detail=str(e))
            try:
                written = self.sets.replace_for_choice(choice_id, entries)
            except ValueError as e:
                raise _http_error(e)
            return {"written": written}

        @sets_router.put("/choice/{choice_id}/{set_index}")
        def upsert_set(
            choice_id: int,
            set_index: int,
            weight: float,
            reps: int,
            rpe: Optional[float] = None,
            notes: Optional[str] = None,
            rest_seconds: Optional[int] = None,
        ):
            try:
                sid = self.sets.upsert(choice_id, set_index, weight, reps, rpe, notes, rest_seconds)
            except ValueError as e:
                raise _http_error(e)
            return {"id": sid}

        @sets_router.delete("/choice/{choice_id}/{set_index}")
        def delete_set(choice_id: int, set_index: int):
            self.sets.delete(choice_id, set_index)
            return {"status": "deleted"}

        @sets_router.post("/choice/{choice_id}/warmups")
        def generate_warmups(choice_id: int, working_weight: float, unit: Optional[str] = None):
            try:
                ids = self.sets.generate_warmups(choice_id, working_weight, unit)
            except ValueError as e:
                raise _http_error(e)
            return {"ids": ids}

        @sets_router.get("/last_time/{template_slot_option_id}")
        def last_time(template_slot_option_id: int):
            return self.sets.last_time_for_option(template_slot_option_id)

        @sets_router.put("/{set_id}/completed")
        def toggle_completed(set_id: int, completed: bool):
            try:
                self.sets.toggle_completed(set_id, completed)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        @sets_router.get("/{set_id}/drops")
        def list_drops(set_id: int):
            return self.drop_segments.list_for_set(set_id)

        @sets_router.post("/{set_id}/drops")
        def add_drop(set_id: int, weight: float, reps: int, segment_index: Optional[int] = None):
            try:
                did = self.drop_segments.add(set_id, weight, reps, segment_index)
            except ValueError as e:
                raise _http_error(e)
            return {"id": did}

        @sets_router.put("/drops/{segment_id}")
        def update_drop(segment_id: int, weight: float, reps: int):
            try:
                self.drop_segments.update(segment_id, weight, reps)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        @sets_router.delete("/drops/{segment_id}")
        def delete_drop(segment_id: int):
            self.drop_segments.delete(segment_id)
            return {"status": "deleted"}

        @stats_router.get("/overview")
        def overview():
            return self.statistics.overall_stats()

        @stats_router.get("/templates")
        def template_stats():
            return self.statistics.per_template_stats()

        @stats_router.get("/muscles")
        def muscle_volume():
            return self.statistics.weekly_volume_by_muscle()

        @stats_router.get("/days")
        def workout_days():
            return self.statistics.workout_days_map()

        @stats_router.get("/streak")
        def streak():
            return {"streak": self.statistics.current_streak()}

        @stats_router.get("/prs")
        def pr_counts():
            return self.statistics.pr_counts_by_session()

        @body_weight_router.post("")
        def log_body_weight(weight: float, unit: str = "kg", measured_at: Optional[str] = None):
            try:
                bid = self.body_weights.log(weight, unit, measured_at)
            except ValueError as e:
                raise _http_error(e)
            return {"id": bid}

        @body_weight_router.get("")
        def body_weight_history(limit: Optional[int] = None):
            return self.body_weights.fetch_history(limit)

        @body_weight_router.get("/latest")
        def latest_body_weight():
            return self.body_weights.latest()

        @body_weight_router.get("/trend")
        def body_weight_trend():
            return self.body_weights.trend()

        @body_weight_router.delete("/{entry_id}")
        def delete_body_weight(entry_id: int):
            try:
                self.body_weights.delete(entry_id)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "deleted"}

        @self.app.get("/settings")
        def get_settings():
            return self.settings.all_settings()

        @self.app.post("/settings")
        def update_settings(values: dict = Body(...)):
            try:
                self.settings.update(values)
            except ValueError as e:
                raise _http_error(e)
            return {"status": "updated"}

        self.app.include_router(exercises_router)
        self.app.include_router(templates_router)
        self.app.include_router(sessions_router)
        self.app.include_router(sets_router)
        self.app.include_router(stats_router)
        self.app.include_router(body_weight_router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(GymAPI(seed_library=True).app)
