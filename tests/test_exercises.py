import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    Database,
    DuplicateError,
    ExerciseOptionRepository,
    ExerciseRepository,
    TemplateRepository,
)


def _repos(tmp_path):
    db = Database(str(tmp_path / "test.db"))
    return db, ExerciseRepository(db), ExerciseOptionRepository(db), TemplateRepository(db)


class TestExerciseCatalog:
    def test_names_unique_ignoring_case_and_spacing(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        exercises.create("Bench  Press")
        with pytest.raises(DuplicateError):
            exercises.create("  bench press ")
        assert [e.name for e in exercises.fetch_all()] == ["Bench Press"]
        with pytest.raises(ValueError):
            exercises.create("   ")
        db.close()

    def test_search_matches_aliases(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        exercises.create("Romanian Deadlift", aliases="rdl|romanian dl")
        exercises.create("Back Squat")
        assert [e.name for e in exercises.search("RDL")] == ["Romanian Deadlift"]
        assert [e.name for e in exercises.search("squat")] == ["Back Squat"]
        db.close()

    def test_metadata_and_guide(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        eid = exercises.create("Back Squat")
        exercises.update_metadata(eid, primary_muscle="quads", equipment="barbell")
        detail = exercises.fetch_detail(eid)
        assert (detail.primary_muscle, detail.equipment) == ("quads", "barbell")
        with pytest.raises(ValueError):
            exercises.update_metadata(eid, colour="red")
        exercises.set_guide(eid, "https://example.com", "Squat down.", "Brace.")
        guide = exercises.guide(eid)
        assert guide.name == "Back Squat"
        assert guide.instructions == "Squat down."
        db.close()

    def test_delete_refused_while_in_template(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        eid = exercises.create("Back Squat")
        slot = templates.slots.add(templates.create("Legs"), 1)
        templates.options.add(slot, eid)
        assert exercises.is_in_use(eid)
        assert exercises.delete(eid) is False
        assert exercises.fetch_detail(eid).name == "Back Squat"
        db.close()

    def test_delete_unused(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        eid = exercises.create("Back Squat")
        options.create(eid, "Paused")
        assert exercises.delete(eid) is True
        assert exercises.fetch_all() == []
        with pytest.raises(ValueError):
            exercises.delete(eid)
        db.close()

    def test_options_ordered_and_unique(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        eid = exercises.create("Bench Press")
        options.create(eid, "Close Grip")
        options.create(eid, "Paused")
        with pytest.raises(DuplicateError):
            options.create(eid, "paused")
        assert [o.name for o in options.fetch_for_exercise(eid)] == ["Close Grip", "Paused"]
        with pytest.raises(ValueError):
            options.create(999, "Wide")
        db.close()


class TestTemplates:
    def test_slot_option_rules(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        bench = exercises.create("Bench Press")
        squat = exercises.create("Back Squat")
        paused = options.create(bench, "Paused")
        slot = templates.slots.add(templates.create("Push"), 1, "Press")

        templates.options.add(slot, bench)
        with pytest.raises(DuplicateError):
            templates.options.add(slot, bench)
        templates.options.add(slot, bench, paused)
        with pytest.raises(ValueError):
            templates.options.add(slot, squat, paused)
        with pytest.raises(ValueError):
            templates.options.add(999, bench)

        rows = templates.options.fetch_for_slot(slot)
        assert [(r.exercise_name, r.option_name, r.order_index) for r in rows] == [
            ("Bench Press", None, 0),
            ("Bench Press", "Paused", 1),
        ]
        assert options.delete(paused) is False
        db.close()

    def test_slot_indices(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        tid = templates.create("Legs")
        templates.slots.add(tid, name="A")
        templates.slots.add(tid, name="B")
        assert [(s.slot_index, s.name) for s in templates.slots.fetch_for_template(tid)] == [
            (1, "A"),
            (2, "B"),
        ]
        with pytest.raises(DuplicateError):
            templates.slots.add(tid, 1)
        with pytest.raises(ValueError):
            templates.slots.add(tid, 0)
        db.close()

    def test_rename_and_duplicate_names(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        first = templates.create("Push")
        templates.create("Pull")
        with pytest.raises(DuplicateError):
            templates.create("PUSH")
        with pytest.raises(DuplicateError):
            templates.rename(first, "pull")
        templates.rename(first, "Push Heavy")
        assert templates.fetch(first).name == "Push Heavy"
        with pytest.raises(ValueError):
            templates.fetch(999)
        db.close()

    def test_prescribed_sets_upsert(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        slot = templates.slots.add(templates.create("Push"), 1)
        first = templates.prescribed.upsert(slot, 1, 60, 8)
        assert templates.prescribed.upsert(slot, 1, 62.5, 6, 8) == first
        templates.prescribed.upsert(slot, 2, None, 8)
        rows = templates.prescribed.fetch_for_slot(slot)
        assert [(p.set_index, p.weight, p.reps, p.rpe) for p in rows] == [
            (1, 62.5, 6, 8),
            (2, None, 8, None),
        ]
        with pytest.raises(ValueError):
            templates.prescribed.upsert(slot, 3, None, 8, 10.5)
        templates.prescribed.delete(slot, 2)
        assert len(templates.prescribed.fetch_for_slot(slot)) == 1
        db.close()

    def test_clone_copies_structure(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        bench = exercises.create("Bench Press")
        tid = templates.create("Push")
        slot = templates.slots.add(tid, 1, "Press")
        templates.options.add(slot, bench)
        templates.prescribed.upsert(slot, 1, None, 5)

        clone = templates.clone(tid, "Push Copy")
        detail = templates.fetch_detail(clone)
        assert detail.template.name == "Push Copy"
        assert [s.name for s in detail.slots] == ["Press"]
        assert [o.exercise_name for o in detail.options] == ["Bench Press"]
        assert [p.reps for p in detail.prescribed] == [5]
        with pytest.raises(DuplicateError):
            templates.clone(tid, "push copy")
        db.close()

    def test_delete_template(self, tmp_path):
        db, exercises, options, templates = _repos(tmp_path)
        bench = exercises.create("Bench Press")
        tid = templates.create("Push")
        slot = templates.slots.add(tid, 1)
        templates.options.add(slot, bench)
        templates.prescribed.upsert(slot, 1, None, 5)
        templates.delete(tid)
        assert templates.fetch_all() == []
        assert templates.options.fetch_for_slot(slot) == []
        assert exercises.delete(bench) is True
        db.close()
