import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    Database,
    DropSegmentRepository,
    DuplicateError,
    ExerciseRepository,
    SetRepository,
    SettingsRepository,
    TemplateRepository,
)
from models import SetInput
from session_service import SessionService


def _draft_choice(tmp_path):
    db = Database(str(tmp_path / "test.db"))
    settings = SettingsRepository(db, str(tmp_path / "settings.yaml"))
    templates = TemplateRepository(db)
    sets = SetRepository(db, settings)
    eid = ExerciseRepository(db).create("Bench Press")
    tid = templates.create("Push")
    slot = templates.slots.add(tid, 1)
    option = templates.options.add(slot, eid)
    service = SessionService(db, set_repo=sets, template_repo=templates, settings_repo=settings)
    sid = service.create_draft(tid)
    choice = service.list_draft_slots(sid)[0].selected_session_slot_choice_id
    return db, settings, sets, service, sid, choice, option


def test_upsert_validates_values(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    with pytest.raises(ValueError):
        sets.upsert(choice, 1, -5, 5)
    with pytest.raises(ValueError):
        sets.upsert(choice, 1, 100, 201)
    with pytest.raises(ValueError):
        sets.upsert(choice, 1, 100, 5, rpe=11)
    with pytest.raises(ValueError):
        sets.upsert(choice, 1, 100, 5, rpe=7.3)
    with pytest.raises(ValueError):
        sets.upsert(choice, 0, 100, 5)
    assert sets.list_for_choice(choice) == []
    db.close()


def test_upsert_updates_in_place_and_keeps_completion(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    first = sets.upsert(choice, 1, 100, 5, rpe=8)
    sets.toggle_completed(first, True)
    second = sets.upsert(choice, 1, 102.5, 4, rpe=9.5, notes="grind")
    assert first == second
    record = sets.fetch(first)
    assert (record.weight, record.reps, record.rpe, record.notes) == (102.5, 4, 9.5, "grind")
    assert record.completed is True
    db.close()


def test_rpe_limited_by_scale_setting(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    settings.set_int("rpe_scale", 8)
    with pytest.raises(ValueError):
        sets.upsert(choice, 1, 100, 5, rpe=9)
    sets.upsert(choice, 1, 100, 5, rpe=8)
    db.close()


def test_insert_duplicate_index(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    sets.insert(choice, SetInput(1, 100, 5))
    with pytest.raises(DuplicateError):
        sets.insert(choice, SetInput(1, 90, 5))
    db.close()


def test_replace_skips_invalid_rows(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    sets.upsert(choice, 5, 50, 5)
    written = sets.replace_for_choice(
        choice,
        [
            SetInput(1, 100, 5),
            SetInput(2, 0, 5),
            SetInput(3, 100, 0),
            SetInput(4, 100, 5, rpe=12),
            SetInput(5, 110, 3, rpe=9),
        ],
    )
    assert written == 2
    assert [(s.set_index, s.weight) for s in sets.list_for_choice(choice)] == [(1, 100), (5, 110)]
    db.close()


def test_delete_and_toggle_missing(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    sets.upsert(choice, 1, 100, 5)
    sets.delete(choice, 1)
    assert sets.list_for_choice(choice) == []
    with pytest.raises(ValueError):
        sets.toggle_completed(999, True)
    db.close()


def test_last_time_for_option(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    assert sets.last_time_for_option(option) is None
    sets.upsert(choice, 1, 100, 5)
    service.finalize_session(sid, "2024-02-01T09:00:00.000Z")
    last = sets.last_time_for_option(option)
    assert last.performed_at == "2024-02-01T09:00:00.000Z"
    assert [(s.weight, s.reps) for s in last.sets] == [(100, 5)]
    db.close()


def test_writes_to_unknown_choice_rejected(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    with pytest.raises(ValueError, match="not found"):
        sets.upsert(999, 1, 100, 5)
    with pytest.raises(ValueError, match="not found"):
        sets.insert(999, SetInput(1, 100, 5))
    with pytest.raises(ValueError, match="not found"):
        sets.replace_for_choice(999, [SetInput(1, 100, 5)])
    db.close()


def test_replace_skips_non_numeric_rows(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    written = sets.replace_for_choice(
        choice,
        [
            SetInput(1, "abc", 5),
            SetInput(2, 100, "five"),
            SetInput(3, 100, 5, rpe="hard"),
            SetInput("4", 100, 5),
            SetInput(5, 100, 5),
        ],
    )
    assert written == 1
    assert [s.set_index for s in sets.list_for_choice(choice)] == [5]
    db.close()


def test_replace_without_segments_table(tmp_path):
    db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
    sets.upsert(choice, 1, 50, 5)
    db._conn.execute("DROP TABLE drop_set_segments;")
    assert sets.replace_for_choice(choice, [SetInput(1, 100, 5)]) == 1
    assert [(s.set_index, s.weight) for s in sets.list_for_choice(choice)] == [(1, 100)]
    db.close()


class TestWarmups:
    def test_default_ramp(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        sets.upsert(choice, 1, 100, 5)
        sets.upsert(choice, 2, 100, 5)
        ids = sets.generate_warmups(choice, 100)
        assert len(ids) == 3
        rows = sets.list_for_choice(choice)
        assert [(s.set_index, s.weight, s.reps, s.is_warmup) for s in rows] == [
            (1, 40, 8, True),
            (2, 60, 5, True),
            (3, 80, 3, True),
            (4, 100, 5, False),
            (5, 100, 5, False),
        ]
        db.close()

    def test_regenerating_replaces_warmups(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        sets.upsert(choice, 1, 50, 5)
        sets.generate_warmups(choice, 100)
        sets.generate_warmups(choice, 50)
        rows = sets.list_for_choice(choice)
        assert [(s.weight, s.is_warmup) for s in rows] == [(20, True), (35, True), (50, False)]
        assert [s.set_index for s in rows] == [1, 2, 3]
        db.close()

    def test_percentages_from_settings(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        settings.set_float_list("warmup_percentages", [0.5, 0.75])
        sets.generate_warmups(choice, 102)
        rows = sets.list_for_choice(choice)
        assert [(s.weight, s.reps) for s in rows] == [(50, 8), (75, 5)]
        db.close()

    def test_rejects_zero_weight(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        with pytest.raises(ValueError):
            sets.generate_warmups(choice, 0)
        db.close()


class TestDropSegments:
    def test_segments_lifecycle(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        drops = DropSegmentRepository(db)
        set_id = sets.upsert(choice, 1, 100, 8)
        first = drops.add(set_id, 80, 6)
        drops.add(set_id, 60, 6)
        assert [(d.segment_index, d.weight) for d in drops.list_for_set(set_id)] == [(1, 80), (2, 60)]
        with pytest.raises(DuplicateError):
            drops.add(set_id, 40, 6, segment_index=2)

        drops.update(first, 85, 5)
        assert drops.list_for_set(set_id)[0].weight == 85
        with pytest.raises(ValueError):
            drops.update(999, 50, 5)

        grouped = drops.list_for_sets([set_id, 12345])
        assert len(grouped[set_id]) == 2
        assert grouped[12345] == []

        drops.delete(first)
        assert len(drops.list_for_set(set_id)) == 1
        db.close()

    def test_unknown_set_rejected(self, tmp_path):
        db, *_ = _draft_choice(tmp_path)
        with pytest.raises(ValueError):
            DropSegmentRepository(db).add(999, 50, 5)
        db.close()

    def test_replace_clears_segments(self, tmp_path):
        db, settings, sets, service, sid, choice, option = _draft_choice(tmp_path)
        drops = DropSegmentRepository(db)
        set_id = sets.upsert(choice, 1, 100, 8)
        drops.add(set_id, 80, 6)
        sets.replace_for_choice(choice, [SetInput(1, 100, 8)])
        assert drops.list_for_set(set_id) == []
        db.close()
