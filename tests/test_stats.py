import datetime
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import MathTools
from db import (
    Database,
    ExerciseRepository,
    SetRepository,
    SettingsRepository,
    TemplateRepository,
    format_timestamp,
)
from session_service import SessionService
from stats_service import StatisticsService


class Gym:
    """Small harness creating templates and logging finished sessions."""

    def __init__(self, tmp_path):
        self.db = Database(str(tmp_path / "test.db"))
        settings = SettingsRepository(self.db, str(tmp_path / "settings.yaml"))
        self.exercises = ExerciseRepository(self.db)
        self.templates = TemplateRepository(self.db)
        self.sets = SetRepository(self.db, settings)
        self.stats = StatisticsService(self.db)
        self.service = SessionService(
            self.db,
            set_repo=self.sets,
            template_repo=self.templates,
            settings_repo=settings,
            statistics=self.stats,
        )

    def template(self, name, *exercise_names):
        tid = self.templates.create(name)
        for index, ex_name in enumerate(exercise_names, start=1):
            existing = self.exercises.find_by_name(ex_name)
            eid = existing.id if existing else self.exercises.create(ex_name, primary_muscle=ex_name.split()[-1].lower())
            slot = self.templates.slots.add(tid, index, ex_name)
            self.templates.options.add(slot, eid)
        return tid

    def session(self, tid, performed_at, logs, completed=True):
        """``logs`` maps slot position to a list of (weight, reps)."""
        sid = self.service.create_draft(tid)
        slots = self.service.list_draft_slots(sid)
        for position, rows in logs.items():
            choice = slots[position].selected_session_slot_choice_id
            self.sets.replace_for_choice(choice, [])
            for index, (weight, reps) in enumerate(rows, start=1):
                set_id = self.sets.upsert(choice, index, weight, reps)
                self.sets.toggle_completed(set_id, completed)
        prs = self.service.finish_session(sid, performed_at)
        return sid, prs


def _day(date_text):
    return f"{date_text}T12:00:00.000Z"


class TestE1rm:
    def test_epley(self):
        assert MathTools.epley_1rm(120, 5) == pytest.approx(140.0)
        assert MathTools.epley_1rm(100, 0) == 100

    def test_history_keeps_best_per_session(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Squat Day", "Back Squat")
        first, _ = gym.session(tid, _day("2024-01-01"), {0: [(100, 5), (110, 3)]})
        second, _ = gym.session(tid, _day("2024-01-03"), {0: [(120, 5), (60, 20)]})
        eid = gym.exercises.find_by_name("Back Squat").id
        points = gym.stats.e1rm_history(eid)
        assert [p.session_id for p in points] == [first, second]
        assert points[0].e1rm == pytest.approx(121.0)
        assert points[1].e1rm == pytest.approx(140.0)
        gym.db.close()


class TestPersonalRecords:
    def test_first_session_sets_records(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Bench Day", "Bench Press")
        sid, prs = gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]})
        assert {p.pr_type: p.previous_value for p in prs} == {"e1rm": None, "weight": None}
        by_type = {p.pr_type: p.value for p in prs}
        assert by_type["weight"] == 100
        assert by_type["e1rm"] == pytest.approx(100 * (1 + 5 / 30))
        assert gym.stats.session_has_prs(sid)
        gym.db.close()

    def test_weaker_session_sets_none(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Bench Day", "Bench Press")
        gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]})
        sid, prs = gym.session(tid, _day("2024-01-03"), {0: [(90, 5)]})
        assert prs == []
        assert not gym.stats.session_has_prs(sid)
        gym.db.close()

    def test_stronger_session_reports_previous(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Bench Day", "Bench Press")
        gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]})
        sid, prs = gym.session(tid, _day("2024-01-03"), {0: [(110, 5)]})
        by_type = {p.pr_type: p for p in prs}
        assert by_type["weight"].previous_value == 100
        assert by_type["e1rm"].previous_value == pytest.approx(100 * (1 + 5 / 30))
        assert gym.stats.pr_counts_by_session() == {1: 2, sid: 2}
        gym.db.close()

    def test_detection_is_repeatable(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Bench Day", "Bench Press")
        sid, prs = gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]})
        again = gym.stats.detect_and_record_prs(sid)
        assert again == prs
        assert len(gym.stats.session_prs(sid)) == 2
        gym.db.close()

    def test_incomplete_sets_ignored(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Bench Day", "Bench Press")
        _, prs = gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]}, completed=False)
        assert prs == []
        gym.db.close()


class TestStreak:
    def _gym_with_days(self, tmp_path, days):
        gym = Gym(tmp_path)
        tid = gym.template("Daily", "Plank")
        for d in days:
            gym.session(tid, _day(d), {})
        return gym

    def test_no_sessions(self, tmp_path):
        gym = Gym(tmp_path)
        assert gym.stats.current_streak(datetime.date(2024, 3, 3)) == 0
        gym.db.close()

    def test_consecutive_days_through_today(self, tmp_path):
        gym = self._gym_with_days(tmp_path, ["2024-03-01", "2024-03-02", "2024-03-03"])
        assert gym.stats.current_streak(datetime.date(2024, 3, 3)) == 3
        gym.db.close()

    def test_rest_day_today_keeps_streak(self, tmp_path):
        gym = self._gym_with_days(tmp_path, ["2024-03-01", "2024-03-02", "2024-03-03"])
        assert gym.stats.current_streak(datetime.date(2024, 3, 4)) == 3
        gym.db.close()

    def test_two_missed_days_break_streak(self, tmp_path):
        gym = self._gym_with_days(tmp_path, ["2024-03-01", "2024-03-02", "2024-03-03"])
        assert gym.stats.current_streak(datetime.date(2024, 3, 5)) == 0
        gym.db.close()

    def test_gap_ends_count(self, tmp_path):
        gym = self._gym_with_days(tmp_path, ["2024-02-27", "2024-03-01", "2024-03-02"])
        assert gym.stats.current_streak(datetime.date(2024, 3, 2)) == 2
        assert gym.stats.workout_days_map() == {
            "2024-02-27": 1,
            "2024-03-01": 1,
            "2024-03-02": 1,
        }
        gym.db.close()


class TestSummaries:
    def test_history_item(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Full Body", "Back Squat", "Bench Press")
        sid = gym.service.create_draft(tid)
        slots = gym.service.list_draft_slots(sid)
        squat = slots[0].selected_session_slot_choice_id
        bench = slots[1].selected_session_slot_choice_id
        for index in (1, 2, 3):
            gym.sets.toggle_completed(gym.sets.upsert(squat, index, 100, 5), True)
        for index in (1, 2):
            gym.sets.toggle_completed(gym.sets.upsert(bench, index, 105, 10), True)
        gym.sets.upsert(bench, 3, 105, 10)
        gym.service.finish_session(sid, _day("2024-01-01"))

        history = gym.service.list_history()
        assert len(history) == 1
        item = history[0]
        assert item.template_name == "Full Body"
        assert item.slots_count == 2
        assert item.sets_count == 6
        assert item.completed_sets_count == 5
        assert item.total_volume == pytest.approx(3600)
        names = item.exercises.split(", ")
        assert sorted(names) == ["Back Squat", "Bench Press"]
        gym.db.close()

    def test_drafts_excluded_from_history(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Full Body", "Back Squat")
        gym.service.create_draft(tid)
        assert gym.service.list_history() == []
        gym.db.close()

    def test_overall_and_weekly(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Legs", "Back Squat")
        now = datetime.datetime(2024, 6, 10, 12, tzinfo=datetime.timezone.utc)
        recent = format_timestamp(now - datetime.timedelta(days=1))
        old = format_timestamp(now - datetime.timedelta(days=10))
        gym.session(tid, old, {0: [(100, 5)]})
        gym.session(tid, recent, {0: [(100, 5), (100, 5)]})

        overall = gym.stats.overall_stats(now)
        assert overall.total_sessions == 2
        assert overall.last7.sessions_count == 1
        assert overall.last7.sets_count == 2
        assert overall.last7.total_volume == pytest.approx(1000)

        muscles = gym.stats.weekly_volume_by_muscle(now)
        assert [(m.muscle, m.sets, m.volume) for m in muscles] == [("squat", 2, 1000)]

        per_template = gym.stats.per_template_stats()
        assert [(t.name, t.sessions_count, t.total_sets) for t in per_template] == [("Legs", 2, 3)]
        gym.db.close()

    def test_exercise_stats(self, tmp_path):
        gym = Gym(tmp_path)
        tid = gym.template("Legs", "Back Squat")
        gym.session(tid, _day("2024-01-01"), {0: [(100, 5)]})
        gym.session(tid, _day("2024-01-05"), {0: [(80, 10)]})
        eid = gym.exercises.find_by_name("Back Squat").id
        stats = gym.stats.exercise_stats(eid)
        assert stats.best_e1rm == pytest.approx(100 * (1 + 5 / 30))
        assert stats.best_volume == pytest.approx(800)
        assert stats.last_performed == _day("2024-01-05")
        gym.db.close()
