from __future__ import annotations
import datetime
import logging
from typing import Dict, List, Optional

from algorithms import MathTools
from db import Database, PersonalRecordRepository, format_timestamp
from models import (
    DetectedPR,
    E1rmPoint,
    ExerciseStats,
    MuscleVolume,
    OverallStats,
    PersonalRecord,
    TemplateStats,
    WindowStats,
)

LOGGER = logging.getLogger(__name__)

# joins every set to its exercise and owning session
_SET_JOINS = (
    "FROM sets se "
    "JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
    "JOIN template_slot_options o ON o.id = c.template_slot_option_id "
    "JOIN session_slots ss ON ss.id = c.session_slot_id "
    "JOIN sessions s ON s.id = ss.session_id "
)
_WORKING = "se.completed = 1 AND se.is_warmup = 0"
_E1RM_RANGE = (
    f"se.reps BETWEEN {MathTools.E1RM_MIN_REPS} AND {MathTools.E1RM_MAX_REPS} AND se.weight > 0"
)


class StatisticsService:
    """Compute workout statistics for analysis."""

    STREAK_LOOKBACK_DAYS = 365

    def __init__(
        self,
        db: Database,
        record_repo: PersonalRecordRepository | None = None,
    ) -> None:
        self.db = db
        self.records = record_repo or PersonalRecordRepository(db)

    @staticmethod
    def _now(now: Optional[datetime.datetime]) -> datetime.datetime:
        return now or datetime.datetime.now(datetime.timezone.utc)

    def _cutoff(self, days: int, now: Optional[datetime.datetime]) -> str:
        return format_timestamp(self._now(now) - datetime.timedelta(days=days))

    def e1rm_history(self, exercise_id: int) -> List[E1rmPoint]:
        """Best estimated 1RM per finalized session, oldest first."""
        rows = self.records.fetch_all(
            "SELECT s.id AS session_id, s.performed_at, se.weight, se.reps "
            + _SET_JOINS
            + f"WHERE o.exercise_id = ? AND s.status = 'final' AND {_WORKING} AND {_E1RM_RANGE} "
            "ORDER BY s.performed_at, s.id;",
            (exercise_id,),
        )
        best: Dict[int, E1rmPoint] = {}
        for r in rows:
            value = MathTools.epley_1rm(r["weight"], r["reps"])
            point = best.get(r["session_id"])
            if point is None:
                best[r["session_id"]] = E1rmPoint(r["performed_at"], r["session_id"], value)
            elif value > point.e1rm:
                point.e1rm = value
        return list(best.values())

    def overall_stats(self, now: Optional[datetime.datetime] = None) -> OverallStats:
        total = self.records.fetch_one("SELECT COUNT(*) FROM sessions WHERE status = 'final';")
        row = self.records.fetch_one(
            "SELECT COUNT(DISTINCT s.id) AS sessions_count, "
            f"COUNT(CASE WHEN {_WORKING} THEN se.id END) AS sets_count, "
            f"COALESCE(SUM(CASE WHEN {_WORKING} THEN se.weight * se.reps ELSE 0 END), 0) AS total_volume "
            "FROM sessions s "
            "LEFT JOIN session_slots ss ON ss.session_id = s.id "
            "LEFT JOIN session_slot_choices c ON c.session_slot_id = ss.id "
            "LEFT JOIN sets se ON se.session_slot_choice_id = c.id "
            "WHERE s.status = 'final' AND s.performed_at >= ?;",
            (self._cutoff(7, now),),
        )
        return OverallStats(
            total_sessions=int(total[0]),
            last7=WindowStats(
                sessions_count=int(row["sessions_count"]),
                sets_count=int(row["sets_count"]),
                total_volume=float(row["total_volume"]),
            ),
        )

    def per_template_stats(self) -> List[TemplateStats]:
        rows = self.records.fetch_all(
            "SELECT t.id AS template_id, t.name, "
            "COUNT(DISTINCT s.id) AS sessions_count, "
            f"COUNT(CASE WHEN {_WORKING} THEN se.id END) AS total_sets, "
            f"COALESCE(SUM(CASE WHEN {_WORKING} THEN se.weight * se.reps ELSE 0 END), 0) AS total_volume "
            "FROM templates t "
            "LEFT JOIN sessions s ON s.template_id = t.id AND s.status = 'final' "
            "LEFT JOIN session_slots ss ON ss.session_id = s.id "
            "LEFT JOIN session_slot_choices c ON c.session_slot_id = ss.id "
            "LEFT JOIN sets se ON se.session_slot_choice_id = c.id "
            "GROUP BY t.id, t.name ORDER BY t.name COLLATE NOCASE;"
        )
        return [TemplateStats.from_row(r) for r in rows]

    def weekly_volume_by_muscle(self, now: Optional[datetime.datetime] = None) -> List[MuscleVolume]:
        rows = self.records.fetch_all(
            "SELECT e.primary_muscle AS muscle, COUNT(se.id) AS sets, "
            "COALESCE(SUM(se.weight * se.reps), 0) AS volume "
            + _SET_JOINS
            + "JOIN exercises e ON e.id = o.exercise_id "
            f"WHERE s.status = 'final' AND s.performed_at >= ? AND {_WORKING} "
            "AND e.primary_muscle IS NOT NULL "
            "GROUP BY e.primary_muscle ORDER BY sets DESC, muscle;",
            (self._cutoff(7, now),),
        )
        return [MuscleVolume.from_row(r) for r in rows]

    def workout_days_map(self) -> Dict[str, int]:
        rows = self.records.fetch_all(
            "SELECT substr(performed_at, 1, 10) AS day, COUNT(*) AS c FROM sessions "
            "WHERE status = 'final' GROUP BY day ORDER BY day;"
        )
        return {r["day"]: int(r["c"]) for r in rows}

    def current_streak(self, today: Optional[datetime.date] = None) -> int:
        """Return the number of consecutive training days up to today.

        A day without a session today does not break the streak yet; the
        count then starts from yesterday.
        """
        days = {datetime.date.fromisoformat(d) for d in self.workout_days_map()}
        if not days:
            return 0
        today = today or datetime.datetime.now(datetime.timezone.utc).date()
        if (today - max(days)).days > 1:
            return 0
        streak = 0
        check = today
        for i in range(self.STREAK_LOOKBACK_DAYS):
            if check in days:
                streak += 1
            elif i > 0:
                break
            check -= datetime.timedelta(days=1)
        return streak

    def detect_and_record_prs(self, session_id: int) -> List[DetectedPR]:
        """Record the e1RM and weight records a session set.

        Each exercise of the session is compared with the best result in
        every other finalized session. Earlier records of this session are
        replaced, so running the detection again yields the same log.
        """
        rows = self.records.fetch_all(
            "SELECT o.exercise_id, e.name AS exercise_name, s.id AS session_id, se.weight, se.reps "
            + _SET_JOINS
            + "JOIN exercises e ON e.id = o.exercise_id "
            "WHERE o.exercise_id IN ("
            " SELECT o2.exercise_id FROM session_slots ss2 "
            " JOIN session_slot_choices c2 ON c2.session_slot_id = ss2.id "
            " JOIN template_slot_options o2 ON o2.id = c2.template_slot_option_id "
            " WHERE ss2.session_id = ?) "
            f"AND (s.id = ? OR s.status = 'final') AND {_WORKING} AND {_E1RM_RANGE} "
            "ORDER BY e.name;",
            (session_id, session_id),
        )
        current: Dict[int, Dict[str, float]] = {}
        previous: Dict[int, Dict[str, float]] = {}
        names: Dict[int, str] = {}
        for r in rows:
            names[r["exercise_id"]] = r["exercise_name"]
            target = current if r["session_id"] == session_id else previous
            bests = target.setdefault(r["exercise_id"], {})
            e1rm = MathTools.epley_1rm(r["weight"], r["reps"])
            bests["e1rm"] = max(bests.get("e1rm", 0.0), e1rm)
            bests["weight"] = max(bests.get("weight", 0.0), float(r["weight"]))

        detected: List[DetectedPR] = []
        with self.db.transaction():
            replaced = self.records.delete_for_session(session_id)
            if replaced:
                LOGGER.info("replacing %s earlier records of session %s", replaced, session_id)
            for exercise_id, bests in current.items():
                prior = previous.get(exercise_id, {})
                for pr_type in ("e1rm", "weight"):
                    value = bests[pr_type]
                    prev = prior.get(pr_type)
                    if prev is not None and value <= prev:
                        continue
                    self.records.add(exercise_id, session_id, pr_type, value, prev)
                    detected.append(
                        DetectedPR(exercise_id, names[exercise_id], pr_type, value, prev)
                    )
        if detected:
            LOGGER.info("session %s set %s personal records", session_id, len(detected))
        return detected

    def session_prs(self, session_id: int) -> List[PersonalRecord]:
        return self.records.fetch_for_session(session_id)

    def session_has_prs(self, session_id: int) -> bool:
        return self.records.has_any(session_id)

    def pr_counts_by_session(self) -> Dict[int, int]:
        return self.records.counts_by_session()

    def exercise_stats(self, exercise_id: int) -> ExerciseStats:
        """Best e1RM, best single-set volume and last date for an exercise."""
        rows = self.records.fetch_all(
            "SELECT s.performed_at, se.weight, se.reps "
            + _SET_JOINS
            + f"WHERE o.exercise_id = ? AND s.status = 'final' AND {_WORKING};",
            (exercise_id,),
        )
        best_e1rm: Optional[float] = None
        best_volume: Optional[float] = None
        last: Optional[str] = None
        for r in rows:
            weight, reps = float(r["weight"]), int(r["reps"])
            if MathTools.counts_for_e1rm(weight, reps):
                e1rm = MathTools.epley_1rm(weight, reps)
                best_e1rm = e1rm if best_e1rm is None else max(best_e1rm, e1rm)
            vol = MathTools.volume([(reps, weight)])
            best_volume = vol if best_volume is None else max(best_volume, vol)
            if last is None or r["performed_at"] > last:
                last = r["performed_at"]
        return ExerciseStats(best_e1rm=best_e1rm, best_volume=best_volume, last_performed=last)
