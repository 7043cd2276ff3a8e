from __future__ import annotations

import dataclasses
import logging
import sqlite3
from typing import Optional, Sequence

from db import (
    Database,
    PrescribedSetRepository,
    SessionRepository,
    SessionSlotChoiceRepository,
    SessionSlotRepository,
    SetRepository,
    SettingsRepository,
    TemplateRepository,
    TemplateSlotOptionRepository,
    utc_now,
)
from models import (
    DetectedPR,
    DraftSlot,
    HistoryItem,
    PrescribedSet,
    Session,
    SessionDetail,
    SetInput,
    SetRecord,
    SlotOption,
)
from stats_service import StatisticsService

LOGGER = logging.getLogger(__name__)

DEFAULT_REST_SECONDS = 90


def plan_sets(
    prescribed: Sequence[PrescribedSet],
    history: Sequence[SetRecord],
    default_rest: int = DEFAULT_REST_SECONDS,
) -> list[SetInput]:
    """Merge a slot's prescribed sets with the last performance of its exercise.

    Prescribed sets fix how many sets there are and their indices; each
    value comes from the matching historical set when one exists, then
    from the prescription, then zero (or no RPE). Without a prescription
    the historical sets are copied with their indices.
    """
    def pick(hist_value, planned_value, fallback):
        if hist_value is not None:
            return hist_value
        if planned_value is not None:
            return planned_value
        return fallback

    if prescribed:
        rows = []
        for i, p in enumerate(prescribed):
            h = history[i] if i < len(history) else None
            rows.append(
                SetInput(
                    set_index=p.set_index,
                    weight=float(pick(h.weight if h else None, p.weight, 0.0)),
                    reps=int(pick(h.reps if h else None, p.reps, 0)),
                    rpe=pick(h.rpe if h else None, p.rpe, None),
                    notes=p.notes,
                    rest_seconds=pick(h.rest_seconds if h else None, p.rest_seconds, default_rest),
                )
            )
        return rows
    return [
        SetInput(
            set_index=h.set_index,
            weight=h.weight,
            reps=h.reps,
            rpe=h.rpe,
            rest_seconds=h.rest_seconds if h.rest_seconds is not None else default_rest,
        )
        for h in history
    ]


class SessionService:
    """Drive a workout session from draft creation to finalization."""

    def __init__(
        self,
        db: Database,
        session_repo: Optional[SessionRepository] = None,
        slot_repo: Optional[SessionSlotRepository] = None,
        choice_repo: Optional[SessionSlotChoiceRepository] = None,
        set_repo: Optional[SetRepository] = None,
        template_repo: Optional[TemplateRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
        statistics: Optional[StatisticsService] = None,
    ) -> None:
        self.db = db
        self.sessions = session_repo or SessionRepository(db)
        self.slots = slot_repo or SessionSlotRepository(db)
        self.choices = choice_repo or SessionSlotChoiceRepository(db)
        self.sets = set_repo or SetRepository(db, settings_repo)
        self.templates = template_repo or TemplateRepository(db)
        self.slot_options: TemplateSlotOptionRepository = self.templates.options
        self.prescribed: PrescribedSetRepository = self.templates.prescribed
        self.settings = settings_repo
        self.statistics = statistics

    def _default_rest(self) -> int:
        if self.settings is not None:
            return self.settings.get_int("default_rest_seconds", DEFAULT_REST_SECONDS)
        return DEFAULT_REST_SECONDS

    def _materialize(
        self, choice_id: int, template_slot_id: Optional[int], option_id: int
    ) -> list[int]:
        prescribed = (
            self.prescribed.fetch_for_slot(template_slot_id) if template_slot_id else []
        )
        history = self.sets.fetch_carry_forward(option_id)
        rows = plan_sets(prescribed, history, self._default_rest())
        max_rpe = self.sets.max_rpe()
        rows = [
            dataclasses.replace(row, rpe=None)
            if row.rpe is not None and row.rpe > max_rpe
            else row
            for row in rows
        ]
        return [self.sets.insert(choice_id, row) for row in rows]

    def create_draft(self, template_id: int) -> int:
        """Start a draft session populated from a template.

        Every template slot with at least one option becomes a session slot
        whose default exercise is the one picked last time this template
        was finished, or else the first option. Sets are pre-filled from
        prescriptions and the last performance of that exercise.
        """
        self.templates.fetch(template_id)
        with self.db.transaction():
            session_id = self.sessions.create_draft(template_id)
            for slot in self.templates.slots.fetch_for_template(template_id):
                session_slot_id = self.slots.add(
                    session_id, slot.id, slot.slot_index, slot.name
                )
                options = self.slot_options.fetch_for_slot(slot.id)
                if not options:
                    self.slots.delete(session_slot_id)
                    continue
                option_id = options[0].id
                previous = self.sessions.last_selected_option(template_id, slot.slot_index)
                if previous is not None:
                    if any(o.id == previous for o in options):
                        option_id = previous
                    else:
                        LOGGER.warning(
                            "option %s no longer offered in slot %s, using default",
                            previous,
                            slot.id,
                        )
                choice_id = self.choices.add(session_slot_id, option_id)
                self.slots.select(session_slot_id, choice_id)
                self._materialize(choice_id, slot.id, option_id)
        LOGGER.info("created draft session %s from template %s", session_id, template_id)
        return session_id

    def select_choice(self, session_slot_id: int, template_slot_option_id: int) -> int:
        """Switch the exercise of a slot, reusing earlier entries for it."""
        slot = self.slots.fetch(session_slot_id)
        option = self.slot_options.fetch_detail(template_slot_option_id)
        if slot.template_slot_id is None or option.template_slot_id != slot.template_slot_id:
            raise ValueError("option does not belong to this slot")
        with self.db.transaction():
            choice_id = self.choices.find(session_slot_id, template_slot_option_id)
            if choice_id is None:
                choice_id = self.choices.add(session_slot_id, template_slot_option_id)
                self._materialize(choice_id, slot.template_slot_id, template_slot_option_id)
            self.slots.select(session_slot_id, choice_id)
        return choice_id

    def discard_draft(self, session_id: int) -> None:
        """Delete a draft and everything logged under it."""
        session = self.sessions.fetch(session_id)
        if session.status != "draft":
            raise ValueError("only draft sessions can be discarded")
        with self.db.transaction():
            try:
                self.sessions.execute(
                    "DELETE FROM drop_set_segments WHERE set_id IN ("
                    "SELECT se.id FROM sets se "
                    "JOIN session_slot_choices c ON c.id = se.session_slot_choice_id "
                    "JOIN session_slots ss ON ss.id = c.session_slot_id "
                    "WHERE ss.session_id = ?);",
                    (session_id,),
                )
            except sqlite3.OperationalError as e:
                LOGGER.debug("skipping drop segment cleanup for session %s: %s", session_id, e)
            self.sessions.execute(
                "DELETE FROM sets WHERE session_slot_choice_id IN ("
                "SELECT c.id FROM session_slot_choices c "
                "JOIN session_slots ss ON ss.id = c.session_slot_id "
                "WHERE ss.session_id = ?);",
                (session_id,),
            )
            self.sessions.execute(
                "UPDATE session_slots SET selected_session_slot_choice_id = NULL WHERE session_id = ?;",
                (session_id,),
            )
            self.sessions.execute(
                "DELETE FROM session_slot_choices WHERE session_slot_id IN ("
                "SELECT id FROM session_slots WHERE session_id = ?);",
                (session_id,),
            )
            self.sessions.execute("DELETE FROM session_slots WHERE session_id = ?;", (session_id,))
            self.sessions.execute("DELETE FROM sessions WHERE id = ?;", (session_id,))
        LOGGER.info("discarded draft session %s", session_id)

    def finalize_session(self, session_id: int, performed_at: Optional[str] = None) -> None:
        """Mark a session final and stamp when it was performed.

        PR detection is a separate step; see ``finish_session``.
        """
        self.sessions.fetch(session_id)
        self.sessions.finalize(session_id, performed_at or utc_now())
        LOGGER.info("finalized session %s", session_id)

    def finish_session(self, session_id: int, performed_at: Optional[str] = None) -> list[DetectedPR]:
        """Finalize a session and record the personal records it set."""
        if self.statistics is None:
            raise ValueError("statistics service not configured")
        self.finalize_session(session_id, performed_at)
        return self.statistics.detect_and_record_prs(session_id)

    def update_notes(self, session_id: int, notes: Optional[str]) -> None:
        self.sessions.update_notes(session_id, notes)

    def get_active_draft(self) -> Optional[Session]:
        return self.sessions.active_draft()

    def list_draft_slots(self, session_id: int) -> list[DraftSlot]:
        return self.slots.list_for_session(session_id)

    def list_slot_options(self, session_slot_id: int) -> list[SlotOption]:
        self.slots.fetch(session_slot_id)
        return self.slots.list_options(session_slot_id)

    def list_history(self, limit: Optional[int] = None) -> list[HistoryItem]:
        return self.sessions.list_history(limit)

    def get_session_detail(self, session_id: int) -> SessionDetail:
        session = self.sessions.fetch(session_id)
        grouped: dict[int, list[SetRecord]] = {}
        for record in self.sets.list_for_session(session_id):
            grouped.setdefault(record.session_slot_choice_id, []).append(record)
        return SessionDetail(
            session=session,
            template_name=self.sessions.template_name(session_id),
            slots=self.slots.detail_for_session(session_id),
            sets=grouped,
        )
