"""
Value types for every persisted table and for the composite read models.

Repositories convert ``sqlite3.Row`` objects into these dataclasses at the
boundary so callers never index rows by column name.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field, fields
from typing import Literal, Optional

SessionStatus = Literal["draft", "final"]
PRType = Literal["e1rm", "weight"]
WeightUnit = Literal["kg", "lb"]


class RowModel:
    """Mixin building a dataclass from a ``sqlite3.Row``."""

    @classmethod
    def from_row(cls, row: sqlite3.Row):
        keys = set(row.keys())
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


@dataclass
class Exercise(RowModel):
    id: int
    name: str
    name_norm: str
    created_at: str
    primary_muscle: Optional[str] = None
    secondary_muscle: Optional[str] = None
    aliases: Optional[str] = None
    equipment: Optional[str] = None
    movement_pattern: Optional[str] = None
    video_url: Optional[str] = None
    instructions: Optional[str] = None
    tips: Optional[str] = None


@dataclass
class ExerciseOption(RowModel):
    id: int
    exercise_id: int
    name: str
    name_norm: str
    order_index: int
    created_at: str


@dataclass
class ExerciseGuide(RowModel):
    name: str
    video_url: Optional[str] = None
    instructions: Optional[str] = None
    tips: Optional[str] = None


@dataclass
class Template(RowModel):
    id: int
    name: str
    name_norm: str
    created_at: str


@dataclass
class TemplateSlot(RowModel):
    id: int
    template_id: int
    slot_index: int
    name: Optional[str]
    created_at: str


@dataclass
class TemplateSlotOption(RowModel):
    """A selectable exercise/variant for a slot, with display names joined in."""

    id: int
    template_slot_id: int
    exercise_id: int
    exercise_option_id: Optional[int]
    order_index: int
    created_at: str
    exercise_name: Optional[str] = None
    option_name: Optional[str] = None


@dataclass
class PrescribedSet(RowModel):
    id: int
    template_slot_id: int
    set_index: int
    weight: Optional[float] = None
    reps: Optional[int] = None
    rpe: Optional[float] = None
    notes: Optional[str] = None
    rest_seconds: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class TemplateDetail:
    template: Template
    slots: list[TemplateSlot]
    options: list[TemplateSlotOption]
    prescribed: list[PrescribedSet] = field(default_factory=list)


@dataclass
class Session(RowModel):
    id: int
    performed_at: str
    notes: Optional[str]
    status: SessionStatus
    template_id: Optional[int]
    created_at: str

    def __post_init__(self) -> None:
        if self.status not in ("draft", "final"):
            raise ValueError(f"invalid session status: {self.status}")


@dataclass
class SessionSlot(RowModel):
    id: int
    session_id: int
    template_slot_id: Optional[int]
    slot_index: int
    name: Optional[str]
    selected_session_slot_choice_id: Optional[int]
    created_at: str


@dataclass
class SessionSlotChoice(RowModel):
    id: int
    session_slot_id: int
    template_slot_option_id: int
    created_at: str


@dataclass
class SetRecord(RowModel):
    id: int
    session_slot_choice_id: int
    set_index: int
    weight: float
    reps: int
    rpe: Optional[float] = None
    notes: Optional[str] = None
    rest_seconds: Optional[int] = None
    completed: bool = False
    is_warmup: bool = False
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.completed = bool(self.completed)
        self.is_warmup = bool(self.is_warmup)


@dataclass
class SetInput:
    """Values for one set row before it is written."""

    set_index: int
    weight: float
    reps: int
    rpe: Optional[float] = None
    notes: Optional[str] = None
    rest_seconds: Optional[int] = None


@dataclass
class DropSegment(RowModel):
    id: int
    set_id: int
    segment_index: int
    weight: float
    reps: int
    created_at: Optional[str] = None


@dataclass
class LastTime:
    performed_at: str
    sets: list[SetRecord]


@dataclass
class DraftSlot(RowModel):
    """A session slot joined with its selected exercise for display."""

    session_slot_id: int
    slot_index: int
    name: Optional[str]
    template_slot_id: Optional[int]
    selected_session_slot_choice_id: Optional[int]
    template_slot_option_id: Optional[int] = None
    exercise_id: Optional[int] = None
    exercise_name: Optional[str] = None
    option_name: Optional[str] = None


@dataclass
class SlotOption(RowModel):
    """A template slot option as seen from a session slot."""

    template_slot_option_id: int
    exercise_id: int
    exercise_name: str
    exercise_option_id: Optional[int]
    option_name: Optional[str]
    order_index: int
    session_slot_choice_id: Optional[int] = None
    is_selected: bool = False

    def __post_init__(self) -> None:
        self.is_selected = bool(self.is_selected)


@dataclass
class HistoryItem(RowModel):
    id: int
    performed_at: str
    created_at: str
    notes: Optional[str]
    template_id: Optional[int]
    template_name: Optional[str]
    slots_count: int
    sets_count: int
    completed_sets_count: int
    total_volume: float
    exercises: Optional[str]


@dataclass
class SessionDetailSlot(RowModel):
    session_slot_id: int
    slot_index: int
    name: Optional[str]
    session_slot_choice_id: Optional[int]
    exercise_id: Optional[int]
    exercise_name: Optional[str]
    option_name: Optional[str]


@dataclass
class SessionDetail:
    session: Session
    template_name: Optional[str]
    slots: list[SessionDetailSlot]
    sets: dict[int, list[SetRecord]]


@dataclass
class E1rmPoint(RowModel):
    performed_at: str
    session_id: int
    e1rm: float


@dataclass
class WindowStats:
    sessions_count: int
    sets_count: int
    total_volume: float


@dataclass
class OverallStats:
    total_sessions: int
    last7: WindowStats


@dataclass
class TemplateStats(RowModel):
    template_id: int
    name: str
    sessions_count: int
    total_sets: int
    total_volume: float


@dataclass
class MuscleVolume(RowModel):
    muscle: str
    sets: int
    volume: float


@dataclass
class DetectedPR:
    exercise_id: int
    exercise_name: str
    pr_type: PRType
    value: float
    previous_value: Optional[float]


@dataclass
class PersonalRecord(RowModel):
    id: int
    exercise_id: int
    session_id: int
    pr_type: PRType
    value: float
    previous_value: Optional[float]
    created_at: str
    exercise_name: Optional[str] = None


@dataclass
class ExerciseStats(RowModel):
    best_e1rm: Optional[float]
    best_volume: Optional[float]
    last_performed: Optional[str]


@dataclass
class BodyWeightEntry(RowModel):
    id: int
    weight: float
    unit: WeightUnit
    measured_at: str

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise ValueError("weight must be positive")
