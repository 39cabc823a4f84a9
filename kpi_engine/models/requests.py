"""Request payloads for the HTTP adapter.

Field ranges are deliberately loose: the calculator's own validation
reports every out-of-range value in one response.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field

from kpi_engine.models.records import (
    DailyRecord,
    EisenhowerQuadrant,
    ExceptionType,
    Habit,
    HabitRecord,
    RevolutPillars,
    Task,
    TaskPriority,
)


class HabitIn(BaseModel):
    habit_id: str
    name: str
    target_minutes: int = Field(gt=0)
    category: str = "other"
    skill_level: int = Field(1, ge=1, le=5)
    eisenhower_quadrant: Optional[EisenhowerQuadrant] = None
    is_weekday_only: bool = False
    weekend_target_minutes: Optional[int] = None

    def to_domain(self) -> Habit:
        return Habit(**self.model_dump())


class HabitRecordIn(BaseModel):
    record_id: str = ""
    habit_id: str
    actual_minutes: float = 0
    quality_score: Optional[int] = None

    def to_domain(self, index: int = 0) -> HabitRecord:
        return HabitRecord(
            record_id=self.record_id or f"hr-{index}",
            habit_id=self.habit_id,
            actual_minutes=self.actual_minutes,
            quality_score=self.quality_score,
        )


class TaskIn(BaseModel):
    task_id: str = ""
    title: str
    priority: TaskPriority = TaskPriority.MEDIUM
    completed: bool = False
    estimated_minutes: Optional[float] = None
    actual_minutes: Optional[float] = None
    quadrant: Optional[EisenhowerQuadrant] = None

    def to_domain(self, index: int = 0) -> Task:
        data = self.model_dump()
        data["task_id"] = self.task_id or f"task-{index}"
        return Task(**data)


class PillarsIn(BaseModel):
    deliverables: float
    skills: float
    culture: float

    def to_domain(self) -> RevolutPillars:
        return RevolutPillars(**self.model_dump())


class DayPayload(BaseModel):
    habit_records: list[HabitRecordIn] = []
    tasks: list[TaskIn] = []
    habits: list[HabitIn] = []
    date: Optional[dt.date] = None

    def domain_records(self) -> list[HabitRecord]:
        return [hr.to_domain(i) for i, hr in enumerate(self.habit_records)]

    def domain_tasks(self) -> list[Task]:
        return [t.to_domain(i) for i, t in enumerate(self.tasks)]

    def domain_habits(self) -> list[Habit]:
        return [h.to_domain() for h in self.habits]


class CalculateKPIRequest(DayPayload):
    # Computed from the day when omitted
    revolut_pillars: Optional[PillarsIn] = None
    streak_data: dict[str, int] = {}


class ScorecardRequest(DayPayload):
    skill_deltas: dict[str, float] = {}


class DailyRecordRequest(BaseModel):
    user_id: str
    date: dt.date
    habit_records: list[HabitRecordIn] = []
    tasks: list[TaskIn] = []
    exception_type: Optional[ExceptionType] = None
    exception_note: str = ""

    def to_domain(self) -> DailyRecord:
        return DailyRecord(
            record_id=f"{self.user_id}:{self.date.isoformat()}",
            user_id=self.user_id,
            date=self.date,
            habit_records=[hr.to_domain(i) for i, hr in enumerate(self.habit_records)],
            tasks=[t.to_domain(i) for i, t in enumerate(self.tasks)],
            exception_type=self.exception_type,
            exception_note=self.exception_note,
        )
