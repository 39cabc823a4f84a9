"""Domain records for the daily KPI engine.

Habits, habit records, tasks and daily records arrive fully hydrated from the
record store; the engines only read them.  Every record round-trips through
``to_dict``/``from_dict`` so the store and the cache can keep plain JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from kpi_engine.engine.efficiency_laws import EfficiencyCoefficients

MIN_QUALITY_SCORE = 1
MAX_QUALITY_SCORE = 5
COEFFICIENT_BOUND = 15.0
PILLAR_MIN = 0.0
PILLAR_MAX = 100.0


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EisenhowerQuadrant(str, Enum):
    Q1 = "Q1"  # Urgent + important
    Q2 = "Q2"  # Important, not urgent
    Q3 = "Q3"  # Urgent, not important
    Q4 = "Q4"  # Neither


class ExceptionType(str, Enum):
    ILLNESS = "illness"
    TRAVEL = "travel"
    EMERGENCY = "emergency"
    TECHNICAL = "technical"


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class Habit:
    habit_id: str
    name: str
    target_minutes: int
    category: str = "other"
    skill_level: int = 1                       # 1-5
    eisenhower_quadrant: Optional[EisenhowerQuadrant] = None
    is_weekday_only: bool = False
    weekend_target_minutes: Optional[int] = None

    def adjusted_target(self, day: date, weekday_targets: dict[str, dict[str, int]]) -> int:
        """Target minutes for ``day``.

        Weekday-only habits take a day-of-week dependent target: their own
        ``weekend_target_minutes`` if set, else the policy table keyed by name
        (e.g. Work: 360 on weekdays, 180 on weekends).
        """
        if not self.is_weekday_only:
            return self.target_minutes
        is_weekend = day.weekday() >= 5
        if self.weekend_target_minutes is not None:
            return self.weekend_target_minutes if is_weekend else self.target_minutes
        table = weekday_targets.get(self.name)
        if table:
            return table["weekend"] if is_weekend else table["weekday"]
        return self.target_minutes

    def to_dict(self) -> dict:
        d = asdict(self)
        d["eisenhower_quadrant"] = (
            self.eisenhower_quadrant.value if self.eisenhower_quadrant else None
        )
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Habit:
        data = dict(data)
        quadrant = data.get("eisenhower_quadrant")
        data["eisenhower_quadrant"] = EisenhowerQuadrant(quadrant) if quadrant else None
        data["target_minutes"] = int(data["target_minutes"])
        if "skill_level" in data:
            data["skill_level"] = int(data["skill_level"])
        if "is_weekday_only" in data and isinstance(data["is_weekday_only"], str):
            # Redis hashes hold strings
            data["is_weekday_only"] = data["is_weekday_only"].lower() in ("1", "true")
        data["weekend_target_minutes"] = _optional_int(data.get("weekend_target_minutes"))
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class HabitRecord:
    record_id: str
    habit_id: str
    actual_minutes: float = 0
    quality_score: Optional[int] = None        # 1-5
    efficiency_coefficients: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> HabitRecord:
        data = dict(data)
        data["quality_score"] = _optional_int(data.get("quality_score"))
        data["efficiency_coefficients"] = dict(data.get("efficiency_coefficients") or {})
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Task:
    task_id: str
    title: str
    priority: TaskPriority = TaskPriority.MEDIUM
    completed: bool = False
    estimated_minutes: Optional[float] = None
    actual_minutes: Optional[float] = None
    quadrant: Optional[EisenhowerQuadrant] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["priority"] = self.priority.value
        d["quadrant"] = self.quadrant.value if self.quadrant else None
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Task:
        data = dict(data)
        data["priority"] = TaskPriority(data.get("priority", TaskPriority.MEDIUM.value))
        quadrant = data.get("quadrant")
        data["quadrant"] = EisenhowerQuadrant(quadrant) if quadrant else None
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class DailyRecord:
    record_id: str
    user_id: str
    date: date
    habit_records: list[HabitRecord] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    exception_type: Optional[ExceptionType] = None
    exception_note: str = ""
    total_kpi: Optional[float] = None

    @property
    def is_exception(self) -> bool:
        """Exception days are left out of every aggregate."""
        return self.exception_type is not None

    @property
    def total_minutes(self) -> float:
        return sum(hr.actual_minutes for hr in self.habit_records)

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "habit_records": [hr.to_dict() for hr in self.habit_records],
            "tasks": [t.to_dict() for t in self.tasks],
            "exception_type": self.exception_type.value if self.exception_type else None,
            "exception_note": self.exception_note,
            "total_kpi": self.total_kpi,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DailyRecord:
        try:
            exception = data.get("exception_type")
            total_kpi = data.get("total_kpi")
            return cls(
                record_id=data["record_id"],
                user_id=data["user_id"],
                date=_parse_date(data["date"]),
                habit_records=[HabitRecord.from_dict(hr) for hr in data.get("habit_records", [])],
                tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
                exception_type=ExceptionType(exception) if exception else None,
                exception_note=data.get("exception_note") or "",
                total_kpi=float(total_kpi) if total_kpi is not None else None,
            )
        except KeyError as exc:
            raise ValueError(f"Daily record missing field {exc}") from exc


@dataclass
class RevolutPillars:
    """Deliverables / skills / culture, each a percentage in [0, 100]."""
    deliverables: float
    skills: float
    culture: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> RevolutPillars:
        return cls(
            deliverables=float(data["deliverables"]),
            skills=float(data["skills"]),
            culture=float(data["culture"]),
        )


@dataclass
class KPICalculationData:
    """One day's KPI breakdown.  Transient: callers decide whether to persist it."""
    base_score: float
    efficiency_coefficients: EfficiencyCoefficients
    priority_bonus: float
    revolut_score: float
    total_kpi: float

    def to_dict(self) -> dict:
        return {
            "base_score": self.base_score,
            "efficiency_coefficients": self.efficiency_coefficients.to_dict(),
            "priority_bonus": self.priority_bonus,
            "revolut_score": self.revolut_score,
            "total_kpi": self.total_kpi,
        }

