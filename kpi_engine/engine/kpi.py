"""KPI composer.

  total_kpi = max(0, min(base + sum(coefficients) + priority_bonus + revolut_score, 150))

The calculator holds no per-call state; one instance can be shared by any
number of callers.  Validation is separate from computation and reports
every issue it finds in one pass.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional, Union

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.config.settings import KPI_CAP, MAX_TASKS_PER_DAY
from kpi_engine.engine.book_principles import book_principles_coefficient
from kpi_engine.engine.context import DayContext
from kpi_engine.engine.efficiency_laws import BookPolicy, evaluate_efficiency_laws
from kpi_engine.engine.priority import PriorityManager
from kpi_engine.engine.scorecard import ScorecardEngine, revolut_score
from kpi_engine.models.records import (
    COEFFICIENT_BOUND,
    DailyRecord,
    Habit,
    HabitRecord,
    KPICalculationData,
    MAX_QUALITY_SCORE,
    MIN_QUALITY_SCORE,
    PILLAR_MAX,
    PILLAR_MIN,
    RevolutPillars,
    Task,
    TaskPriority,
)

logger = logging.getLogger(__name__)

BASE_PERCENT_CAP = 150.0
PILLAR_NAMES = ("deliverables", "skills", "culture")


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": [e.to_dict() for e in self.errors]}


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _validate_record_coefficients(index: int, coefficients: Any) -> list[ValidationIssue]:
    """Stored per-record coefficients stay within the same bound as the engine's."""
    if not coefficients:
        return []
    if not isinstance(coefficients, Mapping):
        return [ValidationIssue(
            f"habit_records[{index}].efficiency_coefficients", "Efficiency coefficients must be a mapping"
        )]
    return [
        ValidationIssue(
            f"habit_records[{index}].efficiency_coefficients.{name}",
            f"Coefficient must be between {-COEFFICIENT_BOUND:g} and {COEFFICIENT_BOUND:g}",
        )
        for name, value in coefficients.items()
        if not _is_number(value) or not -COEFFICIENT_BOUND <= value <= COEFFICIENT_BOUND
    ]


class KPICalculator:
    def __init__(
        self,
        priority_manager: Optional[PriorityManager] = None,
        policy: Optional[ScoringPolicy] = None,
        book_policy: BookPolicy = book_principles_coefficient,
        scorecard: Optional[ScorecardEngine] = None,
    ):
        self.policy = policy or default_policy()
        self.priority_manager = priority_manager or PriorityManager(self.policy)
        self.book_policy = book_policy
        self.scorecard = scorecard or ScorecardEngine(self.policy)

    # ── Computation ─────────────────────────────────────────────────────

    def calculate_daily_kpi(
        self,
        habit_records: list[HabitRecord],
        tasks: list[Task],
        habits: list[Habit],
        revolut_pillars: RevolutPillars,
        streak_data: Optional[Mapping[str, int]] = None,
        day: Optional[date] = None,
    ) -> KPICalculationData:
        ctx = DayContext.build(
            habit_records, tasks, habits, day=day, streak_data=streak_data, policy=self.policy,
        )
        base = self.base_score(ctx)
        coefficients = evaluate_efficiency_laws(ctx, self.book_policy)
        bonus = self.priority_manager.calculate_priority_bonus(list(ctx.tasks))
        revolut = revolut_score(revolut_pillars)

        total = base + coefficients.total() + bonus + revolut
        total_kpi = max(0.0, min(total, KPI_CAP))
        logger.debug(
            "KPI %s: base=%.2f coef=%.2f bonus=%d revolut=%.2f total=%.2f",
            ctx.day, base, coefficients.total(), bonus, revolut, total_kpi,
        )
        return KPICalculationData(
            base_score=base,
            efficiency_coefficients=coefficients,
            priority_bonus=bonus,
            revolut_score=revolut,
            total_kpi=total_kpi,
        )

    def score_day(
        self,
        record: DailyRecord,
        habits: list[Habit],
        revolut_pillars: Optional[RevolutPillars] = None,
        streak_data: Optional[Mapping[str, int]] = None,
        skill_deltas: Optional[Mapping[str, float]] = None,
    ) -> KPICalculationData:
        """Score a stored day; pillars are computed fresh when not supplied."""
        if revolut_pillars is None:
            revolut_pillars = self.scorecard.calculate_daily_scorecard(
                record.habit_records, record.tasks, habits, skill_deltas, day=record.date,
            )
        return self.calculate_daily_kpi(
            record.habit_records, record.tasks, habits, revolut_pillars,
            streak_data=streak_data, day=record.date,
        )

    def base_score(self, ctx: DayContext) -> float:
        """Average of min(actual / adjusted target * 100, 150) over resolvable records."""
        percentages = [
            min(record.actual_minutes / ctx.target_for(habit) * 100, BASE_PERCENT_CAP)
            for record, habit in ctx.resolved()
        ]
        return sum(percentages) / len(percentages) if percentages else 0.0

    # ── Validation ──────────────────────────────────────────────────────

    def validate_inputs(
        self,
        habit_records: Any,
        tasks: Any,
        revolut_pillars: Union[RevolutPillars, Mapping[str, Any], None],
        habits: Any = None,
    ) -> ValidationResult:
        result = ValidationResult()
        errors = result.errors

        if not isinstance(habit_records, list):
            errors.append(ValidationIssue("habit_records", "Habit records must be a list"))
        else:
            for i, hr in enumerate(habit_records):
                if not isinstance(hr, HabitRecord):
                    errors.append(ValidationIssue(f"habit_records[{i}]", "Not a habit record"))
                    continue
                if not _is_number(hr.actual_minutes) or hr.actual_minutes < 0:
                    errors.append(ValidationIssue(
                        f"habit_records[{i}].actual_minutes", "Actual minutes must be a non-negative number"
                    ))
                if hr.quality_score is not None and (
                    not _is_number(hr.quality_score)
                    or not MIN_QUALITY_SCORE <= hr.quality_score <= MAX_QUALITY_SCORE
                ):
                    errors.append(ValidationIssue(
                        f"habit_records[{i}].quality_score",
                        f"Quality score must be between {MIN_QUALITY_SCORE} and {MAX_QUALITY_SCORE}",
                    ))
                errors.extend(_validate_record_coefficients(i, hr.efficiency_coefficients))

        if not isinstance(tasks, list):
            errors.append(ValidationIssue("tasks", "Tasks must be a list"))
        else:
            if len(tasks) > MAX_TASKS_PER_DAY:
                errors.append(ValidationIssue("tasks", f"Maximum {MAX_TASKS_PER_DAY} tasks allowed per day"))
            for i, task in enumerate(tasks):
                if not isinstance(task, Task):
                    errors.append(ValidationIssue(f"tasks[{i}]", "Not a task"))
                    continue
                if not isinstance(task.priority, TaskPriority):
                    errors.append(ValidationIssue(
                        f"tasks[{i}].priority", "Priority must be one of high, medium, low"
                    ))
                for attr in ("estimated_minutes", "actual_minutes"):
                    value = getattr(task, attr)
                    if value is not None and (not _is_number(value) or value < 0):
                        errors.append(ValidationIssue(
                            f"tasks[{i}].{attr}", "Minutes must be a non-negative number"
                        ))

        if habits is not None and not isinstance(habits, list):
            errors.append(ValidationIssue("habits", "Habits must be a list"))

        errors.extend(self._validate_pillars(revolut_pillars))
        return result

    @staticmethod
    def _validate_pillars(pillars: Union[RevolutPillars, Mapping[str, Any], None]) -> list[ValidationIssue]:
        if pillars is None:
            return [ValidationIssue("revolut_pillars", "Revolut pillars are required")]
        if isinstance(pillars, RevolutPillars):
            pillars = pillars.to_dict()
        if not isinstance(pillars, Mapping):
            return [ValidationIssue("revolut_pillars", "Revolut pillars must be a mapping")]

        issues = []
        for name in PILLAR_NAMES:
            value = pillars.get(name)
            if not _is_number(value) or not (PILLAR_MIN <= value <= PILLAR_MAX):
                issues.append(ValidationIssue(
                    f"revolut_pillars.{name}",
                    f"{name.capitalize()} must be between {PILLAR_MIN:g} and {PILLAR_MAX:g}",
                ))
        return issues
