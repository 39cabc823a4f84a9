"""Efficiency Law Engine.

A closed, ordered set of rules.  Each rule is a pure function of one day's
``DayContext`` and returns a single coefficient; the engine clamps every
result to [-15, +15] and collects them into ``EfficiencyCoefficients``.

  pareto               +10  >=80% tasks high priority, or >=60% time in Q2 habits
  parkinson            +15 / -10 per evaluated task, averaged
  diminishing_returns  -15  a work-category habit over 240 min
  yerkes_dodson        +10  >=80% completed tasks within 110% of estimate
  pomodoro             +10  any habit record in [25, 50] min
  deep_work            +15  a work-category habit record >=90 min
  time_blocking        +10  >=70% estimated tasks within +-20%
  habit_stacking       +10  >=5 habit records with minutes
  compound_effect       +5  >=80% habit records with minutes
  focus_blocks         +12  >=2 completed tasks of >=25 min
  book_principles     0..15 streak-fed book principles (see book_principles.py)
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Callable

from kpi_engine.engine.book_principles import book_principles_coefficient
from kpi_engine.engine.context import DayContext
from kpi_engine.models.records import COEFFICIENT_BOUND

BookPolicy = Callable[[DayContext], float]

# Thresholds
PARETO_HIGH_PRIORITY_RATIO = 0.8
PARETO_Q2_TIME_RATIO = 0.6
PARKINSON_FAST_RATIO = 0.9
PARKINSON_SLOW_RATIO = 1.2
DIMINISHING_RETURNS_MINUTES = 240
YERKES_DODSON_TOLERANCE = 1.1
YERKES_DODSON_RATIO = 0.8
POMODORO_RANGE = (25, 50)
DEEP_WORK_MINUTES = 90
TIME_BLOCK_TOLERANCE = 0.2
TIME_BLOCK_RATIO = 0.7
HABIT_STACK_SIZE = 5
COMPOUND_RATIO = 0.8
FOCUS_BLOCK_MINUTES = 25
FOCUS_BLOCK_COUNT = 2


class EfficiencyLaw(str, Enum):
    PARETO = "pareto"
    PARKINSON = "parkinson"
    DIMINISHING_RETURNS = "diminishing_returns"
    YERKES_DODSON = "yerkes_dodson"
    POMODORO = "pomodoro"
    DEEP_WORK = "deep_work"
    TIME_BLOCKING = "time_blocking"
    HABIT_STACKING = "habit_stacking"
    COMPOUND_EFFECT = "compound_effect"
    FOCUS_BLOCKS = "focus_blocks"
    BOOK_PRINCIPLES = "book_principles"


@dataclass(frozen=True)
class EfficiencyCoefficients:
    """One value per ``EfficiencyLaw``; field names match the enum values."""
    pareto: float = 0.0
    parkinson: float = 0.0
    diminishing_returns: float = 0.0
    yerkes_dodson: float = 0.0
    pomodoro: float = 0.0
    deep_work: float = 0.0
    time_blocking: float = 0.0
    habit_stacking: float = 0.0
    compound_effect: float = 0.0
    focus_blocks: float = 0.0
    book_principles: float = 0.0

    def get(self, law: EfficiencyLaw) -> float:
        return getattr(self, law.value)

    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> EfficiencyCoefficients:
        unknown = set(data) - {law.value for law in EfficiencyLaw}
        if unknown:
            raise ValueError(f"Unknown efficiency laws: {sorted(unknown)}")
        return cls(**{k: float(v) for k, v in data.items()})


def clamp_coefficient(value: float) -> float:
    return max(-COEFFICIENT_BOUND, min(COEFFICIENT_BOUND, value))


# ── Rules ───────────────────────────────────────────────────────────────


def pareto_law(ctx: DayContext) -> float:
    """20% of efforts give 80% of results."""
    if (ctx.high_priority_ratio() >= PARETO_HIGH_PRIORITY_RATIO
            or ctx.q2_time_ratio() >= PARETO_Q2_TIME_RATIO):
        return 10.0
    return 0.0


def parkinson_law(ctx: DayContext) -> float:
    """Work expands to fill the time available.

    Completed tasks with both estimate and actual: finishing under 90% of the
    estimate earns +15, running over 120% costs -10, averaged over those tasks.
    """
    score = 0.0
    evaluated = 0
    for task in ctx.tasks:
        if not (task.completed and task.estimated_minutes and task.actual_minutes):
            continue
        ratio = task.actual_minutes / task.estimated_minutes
        if ratio < PARKINSON_FAST_RATIO:
            score += 15
        elif ratio > PARKINSON_SLOW_RATIO:
            score -= 10
        evaluated += 1
    return score / evaluated if evaluated else 0.0


def diminishing_returns_law(ctx: DayContext) -> float:
    for record, habit in ctx.resolved():
        if ctx.is_work(habit) and record.actual_minutes > DIMINISHING_RETURNS_MINUTES:
            return -15.0
    return 0.0


def yerkes_dodson_law(ctx: DayContext) -> float:
    """Moderate pressure: most completed tasks land close to their estimate."""
    completed = ctx.completed_tasks()
    if not completed:
        return 0.0
    on_time = [
        t for t in completed
        if t.estimated_minutes and t.actual_minutes is not None
        and t.actual_minutes <= t.estimated_minutes * YERKES_DODSON_TOLERANCE
    ]
    return 10.0 if len(on_time) / len(completed) >= YERKES_DODSON_RATIO else 0.0


def pomodoro_technique(ctx: DayContext) -> float:
    low, high = POMODORO_RANGE
    if any(low <= r.actual_minutes <= high for r in ctx.habit_records):
        return 10.0
    return 0.0


def deep_work_law(ctx: DayContext) -> float:
    for record, habit in ctx.resolved():
        if ctx.is_work(habit) and record.actual_minutes >= DEEP_WORK_MINUTES:
            return 15.0
    return 0.0


def time_blocking(ctx: DayContext) -> float:
    estimated = [t for t in ctx.completed_tasks() if t.estimated_minutes]
    if not estimated:
        return 0.0
    aligned = [
        t for t in estimated
        if t.actual_minutes is not None
        and abs(t.actual_minutes - t.estimated_minutes) <= t.estimated_minutes * TIME_BLOCK_TOLERANCE
    ]
    return 10.0 if len(aligned) / len(estimated) >= TIME_BLOCK_RATIO else 0.0


def habit_stacking(ctx: DayContext) -> float:
    return 10.0 if len(ctx.active_records()) >= HABIT_STACK_SIZE else 0.0


def compound_effect(ctx: DayContext) -> float:
    if not ctx.habit_records:
        return 0.0
    ratio = len(ctx.active_records()) / len(ctx.habit_records)
    return 5.0 if ratio >= COMPOUND_RATIO else 0.0


def focus_blocks(ctx: DayContext) -> float:
    return 12.0 if len(ctx.focused_tasks(FOCUS_BLOCK_MINUTES)) >= FOCUS_BLOCK_COUNT else 0.0


# Evaluation order is fixed; the book principle rule is injected separately.
RULES: tuple[tuple[EfficiencyLaw, Callable[[DayContext], float]], ...] = (
    (EfficiencyLaw.PARETO, pareto_law),
    (EfficiencyLaw.PARKINSON, parkinson_law),
    (EfficiencyLaw.DIMINISHING_RETURNS, diminishing_returns_law),
    (EfficiencyLaw.YERKES_DODSON, yerkes_dodson_law),
    (EfficiencyLaw.POMODORO, pomodoro_technique),
    (EfficiencyLaw.DEEP_WORK, deep_work_law),
    (EfficiencyLaw.TIME_BLOCKING, time_blocking),
    (EfficiencyLaw.HABIT_STACKING, habit_stacking),
    (EfficiencyLaw.COMPOUND_EFFECT, compound_effect),
    (EfficiencyLaw.FOCUS_BLOCKS, focus_blocks),
)


def evaluate_efficiency_laws(
    ctx: DayContext,
    book_policy: BookPolicy = book_principles_coefficient,
) -> EfficiencyCoefficients:
    """Run every rule against ``ctx`` and return the bounded coefficients."""
    values = {law.value: clamp_coefficient(rule(ctx)) for law, rule in RULES}
    # Zero-or-positive
    values[EfficiencyLaw.BOOK_PRINCIPLES.value] = max(0.0, clamp_coefficient(book_policy(ctx)))
    return EfficiencyCoefficients(**values)
