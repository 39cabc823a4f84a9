"""Book-principle coefficient.

Ten productivity books, each turned into a small capped scorer over the
day's context.  The four core books are weighted x1.2, the sum is capped at
50 and then scaled into the common [0, 15] coefficient range.
"""

from __future__ import annotations

from typing import Callable, Optional

from kpi_engine.engine.context import DayContext
from kpi_engine.engine.streaks import streak_bonus
from kpi_engine.models.records import EisenhowerQuadrant, HabitRecord, TaskPriority

CORE_WEIGHT = 1.2
TOTAL_CAP = 50.0
# 50 * 0.3 == 15, the coefficient bound
COEFFICIENT_SCALE = 0.3


def _q2_active(ctx: DayContext) -> int:
    return sum(
        1 for record, habit in ctx.resolved()
        if habit.eisenhower_quadrant == EisenhowerQuadrant.Q2 and record.actual_minutes > 0
    )


def _named_record(ctx: DayContext, name: str) -> Optional[HabitRecord]:
    for record, habit in ctx.resolved():
        if habit.name == name:
            return record
    return None


def _completed_high(ctx: DayContext) -> int:
    return sum(1 for t in ctx.completed_tasks() if t.priority == TaskPriority.HIGH)


# ── Core books ──────────────────────────────────────────────────────────


def atomic_habits(ctx: DayContext) -> float:
    """Streak milestones, habit stacking, environment design, identity."""
    bonus = sum(streak_bonus(days, ctx.policy) for days in ctx.streaks.values())
    if len(ctx.active_records()) >= 5:
        bonus += 8
    if ctx.high_quality_count() >= 3:
        bonus += 7
    for record, habit in ctx.resolved():
        if ctx.is_skill(habit) and record.actual_minutes > ctx.target_for(habit):
            bonus += 3
    return min(bonus, 25)


def seven_habits(ctx: DayContext) -> float:
    bonus = _completed_high(ctx) * 3

    q2_pct = ctx.q2_time_ratio() * 100
    if q2_pct >= 60:
        bonus += 15
    elif q2_pct >= 50:
        bonus += 12
    elif q2_pct >= 40:
        bonus += 8

    categories = {habit.category for record, habit in ctx.resolved() if record.actual_minutes > 0}
    if len(categories) >= 4:
        bonus += 10

    # Sharpen the saw
    bonus += 2 * sum(
        1 for record, habit in ctx.resolved()
        if habit.name in ctx.policy.renewal_habits and record.actual_minutes > 0
    )
    return min(bonus, 30)


def deep_work(ctx: DayContext) -> float:
    bonus = 0
    work = _named_record(ctx, ctx.policy.work_habit)
    if work is not None:
        if work.actual_minutes >= 90:
            bonus += 15
        elif work.actual_minutes >= 60:
            bonus += 10
        elif work.actual_minutes >= 45:
            bonus += 5

    focused = len(ctx.focused_tasks(25))
    if focused >= 3:
        bonus += 12
    elif focused >= 2:
        bonus += 8
    elif focused >= 1:
        bonus += 4

    bonus += 3 * sum(
        1 for record, habit in ctx.resolved()
        if habit.category in ctx.policy.learning_categories and record.actual_minutes > 0
    )
    if ctx.high_quality_count() >= 3:
        bonus += 8
    return min(bonus, 25)


def one_thing(ctx: DayContext) -> float:
    bonus = 0
    if ctx.tasks:
        ratio = ctx.high_priority_ratio()
        if ratio >= 0.8:
            bonus += 15
        elif ratio >= 0.6:
            bonus += 12
        elif ratio >= 0.4:
            bonus += 8

    focused_time = sum(
        record.actual_minutes for record, habit in ctx.resolved()
        if habit.name in ctx.policy.key_focus_habits
    )
    if focused_time >= 180:
        bonus += 12
    elif focused_time >= 120:
        bonus += 8
    elif focused_time >= 60:
        bonus += 4

    bonus += _q2_active(ctx) * 2

    if ctx.habit_records and len(ctx.active_records()) / len(ctx.habit_records) >= 0.8:
        bonus += 10
    return min(bonus, 30)


# ── Supporting books ────────────────────────────────────────────────────


def getting_things_done(ctx: DayContext) -> float:
    tasks = ctx.tasks
    bonus = 5 if len(tasks) >= 3 else 0
    bonus += 2 * sum(1 for t in tasks if t.estimated_minutes and t.estimated_minutes > 0)
    rate = len(ctx.completed_tasks()) / len(tasks) if tasks else 0.0
    if rate >= 0.8:
        bonus += 10
    elif rate >= 0.6:
        bonus += 7
    elif rate >= 0.4:
        bonus += 4
    return min(bonus, 15)


def eat_that_frog(ctx: DayContext) -> float:
    tasks = ctx.tasks
    bonus = _completed_high(ctx) * 5
    planned = sum(1 for t in tasks if t.estimated_minutes and t.estimated_minutes > 0)
    if tasks and planned == len(tasks):
        bonus += 8
    if tasks and ctx.high_priority_ratio() >= 0.2:
        bonus += 6
    return min(bonus, 15)


def power_of_habit(ctx: DayContext) -> float:
    bonus = 2 * sum(
        1 for record, habit in ctx.resolved()
        if record.actual_minutes >= ctx.target_for(habit) * 0.8
    )
    bonus += 3 * sum(
        1 for record, habit in ctx.resolved()
        if habit.name in ctx.policy.keystone_habits and record.actual_minutes > 0
    )
    wins = len(ctx.active_records())
    if wins >= 7:
        bonus += 10
    elif wins >= 5:
        bonus += 7
    elif wins >= 3:
        bonus += 4
    return min(bonus, 20)


def mindset(ctx: DayContext) -> float:
    bonus = 0
    for record, habit in ctx.resolved():
        if ctx.is_skill(habit) and record.actual_minutes > ctx.target_for(habit):
            bonus += 5
        if habit.name in ctx.policy.practice_habits and record.actual_minutes > 0:
            bonus += 3
        # Working on weak areas
        if habit.skill_level <= 2 and record.actual_minutes > 0:
            bonus += 4
    return min(bonus, 20)


def four_hour_workweek(ctx: DayContext) -> float:
    bonus = 8 if len(ctx.tasks) <= 3 else 0
    bonus += 3 * sum(
        1 for t in ctx.completed_tasks()
        if t.estimated_minutes and t.actual_minutes and t.actual_minutes <= t.estimated_minutes
    )
    work = _named_record(ctx, ctx.policy.work_habit)
    rest = _named_record(ctx, ctx.policy.rest_habit)
    if work is not None and rest is not None and rest.actual_minutes >= 120:
        bonus += 10
    return min(bonus, 15)


def essentialism(ctx: DayContext) -> float:
    bonus = ctx.high_quality_count() * 3
    completed = len(ctx.completed_tasks())
    if len(ctx.tasks) <= 3 and completed >= 2:
        bonus += 12
    elif len(ctx.tasks) <= 5 and completed >= 3:
        bonus += 8
    bonus += _q2_active(ctx) * 2
    return min(bonus, 20)


CORE_BOOKS: dict[str, Callable[[DayContext], float]] = {
    "atomic_habits": atomic_habits,
    "seven_habits": seven_habits,
    "deep_work": deep_work,
    "one_thing": one_thing,
}

SUPPORTING_BOOKS: dict[str, Callable[[DayContext], float]] = {
    "getting_things_done": getting_things_done,
    "eat_that_frog": eat_that_frog,
    "power_of_habit": power_of_habit,
    "mindset": mindset,
    "four_hour_workweek": four_hour_workweek,
    "essentialism": essentialism,
}


def book_principles_total(ctx: DayContext) -> float:
    """Weighted sum of all ten books, capped at 50."""
    total = sum(score(ctx) * CORE_WEIGHT for score in CORE_BOOKS.values())
    total += sum(score(ctx) for score in SUPPORTING_BOOKS.values())
    return min(total, TOTAL_CAP)


def book_principles_coefficient(ctx: DayContext) -> float:
    return round(book_principles_total(ctx) * COEFFICIENT_SCALE, 2)


def book_principles_breakdown(ctx: DayContext) -> dict[str, float]:
    breakdown = {name: float(score(ctx)) for name, score in {**CORE_BOOKS, **SUPPORTING_BOOKS}.items()}
    breakdown["total"] = book_principles_total(ctx)
    breakdown["coefficient"] = book_principles_coefficient(ctx)
    return breakdown
