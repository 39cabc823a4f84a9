"""Habit streaks: consecutive completed days per habit, and milestone bonuses.

The result of ``calculate_current_streaks`` is the habit -> day-count mapping
the KPI calculator takes as ``streak_data``.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from kpi_engine.config.policy import ScoringPolicy, StreakMilestone, default_policy
from kpi_engine.models.records import DailyRecord, Habit, HabitRecord


def is_habit_completed(
    record: HabitRecord,
    habit: Habit,
    day: date,
    policy: Optional[ScoringPolicy] = None,
) -> bool:
    """Habits listed in the policy complete at a fixed number of minutes;
    everything else at ``streak_completion_ratio`` of the day's target."""
    policy = policy or default_policy()
    fixed = policy.streak_completion_minutes.get(habit.name)
    if fixed is not None:
        return record.actual_minutes >= fixed
    target = habit.adjusted_target(day, policy.weekday_targets)
    return target > 0 and record.actual_minutes >= target * policy.streak_completion_ratio


def calculate_current_streaks(
    days: Sequence[DailyRecord],
    habits: Iterable[Habit],
    as_of: Optional[date] = None,
    policy: Optional[ScoringPolicy] = None,
) -> dict[str, int]:
    """Count, per habit, the consecutive completed days ending at ``as_of``.

    ``as_of`` defaults to the latest record date.  Exception days neither
    break nor extend a streak; a calendar day with no record breaks it.
    """
    policy = policy or default_policy()
    by_date = {d.date: d for d in days}
    if not by_date:
        return {h.habit_id: 0 for h in habits}
    start = as_of or max(by_date)
    earliest = min(by_date)

    streaks: dict[str, int] = {}
    for habit in habits:
        count = 0
        current = start
        while current >= earliest:
            day = by_date.get(current)
            if day is None:
                break
            if not day.is_exception:
                record = next((hr for hr in day.habit_records if hr.habit_id == habit.habit_id), None)
                if record is None or not is_habit_completed(record, habit, current, policy):
                    break
                count += 1
            current -= timedelta(days=1)
        streaks[habit.habit_id] = count
    return streaks


def reached_milestone(streak_days: int, policy: Optional[ScoringPolicy] = None) -> Optional[StreakMilestone]:
    """Highest milestone reached by a streak, if any."""
    policy = policy or default_policy()
    reached = [m for m in policy.streak_milestones if streak_days >= m.days]
    return max(reached, key=lambda m: m.days) if reached else None


def next_milestone(streak_days: int, policy: Optional[ScoringPolicy] = None) -> Optional[StreakMilestone]:
    policy = policy or default_policy()
    ahead = [m for m in policy.streak_milestones if streak_days < m.days]
    return min(ahead, key=lambda m: m.days) if ahead else None


def streak_bonus(streak_days: int, policy: Optional[ScoringPolicy] = None) -> int:
    milestone = reached_milestone(streak_days, policy)
    return milestone.bonus if milestone else 0
