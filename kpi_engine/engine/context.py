"""Per-day scoring context shared by the efficiency laws and book principles.

Built once per calculation and never mutated, so rules can run in any order
and from any number of callers at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Iterator, Mapping, Optional

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.models.records import (
    EisenhowerQuadrant,
    Habit,
    HabitRecord,
    Task,
    TaskPriority,
)


@dataclass(frozen=True)
class DayContext:
    habit_records: tuple[HabitRecord, ...]
    tasks: tuple[Task, ...]
    habits: Mapping[str, Habit]
    day: date
    streaks: Mapping[str, int] = field(default_factory=dict)
    policy: ScoringPolicy = field(default_factory=default_policy)

    @classmethod
    def build(
        cls,
        habit_records: Iterable[HabitRecord],
        tasks: Iterable[Task],
        habits: Iterable[Habit],
        day: Optional[date] = None,
        streak_data: Optional[Mapping[str, int]] = None,
        policy: Optional[ScoringPolicy] = None,
    ) -> DayContext:
        return cls(
            habit_records=tuple(habit_records),
            tasks=tuple(tasks),
            habits={h.habit_id: h for h in habits},
            day=day or date.today(),
            streaks=dict(streak_data or {}),
            policy=policy or default_policy(),
        )

    # ── Habit helpers ───────────────────────────────────────────────────

    def resolved(self) -> Iterator[tuple[HabitRecord, Habit]]:
        """Records paired with their habit.

        Records of unknown habits, or of habits whose target for the day is
        not positive, are skipped.
        """
        for record in self.habit_records:
            habit = self.habits.get(record.habit_id)
            if habit is not None and self.target_for(habit) > 0:
                yield record, habit

    def target_for(self, habit: Habit) -> int:
        return habit.adjusted_target(self.day, self.policy.weekday_targets)

    def is_work(self, habit: Habit) -> bool:
        return habit.category in self.policy.work_categories

    def is_skill(self, habit: Habit) -> bool:
        return habit.category in self.policy.skill_categories

    def active_records(self) -> list[HabitRecord]:
        return [r for r in self.habit_records if r.actual_minutes > 0]

    def q2_time_ratio(self) -> float:
        """Share of tracked habit minutes spent in Q2 habits (0-1)."""
        total = 0.0
        q2 = 0.0
        for record, habit in self.resolved():
            total += record.actual_minutes
            if habit.eisenhower_quadrant == EisenhowerQuadrant.Q2:
                q2 += record.actual_minutes
        return q2 / total if total > 0 else 0.0

    def high_quality_count(self) -> int:
        return sum(1 for r in self.habit_records if r.quality_score and r.quality_score >= 4)

    # ── Task helpers ────────────────────────────────────────────────────

    def completed_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.completed]

    def high_priority_ratio(self) -> float:
        if not self.tasks:
            return 0.0
        high = sum(1 for t in self.tasks if t.priority == TaskPriority.HIGH)
        return high / len(self.tasks)

    def focused_tasks(self, minimum_minutes: float = 25) -> list[Task]:
        return [
            t for t in self.tasks
            if t.completed and t.actual_minutes and t.actual_minutes >= minimum_minutes
        ]
