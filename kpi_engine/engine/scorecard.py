"""Three-pillar scorecard: Deliverables (40%) + Skills (30%) + Culture (30%).

Every pillar is a percentage in [0, 100].  Wherever a habit target is
consulted the day-of-week adjusted target is used.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.engine.context import DayContext
from kpi_engine.models.records import (
    DailyRecord,
    Habit,
    HabitRecord,
    PILLAR_MAX,
    PILLAR_MIN,
    RevolutPillars,
    Task,
    TaskPriority,
)

DELIVERABLES_WEIGHT = 0.4
SKILLS_WEIGHT = 0.3
CULTURE_WEIGHT = 0.3

SKILL_LEVEL_SCALE = 5
SKILLS_MIDPOINT = 50.0


def _clamp_pillar(value: float) -> float:
    return max(PILLAR_MIN, min(PILLAR_MAX, value))


def revolut_score(pillars: RevolutPillars) -> float:
    return (
        pillars.deliverables * DELIVERABLES_WEIGHT
        + pillars.skills * SKILLS_WEIGHT
        + pillars.culture * CULTURE_WEIGHT
    )


@dataclass
class PeriodScorecard:
    pillars: RevolutPillars
    score: float
    days: int

    def to_dict(self) -> dict:
        return {"pillars": self.pillars.to_dict(), "score": round(self.score, 2), "days": self.days}


class ScorecardEngine:
    def __init__(self, policy: Optional[ScoringPolicy] = None):
        self.policy = policy or default_policy()

    def calculate_daily_scorecard(
        self,
        habit_records: Iterable[HabitRecord],
        tasks: Iterable[Task],
        habits: Iterable[Habit],
        skill_deltas: Optional[Mapping[str, float]] = None,
        day: Optional[date] = None,
    ) -> RevolutPillars:
        ctx = DayContext.build(habit_records, tasks, habits, day=day, policy=self.policy)
        return self.scorecard_for(ctx, skill_deltas)

    def scorecard_for(
        self, ctx: DayContext, skill_deltas: Optional[Mapping[str, float]] = None
    ) -> RevolutPillars:
        return RevolutPillars(
            deliverables=self.deliverables(ctx),
            skills=self.skills(ctx, skill_deltas),
            culture=self.culture(ctx),
        )

    # ── Deliverables ────────────────────────────────────────────────────

    def deliverables(self, ctx: DayContext) -> float:
        """70% habit completion (each capped at 100%), 30% task completion."""
        rates = [
            min(record.actual_minutes / ctx.target_for(habit), 1.0) * 100
            for record, habit in ctx.resolved()
        ]
        habit_completion = sum(rates) / len(rates) if rates else 0.0

        if ctx.tasks:
            task_completion = len(ctx.completed_tasks()) / len(ctx.tasks) * 100
        else:
            task_completion = 100.0
        return _clamp_pillar(habit_completion * 0.7 + task_completion * 0.3)

    # ── Skills ──────────────────────────────────────────────────────────

    def skills(self, ctx: DayContext, skill_deltas: Optional[Mapping[str, float]] = None) -> float:
        if skill_deltas:
            deltas = [
                delta for habit_id, delta in skill_deltas.items()
                if habit_id in ctx.habits and ctx.is_skill(ctx.habits[habit_id])
            ]
            if deltas:
                avg_delta = sum(deltas) / len(deltas)
                return _clamp_pillar(avg_delta / SKILL_LEVEL_SCALE * 100 + SKILLS_MIDPOINT)

        scores = []
        for record, habit in ctx.resolved():
            if not ctx.is_skill(habit):
                continue
            completion = min(record.actual_minutes / ctx.target_for(habit), 1.5)
            quality = record.quality_score / 5 if record.quality_score else 1.0
            scores.append(completion * quality * 100)
        if not scores:
            return SKILLS_MIDPOINT
        return _clamp_pillar(sum(scores) / len(scores))

    # ── Culture ─────────────────────────────────────────────────────────

    def culture(self, ctx: DayContext) -> float:
        parts = (
            self.q2_focus_score(ctx),
            self.balance_score(ctx),
            self.consistency_score(ctx),
            self.growth_mindset_score(ctx),
            self.compound_thinking_score(ctx),
        )
        return _clamp_pillar(sum(parts) / len(parts))

    def q2_focus_score(self, ctx: DayContext) -> float:
        """Peaks when 60-70% of tracked habit time is in Q2."""
        total = sum(record.actual_minutes for record, _ in ctx.resolved())
        if total == 0:
            return 50.0
        pct = ctx.q2_time_ratio() * 100
        if 60 <= pct <= 70:
            return 100.0
        if 50 <= pct < 80:
            return 80.0
        if 40 <= pct < 90:
            return 60.0
        return 40.0

    def balance_score(self, ctx: DayContext) -> float:
        ideal = ctx.policy.ideal_categories
        if not ideal:
            return 0.0
        minutes: dict[str, float] = {}
        for record, habit in ctx.resolved():
            minutes[habit.category] = minutes.get(habit.category, 0) + record.actual_minutes
        present = sum(1 for cat in ideal if minutes.get(cat, 0) > 0)
        return present / len(ideal) * 100

    def consistency_score(self, ctx: DayContext) -> float:
        if not ctx.habit_records:
            return 0.0
        return len(ctx.active_records()) / len(ctx.habit_records) * 100

    def growth_mindset_score(self, ctx: DayContext) -> float:
        score = 50.0
        if any(t.priority == TaskPriority.HIGH for t in ctx.tasks):
            score += 20
        # Counted once per day
        if any(
            ctx.is_skill(habit) and record.actual_minutes > ctx.target_for(habit)
            for record, habit in ctx.resolved()
        ):
            score += 10
        return min(score, 100.0)

    def compound_thinking_score(self, ctx: DayContext) -> float:
        """Rewards 100-110% completion over both under- and over-shooting."""
        scores = []
        for record, habit in ctx.resolved():
            rate = record.actual_minutes / ctx.target_for(habit)
            if 1.0 <= rate <= 1.1:
                scores.append(100.0)
            elif 0.9 <= rate < 1.0:
                scores.append(80.0)
            elif 0.8 <= rate < 0.9:
                scores.append(60.0)
            else:
                scores.append(40.0)
        return sum(scores) / len(scores) if scores else 50.0

    # ── Monthly / period ────────────────────────────────────────────────

    @staticmethod
    def calculate_monthly_skill_progression(
        start_levels: Mapping[str, float],
        end_levels: Mapping[str, float],
    ) -> dict[str, float]:
        """Per-habit skill level change; a missing end level counts as no change."""
        return {
            habit_id: end_levels.get(habit_id, start) - start
            for habit_id, start in start_levels.items()
        }

    def calculate_period_scorecard(
        self,
        days: Iterable[DailyRecord],
        habits: Iterable[Habit],
        skill_deltas: Optional[Mapping[str, float]] = None,
    ) -> PeriodScorecard:
        """Average daily pillars over the non-exception days of a period.

        Monthly skill deltas, when given, replace the daily skills pillar.
        """
        habits = list(habits)
        daily = [
            self.calculate_daily_scorecard(d.habit_records, d.tasks, habits, skill_deltas, day=d.date)
            for d in days if not d.is_exception
        ]
        if not daily:
            pillars = RevolutPillars(0.0, SKILLS_MIDPOINT, 0.0)
            return PeriodScorecard(pillars=pillars, score=revolut_score(pillars), days=0)

        n = len(daily)
        pillars = RevolutPillars(
            deliverables=sum(p.deliverables for p in daily) / n,
            skills=sum(p.skills for p in daily) / n,
            culture=sum(p.culture for p in daily) / n,
        )
        return PeriodScorecard(pillars=pillars, score=revolut_score(pillars), days=n)
