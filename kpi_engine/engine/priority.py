"""Task prioritization with the Eisenhower matrix.

Supplies the priority-bonus parts of the KPI: +20/+10 for completed
high/medium tasks, a Q2-focus bonus and a strategic-task bonus.  Also
classifies, sorts and analyses a day's task list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.config.settings import MAX_TASKS_PER_DAY
from kpi_engine.models.records import EisenhowerQuadrant, Task, TaskPriority

PRIORITY_BONUS = {
    TaskPriority.HIGH: 20,
    TaskPriority.MEDIUM: 10,
    TaskPriority.LOW: 0,
}
STRATEGIC_TASK_BONUS = 10
TARGET_Q2_FOCUS = 60.0  # percent of task time

_DEFAULT_QUADRANT = {
    TaskPriority.HIGH: EisenhowerQuadrant.Q1,
    TaskPriority.MEDIUM: EisenhowerQuadrant.Q2,
    TaskPriority.LOW: EisenhowerQuadrant.Q4,
}
_PRIORITY_WEIGHT = {TaskPriority.HIGH: 1, TaskPriority.MEDIUM: 2, TaskPriority.LOW: 3}

TASK_LIMIT_MESSAGE = (
    f"Maximum {MAX_TASKS_PER_DAY} tasks allowed per day to maintain focus and avoid overwhelm"
)


@dataclass
class QuadrantShare:
    tasks: int = 0
    minutes: float = 0.0
    percentage: float = 0.0

    def to_dict(self) -> dict:
        return {"tasks": self.tasks, "minutes": self.minutes, "percentage": round(self.percentage, 2)}


@dataclass
class TimeDistribution:
    quadrants: dict[EisenhowerQuadrant, QuadrantShare]
    total_minutes: float

    def percentage(self, quadrant: EisenhowerQuadrant) -> float:
        return self.quadrants[quadrant].percentage

    def to_dict(self) -> dict:
        d = {q.value: share.to_dict() for q, share in self.quadrants.items()}
        d["total_minutes"] = self.total_minutes
        return d


@dataclass
class PriorityRecommendations:
    current_q2_focus: float
    target_q2_focus: float = TARGET_Q2_FOCUS
    recommendations: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "current_q2_focus": round(self.current_q2_focus, 2),
            "target_q2_focus": self.target_q2_focus,
            "recommendations": list(self.recommendations),
            "action_items": list(self.action_items),
        }


def task_quadrant(task: Task) -> EisenhowerQuadrant:
    """Explicit quadrant if set, else derived from priority (high→Q1, medium→Q2, low→Q4)."""
    if task.quadrant is not None:
        return task.quadrant
    return _DEFAULT_QUADRANT[task.priority]


class PriorityManager:
    """Stateless; safe to share between callers."""

    def __init__(self, policy: Optional[ScoringPolicy] = None):
        self.policy = policy or default_policy()

    def base_priority_bonus(self, tasks: list[Task]) -> int:
        return sum(PRIORITY_BONUS[t.priority] for t in tasks if t.completed)

    def classify_by_eisenhower(self, tasks: list[Task]) -> dict[EisenhowerQuadrant, list[Task]]:
        classification: dict[EisenhowerQuadrant, list[Task]] = {q: [] for q in EisenhowerQuadrant}
        for task in tasks:
            classification[task_quadrant(task)].append(task)
        return classification

    def q2_focus_bonus(self, tasks: list[Task]) -> int:
        if not tasks:
            return 0
        q2_tasks = self.classify_by_eisenhower(tasks)[EisenhowerQuadrant.Q2]
        bonus = 0

        q2_ratio = len(q2_tasks) / len(tasks)
        if q2_ratio >= 0.6:
            bonus += 15
        elif q2_ratio >= 0.4:
            bonus += 10
        elif q2_ratio >= 0.2:
            bonus += 5

        if q2_tasks:
            completion = sum(1 for t in q2_tasks if t.completed) / len(q2_tasks)
            if completion >= 0.8:
                bonus += 10
            elif completion >= 0.6:
                bonus += 5
        return bonus

    def is_strategic(self, task: Task) -> bool:
        title = task.title.lower()
        return any(keyword in title for keyword in self.policy.strategic_keywords)

    def strategic_bonus(self, tasks: list[Task]) -> int:
        """+10 per completed high-priority task whose title names a strategic goal."""
        return STRATEGIC_TASK_BONUS * sum(
            1 for t in tasks
            if t.completed and t.priority == TaskPriority.HIGH and self.is_strategic(t)
        )

    def calculate_priority_bonus(self, tasks: list[Task]) -> int:
        return self.base_priority_bonus(tasks) + self.q2_focus_bonus(tasks) + self.strategic_bonus(tasks)

    def analyze_time_distribution(self, tasks: list[Task]) -> TimeDistribution:
        quadrants = {q: QuadrantShare() for q in EisenhowerQuadrant}
        total = 0.0
        for quadrant, q_tasks in self.classify_by_eisenhower(tasks).items():
            share = quadrants[quadrant]
            share.tasks = len(q_tasks)
            for task in q_tasks:
                minutes = task.actual_minutes or task.estimated_minutes or 0
                share.minutes += minutes
                total += minutes
        if total > 0:
            for share in quadrants.values():
                share.percentage = share.minutes / total * 100
        return TimeDistribution(quadrants=quadrants, total_minutes=total)

    def generate_recommendations(self, tasks: list[Task]) -> PriorityRecommendations:
        dist = self.analyze_time_distribution(tasks)
        q1 = dist.percentage(EisenhowerQuadrant.Q1)
        q2 = dist.percentage(EisenhowerQuadrant.Q2)
        q3 = dist.percentage(EisenhowerQuadrant.Q3)
        q4 = dist.percentage(EisenhowerQuadrant.Q4)
        result = PriorityRecommendations(current_q2_focus=q2)

        if q2 < 40:
            result.recommendations.append("Increase focus on Q2 activities (important, not urgent)")
            result.action_items += [
                "Schedule more time for skill development and learning",
                "Plan strategic activities that prevent future Q1 crises",
            ]
        if q1 > 40:
            result.recommendations.append("Reduce Q1 activities through better planning and prevention")
            result.action_items += [
                "Identify root causes of urgent tasks",
                "Put preventive measures in place to avoid future crises",
            ]
        if q3 > 20:
            result.recommendations.append("Minimize Q3 activities (urgent but not important)")
            result.action_items += [
                "Delegate or eliminate interruptions and distractions",
                "Set boundaries to protect focused work time",
            ]
        if q4 > 15:
            result.recommendations.append("Eliminate Q4 activities (neither urgent nor important)")
            result.action_items += [
                "Review and remove time-wasting activities",
                "Replace low-value tasks with Q2 activities",
            ]

        if q2 >= 50:
            result.recommendations.append("Excellent Q2 focus, keep prioritizing important activities")
        if q1 < 30 and q2 > 40:
            result.recommendations.append("Good balance between proactive (Q2) and reactive (Q1) work")
        return result

    def validate_task_limit(self, tasks: list[Task]) -> tuple[bool, Optional[str]]:
        if len(tasks) > MAX_TASKS_PER_DAY:
            return False, TASK_LIMIT_MESSAGE
        return True, None

    def sort_tasks_by_priority(self, tasks: list[Task]) -> list[Task]:
        """Q1 first through Q4 last; within a quadrant high before medium before low."""
        order = list(EisenhowerQuadrant)
        return sorted(
            tasks,
            key=lambda t: (order.index(task_quadrant(t)), _PRIORITY_WEIGHT[t.priority]),
        )
