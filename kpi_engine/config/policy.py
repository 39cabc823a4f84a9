"""Scoring policy – business values the engines read but never decide.

Loaded once from ``policy.yaml`` (see ``settings.POLICY_PATH``).  Engines
take a ``ScoringPolicy`` in their constructor so tests and tenants can
swap values without touching the rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from kpi_engine.config.settings import POLICY_PATH


@dataclass(frozen=True)
class StreakMilestone:
    days: int
    bonus: int
    description: str = ""


@dataclass(frozen=True)
class ScoringPolicy:
    work_categories: frozenset[str] = frozenset({"career", "work"})
    skill_categories: frozenset[str] = frozenset({"skills", "learning"})
    learning_categories: frozenset[str] = frozenset({"learning"})
    ideal_categories: tuple[str, ...] = ("health", "skills", "career", "learning")
    weekday_targets: dict[str, dict[str, int]] = field(
        default_factory=lambda: {"Work": {"weekday": 360, "weekend": 180}}
    )
    work_habit: str = "Work"
    rest_habit: str = "Rest"
    renewal_habits: frozenset[str] = frozenset({"Sleep", "Sport", "Reading", "Rest"})
    keystone_habits: frozenset[str] = frozenset({"Sleep", "Sport", "Work"})
    key_focus_habits: frozenset[str] = frozenset({"Work", "English", "AI"})
    practice_habits: frozenset[str] = frozenset({"English", "AI", "Analytics", "Law"})
    strategic_keywords: tuple[str, ...] = (
        "relocation", "visa", "business", "english",
        "networking", "portfolio", "skills", "learning",
    )
    streak_completion_ratio: float = 0.8
    streak_completion_minutes: dict[str, int] = field(default_factory=dict)
    streak_milestones: tuple[StreakMilestone, ...] = (
        StreakMilestone(7, 5),
        StreakMilestone(21, 10),
        StreakMilestone(30, 12),
        StreakMilestone(66, 15),
        StreakMilestone(100, 20),
        StreakMilestone(365, 25),
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoringPolicy:
        categories = data.get("categories", {})
        habits = data.get("habits", {})
        streaks = data.get("streaks", {})
        defaults = cls()

        def _set(values, fallback):
            return frozenset(values) if values is not None else fallback

        milestones = streaks.get("milestones")
        return cls(
            work_categories=_set(categories.get("work"), defaults.work_categories),
            skill_categories=_set(categories.get("skills"), defaults.skill_categories),
            learning_categories=_set(categories.get("learning"), defaults.learning_categories),
            ideal_categories=tuple(categories.get("ideal", defaults.ideal_categories)),
            weekday_targets={
                name: {"weekday": int(t["weekday"]), "weekend": int(t["weekend"])}
                for name, t in (data.get("weekday_targets") or {}).items()
            } or defaults.weekday_targets,
            work_habit=habits.get("work", defaults.work_habit),
            rest_habit=habits.get("rest", defaults.rest_habit),
            renewal_habits=_set(habits.get("renewal"), defaults.renewal_habits),
            keystone_habits=_set(habits.get("keystone"), defaults.keystone_habits),
            key_focus_habits=_set(habits.get("key_focus"), defaults.key_focus_habits),
            practice_habits=_set(habits.get("practice"), defaults.practice_habits),
            strategic_keywords=tuple(
                kw.lower() for kw in data.get("strategic_keywords", defaults.strategic_keywords)
            ),
            streak_completion_ratio=float(
                streaks.get("completion_ratio", defaults.streak_completion_ratio)
            ),
            streak_completion_minutes={
                name: int(m) for name, m in (streaks.get("completion_minutes") or {}).items()
            },
            streak_milestones=tuple(
                StreakMilestone(int(m["days"]), int(m["bonus"]), m.get("description", ""))
                for m in milestones
            ) if milestones else defaults.streak_milestones,
        )


def load_policy(path: Path | str = POLICY_PATH) -> ScoringPolicy:
    """Parse a policy YAML file into a ``ScoringPolicy``."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Policy file {path} must contain a mapping")
    return ScoringPolicy.from_dict(data)


@lru_cache(maxsize=1)
def default_policy() -> ScoringPolicy:
    return load_policy(POLICY_PATH)
