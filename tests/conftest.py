"""Shared test fixtures for the KPI engine test suite."""

import pytest
import fakeredis
from datetime import date

from kpi_engine.config.policy import default_policy
from kpi_engine.engine.context import DayContext
from kpi_engine.models.records import (
    DailyRecord,
    Habit,
    HabitRecord,
    Task,
    TaskPriority,
)

# A Monday and the Saturday of the same week
MONDAY = date(2026, 9, 14)
SATURDAY = date(2026, 9, 19)


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Time ─────────────────────────────────────────────────────────────────

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    return default_policy()


# ── Domain Factories ─────────────────────────────────────────────────────

@pytest.fixture
def make_habit():
    """Factory fixture that creates Habit instances with sensible defaults.

    Usage:
        habit = make_habit(name="Work", target_minutes=360, is_weekday_only=True)
    """
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "habit_id": f"habit-{_counter}",
            "name": f"Habit {_counter}",
            "target_minutes": 60,
            "category": "other",
            "skill_level": 3,
        }
        defaults.update(overrides)
        return Habit(**defaults)

    return _factory


@pytest.fixture
def make_habit_record():
    _counter = 0

    def _factory(habit, actual_minutes=None, **overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "record_id": f"hr-{_counter}",
            "habit_id": habit.habit_id if isinstance(habit, Habit) else habit,
            "actual_minutes": actual_minutes if actual_minutes is not None else 0,
        }
        defaults.update(overrides)
        return HabitRecord(**defaults)

    return _factory


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances with sensible defaults."""
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "task_id": f"test-task-{_counter}",
            "title": f"Test Task {_counter}",
            "priority": TaskPriority.MEDIUM,
            "completed": False,
        }
        defaults.update(overrides)
        return Task(**defaults)

    return _factory


@pytest.fixture
def make_record():
    """Factory for DailyRecord; ``habit_minutes`` maps habit ids to minutes."""

    def _factory(day, user_id="u1", habit_minutes=None, tasks=None, **overrides):
        records = [
            HabitRecord(record_id=f"{user_id}:{day}:{hid}", habit_id=hid, actual_minutes=minutes)
            for hid, minutes in (habit_minutes or {}).items()
        ]
        defaults = {
            "record_id": f"{user_id}:{day.isoformat()}",
            "user_id": user_id,
            "date": day,
            "habit_records": records,
            "tasks": list(tasks or []),
        }
        defaults.update(overrides)
        return DailyRecord(**defaults)

    return _factory


@pytest.fixture
def make_ctx(policy):
    """Build a DayContext from lists of records, tasks and habits."""

    def _factory(habit_records=(), tasks=(), habits=(), day=MONDAY, streaks=None):
        return DayContext.build(habit_records, tasks, habits, day=day, streak_data=streaks, policy=policy)

    return _factory
