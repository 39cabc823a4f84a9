#!/usr/bin/env python3
"""
Seed Redis with a demo habit set and one month of scored daily records.

    habits  ->  daily records  ->  score  ->  store

Usage:
    python -m kpi_engine.scripts.seed_demo --user demo --year 2026 --month 9
"""

from __future__ import annotations

import argparse
import calendar
import logging
import random
import time
from datetime import date, timedelta

from kpi_engine.cache.cache_service import CacheService
from kpi_engine.cache.store import CacheStore
from kpi_engine.data_pipeline.record_store import RedisRecordStore, _get_redis
from kpi_engine.engine.kpi import KPICalculator
from kpi_engine.engine.streaks import calculate_current_streaks
from kpi_engine.models.records import (
    DailyRecord,
    EisenhowerQuadrant,
    ExceptionType,
    Habit,
    HabitRecord,
    Task,
    TaskPriority,
)

log = logging.getLogger("seed_demo")

DEMO_HABITS = [
    Habit("sleep", "Sleep", 480, category="health"),
    Habit("sport", "Sport", 60, category="health", eisenhower_quadrant=EisenhowerQuadrant.Q2),
    Habit("reading", "Reading", 30, category="learning", skill_level=3),
    Habit("english", "English", 45, category="skills", skill_level=2),
    Habit("ai", "AI", 60, category="skills", skill_level=3),
    Habit("work", "Work", 360, category="career", is_weekday_only=True),
]

DEMO_TASKS = [
    ("Prepare visa documents", TaskPriority.HIGH),
    ("Portfolio case study", TaskPriority.HIGH),
    ("Weekly review", TaskPriority.MEDIUM),
    ("Reply to newsletters", TaskPriority.LOW),
    ("Networking call", TaskPriority.MEDIUM),
]


def demo_record(user_id: str, day: date, rng: random.Random, calculator: KPICalculator) -> DailyRecord:
    record = DailyRecord(record_id=f"{user_id}:{day.isoformat()}", user_id=user_id, date=day)
    # Roughly one travel day a month
    if rng.random() < 0.04:
        record.exception_type = ExceptionType.TRAVEL
        record.exception_note = "Travelling"
        return record

    for habit in DEMO_HABITS:
        target = habit.adjusted_target(day, calculator.policy.weekday_targets)
        record.habit_records.append(HabitRecord(
            record_id=f"{record.record_id}:{habit.habit_id}",
            habit_id=habit.habit_id,
            actual_minutes=round(target * rng.uniform(0.5, 1.2)),
            quality_score=rng.randint(2, 5),
        ))

    for i, (title, priority) in enumerate(rng.sample(DEMO_TASKS, rng.randint(1, 4))):
        record.tasks.append(Task(
            task_id=f"{record.record_id}:t{i}",
            title=title,
            priority=priority,
            completed=rng.random() < 0.7,
            estimated_minutes=rng.choice([25, 45, 60, 90]),
            actual_minutes=rng.choice([20, 45, 60, 100]),
        ))
    return record


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )
    today = date.today()
    parser = argparse.ArgumentParser(description="Seed a demo month into Redis")
    parser.add_argument("--user", default="demo")
    parser.add_argument("--year", type=int, default=today.year)
    parser.add_argument("--month", type=int, default=today.month)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    t0 = time.perf_counter()
    r = _get_redis()
    store = RedisRecordStore(r)
    calculator = KPICalculator()
    rng = random.Random(args.seed)

    # ------------------------------------------------------------------
    # 1. Habits
    # ------------------------------------------------------------------
    for habit in DEMO_HABITS:
        store.save_habit(habit)
    log.info("Stored %d habits", len(DEMO_HABITS))

    # ------------------------------------------------------------------
    # 2. Daily records, scored in date order so streaks build up
    # ------------------------------------------------------------------
    first = date(args.year, args.month, 1)
    days_in_month = calendar.monthrange(args.year, args.month)[1]
    history: list[DailyRecord] = []
    for offset in range(days_in_month):
        day = first + timedelta(days=offset)
        record = demo_record(args.user, day, rng, calculator)
        history.append(record)
        if not record.is_exception:
            streaks = calculate_current_streaks(history, DEMO_HABITS, as_of=day, policy=calculator.policy)
            record.total_kpi = calculator.score_day(record, DEMO_HABITS, streak_data=streaks).total_kpi
        store.save_daily_record(record)

    scored = [d.total_kpi for d in history if d.total_kpi is not None]
    log.info(
        "  -> %d records for %s (%d exception days, average KPI %.1f)",
        len(history), args.user, len(history) - len(scored),
        sum(scored) / len(scored) if scored else 0.0,
    )

    # ------------------------------------------------------------------
    # 3. Drop stale cached analytics for the user
    # ------------------------------------------------------------------
    dropped = CacheService(CacheStore(r)).invalidate_user_cache(args.user)
    log.info("Dropped %d cached entries", dropped)

    log.info("Done in %.1fs", time.perf_counter() - t0)


if __name__ == "__main__":
    main()
