"""Aggregation reader: hydrated daily records for a (user, date range).

Joins stored records with habit definitions, fills in a KPI for days that
have none persisted, and flattens each day into a ``DayAggregate`` for the
analytics assembler.  Exception days are left out unless asked for.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.config.settings import SLOW_QUERY_THRESHOLD_MS
from kpi_engine.data_pipeline.record_store import RecordStore
from kpi_engine.engine.kpi import KPICalculator
from kpi_engine.models.records import DailyRecord, Habit

logger = logging.getLogger(__name__)


@dataclass
class DayAggregate:
    date: date
    total_kpi: Optional[float]
    total_minutes: float
    habit_minutes: dict[str, float] = field(default_factory=dict)       # habit_id -> minutes
    habit_completion: dict[str, float] = field(default_factory=dict)    # habit_id -> actual/target
    quality_scores: dict[str, int] = field(default_factory=dict)        # habit_id -> 1-5
    completed_tasks: int = 0
    total_tasks: int = 0
    is_exception: bool = False

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "total_kpi": self.total_kpi,
            "total_minutes": self.total_minutes,
            "habit_minutes": dict(self.habit_minutes),
            "habit_completion": dict(self.habit_completion),
            "quality_scores": dict(self.quality_scores),
            "completed_tasks": self.completed_tasks,
            "total_tasks": self.total_tasks,
            "is_exception": self.is_exception,
        }


class AggregationReader:
    def __init__(
        self,
        store: RecordStore,
        calculator: Optional[KPICalculator] = None,
        slow_query_ms: int = SLOW_QUERY_THRESHOLD_MS,
        timer: Callable[[], float] = time.perf_counter,
        policy: Optional[ScoringPolicy] = None,
    ):
        self.store = store
        self.calculator = calculator
        self.policy = policy or (calculator.policy if calculator else default_policy())
        self.slow_query_ms = slow_query_ms
        self._timer = timer

    def habits(self) -> list[Habit]:
        return self.store.fetch_habits()

    def load_records(
        self,
        user_id: str,
        start: date,
        end: date,
        include_exceptions: bool = False,
    ) -> list[DailyRecord]:
        started = self._timer()
        records = self.store.fetch_daily_records(user_id, start, end)
        elapsed_ms = (self._timer() - started) * 1000
        if elapsed_ms > self.slow_query_ms:
            logger.warning(
                "Slow record read for %s %s..%s: %.0f ms (%d records)",
                user_id, start, end, elapsed_ms, len(records),
            )
        else:
            logger.debug("Read %d records for %s in %.1f ms", len(records), user_id, elapsed_ms)

        records.sort(key=lambda d: d.date)
        if include_exceptions:
            return records
        return [d for d in records if not d.is_exception]

    def load_days(
        self,
        user_id: str,
        start: date,
        end: date,
        include_exceptions: bool = False,
        habits: Optional[list[Habit]] = None,
    ) -> list[DayAggregate]:
        habits = habits if habits is not None else self.habits()
        records = self.load_records(user_id, start, end, include_exceptions)
        return [self.aggregate(record, habits) for record in records]

    def aggregate(self, record: DailyRecord, habits: list[Habit]) -> DayAggregate:
        habit_map = {h.habit_id: h for h in habits}
        agg = DayAggregate(
            date=record.date,
            total_kpi=self.kpi_for(record, habits),
            total_minutes=record.total_minutes,
            completed_tasks=sum(1 for t in record.tasks if t.completed),
            total_tasks=len(record.tasks),
            is_exception=record.is_exception,
        )
        for hr in record.habit_records:
            agg.habit_minutes[hr.habit_id] = agg.habit_minutes.get(hr.habit_id, 0) + hr.actual_minutes
            if hr.quality_score is not None:
                agg.quality_scores[hr.habit_id] = hr.quality_score
            habit = habit_map.get(hr.habit_id)
            if habit is None:
                continue
            target = habit.adjusted_target(record.date, self.policy.weekday_targets)
            if target > 0:
                agg.habit_completion[hr.habit_id] = agg.habit_minutes[hr.habit_id] / target
        return agg

    def kpi_for(self, record: DailyRecord, habits: list[Habit]) -> Optional[float]:
        """Persisted KPI, else computed fresh when a calculator is configured."""
        if record.total_kpi is not None:
            return record.total_kpi
        if self.calculator is None or record.is_exception:
            return None
        return self.calculator.score_day(record, habits).total_kpi
