"""Read-through analytics: reader -> assembler -> cache.

Every cached read returns a ``CacheResult`` so the HTTP layer can expose
the cache status without knowing how the value was produced.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Mapping, Optional

from kpi_engine.analytics.dashboard import build_month_dashboard, build_year_dashboard
from kpi_engine.analytics.reports import average_kpi, build_analytics_report, compare_periods, total_hours
from kpi_engine.cache.cache_service import (
    MONTH,
    YEAR,
    CacheResult,
    CacheService,
    analytics_key,
    dashboard_key,
    user_summary_key,
)
from kpi_engine.data_pipeline.aggregation import AggregationReader
from kpi_engine.engine.scorecard import ScorecardEngine
from kpi_engine.engine.streaks import calculate_current_streaks, next_milestone, reached_milestone

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 30
STREAK_LOOKBACK_DAYS = 400


class AnalyticsService:
    def __init__(
        self,
        reader: AggregationReader,
        cache: CacheService,
        scorecard: Optional[ScorecardEngine] = None,
    ):
        self.reader = reader
        self.cache = cache
        self.scorecard = scorecard or ScorecardEngine(reader.policy)

    def get_analytics_report(
        self, user_id: str, start: date, end: date, report_type: str = "month",
    ) -> CacheResult:
        cached = self.cache.get_cached_analytics_report(user_id, report_type, start, end)
        if cached.hit:
            return cached

        habits = self.reader.habits()
        days = self.reader.load_days(user_id, start, end, habits=habits)
        report = build_analytics_report(
            user_id, days, habits, start, end, report_type, policy=self.reader.policy,
        ).to_dict()
        self.cache.cache_analytics_report(user_id, report_type, start, end, report)
        logger.info("Built %s report for %s (%d days)", report_type, user_id, len(days))
        return CacheResult(data=report, hit=False, key=analytics_key(user_id, report_type, start, end))

    def get_dashboard(
        self, user_id: str, granularity: str, year: int, month: Optional[int] = None,
    ) -> CacheResult:
        key = dashboard_key(user_id, granularity, year, month)
        cached = self.cache.get_cached_dashboard_data(user_id, granularity, year, month)
        if cached.hit:
            return cached

        habits = self.reader.habits()
        if granularity == YEAR:
            days = self.reader.load_days(user_id, date(year, 1, 1), date(year, 12, 31), habits=habits)
            data = build_year_dashboard(days, year, habits)
        else:
            first = date(year, month, 1)
            last = (first + timedelta(days=32)).replace(day=1) - timedelta(days=1)
            days = self.reader.load_days(user_id, first, last, include_exceptions=True, habits=habits)
            data = build_month_dashboard(days, year, month)

        self.cache.cache_dashboard_data(user_id, granularity, year, month if granularity == MONTH else None, data)
        return CacheResult(data=data, hit=False, key=key)

    def get_user_summary(self, user_id: str, today: Optional[date] = None) -> CacheResult:
        """Last-30-day KPI and hours plus current habit streaks, as of ``today``."""
        today = today or date.today()
        cached = self.cache.get_cached_user_summary(user_id, today)
        if cached.hit:
            return cached

        habits = self.reader.habits()
        records = self.reader.load_records(
            user_id, today - timedelta(days=STREAK_LOOKBACK_DAYS), today, include_exceptions=True,
        )
        streaks = calculate_current_streaks(records, habits, as_of=today, policy=self.reader.policy)

        window_start = today - timedelta(days=SUMMARY_WINDOW_DAYS - 1)
        recent = [
            self.reader.aggregate(r, habits) for r in records
            if r.date >= window_start and not r.is_exception
        ]

        names = {h.habit_id: h.name for h in habits}
        streak_info = []
        for habit_id, days in sorted(streaks.items(), key=lambda kv: kv[1], reverse=True):
            reached = reached_milestone(days, self.reader.policy)
            upcoming = next_milestone(days, self.reader.policy)
            streak_info.append({
                "habit_id": habit_id,
                "habit_name": names.get(habit_id, habit_id),
                "days": days,
                "bonus": reached.bonus if reached else 0,
                "milestone": reached.description if reached else None,
                "next_milestone_days": upcoming.days if upcoming else None,
            })

        summary = {
            "user_id": user_id,
            "as_of": today.isoformat(),
            "window_days": SUMMARY_WINDOW_DAYS,
            "average_kpi": round(average_kpi(recent), 2),
            "total_hours": round(total_hours(recent), 2),
            "logged_days": len(recent),
            "streaks": streak_info,
        }
        self.cache.cache_user_summary(user_id, today, summary)
        return CacheResult(data=summary, hit=False, key=user_summary_key(user_id, today))

    def compare(
        self,
        user_id: str,
        current: tuple[date, date],
        previous: tuple[date, date],
    ) -> dict:
        habits = self.reader.habits()
        current_days = self.reader.load_days(user_id, *current, habits=habits)
        previous_days = self.reader.load_days(user_id, *previous, habits=habits)
        return compare_periods(current_days, previous_days, current, previous).to_dict()

    def period_scorecard(
        self,
        user_id: str,
        start: date,
        end: date,
        skill_deltas: Optional[Mapping[str, float]] = None,
    ) -> dict:
        habits = self.reader.habits()
        records = self.reader.load_records(user_id, start, end)
        return self.scorecard.calculate_period_scorecard(records, habits, skill_deltas).to_dict()

    def record_saved(self, user_id: str, day: date) -> int:
        """Invalidate everything that depends on one day's record."""
        return self.cache.invalidate_for_date(user_id, day)
