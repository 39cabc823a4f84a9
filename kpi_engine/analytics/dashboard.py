"""Year and month dashboards."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from kpi_engine.analytics.reports import HabitSummary, average_kpi, habit_summaries, total_hours
from kpi_engine.data_pipeline.aggregation import DayAggregate
from kpi_engine.models.records import Habit

# 1% better every day
YEARLY_COMPOUND_RATE = 0.01
BREAKDOWN_SIZE = 5


@dataclass
class MonthSummary:
    month: int
    year: int
    average_kpi: float = 0.0
    total_hours: float = 0.0
    completed_days: int = 0
    habit_breakdown: list[HabitSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "year": self.year,
            "average_kpi": round(self.average_kpi, 2),
            "total_hours": round(self.total_hours, 2),
            "completed_days": self.completed_days,
            "habit_breakdown": [h.to_dict() for h in self.habit_breakdown],
        }


def build_year_dashboard(
    days: Iterable[DayAggregate],
    year: int,
    habits: Optional[list[Habit]] = None,
) -> dict:
    """Twelve month summaries plus year totals and a compound forecast.

    The year average weights each month by its scored days.
    """
    days = [d for d in days if d.date.year == year and not d.is_exception]
    habits = habits or []

    months = []
    weighted_kpi = 0.0
    scored_days = 0
    for month in range(1, 13):
        month_days = [d for d in days if d.date.month == month]
        summary = MonthSummary(month=month, year=year)
        if month_days:
            scored = [d for d in month_days if d.total_kpi is not None]
            summary.average_kpi = average_kpi(month_days)
            summary.total_hours = total_hours(month_days)
            summary.completed_days = len(month_days)
            summary.habit_breakdown = habit_summaries(month_days, habits)[:BREAKDOWN_SIZE]
            weighted_kpi += summary.average_kpi * len(scored)
            scored_days += len(scored)
        months.append(summary)

    year_kpi = weighted_kpi / scored_days if scored_days else 0.0
    return {
        "year": year,
        "months": [m.to_dict() for m in months],
        "average_kpi": round(year_kpi, 2),
        "total_hours": round(total_hours(days), 2),
        "total_activities": sum(len(d.habit_minutes) for d in days),
        "forecast_next_year": round(year_kpi * (1 + YEARLY_COMPOUND_RATE) ** 365, 2),
    }


def build_month_dashboard(days: Iterable[DayAggregate], year: int, month: int) -> dict:
    """One entry per calendar day plus month statistics.

    Exception days appear in the daily list flagged, and are counted apart
    from the statistics.
    """
    by_date = {d.date: d for d in days if d.date.year == year and d.date.month == month}
    days_in_month = calendar.monthrange(year, month)[1]

    daily = []
    for day_no in range(1, days_in_month + 1):
        day = date(year, month, day_no)
        agg = by_date.get(day)
        daily.append({
            "day": day_no,
            "date": day.isoformat(),
            "kpi": round(agg.total_kpi, 2) if agg and agg.total_kpi is not None else 0,
            "total_minutes": agg.total_minutes if agg else 0,
            "is_exception": bool(agg and agg.is_exception),
        })

    valid = [d for d in by_date.values() if not d.is_exception]
    exceptions = len(by_date) - len(valid)
    return {
        "year": year,
        "month": month,
        "daily_data": daily,
        "month_stats": {
            "average_kpi": round(average_kpi(valid), 2),
            "total_hours": round(total_hours(valid), 2),
            "completed_days": len(valid),
            "total_days": days_in_month,
            "completion_rate": round(len(valid) / days_in_month * 100, 2),
            "exception_days": exceptions,
        },
    }
