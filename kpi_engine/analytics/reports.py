"""Analytics report assembler.

Turns a range of ``DayAggregate`` items into summary, per-habit trends, a
compound-growth forecast and recommendations.  Pure functions; the service
layer does the reading and caching.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Iterable, Optional

import numpy as np

from kpi_engine.config.policy import ScoringPolicy, default_policy
from kpi_engine.data_pipeline.aggregation import DayAggregate
from kpi_engine.models.records import EisenhowerQuadrant, Habit

TOP_HABITS = 5
IMPROVEMENT_THRESHOLD = 70.0       # completion %, below which a habit needs attention
MIN_TREND_OBSERVATIONS = 7
STABLE_SLOPE = 0.1
MIN_FORECAST_DAYS = 7
GROWTH_WINDOW = 14
MIN_DAILY_GROWTH = 0.001
MAX_DAILY_GROWTH = 0.02
FORECAST_HORIZON = {"month": 30, "quarter": 90, "year": 365}

_PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


def _r2(value: float) -> float:
    return round(float(value), 2)


@dataclass
class HabitSummary:
    habit_id: str
    habit_name: str
    total_minutes: float
    average_minutes: float
    completion_rate: float
    average_quality: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "habit_id": self.habit_id,
            "habit_name": self.habit_name,
            "total_minutes": _r2(self.total_minutes),
            "average_minutes": _r2(self.average_minutes),
            "completion_rate": _r2(self.completion_rate),
            "average_quality": _r2(self.average_quality) if self.average_quality is not None else None,
        }


@dataclass
class SummaryStats:
    average_kpi: float
    total_hours: float
    completed_days: int
    total_days: int
    top_habits: list[HabitSummary] = field(default_factory=list)
    improvement_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "average_kpi": _r2(self.average_kpi),
            "total_hours": _r2(self.total_hours),
            "completed_days": self.completed_days,
            "total_days": self.total_days,
            "top_habits": [h.to_dict() for h in self.top_habits],
            "improvement_areas": list(self.improvement_areas),
        }


@dataclass
class TrendAnalysis:
    habit_id: str
    habit_name: str
    trend: str                 # improving | declining | stable
    trend_percentage: float
    average_minutes: float
    consistency: float
    recommendation: str

    def to_dict(self) -> dict:
        d = asdict(self)
        for k in ("trend_percentage", "average_minutes", "consistency"):
            d[k] = _r2(d[k])
        return d


@dataclass
class Forecast:
    period: str
    predicted_kpi: float
    predicted_hours: float
    confidence: int
    based_on_days: int
    compound_growth_rate: float  # percent per day

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "predicted_kpi": _r2(self.predicted_kpi),
            "predicted_hours": _r2(self.predicted_hours),
            "confidence": self.confidence,
            "based_on_days": self.based_on_days,
            "compound_growth_rate": _r2(self.compound_growth_rate),
        }


@dataclass
class Recommendation:
    type: str
    priority: str
    title: str
    description: str
    action_items: list[str]
    expected_impact: str
    habit_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnalyticsReport:
    user_id: str
    report_type: str
    start: date
    end: date
    summary: SummaryStats
    trends: list[TrendAnalysis]
    forecast: Forecast
    recommendations: list[Recommendation]

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "period": {"start": self.start.isoformat(), "end": self.end.isoformat(), "type": self.report_type},
            "summary": self.summary.to_dict(),
            "trends": [t.to_dict() for t in self.trends],
            "forecast": self.forecast.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


# ── Summary ─────────────────────────────────────────────────────────────


def _kpi_days(days: list[DayAggregate]) -> list[DayAggregate]:
    return [d for d in days if d.total_kpi is not None]


def average_kpi(days: list[DayAggregate]) -> float:
    scored = _kpi_days(days)
    return sum(d.total_kpi for d in scored) / len(scored) if scored else 0.0


def total_hours(days: list[DayAggregate]) -> float:
    return sum(d.total_minutes for d in days) / 60


def habit_summaries(days: list[DayAggregate], habits: Iterable[Habit]) -> list[HabitSummary]:
    """Per-habit totals, largest first.  Completion is days logged / days scored."""
    names = {h.habit_id: h.name for h in habits}
    scored = len(_kpi_days(days))
    totals: dict[str, list[float]] = {}
    qualities: dict[str, list[int]] = {}
    for day in days:
        for habit_id, minutes in day.habit_minutes.items():
            totals.setdefault(habit_id, []).append(minutes)
        for habit_id, quality in day.quality_scores.items():
            qualities.setdefault(habit_id, []).append(quality)

    summaries = []
    for habit_id, minutes in totals.items():
        q = qualities.get(habit_id)
        summaries.append(HabitSummary(
            habit_id=habit_id,
            habit_name=names.get(habit_id, habit_id),
            total_minutes=sum(minutes),
            average_minutes=sum(minutes) / len(minutes),
            completion_rate=len(minutes) / scored * 100 if scored else 0.0,
            average_quality=sum(q) / len(q) if q else None,
        ))
    summaries.sort(key=lambda s: s.total_minutes, reverse=True)
    return summaries


def summarize(days: list[DayAggregate], habits: Iterable[Habit], start: date, end: date) -> SummaryStats:
    top = habit_summaries(days, habits)[:TOP_HABITS]
    return SummaryStats(
        average_kpi=average_kpi(days),
        total_hours=total_hours(days),
        completed_days=len(_kpi_days(days)),
        total_days=(end - start).days + 1,
        top_habits=top,
        improvement_areas=[h.habit_name for h in top if h.completion_rate < IMPROVEMENT_THRESHOLD],
    )


# ── Trends ──────────────────────────────────────────────────────────────


def calculate_trend(values: list[float]) -> tuple[str, float]:
    """Least-squares slope over the series; |slope| < 0.1 is stable."""
    if len(values) < 2:
        return "stable", 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    slope = float(np.polyfit(x, y, 1)[0])
    if abs(slope) < STABLE_SLOPE:
        return "stable", 0.0
    mean = float(y.mean())
    percentage = abs(slope / mean) * 100 if mean else 0.0
    return ("improving" if slope > 0 else "declining"), round(percentage, 2)


def habit_recommendation(name: str, trend: str, percentage: float, consistency: float) -> str:
    if consistency < 50:
        return f"Focus on consistency for {name}. Try habit stacking or a smaller target to build momentum."
    if trend == "declining" and percentage > 10:
        return f"{name} is declining by {percentage}%. Review your approach or adjust the target."
    if trend == "improving" and percentage > 15:
        return f"Great progress on {name}! Consider gradually raising the target to keep growing."
    if trend == "stable" and consistency > 80:
        return f"{name} is stable with good consistency. Work on quality or efficiency next."
    return f"Continue the current approach for {name} and watch for changes in the coming weeks."


def analyze_trends(days: list[DayAggregate], habits: Iterable[Habit]) -> list[TrendAnalysis]:
    trends = []
    for habit in habits:
        series = [d.habit_minutes[habit.habit_id] for d in days if habit.habit_id in d.habit_minutes]
        if len(series) < MIN_TREND_OBSERVATIONS:
            continue
        trend, pct = calculate_trend(series)
        consistency = len(series) / len(days) * 100
        trends.append(TrendAnalysis(
            habit_id=habit.habit_id,
            habit_name=habit.name,
            trend=trend,
            trend_percentage=pct,
            average_minutes=sum(series) / len(series),
            consistency=consistency,
            recommendation=habit_recommendation(habit.name, trend, pct, consistency),
        ))
    trends.sort(key=lambda t: t.trend_percentage, reverse=True)
    return trends


# ── Forecast ────────────────────────────────────────────────────────────


def forecast(days: list[DayAggregate], report_type: str) -> Forecast:
    """Compound-growth projection from the first vs the last two weeks."""
    period = f"next_{report_type}"
    scored = _kpi_days(days)
    if len(scored) < MIN_FORECAST_DAYS:
        return Forecast(period, 0.0, 0.0, 0, len(scored), 0.0)

    current_kpi = average_kpi(scored)
    current_hours = total_hours(days) / len(scored)

    early = average_kpi(scored[:GROWTH_WINDOW])
    recent = average_kpi(scored[-GROWTH_WINDOW:])
    growth = (recent - early) / early if early > 0 else 0.0
    daily = max(MIN_DAILY_GROWTH, min(MAX_DAILY_GROWTH, growth / GROWTH_WINDOW))

    horizon = FORECAST_HORIZON.get(report_type, FORECAST_HORIZON["month"])
    return Forecast(
        period=period,
        predicted_kpi=current_kpi * (1 + daily) ** horizon,
        # Hours grow at half the rate
        predicted_hours=current_hours * (1 + daily * 0.5) ** horizon,
        confidence=round(min(100.0, len(scored) / 30 * 100)),
        based_on_days=len(scored),
        compound_growth_rate=daily * 100,
    )


# ── Recommendations ─────────────────────────────────────────────────────


def generate_recommendations(
    days: list[DayAggregate],
    trends: list[TrendAnalysis],
    habits: list[Habit],
    policy: Optional[ScoringPolicy] = None,
) -> list[Recommendation]:
    policy = policy or default_policy()
    recs = []

    declining = [t for t in trends if t.trend == "declining" and t.trend_percentage > 10]
    if declining:
        recs.append(Recommendation(
            type="habit_focus",
            priority="high",
            title="Address declining habits",
            description=f"{len(declining)} habits are trending down. Focus on these to prevent further drops.",
            action_items=[f"Review and adjust the approach for {t.habit_name}" for t in declining],
            expected_impact="Prevent a 10-20% KPI decline",
            habit_ids=[t.habit_id for t in declining],
        ))

    inconsistent = [t for t in trends if t.consistency < 60]
    if inconsistent:
        recs.append(Recommendation(
            type="time_optimization",
            priority="medium",
            title="Improve habit consistency",
            description="Several habits are logged on few days. Consider time blocking or habit stacking.",
            action_items=[
                "Use time blocking for low-consistency habits",
                "Link habits together with habit stacking",
                "Lower targets temporarily to build momentum",
            ],
            expected_impact="Raise overall consistency by 15-25%",
            habit_ids=[t.habit_id for t in inconsistent],
        ))

    if average_kpi(days) < 80:
        recs.append(Recommendation(
            type="priority_adjustment",
            priority="high",
            title="Focus on Q2 activities",
            description="KPI is below optimal. Spend more time on important but not urgent work.",
            action_items=[
                "Allocate more time to Q2 habits",
                "Cut time spent on Q3/Q4 activities",
                "Set specific Q2 goals for the next week",
            ],
            expected_impact="Potential 15-30% KPI improvement",
            habit_ids=[h.habit_id for h in habits if h.eisenhower_quadrant == EisenhowerQuadrant.Q2],
        ))

    developing = [h for h in habits if h.category in policy.skill_categories and h.skill_level < 4]
    if developing:
        recs.append(Recommendation(
            type="skill_development",
            priority="medium",
            title="Accelerate skill development",
            description="Some skills are below level 4. Focusing on them pays off in the skills pillar.",
            action_items=[
                "Take a monthly skill assessment",
                "Increase practice time for low-level skills",
                "Find a mentor or course for each weak skill",
            ],
            expected_impact="Improve the skills pillar by 20-40%",
            habit_ids=[h.habit_id for h in developing],
        ))

    recs.sort(key=lambda r: _PRIORITY_ORDER[r.priority], reverse=True)
    return recs


def build_analytics_report(
    user_id: str,
    days: list[DayAggregate],
    habits: list[Habit],
    start: date,
    end: date,
    report_type: str = "month",
    policy: Optional[ScoringPolicy] = None,
) -> AnalyticsReport:
    days = sorted((d for d in days if not d.is_exception), key=lambda d: d.date)
    trends = analyze_trends(days, habits)
    return AnalyticsReport(
        user_id=user_id,
        report_type=report_type,
        start=start,
        end=end,
        summary=summarize(days, habits, start, end),
        trends=trends,
        forecast=forecast(days, report_type),
        recommendations=generate_recommendations(days, trends, habits, policy),
    )


# ── Period comparison ───────────────────────────────────────────────────


@dataclass
class PeriodMetrics:
    start: date
    end: date
    average_kpi: float
    total_hours: float
    completion_rate: float

    def to_dict(self) -> dict:
        return {
            "period": f"{self.start.isoformat()} to {self.end.isoformat()}",
            "average_kpi": _r2(self.average_kpi),
            "total_hours": _r2(self.total_hours),
            "completion_rate": _r2(self.completion_rate),
        }


@dataclass
class PeriodComparison:
    current: PeriodMetrics
    previous: PeriodMetrics
    kpi_change: float
    hours_change: float
    completion_rate_change: float
    insights: list[str]

    def to_dict(self) -> dict:
        return {
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "changes": {
                "kpi_change": _r2(self.kpi_change),
                "hours_change": _r2(self.hours_change),
                "completion_rate_change": _r2(self.completion_rate_change),
            },
            "insights": list(self.insights),
        }


def period_metrics(days: list[DayAggregate], start: date, end: date) -> PeriodMetrics:
    days = [d for d in days if not d.is_exception]
    total_days = (end - start).days + 1
    return PeriodMetrics(
        start=start,
        end=end,
        average_kpi=average_kpi(days),
        total_hours=total_hours(days),
        completion_rate=len(_kpi_days(days)) / total_days * 100 if total_days > 0 else 0.0,
    )


def comparison_insights(kpi_change: float, hours_change: float, rate_change: float) -> list[str]:
    insights = []
    if kpi_change > 5:
        insights.append(f"KPI improved by {kpi_change:.1f} points. Keep up the momentum.")
    elif kpi_change < -5:
        insights.append(f"KPI declined by {abs(kpi_change):.1f} points. Review recent changes and adjust.")
    else:
        insights.append("KPI stayed roughly stable. Look for a breakthrough improvement.")

    if hours_change > 10:
        insights.append(f"Activity hours rose by {hours_change:.1f}h. Make sure this is sustainable.")
    elif hours_change < -10:
        insights.append(f"Activity hours fell by {abs(hours_change):.1f}h. Focus on consistency.")

    if rate_change > 10:
        insights.append(f"Completion rate improved by {rate_change:.1f}%.")
    elif rate_change < -10:
        insights.append(f"Completion rate dropped by {abs(rate_change):.1f}%. Consider lowering targets for a while.")
    return insights


def compare_periods(
    current_days: list[DayAggregate],
    previous_days: list[DayAggregate],
    current_range: tuple[date, date],
    previous_range: tuple[date, date],
) -> PeriodComparison:
    current = period_metrics(current_days, *current_range)
    previous = period_metrics(previous_days, *previous_range)
    kpi_change = current.average_kpi - previous.average_kpi
    hours_change = current.total_hours - previous.total_hours
    rate_change = current.completion_rate - previous.completion_rate
    return PeriodComparison(
        current=current,
        previous=previous,
        kpi_change=kpi_change,
        hours_change=hours_change,
        completion_rate_change=rate_change,
        insights=comparison_insights(kpi_change, hours_change, rate_change),
    )
