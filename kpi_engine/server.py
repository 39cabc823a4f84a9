"""FastAPI adapter over the KPI engine.

Stateless computation endpoints (KPI, validation, scorecard) plus record
storage and the cached analytics reads.  Cached reads carry an
``X-Cache: HIT|MISS`` header.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

import redis
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from kpi_engine.analytics.service import STREAK_LOOKBACK_DAYS, AnalyticsService
from kpi_engine.cache.cache_service import MONTH, YEAR, CacheResult, CacheService
from kpi_engine.cache.store import CacheStore
from kpi_engine.config.settings import REDIS_URL, SERVER_HOST, SERVER_PORT
from kpi_engine.data_pipeline.aggregation import AggregationReader
from kpi_engine.data_pipeline.record_store import RedisRecordStore
from kpi_engine.engine.book_principles import book_principles_breakdown
from kpi_engine.engine.context import DayContext
from kpi_engine.engine.kpi import KPICalculator
from kpi_engine.engine.scorecard import revolut_score
from kpi_engine.engine.streaks import calculate_current_streaks
from kpi_engine.models.records import RevolutPillars
from kpi_engine.models.requests import (
    CalculateKPIRequest,
    DailyRecordRequest,
    HabitIn,
    ScorecardRequest,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="KPI Engine", description="Daily productivity KPI scoring and analytics")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Shared State ─────────────────────────────────────────────────────────

_calculator = KPICalculator()


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def _record_store() -> RedisRecordStore:
    return RedisRecordStore(_get_redis())


def _analytics() -> AnalyticsService:
    r = _get_redis()
    reader = AggregationReader(RedisRecordStore(r), calculator=_calculator)
    return AnalyticsService(reader, CacheService(CacheStore(r)), scorecard=_calculator.scorecard)


def _cached(result: CacheResult, response: Response):
    response.headers["X-Cache"] = result.status
    return result.data


def _raise_if_invalid(validation) -> None:
    if not validation.is_valid:
        raise HTTPException(status_code=422, detail=validation.to_dict()["errors"])


# ── Health ───────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    r = _get_redis()
    try:
        r.ping()
        redis_ok = True
    except redis.RedisError:
        redis_ok = False

    return {
        "status": "ok",
        "redis": redis_ok,
        "cache": CacheService(CacheStore(r)).health_check(),
    }


# ── Computation ──────────────────────────────────────────────────────────

def _pillars_for(req: CalculateKPIRequest, habit_records, tasks, habits, day: date) -> RevolutPillars:
    """Pillars sent by the caller, else derived from the day."""
    if req.revolut_pillars is not None:
        return req.revolut_pillars.to_domain()
    return _calculator.scorecard.calculate_daily_scorecard(habit_records, tasks, habits, day=day)


@app.post("/api/kpi/validate")
async def validate_kpi(req: CalculateKPIRequest):
    habit_records, tasks, habits = req.domain_records(), req.domain_tasks(), req.domain_habits()
    pillars = _pillars_for(req, habit_records, tasks, habits, req.date or date.today())
    return _calculator.validate_inputs(habit_records, tasks, pillars, habits).to_dict()


@app.post("/api/kpi/calculate")
async def calculate_kpi(req: CalculateKPIRequest):
    """Score one day.  Invalid input answers 422 with every issue found."""
    habit_records = req.domain_records()
    tasks = req.domain_tasks()
    habits = req.domain_habits()
    day = req.date or date.today()
    pillars = _pillars_for(req, habit_records, tasks, habits, day)

    _raise_if_invalid(_calculator.validate_inputs(habit_records, tasks, pillars, habits))

    result = _calculator.calculate_daily_kpi(
        habit_records, tasks, habits, pillars, streak_data=req.streak_data, day=day,
    )
    ctx = DayContext.build(
        habit_records, tasks, habits, day=day, streak_data=req.streak_data, policy=_calculator.policy,
    )
    return {
        "date": day.isoformat(),
        "kpi": result.to_dict(),
        "revolut_pillars": pillars.to_dict(),
        "book_principles": book_principles_breakdown(ctx),
        "recommendations": _calculator.priority_manager.generate_recommendations(tasks).to_dict(),
    }


@app.post("/api/scorecard/daily")
async def daily_scorecard(req: ScorecardRequest):
    pillars = _calculator.scorecard.calculate_daily_scorecard(
        req.domain_records(), req.domain_tasks(), req.domain_habits(),
        req.skill_deltas, day=req.date or date.today(),
    )
    return {"revolut_pillars": pillars.to_dict(), "revolut_score": round(revolut_score(pillars), 2)}


# ── Records ──────────────────────────────────────────────────────────────

@app.post("/api/habits")
async def save_habit(req: HabitIn):
    _record_store().save_habit(req.to_domain())
    return {"successful": True, "habit_id": req.habit_id}


@app.get("/api/habits")
async def list_habits():
    return {"habits": [h.to_dict() for h in _record_store().fetch_habits()]}


@app.post("/api/records")
async def save_daily_record(req: DailyRecordRequest):
    """Score, persist and invalidate the caches depending on the day."""
    store = _record_store()
    record = req.to_domain()

    if not record.is_exception:
        habits = store.fetch_habits()
        pillars = _calculator.scorecard.calculate_daily_scorecard(
            record.habit_records, record.tasks, habits, day=record.date,
        )
        _raise_if_invalid(_calculator.validate_inputs(record.habit_records, record.tasks, pillars, habits))

        history = store.fetch_daily_records(
            record.user_id, record.date - timedelta(days=STREAK_LOOKBACK_DAYS), record.date - timedelta(days=1),
        )
        streaks = calculate_current_streaks(
            history + [record], habits, as_of=record.date, policy=_calculator.policy,
        )
        record.total_kpi = _calculator.score_day(
            record, habits, revolut_pillars=pillars, streak_data=streaks,
        ).total_kpi

    store.save_daily_record(record)
    invalidated = _analytics().record_saved(record.user_id, record.date)
    logger.info("Saved record %s (kpi=%s, %d cache keys dropped)", record.record_id, record.total_kpi, invalidated)
    return {"successful": True, "record": record.to_dict(), "invalidated": invalidated}


@app.get("/api/records/{user_id}/{day}")
async def get_daily_record(user_id: str, day: date):
    record = _record_store().get_daily_record(user_id, day)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record.to_dict()


@app.delete("/api/records/{user_id}/{day}")
async def delete_daily_record(user_id: str, day: date):
    if not _record_store().delete_daily_record(user_id, day):
        raise HTTPException(status_code=404, detail="Record not found")
    invalidated = _analytics().record_saved(user_id, day)
    return {"successful": True, "invalidated": invalidated}


# ── Cached reads ─────────────────────────────────────────────────────────

@app.get("/api/analytics/{user_id}/report")
async def analytics_report(
    user_id: str,
    response: Response,
    start: date = Query(...),
    end: date = Query(...),
    report_type: str = Query("month"),
):
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    return _cached(_analytics().get_analytics_report(user_id, start, end, report_type), response)


@app.get("/api/analytics/{user_id}/compare")
async def compare_periods(
    user_id: str,
    current_start: date = Query(...),
    current_end: date = Query(...),
    previous_start: date = Query(...),
    previous_end: date = Query(...),
):
    return _analytics().compare(user_id, (current_start, current_end), (previous_start, previous_end))


@app.get("/api/dashboard/{user_id}/{granularity}/{year}")
async def dashboard(
    user_id: str,
    granularity: str,
    year: int,
    response: Response,
    month: Optional[int] = Query(None, ge=1, le=12),
):
    if granularity not in (YEAR, MONTH):
        raise HTTPException(status_code=404, detail=f"Unknown granularity {granularity!r}")
    if granularity == MONTH and month is None:
        raise HTTPException(status_code=422, detail="month is required for a month dashboard")
    return _cached(_analytics().get_dashboard(user_id, granularity, year, month), response)


@app.get("/api/users/{user_id}/summary")
async def user_summary(user_id: str, response: Response, today: Optional[date] = Query(None)):
    return _cached(_analytics().get_user_summary(user_id, today), response)


@app.get("/api/users/{user_id}/scorecard")
async def period_scorecard(user_id: str, start: date = Query(...), end: date = Query(...)):
    return _analytics().period_scorecard(user_id, start, end)


@app.delete("/api/users/{user_id}/cache")
async def invalidate_user_cache(user_id: str):
    deleted = _analytics().cache.invalidate_user_cache(user_id)
    return {"successful": True, "invalidated": deleted}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)
