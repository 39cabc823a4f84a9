"""Redis-backed store for habits and daily records.

Key layout:
  record:{user_id}:{YYYY-MM-DD}   JSON document of one DailyRecord
  records:{user_id}               sorted set of dates, scored by date ordinal
  habit:{habit_id}                hash of one Habit
  habits:all                      set of habit ids
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Optional, Protocol

import redis

from kpi_engine.config.settings import REDIS_URL
from kpi_engine.models.records import DailyRecord, Habit

logger = logging.getLogger(__name__)

RECORD_PREFIX = "record:"
RECORD_INDEX_PREFIX = "records:"
HABIT_PREFIX = "habit:"
HABITS_KEY = "habits:all"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def record_key(user_id: str, day: date) -> str:
    return f"{RECORD_PREFIX}{user_id}:{day.isoformat()}"


def record_index_key(user_id: str) -> str:
    return f"{RECORD_INDEX_PREFIX}{user_id}"


class RecordStore(Protocol):
    """Read interface the aggregation reader depends on."""

    def fetch_daily_records(self, user_id: str, start: date, end: date) -> list[DailyRecord]:
        ...

    def fetch_habits(self) -> list[Habit]:
        ...


def _habit_to_hash(habit: Habit) -> dict[str, str]:
    # Hash values must be strings; None fields are left out
    mapping = {}
    for k, v in habit.to_dict().items():
        if v is None:
            continue
        if isinstance(v, bool):
            v = "1" if v else "0"
        mapping[k] = str(v)
    return mapping


class RedisRecordStore:
    def __init__(self, r: redis.Redis | None = None):
        self.r = r or _get_redis()

    # ── Habits ──────────────────────────────────────────────────────────

    def save_habit(self, habit: Habit) -> None:
        key = f"{HABIT_PREFIX}{habit.habit_id}"
        pipe = self.r.pipeline(transaction=True)
        pipe.delete(key)
        pipe.hset(key, mapping=_habit_to_hash(habit))
        pipe.sadd(HABITS_KEY, habit.habit_id)
        pipe.execute()

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        data = self.r.hgetall(f"{HABIT_PREFIX}{habit_id}")
        return Habit.from_dict(data) if data else None

    def delete_habit(self, habit_id: str) -> None:
        self.r.delete(f"{HABIT_PREFIX}{habit_id}")
        self.r.srem(HABITS_KEY, habit_id)

    def fetch_habits(self) -> list[Habit]:
        habit_ids = sorted(self.r.smembers(HABITS_KEY))
        pipe = self.r.pipeline(transaction=False)
        for hid in habit_ids:
            pipe.hgetall(f"{HABIT_PREFIX}{hid}")
        habits = []
        for hid, data in zip(habit_ids, pipe.execute()):
            if not data:
                logger.warning("Habit %s indexed but missing", hid)
                continue
            habits.append(Habit.from_dict(data))
        return habits

    # ── Daily records ───────────────────────────────────────────────────

    def save_daily_record(self, record: DailyRecord) -> None:
        """Write (or overwrite) the record for its (user, date)."""
        pipe = self.r.pipeline(transaction=True)
        pipe.set(record_key(record.user_id, record.date), json.dumps(record.to_dict()))
        pipe.zadd(record_index_key(record.user_id), {record.date.isoformat(): record.date.toordinal()})
        pipe.execute()

    def get_daily_record(self, user_id: str, day: date) -> Optional[DailyRecord]:
        raw = self.r.get(record_key(user_id, day))
        return DailyRecord.from_dict(json.loads(raw)) if raw else None

    def delete_daily_record(self, user_id: str, day: date) -> bool:
        """Delete a day together with its habit records and tasks."""
        pipe = self.r.pipeline(transaction=True)
        pipe.delete(record_key(user_id, day))
        pipe.zrem(record_index_key(user_id), day.isoformat())
        deleted, _ = pipe.execute()
        return bool(deleted)

    def fetch_daily_records(self, user_id: str, start: date, end: date) -> list[DailyRecord]:
        """Records for ``start``..``end`` inclusive, ordered by date."""
        days = self.r.zrangebyscore(record_index_key(user_id), start.toordinal(), end.toordinal())
        if not days:
            return []
        pipe = self.r.pipeline(transaction=False)
        for day in days:
            pipe.get(f"{RECORD_PREFIX}{user_id}:{day}")
        records = []
        for day, raw in zip(days, pipe.execute()):
            if raw is None:
                logger.warning("Record %s:%s indexed but missing", user_id, day)
                continue
            records.append(DailyRecord.from_dict(json.loads(raw)))
        return records
