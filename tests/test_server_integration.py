"""Integration tests for FastAPI server endpoints.

Uses httpx.AsyncClient with ASGITransport to test the REST API
without starting a real server. Redis is patched to use fakeredis.
"""

import pytest
import fakeredis
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport


# ── Patch Redis before importing the server ──────────────────────────────

@pytest.fixture
def fake_redis():
    """Create a shared fakeredis instance for this test."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def patched_app(fake_redis):
    with patch("kpi_engine.server._get_redis", return_value=fake_redis):
        from kpi_engine.server import app
        yield app


@pytest.fixture
async def client(patched_app):
    transport = ASGITransport(app=patched_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


WORK = {
    "habit_id": "work",
    "name": "Work",
    "target_minutes": 360,
    "category": "career",
    "is_weekday_only": True,
}
MEDITATION = {"habit_id": "med", "name": "Meditation", "target_minutes": 20}


async def _seed_habits(client):
    for habit in (WORK, MEDITATION):
        resp = await client.post("/api/habits", json=habit)
        assert resp.status_code == 200


async def _post_day(client, day, work=300, med=20, **extra):
    body = {
        "user_id": "u1",
        "date": day,
        "habit_records": [
            {"habit_id": "work", "actual_minutes": work},
            {"habit_id": "med", "actual_minutes": med},
        ],
        "tasks": [{"title": "Prepare visa documents", "priority": "high", "completed": True}],
    }
    body.update(extra)
    return await client.post("/api/records", json=body)


# ═══════════════════════════════════════════════════════════════════════════
# Health Check
# ═══════════════════════════════════════════════════════════════════════════


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["redis"] is True
        assert data["cache"]["status"] == "healthy"


# ═══════════════════════════════════════════════════════════════════════════
# Computation Endpoints
# ═══════════════════════════════════════════════════════════════════════════


class TestCalculateEndpoint:
    @pytest.mark.asyncio
    async def test_calculate_monday_work_day(self, client):
        resp = await client.post("/api/kpi/calculate", json={
            "date": "2026-09-14",
            "habits": [WORK],
            "habit_records": [{"habit_id": "work", "actual_minutes": 360}],
            "tasks": [],
            "revolut_pillars": {"deliverables": 80, "skills": 70, "culture": 90},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["kpi"]["base_score"] == pytest.approx(100)
        assert data["kpi"]["revolut_score"] == pytest.approx(80)
        assert 0 <= data["kpi"]["total_kpi"] <= 150
        assert "book_principles" in data
        assert "recommendations" in data

    @pytest.mark.asyncio
    async def test_calculate_derives_pillars(self, client):
        resp = await client.post("/api/kpi/calculate", json={
            "date": "2026-09-19",
            "habits": [WORK],
            "habit_records": [{"habit_id": "work", "actual_minutes": 360}],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["kpi"]["base_score"] == pytest.approx(150)
        assert set(data["revolut_pillars"]) == {"deliverables", "skills", "culture"}

    @pytest.mark.asyncio
    async def test_calculate_rejects_with_every_issue(self, client):
        resp = await client.post("/api/kpi/calculate", json={
            "tasks": [{"title": f"Task {i}"} for i in range(6)],
            "revolut_pillars": {"deliverables": 150, "skills": 50, "culture": 50},
        })
        assert resp.status_code == 422
        fields = {issue["field"] for issue in resp.json()["detail"]}
        assert fields == {"tasks", "revolut_pillars.deliverables"}

    @pytest.mark.asyncio
    async def test_unknown_priority_rejected(self, client):
        resp = await client.post("/api/kpi/calculate", json={
            "tasks": [{"title": "x", "priority": "urgent"}],
        })
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_validate_reports_without_raising(self, client):
        resp = await client.post("/api/kpi/validate", json={
            "tasks": [{"title": f"Task {i}"} for i in range(6)],
            "revolut_pillars": {"deliverables": 50, "skills": 50, "culture": 50},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_valid"] is False
        assert "Maximum 5 tasks" in data["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_daily_scorecard(self, client):
        resp = await client.post("/api/scorecard/daily", json={
            "date": "2026-09-14",
            "habits": [WORK],
            "habit_records": [{"habit_id": "work", "actual_minutes": 360}],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["revolut_pillars"]["deliverables"] == pytest.approx(100)
        assert 0 <= data["revolut_score"] <= 100


# ═══════════════════════════════════════════════════════════════════════════
# Record Endpoints
# ═══════════════════════════════════════════════════════════════════════════


class TestRecordEndpoints:
    @pytest.mark.asyncio
    async def test_habits_listed(self, client):
        await _seed_habits(client)
        resp = await client.get("/api/habits")
        assert [h["habit_id"] for h in resp.json()["habits"]] == ["med", "work"]

    @pytest.mark.asyncio
    async def test_save_scores_and_persists(self, client):
        await _seed_habits(client)
        resp = await _post_day(client, "2026-09-14")
        assert resp.status_code == 200
        record = resp.json()["record"]
        assert record["total_kpi"] is not None
        assert 0 <= record["total_kpi"] <= 150

        resp = await client.get("/api/records/u1/2026-09-14")
        assert resp.status_code == 200
        assert resp.json()["total_kpi"] == record["total_kpi"]

    @pytest.mark.asyncio
    async def test_exception_day_not_scored(self, client):
        await _seed_habits(client)
        resp = await _post_day(client, "2026-09-14", exception_type="illness")
        assert resp.status_code == 200
        assert resp.json()["record"]["total_kpi"] is None

    @pytest.mark.asyncio
    async def test_too_many_tasks_rejected(self, client):
        await _seed_habits(client)
        resp = await _post_day(client, "2026-09-14", tasks=[{"title": f"T{i}"} for i in range(6)])
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client):
        await _seed_habits(client)
        await _post_day(client, "2026-09-14")
        resp = await client.delete("/api/records/u1/2026-09-14")
        assert resp.status_code == 200
        resp = await client.get("/api/records/u1/2026-09-14")
        assert resp.status_code == 404
        resp = await client.delete("/api/records/u1/2026-09-14")
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Cached Reads
# ═══════════════════════════════════════════════════════════════════════════


class TestCachedReads:
    @pytest.mark.asyncio
    async def test_report_cache_header(self, client):
        await _seed_habits(client)
        for day in ("2026-09-14", "2026-09-15", "2026-09-16"):
            await _post_day(client, day)

        params = {"start": "2026-09-01", "end": "2026-09-30"}
        first = await client.get("/api/analytics/u1/report", params=params)
        second = await client.get("/api/analytics/u1/report", params=params)
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert first.json() == second.json()
        assert first.json()["summary"]["completed_days"] == 3

    @pytest.mark.asyncio
    async def test_saving_a_day_invalidates_report(self, client):
        await _seed_habits(client)
        await _post_day(client, "2026-09-14")
        params = {"start": "2026-09-01", "end": "2026-09-30"}
        await client.get("/api/analytics/u1/report", params=params)

        await _post_day(client, "2026-09-15")
        resp = await client.get("/api/analytics/u1/report", params=params)
        assert resp.headers["X-Cache"] == "MISS"
        assert resp.json()["summary"]["completed_days"] == 2

    @pytest.mark.asyncio
    async def test_report_bad_range(self, client):
        resp = await client.get("/api/analytics/u1/report", params={"start": "2026-09-30", "end": "2026-09-01"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_dashboards(self, client):
        await _seed_habits(client)
        await _post_day(client, "2026-09-14")
        resp = await client.get("/api/dashboard/u1/month/2026", params={"month": 9})
        assert resp.status_code == 200
        assert resp.headers["X-Cache"] == "MISS"
        assert len(resp.json()["daily_data"]) == 30

        resp = await client.get("/api/dashboard/u1/year/2026")
        assert resp.status_code == 200
        assert len(resp.json()["months"]) == 12

    @pytest.mark.asyncio
    async def test_dashboard_errors(self, client):
        resp = await client.get("/api/dashboard/u1/month/2026")
        assert resp.status_code == 422
        resp = await client.get("/api/dashboard/u1/week/2026")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_user_summary_and_cache_drop(self, client):
        await _seed_habits(client)
        await _post_day(client, "2026-09-14")
        params = {"today": "2026-09-14"}
        first = await client.get("/api/users/u1/summary", params=params)
        assert first.headers["X-Cache"] == "MISS"
        assert first.json()["logged_days"] == 1
        second = await client.get("/api/users/u1/summary", params=params)
        assert second.headers["X-Cache"] == "HIT"

        resp = await client.delete("/api/users/u1/cache")
        assert resp.json()["invalidated"] >= 1
        third = await client.get("/api/users/u1/summary", params=params)
        assert third.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    async def test_compare_and_scorecard(self, client):
        await _seed_habits(client)
        await _post_day(client, "2026-09-14")
        await _post_day(client, "2026-09-07", work=100)
        resp = await client.get("/api/analytics/u1/compare", params={
            "current_start": "2026-09-14", "current_end": "2026-09-20",
            "previous_start": "2026-09-07", "previous_end": "2026-09-13",
        })
        assert resp.status_code == 200
        assert "insights" in resp.json()

        resp = await client.get("/api/users/u1/scorecard", params={"start": "2026-09-01", "end": "2026-09-30"})
        assert resp.status_code == 200
        assert resp.json()["days"] == 2
