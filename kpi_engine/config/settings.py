"""Application-wide configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Redis
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# ── Cache-aside policy ───────────────────────────────────────────────────

CACHE_PREFIX: str = os.getenv("CACHE_PREFIX", "kpi:cache:")
CACHE_DEFAULT_TTL: int = int(os.getenv("CACHE_DEFAULT_TTL", "3600"))  # 1 hour
ANALYTICS_CACHE_TTL: int = int(os.getenv("ANALYTICS_CACHE_TTL", "1800"))  # 30 min
DASHBOARD_CACHE_TTL: int = int(os.getenv("DASHBOARD_CACHE_TTL", "3600"))  # 1 hour
USER_AGGREGATE_CACHE_TTL: int = int(os.getenv("USER_AGGREGATE_CACHE_TTL", "600"))  # 10 min

# Seconds to wait before probing an unreachable store again
CACHE_RETRY_INTERVAL: float = float(os.getenv("CACHE_RETRY_INTERVAL", "30"))

# ── Scoring ──────────────────────────────────────────────────────────────

KPI_CAP: float = float(os.getenv("KPI_CAP", "150"))
MAX_TASKS_PER_DAY: int = int(os.getenv("MAX_TASKS_PER_DAY", "5"))

# Business policy values (categories, weekday targets, keywords, streak milestones)
POLICY_PATH: Path = Path(
    os.getenv("POLICY_PATH", str(Path(__file__).resolve().parent / "policy.yaml"))
)

# ── Aggregation reader ──────────────────────────────────────────────────

SLOW_QUERY_THRESHOLD_MS: int = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "1000"))

# ── Server Configuration ─────────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
