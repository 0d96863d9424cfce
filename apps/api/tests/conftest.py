import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1")
os.environ.setdefault("AUTO_CREATE_DB_SCHEMA", "false")

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from main import app
from routers import rate_limit
from services.errors import UpstreamError
from services.metrics import RawMetrics
from services.neynar import NeynarCastsPage, NeynarUser


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit.reset_local_quotas()
    yield
    rate_limit.reset_local_quotas()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scores.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield maker
    await engine.dispose()


class FakeNeynarClient:
    """In-memory stand-in for NeynarClient keyed by fid."""

    def __init__(self, users: Optional[Dict[int, dict]] = None, casts: Optional[Dict[int, List[dict]]] = None):
        self.users = users or {}
        self.casts = casts or {}
        self.profile_calls: List[int] = []
        self.page_calls: List[tuple] = []
        self.closed = False

    async def fetch_user_profile(self, fid: int) -> NeynarUser:
        self.profile_calls.append(fid)
        if fid not in self.users:
            raise UpstreamError(f"Neynar returned no user for fid {fid}")
        return NeynarUser.model_validate(self.users[fid])

    async def fetch_casts_page(self, fid: int, *, limit: int = 100, cursor: Optional[str] = None) -> NeynarCastsPage:
        self.page_calls.append((fid, cursor))
        return NeynarCastsPage.model_validate({"casts": self.casts.get(fid, []), "next": None})

    async def aclose(self) -> None:
        self.closed = True


def neynar_user(fid: int, **overrides) -> dict:
    payload = {
        "fid": fid,
        "username": f"creator{fid}",
        "follower_count": 1000,
        "following_count": 100,
        "power_badge": False,
        "score": 0.8,
    }
    payload.update(overrides)
    return payload


def neynar_cast(index: int, *, age_hours: float = 1, likes: int = 20, recasts: int = 5, replies: int = 4) -> dict:
    timestamp = datetime.now(timezone.utc) - timedelta(hours=age_hours)
    return {
        "hash": f"0x{index:04x}",
        "timestamp": timestamp.isoformat(),
        "reactions": {"likes_count": likes, "recasts_count": recasts},
        "replies": {"count": replies},
    }


def make_metrics(fid: int = 1, **overrides) -> RawMetrics:
    values = dict(
        fid=fid,
        username=f"creator{fid}",
        follower_count=1000,
        following_count=100,
        power_badge=False,
        neynar_score=0.8,
        engagement_rate=100.0,
        posting_frequency=2.0,
        growth_rate=20.0,
        viral_coefficient=10.0,
        network_score=30.0,
    )
    values.update(overrides)
    return RawMetrics(**values)


class StaticMetricsFetcher:
    """Returns canned metrics and records the order fids were requested in."""

    def __init__(self, overrides: Optional[Dict[int, RawMetrics]] = None, default: Optional[RawMetrics] = None):
        self.overrides = overrides or {}
        self.default = default
        self.calls: List[int] = []
        self.invalidated: List[int] = []

    async def get_user_metrics(self, fid: int, window_days: int = 45) -> RawMetrics:
        self.calls.append(fid)
        if fid in self.overrides:
            return self.overrides[fid]
        if self.default is not None:
            return self.default
        return make_metrics(fid)

    def invalidate(self, fid: int) -> int:
        self.invalidated.append(fid)
        return 0
