from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from solo_leveling.models import PerformanceLog, SystemErrorLog, UserSession
from solo_leveling.services.health import HealthCheckService, round_half_up


NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture()
async def session() -> AsyncSession:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(PerformanceLog.__table__.create)
        await conn.run_sync(SystemErrorLog.__table__.create)
        await conn.run_sync(UserSession.__table__.create)

    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as db_session:
        yield db_session

    await engine.dispose()


@pytest.mark.asyncio
async def test_check_summarises_last_hour(session: AsyncSession) -> None:
    recent = NOW - timedelta(minutes=10)
    stale = NOW - timedelta(hours=2)
    session.add_all(
        [
            SystemErrorLog(error_level="error", error_message="boom", created_at=recent),
            SystemErrorLog(error_level="critical", error_message="db down", created_at=recent),
            SystemErrorLog(error_level="warn", error_message="Slow response detected", created_at=recent),
            SystemErrorLog(error_level="error", error_message="old", created_at=stale),
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=100, status_code=200, created_at=recent),
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=200, status_code=200, created_at=recent),
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=9000, status_code=200, created_at=stale),
        ]
    )
    await session.commit()

    service = HealthCheckService(session, now_factory=lambda: NOW)
    snapshot = await service.check()

    assert snapshot.database == "healthy"
    assert snapshot.error_count == 2
    assert snapshot.avg_response_time == 150
    assert snapshot.timestamp == NOW


@pytest.mark.asyncio
async def test_check_with_no_samples_reports_zero(session: AsyncSession) -> None:
    service = HealthCheckService(session, now_factory=lambda: NOW)

    snapshot = await service.check()

    assert snapshot.database == "healthy"
    assert snapshot.error_count == 0
    assert snapshot.avg_response_time == 0


@pytest.mark.asyncio
async def test_window_is_configurable(session: AsyncSession) -> None:
    session.add(
        SystemErrorLog(error_level="error", error_message="earlier", created_at=NOW - timedelta(hours=2))
    )
    await session.commit()

    service = HealthCheckService(session, window_minutes=180, now_factory=lambda: NOW)

    assert (await service.check()).error_count == 1


@pytest.mark.asyncio
async def test_unreachable_database_reports_unhealthy() -> None:
    class UnreachableSession:
        async def execute(self, *_args, **_kwargs):
            raise SQLAlchemyError("could not connect to server")

    service = HealthCheckService(UnreachableSession(), now_factory=lambda: NOW)  # type: ignore[arg-type]
    snapshot = await service.check()

    assert snapshot.database == "unhealthy"
    assert snapshot.error_count == -1
    assert snapshot.avg_response_time == -1


def test_round_half_up_rounds_halves_away_from_even() -> None:
    assert round_half_up(100.5) == 101
    assert round_half_up(150.5) == 151
    assert round_half_up(100.49) == 100
    assert round_half_up(0) == 0


@pytest.mark.asyncio
async def test_average_rounds_half_up(session: AsyncSession) -> None:
    recent = NOW - timedelta(minutes=1)
    session.add_all(
        [
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=100, status_code=200, created_at=recent),
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=101, status_code=200, created_at=recent),
        ]
    )
    await session.commit()

    service = HealthCheckService(session, now_factory=lambda: NOW)

    assert (await service.check()).avg_response_time == 101
    assert (await service.detailed()).average_response_time == 101


@pytest.mark.asyncio
async def test_detailed_snapshot_aggregates_activity(session: AsyncSession) -> None:
    session.add_all(
        [
            PerformanceLog(endpoint="/api/dungeons", method="POST", response_time_ms=200, status_code=201, created_at=NOW - timedelta(minutes=5)),
            PerformanceLog(endpoint="/api/quests", method="GET", response_time_ms=100, status_code=200, created_at=NOW - timedelta(minutes=10)),
            PerformanceLog(endpoint="/api/stats", method="GET", response_time_ms=900, status_code=200, created_at=NOW - timedelta(minutes=40)),
            PerformanceLog(endpoint="/api/stats", method="GET", response_time_ms=50, status_code=200, created_at=NOW - timedelta(hours=2)),
            SystemErrorLog(error_level="error", error_message="recent", created_at=NOW - timedelta(minutes=10)),
            SystemErrorLog(error_level="warn", error_message="slow", created_at=NOW - timedelta(minutes=10)),
            SystemErrorLog(error_level="error", error_message="this morning", created_at=NOW - timedelta(hours=5)),
            SystemErrorLog(error_level="critical", error_message="yesterday", created_at=NOW - timedelta(hours=30)),
            UserSession(session_id="a1", user_id=1, is_active=True, last_activity=NOW - timedelta(minutes=5), expires_at=NOW + timedelta(days=1)),
            UserSession(session_id="a2", user_id=1, is_active=True, last_activity=NOW - timedelta(minutes=2), expires_at=NOW + timedelta(days=1)),
            UserSession(session_id="b1", user_id=2, is_active=True, last_activity=NOW - timedelta(minutes=45), expires_at=NOW + timedelta(days=1)),
            UserSession(session_id="c1", user_id=3, is_active=False, last_activity=NOW - timedelta(minutes=5), expires_at=NOW + timedelta(days=1)),
            UserSession(session_id="d1", user_id=4, is_active=True, last_activity=NOW - timedelta(minutes=1), expires_at=NOW + timedelta(days=1)),
        ]
    )
    await session.commit()

    snapshot = await HealthCheckService(session, now_factory=lambda: NOW).detailed()

    assert snapshot.available is True
    assert snapshot.database == "healthy"
    assert snapshot.average_response_time == 150
    assert snapshot.max_response_time == 200
    assert snapshot.request_count == 2
    assert snapshot.active_users == 2
    assert snapshot.error_counts == {"error": 2, "warn": 1}
    assert [sample.response_time_ms for sample in snapshot.performance_metrics] == [200, 100, 900]
    assert snapshot.performance_metrics[0].endpoint == "/api/dungeons"
    assert snapshot.timestamp == NOW


@pytest.mark.asyncio
async def test_detailed_snapshot_flags_error_bursts(session: AsyncSession) -> None:
    session.add_all(
        SystemErrorLog(error_level="error", error_message=f"failure {n}", created_at=NOW - timedelta(minutes=n))
        for n in range(1, 11)
    )
    await session.commit()

    snapshot = await HealthCheckService(session, now_factory=lambda: NOW).detailed()

    assert snapshot.database == "unhealthy"
    assert snapshot.error_counts == {"error": 10}
    assert snapshot.request_count == 0
    assert snapshot.performance_metrics == []


@pytest.mark.asyncio
async def test_detailed_snapshot_on_unreachable_database() -> None:
    class UnreachableSession:
        async def scalar(self, *_args, **_kwargs):
            raise SQLAlchemyError("could not connect to server")

    snapshot = await HealthCheckService(UnreachableSession(), now_factory=lambda: NOW).detailed()  # type: ignore[arg-type]

    assert snapshot.available is False
    assert snapshot.database == "unhealthy"
    assert snapshot.average_response_time == -1
    assert snapshot.active_users == 0
    assert snapshot.error_counts == {}
    assert snapshot.performance_metrics == []
