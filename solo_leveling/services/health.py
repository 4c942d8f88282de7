from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.models import PerformanceLog, SystemErrorLog, UserSession
from solo_leveling.schemas.admin import PerformanceSample


logger = logging.getLogger(__name__)

ALERTING_ERROR_LEVELS = ("error", "critical")
# Errors within the alert window at or above this count mark the database unhealthy.
UNHEALTHY_ERROR_THRESHOLD = 10
LATENCY_WINDOW = timedelta(minutes=15)
ACTIVE_USER_WINDOW = timedelta(minutes=30)
ERROR_BREAKDOWN_WINDOW = timedelta(hours=24)
RECENT_SAMPLE_LIMIT = 100


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, as dashboards expect."""
    return int(math.floor(value + 0.5))


@dataclass(slots=True)
class HealthSnapshot:
    """Point-in-time system health as shown on the monitoring panel."""

    database: Literal["healthy", "unhealthy"]
    error_count: int
    avg_response_time: int
    timestamp: datetime


@dataclass(slots=True)
class DetailedHealthSnapshot:
    database: Literal["healthy", "unhealthy"]
    average_response_time: int
    max_response_time: int
    request_count: int
    active_users: int
    error_counts: dict[str, int] = field(default_factory=dict)
    performance_metrics: list[PerformanceSample] = field(default_factory=list)
    timestamp: datetime | None = None
    available: bool = True


class HealthCheckService:
    """Check the database and summarise recent errors, latency and activity."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        window_minutes: int = 60,
        now_factory: Callable[[], datetime] | None = None,
    ):
        self._session = session
        self._window = timedelta(minutes=window_minutes)
        self._now_factory = now_factory or (lambda: datetime.now(timezone.utc))

    async def check(self) -> HealthSnapshot:
        now = self._now_factory()
        since = now - self._window
        try:
            await self._session.execute(text("SELECT 1"))
            error_count = await self._alerting_errors(since)
            avg_response = await self._session.scalar(
                select(func.avg(PerformanceLog.response_time_ms)).where(
                    PerformanceLog.created_at >= since
                )
            )
        except SQLAlchemyError:
            logger.exception("Health check failed")
            return HealthSnapshot(
                database="unhealthy",
                error_count=-1,
                avg_response_time=-1,
                timestamp=now,
            )

        return HealthSnapshot(
            database="healthy",
            error_count=error_count,
            avg_response_time=round_half_up(float(avg_response or 0)),
            timestamp=now,
        )

    async def detailed(self) -> DetailedHealthSnapshot:
        """Aggregate latency, active users, error levels and recent request samples.

        The database is reported unhealthy once the alert window holds
        ``UNHEALTHY_ERROR_THRESHOLD`` or more error/critical rows.
        """
        now = self._now_factory()
        try:
            error_count = await self._alerting_errors(now - self._window)

            latency = (
                await self._session.execute(
                    select(
                        func.avg(PerformanceLog.response_time_ms),
                        func.max(PerformanceLog.response_time_ms),
                        func.count(PerformanceLog.id),
                    ).where(PerformanceLog.created_at >= now - LATENCY_WINDOW)
                )
            ).one()

            active_users = await self._session.scalar(
                select(func.count(func.distinct(UserSession.user_id))).where(
                    UserSession.last_activity >= now - ACTIVE_USER_WINDOW,
                    UserSession.is_active.is_(True),
                )
            )

            level_rows = await self._session.execute(
                select(SystemErrorLog.error_level, func.count(SystemErrorLog.id))
                .where(SystemErrorLog.created_at >= now - ERROR_BREAKDOWN_WINDOW)
                .group_by(SystemErrorLog.error_level)
            )

            samples = await self._session.scalars(
                select(PerformanceLog)
                .where(PerformanceLog.created_at >= now - self._window)
                .order_by(PerformanceLog.created_at.desc(), PerformanceLog.id.desc())
                .limit(RECENT_SAMPLE_LIMIT)
            )
        except SQLAlchemyError:
            logger.exception("Error fetching system health")
            return DetailedHealthSnapshot(
                database="unhealthy",
                average_response_time=-1,
                max_response_time=-1,
                request_count=0,
                active_users=0,
                timestamp=now,
                available=False,
            )

        avg_response, max_response, request_count = latency
        return DetailedHealthSnapshot(
            database="healthy" if error_count < UNHEALTHY_ERROR_THRESHOLD else "unhealthy",
            average_response_time=round_half_up(float(avg_response or 0)),
            max_response_time=int(max_response or 0),
            request_count=int(request_count or 0),
            active_users=int(active_users or 0),
            error_counts={level: int(count) for level, count in level_rows.all()},
            performance_metrics=[
                PerformanceSample(
                    log_id=sample.id,
                    endpoint=sample.endpoint,
                    method=sample.method,
                    response_time_ms=sample.response_time_ms,
                    status_code=sample.status_code,
                    created_at=sample.created_at,
                )
                for sample in samples.all()
            ],
            timestamp=now,
        )

    async def _alerting_errors(self, since: datetime) -> int:
        count = await self._session.scalar(
            select(func.count(SystemErrorLog.id)).where(
                SystemErrorLog.created_at >= since,
                SystemErrorLog.error_level.in_(ALERTING_ERROR_LEVELS),
            )
        )
        return int(count or 0)
