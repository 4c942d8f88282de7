from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.models import PerformanceLog, SystemErrorLog, UserAnalyticsEvent
from solo_leveling.services.settings import SettingsService


logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD_MS = 500


class TelemetryService:
    """Persist request timings, server errors and analytics events.

    Performance and analytics capture are switched on through the
    ``performance_monitoring_enabled`` and ``user_analytics_enabled`` settings.
    """

    def __init__(self, session: AsyncSession, settings_service: SettingsService | None = None):
        self._session = session
        self._settings = settings_service or SettingsService(session)

    async def record_request(
        self,
        *,
        endpoint: str,
        method: str,
        response_time_ms: int,
        status_code: int,
        user_id: int | None = None,
    ) -> bool:
        """Store a timing sample; flags slow requests as ``warn`` errors."""
        flags = await self._settings.get_multiple_settings(
            ["performance_monitoring_enabled", "performance_alert_threshold"]
        )
        if flags.get("performance_monitoring_enabled") is not True:
            return False

        threshold = self._coerce_threshold(flags.get("performance_alert_threshold"))
        try:
            self._session.add(
                PerformanceLog(
                    endpoint=endpoint,
                    method=method,
                    response_time_ms=response_time_ms,
                    status_code=status_code,
                    user_id=user_id,
                )
            )
            if response_time_ms > threshold:
                self._session.add(
                    SystemErrorLog(
                        error_level="warn",
                        error_message=(
                            f"Slow response detected: {response_time_ms}ms for {method} {endpoint}"
                        ),
                        endpoint=endpoint,
                        method=method,
                        user_id=user_id,
                    )
                )
            await self._session.flush()
        except SQLAlchemyError:
            logger.exception("Performance monitoring error for %s %s", method, endpoint)
            await self._session.rollback()
            return False
        return True

    async def record_error(
        self,
        message: str,
        *,
        level: str = "error",
        endpoint: str | None = None,
        method: str | None = None,
        user_id: int | None = None,
    ) -> bool:
        try:
            self._session.add(
                SystemErrorLog(
                    error_level=level,
                    error_message=message or "Unknown error",
                    endpoint=endpoint,
                    method=method,
                    user_id=user_id,
                )
            )
            await self._session.flush()
        except SQLAlchemyError:
            logger.exception("Failed to log system error")
            await self._session.rollback()
            return False
        return True

    async def record_analytics_event(
        self,
        event_type: str,
        *,
        user_id: int | None = None,
        session_id: str | None = None,
        event_data: dict[str, Any] | None = None,
        page_url: str | None = None,
    ) -> bool:
        """Store an analytics event when ``user_analytics_enabled`` is on."""
        if await self._settings.get_setting("user_analytics_enabled", False) is not True:
            return False
        try:
            self._session.add(
                UserAnalyticsEvent(
                    user_id=user_id,
                    session_id=session_id,
                    event_type=event_type,
                    event_data=event_data or {},
                    page_url=page_url,
                )
            )
            await self._session.flush()
        except SQLAlchemyError:
            logger.exception("Failed to log user analytics")
            await self._session.rollback()
            return False
        return True

    def _coerce_threshold(self, value: Any) -> float:
        if isinstance(value, (int, float)) and not math.isnan(value):
            return float(value)
        return float(DEFAULT_ALERT_THRESHOLD_MS)
