from collections.abc import AsyncGenerator, Awaitable, Callable
from functools import partial
from typing import Any

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.core.config import get_settings
from solo_leveling.core.database import get_session_factory
from solo_leveling.services.admin_logs import AdminActionLogService, record_admin_action
from solo_leveling.services.feature_flags import FeatureFlagService
from solo_leveling.services.health import HealthCheckService
from solo_leveling.services.settings import SettingsService
from solo_leveling.services.telemetry import TelemetryService


AdminActionRecorder = Callable[..., Awaitable[None]]


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an AsyncSession."""
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_admin_user_id(
    x_admin_user_id: int | None = Header(default=None),
) -> int | None:
    """Admin identity forwarded by the authentication gateway."""
    return x_admin_user_id


async def get_settings_service(
    session: AsyncSession = Depends(get_db_session),
) -> SettingsService:
    """Provide SettingsService instance."""
    return SettingsService(session)


async def get_feature_flag_service(
    session: AsyncSession = Depends(get_db_session),
) -> FeatureFlagService:
    """Provide FeatureFlagService instance."""
    return FeatureFlagService(session, get_settings())


async def get_health_check_service(
    session: AsyncSession = Depends(get_db_session),
) -> HealthCheckService:
    """Provide HealthCheckService instance."""
    settings = get_settings()
    return HealthCheckService(session, window_minutes=settings.health_window_minutes)


async def get_admin_log_service(
    session: AsyncSession = Depends(get_db_session),
) -> AdminActionLogService:
    """Provide AdminActionLogService instance."""
    return AdminActionLogService(session)


async def get_telemetry_service(
    session: AsyncSession = Depends(get_db_session),
) -> TelemetryService:
    """Provide TelemetryService instance."""
    return TelemetryService(session)


def _new_session() -> AsyncSession:
    return get_session_factory()()


async def get_admin_action_recorder() -> AdminActionRecorder:
    """Provide a callable that writes audit entries in a dedicated session."""
    recorder: Callable[..., Any] = partial(record_admin_action, _new_session)
    return recorder


def audit_fields(
    request: Request,
    action_type: str,
    *,
    admin_user_id: int | None,
    target_type: str | None = "system_settings",
    target_id: int | None = None,
    body: Any = None,
) -> dict[str, Any]:
    """Collect the request context stored alongside an admin audit entry."""
    details: dict[str, Any] = {
        "method": request.method,
        "url": str(request.url.path),
        "query": dict(request.query_params),
    }
    if request.method != "GET" and body is not None:
        details["body"] = body
    return {
        "admin_user_id": admin_user_id,
        "action_type": action_type,
        "target_type": target_type,
        "target_id": target_id,
        "details": details,
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
