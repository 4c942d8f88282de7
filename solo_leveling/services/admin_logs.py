from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.models import AdminActionLog, User
from solo_leveling.schemas.admin import AdminLogItem, AdminLogListResponse, Pagination


logger = logging.getLogger(__name__)

SENSITIVE_DETAIL_KEYS = frozenset({"password", "password_hash", "token"})


class AdminActionLogService:
    """Record and page through the administrative audit trail."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def record_action(
        self,
        *,
        admin_user_id: int | None,
        action_type: str,
        target_type: str | None = None,
        target_id: int | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Persist an audit entry; returns ``False`` instead of raising on failure."""
        entry = AdminActionLog(
            admin_user_id=admin_user_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            action_details=self._sanitize(details),
            ip_address=ip_address,
            user_agent=user_agent or "Unknown",
        )
        try:
            self._session.add(entry)
            await self._session.flush()
        except SQLAlchemyError:
            logger.exception("Failed to log admin action %s", action_type)
            await self._session.rollback()
            return False
        return True

    async def list_logs(self, *, page: int = 1, limit: int = 20) -> AdminLogListResponse:
        """Return one page of audit entries, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)

        result = await self._session.execute(
            select(AdminActionLog)
            .order_by(AdminActionLog.created_at.desc(), AdminActionLog.log_id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        records = result.scalars().all()
        total = await self._session.scalar(select(func.count(AdminActionLog.log_id)))

        admin_ids = {record.admin_user_id for record in records if record.admin_user_id is not None}
        usernames: dict[int, str] = {}
        if admin_ids:
            rows = await self._session.execute(
                select(User.user_id, User.username).where(User.user_id.in_(admin_ids))
            )
            usernames = {user_id: username for user_id, username in rows.all()}

        items = []
        for record in records:
            item = AdminLogItem.model_validate(record)
            item.admin_username = usernames.get(record.admin_user_id, "Unknown")
            items.append(item)

        total = int(total or 0)
        return AdminLogListResponse(
            logs=items,
            pagination=Pagination(
                total=total,
                page=page,
                limit=limit,
                pages=math.ceil(total / limit),
            ),
        )

    def _sanitize(self, details: dict[str, Any] | None) -> dict[str, Any] | None:
        if not details:
            return details
        sanitized = dict(details)
        body = sanitized.get("body")
        if isinstance(body, dict):
            sanitized["body"] = {
                key: value for key, value in body.items() if key not in SENSITIVE_DETAIL_KEYS
            }
        for key in SENSITIVE_DETAIL_KEYS:
            sanitized.pop(key, None)
        return sanitized


async def record_admin_action(
    session_factory: Callable[[], AsyncSession],
    **fields: Any,
) -> None:
    """Write an audit entry in its own session once the response has been sent."""
    try:
        async with session_factory() as session:
            service = AdminActionLogService(session)
            if await service.record_action(**fields):
                await session.commit()
    except (SQLAlchemyError, RuntimeError):
        logger.exception("Failed to log admin action %s", fields.get("action_type"))
