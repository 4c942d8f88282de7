from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from solo_leveling.api.deps import get_admin_log_service
from solo_leveling.schemas.admin import AdminLogListResponse
from solo_leveling.services.admin_logs import AdminActionLogService


router = APIRouter()


@router.get(
    "/logs",
    response_model=AdminLogListResponse,
    summary="Page through the admin action audit trail, newest first.",
)
async def list_admin_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: AdminActionLogService = Depends(get_admin_log_service),
) -> AdminLogListResponse:
    return await service.list_logs(page=page, limit=limit)
