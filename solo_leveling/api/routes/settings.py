from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from solo_leveling.api.deps import (
    AdminActionRecorder,
    audit_fields,
    get_admin_action_recorder,
    get_admin_user_id,
    get_health_check_service,
    get_settings_service,
)
from solo_leveling.schemas.admin import DetailedHealth, DetailedHealthResponse, SystemHealthResponse
from solo_leveling.schemas.settings import (
    BulkSettingsUpdate,
    BulkSettingsUpdateResponse,
    GroupedSettingsResponse,
    SettingsExport,
    SettingsImportRequest,
    SettingsImportResponse,
    SettingsResetRequest,
    SettingsResetResponse,
    SettingValueResponse,
)
from solo_leveling.services.health import HealthCheckService
from solo_leveling.services.settings import SettingsService


router = APIRouter()


@router.get(
    "",
    response_model=GroupedSettingsResponse,
    summary="List all system settings grouped by category.",
)
async def list_settings(
    request: Request,
    background_tasks: BackgroundTasks,
    service: SettingsService = Depends(get_settings_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> GroupedSettingsResponse:
    grouped = await service.list_grouped()
    background_tasks.add_task(
        record_action,
        **audit_fields(request, "view_system_settings", admin_user_id=admin_user_id),
    )
    return GroupedSettingsResponse(settings=grouped, categories=list(grouped))


@router.put(
    "",
    response_model=BulkSettingsUpdateResponse,
    summary="Update existing settings; 207 on partial success.",
)
async def update_settings(
    payload: BulkSettingsUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    service: SettingsService = Depends(get_settings_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> JSONResponse:
    outcome = await service.bulk_update(payload.settings, updated_by=admin_user_id)

    if not outcome.updated:
        body = BulkSettingsUpdateResponse(
            success=False,
            message="No settings were updated",
            errors=outcome.errors,
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))

    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "update_system_settings",
            admin_user_id=admin_user_id,
            body=payload.model_dump(mode="json"),
        ),
    )
    if outcome.errors:
        body = BulkSettingsUpdateResponse(
            success=True,
            message=(
                f"Partially updated {len(outcome.updated)} settings with {len(outcome.errors)} errors"
            ),
            updated_settings=outcome.updated,
            errors=outcome.errors,
        )
        return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=body.model_dump(mode="json"))

    body = BulkSettingsUpdateResponse(
        success=True,
        message=f"Successfully updated {len(outcome.updated)} settings",
        updated_settings=outcome.updated,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))


@router.post(
    "/reset",
    response_model=SettingsResetResponse,
    summary="Restore settings to their default values.",
)
async def reset_settings(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: SettingsResetRequest | None = None,
    service: SettingsService = Depends(get_settings_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> SettingsResetResponse:
    category = payload.category if payload else None
    affected = await service.reset_to_defaults(category, updated_by=admin_user_id)
    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "reset_system_settings",
            admin_user_id=admin_user_id,
            body={"category": category},
        ),
    )
    return SettingsResetResponse(
        message=f"Reset {affected} settings to default values",
        affected_rows=affected,
        category=category or "all",
    )


@router.get(
    "/export",
    response_model=SettingsExport,
    summary="Download every setting as a JSON document.",
)
async def export_settings(
    request: Request,
    background_tasks: BackgroundTasks,
    service: SettingsService = Depends(get_settings_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> JSONResponse:
    exported_at = datetime.now(timezone.utc)
    document = SettingsExport(
        exported_at=exported_at,
        exported_by=admin_user_id,
        settings=await service.export_settings(),
    )
    background_tasks.add_task(
        record_action,
        **audit_fields(request, "export_system_settings", admin_user_id=admin_user_id),
    )
    filename = f"system_settings_{int(exported_at.timestamp() * 1000)}.json"
    return JSONResponse(
        content=document.model_dump(mode="json"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/import",
    response_model=SettingsImportResponse,
    summary="Import settings exported from another environment.",
)
async def import_settings(
    payload: SettingsImportRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: SettingsService = Depends(get_settings_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> SettingsImportResponse:
    outcome = await service.import_settings(
        payload.settings,
        overwrite=payload.overwrite,
        updated_by=admin_user_id,
    )
    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "import_system_settings",
            admin_user_id=admin_user_id,
            body={"overwrite": payload.overwrite, "count": len(payload.settings)},
        ),
    )
    return SettingsImportResponse(
        message=f"Import completed: {outcome.imported} imported, {outcome.skipped} skipped",
        imported=outcome.imported,
        skipped=outcome.skipped,
    )


@router.get(
    "/system-health",
    response_model=SystemHealthResponse,
    summary="Database, error-rate and latency snapshot for the last hour.",
)
async def system_health(
    service: HealthCheckService = Depends(get_health_check_service),
) -> SystemHealthResponse:
    snapshot = await service.check()
    return SystemHealthResponse(
        database=snapshot.database,
        error_count=snapshot.error_count,
        avg_response_time=snapshot.avg_response_time,
        timestamp=snapshot.timestamp,
    )


@router.get(
    "/health",
    response_model=DetailedHealthResponse,
    summary="Latency, active users, error levels and the latest request samples.",
)
async def detailed_health(
    service: HealthCheckService = Depends(get_health_check_service),
) -> JSONResponse:
    snapshot = await service.detailed()
    body = DetailedHealthResponse(
        success=snapshot.available,
        error=None if snapshot.available else "Failed to fetch system health",
        health=DetailedHealth(
            database=snapshot.database,
            average_response_time=snapshot.average_response_time,
            max_response_time=snapshot.max_response_time,
            request_count=snapshot.request_count,
            active_users=snapshot.active_users,
            error_counts=snapshot.error_counts,
            performance_metrics=snapshot.performance_metrics,
            timestamp=snapshot.timestamp,
        ),
    )
    status_code = status.HTTP_200_OK if snapshot.available else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@router.get(
    "/{key}/value",
    response_model=SettingValueResponse,
    summary="Fetch a single decoded setting value.",
)
async def get_setting_value(
    key: str,
    service: SettingsService = Depends(get_settings_service),
) -> SettingValueResponse:
    values = await service.get_multiple_settings([key])
    if key not in values:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Setting '{key}' not found.",
        )
    return SettingValueResponse(key=key, value=values[key])
