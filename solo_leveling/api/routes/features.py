from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from solo_leveling.api.deps import (
    AdminActionRecorder,
    audit_fields,
    get_admin_action_recorder,
    get_admin_user_id,
    get_feature_flag_service,
)
from solo_leveling.schemas.features import (
    FeatureFlagCreate,
    FeatureFlagEvaluationRequest,
    FeatureFlagEvaluationResponse,
    FeatureFlagItem,
    FeatureFlagUpdate,
)
from solo_leveling.services.feature_flags import (
    FeatureFlagConflictError,
    FeatureFlagNotFoundError,
    FeatureFlagService,
)


router = APIRouter()
admin_router = APIRouter()


@router.post(
    "/{flag_key}/evaluate",
    response_model=FeatureFlagEvaluationResponse,
    summary="Evaluate whether a flag is enabled for a user.",
)
async def evaluate_feature_flag(
    flag_key: str,
    payload: FeatureFlagEvaluationRequest,
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> FeatureFlagEvaluationResponse:
    evaluation = await service.evaluate_flag(
        flag_key,
        user_id=payload.user_id,
        user_type=payload.user_type,
    )
    return FeatureFlagEvaluationResponse(
        key=evaluation.key,
        enabled=evaluation.enabled,
        reason=evaluation.reason,
        bucket=evaluation.bucket,
    )


@admin_router.get("", response_model=list[FeatureFlagItem], summary="List all feature flags.")
async def list_feature_flags(
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> list[FeatureFlagItem]:
    return await service.list_flags()


@admin_router.post(
    "",
    response_model=FeatureFlagItem,
    status_code=status.HTTP_201_CREATED,
    summary="Create a feature flag.",
)
async def create_feature_flag(
    payload: FeatureFlagCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    service: FeatureFlagService = Depends(get_feature_flag_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> FeatureFlagItem:
    try:
        flag = await service.create_flag(payload, created_by=admin_user_id)
    except FeatureFlagConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "create_feature_flag",
            admin_user_id=admin_user_id,
            target_type="feature_flag",
            target_id=flag.flag_id,
            body=payload.model_dump(mode="json"),
        ),
    )
    return flag


@admin_router.get("/{flag_id}", response_model=FeatureFlagItem, summary="Fetch one feature flag.")
async def get_feature_flag(
    flag_id: int,
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> FeatureFlagItem:
    try:
        return await service.get_flag_by_id(flag_id)
    except FeatureFlagNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@admin_router.put(
    "/{flag_id}",
    response_model=FeatureFlagItem,
    summary="Update a feature flag.",
)
async def update_feature_flag(
    flag_id: int,
    payload: FeatureFlagUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    service: FeatureFlagService = Depends(get_feature_flag_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> FeatureFlagItem:
    try:
        flag = await service.update_flag(flag_id, payload)
    except FeatureFlagNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "update_feature_flag",
            admin_user_id=admin_user_id,
            target_type="feature_flag",
            target_id=flag_id,
            body=payload.model_dump(mode="json", exclude_unset=True),
        ),
    )
    return flag


@admin_router.delete(
    "/{flag_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a feature flag.",
)
async def delete_feature_flag(
    flag_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    service: FeatureFlagService = Depends(get_feature_flag_service),
    admin_user_id: int | None = Depends(get_admin_user_id),
    record_action: AdminActionRecorder = Depends(get_admin_action_recorder),
) -> None:
    try:
        deleted = await service.delete_flag(flag_id)
    except FeatureFlagNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    background_tasks.add_task(
        record_action,
        **audit_fields(
            request,
            "delete_feature_flag",
            admin_user_id=admin_user_id,
            target_type="feature_flag",
            target_id=flag_id,
            body={"flag_key": deleted.flag_key},
        ),
    )
