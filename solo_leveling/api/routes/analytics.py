from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from solo_leveling.api.deps import get_telemetry_service
from solo_leveling.services.telemetry import TelemetryService


router = APIRouter()


class AnalyticsEventCreate(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=64)
    user_id: int | None = None
    session_id: str | None = Field(default=None, max_length=128)
    event_data: dict[str, Any] = Field(default_factory=dict)
    page_url: str | None = Field(default=None, max_length=512)


class AnalyticsEventAck(BaseModel):
    recorded: bool


@router.post(
    "/events",
    response_model=AnalyticsEventAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a product analytics event when analytics capture is enabled.",
)
async def record_event(
    payload: AnalyticsEventCreate,
    service: TelemetryService = Depends(get_telemetry_service),
) -> AnalyticsEventAck:
    recorded = await service.record_analytics_event(
        payload.event_type,
        user_id=payload.user_id,
        session_id=payload.session_id,
        event_data=payload.event_data,
        page_url=payload.page_url,
    )
    return AnalyticsEventAck(recorded=recorded)
