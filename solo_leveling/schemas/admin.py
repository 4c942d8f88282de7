from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class AdminLogItem(BaseModel):
    log_id: int
    admin_user_id: int | None = None
    admin_username: str = "Unknown"
    action_type: str
    target_type: str | None = None
    target_id: int | None = None
    action_details: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class AdminLogListResponse(BaseModel):
    logs: list[AdminLogItem]
    pagination: Pagination


class SystemHealthResponse(BaseModel):
    database: Literal["healthy", "unhealthy"]
    error_count: int
    avg_response_time: int
    timestamp: datetime


class UploadResponse(BaseModel):
    message: str
    url: str


class PerformanceSample(BaseModel):
    log_id: int
    endpoint: str
    method: str
    response_time_ms: int
    status_code: int
    created_at: datetime


class DetailedHealth(BaseModel):
    database: Literal["healthy", "unhealthy"]
    average_response_time: int
    max_response_time: int
    request_count: int
    active_users: int
    error_counts: dict[str, int]
    performance_metrics: list[PerformanceSample]
    timestamp: datetime


class DetailedHealthResponse(BaseModel):
    success: bool
    health: DetailedHealth
    error: str | None = None
