from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FeatureFlagItem(BaseModel):
    """Feature flag representation exposed via API."""

    flag_id: int
    flag_key: str
    flag_name: str
    description: str | None = None
    is_enabled: bool
    rollout_percentage: int
    target_user_types: list[str] | None = None
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FeatureFlagCreate(BaseModel):
    """Payload used to create a feature flag."""

    flag_key: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.\-]+$")
    flag_name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    is_enabled: bool = False
    rollout_percentage: int = Field(default=0, ge=0, le=100)
    target_user_types: list[str] | None = None


class FeatureFlagUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    flag_name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    is_enabled: bool | None = None
    rollout_percentage: int | None = Field(default=None, ge=0, le=100)
    target_user_types: list[str] | None = None


class FeatureFlagEvaluationRequest(BaseModel):
    """Request payload for evaluating whether a flag is active."""

    user_id: int | str | None = Field(
        default=None,
        description="Stable identifier used for sticky percentage rollouts.",
    )
    user_type: str | None = Field(default=None, max_length=16)


class FeatureFlagEvaluationResponse(BaseModel):
    key: str
    enabled: bool
    reason: str | None = None
    bucket: float | None = None
