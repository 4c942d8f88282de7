from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from solo_leveling.services.setting_values import SettingType


def _finite_or_none(value: Any) -> Any:
    # NaN and infinities are not representable in JSON.
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class SettingEntry(BaseModel):
    """Decoded setting as shown in the admin settings panel."""

    value: Any
    type: SettingType
    description: str | None = None
    is_encrypted: bool = False
    updated_at: datetime | None = None
    updated_by: int | None = None

    @field_serializer("value")
    def _serialize_value(self, value: Any) -> Any:
        return _finite_or_none(value)


class GroupedSettingsResponse(BaseModel):
    success: bool = True
    settings: dict[str, dict[str, SettingEntry]]
    categories: list[str]


class SettingValueResponse(BaseModel):
    key: str
    value: Any

    @field_serializer("value")
    def _serialize_value(self, value: Any) -> Any:
        return _finite_or_none(value)


class SettingUpdate(BaseModel):
    value: Any
    type: SettingType = SettingType.STRING


class BulkSettingsUpdate(BaseModel):
    """Settings keyed by category then by setting key."""

    settings: dict[str, dict[str, SettingUpdate]]


class UpdatedSetting(BaseModel):
    category: str
    key: str
    value: Any
    type: SettingType


class SettingUpdateError(BaseModel):
    category: str | None = None
    key: str
    error: str


class BulkSettingsUpdateResponse(BaseModel):
    success: bool
    message: str
    updated_settings: list[UpdatedSetting] = Field(default_factory=list)
    errors: list[SettingUpdateError] = Field(default_factory=list)


class SettingsResetRequest(BaseModel):
    category: str | None = None


class SettingsResetResponse(BaseModel):
    success: bool = True
    message: str
    affected_rows: int
    category: str


class SettingRecord(BaseModel):
    """Raw persisted setting row used for export and import."""

    setting_key: str = Field(..., min_length=1, max_length=100)
    setting_value: str
    setting_type: SettingType = SettingType.STRING
    category: str = "general"
    description: str | None = None
    default_value: str | None = None
    is_encrypted: bool = False

    model_config = ConfigDict(from_attributes=True)


class SettingsExport(BaseModel):
    exported_at: datetime
    exported_by: int | None = None
    settings: list[SettingRecord]


class SettingsImportRequest(BaseModel):
    settings: list[SettingRecord]
    overwrite: bool = False


class SettingsImportResponse(BaseModel):
    success: bool = True
    message: str
    imported: int
    skipped: int
