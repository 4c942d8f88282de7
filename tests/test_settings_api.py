from __future__ import annotations

import math
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi.testclient import TestClient

from solo_leveling.api.deps import (
    get_admin_action_recorder,
    get_health_check_service,
    get_settings_service,
)
from solo_leveling.core.app import create_app
from solo_leveling.schemas.admin import PerformanceSample
from solo_leveling.schemas.settings import (
    SettingEntry,
    SettingRecord,
    SettingUpdateError,
    UpdatedSetting,
)
from solo_leveling.services.health import DetailedHealthSnapshot, HealthSnapshot
from solo_leveling.services.setting_values import SettingType
from solo_leveling.services.settings import BulkUpdateResult, ImportResult


class StubSettingsService:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {"data_retention_days": 90.0, "broken_ratio": math.nan}
        self.bulk_result = BulkUpdateResult()
        self.bulk_calls: list[dict[str, Any]] = []
        self.reset_calls: list[tuple[str | None, int | None]] = []
        self.import_calls: list[dict[str, Any]] = []

    async def list_grouped(self):
        return {
            "data": {
                "data_retention_days": SettingEntry(value=90.0, type=SettingType.NUMBER, description="Retention"),
            },
            "monitoring": {
                "performance_monitoring_enabled": SettingEntry(value=True, type=SettingType.BOOLEAN),
            },
        }

    async def bulk_update(self, settings, *, updated_by=None):
        self.bulk_calls.append({"settings": settings, "updated_by": updated_by})
        return self.bulk_result

    async def reset_to_defaults(self, category=None, *, updated_by=None):
        self.reset_calls.append((category, updated_by))
        return 3

    async def export_settings(self):
        return [SettingRecord(setting_key="site_name", setting_value="Solo Leveling")]

    async def import_settings(self, rows, *, overwrite=False, updated_by=None):
        self.import_calls.append({"rows": list(rows), "overwrite": overwrite, "updated_by": updated_by})
        return ImportResult(imported=1, skipped=1)

    async def get_multiple_settings(self, keys):
        return {key: self.values[key] for key in keys if key in self.values}


class StubHealthService:
    def __init__(self, available: bool = True) -> None:
        self.available = available

    async def check(self) -> HealthSnapshot:
        return HealthSnapshot(
            database="healthy",
            error_count=2,
            avg_response_time=120,
            timestamp=datetime(2026, 5, 1, tzinfo=timezone.utc),
        )

    async def detailed(self) -> DetailedHealthSnapshot:
        stamp = datetime(2026, 5, 1, tzinfo=timezone.utc)
        if not self.available:
            return DetailedHealthSnapshot(
                database="unhealthy",
                average_response_time=-1,
                max_response_time=-1,
                request_count=0,
                active_users=0,
                timestamp=stamp,
                available=False,
            )
        return DetailedHealthSnapshot(
            database="healthy",
            average_response_time=101,
            max_response_time=240,
            request_count=2,
            active_users=3,
            error_counts={"error": 1, "warn": 4},
            performance_metrics=[
                PerformanceSample(
                    log_id=8,
                    endpoint="/api/quests",
                    method="GET",
                    response_time_ms=240,
                    status_code=200,
                    created_at=stamp,
                )
            ],
            timestamp=stamp,
        )


@contextmanager
def client_with_service(service: StubSettingsService, health: StubHealthService | None = None):
    app = create_app()
    recorded: list[dict[str, Any]] = []

    async def override_service():
        return service

    async def override_health():
        return health or StubHealthService()

    async def override_recorder():
        async def record(**fields: Any) -> None:
            recorded.append(fields)

        return record

    app.dependency_overrides[get_settings_service] = override_service
    app.dependency_overrides[get_health_check_service] = override_health
    app.dependency_overrides[get_admin_action_recorder] = override_recorder
    try:
        with TestClient(app) as client:
            yield client, recorded
    finally:
        app.dependency_overrides.clear()


ADMIN_HEADERS = {"X-Admin-User-Id": "5", "User-Agent": "admin-panel/1.0"}


def test_list_settings_groups_by_category_and_audits() -> None:
    service = StubSettingsService()

    with client_with_service(service) as (client, recorded):
        response = client.get("/api/admin/settings", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["categories"] == ["data", "monitoring"]
    assert payload["settings"]["data"]["data_retention_days"]["value"] == 90
    assert payload["settings"]["data"]["data_retention_days"]["type"] == "number"
    assert recorded[0]["action_type"] == "view_system_settings"
    assert recorded[0]["admin_user_id"] == 5
    assert recorded[0]["user_agent"] == "admin-panel/1.0"


def test_bulk_update_success_returns_200() -> None:
    service = StubSettingsService()
    service.bulk_result = BulkUpdateResult(
        updated=[UpdatedSetting(category="data", key="data_retention_days", value=30, type=SettingType.NUMBER)]
    )
    body = {"settings": {"data": {"data_retention_days": {"value": 30, "type": "number"}}}}

    with client_with_service(service) as (client, recorded):
        response = client.put("/api/admin/settings", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Successfully updated 1 settings"
    assert payload["updated_settings"][0]["key"] == "data_retention_days"
    assert service.bulk_calls[0]["updated_by"] == 5
    update = service.bulk_calls[0]["settings"]["data"]["data_retention_days"]
    assert update.type is SettingType.NUMBER
    assert recorded[0]["action_type"] == "update_system_settings"
    assert recorded[0]["details"]["body"] == {
        "settings": {"data": {"data_retention_days": {"value": 30, "type": "number"}}}
    }


def test_bulk_update_partial_success_returns_207() -> None:
    service = StubSettingsService()
    service.bulk_result = BulkUpdateResult(
        updated=[UpdatedSetting(category="data", key="data_retention_days", value=30, type=SettingType.NUMBER)],
        errors=[SettingUpdateError(category="data", key="ghost", error="Setting not found or no changes made")],
    )
    body = {
        "settings": {
            "data": {
                "data_retention_days": {"value": 30, "type": "number"},
                "ghost": {"value": "x"},
            }
        }
    }

    with client_with_service(service) as (client, _recorded):
        response = client.put("/api/admin/settings", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 207
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Partially updated 1 settings with 1 errors"
    assert payload["errors"][0]["key"] == "ghost"


def test_bulk_update_with_no_matches_returns_400_without_audit() -> None:
    service = StubSettingsService()
    service.bulk_result = BulkUpdateResult(
        errors=[SettingUpdateError(category="data", key="ghost", error="Setting not found or no changes made")]
    )

    with client_with_service(service) as (client, recorded):
        response = client.put(
            "/api/admin/settings",
            json={"settings": {"data": {"ghost": {"value": "x"}}}},
            headers=ADMIN_HEADERS,
        )

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert recorded == []


def test_bulk_update_rejects_malformed_payload() -> None:
    with client_with_service(StubSettingsService()) as (client, _recorded):
        response = client.put("/api/admin/settings", json={"settings": ["not", "a", "map"]})

    assert response.status_code == 422


def test_reset_with_and_without_category() -> None:
    service = StubSettingsService()

    with client_with_service(service) as (client, recorded):
        scoped = client.post("/api/admin/settings/reset", json={"category": "data"}, headers=ADMIN_HEADERS)
        everything = client.post("/api/admin/settings/reset")

    assert scoped.status_code == 200
    assert scoped.json() == {
        "success": True,
        "message": "Reset 3 settings to default values",
        "affected_rows": 3,
        "category": "data",
    }
    assert everything.json()["category"] == "all"
    assert service.reset_calls == [("data", 5), (None, None)]
    assert [entry["action_type"] for entry in recorded] == ["reset_system_settings"] * 2


def test_export_sets_attachment_header() -> None:
    with client_with_service(StubSettingsService()) as (client, recorded):
        response = client.get("/api/admin/settings/export", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith('attachment; filename="system_settings_')
    payload = response.json()
    assert payload["exported_by"] == 5
    assert payload["settings"][0]["setting_key"] == "site_name"
    assert recorded[0]["action_type"] == "export_system_settings"


def test_import_reports_counts() -> None:
    service = StubSettingsService()
    body = {
        "overwrite": True,
        "settings": [
            {"setting_key": "site_name", "setting_value": "Arise"},
            {"setting_key": "max_party_size", "setting_value": "4", "setting_type": "number"},
        ],
    }

    with client_with_service(service) as (client, _recorded):
        response = client.post("/api/admin/settings/import", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["message"] == "Import completed: 1 imported, 1 skipped"
    assert service.import_calls[0]["overwrite"] is True
    assert len(service.import_calls[0]["rows"]) == 2


def test_system_health_snapshot() -> None:
    with client_with_service(StubSettingsService()) as (client, _recorded):
        response = client.get("/api/admin/settings/system-health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["database"] == "healthy"
    assert payload["error_count"] == 2
    assert payload["avg_response_time"] == 120


def test_single_setting_value_lookup() -> None:
    with client_with_service(StubSettingsService()) as (client, _recorded):
        found = client.get("/api/admin/settings/data_retention_days/value")
        missing = client.get("/api/admin/settings/unknown/value")
        not_a_number = client.get("/api/admin/settings/broken_ratio/value")

    assert found.status_code == 200
    assert found.json() == {"key": "data_retention_days", "value": 90.0}
    assert missing.status_code == 404
    assert not_a_number.json()["value"] is None


def test_detailed_health_reports_activity() -> None:
    with client_with_service(StubSettingsService()) as (client, _recorded):
        response = client.get("/api/admin/settings/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    health = payload["health"]
    assert health["average_response_time"] == 101
    assert health["active_users"] == 3
    assert health["error_counts"] == {"error": 1, "warn": 4}
    assert health["performance_metrics"][0]["log_id"] == 8
    assert "error" not in payload


def test_detailed_health_failure_returns_500() -> None:
    with client_with_service(StubSettingsService(), StubHealthService(available=False)) as (client, _recorded):
        response = client.get("/api/admin/settings/health")

    assert response.status_code == 500
    payload = response.json()
    assert payload["success"] is False
    assert payload["error"] == "Failed to fetch system health"
    assert payload["health"]["database"] == "unhealthy"
    assert payload["health"]["performance_metrics"] == []
