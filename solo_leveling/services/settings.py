from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.models import SystemSetting
from solo_leveling.models.base import utcnow
from solo_leveling.schemas.settings import (
    SettingEntry,
    SettingRecord,
    SettingUpdate,
    SettingUpdateError,
    UpdatedSetting,
)
from solo_leveling.services.setting_values import (
    SettingDecodeError,
    SettingType,
    decode_setting,
    encode_setting,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BulkUpdateResult:
    updated: list[UpdatedSetting] = field(default_factory=list)
    errors: list[SettingUpdateError] = field(default_factory=list)


@dataclass(slots=True)
class ImportResult:
    imported: int = 0
    skipped: int = 0


class SettingsService:
    """Read and write typed system settings.

    Reads never raise: a missing key, an unreachable database or a malformed
    JSON value all resolve to the caller's default.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for ``key`` or ``default`` when unavailable."""
        try:
            record = await self._fetch(key)
        except SQLAlchemyError:
            logger.exception("Error getting setting %s", key)
            return default

        if record is None:
            return default

        try:
            return decode_setting(record.setting_value, record.setting_type).value
        except SettingDecodeError:
            logger.warning("Setting %s holds malformed JSON; using default.", key)
            return default

    async def set_setting(
        self,
        key: str,
        value: Any,
        setting_type: SettingType | str = SettingType.STRING,
        description: str = "",
        *,
        category: str = "general",
        updated_by: int | None = None,
    ) -> bool:
        """Upsert ``key`` with ``value`` serialized for ``setting_type``.

        Returns ``False`` instead of raising when the write fails.
        """
        kind = SettingType.parse(setting_type)
        try:
            serialized = encode_setting(value, kind)
        except (TypeError, ValueError):
            logger.exception("Error setting %s: value is not serializable as %s", key, kind.value)
            return False

        try:
            record = await self._fetch(key)
            if record is None:
                record = SystemSetting(
                    setting_key=key,
                    setting_value=serialized,
                    setting_type=kind.value,
                    category=category,
                    description=description or None,
                    updated_by=updated_by,
                )
                self._session.add(record)
            else:
                record.setting_value = serialized
                record.setting_type = kind.value
                record.updated_by = updated_by
                record.updated_at = utcnow()
                if description:
                    record.description = description
            await self._session.flush()
        except SQLAlchemyError:
            logger.exception("Error setting %s", key)
            await self._session.rollback()
            return False
        return True

    async def get_multiple_settings(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return decoded values for the keys that exist; absent keys are omitted."""
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}

        try:
            result = await self._session.execute(
                select(SystemSetting).where(SystemSetting.setting_key.in_(wanted))
            )
        except SQLAlchemyError:
            logger.exception("Error getting multiple settings")
            return {}

        return {
            record.setting_key: self._decode_or_raw(record)
            for record in result.scalars().all()
        }

    async def list_grouped(self) -> dict[str, dict[str, SettingEntry]]:
        """Return every setting grouped by category, ordered by category then key."""
        result = await self._session.execute(
            select(SystemSetting).order_by(SystemSetting.category, SystemSetting.setting_key)
        )
        grouped: dict[str, dict[str, SettingEntry]] = {}
        for record in result.scalars().all():
            grouped.setdefault(record.category, {})[record.setting_key] = SettingEntry(
                value=self._decode_or_raw(record),
                type=SettingType.parse(record.setting_type),
                description=record.description,
                is_encrypted=record.is_encrypted,
                updated_at=record.updated_at,
                updated_by=record.updated_by,
            )
        return grouped

    async def bulk_update(
        self,
        settings_by_category: Mapping[str, Mapping[str, SettingUpdate]],
        *,
        updated_by: int | None = None,
    ) -> BulkUpdateResult:
        """Update existing settings addressed by (category, key).

        Unknown settings are reported as errors rather than created.
        """
        outcome = BulkUpdateResult()
        for category, entries in settings_by_category.items():
            for key, entry in entries.items():
                try:
                    serialized = encode_setting(entry.value, entry.type)
                except (TypeError, ValueError) as exc:
                    outcome.errors.append(SettingUpdateError(category=category, key=key, error=str(exc)))
                    continue

                result = await self._session.execute(
                    update(SystemSetting)
                    .where(
                        SystemSetting.setting_key == key,
                        SystemSetting.category == category,
                    )
                    .values(
                        setting_value=serialized,
                        updated_at=utcnow(),
                        updated_by=updated_by,
                    )
                )
                if result.rowcount:
                    outcome.updated.append(
                        UpdatedSetting(category=category, key=key, value=entry.value, type=entry.type)
                    )
                else:
                    outcome.errors.append(
                        SettingUpdateError(
                            category=category,
                            key=key,
                            error="Setting not found or no changes made",
                        )
                    )

        if outcome.updated:
            await self._session.flush()
        else:
            await self._session.rollback()
        return outcome

    async def reset_to_defaults(
        self,
        category: str | None = None,
        *,
        updated_by: int | None = None,
    ) -> int:
        """Restore ``default_value`` for settings that declare one."""
        stmt = (
            update(SystemSetting)
            .where(SystemSetting.default_value.is_not(None))
            .values(
                setting_value=SystemSetting.default_value,
                updated_at=utcnow(),
                updated_by=updated_by,
            )
        )
        if category:
            stmt = stmt.where(SystemSetting.category == category)
        result = await self._session.execute(stmt)
        await self._session.flush()
        return int(result.rowcount or 0)

    async def export_settings(self) -> list[SettingRecord]:
        result = await self._session.execute(
            select(SystemSetting).order_by(SystemSetting.category, SystemSetting.setting_key)
        )
        return [SettingRecord.model_validate(record) for record in result.scalars().all()]

    async def import_settings(
        self,
        rows: Iterable[SettingRecord],
        *,
        overwrite: bool = False,
        updated_by: int | None = None,
    ) -> ImportResult:
        """Insert new settings and, with ``overwrite``, replace existing values."""
        outcome = ImportResult()
        for row in rows:
            existing = await self._fetch(row.setting_key)
            if existing is not None and not overwrite:
                outcome.skipped += 1
                continue

            if existing is None:
                self._session.add(
                    SystemSetting(
                        setting_key=row.setting_key,
                        setting_value=row.setting_value,
                        setting_type=row.setting_type.value,
                        category=row.category,
                        description=row.description,
                        default_value=row.default_value,
                        is_encrypted=row.is_encrypted,
                        updated_by=updated_by,
                    )
                )
            else:
                existing.setting_value = row.setting_value
                existing.updated_at = utcnow()
                existing.updated_by = updated_by
            outcome.imported += 1

        await self._session.flush()
        return outcome

    async def _fetch(self, key: str) -> SystemSetting | None:
        result = await self._session.execute(
            select(SystemSetting).where(SystemSetting.setting_key == key)
        )
        return result.scalar_one_or_none()

    def _decode_or_raw(self, record: SystemSetting) -> Any:
        try:
            return decode_setting(record.setting_value, record.setting_type).value
        except SettingDecodeError:
            return record.setting_value
