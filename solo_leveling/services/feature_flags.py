from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.core.config import AppSettings
from solo_leveling.models import FeatureFlag as FeatureFlagModel
from solo_leveling.schemas.features import (
    FeatureFlagCreate,
    FeatureFlagItem,
    FeatureFlagUpdate,
)


logger = logging.getLogger(__name__)

# Columns that reject NULL; an explicit null in a partial update leaves them unchanged.
NON_NULLABLE_FLAG_FIELDS = frozenset({"flag_name", "is_enabled", "rollout_percentage"})


class FeatureFlagNotFoundError(ValueError):
    """Raised when a flag lookup by key or id matches nothing."""


class FeatureFlagConflictError(ValueError):
    """Raised when creating a flag whose key already exists."""


@dataclass(slots=True)
class FeatureFlagEvaluation:
    key: str
    enabled: bool
    reason: str
    bucket: float | None = None


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def rollout_hash(identifier: Any) -> int:
    """Signed 32-bit rolling hash (acc * 31 + unit) over UTF-16 code units of ``str(identifier)``."""
    encoded = str(identifier).encode("utf-16-le", "surrogatepass")
    acc = 0
    for offset in range(0, len(encoded), 2):
        unit = int.from_bytes(encoded[offset : offset + 2], "little")
        acc = _to_int32(acc * 31 + unit)
    return acc


def rollout_bucket(identifier: Any) -> int:
    """Map an identifier onto a sticky bucket in [0, 100)."""
    return abs(rollout_hash(identifier)) % 100


class FeatureFlagService:
    """Manage feature flags and decide whether they apply to a given user."""

    def __init__(
        self,
        session: AsyncSession,
        settings: AppSettings,
        *,
        rng: random.Random | None = None,
    ):
        self._session = session
        self._anonymous_strategy = settings.anonymous_rollout_strategy
        self._rng = rng or random.Random()

    async def is_feature_enabled(
        self,
        flag_key: str,
        user_id: Any = None,
        user_type: str | None = None,
    ) -> bool:
        """Return whether ``flag_key`` is on for the user; storage errors read as off."""
        try:
            evaluation = await self.evaluate_flag(flag_key, user_id=user_id, user_type=user_type)
        except SQLAlchemyError:
            logger.exception("Feature flag check error for %s", flag_key)
            return False
        return evaluation.enabled

    async def evaluate_flag(
        self,
        flag_key: str,
        *,
        user_id: Any = None,
        user_type: str | None = None,
    ) -> FeatureFlagEvaluation:
        """Evaluate ``flag_key`` and explain the decision."""
        flag = await self._fetch_by_key(flag_key)
        if flag is None:
            return FeatureFlagEvaluation(flag_key, False, "Flag not found.")
        if not flag.is_enabled:
            return FeatureFlagEvaluation(flag_key, False, "Flag disabled.")

        rollout = flag.rollout_percentage
        bucket: float | None = None
        if rollout < 100:
            if user_id is not None and str(user_id) != "":
                bucket = rollout_bucket(user_id)
            elif self._anonymous_strategy == "exclude":
                return FeatureFlagEvaluation(
                    flag_key, False, "Anonymous callers are excluded from partial rollouts."
                )
            else:
                bucket = self._rng.random() * 100

            if bucket >= rollout:
                return FeatureFlagEvaluation(
                    flag_key,
                    False,
                    f"Bucket {bucket:g} outside rollout {rollout}%.",
                    bucket,
                )

        targets = self._normalize_targets(flag.target_user_types)
        if targets and user_type and user_type not in targets:
            return FeatureFlagEvaluation(
                flag_key,
                False,
                f"User type '{user_type}' not targeted.",
                bucket,
            )

        reason = "Enabled globally." if bucket is None else f"Bucket {bucket:g} within rollout {rollout}%."
        return FeatureFlagEvaluation(flag_key, True, reason, bucket)

    async def list_flags(self) -> list[FeatureFlagItem]:
        result = await self._session.execute(
            select(FeatureFlagModel).order_by(FeatureFlagModel.flag_key)
        )
        return [FeatureFlagItem.model_validate(record) for record in result.scalars().all()]

    async def get_flag(self, flag_key: str) -> FeatureFlagItem:
        record = await self._fetch_by_key(flag_key)
        if record is None:
            raise FeatureFlagNotFoundError(f"Feature flag '{flag_key}' not found.")
        return FeatureFlagItem.model_validate(record)

    async def get_flag_by_id(self, flag_id: int) -> FeatureFlagItem:
        return FeatureFlagItem.model_validate(await self._get_by_id(flag_id))

    async def create_flag(
        self,
        payload: FeatureFlagCreate,
        *,
        created_by: int | None = None,
    ) -> FeatureFlagItem:
        if await self._fetch_by_key(payload.flag_key) is not None:
            raise FeatureFlagConflictError(f"Feature flag '{payload.flag_key}' already exists.")

        record = FeatureFlagModel(
            flag_key=payload.flag_key,
            flag_name=payload.flag_name.strip(),
            description=payload.description,
            is_enabled=payload.is_enabled,
            rollout_percentage=payload.rollout_percentage,
            target_user_types=self._clean_targets(payload.target_user_types),
            created_by=created_by,
        )
        self._session.add(record)
        await self._session.flush()
        await self._session.refresh(record)
        logger.info("Created feature flag %s (rollout=%s%%)", record.flag_key, record.rollout_percentage)
        return FeatureFlagItem.model_validate(record)

    async def update_flag(self, flag_id: int, payload: FeatureFlagUpdate) -> FeatureFlagItem:
        record = await self._get_by_id(flag_id)
        changes = {
            name: value
            for name, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or name not in NON_NULLABLE_FLAG_FIELDS
        }
        if "target_user_types" in changes:
            changes["target_user_types"] = self._clean_targets(changes["target_user_types"])
        for field_name, value in changes.items():
            setattr(record, field_name, value)

        await self._session.flush()
        await self._session.refresh(record)
        return FeatureFlagItem.model_validate(record)

    async def delete_flag(self, flag_id: int) -> FeatureFlagItem:
        record = await self._get_by_id(flag_id)
        snapshot = FeatureFlagItem.model_validate(record)
        await self._session.delete(record)
        await self._session.flush()
        return snapshot

    async def _fetch_by_key(self, flag_key: str) -> FeatureFlagModel | None:
        result = await self._session.execute(
            select(FeatureFlagModel).where(FeatureFlagModel.flag_key == flag_key)
        )
        return result.scalar_one_or_none()

    async def _get_by_id(self, flag_id: int) -> FeatureFlagModel:
        record = await self._session.get(FeatureFlagModel, flag_id)
        if record is None:
            raise FeatureFlagNotFoundError(f"Feature flag {flag_id} not found.")
        return record

    def _clean_targets(self, targets: list[str] | None) -> list[str] | None:
        if not targets:
            return None
        cleaned = [item.strip() for item in targets if item and item.strip()]
        return list(dict.fromkeys(cleaned)) or None

    def _normalize_targets(self, raw: Any) -> list[str]:
        # Rows written by older clients may hold the list as a JSON string.
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                return []
        if isinstance(raw, list):
            return [str(item) for item in raw]
        return []
