from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solo_leveling.core.config import AppSettings, get_settings
from solo_leveling.core.database import dispose_engine, get_session_factory
from solo_leveling.models import PerformanceLog, SystemErrorLog, UserAnalyticsEvent, UserSession
from solo_leveling.services.settings import SettingsService


logger = logging.getLogger("solo_leveling.cleanup")

CLEANUP_TABLES = ("performance_logs", "user_analytics", "system_error_logs", "user_sessions")


@dataclass(slots=True)
class CleanupResult:
    """Statistics describing the cleanup of a single table."""

    table: str
    cutoff: datetime
    candidates: int = 0
    deleted: int = 0
    dry_run: bool = True


class DataCleanupAgent:
    """Purge telemetry and session rows that fall outside the retention window.

    Each table is cleaned and committed independently: when one deletion
    fails, tables processed before it stay cleaned.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] | None = None,
        now_factory: Callable[[], datetime] | None = None,
    ):
        self._settings = settings
        self._session_factory = session_factory or self._default_session_factory
        self._now_factory = now_factory or (lambda: datetime.now(timezone.utc))

    async def run(
        self,
        *,
        dry_run: bool = True,
        include: Iterable[str] | None = None,
    ) -> dict[str, CleanupResult]:
        """Clean the selected tables and report per-table counts."""
        selections = set(include or {"all"})
        if "all" in selections:
            selections = set(CLEANUP_TABLES)

        now = self._now()
        retention_days = await self._retention_days()
        cutoff = now - timedelta(days=retention_days)
        logger.info(
            "Starting data cleanup: retention_days=%s cutoff=%s dry_run=%s",
            retention_days,
            cutoff.isoformat(),
            dry_run,
        )

        results: dict[str, CleanupResult] = {}
        for table in CLEANUP_TABLES:
            if table not in selections:
                continue
            model, condition, table_cutoff = self._target(table, cutoff=cutoff, now=now)
            results[table] = await self._cleanup_table(
                table, model, condition, cutoff=table_cutoff, dry_run=dry_run
            )
        return results

    async def _cleanup_table(
        self,
        table: str,
        model: Any,
        condition: ColumnElement[bool],
        *,
        cutoff: datetime,
        dry_run: bool,
    ) -> CleanupResult:
        result = CleanupResult(table=table, cutoff=cutoff, dry_run=dry_run)
        async with self._session_factory() as session:
            candidates = await session.scalar(select(func.count()).select_from(model).where(condition))
            result.candidates = int(candidates or 0)

            if dry_run:
                logger.info("[DRY-RUN] %s: %s rows older than %s", table, result.candidates, cutoff.isoformat())
                return result

            outcome = await session.execute(delete(model).where(condition))
            await session.commit()
            result.deleted = int(outcome.rowcount or 0)

        logger.info("%s: deleted %s rows (candidates=%s)", table, result.deleted, result.candidates)
        return result

    def _target(
        self, table: str, *, cutoff: datetime, now: datetime
    ) -> tuple[Any, ColumnElement[bool], datetime]:
        if table == "performance_logs":
            return PerformanceLog, PerformanceLog.created_at < cutoff, cutoff
        if table == "user_analytics":
            return UserAnalyticsEvent, UserAnalyticsEvent.created_at < cutoff, cutoff
        if table == "system_error_logs":
            condition = (SystemErrorLog.created_at < cutoff) & SystemErrorLog.resolved.is_(True)
            return SystemErrorLog, condition, cutoff
        if table == "user_sessions":
            return UserSession, UserSession.expires_at < now, now
        raise ValueError(f"Unknown cleanup table '{table}'.")

    async def _retention_days(self) -> float:
        fallback = self._settings.data_retention_days
        async with self._session_factory() as session:
            value = await SettingsService(session).get_setting("data_retention_days", fallback)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or value < 0:
            logger.warning("Ignoring invalid data_retention_days=%r; using %s", value, fallback)
            return fallback
        return value

    def _default_session_factory(self) -> AbstractAsyncContextManager[AsyncSession]:
        return get_session_factory()()

    def _now(self) -> datetime:
        now = self._now_factory()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="solo-leveling-cleanup",
        description="Purge Solo Leveling telemetry and expired sessions past the retention window.",
    )
    parser.add_argument(
        "--include",
        nargs="+",
        choices=(*CLEANUP_TABLES, "all"),
        default=["all"],
        help="Tables to clean (default: all).",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Execute deletions (omit for dry-run).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


async def _async_main(args: argparse.Namespace) -> dict[str, CleanupResult]:
    settings = get_settings()
    agent = DataCleanupAgent(settings)
    try:
        results = await agent.run(dry_run=not args.execute, include=args.include)
    finally:
        await dispose_engine()

    for table, result in results.items():
        logger.info(
            "Cleanup completed for %s: candidates=%s deleted=%s dry_run=%s",
            table,
            result.candidates,
            result.deleted,
            result.dry_run,
        )
    return results


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))
    try:
        asyncio.run(_async_main(args))
    except (SQLAlchemyError, RuntimeError):
        logger.exception("Data cleanup failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
