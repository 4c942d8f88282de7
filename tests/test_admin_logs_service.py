from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from solo_leveling.models import AdminActionLog, Base, User
from solo_leveling.services.admin_logs import AdminActionLogService, record_admin_action


@pytest_asyncio.fixture()
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    await engine.dispose()


@pytest.mark.asyncio
async def test_record_action_strips_sensitive_details(session_factory) -> None:
    async with session_factory() as session:
        service = AdminActionLogService(session)
        recorded = await service.record_action(
            admin_user_id=7,
            action_type="update_system_settings",
            target_type="system_settings",
            details={
                "method": "PUT",
                "token": "bearer-secret",
                "body": {"password": "hunter2", "site_name": "Arise"},
            },
            ip_address="10.0.0.8",
        )
        await session.commit()

        assert recorded is True
        entry = (await session.scalars(select(AdminActionLog))).one()

    assert entry.action_details == {"method": "PUT", "body": {"site_name": "Arise"}}
    assert entry.user_agent == "Unknown"
    assert entry.ip_address == "10.0.0.8"


@pytest.mark.asyncio
async def test_list_logs_paginates_newest_first(session_factory) -> None:
    base = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)
    async with session_factory() as session:
        session.add(User(user_id=7, email="jinwoo@example.com", username="jinwoo", user_type="admin"))
        session.add_all(
            [
                AdminActionLog(admin_user_id=7, action_type="view_system_settings", created_at=base),
                AdminActionLog(
                    admin_user_id=99,
                    action_type="export_system_settings",
                    created_at=base + timedelta(minutes=5),
                ),
                AdminActionLog(
                    admin_user_id=7,
                    action_type="reset_system_settings",
                    created_at=base + timedelta(minutes=10),
                ),
            ]
        )
        await session.commit()

        service = AdminActionLogService(session)
        first_page = await service.list_logs(page=1, limit=2)
        second_page = await service.list_logs(page=2, limit=2)

    assert [item.action_type for item in first_page.logs] == [
        "reset_system_settings",
        "export_system_settings",
    ]
    assert [item.admin_username for item in first_page.logs] == ["jinwoo", "Unknown"]
    assert first_page.pagination.total == 3
    assert first_page.pagination.pages == 2
    assert [item.action_type for item in second_page.logs] == ["view_system_settings"]


@pytest.mark.asyncio
async def test_empty_audit_trail_has_zero_pages(session_factory) -> None:
    async with session_factory() as session:
        listing = await AdminActionLogService(session).list_logs()

    assert listing.logs == []
    assert listing.pagination.total == 0
    assert listing.pagination.pages == 0


@pytest.mark.asyncio
async def test_record_admin_action_commits_in_own_session(session_factory) -> None:
    await record_admin_action(
        session_factory,
        admin_user_id=3,
        action_type="create_feature_flag",
        target_type="feature_flag",
        target_id=12,
        details={"body": {"flag_key": "party_finder"}},
        user_agent="pytest",
    )

    async with session_factory() as session:
        entry = (await session.scalars(select(AdminActionLog))).one()
    assert entry.target_id == 12
    assert entry.user_agent == "pytest"


@pytest.mark.asyncio
async def test_record_admin_action_swallows_unavailable_database() -> None:
    def unavailable_factory():
        raise RuntimeError("DATABASE_URL is not configured.")

    await record_admin_action(unavailable_factory, admin_user_id=1, action_type="view_system_settings")


class BrokenSession:
    def __init__(self) -> None:
        self.added: list = []
        self.rollbacks = 0

    def add(self, entry) -> None:
        self.added.append(entry)

    async def flush(self) -> None:
        raise OperationalError("INSERT INTO admin_action_logs", {}, Exception("database is locked"))

    async def rollback(self) -> None:
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_record_action_failure_rolls_back_and_reports_false() -> None:
    session = BrokenSession()

    recorded = await AdminActionLogService(session).record_action(
        admin_user_id=7, action_type="reset_system_settings"
    )

    assert recorded is False
    assert session.rollbacks == 1
    assert session.added[0].action_type == "reset_system_settings"
