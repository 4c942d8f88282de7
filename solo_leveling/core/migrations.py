from __future__ import annotations

import asyncio
from pathlib import Path

from alembic import command
from alembic.config import Config

from solo_leveling.core.config import get_settings


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def build_alembic_config() -> Config:
    """Alembic config bound to the configured database, with logging left to the app."""
    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.exists():
        raise RuntimeError(f"Alembic configuration not found at {ini_path}")

    database_url = get_settings().database_url
    if not database_url:
        raise RuntimeError("DATABASE_URL must be configured to run migrations.")

    config = Config(str(ini_path))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    # ConfigParser interpolation treats "%" specially (URL-encoded passwords).
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    config.attributes["configure_logger"] = False
    return config


async def migrate_database(revision: str = "head") -> None:
    config = build_alembic_config()
    await asyncio.get_running_loop().run_in_executor(None, command.upgrade, config, revision)
