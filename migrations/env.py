"""Alembic environment for the WanderBuddy schema."""
from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

import wanderbuddy.models  # noqa: E402,F401  registers every table on Base.metadata
from wanderbuddy.core.settings import settings  # noqa: E402
from wanderbuddy.db.session import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ALEMBIC_URL wins over the application database so migrations can target a
# different role or host.
config.set_main_option(
    "sqlalchemy.url",
    os.getenv("ALEMBIC_URL") or config.get_main_option("sqlalchemy.url") or settings.database_url_sync,
)

target_metadata = Base.metadata


def _configure_options(url: str) -> dict[str, Any]:
    # SQLite cannot ALTER constraints in place; batch mode recreates the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout instead of executing it."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options(str(connectable.url)))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
