# src/wanderbuddy/scripts/migrate.py
"""
Apply or roll back the WanderBuddy schema with Alembic.

Usage:
    python -m wanderbuddy.scripts.migrate [upgrade|downgrade] [revision]
"""
from __future__ import annotations

import argparse
import os

from alembic import command
from alembic.config import Config

from wanderbuddy.core.settings import settings

MIGRATIONS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "..", "migrations"))


def alembic_config(database_url: str | None = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", MIGRATIONS_DIR)
    # Alembic needs a synchronous driver
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url_sync)
    return cfg


def run_upgrade_head(database_url: str | None = None) -> None:
    command.upgrade(alembic_config(database_url), "head")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run WanderBuddy schema migrations")
    parser.add_argument("action", nargs="?", choices=["upgrade", "downgrade"], default="upgrade")
    parser.add_argument("revision", nargs="?", help="Target revision (default: head, or -1 for downgrade)")
    args = parser.parse_args(argv)

    cfg = alembic_config()
    if args.action == "upgrade":
        command.upgrade(cfg, args.revision or "head")
    else:
        command.downgrade(cfg, args.revision or "-1")


if __name__ == "__main__":
    main()
