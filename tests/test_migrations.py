from alembic import command
from sqlalchemy import create_engine, inspect

from wanderbuddy.db.session import Base
from wanderbuddy.scripts.migrate import alembic_config, run_upgrade_head


def test_migrations_match_models(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    run_upgrade_head(url)

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
        assert set(Base.metadata.tables) <= tables
        columns = {col["name"] for col in inspect(engine).get_columns("chat_message")}
        assert {"meetup_id", "message_type", "client_token", "pinned_by"} <= columns
        fanout_columns = {col["name"] for col in inspect(engine).get_columns("fanout_task")}
        assert {"recipient_ids", "claimed_at"} <= fanout_columns

        command.downgrade(alembic_config(url), "base")
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
