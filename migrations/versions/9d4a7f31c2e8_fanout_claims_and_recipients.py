"""fanout claims and recipient snapshot

Revision ID: 9d4a7f31c2e8
Revises: 5b1e2c7d9a01
Create Date: 2026-10-19 10:30:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "9d4a7f31c2e8"
down_revision: Union[str, Sequence[str], None] = "5b1e2c7d9a01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add the dispatcher claim timestamp and the recipient list to fanout_task."""
    with op.batch_alter_table("fanout_task") as batch_op:
        batch_op.add_column(
            sa.Column("recipient_ids", sa.JSON(), nullable=False, server_default=sa.text("'[]'"))
        )
        batch_op.add_column(sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("fanout_task") as batch_op:
        batch_op.drop_column("claimed_at")
        batch_op.drop_column("recipient_ids")
