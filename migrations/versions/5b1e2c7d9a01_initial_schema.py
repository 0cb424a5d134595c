"""initial schema

Revision ID: 5b1e2c7d9a01
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b1e2c7d9a01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every WanderBuddy table."""
    op.create_table(
        "profile",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=30), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("location", sa.String(length=100), nullable=True),
        sa.Column("instagram", sa.String(length=30), nullable=True),
        sa.Column("languages", sa.JSON(), nullable=False),
        sa.Column("countries_traveled", sa.JSON(), nullable=False),
        sa.Column("interests", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "meetup",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("destination", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("meeting_point", sa.String(length=300), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("max_members", sa.Integer(), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("social_group_link", sa.Text(), nullable=True),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("type IN ('open', 'locked')", name="ck_meetup_type"),
        sa.CheckConstraint("end_date >= start_date", name="ck_meetup_dates"),
        sa.ForeignKeyConstraint(["creator_id"], ["profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_meetup_start_date", "meetup", ["start_date"])

    op.create_table(
        "meetup_member",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetup.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("meetup_id", "user_id", name="uq_meetup_member"),
    )
    op.create_index("ix_meetup_member_meetup_id", "meetup_member", ["meetup_id"])

    op.create_table(
        "meetup_join_request",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_join_request_status",
        ),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetup.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("meetup_id", "user_id", name="uq_meetup_join_request"),
    )
    op.create_index("ix_meetup_join_request_meetup_id", "meetup_join_request", ["meetup_id"])

    op.create_table(
        "chat_message",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("message_type", sa.String(length=10), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("pinned", sa.Boolean(), nullable=False),
        sa.Column("pinned_by", sa.String(length=64), nullable=True),
        sa.Column("pinned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("client_token", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "message_type IN ('text', 'image', 'file', 'location')",
            name="ck_chat_message_type",
        ),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetup.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pinned_by"], ["profile.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_message_channel_created", "chat_message", ["meetup_id", "created_at"])

    op.create_table(
        "meetup_activity",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("activity_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetup.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_meetup_activity_meetup_id", "meetup_activity", ["meetup_id"])
    op.create_index("ix_meetup_activity_activity_time", "meetup_activity", ["activity_time"])

    op.create_table(
        "activity_response",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("activity_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("response", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "response IN ('going', 'not_going', 'maybe')",
            name="ck_activity_response_value",
        ),
        sa.ForeignKeyConstraint(["activity_id"], ["meetup_activity.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("activity_id", "user_id", name="uq_activity_response"),
    )
    op.create_index("ix_activity_response_activity_id", "activity_response", ["activity_id"])
    op.create_index("ix_activity_response_user_id", "activity_response", ["user_id"])

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('message', 'activity', 'join_request', 'request_accepted')",
            name="ck_notification_type",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetup.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_user_created", "notification", ["user_id", "created_at"])

    op.create_table(
        "fanout_task",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("retry_count", sa.SmallInteger(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fanout_task_status", "fanout_task", ["status"])


def downgrade() -> None:
    """Drop every WanderBuddy table."""
    op.drop_index("ix_fanout_task_status", table_name="fanout_task")
    op.drop_table("fanout_task")
    op.drop_index("ix_notification_user_created", table_name="notification")
    op.drop_table("notification")
    op.drop_index("ix_activity_response_user_id", table_name="activity_response")
    op.drop_index("ix_activity_response_activity_id", table_name="activity_response")
    op.drop_table("activity_response")
    op.drop_index("ix_meetup_activity_activity_time", table_name="meetup_activity")
    op.drop_index("ix_meetup_activity_meetup_id", table_name="meetup_activity")
    op.drop_table("meetup_activity")
    op.drop_index("ix_chat_message_channel_created", table_name="chat_message")
    op.drop_table("chat_message")
    op.drop_index("ix_meetup_join_request_meetup_id", table_name="meetup_join_request")
    op.drop_table("meetup_join_request")
    op.drop_index("ix_meetup_member_meetup_id", table_name="meetup_member")
    op.drop_table("meetup_member")
    op.drop_index("ix_meetup_start_date", table_name="meetup")
    op.drop_table("meetup")
    op.drop_table("profile")
