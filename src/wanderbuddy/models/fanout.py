"""SQLAlchemy model for the notification fan-out outbox."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow

FANOUT_STATUS_PENDING = "pending"
FANOUT_STATUS_PROCESSING = "processing"
FANOUT_STATUS_DONE = "done"
FANOUT_STATUS_FAILED = "failed"


class FanoutTask(Base):
    """Pending notification fan-out, written in the triggering transaction.

    The source row is referenced by id only so that a deleted source does not
    block the outbox; the dispatcher treats a missing source as a lookup miss.
    Recipients are resolved when the task is written, so membership changes
    after the triggering insert do not alter who is notified.
    """

    __tablename__ = "fanout_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # notification type
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)
    meetup_id: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FANOUT_STATUS_PENDING, index=True
    )  # 'pending', 'processing', 'done', 'failed'
    # Set when a dispatcher takes the task; stale claims are taken over.
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
