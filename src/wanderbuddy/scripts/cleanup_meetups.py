# src/wanderbuddy/scripts/cleanup_meetups.py
"""
Cron job deleting meetups whose end date has passed.

Deleting a meetup cascades to its members, join requests, messages,
activities and notifications. Run once a day:

    python -m wanderbuddy.scripts.cleanup_meetups
"""

import logging

from sqlalchemy.orm import Session

from wanderbuddy.db.session import session_scope
from wanderbuddy.services.meetups import cleanup_expired_meetups


def run(db: Session) -> list[int]:
    deleted = cleanup_expired_meetups(db)
    print(f"Deleted {len(deleted)} expired meetup(s)")
    return deleted


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    with session_scope() as db:
        run(db)
