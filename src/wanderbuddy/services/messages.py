"""Message store operations for meetup and community channels."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wanderbuddy.core.channels import ChannelKey
from wanderbuddy.core.errors import AuthorizationError, NotFoundError, ValidationError
from wanderbuddy.db.time import utcnow
from wanderbuddy.models import Message, Profile
from wanderbuddy.models.message import MESSAGE_TYPE_FILE, MESSAGE_TYPE_IMAGE
from wanderbuddy.models.notification import NOTIFICATION_MESSAGE
from wanderbuddy.services import membership, validation
from wanderbuddy.services.notifications import enqueue_fanout
from wanderbuddy.services.storage import UPLOADS_BUCKET, LocalStorage, attachment_path, get_storage

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255


def _chat_meetup_id(channel: ChannelKey) -> int | None:
    if channel.is_community:
        return None
    if channel.is_meetup:
        return channel.meetup_id
    raise ValidationError("Messages can only be posted to meetup or community channels")


def _authorize_write(db: Session, channel: ChannelKey, user: Profile, action: str) -> int | None:
    meetup_id = _chat_meetup_id(channel)
    if meetup_id is not None:
        membership.require_member(db, meetup_id, user.id, action)
    return meetup_id


def _authorize_read(db: Session, meetup_id: int | None, user: Profile) -> None:
    if meetup_id is None:
        return
    membership.get_meetup(db, meetup_id)
    if not membership.is_member(db, meetup_id, user.id):
        raise AuthorizationError("Unable to load messages")


def _insert(db: Session, message: Message) -> Message:
    db.add(message)
    db.flush()
    if message.meetup_id is not None:
        enqueue_fanout(
            db,
            kind=NOTIFICATION_MESSAGE,
            source_id=message.id,
            meetup_id=message.meetup_id,
            actor_id=message.user_id,
        )
    db.commit()
    return message


def send_message(
    db: Session,
    channel: ChannelKey,
    author: Profile,
    raw_text: str,
    client_token: str | None = None,
) -> Message:
    """Validate, sanitize, classify and store a text message.

    The stored row is not read back for the caller; clients render the
    message when its change event arrives.
    """
    content = validation.clean_message_content(raw_text)
    meetup_id = _authorize_write(db, channel, author, "send message")
    message = Message(
        meetup_id=meetup_id,
        user_id=author.id,
        message_type=validation.classify_message(content),
        content=content,
        client_token=client_token,
    )
    return _insert(db, message)


def upload_attachment(
    db: Session,
    channel: ChannelKey,
    author: Profile,
    filename: str | None,
    content_type: str | None,
    data: bytes,
    storage: LocalStorage | None = None,
    client_token: str | None = None,
) -> Message:
    """Store an image or file and post a message pointing at it."""
    meetup_id = _authorize_write(db, channel, author, "upload file")
    normalized_type = validation.validate_upload(content_type, len(data))
    display_name = validation.sanitize_text(filename or "") or "file"
    display_name = display_name[:MAX_FILENAME_LENGTH]

    storage = storage or get_storage()
    path = attachment_path(meetup_id, author.id, normalized_type)
    url = storage.upload(UPLOADS_BUCKET, path, data, normalized_type)

    message = Message(
        meetup_id=meetup_id,
        user_id=author.id,
        message_type=MESSAGE_TYPE_IMAGE if normalized_type.startswith("image/") else MESSAGE_TYPE_FILE,
        content=display_name,
        file_url=url,
        file_name=display_name,
        file_size=len(data),
        client_token=client_token,
    )
    try:
        return _insert(db, message)
    except SQLAlchemyError:
        db.rollback()
        storage.delete(UPLOADS_BUCKET, path)
        raise


def get_message(db: Session, message_id: int, user: Profile) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    _authorize_read(db, message.meetup_id, user)
    return message


def list_messages(
    db: Session,
    channel: ChannelKey,
    user: Profile,
    limit: int | None = None,
) -> list[Message]:
    """Return the channel's messages oldest first."""
    meetup_id = _chat_meetup_id(channel)
    _authorize_read(db, meetup_id, user)
    query = db.query(Message)
    if meetup_id is None:
        query = query.filter(Message.meetup_id.is_(None))
    else:
        query = query.filter(Message.meetup_id == meetup_id)
    query = query.order_by(Message.created_at, Message.id)
    if limit is not None:
        # Keep the most recent ``limit`` rows, still returned oldest first.
        recent = (
            query.order_by(None)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(recent))
    return query.all()


def list_pinned(db: Session, meetup_id: int, user: Profile) -> list[Message]:
    _authorize_read(db, meetup_id, user)
    return (
        db.query(Message)
        .filter(Message.meetup_id == meetup_id, Message.pinned.is_(True))
        .order_by(Message.pinned_at.desc(), Message.id.desc())
        .all()
    )


def _own_message(db: Session, message_id: int, user: Profile, action: str) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.user_id != user.id:
        raise AuthorizationError(f"Unable to {action}")
    return message


def edit_message(db: Session, message_id: int, user: Profile, raw_text: str) -> Message:
    """Replace the content of the caller's own text message."""
    message = _own_message(db, message_id, user, "edit message")
    if message.message_type in (MESSAGE_TYPE_IMAGE, MESSAGE_TYPE_FILE):
        raise ValidationError("Attachments cannot be edited")
    content = validation.clean_message_content(raw_text)
    message.content = content
    message.message_type = validation.classify_message(content)
    db.commit()
    db.refresh(message)
    return message


def delete_message(db: Session, message_id: int, user: Profile) -> None:
    message = _own_message(db, message_id, user, "delete message")
    db.delete(message)
    db.commit()


def set_pinned(db: Session, message_id: int, user: Profile, pinned: bool) -> Message:
    """Pin or unpin a meetup message; only the meetup creator may do this."""
    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    action = "pin message" if pinned else "unpin message"
    if message.meetup_id is None:
        raise AuthorizationError(f"Unable to {action}")
    membership.require_creator(db, message.meetup_id, user.id, action)
    message.pinned = pinned
    message.pinned_by = user.id if pinned else None
    message.pinned_at = utcnow() if pinned else None
    db.commit()
    db.refresh(message)
    logger.info("Message %s %s by %s", message_id, "pinned" if pinned else "unpinned", user.id)
    return message
