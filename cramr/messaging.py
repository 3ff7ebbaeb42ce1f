"""Direct messages between users."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from .errors import NotFoundError, ValidationError
from .models import Message, User
from .utils import isoformat, utcnow

DEFAULT_PAGE_SIZE = 50


def serialize_message(message: Message) -> dict[str, Any]:
    sender = message.sender
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "is_read": message.is_read,
        "created_at": isoformat(message.created_at),
        "sender_username": sender.username if sender else None,
        "sender_full_name": sender.full_name if sender else None,
        "sender_profile_picture": sender.profile_picture_url if sender else None,
    }


def send_message(session: Session, sender_id: str, recipient_id: str, content: str) -> Message:
    if not sender_id or not recipient_id or content is None:
        raise ValidationError("sender_id, recipient_id, and content are required")
    text = content.strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if not session.get(User, sender_id):
        raise NotFoundError("Sender not found")
    if not session.get(User, recipient_id):
        raise NotFoundError("Recipient not found")
    message = Message(
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=text,
        is_read=False,
        created_at=utcnow(),
    )
    session.add(message)
    session.flush()
    return message


def _between(first_id: str, second_id: str):
    return or_(
        and_(Message.sender_id == first_id, Message.recipient_id == second_id),
        and_(Message.sender_id == second_id, Message.recipient_id == first_id),
    )


def conversation(
    session: Session,
    first_id: str,
    second_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> Sequence[Message]:
    """Messages exchanged by two users, oldest first."""
    stmt = (
        select(Message)
        .options(joinedload(Message.sender))
        .where(_between(first_id, second_id))
        .order_by(Message.created_at.asc())
        .limit(max(limit, 0))
        .offset(max(offset, 0))
    )
    return session.scalars(stmt).all()


def conversations(session: Session, user_id: str) -> list[dict[str, Any]]:
    """One entry per conversation partner holding the latest message, newest first."""
    stmt = (
        select(Message)
        .where(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
        .order_by(Message.created_at.desc())
    )
    latest: dict[str, Message] = {}
    for message in session.scalars(stmt):
        other_id = (
            message.recipient_id if message.sender_id == user_id else message.sender_id
        )
        latest.setdefault(other_id, message)

    if not latest:
        return []
    others = {
        user.id: user
        for user in session.scalars(select(User).where(User.id.in_(list(latest))))
    }
    payload = []
    for other_id, message in latest.items():
        other = others.get(other_id)
        payload.append(
            {
                "conversation_id": other_id,
                "other_user": {
                    "id": other_id,
                    "username": other.username if other else None,
                    "full_name": other.full_name if other else None,
                    "profile_picture_url": other.profile_picture_url if other else None,
                },
                "last_message": {
                    "id": message.id,
                    "content": message.content,
                    "is_from_me": message.sender_id == user_id,
                    "created_at": isoformat(message.created_at),
                },
            }
        )
    return payload


def mark_read(session: Session, user_id: str, other_user_id: str) -> int:
    """Mark everything ``other_user_id`` sent to ``user_id`` as read."""
    if not user_id or not other_user_id:
        raise ValidationError("user_id and other_user_id are required")
    result = session.execute(
        update(Message)
        .where(
            Message.recipient_id == user_id,
            Message.sender_id == other_user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def unread_count(session: Session, user_id: str) -> int:
    stmt = select(func.count()).select_from(Message).where(
        Message.recipient_id == user_id, Message.is_read.is_(False)
    )
    return session.scalar(stmt) or 0


def delete_message(session: Session, message_id: str, user_id: str) -> None:
    if not user_id:
        raise ValidationError("user_id is required")
    stmt = select(Message).where(Message.id == message_id, Message.sender_id == user_id)
    message = session.scalars(stmt).first()
    if not message:
        raise NotFoundError("Message not found or not authorized")
    session.delete(message)
    session.flush()
