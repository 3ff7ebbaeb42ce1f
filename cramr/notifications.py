"""Per-user notification log.

Notifications are appended as a side effect of follows, invites and RSVPs.
Creation is best effort: a failure is logged and swallowed so the action that
triggered it still succeeds. After creation only ``is_read`` ever changes.
Read-marking and deletion are keyed by the notification id *and* the owning
user id so one user cannot touch another user's log.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .errors import NotFoundError
from .models import Notification
from .utils import isoformat, utcnow

logger = logging.getLogger("uvicorn.error")

DEFAULT_PAGE_SIZE = 50


def create_notification(
    session: Session,
    *,
    user_id: str,
    sender_id: str | None,
    notification_type: str,
    message: str,
    event_id: str | None = None,
    metadata: dict | None = None,
) -> Notification | None:
    """Append a notification inside a savepoint; return ``None`` on failure."""
    try:
        with session.begin_nested():
            notification = Notification(
                user_id=user_id,
                sender_id=sender_id,
                event_id=event_id,
                type=notification_type,
                message=message,
                metadata_=dict(metadata or {}),
                is_read=False,
                created_at=utcnow(),
            )
            session.add(notification)
            session.flush()
        return notification
    except SQLAlchemyError:
        logger.exception(
            "Failed to create %s notification for user %s", notification_type, user_id
        )
        return None


def day_bucket(created_at: datetime, today: date) -> str:
    """Return the display bucket for a timestamp: Today, Yesterday or M/D."""
    day = created_at.date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day.month}/{day.day}"


def serialize_notification(notification: Notification, bucket: str | None = None):
    sender = notification.sender
    return {
        "id": notification.id,
        "sender": sender.username if sender else "System",
        "sender_id": notification.sender_id,
        "message": notification.message,
        "date": bucket,
        "type": notification.type,
        "is_read": notification.is_read,
        "event_id": notification.event_id,
        "event_title": notification.event.title if notification.event else None,
        "metadata": notification.metadata_ or {},
        "created_at": isoformat(notification.created_at),
    }


def grouped_notifications(
    session: Session,
    user_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[dict[str, list[dict]], int]:
    """Return ``(buckets, total)`` with buckets ordered newest first."""
    stmt = (
        select(Notification)
        .options(joinedload(Notification.sender), joinedload(Notification.event))
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(max(limit, 0))
        .offset(max(offset, 0))
    )
    rows = session.scalars(stmt).all()
    today = (now or utcnow()).date()

    grouped: dict[str, list[Notification]] = {}
    for notification in rows:
        grouped.setdefault(day_bucket(notification.created_at, today), []).append(
            notification
        )

    buckets: dict[str, list[dict]] = {}
    for key, items in grouped.items():
        items.sort(key=lambda n: n.created_at, reverse=True)
        buckets[key] = [serialize_notification(n, key) for n in items]
    return buckets, len(rows)


def _owned_notification(
    session: Session, notification_id: str, user_id: str
) -> Notification:
    stmt = select(Notification).where(
        Notification.id == notification_id, Notification.user_id == user_id
    )
    notification = session.scalars(stmt).first()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(session: Session, notification_id: str, user_id: str) -> Notification:
    notification = _owned_notification(session, notification_id, user_id)
    notification.is_read = True
    session.add(notification)
    session.flush()
    return notification


def mark_all_read(session: Session, user_id: str) -> int:
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def delete_notification(session: Session, notification_id: str, user_id: str) -> None:
    notification = _owned_notification(session, notification_id, user_id)
    session.delete(notification)
    session.flush()


def unread_count(session: Session, user_id: str) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    )
    return session.scalar(stmt) or 0
