"""CRUD helpers for users, events, comments and saved events."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable, Sequence

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.orm import Session

from .auth import hash_password
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Comment, Event, EventAttendee, Follow, SavedEvent, User
from .notifications import create_notification
from .utils import isoformat, to_naive_utc, utcnow, with_id, without_id

SEARCH_LIMIT = 20
LEADERBOARD_SIZE = 10

PROFILE_FIELDS = (
    "full_name",
    "major",
    "year",
    "bio",
    "profile_picture_url",
    "banner_color",
    "school",
    "pronouns",
    "transfer",
    "prompt_1",
    "prompt_1_answer",
    "prompt_2",
    "prompt_2_answer",
    "prompt_3",
    "prompt_3_answer",
)

EVENT_FIELDS = (
    "title",
    "description",
    "location",
    "class_name",
    "date_and_time",
    "tags",
    "capacity",
    "virtual_room_link",
    "study_room",
    "event_format",
    "banner_color",
)

PREFERENCE_COLUMNS = {
    "push_notifications": "push_notifications_enabled",
    "email_notifications": "email_notifications_enabled",
    "sms_notifications": "sms_notifications_enabled",
}

DEFAULT_THEME = "light"


# Users


def get_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def require_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def serialize_user(user: User) -> dict[str, Any]:
    """Public view of a user row; credentials and reset codes are never included."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "bio": user.bio,
        "school": user.school,
        "major": user.major,
        "year": user.year,
        "pronouns": user.pronouns,
        "transfer": user.transfer,
        "banner_color": user.banner_color,
        "profile_picture_url": user.profile_picture_url,
        "phone_number": user.phone_number,
        "prompt_1": user.prompt_1,
        "prompt_1_answer": user.prompt_1_answer,
        "prompt_2": user.prompt_2,
        "prompt_2_answer": user.prompt_2_answer,
        "prompt_3": user.prompt_3,
        "prompt_3_answer": user.prompt_3_answer,
        "push_notifications_enabled": user.push_notifications_enabled,
        "email_notifications_enabled": user.email_notifications_enabled,
        "sms_notifications_enabled": user.sms_notifications_enabled,
        "followers": user.followers or 0,
        "following": user.following or 0,
        "follower_ids": list(user.follower_ids or []),
        "following_ids": list(user.following_ids or []),
        "created_at": isoformat(user.created_at),
        "updated_at": isoformat(user.updated_at),
    }


def serialize_user_summary(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "following": user.following or 0,
        "followers": user.followers or 0,
        "profile_picture_url": user.profile_picture_url,
        "banner_color": user.banner_color,
    }


def user_profile(session: Session, user_id: str) -> dict[str, Any]:
    """User row with follow counts and ids recomputed from the ``follows`` table."""
    user = require_user(session, user_id)
    follower_ids = list(
        session.scalars(
            select(Follow.follower_id)
            .where(Follow.following_id == user_id)
            .order_by(Follow.created_at)
        ).all()
    )
    following_ids = list(
        session.scalars(
            select(Follow.following_id)
            .where(Follow.follower_id == user_id)
            .order_by(Follow.created_at)
        ).all()
    )
    payload = serialize_user(user)
    payload.update(
        followers=len(follower_ids),
        following=len(following_ids),
        follower_ids=follower_ids,
        following_ids=following_ids,
    )
    return payload


def update_profile(session: Session, user_id: str, values: dict[str, Any]) -> User:
    user = require_user(session, user_id)
    for field in PROFILE_FIELDS:
        if field in values:
            setattr(user, field, values[field])
    user.updated_at = utcnow()
    session.add(user)
    session.flush()
    return user


def update_account(
    session: Session,
    user_id: str,
    *,
    email: str | None = None,
    password: str | None = None,
    phone_number: str | None = None,
) -> User:
    user = require_user(session, user_id)
    if email and email != user.email:
        taken = session.scalars(
            select(User.id).where(User.email == email, User.id != user_id)
        ).first()
        if taken:
            raise ConflictError("User with this email already exists")
        user.email = email
    if password:
        user.password_hash = hash_password(password)
    if phone_number:
        user.phone_number = phone_number
    user.updated_at = utcnow()
    session.add(user)
    session.flush()
    return user


def get_preferences(user: User, theme: str | None = None) -> dict[str, Any]:
    prefs = {key: getattr(user, column) for key, column in PREFERENCE_COLUMNS.items()}
    # Theme lives on the device; echo what the client sent.
    prefs["theme"] = theme or DEFAULT_THEME
    return prefs


def update_preferences(session: Session, user_id: str, values: dict[str, Any]) -> User:
    user = require_user(session, user_id)
    for key, column in PREFERENCE_COLUMNS.items():
        if values.get(key) is not None:
            setattr(user, column, bool(values[key]))
    user.updated_at = utcnow()
    session.add(user)
    session.flush()
    return user


def search_users(
    session: Session, query: str, *, exclude_user_id: str | None = None
) -> Sequence[User]:
    """Substring match on username or full name, exact matches first."""
    term = (query or "").strip()
    if len(term) < 2:
        raise ValidationError("Search query must be at least 2 characters")
    lowered = term.lower()
    pattern = f"%{lowered}%"
    rank = case(
        (func.lower(User.username) == lowered, 1),
        (func.lower(User.full_name) == lowered, 2),
        else_=3,
    )
    stmt = select(User).where(
        or_(
            func.lower(User.username).like(pattern),
            func.lower(User.full_name).like(pattern),
        )
    )
    if exclude_user_id:
        stmt = stmt.where(User.id != exclude_user_id)
    stmt = stmt.order_by(rank, User.username).limit(SEARCH_LIMIT)
    return session.scalars(stmt).all()


def leaderboard(session: Session, *, limit: int = LEADERBOARD_SIZE) -> list[dict[str, Any]]:
    """Users ranked by the number of events they created."""
    events = func.count(Event.id).label("events")
    stmt = (
        select(User.id, User.username, User.profile_picture_url, events)
        .join(Event, Event.creator_id == User.id)
        .group_by(User.id, User.username, User.profile_picture_url)
        .having(func.count(Event.id) > 0)
        .order_by(events.desc(), User.username.asc())
        .limit(limit)
    )
    return [
        {
            "id": row.id,
            "name": row.username,
            "avatar": row.profile_picture_url,
            "events": row.events,
        }
        for row in session.execute(stmt)
    ]


# Events


def get_event(session: Session, event_id: str) -> Event | None:
    return session.get(Event, event_id)


def require_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def attendee_summaries(
    session: Session, event_ids: Iterable[str]
) -> dict[str, dict[str, list[str]]]:
    """Map event id to invited/accepted/declined/pending/saved user id lists."""
    ids = list(event_ids)
    summary: dict[str, dict[str, list[str]]] = defaultdict(
        lambda: {"invited": [], "accepted": [], "declined": [], "pending": [], "saved": []}
    )
    if not ids:
        return summary
    attendee_rows = session.execute(
        select(EventAttendee.event_id, EventAttendee.user_id, EventAttendee.status)
        .where(EventAttendee.event_id.in_(ids))
        .order_by(EventAttendee.rsvp_date)
    ).all()
    for event_id, user_id, status in attendee_rows:
        summary[event_id].setdefault(status, []).append(user_id)
    saved_rows = session.execute(
        select(SavedEvent.event_id, SavedEvent.user_id)
        .where(SavedEvent.event_id.in_(ids))
        .order_by(SavedEvent.saved_at)
    ).all()
    for event_id, user_id in saved_rows:
        summary[event_id]["saved"].append(user_id)
    return summary


def serialize_event(
    event: Event, summary: dict[str, list[str]] | None = None
) -> dict[str, Any]:
    creator = event.creator
    payload: dict[str, Any] = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "class": event.class_name,
        "date_and_time": isoformat(event.date_and_time),
        "tags": list(event.tags or []),
        "capacity": event.capacity,
        "creator_id": event.creator_id,
        "virtual_room_link": event.virtual_room_link,
        "study_room": event.study_room,
        "event_format": event.event_format,
        "banner_color": event.banner_color,
        "materials_count": event.materials_count or 0,
        "rsvped_ids": list(event.rsvped_ids or []),
        "rsvped_count": len(event.rsvped_ids or []),
        "saved_ids": list(event.saved_ids or []),
        "created_at": isoformat(event.created_at),
        "creator_name": creator.full_name if creator else None,
        "creator_username": creator.username if creator else None,
        "creator_profile_picture": creator.profile_picture_url if creator else None,
    }
    if summary is not None:
        for status in ("invited", "accepted", "declined"):
            payload[f"{status}_ids"] = list(summary.get(status, []))
            payload[f"{status}_count"] = len(summary.get(status, []))
        payload["saved_ids"] = list(summary.get("saved", []))
        payload["saved_count"] = len(summary.get("saved", []))
    return payload


def serialize_events(session: Session, events: Sequence[Event]) -> list[dict[str, Any]]:
    summaries = attendee_summaries(session, [event.id for event in events])
    return [serialize_event(event, summaries[event.id]) for event in events]


def _clean_event_values(values: dict[str, Any]) -> dict[str, Any]:
    cleaned = {key: values[key] for key in EVENT_FIELDS if key in values}
    if "date_and_time" in cleaned:
        cleaned["date_and_time"] = to_naive_utc(cleaned["date_and_time"])
    if "tags" in cleaned:
        cleaned["tags"] = list(cleaned["tags"] or [])
    return cleaned


def create_event(
    session: Session,
    values: dict[str, Any],
    *,
    invite_ids: Iterable[str] = (),
) -> Event:
    """Create an event and invite users; unknown invitees are skipped."""
    creator_id = values.get("creator_id")
    if not values.get("title") or not creator_id:
        raise ValidationError("Missing required fields: title and creator_id are required")
    creator = session.get(User, creator_id)
    if not creator:
        raise ValidationError("Invalid creator_id: user not found")

    event = Event(
        creator_id=creator_id,
        rsvped_ids=[],
        saved_ids=[],
        materials_count=0,
        created_at=utcnow(),
        **_clean_event_values(values),
    )
    if event.tags is None:
        event.tags = []
    session.add(event)
    session.flush()

    seen: set[str] = set()
    for user_id in invite_ids:
        if not user_id or user_id in seen or user_id == creator_id:
            continue
        seen.add(user_id)
        if not session.get(User, user_id):
            continue
        session.add(EventAttendee(event_id=event.id, user_id=user_id, status="invited"))
        session.flush()
        create_notification(
            session,
            user_id=user_id,
            sender_id=creator_id,
            notification_type="event_invite",
            message=f"You've been invited to {event.title}",
            event_id=event.id,
            metadata={
                "event_title": event.title,
                "location": event.location,
                "date": isoformat(event.date_and_time),
            },
        )
    return event


def update_event(session: Session, event_id: str, values: dict[str, Any]) -> Event:
    updates = _clean_event_values(values)
    if not updates:
        raise ValidationError("No fields to update")
    event = require_event(session, event_id)
    for key, value in updates.items():
        setattr(event, key, value)
    session.add(event)
    session.flush()
    return event


def update_event_location(session: Session, event_id: str, location: str | None) -> Event:
    event = require_event(session, event_id)
    event.location = location
    session.add(event)
    session.flush()
    return event


def delete_event(session: Session, event_id: str) -> list[str]:
    """Delete an event and everything hanging off it.

    Returns the stored file names of its study materials so the caller can
    remove them from disk once the transaction commits.
    """
    event = require_event(session, event_id)
    session.refresh(event)
    stored_names = [material.stored_name for material in event.materials]
    session.delete(event)
    session.flush()
    return stored_names


def list_event_ids(session: Session, creator_id: str | None = None) -> list[dict[str, Any]]:
    stmt = select(Event.id, Event.title, Event.creator_id, Event.created_at).order_by(
        Event.created_at.desc()
    )
    if creator_id:
        stmt = stmt.where(Event.creator_id == creator_id)
    return [
        {
            "id": row.id,
            "title": row.title,
            "creator_id": row.creator_id,
            "created_at": isoformat(row.created_at),
        }
        for row in session.execute(stmt)
    ]


# Comments


def serialize_comment(comment: Comment) -> dict[str, Any]:
    user = comment.user
    return {
        "id": comment.id,
        "event_id": comment.event_id,
        "user_id": comment.user_id,
        "content": comment.content,
        "created_at": isoformat(comment.created_at),
        "username": user.username if user else None,
        "full_name": user.full_name if user else None,
        "profile_picture_url": user.profile_picture_url if user else None,
    }


def list_comments(session: Session, event_id: str) -> Sequence[Comment]:
    stmt = (
        select(Comment)
        .where(Comment.event_id == event_id)
        .order_by(Comment.created_at.asc())
    )
    return session.scalars(stmt).all()


def add_comment(session: Session, event_id: str, user_id: str, content: str) -> Comment:
    if not user_id or content is None:
        raise ValidationError("user_id and content are required")
    text = content.strip()
    if not text:
        raise ValidationError("Comment cannot be empty")
    require_event(session, event_id)
    require_user(session, user_id)
    comment = Comment(event_id=event_id, user_id=user_id, content=text, created_at=utcnow())
    session.add(comment)
    session.flush()
    return comment


def delete_comment(session: Session, event_id: str, comment_id: str, user_id: str) -> None:
    if not user_id:
        raise ValidationError("user_id is required")
    result = session.execute(
        delete(Comment).where(
            Comment.id == comment_id,
            Comment.event_id == event_id,
            Comment.user_id == user_id,
        )
    )
    if not result.rowcount:
        raise NotFoundError("Comment not found or not authorized")


# Saved events


def get_saved_event(session: Session, user_id: str, event_id: str) -> SavedEvent | None:
    return session.get(SavedEvent, (user_id, event_id))


def save_event(session: Session, user_id: str, event_id: str) -> tuple[SavedEvent, bool]:
    """Save an event for a user. Returns ``(row, created)``; saving twice is a no-op."""
    if not event_id:
        raise ValidationError("event_id is required")
    require_user(session, user_id)
    event = require_event(session, event_id)
    existing = get_saved_event(session, user_id, event_id)
    if existing:
        return existing, False
    saved = SavedEvent(user_id=user_id, event_id=event_id, saved_at=utcnow())
    session.add(saved)
    event.saved_ids = with_id(event.saved_ids, user_id)
    session.add(event)
    session.flush()
    return saved, True


def unsave_event(session: Session, user_id: str, event_id: str) -> None:
    saved = get_saved_event(session, user_id, event_id)
    if not saved:
        raise NotFoundError("Saved event not found")
    event = require_event(session, event_id)
    session.delete(saved)
    event.saved_ids = without_id(event.saved_ids, user_id)
    session.add(event)
    session.flush()


def list_saved_events(session: Session, user_id: str) -> list[dict[str, Any]]:
    stmt = (
        select(Event, SavedEvent.saved_at)
        .join(SavedEvent, SavedEvent.event_id == Event.id)
        .where(SavedEvent.user_id == user_id)
        .order_by(SavedEvent.saved_at.desc())
    )
    rows = session.execute(stmt).all()
    payload = []
    for event, saved_at in rows:
        item = serialize_event(event)
        item["saved_at"] = isoformat(saved_at)
        payload.append(item)
    return payload


def serialize_saved_event(saved: SavedEvent) -> dict[str, Any]:
    return {
        "user_id": saved.user_id,
        "event_id": saved.event_id,
        "saved_at": isoformat(saved.saved_at),
    }
