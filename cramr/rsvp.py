"""RSVP state synchronization.

Every RSVP write touches two places: the ``event_attendees`` row and the
``events.rsvped_ids`` array. Both are written in the caller's transaction
after the event row has been locked, so ``rsvped_ids`` always equals the set
of attendees with status ``accepted``.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFoundError, ValidationError
from .models import Event, EventAttendee, User
from .notifications import create_notification
from .utils import isoformat, utcnow, with_id, without_id

RSVP_STATUSES = ("accepted", "declined", "pending")

# status -> (creator notification type, creator message, self type, self message)
_STATUS_NOTIFICATIONS = {
    "accepted": (
        "event_rsvp",
        "{username} RSVPed to {title}",
        "event_rsvp_self",
        "You RSVPed to {title}",
    ),
    "declined": (
        "event_rsvp_decline",
        "{username} declined {title}",
        "event_rsvp_decline_self",
        "You declined {title}",
    ),
    "pending": (
        "event_rsvp_pending",
        "{username} is pending for {title}",
        "event_rsvp_pending_self",
        "You set your RSVP to pending for {title}",
    ),
}


def _locked_event(session: Session, event_id: str) -> Event:
    stmt = (
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    event = session.scalars(stmt).first()
    if not event:
        raise NotFoundError("Event not found")
    return event


def _get_attendee(session: Session, event_id: str, user_id: str) -> EventAttendee | None:
    stmt = select(EventAttendee).where(
        EventAttendee.event_id == event_id, EventAttendee.user_id == user_id
    )
    return session.scalars(stmt).first()


def _notify(
    session: Session,
    event: Event,
    user: User,
    *,
    creator_type: str,
    creator_message: str,
    self_type: str,
    self_message: str,
    status: str,
    notify_creator: bool = True,
) -> None:
    metadata = {"event_title": event.title, "status": status}
    if notify_creator and event.creator_id != user.id:
        create_notification(
            session,
            user_id=event.creator_id,
            sender_id=user.id,
            notification_type=creator_type,
            message=creator_message.format(username=user.username, title=event.title),
            event_id=event.id,
            metadata=metadata,
        )
    create_notification(
        session,
        user_id=user.id,
        sender_id=user.id,
        notification_type=self_type,
        message=self_message.format(username=user.username, title=event.title),
        event_id=event.id,
        metadata=metadata,
    )


def set_rsvp(
    session: Session,
    event_id: str,
    user_id: str,
    status: str,
    *,
    require_existing: bool = False,
) -> EventAttendee:
    """Insert or update a user's RSVP and resync ``rsvped_ids``.

    With ``require_existing`` the user must already have an attendee row
    (accepted, declined, pending or invited); otherwise one is created.
    """
    if not user_id or not status:
        raise ValidationError("user_id and status are required")
    if status not in RSVP_STATUSES:
        raise ValidationError("status must be accepted, declined, or pending")

    event = _locked_event(session, event_id)
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    attendee = _get_attendee(session, event_id, user_id)
    if attendee is None:
        if require_existing:
            raise NotFoundError(
                "RSVP not found. User must have an existing RSVP to update."
            )
        attendee = EventAttendee(event_id=event_id, user_id=user_id)
    attendee.status = status
    attendee.rsvp_date = utcnow()
    session.add(attendee)

    if status == "accepted":
        event.rsvped_ids = with_id(event.rsvped_ids, user_id)
    else:
        event.rsvped_ids = without_id(event.rsvped_ids, user_id)
    session.add(event)
    session.flush()

    creator_type, creator_message, self_type, self_message = _STATUS_NOTIFICATIONS[
        status
    ]
    _notify(
        session,
        event,
        user,
        creator_type=creator_type,
        creator_message=creator_message,
        self_type=self_type,
        self_message=self_message,
        status=status,
    )
    return attendee


def delete_rsvp(session: Session, event_id: str, user_id: str) -> None:
    """Remove a user's RSVP and drop them from ``rsvped_ids``."""
    if not user_id:
        raise ValidationError("user_id is required")
    event = _locked_event(session, event_id)
    attendee = _get_attendee(session, event_id, user_id)
    if attendee is None:
        raise NotFoundError("RSVP not found")

    was_accepted = user_id in (event.rsvped_ids or [])
    session.delete(attendee)
    event.rsvped_ids = without_id(event.rsvped_ids, user_id)
    session.add(event)
    session.flush()

    user = session.get(User, user_id)
    if user is None:
        return
    _notify(
        session,
        event,
        user,
        creator_type="event_rsvp_cancel",
        creator_message="{username} cancelled their RSVP to {title}",
        self_type="event_rsvp_cancel_self",
        self_message="You cancelled your RSVP to {title}",
        status="cancelled",
        notify_creator=was_accepted,
    )


def get_rsvp(session: Session, event_id: str, user_id: str) -> EventAttendee | None:
    if not user_id:
        raise ValidationError("user_id query parameter is required")
    return _get_attendee(session, event_id, user_id)


def list_event_rsvps(session: Session, event_id: str) -> Sequence[tuple[EventAttendee, User]]:
    stmt = (
        select(EventAttendee, User)
        .join(User, EventAttendee.user_id == User.id)
        .where(EventAttendee.event_id == event_id)
        .order_by(EventAttendee.rsvp_date.desc())
    )
    return session.execute(stmt).all()


def accepted_user_ids(session: Session, event_id: str) -> list[str]:
    stmt = select(EventAttendee.user_id).where(
        EventAttendee.event_id == event_id, EventAttendee.status == "accepted"
    )
    return list(session.scalars(stmt).all())


def serialize_rsvp(attendee: EventAttendee, user: User | None = None) -> dict:
    payload = {
        "id": attendee.id,
        "event_id": attendee.event_id,
        "user_id": attendee.user_id,
        "status": attendee.status,
        "rsvp_date": isoformat(attendee.rsvp_date),
    }
    if user is not None:
        payload.update(
            {
                "username": user.username,
                "full_name": user.full_name,
                "profile_picture_url": user.profile_picture_url,
            }
        )
    return payload
