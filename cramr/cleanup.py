"""Retention purge for past events and stale RSVPs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from .config import settings
from .database import get_session
from .models import Event, EventAttendee
from .uploads import remove_material_files
from .utils import utcnow, without_id

# Use uvicorn's error logger so purge messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")


def purge_old_entries(now: datetime | None = None) -> dict[str, int]:
    """Delete events and attendee rows past their retention windows.

    Events are aged by ``date_and_time``; attendee rows by ``rsvp_date``.
    Events that survive have their ``rsvped_ids`` repaired for any accepted
    attendee row removed here.
    """
    current = now or utcnow()
    event_cutoff = current - timedelta(days=settings.event_retention_days)
    attendee_cutoff = current - timedelta(days=settings.attendee_retention_days)
    stats = {"events": 0, "attendees": 0}
    stored_names: list[str] = []

    with get_session() as session:
        old_events = session.scalars(
            select(Event).where(
                Event.date_and_time.is_not(None), Event.date_and_time < event_cutoff
            )
        ).all()
        for event in old_events:
            stored_names.extend(material.stored_name for material in event.materials)
            session.delete(event)
            stats["events"] += 1
        session.flush()

        stale = session.scalars(
            select(EventAttendee).where(EventAttendee.rsvp_date < attendee_cutoff)
        ).all()
        touched: dict[str, Event] = {}
        for attendee in stale:
            if attendee.status == "accepted":
                event = attendee.event
                if event is not None:
                    event.rsvped_ids = without_id(event.rsvped_ids, attendee.user_id)
                    touched[event.id] = event
            session.delete(attendee)
            stats["attendees"] += 1
        session.add_all(touched.values())

    if stored_names:
        remove_material_files(stored_names)
    logger.info(
        "Purged %d event(s) before %s and %d attendee row(s) before %s",
        stats["events"],
        event_cutoff.isoformat(),
        stats["attendees"],
        attendee_cutoff.isoformat(),
    )
    return stats
