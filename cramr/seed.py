"""Development helpers for populating fake students, study sessions and RSVPs."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .auth import get_user_by_email, get_user_by_username, register_user
from .crud import create_event
from .database import get_session
from .models import Event, User
from .rsvp import RSVP_STATUSES, set_rsvp
from .social import follow
from .storage import init_db
from .utils import utcnow

SEED_PASSWORD = "Password1!"

_courses = [
    "CSE 110",
    "CSE 120",
    "MATH 20C",
    "MATH 18",
    "PHYS 2A",
    "CHEM 6A",
    "BILD 1",
    "COGS 9",
    "ECON 1",
]
_session_types = [
    "Study Session",
    "Midterm Review",
    "Problem Set Grind",
    "Final Cram",
    "Lab Prep",
    "Office Hours Recap",
]
_majors = [
    "Computer Science",
    "Mathematics",
    "Biology",
    "Cognitive Science",
    "Economics",
    "Physics",
]
_years = ["1", "2", "3", "4", "5+"]
_formats = ["In-Person", "Online"]
_banner_colors = ["1", "2", "3", "4", "5", "6"]


def seed_fake_data(
    *,
    user_count: int = 10,
    max_events_per_user: int = 2,
    max_rsvps_per_event: int = 5,
    follow_percentage: int = 20,
) -> dict[str, int]:
    """Populate the database with synthetic users, events, follows and RSVPs."""
    if user_count < 0:
        raise ValueError("user_count must be >= 0")
    if max_events_per_user < 0:
        raise ValueError("max_events_per_user must be >= 0")
    if max_rsvps_per_event < 0:
        raise ValueError("max_rsvps_per_event must be >= 0")
    if not 0 <= follow_percentage <= 100:
        raise ValueError("follow_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "follows": 0, "rsvps": 0}

    with get_session() as session:
        users = [_create_user(session, fake) for _ in range(user_count)]
        stats["users"] = len(users)

        for follower in users:
            for target in users:
                if follower.id == target.id:
                    continue
                if random.randint(1, 100) <= follow_percentage:
                    follow(session, follower.id, target.id)
                    stats["follows"] += 1

        for creator in users:
            if max_events_per_user == 0:
                break
            for _ in range(random.randint(1, max_events_per_user)):
                event = _create_event(session, fake, creator)
                stats["events"] += 1
                stats["rsvps"] += _create_rsvps(
                    session, event, users, max_rsvps_per_event
                )

    return stats


def _create_user(session: Session, fake: Faker) -> User:
    for _ in range(20):
        username = fake.user_name()
        email = f"{username}@{fake.free_email_domain()}"
        if get_user_by_username(session, username) or get_user_by_email(session, email):
            continue
        user = register_user(
            session,
            username=username,
            password=SEED_PASSWORD,
            email=email,
            full_name=fake.name(),
        )
        user.major = random.choice(_majors)
        user.year = random.choice(_years)
        user.bio = fake.sentence() if random.random() < 0.6 else None
        session.add(user)
        return user
    raise RuntimeError("Failed to create a unique username")


def _create_event(session: Session, fake: Faker, creator: User) -> Event:
    course = random.choice(_courses)
    event_format = random.choice(_formats)
    values = {
        "creator_id": creator.id,
        "title": f"{course} {random.choice(_session_types)}",
        "description": fake.paragraph(nb_sentences=3),
        "class_name": course,
        "date_and_time": _random_start_time(),
        "tags": random.sample(["exam", "homework", "quiz", "group", "chill"], k=2),
        "capacity": random.choice([None, 4, 6, 8, 12]),
        "event_format": event_format,
        "banner_color": random.choice(_banner_colors),
    }
    if event_format == "Online":
        values["virtual_room_link"] = fake.url()
    else:
        values["location"] = f"{fake.last_name()} Library"
        values["study_room"] = f"Room {random.randint(100, 499)}"
    return create_event(session, values)


def _random_start_time() -> datetime:
    now = utcnow()
    day_offset = random.randint(-3, 21)
    minute_offset = random.randint(8 * 60, 22 * 60)
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(
        days=day_offset, minutes=minute_offset
    )


def _create_rsvps(
    session: Session, event: Event, users: list[User], max_rsvps: int
) -> int:
    if max_rsvps <= 0:
        return 0
    candidates = [user for user in users if user.id != event.creator_id]
    total = random.randint(0, min(max_rsvps, len(candidates)))
    for user in random.sample(candidates, k=total):
        set_rsvp(session, event.id, user.id, random.choice(RSVP_STATUSES))
    return total
