from __future__ import annotations

import pytest
from sqlalchemy import func, select

from cramr.database import get_session
from cramr.models import Event, EventAttendee, Follow, User
from cramr.seed import seed_fake_data


def test_seed_creates_users_events_and_follows():
    stats = seed_fake_data(
        user_count=3, max_events_per_user=2, max_rsvps_per_event=2, follow_percentage=100
    )

    assert stats["users"] == 3
    assert stats["follows"] == 6
    assert 3 <= stats["events"] <= 6
    with get_session() as session:
        assert session.scalar(select(func.count()).select_from(User)) == 3
        assert session.scalar(select(func.count()).select_from(Event)) == stats["events"]
        assert session.scalar(select(func.count()).select_from(Follow)) == 6
        assert (
            session.scalar(select(func.count()).select_from(EventAttendee)) == stats["rsvps"]
        )
        for user in session.scalars(select(User)):
            assert user.followers == 2
            assert user.following == 2


def test_seed_without_events():
    stats = seed_fake_data(user_count=2, max_events_per_user=0, follow_percentage=0)
    assert stats == {"users": 2, "events": 0, "follows": 0, "rsvps": 0}


def test_seed_rejects_bad_percentage():
    with pytest.raises(ValueError, match="between 0 and 100"):
        seed_fake_data(follow_percentage=101)
