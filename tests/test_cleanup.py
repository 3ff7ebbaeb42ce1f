from __future__ import annotations

import dataclasses
from datetime import timedelta

from cramr import cleanup, crud, rsvp, study, uploads
from cramr.database import get_session
from cramr.models import EventAttendee
from cramr.utils import utcnow


def test_purge_removes_old_events_and_stale_rsvps(make_user, make_event):
    now = utcnow()
    host = make_user("host")
    old_guest = make_user("old_guest")
    new_guest = make_user("new_guest")
    past_id = make_event(host, title="Last semester", date_and_time=now - timedelta(days=45))
    current_id = make_event(host, title="This week", date_and_time=now + timedelta(days=2))
    undated_id = make_event(host, title="Someday")

    with get_session() as session:
        rsvp.set_rsvp(session, current_id, old_guest, "accepted")
        rsvp.set_rsvp(session, current_id, new_guest, "accepted")
    with get_session() as session:
        stale = rsvp.get_rsvp(session, current_id, old_guest)
        stale.rsvp_date = now - timedelta(days=90)

    stats = cleanup.purge_old_entries(now=now)

    assert stats == {"events": 1, "attendees": 1}
    with get_session() as session:
        assert crud.get_event(session, past_id) is None
        assert crud.get_event(session, undated_id) is not None
        current = crud.get_event(session, current_id)
        assert current.rsvped_ids == [new_guest]
        remaining = [row.user_id for row in session.query(EventAttendee).all()]
        assert remaining == [new_guest]


def test_purge_deletes_material_files(monkeypatch, tmp_path, make_user, make_event):
    patched = dataclasses.replace(uploads.settings, upload_dir=tmp_path)
    monkeypatch.setattr(uploads, "settings", patched)
    now = utcnow()
    host = make_user("host")
    event_id = make_event(host, date_and_time=now - timedelta(days=60))

    material_file = patched.material_dir / "notes.pdf"
    material_file.parent.mkdir(parents=True, exist_ok=True)
    material_file.write_bytes(b"pdf")
    stored = uploads.StoredFile(
        stored_name="notes.pdf",
        original_name="notes.pdf",
        content_type="application/pdf",
        size=3,
        path=material_file,
    )
    with get_session() as session:
        study.add_material(session, event_id, host, stored, title="Notes")

    cleanup.purge_old_entries(now=now)

    assert not material_file.exists()
