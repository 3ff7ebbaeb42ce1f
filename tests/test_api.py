from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from cramr import mailer, social, study, uploads
from cramr.database import get_session
from cramr.models import Event, User
from cramr.storage import fetch_root_token
from cramr.utils import utcnow


@pytest.fixture()
def upload_dir(monkeypatch, tmp_path):
    patched = dataclasses.replace(uploads.settings, upload_dir=tmp_path)
    monkeypatch.setattr(uploads, "settings", patched)
    monkeypatch.setattr(study, "settings", patched)
    return tmp_path


def _signup(client, username: str, password: str = "Password1!") -> dict:
    response = client.post(
        "/signup",
        json={
            "username": username,
            "password": password,
            "email": f"{username}@example.edu",
            "full_name": username.title(),
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["user"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["uptime"] >= 0


def test_unknown_route_uses_error_shape(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_signup_login_and_conflicts(client):
    user = _signup(client, "alice")
    assert set(user) == {"id", "username", "email", "full_name"}

    duplicate = client.post(
        "/signup",
        json={
            "username": "alice",
            "password": "Password1!",
            "email": "alice@example.edu",
            "full_name": "Alice",
        },
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["errors"]["username"] == "Username is already taken"

    login = client.post(
        "/login", json={"email": "alice@example.edu", "password": "Password1!"}
    )
    assert login.status_code == 200
    assert login.json()["user"]["followers"] == 0

    bad = client.post("/login", json={"email": "alice@example.edu", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid password"}

    missing = client.post("/signup", json={"username": "bob"})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing required fields"


def test_user_payload_never_exposes_credentials(client):
    user = _signup(client, "alice")
    body = client.get(f"/users/{user['id']}").json()
    assert body["username"] == "alice"
    assert "password_hash" not in body
    assert "verification_code" not in body
    assert client.get("/users/missing").status_code == 404


def test_follow_block_routes(client):
    alice = _signup(client, "alice")
    bob = _signup(client, "bob")

    response = client.post(f"/users/{alice['id']}/follow", json={"userId": bob["id"]})
    assert response.status_code == 201
    assert response.json()["message"] == "Now following user"
    assert (
        client.post(f"/users/{alice['id']}/follow", json={"userId": bob["id"]}).status_code
        == 409
    )
    assert (
        client.post(f"/users/{alice['id']}/follow", json={"userId": alice["id"]}).status_code
        == 400
    )

    followers = client.get(f"/users/{bob['id']}/followers").json()["followers"]
    assert [f["username"] for f in followers] == ["alice"]
    assert followers[0]["follow_date"]
    profile = client.get(f"/users/{bob['id']}/profile").json()
    assert profile["followers"] == 1

    block = client.post(f"/users/{bob['id']}/block", json={"blockedId": alice["id"]})
    assert block.status_code == 201
    assert client.get(f"/users/{bob['id']}/followers").json()["followers"] == []
    check = client.get(f"/users/{bob['id']}/blocks/check/{alice['id']}").json()
    assert check == {"success": True, "is_blocked": True}
    reverse = client.get(f"/users/{alice['id']}/blocks/check/{bob['id']}").json()
    assert reverse["is_blocked"] is False
    blocked = client.get(f"/users/{bob['id']}/blocks").json()["blocked_users"]
    assert [b["username"] for b in blocked] == ["alice"]
    assert blocked[0]["block_date"]

    assert (
        client.post(f"/users/{alice['id']}/follow", json={"userId": bob["id"]}).status_code
        == 403
    )
    unblock = client.delete(f"/users/{bob['id']}/blocks/{alice['id']}")
    assert unblock.json()["message"] == "Unblocked Successfully!"
    assert client.delete(f"/users/{bob['id']}/blocks/{alice['id']}").status_code == 404


def test_event_lifecycle_and_feed_filtering(client, make_user):
    host = make_user("host")
    guest = make_user("guest")
    blocked = make_user("blocked")

    created = client.post(
        "/events",
        json={
            "title": "Orgo Cram",
            "creator_id": host,
            "class": "CHEM 40A",
            "date_and_time": "2030-05-01T18:00:00Z",
            "tags": ["exam"],
            "invitePeople": [guest],
        },
    )
    assert created.status_code == 201, created.text
    event = created.json()["event"]
    assert event["class"] == "CHEM 40A"
    assert event["date_and_time"] == "2030-05-01T18:00:00"

    client.post(f"/users/{host}/block", json={"blockedId": blocked})
    feed_for_blocked = client.get("/events", params={"userId": blocked}).json()
    assert feed_for_blocked == []
    feed = client.get("/events", params={"userId": guest}).json()
    assert [e["id"] for e in feed] == [event["id"]]
    assert feed[0]["invited_ids"] == [guest]

    ids = client.get("/events/ids").json()["events"]
    assert ids[0]["title"] == "Orgo Cram"
    assert client.get(f"/users/{host}/events").json()["events"][0]["id"] == event["id"]

    updated = client.put(f"/events/{event['id']}", json={"title": "Orgo Final Cram"})
    assert updated.json()["event"]["title"] == "Orgo Final Cram"
    assert client.put(f"/events/{event['id']}", json={}).status_code == 400
    moved = client.put(f"/events/{event['id']}/location", json={"location": "Geisel 2"})
    assert moved.json()["event"]["location"] == "Geisel 2"

    single = client.get(f"/events/{event['id']}").json()
    assert single["title"] == "Orgo Final Cram"

    deleted = client.delete(f"/events/{event['id']}")
    assert deleted.json()["message"] == "Event deleted successfully"
    assert client.get(f"/events/{event['id']}").status_code == 404


def test_event_validation_errors(client, make_user):
    host = make_user("host")
    missing = client.post("/events", json={"creator_id": host})
    assert missing.status_code == 400
    bad_type = client.post(
        "/events", json={"creator_id": host, "title": "x", "tags": "not-a-list"}
    )
    assert bad_type.status_code == 400
    assert bad_type.json()["error"] == "Invalid request"
    assert bad_type.json()["details"]


def test_rsvp_routes(client, make_user, make_event):
    host = make_user("host")
    guest = make_user("guest")
    event_id = make_event(host, title="Stats Review")

    none_yet = client.get(f"/events/{event_id}/rsvpd", params={"user_id": guest}).json()
    assert none_yet["rsvp"] is None
    assert (
        client.put(
            f"/events/{event_id}/rsvpd", json={"user_id": guest, "status": "accepted"}
        ).status_code
        == 404
    )

    created = client.post(
        f"/events/{event_id}/rsvpd", json={"user_id": guest, "status": "accepted"}
    )
    assert created.status_code == 200
    assert created.json()["rsvp"]["status"] == "accepted"
    updated = client.put(
        f"/events/{event_id}/rsvpd", json={"user_id": guest, "status": "declined"}
    )
    assert updated.json()["rsvp"]["status"] == "declined"
    bad = client.post(f"/events/{event_id}/rsvpd", json={"user_id": guest, "status": "maybe"})
    assert bad.status_code == 400

    rsvps = client.get(f"/events/{event_id}/rsvps").json()["rsvps"]
    assert [(r["username"], r["status"]) for r in rsvps] == [("guest", "declined")]

    removed = client.request(
        "DELETE", f"/events/{event_id}/rsvpd", json={"user_id": guest}
    )
    assert removed.json()["message"] == "RSVP removed successfully"
    assert client.request("DELETE", f"/events/{event_id}/rsvpd").status_code == 400

    notes = client.get(f"/users/{host}/notifications").json()
    assert notes["total"] == 2
    types = {n["type"] for n in notes["notifications"]["Today"]}
    assert types == {"event_rsvp", "event_rsvp_decline"}


def test_notification_routes(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    client.post(f"/users/{alice}/follow", json={"userId": bob})

    assert client.get(f"/users/{bob}/notifications/unread-count").json()["unread_count"] == 1
    (note,) = client.get(f"/users/{bob}/notifications").json()["notifications"]["Today"]
    assert client.put(f"/users/{alice}/notifications/{note['id']}/read").status_code == 404
    read = client.put(f"/users/{bob}/notifications/{note['id']}/read")
    assert read.json()["notification"]["is_read"] is True
    assert client.put(f"/users/{bob}/notifications/read-all").json()["updated_count"] == 0
    assert client.delete(f"/users/{bob}/notifications/{note['id']}").status_code == 200
    assert client.get(f"/users/{bob}/notifications").json()["total"] == 0


def test_comments_and_saved_events(client, make_user, make_event):
    host = make_user("host")
    fan = make_user("fan")
    event_id = make_event(host)

    comment = client.post(
        f"/events/{event_id}/comments", json={"user_id": fan, "content": "count me in"}
    )
    assert comment.status_code == 201
    comment_id = comment.json()["comment"]["id"]
    listed = client.get(f"/events/{event_id}/comments").json()["comments"]
    assert [c["content"] for c in listed] == ["count me in"]
    denied = client.request(
        "DELETE", f"/events/{event_id}/comments/{comment_id}", json={"user_id": host}
    )
    assert denied.status_code == 404

    saved = client.post(f"/users/{fan}/saved-events", json={"event_id": event_id})
    assert saved.json()["message"] == "Event saved successfully"
    again = client.post(f"/users/{fan}/saved-events", json={"event_id": event_id})
    assert again.json() == {"success": True, "message": "Event already saved", "saved": True}
    check = client.get(f"/users/{fan}/saved-events/{event_id}").json()
    assert check["is_saved"] is True
    listing = client.get(f"/users/{fan}/saved-events").json()["saved_events"]
    assert [e["id"] for e in listing] == [event_id]
    removed = client.delete(f"/users/{fan}/saved-events/{event_id}")
    assert removed.json()["message"] == "Event removed from saved events"
    assert client.get(f"/users/{fan}/saved-events/{event_id}").json()["is_saved"] is False


def test_messages_routes(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")

    sent = client.post(
        "/messages", json={"sender_id": alice, "recipient_id": bob, "content": "hi"}
    )
    assert sent.status_code == 201
    message_id = sent.json()["message"]["id"]
    thread = client.get(f"/messages/conversation/{bob}/{alice}").json()["messages"]
    assert [m["content"] for m in thread] == ["hi"]
    convos = client.get(f"/users/{bob}/conversations").json()["conversations"]
    assert convos[0]["other_user"]["id"] == alice
    assert client.get(f"/users/{bob}/messages/unread-count").json()["unread_count"] == 1
    marked = client.put("/messages/read", json={"user_id": bob, "other_user_id": alice})
    assert marked.json()["updated_count"] == 1
    assert (
        client.request("DELETE", f"/messages/{message_id}", json={"user_id": bob}).status_code
        == 404
    )
    assert (
        client.request("DELETE", f"/messages/{message_id}", json={"user_id": alice}).status_code
        == 200
    )


def test_search_leaderboard_and_preferences(client, make_user, make_event):
    me = make_user("sam")
    make_user("samira")
    make_event(me)

    results = client.get("/users/search", params={"q": "sam", "currentUserId": me}).json()
    assert [u["username"] for u in results] == ["samira"]
    assert client.get("/users/search", params={"q": "s"}).status_code == 400

    board = client.get("/leaderboard").json()["leaderboard"]
    assert board == [{"id": me, "name": "sam", "avatar": None, "events": 1}]

    prefs = client.put(
        f"/users/{me}/preferences", json={"email_notifications": False, "theme": "dark"}
    ).json()["preferences"]
    assert prefs["email_notifications"] is False
    assert prefs["theme"] == "dark"
    assert client.get(f"/users/{me}/preferences").json()["preferences"]["theme"] == "light"

    profile = client.put(f"/users/{me}/profile", json={"major": "Math", "year": "3"})
    assert profile.json()["user"]["major"] == "Math"


def test_flashcard_routes(client, make_user):
    owner = make_user("owner")
    created = client.post(
        "/flashcard_sets", json={"user_id": owner, "name": "Bio", "description": None}
    )
    assert created.status_code == 201
    set_id = created.json()["data"]["id"]
    assert client.get("/flashcard_sets").status_code == 400
    sets = client.get("/flashcard_sets", params={"user_id": owner}).json()["data"]
    assert [s["name"] for s in sets] == ["Bio"]

    card = client.post(
        f"/flashcards/{set_id}",
        json={"user_id": owner, "front": "ATP", "back": "energy", "position": 0},
    )
    assert card.status_code == 201
    card_id = card.json()["data"]["id"]
    flipped = client.put(f"/flashcards/{card_id}", json={"user_id": owner, "is_checked": True})
    assert flipped.json()["data"]["is_checked"] is True
    cards = client.get(f"/flashcards/{set_id}", params={"user_id": owner}).json()["data"]
    assert [c["front"] for c in cards] == ["ATP"]

    deleted = client.delete(f"/flashcard_sets/{set_id}", params={"user_id": owner})
    assert deleted.json() == {"message": "Flashcard set deleted successfully"}
    assert client.get(f"/flashcards/{set_id}", params={"user_id": owner}).status_code == 404


def test_material_upload_routes(client, make_user, make_event, upload_dir):
    host = make_user("host")
    stranger = make_user("stranger")
    event_id = make_event(host)

    denied = client.post(
        f"/events/{event_id}/materials",
        data={"title": "Notes", "userId": stranger},
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert denied.status_code == 403
    wrong_type = client.post(
        f"/events/{event_id}/materials",
        data={"title": "Notes", "userId": host},
        files={"file": ("notes.txt", b"text", "text/plain")},
    )
    assert wrong_type.status_code == 400

    created = client.post(
        f"/events/{event_id}/materials",
        data={"title": "Notes", "userId": host, "isPublic": "false"},
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert created.status_code == 201, created.text
    material = created.json()["material"]
    assert material["is_public"] is False
    assert material["file_name"] == "notes.pdf"
    assert len(list((upload_dir / "study-materials").iterdir())) == 1

    listed = client.get(f"/events/{event_id}/materials").json()["materials"]
    assert [m["id"] for m in listed] == [material["id"]]
    renamed = client.put(
        f"/events/{event_id}/materials/{material['id']}",
        json={"userId": host, "title": "Week 1"},
    )
    assert renamed.json()["material"]["title"] == "Week 1"

    removed = client.delete(
        f"/events/{event_id}/materials/{material['id']}", params={"userId": host}
    )
    assert removed.status_code == 200
    assert list((upload_dir / "study-materials").iterdir()) == []
    with get_session() as session:
        assert session.get(Event, event_id).materials_count == 0


def test_image_uploads(client, make_user, upload_dir):
    user_id = make_user("alice")

    picture = client.post(
        f"/users/{user_id}/profile-picture",
        files={"profile_picture": ("me.png", b"png-bytes", "image/png")},
    )
    assert picture.status_code == 200, picture.text
    body = picture.json()
    assert body["profile_picture_url"].endswith(f"/uploads/{body['filename']}")
    with get_session() as session:
        assert session.get(User, user_id).profile_picture_url == body["profile_picture_url"]

    image = client.post("/upload/image", files={"image": ("a.gif", b"gif", "image/gif")})
    assert image.json()["imageUrl"] == f"/uploads/{image.json()['filename']}"
    assert image.json()["originalName"] == "a.gif"
    not_image = client.post(
        "/upload/image", files={"image": ("a.pdf", b"pdf", "application/pdf")}
    )
    assert not_image.status_code == 400
    assert not_image.json() == {"error": "Only image files are allowed!"}


def test_password_reset_routes(client, monkeypatch):
    _signup(client, "alice")
    sent: dict[str, str] = {}

    def fake_send(email, username, code):
        sent["code"] = code
        return True

    monkeypatch.setattr(mailer, "send_reset_code", fake_send)

    response = client.post("/auth/reset-password", json={"email": "alice@example.edu"})
    assert response.json()["message"] == "Verification code sent successfully"
    token = client.post(
        "/auth/verify-reset-code",
        json={"email": "alice@example.edu", "verificationCode": sent["code"]},
    ).json()["token"]
    weak = client.post(
        "/auth/reset-password/confirm", json={"token": token, "newPassword": "weak"}
    )
    assert weak.status_code == 400
    done = client.post(
        "/auth/reset-password/confirm", json={"token": token, "newPassword": "Better1!!"}
    )
    assert done.json()["message"] == "Password reset successfully!"
    login = client.post(
        "/login", json={"email": "alice@example.edu", "password": "Better1!!"}
    )
    assert login.status_code == 200


def test_password_reset_mail_failure(client, monkeypatch):
    _signup(client, "alice")
    monkeypatch.setattr(mailer, "send_reset_code", lambda *args: False)

    response = client.post("/auth/reset-password", json={"email": "alice@example.edu"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send verification code"}


def test_two_factor_routes(client, monkeypatch):
    sent: dict[str, str] = {}

    def fake_send(email, username, code):
        sent[email] = code
        return True

    monkeypatch.setattr(mailer, "send_otp", fake_send)

    missing = client.post("/twofactor/send-code", json={"userEmail": "a@example.edu"})
    assert missing.status_code == 400
    response = client.post(
        "/twofactor/send-code", json={"userEmail": "a@example.edu", "username": "a"}
    )
    assert response.json() == {"success": True, "message": "OTP sent successfully"}
    assert "otp" not in response.json()

    wrong = "000000" if sent["a@example.edu"] != "000000" else "111111"
    bad = client.post("/twofactor/verify-code", json={"userEmail": "a@example.edu", "otp": wrong})
    assert bad.json() == {"error": "Invalid OTP"}
    ok = client.post(
        "/twofactor/verify-code",
        json={"userEmail": "a@example.edu", "otp": int(sent["a@example.edu"])},
    )
    assert ok.json()["message"] == "OTP verified successfully"
    again = client.post(
        "/twofactor/verify-code",
        json={"userEmail": "a@example.edu", "otp": sent["a@example.edu"]},
    )
    assert again.status_code == 400


def test_admin_purge_requires_root_token(client, make_user, make_event):
    host = make_user("host")
    make_event(host, date_and_time=utcnow() - timedelta(days=90))

    assert client.post("/admin/delete-old-entries").status_code == 403
    assert (
        client.post(
            "/admin/delete-old-entries", headers={"Authorization": "Bearer wrong"}
        ).status_code
        == 403
    )
    response = client.post(
        "/admin/delete-old-entries",
        headers={"Authorization": f"Bearer {fetch_root_token()}"},
    )
    assert response.status_code == 200
    assert response.json()["deleted"] == {"events": 1, "attendees": 0}


def test_replacing_profile_picture_removes_old_file(client, make_user, upload_dir):
    user_id = make_user("alice")
    with get_session() as session:
        session.get(User, user_id).profile_picture_url = "https://cdn.example.com/a.png"

    first = client.post(
        f"/users/{user_id}/profile-picture",
        files={"profile_picture": ("one.png", b"first", "image/png")},
    ).json()
    assert (upload_dir / first["filename"]).exists()

    second = client.post(
        f"/users/{user_id}/profile-picture",
        files={"profile_picture": ("two.png", b"second", "image/png")},
    ).json()

    assert not (upload_dir / first["filename"]).exists()
    assert (upload_dir / second["filename"]).read_bytes() == b"second"
    with get_session() as session:
        assert session.get(User, user_id).profile_picture_url == second["profile_picture_url"]


def test_racing_duplicate_follow_returns_conflict(client, make_user, monkeypatch):
    alice = make_user("alice")
    bob = make_user("bob")
    assert client.post(f"/users/{alice}/follow", json={"userId": bob}).status_code == 201

    monkeypatch.setattr(social, "_get_follow", lambda *args: None)
    response = client.post(f"/users/{alice}/follow", json={"userId": bob})

    assert response.status_code == 409
    assert response.json() == {"error": "Already following this user"}
