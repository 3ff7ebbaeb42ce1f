"""FastAPI application for Cramr."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
import tomllib

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import auth, crud, mailer, messaging, notifications, rsvp, social, study, uploads
from .cleanup import purge_old_entries
from .config import settings
from .database import SessionLocal
from .errors import CramrError, ValidationError
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db, verify_root_token
from .utils import isoformat, utcnow

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

_STARTED_AT = time.monotonic()


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("cramr")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="Cramr", version=APP_VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.mount(
    "/uploads",
    StaticFiles(directory=str(settings.upload_dir), check_dir=False),
    name="uploads",
)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _require_root_access(request: Request) -> None:
    if not verify_root_token(_get_bearer_token(request)):
        raise HTTPException(status_code=403, detail="Forbidden")


@app.exception_handler(CramrError)
async def cramr_error_handler(request: Request, exc: CramrError):
    return JSONResponse({"error": exc.message, **exc.extra}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if isinstance(exc, OperationalError) and "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {"error": "Database busy", "details": raw}, status_code=503
        )
    logger.error(
        "Database error on %s %s: %s", request.method, request.url.path, raw
    )
    return JSONResponse({"error": "Database error", "details": raw}, status_code=500)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Payloads


class SignupPayload(BaseModel):
    username: str | None = None
    password: str | None = None
    email: str | None = None
    full_name: str | None = None
    created_at: datetime | None = None


class LoginPayload(BaseModel):
    email: str | None = None
    password: str | None = None


class ResetRequestPayload(BaseModel):
    email: str | None = None


class ResetCodePayload(BaseModel):
    email: str | None = None
    verification_code: str | None = Field(None, alias="verificationCode")

    model_config = ConfigDict(populate_by_name=True)


class ResetConfirmPayload(BaseModel):
    token: str | None = None
    new_password: str | None = Field(None, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class OtpSendPayload(BaseModel):
    user_email: str | None = Field(None, alias="userEmail")
    username: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class OtpVerifyPayload(BaseModel):
    user_email: str | None = Field(None, alias="userEmail")
    otp: str | int | None = None

    model_config = ConfigDict(populate_by_name=True)


class EventCreatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    location: str | None = None
    class_name: str | None = Field(None, alias="class")
    date_and_time: datetime | None = None
    tags: list[str] | None = None
    capacity: int | None = None
    invite_people: list[str] | None = Field(None, alias="invitePeople")
    creator_id: str | None = None
    virtual_room_link: str | None = None
    study_room: str | None = None
    event_format: str | None = None
    banner_color: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class EventUpdatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    location: str | None = None
    class_name: str | None = Field(None, alias="class")
    date_and_time: datetime | None = None
    tags: list[str] | None = None
    capacity: int | None = None
    virtual_room_link: str | None = None
    study_room: str | None = None
    event_format: str | None = None
    banner_color: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class LocationPayload(BaseModel):
    location: str | None = None


class ProfilePayload(BaseModel):
    full_name: str | None = None
    major: str | None = None
    year: str | None = None
    bio: str | None = None
    profile_picture_url: str | None = None
    banner_color: str | None = None
    school: str | None = None
    pronouns: str | None = None
    transfer: bool | None = None
    prompt_1: str | None = None
    prompt_1_answer: str | None = None
    prompt_2: str | None = None
    prompt_2_answer: str | None = None
    prompt_3: str | None = None
    prompt_3_answer: str | None = None


class AccountPayload(BaseModel):
    email: str | None = None
    password: str | None = None
    phone_number: str | None = None


class PreferencesPayload(BaseModel):
    push_notifications: bool | None = None
    email_notifications: bool | None = None
    sms_notifications: bool | None = None
    theme: str | None = None


class FollowPayload(BaseModel):
    user_id: str | None = Field(None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class BlockPayload(BaseModel):
    blocked_id: str | None = Field(None, alias="blockedId")

    model_config = ConfigDict(populate_by_name=True)


class RSVPPayload(BaseModel):
    user_id: str | None = None
    status: str | None = None


class UserRefPayload(BaseModel):
    user_id: str | None = None


class CommentPayload(BaseModel):
    user_id: str | None = None
    content: str | None = None


class SaveEventPayload(BaseModel):
    event_id: str | None = None


class MessagePayload(BaseModel):
    sender_id: str | None = None
    recipient_id: str | None = None
    content: str | None = None


class MarkReadPayload(BaseModel):
    user_id: str | None = None
    other_user_id: str | None = None


class FlashcardSetPayload(BaseModel):
    user_id: str | None = None
    name: str | None = None
    description: str | None = None


class FlashcardPayload(BaseModel):
    user_id: str | None = None
    front: str | None = None
    back: str | None = None
    position: int | None = None
    is_checked: bool | None = None


class MaterialUpdatePayload(BaseModel):
    user_id: str | None = Field(None, alias="userId")
    title: str | None = None
    description: str | None = None
    is_public: bool | None = Field(None, alias="isPublic")

    model_config = ConfigDict(populate_by_name=True)


def _user_ref(payload: UserRefPayload | None) -> str | None:
    return payload.user_id if payload else None


def _follow_row(user, since: datetime, *, key: str) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "profile_picture_url": user.profile_picture_url,
        "banner_color": user.banner_color,
        key: isoformat(since),
    }


# Health and maintenance


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": isoformat(utcnow()),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
    }


@app.post("/admin/delete-old-entries")
def delete_old_entries(request: Request):
    _require_root_access(request)
    deleted = purge_old_entries()
    return {
        "success": True,
        "message": "Old entries deleted successfully",
        "deleted": deleted,
    }


# Accounts


@app.post("/signup", status_code=201)
def signup(payload: SignupPayload, db: Session = Depends(get_db)):
    user = auth.register_user(
        db,
        username=payload.username or "",
        password=payload.password or "",
        email=payload.email or "",
        full_name=payload.full_name or "",
        created_at=payload.created_at,
    )
    return {
        "success": True,
        "message": "User created successfully",
        "user": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
        },
    }


@app.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    user = auth.authenticate(db, payload.email or "", payload.password or "")
    return {
        "success": True,
        "message": "Login successful",
        "user": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
            "following": user.following or 0,
            "followers": user.followers or 0,
        },
    }


@app.post("/auth/reset-password")
def request_password_reset(payload: ResetRequestPayload, db: Session = Depends(get_db)):
    user, code = auth.start_password_reset(db, payload.email or "")
    if not mailer.send_reset_code(user.email, user.username, code):
        raise HTTPException(status_code=500, detail="Failed to send verification code")
    return {"success": True, "message": "Verification code sent successfully"}


@app.post("/auth/verify-reset-code")
def verify_reset_code(payload: ResetCodePayload, db: Session = Depends(get_db)):
    token = auth.verify_reset_code(
        db, payload.email or "", payload.verification_code or ""
    )
    return {
        "success": True,
        "message": "Verification code verified successfully",
        "token": token,
    }


@app.post("/auth/reset-password/confirm")
def confirm_password_reset(payload: ResetConfirmPayload, db: Session = Depends(get_db)):
    auth.confirm_password_reset(db, payload.token or "", payload.new_password or "")
    return {
        "success": True,
        "message": "Password reset successfully!",
        "details": "Your new password has been saved. You can now log in with your "
        "new password.",
        "timestamp": isoformat(utcnow()),
    }


@app.post("/twofactor/send-code")
def send_otp(payload: OtpSendPayload):
    if not payload.user_email or not payload.username:
        raise ValidationError("Email and username are required")
    code = auth.otp_store.issue(payload.user_email)
    if not mailer.send_otp(payload.user_email, payload.username, code):
        auth.otp_store.discard(payload.user_email)
        raise HTTPException(status_code=500, detail="Failed to send OTP email")
    return {"success": True, "message": "OTP sent successfully"}


@app.post("/twofactor/verify-code")
def verify_otp(payload: OtpVerifyPayload):
    otp = "" if payload.otp is None else str(payload.otp)
    auth.otp_store.verify(payload.user_email or "", otp)
    return {"success": True, "message": "OTP verified successfully"}


# Users


@app.get("/users/search")
def search_users(
    q: str | None = Query(None),
    current_user_id: str | None = Query(None, alias="currentUserId"),
    db: Session = Depends(get_db),
):
    users = crud.search_users(db, q or "", exclude_user_id=current_user_id)
    return [crud.serialize_user_summary(user) for user in users]


@app.get("/leaderboard")
def get_leaderboard(db: Session = Depends(get_db)):
    return {"success": True, "leaderboard": crud.leaderboard(db)}


@app.get("/users/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db)):
    return crud.serialize_user(crud.require_user(db, user_id))


@app.get("/users/{user_id}/profile")
def get_user_profile(user_id: str, db: Session = Depends(get_db)):
    return crud.user_profile(db, user_id)


@app.put("/users/{user_id}/profile")
def update_user_profile(
    user_id: str, payload: ProfilePayload, db: Session = Depends(get_db)
):
    user = crud.update_profile(db, user_id, payload.model_dump(exclude_unset=True))
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": crud.serialize_user(user),
    }


@app.put("/users/{user_id}/account")
def update_user_account(
    user_id: str, payload: AccountPayload, db: Session = Depends(get_db)
):
    user = crud.update_account(
        db,
        user_id,
        email=payload.email,
        password=payload.password,
        phone_number=payload.phone_number,
    )
    return {
        "success": True,
        "message": "Account updated successfully",
        "user": crud.serialize_user(user),
    }


@app.get("/users/{user_id}/preferences")
def get_preferences(user_id: str, db: Session = Depends(get_db)):
    user = crud.require_user(db, user_id)
    return {"success": True, "preferences": crud.get_preferences(user)}


@app.put("/users/{user_id}/preferences")
def update_preferences(
    user_id: str, payload: PreferencesPayload, db: Session = Depends(get_db)
):
    user = crud.update_preferences(db, user_id, payload.model_dump(exclude_unset=True))
    return {
        "success": True,
        "message": "Preferences updated successfully",
        "preferences": crud.get_preferences(user, payload.theme),
    }


@app.get("/users/{user_id}/events")
def get_user_events(user_id: str, db: Session = Depends(get_db)):
    return {"success": True, "events": crud.list_event_ids(db, creator_id=user_id)}


@app.post("/users/{user_id}/profile-picture")
def upload_profile_picture(
    user_id: str,
    profile_picture: UploadFile | None = File(None),
    db: Session = Depends(get_db),
):
    if profile_picture is None:
        raise ValidationError("No profile picture file provided")
    stored = uploads.store_image(profile_picture)
    user, previous = uploads.set_profile_picture(db, user_id, stored)
    db.commit()
    if previous and previous != stored.stored_name:
        uploads.remove_image_file(previous)
    return {
        "success": True,
        "message": "Profile picture uploaded successfully",
        "profile_picture_url": user.profile_picture_url,
        "filename": stored.stored_name,
        "user": crud.serialize_user(user),
    }


@app.post("/upload/image")
def upload_image(image: UploadFile | None = File(None)):
    stored = uploads.store_image(image)
    return {
        "success": True,
        "message": "Image uploaded successfully",
        "imageUrl": uploads.image_path(stored),
        "filename": stored.stored_name,
        "originalName": stored.original_name,
        "size": stored.size,
    }


# Follows and blocks


@app.post("/users/{user_id}/follow", status_code=201)
def follow_user(user_id: str, payload: FollowPayload, db: Session = Depends(get_db)):
    if not payload.user_id:
        raise ValidationError("userId is required")
    edge = social.follow(db, user_id, payload.user_id)
    return {
        "success": True,
        "message": "Now following user",
        "follow": {
            "id": edge.id,
            "follower_id": edge.follower_id,
            "following_id": edge.following_id,
            "created_at": isoformat(edge.created_at),
        },
    }


@app.delete("/users/{user_id}/follow/{target_id}")
def unfollow_user(user_id: str, target_id: str, db: Session = Depends(get_db)):
    social.unfollow(db, user_id, target_id)
    return {"success": True, "message": "Unfollowed successfully"}


@app.get("/users/{user_id}/following")
def get_following(user_id: str, db: Session = Depends(get_db)):
    rows = social.list_following(db, user_id)
    return {
        "success": True,
        "following": [_follow_row(user, since, key="follow_date") for user, since in rows],
    }


@app.get("/users/{user_id}/followers")
def get_followers(user_id: str, db: Session = Depends(get_db)):
    rows = social.list_followers(db, user_id)
    return {
        "success": True,
        "followers": [_follow_row(user, since, key="follow_date") for user, since in rows],
    }


@app.post("/users/{user_id}/block", status_code=201)
def block_user(user_id: str, payload: BlockPayload, db: Session = Depends(get_db)):
    if not payload.blocked_id:
        raise ValidationError("blockedId is required")
    entry = social.block(db, user_id, payload.blocked_id)
    return {
        "success": True,
        "message": "Blocked successfully and removed follow relationships!",
        "block": {
            "id": entry.id,
            "blocker_id": entry.blocker_id,
            "blocked_id": entry.blocked_id,
            "created_at": isoformat(entry.created_at),
        },
    }


@app.delete("/users/{user_id}/blocks/{blocked_id}")
def unblock_user(user_id: str, blocked_id: str, db: Session = Depends(get_db)):
    social.unblock(db, user_id, blocked_id)
    return {"success": True, "message": "Unblocked Successfully!"}


@app.get("/users/{user_id}/blocks")
def get_blocked_users(user_id: str, db: Session = Depends(get_db)):
    rows = social.list_blocked_users(db, user_id)
    return {
        "success": True,
        "blocked_users": [
            _follow_row(user, since, key="block_date") for user, since in rows
        ],
    }


@app.get("/users/{user_id}/blocks/check/{other_id}")
def check_blocked(user_id: str, other_id: str, db: Session = Depends(get_db)):
    return {"success": True, "is_blocked": social.is_blocked(db, user_id, other_id)}


# Notifications


@app.get("/users/{user_id}/notifications")
def get_notifications(
    user_id: str,
    limit: int = Query(notifications.DEFAULT_PAGE_SIZE, ge=0),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    buckets, total = notifications.grouped_notifications(
        db, user_id, limit=limit, offset=offset
    )
    return {"success": True, "notifications": buckets, "total": total}


@app.put("/users/{user_id}/notifications/read-all")
def mark_all_notifications_read(user_id: str, db: Session = Depends(get_db)):
    updated = notifications.mark_all_read(db, user_id)
    return {
        "success": True,
        "message": "All notifications marked as read",
        "updated_count": updated,
    }


@app.get("/users/{user_id}/notifications/unread-count")
def notification_unread_count(user_id: str, db: Session = Depends(get_db)):
    return {"success": True, "unread_count": notifications.unread_count(db, user_id)}


@app.put("/users/{user_id}/notifications/{notification_id}/read")
def mark_notification_read(
    user_id: str, notification_id: str, db: Session = Depends(get_db)
):
    notification = notifications.mark_read(db, notification_id, user_id)
    return {
        "success": True,
        "message": "Notification marked as read",
        "notification": notifications.serialize_notification(notification),
    }


@app.delete("/users/{user_id}/notifications/{notification_id}")
def delete_notification(
    user_id: str, notification_id: str, db: Session = Depends(get_db)
):
    notifications.delete_notification(db, notification_id, user_id)
    return {"success": True, "message": "Notification deleted successfully"}


# Events


@app.get("/events/ids")
def get_event_ids(db: Session = Depends(get_db)):
    return {"success": True, "events": crud.list_event_ids(db)}


@app.get("/events")
def list_events(
    user_id: str | None = Query(None, alias="userId"), db: Session = Depends(get_db)
):
    events = social.list_events(db, user_id)
    return crud.serialize_events(db, events)


@app.post("/events", status_code=201)
def create_event(payload: EventCreatePayload, db: Session = Depends(get_db)):
    values = payload.model_dump(exclude_unset=True, exclude={"invite_people"})
    event = crud.create_event(db, values, invite_ids=payload.invite_people or [])
    return {
        "success": True,
        "message": "Event created successfully",
        "event": crud.serialize_event(event),
    }


@app.get("/events/{event_id}")
def get_event(event_id: str, db: Session = Depends(get_db)):
    event = crud.require_event(db, event_id)
    return crud.serialize_events(db, [event])[0]


@app.put("/events/{event_id}")
def update_event(event_id: str, payload: EventUpdatePayload, db: Session = Depends(get_db)):
    event = crud.update_event(db, event_id, payload.model_dump(exclude_unset=True))
    return {
        "success": True,
        "message": "Event updated successfully",
        "event": crud.serialize_event(event),
    }


@app.put("/events/{event_id}/location")
def update_event_location(
    event_id: str, payload: LocationPayload, db: Session = Depends(get_db)
):
    event = crud.update_event_location(db, event_id, payload.location)
    return {
        "success": True,
        "message": "Location updated successfully",
        "event": crud.serialize_event(event),
    }


@app.delete("/events/{event_id}")
def delete_event(event_id: str, db: Session = Depends(get_db)):
    stored_names = crud.delete_event(db, event_id)
    db.commit()
    uploads.remove_material_files(stored_names)
    return {"success": True, "message": "Event deleted successfully"}


# Comments


@app.get("/events/{event_id}/comments")
def get_comments(event_id: str, db: Session = Depends(get_db)):
    comments = crud.list_comments(db, event_id)
    return {"success": True, "comments": [crud.serialize_comment(c) for c in comments]}


@app.post("/events/{event_id}/comments", status_code=201)
def add_comment(event_id: str, payload: CommentPayload, db: Session = Depends(get_db)):
    comment = crud.add_comment(db, event_id, payload.user_id or "", payload.content)
    return {
        "success": True,
        "message": "Comment added successfully",
        "comment": crud.serialize_comment(comment),
    }


@app.delete("/events/{event_id}/comments/{comment_id}")
def delete_comment(
    event_id: str,
    comment_id: str,
    payload: UserRefPayload | None = None,
    db: Session = Depends(get_db),
):
    crud.delete_comment(db, event_id, comment_id, _user_ref(payload) or "")
    return {"success": True, "message": "Comment deleted successfully"}


# RSVPs


@app.post("/events/{event_id}/rsvpd")
def create_rsvp(event_id: str, payload: RSVPPayload, db: Session = Depends(get_db)):
    attendee = rsvp.set_rsvp(db, event_id, payload.user_id or "", payload.status or "")
    return {
        "success": True,
        "message": "RSVP updated successfully",
        "rsvp": rsvp.serialize_rsvp(attendee),
    }


@app.get("/events/{event_id}/rsvpd")
def get_rsvp(
    event_id: str,
    user_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    attendee = rsvp.get_rsvp(db, event_id, user_id or "")
    if attendee is None:
        return {
            "success": True,
            "rsvp": None,
            "message": "No RSVP found for this user and event",
        }
    return {"success": True, "rsvp": rsvp.serialize_rsvp(attendee)}


@app.put("/events/{event_id}/rsvpd")
def update_rsvp(event_id: str, payload: RSVPPayload, db: Session = Depends(get_db)):
    attendee = rsvp.set_rsvp(
        db,
        event_id,
        payload.user_id or "",
        payload.status or "",
        require_existing=True,
    )
    return {
        "success": True,
        "message": "RSVP updated successfully",
        "rsvp": rsvp.serialize_rsvp(attendee),
    }


@app.delete("/events/{event_id}/rsvpd")
def delete_rsvp(
    event_id: str,
    payload: UserRefPayload | None = None,
    db: Session = Depends(get_db),
):
    rsvp.delete_rsvp(db, event_id, _user_ref(payload) or "")
    return {"success": True, "message": "RSVP removed successfully"}


@app.get("/events/{event_id}/rsvps")
def list_rsvps(event_id: str, db: Session = Depends(get_db)):
    rows = rsvp.list_event_rsvps(db, event_id)
    return {
        "success": True,
        "rsvps": [rsvp.serialize_rsvp(attendee, user) for attendee, user in rows],
    }


# Saved events


@app.post("/users/{user_id}/saved-events")
def save_event(user_id: str, payload: SaveEventPayload, db: Session = Depends(get_db)):
    saved, created = crud.save_event(db, user_id, payload.event_id or "")
    if not created:
        return {"success": True, "message": "Event already saved", "saved": True}
    return {
        "success": True,
        "message": "Event saved successfully",
        "saved_event": crud.serialize_saved_event(saved),
    }


@app.get("/users/{user_id}/saved-events")
def get_saved_events(user_id: str, db: Session = Depends(get_db)):
    return {"success": True, "saved_events": crud.list_saved_events(db, user_id)}


@app.get("/users/{user_id}/saved-events/{event_id}")
def check_saved_event(user_id: str, event_id: str, db: Session = Depends(get_db)):
    saved = crud.get_saved_event(db, user_id, event_id)
    return {
        "success": True,
        "is_saved": saved is not None,
        "saved_event": crud.serialize_saved_event(saved) if saved else None,
    }


@app.delete("/users/{user_id}/saved-events/{event_id}")
def remove_saved_event(user_id: str, event_id: str, db: Session = Depends(get_db)):
    crud.unsave_event(db, user_id, event_id)
    return {"success": True, "message": "Event removed from saved events"}


# Messages


@app.post("/messages", status_code=201)
def send_message(payload: MessagePayload, db: Session = Depends(get_db)):
    message = messaging.send_message(
        db, payload.sender_id or "", payload.recipient_id or "", payload.content
    )
    return {"success": True, "message": messaging.serialize_message(message)}


@app.get("/messages/conversation/{first_id}/{second_id}")
def get_conversation(
    first_id: str,
    second_id: str,
    limit: int = Query(messaging.DEFAULT_PAGE_SIZE, ge=0),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    messages = messaging.conversation(db, first_id, second_id, limit=limit, offset=offset)
    return {
        "success": True,
        "messages": [messaging.serialize_message(m) for m in messages],
    }


@app.get("/users/{user_id}/conversations")
def get_conversations(user_id: str, db: Session = Depends(get_db)):
    return {"success": True, "conversations": messaging.conversations(db, user_id)}


@app.put("/messages/read")
def mark_messages_read(payload: MarkReadPayload, db: Session = Depends(get_db)):
    updated = messaging.mark_read(db, payload.user_id or "", payload.other_user_id or "")
    return {
        "success": True,
        "message": "Messages marked as read",
        "updated_count": updated,
    }


@app.get("/users/{user_id}/messages/unread-count")
def message_unread_count(user_id: str, db: Session = Depends(get_db)):
    return {"success": True, "unread_count": messaging.unread_count(db, user_id)}


@app.delete("/messages/{message_id}")
def delete_message(
    message_id: str,
    payload: UserRefPayload | None = None,
    db: Session = Depends(get_db),
):
    messaging.delete_message(db, message_id, _user_ref(payload) or "")
    return {"success": True, "message": "Message deleted successfully"}


# Flashcards


@app.get("/flashcard_sets")
def list_flashcard_sets(
    user_id: str | None = Query(None), db: Session = Depends(get_db)
):
    sets = study.list_sets(db, user_id or "")
    return {"data": [study.serialize_set(s) for s in sets]}


@app.post("/flashcard_sets", status_code=201)
def create_flashcard_set(payload: FlashcardSetPayload, db: Session = Depends(get_db)):
    flashcard_set = study.create_set(
        db, payload.user_id or "", name=payload.name, description=payload.description
    )
    return {"data": study.serialize_set(flashcard_set)}


@app.get("/flashcard_sets/{set_id}")
def get_flashcard_set(
    set_id: str, user_id: str | None = Query(None), db: Session = Depends(get_db)
):
    return {"data": study.serialize_set(study.get_set(db, set_id, user_id or ""))}


@app.put("/flashcard_sets/{set_id}")
def update_flashcard_set(
    set_id: str, payload: FlashcardSetPayload, db: Session = Depends(get_db)
):
    flashcard_set = study.update_set(
        db,
        set_id,
        payload.user_id or "",
        name=payload.name,
        description=payload.description,
    )
    return {"data": study.serialize_set(flashcard_set)}


@app.delete("/flashcard_sets/{set_id}")
def delete_flashcard_set(
    set_id: str, user_id: str | None = Query(None), db: Session = Depends(get_db)
):
    study.delete_set(db, set_id, user_id or "")
    return {"message": "Flashcard set deleted successfully"}


@app.get("/flashcards/{set_id}")
def list_flashcards(
    set_id: str, user_id: str | None = Query(None), db: Session = Depends(get_db)
):
    cards = study.list_cards(db, set_id, user_id or "")
    return {"data": [study.serialize_card(card) for card in cards]}


@app.post("/flashcards/{set_id}", status_code=201)
def create_flashcard(set_id: str, payload: FlashcardPayload, db: Session = Depends(get_db)):
    card = study.create_card(
        db,
        set_id,
        payload.user_id or "",
        front=payload.front,
        back=payload.back,
        position=payload.position,
    )
    return {"data": study.serialize_card(card)}


@app.put("/flashcards/{card_id}")
def update_flashcard(card_id: str, payload: FlashcardPayload, db: Session = Depends(get_db)):
    values = payload.model_dump(exclude_unset=True, exclude={"user_id"})
    card = study.update_card(db, card_id, payload.user_id or "", values)
    return {"data": study.serialize_card(card)}


@app.delete("/flashcards/{card_id}")
def delete_flashcard(
    card_id: str, user_id: str | None = Query(None), db: Session = Depends(get_db)
):
    study.delete_card(db, card_id, user_id or "")
    return {"message": "Flashcard deleted successfully"}


# Study materials


@app.post("/events/{event_id}/materials", status_code=201)
def upload_material(
    event_id: str,
    file: UploadFile | None = File(None),
    title: str | None = Form(None),
    description: str | None = Form(None),
    is_public: bool = Form(True, alias="isPublic"),
    user_id: str | None = Form(None, alias="userId"),
    db: Session = Depends(get_db),
):
    if file is None:
        raise ValidationError("No file provided")
    if not title or not user_id:
        raise ValidationError("Title and userId are required")
    study.ensure_can_upload(db, event_id, user_id)
    stored = uploads.store_material(file)
    try:
        material = study.add_material(
            db,
            event_id,
            user_id,
            stored,
            title=title,
            description=description,
            is_public=is_public,
        )
    except Exception:
        uploads.remove_file(stored.path)
        raise
    return {
        "success": True,
        "message": "Study material uploaded successfully",
        "material": study.serialize_material(material),
    }


@app.get("/events/{event_id}/materials")
def list_materials(event_id: str, db: Session = Depends(get_db)):
    materials = study.list_materials(db, event_id)
    return {
        "success": True,
        "materials": [study.serialize_material(m) for m in materials],
    }


@app.get("/events/{event_id}/materials/{material_id}")
def get_material(event_id: str, material_id: str, db: Session = Depends(get_db)):
    material = study.get_material(db, event_id, material_id)
    return {"success": True, "material": study.serialize_material(material)}


@app.put("/events/{event_id}/materials/{material_id}")
def update_material(
    event_id: str,
    material_id: str,
    payload: MaterialUpdatePayload,
    db: Session = Depends(get_db),
):
    material = study.update_material(
        db,
        event_id,
        material_id,
        payload.user_id or "",
        payload.model_dump(exclude_unset=True, exclude={"user_id"}),
    )
    return {
        "success": True,
        "message": "Study material updated successfully",
        "material": study.serialize_material(material),
    }


@app.delete("/events/{event_id}/materials/{material_id}")
def delete_material(
    event_id: str,
    material_id: str,
    user_id: str | None = Query(None, alias="userId"),
    db: Session = Depends(get_db),
):
    stored_name = study.delete_material(db, event_id, material_id, user_id or "")
    db.commit()
    uploads.remove_material_files([stored_name])
    return {"success": True, "message": "Study material deleted successfully"}
