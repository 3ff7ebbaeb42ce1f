"""SQLAlchemy models for Cramr."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

ATTENDEE_STATUSES = ("invited", "accepted", "declined", "pending")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Meta(Base):
    __tablename__ = "meta"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(64), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(128), nullable=False)
    full_name = Column(String(120), nullable=False)
    bio = Column(Text, nullable=True)
    school = Column(String(255), nullable=True)
    major = Column(String(255), nullable=True)
    year = Column(String(32), nullable=True)
    pronouns = Column(String(64), nullable=True)
    transfer = Column(Boolean, nullable=True)
    banner_color = Column(String(16), nullable=True)
    profile_picture_url = Column(String(512), nullable=True)
    phone_number = Column(String(32), nullable=True)
    prompt_1 = Column(Text, nullable=True)
    prompt_1_answer = Column(Text, nullable=True)
    prompt_2 = Column(Text, nullable=True)
    prompt_2_answer = Column(Text, nullable=True)
    prompt_3 = Column(Text, nullable=True)
    prompt_3_answer = Column(Text, nullable=True)
    push_notifications_enabled = Column(Boolean, default=True, nullable=False)
    email_notifications_enabled = Column(Boolean, default=True, nullable=False)
    sms_notifications_enabled = Column(Boolean, default=False, nullable=False)
    followers = Column(Integer, default=0, nullable=False)
    following = Column(Integer, default=0, nullable=False)
    follower_ids = Column(JSON, default=list, nullable=False)
    following_ids = Column(JSON, default=list, nullable=False)
    verification_code = Column(String(64), nullable=True)
    verification_code_expiry = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (UniqueConstraint("follower_id", "following_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    follower_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    following_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime, default=_now, nullable=False)


class Block(Base):
    __tablename__ = "blocks"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    blocker_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    blocked_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime, default=_now, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    class_name = Column("class", String(128), nullable=True)
    date_and_time = Column(DateTime, nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    capacity = Column(Integer, nullable=True)
    virtual_room_link = Column(String(512), nullable=True)
    study_room = Column(String(255), nullable=True)
    event_format = Column(String(32), nullable=True)
    banner_color = Column(String(16), nullable=True)
    materials_count = Column(Integer, default=0, nullable=False)
    rsvped_ids = Column(JSON, default=list, nullable=False)
    saved_ids = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    creator = relationship("User")
    attendees = relationship(
        "EventAttendee", back_populates="event", cascade="all, delete-orphan"
    )
    saved_entries = relationship(
        "SavedEvent", back_populates="event", cascade="all, delete-orphan"
    )
    comments = relationship(
        "Comment",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )
    materials = relationship(
        "StudyMaterial", back_populates="event", cascade="all, delete-orphan"
    )
    notifications = relationship(
        "Notification", back_populates="event", cascade="all, delete-orphan"
    )


class EventAttendee(Base):
    __tablename__ = "event_attendees"
    __table_args__ = (UniqueConstraint("event_id", "user_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(String(16), nullable=False, default="invited")
    rsvp_date = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="attendees")
    user = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=True
    )
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON, default=dict, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id])
    event = relationship("Event", back_populates="notifications")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    sender_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="comments")
    user = relationship("User")


class SavedEvent(Base):
    __tablename__ = "saved_events"

    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    saved_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="saved_entries")


class FlashcardSet(Base):
    __tablename__ = "flashcard_sets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    cards = relationship(
        "Flashcard", back_populates="flashcard_set", cascade="all, delete-orphan"
    )


class Flashcard(Base):
    __tablename__ = "flashcards"

    id = Column(String(36), primary_key=True, default=_uuid)
    set_id = Column(
        String(36), ForeignKey("flashcard_sets.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    front = Column(Text, nullable=True)
    back = Column(Text, nullable=True)
    position = Column(Integer, nullable=True)
    is_checked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    flashcard_set = relationship("FlashcardSet", back_populates="cards")


class StudyMaterial(Base):
    __tablename__ = "study_materials"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=False)
    stored_name = Column(String(255), nullable=False)
    file_url = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(128), nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    uploaded_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="materials")
    user = relationship("User")
