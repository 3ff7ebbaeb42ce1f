"""Flashcards and per-event study materials."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from .config import settings
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Event, EventAttendee, Flashcard, FlashcardSet, StudyMaterial
from .uploads import StoredFile, material_url
from .utils import isoformat, utcnow

# Flashcard sets


def serialize_set(flashcard_set: FlashcardSet) -> dict[str, Any]:
    return {
        "id": flashcard_set.id,
        "user_id": flashcard_set.user_id,
        "name": flashcard_set.name,
        "description": flashcard_set.description,
        "created_at": isoformat(flashcard_set.created_at),
        "updated_at": isoformat(flashcard_set.updated_at),
    }


def _require_owner(user_id: str | None, *, source: str = "query parameter") -> None:
    if not user_id:
        if source == "body":
            raise ValidationError("user_id is required")
        raise ValidationError("user_id query parameter is required")


def list_sets(session: Session, user_id: str) -> Sequence[FlashcardSet]:
    _require_owner(user_id)
    stmt = (
        select(FlashcardSet)
        .where(FlashcardSet.user_id == user_id)
        .order_by(FlashcardSet.created_at.desc())
    )
    return session.scalars(stmt).all()


def get_set(session: Session, set_id: str, user_id: str) -> FlashcardSet:
    _require_owner(user_id)
    stmt = select(FlashcardSet).where(
        FlashcardSet.id == set_id, FlashcardSet.user_id == user_id
    )
    flashcard_set = session.scalars(stmt).first()
    if not flashcard_set:
        raise NotFoundError("Flashcard set not found")
    return flashcard_set


def create_set(
    session: Session, user_id: str, *, name: str | None, description: str | None
) -> FlashcardSet:
    _require_owner(user_id, source="body")
    now = utcnow()
    flashcard_set = FlashcardSet(
        user_id=user_id,
        name=name,
        description=description,
        created_at=now,
        updated_at=now,
    )
    session.add(flashcard_set)
    session.flush()
    return flashcard_set


def update_set(
    session: Session,
    set_id: str,
    user_id: str,
    *,
    name: str | None,
    description: str | None,
) -> FlashcardSet:
    _require_owner(user_id, source="body")
    flashcard_set = get_set(session, set_id, user_id)
    flashcard_set.name = name
    flashcard_set.description = description
    flashcard_set.updated_at = utcnow()
    session.add(flashcard_set)
    session.flush()
    return flashcard_set


def delete_set(session: Session, set_id: str, user_id: str) -> None:
    flashcard_set = get_set(session, set_id, user_id)
    session.delete(flashcard_set)
    session.flush()


# Flashcards


def serialize_card(card: Flashcard) -> dict[str, Any]:
    return {
        "id": card.id,
        "set_id": card.set_id,
        "user_id": card.user_id,
        "front": card.front,
        "back": card.back,
        "position": card.position,
        "is_checked": card.is_checked,
        "created_at": isoformat(card.created_at),
        "updated_at": isoformat(card.updated_at),
    }


def list_cards(session: Session, set_id: str, user_id: str) -> Sequence[Flashcard]:
    get_set(session, set_id, user_id)
    stmt = (
        select(Flashcard)
        .where(Flashcard.set_id == set_id)
        .order_by(Flashcard.position, Flashcard.created_at, Flashcard.id)
    )
    return session.scalars(stmt).all()


def create_card(
    session: Session,
    set_id: str,
    user_id: str,
    *,
    front: str | None,
    back: str | None,
    position: int | None,
) -> Flashcard:
    _require_owner(user_id, source="body")
    get_set(session, set_id, user_id)
    now = utcnow()
    card = Flashcard(
        set_id=set_id,
        user_id=user_id,
        front=front,
        back=back,
        position=position,
        is_checked=False,
        created_at=now,
        updated_at=now,
    )
    session.add(card)
    session.flush()
    return card


def _get_card(session: Session, card_id: str, user_id: str) -> Flashcard:
    stmt = select(Flashcard).where(Flashcard.id == card_id, Flashcard.user_id == user_id)
    card = session.scalars(stmt).first()
    if not card:
        raise NotFoundError("Flashcard not found")
    return card


def update_card(
    session: Session, card_id: str, user_id: str, values: dict[str, Any]
) -> Flashcard:
    _require_owner(user_id, source="body")
    card = _get_card(session, card_id, user_id)
    for field in ("front", "back", "position", "is_checked"):
        if field in values:
            setattr(card, field, values[field])
    if card.is_checked is None:
        card.is_checked = False
    card.updated_at = utcnow()
    session.add(card)
    session.flush()
    return card


def delete_card(session: Session, card_id: str, user_id: str) -> None:
    _require_owner(user_id)
    card = _get_card(session, card_id, user_id)
    session.delete(card)
    session.flush()


# Study materials


def serialize_material(material: StudyMaterial) -> dict[str, Any]:
    uploader = material.user
    return {
        "id": material.id,
        "event_id": material.event_id,
        "user_id": material.user_id,
        "title": material.title,
        "description": material.description,
        "file_name": material.file_name,
        "file_url": material.file_url,
        "file_size": material.file_size,
        "file_type": material.file_type,
        "is_public": material.is_public,
        "uploaded_at": isoformat(material.uploaded_at),
        "uploader_username": uploader.username if uploader else None,
        "uploader_full_name": uploader.full_name if uploader else None,
    }


def _material_count(session: Session, event_id: str) -> int:
    stmt = select(func.count()).select_from(StudyMaterial).where(
        StudyMaterial.event_id == event_id
    )
    return session.scalar(stmt) or 0


def _sync_materials_count(session: Session, event: Event) -> None:
    event.materials_count = _material_count(session, event.id)
    session.add(event)


def ensure_can_upload(session: Session, event_id: str, user_id: str) -> Event:
    """Check the event exists, has room, and ``user_id`` may add to it.

    The creator and accepted attendees may upload.
    """
    event = session.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    limit = settings.max_materials_per_event
    if _material_count(session, event_id) >= limit:
        raise ValidationError(
            f"Event already has the maximum of {limit} study materials"
        )
    if event.creator_id != user_id:
        status = session.scalars(
            select(EventAttendee.status).where(
                EventAttendee.event_id == event_id, EventAttendee.user_id == user_id
            )
        ).first()
        if status != "accepted":
            raise ForbiddenError("Not authorized to upload materials to this event")
    return event


def add_material(
    session: Session,
    event_id: str,
    user_id: str,
    stored: StoredFile,
    *,
    title: str,
    description: str | None = None,
    is_public: bool = True,
) -> StudyMaterial:
    if not title or not user_id:
        raise ValidationError("Title and userId are required")
    event = ensure_can_upload(session, event_id, user_id)
    material = StudyMaterial(
        event_id=event_id,
        user_id=user_id,
        title=title,
        description=description,
        file_name=stored.original_name,
        stored_name=stored.stored_name,
        file_url=material_url(stored.stored_name),
        file_size=stored.size,
        file_type=stored.content_type,
        is_public=is_public,
        uploaded_at=utcnow(),
    )
    session.add(material)
    session.flush()
    _sync_materials_count(session, event)
    session.flush()
    return material


def list_materials(session: Session, event_id: str) -> Sequence[StudyMaterial]:
    stmt = (
        select(StudyMaterial)
        .options(joinedload(StudyMaterial.user))
        .where(StudyMaterial.event_id == event_id)
        .order_by(StudyMaterial.uploaded_at.desc())
    )
    return session.scalars(stmt).all()


def get_material(session: Session, event_id: str, material_id: str) -> StudyMaterial:
    stmt = select(StudyMaterial).where(
        StudyMaterial.id == material_id, StudyMaterial.event_id == event_id
    )
    material = session.scalars(stmt).first()
    if not material:
        raise NotFoundError("Study material not found")
    return material


def update_material(
    session: Session,
    event_id: str,
    material_id: str,
    user_id: str,
    values: dict[str, Any],
) -> StudyMaterial:
    if not user_id:
        raise ValidationError("userId is required")
    material = get_material(session, event_id, material_id)
    if material.user_id != user_id:
        raise ForbiddenError("Not authorized to update this material")
    for field in ("title", "description", "is_public"):
        if values.get(field) is not None:
            setattr(material, field, values[field])
    session.add(material)
    session.flush()
    return material


def delete_material(
    session: Session, event_id: str, material_id: str, user_id: str
) -> str:
    """Delete a material row; returns its stored file name for cleanup.

    The uploader and the event creator may delete.
    """
    if not user_id:
        raise ValidationError("userId is required")
    material = get_material(session, event_id, material_id)
    event = material.event
    if material.user_id != user_id and (event is None or event.creator_id != user_id):
        raise ForbiddenError("Not authorized to delete this material")
    stored_name = material.stored_name
    session.delete(material)
    session.flush()
    if event is not None:
        _sync_materials_count(session, event)
        session.flush()
    return stored_name
