"""Follow and block graph, and the event feed filter built on top of it.

Blocking is symmetric for visibility: if either user blocked the other,
neither sees the other's events and neither can follow the other. The
``is_blocked`` check stays directional so clients can tell who blocked whom.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Block, Event, Follow, User
from .notifications import create_notification
from .utils import utcnow, with_id, without_id

logger = logging.getLogger("uvicorn.error")


def _require_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def blocked_by(session: Session, user_id: str) -> set[str]:
    """Ids of users that ``user_id`` has blocked."""
    stmt = select(Block.blocked_id).where(Block.blocker_id == user_id)
    return set(session.scalars(stmt).all())


def blockers_of(session: Session, user_id: str) -> set[str]:
    """Ids of users that have blocked ``user_id``."""
    stmt = select(Block.blocker_id).where(Block.blocked_id == user_id)
    return set(session.scalars(stmt).all())


def hidden_user_ids(session: Session, user_id: str) -> set[str]:
    return blocked_by(session, user_id) | blockers_of(session, user_id)


def _blocked_either_way(session: Session, first_id: str, second_id: str) -> bool:
    stmt = select(Block.id).where(
        or_(
            (Block.blocker_id == first_id) & (Block.blocked_id == second_id),
            (Block.blocker_id == second_id) & (Block.blocked_id == first_id),
        )
    )
    return session.scalars(stmt).first() is not None


def list_events(session: Session, user_id: str | None = None) -> Sequence[Event]:
    """Return events newest first, hiding creators blocked in either direction."""
    stmt = select(Event).order_by(Event.created_at.desc())
    if user_id:
        hidden = hidden_user_ids(session, user_id)
        if hidden:
            stmt = stmt.where(Event.creator_id.not_in(hidden))
    return session.scalars(stmt).all()


def _get_follow(session: Session, follower_id: str, following_id: str) -> Follow | None:
    stmt = select(Follow).where(
        Follow.follower_id == follower_id, Follow.following_id == following_id
    )
    return session.scalars(stmt).first()


def _drop_follow_edge(session: Session, edge: Follow) -> None:
    """Delete ``edge`` and keep both users' counters and id arrays in step."""
    follower = session.get(User, edge.follower_id)
    following = session.get(User, edge.following_id)
    if follower:
        follower.following = max((follower.following or 0) - 1, 0)
        follower.following_ids = without_id(follower.following_ids, edge.following_id)
        session.add(follower)
    if following:
        following.followers = max((following.followers or 0) - 1, 0)
        following.follower_ids = without_id(following.follower_ids, edge.follower_id)
        session.add(following)
    session.delete(edge)


def _insert_unique(session: Session, row: Follow | Block, conflict: str) -> None:
    """Insert ``row`` in a savepoint; a concurrent duplicate becomes a 409."""
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError as exc:
        raise ConflictError(conflict) from exc


def follow(session: Session, follower_id: str, target_id: str) -> Follow:
    if follower_id == target_id:
        raise ValidationError("Cannot follow yourself")
    if _blocked_either_way(session, follower_id, target_id):
        raise ForbiddenError("Cannot follow blocked users")
    follower = _require_user(session, follower_id)
    target = _require_user(session, target_id)
    if _get_follow(session, follower_id, target_id):
        raise ConflictError("Already following this user")

    edge = Follow(follower_id=follower_id, following_id=target_id, created_at=utcnow())
    _insert_unique(session, edge, "Already following this user")

    follower.following = (follower.following or 0) + 1
    follower.following_ids = with_id(follower.following_ids, target_id)
    target.followers = (target.followers or 0) + 1
    target.follower_ids = with_id(target.follower_ids, follower_id)
    session.add_all([follower, target])
    session.flush()

    create_notification(
        session,
        user_id=target_id,
        sender_id=follower_id,
        notification_type="follow",
        message=f"{follower.username} started following you.",
    )
    return edge


def unfollow(session: Session, follower_id: str, target_id: str) -> None:
    edge = _get_follow(session, follower_id, target_id)
    if not edge:
        raise NotFoundError("Follow relationship not found")
    _drop_follow_edge(session, edge)
    session.flush()


def is_following(session: Session, follower_id: str, target_id: str) -> bool:
    return _get_follow(session, follower_id, target_id) is not None


def list_following(session: Session, user_id: str) -> Sequence[tuple[User, datetime]]:
    """Users ``user_id`` follows with the follow time, newest first."""
    stmt = (
        select(User, Follow.created_at)
        .join(Follow, Follow.following_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc())
    )
    return session.execute(stmt).all()


def list_followers(session: Session, user_id: str) -> Sequence[tuple[User, datetime]]:
    stmt = (
        select(User, Follow.created_at)
        .join(Follow, Follow.follower_id == User.id)
        .where(Follow.following_id == user_id)
        .order_by(Follow.created_at.desc())
    )
    return session.execute(stmt).all()


def _get_block(session: Session, blocker_id: str, blocked_id: str) -> Block | None:
    stmt = select(Block).where(
        Block.blocker_id == blocker_id, Block.blocked_id == blocked_id
    )
    return session.scalars(stmt).first()


def block(session: Session, blocker_id: str, blocked_id: str) -> Block:
    """Block a user and drop any follow edges between the pair."""
    if blocker_id == blocked_id:
        raise ValidationError("Cannot block yourself")
    _require_user(session, blocker_id)
    _require_user(session, blocked_id)
    if _get_block(session, blocker_id, blocked_id):
        raise ConflictError("Already blocked!")

    entry = Block(blocker_id=blocker_id, blocked_id=blocked_id, created_at=utcnow())
    _insert_unique(session, entry, "Already blocked!")

    edges = session.scalars(
        select(Follow).where(
            or_(
                (Follow.follower_id == blocker_id) & (Follow.following_id == blocked_id),
                (Follow.follower_id == blocked_id) & (Follow.following_id == blocker_id),
            )
        )
    ).all()
    for edge in edges:
        _drop_follow_edge(session, edge)
    session.flush()
    if edges:
        logger.info(
            "Block %s -> %s removed %d follow edge(s)", blocker_id, blocked_id, len(edges)
        )
    return entry


def unblock(session: Session, blocker_id: str, blocked_id: str) -> None:
    result = session.execute(
        delete(Block).where(
            Block.blocker_id == blocker_id, Block.blocked_id == blocked_id
        )
    )
    if not result.rowcount:
        raise NotFoundError("Block relationship not found")


def list_blocked_users(
    session: Session, blocker_id: str
) -> Sequence[tuple[User, datetime]]:
    stmt = (
        select(User, Block.created_at)
        .join(Block, Block.blocked_id == User.id)
        .where(Block.blocker_id == blocker_id)
        .order_by(Block.created_at.desc())
    )
    return session.execute(stmt).all()


def is_blocked(session: Session, blocker_id: str, blocked_id: str) -> bool:
    """Directional check: did ``blocker_id`` block ``blocked_id``?"""
    stmt = select(Block.id).where(
        Block.blocker_id == blocker_id, Block.blocked_id == blocked_id
    )
    return session.scalars(stmt).first() is not None
