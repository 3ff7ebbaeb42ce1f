"""Schema management and the root admin token."""

from __future__ import annotations

import secrets
import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from .config import settings
from .database import engine, get_session
from .models import Meta
from .utils import utcnow


def init_db() -> None:
    upgrade_database(make_backup=False)
    ensure_root_token()


def _alembic_config() -> Config:
    script_location = Path(__file__).resolve().parent / "alembic"
    config = Config()
    config.set_main_option("script_location", str(script_location))
    # Config values go through configparser interpolation.
    url = engine.url.render_as_string(hide_password=False)
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def _sqlite_file() -> Path | None:
    if engine.dialect.name != "sqlite":
        return None
    database = engine.url.database
    if not database or database == ":memory:":
        return None
    return Path(database)


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest Alembic revision.

    Returns a list of applied actions. Databases created before Alembic
    tracking (tables present, no ``alembic_version``) are stamped instead of
    migrated.
    """
    actions: list[str] = []
    db_path = _sqlite_file()
    if make_backup and db_path and db_path.exists():
        backup_path = db_path.with_suffix(db_path.suffix + ".bak")
        shutil.copy(db_path, backup_path)
        actions.append(f"Backup created at {backup_path}")

    inspector = inspect(engine)
    has_alembic = inspector.has_table("alembic_version")
    has_users = inspector.has_table("users")
    config = _alembic_config()

    if not has_alembic and not has_users:
        command.upgrade(config, "head")
        actions.append("Ran Alembic upgrade to head (fresh database)")
    elif not has_alembic:
        command.stamp(config, "head")
        actions.append("Stamped existing database to Alembic head")
    else:
        command.upgrade(config, "head")
        actions.append("Applied Alembic migrations to head")
    return actions


def ensure_root_token() -> str:
    with get_session() as session:
        existing = session.get(Meta, settings.root_token_key)
        if existing:
            return existing.value
        token = secrets.token_urlsafe(32)
        session.merge(Meta(key=settings.root_token_key, value=token, updated_at=utcnow()))
        return token


def rotate_root_token() -> str:
    token = secrets.token_urlsafe(32)
    with get_session() as session:
        session.merge(Meta(key=settings.root_token_key, value=token, updated_at=utcnow()))
    return token


def fetch_root_token() -> str:
    with get_session() as session:
        meta = session.get(Meta, settings.root_token_key)
        if meta:
            return meta.value
    return ensure_root_token()


def verify_root_token(candidate: str | None) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(candidate, fetch_root_token())
