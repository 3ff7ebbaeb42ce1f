"""Local file storage for profile pictures, images and study materials.

Files are written under ``settings.upload_dir`` with random names and served
back by the API's ``/uploads`` static mount.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from sqlalchemy.orm import Session

from .config import settings
from .errors import NotFoundError, ValidationError
from .models import User
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

MATERIAL_TYPES = {
    "application/pdf": "PDF",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "DOCX",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "PPTX",
    "image/jpeg": "JPG",
    "image/png": "PNG",
}

MATERIAL_SUBDIR = "study-materials"


class Upload(Protocol):
    filename: str | None
    content_type: str | None
    file: BinaryIO


@dataclass(frozen=True)
class StoredFile:
    stored_name: str
    original_name: str
    content_type: str
    size: int
    path: Path


def _mb(limit: int) -> int:
    return limit // (1024 * 1024)


def _write(upload: Upload, directory: Path, *, max_bytes: int) -> StoredFile:
    # One byte past the limit marks the file as oversize.
    content = upload.file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValidationError(f"File too large. Maximum size is {_mb(max_bytes)}MB.")
    original = Path(upload.filename or "upload").name
    stored_name = f"{uuid.uuid4()}{Path(original).suffix.lower()}"
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / stored_name
    path.write_bytes(content)
    return StoredFile(
        stored_name=stored_name,
        original_name=original,
        content_type=upload.content_type or "application/octet-stream",
        size=len(content),
        path=path,
    )


def store_image(upload: Upload | None) -> StoredFile:
    if upload is None or not upload.filename:
        raise ValidationError("No image file provided")
    if not (upload.content_type or "").lower().startswith("image/"):
        raise ValidationError("Only image files are allowed!")
    return _write(upload, settings.upload_dir, max_bytes=settings.max_image_bytes)


def store_material(upload: Upload | None) -> StoredFile:
    if upload is None or not upload.filename:
        raise ValidationError("No file provided")
    if (upload.content_type or "").lower() not in MATERIAL_TYPES:
        raise ValidationError(
            "File type not allowed! Only PDF, DOCX, PNG, JPG, and PPTX files are accepted."
        )
    return _write(upload, settings.material_dir, max_bytes=settings.max_material_bytes)


def image_path(stored: StoredFile) -> str:
    return f"/uploads/{stored.stored_name}"


def image_url(stored: StoredFile) -> str:
    return f"{settings.public_base_url.rstrip('/')}{image_path(stored)}"


def material_url(stored_name: str) -> str:
    base = settings.public_base_url.rstrip("/")
    return f"{base}/uploads/{MATERIAL_SUBDIR}/{stored_name}"


def remove_file(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception("Failed to remove uploaded file %s", path)
        return False
    return True


def remove_material_files(stored_names: list[str]) -> int:
    removed = 0
    for name in stored_names:
        if remove_file(settings.material_dir / Path(name).name):
            removed += 1
    return removed


def local_image_name(url: str | None) -> str | None:
    """Stored name behind an image URL we issued, or ``None`` for foreign URLs."""
    if not url:
        return None
    prefix = f"{settings.public_base_url.rstrip('/')}/uploads/"
    if not url.startswith(prefix):
        return None
    name = url[len(prefix):]
    if not name or "/" in name:
        return None
    return name


def remove_image_file(stored_name: str | None) -> bool:
    if not stored_name:
        return False
    return remove_file(settings.upload_dir / Path(stored_name).name)


def set_profile_picture(
    session: Session, user_id: str, stored: StoredFile
) -> tuple[User, str | None]:
    """Point the user at ``stored``.

    Returns the user and the stored name of the picture it replaced, which the
    caller removes once the transaction commits.
    """
    user = session.get(User, user_id)
    if not user:
        remove_file(stored.path)
        raise NotFoundError("User not found")
    previous = local_image_name(user.profile_picture_url)
    user.profile_picture_url = image_url(stored)
    user.updated_at = utcnow()
    session.add(user)
    session.flush()
    return user, previous
