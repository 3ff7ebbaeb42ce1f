"""Accounts, password reset codes and one-time login passcodes."""

from __future__ import annotations

import logging
import re
import secrets
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from .models import User
from .utils import to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")

PASSWORD_RULES_HINT = (
    "Please ensure your password meets all requirements: at least 8 characters, "
    "1 capital letter, and 1 special character"
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode(
        "utf-8"
    )


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except ValueError:
        # Not a bcrypt hash.
        return False


def validate_new_password(password: str) -> None:
    if len(password) < 8:
        message = "Password must be at least 8 characters long"
    elif not re.search(r"[A-Z]", password):
        message = "Password must contain at least 1 capital letter"
    elif not re.search(r"[^A-Za-z0-9]", password):
        message = "Password must contain at least 1 special character"
    else:
        return
    raise ValidationError(message, extra={"details": PASSWORD_RULES_HINT})


def generate_code() -> str:
    """Return a random six digit code."""
    return str(100000 + secrets.randbelow(900000))


def get_user_by_email(session: Session, email: str) -> User | None:
    stmt = select(User).where(User.email == email)
    return session.scalars(stmt).first()


def get_user_by_username(session: Session, username: str) -> User | None:
    stmt = select(User).where(User.username == username)
    return session.scalars(stmt).first()


def register_user(
    session: Session,
    *,
    username: str,
    password: str,
    email: str,
    full_name: str,
    created_at: datetime | None = None,
) -> User:
    """Create an account, reporting every uniqueness conflict at once."""
    if not (username and password and email and full_name):
        raise ValidationError("Missing required fields")

    errors: dict[str, str] = {}
    if get_user_by_email(session, email):
        errors["email"] = "User with this email already exists"
    if get_user_by_username(session, username):
        errors["username"] = "Username is already taken"
    if errors:
        raise ConflictError(
            "Validation failed",
            extra={"success": False, "message": "Validation failed", "errors": errors},
        )

    now = utcnow()
    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        follower_ids=[],
        following_ids=[],
        created_at=to_naive_utc(created_at) or now,
        updated_at=now,
    )
    session.add(user)
    session.flush()
    logger.info("Registered user %s", user.id)
    return user


def authenticate(session: Session, email: str, password: str) -> User:
    if not email or not password:
        raise ValidationError("Missing email or password")
    user = get_user_by_email(session, email)
    if not user:
        raise AuthenticationError("Invalid email")
    if not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid password")
    return user


def start_password_reset(session: Session, email: str) -> tuple[User, str]:
    """Store a fresh reset code on the account and return it for delivery."""
    if not email:
        raise ValidationError("Email is required")
    user = get_user_by_email(session, email)
    if not user:
        raise NotFoundError("No account found with this email address")
    code = generate_code()
    user.verification_code = code
    user.verification_code_expiry = utcnow() + settings.reset_code_ttl
    session.add(user)
    session.flush()
    return user, code


def verify_reset_code(session: Session, email: str, code: str) -> str:
    """Swap a valid reset code for a short-lived reset token."""
    if not email or not code:
        raise ValidationError("Email and verification code are required")
    stmt = select(User).where(
        User.email == email,
        User.verification_code == str(code),
        User.verification_code_expiry > utcnow(),
    )
    user = session.scalars(stmt).first()
    if not user:
        raise ValidationError(
            "Invalid or expired verification code",
            extra={
                "details": "The verification code has expired or is invalid. "
                "Please request a new code.",
                "code": "CODE_EXPIRED",
            },
        )
    token = str(uuid.uuid4())
    user.verification_code = token
    user.verification_code_expiry = utcnow() + settings.reset_token_ttl
    session.add(user)
    session.flush()
    return token


def confirm_password_reset(session: Session, token: str, new_password: str) -> User:
    if not token or not new_password:
        raise ValidationError("Token and new password are required")
    validate_new_password(new_password)
    stmt = select(User).where(
        User.verification_code == token,
        User.verification_code_expiry > utcnow(),
    )
    user = session.scalars(stmt).first()
    if not user:
        raise ValidationError(
            "Invalid or expired reset token",
            extra={
                "details": "The password reset token has expired or is invalid. "
                "Please request a new password reset from the login page.",
                "code": "TOKEN_EXPIRED",
            },
        )
    user.password_hash = hash_password(new_password)
    user.verification_code = None
    user.verification_code_expiry = None
    session.add(user)
    session.flush()
    logger.info("Password reset for user %s", user.id)
    return user


@dataclass
class OtpEntry:
    code: str
    issued_at: datetime
    attempts: int = 0


class OtpStore:
    """Process-local store of login passcodes keyed by email.

    Entries live until they are verified, expire, or run out of attempts.
    ``sweep`` drops expired entries and is run periodically by the scheduler.
    """

    def __init__(self, *, ttl: timedelta, max_attempts: int):
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._entries: dict[str, OtpEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self, email: str, *, now: datetime | None = None) -> str:
        code = generate_code()
        with self._lock:
            self._entries[email] = OtpEntry(code=code, issued_at=now or utcnow())
        return code

    def verify(self, email: str, otp: str, *, now: datetime | None = None) -> None:
        if not email or not otp:
            raise ValidationError("Email and OTP are required")
        current = now or utcnow()
        with self._lock:
            entry = self._entries.get(email)
            if entry is None:
                raise ValidationError("No OTP found for this email")
            if current - entry.issued_at > self.ttl:
                del self._entries[email]
                raise ValidationError("OTP has expired")
            if entry.attempts >= self.max_attempts:
                del self._entries[email]
                raise ValidationError("Too many failed attempts")
            if entry.code != str(otp).strip():
                entry.attempts += 1
                raise ValidationError("Invalid OTP")
            del self._entries[email]

    def discard(self, email: str) -> None:
        with self._lock:
            self._entries.pop(email, None)

    def sweep(self, *, now: datetime | None = None) -> int:
        current = now or utcnow()
        with self._lock:
            expired = [
                email
                for email, entry in self._entries.items()
                if current - entry.issued_at > self.ttl
            ]
            for email in expired:
                del self._entries[email]
        return len(expired)


otp_store = OtpStore(ttl=settings.otp_ttl, max_attempts=settings.otp_max_attempts)


def sweep_expired_otps() -> int:
    removed = otp_store.sweep()
    if removed:
        logger.info("Swept %d expired one-time passcode(s)", removed)
    return removed
